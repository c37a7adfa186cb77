import logging
import sys
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from chatsync.core.config import get_settings
from chatsync.core.error_handlers import register_error_handlers
from chatsync.database.connection import close_mongo_connection, connect_to_mongo
from chatsync.routers.chat import router as chat_router
from chatsync.routers.conversations import router as conversations_router
from chatsync.routers.files import router as files_router
from chatsync.routers.groups import router as groups_router
from chatsync.routers.users import router as users_router
from chatsync.services.container import Repositories, ServiceContainer
from chatsync.utils.realtime_bus import get_bus, reset_bus

logging.basicConfig(
    level=get_settings().LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger("chatsync.main")


@asynccontextmanager
async def lifespan(app: FastAPI):

    if getattr(app.state, "container", None) is not None:
        yield
        return

    settings = get_settings()
    db = await connect_to_mongo(settings)
    repositories = Repositories.from_database(db)
    await repositories.ensure_indexes()
    app.state.container = ServiceContainer(repositories, get_bus(settings), settings)
    logger.info("Application startup complete")
    try:
        yield
    finally:
        await reset_bus()
        await close_mongo_connection()
        app.state.container = None


def create_app(container: Optional[ServiceContainer] = None) -> FastAPI:
    app = FastAPI(title="chatsync", lifespan=lifespan)
    app.state.container = container
    register_error_handlers(app)

    app.include_router(users_router)
    app.include_router(conversations_router)
    app.include_router(groups_router)
    app.include_router(files_router)
    app.include_router(chat_router)

    @app.get("/")
    async def root():
        return {"message": "chatsync is running"}

    return app


app = create_app()
