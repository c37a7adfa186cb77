import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from chatsync.core.exceptions import ChatSyncError, RemoteUnavailable

logger = logging.getLogger(__name__)


async def chatsync_exception_handler(request: Request, exc: ChatSyncError) -> JSONResponse:
    log = logger.error if isinstance(exc, RemoteUnavailable) else logger.warning
    log(
        "%s %s failed: %s - %s",
        request.method,
        request.url.path,
        exc.error_code,
        exc.detail,
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": {
                "code": exc.error_code,
                "message": exc.detail,
                "status_code": exc.status_code,
            }
        },
    )


def register_error_handlers(app: FastAPI) -> None:
    app.add_exception_handler(ChatSyncError, chatsync_exception_handler)
