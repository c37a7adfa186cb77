from typing import Optional

from fastapi import Depends, Header, HTTPException, Request, status

from chatsync.schemas.user import User
from chatsync.services.container import ServiceContainer


def get_container(request: Request) -> ServiceContainer:
    return request.app.state.container


async def get_current_user(
    x_user_id: Optional[str] = Header(default=None),
    container: ServiceContainer = Depends(get_container),
) -> User:
    # The identity is issued by the external auth provider and forwarded as-is.
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    user = await container.identity_cache.get(x_user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown user")
    return user
