from typing import Optional

from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, UploadFile, status

from chatsync.schemas.user import ProfileCreate, ProfileUpdate, User
from chatsync.services.container import ServiceContainer
from chatsync.utils.dependencies import get_container, get_current_user


router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def register_profile(body: ProfileCreate, x_user_id: Optional[str] = Header(default=None), container: ServiceContainer = Depends(get_container)):
    # the identity already exists at the auth provider; this creates its profile record
    if not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-User-Id header")
    user = await container.users.register_profile(x_user_id, body.username, body.email, body.display_name)
    return user.model_dump(mode="json")


@router.get("/me")
async def get_me(current_user: User = Depends(get_current_user)):
    return current_user.model_dump(mode="json")


@router.patch("/me")
async def update_me(body: ProfileUpdate, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    user = await container.users.update_profile(current_user.id, display_name=body.display_name, username=body.username)
    return user.model_dump(mode="json")


@router.put("/me/avatar")
async def set_my_avatar(file: UploadFile = File(...), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    data = await file.read()
    user = await container.users.set_avatar(current_user.id, file.filename or "", file.content_type or "", data)
    return user.model_dump(mode="json")


@router.delete("/me/avatar")
async def remove_my_avatar(current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    user = await container.users.remove_avatar(current_user.id)
    return user.model_dump(mode="json")


@router.get("/username-available")
async def username_available(username: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    result = await container.users.check_username_available(username, current_user.id)
    return result.model_dump()


@router.get("/search")
async def search_users(q: str = Query(..., min_length=1), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    users = await container.search.search_users(q, self_id=current_user.id)
    return {"items": [u.model_dump(mode="json") for u in users]}


@router.get("/{user_id}")
async def get_user(user_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    user = await container.users.get_profile(user_id)
    return user.model_dump(mode="json")
