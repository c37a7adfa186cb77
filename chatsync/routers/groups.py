from fastapi import APIRouter, Depends, File, UploadFile, status

from chatsync.schemas.conversation import GroupCreate, GroupUpdate, ParticipantRequest
from chatsync.schemas.user import User
from chatsync.services.container import ServiceContainer
from chatsync.utils.dependencies import get_container, get_current_user


router = APIRouter(prefix="/groups", tags=["groups"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_group(body: GroupCreate, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    group = await container.groups.create_group(
        name=body.name,
        creator_id=current_user.id,
        description=body.description,
        avatar_id=body.avatar_id,
        participants=body.participants,
    )
    return group.model_dump(mode="json")


@router.get("/{group_id}")
async def get_group(group_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    group = await container.groups.get_group(current_user.id, group_id)
    return group.model_dump(mode="json")


@router.patch("/{group_id}")
async def update_group(group_id: str, body: GroupUpdate, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    group = await container.groups.update_group(current_user.id, group_id, name=body.name, description=body.description)
    return group.model_dump(mode="json")


@router.put("/{group_id}/avatar")
async def set_group_avatar(group_id: str, file: UploadFile = File(...), current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    data = await file.read()
    group = await container.groups.set_avatar(current_user.id, group_id, file.filename or "", file.content_type or "", data)
    return group.model_dump(mode="json")


@router.post("/{group_id}/participants")
async def add_participant(group_id: str, body: ParticipantRequest, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    group = await container.groups.add_participant(current_user.id, group_id, body.user_id)
    return group.model_dump(mode="json")


@router.delete("/{group_id}/participants/{user_id}")
async def remove_participant(group_id: str, user_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    group = await container.groups.remove_participant(current_user.id, group_id, user_id)
    return group.model_dump(mode="json")


@router.post("/{group_id}/leave", status_code=status.HTTP_204_NO_CONTENT)
async def leave_group(group_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    await container.groups.leave_group(current_user.id, group_id)


@router.delete("/{group_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_group(group_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    await container.groups.delete_group(current_user.id, group_id)


@router.delete("/{group_id}/avatar")
async def remove_group_avatar(group_id: str, current_user: User = Depends(get_current_user), container: ServiceContainer = Depends(get_container)):
    group = await container.groups.remove_avatar(current_user.id, group_id)
    return group.model_dump(mode="json")
