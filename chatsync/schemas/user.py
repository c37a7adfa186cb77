from typing import Any, Mapping, Optional

from pydantic import BaseModel, EmailStr, Field


PLACEHOLDER_NAME = "Unknown user"


class User(BaseModel):

    id: str
    username: str
    display_name: Optional[str] = None
    avatar_id: Optional[str] = None
    email: Optional[EmailStr] = None

    @property
    def label(self) -> str:
        return self.display_name or self.username

    @classmethod
    def from_document(cls, doc: Mapping[str, Any]) -> "User":
        return cls(
            id=str(doc["_id"]),
            username=doc.get("username", ""),
            display_name=doc.get("display_name"),
            avatar_id=doc.get("avatar_id"),
            email=doc.get("email"),
        )


def display_name(user: Optional[User]) -> str:
    """Name to render for a possibly unresolved user."""
    return user.label if user is not None else PLACEHOLDER_NAME


class ProfileCreate(BaseModel):

    username: str = Field(min_length=1)
    email: EmailStr
    display_name: Optional[str] = None


class ProfileUpdate(BaseModel):

    username: Optional[str] = None
    display_name: Optional[str] = None


class UsernameAvailability(BaseModel):

    available: bool
    message: str = ""
