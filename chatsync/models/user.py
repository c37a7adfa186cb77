from typing import Optional, TypedDict


class UserDocument(TypedDict, total=False):

    # identity id assigned by the auth provider, stored as a plain string
    _id: str
    username: str
    # lower-cased copy used for case-insensitive uniqueness checks
    username_lower: str
    display_name: Optional[str]
    avatar_id: Optional[str]
    email: Optional[str]
