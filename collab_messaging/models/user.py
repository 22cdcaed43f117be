from typing import Literal, Optional, TypedDict


Role = Literal["student", "alumni"]


class UserDocument(TypedDict, total=False):
    # owned by the account service; only read here
    _id: str
    email: str
    first_name: str
    last_name: str
    role: Role
    profile_photo: Optional[str]
    batch: Optional[str]
    department: Optional[str]
    is_active: bool
