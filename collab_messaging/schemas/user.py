from typing import List, Optional

from pydantic import BaseModel


class UserSummary(BaseModel):

    id: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    name: str = ""
    role: Optional[str] = None
    avatar_url: Optional[str] = None


class CandidateOut(UserSummary):

    email: Optional[str] = None
    batch: Optional[str] = None
    department: Optional[str] = None


class CandidatesResponse(BaseModel):

    users: List[CandidateOut]
    message: Optional[str] = None
