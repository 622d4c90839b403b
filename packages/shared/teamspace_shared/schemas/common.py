from enum import Enum

from pydantic import BaseModel


class MembershipRole(str, Enum):
    OWNER = "OWNER"
    ADMIN = "ADMIN"
    MEMBER = "MEMBER"


# Role given to invited members when the request does not name one
DEFAULT_MEMBERSHIP_ROLE = MembershipRole.MEMBER


class Pagination(BaseModel):
    page: int
    page_size: int
    total: int
    total_pages: int


class ErrorDetail(BaseModel):
    code: str
    message: str
    status: int


class ErrorResponse(BaseModel):
    error: ErrorDetail
