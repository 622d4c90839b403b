"""Membership schemas: invitations, role updates, list responses."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr

from .common import MembershipRole, Pagination
from .organizations import OrganizationSummary


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class MembershipCreateRequest(BaseModel):
    """Invite someone to the organization by email."""
    email: EmailStr
    role: Optional[MembershipRole] = None


class MembershipUpdateRequest(BaseModel):
    role: Optional[MembershipRole] = None


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class MembershipUser(BaseModel):
    email: Optional[str] = None


class MembershipResponse(BaseModel):
    id: int
    organization_id: str
    user_id: str
    role: MembershipRole
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class MembershipDetail(MembershipResponse):
    """List entry: membership with its organization and the member's email."""
    organization: OrganizationSummary
    user: MembershipUser


class MembershipListResponse(BaseModel):
    data: List[MembershipDetail]
    pagination: Pagination
