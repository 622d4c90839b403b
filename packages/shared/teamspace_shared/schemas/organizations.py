"""
Organization schemas shared between the API server and its clients.

Covers: create/update/replace requests, the exposed organization view,
list query options.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from .common import MembershipRole


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class OrganizationOrderField(str, Enum):
    NAME = "name"
    CREATED_AT = "created_at"
    UPDATED_AT = "updated_at"


class OrganizationInclude(str, Enum):
    MEMBERSHIPS = "memberships"


# Fields a caller may project with ``select``
ORGANIZATION_FIELDS: frozenset[str] = frozenset(
    {"id", "name", "profile_picture_url", "created_at", "updated_at"}
)


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=200, description="Organization display name")
    profile_picture_url: Optional[str] = Field(
        None,
        max_length=2048,
        description="Avatar URL; generated from the name's initials when omitted",
    )


class OrganizationUpdateRequest(BaseModel):
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    profile_picture_url: Optional[str] = Field(None, max_length=2048)


class OrganizationReplaceRequest(OrganizationCreateRequest):
    """Full-body replace. Omitted optional fields are left untouched."""


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------

class OrganizationSummary(BaseModel):
    id: str
    name: str
    profile_picture_url: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class OrganizationMembership(BaseModel):
    id: int
    organization_id: str
    user_id: str
    role: MembershipRole
    created_at: datetime
    updated_at: datetime
    organization: Optional[OrganizationSummary] = None

    model_config = {"from_attributes": True}


class OrganizationResponse(OrganizationSummary):
    memberships: Optional[list[OrganizationMembership]] = None


class OrganizationListResponse(BaseModel):
    data: list[OrganizationResponse]
