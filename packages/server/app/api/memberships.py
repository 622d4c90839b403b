"""
Membership API endpoints.

POST   /organizations/{organizationId}/memberships        Invite by email
GET    /organizations/{organizationId}/memberships        Paginated list
GET    /organizations/{organizationId}/memberships/{id}   Get one
PATCH  /organizations/{organizationId}/memberships/{id}   Update role
DELETE /organizations/{organizationId}/memberships/{id}   Remove
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.auth import get_client_ip, require_membership
from app.core.database import get_session
from app.core.pagination import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from app.models.membership import Membership
from app.services import memberships as membership_service
from teamspace_shared.schemas.memberships import (
    MembershipCreateRequest,
    MembershipListResponse,
    MembershipResponse,
    MembershipUpdateRequest,
)

router = APIRouter()


@router.post("", response_model=MembershipResponse, status_code=201)
async def create_membership(
    organizationId: str,
    body: MembershipCreateRequest,
    request: Request,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    """Add a member to an organization. Unknown emails get a new account."""
    return await membership_service.create_membership(
        organizationId,
        ip_address=get_client_ip(request),
        email=body.email,
        role=body.role,
        session=session,
    )


@router.get("", response_model=MembershipListResponse)
async def list_memberships(
    organizationId: str,
    page: int = Query(1, ge=1),
    page_size: int = Query(DEFAULT_PAGE_SIZE, ge=1, le=MAX_PAGE_SIZE, alias="pageSize"),
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    """List memberships of an organization, newest first."""
    items, pagination = await membership_service.list_memberships(
        organizationId, session, page=page, page_size=page_size
    )
    return MembershipListResponse(data=items, pagination=pagination)


@router.get("/{id}", response_model=MembershipResponse)
async def get_membership(
    organizationId: str,
    id: int,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    return await membership_service.get_membership(organizationId, id, session)


@router.patch("/{id}", response_model=MembershipResponse)
async def update_membership(
    organizationId: str,
    id: int,
    body: MembershipUpdateRequest,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    """Change a member's role. The last OWNER cannot be demoted."""
    return await membership_service.update_membership(organizationId, id, body, session)


@router.delete("/{id}", response_model=MembershipResponse)
async def delete_membership(
    organizationId: str,
    id: int,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    """Remove a member. The last member and the last OWNER cannot be removed."""
    return await membership_service.delete_membership(organizationId, id, session)
