"""
Organization API endpoints.

POST   /organizations                    Create an organization (caller becomes OWNER)
GET    /organizations                    List the caller's organizations
GET    /organizations/{organizationId}   Get one (optional select / include)
PATCH  /organizations/{organizationId}   Partial update
PUT    /organizations/{organizationId}   Replace
DELETE /organizations/{organizationId}   Delete with all memberships
"""

from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from fastapi.exceptions import RequestValidationError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.auth import get_current_user_id, require_membership
from app.core.database import get_session
from app.models.membership import Membership
from app.models.organization import Organization
from app.services import organizations as org_service
from teamspace_shared.schemas.organizations import (
    ORGANIZATION_FIELDS,
    OrganizationCreateRequest,
    OrganizationInclude,
    OrganizationListResponse,
    OrganizationReplaceRequest,
    OrganizationResponse,
    OrganizationUpdateRequest,
)

router = APIRouter()

ORDER_PATTERN = r"^-?(name|created_at|updated_at)$"


def _parse_select(raw: Optional[str]) -> Optional[set[str]]:
    """'id,name' -> {'id', 'name'}; unknown fields are a request error."""
    if not raw:
        return None
    fields = {part.strip() for part in raw.split(",") if part.strip()}
    unknown = sorted(fields - ORGANIZATION_FIELDS)
    if unknown:
        raise RequestValidationError(
            [
                {
                    "loc": ("query", "select"),
                    "msg": f"Unknown field '{name}'",
                    "type": "value_error",
                }
                for name in unknown
            ]
        )
    return fields


@router.post("", response_model=OrganizationResponse, status_code=201)
async def create_organization(
    body: OrganizationCreateRequest,
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """Create an organization. The creator becomes its OWNER."""
    return await org_service.create_organization(user_id, body, session)


@router.get("", response_model=OrganizationListResponse)
async def list_organizations(
    skip: int = Query(0, ge=0),
    take: int = Query(50, ge=1, le=100),
    cursor: Optional[str] = Query(None, description="Organization id to start from"),
    name: Optional[str] = Query(None, min_length=1, description="Name contains (case-insensitive)"),
    order_by: Optional[str] = Query(None, alias="orderBy", pattern=ORDER_PATTERN),
    user_id: str = Depends(get_current_user_id),
    session: AsyncSession = Depends(get_session),
):
    """List organizations the caller is a member of."""
    where = [
        Organization.id.in_(
            select(Membership.organization_id).where(Membership.user_id == user_id)
        )
    ]
    if name:
        where.append(Organization.name.ilike(f"%{name}%"))

    items = await org_service.list_organizations(
        session,
        skip=skip,
        take=take,
        cursor=cursor,
        where=where,
        order_by=order_by,
    )
    return OrganizationListResponse(data=items)


@router.get("/{organizationId}", response_model=None)
async def get_organization(
    organizationId: str,
    select_: Optional[str] = Query(None, alias="select", description="Comma-separated fields"),
    include: List[OrganizationInclude] = Query([]),
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    """Get an organization. ``select`` projects fields, ``include`` adds relations."""
    return await org_service.get_organization(
        organizationId,
        session,
        select_fields=_parse_select(select_),
        include=include,
    )


@router.patch("/{organizationId}", response_model=OrganizationResponse)
async def update_organization(
    organizationId: str,
    body: OrganizationUpdateRequest,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.update_organization(organizationId, body, session)


@router.put("/{organizationId}", response_model=OrganizationResponse)
async def replace_organization(
    organizationId: str,
    body: OrganizationReplaceRequest,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    return await org_service.replace_organization(organizationId, body, session)


@router.delete("/{organizationId}", response_model=OrganizationResponse)
async def delete_organization(
    organizationId: str,
    member: Membership = Depends(require_membership),
    session: AsyncSession = Depends(get_session),
):
    """Delete an organization and its memberships. Returns the deleted record."""
    return await org_service.delete_organization(organizationId, session)
