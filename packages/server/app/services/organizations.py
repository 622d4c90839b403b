"""
Organization service: business logic for organization CRUD.

Every function returns the exposed view of an organization (a plain dict
matching ``OrganizationResponse``), never the table row itself.
"""

from __future__ import annotations

import colorsys
import random
from collections.abc import Iterable, Sequence
from typing import Any, Optional
from urllib.parse import urlencode

import structlog
from sqlalchemy import and_, delete, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement
from sqlmodel import select

from app.core.errors import ORGANIZATION_NOT_FOUND, APIError
from app.models.membership import Membership
from app.models.organization import Organization
from teamspace_shared.schemas.common import MembershipRole
from teamspace_shared.schemas.organizations import (
    OrganizationCreateRequest,
    OrganizationInclude,
    OrganizationOrderField,
    OrganizationReplaceRequest,
    OrganizationUpdateRequest,
)

log = structlog.get_logger()

AVATAR_BASE_URL = "https://ui-avatars.com/api/"
DEFAULT_ORDER = "-created_at"


# ---------------------------------------------------------------------------
# Avatar
# ---------------------------------------------------------------------------

def compute_initials(name: str) -> str:
    """First letter of every word, or the first two letters of a single word."""
    if " " in name:
        return "".join(part.strip()[:1] for part in name.split(" ")).upper()
    return name.strip()[:2].upper()


def random_light_color(rng: random.Random | None = None) -> str:
    """Random pastel color as hex without the leading '#'."""
    rng = rng or random
    hue = rng.random()
    saturation = rng.uniform(0.25, 0.55)
    value = rng.uniform(0.9, 1.0)
    r, g, b = colorsys.hsv_to_rgb(hue, saturation, value)
    return f"{round(r * 255):02x}{round(g * 255):02x}{round(b * 255):02x}"


def avatar_url(initials: str, background: str | None = None) -> str:
    query = urlencode(
        {
            "name": initials,
            "background": background or random_light_color(),
            "color": "000000",
        }
    )
    return f"{AVATAR_BASE_URL}?{query}"


# ---------------------------------------------------------------------------
# Exposure
# ---------------------------------------------------------------------------

def expose_organization(
    org: Organization,
    memberships: Optional[Iterable[Membership]] = None,
) -> dict:
    data = {
        "id": org.id,
        "name": org.name,
        "profile_picture_url": org.profile_picture_url,
        "created_at": org.created_at,
        "updated_at": org.updated_at,
    }
    if memberships is not None:
        data["memberships"] = [expose_membership(m) for m in memberships]
    return data


def expose_membership(
    membership: Membership, organization: Optional[Organization] = None
) -> dict:
    data = {
        "id": membership.id,
        "organization_id": membership.organization_id,
        "user_id": membership.user_id,
        "role": membership.role,
        "created_at": membership.created_at,
        "updated_at": membership.updated_at,
    }
    if organization is not None:
        data["organization"] = expose_organization(organization)
    return data


# ---------------------------------------------------------------------------
# Lookups
# ---------------------------------------------------------------------------

async def get_organization_or_404(
    org_id: str, session: AsyncSession, *, for_update: bool = False
) -> Organization:
    """Load an organization row; ``for_update`` locks it until commit."""
    stmt = select(Organization).where(Organization.id == org_id)
    if for_update:
        stmt = stmt.with_for_update()
    result = await session.execute(stmt)
    org = result.scalar_one_or_none()
    if not org:
        raise APIError(ORGANIZATION_NOT_FOUND)
    return org


async def _memberships_of(org_id: str, session: AsyncSession) -> list[Membership]:
    result = await session.execute(
        select(Membership)
        .where(Membership.organization_id == org_id)
        .order_by(Membership.id)
    )
    return list(result.scalars().all())


def _parse_order(order_by: Optional[str]) -> tuple[OrganizationOrderField, bool]:
    """'-name' -> (NAME, descending)."""
    raw = order_by or DEFAULT_ORDER
    descending = raw.startswith("-")
    return OrganizationOrderField(raw.lstrip("-")), descending


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def create_organization(
    owner_user_id: str,
    req: OrganizationCreateRequest,
    session: AsyncSession,
) -> dict:
    """Create an organization with its creator as the sole OWNER."""
    initials = compute_initials(req.name)
    org = Organization(
        name=req.name,
        profile_picture_url=req.profile_picture_url or avatar_url(initials),
    )
    session.add(org)
    await session.flush()

    membership = Membership(
        organization_id=org.id,
        user_id=owner_user_id,
        role=MembershipRole.OWNER.value,
    )
    session.add(membership)
    await session.flush()

    log.info("organization.created", organization_id=org.id, owner=owner_user_id)

    data = expose_organization(org)
    data["memberships"] = [expose_membership(membership, organization=org)]
    return data


async def list_organizations(
    session: AsyncSession,
    *,
    skip: Optional[int] = None,
    take: Optional[int] = None,
    cursor: Optional[str] = None,
    where: Sequence[ColumnElement[bool]] = (),
    order_by: Optional[str] = None,
) -> list[dict]:
    """List organizations.

    ``cursor`` is an organization id; the page starts at that row (inclusive)
    in the requested ordering. Persistence errors yield an empty list.
    """
    field, descending = _parse_order(order_by)
    column = getattr(Organization, field.value)

    try:
        stmt = select(Organization).where(*where)

        if cursor is not None:
            anchor = await session.get(Organization, cursor)
            if anchor is None:
                return []
            anchor_value = getattr(anchor, field.value)
            if descending:
                stmt = stmt.where(
                    or_(column < anchor_value, and_(column == anchor_value, Organization.id <= anchor.id))
                )
            else:
                stmt = stmt.where(
                    or_(column > anchor_value, and_(column == anchor_value, Organization.id >= anchor.id))
                )

        if descending:
            stmt = stmt.order_by(column.desc(), Organization.id.desc())
        else:
            stmt = stmt.order_by(column.asc(), Organization.id.asc())

        if skip:
            stmt = stmt.offset(skip)
        if take is not None:
            stmt = stmt.limit(take)

        result = await session.execute(stmt)
        organizations = result.scalars().all()
    except SQLAlchemyError as exc:
        log.warning("organization.list_failed", error=str(exc))
        await session.rollback()
        return []

    return [expose_organization(org) for org in organizations]


async def get_organization(
    org_id: str,
    session: AsyncSession,
    *,
    select_fields: Optional[Iterable[str]] = None,
    include: Optional[Iterable[OrganizationInclude]] = None,
) -> dict:
    """Get one organization, optionally projected or with relations included."""
    org = await get_organization_or_404(org_id, session)
    includes = {OrganizationInclude(i) for i in include or ()}

    memberships = None
    if OrganizationInclude.MEMBERSHIPS in includes:
        memberships = await _memberships_of(org.id, session)

    data = expose_organization(org, memberships)
    if select_fields:
        keep = set(select_fields) | {i.value for i in includes}
        data = {key: value for key, value in data.items() if key in keep}
    return data


async def _apply_update(org: Organization, changes: dict[str, Any], session: AsyncSession) -> Organization:
    for key, value in changes.items():
        setattr(org, key, value)
    session.add(org)
    await session.flush()
    await session.refresh(org)
    return org


async def update_organization(
    org_id: str, req: OrganizationUpdateRequest, session: AsyncSession
) -> dict:
    """Partial update: only supplied fields change."""
    org = await get_organization_or_404(org_id, session)
    org = await _apply_update(org, req.model_dump(exclude_none=True), session)
    log.info("organization.updated", organization_id=org.id)
    return expose_organization(org)


async def replace_organization(
    org_id: str, req: OrganizationReplaceRequest, session: AsyncSession
) -> dict:
    """Replace with the given body. Omitted optional fields keep their value."""
    org = await get_organization_or_404(org_id, session)
    org = await _apply_update(org, req.model_dump(exclude_none=True), session)
    log.info("organization.replaced", organization_id=org.id)
    return expose_organization(org)


async def delete_organization(org_id: str, session: AsyncSession) -> dict:
    """Delete an organization and all of its memberships."""
    org = await get_organization_or_404(org_id, session, for_update=True)
    snapshot = expose_organization(org)

    result = await session.execute(
        delete(Membership).where(Membership.organization_id == org.id)
    )
    await session.delete(org)
    await session.flush()

    log.info(
        "organization.deleted",
        organization_id=org_id,
        memberships_removed=result.rowcount,
    )
    return snapshot
