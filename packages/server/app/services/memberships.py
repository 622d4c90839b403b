"""
Membership service: invitations, role changes, removal.

Guards keep every organization with at least one member and at least one
OWNER. A guard and the write it protects run in the same transaction after
the organization row is locked, so concurrent removals or demotions in one
organization are serialized.
"""

from __future__ import annotations

from email.utils import formataddr
from typing import Optional

import structlog
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.core.config import get_settings
from app.core.dispatch import dispatch
from app.core.email import INVITATION_TEMPLATE, get_email_sender
from app.core.errors import (
    CANNOT_DELETE_SOLE_MEMBER,
    CANNOT_DELETE_SOLE_OWNER,
    CANNOT_UPDATE_ROLE_SOLE_OWNER,
    MEMBERSHIP_ALREADY_EXISTS,
    MEMBERSHIP_NOT_FOUND,
    UNAUTHORIZED_RESOURCE,
    APIError,
)
from app.core.pagination import DEFAULT_PAGE_SIZE, paginate
from app.models.email import Email
from app.models.membership import Membership
from app.models.organization import Organization
from app.services import accounts
from app.services.organizations import (
    expose_membership,
    get_organization_or_404,
)
from teamspace_shared.schemas.common import DEFAULT_MEMBERSHIP_ROLE, MembershipRole
from teamspace_shared.schemas.memberships import MembershipUpdateRequest

log = structlog.get_logger()


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def _find_membership(
    membership_id: int, session: AsyncSession, *, refresh: bool = False
) -> Optional[Membership]:
    stmt = select(Membership).where(Membership.id == membership_id)
    if refresh:
        stmt = stmt.execution_options(populate_existing=True)
    result = await session.execute(stmt)
    return result.scalar_one_or_none()


async def _get_membership_in_org(
    org_id: str,
    membership_id: int,
    session: AsyncSession,
    *,
    lock: bool = False,
) -> Membership:
    """Load a membership, rejecting ids that belong to another organization.

    Membership ids are global, so a caller scoped to one organization must
    not be able to read or act on another organization's membership.
    With ``lock`` the organization row is locked and the membership re-read.
    """
    membership = await _find_membership(membership_id, session)
    if not membership:
        raise APIError(MEMBERSHIP_NOT_FOUND)
    if membership.organization_id != org_id:
        log.warning(
            "membership.cross_tenant_access",
            membership_id=membership_id,
            organization_id=org_id,
        )
        raise APIError(UNAUTHORIZED_RESOURCE)

    if lock:
        await get_organization_or_404(org_id, session, for_update=True)
        membership = await _find_membership(membership_id, session, refresh=True)
        if not membership:
            raise APIError(MEMBERSHIP_NOT_FOUND)
    return membership


async def _count_owners(
    org_id: str, session: AsyncSession, *, exclude_id: Optional[int] = None
) -> int:
    stmt = (
        select(func.count())
        .select_from(Membership)
        .where(
            Membership.organization_id == org_id,
            Membership.role == MembershipRole.OWNER.value,
        )
    )
    if exclude_id is not None:
        stmt = stmt.where(Membership.id != exclude_id)
    return (await session.execute(stmt)).scalar_one()


def _send_invitation(org: Organization, email: str, user_name: Optional[str]) -> None:
    """Queue the invitation email; delivery is never awaited."""
    settings = get_settings()
    link = f"{settings.frontend_url.rstrip('/')}/organization/{org.id}"
    sender = get_email_sender()
    dispatch(
        sender.send_email_with_template(
            to_address=formataddr((user_name or "", email)),
            template={
                INVITATION_TEMPLATE: {
                    "organizationName": org.name,
                    "link": link,
                }
            },
        ),
        name=f"invitation:{org.id}",
    )


async def _find_member(org_id: str, user_id: str, session: AsyncSession) -> Optional[Membership]:
    result = await session.execute(
        select(Membership).where(
            Membership.organization_id == org_id,
            Membership.user_id == user_id,
        )
    )
    return result.scalar_one_or_none()


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------

async def create_membership(
    org_id: str,
    *,
    ip_address: str,
    email: str,
    role: Optional[MembershipRole],
    session: AsyncSession,
) -> dict:
    """Invite ``email`` to the organization, signing the user up if needed.

    The membership is committed before the invitation is queued, so no email
    goes out for a membership that was rolled back.
    """
    org = await get_organization_or_404(org_id, session, for_update=True)

    user = await accounts.find_user_by_email(email, session)
    if user is None:
        user = await accounts.signup(session, ip_address=ip_address, email=email)
    elif await _find_member(org_id, user.id, session):
        raise APIError(MEMBERSHIP_ALREADY_EXISTS)

    membership = Membership(
        organization_id=org_id,
        user_id=user.id,
        role=(role or DEFAULT_MEMBERSHIP_ROLE).value,
    )
    session.add(membership)
    try:
        await session.flush()
    except IntegrityError as exc:
        # Lost a race with a concurrent invite of the same user
        await session.rollback()
        raise APIError(MEMBERSHIP_ALREADY_EXISTS) from exc

    await session.commit()

    log.info(
        "membership.created",
        membership_id=membership.id,
        organization_id=org_id,
        user_id=user.id,
        role=membership.role,
    )

    _send_invitation(org, email, user.name)
    return expose_membership(membership)


async def list_memberships(
    org_id: str,
    session: AsyncSession,
    *,
    page: int = 1,
    page_size: int = DEFAULT_PAGE_SIZE,
) -> tuple[list[dict], dict]:
    """Newest first, each with its organization and the member's email."""
    await get_organization_or_404(org_id, session)

    stmt = (
        select(Membership, Organization)
        .join(Organization, Organization.id == Membership.organization_id)
        .where(Membership.organization_id == org_id)
        .order_by(Membership.id.desc())
    )
    rows, pagination = await paginate(session, stmt, page=page, page_size=page_size)

    emails: dict[str, str] = {}
    user_ids = {membership.user_id for membership, _ in rows}
    if user_ids:
        result = await session.execute(
            select(Email.user_id, Email.email)
            .where(Email.user_id.in_(user_ids))
            .order_by(Email.id)
        )
        for user_id, address in result.all():
            emails.setdefault(user_id, address)

    items = []
    for membership, org in rows:
        item = expose_membership(membership, organization=org)
        item["user"] = {"email": emails.get(membership.user_id)}
        items.append(item)
    return items, pagination


async def get_membership(org_id: str, membership_id: int, session: AsyncSession) -> dict:
    membership = await _get_membership_in_org(org_id, membership_id, session)
    return expose_membership(membership)


async def update_membership(
    org_id: str,
    membership_id: int,
    req: MembershipUpdateRequest,
    session: AsyncSession,
) -> dict:
    """Change a membership's role. The sole OWNER cannot be demoted.

    An update that does not ask for OWNER counts as a demotion, including one
    that names no role at all.
    """
    membership = await _get_membership_in_org(org_id, membership_id, session, lock=True)

    if (
        membership.role == MembershipRole.OWNER.value
        and req.role != MembershipRole.OWNER
    ):
        other_owners = await _count_owners(org_id, session, exclude_id=membership.id)
        if not other_owners:
            raise APIError(CANNOT_UPDATE_ROLE_SOLE_OWNER)

    if req.role is not None:
        membership.role = req.role.value
    session.add(membership)
    await session.flush()
    await session.refresh(membership)

    log.info(
        "membership.updated",
        membership_id=membership.id,
        organization_id=org_id,
        role=membership.role,
    )
    return expose_membership(membership)


async def delete_membership(org_id: str, membership_id: int, session: AsyncSession) -> dict:
    """Remove a membership unless it is the last member or the last OWNER."""
    membership = await _get_membership_in_org(org_id, membership_id, session, lock=True)
    await verify_delete_membership(membership.organization_id, membership_id, session)

    snapshot = expose_membership(membership)
    await session.delete(membership)
    await session.flush()

    log.info("membership.deleted", membership_id=membership_id, organization_id=org_id)
    return snapshot


async def verify_delete_membership(
    org_id: str, membership_id: int, session: AsyncSession
) -> None:
    """Raise unless the membership can be removed from the organization."""
    result = await session.execute(
        select(Membership).where(Membership.organization_id == org_id)
    )
    memberships = list(result.scalars().all())
    if len(memberships) == 1:
        raise APIError(CANNOT_DELETE_SOLE_MEMBER)

    membership = await _find_membership(membership_id, session)
    if not membership:
        raise APIError(MEMBERSHIP_NOT_FOUND)

    owners = [m for m in memberships if m.role == MembershipRole.OWNER.value]
    if membership.role == MembershipRole.OWNER.value and len(owners) == 1:
        raise APIError(CANNOT_DELETE_SOLE_OWNER)
