"""
Account lookup and signup for invitations.

Invitations look users up by any of their email addresses and provision a
new account when none matches.
"""

from __future__ import annotations

from typing import Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession
from sqlmodel import select

from app.models.email import Email
from app.models.user import User

log = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


async def find_user_by_email(email: str, session: AsyncSession) -> Optional[User]:
    """Find the user owning ``email`` among all of their addresses."""
    result = await session.execute(
        select(User)
        .join(Email, Email.user_id == User.id)
        .where(Email.email == normalize_email(email))
    )
    return result.scalars().first()


async def signup(
    session: AsyncSession,
    *,
    ip_address: str,
    email: str,
    name: Optional[str] = None,
) -> User:
    """Provision a new user account with a single, unverified email."""
    user = User(name=name, signup_ip_address=ip_address)
    session.add(user)
    await session.flush()

    session.add(Email(email=normalize_email(email), user_id=user.id))
    await session.flush()

    log.info("user.signed_up", user_id=user.id, ip_address=ip_address)
    return user
