"""Organization membership (user <-> organization, with a role)."""

from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from teamspace_shared.schemas.common import DEFAULT_MEMBERSHIP_ROLE

from .base import TimestampMixin


class Membership(TimestampMixin, SQLModel, table=True):
    __tablename__ = "memberships"
    __table_args__ = (
        sa.UniqueConstraint("organization_id", "user_id", name="uq_membership_org_user"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    organization_id: str = Field(foreign_key="organizations.id", nullable=False, index=True)
    user_id: str = Field(foreign_key="users.id", nullable=False, index=True)
    role: str = Field(nullable=False, default=DEFAULT_MEMBERSHIP_ROLE.value)  # OWNER | ADMIN | MEMBER
