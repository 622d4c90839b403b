"""User model. Users are provisioned by signup; they may own several emails."""

from datetime import datetime, timezone
from typing import Optional

import sqlalchemy as sa
from sqlmodel import Field, SQLModel

from .base import StringIDMixin


class User(StringIDMixin, SQLModel, table=True):
    __tablename__ = "users"

    name: Optional[str] = None
    signup_ip_address: Optional[str] = Field(default=None, max_length=45)
    created_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        nullable=False,
        sa_column_kwargs={"server_default": sa.func.now()},
        sa_type=sa.DateTime(timezone=True),
    )
