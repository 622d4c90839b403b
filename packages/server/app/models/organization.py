"""Organization model."""

from typing import Optional

from sqlmodel import Field, SQLModel

from .base import StringIDMixin, TimestampMixin


class Organization(StringIDMixin, TimestampMixin, SQLModel, table=True):
    __tablename__ = "organizations"

    name: str = Field(nullable=False, index=True)
    profile_picture_url: Optional[str] = Field(default=None, max_length=2048)
