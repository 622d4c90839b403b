# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import StringIDMixin, TimestampMixin  # noqa: F401
from .organization import Organization  # noqa: F401
from .user import User  # noqa: F401
from .email import Email  # noqa: F401
from .membership import Membership  # noqa: F401
