# SQLModel definitions, imported here to ensure metadata is populated for Alembic.
from .base import UUIDMixin, TimestampMixin  # noqa: F401
from .user import User  # noqa: F401
from .organization import Organization  # noqa: F401
from .team import Team  # noqa: F401
from .project import Project  # noqa: F401
from .membership import OrganizationUser, TeamUser, ProjectUser  # noqa: F401
