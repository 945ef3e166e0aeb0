"""ORM model registry. Importing it registers every model for Alembic autogenerate."""

from blog_api.models.base import Base
from blog_api.models.draft_access_log import DraftAccessLog
from blog_api.models.login_attempt import LoginAttempt
from blog_api.models.one_time_token import OneTimeToken, OneTimeTokenType
from blog_api.models.post import Post
from blog_api.models.rbac import Permission, Role, role_permissions, user_roles
from blog_api.models.refresh_token import RefreshToken
from blog_api.models.user import User

__all__ = [
    "Base",
    "DraftAccessLog",
    "LoginAttempt",
    "OneTimeToken",
    "OneTimeTokenType",
    "Permission",
    "Post",
    "RefreshToken",
    "Role",
    "User",
    "role_permissions",
    "user_roles",
]
