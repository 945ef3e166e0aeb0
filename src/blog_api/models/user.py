"""User model for authentication and role-based access control."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import DateTime, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from blog_api.models.base import Base, TimestampMixin, UUIDMixin
from blog_api.models.rbac import user_roles

if TYPE_CHECKING:
    from blog_api.models.rbac import Role


class User(Base, UUIDMixin, TimestampMixin):
    """Registered account. Holds one or more roles."""

    __tablename__ = "users"

    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False, index=True)
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    hashed_password: Mapped[str] = mapped_column(String(255), nullable=False)
    email_verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    roles: Mapped[list["Role"]] = relationship(secondary=user_roles, lazy="raise", passive_deletes=True)
