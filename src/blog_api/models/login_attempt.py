"""LoginAttempt model: per-username failure counter and lockout."""

from datetime import datetime

from sqlalchemy import DateTime, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from blog_api.models.base import Base


class LoginAttempt(Base):
    """Consecutive failed logins for a username. Deleted on successful login."""

    __tablename__ = "login_attempts"

    username: Mapped[str] = mapped_column(String(100), primary_key=True)
    failure_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lockout_expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    last_attempt_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
