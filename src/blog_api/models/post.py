"""Post model: the access-control columns the draft rules read and update.

Content columns (markdown body, rendered HTML, categories, tags) are owned
by the content layer and are not mapped here.
"""

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, false
from sqlalchemy.orm import Mapped, mapped_column

from blog_api.models.base import Base, TimestampMixin, UUIDMixin


class Post(Base, UUIDMixin, TimestampMixin):
    """Blog post. ``published_at`` is NULL while the post is a draft."""

    __tablename__ = "posts"

    slug: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    author_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("users.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    published_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    # User ids as strings; JSON keeps the column portable across PostgreSQL and SQLite.
    draft_shared_with: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    is_draft_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())
    is_banned: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default=false())

    @property
    def is_draft(self) -> bool:
        return self.published_at is None
