"""DraftAccessLog model: append-only record of non-author draft access.

``post_id`` and ``accessed_by`` are plain UUIDs without foreign keys so
the trail outlives the post and the user it describes.
"""

import uuid
from datetime import datetime

from sqlalchemy import DateTime, String, Text, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column

from blog_api.models.base import Base, UUIDMixin


class DraftAccessLog(Base, UUIDMixin):
    """Immutable record of a shared or public draft being accessed. Write-only."""

    __tablename__ = "draft_access_logs"

    post_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    accessed_by: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False, index=True)
    access_type: Mapped[str] = mapped_column(String(20), nullable=False)
    access_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
        index=True,
    )
