from sqlalchemy import Column, DateTime, String

from utils.time_utils import now_local


class TimestampMixin:
    """Mixin that provides created/updated timestamps and user info.

    Timestamps are timezone-aware and computed in the configured application
    timezone (see ``APP_TIMEZONE``).
    """
    created_at = Column(DateTime(timezone=True), default=now_local, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=now_local, onupdate=now_local)
    created_by = Column(String, nullable=True)
    updated_by = Column(String, nullable=True)
