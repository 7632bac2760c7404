"""
Activity log sink -- best-effort, append-only record of API usage.

A failure to write an activity row is logged and never surfaces to the
caller.  The row is written in its own session so a failed request does not
roll it back and a failed log write does not roll back the request.
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol
from uuid import UUID

from sqlalchemy import DateTime, Index, String
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Mapped, Session, mapped_column, sessionmaker

from procure_kernel.db.base import Base
from procure_kernel.logging_config import get_logger

logger = get_logger("services.activity_log")


class ActivityLogModel(Base):
    """One API call."""

    __tablename__ = "activity_logs"

    __table_args__ = (
        Index("idx_activity_user", "user_id"),
    )

    user_id: Mapped[UUID]
    endpoint_name: Mapped[str] = mapped_column(String(100), nullable=False)
    http_method: Mapped[str] = mapped_column(String(10), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class ActivityLogSink(Protocol):
    def record(
        self,
        user_id: UUID,
        endpoint_name: str,
        http_method: str,
        timestamp: datetime,
    ) -> None: ...


class SqlActivityLog:
    """Activity sink backed by the ``activity_logs`` table."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._session_factory = session_factory

    def record(
        self,
        user_id: UUID,
        endpoint_name: str,
        http_method: str,
        timestamp: datetime,
    ) -> None:
        session = self._session_factory()
        try:
            session.add(ActivityLogModel(
                user_id=user_id,
                endpoint_name=endpoint_name,
                http_method=http_method,
                timestamp=timestamp,
            ))
            session.commit()
        except SQLAlchemyError:
            session.rollback()
            logger.warning("activity_log_write_failed", exc_info=True, extra={
                "user_id": str(user_id),
                "endpoint_name": endpoint_name,
            })
        finally:
            session.close()
