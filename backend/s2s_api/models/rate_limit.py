"""Rate-limit counter buckets.

One row per ``(identifier, window_start, window_type)``. ``window_start`` is
stored as a naive UTC hour boundary so equality matches on every backend.
"""

from datetime import datetime

from sqlalchemy import DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from s2s_api.models.base import Base


WINDOW_API_KEY = "api_key"
WINDOW_IP = "ip"


class RateLimitRecord(Base):
    __tablename__ = "rate_limit_tracking"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    identifier: Mapped[str] = mapped_column(String(255), nullable=False)
    window_start: Mapped[datetime] = mapped_column(DateTime(timezone=False), nullable=False)
    window_type: Mapped[str] = mapped_column(String(20), nullable=False)
    request_count: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    __table_args__ = (
        UniqueConstraint(
            "identifier",
            "window_start",
            "window_type",
            name="uq_rate_limit_identifier_window",
        ),
        Index("ix_rate_limit_window_start", "window_start"),
    )
