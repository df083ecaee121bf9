"""Rate limit hit log (shared backend)."""
from datetime import datetime

from sqlalchemy import DateTime, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class RateLimitHit(Base):
    """One counted call of a rate-limited action."""

    __tablename__ = "rate_limit_hits"
    __table_args__ = (Index("ix_rate_limit_hits_key_at", "key", "hit_at"),)

    key: Mapped[str] = mapped_column(String(200), nullable=False)
    hit_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
