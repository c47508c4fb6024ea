"""Queue entry model - a pick deferred because the concurrency cap was reached."""

from datetime import datetime, timezone

from sqlalchemy import ForeignKeyConstraint, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from challenge_picker.db.database import Base
from challenge_picker.db.types import UTCDateTime

QUEUE_PENDING = "pending"
QUEUE_PROCESSED = "processed"
QUEUE_FAILED = "failed"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class QueueEntry(Base):
    __tablename__ = "playthrough_rule_queue"

    id: Mapped[int] = mapped_column(primary_key=True)
    playthrough_id: Mapped[str] = mapped_column(String(36))
    owner_id: Mapped[str] = mapped_column(String(64))

    rule_id: Mapped[int] = mapped_column(Integer)
    difficulty_level: Mapped[int] = mapped_column(Integer)
    position: Mapped[int] = mapped_column(Integer)
    queued_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    queued_by_user: Mapped[str | None] = mapped_column(String(64), nullable=True)  # None = anonymous viewer

    status: Mapped[str] = mapped_column(String(20), default=QUEUE_PENDING)
    processed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    playthrough: Mapped["Playthrough"] = relationship(back_populates="queue_entries")

    __table_args__ = (
        ForeignKeyConstraint(
            ["playthrough_id", "owner_id"],
            ["playthroughs.id", "playthroughs.owner_id"],
            ondelete="CASCADE",
        ),
        Index("ix_queue_playthrough_status", "playthrough_id", "status"),
    )

    @property
    def is_pending(self) -> bool:
        return self.status == QUEUE_PENDING

    def mark_processed(self, now: datetime) -> None:
        self.status = QUEUE_PROCESSED
        self.processed_at = now

    def mark_failed(self, now: datetime, reason: str) -> None:
        self.status = QUEUE_FAILED
        self.processed_at = now
        self.failure_reason = reason
