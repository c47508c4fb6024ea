"""PlaythroughRuleState model - the activation record of a rule within a playthrough."""

from datetime import datetime, timezone

from sqlalchemy import Boolean, ForeignKeyConstraint, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from challenge_picker.db.database import Base
from challenge_picker.db.types import UTCDateTime

# Behavioral types, derived from expires_at / current_amount
TYPE_PERMANENT = "permanent"
TYPE_TIME = "time"
TYPE_COUNTER = "counter"
TYPE_HYBRID = "hybrid"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PlaythroughRuleState(Base):
    __tablename__ = "playthrough_rule_states"

    id: Mapped[int] = mapped_column(primary_key=True)
    playthrough_id: Mapped[str] = mapped_column(String(36))
    owner_id: Mapped[str] = mapped_column(String(64))

    rule_id: Mapped[int] = mapped_column(Integer)
    difficulty_level: Mapped[int | None] = mapped_column(Integer, nullable=True)
    is_default: Mapped[bool] = mapped_column(Boolean, default=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=False)
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)

    # Time-based / hybrid rules only
    expires_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Counter-based / hybrid rules only
    current_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    initial_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)

    playthrough: Mapped["Playthrough"] = relationship(back_populates="rule_states")

    __table_args__ = (
        ForeignKeyConstraint(
            ["playthrough_id", "owner_id"],
            ["playthroughs.id", "playthroughs.owner_id"],
            ondelete="CASCADE",
        ),
        Index("ix_rule_state_playthrough_active", "playthrough_id", "is_active"),
    )

    @property
    def behavior_type(self) -> str:
        if self.expires_at is not None and self.current_amount is not None:
            return TYPE_HYBRID
        if self.expires_at is not None:
            return TYPE_TIME
        if self.current_amount is not None:
            return TYPE_COUNTER
        return TYPE_PERMANENT

    @property
    def is_timed(self) -> bool:
        return self.expires_at is not None

    @property
    def is_counter(self) -> bool:
        return self.current_amount is not None

    def activate(self, now: datetime) -> None:
        self.is_active = True
        self.started_at = now
        self.completed_at = None

    def complete(self, now: datetime) -> None:
        """Mark inactive; history is kept rather than deleting the row."""
        self.is_active = False
        self.completed_at = now
