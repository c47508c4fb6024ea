"""Playthrough model - one streaming session and its rule-engine bookkeeping."""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from challenge_picker.db.database import Base
from challenge_picker.db.types import UTCDateTime

STATUS_SETUP = "setup"
STATUS_ACTIVE = "active"
STATUS_PAUSED = "paused"
STATUS_COMPLETED = "completed"

# Statuses in which the user still "has" a session
UNFINISHED_STATUSES = (STATUS_SETUP, STATUS_ACTIVE, STATUS_PAUSED)


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Playthrough(Base):
    __tablename__ = "playthroughs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    owner_id: Mapped[str] = mapped_column(String(64), index=True)

    game_id: Mapped[int] = mapped_column(Integer)
    ruleset_id: Mapped[int] = mapped_column(Integer)

    status: Mapped[str] = mapped_column(String(20), default=STATUS_SETUP)
    max_concurrent_rules: Mapped[int] = mapped_column(Integer, default=3)
    rule_cooldown_seconds: Mapped[int] = mapped_column(Integer, default=120)

    # Snapshot of the ruleset at creation time, read via RulesetConfiguration
    configuration: Mapped[dict] = mapped_column(JSON, default=dict)

    # Picking bookkeeping
    last_pick_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    # {"<rule_id>": "<iso timestamp the cooldown started>"}
    cooldowns: Mapped[dict] = mapped_column(JSON, default=dict)

    # Session policy
    allow_viewer_picks: Mapped[bool] = mapped_column(Boolean, default=True)
    require_auth: Mapped[bool] = mapped_column(Boolean, default=False)

    # Timing
    started_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    paused_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    total_paused_duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    total_duration_seconds: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Post-run feedback from the host
    finished_run: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    recommended: Mapped[int | None] = mapped_column(Integer, nullable=True)  # -1, 0 or 1

    # Optimistic concurrency counter, bumped on every UPDATE
    version: Mapped[int] = mapped_column(Integer, nullable=False)

    created_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, default=_utcnow, onupdate=_utcnow)

    rule_states: Mapped[list["PlaythroughRuleState"]] = relationship(
        back_populates="playthrough",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="PlaythroughRuleState.id",
    )
    queue_entries: Mapped[list["QueueEntry"]] = relationship(
        back_populates="playthrough",
        cascade="all, delete-orphan",
        lazy="selectin",
        order_by="QueueEntry.position",
    )

    __table_args__ = (
        # Composite ownership key referenced by child records
        UniqueConstraint("id", "owner_id", name="uq_playthroughs_id_owner"),
    )
    __mapper_args__ = {"version_id_col": version}

    def is_owner(self, user_id: str | None) -> bool:
        return user_id is not None and user_id == self.owner_id

    @property
    def is_running(self) -> bool:
        return self.status in (STATUS_ACTIVE, STATUS_PAUSED)

    @property
    def cooldown_rule_ids(self) -> list[int]:
        return sorted(int(rule_id) for rule_id in (self.cooldowns or {}))
