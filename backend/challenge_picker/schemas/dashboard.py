"""Dashboard view model - what host, viewer and overlay clients poll."""

from datetime import datetime

from challenge_picker.schemas.common import CamelModel
from challenge_picker.schemas.playthrough import PlaythroughSummary


class ActiveRuleView(CamelModel):
    id: int
    rule_id: int
    rule_name: str
    rule_type: str
    behavior_type: str  # permanent / time / counter / hybrid
    difficulty_level: int | None = None
    is_default: bool
    started_at: datetime | None = None
    expires_at: datetime | None = None
    time_remaining: int | None = None  # seconds, frozen while paused
    duration_seconds: int | None = None
    current_amount: int | None = None
    initial_amount: int | None = None


class PickStatus(CamelModel):
    """Host-only pick eligibility summary."""
    can_pick: bool
    rate_limit_seconds: float
    cooldown_rule_ids: list[int]
    available_rules_count: int
    message: str


class QueueEntryView(CamelModel):
    id: int
    rule_id: int
    rule_name: str
    difficulty_level: int
    position: int
    queued_at: datetime
    queued_by_user: str | None = None
    eta_seconds: int


class QueueStatus(CamelModel):
    depth: int
    next_position: int
    has_capacity: bool
    active_count: int
    max_concurrent_rules: int
    entries: list[QueueEntryView] = []


class DashboardResponse(CamelModel):
    playthrough: PlaythroughSummary
    active_rules: list[ActiveRuleView]
    pick_status: PickStatus | None = None
    queue_status: QueueStatus
    is_host: bool
