"""Time and capacity arithmetic over a playthrough aggregate.

Pure helpers: they read the in-memory aggregate and never touch the database.
"""

from datetime import datetime

from challenge_picker.models.playthrough import STATUS_PAUSED, Playthrough
from challenge_picker.models.rule_state import PlaythroughRuleState


def activation_key(state: PlaythroughRuleState):
    """Sort key ordering states by when they were activated.

    Default states created during setup have no ``started_at`` yet and fall
    back to their creation time. Unflushed rows (no id) sort last.
    """
    return (state.started_at or state.created_at, state.id is None, state.id or 0)


def active_states(playthrough: Playthrough) -> list[PlaythroughRuleState]:
    return sorted((s for s in playthrough.rule_states if s.is_active), key=activation_key)


def active_non_default_count(playthrough: Playthrough) -> int:
    return sum(1 for s in playthrough.rule_states if s.is_active and not s.is_default)


def has_capacity(playthrough: Playthrough) -> bool:
    return active_non_default_count(playthrough) < playthrough.max_concurrent_rules


def find_active_state(playthrough: Playthrough, rule_id: int) -> PlaythroughRuleState | None:
    for state in active_states(playthrough):
        if state.rule_id == rule_id:
            return state
    return None


def time_remaining(state: PlaythroughRuleState, playthrough: Playthrough, now: datetime) -> float | None:
    """Seconds left on a timed rule; frozen at the pause instant while paused."""
    if state.expires_at is None:
        return None
    reference = now
    if playthrough.status == STATUS_PAUSED and playthrough.paused_at is not None:
        reference = playthrough.paused_at
    return max(0.0, (state.expires_at - reference).total_seconds())


def rate_limit_remaining(playthrough: Playthrough, now: datetime, window_seconds: float) -> float:
    if playthrough.last_pick_at is None:
        return 0.0
    elapsed = (now - playthrough.last_pick_at).total_seconds()
    return max(0.0, window_seconds - elapsed)


def cooldown_remaining(playthrough: Playthrough, rule_id: int, now: datetime) -> float:
    started = (playthrough.cooldowns or {}).get(str(rule_id))
    if started is None:
        return 0.0
    elapsed = (now - datetime.fromisoformat(started)).total_seconds()
    return max(0.0, playthrough.rule_cooldown_seconds - elapsed)


def start_cooldown(playthrough: Playthrough, rule_id: int, now: datetime) -> None:
    # Reassign so SQLAlchemy sees the JSON column change
    cooldowns = dict(playthrough.cooldowns or {})
    cooldowns[str(rule_id)] = now.isoformat()
    playthrough.cooldowns = cooldowns
