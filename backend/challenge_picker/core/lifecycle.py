"""Lifecycle transitions - setup -> active <-> paused -> completed.

Each function validates the current status, mutates the aggregate in place
and raises ``InvalidTransition`` for anything else. Ownership is checked by
the calling service.
"""

from datetime import datetime, timedelta

from challenge_picker.core.activation import permanent_state
from challenge_picker.core.timers import active_states
from challenge_picker.errors import InvalidTransition
from challenge_picker.models.playthrough import (
    STATUS_ACTIVE,
    STATUS_COMPLETED,
    STATUS_PAUSED,
    STATUS_SETUP,
    Playthrough,
)
from challenge_picker.models.rule_state import PlaythroughRuleState
from challenge_picker.schemas.configuration import RulesetConfiguration


def _require_status(playthrough: Playthrough, action: str, *allowed: str) -> None:
    if playthrough.status not in allowed:
        raise InvalidTransition(
            f"Cannot {action} a playthrough in status '{playthrough.status}'",
            status=playthrough.status,
        )


def ensure_default_states(
    playthrough: Playthrough, configuration: RulesetConfiguration, now: datetime
) -> list[PlaythroughRuleState]:
    """Create active states for configured default rules that have none yet.

    A default rule that already has any state (even one the host switched
    off) is left alone.
    """
    existing = {s.rule_id for s in playthrough.rule_states}
    return [
        permanent_state(playthrough, rule.rule_id, is_default=True, now=now)
        for rule in configuration.default_rules
        if rule.rule_id not in existing
    ]


def start(playthrough: Playthrough, configuration: RulesetConfiguration, now: datetime) -> None:
    _require_status(playthrough, "start", STATUS_SETUP)
    playthrough.status = STATUS_ACTIVE
    playthrough.started_at = now
    ensure_default_states(playthrough, configuration, now)
    # States switched on during setup start running now
    for state in active_states(playthrough):
        if state.started_at is None:
            state.started_at = now


def pause(playthrough: Playthrough, now: datetime) -> None:
    _require_status(playthrough, "pause", STATUS_ACTIVE)
    playthrough.status = STATUS_PAUSED
    playthrough.paused_at = now


def resume(playthrough: Playthrough, now: datetime) -> timedelta:
    """Resume a paused session; returns the pause interval that was added."""
    _require_status(playthrough, "resume", STATUS_PAUSED)
    paused_for = max(now - playthrough.paused_at, timedelta(0))

    for state in active_states(playthrough):
        if state.expires_at is not None:
            state.expires_at = state.expires_at + paused_for

    playthrough.total_paused_duration_seconds = (
        playthrough.total_paused_duration_seconds or 0
    ) + round(paused_for.total_seconds())
    playthrough.status = STATUS_ACTIVE
    playthrough.paused_at = None
    return paused_for


def end(playthrough: Playthrough, now: datetime) -> list[PlaythroughRuleState]:
    """Complete the session and every still-active rule. Returns the rules closed."""
    _require_status(playthrough, "end", STATUS_ACTIVE, STATUS_PAUSED)

    if playthrough.status == STATUS_PAUSED and playthrough.paused_at is not None:
        ongoing_pause = max((now - playthrough.paused_at).total_seconds(), 0)
        playthrough.total_paused_duration_seconds = (
            playthrough.total_paused_duration_seconds or 0
        ) + round(ongoing_pause)
        playthrough.paused_at = None

    playthrough.status = STATUS_COMPLETED
    playthrough.ended_at = now
    elapsed = round((now - playthrough.started_at).total_seconds())
    playthrough.total_duration_seconds = max(0, elapsed - playthrough.total_paused_duration_seconds)

    closed = active_states(playthrough)
    for state in closed:
        state.complete(now)
    return closed
