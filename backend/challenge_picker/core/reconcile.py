"""Reconcile - idempotent housekeeping over a playthrough aggregate.

``reconcile(playthrough, now)`` brings the in-memory aggregate up to date:

1. active timed rules whose ``expires_at`` has passed are completed
   (only while the session is running, never while paused);
2. counter rules at or below zero are completed;
3. duplicate active states for the same rule are collapsed, keeping the
   earliest-activated one;
4. elapsed per-rule cooldowns are dropped.

It performs no I/O. Callers (dashboard reads, the background sweep) flush the
session afterwards; nothing is written when the report is empty. Running it
twice with the same ``now`` is a no-op the second time.
"""

from dataclasses import dataclass, field
from datetime import datetime

from challenge_picker.core.timers import active_states
from challenge_picker.models.playthrough import STATUS_ACTIVE, Playthrough


@dataclass
class ReconcileReport:
    expired: list[int] = field(default_factory=list)
    exhausted: list[int] = field(default_factory=list)
    duplicates: list[int] = field(default_factory=list)
    cooldowns_cleared: list[int] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.expired or self.exhausted or self.duplicates or self.cooldowns_cleared)


def reconcile(playthrough: Playthrough, now: datetime) -> ReconcileReport:
    report = ReconcileReport()

    for state in active_states(playthrough):
        if playthrough.status == STATUS_ACTIVE and state.expires_at is not None and state.expires_at < now:
            state.complete(now)
            report.expired.append(state.rule_id)
        elif state.current_amount is not None and state.current_amount <= 0:
            state.current_amount = 0
            state.complete(now)
            report.exhausted.append(state.rule_id)

    seen: set[int] = set()
    for state in active_states(playthrough):
        if state.rule_id in seen:
            state.complete(now)
            report.duplicates.append(state.rule_id)
        else:
            seen.add(state.rule_id)

    cooldowns = playthrough.cooldowns or {}
    kept = {}
    for rule_id, started in cooldowns.items():
        elapsed = (now - datetime.fromisoformat(started)).total_seconds()
        if elapsed < playthrough.rule_cooldown_seconds:
            kept[rule_id] = started
        else:
            report.cooldowns_cleared.append(int(rule_id))
    if report.cooldowns_cleared:
        playthrough.cooldowns = kept

    return report
