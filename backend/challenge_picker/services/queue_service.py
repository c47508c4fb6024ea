"""Queue service - picks deferred by the concurrency cap.

Entries are processed oldest-first whenever a slot is free. A rule that is
still active or on cooldown keeps its entry pending and the next entry is
tried; an entry whose rule can no longer be activated is marked failed with
the reason. Entries always end up processed or failed, never deleted.
"""

import math
from datetime import datetime

import structlog

from challenge_picker.config import settings
from challenge_picker.core.activation import activate_rule, resolve_rule
from challenge_picker.core.timers import (
    active_non_default_count,
    active_states,
    cooldown_remaining,
    find_active_state,
    has_capacity,
    time_remaining,
)
from challenge_picker.errors import NotFound, ValidationError
from challenge_picker.models.playthrough import STATUS_ACTIVE, Playthrough
from challenge_picker.models.queue_entry import QUEUE_PENDING, QueueEntry
from challenge_picker.schemas.configuration import RulesetConfiguration
from challenge_picker.schemas.dashboard import QueueEntryView, QueueStatus
from challenge_picker.services.catalog_service import catalog_service

log = structlog.get_logger(__name__)

SESSION_ENDED_REASON = "session ended"

# Rough guesses used when no timer tells us when a slot frees up
COUNTER_SECONDS_PER_UNIT = 30
NEARLY_DONE_COUNTER = 3
UNKNOWN_ACTIVE_ETA = 300
FULL_WITHOUT_TIMERS_ETA = 60


class QueueService:
    @staticmethod
    def pending_entries(playthrough: Playthrough) -> list[QueueEntry]:
        return sorted((e for e in playthrough.queue_entries if e.is_pending), key=lambda e: e.position)

    @staticmethod
    def next_position(playthrough: Playthrough) -> int:
        return max((e.position for e in playthrough.queue_entries), default=0) + 1

    def enqueue(
        self,
        playthrough: Playthrough,
        rule_id: int,
        difficulty_level: int,
        queued_by_user: str | None,
        now: datetime,
    ) -> QueueEntry:
        entry = QueueEntry(
            rule_id=rule_id,
            difficulty_level=difficulty_level,
            position=self.next_position(playthrough),
            queued_at=now,
            queued_by_user=queued_by_user,
            status=QUEUE_PENDING,
        )
        playthrough.queue_entries.append(entry)
        log.info(
            "pick_queued",
            playthrough_id=playthrough.id,
            rule_id=rule_id,
            position=entry.position,
            queued_by=queued_by_user,
        )
        return entry

    def process_queue(self, playthrough: Playthrough, now: datetime) -> list[QueueEntry]:
        """Activate pending entries while slots are free. Returns the entries activated."""
        if playthrough.status != STATUS_ACTIVE:
            return []

        configuration = RulesetConfiguration.from_snapshot(playthrough.configuration)
        activated = []
        for entry in self.pending_entries(playthrough):
            if not has_capacity(playthrough):
                break
            if find_active_state(playthrough, entry.rule_id) or cooldown_remaining(playthrough, entry.rule_id, now) > 0:
                continue

            try:
                rule, level = resolve_rule(catalog_service, configuration, entry.rule_id, entry.difficulty_level)
            except (NotFound, ValidationError) as exc:
                entry.mark_failed(now, exc.message)
                log.warning(
                    "queue_entry_failed",
                    playthrough_id=playthrough.id,
                    queue_entry_id=entry.id,
                    rule_id=entry.rule_id,
                    reason=exc.message,
                )
                continue

            activate_rule(playthrough, rule, level, now)
            entry.mark_processed(now)
            activated.append(entry)
            log.info(
                "queue_entry_processed",
                playthrough_id=playthrough.id,
                queue_entry_id=entry.id,
                rule_id=entry.rule_id,
                position=entry.position,
            )
        return activated

    def fail_pending(self, playthrough: Playthrough, now: datetime, reason: str = SESSION_ENDED_REASON) -> int:
        pending = self.pending_entries(playthrough)
        for entry in pending:
            entry.mark_failed(now, reason)
        if pending:
            log.info("queue_entries_closed", playthrough_id=playthrough.id, count=len(pending), reason=reason)
        return len(pending)

    def calculate_eta(self, playthrough: Playthrough, entry: QueueEntry, now: datetime) -> int:
        """Estimated seconds until ``entry`` activates.

        If the same rule is active: its remaining time plus the cooldown. If
        it is cooling down: the remaining cooldown. Otherwise one rate-limit
        window per entry ahead of it, pushed back to the next timer expiry when
        every slot is taken.
        """
        cooldown = playthrough.rule_cooldown_seconds

        same_rule = find_active_state(playthrough, entry.rule_id)
        if same_rule is not None:
            remaining = time_remaining(same_rule, playthrough, now)
            if remaining is not None:
                return math.ceil(remaining) + cooldown
            if same_rule.current_amount is not None and same_rule.current_amount <= NEARLY_DONE_COUNTER:
                return same_rule.current_amount * COUNTER_SECONDS_PER_UNIT + cooldown
            return UNKNOWN_ACTIVE_ETA

        cooling = cooldown_remaining(playthrough, entry.rule_id, now)
        if cooling > 0:
            return math.ceil(cooling)

        pending_ids = [e.id for e in self.pending_entries(playthrough)]
        ahead = pending_ids.index(entry.id) if entry.id in pending_ids else len(pending_ids)
        eta = ahead * settings.PICK_RATE_LIMIT_SECONDS

        if not has_capacity(playthrough):
            timers = [
                time_remaining(s, playthrough, now)
                for s in active_states(playthrough)
                if not s.is_default and s.expires_at is not None and s.current_amount is None
            ]
            timers = [t for t in timers if t > 0]
            if timers:
                eta = max(eta, min(timers))
            else:
                eta += FULL_WITHOUT_TIMERS_ETA

        return max(0, math.ceil(eta))

    def queue_status(self, playthrough: Playthrough, now: datetime) -> QueueStatus:
        pending = self.pending_entries(playthrough)
        return QueueStatus(
            depth=len(pending),
            next_position=self.next_position(playthrough),
            has_capacity=has_capacity(playthrough),
            active_count=active_non_default_count(playthrough),
            max_concurrent_rules=playthrough.max_concurrent_rules,
            entries=[
                QueueEntryView(
                    id=entry.id,
                    rule_id=entry.rule_id,
                    rule_name=catalog_service.rule_name(entry.rule_id),
                    difficulty_level=entry.difficulty_level,
                    position=entry.position,
                    queued_at=entry.queued_at,
                    queued_by_user=entry.queued_by_user,
                    eta_seconds=self.calculate_eta(playthrough, entry, now),
                )
                for entry in pending
            ],
        )


queue_service = QueueService()
