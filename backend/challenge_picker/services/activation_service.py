"""Activation service - picking rules and driving counter rules.

A pick is checked in this order: session running, caller allowed, rule and
difficulty level valid, global rate limit, per-rule cooldown. If every slot is
taken the pick is queued instead of rejected.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_picker.config import settings
from challenge_picker.core.activation import activate_rule, resolve_rule
from challenge_picker.core.reconcile import reconcile
from challenge_picker.core.timers import (
    active_states,
    activation_key,
    cooldown_remaining,
    find_active_state,
    has_capacity,
    rate_limit_remaining,
)
from challenge_picker.errors import (
    AuthRequired,
    ConcurrencyLimitReached,
    Forbidden,
    InvalidTransition,
    NotFound,
    RateLimited,
    RuleOnCooldown,
    ValidationError,
)
from challenge_picker.models.playthrough import STATUS_ACTIVE, Playthrough
from challenge_picker.models.queue_entry import QueueEntry
from challenge_picker.models.rule_state import PlaythroughRuleState
from challenge_picker.schemas.catalog import Rule
from challenge_picker.schemas.playthrough import CounterChangeResponse
from challenge_picker.services.catalog_service import catalog_service
from challenge_picker.services.playthrough_service import playthrough_service
from challenge_picker.services.queue_service import queue_service

log = structlog.get_logger(__name__)


@dataclass
class PickOutcome:
    rule: Rule
    difficulty_level: int
    state: PlaythroughRuleState | None = None
    queue_entry: QueueEntry | None = None
    eta_seconds: int | None = None

    @property
    def queued(self) -> bool:
        return self.queue_entry is not None


class ActivationService:
    @staticmethod
    def check_pick_permission(playthrough: Playthrough, caller_id: str | None) -> None:
        if playthrough.is_owner(caller_id):
            return
        if caller_id is None and playthrough.require_auth:
            raise AuthRequired("Log in to pick rules in this session")
        if not playthrough.allow_viewer_picks:
            raise Forbidden("Viewer picks are disabled for this session")

    async def pick_rule(
        self,
        db: AsyncSession,
        playthrough: Playthrough,
        caller_id: str | None,
        rule_id: int,
        difficulty_level: int,
        now: datetime,
    ) -> PickOutcome:
        if playthrough.status != STATUS_ACTIVE:
            raise InvalidTransition("Session must be active to pick rules", status=playthrough.status)
        self.check_pick_permission(playthrough, caller_id)

        configuration = playthrough_service.configuration(playthrough)
        rule, level = resolve_rule(catalog_service, configuration, rule_id, difficulty_level)

        wait = rate_limit_remaining(playthrough, now, settings.PICK_RATE_LIMIT_SECONDS)
        if wait > 0:
            raise RateLimited(round(wait, 2))

        # Expired timers and elapsed cooldowns must not block this pick
        reconcile(playthrough, now)
        queue_service.process_queue(playthrough, now)

        cooling = cooldown_remaining(playthrough, rule.id, now)
        if cooling > 0:
            raise RuleOnCooldown(rule.id, math.ceil(cooling))

        playthrough.last_pick_at = now

        if find_active_state(playthrough, rule.id) is None and not has_capacity(playthrough):
            entry = queue_service.enqueue(playthrough, rule.id, level.level, caller_id, now)
            await db.flush()
            return PickOutcome(
                rule=rule,
                difficulty_level=level.level,
                queue_entry=entry,
                eta_seconds=queue_service.calculate_eta(playthrough, entry, now),
            )

        state = activate_rule(playthrough, rule, level, now)
        await db.flush()
        log.info(
            "rule_picked",
            playthrough_id=playthrough.id,
            rule_id=rule.id,
            difficulty_level=level.level,
            behavior_type=state.behavior_type,
            picked_by=caller_id,
        )
        return PickOutcome(rule=rule, difficulty_level=level.level, state=state)

    # ------------------------------------------------------------------
    # Counters, addressed by 1-based position among active counter rules
    # ------------------------------------------------------------------

    @staticmethod
    def _active_counters(playthrough: Playthrough) -> list[PlaythroughRuleState]:
        return [s for s in active_states(playthrough) if s.current_amount is not None]

    @staticmethod
    def _finished_counters(playthrough: Playthrough) -> list[PlaythroughRuleState]:
        """Counter rules completed at zero that are still the latest state for their rule."""
        latest: dict[int, PlaythroughRuleState] = {}
        for state in sorted(playthrough.rule_states, key=activation_key):
            latest[state.rule_id] = state
        return sorted(
            (s for s in latest.values() if not s.is_active and s.current_amount == 0),
            key=activation_key,
        )

    @staticmethod
    def _require_active(playthrough: Playthrough) -> None:
        if playthrough.status != STATUS_ACTIVE:
            raise InvalidTransition("Counters can only change while the session is active", status=playthrough.status)

    @staticmethod
    def _select(candidates: list[PlaythroughRuleState], index: int) -> PlaythroughRuleState:
        if index < 1:
            raise ValidationError("Index must be 1 or greater", code="INVALID_INDEX")
        if not candidates:
            raise NotFound("No active counter rules", code="NO_COUNTER_RULES")
        if index > len(candidates):
            raise NotFound(
                f"Counter index {index} is out of range (1-{len(candidates)})", code="INDEX_OUT_OF_RANGE"
            )
        return candidates[index - 1]

    def decrement(self, playthrough: Playthrough, index: int, amount: int, now: datetime) -> CounterChangeResponse:
        self._require_active(playthrough)
        reconcile(playthrough, now)
        state = self._select(self._active_counters(playthrough), index)

        previous = state.current_amount
        state.current_amount = max(0, previous - amount)
        completed = state.current_amount == 0
        if completed:
            state.complete(now)

        log.info(
            "counter_changed",
            playthrough_id=playthrough.id,
            rule_id=state.rule_id,
            previous_amount=previous,
            current_amount=state.current_amount,
            completed=completed,
        )
        return CounterChangeResponse(
            rule_id=state.rule_id,
            rule_name=catalog_service.rule_name(state.rule_id),
            previous_amount=previous,
            current_amount=state.current_amount,
            completed=completed,
        )

    def increment(self, playthrough: Playthrough, index: int, amount: int, now: datetime) -> CounterChangeResponse:
        """Add to a counter. Indexes past the active counters reach finished ones, which come back."""
        self._require_active(playthrough)
        reconcile(playthrough, now)
        candidates = self._active_counters(playthrough) + self._finished_counters(playthrough)
        state = self._select(candidates, index)

        reactivated = False
        if not state.is_active:
            if not state.is_default and not has_capacity(playthrough):
                raise ConcurrencyLimitReached(
                    f"Maximum concurrent rules reached ({playthrough.max_concurrent_rules})"
                )
            state.activate(now)
            if state.duration_seconds:
                state.expires_at = now + timedelta(seconds=state.duration_seconds)
            reactivated = True

        previous = state.current_amount
        state.current_amount = previous + amount

        log.info(
            "counter_changed",
            playthrough_id=playthrough.id,
            rule_id=state.rule_id,
            previous_amount=previous,
            current_amount=state.current_amount,
            reactivated=reactivated,
        )
        return CounterChangeResponse(
            rule_id=state.rule_id,
            rule_name=catalog_service.rule_name(state.rule_id),
            previous_amount=previous,
            current_amount=state.current_amount,
            completed=False,
            reactivated=reactivated,
        )


activation_service = ActivationService()
