"""Dashboard service - the read side host, viewers and overlays poll.

Every read first settles the aggregate (default rules, reconcile, queue) and
only then projects it, so expiry, cooldown clearance and queue draining
happen lazily on whoever polls next. Housekeeping never raises.
"""

import math
from datetime import datetime

import structlog

from challenge_picker.config import settings
from challenge_picker.core.lifecycle import ensure_default_states
from challenge_picker.core.reconcile import ReconcileReport, reconcile
from challenge_picker.core.timers import active_states, rate_limit_remaining, time_remaining
from challenge_picker.models.playthrough import STATUS_ACTIVE, STATUS_COMPLETED, Playthrough
from challenge_picker.schemas.dashboard import ActiveRuleView, DashboardResponse, PickStatus
from challenge_picker.services.catalog_service import catalog_service
from challenge_picker.services.playthrough_service import playthrough_service
from challenge_picker.services.queue_service import queue_service

log = structlog.get_logger(__name__)


class DashboardService:
    def refresh(self, playthrough: Playthrough, now: datetime) -> bool:
        """Settle the aggregate in memory. Returns True when something changed."""
        created = []
        if playthrough.status != STATUS_COMPLETED:
            created = ensure_default_states(playthrough, playthrough_service.configuration(playthrough), now)

        report = reconcile(playthrough, now)
        self._log_report(playthrough, report)

        activated = queue_service.process_queue(playthrough, now)
        return bool(created or report.changed or activated)

    @staticmethod
    def _log_report(playthrough: Playthrough, report: ReconcileReport) -> None:
        for rule_id in report.duplicates:
            log.warning("rule_state_duplicate_healed", playthrough_id=playthrough.id, rule_id=rule_id)
        if report.changed:
            log.info(
                "rule_states_reconciled",
                playthrough_id=playthrough.id,
                expired=report.expired,
                exhausted=report.exhausted,
                duplicates=report.duplicates,
                cooldowns_cleared=report.cooldowns_cleared,
            )

    def active_rule_views(self, playthrough: Playthrough, now: datetime) -> list[ActiveRuleView]:
        views = []
        for state in active_states(playthrough):
            rule = catalog_service.get_rule(state.rule_id)
            remaining = time_remaining(state, playthrough, now)
            views.append(
                ActiveRuleView(
                    id=state.id,
                    rule_id=state.rule_id,
                    rule_name=rule.name if rule else f"Rule #{state.rule_id}",
                    rule_type=rule.rule_type if rule else "basic",
                    behavior_type=state.behavior_type,
                    difficulty_level=state.difficulty_level,
                    is_default=state.is_default,
                    started_at=state.started_at,
                    expires_at=state.expires_at,
                    time_remaining=None if remaining is None else math.ceil(remaining),
                    duration_seconds=state.duration_seconds,
                    current_amount=state.current_amount,
                    initial_amount=state.initial_amount,
                )
            )
        return views

    @staticmethod
    def pick_status(playthrough: Playthrough, now: datetime) -> PickStatus:
        wait = rate_limit_remaining(playthrough, now, settings.PICK_RATE_LIMIT_SECONDS)
        cooling = playthrough.cooldown_rule_ids
        available = [
            r for r in playthrough_service.configuration(playthrough).pickable_rules
            if r.rule_id not in cooling
        ]
        if wait > 0:
            message = f"Wait {math.ceil(wait)}s"
        elif not available:
            message = "No rules available"
        else:
            message = "Ready to draw"
        return PickStatus(
            can_pick=wait == 0 and bool(available),
            rate_limit_seconds=round(wait, 2),
            cooldown_rule_ids=cooling,
            available_rules_count=len(available),
            message=message,
        )

    def build(self, playthrough: Playthrough, caller_id: str | None, now: datetime) -> DashboardResponse:
        is_host = playthrough.is_owner(caller_id)
        return DashboardResponse(
            playthrough=playthrough_service.summarize(playthrough),
            active_rules=self.active_rule_views(playthrough, now),
            pick_status=self.pick_status(playthrough, now) if is_host and playthrough.status == STATUS_ACTIVE else None,
            queue_status=queue_service.queue_status(playthrough, now),
            is_host=is_host,
        )


dashboard_service = DashboardService()
