"""Lifecycle service - host-driven start / pause / resume / end."""

from datetime import datetime

import structlog

from challenge_picker.core import lifecycle
from challenge_picker.core.reconcile import reconcile
from challenge_picker.models.playthrough import Playthrough
from challenge_picker.services.playthrough_service import playthrough_service
from challenge_picker.services.queue_service import queue_service

log = structlog.get_logger(__name__)


class LifecycleService:
    def start(self, playthrough: Playthrough, caller_id: str, now: datetime) -> None:
        playthrough_service.require_owner(playthrough, caller_id, "start")
        lifecycle.start(playthrough, playthrough_service.configuration(playthrough), now)
        log.info("playthrough_started", playthrough_id=playthrough.id)

    def pause(self, playthrough: Playthrough, caller_id: str, now: datetime) -> None:
        playthrough_service.require_owner(playthrough, caller_id, "pause")
        # Settle anything that already ran out before freezing the timers
        reconcile(playthrough, now)
        lifecycle.pause(playthrough, now)
        log.info("playthrough_paused", playthrough_id=playthrough.id)

    def resume(self, playthrough: Playthrough, caller_id: str, now: datetime) -> None:
        playthrough_service.require_owner(playthrough, caller_id, "resume")
        paused_for = lifecycle.resume(playthrough, now)
        log.info(
            "playthrough_resumed",
            playthrough_id=playthrough.id,
            paused_seconds=round(paused_for.total_seconds(), 3),
            total_paused_seconds=playthrough.total_paused_duration_seconds,
        )

    def end(self, playthrough: Playthrough, caller_id: str, now: datetime) -> None:
        playthrough_service.require_owner(playthrough, caller_id, "end")
        reconcile(playthrough, now)
        closed = lifecycle.end(playthrough, now)
        failed = queue_service.fail_pending(playthrough, now)
        log.info(
            "playthrough_ended",
            playthrough_id=playthrough.id,
            total_duration_seconds=playthrough.total_duration_seconds,
            total_paused_seconds=playthrough.total_paused_duration_seconds,
            rules_closed=len(closed),
            queue_entries_failed=failed,
        )


lifecycle_service = LifecycleService()
