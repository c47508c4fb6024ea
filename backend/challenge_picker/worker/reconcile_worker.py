"""Reconcile worker - optional periodic sweep of running playthroughs.

Dashboard reads already reconcile lazily. The sweep covers sessions nobody
is watching so that expired rules and queued picks do not wait for the next
page load. Enabled by setting RECONCILE_INTERVAL_SECONDS above zero.
"""

import asyncio

import structlog
from sqlalchemy import select

from challenge_picker.config import settings
from challenge_picker.core.clock import Clock, clock
from challenge_picker.core.playthrough_lock import get_playthrough_locks
from challenge_picker.db.database import async_session
from challenge_picker.errors import PickerError
from challenge_picker.models.playthrough import STATUS_ACTIVE, STATUS_PAUSED, Playthrough
from challenge_picker.services.dashboard_service import dashboard_service
from challenge_picker.services.playthrough_service import playthrough_service

log = structlog.get_logger(__name__)


async def sweep_once(session_factory, clock: Clock, locks) -> int:
    """Reconcile every running playthrough once. Returns how many changed."""
    async with session_factory() as db:
        result = await db.execute(
            select(Playthrough.id).where(Playthrough.status.in_((STATUS_ACTIVE, STATUS_PAUSED)))
        )
        playthrough_ids = list(result.scalars().all())

    changed = 0
    for playthrough_id in playthrough_ids:
        try:
            async with locks.hold(playthrough_id):
                async with session_factory() as db:
                    playthrough = await playthrough_service.get(db, playthrough_id)
                    if dashboard_service.refresh(playthrough, clock.now()):
                        await db.commit()
                        changed += 1
        except PickerError as exc:
            # Lock contention or the session vanished; the next sweep retries
            log.warning("reconcile_sweep_skipped", playthrough_id=playthrough_id, code=exc.code)
        except Exception:
            log.error("reconcile_sweep_error", playthrough_id=playthrough_id, exc_info=True)
    return changed


async def reconcile_worker_loop():
    """Background loop started from the app lifespan."""
    interval = settings.RECONCILE_INTERVAL_SECONDS
    log.info("reconcile_worker_started", interval_seconds=interval)
    while True:
        try:
            changed = await sweep_once(async_session, clock, get_playthrough_locks())
            if changed:
                log.info("reconcile_sweep_completed", playthroughs_changed=changed)
        except Exception:
            log.error("reconcile_worker_error", exc_info=True)
        await asyncio.sleep(interval)
