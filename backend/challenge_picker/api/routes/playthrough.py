"""Caller-scoped playthrough endpoints - dashboard, current and past sessions, counters, privacy."""

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_picker.api.deps import get_caller_id, require_user
from challenge_picker.core.clock import Clock, get_clock
from challenge_picker.core.playthrough_lock import get_playthrough_locks
from challenge_picker.db.database import get_db
from challenge_picker.schemas.dashboard import DashboardResponse
from challenge_picker.schemas.playthrough import (
    CompletedPlaythroughsResponse,
    CounterChangeResponse,
    PlaythroughDetail,
    PrivacyRequest,
)
from challenge_picker.services.activation_service import activation_service
from challenge_picker.services.dashboard_service import dashboard_service
from challenge_picker.services.playthrough_service import playthrough_service

router = APIRouter()


@router.get("/active", response_model=PlaythroughDetail)
async def get_my_playthrough(user_id: str = Depends(require_user), db: AsyncSession = Depends(get_db)):
    """The caller's current (setup, active or paused) playthrough."""
    playthrough = await playthrough_service.get_unfinished(db, user_id)
    return playthrough_service.detail(playthrough)


@router.get("/completed", response_model=CompletedPlaythroughsResponse)
async def list_completed_playthroughs(user_id: str = Depends(require_user), db: AsyncSession = Depends(get_db)):
    """The caller's finished runs, most recent first."""
    playthroughs = await playthrough_service.list_completed(db, user_id)
    return CompletedPlaythroughsResponse(playthroughs=[playthrough_service.summarize(p) for p in playthroughs])


@router.get("/{playthrough_id}/dashboard", response_model=DashboardResponse)
async def get_dashboard(
    playthrough_id: str,
    caller_id: str | None = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    """Live view: summary, active rules with countdowns, pick and queue status."""
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        playthrough_service.check_can_view(playthrough, caller_id)
        now = clock.now()
        if dashboard_service.refresh(playthrough, now):
            await db.commit()
    return dashboard_service.build(playthrough, caller_id, now)


@router.patch("/privacy", response_model=PlaythroughDetail)
async def update_privacy(
    req: PrivacyRequest,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    locks=Depends(get_playthrough_locks),
):
    """Require viewers to be logged in (or not) on the caller's current session."""
    current = await playthrough_service.get_unfinished(db, user_id)
    async with locks.hold(current.id):
        playthrough = await playthrough_service.get(db, current.id)
        playthrough_service.set_privacy(playthrough, user_id, req.require_auth)
        await db.commit()
    return playthrough_service.detail(playthrough)


async def _change_counter(action: str, index: int, amount: int, user_id: str, db: AsyncSession, clock: Clock, locks):
    current = await playthrough_service.get_running(db, user_id)
    async with locks.hold(current.id):
        playthrough = await playthrough_service.get(db, current.id)
        result = getattr(activation_service, action)(playthrough, index, amount, clock.now())
        await db.commit()
    return result


@router.post("/counters/decrement", response_model=CounterChangeResponse)
async def decrement_counter(
    index: int = Query(1),
    amount: int = Query(1, ge=1),
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    """Count down the Nth active counter rule; reaching 0 completes it."""
    return await _change_counter("decrement", index, amount, user_id, db, clock, locks)


@router.post("/counters/increment", response_model=CounterChangeResponse)
async def increment_counter(
    index: int = Query(1),
    amount: int = Query(1, ge=1),
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    return await _change_counter("increment", index, amount, user_id, db, clock, locks)
