"""Stream deck endpoints - plain text for the caller's running playthrough."""

from fastapi import APIRouter, Depends, Query
from fastapi.responses import PlainTextResponse
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_picker.api.deps import require_user
from challenge_picker.core.clock import Clock, get_clock
from challenge_picker.db.database import get_db
from challenge_picker.models.playthrough import Playthrough
from challenge_picker.services.playthrough_service import playthrough_service
from challenge_picker.services.stream_deck_service import stream_deck_service

router = APIRouter(default_response_class=PlainTextResponse)


async def _running(db: AsyncSession, user_id: str) -> Playthrough | None:
    playthrough = await playthrough_service.find_unfinished(db, user_id)
    if playthrough is None or not playthrough.is_running:
        return None
    return playthrough


@router.get("/timer")
async def timer_display(
    index: int = Query(1),
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    return stream_deck_service.timer_text(await _running(db, user_id), index, clock.now())


@router.get("/counter")
async def counter_display(
    index: int = Query(1),
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return stream_deck_service.counter_text(await _running(db, user_id), index)


@router.get("/status")
async def status_display(user_id: str = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return stream_deck_service.status_text(await _running(db, user_id))


@router.get("/rules")
async def rules_display(user_id: str = Depends(require_user), db: AsyncSession = Depends(get_db)):
    return stream_deck_service.rules_text(await _running(db, user_id))
