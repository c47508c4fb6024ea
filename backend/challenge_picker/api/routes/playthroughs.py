"""Playthrough endpoints - create, inspect, configure, lifecycle and picks.

Every mutation runs under the playthrough's lock and commits before the lock
is released.
"""

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from challenge_picker.api.deps import get_caller_id, require_user
from challenge_picker.core.clock import Clock, get_clock
from challenge_picker.core.playthrough_lock import get_playthrough_locks
from challenge_picker.db.database import get_db
from challenge_picker.schemas.playthrough import (
    CreatePlaythroughRequest,
    PickRuleRequest,
    PickRuleResponse,
    PlaythroughDetail,
    PlaythroughFeedbackRequest,
    PlaythroughSummary,
    RuleFeedbackRequest,
    ToggleRuleResponse,
    UpdateMaxConcurrentRequest,
)
from challenge_picker.services.activation_service import activation_service
from challenge_picker.services.catalog_service import catalog_service
from challenge_picker.services.lifecycle_service import lifecycle_service
from challenge_picker.services.playthrough_service import playthrough_service

router = APIRouter()


@router.post("", response_model=PlaythroughDetail, status_code=201)
async def create_playthrough(
    req: CreatePlaythroughRequest,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
):
    """Create a session in setup status for the chosen game and ruleset."""
    playthrough = await playthrough_service.create(db, user_id, req, clock.now())
    await db.commit()
    return playthrough_service.detail(playthrough)


@router.get("/{playthrough_id}", response_model=PlaythroughDetail)
async def get_playthrough(
    playthrough_id: str,
    caller_id: str | None = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
):
    playthrough = await playthrough_service.get(db, playthrough_id)
    playthrough_service.check_can_view(playthrough, caller_id)
    return playthrough_service.detail(playthrough)


@router.put("/{playthrough_id}/max-concurrent", response_model=PlaythroughSummary)
async def update_max_concurrent(
    playthrough_id: str,
    req: UpdateMaxConcurrentRequest,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    locks=Depends(get_playthrough_locks),
):
    """Change the concurrency cap; only allowed during setup."""
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        playthrough_service.update_max_concurrent(playthrough, user_id, req.max_concurrent_rules)
        await db.commit()
    return playthrough_service.summarize(playthrough)


# --- Lifecycle ---


async def _transition(action: str, playthrough_id: str, user_id: str, db: AsyncSession, clock: Clock, locks):
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        getattr(lifecycle_service, action)(playthrough, user_id, clock.now())
        await db.commit()
    return playthrough_service.summarize(playthrough)


@router.put("/{playthrough_id}/start", response_model=PlaythroughSummary)
async def start_playthrough(
    playthrough_id: str,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    return await _transition("start", playthrough_id, user_id, db, clock, locks)


@router.put("/{playthrough_id}/pause", response_model=PlaythroughSummary)
async def pause_playthrough(
    playthrough_id: str,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    return await _transition("pause", playthrough_id, user_id, db, clock, locks)


@router.put("/{playthrough_id}/resume", response_model=PlaythroughSummary)
async def resume_playthrough(
    playthrough_id: str,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    return await _transition("resume", playthrough_id, user_id, db, clock, locks)


@router.put("/{playthrough_id}/end", response_model=PlaythroughSummary)
async def end_playthrough(
    playthrough_id: str,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    return await _transition("end", playthrough_id, user_id, db, clock, locks)


# --- Rules ---


@router.post("/{playthrough_id}/pick-rule", response_model=PickRuleResponse)
async def pick_rule(
    playthrough_id: str,
    req: PickRuleRequest,
    caller_id: str | None = Depends(get_caller_id),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    """Pick a rule: activates it, or queues it when every slot is taken."""
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        outcome = await activation_service.pick_rule(
            db, playthrough, caller_id, req.rule_id, req.difficulty_level, clock.now()
        )
        await db.commit()

    if outcome.queued:
        eta = outcome.eta_seconds
        return PickRuleResponse(
            status="queued",
            rule_id=outcome.rule.id,
            rule_name=outcome.rule.name,
            difficulty_level=outcome.difficulty_level,
            queue_entry_id=outcome.queue_entry.id,
            position=outcome.queue_entry.position,
            eta_seconds=eta,
            message=(
                f"Card queued! It will activate in approximately {eta} seconds."
                if eta > 0
                else "Card queued! It will activate shortly."
            ),
        )
    return PickRuleResponse(
        status="activated",
        id=outcome.state.id,
        rule_id=outcome.rule.id,
        rule_name=outcome.rule.name,
        difficulty_level=outcome.difficulty_level,
        message=f"{outcome.rule.name} is now active",
    )


@router.put("/{playthrough_id}/rules/{rule_id}/toggle", response_model=ToggleRuleResponse)
async def toggle_rule(
    playthrough_id: str,
    rule_id: int,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    clock: Clock = Depends(get_clock),
    locks=Depends(get_playthrough_locks),
):
    """Host switch for a configured rule, outside the pick flow."""
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        state = playthrough_service.toggle_rule(playthrough, user_id, rule_id, clock.now())
        await db.commit()
    return ToggleRuleResponse(
        rule_id=rule_id,
        rule_name=catalog_service.rule_name(rule_id),
        is_active=state is not None,
    )


# --- Post-run feedback ---


@router.put("/{playthrough_id}/feedback", response_model=PlaythroughSummary)
async def update_feedback(
    playthrough_id: str,
    req: PlaythroughFeedbackRequest,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    locks=Depends(get_playthrough_locks),
):
    """Did the host finish the run, and would they recommend the ruleset."""
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        playthrough_service.set_feedback(playthrough, user_id, req.finished_run, req.recommended)
        await db.commit()
    return playthrough_service.summarize(playthrough)


@router.put("/{playthrough_id}/rule-feedback", response_model=PlaythroughDetail)
async def update_rule_feedback(
    playthrough_id: str,
    req: RuleFeedbackRequest,
    user_id: str = Depends(require_user),
    db: AsyncSession = Depends(get_db),
    locks=Depends(get_playthrough_locks),
):
    async with locks.hold(playthrough_id):
        playthrough = await playthrough_service.get(db, playthrough_id)
        playthrough_service.set_rule_feedback(playthrough, user_id, req.rule_id, req.could_be_harder)
        await db.commit()
    return playthrough_service.detail(playthrough)
