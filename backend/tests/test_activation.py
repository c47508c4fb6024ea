"""Tests for picking rules and counter operations."""

from datetime import timedelta

import pytest

from conftest import HOST_ID, START
from challenge_picker.core.timers import active_non_default_count
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
from challenge_picker.services.activation_service import activation_service
from challenge_picker.services.lifecycle_service import lifecycle_service

VIEWER_ID = "viewer-1"


# ---------------------------------------------------------------------------
# Picking
# ---------------------------------------------------------------------------


async def test_pick_timed_rule(db, clock, active_playthrough):
    playthrough = await active_playthrough()

    outcome = await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 2, clock.now())

    state = outcome.state
    assert not outcome.queued
    assert state.id is not None
    assert state.is_active is True
    assert state.started_at == START
    assert state.expires_at == START + timedelta(seconds=600)
    assert state.current_amount is None
    assert state.behavior_type == "time"
    assert playthrough.last_pick_at == START
    assert playthrough.cooldown_rule_ids == [1]


async def test_pick_counter_and_hybrid_rules(db, clock, active_playthrough):
    playthrough = await active_playthrough()

    counter = await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())
    clock.advance(2)
    hybrid = await activation_service.pick_rule(db, playthrough, HOST_ID, 4, 1, clock.now())

    assert counter.state.behavior_type == "counter"
    assert counter.state.current_amount == 5
    assert hybrid.state.behavior_type == "hybrid"
    assert hybrid.state.current_amount == 3
    assert hybrid.state.expires_at == clock.now() + timedelta(seconds=600)


async def test_picks_half_a_second_apart_are_rate_limited(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())

    clock.advance(0.5)
    with pytest.raises(RateLimited) as exc_info:
        await activation_service.pick_rule(db, playthrough, HOST_ID, 3, 1, clock.now())

    assert exc_info.value.seconds_remaining == pytest.approx(1.5)
    assert exc_info.value.to_dict()["rateLimitSeconds"] == pytest.approx(1.5)


async def test_rule_on_cooldown_reports_remaining_wait(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    await activation_service.pick_rule(db, playthrough, HOST_ID, 6, 1, clock.now())

    clock.advance(10)
    with pytest.raises(RuleOnCooldown) as exc_info:
        await activation_service.pick_rule(db, playthrough, HOST_ID, 6, 1, clock.now())
    assert exc_info.value.to_dict()["cooldownSeconds"] == 110

    # Once the cooldown passes the rule can be picked again
    clock.advance(111)
    outcome = await activation_service.pick_rule(db, playthrough, HOST_ID, 6, 1, clock.now())
    assert outcome.state.is_active is True


async def test_repick_of_active_rule_restarts_it_in_place(db, clock, active_playthrough):
    playthrough = await active_playthrough(rule_cooldown_seconds=0)
    first = await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())

    clock.advance(50)
    second = await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 3, clock.now())

    assert second.state is first.state
    assert second.state.difficulty_level == 3
    assert second.state.expires_at == clock.now() + timedelta(seconds=900)
    assert [s.rule_id for s in playthrough.rule_states if s.is_active and not s.is_default] == [1]


async def test_full_slots_queue_the_pick(db, clock, active_playthrough):
    playthrough = await active_playthrough(max_concurrent_rules=1)
    await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())

    clock.advance(2)
    outcome = await activation_service.pick_rule(db, playthrough, VIEWER_ID, 3, 2, clock.now())

    assert outcome.queued
    assert outcome.state is None
    assert outcome.queue_entry.position == 1
    assert outcome.queue_entry.queued_by_user == VIEWER_ID
    assert outcome.queue_entry.difficulty_level == 2
    # Slots are full with a 300s timer that has 298s left
    assert outcome.eta_seconds == 298
    # Queued picks still count for the rate limit
    assert playthrough.last_pick_at == clock.now()


async def test_cap_is_never_exceeded(db, clock, active_playthrough):
    playthrough = await active_playthrough(max_concurrent_rules=2)
    for rule_id in (1, 2, 3, 4, 6, 7, 10):
        await activation_service.pick_rule(db, playthrough, HOST_ID, rule_id, 1, clock.now())
        assert active_non_default_count(playthrough) <= 2
        clock.advance(2)

    assert active_non_default_count(playthrough) == 2
    assert len(playthrough.queue_entries) == 5


async def test_defaults_do_not_use_slots(db, clock, active_playthrough):
    playthrough = await active_playthrough(max_concurrent_rules=1)
    assert sum(1 for s in playthrough.rule_states if s.is_active and s.is_default) == 2

    outcome = await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())
    assert not outcome.queued


# ---------------------------------------------------------------------------
# Pick preconditions
# ---------------------------------------------------------------------------


async def test_pick_requires_active_session(db, clock, create_playthrough):
    playthrough = await create_playthrough()
    with pytest.raises(InvalidTransition):
        await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())


async def test_viewer_picks_can_be_disabled(db, clock, active_playthrough):
    playthrough = await active_playthrough(allow_viewer_picks=False)

    with pytest.raises(Forbidden):
        await activation_service.pick_rule(db, playthrough, VIEWER_ID, 1, 1, clock.now())
    outcome = await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())
    assert outcome.state.is_active


async def test_anonymous_viewer_picks(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    outcome = await activation_service.pick_rule(db, playthrough, None, 1, 1, clock.now())
    assert outcome.state.is_active

    playthrough.require_auth = True
    clock.advance(5)
    with pytest.raises(AuthRequired):
        await activation_service.pick_rule(db, playthrough, None, 3, 1, clock.now())


async def test_invalid_pick_targets(db, clock, active_playthrough):
    playthrough = await active_playthrough()

    with pytest.raises(NotFound) as exc_info:
        await activation_service.pick_rule(db, playthrough, HOST_ID, 999, 1, clock.now())
    assert exc_info.value.code == "RULE_NOT_FOUND"

    with pytest.raises(NotFound) as exc_info:
        await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 9, clock.now())
    assert exc_info.value.code == "DIFFICULTY_LEVEL_NOT_FOUND"

    with pytest.raises(ValidationError):
        await activation_service.pick_rule(db, playthrough, HOST_ID, 8, 1, clock.now())

    # None of the rejected picks touched the rate limit
    assert playthrough.last_pick_at is None


async def test_disabled_rule_cannot_be_picked(db, clock, active_playthrough):
    playthrough = await active_playthrough(rule_overrides=[{"rule_id": 6, "is_enabled": False}])
    with pytest.raises(NotFound):
        await activation_service.pick_rule(db, playthrough, HOST_ID, 6, 1, clock.now())


# ---------------------------------------------------------------------------
# Counters
# ---------------------------------------------------------------------------


async def test_decrement_clamps_at_zero_and_completes(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    outcome = await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())
    outcome.state.current_amount = 3

    result = activation_service.decrement(playthrough, 1, 5, clock.now())

    assert result.previous_amount == 3
    assert result.current_amount == 0
    assert result.completed is True
    assert result.rule_name == "Squats"
    assert outcome.state.is_active is False
    assert outcome.state.completed_at == clock.now()


async def test_counters_are_addressed_by_activation_order(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    await activation_service.pick_rule(db, playthrough, HOST_ID, 7, 1, clock.now())   # 10 push-ups
    clock.advance(2)
    await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())   # timer, not a counter
    clock.advance(2)
    await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())   # 5 squats

    second = activation_service.decrement(playthrough, 2, 1, clock.now())
    first = activation_service.decrement(playthrough, 1, 4, clock.now())

    assert (second.rule_id, second.current_amount) == (2, 4)
    assert (first.rule_id, first.current_amount) == (7, 6)


async def test_increment_reactivates_completed_counter(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    outcome = await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())
    activation_service.decrement(playthrough, 1, 5, clock.now())
    assert outcome.state.is_active is False

    clock.advance(5)
    result = activation_service.increment(playthrough, 1, 2, clock.now())

    assert result.reactivated is True
    assert result.previous_amount == 0
    assert result.current_amount == 2
    assert outcome.state.is_active is True
    assert outcome.state.completed_at is None


async def test_increment_reactivation_respects_cap(db, clock, active_playthrough):
    playthrough = await active_playthrough(max_concurrent_rules=1)
    await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())
    activation_service.decrement(playthrough, 1, 5, clock.now())
    clock.advance(2)
    await activation_service.pick_rule(db, playthrough, HOST_ID, 1, 1, clock.now())

    with pytest.raises(ConcurrencyLimitReached):
        activation_service.increment(playthrough, 1, 1, clock.now())


async def test_counter_index_errors(db, clock, active_playthrough):
    playthrough = await active_playthrough()

    with pytest.raises(NotFound) as exc_info:
        activation_service.decrement(playthrough, 1, 1, clock.now())
    assert exc_info.value.code == "NO_COUNTER_RULES"

    await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())
    with pytest.raises(NotFound) as exc_info:
        activation_service.decrement(playthrough, 2, 1, clock.now())
    assert exc_info.value.code == "INDEX_OUT_OF_RANGE"

    with pytest.raises(ValidationError) as exc_info:
        activation_service.decrement(playthrough, 0, 1, clock.now())
    assert exc_info.value.code == "INVALID_INDEX"


async def test_counters_are_frozen_outside_active_status(db, clock, active_playthrough):
    playthrough = await active_playthrough()
    await activation_service.pick_rule(db, playthrough, HOST_ID, 2, 1, clock.now())
    lifecycle_service.pause(playthrough, HOST_ID, clock.now())

    with pytest.raises(InvalidTransition):
        activation_service.decrement(playthrough, 1, 1, clock.now())
    with pytest.raises(InvalidTransition):
        activation_service.increment(playthrough, 1, 1, clock.now())

    counter = next(s for s in playthrough.rule_states if s.rule_id == 2)
    assert counter.current_amount == 5
