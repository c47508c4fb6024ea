"""Tests for reconcile and the timer helpers - pure, no database needed."""

from datetime import timedelta

from conftest import START
from challenge_picker.core.reconcile import reconcile
from challenge_picker.core.timers import (
    active_states,
    cooldown_remaining,
    rate_limit_remaining,
    start_cooldown,
    time_remaining,
)
from challenge_picker.models.playthrough import STATUS_ACTIVE, STATUS_PAUSED, Playthrough
from challenge_picker.models.rule_state import PlaythroughRuleState


def _playthrough(status: str = STATUS_ACTIVE, cooldown: int = 120) -> Playthrough:
    return Playthrough(
        id="pt-1",
        owner_id="host-1",
        game_id=1,
        ruleset_id=1,
        status=status,
        max_concurrent_rules=3,
        rule_cooldown_seconds=cooldown,
        configuration={},
        cooldowns={},
        started_at=START,
        total_paused_duration_seconds=0,
        created_at=START,
        rule_states=[],
        queue_entries=[],
    )


def _state(playthrough: Playthrough, rule_id: int, offset: float = 0, **fields) -> PlaythroughRuleState:
    started = START + timedelta(seconds=offset)
    state = PlaythroughRuleState(
        rule_id=rule_id, is_active=True, is_default=False, started_at=started, created_at=started, **fields
    )
    playthrough.rule_states.append(state)
    return state


def at(seconds: float):
    return START + timedelta(seconds=seconds)


# ---------------------------------------------------------------------------
# Expiry and counters
# ---------------------------------------------------------------------------


def test_expired_timer_is_completed():
    playthrough = _playthrough()
    timed = _state(playthrough, 1, expires_at=at(300))

    report = reconcile(playthrough, at(301))

    assert report.expired == [1]
    assert timed.is_active is False
    assert timed.completed_at == at(301)


def test_timer_is_still_running_at_its_expiry_instant():
    playthrough = _playthrough()
    timed = _state(playthrough, 1, expires_at=at(300))

    assert not reconcile(playthrough, at(300)).changed
    assert timed.is_active is True

    assert reconcile(playthrough, at(300.5)).expired == [1]


def test_running_timer_is_untouched():
    playthrough = _playthrough()
    timed = _state(playthrough, 1, expires_at=at(300))

    report = reconcile(playthrough, at(100))

    assert not report.changed
    assert timed.is_active is True
    assert timed.completed_at is None


def test_timers_do_not_expire_while_paused():
    playthrough = _playthrough(status=STATUS_PAUSED)
    playthrough.paused_at = at(100)
    timed = _state(playthrough, 1, expires_at=at(300))

    reconcile(playthrough, at(10_000))

    assert timed.is_active is True


def test_exhausted_counter_is_completed():
    playthrough = _playthrough()
    counter = _state(playthrough, 2, current_amount=0, initial_amount=5)
    negative = _state(playthrough, 7, current_amount=-2, initial_amount=10)

    report = reconcile(playthrough, at(5))

    assert sorted(report.exhausted) == [2, 7]
    assert counter.is_active is False
    assert negative.current_amount == 0


def test_permanent_rules_stay_active():
    playthrough = _playthrough()
    permanent = _state(playthrough, 5)

    assert not reconcile(playthrough, at(99_999)).changed
    assert permanent.is_active is True
    assert permanent.behavior_type == "permanent"


# ---------------------------------------------------------------------------
# Deduplication
# ---------------------------------------------------------------------------


def test_duplicates_keep_the_earliest_activation():
    playthrough = _playthrough()
    later = _state(playthrough, 1, offset=30, difficulty_level=2, expires_at=at(630))
    earliest = _state(playthrough, 1, offset=10, difficulty_level=1, expires_at=at(310))
    other = _state(playthrough, 3, offset=20, expires_at=at(200))

    report = reconcile(playthrough, at(40))

    assert report.duplicates == [1]
    assert earliest.is_active is True
    assert earliest.started_at == at(10)
    assert later.is_active is False
    assert later.completed_at == at(40)
    assert other.is_active is True
    assert [s.rule_id for s in active_states(playthrough)] == [1, 3]


def test_reconcile_is_idempotent():
    playthrough = _playthrough()
    _state(playthrough, 1, offset=0)
    _state(playthrough, 1, offset=5)
    _state(playthrough, 2, current_amount=0)

    first = reconcile(playthrough, at(50))
    second = reconcile(playthrough, at(50))

    assert first.changed
    assert not second.changed
    assert len(active_states(playthrough)) == 1


# ---------------------------------------------------------------------------
# Cooldowns and rate limit
# ---------------------------------------------------------------------------


def test_elapsed_cooldowns_are_swept():
    playthrough = _playthrough(cooldown=120)
    start_cooldown(playthrough, 1, at(0))
    start_cooldown(playthrough, 3, at(60))

    report = reconcile(playthrough, at(120))

    assert report.cooldowns_cleared == [1]
    assert playthrough.cooldown_rule_ids == [3]
    assert cooldown_remaining(playthrough, 3, at(120)) == 60
    assert cooldown_remaining(playthrough, 1, at(120)) == 0


def test_rate_limit_remaining():
    playthrough = _playthrough()
    assert rate_limit_remaining(playthrough, at(0), 2.0) == 0

    playthrough.last_pick_at = at(0)
    assert rate_limit_remaining(playthrough, at(0.5), 2.0) == 1.5
    assert rate_limit_remaining(playthrough, at(3), 2.0) == 0


# ---------------------------------------------------------------------------
# Pause freeze
# ---------------------------------------------------------------------------


def test_time_remaining_is_frozen_while_paused():
    playthrough = _playthrough()
    timed = _state(playthrough, 1, expires_at=at(300))
    assert time_remaining(timed, playthrough, at(100)) == 200

    playthrough.status = STATUS_PAUSED
    playthrough.paused_at = at(100)
    assert time_remaining(timed, playthrough, at(100)) == 200
    assert time_remaining(timed, playthrough, at(5_000)) == 200


def test_time_remaining_never_negative():
    playthrough = _playthrough()
    timed = _state(playthrough, 1, expires_at=at(10))
    assert time_remaining(timed, playthrough, at(50)) == 0
    assert time_remaining(_state(playthrough, 2, current_amount=3), playthrough, at(50)) is None
