"""Background reconcile sweep tests."""

from challenge_picker.core.playthrough_lock import LocalPlaythroughLocks
from challenge_picker.models.playthrough import Playthrough
from challenge_picker.worker.reconcile_worker import sweep_once
from conftest import HOST_ID, test_session_factory

HOST = {"X-User-Id": HOST_ID}


async def _start_with_timer(client) -> str:
    resp = await client.post("/api/playthroughs", json={"gameId": 1, "rulesetId": 1}, headers=HOST)
    playthrough_id = resp.json()["id"]
    await client.put(f"/api/playthroughs/{playthrough_id}/start", headers=HOST)
    await client.post(
        f"/api/playthroughs/{playthrough_id}/pick-rule", json={"ruleId": 6, "difficultyLevel": 1}, headers=HOST
    )
    return playthrough_id


async def test_sweep_expires_unwatched_timers(client, clock):
    playthrough_id = await _start_with_timer(client)
    locks = LocalPlaythroughLocks(blocking_timeout=1.0)

    assert await sweep_once(test_session_factory, clock, locks) == 0

    clock.advance(121)
    assert await sweep_once(test_session_factory, clock, locks) == 1
    # Nothing left to do on the next pass
    assert await sweep_once(test_session_factory, clock, locks) == 0

    async with test_session_factory() as db:
        playthrough = await db.get(Playthrough, playthrough_id)
        timer = next(s for s in playthrough.rule_states if s.rule_id == 6)
        assert timer.is_active is False
        assert timer.completed_at is not None
        assert playthrough.cooldowns == {}


async def test_sweep_skips_finished_sessions(client, clock):
    playthrough_id = await _start_with_timer(client)
    await client.put(f"/api/playthroughs/{playthrough_id}/end", headers=HOST)

    clock.advance(500)
    assert await sweep_once(test_session_factory, clock, LocalPlaythroughLocks(1.0)) == 0
