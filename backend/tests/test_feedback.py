"""Post-run feedback and the completed-runs listing."""

HOST = {"X-User-Id": "host-1"}
VIEWER = {"X-User-Id": "viewer-1"}


async def _finished_run(client, clock, **overrides) -> str:
    resp = await client.post("/api/playthroughs", json={"gameId": 1, "rulesetId": 1, **overrides}, headers=HOST)
    playthrough_id = resp.json()["id"]
    await client.put(f"/api/playthroughs/{playthrough_id}/start", headers=HOST)
    clock.advance(60)
    await client.put(f"/api/playthroughs/{playthrough_id}/end", headers=HOST)
    return playthrough_id


async def test_session_feedback(client, clock):
    playthrough_id = await _finished_run(client, clock)
    url = f"/api/playthroughs/{playthrough_id}/feedback"

    resp = await client.put(url, json={"finishedRun": True, "recommended": 1}, headers=HOST)
    assert resp.status_code == 200
    assert resp.json()["finishedRun"] is True
    assert resp.json()["recommended"] == 1

    # Omitted fields keep their value
    resp = await client.put(url, json={"recommended": -1}, headers=HOST)
    assert resp.json()["finishedRun"] is True
    assert resp.json()["recommended"] == -1


async def test_session_feedback_validation(client, clock):
    playthrough_id = await _finished_run(client, clock)
    resp = await client.put(f"/api/playthroughs/{playthrough_id}/feedback", json={"recommended": 5}, headers=HOST)
    assert resp.status_code == 422
    assert resp.json()["error"]["code"] == "VALIDATION_ERROR"


async def test_feedback_only_after_the_run(client):
    resp = await client.post("/api/playthroughs", json={"gameId": 1, "rulesetId": 1}, headers=HOST)
    playthrough_id = resp.json()["id"]
    await client.put(f"/api/playthroughs/{playthrough_id}/start", headers=HOST)

    resp = await client.put(f"/api/playthroughs/{playthrough_id}/feedback", json={"finishedRun": True}, headers=HOST)
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_STATUS"

    resp = await client.put(
        f"/api/playthroughs/{playthrough_id}/rule-feedback", json={"ruleId": 1, "couldBeHarder": True}, headers=HOST
    )
    assert resp.status_code == 409
    assert resp.json()["error"]["code"] == "INVALID_STATUS"


async def test_feedback_is_owner_only(client, clock):
    playthrough_id = await _finished_run(client, clock)

    resp = await client.put(f"/api/playthroughs/{playthrough_id}/feedback", json={"finishedRun": True}, headers=VIEWER)
    assert resp.status_code == 403

    resp = await client.put(
        f"/api/playthroughs/{playthrough_id}/rule-feedback", json={"ruleId": 1, "couldBeHarder": True}
    )
    assert resp.status_code == 401


async def test_rule_feedback_lands_in_the_configuration(client, clock):
    playthrough_id = await _finished_run(client, clock)
    url = f"/api/playthroughs/{playthrough_id}/rule-feedback"

    resp = await client.put(url, json={"ruleId": 3, "couldBeHarder": True}, headers=HOST)
    assert resp.status_code == 200
    rules = {r["ruleId"]: r for r in resp.json()["rules"]}
    assert rules[3]["couldBeHarder"] is True
    assert rules[1]["couldBeHarder"] is None

    await client.put(url, json={"ruleId": 1, "couldBeHarder": False}, headers=HOST)
    data = (await client.get(f"/api/playthroughs/{playthrough_id}")).json()
    rules = {r["ruleId"]: r for r in data["rules"]}
    assert (rules[3]["couldBeHarder"], rules[1]["couldBeHarder"]) == (True, False)
    # The rest of the snapshot is untouched
    assert rules[8]["isDefault"] is True
    assert rules[8]["tarotCardIdentifier"] == "the_fool"

    resp = await client.put(url, json={"ruleId": 77, "couldBeHarder": True}, headers=HOST)
    assert resp.status_code == 404
    assert resp.json()["error"]["code"] == "RULE_NOT_FOUND"


async def test_completed_runs_listing(client, clock):
    first = await _finished_run(client, clock)
    clock.advance(600)
    second = await _finished_run(client, clock, rulesetId=1, gameId=2)
    # An unfinished session does not show up
    await client.post("/api/playthroughs", json={"gameId": 1, "rulesetId": 1}, headers=HOST)

    resp = await client.get("/api/playthrough/completed", headers=HOST)
    assert resp.status_code == 200
    runs = resp.json()["playthroughs"]
    assert [r["id"] for r in runs] == [second, first]
    assert all(r["status"] == "completed" for r in runs)
    assert runs[0]["gameName"] == "Dark Souls III"
    assert runs[0]["totalDurationSeconds"] == 60

    resp = await client.get("/api/playthrough/completed", headers=VIEWER)
    assert resp.json() == {"playthroughs": []}

    assert (await client.get("/api/playthrough/completed")).status_code == 401
