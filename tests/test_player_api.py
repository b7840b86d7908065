from __future__ import annotations

import pytest

T0 = 1_700_000_000_000


@pytest.fixture()
def api(client_and_redis, clock):
    client, r = client_and_redis
    res = client.post("/players", json={"player_id": "p1", "lab_name": "Test Lab"})
    assert res.status_code == 201
    return client, r, clock


def test_healthcheck_and_info(client_and_redis) -> None:
    client, _ = client_and_redis
    assert client.get("/healthcheck").json() == {"status": "ok"}
    assert client.get("/info").json()["name"] == "labforge"


def test_create_player(api) -> None:
    client, _, _ = api
    res = client.get("/players/p1/ledger")
    assert res.status_code == 200
    ledger = res.json()
    assert ledger["cash"] == 5000
    assert ledger["founder_type"] == "technical"
    assert ledger["parallel_task_limit"] == 1

    dup = client.post("/players", json={"player_id": "p1", "lab_name": "Again"})
    assert dup.status_code == 409
    assert dup.json()["detail"]["code"] == "player_exists"


def test_unknown_player_is_404(client_and_redis, clock) -> None:
    client, _ = client_and_redis
    res = client.get("/players/ghost/ledger")
    assert res.status_code == 404
    assert res.json()["detail"]["code"] == "player_not_found"


def test_catalog_listing(client_and_redis) -> None:
    client, _ = client_and_redis
    entries = client.get("/catalog").json()["entries"]
    by_id = {e["id"]: e for e in entries}
    assert len(entries) == 17
    assert by_id["rn_speed"]["is_research_node"] is True
    assert by_id["rn_speed"]["unlocks"] == ["rn_speed"]
    assert by_id["act_train_llm"]["cancellable"] is False
    assert by_id["act_contract"]["requires_model_type"] == "llm"


def test_start_action_and_typed_rejections(api) -> None:
    client, _, _ = api

    res = client.post("/players/p1/actions/act_quick", json={"seed": 7})
    assert res.status_code == 201
    task = res.json()
    assert task["seed"] == 7
    assert task["completes_at"] == T0 + 48_000

    full = client.post("/players/p1/actions/act_paid_job")
    assert full.status_code == 409
    assert full.json()["detail"] == {
        "code": "capacity_exceeded",
        "message": "All 1 task slot(s) in use (1 running)",
        "current": 1,
        "limit": 1,
    }

    assert client.post("/players/p1/actions/act_nope").status_code == 404

    locked = client.post("/players/p1/actions/act_gated")
    assert locked.status_code == 422
    detail = locked.json()["detail"]
    assert detail["code"] == "locked"
    assert detail["level_gap"] == 2
    assert detail["missing_prerequisites"] == ["rn_advanced"]

    bad_seed = client.post("/players/p1/actions/act_paid_job", json={"seed": -1})
    assert bad_seed.status_code == 422


def test_insufficient_resources_detail(api) -> None:
    client, r, _ = api
    from labforge import store

    ledger = store.require_ledger(r=r, player_id="p1")
    ledger.cash = 100
    ledger.research_points = 50
    r.set(store.ledger_key("p1"), ledger.model_dump_json())

    res = client.post("/players/p1/actions/act_expensive")
    assert res.status_code == 422
    assert res.json()["detail"]["shortfall"] == {"cash": 20}


def test_reads_resolve_due_tasks(api) -> None:
    client, _, clock = api
    client.post("/players/p1/actions/act_quick")
    assert len(client.get("/players/p1/tasks").json()["tasks"]) == 1

    clock.advance(48_000)
    ledger = client.get("/players/p1/ledger").json()
    assert ledger["cash"] == 4_900
    assert ledger["research_points"] == 60
    assert client.get("/players/p1/tasks").json()["tasks"] == []

    history = client.get("/players/p1/tasks/history").json()["tasks"]
    assert [t["status"] for t in history] == ["archived"]

    assert client.get("/players/p1/notifications/count").json() == {"count": 1}
    feed = client.get("/players/p1/notifications").json()["notifications"]
    assert feed[0]["title"] == "Quick Study Complete"
    assert feed[0]["message"] == "+60 RP, +40 XP"


def test_explicit_resolve_endpoint(api) -> None:
    client, _, clock = api
    client.post("/players/p1/actions/act_big_xp")
    clock.advance(60_000)

    emitted = client.post("/players/p1/resolve").json()["notifications"]
    assert [n["type"] for n in emitted] == ["level_up", "milestone", "task_complete"]
    assert client.post("/players/p1/resolve").json()["notifications"] == []
    assert client.get("/players/p1/ledger").json()["upgrade_points"] == 1


def test_cancel_route(api) -> None:
    client, _, _ = api
    task = client.post("/players/p1/actions/act_hire").json()

    res = client.post(f"/players/p1/tasks/{task['id']}/cancel")
    assert res.status_code == 200
    assert res.json()["status"] == "cancelled"
    assert client.get("/players/p1/ledger").json()["cash"] == 5000

    assert client.post(f"/players/p1/tasks/{task['id']}/cancel").status_code == 404

    train = client.post("/players/p1/actions/act_train_llm").json()
    res = client.post(f"/players/p1/tasks/{train['id']}/cancel")
    assert res.status_code == 422
    assert res.json()["detail"]["code"] == "not_cancellable"


def test_unlock_state_view(api) -> None:
    client, _, _ = api
    body = client.get("/players/p1/unlocks").json()
    by_id = {e["id"]: e for e in body["entries"]}

    assert by_id["rn_contracts"]["is_purchased"] is True
    assert by_id["rn_advanced"]["lock_reason"] == "Requires level 2"
    assert by_id["act_gated"]["is_locked"] is True
    assert body["available_per_category"]["perk"] == 2


def test_research_purchase_and_upgrade_routes(api) -> None:
    client, _, clock = api
    client.post("/players/p1/actions/act_quick")
    clock.advance(48_000)

    res = client.post("/players/p1/research/rn_speed/purchase")
    assert res.status_code == 200
    body = res.json()
    assert body["ledger"]["research_points"] == 10
    assert body["ledger"]["speed_bonus"] == 10
    assert [n["type"] for n in body["notifications"]] == ["research_complete", "milestone"]

    again = client.post("/players/p1/research/rn_speed/purchase")
    assert again.status_code == 409

    no_up = client.post("/players/p1/upgrades/queue")
    assert no_up.status_code == 422
    assert no_up.json()["detail"]["code"] == "upgrade_unavailable"
    assert client.post("/players/p1/upgrades/turbo").status_code == 422


def test_notification_read_flow(api) -> None:
    client, _, clock = api
    client.post("/players/p1/actions/act_big_xp")
    clock.advance(60_000)
    client.post("/players/p1/resolve")

    feed = client.get("/players/p1/notifications?limit=2").json()["notifications"]
    assert len(feed) == 2
    older = client.get(f"/players/p1/notifications?before={feed[-1]['id']}").json()["notifications"]
    assert len(older) == 1

    nid = feed[0]["id"]
    res = client.post(f"/players/p1/notifications/{nid}/read")
    assert res.status_code == 200
    assert res.json()["read"] is True
    assert client.get("/players/p1/notifications/count").json() == {"count": 2}
    assert len(client.get("/players/p1/notifications?unread=true").json()["notifications"]) == 2

    assert client.post(f"/players/other/notifications/{nid}/read").status_code == 404

    assert client.post("/players/p1/notifications/read_all").json() == {"updated": 2}
    assert client.get("/players/p1/notifications/count").json() == {"count": 0}

    since = client.get(f"/players/p1/notifications/since?since={T0 + 60_000}").json()["notifications"]
    assert len(since) == 3
    assert len(client.get("/players/p1/activity?limit=1").json()["notifications"]) == 1


def test_time_warp_is_dev_only(api, monkeypatch: pytest.MonkeyPatch) -> None:
    client, _, _ = api
    monkeypatch.delenv("LABFORGE_DEV_ADMINS", raising=False)
    res = client.post("/players/p1/time_warp", json={"time_scale": 5})
    assert res.status_code == 403

    monkeypatch.setenv("LABFORGE_DEV_ADMINS", "p1")
    res = client.post("/players/p1/time_warp", json={"time_scale": 5})
    assert res.status_code == 200
    assert res.json()["time_scale"] == 5


def test_resolver_run_once_route(api) -> None:
    client, _, clock = api
    client.post("/players/p1/actions/act_quick")
    assert client.post("/resolver/run_once").json() == {"players": {}}

    clock.advance(48_000)
    assert client.post("/resolver/run_once").json() == {"players": {"p1": 1}}
    assert client.post("/resolver/run_once?batch_size=0").status_code == 422
