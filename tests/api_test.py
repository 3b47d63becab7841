from datetime import datetime, timedelta, timezone

from conftest import ADMIN_HEADERS, SEASON, seed_season


def user_headers(manager_id):
    return {"X-Manager-Id": str(manager_id), "X-Manager-Role": "user"}


def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json()["status"] == "ok"


def test_invalid_season_is_typed(client):
    r = client.get("/drivers/1999")
    assert r.status_code == 400
    body = r.json()
    assert body["success"] is False
    assert body["kind"] == "InvalidSeason"


def test_driver_crud_requires_admin(client):
    payload = {"name": "Ingram", "categories": ["M"], "current_value": 11}
    r = client.post(f"/drivers/{SEASON}", json=payload)
    assert r.status_code == 403
    assert r.json()["kind"] == "Forbidden"

    r = client.post(f"/drivers/{SEASON}", json=payload, headers=ADMIN_HEADERS)
    assert r.status_code == 201
    driver = r.json()
    assert driver["previous_value"] == 11

    r = client.post(f"/drivers/{SEASON}", json={**payload, "name": "ingram"}, headers=ADMIN_HEADERS)
    assert r.status_code == 409
    assert r.json()["kind"] == "Conflict"

    r = client.put(f"/drivers/{SEASON}/{driver['id']}", json={"current_value": 14}, headers=ADMIN_HEADERS)
    assert r.status_code == 200
    assert r.json()["current_value"] == 14

    r = client.get(f"/drivers/{SEASON}", params={"sort": "current_value", "order": "desc"})
    assert r.json()["count"] == 1

    r = client.delete(f"/drivers/{SEASON}/{driver['id']}", headers=ADMIN_HEADERS)
    assert r.status_code == 200
    assert client.get(f"/drivers/{SEASON}/{driver['id']}").status_code == 404


def test_manager_reads_hide_credentials(client):
    payload = {"username": "carol", "credential_hash": "secret-hash", "budget": 50}
    r = client.post(f"/managers/{SEASON}", json=payload, headers=ADMIN_HEADERS)
    assert r.status_code == 201
    manager = r.json()
    assert "credential_hash" not in manager

    listed = client.get(f"/managers/{SEASON}").json()
    assert listed["count"] == 1
    assert "credential_hash" not in listed["managers"][0]


def test_race_create_and_update(client):
    deadline = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    payload = {"round_number": 1, "name": "Knockhill", "submission_deadline": deadline,
               "events": [{"title": "Race 1"}]}
    r = client.post(f"/races/{SEASON}", json=payload, headers=ADMIN_HEADERS)
    assert r.status_code == 201
    race = r.json()
    assert race["events"][0]["status"] == "scheduled"
    assert race["is_processed"] is False

    r = client.put(f"/races/{SEASON}/{race['id']}", json={"is_locked": True}, headers=ADMIN_HEADERS)
    assert r.json()["is_locked"] is True


def test_roster_flow(client, stores, db):
    season = seed_season(stores, db)
    alice = season.managers["alice"]["id"]
    drivers = [season.drivers[k]["id"] for k in ("ham", "ver", "nor")]
    body = {"manager_id": alice, "race_id": season.races["open"]["id"], "driver_ids": drivers,
            "declared_cost": 30}

    r = client.post(f"/rosters/{SEASON}", json=body, headers=user_headers(alice))
    assert r.status_code == 201
    created = r.json()
    assert created["budget_info"]["remaining_budget"] == 70

    r = client.post(f"/rosters/{SEASON}", json=body, headers=user_headers(alice))
    assert r.status_code == 409
    assert r.json()["kind"] == "DuplicateRoster"

    bob = season.managers["bob"]["id"]
    r = client.post(f"/rosters/{SEASON}", json={**body, "manager_id": bob, "declared_cost": None},
                    headers=user_headers(bob))
    assert r.status_code == 400
    assert r.json()["kind"] == "BudgetExceeded"
    assert r.json()["details"]["over_by"] == 10

    r = client.post(f"/rosters/{SEASON}/validate",
                    json={"manager_id": alice, "driver_ids": drivers[:2]})
    assert r.json()["validation"]["composition_info"]["missing"] == ["I"]

    r = client.get(f"/rosters/{SEASON}/manager/{alice}", headers=user_headers(alice))
    assert r.json()["count"] == 1

    roster_id = created["roster"]["id"]
    r = client.delete(f"/rosters/{SEASON}/{roster_id}", headers=user_headers(alice))
    assert r.status_code == 200
    assert r.json()["budget_info"]["remaining_budget"] == 100


def test_locked_race_rejects_user_roster(client, stores, db):
    season = seed_season(stores, db)
    alice = season.managers["alice"]["id"]
    body = {"manager_id": alice, "race_id": season.races["locked"]["id"],
            "driver_ids": [season.drivers["lec"]["id"], season.drivers["pia"]["id"]]}
    r = client.post(f"/rosters/{SEASON}", json=body, headers=user_headers(alice))
    assert r.status_code == 403
    assert r.json()["kind"] == "RosterLocked"


def test_settlement_endpoints(client, stores, db):
    season = seed_season(stores, db)
    race_id = season.races["open"]["id"]
    results = [{"driver_id": season.drivers["ham"]["id"], "points_gained": 300}]
    body = {"race_id": race_id, "driver_results": results}

    r = client.post(f"/ppm/{SEASON}/simulate", json=body)
    assert r.status_code == 200
    assert r.json()["preview"] is True

    assert client.post(f"/ppm/{SEASON}/settle", json=body).status_code == 403
    r = client.post(f"/ppm/{SEASON}/settle", json=body, headers=ADMIN_HEADERS)
    assert r.status_code == 200
    assert r.json()["ppm"] == 930 / 50

    r = client.post(f"/ppm/{SEASON}/settle", json=body, headers=ADMIN_HEADERS)
    assert r.status_code == 409
    assert r.json()["kind"] == "AlreadyProcessed"

    assert client.get(f"/ppm/{SEASON}/history").json()["count"] == 1
    assert client.get(f"/ppm/{SEASON}/history", params={"limit": 0}).status_code == 422
    assert client.get(f"/ppm/{SEASON}/season-summary").json()["total_races"] == 1
    analysis = client.get(f"/ppm/{SEASON}/driver-analysis/{season.drivers['ham']['id']}").json()
    assert analysis["statistics"]["total_races"] == 1
    changes = client.get(f"/ppm/{SEASON}/value-changes").json()
    assert changes["increases"][0]["driver_name"] == "Hamilton"


def test_empty_driver_pool(client, stores, db):
    deadline = datetime.now(timezone.utc) + timedelta(days=3)
    with db.begin():
        race = stores.races.create(db, round_number=1, name="Oulton Park", submission_deadline=deadline)
    r = client.post(f"/ppm/{SEASON}/settle", json={"race_id": race["id"]}, headers=ADMIN_HEADERS)
    assert r.status_code == 422
    assert r.json()["kind"] == "EmptyDriverPool"


def test_season_endpoints(client, stores, db):
    seed_season(stores, db)
    assert client.get("/seasons").json() == {"count": 1, "seasons": [SEASON]}

    r = client.post("/seasons/copy", json={"from_year": SEASON, "to_year": 2026, "collections": "all"},
                    headers=ADMIN_HEADERS)
    assert r.status_code == 200
    assert r.json()["races"] == 3

    assert client.get("/seasons/2026/stats").json()["drivers"]["count"] == 5
    cmp = client.get(f"/seasons/{SEASON}/compare/2026").json()
    assert cmp["difference"]["drivers"]["count"] == 0

    r = client.post(f"/seasons/{SEASON}/initialize", headers=ADMIN_HEADERS)
    assert r.status_code == 409

    assert client.delete("/seasons/2026", headers=ADMIN_HEADERS).status_code == 422
    r = client.delete("/seasons/2026", params={"confirm_delete": "yes"}, headers=ADMIN_HEADERS)
    assert r.status_code == 400
    r = client.delete("/seasons/2026", params={"confirm_delete": "DELETE_ALL_DATA"}, headers=ADMIN_HEADERS)
    assert r.status_code == 200
    r = client.delete(f"/seasons/{SEASON}", params={"confirm_delete": "DELETE_ALL_DATA"},
                      headers=ADMIN_HEADERS)
    assert r.status_code == 409
    assert client.get("/seasons").json()["seasons"] == [SEASON]


def test_race_list_status_filter(client):
    deadline = (datetime.now(timezone.utc) + timedelta(days=3)).isoformat()
    for rnd, name, state in ((1, "Knockhill", "completed"), (2, "Silverstone", "scheduled")):
        payload = {"round_number": rnd, "name": name, "submission_deadline": deadline,
                   "events": [{"title": "Race 1", "status": state}]}
        assert client.post(f"/races/{SEASON}", json=payload, headers=ADMIN_HEADERS).status_code == 201

    r = client.get(f"/races/{SEASON}", params={"status": "completed"})
    assert r.status_code == 200
    body = r.json()
    assert body["count"] == 1
    assert body["races"][0]["name"] == "Knockhill"

    assert client.get(f"/races/{SEASON}").json()["count"] == 2
    assert client.get(f"/races/{SEASON}", params={"status": "cancelled"}).status_code == 422
