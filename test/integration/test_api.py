import pytest

from pedibus.application.utils.background import drain_background_tasks

ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}
INSTRUCTOR = {"X-User-Id": "instructor-1", "X-User-Role": "instructor"}
PARENT = {"X-User-Id": "parent-1", "X-User-Role": "parent"}

PATH = {
    "activity_type": "pedibus",
    "polyline": [{"lat": 41.55 + i * 0.001, "lon": -8.42} for i in range(7)],
    "waypoints": [
        {"name": "Escola", "lat": 41.556, "lon": -8.42},
        {"name": "Largo", "lat": 41.55, "lon": -8.42},
    ],
}


@pytest.mark.asyncio
async def test_requests_without_api_key_are_refused(client):
    response = await client.get("/api/routes", headers={"X-API-Key": "wrong"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_preview_route(client):
    response = await client.post("/api/routes/preview", json=PATH)

    assert response.status_code == 200
    data = response.json()
    assert [s["name"] for s in data["stops"]] == ["Largo", "Escola"]
    assert data["stops"][0]["distance_from_start_meters"] == 0


@pytest.mark.asyncio
async def test_preview_with_a_single_stop_is_a_bad_request(client):
    response = await client.post("/api/routes/preview", json={**PATH, "waypoints": PATH["waypoints"][:1]})

    assert response.status_code == 400
    assert response.json()["code"] == "INSUFFICIENT_STOPS"


@pytest.mark.asyncio
async def test_only_admins_import_routes(client):
    response = await client.post("/api/routes", json={**PATH, "name": "Linha Azul"}, headers=PARENT)

    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN_ROLE"


@pytest.mark.asyncio
async def test_identity_headers_are_required(client):
    response = await client.post("/api/routes", json={**PATH, "name": "Linha Azul"})

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_import_and_read_route(client):
    response = await client.post("/api/routes", json={**PATH, "name": "Linha Azul"}, headers=ADMIN)
    assert response.status_code == 201
    route_id = response.json()["id"]

    again = await client.post("/api/routes", json={**PATH, "name": "Linha Azul"}, headers=ADMIN)
    assert again.status_code == 409
    assert again.json()["code"] == "ROUTE_EXISTS"

    stops = (await client.get(f"/api/routes/{route_id}/stops")).json()
    assert [(s["stop_number"], s["name"], s["kind"]) for s in stops] == [(1, "Largo", "regular"), (2, "Escola", "school")]

    missing = await client.get("/api/routes/nope/stops")
    assert missing.status_code == 404
    assert missing.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_full_session_over_http(client, route, stations, clock):
    created = await client.post(
        "/api/activity-sessions",
        json={"route_id": route.id, "scheduled_at": (clock.now.isoformat())},
        headers=ADMIN,
    )
    assert created.status_code == 201
    session_id = created.json()["id"]
    base = f"/api/activity-sessions/{session_id}"

    assigned = await client.post(f"{base}/instructors", json={"instructor_ids": ["instructor-1"]}, headers=ADMIN)
    assert assigned.status_code == 200

    registered = await client.post(
        f"{base}/registrations",
        json={"person_id": "child-1", "role": "child", "pick_up_station_id": stations[0], "drop_off_station_id": stations[1]},
        headers=PARENT,
    )
    assert registered.status_code == 201
    assert registered.json()["guardian_id"] == "parent-1"

    started = await client.post(f"{base}/actions/start", headers=INSTRUCTOR)
    assert started.status_code == 200
    assert started.json()["station_id"] == stations[0]

    twice = await client.post(f"{base}/actions/start", headers=INSTRUCTOR)
    assert twice.status_code == 409
    assert twice.json()["code"] == "ALREADY_STARTED"

    assert (await client.post(f"{base}/actions/arrive", headers=INSTRUCTOR)).status_code == 200
    checked_in = await client.post(f"{base}/check-in", json={"person_id": "child-1"}, headers=INSTRUCTOR)
    assert checked_in.status_code == 201
    assert checked_in.json()["direction"] == "in"

    undone = await client.delete(f"{base}/check-in/child-1", headers=INSTRUCTOR)
    assert undone.status_code == 200
    assert (await client.post(f"{base}/check-in", json={"person_id": "child-1"}, headers=INSTRUCTOR)).status_code == 201

    assert (await client.post(f"{base}/actions/advance", headers=INSTRUCTOR)).status_code == 200
    assert (await client.post(f"{base}/actions/arrive", headers=INSTRUCTOR)).status_code == 200

    roster = (await client.get(f"{base}/roster", headers=PARENT)).json()
    assert [c["person_id"] for c in roster["children_out"]] == ["child-1"]

    blocked = await client.post(f"{base}/actions/advance", headers=INSTRUCTOR)
    assert blocked.status_code == 409
    assert blocked.json()["code"] == "CHILDREN_PENDING"

    assert (await client.post(f"{base}/check-out", json={"person_id": "child-1"}, headers=INSTRUCTOR)).status_code == 201
    assert (await client.post(f"{base}/actions/advance", headers=INSTRUCTOR)).status_code == 200
    assert (await client.post(f"{base}/actions/arrive", headers=INSTRUCTOR)).status_code == 200

    status = (await client.get(f"{base}/status", headers=PARENT)).json()
    assert status["status"] == "ready-to-end"

    ended = await client.post(f"{base}/actions/end", headers=INSTRUCTOR)
    assert ended.status_code == 200
    assert ended.json()["finished_by_id"] == "instructor-1"

    await drain_background_tasks()
    stations_view = (await client.get(f"{base}/stations", headers=ADMIN)).json()
    assert [s["state"] for s in stations_view] == ["left", "left", "left"]


@pytest.mark.asyncio
async def test_instructor_not_assigned(client, activity_session):
    response = await client.post(
        f"/api/activity-sessions/{activity_session.id}/actions/start",
        headers={"X-User-Id": "instructor-2", "X-User-Role": "instructor"},
    )

    assert response.status_code == 403
    assert response.json()["code"] == "NOT_ASSIGNED"


@pytest.mark.asyncio
async def test_request_bodies_are_validated(client, activity_session):
    response = await client.post(
        f"/api/activity-sessions/{activity_session.id}/check-in", json={}, headers={**INSTRUCTOR}
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_import_with_stops_on_the_same_spot_is_a_bad_request(client):
    waypoints = PATH["waypoints"] + [{"name": "Portão", "lat": 41.556, "lon": -8.42}]

    response = await client.post(
        "/api/routes", json={**PATH, "waypoints": waypoints, "name": "Linha Azul"}, headers=ADMIN
    )

    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_ROUTE"


@pytest.mark.asyncio
async def test_registrations_belong_to_their_guardian(client, activity_session, stations):
    base = f"/api/activity-sessions/{activity_session.id}/registrations"
    body = {"person_id": "child-1", "role": "child", "pick_up_station_id": stations[0], "drop_off_station_id": stations[2]}

    refused = await client.post(base, json=body, headers=INSTRUCTOR)
    assert refused.status_code == 403
    assert refused.json()["code"] == "FORBIDDEN_ROLE"

    assert (await client.post(base, json=body, headers=PARENT)).status_code == 201

    stranger = {"X-User-Id": "parent-2", "X-User-Role": "parent"}
    blocked = await client.delete(f"{base}/child-1", headers=stranger)
    assert blocked.status_code == 403
    assert blocked.json()["code"] == "FORBIDDEN_ROLE"

    assert (await client.delete(f"{base}/child-1", headers=PARENT)).status_code == 204
