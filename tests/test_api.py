from clinic_queue.database import Database

DOCTORS = [
    {"id": "d1", "name": "Dr. Malee", "username": "malee", "rank": "05"},
    {"id": "d2", "name": "Dr. Chai"},
]


async def test_routes_require_authentication(client):
    response = await client.get("/queue/history")
    assert response.status_code in (401, 403)

    response = await client.get("/queue/history", headers={"Authorization": "Bearer garbage"})
    assert response.status_code == 401


async def test_login_and_me(client, runner_a):
    response = await client.post("/auth/login", json={"email": "alice@clinic.org", "password": "secret123"})
    assert response.status_code == 200
    token = response.json()["access_token"]

    me = await client.get("/auth/me", headers={"Authorization": f"Bearer {token}"})
    assert me.status_code == 200
    assert me.json()["id"] == runner_a["id"]
    assert me.json()["username"] == "alice"

    bad = await client.post("/auth/login", json={"email": "alice@clinic.org", "password": "wrong"})
    assert bad.status_code == 401


async def test_session_lifecycle_over_http(client, runner_a, runner_b, headers_for):
    headers_a = headers_for(runner_a)
    headers_b = headers_for(runner_b)

    started = await client.post("/queue/session/start", json={"doctors": DOCTORS}, headers=headers_a)
    assert started.status_code == 200
    session = started.json()
    assert session["runner_id"] == runner_a["id"]
    assert session["runner_name"] == "Alice Runner"
    assert session["current_queue_index"] == 0

    conflict = await client.post("/queue/session/start", json={"doctors": []}, headers=headers_b)
    assert conflict.status_code == 409
    assert conflict.json()["code"] == "session_already_running"

    for expected in (1, 2):
        advanced = await client.post(
            "/queue/session/advance", json={"session_id": session["session_id"]}, headers=headers_a
        )
        assert advanced.json()["current_queue_index"] == expected

    status = await client.get("/queue/session/status", headers=headers_b)
    assert status.json()["is_running"] is True
    assert status.json()["current_doctor"] is None

    stopped = await client.post(
        "/queue/session/stop", json={"session_id": session["session_id"]}, headers=headers_a
    )
    assert stopped.status_code == 200
    record = stopped.json()
    assert record["status"] == "completed"
    assert record["stopped_by"] == runner_a["id"]
    assert record["stopped_by_name"] == "Alice Runner"
    assert [d["id"] for d in record["doctors"]] == ["d1", "d2"]

    again = await client.post(
        "/queue/session/stop", json={"session_id": session["session_id"]}, headers=headers_a
    )
    assert again.status_code == 412
    assert again.json()["code"] == "session_not_running"

    history = await client.get(f"/queue/history?runnerId={runner_a['id']}", headers=headers_b)
    body = history.json()
    assert body["pagination"] == {"page": 1, "limit": 10, "total": 1, "pages": 1}
    assert body["data"][0]["runner"]["username"] == "alice"

    one = await client.get(f"/queue/history/{session['session_id']}", headers=headers_b)
    assert one.status_code == 200


async def test_unknown_session_is_not_found(client, runner_a, headers_for):
    response = await client.post(
        "/queue/session/advance", json={"session_id": "nope"}, headers=headers_for(runner_a)
    )
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


async def test_entries_over_http(client, runner_a, headers_for):
    headers = headers_for(runner_a)

    created = await client.post("/queue/entries", json={"patient_name": "Somchai"}, headers=headers)
    assert created.status_code == 201
    entry = created.json()
    assert entry["queue_number"] == 1
    assert entry["priority"] == "normal"
    assert entry["status"] == "waiting"

    second = await client.post("/queue/entries", json={"priority": "emergency"}, headers=headers)
    assert second.json()["queue_number"] == 2

    called = await client.post("/queue/entries/call", headers=headers)
    assert called.json()["queue_number"] == 1
    assert called.json()["handled_by_name"] == "Alice Runner"

    done = await client.put(
        f"/queue/entries/{entry['id']}/status", json={"status": "completed"}, headers=headers
    )
    assert done.status_code == 200

    backwards = await client.put(
        f"/queue/entries/{entry['id']}/status", json={"status": "waiting"}, headers=headers
    )
    assert backwards.status_code == 409
    assert backwards.json()["code"] == "invalid_status_transition"

    listed = await client.get("/queue/entries?status=waiting", headers=headers)
    assert [e["queue_number"] for e in listed.json()["entries"]] == [2]

    by_number = await client.get("/queue/entries/number/2", headers=headers)
    assert by_number.json()["priority"] == "emergency"

    missing = await client.get("/queue/entries/does-not-exist", headers=headers)
    assert missing.status_code == 404


async def test_history_rejects_bad_dates(client, runner_a, headers_for):
    response = await client.get(
        "/queue/history?startDate=2024-99-01", headers=headers_for(runner_a)
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


async def test_storage_outage_is_retryable_and_opaque(client, runner_a, headers_for):
    headers = headers_for(runner_a)
    Database.db = None

    response = await client.get("/queue/session/status", headers=headers)
    assert response.status_code == 503
    body = response.json()
    assert body["code"] == "storage_unavailable"
    assert body["retryable"] is True
    assert "mongo" not in body["detail"].lower()


async def test_health(client):
    response = await client.get("/health")
    assert response.json()["status"] == "healthy"


async def test_malformed_requests_use_validation_code(client, runner_a, headers_for):
    headers = headers_for(runner_a)

    bad_status = await client.get("/queue/history?status=bogus", headers=headers)
    assert bad_status.status_code == 422
    assert bad_status.json()["code"] == "validation_error"
    assert "status" in bad_status.json()["detail"]

    bad_page = await client.get("/queue/history?page=abc", headers=headers)
    assert bad_page.status_code == 422
    assert bad_page.json()["code"] == "validation_error"

    bad_body = await client.post(
        "/queue/session/start",
        content="{not json",
        headers={**headers, "Content-Type": "application/json"}
    )
    assert bad_body.status_code == 422
    assert bad_body.json()["code"] == "validation_error"

    trailing = await client.get("/queue/history?startDate=2024-01-01garbage", headers=headers)
    assert trailing.status_code == 422
    assert trailing.json()["code"] == "validation_error"


async def test_call_on_empty_queue_is_not_found(client, runner_a, headers_for):
    response = await client.post("/queue/entries/call", headers=headers_for(runner_a))
    assert response.status_code == 404
    assert response.json()["code"] == "not_found"


async def test_start_on_behalf_of_another_runner_records_their_name(
    client, runner_a, runner_b, headers_for
):
    started = await client.post(
        "/queue/session/start",
        json={"runner_id": runner_b["id"], "doctors": DOCTORS},
        headers=headers_for(runner_a)
    )
    assert started.status_code == 200
    assert started.json()["runner_id"] == runner_b["id"]
    assert started.json()["runner_name"] == "Bob Runner"

    stopped = await client.post(
        "/queue/session/stop",
        json={"session_id": started.json()["session_id"], "stopped_by": runner_b["id"]},
        headers=headers_for(runner_a)
    )
    assert stopped.json()["runner_name"] == "Bob Runner"
    assert stopped.json()["stopped_by_name"] == "Bob Runner"


async def test_start_for_unknown_runner_needs_a_name(client, runner_a, headers_for):
    unknown = await client.post(
        "/queue/session/start",
        json={"runner_id": "kiosk-3", "doctors": []},
        headers=headers_for(runner_a)
    )
    assert unknown.status_code == 422
    assert unknown.json()["code"] == "validation_error"

    named = await client.post(
        "/queue/session/start",
        json={"runner_id": "kiosk-3", "runner_name": "Front Desk", "doctors": []},
        headers=headers_for(runner_a)
    )
    assert named.status_code == 200
    assert named.json()["runner_name"] == "Front Desk"
