"""End-to-end tests through the HTTP API"""
import httpx
import pytest

from socialvox.main import create_app


@pytest.fixture
async def client(app_state):
    app = create_app(state=app_state)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


async def login(client, username, password):
    response = await client.post("/api/auth/login", json={"username": username, "password": password})
    assert response.status_code == 200, response.text
    return {"Authorization": f"Bearer {response.json()['access_token']}"}


@pytest.mark.asyncio
async def test_login_returns_home_path(client):
    response = await client.post(
        "/api/auth/login", json={"username": "surveyor", "password": "surveyor123"}
    )
    body = response.json()
    assert body["home"] == "/surveyor"
    assert body["user"]["role"] == "surveyor"
    assert "password" not in body["user"]


@pytest.mark.asyncio
async def test_bad_credentials_and_tokens(client):
    response = await client.post("/api/auth/login", json={"username": "surveyor", "password": "x"})
    assert response.status_code == 401

    response = await client.get("/api/auth/me", headers={"Authorization": "Bearer nope"})
    assert response.status_code == 401

    response = await client.get("/api/auth/me", headers={"Authorization": "Token abc"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_surveyor_is_kept_out_of_admin_routes(client):
    headers = await login(client, "surveyor", "surveyor123")
    response = await client.get("/api/surveys", headers=headers)
    assert response.status_code == 403
    assert response.json()["detail"]["redirect_to"] == "/surveyor"


@pytest.mark.asyncio
async def test_admin_cannot_manage_users(client):
    headers = await login(client, "manager", "manager123")
    assert (await client.get("/api/users", headers=headers)).status_code == 403
    headers = await login(client, "admin", "admin123")
    assert (await client.get("/api/users", headers=headers)).status_code == 200


@pytest.mark.asyncio
async def test_offline_survey_is_synced_after_reconnect(client, app_state):
    headers = await login(client, "surveyor", "surveyor123")
    surveys = (await client.get("/api/surveys/assigned", headers=headers)).json()
    survey = surveys[0]

    recording = (await client.post("/api/recordings", headers=headers)).json()
    await client.post(
        f"/api/recordings/{recording['recording_id']}/chunks",
        content=b"\x1a\x45\xdf\xa3audio",
        headers=headers,
    )
    stopped = (
        await client.post(f"/api/recordings/{recording['recording_id']}/stop", headers=headers)
    ).json()
    assert stopped["audio_recording"].startswith("data:audio/")

    status = await client.put("/api/sync/connectivity", json={"online": False}, headers=headers)
    assert status.json()["is_online"] is False

    answers = [
        {"question_id": q["id"], "selected_option": q["options"][0]} for q in survey["questions"]
    ]
    response = await client.post(
        "/api/responses",
        json={
            "survey_id": survey["id"],
            "answers": answers,
            "audio_recording": stopped["audio_recording"],
        },
        headers=headers,
    )
    assert response.status_code == 201, response.text
    assert response.json()["synced_to_server"] is False
    status = (await client.get("/api/sync/status", headers=headers)).json()
    assert status["pending_count"] == 1

    await client.put("/api/sync/connectivity", json={"online": True}, headers=headers)
    await app_state.coordinator.wait_idle()

    status = (await client.get("/api/sync/status", headers=headers)).json()
    assert status["pending_count"] == 0
    assert status["last_sync_time"] is not None
    mine = (await client.get("/api/responses/mine", headers=headers)).json()
    assert [r["synced_to_server"] for r in mine] == [True]

    result = (await client.post("/api/sync/now", headers=headers)).json()
    assert result["outcome"] in {"nothing-pending", "busy"}


@pytest.mark.asyncio
async def test_submit_without_audio_is_rejected(client):
    headers = await login(client, "surveyor", "surveyor123")
    survey = (await client.get("/api/surveys/assigned", headers=headers)).json()[0]
    answers = [
        {"question_id": q["id"], "selected_option": q["options"][0]} for q in survey["questions"]
    ]
    response = await client.post(
        "/api/responses", json={"survey_id": survey["id"], "answers": answers}, headers=headers
    )
    assert response.status_code == 422
    assert "audio_recording" in response.json()["detail"]["fields"]


@pytest.mark.asyncio
async def test_admin_exports_results_csv(client):
    surveyor = await login(client, "surveyor", "surveyor123")
    survey = (await client.get("/api/surveys/assigned", headers=surveyor)).json()[0]
    answers = [
        {"question_id": q["id"], "selected_option": q["options"][0]} for q in survey["questions"]
    ]
    await client.post(
        "/api/responses",
        json={
            "survey_id": survey["id"],
            "answers": answers,
            "audio_recording": "data:audio/webm;base64,AAAA",
        },
        headers=surveyor,
    )

    admin = await login(client, "admin", "admin123")
    response = await client.get(f"/api/surveys/{survey['id']}/export/csv", headers=admin)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    lines = response.text.strip().splitlines()
    assert lines[0].startswith("ID,Respondent,Completed At,")
    assert lines[1].endswith("Yes")


@pytest.mark.asyncio
async def test_folder_delete_through_api(client):
    headers = await login(client, "admin", "admin123")
    parent = (await client.post("/api/folders", json={"name": "Zona Sur"}, headers=headers)).json()
    child = (
        await client.post(
            "/api/folders", json={"name": "Barrio 1", "parent_id": parent["id"]}, headers=headers
        )
    ).json()

    response = await client.delete(f"/api/folders/{parent['id']}", headers=headers)

    assert response.status_code == 200
    assert response.json()["removed_folder_ids"] == [parent["id"], child["id"]]
    assert (await client.get("/api/folders", headers=headers)).json() == []


async def deactivate(client, admin, username):
    users = (await client.get("/api/users", headers=admin)).json()
    user = next(u for u in users if u["username"] == username)
    response = await client.put(f"/api/users/{user['id']}", json={"active": False}, headers=admin)
    assert response.status_code == 200, response.text
    return user["id"]


@pytest.mark.asyncio
async def test_deactivated_surveyor_cannot_be_assigned_to_survey(client):
    admin = await login(client, "admin", "admin123")
    surveyor_id = await deactivate(client, admin, "surveyor")
    survey = (await client.get("/api/surveys", headers=admin)).json()[0]

    response = await client.put(
        f"/api/surveys/{survey['id']}/assign", json={"surveyor_ids": [surveyor_id]}, headers=admin
    )

    assert response.status_code == 422
    assert surveyor_id in response.json()["detail"]["fields"]["surveyor_ids"]
    surveyors = (await client.get("/api/users/surveyors", headers=admin)).json()
    assert surveyors == []


@pytest.mark.asyncio
async def test_deactivated_surveyor_cannot_be_assigned_to_folder(client):
    admin = await login(client, "admin", "admin123")
    surveyor_id = await deactivate(client, admin, "surveyor")
    folder = (await client.post("/api/folders", json={"name": "Centro"}, headers=admin)).json()

    response = await client.put(
        f"/api/folders/{folder['id']}/assign", json={"surveyor_ids": [surveyor_id]}, headers=admin
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_stopped_recording_is_released(client, app_state):
    headers = await login(client, "surveyor", "surveyor123")
    recording = (await client.post("/api/recordings", headers=headers)).json()
    recording_id = recording["recording_id"]

    stopped = await client.post(f"/api/recordings/{recording_id}/stop", headers=headers)
    assert stopped.status_code == 200
    assert stopped.json()["state"] == "stopped"

    assert len(app_state.recordings) == 0
    assert (await client.get(f"/api/recordings/{recording_id}", headers=headers)).status_code == 404
