import io

from neigh.extensions import db


def test_health(client):
    resp = client.get("/api/health")
    assert resp.status_code == 200
    data = resp.get_json()
    assert data["service"] == "neigh"
    assert data["checks"] == {"database": "ok"}


def test_health_reports_db_failure(app, client, monkeypatch):
    def broken(*args, **kwargs):
        raise RuntimeError("database is gone")

    monkeypatch.setattr(db.session, "execute", broken)
    resp = client.get("/api/health")
    assert resp.status_code == 503
    assert resp.get_json()["checks"]["database"] == "fail"


def test_unknown_route_is_json(client):
    resp = client.get("/api/nope")
    assert resp.status_code == 404
    assert resp.get_json() == {"error": "Not found", "path": "/api/nope"}


def test_task_statuses(client):
    items = client.get("/api/task-statuses").get_json()["items"]
    assert [s["name"] for s in items] == ["NEW", "IN_PROGRESS", "COMPLETED", "ACCEPTED"]


def test_upload_and_fetch_chat_image(login, people):
    c = login(people.client)
    resp = c.post(
        "/api/messages/upload",
        data={"file": (io.BytesIO(b"\x89PNG\r\n\x1a\nfake"), "lawn.png")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 201, resp.get_json()
    path = resp.get_json()["path"]
    assert path.startswith(f"chat/{people.client.id}/")
    assert path.endswith(".png")

    fetched = c.get(f"/api/uploads/{path}")
    assert fetched.status_code == 200
    assert fetched.data.startswith(b"\x89PNG")


def test_upload_rejects_other_types(login, people):
    c = login(people.client)
    resp = c.post(
        "/api/messages/upload",
        data={"file": (io.BytesIO(b"MZ"), "tool.exe")},
        content_type="multipart/form-data",
    )
    assert resp.status_code == 400


def test_upload_path_traversal(login, people):
    c = login(people.client)
    assert c.get("/api/uploads/../config.py").status_code == 404


def test_messages_over_http(app, login, people):
    alice = login(people.client)
    resp = alice.post("/api/conversations", json={"participant_ids": [people.contractor.id]})
    assert resp.status_code == 201
    cid = resp.get_json()["conversation"]["id"]

    resp = alice.post("/api/messages", json={"conversation_id": cid, "content": "Are you free Saturday?"})
    assert resp.status_code == 201
    mid = resp.get_json()["message"]["id"]

    bob = login(people.contractor, app.test_client())
    assert bob.get("/api/messages/unread").get_json() == {"count": 1}
    first = bob.post(f"/api/messages/{mid}/read").get_json()
    assert first["changed"] is True
    again = bob.post(f"/api/messages/{mid}/read").get_json()
    assert again["changed"] is False
    assert again["message"]["read_at"] == first["message"]["read_at"]
    assert bob.get("/api/messages/unread").get_json() == {"count": 0}

    resp = bob.post("/api/messages/read", json={"conversation_id": cid})
    assert resp.get_json() == {"count": 0}

    eve = login(people.outsider, app.test_client())
    assert eve.get(f"/api/conversations/{cid}").status_code == 403
    assert eve.get(f"/api/messages?conversationId={cid}").status_code == 403
