import pytest

from neigh import create_app
from neigh.extensions import db
from neigh.models.user import User
from neigh.security import issue_token

from .conftest import PASSWORD, ConfigForTests


def test_register_logs_in(client):
    resp = client.post("/api/auth/register", json={
        "name": "Carol", "email": "Carol@Example.com", "password": "garden123",
    })
    assert resp.status_code == 201, resp.get_json()
    user = resp.get_json()["user"]
    assert user["email"] == "carol@example.com"
    assert user["role"] == "user"
    assert user["email_verified"] is False

    me = client.get("/api/auth/me").get_json()["user"]
    assert me["id"] == user["id"]


@pytest.mark.parametrize("password", ["short1", "lettersonly", "12345678"])
def test_register_password_rules(client, password):
    resp = client.post("/api/auth/register", json={
        "name": "Carol", "email": "carol@example.com", "password": password,
    })
    assert resp.status_code == 400
    assert "password" in resp.get_json()["details"]


def test_register_duplicate_email(client, people):
    resp = client.post("/api/auth/register", json={
        "name": "Alice Again", "email": people.client.email, "password": "garden123",
    })
    assert resp.status_code == 400
    assert "email" in resp.get_json()["details"]


def test_login_logout(client, people):
    resp = client.post("/api/auth/login", json={"email": people.client.email, "password": "wrong-pass1"})
    assert resp.status_code == 401

    resp = client.post("/api/auth/login", json={"email": people.client.email.upper(), "password": PASSWORD})
    assert resp.status_code == 200
    assert client.get("/api/auth/me").status_code == 200

    assert client.post("/api/auth/logout").status_code == 200
    assert client.get("/api/auth/me").status_code == 401


def test_update_profile(login, people):
    c = login(people.client)
    resp = c.put("/api/users/me", json={
        "phone": "555-0100",
        "payment_method": "PAYPAL",
        "address": {"street": "1 Elm St", "city": "Springfield"},
    })
    assert resp.status_code == 200, resp.get_json()
    user = resp.get_json()["user"]
    assert user["payment_method"] == "PAYPAL"
    assert user["address"]["city"] == "Springfield"
    assert user["name"] == "Alice Client"

    assert c.put("/api/users/me", json={"payment_method": "CASH"}).status_code == 400


def test_public_profile_hides_private_fields(login, people):
    c = login(people.client)
    user = c.get(f"/api/users/{people.contractor.id}").get_json()["user"]
    assert "email" not in user
    assert c.get("/api/users/9999").status_code == 404


def test_forgot_password_does_not_leak(client, people):
    for email in (people.client.email, "nobody@example.com"):
        resp = client.post("/api/auth/forgot-password", json={"email": email})
        assert resp.status_code == 200


def test_reset_password(app, client, people):
    with app.app_context():
        token = issue_token(people.client.id, "pwd-reset")

    resp = client.post(f"/api/auth/reset-password/{token}",
                       json={"password": "newpass99", "password2": "newpass99"})
    assert resp.status_code == 200
    resp = client.post("/api/auth/login", json={"email": people.client.email, "password": "newpass99"})
    assert resp.status_code == 200

    assert client.post("/api/auth/reset-password/garbage",
                       json={"password": "newpass99", "password2": "newpass99"}).status_code == 400


def test_verify_email(app, client, people):
    with app.app_context():
        token = issue_token(people.client.id, "email-verify")
    resp = client.get(f"/api/auth/verify/{token}")
    assert resp.status_code == 200
    assert resp.get_json()["user"]["email_verified"] is True


def test_admin_routes_need_admin(app, login, people):
    user = login(people.client)
    assert user.get("/api/admin/overview").status_code == 403

    admin = login(people.admin, app.test_client())
    data = admin.get("/api/admin/overview").get_json()
    assert data["users"] == 4
    assert data["assignments"]["NEW"] == 0

    resp = admin.patch(f"/api/admin/users/{people.client.id}/role", json={"role": "admin"})
    assert resp.get_json()["user"]["role"] == "admin"
    assert admin.patch(f"/api/admin/users/{people.admin.id}/role", json={"role": "user"}).status_code == 400


def test_csrf_header_is_enforced(tmp_path):
    class CsrfConfig(ConfigForTests):
        WTF_CSRF_ENABLED = True
        UPLOAD_FOLDER = str(tmp_path / "uploads")

    app = create_app(CsrfConfig)
    with app.app_context():
        db.create_all()

    c = app.test_client()
    body = {"email": "nobody@example.com", "password": "whatever1"}
    resp = c.post("/api/auth/login", json=body)
    assert resp.status_code == 400
    assert "CSRF" in resp.get_json()["error"]

    token = c.get("/api/auth/csrf").get_json()["csrf_token"]
    resp = c.post("/api/auth/login", json=body, headers={"X-CSRFToken": token})
    assert resp.status_code == 401

    # over https the token alone is not enough, the referrer must match too
    resp = c.post("/api/auth/login", json=body, headers={"X-CSRFToken": token},
                  base_url="https://localhost")
    assert resp.status_code == 400
    assert "referrer" in resp.get_json()["error"]
    resp = c.post("/api/auth/login", json=body,
                  headers={"X-CSRFToken": token, "Referer": "https://localhost/"},
                  base_url="https://localhost")
    assert resp.status_code == 401

    with app.app_context():
        assert User.query.count() == 0
        db.drop_all()
