"""
End-to-end checks through the FastAPI app against a temporary SQLite database.
"""
from __future__ import annotations

from urllib.parse import urlparse

import pytest
from fastapi.testclient import TestClient

from portfolio.app import app
from portfolio.db import session as db_session
from portfolio.db.models import User, UserSession
from portfolio.repositories.sql_repository import SQLRecordStore
from portfolio.routers import users as users_router


@pytest.fixture()
def client(db_env, outbox, monkeypatch):
    monkeypatch.setattr(users_router.user_service, "notify", outbox)
    return TestClient(app)


def _register(client, outbox, name="A", email="a@x.com", password="p1"):
    resp = client.post("/user/register", json={"name": name, "email": email, "password": password})
    assert resp.status_code == 201, resp.text
    activation_url = outbox.last["text"].split(": ", 1)[1]
    return resp.json(), urlparse(activation_url).path


def _login(client, email="a@x.com", password="p1"):
    resp = client.post("/user/login", json={"email": email, "password": password})
    assert resp.status_code == 200, resp.text
    return {"Authorization": f"Bearer {resp.json()['token']}"}


def _active_user(client, outbox, name="A", email="a@x.com", password="p1"):
    user, activation_path = _register(client, outbox, name, email, password)
    assert client.get(activation_path, follow_redirects=False).status_code == 303
    return user, _login(client, email, password)


def test_register_activate_login_flow(client, outbox):
    user, activation_path = _register(client, outbox)
    assert user["activation_state"] == "pending"
    assert "password_hash" not in user and "activation_key" not in user

    pending = client.post("/user/login", json={"email": "a@x.com", "password": "p1"})
    assert pending.status_code == 403

    resp = client.get(activation_path, follow_redirects=False)
    assert resp.status_code == 303
    assert resp.headers["location"] == "http://front.test"

    again = client.get(activation_path, follow_redirects=False)
    assert again.status_code == 403
    assert again.json()["error"] == "forbidden"

    resp = client.post("/user/login", json={"email": "a@x.com", "password": "p1"})
    assert resp.status_code == 200
    assert resp.json()["id"] == user["id"]
    assert resp.json()["token"]


def test_register_errors(client, outbox):
    assert client.post("/user/register").status_code == 400
    assert client.post("/user/register", json={}).status_code == 400
    missing = client.post("/user/register", json={"name": "A", "email": "a@x.com"})
    assert missing.status_code == 400
    assert missing.json()["field"] == "password"

    _register(client, outbox)
    dup = client.post("/user/register", json={"name": "B", "email": "a@x.com", "password": "p2"})
    assert dup.status_code == 409


def test_login_failures_look_the_same(client, outbox):
    _active_user(client, outbox)

    wrong_password = client.post("/user/login", json={"email": "a@x.com", "password": "nope"})
    unknown_email = client.post("/user/login", json={"email": "b@x.com", "password": "p1"})

    assert wrong_password.status_code == unknown_email.status_code == 401
    assert wrong_password.json() == unknown_email.json()


def test_login_required_routes(client, outbox):
    assert client.get("/userlist").status_code == 401
    assert client.get("/user/current").status_code == 401
    assert client.get("/userlist", headers={"Authorization": "Bearer nope"}).status_code == 401

    user, headers = _active_user(client, outbox)
    assert client.get("/user/current", headers=headers).json()["id"] == user["id"]
    assert [u["id"] for u in client.get("/userlist", headers=headers).json()] == [user["id"]]
    assert client.get(f"/users/{user['id']}").status_code == 200
    assert client.get("/users/missing").status_code == 404

    assert client.post("/user/logout", headers=headers).status_code == 204
    assert client.get("/user/current", headers=headers).status_code == 401


def test_profile_and_following_updates(client, outbox):
    alice, alice_headers = _active_user(client, outbox, "Alice", "alice@x.com")
    bob, bob_headers = _active_user(client, outbox, "Bob", "bob@x.com")

    resp = client.put(f"/users/{alice['id']}", json={"description": "backend dev", "mvp": True}, headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["description"] == "backend dev"
    assert resp.json()["name"] == "Alice"

    forbidden = client.put(f"/users/{alice['id']}", json={"name": "Bob was here"}, headers=bob_headers)
    assert forbidden.status_code == 403

    for _ in range(2):
        resp = client.put(f"/users/{alice['id']}/following", json={"following": bob["id"], "state": True}, headers=alice_headers)
        assert resp.status_code == 200
    assert resp.json()["following"] == [bob["id"]]

    bad = client.put(f"/users/{alice['id']}/following", json={"following": bob["id"], "state": "yes"}, headers=alice_headers)
    assert bad.status_code == 400


def test_password_reset_flow(client, outbox):
    user, headers = _active_user(client, outbox)

    assert client.post("/user/password-reset", json={"email": "nobody@x.com"}).status_code == 202
    assert client.post("/user/password-reset", json={"email": "a@x.com"}).status_code == 202
    token = outbox.last["text"].rsplit("token=", 1)[1]

    missing = client.put(f"/users/{user['id']}/password", json={"password": "p2"}, headers=headers)
    assert missing.status_code == 400

    resp = client.put(f"/users/{user['id']}/password", json={"password": "p2", "password_reset": token}, headers=headers)
    assert resp.status_code == 200
    reused = client.put(f"/users/{user['id']}/password", json={"password": "p3", "password_reset": token}, headers=headers)
    assert reused.status_code == 403

    _login(client, password="p2")


def test_delete_user(client, outbox):
    alice, alice_headers = _active_user(client, outbox, "Alice", "alice@x.com")
    bob, bob_headers = _active_user(client, outbox, "Bob", "bob@x.com")

    assert client.delete(f"/users/{alice['id']}", headers=bob_headers).status_code == 403
    resp = client.delete(f"/users/{alice['id']}", headers=alice_headers)
    assert resp.status_code == 200
    assert resp.json()["id"] == alice["id"]
    assert client.get(f"/users/{alice['id']}").status_code == 404


def test_owned_record_endpoints(client, outbox):
    alice, alice_headers = _active_user(client, outbox, "Alice", "alice@x.com")
    bob, bob_headers = _active_user(client, outbox, "Bob", "bob@x.com")

    assert client.post("/awards/create", json={"title": "Hackathon"}).status_code == 401
    resp = client.post("/awards/create", json={"title": "Hackathon", "description": "1st"}, headers=alice_headers)
    assert resp.status_code == 201
    award = resp.json()
    assert award["awardee_id"] == alice["id"]

    assert client.get(f"/awards/{award['id']}").json()["title"] == "Hackathon"
    assert [a["id"] for a in client.get("/awards", params={"user_id": alice["id"]}).json()] == [award["id"]]
    assert client.get("/awards", params={"user_id": bob["id"]}).json() == []
    assert client.get("/awards/missing").status_code == 404

    assert client.put(f"/awards/{award['id']}", json={"title": "Mine now"}, headers=bob_headers).status_code == 403
    resp = client.put(f"/awards/{award['id']}", json={"title": "Hackathon 2nd"}, headers=alice_headers)
    assert resp.json()["title"] == "Hackathon 2nd"

    missing_title = client.post("/careers/create", json={"description": "no title"}, headers=alice_headers)
    assert missing_title.status_code == 400

    assert client.delete(f"/awards/{award['id']}", headers=bob_headers).status_code == 403
    assert client.delete(f"/awards/{award['id']}", headers=alice_headers).status_code == 200
    assert client.get(f"/awards/{award['id']}").status_code == 404


def test_security_headers(client):
    resp = client.get("/users/missing")
    assert resp.headers["x-content-type-options"] == "nosniff"
    assert resp.headers["x-frame-options"] == "DENY"


def test_mistyped_fields_are_bad_requests(client, outbox):
    alice, headers = _active_user(client, outbox)

    resp = client.post("/awards/create", json={"title": {"nested": 1}}, headers=headers)
    assert resp.status_code == 400
    assert resp.json()["field"] == "title"

    award = client.post("/awards/create", json={"title": "Hackathon"}, headers=headers).json()
    assert client.put(f"/awards/{award['id']}", json={"description": ["a"]}, headers=headers).status_code == 400

    resp = client.put(f"/users/{alice['id']}", json={"category": ["a", "b"]}, headers=headers)
    assert resp.status_code == 400
    assert resp.json() == {"error": "validation", "detail": resp.json()["detail"], "entity": "user", "field": "category"}


def test_session_store_failure_keeps_error_shape(client, outbox):
    _register(client, outbox)
    SQLRecordStore(User).update_where({"email": "a@x.com"}, {"activation_state": "active"})
    UserSession.__table__.drop(db_session.get_engine())

    resp = client.post("/user/login", json={"email": "a@x.com", "password": "p1"})

    assert resp.status_code == 500
    assert resp.json() == {"error": "internal", "detail": "Internal error"}
