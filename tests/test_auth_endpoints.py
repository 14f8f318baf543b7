from __future__ import annotations

import time

import jwt

from conftest import register_and_login
from endpoints.auth_endpoints import decode_token, hash_password, issue_token, verify_password


def test_password_hashing():
    stored = hash_password("s3cret")
    assert stored.startswith("pbkdf2_sha256$")
    assert verify_password("s3cret", stored)
    assert not verify_password("wrong", stored)
    assert not verify_password("s3cret", "garbage")
    assert hash_password("s3cret") != stored


def test_token_round_trip(app_settings):
    token = issue_token(app_settings, "alice")
    assert decode_token(app_settings, token) == "alice"
    assert decode_token(app_settings, token + "x") is None

    expired = jwt.encode(
        {"iss": app_settings.issuer, "sub": "alice", "iat": 0, "exp": int(time.time()) - 10},
        app_settings.jwt_secret,
        algorithm=app_settings.jwt_alg,
    )
    assert decode_token(app_settings, expired) is None


def test_register_then_login(client):
    r = client.post("/users", json={"username": "alice", "password": "pw"})
    assert r.status_code == 201
    assert r.json() == {"username": "alice", "chats": []}

    r = client.post("/users", json={"username": "alice", "password": "other"})
    assert r.status_code == 400

    r = client.post("/users", json={"username": "  ", "password": "pw"})
    assert r.status_code == 400

    r = client.post("/login", json={"username": "alice", "password": "nope"})
    assert r.status_code == 400
    r = client.post("/login", json={"username": "ghost", "password": "pw"})
    assert r.status_code == 400

    r = client.post("/login", json={"username": "alice", "password": "pw"})
    assert r.status_code == 200
    body = r.json()
    assert body["user"] == {"username": "alice", "chats": []}
    assert "password_hash" not in body["user"]
    assert body["token"]


def test_user_routes_require_bearer_token(client):
    headers = register_and_login(client, "alice")
    register_and_login(client, "bob")

    assert client.get("/users").status_code == 401
    assert client.get("/users", headers={"Authorization": "Bearer nope"}).status_code == 401

    r = client.get("/users", headers=headers)
    assert r.status_code == 200
    assert sorted(u["username"] for u in r.json()) == ["alice", "bob"]

    r = client.get("/users/bob", headers=headers)
    assert r.status_code == 200
    assert r.json()["username"] == "bob"

    assert client.get("/users/carol", headers=headers).status_code == 404
