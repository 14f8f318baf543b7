from __future__ import annotations

import os

from fastapi.testclient import TestClient


def test_app_lifespan_locks_and_releases_database(app_settings, sandbox_project):
    import app as app_module

    base = sandbox_project / "database"
    with TestClient(app_module.create_app(app_settings)) as client:
        assert (base / "version").read_text(encoding="utf-8") == "1"
        assert (base / "lock").read_text(encoding="utf-8") == str(os.getpid())

        r = client.get("/users")
        assert r.status_code == 401

    assert not (base / "lock").exists()


def test_store_errors_map_to_json_500(client, sandbox_project):
    from conftest import register_and_login

    headers = register_and_login(client, "alice")
    (sandbox_project / "database" / "index.json").write_text("[broken", encoding="utf-8")

    r = client.get("/users/alice", headers=headers)
    assert r.status_code == 500
    assert r.json()["type"] == "malformed"
