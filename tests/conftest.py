from __future__ import annotations

import dataclasses
import json
from pathlib import Path
import sys
from typing import Any, Iterator


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for imports like `import persistence...` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def sandbox_project(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    """
    Redirect persistence paths to a temp project directory so tests never touch a real ./database.
    """
    import persistence.paths as paths

    def _project_root() -> Path:
        return tmp_path

    monkeypatch.setattr(paths, "project_root", _project_root)
    return tmp_path


@pytest.fixture
def base(tmp_path: Path) -> Path:
    return tmp_path / "database"


@pytest.fixture
def db(base: Path) -> Iterator[Any]:
    from persistence.disk_store import Database

    database = Database(base)
    database.lock()
    yield database
    database.unlock()


@pytest.fixture
def app_settings(sandbox_project: Path):
    from settings import get_settings

    return dataclasses.replace(
        get_settings(),
        database_path=Path("database"),
        jwt_secret="test-secret",
        issuer="http://testserver",
        debug_log_requests=True,
    )


@pytest.fixture
def client(app_settings) -> Iterator[Any]:
    from fastapi.testclient import TestClient

    import app as app_module

    with TestClient(app_module.create_app(app_settings)) as c:
        yield c


def read_index(base: Path) -> dict[str, Any]:
    return json.loads((base / "index.json").read_text(encoding="utf-8"))


def register_and_login(client, username: str, password: str = "pw") -> dict[str, str]:
    r = client.post("/users", json={"username": username, "password": password})
    assert r.status_code == 201, r.text
    r = client.post("/login", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return {"Authorization": f"Bearer {r.json()['token']}"}
