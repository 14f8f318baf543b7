from __future__ import annotations

import os
import subprocess
import sys
import textwrap
from pathlib import Path

import pytest

from persistence.disk_store import Database
from persistence.errors import AlreadyLockedError, UnlockedError
from persistence.locks import PidLockFile, pid_alive

REPO_ROOT = Path(__file__).resolve().parents[1]

_SECOND_PROCESS = textwrap.dedent(
    """
    import os, sys
    from pathlib import Path
    from persistence.disk_store import Database
    from persistence.errors import AlreadyLockedError

    db = Database(Path(sys.argv[1]))
    try:
        db.lock()
    except AlreadyLockedError as e:
        print(f"already-locked:{e.pid}")
        sys.exit(0)
    print(f"acquired:{os.getpid()}", flush=True)
    if sys.argv[2] == "crash":
        os._exit(0)
    db.unlock()
    """
)


def _run_second_process(base: Path, mode: str = "clean") -> str:
    env = {**os.environ, "PYTHONPATH": str(REPO_ROOT)}
    proc = subprocess.run(
        [sys.executable, "-c", _SECOND_PROCESS, str(base), mode],
        cwd=REPO_ROOT,
        env=env,
        capture_output=True,
        text=True,
        check=True,
        timeout=60,
    )
    return proc.stdout.strip()


def _dead_pid() -> int:
    proc = subprocess.Popen([sys.executable, "-c", "pass"])
    proc.wait()
    return proc.pid


def test_open_creates_layout(base: Path):
    db = Database(base)
    assert base.is_dir()
    assert (base / "index.json").read_text(encoding="utf-8").strip() == "{}"
    assert (base / "version").read_text(encoding="utf-8") == "1"
    assert not (base / "lock").exists()
    assert not db.locked


def test_lock_writes_pid_and_unlock_removes_it(base: Path):
    db = Database(base)
    db.lock()
    assert db.locked
    assert (base / "lock").read_text(encoding="utf-8") == str(os.getpid())

    db.lock()  # own pid: no-op
    assert db.locked

    db.unlock()
    assert not db.locked
    assert not (base / "lock").exists()


def test_reopen_by_holder_starts_locked(base: Path):
    Database(base).lock()
    again = Database(base)
    assert again.locked
    again.unlock()


def test_writes_require_lock(base: Path):
    db = Database(base)
    users = db.collection("users")
    with pytest.raises(UnlockedError):
        users.add({"username": "alice"})
    with pytest.raises(UnlockedError):
        users.doc("x").set({"a": 1})
    with pytest.raises(UnlockedError):
        users.doc("x").delete()
    with pytest.raises(UnlockedError):
        users.doc("x").update({"a": 2})
    assert not (base / "users").exists()


def test_live_foreign_owner_is_reported(base: Path):
    Database(base)
    owner = os.getppid()
    assert pid_alive(owner)
    (base / "lock").write_text(str(owner), encoding="utf-8")

    db = Database(base)
    with pytest.raises(AlreadyLockedError) as exc_info:
        db.lock()
    assert exc_info.value.pid == owner
    assert (base / "lock").read_text(encoding="utf-8") == str(owner)


def test_dead_owner_is_reclaimed(base: Path, caplog: pytest.LogCaptureFixture):
    Database(base)
    dead = _dead_pid()
    (base / "lock").write_text(str(dead), encoding="utf-8")

    db = Database(base)
    with caplog.at_level("WARNING", logger="persistence.locks"):
        db.lock()
    assert db.locked
    assert (base / "lock").read_text(encoding="utf-8") == str(os.getpid())
    assert any("reclaiming" in r.getMessage() for r in caplog.records)


def test_garbage_lock_contents_are_overwritten(base: Path):
    Database(base)
    (base / "lock").write_text("not-a-pid", encoding="utf-8")
    db = Database(base)
    db.lock()
    assert PidLockFile(base / "lock").read_owner() == os.getpid()


def test_second_process_sees_already_locked(base: Path):
    db = Database(base)
    db.lock()
    try:
        assert _run_second_process(base) == f"already-locked:{os.getpid()}"
    finally:
        db.unlock()


def test_second_process_reclaims_after_holder_dies(base: Path):
    Database(base)
    out = _run_second_process(base, "crash")
    assert out.startswith("acquired:")
    crashed_pid = int(out.split(":", 1)[1])
    assert (base / "lock").read_text(encoding="utf-8") == str(crashed_pid)

    db = Database(base)
    assert not db.locked
    db.lock()
    assert (base / "lock").read_text(encoding="utf-8") == str(os.getpid())
    db.collection("users").add({"username": "alice"})
    db.unlock()


def test_context_manager_holds_lock_for_block(base: Path):
    with Database(base) as db:
        assert db.locked
        db.collection("chats").add({"name": "g"})
    assert not db.locked
    assert not (base / "lock").exists()
