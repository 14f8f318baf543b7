from __future__ import annotations

import logging
import os
from pathlib import Path

from .errors import AlreadyLockedError, StoreIOError

logger = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Zero-signal liveness check."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by someone else
        return True
    except OSError:
        return False
    return True


class PidLockFile:
    """
    Advisory cross-process lock: a file whose contents are the owner's decimal PID.

    Only detects other processes; it does not stop a process that ignores it.
    """

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def read_owner(self) -> int | None:
        """Return the PID written in the lock file, or None if there is no usable one."""
        try:
            raw = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as e:
            raise StoreIOError(f"failed to read {self._path}: {e}") from e
        try:
            return int(raw.strip())
        except ValueError:
            logger.warning("LOCK: ignoring unparseable lock contents %r in %s", raw, self._path)
            return None

    def held_by(self, pid: int) -> bool:
        return self.read_owner() == pid

    def acquire(self, pid: int) -> None:
        owner = self.read_owner()
        if owner == pid:
            return
        if owner is not None:
            if pid_alive(owner):
                raise AlreadyLockedError(owner)
            logger.warning("LOCK: process %s died without unlocking %s; reclaiming", owner, self._path)
        elif self._path.exists():
            logger.warning("LOCK: overwriting unusable lock file %s", self._path)
        try:
            self._path.write_text(str(pid), encoding="utf-8")
        except OSError as e:
            raise StoreIOError(f"failed to write {self._path}: {e}") from e
        logger.debug("LOCK: acquired %s for pid %s", self._path, pid)

    def release(self) -> None:
        try:
            self._path.unlink(missing_ok=True)
        except OSError as e:
            raise StoreIOError(f"failed to remove {self._path}: {e}") from e
        logger.debug("LOCK: released %s", self._path)
