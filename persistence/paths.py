from __future__ import annotations

from pathlib import Path


def project_root() -> Path:
    # persistence/paths.py -> persistence -> project root
    return Path(__file__).resolve().parents[1]


def database_dir(configured: Path) -> Path:
    """Resolve the configured database directory; relative paths hang off the project root."""
    if configured.is_absolute():
        return configured
    return project_root() / configured
