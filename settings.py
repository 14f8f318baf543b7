from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    # Server
    host: str
    port: int
    issuer: str
    cors_allow_origins: list[str]

    # Storage
    database_path: Path

    # JWT
    jwt_secret: str
    jwt_alg: str
    token_ttl_seconds: int

    # Chat relay
    chat_buffer_size: int

    # Logging / debug
    log_level: str
    debug_log_requests: bool


def get_settings() -> Settings:
    host = os.getenv("HOST", "0.0.0.0")
    port = _env_int("PORT", 3000)
    issuer = (os.getenv("ISSUER", f"http://127.0.0.1:{port}")).rstrip("/")

    # Relative paths are resolved against the project root by persistence.paths.
    database_path = Path(os.getenv("DATABASE_PATH", "database"))

    # NOTE: default is insecure; set JWT_SECRET in production
    jwt_secret = os.getenv("JWT_SECRET", "dev-only-super-secret")
    jwt_alg = os.getenv("JWT_ALG", "HS256")
    token_ttl_seconds = _env_int("TOKEN_TTL_SECONDS", 60 * 60 * 24)

    return Settings(
        host=host,
        port=port,
        issuer=issuer,
        cors_allow_origins=_env_list("CORS_ALLOW_ORIGINS", ["*"]),
        database_path=database_path,
        jwt_secret=jwt_secret,
        jwt_alg=jwt_alg,
        token_ttl_seconds=token_ttl_seconds,
        chat_buffer_size=max(1, _env_int("CHAT_BUFFER_SIZE", 10)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        debug_log_requests=_env_bool("DEBUG_LOG_REQUESTS", False),
    )
