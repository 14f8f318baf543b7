# auth_endpoints.py
from __future__ import annotations

import hashlib
import hmac
import logging
import secrets
import time
from typing import Any

import jwt
from fastapi import APIRouter, Depends, HTTPException, Request, WebSocket, WebSocketException, status
from pydantic import BaseModel

from persistence.chat_state import UserRecord, UserView
from persistence.interfaces import AsyncChatRepository
from settings import Settings

from .deps import get_app_settings, get_repository

router = APIRouter(tags=["auth"])
logger = logging.getLogger(__name__)

PBKDF2_ITERATIONS = 120_000


class LoginRequest(BaseModel):
    username: str
    password: str


class Credentials(BaseModel):
    token: str
    user: UserView


# -------------------------------------------------------------------
# Passwords
# -------------------------------------------------------------------
def hash_password(password: str, *, salt: str | None = None) -> str:
    salt = salt or secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), bytes.fromhex(salt), PBKDF2_ITERATIONS)
    return f"pbkdf2_sha256${salt}${digest.hex()}"


def verify_password(password: str, stored: str) -> bool:
    try:
        scheme, salt, _ = stored.split("$", 2)
    except ValueError:
        return False
    if scheme != "pbkdf2_sha256":
        return False
    return hmac.compare_digest(hash_password(password, salt=salt), stored)


# -------------------------------------------------------------------
# Tokens
# -------------------------------------------------------------------
def issue_token(settings: Settings, username: str) -> str:
    now = int(time.time())
    payload: dict[str, Any] = {
        "iss": settings.issuer,
        "sub": username,
        "iat": now,
        "exp": now + settings.token_ttl_seconds,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_alg)


def decode_token(settings: Settings, token: str) -> str | None:
    """Return the username a token was issued for, or None if it does not verify."""
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_alg],
            issuer=settings.issuer,
            options={"require": ["exp", "sub", "iss"]},
        )
    except jwt.PyJWTError as e:
        logger.info("AUTH: jwt decode failed: %r", e)
        return None
    sub = payload.get("sub")
    if not isinstance(sub, str) or not sub:
        logger.info("AUTH: bad sub")
        return None
    return sub


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization or not authorization.lower().startswith("bearer "):
        return None
    token = authorization.split(" ", 1)[1].strip()
    return token or None


async def _resolve_user(settings: Settings, repo: AsyncChatRepository, token: str | None) -> UserRecord | None:
    if token is None:
        return None
    username = decode_token(settings, token)
    if username is None:
        return None
    return await repo.get_user(username)


async def current_user(
    request: Request,
    settings: Settings = Depends(get_app_settings),
    repo: AsyncChatRepository = Depends(get_repository),
) -> UserRecord:
    token = _bearer_token(request.headers.get("Authorization"))
    user = await _resolve_user(settings, repo, token)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="invalid or missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


async def websocket_user(
    websocket: WebSocket,
    settings: Settings = Depends(get_app_settings),
    repo: AsyncChatRepository = Depends(get_repository),
) -> UserRecord:
    # Browsers cannot set headers on a WebSocket handshake, so accept ?token= too.
    token = _bearer_token(websocket.headers.get("Authorization")) or websocket.query_params.get("token")
    user = await _resolve_user(settings, repo, token)
    if user is None:
        raise WebSocketException(code=status.WS_1008_POLICY_VIOLATION, reason="unauthorized")
    return user


# -------------------------------------------------------------------
# Login
# -------------------------------------------------------------------
@router.post("/login", response_model=Credentials)
async def login(
    body: LoginRequest,
    settings: Settings = Depends(get_app_settings),
    repo: AsyncChatRepository = Depends(get_repository),
) -> Credentials:
    user = await repo.get_user(body.username.strip())
    if user is None or not verify_password(body.password, user.password_hash):
        raise HTTPException(status_code=400, detail="invalid username or password")
    logger.info("LOGIN: %s", user.username)
    return Credentials(token=issue_token(settings, user.username), user=user.to_view())
