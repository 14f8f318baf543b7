from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel

from persistence.chat_state import UserRecord, UserView
from persistence.interfaces import AsyncChatRepository

from .auth_endpoints import current_user, hash_password
from .deps import get_repository

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


class UserInput(BaseModel):
    username: str
    password: str


@router.post("", status_code=status.HTTP_201_CREATED, response_model=UserView)
async def create_user(body: UserInput, repo: AsyncChatRepository = Depends(get_repository)) -> UserView:
    username = body.username.strip()
    if not username or not body.password:
        raise HTTPException(status_code=400, detail="username and password are required")
    if await repo.get_user(username) is not None:
        raise HTTPException(status_code=400, detail="username already taken")

    user = UserRecord(username=username, password_hash=hash_password(body.password))
    await repo.insert_user(user)
    logger.info("USERS: created %s", username)
    return user.to_view()


@router.get("", response_model=list[UserView])
async def list_users(
    _: UserRecord = Depends(current_user),
    repo: AsyncChatRepository = Depends(get_repository),
) -> list[UserView]:
    return [u.to_view() for u in await repo.list_users()]


@router.get("/{username}", response_model=UserView)
async def get_user(
    username: str,
    _: UserRecord = Depends(current_user),
    repo: AsyncChatRepository = Depends(get_repository),
) -> UserView:
    user = await repo.get_user(username)
    if user is None:
        raise HTTPException(status_code=404, detail="user not found")
    return user.to_view()
