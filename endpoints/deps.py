from __future__ import annotations

from starlette.requests import HTTPConnection

from chat_hub import ChatHub
from persistence.interfaces import AsyncChatRepository
from settings import Settings


def get_app_settings(conn: HTTPConnection) -> Settings:
    return conn.app.state.settings


def get_repository(conn: HTTPConnection) -> AsyncChatRepository:
    return conn.app.state.repository


def get_hub(conn: HTTPConnection) -> ChatHub:
    return conn.app.state.hub
