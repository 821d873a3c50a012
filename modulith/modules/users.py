"""Users module: in-memory user store, its in-process capability and routes.

Other modules consume users through the ``UserDirectory`` protocol, called
directly in-process.  Only the background worker reaches users over HTTP
(through ``UserApiClient``), so in-process callers never inherit the
network failure model.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Protocol

from fastapi import APIRouter, HTTPException, Request, status

from modulith.models.schemas import User, UserCreate


class UserDirectory(Protocol):
    """In-process capability exposed by the users module."""

    async def get_user(self, user_id: int) -> User | None: ...

    async def list_users(self) -> list[User]: ...

    async def create_user(self, data: UserCreate) -> User: ...


def _seed_users() -> list[User]:
    now = datetime.now(timezone.utc)
    return [
        User(id=1, name="John Doe", email="john@example.com", created_at=now - timedelta(days=30)),
        User(id=2, name="Jane Smith", email="jane@example.com", created_at=now - timedelta(days=15)),
        User(id=3, name="Bob Johnson", email="bob@example.com", created_at=now - timedelta(days=5)),
    ]


class UserStore:
    """In-memory ``UserDirectory`` implementation."""

    def __init__(self, users: list[User] | None = None) -> None:
        self._users: dict[int, User] = {u.id: u for u in (_seed_users() if users is None else users)}
        self._lock = asyncio.Lock()

    async def get_user(self, user_id: int) -> User | None:
        return self._users.get(user_id)

    async def list_users(self) -> list[User]:
        return list(self._users.values())

    async def create_user(self, data: UserCreate) -> User:
        async with self._lock:
            next_id = max(self._users, default=0) + 1
            user = User(id=next_id, name=data.name, email=data.email)
            self._users[next_id] = user
        return user


# ── Routes ──────────────────────────────────────────────────────────────

router = APIRouter(prefix="/api/users", tags=["users"])


def _directory(request: Request) -> UserDirectory:
    return request.app.state.users


@router.get("", response_model=list[User])
async def list_users(request: Request) -> list[User]:
    return await _directory(request).list_users()


@router.get("/{user_id}", response_model=User)
async def get_user(user_id: int, request: Request) -> User:
    user = await _directory(request).get_user(user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"User with ID {user_id} not found")
    return user


@router.post("", response_model=User, status_code=status.HTTP_201_CREATED)
async def create_user(data: UserCreate, request: Request) -> User:
    return await _directory(request).create_user(data)
