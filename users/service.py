"""
UserDirectory: read access to user records and their profiles.
"""

from __future__ import annotations

from typing import List

from auth.errors import NotFoundError
from auth.schemas import UserData
from database.store import Store


class UserDirectory:
    def __init__(self, store: Store) -> None:
        self._store = store

    async def find_all(self) -> List[UserData]:
        async with self._store.transaction() as tx:
            users = await tx.users.list_all()
        return [UserData.model_validate(u) for u in users]

    async def find_one(self, username: str) -> UserData:
        async with self._store.transaction() as tx:
            user = await tx.users.get_by_username(username)
        if user is None:
            raise NotFoundError("User not found.")
        return UserData.model_validate(user)
