"""
User directory routes.

Route prefix: /api/v1/users
"""

from __future__ import annotations

from typing import List

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from auth.dependencies import CurrentUser, get_current_user, get_store
from auth.schemas import UserData
from database.store import Store
from users.service import UserDirectory

router = APIRouter(tags=["users"])


class UsersResponse(BaseModel):
    data: List[UserData]


class UserResponse(BaseModel):
    data: UserData


def get_user_directory(store: Store = Depends(get_store)) -> UserDirectory:
    return UserDirectory(store)


@router.get("", response_model=UsersResponse)
async def list_users(
    _: CurrentUser = Depends(get_current_user),
    directory: UserDirectory = Depends(get_user_directory),
) -> UsersResponse:
    """All users with their profiles."""
    return UsersResponse(data=await directory.find_all())


@router.get("/{username}", response_model=UserResponse)
async def get_user(
    username: str,
    _: CurrentUser = Depends(get_current_user),
    directory: UserDirectory = Depends(get_user_directory),
) -> UserResponse:
    return UserResponse(data=await directory.find_one(username))
