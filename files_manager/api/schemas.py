from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict


class ErrorBody(BaseModel):
    error: str


class StatusResponse(BaseModel):
    redis: bool
    db: bool


class StatsResponse(BaseModel):
    users: int
    files: int


class UserCreateRequest(BaseModel):
    """Registration body.

    Both fields are optional at the schema level so that a missing value is
    reported by the service as ``Missing email`` / ``Missing password``.
    """

    model_config = ConfigDict(extra="ignore")

    email: Optional[str] = None
    password: Optional[str] = None


class UserResponse(BaseModel):
    id: str
    email: str


class TokenResponse(BaseModel):
    token: str
