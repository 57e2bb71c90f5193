from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Header, Response

from files_manager.api.schemas import (
    ErrorBody,
    StatsResponse,
    StatusResponse,
    TokenResponse,
    UserCreateRequest,
    UserResponse,
)
from files_manager.service.runtime import get_runtime

router = APIRouter()

_UNAUTHORIZED = {401: {"model": ErrorBody}}


@router.get("/status", response_model=StatusResponse, tags=["app"])
async def get_status():
    """Report whether each backing store is currently reachable."""
    runtime = get_runtime()
    return StatusResponse(**await runtime.status())


@router.get(
    "/stats",
    response_model=StatsResponse,
    responses={500: {"model": ErrorBody}},
    tags=["app"],
)
async def get_stats():
    runtime = get_runtime()
    return StatsResponse(**await runtime.stats())


@router.post(
    "/users",
    response_model=UserResponse,
    status_code=201,
    responses={400: {"model": ErrorBody}},
    tags=["users"],
)
async def post_new(body: Optional[UserCreateRequest] = None):
    """Register a user.

    Raises:
        400: ``Missing email``, ``Missing password`` or ``Already exist``
    """
    runtime = get_runtime()
    body = body or UserCreateRequest()
    user = await runtime.sessions.register_user(body.email, body.password)
    return UserResponse(id=user.id, email=user.email)


@router.get("/connect", response_model=TokenResponse, responses=_UNAUTHORIZED, tags=["auth"])
async def get_connect(authorization: Optional[str] = Header(None)):
    """Exchange HTTP Basic credentials for a session token."""
    runtime = get_runtime()
    token = await runtime.sessions.sign_in(authorization)
    return TokenResponse(token=token)


@router.get("/disconnect", status_code=204, responses=_UNAUTHORIZED, tags=["auth"])
async def get_disconnect(x_token: Optional[str] = Header(None, alias="X-Token")):
    runtime = get_runtime()
    await runtime.sessions.sign_out(x_token)
    return Response(status_code=204)


@router.get("/users/me", response_model=UserResponse, responses=_UNAUTHORIZED, tags=["users"])
async def get_me(x_token: Optional[str] = Header(None, alias="X-Token")):
    runtime = get_runtime()
    user = await runtime.sessions.fetch_identity(x_token)
    return UserResponse(id=user.id, email=user.email)
