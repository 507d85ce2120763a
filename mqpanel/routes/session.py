from __future__ import annotations

from fastapi import APIRouter, Request
from pydantic import BaseModel

from mqpanel.errors import AuthenticationRequired

router = APIRouter(prefix="/api/session")


class LoginBody(BaseModel):
    username: str | None = None
    password: str | None = None


def _state(session) -> dict:
    return {
        "authenticated": session.authenticated,
        "status": session.monitor.get_status().model_dump(),
        "refresh_in_progress": session.monitor.refresh_in_progress,
        "login_url": session.login_url,
    }


@router.get("")
async def get_session(request: Request):
    return _state(request.app.state.session)


@router.post("/login")
async def login(request: Request, body: LoginBody | None = None):
    session = request.app.state.session
    body = body or LoginBody()
    await session.login(body.username, body.password)
    return _state(session)


@router.post("/refresh")
async def refresh(request: Request):
    session = request.app.state.session
    if not await session.monitor.force_refresh():
        raise AuthenticationRequired(401, "Session expired. Please log in again.")
    return _state(session)


@router.post("/logout")
async def logout(request: Request):
    session = request.app.state.session
    await session.logout()
    return _state(session)
