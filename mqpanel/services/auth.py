"""Admin API authentication endpoints.

Login and refresh go straight through the raw ``httpx`` client: they must
never pass through the gateway's refresh-on-401 logic themselves.
"""
from __future__ import annotations

import logging

import httpx

from mqpanel.credentials import Refresher, TokenPair
from mqpanel.errors import raise_for_api_status
from mqpanel.gateway import RequestGateway

log = logging.getLogger(__name__)


def _token_pair(data: dict) -> TokenPair:
    return TokenPair(
        access_token=data["accessToken"],
        refresh_token=data.get("refreshToken"),
    )


async def login(client: httpx.AsyncClient, username: str, password: str) -> TokenPair:
    resp = await client.post(
        "/auth/login", json={"username": username, "password": password}
    )
    raise_for_api_status(resp)
    log.info("Authenticated with admin API as %s", username)
    return _token_pair(resp.json())


async def refresh(client: httpx.AsyncClient, refresh_token: str) -> TokenPair:
    resp = await client.post("/auth/refresh", json={"refreshToken": refresh_token})
    raise_for_api_status(resp)
    return _token_pair(resp.json())


def make_refresher(client: httpx.AsyncClient) -> Refresher:
    async def _refresher(refresh_token: str) -> TokenPair:
        return await refresh(client, refresh_token)

    return _refresher


async def logout(gateway: RequestGateway) -> None:
    """Tell the server the session is over; local state is cleared by the caller."""
    try:
        resp = await gateway.post("/auth/logout")
        raise_for_api_status(resp)
    except Exception as e:
        # Local tokens are dropped regardless
        log.warning("Server-side logout failed: %s", e)
