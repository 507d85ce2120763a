"""Authenticated request dispatch with a single refresh-and-retry on 401."""
from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Any

import httpx

from mqpanel.credentials import CredentialMonitor
from mqpanel.errors import NetworkError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class ApiRequest:
    method: str
    path: str
    params: dict[str, Any] | None = None
    json: Any = None


@dataclass(frozen=True)
class _Attempt:
    request: ApiRequest
    retry_count: int = 0


class RequestGateway:
    """Attach the bearer credential to every call to the admin API.

    A 401 triggers one credential refresh through the monitor and one
    re-dispatch of the original request.  Any other outcome, including a
    second 401, is handed back untouched.
    """

    MAX_AUTH_RETRIES = 1

    def __init__(self, client: httpx.AsyncClient, monitor: CredentialMonitor) -> None:
        self._client = client
        self._monitor = monitor

    async def execute(self, request: ApiRequest) -> httpx.Response:
        attempt = _Attempt(request)
        resp = await self._dispatch(attempt)

        while resp.status_code == 401 and attempt.retry_count < self.MAX_AUTH_RETRIES:
            attempt = replace(attempt, retry_count=attempt.retry_count + 1)
            log.info("401 from %s %s; refreshing credential", request.method, request.path)
            if not await self._monitor.refresh():
                # The monitor has already cleared the session and redirected
                return resp
            resp = await self._dispatch(attempt)

        if resp.status_code == 401:
            log.warning("%s %s still unauthorized after refresh", request.method, request.path)
        return resp

    async def _dispatch(self, attempt: _Attempt) -> httpx.Response:
        req = attempt.request
        headers: dict[str, str] = {}
        token = self._monitor.store.get_access_token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            return await self._client.request(
                req.method,
                req.path,
                params=req.params,
                json=req.json,
                headers=headers,
            )
        except httpx.TimeoutException as e:
            raise NetworkError(
                "Request timeout. Please check your connection and try again.",
                path=req.path,
                timed_out=True,
            ) from e
        except httpx.TransportError as e:
            raise NetworkError(
                "Unable to connect to the server. Please check your connection.",
                path=req.path,
            ) from e

    # ---- Convenience -----------------------------------------------------

    async def get(self, path: str, params: dict[str, Any] | None = None) -> httpx.Response:
        return await self.execute(ApiRequest("GET", path, params=params))

    async def post(self, path: str, json: Any = None) -> httpx.Response:
        return await self.execute(ApiRequest("POST", path, json=json))

    async def put(self, path: str, json: Any = None) -> httpx.Response:
        return await self.execute(ApiRequest("PUT", path, json=json))

    async def delete(self, path: str) -> httpx.Response:
        return await self.execute(ApiRequest("DELETE", path))
