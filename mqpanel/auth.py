from __future__ import annotations

import hmac

from fastapi import HTTPException, Request

from mqpanel.config import settings

# Reachable without a key so liveness checks keep working
_PUBLIC_PATHS = frozenset({"/healthz"})


async def verify_api_key(request: Request) -> None:
    """Dependency guarding the local API with X-API-KEY when MQPANEL_API_KEY is set."""
    expected = settings.API_KEY
    if not expected or request.url.path in _PUBLIC_PATHS:
        return
    supplied = request.headers.get("X-API-KEY", "")
    if not hmac.compare_digest(supplied.encode(), expected.encode()):
        raise HTTPException(status_code=401, detail="Invalid or missing API key")
