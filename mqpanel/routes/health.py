from __future__ import annotations

import time

from fastapi import APIRouter, Request

router = APIRouter()

_start_time = time.time()
_VERSION = "0.1.0"


@router.get("/healthz")
async def healthz(request: Request):
    session = request.app.state.session
    return {
        "status": "ok",
        "version": _VERSION,
        "uptime_seconds": round(time.time() - _start_time),
        "credential": session.monitor.get_status().model_dump(),
        "cache": session.caches.stats(),
        "availability": session.probe.summary(),
    }


@router.get("/api/cache/stats")
async def cache_stats(request: Request):
    return request.app.state.session.caches.stats()


@router.delete("/api/cache")
async def clear_cache(request: Request):
    request.app.state.session.caches.clear()
    return {"cleared": True}


@router.delete("/api/cache/{cluster_id}")
async def clear_cluster_cache(cluster_id: str, request: Request):
    request.app.state.session.caches.invalidate_target(cluster_id)
    return {"cleared": True, "cluster_id": cluster_id}
