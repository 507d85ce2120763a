from __future__ import annotations

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/clusters")


@router.get("/availability")
async def cached_availability(request: Request):
    probe = request.app.state.session.probe
    return {
        "statuses": [s.model_dump() for s in probe.all_cached()],
        "summary": probe.summary(),
    }


@router.get("/{cluster_id}/availability")
async def check_availability(cluster_id: str, request: Request):
    result = await request.app.state.session.probe.check(cluster_id)
    return result.model_dump()


@router.delete("/{cluster_id}/availability")
async def reset_availability(cluster_id: str, request: Request):
    request.app.state.session.probe.invalidate(cluster_id)
    return {"invalidated": cluster_id}
