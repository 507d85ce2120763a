"""Cached RabbitMQ resource listings and write operations, per cluster.

vhosts are passed as a query parameter (default ``/``) since they usually
contain a slash.
"""
from __future__ import annotations

from fastapi import APIRouter, HTTPException, Request

from mqpanel.services.resources import BINDING_OWNERS, LIST_TYPES

router = APIRouter(prefix="/api/clusters/{cluster_id}")


def _loader(request: Request):
    session = request.app.state.session
    url = request.url
    session.current_location = f"{url.path}?{url.query}" if url.query else url.path
    return session.loader


def _check_type(resource_type: str) -> None:
    if resource_type not in LIST_TYPES:
        raise HTTPException(status_code=404, detail=f"Unknown resource type {resource_type}")


@router.get("/{resource_type}")
async def list_resources(cluster_id: str, resource_type: str, request: Request):
    _check_type(resource_type)
    params = dict(request.query_params)
    return await _loader(request).load(cluster_id, resource_type, params)


@router.post("/{resource_type}/refresh")
async def refresh_resources(cluster_id: str, resource_type: str, request: Request):
    _check_type(resource_type)
    params = dict(request.query_params)
    return await _loader(request).refresh(cluster_id, resource_type, params)


@router.get("/{owner}/{name}/bindings")
async def list_bindings(cluster_id: str, owner: str, name: str, request: Request, vhost: str = "/"):
    if owner not in BINDING_OWNERS:
        raise HTTPException(status_code=404, detail=f"Bindings are not listed for {owner}")
    return await _loader(request).load_bindings(cluster_id, owner, vhost, name)


@router.put("/exchanges")
async def create_exchange(cluster_id: str, body: dict, request: Request):
    return await _loader(request).create_exchange(cluster_id, body)


@router.delete("/exchanges/{name}")
async def delete_exchange(cluster_id: str, name: str, request: Request, vhost: str = "/"):
    return await _loader(request).delete_exchange(cluster_id, vhost, name)


@router.put("/queues")
async def create_queue(cluster_id: str, body: dict, request: Request):
    return await _loader(request).create_queue(cluster_id, body)


@router.delete("/queues/{name}")
async def delete_queue(cluster_id: str, name: str, request: Request, vhost: str = "/"):
    return await _loader(request).delete_queue(cluster_id, vhost, name)


@router.delete("/queues/{name}/contents")
async def purge_queue(cluster_id: str, name: str, request: Request, vhost: str = "/"):
    return await _loader(request).purge_queue(cluster_id, vhost, name)


@router.post("/bindings/{source}/{destination_type}/{destination}")
async def create_binding(
    cluster_id: str,
    source: str,
    destination_type: str,
    destination: str,
    request: Request,
    vhost: str = "/",
    body: dict | None = None,
):
    if destination_type not in ("q", "e"):
        raise HTTPException(status_code=400, detail="destination_type must be 'q' or 'e'")
    return await _loader(request).create_binding(
        cluster_id,
        vhost,
        source,
        destination,
        destination_type=destination_type,
        body=body,
    )
