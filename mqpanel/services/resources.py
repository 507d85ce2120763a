"""RabbitMQ resource endpoints proxied by the admin API."""
from __future__ import annotations

from typing import Any
from urllib.parse import quote

from mqpanel.errors import raise_for_api_status
from mqpanel.gateway import RequestGateway

LIST_TYPES = ("connections", "channels", "exchanges", "queues")
BINDING_OWNERS = ("exchanges", "queues")


def _seg(value: str) -> str:
    # vhost "/" must travel as %2F
    return quote(value, safe="")


def _base(cluster_id: str) -> str:
    return f"/rabbitmq/{_seg(cluster_id)}/resources"


def _json_or_none(resp) -> Any:
    raise_for_api_status(resp)
    return resp.json() if resp.content else None


async def fetch_list(
    gateway: RequestGateway, cluster_id: str, resource_type: str, params: dict | None = None
) -> dict:
    """Return one page of connections, channels, exchanges or queues."""
    if resource_type not in LIST_TYPES:
        raise ValueError(f"Unknown resource type {resource_type!r}")
    resp = await gateway.get(f"{_base(cluster_id)}/{resource_type}", params=params or None)
    return _json_or_none(resp)


async def fetch_bindings(
    gateway: RequestGateway, cluster_id: str, owner: str, vhost: str, name: str
) -> list[dict]:
    """Bindings of one exchange (``owner="exchanges"``) or queue."""
    if owner not in BINDING_OWNERS:
        raise ValueError(f"Bindings are listed per exchange or queue, not {owner!r}")
    resp = await gateway.get(
        f"{_base(cluster_id)}/{owner}/{_seg(vhost)}/{_seg(name)}/bindings"
    )
    return _json_or_none(resp)


async def create_exchange(gateway: RequestGateway, cluster_id: str, body: dict) -> Any:
    return _json_or_none(await gateway.put(f"{_base(cluster_id)}/exchanges", json=body))


async def delete_exchange(gateway: RequestGateway, cluster_id: str, vhost: str, name: str) -> Any:
    resp = await gateway.delete(f"{_base(cluster_id)}/exchanges/{_seg(vhost)}/{_seg(name)}")
    return _json_or_none(resp)


async def create_queue(gateway: RequestGateway, cluster_id: str, body: dict) -> Any:
    return _json_or_none(await gateway.put(f"{_base(cluster_id)}/queues", json=body))


async def delete_queue(gateway: RequestGateway, cluster_id: str, vhost: str, name: str) -> Any:
    resp = await gateway.delete(f"{_base(cluster_id)}/queues/{_seg(vhost)}/{_seg(name)}")
    return _json_or_none(resp)


async def purge_queue(gateway: RequestGateway, cluster_id: str, vhost: str, name: str) -> Any:
    resp = await gateway.delete(
        f"{_base(cluster_id)}/queues/{_seg(vhost)}/{_seg(name)}/contents"
    )
    return _json_or_none(resp)


async def create_binding(
    gateway: RequestGateway,
    cluster_id: str,
    vhost: str,
    source: str,
    destination: str,
    *,
    destination_type: str = "q",
    body: dict | None = None,
) -> Any:
    """Bind exchange *source* to a queue (``"q"``) or exchange (``"e"``)."""
    if destination_type not in ("q", "e"):
        raise ValueError("destination_type must be 'q' or 'e'")
    resp = await gateway.post(
        f"{_base(cluster_id)}/bindings/{_seg(vhost)}/e/{_seg(source)}"
        f"/{destination_type}/{_seg(destination)}",
        json=body or {},
    )
    return _json_or_none(resp)
