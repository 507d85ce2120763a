"""Cluster connection endpoints of the admin API."""
from __future__ import annotations

from mqpanel.availability import Probe, ProbeOutcome
from mqpanel.errors import raise_for_api_status
from mqpanel.gateway import RequestGateway


async def list_clusters(gateway: RequestGateway, *, active_only: bool = False) -> list[dict]:
    resp = await gateway.get("/clusters/my/active" if active_only else "/clusters/my")
    raise_for_api_status(resp)
    return resp.json()


async def check_connection(gateway: RequestGateway, cluster_id: str) -> ProbeOutcome:
    """Ask the admin API to test connectivity to one cluster.

    The test endpoint needs the cluster's stored connection details, so the
    cluster record is looked up first.  Raises on transport or HTTP errors,
    or when the cluster is unknown; the availability probe turns those into
    an unavailable status.
    """
    clusters = await list_clusters(gateway)
    cluster = next((c for c in clusters if str(c.get("id")) == cluster_id), None)
    if cluster is None:
        raise LookupError(f"Cluster {cluster_id} not found")

    resp = await gateway.post(
        f"/clusters/{cluster_id}/test",
        json={
            "apiUrl": cluster.get("apiUrl"),
            "username": cluster.get("username"),
            "password": cluster.get("password"),
        },
    )
    raise_for_api_status(resp)
    data = resp.json()
    return ProbeOutcome(
        successful=bool(data.get("successful")),
        message=data.get("message") or data.get("errorDetails"),
    )


def make_probe(gateway: RequestGateway) -> Probe:
    async def _probe(cluster_id: str) -> ProbeOutcome:
        return await check_connection(gateway, cluster_id)

    return _probe
