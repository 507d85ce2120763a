"""Composition root for one operator session.

Everything stateful (cache, credential monitor, availability probe) is
created here, once, at startup and torn down at shutdown.  Routes reach it
through ``app.state.session``.
"""
from __future__ import annotations

import logging
import time
from urllib.parse import quote

import httpx

from mqpanel.availability import AvailabilityProbe
from mqpanel.cache import CacheRegistry
from mqpanel.config import Settings
from mqpanel.credentials import CredentialMonitor, CredentialStore, MonitorConfig
from mqpanel.gateway import RequestGateway
from mqpanel.loader import ResourceLoader
from mqpanel.services import auth, clusters

log = logging.getLogger(__name__)


class ClientSession:
    def __init__(
        self,
        config: type[Settings] | Settings,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config
        self.client = client or httpx.AsyncClient(
            base_url=config.ADMIN_API_URL,
            timeout=httpx.Timeout(config.REQUEST_TIMEOUT),
            verify=config.ADMIN_VERIFY_TLS,
        )
        self.store = CredentialStore()
        self.monitor = CredentialMonitor(
            self.store,
            auth.make_refresher(self.client),
            on_expired=self._on_expired,
            config=MonitorConfig(
                warning_threshold_minutes=config.TOKEN_WARNING_MINUTES,
                refresh_threshold_minutes=config.TOKEN_REFRESH_MINUTES,
                check_interval=config.TOKEN_CHECK_INTERVAL,
            ),
            location=lambda: self.current_location,
        )
        self.gateway = RequestGateway(self.client, self.monitor)
        self.caches = CacheRegistry(config.cache_policy())
        self.probe = AvailabilityProbe(
            clusters.make_probe(self.gateway),
            ttl=config.PROBE_TTL,
            timeout=config.PROBE_TIMEOUT,
        )
        self.loader = ResourceLoader(self.caches, self.gateway, self.probe)

        # Last local path the UI asked for; the re-auth redirect returns there
        self.current_location: str | None = None
        self.login_url: str | None = None
        self.expired_at: float | None = None
        self._stop_probe_monitor = None

    # ---- Lifecycle -------------------------------------------------------

    async def login(self, username: str | None = None, password: str | None = None) -> None:
        tokens = await auth.login(
            self.client,
            username or self.config.ADMIN_USERNAME,
            password or self.config.ADMIN_PASSWORD,
        )
        self.monitor.replace_credentials(tokens)
        self.login_url = None
        self.expired_at = None
        self.monitor.start_monitoring()
        if self.config.MONITORED_CLUSTERS and self._stop_probe_monitor is None:
            self._stop_probe_monitor = self.probe.start_monitoring(
                self.config.MONITORED_CLUSTERS, self.config.PROBE_INTERVAL
            )

    async def logout(self) -> None:
        if self.store.get_access_token():
            await auth.logout(self.gateway)
        self._teardown()
        self.monitor.clear_credentials()
        # A 401 during the server-side logout may have run the expiry path
        self.login_url = None
        self.expired_at = None
        log.info("Logged out")

    async def close(self) -> None:
        self._teardown()
        await self.client.aclose()

    @property
    def authenticated(self) -> bool:
        return self.monitor.get_status().is_valid

    def _teardown(self) -> None:
        self.monitor.stop_monitoring()
        if self._stop_probe_monitor is not None:
            self._stop_probe_monitor()
            self._stop_probe_monitor = None
        self.caches.clear()
        self.probe.invalidate()

    def _on_expired(self, return_to: str | None) -> None:
        # Cached data was fetched under the lost credential
        self._teardown()
        self.expired_at = time.time()
        login_path = self.config.LOGIN_PATH
        self.login_url = (
            f"{login_path}?returnUrl={quote(return_to, safe='')}" if return_to else login_path
        )
        log.warning("Credential lost; redirecting to %s", self.login_url)
