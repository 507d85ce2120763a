"""Bearer credential lifecycle.

Tracks how long the stored access token has left, refreshes it shortly
before expiry (at most one refresh in flight), warns once per threshold
crossing, and runs the expiry path when the session can't be kept alive.
Nothing here talks to the network directly: the refresh call is injected.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Awaitable, Callable

from jose import JWTError, jwt
from pydantic import BaseModel

from mqpanel.events import ListenerRegistry

log = logging.getLogger(__name__)


class TokenPair(BaseModel):
    access_token: str
    refresh_token: str | None = None


class CredentialStore:
    """Process-local token store (get/set/clear)."""

    def __init__(self) -> None:
        self._access: str | None = None
        self._refresh: str | None = None

    def get_access_token(self) -> str | None:
        return self._access

    def get_refresh_token(self) -> str | None:
        return self._refresh

    def set_access_token(self, token: str) -> None:
        self._access = token

    def set_tokens(self, tokens: TokenPair) -> None:
        self._access = tokens.access_token
        # Some refresh endpoints don't rotate the refresh token
        if tokens.refresh_token:
            self._refresh = tokens.refresh_token

    def clear(self) -> None:
        self._access = None
        self._refresh = None


def decode_expiry(token: str) -> float | None:
    """Return the ``exp`` claim (epoch seconds) or None if unreadable.

    The signature is not verified: the client only needs to know when the
    server will stop accepting the token.
    """
    try:
        claims = jwt.get_unverified_claims(token)
    except JWTError:
        return None
    exp = claims.get("exp")
    if isinstance(exp, bool) or not isinstance(exp, (int, float)):
        return None
    return float(exp)


class CredentialStatus(BaseModel):
    is_valid: bool
    expires_at: float | None = None
    remaining_minutes: int | None = None
    needs_refresh: bool = False
    needs_warning: bool = False


class MonitorConfig(BaseModel):
    warning_threshold_minutes: int = 5
    refresh_threshold_minutes: int = 2
    check_interval: float = 60.0


Refresher = Callable[[str], Awaitable[TokenPair]]
ExpiryCallback = Callable[[str | None], None]


class CredentialMonitor:
    def __init__(
        self,
        store: CredentialStore,
        refresher: Refresher,
        on_expired: ExpiryCallback | None = None,
        config: MonitorConfig | None = None,
        clock: Callable[[], float] = time.time,
        location: Callable[[], str | None] | None = None,
    ) -> None:
        self.store = store
        self.config = config or MonitorConfig()
        self._refresher = refresher
        self._on_expired = on_expired
        self._clock = clock
        self._location = location

        self._task: asyncio.Task | None = None
        self._refresh_task: asyncio.Task[bool] | None = None
        self._warning_shown = False
        # Bumped whenever the stored credential is replaced or cleared so a
        # refresh that started under an older credential can't clobber it.
        self._generation = 0

        self._status_listeners = ListenerRegistry("credential status")
        self._warning_listeners = ListenerRegistry("credential warning")
        self._expiry_listeners = ListenerRegistry("credential expiry")

    # ---- Status ----------------------------------------------------------

    def get_status(self) -> CredentialStatus:
        token = self.store.get_access_token()
        if not token:
            return CredentialStatus(is_valid=False)

        expires_at = decode_expiry(token)
        if expires_at is None:
            log.warning("Stored access token has no readable expiry claim")
            return CredentialStatus(is_valid=False)

        now = self._clock()
        remaining = math.floor((expires_at - now) / 60)
        return CredentialStatus(
            is_valid=expires_at > now,
            expires_at=expires_at,
            remaining_minutes=remaining,
            needs_refresh=remaining <= self.config.refresh_threshold_minutes,
            needs_warning=0 < remaining <= self.config.warning_threshold_minutes,
        )

    @property
    def refresh_in_progress(self) -> bool:
        return self._refresh_task is not None

    @property
    def monitoring(self) -> bool:
        return self._task is not None

    # ---- Subscriptions ---------------------------------------------------

    def add_listener(
        self, listener: Callable[[CredentialStatus], None]
    ) -> Callable[[], None]:
        """Receive the status computed on every poll tick."""
        return self._status_listeners.add(listener)

    def add_warning_listener(
        self, listener: Callable[[CredentialStatus], None]
    ) -> Callable[[], None]:
        return self._warning_listeners.add(listener)

    def add_expiry_listener(
        self, listener: Callable[[str | None], None]
    ) -> Callable[[], None]:
        return self._expiry_listeners.add(listener)

    # ---- Polling ---------------------------------------------------------

    def start_monitoring(self) -> None:
        if self._task is not None:
            self.stop_monitoring()
        self._task = asyncio.create_task(self._poll_loop())
        log.info(
            "Credential monitoring started (interval %.0fs, refresh <= %d min, warn <= %d min)",
            self.config.check_interval,
            self.config.refresh_threshold_minutes,
            self.config.warning_threshold_minutes,
        )

    def stop_monitoring(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        self._task = None
        log.info("Credential monitoring stopped")

    def update_config(self, **changes) -> None:
        self.config = self.config.model_copy(update=changes)
        if self._task is not None:
            self.start_monitoring()

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                log.warning("Credential check failed: %s", e)
            await asyncio.sleep(self.config.check_interval)

    async def tick(self) -> None:
        """One poll step: notify, then expire, refresh or warn."""
        status = self.get_status()
        self._status_listeners.emit(status)

        if not status.is_valid:
            self.expire()
            return

        if self._refresh_task is not None:
            return

        if status.needs_refresh:
            await self.refresh()
            return

        if status.needs_warning:
            if not self._warning_shown:
                self._warning_shown = True
                log.warning(
                    "Access token expires in %d minutes", status.remaining_minutes
                )
                self._warning_listeners.emit(status)
        else:
            self._warning_shown = False

    # ---- Refresh / expiry ------------------------------------------------

    async def refresh(self) -> bool:
        """Refresh the access token; concurrent callers share one attempt.

        Returns True when a new credential is stored.  On failure the
        expiry path has already run by the time this returns.
        """
        if self._refresh_task is None:
            self._refresh_task = asyncio.create_task(self._run_refresh(self._generation))
        # Shield so a cancelled caller doesn't abort the shared attempt
        return await asyncio.shield(self._refresh_task)

    async def force_refresh(self) -> bool:
        return await self.refresh()

    async def _run_refresh(self, generation: int) -> bool:
        try:
            outcome = await self._attempt_refresh(generation)
        finally:
            self._refresh_task = None

        if outcome == "failed":
            self.expire()
        return outcome == "ok"

    async def _attempt_refresh(self, generation: int) -> str:
        refresh_token = self.store.get_refresh_token()
        if not refresh_token:
            log.warning("No refresh token available; re-authentication required")
            return "failed"

        log.info("Attempting access token refresh")
        try:
            tokens = await self._refresher(refresh_token)
        except Exception as e:
            if generation != self._generation:
                return "stale"
            log.warning("Token refresh failed: %s", e)
            return "failed"

        if generation != self._generation:
            log.info("Discarding refresh result for a superseded credential")
            return "stale"

        self.store.set_tokens(tokens)
        self._generation += 1
        self._warning_shown = False
        log.info("Access token refreshed")
        return "ok"

    def replace_credentials(self, tokens: TokenPair) -> None:
        """Install a freshly issued credential (e.g. after login)."""
        self.store.set_tokens(tokens)
        self._generation += 1
        self._warning_shown = False

    def clear_credentials(self) -> None:
        """Forget the credential on purpose (logout); no expiry callback.

        An in-flight refresh started before this point is discarded.
        """
        self.store.clear()
        self._generation += 1
        self._warning_shown = False

    def expire(self) -> None:
        """Drop the credential and send the user back to re-authenticate."""
        return_to = self._location() if self._location else None
        log.warning("Session expired; re-authentication required")
        self.clear_credentials()
        self._expiry_listeners.emit(return_to)
        if self._on_expired is not None:
            self._on_expired(return_to)
