"""
Shared fixtures for MQPanel tests.

Time is injected everywhere through a ``clock`` callable, so tests drive
expiry with ``FakeClock`` instead of sleeping.
"""

import httpx
import pytest
from jose import jwt

from mqpanel.credentials import CredentialMonitor, CredentialStore, TokenPair

T0 = 1_700_000_000.0


class FakeClock:
    def __init__(self, now: float = T0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_token(exp: float | None, subject: str = "admin") -> str:
    """Build a signed JWT; the client never checks the signature."""
    claims = {"sub": subject}
    if exp is not None:
        claims["exp"] = int(exp)
    return jwt.encode(claims, "test-secret", algorithm="HS256")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store() -> CredentialStore:
    return CredentialStore()


@pytest.fixture
def expired_calls() -> list:
    """Records every return_to passed to the expiry callback."""
    return []


@pytest.fixture
def make_monitor(store, clock, expired_calls):
    """Factory for a CredentialMonitor wired to the shared store and clock."""

    def _make(refresher=None, **kwargs) -> CredentialMonitor:
        async def _never(refresh_token: str) -> TokenPair:
            raise RuntimeError("refresh not expected")

        return CredentialMonitor(
            store,
            refresher or _never,
            on_expired=expired_calls.append,
            clock=clock,
            **kwargs,
        )

    return _make


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose requests are answered by *handler*."""
    return httpx.AsyncClient(
        base_url="http://admin.test/api", transport=httpx.MockTransport(handler)
    )
