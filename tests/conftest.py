"""Pytest configuration and shared fixtures."""

import asyncio
import time
from typing import Any, Optional

import pytest

from pairlink.config import Config, PairingConfig, ThrottleConfig
from pairlink.handshake import ArtifactRef, HandshakeResult
from pairlink.service import create_components

IDENTITY = "254712345678"


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, start: Optional[float] = None):
        self.current = time.time() if start is None else start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeHandshake:
    """Handshake provider recording every call."""

    def __init__(
        self,
        code: Optional[str] = None,
        delay: float = 0.0,
        open_error: Optional[BaseException] = None,
        materialize_error: Optional[BaseException] = None,
        close_error: Optional[BaseException] = None,
    ):
        self.code = code
        self.delay = delay
        self.open_error = open_error
        self.materialize_error = materialize_error
        self.close_error = close_error
        self.opened: list[tuple[str, ArtifactRef]] = []
        self.materialized: list[ArtifactRef] = []
        self.closed: list[ArtifactRef] = []

    async def open_pairing_handshake(
        self, identity: str, scaffold: ArtifactRef
    ) -> HandshakeResult:
        self.opened.append((identity, scaffold))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.open_error is not None:
            raise self.open_error
        return HandshakeResult(code=self.code, artifact_ref=scaffold)

    async def materialize_credentials(self, artifact_ref: ArtifactRef) -> dict[str, Any]:
        self.materialized.append(artifact_ref)
        if self.materialize_error is not None:
            raise self.materialize_error
        return {"clientId": "client-1", "artifact": artifact_ref.path.name}

    async def close_handshake(self, artifact_ref: ArtifactRef) -> None:
        self.closed.append(artifact_ref)
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture(autouse=True)
def reset_logging_state():
    """Reset logging state before each test."""
    from pairlink.logging import reset_logging

    reset_logging()
    yield
    reset_logging()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def handshake():
    return FakeHandshake()


@pytest.fixture
def config(tmp_path):
    """Config with artifacts under tmp_path and a short handshake timeout."""
    return Config(
        artifacts_dir=str(tmp_path / "sessions"),
        pairing=PairingConfig(session_ttl=120.0, handshake_timeout=1.0),
        throttle=ThrottleConfig(window=3600.0, max_attempts=3),
    )


@pytest.fixture
def components(config, clock, handshake):
    return create_components(config, clock=clock, handshake=handshake)


@pytest.fixture
def manager(components):
    return components.manager
