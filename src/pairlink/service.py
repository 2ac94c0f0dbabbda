"""Service orchestration - wires the pairing components together."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from aiohttp import web

from pairlink.clock import Clock, SystemClock
from pairlink.config import Config, validate_config
from pairlink.handshake import (
    ArtifactReleaser,
    ArtifactStore,
    HandshakeProvider,
    load_provider,
)
from pairlink.pairing.identity import PatternIdentityValidator
from pairlink.pairing.manager import PairingLifecycleManager
from pairlink.pairing.reaper import SessionReaper
from pairlink.pairing.store import PairingSessionStore
from pairlink.pairing.throttle import IdentityThrottle
from pairlink.server import PairingServer

logger = logging.getLogger(__name__)


@dataclass
class PairingComponents:
    """Container for the wired pairing components."""

    store: PairingSessionStore
    throttle: IdentityThrottle
    artifacts: ArtifactStore
    handshake: HandshakeProvider
    releaser: ArtifactReleaser
    reaper: SessionReaper
    manager: PairingLifecycleManager


def create_components(
    config: Config,
    clock: Optional[Clock] = None,
    handshake: Optional[HandshakeProvider] = None,
) -> PairingComponents:
    """Create all pairing components with shared dependencies.

    Args:
        config: Service configuration.
        clock: Time source; system clock by default.
        handshake: Provider override; loaded from config by default.

    Returns:
        Wired components.
    """
    validate_config(config)
    clock = clock or SystemClock()
    handshake = handshake or load_provider(config.handshake_provider)

    store = PairingSessionStore()
    throttle = IdentityThrottle(
        max_attempts=config.throttle.max_attempts,
        window_seconds=config.throttle.window,
    )
    artifacts = ArtifactStore(config.artifacts_path)
    releaser = ArtifactReleaser(
        handshake, artifacts, close_timeout=config.pairing.handshake_timeout
    )
    reaper = SessionReaper(
        store,
        releaser,
        clock=clock,
        interval=config.reaper.interval,
        artifacts=artifacts,
        staleness_cutoff=config.reaper.staleness_cutoff,
    )
    pairing = config.pairing
    manager = PairingLifecycleManager(
        store=store,
        throttle=throttle,
        artifacts=artifacts,
        handshake=handshake,
        reaper=reaper,
        releaser=releaser,
        clock=clock,
        validator=PatternIdentityValidator(pairing.identity_pattern),
        code_mode=pairing.code_mode,
        session_ttl=pairing.effective_session_ttl,
        handshake_timeout=pairing.handshake_timeout,
        code_length=pairing.code_length,
        code_group_size=pairing.code_group_size,
        sweep_on_issue=config.reaper.sweep_on_issue,
    )

    return PairingComponents(
        store=store,
        throttle=throttle,
        artifacts=artifacts,
        handshake=handshake,
        releaser=releaser,
        reaper=reaper,
        manager=manager,
    )


class PairingService:
    """Runs the HTTP server and the reaper around one lifecycle manager.

    Usage:
        service = PairingService(config)
        await service.start()
        await service.run_forever()
    """

    def __init__(
        self,
        config: Config,
        components: Optional[PairingComponents] = None,
    ):
        """Initialize service.

        Args:
            config: Service configuration.
            components: Optional pre-wired components (for testing).
        """
        self._config = config
        self.components = components or create_components(config)
        self.server = PairingServer(self.components.manager)
        self._runner: Optional[web.AppRunner] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Sweep leftovers, start the reaper and the HTTP server."""
        if self._running:
            return

        await self.components.reaper.sweep()
        await self.components.reaper.start()
        self._runner = await self.server.start(self._config.host, self._config.port)
        self._running = True
        logger.info(
            f"Pairing service started (mode={self.components.manager.code_mode.value}, "
            f"ttl={self.components.manager.session_ttl:g}s)"
        )

    async def run_forever(self) -> None:
        """Run until stopped or cancelled."""
        if not self._running:
            await self.start()

        try:
            while self._running:
                await asyncio.sleep(1)
        except asyncio.CancelledError:
            pass
        finally:
            await self._shutdown()

    async def stop(self) -> None:
        """Ask run_forever to shut down."""
        self._running = False

    async def _shutdown(self) -> None:
        """Stop serving, stop the reaper and flush every session."""
        self._running = False
        if self._runner is not None:
            await self._runner.cleanup()
            self._runner = None
        await self.components.reaper.stop()
        await self.components.manager.close()
        logger.info("Pairing service stopped")
