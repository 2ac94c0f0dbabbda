"""Background reclamation of expired pairing sessions."""

import asyncio
import logging
from typing import Optional

from pairlink.clock import Clock, SystemClock
from pairlink.handshake.artifacts import ArtifactReleaser, ArtifactStore
from pairlink.pairing.identity import mask_identity
from pairlink.pairing.session import PairingSession, PairingState
from pairlink.pairing.store import PairingSessionStore

logger = logging.getLogger(__name__)


class SessionReaper:
    """Evicts expired sessions and releases the artifacts they own.

    Runs a periodic sweep independent of request traffic. Removal happens
    inside the identity's store transaction, so a session is never reaped
    in the middle of a concurrent request's transition, and each artifact
    is released by whoever removes its record, exactly once.
    """

    def __init__(
        self,
        store: PairingSessionStore,
        releaser: ArtifactReleaser,
        clock: Optional[Clock] = None,
        interval: float = 3600.0,
        artifacts: Optional[ArtifactStore] = None,
        staleness_cutoff: float = 86400.0,
    ):
        """Initialize reaper.

        Args:
            store: Session store to sweep.
            releaser: Releases artifacts of removed sessions.
            clock: Time source.
            interval: Seconds between sweeps.
            artifacts: Artifact store to purge orphaned directories from.
            staleness_cutoff: Age after which orphaned directories are purged.
        """
        self._store = store
        self._releaser = releaser
        self._clock = clock or SystemClock()
        self._interval = interval
        self._artifacts = artifacts
        self._staleness_cutoff = staleness_cutoff
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def is_running(self) -> bool:
        """Whether the periodic sweep is active."""
        return self._running

    async def start(self) -> None:
        """Start the periodic sweep."""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._reap_loop())
        logger.info(f"Session reaper started (interval={self._interval}s)")

    async def stop(self) -> None:
        """Stop the periodic sweep."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("Session reaper stopped")

    async def _reap_loop(self) -> None:
        """Sweep every interval until stopped."""
        while self._running:
            await asyncio.sleep(self._interval)
            if not self._running:
                break
            try:
                await self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    async def sweep(self, now: Optional[float] = None) -> int:
        """Reap every expired session, then purge orphaned artifacts.

        Args:
            now: Sweep timestamp; defaults to the clock.

        Returns:
            Number of sessions reaped.
        """
        if now is None:
            now = self._clock.now()

        reaped = 0
        for session in self._store.all_expired(now):
            if await self.reap(session, now):
                reaped += 1

        if reaped:
            logger.info(f"Reaped {reaped} expired pairing session(s)")

        if self._artifacts is not None:
            await self._artifacts.purge_stale(
                now, self._staleness_cutoff, keep=self._store.artifact_paths()
            )

        return reaped

    async def reap(self, session: PairingSession, now: Optional[float] = None) -> bool:
        """Release and remove one session if it is still retained.

        Args:
            session: Record to reap.
            now: When given, the record is only reaped if it is still
                expired (or terminal) at ``now``.

        Returns:
            True if this call removed the record.
        """
        async with self._store.transaction(session.identity) as txn:
            if not self._store.retains(session):
                return False
            if (
                now is not None
                and txn.peek() is session
                and not (session.is_expired(now) or session.is_terminal())
            ):
                return False

            if not session.is_terminal():
                session.transition_to(PairingState.EXPIRED)

            if session.artifact_ref is not None:
                await self._releaser.release(session.artifact_ref)

            txn.remove(session)

        logger.debug(f"Reaped pairing session for {mask_identity(session.identity)}")
        return True

    async def reap_all(self) -> int:
        """Release and remove every retained session (shutdown flush)."""
        reaped = 0
        for session in self._store.snapshot():
            if await self.reap(session):
                reaped += 1
        if reaped:
            logger.info(f"Flushed {reaped} pairing session(s)")
        return reaped
