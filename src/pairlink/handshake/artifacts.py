"""Scoped artifact directories owned by pairing sessions.

Every pairing session owns one directory under the artifact root, named
``session_<identity>_<created_ms>``. The directory holds whatever credential
material the handshake provider writes and is removed as a unit when the
session ends.

Security features:
- Directory permissions 700
- Identity validation (prevent path traversal)
"""

import asyncio
import logging
import os
import re
import shutil
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from pairlink.errors import StorageError

if TYPE_CHECKING:
    from pairlink.handshake.protocol import HandshakeProvider

logger = logging.getLogger(__name__)

ARTIFACT_PREFIX = "session_"

# Identities end up in directory names
IDENTITY_PATTERN = re.compile(r"^[0-9A-Za-z]+$")


@dataclass(frozen=True)
class ArtifactRef:
    """Handle to a session's artifact directory.

    Attributes:
        identity: Identity the artifact belongs to.
        path: Directory path.
        created_at: Unix timestamp of allocation.
    """

    identity: str
    path: Path
    created_at: float


class ArtifactStore:
    """Allocates and removes per-session artifact directories."""

    def __init__(self, root: Path | str) -> None:
        """Initialize store.

        Args:
            root: Directory under which session directories are created.
        """
        self.root = Path(root)

    def _ensure_root(self) -> None:
        # Only a root created here is restricted; an existing one is left alone
        try:
            self.root.mkdir(parents=True)
        except FileExistsError:
            return
        os.chmod(self.root, 0o700)

    def _validate_identity(self, identity: str) -> None:
        if not IDENTITY_PATTERN.match(identity):
            raise StorageError(f"Invalid artifact identity: {identity!r}")

    def path_for(self, identity: str, created_at: float) -> Path:
        """Directory path for an identity allocated at ``created_at``."""
        return self.root / f"{ARTIFACT_PREFIX}{identity}_{int(created_at * 1000)}"

    def scaffold(self, identity: str, now: float) -> ArtifactRef:
        """Reference a new artifact directory without creating it.

        Raises:
            StorageError: If the identity is unsafe for a directory name.
        """
        self._validate_identity(identity)
        return ArtifactRef(identity=identity, path=self.path_for(identity, now), created_at=now)

    async def create(self, ref: ArtifactRef) -> None:
        """Create the directory behind a scaffolded reference.

        Raises:
            StorageError: If the directory exists or cannot be created.
        """
        await asyncio.to_thread(self._allocate_sync, ref)

    async def allocate(self, identity: str, now: float) -> ArtifactRef:
        """Scaffold and create a fresh artifact directory.

        Args:
            identity: Canonical identity.
            now: Allocation timestamp.

        Returns:
            Reference to the new directory.
        """
        ref = self.scaffold(identity, now)
        await self.create(ref)
        return ref

    def _allocate_sync(self, ref: ArtifactRef) -> None:
        self._ensure_root()
        try:
            ref.path.mkdir(mode=0o700)
        except FileExistsError as e:
            raise StorageError(f"Artifact directory already exists: {ref.path.name}") from e
        except OSError as e:
            raise StorageError(f"Cannot create artifact directory: {e}") from e

    async def release(self, ref: ArtifactRef) -> bool:
        """Remove an artifact directory and everything in it.

        Returns:
            True if removed, False if it did not exist.

        Raises:
            StorageError: If removal fails.
        """
        return await asyncio.to_thread(self._release_sync, ref.path)

    def _release_sync(self, path: Path) -> bool:
        if not path.exists():
            return False
        try:
            shutil.rmtree(path)
        except OSError as e:
            raise StorageError(f"Cannot remove artifact directory {path.name}: {e}") from e
        return True

    def list_directories(self) -> list[Path]:
        """All session directories currently under the root."""
        if not self.root.exists():
            return []
        return sorted(
            p for p in self.root.iterdir()
            if p.is_dir() and p.name.startswith(ARTIFACT_PREFIX)
        )

    async def purge_stale(
        self,
        now: float,
        cutoff: float,
        keep: Iterable[Path] = (),
    ) -> int:
        """Remove orphaned directories older than ``cutoff`` seconds.

        Args:
            now: Current timestamp.
            cutoff: Age in seconds after which a directory is stale.
            keep: Directories still owned by a session; never removed.

        Returns:
            Number of directories removed.
        """
        return await asyncio.to_thread(self._purge_stale_sync, now, cutoff, set(keep))

    def _purge_stale_sync(self, now: float, cutoff: float, keep: set[Path]) -> int:
        removed = 0
        threshold = now - cutoff
        for path in self.list_directories():
            if path in keep:
                continue
            try:
                if path.stat().st_mtime >= threshold:
                    continue
                shutil.rmtree(path)
            except OSError as e:
                logger.warning(f"Failed to purge stale artifact {path.name}: {e}")
                continue
            removed += 1
        if removed:
            logger.info(f"Purged {removed} stale artifact director{'y' if removed == 1 else 'ies'}")
        return removed


class ArtifactReleaser:
    """Closes a session's handshake and removes its artifact directory.

    Every release attempt runs both steps; failures are logged, never raised.
    The handshake close is bounded by ``close_timeout``.
    """

    def __init__(
        self,
        handshake: "HandshakeProvider",
        artifacts: ArtifactStore,
        close_timeout: float = 30.0,
    ):
        self._handshake = handshake
        self._artifacts = artifacts
        self._close_timeout = close_timeout

    async def release(self, ref: ArtifactRef) -> bool:
        """Release an artifact.

        Returns:
            True if both the handshake close and the removal succeeded.
        """
        ok = True
        try:
            await asyncio.wait_for(
                self._handshake.close_handshake(ref), timeout=self._close_timeout
            )
        except asyncio.TimeoutError:
            logger.warning(
                f"close_handshake timed out after {self._close_timeout:g}s "
                f"for {ref.path.name}"
            )
            ok = False
        except Exception as e:
            logger.warning(f"close_handshake failed for {ref.path.name}: {e}")
            ok = False

        try:
            await self._artifacts.release(ref)
        except StorageError as e:
            logger.warning(str(e))
            ok = False

        return ok
