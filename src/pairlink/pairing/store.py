"""In-process pairing session store.

Owns the identity -> session mapping and the live-code index. Every
mutation for an identity runs inside that identity's transaction, a
critical section backed by one asyncio.Lock per identity; operations on
different identities never wait on each other.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Dict, List, Optional

from pairlink.errors import (
    CodeCollisionError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from pairlink.handshake.artifacts import ArtifactRef
from pairlink.pairing.codes import normalize_code
from pairlink.pairing.identity import mask_identity
from pairlink.pairing.session import PairingSession, PairingState

logger = logging.getLogger(__name__)


class StoreTransaction:
    """Operations on one identity while its critical section is held.

    Only valid inside ``async with store.transaction(identity)``.
    """

    def __init__(self, store: "PairingSessionStore", identity: str):
        self._store = store
        self.identity = identity
        self._open = True

    def _check_open(self) -> None:
        if not self._open:
            raise RuntimeError("Transaction used outside its critical section")

    def _close(self) -> None:
        self._open = False

    def peek(self) -> Optional[PairingSession]:
        """Raw stored record, expired or not."""
        self._check_open()
        return self._store._sessions.get(self.identity)

    def get(self, now: float) -> Optional[PairingSession]:
        """Live-or-terminal record, None when absent or expired."""
        self._check_open()
        return self._store.get(self.identity, now)

    def create(self, code: str, ttl: float, now: float) -> PairingSession:
        """Create a pending session for this identity.

        Raises:
            ConflictError: If a live session already exists.
            CodeCollisionError: If another live session holds ``code``.
        """
        self._check_open()
        store = self._store
        existing = store._sessions.get(self.identity)
        if existing is not None and existing.is_live(now):
            raise ConflictError()

        store._check_code_free(code, self.identity, now)

        if existing is not None:
            store._displace(existing)

        session = PairingSession.create(self.identity, code, ttl, now)
        store._sessions[self.identity] = session
        store._codes[normalize_code(code)] = self.identity
        logger.debug(f"Created pairing session for {mask_identity(self.identity)}")
        return session

    def transition(
        self,
        from_state: PairingState,
        to_state: PairingState,
        now: float,
    ) -> PairingSession:
        """Move the live session from ``from_state`` to ``to_state``.

        Raises:
            NotFoundError: If no live session exists.
            InvalidStateError: If the current state is not ``from_state`` or
                the transition is not allowed.
        """
        self._check_open()
        session = self.get(now)
        if session is None:
            raise NotFoundError()
        if session.state != from_state:
            raise InvalidStateError(
                f"Expected {from_state.value} session, found {session.state.value}"
            )
        session.transition_to(to_state)
        return session

    def assign(
        self,
        session: PairingSession,
        now: float,
        code: Optional[str] = None,
        artifact_ref: Optional[ArtifactRef] = None,
        expires_at: Optional[float] = None,
    ) -> PairingSession:
        """Attach an artifact, replace the code or move the expiry of ``session``.

        Raises:
            NotFoundError: If ``session`` is no longer the stored record.
            CodeCollisionError: If another live session holds ``code``.
        """
        self._check_open()
        store = self._store
        if store._sessions.get(self.identity) is not session:
            raise NotFoundError()

        if code is not None and normalize_code(code) != normalize_code(session.code):
            store._check_code_free(code, self.identity, now)
            store._forget_code(session)
            session.code = code
            store._codes[normalize_code(code)] = self.identity

        if artifact_ref is not None:
            session.artifact_ref = artifact_ref

        if expires_at is not None:
            session.expires_at = expires_at

        return session

    def remove(self, session: Optional[PairingSession] = None) -> bool:
        """Remove this identity's record.

        Args:
            session: When given, only that exact record is removed (it may
                also be a displaced record awaiting the reaper).

        Returns:
            True if a record was removed.
        """
        self._check_open()
        return self._store._remove(self.identity, session)


class PairingSessionStore:
    """Owns pairing session records keyed by identity.

    Expired records stay in memory until removed; reads treat them as
    absent. A record displaced by a newer session while still owning an
    artifact is retained until the reaper removes it.
    """

    def __init__(self) -> None:
        self._sessions: Dict[str, PairingSession] = {}
        self._codes: Dict[str, str] = {}  # normalized code -> identity
        self._displaced: List[PairingSession] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = {}

    def __len__(self) -> int:
        return len(self._sessions) + len(self._displaced)

    @asynccontextmanager
    async def transaction(self, identity: str) -> AsyncIterator[StoreTransaction]:
        """Enter the critical section for ``identity``."""
        lock = self._locks.get(identity)
        if lock is None:
            lock = self._locks[identity] = asyncio.Lock()
        self._lock_users[identity] = self._lock_users.get(identity, 0) + 1

        txn = StoreTransaction(self, identity)
        try:
            async with lock:
                try:
                    yield txn
                finally:
                    txn._close()
        finally:
            self._lock_users[identity] -= 1
            if self._lock_users[identity] == 0:
                del self._lock_users[identity]
                del self._locks[identity]

    def is_locked(self, identity: str) -> bool:
        lock = self._locks.get(identity)
        return lock is not None and lock.locked()

    async def create(
        self, identity: str, code: str, ttl: float, now: float
    ) -> PairingSession:
        """Create a pending session (see StoreTransaction.create)."""
        async with self.transaction(identity) as txn:
            return txn.create(code, ttl, now)

    def get(self, identity: str, now: float) -> Optional[PairingSession]:
        """Get the session for ``identity``, treating expired ones as absent."""
        session = self._sessions.get(identity)
        if session is None or session.is_expired(now):
            return None
        return session

    def peek(self, identity: str) -> Optional[PairingSession]:
        """Raw stored record for ``identity``, expired or not."""
        return self._sessions.get(identity)

    async def transition(
        self,
        identity: str,
        from_state: PairingState,
        to_state: PairingState,
        now: float,
    ) -> PairingSession:
        """Transition the live session (see StoreTransaction.transition)."""
        async with self.transaction(identity) as txn:
            return txn.transition(from_state, to_state, now)

    async def remove(
        self, identity: str, session: Optional[PairingSession] = None
    ) -> bool:
        """Remove a record; idempotent."""
        async with self.transaction(identity) as txn:
            return txn.remove(session)

    def all_expired(self, now: float) -> List[PairingSession]:
        """Every retained record that is expired, terminal or displaced."""
        expired = [
            s for s in self._sessions.values()
            if s.is_expired(now) or s.is_terminal()
        ]
        return expired + list(self._displaced)

    def snapshot(self) -> List[PairingSession]:
        """Every retained record."""
        return list(self._sessions.values()) + list(self._displaced)

    def retains(self, session: PairingSession) -> bool:
        """Whether this exact record is still held (mapped or displaced)."""
        return self._sessions.get(session.identity) is session or any(
            s is session for s in self._displaced
        )

    def artifact_paths(self) -> set[Path]:
        """Artifact directories owned by retained records."""
        return {
            s.artifact_ref.path for s in self.snapshot()
            if s.artifact_ref is not None
        }

    def _check_code_free(self, code: str, identity: str, now: float) -> None:
        holder = self._codes.get(normalize_code(code))
        if holder is None or holder == identity:
            return
        other = self._sessions.get(holder)
        if (
            other is not None
            and normalize_code(other.code) == normalize_code(code)
            and other.is_live(now)
        ):
            raise CodeCollisionError(f"Code already in use by {mask_identity(holder)}")

    def _forget_code(self, session: PairingSession) -> None:
        key = normalize_code(session.code)
        if self._codes.get(key) == session.identity:
            del self._codes[key]

    def _displace(self, session: PairingSession) -> None:
        self._forget_code(session)
        if not session.is_terminal():
            session.transition_to(PairingState.EXPIRED)
        if session.artifact_ref is not None:
            self._displaced.append(session)

    def _remove(self, identity: str, session: Optional[PairingSession]) -> bool:
        current = self._sessions.get(identity)
        if current is not None and (session is None or current is session):
            del self._sessions[identity]
            self._forget_code(current)
            return True

        if session is not None and session.identity == identity:
            for i, displaced in enumerate(self._displaced):
                if displaced is session:
                    del self._displaced[i]
                    return True

        return False
