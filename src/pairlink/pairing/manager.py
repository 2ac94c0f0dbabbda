"""Pairing lifecycle manager.

Orchestrates identity validation, issuance throttling, the session store,
the handshake provider and the reaper to implement the three operations
exposed to request handlers: issue a code, verify it, redeem credentials.
"""

import asyncio
import hmac
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Optional, TypeVar

from pairlink.clock import Clock, SystemClock
from pairlink.errors import (
    CodeCollisionError,
    InternalError,
    InvalidCodeError,
    NotFoundError,
    NotVerifiedError,
    PairingError,
    StorageError,
    UpstreamFailureError,
    UpstreamTimeoutError,
)
from pairlink.handshake.artifacts import ArtifactReleaser, ArtifactStore
from pairlink.handshake.protocol import HandshakeProvider
from pairlink.pairing.codes import (
    DEFAULT_CODE_LENGTH,
    DEFAULT_GROUP_SIZE,
    CodeMode,
    format_code,
    generate_code,
    normalize_code,
)
from pairlink.pairing.identity import (
    IdentityValidator,
    PatternIdentityValidator,
    mask_identity,
)
from pairlink.pairing.reaper import SessionReaper
from pairlink.pairing.session import PairingSession, PairingState
from pairlink.pairing.store import PairingSessionStore
from pairlink.pairing.throttle import IdentityThrottle

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Collisions in a 45-bit code space should never happen; cap retries anyway
MAX_CODE_ATTEMPTS = 5


@dataclass(frozen=True)
class IssuedCode:
    """Pairing code handed back to the caller."""

    code: str
    expires_in: int  # seconds
    expires_at: float


class PairingLifecycleManager:
    """Issues, verifies and redeems pairing codes.

    Every session record carries an expiry from the moment it is created,
    and owns its artifact from the moment the artifact is scaffolded, so no
    failure path can leave an artifact without an owner the reaper sees.
    """

    def __init__(
        self,
        store: PairingSessionStore,
        throttle: IdentityThrottle,
        artifacts: ArtifactStore,
        handshake: HandshakeProvider,
        reaper: SessionReaper,
        releaser: ArtifactReleaser,
        clock: Optional[Clock] = None,
        validator: Optional[IdentityValidator] = None,
        code_mode: CodeMode | str = CodeMode.SELF,
        session_ttl: float = 300.0,
        handshake_timeout: float = 30.0,
        code_length: int = DEFAULT_CODE_LENGTH,
        code_group_size: int = DEFAULT_GROUP_SIZE,
        sweep_on_issue: bool = True,
    ):
        """Initialize manager.

        Args:
            store: Session store.
            throttle: Per-identity issuance throttle.
            artifacts: Artifact directory store.
            handshake: External pairing protocol provider.
            reaper: Reaper sharing the store and releaser.
            releaser: Closes handshakes and removes artifact directories.
            clock: Time source.
            validator: Identity validator; generic digits-only by default.
            code_mode: Whether codes are generated locally or by the handshake.
            session_ttl: Seconds a session lives after issuance.
            handshake_timeout: Bound on every provider call.
            code_length: Characters in a generated code.
            code_group_size: Characters per dash-separated group.
            sweep_on_issue: Run a reaper sweep before each issuance.
        """
        self._store = store
        self._throttle = throttle
        self._artifacts = artifacts
        self._handshake = handshake
        self._reaper = reaper
        self._releaser = releaser
        self._clock = clock or SystemClock()
        self._validator = validator or PatternIdentityValidator()
        self._code_mode = CodeMode(code_mode)
        self._session_ttl = session_ttl
        self._handshake_timeout = handshake_timeout
        self._code_length = code_length
        self._code_group_size = code_group_size
        self._sweep_on_issue = sweep_on_issue

    @property
    def code_mode(self) -> CodeMode:
        return self._code_mode

    @property
    def session_ttl(self) -> float:
        return self._session_ttl

    async def issue_pairing_code(
        self, identity: str, now: Optional[float] = None
    ) -> IssuedCode:
        """Issue a pairing code for ``identity``.

        Raises:
            InvalidIdentityError: Malformed identity (checked first).
            RateLimitedError: Too many attempts in the throttle window.
            ConflictError: A live session already exists.
            UpstreamTimeoutError: Handshake did not answer in time.
            UpstreamFailureError: Handshake failed.
            NotFoundError: Session expired while the handshake ran.
            InternalError: No unique code or no session storage.
        """
        identity = self._validator.validate(identity)
        clock_driven = now is None
        if clock_driven:
            now = self._clock.now()

        self._throttle.check_and_record(identity, now)

        if self._sweep_on_issue:
            await self._reaper.sweep(now)

        session = await self._create_session(identity, now)

        try:
            issued_at = await self._open_session(session, now, clock_driven)
        except (Exception, asyncio.CancelledError):
            await self._reaper.reap(session)
            raise

        logger.info(
            f"Issued pairing code for {mask_identity(identity)} "
            f"(expires in {session.expires_in(issued_at)}s)"
        )
        return IssuedCode(
            code=session.code,
            expires_in=session.expires_in(issued_at),
            expires_at=session.expires_at,
        )

    async def _create_session(self, identity: str, now: float) -> PairingSession:
        """Create a pending session with a fresh, unique code."""
        for attempt in range(1, MAX_CODE_ATTEMPTS + 1):
            code = generate_code(self._code_length, self._code_group_size)
            try:
                return await self._store.create(identity, code, self._session_ttl, now)
            except CodeCollisionError:
                logger.warning(f"Pairing code collision (attempt {attempt})")

        raise InternalError("Could not allocate a unique pairing code")

    async def _open_session(
        self, session: PairingSession, now: float, clock_driven: bool
    ) -> float:
        """Attach an artifact to ``session`` and run the handshake.

        The session lifetime restarts once the code is ready to hand out.

        Returns:
            Timestamp the code was issued at.
        """
        identity = session.identity

        try:
            scaffold = self._artifacts.scaffold(identity, session.created_at)
        except StorageError as e:
            raise InternalError("Failed to allocate session storage") from e

        async with self._store.transaction(identity) as txn:
            txn.assign(session, now, artifact_ref=scaffold)

        try:
            await self._artifacts.create(scaffold)
        except StorageError as e:
            logger.error(f"Artifact allocation failed: {e}")
            raise InternalError("Failed to allocate session storage") from e

        result = await self._call_upstream(
            self._handshake.open_pairing_handshake(identity, scaffold),
            "Pairing handshake",
        )
        if result.artifact_ref != scaffold:
            raise UpstreamFailureError("Pairing handshake returned a foreign artifact")

        code = None
        if self._code_mode == CodeMode.PROTOCOL:
            if not result.code:
                raise UpstreamFailureError("Pairing handshake returned no code")
            code = format_code(result.code, self._code_group_size)

        issued_at = self._clock.now() if clock_driven else now
        async with self._store.transaction(identity) as txn:
            try:
                txn.assign(
                    session,
                    issued_at,
                    code=code,
                    expires_at=issued_at + self._session_ttl,
                )
            except NotFoundError as e:
                raise NotFoundError("Pairing session expired during the handshake") from e
            except CodeCollisionError as e:
                raise InternalError("Handshake issued a code already in use") from e

        return issued_at

    async def verify_pairing_code(
        self, identity: str, code: str, now: Optional[float] = None
    ) -> bool:
        """Verify a submitted pairing code.

        Comparison is case-insensitive and ignores separators. Verifying an
        already verified session with the right code succeeds again.

        Returns:
            True when verified.

        Raises:
            InvalidIdentityError: Malformed identity.
            NotFoundError: No live session (expired sessions included).
            InvalidCodeError: Code does not match; the session is unchanged.
        """
        identity = self._validator.validate(identity)
        if not code or not code.strip():
            raise InvalidCodeError("Pairing code is required")
        if now is None:
            now = self._clock.now()

        async with self._store.transaction(identity) as txn:
            session = txn.get(now)
            if session is None or session.is_terminal():
                raise self._not_found(txn.peek(), now)

            submitted = normalize_code(code).encode()
            expected = normalize_code(session.code).encode()
            if not hmac.compare_digest(submitted, expected):
                logger.info(f"Invalid pairing code for {mask_identity(identity)}")
                raise InvalidCodeError()

            if session.state == PairingState.PENDING:
                txn.transition(PairingState.PENDING, PairingState.VERIFIED, now)
                logger.info(f"Pairing code verified for {mask_identity(identity)}")

        return True

    async def redeem_credentials(
        self, identity: str, now: Optional[float] = None
    ) -> dict[str, Any]:
        """Exchange a verified session for credential material.

        The session is removed and its artifact released on success; a
        second redemption finds nothing.

        Raises:
            InvalidIdentityError: Malformed identity.
            NotFoundError: No live session (expired sessions included).
            NotVerifiedError: The code has not been verified yet.
            UpstreamTimeoutError: Provider did not answer in time.
            UpstreamFailureError: Provider failed.
        """
        identity = self._validator.validate(identity)
        if now is None:
            now = self._clock.now()

        async with self._store.transaction(identity) as txn:
            session = txn.get(now)
            if session is None or session.is_terminal():
                raise self._not_found(txn.peek(), now)
            if session.state == PairingState.PENDING:
                raise NotVerifiedError()
            if session.artifact_ref is None:
                raise InternalError("Verified session has no artifact")

            credentials = await self._call_upstream(
                self._handshake.materialize_credentials(session.artifact_ref),
                "Credential materialization",
            )

            txn.transition(PairingState.VERIFIED, PairingState.REDEEMED, now)
            txn.remove(session)
            await self._releaser.release(session.artifact_ref)

        logger.info(f"Credentials redeemed for {mask_identity(identity)}")
        return credentials

    async def close(self) -> None:
        """Release every session and forget throttle records."""
        await self._reaper.reap_all()
        self._throttle.reset()

    def _not_found(
        self, raw: Optional[PairingSession], now: float
    ) -> NotFoundError:
        if raw is not None and raw.is_expired(now):
            return NotFoundError("Pairing code has expired")
        return NotFoundError()

    async def _call_upstream(self, awaitable: Awaitable[T], what: str) -> T:
        """Await a provider call bounded by the handshake timeout."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self._handshake_timeout)
        except asyncio.TimeoutError as e:
            logger.warning(f"{what} timed out after {self._handshake_timeout:g}s")
            raise UpstreamTimeoutError(
                f"{what} timed out after {self._handshake_timeout:g}s"
            ) from e
        except PairingError:
            raise
        except Exception as e:
            logger.error(f"{what} failed: {e}")
            raise UpstreamFailureError(f"{what} failed: {e}") from e
