"""Tests for the pairing session store."""

import asyncio
from pathlib import Path

import pytest

from pairlink.errors import (
    CodeCollisionError,
    ConflictError,
    InvalidStateError,
    NotFoundError,
)
from pairlink.handshake.artifacts import ArtifactRef
from pairlink.pairing.session import PairingState
from pairlink.pairing.store import PairingSessionStore

ID_A = "254712345678"
ID_B = "254787654321"
NOW = 1000.0
TTL = 120.0


def artifact(identity: str = ID_A, created_at: float = NOW) -> ArtifactRef:
    return ArtifactRef(identity, Path(f"/tmp/session_{identity}_{int(created_at)}"), created_at)


@pytest.fixture
def store():
    return PairingSessionStore()


class TestCreate:
    """Tests for create."""

    @pytest.mark.asyncio
    async def test_creates_pending_session(self, store):
        session = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)

        assert session.state == PairingState.PENDING
        assert session.expires_at == NOW + TTL
        assert store.get(ID_A, NOW) is session
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_conflict_with_live_session(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        with pytest.raises(ConflictError):
            await store.create(ID_A, "KLM-NPQ-RST", TTL, NOW + 1)

    @pytest.mark.asyncio
    async def test_conflict_with_verified_session(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        await store.transition(ID_A, PairingState.PENDING, PairingState.VERIFIED, NOW)
        with pytest.raises(ConflictError):
            await store.create(ID_A, "KLM-NPQ-RST", TTL, NOW + 1)

    @pytest.mark.asyncio
    async def test_replaces_expired_session(self, store):
        old = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        new = await store.create(ID_A, "KLM-NPQ-RST", TTL, NOW + TTL + 1)

        assert store.get(ID_A, NOW + TTL + 1) is new
        assert old.state == PairingState.EXPIRED
        # Nothing to reclaim, so the old record is dropped
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_displaced_record_with_artifact_is_retained(self, store):
        """An expired record still owning an artifact waits for the reaper."""
        old = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        async with store.transaction(ID_A) as txn:
            txn.assign(old, NOW, artifact_ref=artifact())

        later = NOW + TTL + 1
        new = await store.create(ID_A, "KLM-NPQ-RST", TTL, later)

        assert store.retains(old)
        assert old in store.all_expired(later)
        assert new not in store.all_expired(later)
        assert artifact().path in store.artifact_paths()

    @pytest.mark.asyncio
    async def test_code_collision_with_live_session(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        with pytest.raises(CodeCollisionError):
            await store.create(ID_B, "abcdefghj", TTL, NOW)
        assert store.get(ID_B, NOW) is None

    @pytest.mark.asyncio
    async def test_code_of_expired_session_is_free(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        session = await store.create(ID_B, "ABC-DEF-GHJ", TTL, NOW + TTL + 1)
        assert session.code == "ABC-DEF-GHJ"

    @pytest.mark.asyncio
    async def test_code_freed_by_removal(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        await store.remove(ID_A)
        await store.create(ID_B, "ABC-DEF-GHJ", TTL, NOW)


class TestGet:
    """Tests for lazy-expiry reads."""

    @pytest.mark.asyncio
    async def test_absent(self, store):
        assert store.get(ID_A, NOW) is None

    @pytest.mark.asyncio
    async def test_expired_reads_as_absent(self, store):
        session = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)

        assert store.get(ID_A, NOW + TTL + 1) is None
        # Physically still there until reaped
        assert store.peek(ID_A) is session


class TestTransition:
    """Tests for transition."""

    @pytest.mark.asyncio
    async def test_pending_to_verified(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        session = await store.transition(
            ID_A, PairingState.PENDING, PairingState.VERIFIED, NOW
        )
        assert session.state == PairingState.VERIFIED

    @pytest.mark.asyncio
    async def test_not_found_when_absent(self, store):
        with pytest.raises(NotFoundError):
            await store.transition(ID_A, PairingState.PENDING, PairingState.VERIFIED, NOW)

    @pytest.mark.asyncio
    async def test_not_found_when_expired(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        with pytest.raises(NotFoundError):
            await store.transition(
                ID_A, PairingState.PENDING, PairingState.VERIFIED, NOW + TTL + 1
            )

    @pytest.mark.asyncio
    async def test_invalid_state_when_from_state_differs(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        with pytest.raises(InvalidStateError):
            await store.transition(
                ID_A, PairingState.VERIFIED, PairingState.REDEEMED, NOW
            )
        assert store.get(ID_A, NOW).state == PairingState.PENDING


class TestAssign:
    """Tests for assign."""

    @pytest.mark.asyncio
    async def test_replaces_code(self, store):
        session = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        async with store.transaction(ID_A) as txn:
            txn.assign(session, NOW, code="XYZ-XYZ-XYZ")

        assert session.code == "XYZ-XYZ-XYZ"
        # Old code is free again
        await store.create(ID_B, "ABC-DEF-GHJ", TTL, NOW)

    @pytest.mark.asyncio
    async def test_replaced_code_must_be_free(self, store):
        session = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        await store.create(ID_B, "XYZ-XYZ-XYZ", TTL, NOW)
        async with store.transaction(ID_A) as txn:
            with pytest.raises(CodeCollisionError):
                txn.assign(session, NOW, code="XYZ-XYZ-XYZ")

    @pytest.mark.asyncio
    async def test_removed_session(self, store):
        session = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        await store.remove(ID_A)
        async with store.transaction(ID_A) as txn:
            with pytest.raises(NotFoundError):
                txn.assign(session, NOW, artifact_ref=artifact())

    @pytest.mark.asyncio
    async def test_moves_expiry(self, store):
        session = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        async with store.transaction(ID_A) as txn:
            txn.assign(session, NOW + 25, expires_at=NOW + 25 + TTL)

        assert store.get(ID_A, NOW + TTL + 10) is session
        assert store.get(ID_A, NOW + 25 + TTL + 1) is None


class TestRemove:
    """Tests for remove."""

    @pytest.mark.asyncio
    async def test_idempotent(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        assert await store.remove(ID_A) is True
        assert await store.remove(ID_A) is False
        assert len(store) == 0

    @pytest.mark.asyncio
    async def test_compare_and_delete(self, store):
        """Removing a stale record leaves a newer one alone."""
        old = await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        await store.remove(ID_A)
        new = await store.create(ID_A, "KLM-NPQ-RST", TTL, NOW)

        assert await store.remove(ID_A, old) is False
        assert store.get(ID_A, NOW) is new


class TestAllExpired:
    """Tests for all_expired."""

    @pytest.mark.asyncio
    async def test_lists_only_expired(self, store):
        await store.create(ID_A, "ABC-DEF-GHJ", TTL, NOW)
        fresh = await store.create(ID_B, "KLM-NPQ-RST", TTL, NOW + 100)

        expired = store.all_expired(NOW + TTL + 1)

        assert [s.identity for s in expired] == [ID_A]
        assert fresh not in expired


class TestTransaction:
    """Tests for per-identity critical sections."""

    @pytest.mark.asyncio
    async def test_serializes_same_identity(self, store):
        order = []

        async def hold(tag):
            async with store.transaction(ID_A):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(hold("first"), hold("second"))

        assert order == ["first-in", "first-out", "second-in", "second-out"]

    @pytest.mark.asyncio
    async def test_different_identities_do_not_wait(self, store):
        entered = asyncio.Event()

        async def hold_a():
            async with store.transaction(ID_A):
                await asyncio.wait_for(entered.wait(), timeout=1.0)

        async def enter_b():
            async with store.transaction(ID_B):
                entered.set()

        await asyncio.gather(hold_a(), enter_b())

    @pytest.mark.asyncio
    async def test_lock_discarded_after_use(self, store):
        async with store.transaction(ID_A):
            assert store.is_locked(ID_A)
        assert not store.is_locked(ID_A)
        assert ID_A not in store._locks

    @pytest.mark.asyncio
    async def test_transaction_unusable_after_exit(self, store):
        async with store.transaction(ID_A) as txn:
            pass
        with pytest.raises(RuntimeError):
            txn.peek()
