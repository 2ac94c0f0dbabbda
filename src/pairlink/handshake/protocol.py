"""Capability interface of the external device-pairing protocol library."""

from dataclasses import dataclass
from typing import Any, Optional, Protocol

from pairlink.handshake.artifacts import ArtifactRef


@dataclass(frozen=True)
class HandshakeResult:
    """Result of opening a pairing handshake.

    Attributes:
        code: Pairing code issued by the protocol, or None when the
            caller generates its own code.
        artifact_ref: Artifact the handshake state lives in.
    """

    code: Optional[str]
    artifact_ref: ArtifactRef


class HandshakeProvider(Protocol):
    """Protocol for pairing handshake implementations."""

    async def open_pairing_handshake(
        self, identity: str, scaffold: ArtifactRef
    ) -> HandshakeResult:
        """Start pairing ``identity`` using the scaffold as its storage area."""
        ...

    async def materialize_credentials(self, artifact_ref: ArtifactRef) -> dict[str, Any]:
        """Produce final credential material for a verified session."""
        ...

    async def close_handshake(self, artifact_ref: ArtifactRef) -> None:
        """Tear down protocol state held for the artifact."""
        ...
