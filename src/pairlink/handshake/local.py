"""Local handshake provider for the code-only pairing flow.

No messaging network is contacted: the pairing code is generated by the
lifecycle manager and credential material is random key material written
into the session's artifact directory.
"""

import asyncio
import json
import logging
import os
import secrets
from datetime import datetime, timezone
from typing import Any

from pairlink.errors import StorageError
from pairlink.handshake.artifacts import ArtifactRef
from pairlink.handshake.protocol import HandshakeResult

logger = logging.getLogger(__name__)

CREDENTIALS_FILE = "creds.json"


def generate_credentials() -> dict[str, Any]:
    """Random credential material in the messaging client's layout."""
    return {
        "clientId": secrets.token_hex(16),
        "clientToken": secrets.token_hex(32),
        "serverToken": secrets.token_hex(32),
        "encKey": secrets.token_hex(32),
        "macKey": secrets.token_hex(32),
        "createdAt": datetime.now(timezone.utc).isoformat(),
    }


class LocalHandshakeProvider:
    """Handshake provider that never leaves the process."""

    async def open_pairing_handshake(
        self, identity: str, scaffold: ArtifactRef
    ) -> HandshakeResult:
        return HandshakeResult(code=None, artifact_ref=scaffold)

    async def materialize_credentials(self, artifact_ref: ArtifactRef) -> dict[str, Any]:
        """Generate credentials and persist them into the artifact directory.

        Raises:
            StorageError: If the artifact directory is gone.
        """
        credentials = generate_credentials()
        await asyncio.to_thread(self._write_sync, artifact_ref, credentials)
        return credentials

    def _write_sync(self, artifact_ref: ArtifactRef, credentials: dict[str, Any]) -> None:
        path = artifact_ref.path / CREDENTIALS_FILE
        data = json.dumps(credentials, indent=2)
        try:
            # Owner read/write only
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        except OSError as e:
            raise StorageError(f"Cannot write credentials: {e}") from e
        try:
            os.write(fd, data.encode())
        finally:
            os.close(fd)

    async def close_handshake(self, artifact_ref: ArtifactRef) -> None:
        logger.debug(f"Closed local handshake for {artifact_ref.path.name}")
