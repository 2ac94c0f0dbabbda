"""HTTP surface for the pairing lifecycle.

Thin aiohttp layer: parses requests, calls the lifecycle manager and maps
failure kinds to HTTP status codes. All pairing rules live in the manager.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from aiohttp import web

from pairlink import __version__
from pairlink.errors import FailureKind, InvalidRequestError, PairingError
from pairlink.pairing.manager import PairingLifecycleManager
from pairlink.pairing.results import PairingResult

logger = logging.getLogger(__name__)

SERVICE_NAME = "Pairing API"

HTTP_STATUS = {
    FailureKind.INVALID_IDENTITY: 400,
    FailureKind.INVALID_CODE: 400,
    FailureKind.INVALID_REQUEST: 400,
    FailureKind.NOT_VERIFIED: 403,
    FailureKind.NOT_FOUND: 404,
    FailureKind.CONFLICT: 409,
    FailureKind.RATE_LIMITED: 429,
    FailureKind.INTERNAL_ERROR: 500,
    FailureKind.UPSTREAM_FAILURE: 502,
    FailureKind.UPSTREAM_TIMEOUT: 504,
}


class PairingServer:
    """HTTP server exposing issue, verify and redeem endpoints.

    Routes:
        GET  /              health
        POST /pair          issue a code ({"number"}; ?number= also accepted)
        POST /verify        verify a code ({"number", "code"})
        GET  /credentials   redeem credentials (?number=)
    """

    def __init__(self, manager: PairingLifecycleManager):
        """Initialize server.

        Args:
            manager: Lifecycle manager handling every request.
        """
        self.manager = manager
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self) -> None:
        """Set up HTTP routes."""
        self.app.router.add_get("/", self._handle_health)
        self.app.router.add_post("/pair", self._handle_pair)
        self.app.router.add_post("/verify", self._handle_verify)
        self.app.router.add_get("/credentials", self._handle_credentials)

    async def _handle_health(self, request: web.Request) -> web.Response:
        return web.json_response(
            {"status": "running", "service": SERVICE_NAME, "version": __version__}
        )

    async def _handle_pair(self, request: web.Request) -> web.Response:
        async def issue(params: dict[str, Any]) -> PairingResult:
            issued = await self.manager.issue_pairing_code(_param(params, "number"))
            return PairingResult.ok(
                pairCode=issued.code,
                expiresIn=issued.expires_in,
                expiresAt=_isoformat(issued.expires_at),
            )

        return await self._run(request, issue)

    async def _handle_verify(self, request: web.Request) -> web.Response:
        async def verify(params: dict[str, Any]) -> PairingResult:
            verified = await self.manager.verify_pairing_code(
                _param(params, "number"), _param(params, "code")
            )
            return PairingResult.ok(
                message="Pairing code verified successfully", verified=verified
            )

        return await self._run(request, verify)

    async def _handle_credentials(self, request: web.Request) -> web.Response:
        async def redeem(params: dict[str, Any]) -> PairingResult:
            credentials = await self.manager.redeem_credentials(_param(params, "number"))
            return PairingResult.ok(credentials=credentials)

        return await self._run(request, redeem)

    async def _run(
        self,
        request: web.Request,
        operation: Callable[[dict[str, Any]], Awaitable[PairingResult]],
    ) -> web.Response:
        """Run an operation and serialize its result."""
        try:
            params = await _read_params(request)
            result = await operation(params)
        except PairingError as e:
            result = PairingResult.failure(e)
        except Exception:
            logger.exception(f"Unhandled error on {request.path}")
            result = PairingResult.internal_error()

        status = 200 if result.success else HTTP_STATUS.get(result.kind, 500)
        return web.json_response(result.to_dict(), status=status)

    async def start(self, host: str, port: int) -> web.AppRunner:
        """Start the server.

        Args:
            host: Host to bind to.
            port: Port to bind to.

        Returns:
            App runner (for cleanup).
        """
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, host, port)
        await site.start()
        logger.info(f"Pairing API listening on {host}:{port}")
        return runner


async def _read_params(request: web.Request) -> dict[str, Any]:
    """Merge query string and JSON or form body into one dict."""
    params: dict[str, Any] = dict(request.query)
    if request.method != "POST" or not request.can_read_body:
        return params

    if request.content_type == "application/json":
        try:
            body = await request.json()
        except ValueError as e:
            raise InvalidRequestError("Malformed JSON body") from e
        if not isinstance(body, dict):
            raise InvalidRequestError("JSON body must be an object")
        params.update(body)
    else:
        params.update(await request.post())
    return params


def _param(params: dict[str, Any], name: str) -> str:
    value = params.get(name)
    return "" if value is None else str(value)


def _isoformat(timestamp: float) -> str:
    return datetime.fromtimestamp(timestamp, tz=timezone.utc).isoformat()
