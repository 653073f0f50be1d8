"""HTTP transport with configurable TLS trust."""

import logging
import ssl
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from lollms_bridge.config import BackendConfig

logger = logging.getLogger(__name__)


def build_ssl_context(config: BackendConfig) -> ssl.SSLContext:
    """Build the TLS policy for a backend.

    Starts from the system trust store, adds the custom CA certificate when one
    is configured and readable, and turns off certificate and hostname checks
    when verification is disabled.

    Args:
        config: Backend configuration.

    Returns:
        SSL context to use for every HTTPS request to the backend.
    """
    context = ssl.create_default_context()

    ca_path = config.tls_custom_ca_path
    if ca_path is not None:
        if ca_path.is_file():
            try:
                context.load_verify_locations(cafile=str(ca_path))
                logger.info(f"Loaded custom SSL certificate from: {ca_path}")
            except (OSError, ssl.SSLError) as e:
                logger.error(f"Failed to read SSL certificate file {ca_path}: {e}")
        else:
            logger.warning(f"SSL certificate file not found at: {ca_path}")

    if config.tls_disable_verification:
        # check_hostname must be cleared before verify_mode can be CERT_NONE
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        logger.info("SSL verification disabled: ignoring cert errors and hostname mismatch")

    return context


class Transport:
    """Shared connection policy and pooled HTTP client for one backend.

    The underlying ``httpx.AsyncClient`` is created lazily and reused across
    requests. Timeouts are left to the request controller.

    Requests hold the client through :meth:`lease`. When a new configuration
    replaces the transport, :meth:`retire` keeps the client open until the last
    leased request finishes.
    """

    def __init__(
        self,
        config: BackendConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config
        self.ssl_context = build_ssl_context(config)
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._in_flight = 0
        self._retired = False

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                verify=self.ssl_context,
                timeout=None,
                transport=self._transport,
            )
        return self._client

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @asynccontextmanager
    async def lease(self) -> AsyncIterator[httpx.AsyncClient]:
        """Use the client for one request, keeping it open until the block exits."""
        self._in_flight += 1
        try:
            yield self.client
        finally:
            self._in_flight -= 1
            if self._retired and self._in_flight == 0:
                await self.aclose()

    async def retire(self) -> None:
        """Close the client once no request is using it."""
        self._retired = True
        if self._in_flight == 0:
            await self.aclose()
        else:
            logger.debug(f"Deferring transport close until {self._in_flight} requests finish")

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
