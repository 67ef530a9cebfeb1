"""
Federated token cache.

Portal-issued credentials are exchanged for server-scoped tokens through the
portal's ``generateToken`` endpoint. Tokens are cached per server origin and
reused until they come within a safety buffer of expiry.
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol
from urllib.parse import urlparse

import httpx
from pydantic import BaseModel

from gis_admin.config import AdminSettings, settings as default_settings
from gis_admin.core.transport import MetadataFetcher, parse_json_response
from gis_admin.errors import (
    FederationError,
    FederationUnreachableError,
    NotFederatedError,
    RequestTimeoutError,
    TransportError,
    UpstreamError,
)
from gis_admin.session import PortalSession

logger = logging.getLogger(__name__)

# Upstream code reported when the server does not trust the portal
NOT_FEDERATED_CODE = 498


class FederatedTokenEntry(BaseModel):
    server: str
    token: str
    expires: float


def normalize_server_url(url: str) -> str:
    """Reduce a URL to its origin (scheme://host[:port]); unparsable input is returned as-is."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return url
    if not parsed.scheme or not parsed.netloc:
        return url
    return f"{parsed.scheme}://{parsed.netloc}"


class TokenGenerator(Protocol):
    def __call__(self, session: PortalSession, server_url: str) -> Awaitable[str]:
        ...


class PortalTokenGenerator:
    """Requests a server-scoped token from the session's portal."""

    def __init__(self, expiration_minutes: int = 60, timeout: float = 30.0,
                 client: Optional[httpx.AsyncClient] = None):
        self.expiration_minutes = expiration_minutes
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def __aenter__(self) -> "PortalTokenGenerator":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __call__(self, session: PortalSession, server_url: str) -> str:
        endpoint = f"{session.portal.rstrip('/')}/generateToken"
        payload = {
            "serverUrl": server_url,
            "token": session.token,
            "expiration": str(self.expiration_minutes),
            "f": "json",
        }
        try:
            response = await self._client.post(endpoint, data=payload, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Token request timed out: {e}", url=endpoint) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Token request to {endpoint} failed: {e}", url=endpoint) from e

        data = parse_json_response(response, detect_auth=False)
        token = data.get("token") if isinstance(data, dict) else None
        if not token:
            raise TransportError(f"Failed to generate federated token for {server_url}", url=endpoint)
        return token


def _classify_failure(session: PortalSession, server_url: str, error: Exception) -> FederationError:
    message = str(error)
    code = error.code if isinstance(error, UpstreamError) else None

    if "not federated" in message.lower() or str(code) == str(NOT_FEDERATED_CODE):
        return NotFederatedError(
            f"Server {server_url} is not federated with portal {session.portal}. "
            f"Configure federation or use direct server authentication.",
            server_url=server_url, cause=message,
        )

    unreachable = isinstance(error, (RequestTimeoutError, httpx.ConnectError, httpx.TimeoutException))
    if not unreachable and isinstance(error, TransportError):
        cause = error.__cause__
        unreachable = isinstance(cause, (httpx.ConnectError, httpx.TimeoutException, ConnectionRefusedError))
    if unreachable or isinstance(error, (ConnectionRefusedError, TimeoutError)):
        return FederationUnreachableError(
            f"Cannot reach server {server_url}. Check network connectivity and firewall settings.",
            server_url=server_url, cause=message,
        )

    return FederationError(
        f"Federation token generation failed for {server_url}: {message}",
        server_url=server_url, cause=message,
    )


class FederationTokenCache:
    """
    TTL cache of federated tokens keyed by server origin.

    Capacity and clock are injected so callers (and tests) own the cache's
    lifetime. Check-then-set runs under an asyncio lock so concurrent callers
    for one server trigger a single token request.
    """

    def __init__(self, generator: Optional[TokenGenerator] = None,
                 capacity: Optional[int] = None,
                 clock: Callable[[], float] = time.time,
                 settings: Optional[AdminSettings] = None):
        self.settings = settings or default_settings
        self.capacity = capacity if capacity is not None else self.settings.token_cache_capacity
        self.ttl = self.settings.federated_token_ttl
        self.buffer = self.settings.federated_token_buffer
        self.clock = clock
        self._owns_generator = generator is None
        self.generator = generator or PortalTokenGenerator(
            expiration_minutes=self.ttl // 60, timeout=self.settings.request_timeout
        )
        self._entries: Dict[str, FederatedTokenEntry] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    async def __aenter__(self) -> "FederationTokenCache":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the default generator's HTTP client; injected generators are left to their owner."""
        if self._owns_generator:
            await self.generator.aclose()

    async def get_federated_token(self, session: PortalSession, server_url: str) -> str:
        """Return a cached or freshly generated token for ``server_url``'s origin.

        Raises:
            NotFederatedError: the server does not trust the portal
            FederationUnreachableError: the portal/server could not be reached
            FederationError: any other generation failure
        """
        server = normalize_server_url(server_url)

        async with self._lock:
            cached = self._entries.get(server)
            if cached is not None and self.clock() < cached.expires - self.buffer:
                return cached.token

            try:
                token = await self.generator(session, server)
            except Exception as e:
                logger.error(f"Federation failed for {server}: {e}")
                raise _classify_failure(session, server, e) from e

            # Re-insert so refreshed entries count as newest
            self._entries.pop(server, None)
            self._entries[server] = FederatedTokenEntry(
                server=server, token=token, expires=self.clock() + self.ttl
            )
            self._compress()
            logger.debug(f"Cached federated token for {server}")
            return token

    def _compress(self) -> None:
        now = self.clock()
        for key in [k for k, entry in self._entries.items() if entry.expires <= now]:
            del self._entries[key]

        while len(self._entries) > self.capacity:
            oldest = next(iter(self._entries))
            del self._entries[oldest]
            logger.debug(f"Evicted federated token for {oldest}")

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> Dict[str, Any]:
        return {"size": len(self._entries), "keys": list(self._entries.keys())}


async def is_server_federated(portal_url: str, server_url: str,
                              fetcher: Optional[MetadataFetcher] = None) -> bool:
    """Best-effort check that ``server_url`` is federated with ``portal_url``.

    Any failure (network, parse, missing field) yields False.
    """
    owns_fetcher = fetcher is None
    fetcher = fetcher or MetadataFetcher()
    try:
        info = await fetcher.fetch_json(f"{server_url.rstrip('/')}/rest/info")
        if not isinstance(info, dict):
            return False
        advertised = info.get("owningSystemUrl") or info.get("portalUrl")
        if not advertised:
            return False
        return normalize_server_url(advertised) == normalize_server_url(portal_url)
    except Exception as e:
        logger.debug(f"Federation probe for {server_url} failed: {e}")
        return False
    finally:
        if owns_fetcher:
            await fetcher.aclose()
