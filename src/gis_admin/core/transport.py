"""
HTTP transport for the server administration REST API.

All requests carry the admin token and ``f=json``. Upstream error envelopes
and non-2xx responses are raised as ``TransportError`` subclasses so callers
can decide how to surface them.
"""

import json
import logging
from typing import Any, Dict, Optional

import httpx

from gis_admin.errors import (
    AdminAuthenticationError,
    HTTPStatusError,
    InvalidResponseError,
    RequestTimeoutError,
    TransportError,
    UpstreamError,
)

logger = logging.getLogger(__name__)

# Upstream codes signalling a missing or rejected token
AUTH_ERROR_CODES = {498, 499}
AUTH_ERROR_MARKERS = ("Token Required", "Invalid Token")


def _is_auth_failure(code: Any, message: str) -> bool:
    try:
        if int(code) in AUTH_ERROR_CODES:
            return True
    except (TypeError, ValueError):
        pass
    return any(marker in message for marker in AUTH_ERROR_MARKERS)


def parse_json_response(response: httpx.Response, detect_auth: bool = True) -> Any:
    """Validate an HTTP response and return its decoded JSON body.

    Raises:
        HTTPStatusError: non-2xx status
        InvalidResponseError: body is not JSON
        AdminAuthenticationError: envelope reports a token problem
        UpstreamError: any other ``{"error": {...}}`` envelope
    """
    try:
        url = str(response.request.url)
    except RuntimeError:
        # Response built without a request (tests, replay)
        url = None
    if not response.is_success:
        raise HTTPStatusError(response.status_code, response.reason_phrase or "", url=url)

    try:
        data = response.json()
    except (json.JSONDecodeError, ValueError):
        raise InvalidResponseError(url or "", response.text[:500], reason="body is not JSON")

    if isinstance(data, dict) and data.get("error"):
        error = data["error"]
        if not isinstance(error, dict):
            error = {"message": str(error)}
        code = error.get("code")
        message = str(error.get("message") or "Unknown error")
        details = error.get("details")
        if details:
            message = f"{message} ({'; '.join(str(d) for d in details)})"
        if detect_auth and _is_auth_failure(code, message):
            raise AdminAuthenticationError(
                "Admin authentication failed. Please re-authenticate with an elevated session.",
                server_url=url,
            )
        raise UpstreamError(code, message, url=url)

    return data


class AdminTransport:
    """
    Authenticated GET/POST against a base administrative URL.
    """

    def __init__(self, base_url: str, token: str, timeout: float = 30.0,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            base_url: Admin root, e.g. https://gis.example.com/arcgis/admin
            token: Admin token appended to every request
            timeout: Default per-request timeout in seconds
            client: Optional shared client (not closed by this transport)
        """
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    def _url(self, endpoint: str) -> str:
        return f"{self.base_url}/{endpoint.lstrip('/')}"

    def _params(self, params: Optional[Dict[str, Any]]) -> Dict[str, str]:
        merged = {"token": self.token, "f": "json"}
        for key, value in (params or {}).items():
            if value is None:
                continue
            if isinstance(value, bool):
                value = "true" if value else "false"
            elif isinstance(value, (dict, list)):
                value = json.dumps(value)
            merged[key] = str(value)
        return merged

    async def get(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
                  timeout: Optional[float] = None) -> Any:
        """GET ``endpoint`` and return parsed JSON."""
        return await self._send("GET", endpoint, params, timeout)

    async def post(self, endpoint: str, params: Optional[Dict[str, Any]] = None,
                   timeout: Optional[float] = None) -> Any:
        """POST form-encoded ``params`` to ``endpoint`` and return parsed JSON."""
        return await self._send("POST", endpoint, params, timeout)

    async def _send(self, method: str, endpoint: str, params: Optional[Dict[str, Any]],
                    timeout: Optional[float]) -> Any:
        url = self._url(endpoint)
        payload = self._params(params)
        request_timeout = self.timeout if timeout is None else timeout
        logger.debug(f"{method} {url}")

        try:
            if method == "POST":
                response = await self._client.post(url, data=payload, timeout=request_timeout)
            else:
                response = await self._client.get(url, params=payload, timeout=request_timeout)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timeout after {request_timeout}s: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e

        return parse_json_response(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()


class MetadataFetcher:
    """Plain GET-JSON against arbitrary service URLs (optionally with a token)."""

    def __init__(self, timeout: float = 30.0, client: Optional[httpx.AsyncClient] = None):
        self.timeout = timeout
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=timeout)

    async def fetch_json(self, url: str, token: Optional[str] = None) -> Any:
        params = {"f": "json"}
        if token:
            params["token"] = token
        try:
            response = await self._client.get(url, params=params, timeout=self.timeout)
        except httpx.TimeoutException as e:
            raise RequestTimeoutError(f"Request timeout: {e}", url=url) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Request to {url} failed: {e}", url=url) from e
        return parse_json_response(response)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
