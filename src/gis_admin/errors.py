"""
Error taxonomy for the GIS administration client.

Every public operation raises one of the ``GISAdminError`` subclasses below.
Transport-level exceptions (``TransportError`` and friends) are raised by
the HTTP layer and re-wrapped by ``AdminClient`` before they reach callers.
"""

from typing import Any, List, Optional


class GISAdminError(Exception):
    """Base class for all administration errors."""

    code = "GIS_ADMIN_ERROR"

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details


class DatastoreNotFoundError(GISAdminError):
    """Named data store is absent from the registry."""

    code = "NOT_FOUND"

    def __init__(self, name: str):
        super().__init__(f"Data store '{name}' not found")
        self.name = name


class AdminConnectionError(GISAdminError):
    """Transport-level failure reaching the target."""

    code = "CONNECTION_ERROR"

    def __init__(self, message: str, target: Optional[str] = None,
                 recovery_actions: Optional[List[str]] = None):
        super().__init__(message)
        self.target = target
        self.recovery_actions = list(recovery_actions or [])

    def __str__(self) -> str:
        if not self.recovery_actions:
            return self.message
        actions = "\n".join(f"  - {action}" for action in self.recovery_actions)
        return f"{self.message}\nSuggested actions:\n{actions}"


class DatastoreConnectionError(AdminConnectionError):
    """A data store could not be reached or validated."""

    def __init__(self, datastore_name: str, message: str,
                 recovery_actions: Optional[List[str]] = None):
        super().__init__(f"DataStore '{datastore_name}': {message}",
                         target=datastore_name, recovery_actions=recovery_actions)
        self.datastore_name = datastore_name


class OperationTimeoutError(GISAdminError):
    """An operation exceeded its configured time budget."""

    code = "TIMEOUT_ERROR"

    def __init__(self, message: str, operation: str, timeout_ms: int):
        super().__init__(message)
        self.operation = operation
        self.timeout_ms = timeout_ms


class DatastoreTimeoutError(OperationTimeoutError):
    def __init__(self, datastore_name: str, operation: str, timeout_ms: int):
        super().__init__(
            f"DataStore '{datastore_name}' {operation} timeout after {timeout_ms}ms",
            operation=operation,
            timeout_ms=timeout_ms,
        )
        self.datastore_name = datastore_name


class ServiceTimeoutError(OperationTimeoutError):
    def __init__(self, service_name: str, expected_state: str, timeout_ms: int):
        super().__init__(
            f"Service {service_name} did not reach {expected_state} state within {timeout_ms}ms",
            operation=f"wait for {expected_state}",
            timeout_ms=timeout_ms,
        )
        self.service_name = service_name
        self.expected_state = expected_state


class InvalidResponseError(GISAdminError):
    """Upstream returned an unparsable or unexpected shape."""

    code = "INVALID_RESPONSE"

    def __init__(self, endpoint: str, response_data: str = "", reason: Optional[str] = None):
        message = f"Invalid response from endpoint: {endpoint}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)
        self.endpoint = endpoint
        self.response_data = response_data


class AdminAuthenticationError(GISAdminError):
    """Missing or invalid elevated credentials."""

    code = "ADMIN_AUTH_ERROR"

    def __init__(self, message: str, server_url: Optional[str] = None):
        super().__init__(message)
        self.server_url = server_url


class ServiceOperationError(GISAdminError):
    """Catch-all for failed administrative actions."""

    code = "SERVICE_OPERATION_ERROR"

    def __init__(self, message: str, service_name: Optional[str] = None):
        super().__init__(message)
        self.service_name = service_name


class ServiceFailedError(ServiceOperationError):
    """A service was observed in the FAILED state."""


class FederationError(GISAdminError):
    """Federated token generation failed."""

    code = "FEDERATION_ERROR"

    def __init__(self, message: str, server_url: Optional[str] = None,
                 cause: Optional[str] = None):
        super().__init__(message)
        self.server_url = server_url
        self.cause = cause


class NotFederatedError(FederationError):
    code = "NOT_FEDERATED"


class FederationUnreachableError(FederationError):
    code = "FEDERATION_UNREACHABLE"


# Raised by the HTTP layer only; AdminClient converts these.

class TransportError(Exception):
    """Raw failure talking to a remote endpoint."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class HTTPStatusError(TransportError):
    def __init__(self, status_code: int, reason: str, url: Optional[str] = None):
        super().__init__(f"HTTP {status_code}: {reason}", url=url)
        self.status_code = status_code
        self.reason = reason


class UpstreamError(TransportError):
    """The server answered with an ``{"error": {...}}`` envelope."""

    def __init__(self, code: Any, message: str, url: Optional[str] = None):
        super().__init__(f"Server Error {code}: {message}", url=url)
        self.code = code
        self.upstream_message = message


class RequestTimeoutError(TransportError):
    pass
