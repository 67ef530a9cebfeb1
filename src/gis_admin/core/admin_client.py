"""
Server administration client.

Wraps the admin REST API for service lifecycle management, the data store
registry and data store health validation. Raw transport failures never
escape this module: every public method re-raises them as one of the
``gis_admin.errors`` types.
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote, urlparse

from pydantic import ValidationError

from gis_admin.config import AdminSettings, settings as default_settings
from gis_admin.core.transport import AdminTransport
from gis_admin.datastores import parsers
from gis_admin.errors import (
    AdminAuthenticationError,
    DatastoreConnectionError,
    DatastoreNotFoundError,
    DatastoreTimeoutError,
    GISAdminError,
    HTTPStatusError,
    InvalidResponseError,
    RequestTimeoutError,
    ServiceFailedError,
    ServiceOperationError,
    ServiceTimeoutError,
    TransportError,
    UpstreamError,
)
from gis_admin.models import (
    BackupStatus,
    DatastoreDescriptor,
    DatastoreRegistrationConfig,
    DatastoreStatus,
    HealthReport,
    InstanceCounts,
    LogEntry,
    MachineStatus,
    ServiceDescriptor,
    ServiceStatus,
)
from gis_admin.session import AdminSession

logger = logging.getLogger(__name__)

VALIDATION_RECOVERY_ACTIONS = [
    "Check datastore accessibility",
    "Verify admin credentials",
    "Review firewall rules",
]

# Errors that already belong to the public taxonomy and pass through unwrapped
_PASSTHROUGH = (AdminAuthenticationError, DatastoreNotFoundError)


def parse_service_name(service_name: str) -> Dict[str, str]:
    """Split ``folder/name`` into its parts.

    >>> parse_service_name("Reports/Sales")
    {'folder': 'Reports', 'name': 'Sales'}
    >>> parse_service_name("Sales")
    {'name': 'Sales'}
    """
    parts = service_name.split("/")
    if len(parts) == 2 and parts[0] and parts[1]:
        return {"folder": parts[0], "name": parts[1]}
    return {"name": service_name}


def _service_endpoint(service_name: str, action: Optional[str] = None) -> str:
    parsed = parse_service_name(service_name)
    segments = ["services"]
    if "folder" in parsed:
        segments.append(quote(parsed["folder"], safe=""))
    segments.append(quote(parsed["name"], safe=""))
    if action:
        segments.append(action)
    return "/".join(segments)


def _normalize_service_status(service_name: str, raw: Dict[str, Any]) -> ServiceStatus:
    """Pick the lifecycle state from a raw status payload.

    ``realTimeState`` reflects what the server is doing now and wins over
    ``configuredState``; older servers only report the latter.
    """
    for key in ("realTimeState", "configuredState", "status"):
        value = raw.get(key)
        if not value:
            continue
        try:
            return ServiceStatus(str(value).upper())
        except ValueError:
            continue
    raise InvalidResponseError(
        _service_endpoint(service_name),
        repr({k: raw.get(k) for k in ("realTimeState", "configuredState", "status")}),
        reason="no recognizable service state",
    )


def _instance_counts(raw: Dict[str, Any]) -> Optional[InstanceCounts]:
    instances = raw.get("instances")
    if instances is None and "minInstancesPerNode" not in raw:
        return None

    if isinstance(instances, list):
        running = len(instances)
    elif isinstance(instances, dict):
        running = int(instances.get("running")
                      or (instances.get("busy") or 0) + (instances.get("free") or 0))
    elif isinstance(instances, int):
        running = instances
    else:
        running = 0

    return InstanceCounts(
        min=int(raw.get("minInstancesPerNode") or 0),
        max=int(raw.get("maxInstancesPerNode") or 0),
        running=running,
    )


class AdminClient:
    """
    Client for the server administration REST API.
    Requires an elevated session whose admin URL uses HTTPS.
    """

    def __init__(self, session: AdminSession, transport: Optional[AdminTransport] = None,
                 settings: Optional[AdminSettings] = None):
        """
        Args:
            session: Elevated admin session supplying the admin URL and token
            transport: Optional transport (defaults to an httpx-backed one)
            settings: Optional settings (defaults to the global instance)

        Raises:
            AdminAuthenticationError: if the admin URL is not HTTPS
        """
        if urlparse(session.server_admin_url).scheme.lower() != "https":
            raise AdminAuthenticationError(
                "Admin operations require HTTPS. Configure the server admin URL with https://",
                server_url=session.server_admin_url,
            )

        self.session = session
        self.settings = settings or default_settings
        self.base_url = session.server_admin_url.rstrip("/")
        self.transport = transport or AdminTransport(
            self.base_url, session.admin_token, timeout=self.settings.request_timeout
        )
        logger.info(f"Initialized AdminClient for {self.base_url} (environment={session.environment})")

    async def __aenter__(self) -> "AdminClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    parse_service_name = staticmethod(parse_service_name)

    # ===== Services =====

    async def list_services(self, folder: Optional[str] = None) -> List[ServiceDescriptor]:
        """List services at ``folder`` (root if omitted).

        At the root, subfolders are listed recursively except for the
        configured excluded folders. A service whose status cannot be
        fetched keeps default values; a subfolder that cannot be listed is
        skipped.
        """
        endpoint = f"services/{quote(folder, safe='')}" if folder else "services"
        try:
            response = await self.transport.get(endpoint)
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            where = f" from folder {folder}" if folder else ""
            raise ServiceOperationError(f"Failed to list services{where}: {e}") from e

        if not isinstance(response, dict):
            raise ServiceOperationError(f"Failed to list services: unexpected response {response!r}")

        services: List[ServiceDescriptor] = []
        for raw in response.get("services") or []:
            name = raw.get("serviceName") or raw.get("name")
            if not name:
                continue
            qualified = f"{folder}/{name}" if folder else name
            descriptor = ServiceDescriptor(
                service_name=qualified,
                type=raw.get("type"),
                description=raw.get("description"),
                folder=folder,
            )
            try:
                descriptor = await self.get_service_status(qualified)
            except AdminAuthenticationError:
                raise
            except GISAdminError as e:
                logger.warning(f"Could not get status for service {qualified}: {e}")
            services.append(descriptor)

        if folder is None:
            excluded = set(self.settings.excluded_folders)
            for sub_folder in response.get("folders") or []:
                if sub_folder in excluded:
                    continue
                try:
                    services.extend(await self.list_services(sub_folder))
                except AdminAuthenticationError:
                    raise
                except GISAdminError as e:
                    logger.warning(f"Could not access folder {sub_folder}: {e}")

        return services

    async def get_service_status(self, service_name: str) -> ServiceDescriptor:
        """Fetch and normalize the status of a (possibly folder-qualified) service."""
        parsed = parse_service_name(service_name)
        try:
            raw = await self.transport.get(_service_endpoint(service_name))
            if not isinstance(raw, dict):
                raise InvalidResponseError(_service_endpoint(service_name), repr(raw)[:500])
            status = _normalize_service_status(service_name, raw)
        except _PASSTHROUGH:
            raise
        except InvalidResponseError:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(
                f"Failed to get status for service {service_name}: {e}", service_name
            ) from e

        return ServiceDescriptor(
            service_name=service_name,
            type=raw.get("type"),
            description=raw.get("description"),
            provider=raw.get("provider"),
            status=status,
            configured_state=raw.get("configuredState"),
            real_time_state=raw.get("realTimeState"),
            folder=parsed.get("folder"),
            instances=_instance_counts(raw),
        )

    async def start_service(self, service_name: str, wait: bool = False,
                            timeout_ms: Optional[int] = None) -> None:
        """Start a service, optionally waiting until it reports STARTED."""
        await self._service_action(service_name, "start", ServiceStatus.STARTED, wait, timeout_ms)

    async def stop_service(self, service_name: str, wait: bool = False,
                           timeout_ms: Optional[int] = None) -> None:
        """Stop a service, optionally waiting until it reports STOPPED."""
        await self._service_action(service_name, "stop", ServiceStatus.STOPPED, wait, timeout_ms)

    async def _service_action(self, service_name: str, action: str, target: ServiceStatus,
                              wait: bool, timeout_ms: Optional[int]) -> None:
        try:
            await self.transport.post(_service_endpoint(service_name, action))
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(
                f"Failed to {action} service {service_name}: {e}", service_name
            ) from e

        logger.info(f"Requested {action} for service {service_name}")
        if wait:
            await self.wait_for_service_state(
                service_name, target,
                timeout_ms if timeout_ms is not None else self.settings.service_wait_timeout_ms,
            )

    async def wait_for_service_state(self, service_name: str, expected: ServiceStatus,
                                     timeout_ms: int) -> ServiceDescriptor:
        """Poll until ``expected`` is reported, FAILED is seen, or time runs out.

        Raises:
            ServiceFailedError: the service reported FAILED (no further polling)
            ServiceTimeoutError: ``timeout_ms`` elapsed first
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout_ms / 1000.0

        while loop.time() < deadline:
            try:
                # A hung poll must not outlive the overall budget
                descriptor = await asyncio.wait_for(
                    self.get_service_status(service_name), timeout=deadline - loop.time()
                )
            except asyncio.TimeoutError:
                break
            except AdminAuthenticationError:
                raise
            except GISAdminError as e:
                logger.debug(f"Transient error polling {service_name}: {e}")
            else:
                if descriptor.status == expected:
                    logger.info(f"Service {service_name} reached {expected.value}")
                    return descriptor
                if descriptor.status == ServiceStatus.FAILED:
                    raise ServiceFailedError(
                        f"Service {service_name} failed to reach {expected.value} state",
                        service_name,
                    )
                logger.debug(f"Service {service_name} is {descriptor.status.value}, waiting for {expected.value}")

            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            await asyncio.sleep(min(self.settings.poll_interval, remaining))

        raise ServiceTimeoutError(service_name, expected.value, timeout_ms)

    # ===== Logs =====

    async def get_logs(self, tail: int = 100, level: Optional[str] = None,
                       services: Optional[List[str]] = None, hours: Optional[int] = None,
                       since_server_start: bool = False) -> List[LogEntry]:
        """Query server logs.

        Without an explicit range the last ``default_log_hours`` hours are
        queried. Page size is capped at ``log_page_cap``.
        """
        log_filter = {
            "codes": [],
            "processIds": [],
            "requestIds": [],
            "services": services or ["*"],
            "machines": ["*"],
            "users": [],
            "component": "*",
        }
        params: Dict[str, Any] = {
            "filterType": "json",
            "filter": log_filter,
            "level": level or self.settings.default_log_level,
            "pageSize": max(1, min(tail, self.settings.log_page_cap)),
        }
        if since_server_start:
            params["sinceServerStart"] = "TRUE"
        else:
            end_ms = int(time.time() * 1000)
            window_hours = hours or self.settings.default_log_hours
            params["startTime"] = end_ms - window_hours * 60 * 60 * 1000
            params["endTime"] = end_ms

        try:
            response = await self.transport.get("logs/query", params)
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(f"Failed to get logs: {e}") from e

        if not isinstance(response, dict):
            raise ServiceOperationError(f"Failed to get logs: unexpected response {response!r:.200}")

        entries = []
        for msg in response.get("logMessages") or []:
            entries.append(LogEntry(
                time=int(msg.get("time") or 0),
                level=str(msg.get("type") or msg.get("level") or ""),
                message=str(msg.get("message") or ""),
                source=msg.get("source"),
                thread=msg.get("thread"),
                machine=msg.get("machine"),
            ))
        return entries

    # ===== Data stores =====

    async def _find_items(self) -> List[DatastoreDescriptor]:
        response = await self.transport.get("data/findItems", {"parentPath": "/", "decendents": True})
        return parsers.parse_registry_items(response)

    async def _quick_health(self, path: str) -> Tuple[DatastoreStatus, Optional[int]]:
        response = await self.transport.get(f"data/items{path}")
        machines = response.get("machines") if isinstance(response, dict) else None
        return DatastoreStatus.HEALTHY, len(machines) if isinstance(machines, list) else None

    async def list_datastores(self) -> List[DatastoreDescriptor]:
        """List registered data stores with a quick health probe for each."""
        try:
            items = await self._find_items()
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(f"Failed to list data stores: {e}") from e

        datastores = []
        for item in items:
            try:
                status, machine_count = await self._quick_health(item.path)
                item = item.model_copy(update={"status": status, "machine_count": machine_count})
            except AdminAuthenticationError:
                raise
            except (TransportError, GISAdminError) as e:
                logger.warning(f"Quick health probe failed for data store {item.name}: {e}")
                item = item.model_copy(update={
                    "status": DatastoreStatus.UNHEALTHY,
                    "connection_status": "Failed to connect",
                })
            datastores.append(item)
        return datastores

    async def _find_datastore(self, name: str) -> DatastoreDescriptor:
        for item in await self._find_items():
            if item.name == name:
                return item
        raise DatastoreNotFoundError(name)

    async def validate_datastore(self, name: str, timeout_ms: Optional[int] = None) -> HealthReport:
        """Validate a data store and return its normalized health report.

        The request is cancelled once ``timeout_ms`` elapses (default
        ``validate_timeout_ms``).

        Raises:
            DatastoreNotFoundError: no registered store has this name
            DatastoreTimeoutError: validation exceeded ``timeout_ms``
            DatastoreConnectionError: HTTP/transport failure or upstream error envelope
        """
        if timeout_ms is None:
            timeout_ms = self.settings.validate_timeout_ms
        timeout = timeout_ms / 1000.0

        async def lookup_and_validate() -> Tuple[DatastoreDescriptor, str, Any]:
            store = await self._find_datastore(name)
            path = parsers.build_validate_path(store.path)
            return store, path, await self.transport.post(path, timeout=timeout)

        try:
            # wait_for cancels the in-flight request when the budget runs out
            store, validate_path, data = await asyncio.wait_for(lookup_and_validate(), timeout=timeout)
        except (asyncio.TimeoutError, RequestTimeoutError):
            raise DatastoreTimeoutError(name, "validation", timeout_ms)
        except _PASSTHROUGH:
            raise
        except HTTPStatusError as e:
            raise DatastoreConnectionError(
                name, f"Validation failed: {e.status_code} {e.reason}", VALIDATION_RECOVERY_ACTIONS
            ) from e
        except UpstreamError as e:
            raise DatastoreConnectionError(name, f"Server Error {e.code}: {e.upstream_message}") from e
        except (TransportError, InvalidResponseError) as e:
            raise DatastoreConnectionError(
                name, f"Validation failed: {e}", VALIDATION_RECOVERY_ACTIONS
            ) from e

        return parsers.parse_health_report(name, store.type, data, endpoint=validate_path)

    async def get_datastore_machines(self, name: str) -> List[MachineStatus]:
        report = await self.validate_datastore(name)
        return report.machines

    async def get_backup_info(self) -> BackupStatus:
        """Fetch disaster-recovery status.

        Servers predating the endpoint answer 404; that is reported as
        "no backups, backup mode off".
        """
        try:
            response = await self.transport.get("disaster-recovery/backupRestoreInfo")
        except _PASSTHROUGH:
            raise
        except HTTPStatusError as e:
            if e.status_code == 404:
                logger.info("Backup endpoint not available on this server")
                return BackupStatus()
            raise ServiceOperationError(f"Failed to get backup information: {e}") from e
        except UpstreamError as e:
            if str(e.code) == "404" or "Not Found" in e.upstream_message:
                logger.info("Backup endpoint not available on this server")
                return BackupStatus()
            raise ServiceOperationError(f"Failed to get backup information: {e}") from e
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(f"Failed to get backup information: {e}") from e

        try:
            return parsers.parse_backup_status(response)
        except InvalidResponseError as e:
            raise ServiceOperationError(f"Failed to get backup information: {e}") from e

    async def register_datastore(self, config: DatastoreRegistrationConfig) -> DatastoreDescriptor:
        """Register a data store under the endpoint for its type."""
        endpoint = parsers.registration_endpoint(config.type)
        params: Dict[str, Any] = {"name": config.name, **config.connection_params}
        try:
            await self.transport.post(endpoint, params)
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(f"Failed to register data store {config.name}: {e}") from e

        logger.info(f"Registered {config.type.value} data store {config.name}")
        return DatastoreDescriptor(
            name=config.name,
            type=config.type,
            provider=config.provider,
            status=DatastoreStatus.HEALTHY,
            path=f"/{parsers.REGISTRATION_COLLECTIONS[config.type]}/{config.name}",
            on_server_start=config.on_server_start,
            is_managed=config.is_managed,
        )

    async def _resolve_registered(self, name: str) -> DatastoreDescriptor:
        for store in await self.list_datastores():
            if store.name == name:
                return store
        raise DatastoreNotFoundError(name)

    async def unregister_datastore(self, name: str) -> None:
        store = await self._resolve_registered(name)
        try:
            await self.transport.post(f"data/items{store.path}/unregister")
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(f"Failed to unregister data store {name}: {e}") from e
        logger.info(f"Unregistered data store {name}")

    async def update_datastore(self, name: str, changes: Dict[str, Any]) -> DatastoreDescriptor:
        """Edit a registered data store.

        ``changes`` may hold ``connection_params`` (sent upstream) and any
        descriptor fields to reflect in the returned model.
        """
        store = await self._resolve_registered(name)
        updates = {k: v for k, v in changes.items()
                   if k in DatastoreDescriptor.model_fields and k not in ("name", "path")}
        try:
            updated = DatastoreDescriptor.model_validate({**store.model_dump(), **updates})
        except ValidationError as e:
            raise ServiceOperationError(f"Invalid changes for data store {name}: {e}") from e

        connection_params = dict(changes.get("connection_params") or {})
        try:
            await self.transport.post(f"data/items{store.path}/edit", connection_params)
        except _PASSTHROUGH:
            raise
        except (TransportError, GISAdminError) as e:
            raise ServiceOperationError(f"Failed to update data store {name}: {e}") from e

        logger.info(f"Updated data store {name}")
        return updated

    normalize_datastore_type = staticmethod(parsers.normalize_datastore_type)
