"""
Raw-response parsers for the data store registry.

Field names and shapes in the admin API vary by data store category and by
server version. Each parser here converts one kind of raw payload into the
canonical models in ``gis_admin.models.datastores``; nothing outside this
module probes raw data store JSON directly.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

from gis_admin.errors import InvalidResponseError
from gis_admin.models.datastores import (
    BackupInfo,
    BackupStatus,
    DatastoreDescriptor,
    DatastoreStatus,
    DatastoreType,
    DiskUsage,
    HealthReport,
    MachineRole,
    MachineStatus,
)

logger = logging.getLogger(__name__)

# Ordered: first matching keyword wins.
_TYPE_KEYWORDS = [
    (("egdb", "enterprise"), DatastoreType.ENTERPRISE),
    (("cloud", "s3", "azure", "gcs"), DatastoreType.CLOUD),
    (("relational",), DatastoreType.RELATIONAL),
    (("tile", "cache"), DatastoreType.TILE_CACHE),
    (("spatiotemporal", "bigdata"), DatastoreType.SPATIOTEMPORAL),
    (("graph",), DatastoreType.GRAPH),
    (("object",), DatastoreType.OBJECT),
    (("folder", "file"), DatastoreType.FILE_SHARE),
    (("raster",), DatastoreType.RASTER),
]

# Registry collections whose validation runs against the primary machine
_MACHINE_VALIDATED_COLLECTIONS = ("/enterpriseDatabases/", "/nosqlDatabases/")

# Registration endpoint per data store type
REGISTRATION_COLLECTIONS: Dict[DatastoreType, str] = {
    DatastoreType.ENTERPRISE: "enterpriseDatabases",
    DatastoreType.CLOUD: "cloudStores",
    DatastoreType.RELATIONAL: "relationaldatastores",
    DatastoreType.TILE_CACHE: "tilecachedatastores",
    DatastoreType.SPATIOTEMPORAL: "nosqlDatabases",
    DatastoreType.GRAPH: "graphdatastores",
    DatastoreType.OBJECT: "objectdatastores",
    DatastoreType.FILE_SHARE: "folderDatastores",
    DatastoreType.RASTER: "rasterdatastores",
}


def normalize_datastore_type(raw: Optional[str]) -> DatastoreType:
    """Classify an upstream type string into one of the nine categories.

    Matching is case-insensitive and substring based. Anything unrecognized
    (including an empty value) maps to ``enterprise``; this default is kept
    for compatibility with registries that report vendor-specific types.
    """
    value = (raw or "").lower()
    for keywords, datastore_type in _TYPE_KEYWORDS:
        if any(keyword in value for keyword in keywords):
            return datastore_type
    return DatastoreType.ENTERPRISE


def name_from_path(path: str) -> str:
    return path.rstrip("/").split("/")[-1]


def registration_endpoint(datastore_type: DatastoreType) -> str:
    return f"data/items/{REGISTRATION_COLLECTIONS[datastore_type]}/register"


def build_validate_path(datastore_path: str) -> str:
    """Validation sub-path for a registry path.

    Enterprise and NoSQL databases are validated through their primary
    machine; every other category has a store-level ``validate`` endpoint.
    """
    if any(collection in datastore_path for collection in _MACHINE_VALIDATED_COLLECTIONS):
        return f"data/items{datastore_path}/machines/primary/validate"
    return f"data/items{datastore_path}/validate"


def parse_registry_item(item: Dict[str, Any]) -> DatastoreDescriptor:
    """Convert one ``data/findItems`` entry into a descriptor."""
    if not isinstance(item, dict) or not item.get("path"):
        raise InvalidResponseError("data/findItems", repr(item)[:500], reason="item without path")

    path = item["path"]
    info = item.get("info") or {}
    raw_type = item.get("type") or path
    return DatastoreDescriptor(
        name=name_from_path(path),
        type=normalize_datastore_type(raw_type),
        provider=item.get("provider") or info.get("dataStoreConnectionType"),
        path=path,
        on_server_start=bool(info.get("onServerStart", False)),
        is_managed=bool(info.get("isManaged", False)),
    )


def parse_registry_items(response: Any) -> List[DatastoreDescriptor]:
    if not isinstance(response, dict):
        raise InvalidResponseError("data/findItems", repr(response)[:500], reason="expected an object")
    return [parse_registry_item(item) for item in response.get("items") or []]


def normalize_health_status(raw: Any) -> DatastoreStatus:
    """Map upstream status values (strings or booleans) to a DatastoreStatus."""
    if isinstance(raw, bool):
        return DatastoreStatus.HEALTHY if raw else DatastoreStatus.UNHEALTHY
    value = str(raw or "").strip().lower()
    if value in ("healthy", "success"):
        return DatastoreStatus.HEALTHY
    if value in ("healthywithwarning", "healthy_with_warning", "warning"):
        return DatastoreStatus.HEALTHY_WITH_WARNING
    return DatastoreStatus.UNHEALTHY


def normalize_machine_role(raw: Optional[str]) -> MachineRole:
    value = (raw or "").strip().upper()
    try:
        return MachineRole(value)
    except ValueError:
        return MachineRole.MEMBER


def _string_list(value: Any) -> List[str]:
    if not value:
        return []
    if isinstance(value, (list, tuple)):
        return [str(v) for v in value]
    return [str(value)]


def parse_machine(raw: Dict[str, Any], default_role: MachineRole = MachineRole.MEMBER) -> MachineStatus:
    disk = raw.get("diskUsage")
    disk_usage = None
    if isinstance(disk, dict):
        disk_usage = DiskUsage(
            data_directory=disk.get("dataDirectory") or "Unknown",
            log_directory=disk.get("logDirectory"),
            temp_directory=disk.get("tempDirectory"),
        )

    role = normalize_machine_role(raw.get("role")) if raw.get("role") else default_role
    status = raw.get("status")
    if status is None and "isHealthy" in raw:
        status = raw["isHealthy"]

    return MachineStatus(
        machine_name=str(raw.get("machineName") or raw.get("name") or "unknown"),
        role=role,
        status=normalize_health_status(status),
        version=raw.get("version"),
        database_status=raw.get("databaseStatus"),
        replication_status=raw.get("replicationStatus"),
        last_sync_time=raw.get("lastSyncTime"),
        disk_usage=disk_usage,
        warnings=_string_list(raw.get("warnings")),
    )


def _aggregate_status(machines: List[MachineStatus]) -> DatastoreStatus:
    if not machines:
        return DatastoreStatus.UNHEALTHY
    healthy = [m for m in machines if m.status == DatastoreStatus.HEALTHY]
    if len(healthy) == len(machines):
        return DatastoreStatus.HEALTHY
    if any(m.status != DatastoreStatus.UNHEALTHY for m in machines):
        return DatastoreStatus.HEALTHY_WITH_WARNING
    return DatastoreStatus.UNHEALTHY


def _top_level_status(data: Dict[str, Any]) -> Any:
    if "status" in data:
        return data["status"]
    return data.get("isHealthy")


def _parse_machine_health(data: Dict[str, Any]) -> Dict[str, Any]:
    """Enterprise/NoSQL style: a machine list, or a single primary machine."""
    raw_machines = data.get("machines")
    if isinstance(raw_machines, list):
        machines = [parse_machine(m) for m in raw_machines if isinstance(m, dict)]
    elif data.get("machineName"):
        machines = [parse_machine(data, default_role=MachineRole.PRIMARY)]
    else:
        machines = []

    raw_status = _top_level_status(data)
    status = normalize_health_status(raw_status) if raw_status is not None else _aggregate_status(machines)
    return {"status": status, "machines": machines}


def _parse_store_health(data: Dict[str, Any]) -> Dict[str, Any]:
    """Cloud/file share/raster style: store-level status, machines optional."""
    machines = [parse_machine(m) for m in data.get("machines") or [] if isinstance(m, dict)]
    return {"status": normalize_health_status(_top_level_status(data)), "machines": machines}


_HEALTH_PARSERS: Dict[DatastoreType, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
    DatastoreType.ENTERPRISE: _parse_machine_health,
    DatastoreType.RELATIONAL: _parse_machine_health,
    DatastoreType.TILE_CACHE: _parse_machine_health,
    DatastoreType.SPATIOTEMPORAL: _parse_machine_health,
    DatastoreType.GRAPH: _parse_machine_health,
    DatastoreType.OBJECT: _parse_machine_health,
    DatastoreType.CLOUD: _parse_store_health,
    DatastoreType.FILE_SHARE: _parse_store_health,
    DatastoreType.RASTER: _parse_store_health,
}


def parse_health_report(name: str, datastore_type: DatastoreType, data: Any,
                        endpoint: str = "validate") -> HealthReport:
    """Normalize a raw validation response into a HealthReport."""
    if not isinstance(data, dict):
        raise InvalidResponseError(endpoint, repr(data)[:500], reason="expected an object")

    parsed = _HEALTH_PARSERS[datastore_type](data)
    overall = data.get("overallHealth") or data.get("status")
    return HealthReport(
        name=name,
        type=datastore_type,
        status=parsed["status"],
        overall_health=str(overall) if overall is not None else parsed["status"].value,
        machines=parsed["machines"],
        last_validated=datetime.now(timezone.utc).isoformat(),
        warnings=_string_list(data.get("warnings")),
        recommendations=_string_list(data.get("recommendations")),
    )


def parse_backup_status(data: Any) -> BackupStatus:
    if not isinstance(data, dict):
        raise InvalidResponseError("disaster-recovery/backupRestoreInfo", repr(data)[:500],
                                   reason="expected an object")

    backups = []
    for raw in data.get("availableBackups") or []:
        if not isinstance(raw, dict):
            continue
        backups.append(BackupInfo(
            backup_id=str(raw.get("backupId") or raw.get("name") or ""),
            backup_type=str(raw.get("backupType") or "full").lower(),
            creation_time=raw.get("creationTime"),
            size=str(raw["size"]) if raw.get("size") is not None else None,
            valid=bool(raw.get("valid", True)),
            included_data_stores=_string_list(raw.get("includedDataStores")),
        ))

    return BackupStatus(
        last_full_backup=data.get("lastFullBackup"),
        last_incremental_backup=data.get("lastIncrementalBackup"),
        last_restore=data.get("lastRestore"),
        backup_mode=bool(data.get("backupMode") or False),
        available_backups=backups,
    )
