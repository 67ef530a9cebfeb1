"""
Data store models.

These are the canonical shapes every raw upstream response is converted to;
see ``gis_admin.datastores.parsers`` for the conversions.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class DatastoreType(str, Enum):
    ENTERPRISE = "enterprise"
    CLOUD = "cloud"
    RELATIONAL = "relational"
    TILE_CACHE = "tileCache"
    SPATIOTEMPORAL = "spatiotemporal"
    GRAPH = "graph"
    OBJECT = "object"
    FILE_SHARE = "fileShare"
    RASTER = "raster"


class DatastoreStatus(str, Enum):
    HEALTHY = "Healthy"
    HEALTHY_WITH_WARNING = "HealthyWithWarning"
    UNHEALTHY = "Unhealthy"


class MachineRole(str, Enum):
    PRIMARY = "PRIMARY"
    STANDBY = "STANDBY"
    MEMBER = "MEMBER"


class DatastoreDescriptor(BaseModel):
    """A registered data store."""
    name: str = Field(..., min_length=1)
    type: DatastoreType
    provider: Optional[str] = None
    status: DatastoreStatus = DatastoreStatus.HEALTHY
    path: str = Field(..., description="Registry path, e.g. /enterpriseDatabases/gisdb")
    on_server_start: bool = False
    is_managed: bool = False
    connection_status: Optional[str] = None
    machine_count: Optional[int] = None


class DiskUsage(BaseModel):
    data_directory: str = "Unknown"
    log_directory: Optional[str] = None
    temp_directory: Optional[str] = None


class MachineStatus(BaseModel):
    machine_name: str
    role: MachineRole = MachineRole.MEMBER
    status: DatastoreStatus = DatastoreStatus.UNHEALTHY
    version: Optional[str] = None
    database_status: Optional[str] = None
    replication_status: Optional[str] = None
    last_sync_time: Optional[str] = None
    disk_usage: Optional[DiskUsage] = None
    warnings: List[str] = Field(default_factory=list)


class HealthReport(BaseModel):
    """Normalized multi-machine health snapshot for one data store."""
    name: str
    type: DatastoreType
    status: DatastoreStatus
    overall_health: Optional[str] = None
    machines: List[MachineStatus] = Field(default_factory=list)
    last_validated: str
    warnings: List[str] = Field(default_factory=list)
    recommendations: List[str] = Field(default_factory=list)


class BackupInfo(BaseModel):
    backup_id: str
    backup_type: str = "full"
    creation_time: Optional[str] = None
    size: Optional[str] = None
    valid: bool = True
    included_data_stores: List[str] = Field(default_factory=list)


class BackupStatus(BaseModel):
    last_full_backup: Optional[str] = None
    last_incremental_backup: Optional[str] = None
    last_restore: Optional[str] = None
    backup_mode: bool = False
    available_backups: List[BackupInfo] = Field(default_factory=list)


class DatastoreRegistrationConfig(BaseModel):
    """Input for registering a new data store."""
    name: str = Field(..., min_length=1)
    type: DatastoreType
    provider: Optional[str] = None
    on_server_start: bool = False
    is_managed: bool = False
    connection_params: Dict[str, Any] = Field(default_factory=dict)
