"""
Data models for services, data stores and correlations.
"""

from .services import ServiceStatus, InstanceCounts, ServiceDescriptor, LogEntry
from .datastores import (
    DatastoreType,
    DatastoreStatus,
    MachineRole,
    DatastoreDescriptor,
    DiskUsage,
    MachineStatus,
    HealthReport,
    BackupInfo,
    BackupStatus,
    DatastoreRegistrationConfig,
)
from .correlation import CorrelationMethod, CorrelationConfidence, Correlation


__all__ = [
    # Services
    "ServiceStatus",
    "InstanceCounts",
    "ServiceDescriptor",
    "LogEntry",

    # Data stores
    "DatastoreType",
    "DatastoreStatus",
    "MachineRole",
    "DatastoreDescriptor",
    "DiskUsage",
    "MachineStatus",
    "HealthReport",
    "BackupInfo",
    "BackupStatus",
    "DatastoreRegistrationConfig",

    # Correlation
    "CorrelationMethod",
    "CorrelationConfidence",
    "Correlation",
]
