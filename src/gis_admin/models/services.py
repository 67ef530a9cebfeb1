"""
Service models with Pydantic validation.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class ServiceStatus(str, Enum):
    """Lifecycle states reported for a hosted service."""
    STARTED = "STARTED"
    STOPPED = "STOPPED"
    STARTING = "STARTING"
    STOPPING = "STOPPING"
    FAILED = "FAILED"


class InstanceCounts(BaseModel):
    min: int = Field(default=0, ge=0)
    max: int = Field(default=0, ge=0)
    running: int = Field(default=0, ge=0)


class ServiceDescriptor(BaseModel):
    """Normalized view of a service as reported by the admin API."""
    service_name: str = Field(..., description="Folder-qualified name (folder/name)")
    type: Optional[str] = None
    description: Optional[str] = None
    provider: Optional[str] = None
    status: ServiceStatus = ServiceStatus.STOPPED
    configured_state: Optional[str] = None
    real_time_state: Optional[str] = None
    folder: Optional[str] = None
    instances: Optional[InstanceCounts] = None

    def to_api_response(self) -> Dict[str, Any]:
        """Convert to a plain dict for output formatting."""
        return self.model_dump(mode="json", exclude_none=True)


class LogEntry(BaseModel):
    time: int
    level: str
    message: str
    source: Optional[str] = None
    thread: Optional[str] = None
    machine: Optional[str] = None
