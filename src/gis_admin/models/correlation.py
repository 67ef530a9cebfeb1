"""Service-to-datastore correlation result."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from gis_admin.models.datastores import DatastoreDescriptor


class CorrelationMethod(str, Enum):
    DIRECT = "direct"
    HEURISTIC = "heuristic"
    UNKNOWN = "unknown"


class CorrelationConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Correlation(BaseModel):
    service_name: str
    service_url: str
    backing_datastore: Optional[DatastoreDescriptor] = None
    method: CorrelationMethod = CorrelationMethod.UNKNOWN
    confidence: CorrelationConfidence = CorrelationConfidence.LOW
