"""
Correlates a service URL with the data store that backs it.

The platform does not expose a direct service-to-datastore link, so the
resolver works in three tiers, each tried only when the previous one found
nothing:

1. direct (high confidence): admin registry + name matching, then a
   spatial reference hint. Requires an elevated session.
2. heuristic (medium confidence): unauthenticated service metadata is used
   to synthesize an inferred data store.
3. unknown (low confidence): nothing matched.

A failure inside a tier is logged and treated as "no match".
"""

import logging
import re
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlparse

from gis_admin.config import AdminSettings, settings as default_settings
from gis_admin.core.admin_client import AdminClient
from gis_admin.core.transport import MetadataFetcher
from gis_admin.models import (
    Correlation,
    CorrelationConfidence,
    CorrelationMethod,
    DatastoreDescriptor,
    DatastoreStatus,
    DatastoreType,
)
from gis_admin.session import AdminSession, SessionStore

logger = logging.getLogger(__name__)

UNKNOWN_SERVICE = "Unknown Service"
INVALID_URL = "Invalid URL"

_SERVICE_SUFFIX = re.compile(r"(service|server|data)$")
_DATASTORE_SUFFIX = re.compile(r"(db|database|store|datastore)$")
_LAYER_INDEX = re.compile(r"/\d+/?$")

# Max edit distance between stripped names that still counts as a match
NAME_DISTANCE_THRESHOLD = 2


def levenshtein_distance(a: str, b: str) -> int:
    """Edit distance with unit cost for deletion, insertion and substitution."""
    rows = len(b) + 1
    cols = len(a) + 1
    matrix = [[0] * cols for _ in range(rows)]
    for i in range(cols):
        matrix[0][i] = i
    for j in range(rows):
        matrix[j][0] = j

    for j in range(1, rows):
        for i in range(1, cols):
            cost = 0 if a[i - 1] == b[j - 1] else 1
            matrix[j][i] = min(
                matrix[j][i - 1] + 1,
                matrix[j - 1][i] + 1,
                matrix[j - 1][i - 1] + cost,
            )
    return matrix[rows - 1][cols - 1]


def _is_server_type(segment: str) -> bool:
    # MapServer, FeatureServer, ImageServer, GeocodeServer, ... and *Service
    return len(segment) > len("Server") and (segment.endswith("Server") or segment.endswith("Service"))


def extract_service_name(service_url: str) -> str:
    """Name of the service in a REST URL.

    The name is the path segment preceding the server-type segment, e.g.
    ``.../rest/services/Planning/Parcels/MapServer/0`` gives ``Parcels``.
    Returns ``"Unknown Service"`` when no server-type segment is present and
    ``"Invalid URL"`` when the URL cannot be parsed.
    """
    try:
        parsed = urlparse(service_url)
        if not parsed.scheme or not parsed.netloc:
            return INVALID_URL
    except ValueError:
        return INVALID_URL

    segments = [s for s in parsed.path.split("/") if s]
    # Last match wins: service names may themselves end in "Service"/"Server"
    for index in range(len(segments) - 1, 0, -1):
        previous = segments[index - 1]
        if _is_server_type(segments[index]) and previous.lower() not in ("services", "rest"):
            return previous
    return UNKNOWN_SERVICE


def matches_enterprise_pattern(service_name: str, datastore_name: str) -> bool:
    """Loose match for conventions like ``CadastralData`` / ``CadastralDatabase``."""
    service_base = re.sub(r"[_-]", "", service_name.lower())
    datastore_base = re.sub(r"[_-]", "", datastore_name.lower())

    service_clean = _SERVICE_SUFFIX.sub("", service_base)
    datastore_clean = _DATASTORE_SUFFIX.sub("", datastore_base)
    if not service_clean or not datastore_clean:
        return False

    return (
        datastore_clean in service_clean
        or service_clean in datastore_clean
        or levenshtein_distance(service_clean, datastore_clean) <= NAME_DISTANCE_THRESHOLD
    )


def match_by_name(service_name: str, datastores: List[DatastoreDescriptor]) -> Optional[DatastoreDescriptor]:
    if service_name in (UNKNOWN_SERVICE, INVALID_URL):
        return None
    lowered = service_name.lower()
    for datastore in datastores:
        store = datastore.name.lower()
        if store in lowered or lowered in store:
            return datastore
        if matches_enterprise_pattern(service_name, datastore.name):
            return datastore
    return None


def _wkid(metadata: Dict[str, Any]) -> Optional[int]:
    for holder in (metadata, metadata.get("extent"), metadata.get("fullExtent")):
        if not isinstance(holder, dict):
            continue
        reference = holder.get("spatialReference")
        if isinstance(reference, dict):
            wkid = reference.get("latestWkid", reference.get("wkid"))
            if isinstance(wkid, int) and not isinstance(wkid, bool):
                return wkid
    return None


def match_by_spatial_reference(metadata: Dict[str, Any],
                               datastores: List[DatastoreDescriptor]) -> Optional[DatastoreDescriptor]:
    """WGS84 suggests cloud, Web Mercator a tile cache, local projections an enterprise database."""
    wkid = _wkid(metadata)
    if wkid is None:
        return None
    if wkid == 4326:
        preferred = DatastoreType.CLOUD
    elif wkid == 3857:
        preferred = DatastoreType.TILE_CACHE
    elif wkid > 32000:
        preferred = DatastoreType.ENTERPRISE
    else:
        return None
    return next((ds for ds in datastores if ds.type == preferred), None)


def infer_datastore_type(metadata: Dict[str, Any]) -> DatastoreType:
    description = metadata.get("serviceDescription")
    if isinstance(description, str) and "tile" in description.lower():
        return DatastoreType.TILE_CACHE

    capabilities = metadata.get("capabilities")
    if isinstance(capabilities, str) and "tilesonly" in capabilities.lower().replace(" ", ""):
        return DatastoreType.TILE_CACHE

    if _wkid(metadata) == 4326:
        return DatastoreType.CLOUD

    return DatastoreType.ENTERPRISE


def metadata_url(service_url: str) -> str:
    """Service root URL (drops a trailing layer index and any query)."""
    parsed = urlparse(service_url)
    path = _LAYER_INDEX.sub("", parsed.path)
    return parsed._replace(path=path, query="", fragment="").geturl()


class DatastoreResolver:
    """Resolves which registered data store backs a service."""

    def __init__(self, session_store: SessionStore, metadata_fetcher: Optional[MetadataFetcher] = None,
                 client_factory: Optional[Callable[[AdminSession], AdminClient]] = None,
                 settings: Optional[AdminSettings] = None):
        """
        Args:
            session_store: Source of elevated sessions per environment
            metadata_fetcher: GET-JSON collaborator for service metadata
            client_factory: Builds an AdminClient from a session
            settings: Optional settings (defaults to the global instance)
        """
        self.session_store = session_store
        self.settings = settings or default_settings
        self._owns_fetcher = metadata_fetcher is None
        self.metadata_fetcher = metadata_fetcher or MetadataFetcher(timeout=self.settings.request_timeout)
        self.client_factory = client_factory or (lambda session: AdminClient(session, settings=self.settings))

    async def __aenter__(self) -> "DatastoreResolver":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_fetcher:
            await self.metadata_fetcher.aclose()

    async def resolve_service_datastore(self, service_url: str,
                                        environment: Optional[str] = None) -> Correlation:
        service_name = extract_service_name(service_url)
        correlation = Correlation(service_name=service_name, service_url=service_url)

        direct = await self._resolve_direct(service_url, service_name, environment)
        if direct is not None:
            correlation.backing_datastore = direct
            correlation.method = CorrelationMethod.DIRECT
            correlation.confidence = CorrelationConfidence.HIGH
            return correlation

        inferred = await self._resolve_heuristic(service_url, service_name)
        if inferred is not None:
            correlation.backing_datastore = inferred
            correlation.method = CorrelationMethod.HEURISTIC
            correlation.confidence = CorrelationConfidence.MEDIUM
            return correlation

        logger.info(f"No backing data store found for {service_url}")
        return correlation

    async def _fetch_metadata(self, service_url: str) -> Optional[Dict[str, Any]]:
        metadata = await self.metadata_fetcher.fetch_json(metadata_url(service_url))
        return metadata if isinstance(metadata, dict) else None

    async def _resolve_direct(self, service_url: str, service_name: str,
                              environment: Optional[str]) -> Optional[DatastoreDescriptor]:
        try:
            session = self.session_store.get_admin_session(environment)
            if session is None or session.is_expired():
                logger.debug("No elevated session available, skipping registry correlation")
                return None

            client = self.client_factory(session)
            try:
                datastores = await client.list_datastores()
            finally:
                await client.aclose()

            match = match_by_name(service_name, datastores)
            if match is not None:
                return match

            metadata = await self._fetch_metadata(service_url)
            if metadata:
                return match_by_spatial_reference(metadata, datastores)
        except Exception as e:
            logger.warning(f"Registry correlation failed for {service_url}: {e}")
        return None

    async def _resolve_heuristic(self, service_url: str,
                                 service_name: str) -> Optional[DatastoreDescriptor]:
        try:
            metadata = await self._fetch_metadata(service_url)
            if not metadata:
                return None
            # A responding service is taken as evidence the store is healthy
            return DatastoreDescriptor(
                name=f"{service_name}_inferred",
                type=infer_datastore_type(metadata),
                status=DatastoreStatus.HEALTHY,
                path="/inferred",
                on_server_start=True,
                is_managed=False,
            )
        except Exception as e:
            logger.debug(f"Metadata heuristics failed for {service_url}: {e}")
        return None
