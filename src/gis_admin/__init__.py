"""
Administrative client for a GIS server/portal pair.

Manages service lifecycle, validates data store health and resolves which
data store backs a given service.
"""

from gis_admin.core import AdminClient, AdminTransport, MetadataFetcher
from gis_admin.datastores.resolver import DatastoreResolver
from gis_admin.federation import FederationTokenCache, is_server_federated
from gis_admin.session import AdminSession, PortalSession, InMemorySessionStore

__version__ = "0.1.0"

__all__ = [
    "AdminClient",
    "AdminTransport",
    "MetadataFetcher",
    "DatastoreResolver",
    "FederationTokenCache",
    "is_server_federated",
    "AdminSession",
    "PortalSession",
    "InMemorySessionStore",
]
