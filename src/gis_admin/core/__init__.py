"""Core administration modules: HTTP transport and the admin client."""

from .transport import AdminTransport, MetadataFetcher
from .admin_client import AdminClient, parse_service_name

__all__ = ['AdminTransport', 'MetadataFetcher', 'AdminClient', 'parse_service_name']
