"""Data store response parsing and service-to-datastore correlation.

Only the parsers are exported here. The resolver depends on the admin
client, which itself imports the parsers, so it must be imported directly
from ``gis_admin.datastores.resolver``.
"""

from .parsers import normalize_datastore_type, parse_health_report

__all__ = ['normalize_datastore_type', 'parse_health_report']
