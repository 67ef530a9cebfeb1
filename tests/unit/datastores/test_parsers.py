"""Raw-response parser tests for the data store registry."""

import pytest

from gis_admin.datastores.parsers import (
    build_validate_path,
    normalize_datastore_type,
    normalize_health_status,
    normalize_machine_role,
    parse_backup_status,
    parse_health_report,
    parse_registry_item,
    parse_registry_items,
    registration_endpoint,
)
from gis_admin.errors import InvalidResponseError
from gis_admin.models import DatastoreStatus, DatastoreType, MachineRole


class TestNormalizeDatastoreType:

    @pytest.mark.parametrize("raw", ["EGDB", "egdb-enterprise", "Enterprise"])
    def test_enterprise_variants(self, raw):
        assert normalize_datastore_type(raw) == DatastoreType.ENTERPRISE

    @pytest.mark.parametrize("raw,expected", [
        ("cloudStore", DatastoreType.CLOUD),
        ("Amazon S3", DatastoreType.CLOUD),
        ("AZURE blob", DatastoreType.CLOUD),
        ("relational", DatastoreType.RELATIONAL),
        ("tileCache", DatastoreType.TILE_CACHE),
        ("BigData", DatastoreType.SPATIOTEMPORAL),
        ("graphStore", DatastoreType.GRAPH),
        ("objectStore", DatastoreType.OBJECT),
        ("folder", DatastoreType.FILE_SHARE),
        ("fileShare", DatastoreType.FILE_SHARE),
        ("rasterStore", DatastoreType.RASTER),
    ])
    def test_categories(self, raw, expected):
        assert normalize_datastore_type(raw) == expected

    @pytest.mark.parametrize("raw", ["mystery", "", None])
    def test_unrecognized_defaults_to_enterprise(self, raw):
        assert normalize_datastore_type(raw) == DatastoreType.ENTERPRISE


class TestRegistry:

    def test_item_name_comes_from_last_path_segment(self):
        store = parse_registry_item({
            "path": "/enterpriseDatabases/gisdb",
            "type": "egdb",
            "info": {"isManaged": True, "dataStoreConnectionType": "shared"},
        })

        assert store.name == "gisdb"
        assert store.type == DatastoreType.ENTERPRISE
        assert store.is_managed is True
        assert store.on_server_start is False
        assert store.provider == "shared"

    def test_missing_items_is_empty(self):
        assert parse_registry_items({}) == []

    def test_item_without_path_is_invalid(self):
        with pytest.raises(InvalidResponseError):
            parse_registry_item({"type": "egdb"})

    @pytest.mark.parametrize("path,expected", [
        ("/enterpriseDatabases/db", "data/items/enterpriseDatabases/db/machines/primary/validate"),
        ("/nosqlDatabases/bigdata", "data/items/nosqlDatabases/bigdata/machines/primary/validate"),
        ("/cloudStores/bucket", "data/items/cloudStores/bucket/validate"),
        ("/fileShares/share", "data/items/fileShares/share/validate"),
    ])
    def test_validate_path(self, path, expected):
        assert build_validate_path(path) == expected

    def test_registration_endpoint(self):
        assert registration_endpoint(DatastoreType.SPATIOTEMPORAL) == "data/items/nosqlDatabases/register"


class TestHealth:

    @pytest.mark.parametrize("raw,expected", [
        ("Healthy", DatastoreStatus.HEALTHY),
        ("success", DatastoreStatus.HEALTHY),
        ("HealthyWithWarning", DatastoreStatus.HEALTHY_WITH_WARNING),
        (True, DatastoreStatus.HEALTHY),
        (False, DatastoreStatus.UNHEALTHY),
        ("Unhealthy", DatastoreStatus.UNHEALTHY),
        (None, DatastoreStatus.UNHEALTHY),
    ])
    def test_status(self, raw, expected):
        assert normalize_health_status(raw) == expected

    def test_unknown_role_is_member(self):
        assert normalize_machine_role("CLOUD_STORE") == MachineRole.MEMBER
        assert normalize_machine_role("standby") == MachineRole.STANDBY

    def test_single_machine_response_is_primary(self):
        report = parse_health_report("db", DatastoreType.ENTERPRISE, {
            "machineName": "db1", "status": "Healthy", "version": "11.3",
        })

        assert len(report.machines) == 1
        assert report.machines[0].role == MachineRole.PRIMARY
        assert report.machines[0].version == "11.3"

    def test_status_derived_from_machines_when_absent(self):
        report = parse_health_report("db", DatastoreType.RELATIONAL, {
            "machines": [
                {"machineName": "m1", "role": "PRIMARY", "status": "Healthy"},
                {"machineName": "m2", "role": "STANDBY", "status": "Unhealthy"},
            ],
        })

        assert report.status == DatastoreStatus.HEALTHY_WITH_WARNING

    def test_cloud_report_keeps_warnings(self):
        report = parse_health_report("bucket", DatastoreType.CLOUD, {
            "isHealthy": True, "warnings": ["Slow listing"], "recommendations": "Enable caching",
        })

        assert report.status == DatastoreStatus.HEALTHY
        assert report.warnings == ["Slow listing"]
        assert report.recommendations == ["Enable caching"]
        assert report.last_validated

    def test_non_object_is_invalid(self):
        with pytest.raises(InvalidResponseError):
            parse_health_report("db", DatastoreType.ENTERPRISE, ["not", "an", "object"])


def test_backup_defaults():
    backup = parse_backup_status({})

    assert backup.backup_mode is False
    assert backup.available_backups == []
