from extension_fields.schemas import FieldDataType
from extension_fields.services.column_provisioner import create_field, delete_field
from extension_fields.services.metadata_loader import ExtensionMetadata
from extension_fields.services.schema_cache import VersionGatedCache


class _CountingLoader:
    def __init__(self) -> None:
        self.calls: list[int] = []

    def __call__(self, session, version: int) -> ExtensionMetadata:
        self.calls.append(version)
        return ExtensionMetadata(version=version, column_prefix="ext_")


def test_loader_runs_only_on_version_mismatch():
    versions = iter([3, 3, 3, 4, 4])
    loader = _CountingLoader()
    cache = VersionGatedCache(version_reader=lambda session: next(versions), loader=loader)

    assert cache.cached_version is None
    first = cache.get(None)
    assert cache.get(None) is first
    assert cache.get(None) is first
    assert loader.calls == [3]

    refreshed = cache.get(None)
    assert refreshed is not first
    assert refreshed.version == 4
    assert cache.get(None) is refreshed
    assert loader.calls == [3, 4]


def test_invalidate_forces_reload():
    loader = _CountingLoader()
    cache = VersionGatedCache(version_reader=lambda session: 7, loader=loader)

    cache.get(None)
    cache.invalidate()

    assert cache.peek() is None
    cache.get(None)
    assert loader.calls == [7, 7]


def test_cache_reloads_after_another_process_adds_a_field(db_session):
    create_field(db_session, "Customer", "Loyalty Tier", FieldDataType.STRING, max_length=20)
    create_field(db_session, "Customer", "Points", FieldDataType.INT)
    create_field(db_session, "Product", "Color", FieldDataType.STRING)

    ours = VersionGatedCache()
    theirs = VersionGatedCache()

    snapshot = ours.get(db_session)
    assert snapshot.version == 3
    assert ours.get(db_session) is snapshot

    # A second process provisions a field; ours has no direct notification.
    theirs.get(db_session)
    create_field(db_session, "Customer", "Vip Since", FieldDataType.DATE)

    assert ours.peek() is snapshot
    refreshed = ours.get(db_session)
    assert refreshed.version == 4
    assert refreshed.find_column("Customer", "ext_vip_since") is not None
    assert snapshot.find_column("Customer", "ext_vip_since") is None
    assert theirs.get(db_session).version == 4


def test_cache_drops_deleted_field_after_version_bump(db_session, schema_cache):
    definition = create_field(db_session, "Customer", "Points", FieldDataType.INT)
    assert schema_cache.get(db_session).find_column("Customer", "ext_points") is not None

    delete_field(db_session, definition.id)

    metadata = schema_cache.get(db_session)
    assert metadata.version == 2
    assert metadata.find_column("Customer", "ext_points") is None
