import os
import sys
from pathlib import Path

from collections.abc import Generator

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import Session, sessionmaker

PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

TEST_DATABASE_URL = "sqlite://"
os.environ.setdefault("DATABASE_URL", TEST_DATABASE_URL)
os.environ.setdefault("EXTENSION_COLUMN_PREFIX", "ext_")

from extension_fields.database import Base, get_db  # noqa: E402
from extension_fields.main import app  # noqa: E402
from extension_fields.services.extension_field_catalog import (  # noqa: E402
    ensure_schema_version_row,
)
from extension_fields.services.schema_cache import (  # noqa: E402
    VersionGatedCache,
    extension_schema_cache,
)


def _create_testing_engine():
    return create_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )


def _create_test_sessionmaker(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, future=True)


@pytest.fixture(scope="session")
def engine():
    engine = _create_testing_engine()
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def reset_extension_cache() -> Generator[None, None, None]:
    # Every test starts from version 0, so a cached snapshot could match a stale version.
    extension_schema_cache.invalidate()
    yield
    extension_schema_cache.invalidate()


@pytest.fixture(scope="function")
def db_session(engine) -> Generator[Session, None, None]:
    # Dropping the host tables also removes columns added at runtime by earlier tests.
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    connection = engine.connect()

    TestingSessionLocal = _create_test_sessionmaker(connection)
    session = TestingSessionLocal()
    ensure_schema_version_row(session)

    try:
        yield session
    finally:
        session.close()
        connection.close()


@pytest.fixture()
def schema_cache() -> VersionGatedCache:
    return VersionGatedCache()


class PrefixedTestClient(TestClient):
    api_prefix = "/api"

    def request(self, method: str, url: str, *args, **kwargs):  # type: ignore[override]
        if url.startswith("/"):
            url = f"{self.api_prefix}{url}"
        return super().request(method, url, *args, **kwargs)


@pytest.fixture()
def client(db_session: Session) -> Generator[TestClient, None, None]:
    def override_get_db():
        try:
            yield db_session
        finally:
            pass

    app.dependency_overrides[get_db] = override_get_db

    client = PrefixedTestClient(app)
    try:
        yield client
    finally:
        app.dependency_overrides.pop(get_db, None)
