import os
from datetime import datetime, timedelta, timezone

# Keep test runs from writing log files into the working directory
os.environ.setdefault("PATH_STORE_LOG_DIR", "")

import pytest
from fastapi.testclient import TestClient

from path_store.app.repository.content_repository import ContentStore
from path_store.app.services.blob_transfer import BlobTransfer
from path_store.app.services.schema import SchemaInitializer
from path_store.db import ConnectionPool
from path_store.main import create_app


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start=datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def database_path(tmp_path):
    return str(tmp_path / "test.sqlite")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def pool(database_path):
    pool = ConnectionPool(database_path, size=4)
    yield pool
    pool.close()


@pytest.fixture
def schema(pool):
    return SchemaInitializer(pool)


@pytest.fixture
def store(pool, schema, clock):
    schema.ensure()
    return ContentStore(pool, clock=clock)


@pytest.fixture
def transfer(store, schema):
    return BlobTransfer(store, schema, chunk_size=4)


@pytest.fixture
def client(database_path, clock):
    app = create_app(database_path, pool_size=4, clock=clock)
    with TestClient(app) as client:
        yield client


def write_entry(store, path, data, content_type="text/plain"):
    pending = store.begin_create(path, content_type, len(data))
    pending.write(data)
    pending.commit()


def read_entry(store, path, touch=True):
    reader = store.open_reader(path)
    chunks = []
    while chunk := reader.read(1024):
        chunks.append(chunk)
    reader.close(touch=touch)
    return reader.entry, b"".join(chunks)


def idle_connections(pool):
    return pool._idle.qsize()
