import os

import pytest

from conftest import idle_connections, read_entry, write_entry
from path_store import config
from path_store.app.errors import (
    BadRequestError,
    EntryConflictError,
    EntryNotFoundError,
    IncompleteWriteError,
    StoreError,
)


def test_round_trip(store):
    content = os.urandom(100 * 1024)
    write_entry(store, "notes/a", content, "application/octet-stream")

    entry, data = read_entry(store, "notes/a")
    assert data == content
    assert entry.content_type == "application/octet-stream"
    assert entry.length == len(content)
    assert idle_connections(store.pool) == store.pool.size


def test_new_entry_timestamps(store, clock):
    write_entry(store, "notes/a", b"hello")

    entry = store.lookup("notes/a")
    assert entry.created_at == clock.now
    assert entry.updated_at is None
    assert entry.accessed_at is None
    assert entry.last_modified == entry.created_at


def test_missing_path(store):
    assert store.lookup("missing") is None
    with pytest.raises(EntryNotFoundError):
        store.open_reader("missing")
    with pytest.raises(EntryNotFoundError):
        store.delete("missing")
    assert idle_connections(store.pool) == store.pool.size


def test_delete_twice(store):
    write_entry(store, "notes/a", b"hello")

    store.delete("notes/a")
    assert store.lookup("notes/a") is None
    with pytest.raises(EntryNotFoundError):
        store.delete("notes/a")


def test_duplicate_path_conflicts(store):
    write_entry(store, "notes/a", b"first")

    with pytest.raises(EntryConflictError):
        store.begin_create("notes/a", "text/plain", 6)

    _, data = read_entry(store, "notes/a")
    assert data == b"first"
    assert idle_connections(store.pool) == store.pool.size


@pytest.mark.parametrize("length", [0, -1])
def test_non_positive_length_is_rejected(store, length):
    with pytest.raises(BadRequestError):
        store.begin_create("notes/a", "text/plain", length)
    assert idle_connections(store.pool) == store.pool.size


def test_in_flight_write_is_invisible(store):
    pending = store.begin_create("notes/a", "text/plain", 10)
    pending.write(b"hello")

    # A second connection must not see the zero-filled placeholder
    assert store.lookup("notes/a") is None

    pending.write(b"world")
    pending.commit()
    _, data = read_entry(store, "notes/a")
    assert data == b"helloworld"


def test_short_write_rolls_back(store):
    pending = store.begin_create("notes/a", "text/plain", 5)
    pending.write(b"hel")

    with pytest.raises(IncompleteWriteError) as excinfo:
        pending.commit()

    assert excinfo.value.expected == 5
    assert excinfo.value.received == 3
    assert store.lookup("notes/a") is None
    assert idle_connections(store.pool) == store.pool.size


def test_overlong_write_is_refused(store):
    pending = store.begin_create("notes/a", "text/plain", 3)

    with pytest.raises(IncompleteWriteError):
        pending.write(b"hello")
    pending.abort()

    assert store.lookup("notes/a") is None
    assert idle_connections(store.pool) == store.pool.size


def test_abort_is_idempotent(store):
    pending = store.begin_create("notes/a", "text/plain", 3)
    pending.abort()
    pending.abort()
    assert idle_connections(store.pool) == store.pool.size


def test_read_within_threshold_does_not_touch(store, clock):
    write_entry(store, "notes/a", b"hello")

    clock.advance(60)
    read_entry(store, "notes/a")

    assert store.lookup("notes/a").accessed_at is None


def test_read_after_threshold_touches(store, clock):
    write_entry(store, "notes/a", b"hello")

    clock.advance(61)
    read_entry(store, "notes/a")

    entry = store.lookup("notes/a")
    assert entry.accessed_at == clock.now
    # Touching never counts as a modification
    assert entry.last_modified == entry.created_at


def test_read_without_touch_flag_leaves_entry_alone(store, clock):
    write_entry(store, "notes/a", b"hello")

    clock.advance(120)
    read_entry(store, "notes/a", touch=False)

    assert store.lookup("notes/a").accessed_at is None


def test_replace_keeps_created_at(store, clock):
    write_entry(store, "notes/a", b"hello")
    created_at = clock.now
    clock.advance(300)

    pending = store.begin_replace("notes/a", "application/json", 2)
    pending.write(b"{}")
    pending.commit()

    entry, data = read_entry(store, "notes/a")
    assert data == b"{}"
    assert entry.content_type == "application/json"
    assert entry.created_at == created_at
    assert entry.updated_at == clock.now
    assert entry.last_modified == clock.now


def test_replace_missing_path(store):
    with pytest.raises(EntryNotFoundError):
        store.begin_replace("notes/a", "text/plain", 5)
    assert idle_connections(store.pool) == store.pool.size


def test_failed_replace_keeps_old_entry(store):
    write_entry(store, "notes/a", b"hello")

    pending = store.begin_replace("notes/a", "text/plain", 10)
    pending.write(b"new")
    pending.abort()

    _, data = read_entry(store, "notes/a")
    assert data == b"hello"


def test_malformed_timestamp_is_internal_error(store, pool):
    write_entry(store, "notes/a", b"hello")
    with pool.connection() as conn:
        conn.execute("UPDATE content SET created_at = 'yesterday' WHERE path = 'notes/a'")

    with pytest.raises(StoreError):
        store.lookup("notes/a")
    with pytest.raises(StoreError):
        store.open_reader("notes/a")
    assert idle_connections(pool) == pool.size


def test_length_above_limit_is_rejected(store, monkeypatch):
    monkeypatch.setattr(config, "MAX_CONTENT_LENGTH", 4)

    with pytest.raises(BadRequestError):
        store.begin_create("notes/a", "text/plain", 5)
    assert idle_connections(store.pool) == store.pool.size


def test_unstorable_length_is_internal_error(store, monkeypatch):
    monkeypatch.setattr(config, "MAX_CONTENT_LENGTH", 2 ** 80)

    with pytest.raises(StoreError):
        store.begin_create("notes/a", "text/plain", 2 ** 70)
    assert store.lookup("notes/a") is None
    assert idle_connections(store.pool) == store.pool.size
