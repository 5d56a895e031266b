"""Contract tests for the credential store backends."""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from psycopg import errors as pg_errors
from redis.client import Pipeline
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import WatchError

from auth_service import repository as repository_module
from auth_service.config import Settings
from auth_service.domain.account import Account
from auth_service.repository import (
    DuplicateEmailError,
    InMemoryAccountRepository,
    PostgresAccountRepository,
    RedisAccountRepository,
    StoreError,
    build_repository,
)


def _account(email: str = "alice@example.com", account_id: str = "acc-1", offset: int = 0) -> Account:
    return Account(
        account_id=account_id,
        username="alice",
        email=email,
        password_hash="$2b$04$abcdefghijklmnopqrstuuJ2xq0W2c5m2m5Yd7mV2k9r2Xl6yq5G",
        created_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(seconds=offset),
    )


@pytest.fixture(params=["memory", "redis"])
def store(request):
    if request.param == "memory":
        repository = InMemoryAccountRepository()
    else:
        client = fakeredis.FakeStrictRedis(server=fakeredis.FakeServer())
        repository = RedisAccountRepository(client, key_prefix="test")
    yield repository
    repository.close()


def test_insert_and_lookup(store):
    account = _account()
    assert not store.exists(account.email)
    assert store.insert(account) == account
    assert store.exists(account.email)
    assert store.find_by_email(account.email) == account
    assert store.find_by_email("missing@example.com") is None


def test_lookup_is_exact_match(store):
    store.insert(_account())
    assert not store.exists("ALICE@example.com")
    assert store.find_by_email(" alice@example.com") is None


def test_duplicate_insert_rejected(store):
    store.insert(_account())
    with pytest.raises(DuplicateEmailError):
        store.insert(_account(account_id="acc-2"))
    assert store.count() == 1
    assert store.find_by_email("alice@example.com").account_id == "acc-1"


def test_list_all_and_count(store):
    store.insert(_account("alice@example.com", "acc-1", 0))
    store.insert(_account("bob@example.com", "acc-2", 1))
    summaries = store.list_all()
    assert store.count() == 2
    assert {summary.account_id for summary in summaries} == {"acc-1", "acc-2"}
    for summary in summaries:
        assert not hasattr(summary, "password_hash")


def test_close_is_idempotent(store):
    store.close()
    store.close()


def test_redis_failure_maps_to_store_error():
    server = fakeredis.FakeServer()
    server.connected = False
    repository = RedisAccountRepository(fakeredis.FakeStrictRedis(server=server))
    with pytest.raises(StoreError):
        repository.exists("alice@example.com")
    with pytest.raises(StoreError):
        repository.insert(_account())


def test_redis_failed_transaction_leaves_no_partial_account(monkeypatch):
    repository = RedisAccountRepository(fakeredis.FakeStrictRedis(server=fakeredis.FakeServer()))

    def fail_execute(self, raise_on_error=True):
        raise RedisConnectionError("connection reset")

    with monkeypatch.context() as patch:
        patch.setattr(Pipeline, "execute", fail_execute)
        with pytest.raises(StoreError):
            repository.insert(_account())

    assert not repository.exists("alice@example.com")
    assert repository.count() == 0
    assert repository.list_all() == []
    assert repository.insert(_account()) == _account()
    assert repository.count() == 1


def test_redis_concurrent_write_reports_duplicate(monkeypatch):
    repository = RedisAccountRepository(fakeredis.FakeStrictRedis(server=fakeredis.FakeServer()))

    def lose_race(self, raise_on_error=True):
        raise WatchError("watched key changed")

    monkeypatch.setattr(Pipeline, "execute", lose_race)
    with pytest.raises(DuplicateEmailError):
        repository.insert(_account())


class _FakeCursor:
    def __init__(self, conn: "_FakeConnection") -> None:
        self._conn = conn
        self._result = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, params=()):
        self._conn.queries.append(query)
        if "INSERT INTO accounts" in query and self._conn.fail_insert is not None:
            raise self._conn.fail_insert
        self._result = self._conn.rows

    def fetchone(self):
        return self._result[0] if self._result else None

    def fetchall(self):
        return list(self._result or [])


class _FakeConnection:
    def __init__(self, rows=None, fail_insert=None) -> None:
        self.rows = rows or []
        self.fail_insert = fail_insert
        self.queries: list[str] = []
        self.commits = 0

    def cursor(self, row_factory=None):
        return _FakeCursor(self)

    def execute(self, query, params=()):
        self.queries.append(query)

    def commit(self):
        self.commits += 1


class _FakePool:
    def __init__(self, conn: _FakeConnection) -> None:
        self.conn = conn
        self.closed = 0

    @contextmanager
    def connection(self, timeout=None):
        yield self.conn

    def close(self):
        self.closed += 1


def test_postgres_unique_violation_maps_to_duplicate():
    conn = _FakeConnection(fail_insert=pg_errors.UniqueViolation("duplicate key value"))
    repository = PostgresAccountRepository(_FakePool(conn))
    with pytest.raises(DuplicateEmailError):
        repository.insert(_account())


def test_postgres_driver_error_maps_to_store_error():
    conn = _FakeConnection(fail_insert=pg_errors.QueryCanceled("statement timeout"))
    repository = PostgresAccountRepository(_FakePool(conn))
    with pytest.raises(StoreError) as excinfo:
        repository.insert(_account())
    assert not isinstance(excinfo.value, DuplicateEmailError)


def test_postgres_insert_commits_and_bounds_statement():
    conn = _FakeConnection()
    repository = PostgresAccountRepository(_FakePool(conn), timeout_seconds=2)
    repository.insert(_account())
    assert conn.commits == 1
    assert any("statement_timeout" in query for query in conn.queries)


def test_postgres_maps_rows():
    account = _account()
    row = (
        account.account_id,
        account.username,
        account.email,
        account.password_hash,
        account.created_at,
    )
    repository = PostgresAccountRepository(_FakePool(_FakeConnection(rows=[row])))
    assert repository.find_by_email(account.email) == account


def test_postgres_close_is_idempotent():
    pool = _FakePool(_FakeConnection())
    repository = PostgresAccountRepository(pool)
    repository.close()
    repository.close()
    assert pool.closed == 1


def test_build_repository_defaults_to_memory():
    assert isinstance(build_repository(Settings(store_backend="memory")), InMemoryAccountRepository)


def test_build_repository_rejects_unknown_backend():
    with pytest.raises(ValueError):
        build_repository(Settings(store_backend="mongo"))


def test_build_repository_closes_pool_when_schema_fails(monkeypatch):
    pools: list[_FakePool] = []

    class RecordingPool(_FakePool):
        def __init__(self, conninfo, open=True, timeout=None):
            super().__init__(_FakeConnection())
            pools.append(self)

        def open(self):
            pass

    def broken_schema(self):
        raise StoreError("schema initialisation failed")

    monkeypatch.setattr(repository_module, "ConnectionPool", RecordingPool)
    monkeypatch.setattr(PostgresAccountRepository, "ensure_schema", broken_schema)

    with pytest.raises(StoreError):
        build_repository(Settings(store_backend="postgres"))
    assert len(pools) == 1
    assert pools[0].closed == 1
