"""Credential store backends for account data."""

from __future__ import annotations

import json
import logging
from datetime import datetime
from threading import Lock
from typing import Protocol

import psycopg
from psycopg import errors as pg_errors
from psycopg.rows import tuple_row
from psycopg_pool import ConnectionPool, PoolTimeout
from redis import Redis
from redis.exceptions import RedisError, WatchError

from .config import Settings
from .domain.account import Account, AccountSummary

logger = logging.getLogger(__name__)


class StoreError(Exception):
    """Raised when the underlying storage fails or rejects a write."""


class DuplicateEmailError(StoreError):
    """Raised by ``insert`` when the email is already stored."""


class AccountRepository(Protocol):
    """Persistence contract consumed by ``AuthService``."""

    def exists(self, email: str) -> bool: ...

    def insert(self, account: Account) -> Account: ...

    def find_by_email(self, email: str) -> Account | None: ...

    def list_all(self) -> list[AccountSummary]: ...

    def count(self) -> int: ...

    def close(self) -> None: ...


class InMemoryAccountRepository:
    """Thread-safe process-local store; uniqueness is enforced under the lock."""

    def __init__(self) -> None:
        self._accounts: dict[str, Account] = {}
        self._lock = Lock()

    def exists(self, email: str) -> bool:
        with self._lock:
            return email in self._accounts

    def insert(self, account: Account) -> Account:
        with self._lock:
            if account.email in self._accounts:
                raise DuplicateEmailError(account.email)
            self._accounts[account.email] = account
        return account

    def find_by_email(self, email: str) -> Account | None:
        with self._lock:
            return self._accounts.get(email)

    def list_all(self) -> list[AccountSummary]:
        with self._lock:
            return [account.summary() for account in self._accounts.values()]

    def count(self) -> int:
        with self._lock:
            return len(self._accounts)

    def close(self) -> None:
        with self._lock:
            self._accounts.clear()


_SCHEMA = """
CREATE TABLE IF NOT EXISTS accounts (
    account_id TEXT PRIMARY KEY,
    username TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    created_at TIMESTAMPTZ NOT NULL
)
"""


class PostgresAccountRepository:
    """Postgres-backed account persistence with a unique index on email."""

    def __init__(self, pool: ConnectionPool, *, timeout_seconds: float = 5.0) -> None:
        """Store the connection pool used for all database interactions."""
        self._pool = pool
        self._timeout = timeout_seconds
        self._closed = False

    def ensure_schema(self) -> None:
        """Create the ``accounts`` table when it does not exist yet."""
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                conn.execute(_SCHEMA)
                conn.commit()
        except (psycopg.Error, PoolTimeout) as exc:
            raise StoreError("schema initialisation failed") from exc

    def exists(self, email: str) -> bool:
        row = self._fetchone("SELECT COUNT(*) FROM accounts WHERE email = %s", (email,))
        return bool(row and row[0] > 0)

    def insert(self, account: Account) -> Account:
        """Persist a fully-formed account; a unique-index hit raises ``DuplicateEmailError``."""
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    self._apply_statement_timeout(cur)
                    cur.execute(
                        """
                        INSERT INTO accounts (account_id, username, email, password_hash, created_at)
                        VALUES (%s, %s, %s, %s, %s)
                        """,
                        (
                            account.account_id,
                            account.username,
                            account.email,
                            account.password_hash,
                            account.created_at,
                        ),
                    )
                conn.commit()
        except pg_errors.UniqueViolation as exc:
            raise DuplicateEmailError(account.email) from exc
        except (psycopg.Error, PoolTimeout) as exc:
            raise StoreError("insert failed") from exc
        return account

    def find_by_email(self, email: str) -> Account | None:
        row = self._fetchone(
            """
            SELECT account_id, username, email, password_hash, created_at
            FROM accounts
            WHERE email = %s
            """,
            (email,),
        )
        if not row:
            return None
        return self._map_record(row)

    def list_all(self) -> list[AccountSummary]:
        rows = self._fetchall(
            """
            SELECT account_id, username, email, created_at
            FROM accounts
            ORDER BY created_at, account_id
            """
        )
        return [
            AccountSummary(account_id=row[0], username=row[1], email=row[2], created_at=row[3])
            for row in rows
        ]

    def count(self) -> int:
        row = self._fetchone("SELECT COUNT(*) FROM accounts")
        return int(row[0]) if row else 0

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._pool.close()

    def _apply_statement_timeout(self, cur: psycopg.Cursor) -> None:
        cur.execute(
            "SELECT set_config('statement_timeout', %s, true)",
            (f"{int(self._timeout * 1000)}ms",),
        )

    def _fetchone(self, query: str, params: tuple = ()) -> tuple | None:
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    self._apply_statement_timeout(cur)
                    cur.execute(query, params)
                    return cur.fetchone()
        except (psycopg.Error, PoolTimeout) as exc:
            raise StoreError("query failed") from exc

    def _fetchall(self, query: str, params: tuple = ()) -> list[tuple]:
        try:
            with self._pool.connection(timeout=self._timeout) as conn:
                with conn.cursor(row_factory=tuple_row) as cur:
                    self._apply_statement_timeout(cur)
                    cur.execute(query, params)
                    return cur.fetchall()
        except (psycopg.Error, PoolTimeout) as exc:
            raise StoreError("query failed") from exc

    def _map_record(self, row: tuple) -> Account:
        """Convert a raw database tuple into the domain ``Account`` dataclass."""
        return Account(
            account_id=row[0],
            username=row[1],
            email=row[2],
            password_hash=row[3],
            created_at=row[4],
        )


class RedisAccountRepository:
    """Redis-backed store: one JSON document per email, written in a WATCH/MULTI transaction."""

    def __init__(self, client: Redis, *, key_prefix: str = "auth") -> None:
        self._client = client
        self._key_prefix = key_prefix
        self._closed = False

    def _account_key(self, email: str) -> str:
        return f"{self._key_prefix}:account:{email}"

    def _id_key(self, account_id: str) -> str:
        return f"{self._key_prefix}:account-id:{account_id}"

    @property
    def _order_key(self) -> str:
        return f"{self._key_prefix}:accounts"

    def exists(self, email: str) -> bool:
        try:
            return bool(self._client.exists(self._account_key(email)))
        except RedisError as exc:
            raise StoreError("exists failed") from exc

    def insert(self, account: Account) -> Account:
        document = json.dumps(
            {
                "account_id": account.account_id,
                "username": account.username,
                "email": account.email,
                "password_hash": account.password_hash,
                "created_at": account.created_at.isoformat(),
            }
        )
        key = self._account_key(account.email)
        try:
            with self._client.pipeline() as pipe:
                # The document, id index and order list are committed together or not at all.
                pipe.watch(key)
                if pipe.exists(key):
                    raise DuplicateEmailError(account.email)
                pipe.multi()
                pipe.set(key, document)
                pipe.set(self._id_key(account.account_id), account.email)
                pipe.rpush(self._order_key, account.email)
                pipe.execute()
        except WatchError as exc:
            raise DuplicateEmailError(account.email) from exc
        except RedisError as exc:
            raise StoreError("insert failed") from exc
        return account

    def find_by_email(self, email: str) -> Account | None:
        try:
            raw = self._client.get(self._account_key(email))
        except RedisError as exc:
            raise StoreError("lookup failed") from exc
        if raw is None:
            return None
        return self._decode(raw)

    def list_all(self) -> list[AccountSummary]:
        try:
            emails = self._client.lrange(self._order_key, 0, -1)
            if not emails:
                return []
            documents = self._client.mget([self._account_key(self._text(e)) for e in emails])
        except RedisError as exc:
            raise StoreError("enumeration failed") from exc
        return [self._decode(raw).summary() for raw in documents if raw is not None]

    def count(self) -> int:
        try:
            return int(self._client.llen(self._order_key))
        except RedisError as exc:
            raise StoreError("count failed") from exc

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._client.close()

    @staticmethod
    def _text(value: bytes | str) -> str:
        return value.decode("utf-8") if isinstance(value, bytes) else value

    def _decode(self, raw: bytes | str) -> Account:
        data = json.loads(self._text(raw))
        return Account(
            account_id=data["account_id"],
            username=data["username"],
            email=data["email"],
            password_hash=data["password_hash"],
            created_at=datetime.fromisoformat(data["created_at"]),
        )


def build_repository(settings: Settings) -> AccountRepository:
    """Instantiate the configured store backend."""
    backend = settings.store_backend
    if backend == "postgres":
        pool = ConnectionPool(
            settings.database_url,
            open=False,
            timeout=settings.store_timeout_seconds,
        )
        pool.open()
        repository = PostgresAccountRepository(pool, timeout_seconds=settings.store_timeout_seconds)
        try:
            repository.ensure_schema()
        except StoreError:
            pool.close()
            raise
        logger.info("credential store using postgres backend")
        return repository
    if backend == "redis":
        client = Redis.from_url(
            settings.redis_url,
            socket_timeout=settings.store_timeout_seconds,
            socket_connect_timeout=settings.store_timeout_seconds,
        )
        logger.info("credential store using redis backend at %s", settings.redis_url)
        return RedisAccountRepository(client)
    if backend != "memory":
        raise ValueError(f"unknown store backend: {backend}")
    logger.info("credential store using in-memory backend")
    return InMemoryAccountRepository()
