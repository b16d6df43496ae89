"""Shared fixtures: in-memory stand-ins for the asyncpg pool."""

import logging
import random
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock

import pytest

from core import migrate
from quotes import repository
from quotes.repository import QuoteRepository


def normalize(sql):
    return " ".join(sql.split())


class InMemoryQuotesConnector:
    """Answers the statements QuoteRepository issues from a list of rows.

    Only the exact statements of `quotes.repository` are understood; anything
    else fails loudly so tests notice SQL drift.
    """

    def __init__(self):
        self.rows = []
        self.next_id = 1
        self.calls = []

    async def execute(self, sql, *args):
        self.calls.append((normalize(sql), args))
        if sql == repository.INSERT_QUOTE_SQL:
            author, quote = args
            self.rows.append({"id": self.next_id, "author": author, "quote": quote})
            self.next_id += 1
            return "INSERT 0 1"
        if sql == repository.DELETE_QUOTE_SQL:
            (quote_id,) = args
            before = len(self.rows)
            self.rows = [row for row in self.rows if row["id"] != quote_id]
            return f"DELETE {before - len(self.rows)}"
        raise AssertionError(f"unexpected statement: {sql}")

    async def fetch(self, sql, *args):
        self.calls.append((normalize(sql), args))
        if normalize(sql) == normalize(repository.SELECT_QUOTES_SQL):
            return [dict(row) for row in self.rows]
        if normalize(sql) == normalize(repository.SELECT_QUOTES_SQL + " WHERE author = $1"):
            (author,) = args
            return [dict(row) for row in self.rows if row["author"] == author]
        raise AssertionError(f"unexpected query: {sql}")

    async def fetchrow(self, sql, *args):
        self.calls.append((normalize(sql), args))
        if sql == repository.SELECT_RANDOM_QUOTE_SQL:
            return dict(random.choice(self.rows)) if self.rows else None
        raise AssertionError(f"unexpected query: {sql}")

    async def ping(self):
        return None

    async def close(self):
        return None


class FakeMigrationConnection:
    """Connection double for MigrationRunner.

    Keeps `schema_migrations` in a dict and records every statement. Work done
    inside `transaction()` is rolled back when the block raises.
    """

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.applied = {}
        self.scripts = []
        self.statements = []
        self.locked = False
        self.bookkeeping_created = False

    async def execute(self, sql, *args):
        self.statements.append(normalize(sql))
        if sql == migrate.LOCK_SQL:
            self.locked = True
        elif sql == migrate.UNLOCK_SQL:
            self.locked = False
        elif sql == migrate.CREATE_BOOKKEEPING_SQL:
            self.bookkeeping_created = True
        elif sql == migrate.INSERT_APPLIED_SQL:
            version, name = args
            self.applied[version] = name
        else:
            if self.fail_on is not None and self.fail_on in sql:
                raise OSError("syntax error at or near")
            self.scripts.append(sql)
        return "OK"

    async def fetch(self, sql, *args):
        self.statements.append(normalize(sql))
        assert sql == migrate.SELECT_APPLIED_SQL
        return [{"version": v} for v in sorted(self.applied)]

    @asynccontextmanager
    async def transaction(self):
        applied = dict(self.applied)
        scripts = list(self.scripts)
        try:
            yield
        except BaseException:
            self.applied = applied
            self.scripts = scripts
            raise


class FakeMigrationPool:
    def __init__(self, conn=None, acquire_error=None):
        self.conn = conn or FakeMigrationConnection()
        self.acquire_error = acquire_error
        self.acquired = 0
        self.released = 0

    @asynccontextmanager
    async def acquire(self):
        if self.acquire_error is not None:
            raise self.acquire_error
        self.acquired += 1
        try:
            yield self.conn
        finally:
            self.released += 1


@pytest.fixture
def logger():
    return logging.getLogger("tests.quotemanager")


@pytest.fixture
def mock_conn():
    """Scripted connector; set return values / side effects per test."""
    conn = MagicMock()
    conn.execute = AsyncMock(return_value="INSERT 0 1")
    conn.fetch = AsyncMock(return_value=[])
    conn.fetchrow = AsyncMock(return_value=None)
    conn.ping = AsyncMock(return_value=None)
    conn.close = AsyncMock(return_value=None)
    return conn


@pytest.fixture
def memory_conn():
    return InMemoryQuotesConnector()


@pytest.fixture
def memory_repo(memory_conn, logger):
    return QuoteRepository(memory_conn, logger)


@pytest.fixture
def migration_pool():
    return FakeMigrationPool()
