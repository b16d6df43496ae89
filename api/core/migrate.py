"""
Schema migrations.

Scripts ship inside the `migrations` package and are applied in version
order, each one exactly once. Applied versions are recorded in
`schema_migrations`. A run with nothing pending is a no-op.

The runner borrows one dedicated connection from the shared pool for the
whole run and holds a session advisory lock on it, so two processes starting
at the same time do not apply the same script twice.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from importlib import resources
from typing import Any, Sequence

from .db import STORE_ERRORS

MIGRATIONS_PACKAGE = "migrations"

# Arbitrary, but must stay stable across releases.
ADVISORY_LOCK_ID = 7_305_411_902

_FILENAME_RE = re.compile(r"^(\d+)_([A-Za-z0-9_\-]+)\.sql$")

LOCK_SQL = "SELECT pg_advisory_lock($1)"
UNLOCK_SQL = "SELECT pg_advisory_unlock($1)"

CREATE_BOOKKEEPING_SQL = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version BIGINT PRIMARY KEY,
        name TEXT NOT NULL,
        applied_at TIMESTAMPTZ NOT NULL DEFAULT now()
    )
"""

SELECT_APPLIED_SQL = "SELECT version FROM schema_migrations"

INSERT_APPLIED_SQL = """
    INSERT INTO schema_migrations (version, name)
    VALUES ($1, $2)
"""


class MigrationError(RuntimeError):
    pass


@dataclass(frozen=True)
class Migration:
    version: int
    name: str
    sql: str

    @property
    def label(self) -> str:
        return f"{self.version:04d}_{self.name}"


def load_migrations(package: str = MIGRATIONS_PACKAGE) -> list[Migration]:
    """
    Read every `*.sql` file of `package`, sorted by version.

    Raises MigrationError for unreadable packages, ill-named files and
    duplicate versions.
    """
    try:
        entries = [
            entry
            for entry in resources.files(package).iterdir()
            if entry.is_file() and entry.name.endswith(".sql")
        ]
    except (ModuleNotFoundError, OSError) as exc:
        raise MigrationError(f"cannot read migration package {package!r}") from exc

    by_version: dict[int, Migration] = {}
    for entry in entries:
        match = _FILENAME_RE.match(entry.name)
        if match is None:
            raise MigrationError(f"bad migration file name: {entry.name}")

        version = int(match.group(1))
        if version in by_version:
            raise MigrationError(
                f"duplicate migration version {version}: "
                f"{by_version[version].label} and {entry.name}"
            )
        try:
            sql = entry.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            raise MigrationError(f"cannot read migration file {entry.name}") from exc

        by_version[version] = Migration(version=version, name=match.group(2), sql=sql)

    return [by_version[v] for v in sorted(by_version)]


class MigrationRunner:
    def __init__(
        self,
        pool: Any,
        logger: logging.Logger,
        *,
        migrations: Sequence[Migration] | None = None,
        package: str = MIGRATIONS_PACKAGE,
        lock_id: int = ADVISORY_LOCK_ID,
    ) -> None:
        # `pool` only needs `acquire()` returning an async context manager.
        self.pool = pool
        self.log = logger
        self.migrations = migrations
        self.package = package
        self.lock_id = lock_id

    async def run(self) -> list[int]:
        """
        Apply pending scripts. Returns the versions applied by this run.
        """
        self.log.debug("migration_started")

        if self.migrations is None:
            try:
                migrations = load_migrations(self.package)
            except MigrationError:
                self.log.exception("migration_load_failed package=%s", self.package)
                raise
        else:
            migrations = sorted(self.migrations, key=lambda m: m.version)
        self.log.debug("migration_files_loaded count=%s", len(migrations))

        try:
            async with self.pool.acquire() as conn:
                applied = await self._apply(conn, migrations)
        except MigrationError:
            raise
        except STORE_ERRORS as exc:
            self.log.error("migration_failed error=%r", exc)
            raise MigrationError("migration run failed") from exc

        if applied:
            self.log.info("migration_finished applied=%s", applied)
        else:
            self.log.debug("migration did not change anything")
        return applied

    async def _apply(self, conn: Any, migrations: Sequence[Migration]) -> list[int]:
        await conn.execute(LOCK_SQL, self.lock_id)
        try:
            await conn.execute(CREATE_BOOKKEEPING_SQL)
            rows = await conn.fetch(SELECT_APPLIED_SQL)
            done = {int(row["version"]) for row in rows}

            applied: list[int] = []
            for migration in migrations:
                if migration.version in done:
                    continue
                try:
                    async with conn.transaction():
                        await conn.execute(migration.sql)
                        await conn.execute(INSERT_APPLIED_SQL, migration.version, migration.name)
                except STORE_ERRORS as exc:
                    self.log.error("migration_script_failed migration=%s error=%r", migration.label, exc)
                    raise MigrationError(f"migration {migration.label} failed") from exc

                self.log.info("migration_applied migration=%s", migration.label)
                applied.append(migration.version)
            return applied
        finally:
            await conn.execute(UNLOCK_SQL, self.lock_id)
