"""
Forward-only PostgreSQL schema migrations for the product sync store.

Migration files live in ``postgres_migrations/<namespace>/NNNN_<name>.sql``.
Applied versions are tracked in ``schema_migrations`` as ``<namespace>:<NNNN>``
together with the file checksum, so an edited migration is detected instead
of silently skipped.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)

MIGRATIONS_ROOT = Path(__file__).with_name("postgres_migrations")

_CREATE_SCHEMA_MIGRATIONS = """
    CREATE TABLE IF NOT EXISTS schema_migrations (
        version TEXT PRIMARY KEY,
        namespace TEXT NOT NULL,
        checksum TEXT NOT NULL,
        applied_at TEXT NOT NULL
    )
"""


@dataclass(frozen=True)
class PostgresMigration:
    version: str
    sql_path: Path
    checksum: str

    def statements(self) -> list[str]:
        sql = self.sql_path.read_text(encoding="utf-8")
        return [statement.strip() for statement in sql.split(";") if statement.strip()]


def apply_postgres_migrations(
    *, connection: Any, namespace: str, migrations_root: Optional[Path] = None
) -> list[str]:
    """Apply pending migrations for ``namespace`` and return the versions applied now.

    Runs under a session-level advisory lock keyed by namespace. A checksum
    mismatch raises ``RuntimeError`` and rolls the connection back.
    """
    lock_key = _migration_lock_key(namespace=namespace)
    connection.execute("SELECT pg_advisory_lock(%s::bigint)", (lock_key,))
    try:
        applied = _apply_migrations_locked(
            connection=connection,
            namespace=namespace,
            migrations_root=migrations_root or MIGRATIONS_ROOT,
        )
    except Exception:
        connection.rollback()
        raise
    finally:
        connection.execute("SELECT pg_advisory_unlock(%s::bigint)", (lock_key,))
    if applied:
        logger.info(
            "postgres.migrations_applied",
            extra={"extra_fields": {"namespace": namespace, "versions": applied}},
        )
    return applied


def _apply_migrations_locked(
    *, connection: Any, namespace: str, migrations_root: Path
) -> list[str]:
    migrations = _load_migrations(namespace=namespace, migrations_root=migrations_root)
    connection.execute(_CREATE_SCHEMA_MIGRATIONS)
    applied = _applied_checksums(connection=connection, namespace=namespace)

    newly_applied: list[str] = []
    for migration in migrations:
        if migration.version in applied:
            if applied[migration.version] != migration.checksum:
                raise RuntimeError(
                    f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{migration.version}"
                )
            continue
        for statement in migration.statements():
            connection.execute(statement)
        _record_migration(connection=connection, namespace=namespace, migration=migration)
        newly_applied.append(migration.version)
    connection.commit()
    return newly_applied


def _applied_checksums(*, connection: Any, namespace: str) -> dict[str, str]:
    rows = connection.execute(
        """
        SELECT version, checksum
        FROM schema_migrations
        WHERE namespace = %s
        ORDER BY version ASC
        """,
        (namespace,),
    ).fetchall()
    prefix = f"{namespace}:"
    checksums: dict[str, str] = {}
    for row in rows:
        version = str(row["version"]).removeprefix(prefix)
        checksum = str(row["checksum"])
        if checksums.get(version, checksum) != checksum:
            raise RuntimeError(f"POSTGRES_MIGRATION_CHECKSUM_MISMATCH:{namespace}:{version}")
        checksums[version] = checksum
    return checksums


def _record_migration(*, connection: Any, namespace: str, migration: PostgresMigration) -> None:
    connection.execute(
        """
        INSERT INTO schema_migrations (
            version,
            namespace,
            checksum,
            applied_at
        ) VALUES (%s, %s, %s, %s)
        """,
        (
            f"{namespace}:{migration.version}",
            namespace,
            migration.checksum,
            datetime.now(timezone.utc).isoformat(),
        ),
    )


def _load_migrations(*, namespace: str, migrations_root: Path) -> list[PostgresMigration]:
    namespace_path = migrations_root / namespace
    if not namespace_path.is_dir():
        raise RuntimeError(f"POSTGRES_MIGRATIONS_NAMESPACE_NOT_FOUND:{namespace}")
    return [
        PostgresMigration(
            version=sql_path.stem.split("_", maxsplit=1)[0],
            sql_path=sql_path,
            checksum=hashlib.sha256(sql_path.read_bytes()).hexdigest(),
        )
        for sql_path in sorted(namespace_path.glob("*.sql"))
    ]


def _migration_lock_key(*, namespace: str) -> int:
    digest = hashlib.sha256(namespace.encode("utf-8")).digest()[:8]
    return int.from_bytes(digest, byteorder="big", signed=True)
