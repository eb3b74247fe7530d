import argparse
import os
import sys
from importlib.util import find_spec
from pathlib import Path

_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def main() -> int:
    parser = argparse.ArgumentParser(
        description="Apply forward-only PostgreSQL migrations for the product sync store."
    )
    parser.add_argument(
        "--dsn",
        default=os.getenv("PRODUCT_SYNC_POSTGRES_DSN", "").strip(),
        help="PostgreSQL DSN for the product sync store.",
    )
    parser.add_argument(
        "--namespace",
        default="products",
        help="Migration namespace under src/infrastructure/postgres_migrations.",
    )
    args = parser.parse_args()

    if not args.dsn:
        raise RuntimeError(f"POSTGRES_MIGRATION_DSN_REQUIRED:{args.namespace}")
    if find_spec("psycopg") is None:
        raise RuntimeError("POSTGRES_MIGRATION_DRIVER_MISSING")
    import psycopg
    from psycopg.rows import dict_row

    from src.infrastructure.postgres_migrations import apply_postgres_migrations

    with psycopg.connect(args.dsn, row_factory=dict_row) as connection:
        applied = apply_postgres_migrations(connection=connection, namespace=args.namespace)
    if applied:
        print(f"Applied migrations for namespace={args.namespace}: {', '.join(applied)}")
    else:
        print(f"No pending migrations for namespace={args.namespace}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
