#!/usr/bin/env python
# ============================================================================
# SCHEMA DEPLOYMENT SCRIPT
# ============================================================================
# PURPOSE: Deploy the ctrl schema to PostgreSQL using PydanticToSQL
# USAGE:
#   python scripts/deploy_schema.py --dry-run    # Preview SQL
#   python scripts/deploy_schema.py              # Execute deployment
#   python scripts/deploy_schema.py --status     # Records per kind and phase
# ============================================================================

import sys
import os
import argparse
import asyncio
import logging

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import psycopg
from psycopg import sql

from core.schema import PydanticToSQL
from repositories.database import SCHEMA, TABLE_RESOURCES, get_connection_string, mask_conninfo


async def deploy(conninfo: str, dry_run: bool) -> int:
    generator = PydanticToSQL(schema_name=SCHEMA)
    async with await psycopg.AsyncConnection.connect(conninfo, autocommit=True) as conn:
        return await generator.execute(conn, dry_run=dry_run)


async def status(conninfo: str) -> list:
    """(kind, phase, records, locked) rows, or [] when the table is missing."""
    async with await psycopg.AsyncConnection.connect(conninfo) as conn:
        cur = await conn.execute(
            "SELECT to_regclass(%s) IS NOT NULL", (f"{SCHEMA}.resources",)
        )
        (exists,) = await cur.fetchone()
        if not exists:
            return []
        cur = await conn.execute(sql.SQL("""
            SELECT kind::text, phase::text, count(*), count(locked_at)
            FROM {} GROUP BY kind, phase ORDER BY kind, phase
        """).format(TABLE_RESOURCES))
        return await cur.fetchall()


def main():
    parser = argparse.ArgumentParser(
        description="Deploy the control plane schema to PostgreSQL",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/deploy_schema.py --dry-run     # Preview DDL without executing
  python scripts/deploy_schema.py               # Deploy schema (idempotent)
  python scripts/deploy_schema.py --status      # Records per kind and phase

Environment Variables:
  DATABASE_URL          Full PostgreSQL connection string
  POSTGRES_HOST         Database host (default: localhost)
  POSTGRES_DB           Database name (default: postgres)
  POSTGRES_USER         Database user (default: postgres)
  POSTGRES_PASSWORD     Database password
  POSTGRES_PORT         Database port (default: 5432)
  POSTGRES_SSLMODE      SSL mode (default: prefer)
        """
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Print DDL without executing"
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Show record counts per kind and phase"
    )
    parser.add_argument(
        "--connection",
        type=str,
        help="PostgreSQL connection string (overrides environment)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    )

    conninfo = args.connection or get_connection_string()

    print("=" * 70)
    print("CONTROL PLANE - Schema Deployment")
    print("=" * 70)
    print(f"Connection: {mask_conninfo(conninfo)}")
    print(f"Schema: {SCHEMA}")

    if args.status:
        try:
            rows = asyncio.run(status(conninfo))
        except psycopg.Error as e:
            print(f"Status check failed: {e}")
            sys.exit(1)
        if not rows:
            print(f"Table {SCHEMA}.resources not deployed")
            sys.exit(1)
        print("-" * 70)
        print(f"{'KIND':<24}{'PHASE':<12}{'RECORDS':>10}{'LOCKED':>10}")
        for kind, phase, count, locked in rows:
            print(f"{kind:<24}{phase:<12}{count:>10}{locked:>10}")
        print("=" * 70)
        return

    print(f"Mode: {'DRY RUN' if args.dry_run else 'EXECUTE'}")
    print("=" * 70)

    try:
        count = asyncio.run(deploy(conninfo, args.dry_run))
    except psycopg.Error as e:
        print(f"Deployment failed: {e}")
        sys.exit(1)

    print(f"{'Generated' if args.dry_run else 'Executed'} {count} statements")
    print("=" * 70)


if __name__ == "__main__":
    main()
