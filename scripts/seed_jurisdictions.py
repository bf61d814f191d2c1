#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.observability import configure_logging
from app.seed_profiles import seed_default_jurisdictions
from app.store import PostgresBackedStore


def main() -> int:
    parser = argparse.ArgumentParser(description="Create permit tables and seed the default jurisdictions")
    parser.add_argument("--dsn", default=os.getenv("POSTGRES_DSN", ""), help="PostgreSQL DSN")
    parser.add_argument("--skip-ddl", action="store_true", help="do not run CREATE TABLE statements")
    parser.add_argument("--skip-rls", action="store_true", help="do not (re)apply tenant RLS policies")
    args = parser.parse_args()

    dsn = str(args.dsn or "").strip()
    if not dsn:
        raise SystemExit("POSTGRES_DSN is required (pass --dsn or set env)")

    configure_logging(os.getenv("LOG_LEVEL", "INFO"))
    store = PostgresBackedStore(dsn=dsn)
    store.initialize(apply_ddl=not args.skip_ddl, apply_rls=not args.skip_rls)
    seeded = seed_default_jurisdictions(store)
    print(json.dumps({"seeded": seeded, "count": len(seeded)}, ensure_ascii=True, sort_keys=True, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
