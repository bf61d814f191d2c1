from __future__ import annotations

import re
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any


def _import_psycopg() -> Any:
    try:
        import psycopg  # type: ignore
    except ImportError as exc:
        raise RuntimeError("psycopg is required for PostgreSQL backends; install psycopg[binary]") from exc
    return psycopg


def validate_identifier(name: str) -> str:
    if not re.fullmatch(r"[A-Za-z_][A-Za-z0-9_]*", name):
        raise ValueError(f"invalid SQL identifier: {name}")
    return name


class PostgresTxRunner:
    """One PostgreSQL transaction per block with tenant session injection."""

    def __init__(self, dsn: str) -> None:
        if not dsn.strip():
            raise ValueError("POSTGRES_DSN must not be empty")
        self._dsn = dsn.strip()

    @contextmanager
    def transaction(self, *, tenant_id: str) -> Iterator[Any]:
        if not tenant_id.strip():
            raise ValueError("tenant_id must not be empty")
        psycopg = _import_psycopg()
        with psycopg.connect(self._dsn) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT set_config('app.current_tenant', %s, true)", (tenant_id,))
            # psycopg rolls back on exception when the connection block exits
            yield conn
            conn.commit()
