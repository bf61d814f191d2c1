from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import Any

from app.db.postgres import validate_identifier


class InMemoryPacketsRepository:
    def __init__(
        self,
        packets: dict[str, dict[str, Any]],
        *,
        on_write: Callable[[], None] | None = None,
    ) -> None:
        self._packets = packets
        self._on_write = on_write or (lambda: None)

    def create(self, *, tenant_id: str, packet: dict[str, Any]) -> dict[str, Any]:
        submission_id = str(packet["submission_id"])
        if submission_id in self._packets:
            raise ValueError(f"packet already exists for submission: {submission_id}")
        item = dict(packet)
        item["tenant_id"] = tenant_id
        self._on_write()
        self._packets[submission_id] = item
        return dict(item)

    def get(self, *, tenant_id: str, submission_id: str) -> dict[str, Any] | None:
        row = self._packets.get(submission_id)
        if row is None or row.get("tenant_id") != tenant_id:
            return None
        return dict(row)


class PostgresPacketsRepository:
    def __init__(self, *, conn: Any, table_name: str = "packets") -> None:
        self._conn = conn
        self._table_name = validate_identifier(table_name)

    def create(self, *, tenant_id: str, packet: dict[str, Any]) -> dict[str, Any]:
        item = dict(packet)
        item["tenant_id"] = tenant_id
        sql = f"""
            INSERT INTO {self._table_name} (
                packet_id, submission_id, tenant_id, storage_uri, size_bytes, created_at
            ) VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT(submission_id) DO NOTHING
        """
        with self._conn.cursor() as cur:
            cur.execute(
                sql,
                (
                    item["packet_id"],
                    item["submission_id"],
                    tenant_id,
                    item["storage_uri"],
                    int(item["size_bytes"]),
                    item["created_at"],
                ),
            )
            if cur.rowcount == 0:
                raise ValueError(f"packet already exists for submission: {item['submission_id']}")
        return item

    def get(self, *, tenant_id: str, submission_id: str) -> dict[str, Any] | None:
        sql = f"""
            SELECT packet_id, submission_id, tenant_id, storage_uri, size_bytes, created_at
            FROM {self._table_name}
            WHERE tenant_id = %s AND submission_id = %s
            LIMIT 1
        """
        with self._conn.cursor() as cur:
            cur.execute(sql, (tenant_id, submission_id))
            row = cur.fetchone()
        if row is None:
            return None
        return {
            "packet_id": row[0],
            "submission_id": row[1],
            "tenant_id": row[2],
            "storage_uri": row[3],
            "size_bytes": int(row[4]),
            "created_at": row[5].isoformat() if isinstance(row[5], datetime) else row[5],
        }
