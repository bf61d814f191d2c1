from __future__ import annotations

import json
import re
from datetime import UTC, datetime
from hashlib import sha256
from pathlib import Path

from app.settings import ServiceSettings


def _now_iso() -> str:
    return datetime.now(tz=UTC).isoformat()


def _clean_segment(value: str) -> str:
    cleaned = re.sub(r"[^A-Za-z0-9._-]+", "_", value.strip())
    return cleaned or "object"


def _parse_storage_uri(uri: str) -> tuple[str, str, str]:
    if not uri.startswith("object://"):
        raise ValueError("invalid storage uri")
    parts = uri[len("object://") :].split("/", 2)
    if len(parts) != 3:
        raise ValueError("invalid storage uri")
    return parts[0], parts[1], parts[2]


class LocalObjectStorage:
    """Filesystem-backed object store addressed by ``object://local/<bucket>/<key>`` URIs."""

    backend_name = "local"

    def __init__(self, *, root: str, bucket: str) -> None:
        self._root = Path(root)
        self._bucket = _clean_segment(bucket)
        self._root.mkdir(parents=True, exist_ok=True)

    def put_object(
        self,
        *,
        tenant_id: str,
        object_type: str,
        object_id: str,
        filename: str,
        content_bytes: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        key = "/".join(
            [
                "tenants",
                _clean_segment(tenant_id),
                _clean_segment(object_type),
                _clean_segment(object_id),
                _clean_segment(filename),
            ]
        )
        path = self._root / self._bucket / key
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content_bytes)
        meta = {
            "content_type": content_type,
            "sha256": sha256(content_bytes).hexdigest(),
            "created_at": _now_iso(),
        }
        Path(f"{path}.meta.json").write_text(json.dumps(meta, ensure_ascii=True, sort_keys=True), encoding="utf-8")
        return f"object://{self.backend_name}/{self._bucket}/{key}"

    def get_object(self, *, storage_uri: str) -> bytes:
        backend, bucket, key = _parse_storage_uri(storage_uri)
        if backend != self.backend_name:
            raise ValueError("storage backend mismatch")
        path = self._root / bucket / key
        if not path.exists():
            raise FileNotFoundError(storage_uri)
        return path.read_bytes()


def create_object_storage_from_env(settings: ServiceSettings) -> LocalObjectStorage:
    return LocalObjectStorage(root=settings.object_storage_root, bucket=settings.object_storage_bucket)
