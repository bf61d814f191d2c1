import pathlib
import sys
from datetime import datetime, timedelta, timezone

import jwt
import pytest
from fastapi.testclient import TestClient

ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from app.container import build_container
from app.main import create_app
from app.settings import ServiceSettings

JWT_SECRET = "jwt_test_secret"


def _issue_token(*, secret: str, tenant_id: str, subject: str | None = None) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": subject or f"user_{tenant_id}",
        "organization_id": tenant_id,
        "exp": int((now + timedelta(minutes=30)).timestamp()),
        "iat": int(now.timestamp()),
        "iss": "test-issuer",
        "aud": "test-audience",
    }
    return jwt.encode(payload, secret, algorithm="HS256")


class AuthenticatedClient:
    def __init__(self, client: TestClient, *, jwt_secret: str):
        self._client = client
        self._jwt_secret = jwt_secret

    def request(self, method: str, url: str, **kwargs):
        headers = dict(kwargs.pop("headers", {}) or {})
        if url.startswith("/api/v1/") and not url.startswith("/api/v1/internal/"):
            if "Authorization" not in headers:
                tenant_id = headers.get("x-tenant-id") or "tenant_default"
                token = _issue_token(secret=self._jwt_secret, tenant_id=str(tenant_id))
                headers["Authorization"] = f"Bearer {token}"
        return self._client.request(method, url, headers=headers, **kwargs)

    def __getattr__(self, name: str):
        return getattr(self._client, name)

    def get(self, url: str, **kwargs):
        return self.request("GET", url, **kwargs)

    def post(self, url: str, **kwargs):
        return self.request("POST", url, **kwargs)

    def patch(self, url: str, **kwargs):
        return self.request("PATCH", url, **kwargs)

    def put(self, url: str, **kwargs):
        return self.request("PUT", url, **kwargs)

    def delete(self, url: str, **kwargs):
        return self.request("DELETE", url, **kwargs)


class FakePacketRenderer:
    def __init__(self) -> None:
        self.rendered: list[str] = []
        self.failures_remaining = 0

    def render(self, submission, results, *, generated_at):
        if self.failures_remaining > 0:
            self.failures_remaining -= 1
            raise RuntimeError("renderer unavailable")
        self.rendered.append(submission["submission_id"])
        return b"%PDF-1.4\n% fake permit packet\n"


@pytest.fixture(autouse=True)
def service_env(tmp_path: pathlib.Path, monkeypatch: pytest.MonkeyPatch):
    for name in (
        "PERMIT_REQUIRE_TRUESTACK",
        "PERMIT_STORE_BACKEND",
        "PERMIT_CACHE_BACKEND",
        "PERMIT_QUEUE_BACKEND",
        "JWT_TENANT_CLAIM",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("OBJECT_STORAGE_ROOT", str(tmp_path / "object_store"))
    monkeypatch.setenv("JWT_SHARED_SECRET", JWT_SECRET)
    monkeypatch.setenv("JWT_ISSUER", "test-issuer")
    monkeypatch.setenv("JWT_AUDIENCE", "test-audience")
    monkeypatch.setenv("JWT_REQUIRED_CLAIMS", "organization_id,sub,exp")
    yield


@pytest.fixture
def renderer() -> FakePacketRenderer:
    return FakePacketRenderer()


@pytest.fixture
def container(renderer: FakePacketRenderer):
    return build_container(ServiceSettings.from_env(), renderer=renderer)


@pytest.fixture
def client(container) -> AuthenticatedClient:
    app = create_app(container=container)
    base = TestClient(app)
    return AuthenticatedClient(base, jwt_secret=JWT_SECRET)


@pytest.fixture
def make_client(renderer: FakePacketRenderer):
    def _build(**overrides) -> AuthenticatedClient:
        overrides.setdefault("renderer", renderer)
        container = build_container(ServiceSettings.from_env(), **overrides)
        return AuthenticatedClient(TestClient(create_app(container=container)), jwt_secret=JWT_SECRET)

    return _build


@pytest.fixture
def submission_payload():
    def _build(**overrides):
        payload = {
            "project_name": "Harbor View Duplex",
            "jurisdiction_code": "JCY",
            "has_architectural_plans": True,
            "has_structural_calcs": True,
            "building_height": 39,
            "setback_front": 25,
            "setback_side": 10,
            "setback_rear": 30,
            "fire_egress_count": 3,
        }
        payload.update(overrides)
        return payload

    return _build
