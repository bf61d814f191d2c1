from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import jwt

from app.errors import ApiError

DEFAULT_TENANT = "tenant_default"


def _split_csv(raw: str) -> list[str]:
    return [x.strip() for x in raw.split(",") if x.strip()]


def _unauthorized(message: str) -> ApiError:
    return ApiError(
        code="AUTH_UNAUTHORIZED",
        message=message,
        error_class="security_sensitive",
        retryable=False,
        http_status=401,
    )


@dataclass(frozen=True)
class Actor:
    """Who is calling: the organization that scopes all data access, and the subject for audit."""

    tenant_id: str
    subject: str
    claims: dict[str, Any] = field(default_factory=dict)


@dataclass
class JwtSecurityConfig:
    enabled: bool
    issuer: str
    audience: str
    shared_secret: str
    required_claims: list[str]
    tenant_claim: str

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "JwtSecurityConfig":
        env = os.environ if environ is None else environ
        issuer = env.get("JWT_ISSUER", "").strip()
        audience = env.get("JWT_AUDIENCE", "").strip()
        shared_secret = env.get("JWT_SHARED_SECRET", "").strip()
        tenant_claim = env.get("JWT_TENANT_CLAIM", "organization_id").strip() or "organization_id"
        return cls(
            enabled=bool(issuer or audience or shared_secret),
            issuer=issuer,
            audience=audience,
            shared_secret=shared_secret,
            required_claims=_split_csv(env.get("JWT_REQUIRED_CLAIMS", f"{tenant_claim},sub,exp")),
            tenant_claim=tenant_claim,
        )


def parse_and_validate_bearer_token(*, authorization: str | None, cfg: JwtSecurityConfig) -> Actor:
    if not authorization:
        raise _unauthorized("missing Authorization bearer token")
    prefix = "Bearer "
    if not authorization.startswith(prefix):
        raise _unauthorized("invalid Authorization header")
    token = authorization[len(prefix) :].strip()
    if not token:
        raise _unauthorized("empty bearer token")
    if not cfg.shared_secret:
        raise _unauthorized("jwt shared secret not configured")
    try:
        claims = jwt.decode(
            token,
            cfg.shared_secret,
            algorithms=["HS256"],
            issuer=cfg.issuer or None,
            audience=cfg.audience or None,
            options={"require": list(cfg.required_claims), "verify_aud": bool(cfg.audience)},
        )
    except jwt.ExpiredSignatureError:
        raise _unauthorized("token expired") from None
    except jwt.MissingRequiredClaimError as exc:
        raise _unauthorized(f"missing required claim: {exc.claim}") from None
    except jwt.InvalidIssuerError:
        raise _unauthorized("jwt issuer mismatch") from None
    except jwt.InvalidAudienceError:
        raise _unauthorized("jwt audience mismatch") from None
    except jwt.InvalidTokenError:
        raise _unauthorized("invalid bearer token") from None

    tenant_id = str(claims.get(cfg.tenant_claim) or "").strip()
    subject = str(claims.get("sub") or "").strip()
    if not tenant_id or not subject:
        raise _unauthorized("missing tenant or subject claim")
    return Actor(tenant_id=tenant_id, subject=subject, claims=dict(claims))


def actor_from_headers(headers: Mapping[str, str]) -> Actor:
    """Actor for deployments without JWT configured; tenant comes from ``x-tenant-id``."""
    tenant_id = (headers.get("x-tenant-id") or "").strip() or DEFAULT_TENANT
    subject = (headers.get("x-actor-id") or "").strip() or "anonymous"
    return Actor(tenant_id=tenant_id, subject=subject)
