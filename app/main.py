from __future__ import annotations

import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from starlette.concurrency import run_in_threadpool
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.container import ServiceContainer, build_container
from app.errors import ApiError
from app.idempotency import CONFLICT_MESSAGE, IDEMPOTENCY_HEADER
from app.observability import configure_logging
from app.routes import internal, jurisdictions, submissions
from app.routes._deps import actor_from_request, error_response, request_id_from_request, trace_id_from_request
from app.schemas import success_envelope
from app.security import actor_from_headers, parse_and_validate_bearer_token
from app.settings import ServiceSettings

logger = logging.getLogger(__name__)

_UNCACHED_HEADERS = frozenset({"x-trace-id", "x-request-id"})


def _is_authenticated_path(path: str) -> bool:
    return path.startswith("/api/v1/") and path != "/api/v1/health" and not path.startswith("/api/v1/internal/")


def create_app(
    settings: ServiceSettings | None = None,
    *,
    container: ServiceContainer | None = None,
) -> FastAPI:
    if container is None:
        container = build_container(settings or ServiceSettings.from_env())
    configure_logging(container.settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            "service_started store=%s jwt_enabled=%s",
            getattr(container.store, "backend_name", "unknown"),
            container.security.enabled,
        )
        yield
        container.observability.flush()

    app = FastAPI(title="Permit Workflow Service API", version="0.1.0", lifespan=lifespan)
    app.state.container = container
    security_cfg = container.security
    coordinator = container.coordinator

    # registered first so it runs inside the trace/auth middleware
    @app.middleware("http")
    async def enforce_idempotency(request: Request, call_next):
        decision = await run_in_threadpool(
            coordinator.check,
            method=request.method,
            idempotency_key=request.headers.get(IDEMPOTENCY_HEADER),
            tenant_id=actor_from_request(request).tenant_id,
        )
        if decision.is_replay:
            cached = decision.cached
            return Response(content=cached.body, status_code=cached.status_code, headers=cached.headers)
        if decision.is_conflict:
            return error_response(
                request,
                code="IDEMPOTENCY_IN_PROGRESS",
                message=CONFLICT_MESSAGE,
                error_class="transient",
                retryable=True,
                status_code=409,
            )
        ticket = decision.ticket
        if ticket is None:
            return await call_next(request)
        try:
            response = await call_next(request)
            body = b"".join([chunk async for chunk in response.body_iterator])
        except Exception:
            await run_in_threadpool(coordinator.release, ticket)
            raise
        headers = {k: v for k, v in response.headers.items() if k.lower() not in _UNCACHED_HEADERS}
        await run_in_threadpool(
            coordinator.save,
            ticket,
            status_code=response.status_code,
            headers=headers,
            body=body,
        )
        return Response(
            content=body,
            status_code=response.status_code,
            headers=dict(response.headers),
            media_type=response.media_type,
        )

    @app.middleware("http")
    async def add_trace_id(request: Request, call_next):
        incoming_trace_id = request.headers.get("x-trace-id", "").strip()
        request.state.trace_id = incoming_trace_id or uuid.uuid4().hex
        request.state.request_id = request.headers.get("x-request-id", f"req_{uuid.uuid4().hex[:12]}")
        try:
            header_tenant_explicit = request.headers.get("x-tenant-id")
            if security_cfg.enabled and _is_authenticated_path(request.url.path):
                actor = parse_and_validate_bearer_token(
                    authorization=request.headers.get("Authorization"),
                    cfg=security_cfg,
                )
                if header_tenant_explicit and header_tenant_explicit != actor.tenant_id:
                    raise ApiError(
                        code="TENANT_SCOPE_VIOLATION",
                        message="tenant mismatch",
                        error_class="security_sensitive",
                        retryable=False,
                        http_status=403,
                    )
            else:
                actor = actor_from_headers(request.headers)
            request.state.actor = actor
            response = await call_next(request)
        except ApiError as exc:
            logger.warning(
                "request_rejected path=%s code=%s trace_id=%s",
                request.url.path,
                exc.code,
                trace_id_from_request(request),
            )
            response = error_response(
                request,
                code=exc.code,
                message=exc.message,
                error_class=exc.error_class,
                retryable=exc.retryable,
                status_code=exc.http_status,
            )
        response.headers["x-trace-id"] = trace_id_from_request(request)
        response.headers["x-request-id"] = request_id_from_request(request)
        return response

    @app.exception_handler(ApiError)
    async def handle_api_error(request: Request, exc: ApiError):
        if exc.http_status >= 500:
            logger.error("api_error code=%s message=%s", exc.code, exc.message)
        return error_response(
            request,
            code=exc.code,
            message=exc.message,
            error_class=exc.error_class,
            retryable=exc.retryable,
            status_code=exc.http_status,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        fields = sorted({".".join(str(x) for x in err.get("loc", ())[1:]) for err in exc.errors()} - {""})
        return error_response(
            request,
            code="REQ_VALIDATION_FAILED",
            message="invalid payload",
            error_class="validation",
            retryable=False,
            status_code=400,
            details={"fields": fields} if fields else None,
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_error(request: Request, exc: StarletteHTTPException):
        if exc.status_code == 404:
            return error_response(
                request,
                code="REQ_NOT_FOUND",
                message="resource not found",
                error_class="validation",
                retryable=False,
                status_code=404,
            )
        return error_response(
            request,
            code="REQ_HTTP_ERROR",
            message=str(exc.detail),
            error_class="validation",
            retryable=False,
            status_code=exc.status_code,
        )

    @app.get("/healthz")
    def healthz(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    @app.get("/api/v1/health")
    def health_api(request: Request) -> dict[str, object]:
        return success_envelope({"status": "ok"}, trace_id_from_request(request))

    @app.get("/api/v1/metrics")
    def metrics(request: Request) -> dict[str, object]:
        return success_envelope(container.observability.snapshot(), trace_id_from_request(request))

    app.include_router(submissions.router)
    app.include_router(jurisdictions.router)
    app.include_router(internal.router)
    return app


app = create_app()
