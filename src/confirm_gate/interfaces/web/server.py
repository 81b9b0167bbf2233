"""confirm-gate HTTP interface — JSON API over the confirmation service."""

from __future__ import annotations

import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from confirm_gate.config.settings import Settings
from confirm_gate.core.confirmation import ConfirmationService
from confirm_gate.core.exceptions import ConfirmGateError, RateLimitError
from confirm_gate.core.structured_logger import TraceContext, get_logger
from confirm_gate.lifecycle import Runtime
from confirm_gate.observability import metrics
from confirm_gate.security.rate_limiter import client_identifier

logger = get_logger("WebInterface")


class CreateRequest(BaseModel):
    action: str | None = None
    details: str | None = None


class ConfirmRequest(BaseModel):
    pin: str | None = None


class VerifyRequest(BaseModel):
    code: str | None = None
    token: str | None = None


class SetupRequest(BaseModel):
    pin: str | None = None
    email: str | None = None


class ResetPinRequest(BaseModel):
    pin: str | None = None


def _error_response(exc: ConfirmGateError, **extra) -> JSONResponse:
    headers = None
    if isinstance(exc, RateLimitError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(
        status_code=exc.http_status,
        content={**extra, **exc.to_response()},
        headers=headers,
    )


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        response.headers["Cache-Control"] = "no-store"
        return response


class TraceMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        with TraceContext(request.headers.get("x-request-id")) as trace_id:
            response = await call_next(request)
        response.headers["X-Request-Id"] = trace_id
        return response


class WebInterface:
    """Builds the FastAPI app. Handlers are ``async def`` and call the
    synchronous service directly, so each request mutates state without
    yielding to another request."""

    def __init__(
        self,
        service: ConfirmationService,
        settings: Settings,
        runtime: Runtime | None = None,
    ):
        self.service = service
        self.settings = settings
        self.runtime = runtime
        self._server = None
        self.app = self._build_app()

    def _client_id(self, request: Request) -> str:
        return client_identifier(
            request.headers.get("x-forwarded-for"),
            request.client.host if request.client else None,
            trust_forwarded=self.settings.server.trust_forwarded_for,
        )

    def _build_app(self) -> FastAPI:
        runtime = self.runtime

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            if runtime is not None:
                await runtime.bootstrap()
            try:
                yield
            finally:
                if runtime is not None:
                    await runtime.shutdown()

        app = FastAPI(title="confirm-gate", version=self.settings.version, lifespan=lifespan)
        self._register_exception_handlers(app)
        self._register_middleware(app)
        self._register_routes(app)
        return app

    def _register_exception_handlers(self, app: FastAPI) -> None:
        @app.exception_handler(ConfirmGateError)
        async def confirm_gate_error_handler(request: Request, exc: ConfirmGateError):
            if exc.http_status >= 500:
                logger.error("Request failed: %s", exc.message, path=request.url.path, error=exc.to_dict())
            return _error_response(exc)

        @app.exception_handler(RequestValidationError)
        async def validation_handler(request: Request, exc: RequestValidationError):
            content = {"error": "invalid request body", "code": "invalid_input"}
            if request.url.path == "/api/verify":
                content = {"valid": False, **content}
            return JSONResponse(status_code=400, content=content)

    def _register_middleware(self, app: FastAPI) -> None:
        app.add_middleware(SecurityHeadersMiddleware)
        app.add_middleware(TraceMiddleware)

    def _register_routes(self, app: FastAPI) -> None:
        self._register_agent_routes(app)
        self._register_account_routes(app)
        self._register_utility_routes(app)

    def _register_agent_routes(self, app: FastAPI) -> None:
        service = self.service

        @app.post("/api/request")
        async def create_request(payload: CreateRequest):
            return service.request(payload.action, payload.details)

        @app.get("/api/token/{token_id}")
        async def token_info(token_id: str):
            return service.token_info(token_id)

        @app.post("/api/confirm/{token_id}")
        async def confirm(token_id: str, request: Request, payload: ConfirmRequest | None = None):
            pin = payload.pin if payload else None
            code = service.confirm(token_id, pin, client_id=self._client_id(request))
            return {"code": code}

        @app.post("/api/verify")
        async def verify(payload: VerifyRequest, request: Request):
            try:
                response = JSONResponse(
                    service.verify(
                        payload.code, token_id=payload.token, client_id=self._client_id(request)
                    )
                )
            except ConfirmGateError as exc:
                response = _error_response(exc, valid=False)
            if not payload.token:
                # code-only lookup is ambiguous on collisions; callers should send the token
                response.headers["Deprecation"] = "true"
            return response

    def _register_account_routes(self, app: FastAPI) -> None:
        service = self.service

        @app.post("/api/setup")
        async def setup(payload: SetupRequest):
            service.setup(payload.pin, payload.email)
            return {"ok": True}

        @app.post("/api/forgot-pin")
        async def forgot_pin(request: Request):
            await service.forgot_pin(client_id=self._client_id(request))
            return {"ok": True}

        @app.get("/api/reset-token/{reset_id}")
        async def reset_token(reset_id: str):
            service.check_reset(reset_id)
            return {"ok": True}

        @app.post("/api/reset-pin/{reset_id}")
        async def reset_pin(reset_id: str, payload: ResetPinRequest):
            service.reset_pin(reset_id, payload.pin)
            return {"ok": True}

    def _register_utility_routes(self, app: FastAPI) -> None:
        service = self.service

        @app.get("/health")
        async def health():
            return {
                "status": "ok",
                "version": self.settings.version,
                "build": {
                    "python_version": sys.version.split()[0],
                    "timestamp": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime()),
                },
                "tokens": service.store.count_by_status(),
                "setup_complete": service.vault.setup_complete,
                "mail_enabled": service.mailer is not None,
            }

        @app.get("/metrics")
        async def prometheus_metrics():
            metrics.set_token_counts(service.store.count_by_status())
            return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)

    async def start(self) -> None:
        import uvicorn

        config = uvicorn.Config(
            self.app,
            host=self.settings.server.host,
            port=self.settings.server.port,
            log_level=self.settings.logging.level.lower(),
        )
        self._server = uvicorn.Server(config)
        await self._server.serve()

    async def stop(self) -> None:
        if self._server:
            self._server.should_exit = True


def create_app(settings: Settings | None = None, runtime: Runtime | None = None) -> FastAPI:
    """Build the app around a runtime; the lifespan bootstraps and shuts it down."""
    if runtime is None:
        from confirm_gate.config.settings import load_settings

        runtime = Runtime(settings or load_settings())
    context = runtime.prepare()
    return WebInterface(context.service, context.settings, runtime=runtime).app
