from __future__ import annotations

import json
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response

from .config import Settings, load_settings
from .errors import AttestorError, ClientError, LedgerUnavailable
from .ledger.sui import validate_object_id
from .obs.prom import prometheus_latest
from .pipeline.verify import VerificationRequest
from .ratelimit import FixedWindowLimiter, RateLimitMiddleware
from .service import ServiceContext, build_context
from .utils.logging import get_logger, kv

log = get_logger("attestor.app")


def create_app(settings: Optional[Settings] = None, context: Optional[ServiceContext] = None) -> FastAPI:
    """Build the HTTP app. The service context (and the signing key) is loaded
    here, so a misconfigured key stops startup instead of the first request."""
    settings = settings or (context.settings if context else load_settings())
    get_logger(level=settings.log_level)
    ctx = context or build_context(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await ctx.aclose()

    app = FastAPI(title="Echo Attestor", version=settings.version, lifespan=lifespan)
    app.state.ctx = ctx

    app.add_middleware(
        RateLimitMiddleware,
        limiter=FixedWindowLimiter(settings.rate_limit_max_requests, settings.rate_limit_window_sec),
        exempt_paths=("/health", "/metrics"),
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "Authorization"],
    )

    @app.exception_handler(AttestorError)
    async def attestor_error(request: Request, exc: AttestorError):
        return JSONResponse(exc.to_body(), status_code=exc.http_status)

    @app.exception_handler(Exception)
    async def unhandled(request: Request, exc: Exception):
        log.exception("unhandled error %s", kv(path=request.url.path))
        return JSONResponse({"error": "internal_error"}, status_code=500)

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "version": settings.version,
            "network": settings.sui_network,
            "signingKeyConfigured": ctx.signing_key_configured,
            "submissionConfigured": ctx.submission_configured,
        }

    @app.post("/verify")
    async def verify(request: Request):
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError):
            raise ClientError("request body must be JSON")
        req = VerificationRequest.parse(body, subject_pattern=settings.subject_id_pattern)
        result = await ctx.pipeline.run(req)
        return JSONResponse(result.to_body(), status_code=result.http_status)

    @app.get("/status/{subject_id}")
    async def status(subject_id: str):
        validate_object_id(subject_id)
        if ctx.ledger is None:
            raise LedgerUnavailable("ledger client not configured")
        found = await ctx.ledger.get_subject_status(subject_id)
        if found is None:
            return JSONResponse({"error": "subject_not_found"}, status_code=404)
        return found.to_json()

    @app.get("/metrics")
    async def metrics():
        payload, content_type = prometheus_latest()
        return Response(payload, media_type=content_type)

    return app
