import json
import logging
import os
import time
import uuid
from typing import Optional

import sentry_sdk
from fastapi import FastAPI, Request
from prometheus_client import Counter, Histogram
from sentry_sdk.integrations.fastapi import FastApiIntegration
from starlette.middleware.base import BaseHTTPMiddleware

from blogapi.core.config import Settings


_REQ_COUNT = Counter(
    "blog_http_requests_total",
    "Total HTTP requests",
    ["method", "route", "status"],
)
_REQ_LATENCY = Histogram(
    "blog_http_request_duration_seconds",
    "HTTP request duration (seconds)",
    ["method", "route"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10),
)
_UNMETERED_ROUTES = ("/metrics", "/health")


def _release() -> Optional[str]:
    return os.getenv("GIT_SHA") or None


def _route_of(request: Request) -> str:
    route_obj = request.scope.get("route")
    return getattr(route_obj, "path", None) or request.url.path


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Adds a request ID and logs one JSON line per request.

    4xx lines go out at WARNING, 5xx and unhandled exceptions at ERROR, so
    login failures and throttled clients stand out without extra plumbing.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        start = time.time()
        logger = logging.getLogger("blog.http")
        try:
            response = await call_next(request)
        except Exception:
            payload = {
                "event": "http_exception",
                "request_id": request_id,
                "method": request.method,
                "path": request.url.path,
                "route": _route_of(request),
                "status_code": 500,
                "duration_ms": int((time.time() - start) * 1000),
                "client_ip": request.client.host if request.client else None,
                "release": _release(),
            }
            logger.exception(json.dumps(payload, ensure_ascii=False))
            raise

        route = _route_of(request)
        payload = {
            "event": "http_request",
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "route": route,
            "status_code": response.status_code,
            "duration_ms": int((time.time() - start) * 1000),
            "client_ip": request.client.host if request.client else None,
            "user_agent": request.headers.get("user-agent"),
            "release": _release(),
        }
        if response.status_code >= 500:
            logger.error(json.dumps(payload, ensure_ascii=False))
        elif response.status_code >= 400:
            logger.warning(json.dumps(payload, ensure_ascii=False))
        else:
            logger.info(json.dumps(payload, ensure_ascii=False))

        if not route.endswith(_UNMETERED_ROUTES):
            _REQ_COUNT.labels(request.method, route, str(response.status_code)).inc()
            _REQ_LATENCY.labels(request.method, route).observe(time.time() - start)

        response.headers["X-Request-ID"] = request_id
        return response


def configure_logging() -> None:
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s [%(name)s] %(message)s")
    for name in ("blog.http", "blog.auth", "blog.users", "blog.ratelimit", "blog.tracing", "blog.migrations"):
        logging.getLogger(name).setLevel(logging.INFO)


def init_tracing(app: FastAPI, settings: Settings) -> None:
    """Attach request logging and, when SENTRY_DSN is set, Sentry error tracking."""
    configure_logging()
    app.add_middleware(RequestLoggingMiddleware)

    if not settings.sentry_dsn:
        return

    sentry_sdk.init(
        dsn=settings.sentry_dsn,
        environment=settings.sentry_env or settings.environment,
        release=_release(),
        integrations=[FastApiIntegration()],
        traces_sample_rate=float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.05")),
    )
    logging.getLogger("blog.tracing").info("Sentry tracing initialized")
