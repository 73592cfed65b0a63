"""
Request middleware: correlation ids, caller address and access logging.
"""

import ipaddress
import time
import uuid

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import structlog

from interview_booking.core.config import get_settings
from interview_booking.core.logging import get_logger

logger = get_logger(__name__)

# Probed every few seconds by load balancers and Prometheus
QUIET_PATHS = {"/health", "/metrics"}


def _is_trusted_proxy(host: str) -> bool:
    try:
        peer = ipaddress.ip_address(host)
    except ValueError:
        return False
    return any(
        peer in ipaddress.ip_network(proxy, strict=False)
        for proxy in get_settings().TRUSTED_PROXIES
    )


def client_ip(request: Request) -> str:
    """Caller address. Forwarding headers count only when the direct peer is a TRUSTED_PROXIES entry."""
    peer = request.client.host if request.client else "unknown"
    if not _is_trusted_proxy(peer):
        return peer
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("x-real-ip")
    if real_ip:
        return real_ip
    return peer


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """
    Binds request_id, client_ip and route to structlog's context so booking,
    cancellation and rate-limit logs of one request can be joined. An inbound
    X-Request-ID from the gateway is kept, otherwise a short one is minted.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        started = time.perf_counter()

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            client_ip=client_ip(request),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request_failed",
                error=str(e),
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
            raise

        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        if request.url.path not in QUIET_PATHS:
            log = logger.warning if response.status_code >= 500 else logger.info
            log("request_completed", status_code=response.status_code, duration_ms=duration_ms)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time"] = f"{duration_ms}ms"
        return response
