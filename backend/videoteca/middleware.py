"""
Transport stages.

Each stage is a Starlette middleware that transforms the request and/or
response. build_stages() returns them in execution order (outermost first),
configured from explicit tables: the CORS allow-list, the security header
table, the rate-limit quota table and the deadline table.

    1. RequestLoggingMiddleware   method, path, client, status, duration
    2. GZipMiddleware             compresses responses of 1 KiB or more
    3. SecurityHeadersMiddleware  static response headers
    4. CORSMiddleware             origin allow-list
    5. BearerGateMiddleware       401 on uploads without a valid token,
                                  before the multipart body is read
    6. RateLimitMiddleware        per-client quotas, stricter on uploads
    7. TimeoutMiddleware          longer deadline for uploads

Client addresses come from the socket peer. X-Forwarded-For is honoured
only when the peer is one of TRUSTED_PROXIES.
"""

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Iterable, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.security.utils import get_authorization_scheme_param
from limits import parse
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from starlette.middleware.base import BaseHTTPMiddleware

from videoteca.auth import TokenVerifier
from videoteca.config import Settings
from videoteca.errors import UnauthorizedError
from videoteca.responses import envelope

logger = logging.getLogger(__name__)

SECURITY_HEADERS = {
    "X-XSS-Protection": "1; mode=block",
    "X-Frame-Options": "DENY",
    "X-Content-Type-Options": "nosniff",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
}

CORS_METHODS = ["GET", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]
CORS_HEADERS = [
    "Content-Type",
    "Authorization",
    "Accept",
    "X-Requested-With",
    "Origin",
    "Cache-Control",
    "Content-Length",
]


@dataclass(frozen=True)
class RateLimitRule:
    """Quota for requests whose path starts with path_prefix (None = any)."""
    name: str
    limit: str
    path_prefix: Optional[str] = None

    def matches(self, path: str) -> bool:
        return self.path_prefix is None or path.startswith(self.path_prefix)


@dataclass(frozen=True)
class DeadlineRule:
    seconds: float
    path_prefix: Optional[str] = None

    def matches(self, path: str) -> bool:
        return self.path_prefix is None or path.startswith(self.path_prefix)


def client_ip(request: Request, trusted_proxies: Iterable[str] = ()) -> str:
    """Address of the caller.

    The left-most X-Forwarded-For entry is used only when the direct peer
    is a trusted proxy; anyone else could put any address in that header.
    """
    peer = request.client.host if request.client else "unknown"
    if peer in trusted_proxies:
        forwarded = request.headers.get("x-forwarded-for", "")
        ip = forwarded.split(",")[0].strip()
        if ip:
            return ip
    return peer


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, trusted_proxies: frozenset[str] = frozenset()):
        super().__init__(app)
        self.trusted_proxies = trusted_proxies

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        logger.info("%s %s - %s", request.method, request.url.path,
                    client_ip(request, self.trusted_proxies))
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info("%s %s -> %s (%.0f ms)", request.method, request.url.path,
                    response.status_code, elapsed_ms)
        return response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, headers: dict[str, str]):
        super().__init__(app)
        self.headers = headers

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        for name, value in self.headers.items():
            response.headers.setdefault(name, value)
        return response


class BearerGateMiddleware(BaseHTTPMiddleware):
    """Reject unauthenticated requests to the given paths before the body is read.

    FastAPI parses multipart forms before it runs route dependencies, so
    without this an anonymous client could stream a whole upload to a
    temporary file and only then get a 401.
    """

    def __init__(self, app, verifier: TokenVerifier, path_prefixes: list[str]):
        super().__init__(app)
        self.verifier = verifier
        self.path_prefixes = path_prefixes

    async def dispatch(self, request: Request, call_next):
        path = request.url.path
        if request.method == "OPTIONS" or not any(path.startswith(p) for p in self.path_prefixes):
            return await call_next(request)

        scheme, token = get_authorization_scheme_param(request.headers.get("authorization"))
        try:
            if not token or scheme.lower() != "bearer":
                raise UnauthorizedError("Bearer token required")
            self.verifier.verify(token)
        except UnauthorizedError as e:
            return envelope(e.status_code, e.message)
        return await call_next(request)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Moving-window quotas keyed by rule name and client IP.

    The first matching rule wins, so specific rules go before the catch-all.
    """

    def __init__(self, app, rules: list[RateLimitRule], enabled: bool = True,
                 trusted_proxies: frozenset[str] = frozenset()):
        super().__init__(app)
        self.enabled = enabled
        self.trusted_proxies = trusted_proxies
        self.rules = [(rule, parse(rule.limit)) for rule in rules]
        self.limiter = MovingWindowRateLimiter(MemoryStorage())

    async def dispatch(self, request: Request, call_next):
        if not self.enabled or request.method == "OPTIONS":
            return await call_next(request)

        path = request.url.path
        for rule, item in self.rules:
            if rule.matches(path):
                ip = client_ip(request, self.trusted_proxies)
                if not self.limiter.hit(item, rule.name, ip):
                    logger.warning("Rate limit exceeded",
                                   extra={"rule": rule.name, "client": ip})
                    return envelope(429, f"Too many requests. Limit: {rule.limit}")
                break
        return await call_next(request)


class TimeoutMiddleware(BaseHTTPMiddleware):
    """Deadline per request. Uploads get minutes, everything else seconds."""

    def __init__(self, app, rules: list[DeadlineRule]):
        super().__init__(app)
        self.rules = rules

    def deadline_for(self, path: str) -> Optional[float]:
        for rule in self.rules:
            if rule.matches(path):
                return rule.seconds
        return None

    async def dispatch(self, request: Request, call_next):
        seconds = self.deadline_for(request.url.path)
        if seconds is None:
            return await call_next(request)
        try:
            return await asyncio.wait_for(call_next(request), timeout=seconds)
        except asyncio.TimeoutError:
            logger.error("Request timed out",
                         extra={"path": request.url.path, "timeout_seconds": seconds})
            return envelope(408, "Request timed out")


def build_stages(settings: Settings) -> list[tuple[type, dict]]:
    """Transport stages in execution order, outermost first."""
    upload_path = settings.upload_path
    trusted_proxies = frozenset(settings.trusted_proxies_list)
    return [
        (RequestLoggingMiddleware, {"trusted_proxies": trusted_proxies}),
        (GZipMiddleware, {"minimum_size": 1024}),
        (SecurityHeadersMiddleware, {"headers": SECURITY_HEADERS}),
        (CORSMiddleware, {
            "allow_origins": settings.cors_origins_list,
            "allow_credentials": True,
            "allow_methods": CORS_METHODS,
            "allow_headers": CORS_HEADERS,
            "expose_headers": ["set-cookie"],
            "max_age": 86400,
        }),
        (BearerGateMiddleware, {
            "verifier": TokenVerifier(settings.SECRET_KEY, settings.JWT_ALGORITHM),
            "path_prefixes": [upload_path],
        }),
        (RateLimitMiddleware, {
            "enabled": settings.RATE_LIMIT_ENABLED,
            "trusted_proxies": trusted_proxies,
            "rules": [
                RateLimitRule("upload", settings.UPLOAD_RATE_LIMIT, upload_path),
                RateLimitRule("default", settings.DEFAULT_RATE_LIMIT),
            ],
        }),
        (TimeoutMiddleware, {
            "rules": [
                DeadlineRule(settings.UPLOAD_TIMEOUT_SECONDS, upload_path),
                DeadlineRule(settings.REQUEST_TIMEOUT_SECONDS),
            ],
        }),
    ]


def install_stages(app: FastAPI, settings: Settings) -> None:
    # add_middleware wraps the current stack, so the last one added runs first
    for middleware_class, options in reversed(build_stages(settings)):
        app.add_middleware(middleware_class, **options)
