"""
Tests for the transport stages: security headers, compression, CORS, the
upload bearer gate, rate limits, client addressing and request deadlines.

A few tests drive the ASGI app directly with hand-built receive/send
callables, to control exactly what the client sends (or stops sending).
"""

import asyncio
import json
from contextlib import asynccontextmanager

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy import func, select
from starlette.requests import Request

from videoteca.database import init_db
from videoteca.main import create_app
from videoteca.middleware import (
    SECURITY_HEADERS,
    DeadlineRule,
    TimeoutMiddleware,
    build_stages,
    client_ip,
)
from videoteca.models import Video

VIDEOS = "/api/v1/videos"
BOUNDARY = "videotecaboundary"


def http_scope(path, method="POST", headers=(), client=("127.0.0.1", 50000)):
    return {
        "type": "http",
        "asgi": {"version": "3.0"},
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": b"",
        "headers": [(b"host", b"test"), *headers],
        "client": client,
        "server": ("test", 80),
    }


def truncated_upload_body():
    """A multipart body that stops partway through the file part."""
    head = (
        f"--{BOUNDARY}\r\n"
        'Content-Disposition: form-data; name="title"\r\n\r\n'
        "IV Insertion\r\n"
        f"--{BOUNDARY}\r\n"
        'Content-Disposition: form-data; name="file"; filename="procedure1.mp4"\r\n'
        "Content-Type: video/mp4\r\n\r\n"
    )
    return head.encode() + b"\x00" * 4096


async def count_videos(app) -> int:
    async with app.state.session_factory() as session:
        result = await session.execute(select(func.count(Video.id)))
        return result.scalar()


# --- Security headers / compression / CORS ---

@pytest.mark.asyncio
async def test_security_headers_on_every_response(client: AsyncClient):
    response = await client.get(VIDEOS)

    for name, value in SECURITY_HEADERS.items():
        assert response.headers[name] == value


@pytest.mark.asyncio
async def test_large_responses_are_gzipped(client: AsyncClient):
    for n in range(8):
        files = {"file": (f"procedure{n}.mp4", b"x" * 64, "video/mp4")}
        await client.post(f"{VIDEOS}/upload", data={"title": f"Procedure {n}"}, files=files)

    response = await client.get(VIDEOS, headers={"Accept-Encoding": "gzip"})

    assert response.status_code == 200
    assert response.headers["content-encoding"] == "gzip"
    assert len(response.json()["data"]) == 8


@pytest.mark.asyncio
async def test_small_responses_are_not_compressed(client: AsyncClient):
    response = await client.get("/", headers={"Accept-Encoding": "gzip"})

    assert response.status_code == 200
    assert "content-encoding" not in response.headers


@pytest.mark.asyncio
async def test_cors_preflight_for_allowed_origin(anon_client: AsyncClient):
    response = await anon_client.options(
        f"{VIDEOS}/upload",
        headers={
            "Origin": "http://localhost:5173",
            "Access-Control-Request-Method": "POST",
            "Access-Control-Request-Headers": "Authorization",
        },
    )

    assert response.status_code == 200
    assert response.headers["access-control-allow-origin"] == "http://localhost:5173"
    assert response.headers["access-control-max-age"] == "86400"


@pytest.mark.asyncio
async def test_cors_ignores_unlisted_origin(client: AsyncClient):
    response = await client.get(VIDEOS, headers={"Origin": "https://evil.example.com"})

    assert "access-control-allow-origin" not in response.headers


# --- Upload bearer gate ---

@pytest.fixture
def form_reads(monkeypatch):
    """Paths of every request whose body got parsed as a form."""
    calls = []
    original = Request.form

    def form(self, *args, **kwargs):
        calls.append(self.url.path)
        return original(self, *args, **kwargs)

    monkeypatch.setattr(Request, "form", form)
    return calls


@pytest.mark.asyncio
@pytest.mark.parametrize("authorization", [None, "Bearer not-a-jwt", "Basic bnVyc2U6c2VjcmV0"])
async def test_unauthenticated_upload_rejected_before_body_is_read(
        anon_client: AsyncClient, app, storage, form_reads, authorization):
    headers = {"Authorization": authorization} if authorization else {}
    response = await anon_client.post(
        f"{VIDEOS}/upload",
        data={"title": "IV Insertion"},
        files={"file": ("procedure1.mp4", b"x" * 2048, "video/mp4")},
        headers=headers,
    )

    assert response.status_code == 401
    assert response.json()["statusCode"] == 401
    assert form_reads == []
    assert storage.objects == {}
    assert await count_videos(app) == 0


@pytest.mark.asyncio
async def test_authenticated_upload_passes_the_gate(client: AsyncClient, form_reads):
    response = await client.post(
        f"{VIDEOS}/upload",
        data={"title": "IV Insertion"},
        files={"file": ("procedure1.mp4", b"x" * 2048, "video/mp4")},
    )

    assert response.status_code == 201
    assert form_reads == [f"{VIDEOS}/upload"]


# --- Client disconnect ---

@pytest.mark.asyncio
async def test_client_disconnect_mid_upload_leaves_nothing_behind(app, storage, auth_headers):
    """The body never completes, so the upload workflow never starts."""
    messages = [{"type": "http.request", "body": truncated_upload_body(), "more_body": True}]
    sent = []

    async def receive():
        if messages:
            return messages.pop(0)
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)

    headers = [
        (b"content-type", f"multipart/form-data; boundary={BOUNDARY}".encode()),
        (b"authorization", auth_headers["Authorization"].encode()),
    ]
    await app(http_scope(f"{VIDEOS}/upload", headers=headers), receive, send)

    starts = [m for m in sent if m["type"] == "http.response.start"]
    assert [m["status"] for m in starts] == [400]
    body = b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")
    assert json.loads(body)["statusCode"] == 400
    assert storage.objects == {}
    assert await count_videos(app) == 0


# --- Rate limits and client addressing ---

@asynccontextmanager
async def limited_client(settings, auth_headers, **overrides):
    """Client for an app with a tiny upload quota and a roomy default quota."""
    limited = create_app(settings.model_copy(update={
        "RATE_LIMIT_ENABLED": True,
        "UPLOAD_RATE_LIMIT": "2/hour",
        "DEFAULT_RATE_LIMIT": "100/minute",
        **overrides,
    }))
    await init_db(limited.state.engine)
    transport = ASGITransport(app=limited)
    try:
        async with AsyncClient(transport=transport, base_url="http://test",
                               headers=auth_headers) as ac:
            yield ac
    finally:
        await limited.state.engine.dispose()


async def upload_statuses(client, forwarded_for=()):
    files = {"file": ("clip.mp4", b"x" * 16, "video/mp4")}
    statuses = []
    for n in range(3):
        headers = {"X-Forwarded-For": forwarded_for[n]} if forwarded_for else {}
        response = await client.post(f"{VIDEOS}/upload", data={"title": "Clip"},
                                     files=files, headers=headers)
        statuses.append(response.status_code)
    return statuses


@pytest.mark.asyncio
async def test_upload_quota_is_separate_from_default(settings, auth_headers):
    async with limited_client(settings, auth_headers) as ac:
        assert await upload_statuses(ac) == [201, 201, 429]
        assert (await ac.get(VIDEOS)).status_code == 200


@pytest.mark.asyncio
async def test_forged_forwarded_for_does_not_reset_quota(settings, auth_headers):
    spoofed = ["203.0.113.1", "203.0.113.2", "203.0.113.3"]
    async with limited_client(settings, auth_headers) as ac:
        assert await upload_statuses(ac, spoofed) == [201, 201, 429]


@pytest.mark.asyncio
async def test_trusted_proxy_forwards_client_address(settings, auth_headers):
    # httpx's ASGITransport connects from 127.0.0.1
    clients = ["203.0.113.1", "203.0.113.2", "203.0.113.3"]
    async with limited_client(settings, auth_headers, TRUSTED_PROXIES="127.0.0.1") as ac:
        assert await upload_statuses(ac, clients) == [201, 201, 201]


@pytest.mark.parametrize("peer,trusted,expected", [
    ("10.0.0.5", {"10.0.0.5"}, "203.0.113.7"),
    ("10.0.0.5", set(), "10.0.0.5"),
    ("198.51.100.9", {"10.0.0.5"}, "198.51.100.9"),
])
def test_client_ip_honours_forwarded_for_only_from_trusted_peers(peer, trusted, expected):
    scope = http_scope(VIDEOS, method="GET",
                       headers=[(b"x-forwarded-for", b"203.0.113.7, 10.0.0.1")],
                       client=(peer, 443))

    assert client_ip(Request(scope), trusted) == expected


# --- Deadlines ---

def test_upload_deadline_is_longer(settings):
    stages = dict(build_stages(settings))
    timeout = TimeoutMiddleware(app=None, rules=stages[TimeoutMiddleware]["rules"])

    assert timeout.deadline_for(f"{VIDEOS}/upload") == settings.UPLOAD_TIMEOUT_SECONDS
    assert timeout.deadline_for(VIDEOS) == settings.REQUEST_TIMEOUT_SECONDS
    assert settings.UPLOAD_TIMEOUT_SECONDS > settings.REQUEST_TIMEOUT_SECONDS


@pytest.mark.asyncio
async def test_slow_request_times_out():
    app = FastAPI()

    @app.get("/slow")
    async def slow():
        await asyncio.sleep(1)
        return {"ok": True}

    app.add_middleware(TimeoutMiddleware, rules=[DeadlineRule(0.05)])

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        response = await ac.get("/slow")

    assert response.status_code == 408
    assert response.json() == {"statusCode": 408, "message": "Request timed out", "data": None}
