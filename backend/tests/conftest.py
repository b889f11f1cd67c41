"""
Test fixtures shared across all tests.

Architecture:
- Every test gets its own app built by create_app() with explicit Settings:
  a fresh SQLite file (aiosqlite), the in-memory storage gateway and rate
  limiting switched off. Nothing is shared between tests, so they can't leak
  rows or objects into each other.
- The HTTP test client uses the real FastAPI app through httpx's
  ASGITransport and sends a valid bearer token by default.
- Seed data is committed through the app's own session factory and storage
  gateway, exactly like an upload would leave it.
"""

import io
import os
import uuid
from datetime import datetime, timedelta, timezone

# videoteca.main builds a module-level app on import; give it a harmless config.
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STORAGE_MOCK_MODE", "true")

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from videoteca.config import Settings
from videoteca.database import init_db
from videoteca.main import create_app
from videoteca.models import Video

TEST_SECRET = "test-secret-key"


def make_token(subject="nurse@example.com", expires_in=timedelta(minutes=15), secret=TEST_SECRET):
    now = datetime.now(timezone.utc)
    payload = {"sub": subject, "iat": now, "exp": now + expires_in}
    return jwt.encode(payload, secret, algorithm="HS256")


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'videoteca.db'}",
        SECRET_KEY=TEST_SECRET,
        STORAGE_MOCK_MODE=True,
        RATE_LIMIT_ENABLED=False,
        LOG_LEVEL="DEBUG",
    )


@pytest_asyncio.fixture
async def app(settings):
    """App with its tables created. The engine is disposed afterwards."""
    application = create_app(settings)
    await init_db(application.state.engine)
    yield application
    await application.state.engine.dispose()


@pytest.fixture
def token_factory():
    """make_token as a fixture, for tests that need odd tokens."""
    return make_token


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest_asyncio.fixture
async def client(app, auth_headers):
    """Async HTTP client that is already authenticated."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", headers=auth_headers) as ac:
        yield ac


@pytest_asyncio.fixture
async def anon_client(app):
    """Async HTTP client with no credentials."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture
def storage(app):
    return app.state.storage


# --- Seed data fixtures ---

@pytest_asyncio.fixture
async def test_video(app, storage):
    """A catalog record with its object already in storage."""
    content = b"\x00\x00\x00\x18ftypmp42" + b"\x01" * 1024
    file_key = f"videos/{uuid.uuid4().hex}.mp4"
    await storage.put(file_key, io.BytesIO(content), "video/mp4")

    video = Video(
        title="Nasogastric Tube Placement",
        description="Step-by-step NG tube insertion",
        file_key=file_key,
        original_name="ng_tube.mp4",
        size=len(content),
        mime_type="video/mp4",
    )
    async with app.state.session_factory() as session:
        session.add(video)
        await session.commit()
    return video
