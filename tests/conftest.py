"""
pytest configuration and shared fixtures for the ScamShield API tests.

Key concern: tests must not require a Gemini API key or a network.
We achieve this by:
  1. Setting AI_MOCK_MODE=true before the app is imported, so the shared
     GeminiClient returns canned responses.
  2. Offering a scripted FakeGemini (fake_gemini fixture) that routes get
     through app.dependency_overrides, for tests that need specific model
     output: malformed JSON, a scam verdict, a network failure, ...
  3. Resetting the in-memory rate limiter before every test.

Tests that hit the real Gemini API live in test_model_e2e.py and are
skipped unless GEMINI_API_KEY is set and RUN_MODEL_TESTS=1.
"""

import os

import pytest
from httpx import ASGITransport, AsyncClient

# Set env vars BEFORE importing the app so Settings picks them up correctly
os.environ.setdefault("AI_MOCK_MODE", "true")
os.environ.setdefault("ENVIRONMENT", "test")

from fakes import FakeGemini  # noqa: E402


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Previous requests must not bleed into the next test's rate-limit bucket."""
    from scamshield.core.rate_limit import limiter

    limiter.reset()
    yield


@pytest.fixture()
async def client():
    """
    HTTPX async test client wired to the FastAPI app (mock-mode Gemini).

    Usage:
        async def test_something(client):
            response = await client.get("/health")
            assert response.status_code == 200
    """
    from scamshield.main import app

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def fake_gemini():
    """A FakeGemini injected in place of the app's GeminiClient."""
    from scamshield.main import app
    from scamshield.routes.deps import get_gemini_client

    fake = FakeGemini()
    app.dependency_overrides[get_gemini_client] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_gemini_client, None)
