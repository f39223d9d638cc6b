"""
test_rate_limit.py — Rate limiting on the Gemini-backed endpoints.

Verifies that:
  1. Rate-limited endpoints remain accessible under the limit (200 OK).
  2. Exceeding the rate limit returns HTTP 429 with an error payload.
  3. The limiter is wired into app.state with IP-based keying.

Endpoints under test:
  POST /api/v1/analyze         — limit: 30/minute
  POST /api/v1/analyze/image   — limit: 20/minute
  POST /api/v1/speech          — limit: 20/minute
  GET  /api/v1/intel/regional  — limit: 10/minute

Strategy for 429 test:
  Patch `limiter.limiter.hit` to return False, which tells slowapi
  that the moving-window bucket is full → raises RateLimitExceeded → 429.
  This avoids needing to send 10–30 real HTTP requests in tests.
"""

from unittest.mock import patch

from scamshield.core.rate_limit import limiter

_SCAM_TEXT = "Your electricity will be disconnected tonight at 9:30 PM. Call 98xxxxxx immediately."
_PNG = b"\x89PNG\r\n\x1a\n" + bytes(16)


# ── Helpers ───────────────────────────────────────────────────────────────────

async def _analyze_post(client):
    return await client.post("/api/v1/analyze", json={"content": _SCAM_TEXT, "context": "sms"})


async def _image_post(client):
    return await client.post("/api/v1/analyze/image", files={"file": ("shot.png", _PNG, "image/png")})


async def _speech_post(client):
    return await client.post("/api/v1/speech", json={"text": "Do not share your OTP."})


async def _intel_get(client):
    return await client.get("/api/v1/intel/regional", params={"latitude": 20.29, "longitude": 85.82})


# ══ Normal operation (under the limit) ════════════════════════════════════════

class TestRateLimitNormal:
    async def test_analyze_returns_200(self, client):
        assert (await _analyze_post(client)).status_code == 200

    async def test_image_returns_200(self, client):
        assert (await _image_post(client)).status_code == 200

    async def test_speech_returns_200(self, client):
        assert (await _speech_post(client)).status_code == 200

    async def test_multiple_requests_within_limit_succeed(self, client):
        for _ in range(3):
            assert (await _intel_get(client)).status_code == 200

    async def test_intel_limit_is_enforced(self, client):
        """The eleventh radar lookup in a minute is refused."""
        for _ in range(10):
            assert (await _intel_get(client)).status_code == 200
        assert (await _intel_get(client)).status_code == 429


# ══ Rate limit exceeded (429) ══════════════════════════════════════════════════

class TestRateLimitExceeded:
    async def test_analyze_429_when_limit_exceeded(self, client):
        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await _analyze_post(client)
        assert r.status_code == 429

    async def test_image_429_when_limit_exceeded(self, client):
        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await _image_post(client)
        assert r.status_code == 429

    async def test_speech_429_when_limit_exceeded(self, client):
        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await _speech_post(client)
        assert r.status_code == 429

    async def test_429_response_has_error_field(self, client):
        """slowapi's default handler returns {"error": "Rate limit exceeded: ..."}."""
        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await _analyze_post(client)

        assert r.headers.get("content-type", "").startswith("application/json")
        assert "limit" in r.json()["error"].lower()

    async def test_after_limit_reset_request_succeeds(self, client):
        with patch.object(limiter.limiter, "hit", return_value=False):
            assert (await _analyze_post(client)).status_code == 429
        assert (await _analyze_post(client)).status_code == 200

    async def test_unlimited_routes_ignore_limiter(self, client):
        with patch.object(limiter.limiter, "hit", return_value=False):
            r = await client.get("/health")
        assert r.status_code == 200


# ══ Limiter configuration ══════════════════════════════════════════════════════

class TestLimiterSetup:
    def test_limiter_attached_to_app_state(self):
        from scamshield.main import app

        assert app.state.limiter is limiter

    def test_limiter_uses_ip_key_function(self):
        from slowapi.util import get_remote_address

        assert limiter._key_func is get_remote_address
