"""
GeminiClient — Async wrapper around the Google GenAI SDK.

Supports three model roles:
  - GeminiModel.ANALYSIS → JSON-mode analysis, scenario generation, grounded intel
  - GeminiModel.SPEECH   → text-to-speech for spoken advice
  - GeminiModel.LIVE     → bidirectional audio/video live scanning

Supports two runtime modes (set via AI_MOCK_MODE env var):
  - MOCK mode: returns deterministic canned responses, never touches the
    network. Use for tests and local dev without API keys.
  - REAL mode (default): makes actual Gemini API calls. Requires
    GEMINI_API_KEY. A missing key is logged once at construction and every
    later call raises ConfigurationError instead of attempting the network.

Every request/response cycle is bounded by settings.request_timeout_s.
Transport failures and timeouts surface as NetworkError.

Extension pattern: add new mock response keys to _MOCK_RESPONSES and
reference them in generate() calls via the response_key parameter.
"""

import asyncio
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types

from scamshield.ai.codec import base64_to_bytes
from scamshield.ai.gemini_live import (
    GeminiLiveConnection,
    LiveConfig,
    LiveConnection,
    MockLiveConnection,
)
from scamshield.ai.request_builder import ContentPayload
from scamshield.core.config import Settings
from scamshield.core.errors import ConfigurationError, NetworkError

logger = logging.getLogger(__name__)


class GeminiModel(str, Enum):
    ANALYSIS = "gemini-3-flash-preview"
    SPEECH = "gemini-2.5-flash-preview-tts"
    LIVE = "gemini-2.5-flash-native-audio-preview-09-2025"


@dataclass(frozen=True)
class Citation:
    title: str
    uri: str


@dataclass(frozen=True)
class GenerationResult:
    text: str | None
    citations: list[Citation] = field(default_factory=list)
    audio: bytes | None = None  # raw PCM16 when AUDIO modality was requested


# Canned responses for mock mode.
# Keys map to response_key arguments in generate() calls.
_MOCK_RESPONSES: dict[str, str] = {
    "default": (
        "[MOCK] This is a placeholder Gemini response. "
        "Set AI_MOCK_MODE=false and provide GEMINI_API_KEY for real responses."
    ),
    "scam_analysis": (
        '{"is_scam": false, "risk_score": 12, "scam_type": "None detected", '
        '"advice": "[MOCK] No real analysis performed — mock mode active. '
        'We recommend verifying the sender through an official channel.", '
        '"triggers": []}'
    ),
    "transcription": "[MOCK] Transcription is unavailable in mock mode.",
    "dojo_scenarios": (
        '[{"id": "1", "sender": "+91 98765xxxxx", '
        '"text": "Dear customer, your electricity will be disconnected tonight at 9:30 PM. Call 99xxx immediately.", '
        '"isScam": true, "reason": "Utilities never warn from personal numbers. This uses false urgency to make you panic.", '
        '"difficulty": "Easy"}, '
        '{"id": "2", "sender": "AX-HDFCBK", '
        '"text": "Rs 5,000 debited from a/c **1234 to UPI-Zomato. Bal: 12,000.", '
        '"isScam": false, "reason": "A registered sender ID and no link or request for action.", '
        '"difficulty": "Easy"}, '
        '{"id": "3", "sender": "+91 70123xxxxx", '
        '"text": "CBI NOTICE: An arrest warrant is issued in your name. Join the video call now to avoid digital arrest.", '
        '"isScam": true, "reason": "Police and CBI never interrogate over video calls. Threats of arrest are used to scare you into paying.", '
        '"difficulty": "Easy"}, '
        '{"id": "4", "sender": "JM-JIOINF", '
        '"text": "Your recharge of Rs 239 was successful. Validity till 12-Nov.", '
        '"isScam": false, "reason": "A routine service update from an official sender with nothing to click.", '
        '"difficulty": "Hard"}, '
        '{"id": "5", "sender": "VK-SBIRWD", '
        '"text": "Your SBI reward points worth Rs 7,250 expire today. Redeem at sbi-rewardz.in", '
        '"isScam": true, "reason": "Looks official, but the domain is a lookalike. Check the link before tapping.", '
        '"difficulty": "Hard"}]'
    ),
    "regional_alert": (
        '{"location": "[MOCK] Bhubaneswar, Odisha", "riskLevel": "High", '
        '"topScams": [{"title": "Digital Arrest", "count": 42}, {"title": "Electricity Bill Scam", "count": 31}], '
        '"recentIncidents": ["[MOCK] No live search performed in mock mode."], '
        '"safetyTip": "Police never arrest anyone over a video call."}'
    ),
}

_MOCK_CITATIONS: dict[str, list[Citation]] = {
    "regional_alert": [Citation(title="[MOCK] Cyber Crime Portal", uri="https://cybercrime.gov.in/")],
}

# 0.1 s of 24 kHz mono PCM16 silence
_MOCK_AUDIO = bytes(4_800)


def _to_sdk_contents(contents: ContentPayload | str) -> list[types.Part] | str:
    if isinstance(contents, str):
        return contents
    parts = []
    for part in contents.parts:
        if "inline_data" in part:
            inline = part["inline_data"]
            parts.append(types.Part.from_bytes(
                data=base64_to_bytes(inline["data"]),
                mime_type=inline["mime_type"],
            ))
        else:
            parts.append(types.Part.from_text(text=part["text"]))
    return parts


def _speech_config(voice: str) -> types.SpeechConfig:
    return types.SpeechConfig(
        voice_config=types.VoiceConfig(
            prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=voice),
        ),
    )


def _extract_citations(response: Any) -> list[Citation]:
    """Web sources from grounding metadata. Best-effort: [] when absent."""
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    citations = []
    for chunk in chunks:
        web = getattr(chunk, "web", None)
        if web is not None and getattr(web, "uri", None):
            citations.append(Citation(title=web.title or "", uri=web.uri))
    return citations


def _extract_audio(response: Any) -> bytes | None:
    candidates = getattr(response, "candidates", None) or []
    if not candidates or candidates[0].content is None:
        return None
    for part in candidates[0].content.parts or []:
        if part.inline_data is not None and part.inline_data.data:
            return part.inline_data.data
    return None


class GeminiClient:
    """
    Central Gemini interface for the whole ScamShield backend.

    Built once in main.py and handed to routes through FastAPI dependencies
    (see scamshield.routes.deps). Tests override that dependency with a
    scripted fake instead of patching module globals.
    """

    def __init__(self, settings: Settings) -> None:
        self.mock_mode = settings.ai_mock_mode
        self.timeout = settings.request_timeout_s
        self._client: genai.Client | None = None
        self._config_error: ConfigurationError | None = None

        if self.mock_mode:
            logger.info("GeminiClient initialised in MOCK mode")
        elif not settings.gemini_api_key:
            self._config_error = ConfigurationError()
            logger.error(
                "CRITICAL: GEMINI_API_KEY is missing. All AI calls will fail until it is set "
                "(or AI_MOCK_MODE=true is used for local development)."
            )
        else:
            self._client = genai.Client(api_key=settings.gemini_api_key)
            logger.info("GeminiClient initialised in REAL mode (model: %s)", GeminiModel.ANALYSIS.value)

    @property
    def configured(self) -> bool:
        return self.mock_mode or self._client is not None

    def _require_client(self) -> genai.Client:
        if self._config_error is not None:
            raise self._config_error
        return self._client

    async def generate(
        self,
        contents: ContentPayload | str,
        model: GeminiModel = GeminiModel.ANALYSIS,
        *,
        system_instruction: str | None = None,
        response_schema: dict[str, Any] | None = None,
        search_grounding: bool = False,
        audio_voice: str | None = None,
        response_key: str = "default",
    ) -> GenerationResult:
        """
        One request/response cycle against Gemini.

        Args:
            contents:           Built payload (see request_builder) or a plain prompt.
            model:              Which Gemini model to use.
            system_instruction: Domain instruction string.
            response_schema:    When set, JSON mode is requested and constrained to it.
            search_grounding:   Enable the Google Search tool (citations come back
                                in GenerationResult.citations).
            audio_voice:        When set, request AUDIO modality with this prebuilt voice.
            response_key:       Mock response key (ignored in real mode).

        Raises:
            ConfigurationError: no API key in REAL mode.
            NetworkError:       transport failure, API error or timeout.
        """
        if self.mock_mode:
            return GenerationResult(
                text=_MOCK_RESPONSES.get(response_key, _MOCK_RESPONSES["default"]),
                citations=list(_MOCK_CITATIONS.get(response_key, [])) if search_grounding else [],
                audio=_MOCK_AUDIO if audio_voice else None,
            )

        client = self._require_client()
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json" if response_schema else None,
            response_schema=response_schema,
            tools=[types.Tool(google_search=types.GoogleSearch())] if search_grounding else None,
            response_modalities=["AUDIO"] if audio_voice else None,
            speech_config=_speech_config(audio_voice) if audio_voice else None,
        )

        try:
            response = await asyncio.wait_for(
                client.aio.models.generate_content(
                    model=model.value,
                    contents=_to_sdk_contents(contents),
                    config=config,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as exc:
            logger.error("Gemini request timed out after %.0fs (model=%s)", self.timeout, model.value)
            raise NetworkError("The analysis service took too long to respond. Please try again.") from exc
        except genai_errors.APIError as exc:
            logger.error("Gemini API error (model=%s, code=%s): %s", model.value, exc.code, exc)
            if exc.code in (401, 403):
                raise ConfigurationError() from exc
            raise NetworkError() from exc
        except httpx.HTTPError as exc:
            logger.error("Gemini transport error (model=%s): %s", model.value, exc)
            raise NetworkError() from exc

        if audio_voice:
            return GenerationResult(text=None, audio=_extract_audio(response))
        return GenerationResult(text=response.text, citations=_extract_citations(response))

    @asynccontextmanager
    async def connect_live(self, config: LiveConfig) -> AsyncIterator[LiveConnection]:
        """
        Open a bidirectional Gemini Live session (AUDIO responses).

        Usage:
            async with gemini.connect_live(LiveConfig(system_instruction=...)) as conn:
                await conn.send(MediaChunk(...))
                async for message in conn.receive():
                    ...
        """
        if self.mock_mode:
            connection = MockLiveConnection()
            try:
                yield connection
            finally:
                connection.close()
            return

        client = self._require_client()
        sdk_config = types.LiveConnectConfig(
            response_modalities=[types.Modality.AUDIO],
            speech_config=_speech_config(config.voice),
            system_instruction=config.system_instruction,
        )

        async with AsyncExitStack() as stack:
            try:
                session = await asyncio.wait_for(
                    stack.enter_async_context(
                        client.aio.live.connect(model=GeminiModel.LIVE.value, config=sdk_config)
                    ),
                    timeout=self.timeout,
                )
            except asyncio.TimeoutError as exc:
                logger.error("Gemini Live connect timed out after %.0fs", self.timeout)
                raise NetworkError() from exc
            except genai_errors.APIError as exc:
                logger.error("Gemini Live API error (code=%s): %s", exc.code, exc)
                if exc.code in (401, 403):
                    raise ConfigurationError() from exc
                raise NetworkError() from exc
            except Exception as exc:
                logger.error("Gemini Live connect failed: %s", exc)
                raise NetworkError() from exc

            yield GeminiLiveConnection(session)
