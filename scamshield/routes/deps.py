"""
deps.py — FastAPI dependencies shared by the route groups.

The GeminiClient is built once in main.py and stored on app.state; every
Gemini-backed service is a thin object over it, built per request. Tests
swap the client (or any service) with app.dependency_overrides.

HTTPConnection is used instead of Request so the same dependencies work
for the live scanner WebSocket.
"""

from fastapi import Depends
from starlette.requests import HTTPConnection

from scamshield.ai.analysis import ScamAnalyzer
from scamshield.ai.dojo import DojoScenarioGenerator
from scamshield.ai.gemini_client import GeminiClient
from scamshield.ai.intel import ScamIntelClient
from scamshield.ai.speech import SpeechSynthesizer
from scamshield.services.dojo_game import DojoGameStore


def get_gemini_client(conn: HTTPConnection) -> GeminiClient:
    return conn.app.state.gemini_client


def get_game_store(conn: HTTPConnection) -> DojoGameStore:
    return conn.app.state.game_store


def get_scam_analyzer(gemini: GeminiClient = Depends(get_gemini_client)) -> ScamAnalyzer:
    return ScamAnalyzer(gemini)


def get_intel_client(gemini: GeminiClient = Depends(get_gemini_client)) -> ScamIntelClient:
    return ScamIntelClient(gemini)


def get_dojo_generator(gemini: GeminiClient = Depends(get_gemini_client)) -> DojoScenarioGenerator:
    return DojoScenarioGenerator(gemini)


def get_speech_synthesizer(gemini: GeminiClient = Depends(get_gemini_client)) -> SpeechSynthesizer:
    return SpeechSynthesizer(gemini)
