"""
gemini_live.py — Wire types and connections for the Gemini Live streaming endpoint.

Outbound: MediaChunk {mime_type, data(base64)} — camera JPEGs and 16 kHz PCM16.
Inbound:  ServerMessage — a base64 PCM16 (24 kHz mono) audio chunk and/or an
          interruption signal.

GeminiLiveConnection adapts a google-genai AsyncSession to that shape;
MockLiveConnection stands in for it in mock mode and in tests.
"""

import asyncio
import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, AsyncIterator, Protocol

from google.genai import types

from scamshield.ai.codec import base64_to_bytes, bytes_to_base64

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LiveConfig:
    system_instruction: str
    voice: str = "Kore"


@dataclass(frozen=True)
class MediaChunk:
    mime_type: str
    data: str  # base64

    @property
    def is_audio(self) -> bool:
        return self.mime_type.startswith("audio/")


@dataclass(frozen=True)
class ServerMessage:
    audio: str | None = None  # base64 PCM16
    interrupted: bool = False


class LiveConnection(Protocol):
    async def send(self, chunk: MediaChunk) -> None: ...

    def receive(self) -> AsyncIterator[ServerMessage]: ...


class GeminiLiveConnection:
    """One open google-genai live session. Owned by a single LiveSessionEngine."""

    def __init__(self, session: Any) -> None:
        self._session = session

    async def send(self, chunk: MediaChunk) -> None:
        blob = types.Blob(data=base64_to_bytes(chunk.data), mime_type=chunk.mime_type)
        if chunk.is_audio:
            await self._session.send_realtime_input(audio=blob)
        else:
            await self._session.send_realtime_input(video=blob)

    async def receive(self) -> AsyncIterator[ServerMessage]:
        # session.receive() stops after every turn_complete; keep reading
        # turns until a pass comes back empty (connection closed).
        while True:
            received = False
            async for message in self._session.receive():
                received = True
                content = message.server_content
                if content is None:
                    continue
                if content.model_turn and content.model_turn.parts:
                    for part in content.model_turn.parts:
                        if part.inline_data and part.inline_data.data:
                            yield ServerMessage(audio=bytes_to_base64(part.inline_data.data))
                if content.interrupted:
                    yield ServerMessage(interrupted=True)
            if not received:
                logger.info("Gemini Live stream ended")
                return


# Last chunks kept by MockLiveConnection (about 30 s of microphone audio)
MOCK_SENT_HISTORY = 256


class MockLiveConnection:
    """
    In-memory live connection: records the most recent chunks sent, replays what was pushed.

    receive() ends once close() is called, like a server-side close.
    """

    def __init__(self) -> None:
        self.sent: deque[MediaChunk] = deque(maxlen=MOCK_SENT_HISTORY)
        self._inbox: asyncio.Queue[ServerMessage | None] = asyncio.Queue()

    async def send(self, chunk: MediaChunk) -> None:
        self.sent.append(chunk)

    def push(self, message: ServerMessage) -> None:
        self._inbox.put_nowait(message)

    def close(self) -> None:
        self._inbox.put_nowait(None)

    async def receive(self) -> AsyncIterator[ServerMessage]:
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            yield message
