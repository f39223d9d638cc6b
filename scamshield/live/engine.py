"""
engine.py — Live Scanner session: camera + microphone in, spoken warnings out.

State machine
─────────────
    idle ──open()──► connecting ──ok──► connected
     ▲                   │                  │
     │                failure          stream error
     │                   ▼                  ▼
     └────close()────  error  ◄─────────────┘
                         │
                         └──open() (retry)──► connecting

close() is legal from every state and always ends in idle.

Every transition is published as a StateChanged event on one asyncio.Queue
(see events()); "assistant speaking" flips are published as SpeakingChanged.
Consumers never receive callbacks from inside the engine.

Resources
─────────
open() acquires, in order: the 24 kHz output, the camera + microphone, the
Gemini Live connection. All three are entered on one AsyncExitStack, so a
failure half-way releases whatever was already acquired, and teardown is a
single aclose(). While connected, three tasks run independently:

  frame capture   every frame_interval seconds: latest frame -> JPEG -> send
  audio capture   each 16 kHz mic frame -> PCM16 -> send, no batching
  receive         audio -> AudioRenderingPipeline, interrupted -> interrupt_all()

The engine owns its connection exclusively; one engine per WebSocket.
"""

import asyncio
import logging
from contextlib import AbstractAsyncContextManager, AsyncExitStack
from dataclasses import dataclass
from enum import Enum
from typing import AsyncIterator, Callable

from scamshield.ai.codec import audio_buffer_to_pcm16, bytes_to_base64
from scamshield.ai.gemini_live import LiveConfig, LiveConnection, MediaChunk
from scamshield.core.errors import DecodeError, NetworkError, ScamShieldError
from scamshield.live.devices import INPUT_SAMPLE_RATE, MediaDevices, MediaHandle, snapshot_jpeg
from scamshield.live.playback import OUTPUT_SAMPLE_RATE, AudioRenderingPipeline
from scamshield.models.analysis import Language

logger = logging.getLogger(__name__)

LiveConnector = Callable[[LiveConfig], AbstractAsyncContextManager[LiveConnection]]

AUDIO_MIME_TYPE = f"audio/pcm;rate={INPUT_SAMPLE_RATE}"
FRAME_MIME_TYPE = "image/jpeg"
STREAM_ERROR_MESSAGE = "Connection interrupted. Please check your internet."

LIVE_SYSTEM_INSTRUCTION = """\
You are 'ScamShield', a helpful **AI Safety Assistant** for India.

**Mission**: Help users identify potential financial fraud triggers in real-time visuals and audio.

**Rules**:
1. **Be Concise**: Speak short, clear sentences.
2. **Visual Triggers**:
   - QR Codes: Warn "Be careful. Do NOT scan to receive money."
   - Letters: Look for fake logos or typos (CBI, RBI).
   - ATMs: Look for loose parts or skimmers.
3. **Audio Triggers**:
   - "Digital Arrest" / "Police": Warn "Police do not arrest via video call."
   - "OTP" / "Refund": Warn "Do not share OTP with anyone."

**Tone**: Helpful, alert, and calm. Avoid acting like law enforcement. If safe, say "Looks okay, but stay alert.\""""


def build_live_instruction(language: Language = Language.EN) -> str:
    if language is Language.EN:
        return LIVE_SYSTEM_INSTRUCTION
    return f"{LIVE_SYSTEM_INSTRUCTION}\n\n**Language**: Speak to the user in {language.display_name}."


class LiveSessionState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    ERROR = "error"


_TRANSITIONS: dict[LiveSessionState, frozenset[LiveSessionState]] = {
    LiveSessionState.IDLE:       frozenset({LiveSessionState.CONNECTING}),
    LiveSessionState.CONNECTING: frozenset({LiveSessionState.CONNECTED, LiveSessionState.ERROR, LiveSessionState.IDLE}),
    LiveSessionState.CONNECTED:  frozenset({LiveSessionState.ERROR, LiveSessionState.IDLE}),
    LiveSessionState.ERROR:      frozenset({LiveSessionState.CONNECTING, LiveSessionState.IDLE}),
}


@dataclass(frozen=True)
class StateChanged:
    state: LiveSessionState
    previous: LiveSessionState
    message: str | None = None  # user-facing cause, set on ERROR
    code: str | None = None


@dataclass(frozen=True)
class SpeakingChanged:
    speaking: bool


LiveEvent = StateChanged | SpeakingChanged


class LiveSessionEngine:
    def __init__(
        self,
        connector: LiveConnector,
        devices: MediaDevices,
        *,
        system_instruction: str = LIVE_SYSTEM_INSTRUCTION,
        voice: str = "Kore",
        frame_interval: float = 1.5,
        jpeg_quality: int = 50,
    ) -> None:
        self._connector = connector
        self._devices = devices
        self._live_config = LiveConfig(system_instruction=system_instruction, voice=voice)
        self._frame_interval = frame_interval
        self._jpeg_quality = jpeg_quality

        self._state = LiveSessionState.IDLE
        self._speaking = False
        self._error: ScamShieldError | None = None
        self._events: asyncio.Queue[LiveEvent] = asyncio.Queue()

        self._stack: AsyncExitStack | None = None
        self._pipeline: AudioRenderingPipeline | None = None
        self._tasks: set[asyncio.Task] = set()
        self._open_task: asyncio.Task | None = None
        # held for the whole of a teardown so close() cannot finish before it does
        self._teardown_lock = asyncio.Lock()

    # ─── Observation ──────────────────────────────────────────────────────────

    @property
    def state(self) -> LiveSessionState:
        return self._state

    @property
    def speaking(self) -> bool:
        return self._speaking

    @property
    def error(self) -> ScamShieldError | None:
        """The cause of the last transition to ERROR, cleared on the next open()."""
        return self._error

    async def events(self) -> AsyncIterator[LiveEvent]:
        while True:
            yield await self._events.get()

    def pending_events(self) -> list[LiveEvent]:
        """Drain whatever events are queued right now without waiting."""
        drained = []
        while not self._events.empty():
            drained.append(self._events.get_nowait())
        return drained

    # ─── Lifecycle ────────────────────────────────────────────────────────────

    async def open(self) -> None:
        """
        Start scanning.

        Raises:
            RuntimeError: a session is already connecting or connected.
            DeviceError subclasses, NetworkError, ConfigurationError: the
            engine is left in ERROR with every resource released.
        """
        if self._state not in (LiveSessionState.IDLE, LiveSessionState.ERROR):
            raise RuntimeError(f"Cannot open a live session while {self._state.value}")

        self._open_task = asyncio.current_task()
        self._error = None
        self._transition(LiveSessionState.CONNECTING)
        try:
            media, connection = await self._acquire()
        except asyncio.CancelledError:
            logger.info("Live session open cancelled")
            await self._teardown()
            if self._state is LiveSessionState.CONNECTING:
                self._transition(LiveSessionState.IDLE)
            raise
        except ScamShieldError as exc:
            # already logged where it was raised
            await self._fail(exc)
            raise
        except Exception as exc:
            logger.exception("Unexpected failure opening live session")
            error = NetworkError()
            await self._fail(error)
            raise error from exc
        finally:
            self._open_task = None

        self._transition(LiveSessionState.CONNECTED)
        self._spawn("frame capture", self._frame_loop(media, connection))
        self._spawn("audio capture", self._audio_loop(media, connection))
        self._spawn("receive", self._receive_loop(connection, self._pipeline))

    async def close(self) -> None:
        """Stop everything and return to idle. Safe to call any number of times."""
        pending = self._open_task
        if pending is not None and pending is not asyncio.current_task() and not pending.done():
            pending.cancel()
            await asyncio.wait({pending})

        await self._teardown()
        if self._state is not LiveSessionState.IDLE:
            self._transition(LiveSessionState.IDLE)

    async def __aenter__(self) -> "LiveSessionEngine":
        await self.open()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    # ─── Internals ────────────────────────────────────────────────────────────

    async def _acquire(self) -> tuple[MediaHandle, LiveConnection]:
        async with AsyncExitStack() as stack:
            output = await self._devices.open_output(OUTPUT_SAMPLE_RATE)
            stack.push_async_callback(output.close)

            pipeline = AudioRenderingPipeline(output, on_idle=self._on_playback_idle)
            stack.callback(pipeline.interrupt_all)

            media = await self._devices.acquire()
            stack.push_async_callback(media.close)

            connection = await stack.enter_async_context(self._connector(self._live_config))

            self._stack = stack.pop_all()
            self._pipeline = pipeline
        logger.info("Live session connected")
        return media, connection

    async def _teardown(self) -> None:
        async with self._teardown_lock:
            await self._release()

    async def _release(self) -> None:
        current = asyncio.current_task()
        tasks = [t for t in self._tasks if t is not current]
        self._tasks.clear()
        stack, self._stack = self._stack, None
        self._pipeline = None

        for task in tasks:
            task.cancel()
        try:
            if stack is not None:
                await stack.aclose()
        except Exception:
            logger.exception("Error while releasing live session resources")
        finally:
            if tasks:
                await asyncio.gather(*tasks, return_exceptions=True)
            self._set_speaking(False)

    async def _fail(self, error: ScamShieldError) -> None:
        self._tasks.discard(asyncio.current_task())
        await self._teardown()
        if self._state in (LiveSessionState.CONNECTING, LiveSessionState.CONNECTED):
            self._error = error
            self._transition(LiveSessionState.ERROR, message=error.message, code=error.code)

    def _transition(
        self,
        state: LiveSessionState,
        message: str | None = None,
        code: str | None = None,
    ) -> None:
        previous = self._state
        if state not in _TRANSITIONS[previous]:
            raise RuntimeError(f"Illegal live session transition {previous.value} -> {state.value}")
        self._state = state
        logger.info("Live session %s -> %s", previous.value, state.value)
        self._events.put_nowait(StateChanged(state=state, previous=previous, message=message, code=code))

    def _set_speaking(self, speaking: bool) -> None:
        if speaking != self._speaking:
            self._speaking = speaking
            self._events.put_nowait(SpeakingChanged(speaking=speaking))

    def _on_playback_idle(self) -> None:
        self._set_speaking(False)

    def _spawn(self, name: str, loop) -> None:
        task = asyncio.create_task(self._supervise(name, loop), name=f"live-{name}")
        self._tasks.add(task)

    async def _supervise(self, name: str, loop) -> None:
        try:
            await loop
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.error("Live %s failed: %s", name, exc)
            await self._fail(NetworkError(STREAM_ERROR_MESSAGE))

    async def _frame_loop(self, media: MediaHandle, connection: LiveConnection) -> None:
        while True:
            await asyncio.sleep(self._frame_interval)
            image = await media.video.grab()
            if image is None:
                continue
            jpeg = await asyncio.to_thread(snapshot_jpeg, image, self._jpeg_quality)
            await connection.send(MediaChunk(mime_type=FRAME_MIME_TYPE, data=bytes_to_base64(jpeg)))

    async def _audio_loop(self, media: MediaHandle, connection: LiveConnection) -> None:
        async for frame in media.audio.frames():
            pcm = audio_buffer_to_pcm16(frame)
            await connection.send(MediaChunk(mime_type=AUDIO_MIME_TYPE, data=bytes_to_base64(pcm)))
        logger.info("Microphone stream ended")

    async def _receive_loop(self, connection: LiveConnection, pipeline: AudioRenderingPipeline) -> None:
        async for message in connection.receive():
            if message.audio:
                try:
                    buffer = pipeline.decode(message.audio)
                except DecodeError as exc:
                    logger.warning("Dropping undecodable audio chunk: %s", exc)
                else:
                    pipeline.schedule_playback(buffer)
                    self._set_speaking(True)
            if message.interrupted:
                pipeline.interrupt_all()
                self._set_speaking(False)

        logger.info("Live session closed by the server")
        await self.close()
