"""
Tests for scamshield.live.engine — the live scanner state machine.

Devices, audio output and the Gemini Live connection are in-memory fakes
(see fakes.py); the engine's own tasks run on the test's event loop.
"""

import asyncio
import io

import numpy as np
import pytest
from PIL import Image

from scamshield.ai.codec import audio_buffer_to_pcm16, base64_to_bytes, bytes_to_base64
from scamshield.ai.gemini_live import ServerMessage
from scamshield.core.errors import (
    ConfigurationError,
    DeviceBusyError,
    NetworkError,
    PermissionDeniedError,
)
from scamshield.live.engine import (
    AUDIO_MIME_TYPE,
    LIVE_SYSTEM_INSTRUCTION,
    LiveSessionEngine,
    LiveSessionState,
    SpeakingChanged,
    StateChanged,
    build_live_instruction,
)
from scamshield.models.analysis import Language

from fakes import FakeConnector, FakeDevices

IDLE = LiveSessionState.IDLE
CONNECTING = LiveSessionState.CONNECTING
CONNECTED = LiveSessionState.CONNECTED
ERROR = LiveSessionState.ERROR


async def wait_until(predicate, timeout: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def _audio_message(seconds: float = 0.1) -> ServerMessage:
    pcm = audio_buffer_to_pcm16(np.zeros(int(24_000 * seconds)))
    return ServerMessage(audio=bytes_to_base64(pcm))


def _states(events) -> list[LiveSessionState]:
    return [e.state for e in events if isinstance(e, StateChanged)]


@pytest.fixture()
def devices():
    return FakeDevices()


@pytest.fixture()
def connector():
    return FakeConnector()


@pytest.fixture()
async def engine(connector, devices):
    engine = LiveSessionEngine(connector, devices, frame_interval=0.01)
    yield engine
    await engine.close()


# ── Opening ───────────────────────────────────────────────────────────────────

class TestOpen:
    async def test_happy_path_connects(self, engine, connector, devices):
        await engine.open()

        assert engine.state is CONNECTED
        assert _states(engine.pending_events()) == [CONNECTING, CONNECTED]
        assert devices.outputs[0].sample_rate == 24_000
        assert connector.configs[0].voice == "Kore"
        assert connector.configs[0].system_instruction == LIVE_SYSTEM_INSTRUCTION
        assert connector.open_connections == 1

    async def test_permission_denied_ends_in_error_with_nothing_open(self, connector, devices):
        devices.error = PermissionDeniedError()
        engine = LiveSessionEngine(connector, devices)

        with pytest.raises(PermissionDeniedError):
            await engine.open()

        events = engine.pending_events()
        assert _states(events) == [CONNECTING, ERROR]
        assert events[-1].previous is CONNECTING
        assert events[-1].code == "permission_denied"
        assert events[-1].message.startswith("Access Denied.")
        assert engine.state is ERROR
        assert isinstance(engine.error, PermissionDeniedError)
        assert devices.open_handles == 0
        assert connector.configs == []

    async def test_busy_device_message(self, engine, devices):
        devices.error = DeviceBusyError()
        with pytest.raises(DeviceBusyError):
            await engine.open()
        assert engine.pending_events()[-1].message == "Camera or microphone is currently in use by another app."

    async def test_connection_failure_releases_devices(self, devices):
        connector = FakeConnector(error=NetworkError())
        engine = LiveSessionEngine(connector, devices)

        with pytest.raises(NetworkError):
            await engine.open()

        assert engine.state is ERROR
        assert devices.media[0].closed
        assert devices.open_handles == 0

    async def test_missing_key_is_configuration_error(self, devices):
        engine = LiveSessionEngine(FakeConnector(error=ConfigurationError()), devices)
        with pytest.raises(ConfigurationError):
            await engine.open()
        assert engine.pending_events()[-1].message == "Service configuration error (API Key)."

    async def test_unexpected_failure_becomes_network_error(self, devices):
        engine = LiveSessionEngine(FakeConnector(error=RuntimeError("handshake exploded")), devices)
        with pytest.raises(NetworkError):
            await engine.open()
        assert engine.pending_events()[-1].code == "network_error"

    async def test_open_twice_is_rejected(self, engine):
        await engine.open()
        with pytest.raises(RuntimeError):
            await engine.open()
        assert engine.state is CONNECTED

    async def test_retry_after_error(self, engine, devices):
        devices.error = PermissionDeniedError()
        with pytest.raises(PermissionDeniedError):
            await engine.open()

        devices.error = None
        await engine.open()

        assert engine.state is CONNECTED
        assert engine.error is None
        assert _states(engine.pending_events()) == [CONNECTING, ERROR, CONNECTING, CONNECTED]

    async def test_language_instruction(self):
        assert "Hindi" in build_live_instruction(Language.HI)
        assert build_live_instruction(Language.EN) == LIVE_SYSTEM_INSTRUCTION


# ── Streaming ─────────────────────────────────────────────────────────────────

class TestStreaming:
    async def test_microphone_frames_are_sent_as_16k_pcm(self, engine, connector, devices):
        await engine.open()
        samples = np.full(2048, 0.5, dtype=np.float32)
        devices.media[0].audio.push(samples)

        conn = connector.connections[0]
        await wait_until(lambda: any(c.mime_type == AUDIO_MIME_TYPE for c in conn.sent))
        chunk = next(c for c in conn.sent if c.mime_type == AUDIO_MIME_TYPE)
        assert AUDIO_MIME_TYPE == "audio/pcm;rate=16000"
        assert base64_to_bytes(chunk.data) == audio_buffer_to_pcm16(samples)

    async def test_camera_frames_are_sent_as_jpeg(self, engine, connector, devices):
        await engine.open()
        devices.media[0].video.frame = Image.new("RGB", (64, 48), "white")

        conn = connector.connections[0]
        await wait_until(lambda: any(c.mime_type == "image/jpeg" for c in conn.sent))
        chunk = next(c for c in conn.sent if c.mime_type == "image/jpeg")
        image = Image.open(io.BytesIO(base64_to_bytes(chunk.data)))
        assert image.format == "JPEG"
        assert image.size == (64, 48)

    async def test_jpeg_encoding_runs_off_the_event_loop(self, engine, connector, devices, monkeypatch):
        offloaded = []
        real_to_thread = asyncio.to_thread

        async def recording_to_thread(func, *args, **kwargs):
            offloaded.append(func.__name__)
            return await real_to_thread(func, *args, **kwargs)

        monkeypatch.setattr(asyncio, "to_thread", recording_to_thread)
        await engine.open()
        devices.media[0].video.frame = Image.new("RGB", (16, 16))

        await wait_until(lambda: any(c.mime_type == "image/jpeg" for c in connector.connections[0].sent))
        assert "snapshot_jpeg" in offloaded

    async def test_no_frame_sent_before_camera_delivers_one(self, engine, connector):
        await engine.open()
        await asyncio.sleep(0.05)
        assert not any(c.mime_type == "image/jpeg" for c in connector.connections[0].sent)

    async def test_audio_reply_is_scheduled_and_marks_speaking(self, engine, connector, devices):
        await engine.open()
        connector.connections[0].push(_audio_message(2.0))
        connector.connections[0].push(_audio_message(1.0))

        output = devices.outputs[0]
        await wait_until(lambda: len(output.started) == 2)
        first, second = output.started
        assert second.when >= first.when + 2.0
        assert engine.speaking

        first.finish()
        assert engine.speaking
        second.finish()
        assert not engine.speaking

        speaking = [e.speaking for e in engine.pending_events() if isinstance(e, SpeakingChanged)]
        assert speaking == [True, False]

    async def test_interruption_stops_playback(self, engine, connector, devices):
        await engine.open()
        conn = connector.connections[0]
        conn.push(_audio_message())
        conn.push(_audio_message())
        conn.push(ServerMessage(interrupted=True))

        output = devices.outputs[0]
        await wait_until(lambda: len(output.started) == 2 and not engine.speaking)
        assert all(p.stopped for p in output.started)

    async def test_undecodable_audio_chunk_is_dropped(self, engine, connector, devices):
        await engine.open()
        conn = connector.connections[0]
        conn.push(ServerMessage(audio=bytes_to_base64(b"\x00\x01\x02")))
        conn.push(_audio_message())

        await wait_until(lambda: len(devices.outputs[0].started) == 1)
        assert engine.state is CONNECTED


# ── Failure and teardown ──────────────────────────────────────────────────────

class TestTeardown:
    async def test_stream_error_moves_to_error_and_releases_everything(self, engine, connector, devices):
        await engine.open()
        engine.pending_events()

        connector.connections[0].push(ConnectionResetError("socket closed"))
        await wait_until(lambda: engine.state is ERROR)

        event = engine.pending_events()[-1]
        assert event.message == "Connection interrupted. Please check your internet."
        assert event.previous is CONNECTED
        assert devices.open_handles == 0
        assert connector.open_connections == 0

    async def test_server_close_returns_to_idle(self, engine, connector, devices):
        await engine.open()
        connector.connections[0].push(None)

        await wait_until(lambda: engine.state is IDLE)
        assert devices.open_handles == 0
        assert connector.open_connections == 0

    async def test_close_is_idempotent(self, engine, devices, connector):
        await engine.open()
        await engine.close()
        await engine.close()

        assert engine.state is IDLE
        assert _states(engine.pending_events()) == [CONNECTING, CONNECTED, IDLE]
        assert devices.open_handles == 0
        assert connector.open_connections == 0

    async def test_close_when_never_opened(self, engine):
        await engine.close()
        assert engine.state is IDLE
        assert engine.pending_events() == []

    async def test_close_stops_playback(self, engine, connector, devices):
        await engine.open()
        connector.connections[0].push(_audio_message(5.0))
        await wait_until(lambda: engine.speaking)

        await engine.close()
        assert devices.outputs[0].started[0].stopped
        assert not engine.speaking

    async def test_close_while_connecting_cancels_open(self, engine, devices, connector):
        devices.gate = asyncio.Event()
        opening = asyncio.create_task(engine.open())
        await wait_until(lambda: engine.state is CONNECTING)

        await engine.close()

        assert opening.cancelled()
        assert engine.state is IDLE
        assert devices.open_handles == 0
        assert connector.configs == []
        assert _states(engine.pending_events()) == [CONNECTING, IDLE]

    async def test_close_waits_for_a_teardown_already_running(self, devices):
        connector = FakeConnector(exit_delay=0.2)
        engine = LiveSessionEngine(connector, devices)
        await engine.open()

        connector.connections[0].push(RuntimeError("socket reset"))
        await asyncio.sleep(0.01)  # receive task is now inside its slow teardown
        await engine.close()

        assert engine.state is IDLE
        assert devices.open_handles == 0
        assert connector.open_connections == 0
        assert _states(engine.pending_events())[-2:] == [ERROR, IDLE]

    async def test_close_from_error(self, engine, devices):
        devices.error = PermissionDeniedError()
        with pytest.raises(PermissionDeniedError):
            await engine.open()
        await engine.close()
        assert engine.state is IDLE

    async def test_async_context_manager(self, connector, devices):
        async with LiveSessionEngine(connector, devices) as engine:
            assert engine.state is CONNECTED
        assert engine.state is IDLE
        assert devices.open_handles == 0


class TestEvents:
    async def test_events_iterator_yields_in_order(self, engine):
        await engine.open()
        events = engine.events()
        first = await anext(events)
        second = await anext(events)
        assert (first.state, second.state) == (CONNECTING, CONNECTED)
        await events.aclose()
