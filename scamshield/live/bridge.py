"""
bridge.py — Camera, microphone and speaker of a browser, over one WebSocket.

The browser owns the real devices; this module gives the LiveSessionEngine
the same MediaDevices / AudioOutput view of them that a local device layer
would. Everything the engine wants the browser to do is put on `outbox`
(the WebSocket route drains it); everything the browser sends is passed to
`feed()`.

Browser -> server                         Server -> browser
  {"type": "devices_ready"}                 {"type": "acquire_devices", ...}
  {"type": "device_error", "name": ...}     {"type": "release_devices"}
  {"type": "frame", "data": <b64 jpeg>}     {"type": "audio", "id", "start_at", "data", ...}
  {"type": "audio", "data": <b64 pcm16>}    {"type": "stop_audio", "id"}
                                            {"type": "close_audio"}

`start_at` is seconds on the session clock (0 = when the output opened);
the browser adds its own AudioContext offset.
"""

import asyncio
import io
import itertools
import logging
from typing import Any, AsyncIterator, Callable

import numpy as np
from PIL import Image

from scamshield.ai.codec import (
    AudioBuffer,
    audio_buffer_to_pcm16,
    base64_to_bytes,
    bytes_to_base64,
    pcm16_to_audio_buffer,
)
from scamshield.core.errors import DecodeError
from scamshield.live.devices import INPUT_SAMPLE_RATE, classify_device_error

logger = logging.getLogger(__name__)

# ~8 s of microphone audio at 2048-sample frames
_MAX_QUEUED_AUDIO_FRAMES = 64


# ─── Output ───────────────────────────────────────────────────────────────────

class RelayedPlayback:
    def __init__(self, output: "RelayedAudioOutput", playback_id: int) -> None:
        self.id = playback_id
        self._output = output
        self._timer: asyncio.TimerHandle | None = None
        self._stopped = False

    def stop(self) -> None:
        if self._stopped:
            return
        self._stopped = True
        if self._timer is not None:
            self._timer.cancel()
        self._output._forget(self)
        self._output._send({"type": "stop_audio", "id": self.id})


class RelayedAudioOutput:
    """AudioOutput whose clock is the event loop and whose speaker is the browser."""

    def __init__(self, outbox: asyncio.Queue, sample_rate: int) -> None:
        self.sample_rate = sample_rate
        self._outbox = outbox
        self._loop = asyncio.get_running_loop()
        self._origin = self._loop.time()
        self._ids = itertools.count(1)
        self._active: set[RelayedPlayback] = set()
        self._closed = False

    @property
    def current_time(self) -> float:
        return self._loop.time() - self._origin

    def start(
        self,
        buffer: AudioBuffer,
        when: float,
        on_ended: Callable[[RelayedPlayback], None],
    ) -> RelayedPlayback:
        if self._closed:
            raise RuntimeError("audio output is closed")
        playback = RelayedPlayback(self, next(self._ids))
        self._send({
            "type": "audio",
            "id": playback.id,
            "start_at": round(when, 4),
            "sample_rate": buffer.sample_rate,
            "channels": buffer.channel_count,
            "data": bytes_to_base64(audio_buffer_to_pcm16(buffer)),
        })
        delay = max(0.0, when + buffer.duration - self.current_time)
        playback._timer = self._loop.call_later(delay, self._ended, playback, on_ended)
        self._active.add(playback)
        return playback

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for playback in list(self._active):
            if playback._timer is not None:
                playback._timer.cancel()
        self._active.clear()
        self._send({"type": "close_audio"})

    def _ended(self, playback: RelayedPlayback, on_ended: Callable[[RelayedPlayback], None]) -> None:
        self._active.discard(playback)
        on_ended(playback)

    def _forget(self, playback: RelayedPlayback) -> None:
        self._active.discard(playback)

    def _send(self, message: dict[str, Any]) -> None:
        self._outbox.put_nowait(message)


# ─── Input ────────────────────────────────────────────────────────────────────

def _decode_frame(data: str) -> Image.Image:
    image = Image.open(io.BytesIO(base64_to_bytes(data)))
    image.load()
    return image


class _BrowserCamera:
    """Keeps the newest encoded frame; decoding waits until the engine grabs one."""

    def __init__(self) -> None:
        self.pending: str | None = None
        self._latest: Image.Image | None = None

    async def grab(self) -> Image.Image | None:
        data, self.pending = self.pending, None
        if data is None:
            return self._latest
        try:
            self._latest = await asyncio.to_thread(_decode_frame, data)
        except (DecodeError, OSError, Image.DecompressionBombError) as exc:
            logger.warning("Dropping undecodable camera frame: %s", exc)
        return self._latest


class _BrowserMicrophone:
    def __init__(self) -> None:
        self._frames: asyncio.Queue[np.ndarray | None] = asyncio.Queue(_MAX_QUEUED_AUDIO_FRAMES)

    def push(self, frame: np.ndarray) -> None:
        if self._frames.full():
            # keep the newest frames
            self._frames.get_nowait()
            logger.debug("Microphone queue full, dropped the oldest frame")
        self._frames.put_nowait(frame)

    def end(self) -> None:
        # Make room for the sentinel so a blocked reader always wakes up
        while self._frames.full():
            self._frames.get_nowait()
        self._frames.put_nowait(None)

    async def frames(self) -> AsyncIterator[np.ndarray]:
        while True:
            frame = await self._frames.get()
            if frame is None:
                return
            yield frame


class BrowserMedia:
    """MediaHandle for the devices the browser granted."""

    def __init__(self, bridge: "BrowserMediaBridge") -> None:
        self.video = _BrowserCamera()
        self.audio = _BrowserMicrophone()
        self._bridge = bridge
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self.audio.end()
        self._bridge._release(self)


class BrowserMediaBridge:
    """MediaDevices implementation that relays to a browser over a message queue."""

    def __init__(self) -> None:
        self.outbox: asyncio.Queue[dict[str, Any]] = asyncio.Queue()
        self._pending: asyncio.Future | None = None
        self._media: BrowserMedia | None = None

    async def open_output(self, sample_rate: int) -> RelayedAudioOutput:
        return RelayedAudioOutput(self.outbox, sample_rate)

    async def acquire(self) -> BrowserMedia:
        """
        Ask the browser for camera + microphone and wait for its answer.

        Raises:
            PermissionDeniedError, DeviceNotFoundError, DeviceBusyError, DeviceError
        """
        self._pending = asyncio.get_running_loop().create_future()
        await self.outbox.put({
            "type": "acquire_devices",
            "video": {"facing_mode": "environment", "width": 1280, "height": 720},
            "audio": {"sample_rate": INPUT_SAMPLE_RATE, "echo_cancellation": True},
        })
        try:
            await self._pending
        except asyncio.CancelledError:
            # The browser may still grant access after we gave up on it
            self.outbox.put_nowait({"type": "release_devices"})
            raise
        finally:
            self._pending = None

        self._media = BrowserMedia(self)
        return self._media

    def feed(self, message: dict[str, Any]) -> None:
        """Handle one message from the browser."""
        kind = message.get("type")
        if kind == "devices_ready":
            self._resolve(None)
        elif kind == "device_error":
            name = str(message.get("name", ""))
            logger.error("Browser refused media devices: %s %s", name, message.get("message", ""))
            self._resolve(classify_device_error(name, str(message.get("message", ""))))
        elif kind == "frame":
            self._on_frame(message.get("data", ""))
        elif kind == "audio":
            self._on_audio(message.get("data", ""))
        else:
            logger.warning("Ignoring unknown live message type %r", kind)

    def _resolve(self, error: Exception | None) -> None:
        if self._pending is None or self._pending.done():
            logger.debug("Device answer arrived with no acquisition pending")
            return
        if error is None:
            self._pending.set_result(None)
        else:
            self._pending.set_exception(error)

    def _on_frame(self, data: str) -> None:
        if self._media is None or self._media.closed:
            return
        self._media.video.pending = data

    def _on_audio(self, data: str) -> None:
        if self._media is None or self._media.closed:
            return
        try:
            buffer = pcm16_to_audio_buffer(base64_to_bytes(data), INPUT_SAMPLE_RATE)
        except DecodeError as exc:
            logger.warning("Dropping malformed microphone frame: %s", exc)
            return
        self._media.audio.push(buffer.channel(0))

    def _release(self, media: BrowserMedia) -> None:
        if self._media is media:
            self._media = None
        self.outbox.put_nowait({"type": "release_devices"})
