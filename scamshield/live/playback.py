"""
playback.py — Gapless scheduling of streamed model audio.

Each decoded chunk starts at max(output clock, cursor) and pushes the cursor
forward by its duration, so chunks played in receipt order never overlap and
never leave a gap (unless the clock has already run past the cursor, in which
case the chunk starts immediately instead of in the past).

The pipeline owns its AudioPlaybackQueue; neither the engine nor the UI
touches the in-flight set or the cursor directly.
"""

import logging
from dataclasses import dataclass, field
from typing import Callable, Protocol

from scamshield.ai.codec import AudioBuffer, base64_to_bytes, pcm16_to_audio_buffer

logger = logging.getLogger(__name__)

OUTPUT_SAMPLE_RATE = 24_000


class PlaybackHandle(Protocol):
    def stop(self) -> None: ...


class AudioOutput(Protocol):
    """An output device with a monotonic clock, e.g. a browser AudioContext."""

    sample_rate: int

    @property
    def current_time(self) -> float: ...

    def start(
        self,
        buffer: AudioBuffer,
        when: float,
        on_ended: Callable[[PlaybackHandle], None],
    ) -> PlaybackHandle: ...

    async def close(self) -> None: ...


@dataclass
class AudioPlaybackQueue:
    in_flight: set = field(default_factory=set)
    next_start_time: float = 0.0


class AudioRenderingPipeline:
    def __init__(
        self,
        output: AudioOutput,
        sample_rate: int = OUTPUT_SAMPLE_RATE,
        channel_count: int = 1,
        on_idle: Callable[[], None] | None = None,
    ) -> None:
        self._output = output
        self._sample_rate = sample_rate
        self._channel_count = channel_count
        self._on_idle = on_idle
        self._queue = AudioPlaybackQueue()

    @property
    def speaking(self) -> bool:
        return bool(self._queue.in_flight)

    @property
    def in_flight(self) -> frozenset:
        return frozenset(self._queue.in_flight)

    @property
    def next_start_time(self) -> float:
        return self._queue.next_start_time

    def decode(
        self,
        base64_audio: str,
        sample_rate: int | None = None,
        channel_count: int | None = None,
    ) -> AudioBuffer:
        return pcm16_to_audio_buffer(
            base64_to_bytes(base64_audio),
            sample_rate or self._sample_rate,
            channel_count or self._channel_count,
        )

    def schedule_playback(self, buffer: AudioBuffer) -> PlaybackHandle:
        start = max(self._output.current_time, self._queue.next_start_time)
        handle = self._output.start(buffer, when=start, on_ended=self._ended)
        self._queue.next_start_time = start + buffer.duration
        self._queue.in_flight.add(handle)
        return handle

    def interrupt_all(self) -> None:
        """Stop everything now; the next chunk starts at the current clock time."""
        handles = list(self._queue.in_flight)
        self._queue.in_flight.clear()
        for handle in handles:
            handle.stop()
        self._queue.next_start_time = self._output.current_time
        if handles:
            logger.debug("Interrupted %d scheduled audio chunk(s)", len(handles))

    def stop_one(self, handle: PlaybackHandle) -> None:
        """Stop a single playback (the non-streaming "read advice aloud" case)."""
        self._queue.in_flight.discard(handle)
        handle.stop()
        self._signal_idle()

    def _ended(self, handle: PlaybackHandle) -> None:
        if handle not in self._queue.in_flight:
            return  # already stopped or interrupted
        self._queue.in_flight.discard(handle)
        if not self._queue.in_flight:
            self._signal_idle()

    def _signal_idle(self) -> None:
        if self._on_idle is not None:
            self._on_idle()
