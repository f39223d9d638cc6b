"""
codec.py — Binary/text transcoding shared by the analysis and live paths.

  base64 <-> bytes           strict decode, total encode
  PCM16  <-> AudioBuffer     little-endian int16, interleaved channels,
                             normalised to [-1.0, 1.0] by dividing by 32768
  binary handle -> base64    async read of an upload / recorded blob

Gemini's streaming endpoint speaks raw PCM16 (16 kHz in, 24 kHz out), so the
float <-> int16 pair is on the hot path of the live scanner: both directions
are vectorised with numpy.
"""

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from scamshield.core.errors import BlobReadError, DecodeError

logger = logging.getLogger(__name__)

_PCM_SCALE = 32768.0
_INT16_MIN = -32768
_INT16_MAX = 32767


class BinaryHandle(Protocol):
    """Anything with an async read() — FastAPI's UploadFile satisfies this."""

    async def read(self) -> bytes: ...


@dataclass(frozen=True, eq=False)
class AudioBuffer:
    """Float32 samples shaped (channels, frames) at a fixed sample rate."""

    samples: np.ndarray
    sample_rate: int

    @property
    def channel_count(self) -> int:
        return self.samples.shape[0]

    @property
    def frame_count(self) -> int:
        return self.samples.shape[1]

    @property
    def duration(self) -> float:
        return self.frame_count / self.sample_rate

    def channel(self, index: int) -> np.ndarray:
        return self.samples[index]


def base64_to_bytes(data: str) -> bytes:
    try:
        return base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecodeError(f"Malformed base64 data: {exc}") from exc


def bytes_to_base64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def pcm16_to_audio_buffer(data: bytes, sample_rate: int, channel_count: int = 1) -> AudioBuffer:
    """De-interleave little-endian int16 PCM into a normalised float buffer."""
    if channel_count < 1:
        raise ValueError("channel_count must be at least 1")
    frame_bytes = 2 * channel_count
    if len(data) % frame_bytes:
        raise DecodeError(
            f"PCM16 length {len(data)} is not a multiple of {frame_bytes} "
            f"({channel_count} channel(s))"
        )

    ints = np.frombuffer(data, dtype="<i2")
    samples = (ints.astype(np.float32) / _PCM_SCALE).reshape(-1, channel_count).T
    return AudioBuffer(samples=np.ascontiguousarray(samples), sample_rate=sample_rate)


def audio_buffer_to_pcm16(samples: "AudioBuffer | np.ndarray | list[float]") -> bytes:
    """
    Inverse of pcm16_to_audio_buffer.

    Accepts an AudioBuffer, a 1-D mono array, or a (channels, frames) array.
    Out-of-range samples are clamped to [-1, 1] rather than rejected.
    """
    if isinstance(samples, AudioBuffer):
        samples = samples.samples
    arr = np.asarray(samples, dtype=np.float64)
    if arr.ndim == 2:
        arr = arr.T.reshape(-1)  # interleave channels frame by frame

    scaled = np.round(np.clip(arr, -1.0, 1.0) * _PCM_SCALE)
    return np.clip(scaled, _INT16_MIN, _INT16_MAX).astype("<i2").tobytes()


async def blob_to_base64(handle: BinaryHandle) -> str:
    """Read a binary handle to the end and base64 it."""
    try:
        data = await handle.read()
    except OSError as exc:
        logger.error("Failed to read uploaded media: %s", exc)
        raise BlobReadError(f"The uploaded file could not be read: {exc}") from exc
    return bytes_to_base64(data)
