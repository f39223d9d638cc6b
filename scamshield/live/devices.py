"""
devices.py — Camera / microphone collaborators of the live scanner.

The engine never talks to hardware directly. It asks a MediaDevices provider
for a 24 kHz AudioOutput and for a MediaHandle (camera frames + 16 kHz
microphone frames), and releases both on teardown. In production the provider
is the BrowserMediaBridge; tests pass in-memory fakes.

Acquisition failures arrive as DOM exception names ("NotAllowedError", ...)
and are classified here into the DeviceError subclasses the UI switches on.
"""

import io
import logging
from typing import AsyncIterator, Protocol

import numpy as np
from PIL import Image

from scamshield.core.errors import (
    DeviceBusyError,
    DeviceError,
    DeviceNotFoundError,
    PermissionDeniedError,
)
from scamshield.live.playback import AudioOutput

logger = logging.getLogger(__name__)

INPUT_SAMPLE_RATE = 16_000
INPUT_FRAME_SIZE = 2048  # ~128 ms at 16 kHz

_ERROR_NAMES: dict[str, type[DeviceError]] = {
    "NotAllowedError":       PermissionDeniedError,
    "PermissionDeniedError": PermissionDeniedError,
    "SecurityError":         PermissionDeniedError,
    "NotFoundError":         DeviceNotFoundError,
    "DevicesNotFoundError":  DeviceNotFoundError,
    "OverconstrainedError":  DeviceNotFoundError,
    "NotReadableError":      DeviceBusyError,
    "TrackStartError":       DeviceBusyError,
    "AbortError":            DeviceBusyError,
}


class FrameSource(Protocol):
    async def grab(self) -> Image.Image | None:
        """Latest camera frame, or None before the first one arrives."""
        ...


class AudioSource(Protocol):
    def frames(self) -> AsyncIterator[np.ndarray]:
        """Mono float32 frames at 16 kHz, in capture order."""
        ...


class MediaHandle(Protocol):
    video: FrameSource
    audio: AudioSource

    async def close(self) -> None: ...


class MediaDevices(Protocol):
    async def open_output(self, sample_rate: int) -> AudioOutput: ...

    async def acquire(self) -> MediaHandle: ...


def classify_device_error(name: str, detail: str = "") -> DeviceError:
    """Map a platform error name to the matching DeviceError subclass."""
    error_cls = _ERROR_NAMES.get(name)
    if error_cls is None:
        logger.warning("Unrecognised media device error %r: %s", name, detail)
        return DeviceError()
    return error_cls()


def snapshot_jpeg(image: Image.Image, quality: int = 50) -> bytes:
    """Compress one camera frame for the live stream."""
    if image.mode != "RGB":
        image = image.convert("RGB")
    buf = io.BytesIO()
    image.save(buf, format="JPEG", quality=quality)
    return buf.getvalue()
