"""
errors.py — ScamShield error taxonomy.

Every failure the core can raise derives from ScamShieldError and carries:
  code        — stable machine-readable tag the UI switches on
  status_code — HTTP status used when the error escapes a route
  message     — user-facing text (safe to show as-is)

Propagation policy:
  - Safety-critical analysis fails loudly (SchemaValidationError / NetworkError).
  - Informational features (dojo scenarios, regional intel) never raise these
    to the caller; they substitute a fixed fallback payload instead.
  - Device errors only come out of the live session's media acquisition step.

Wire into app (in main.py):
    app.add_exception_handler(ScamShieldError, scamshield_error_handler)
"""

from fastapi import Request
from fastapi.responses import JSONResponse


class ScamShieldError(Exception):
    code = "internal_error"
    status_code = 500
    default_message = "Something went wrong. Please try again."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(ScamShieldError):
    """Missing or invalid credentials. Fatal: raised on every call, no retry."""

    code = "configuration_error"
    status_code = 503
    default_message = "Service configuration error (API Key)."


class SchemaValidationError(ScamShieldError):
    """Model output was not parseable JSON or violated the declared schema."""

    code = "validation_error"
    status_code = 502
    default_message = "Failed to analyze content. Please try again."


class NetworkError(ScamShieldError):
    """Transport failure or timeout talking to Gemini. The user may retry."""

    code = "network_error"
    status_code = 503
    default_message = "Failed to connect. Please check your internet connection and try again."


class DecodeError(ScamShieldError, ValueError):
    """Malformed base64 or misaligned PCM data."""

    code = "decode_error"
    status_code = 400
    default_message = "The media data could not be decoded."


class BlobReadError(ScamShieldError, OSError):
    code = "blob_read_error"
    status_code = 400
    default_message = "The uploaded file could not be read."


# ─── Live scanner device errors ───────────────────────────────────────────────

class DeviceError(ScamShieldError):
    code = "device_error"
    status_code = 400
    default_message = "An unexpected error occurred while starting the camera."


class PermissionDeniedError(DeviceError):
    code = "permission_denied"
    default_message = (
        "Access Denied. Please grant camera and microphone access in your browser settings."
    )


class DeviceNotFoundError(DeviceError):
    code = "device_not_found"
    default_message = "No camera or microphone found on this device."


class DeviceBusyError(DeviceError):
    code = "device_busy"
    default_message = "Camera or microphone is currently in use by another app."


# ─── Scam Dojo ────────────────────────────────────────────────────────────────

class GameNotFoundError(ScamShieldError):
    code = "game_not_found"
    status_code = 404
    default_message = "This Scam Dojo game has expired. Please start a new one."


class GameFinishedError(ScamShieldError):
    code = "game_finished"
    status_code = 409
    default_message = "This Scam Dojo game is already over."


async def scamshield_error_handler(request: Request, exc: ScamShieldError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "code": exc.code},
    )
