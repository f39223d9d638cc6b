"""
request_builder.py — Turns one user action into a Gemini-ready payload.

  text / url → one text part:  "Context: <context>. <instruction>: "<content>""
  image      → two parts:      inline_data {mime_type, data(base64)} + text instruction

Pure transformation: no network. Text content is embedded literally (never
truncated or re-encoded) and the context value is copied verbatim into the
header. Image handles are read to the end before encoding.
"""

import mimetypes
from dataclasses import dataclass
from typing import Any

from scamshield.ai.codec import BinaryHandle, blob_to_base64
from scamshield.models.analysis import AnalysisType, Language, ScamContext

_DEFAULT_IMAGE_MIME = "image/jpeg"


@dataclass(frozen=True)
class AnalysisRequest:
    """One piece of user content awaiting a risk judgment. Built per user action."""

    content: str | BinaryHandle
    analysis_type: AnalysisType
    context: ScamContext
    language: Language


@dataclass(frozen=True)
class ContentPayload:
    """
    Ordered content parts in the Gemini REST shape:
      {"text": "..."}  or  {"inline_data": {"mime_type": "...", "data": "<base64>"}}
    """

    parts: tuple[dict[str, Any], ...]

    @property
    def is_multipart(self) -> bool:
        return any("inline_data" in part for part in self.parts)

    @property
    def text(self) -> str:
        return "\n".join(part["text"] for part in self.parts if "text" in part)


def context_header(context: ScamContext) -> str:
    return f"Context: {context.value}"


def guess_mime_type(handle: BinaryHandle) -> str:
    """content_type if the handle carries one, else the filename extension."""
    content_type = getattr(handle, "content_type", None)
    if content_type:
        return content_type
    filename = getattr(handle, "filename", None)
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return _DEFAULT_IMAGE_MIME


async def build_request(request: AnalysisRequest) -> ContentPayload:
    header = context_header(request.context)

    if request.analysis_type is AnalysisType.IMAGE:
        if isinstance(request.content, str):
            raise TypeError("Image analysis needs a binary handle, not a string")
        data = await blob_to_base64(request.content)
        return ContentPayload(parts=(
            {"inline_data": {"mime_type": guess_mime_type(request.content), "data": data}},
            {"text": f"{header}. Analyze this image for scam potential in India."},
        ))

    if not isinstance(request.content, str):
        raise TypeError(f"{request.analysis_type.value} analysis needs string content")

    if request.analysis_type is AnalysisType.URL:
        text = (
            f'{header}. Analyze this URL for phishing/scam potential: "{request.content}". '
            "Check against known banking URL patterns in India."
        )
    else:
        text = f'{header}. Analyze this text for Indian context scam potential: "{request.content}"'

    return ContentPayload(parts=({"text": text},))


async def build_audio_request(handle: BinaryHandle, instruction: str) -> ContentPayload:
    """Recorded audio inline + an instruction (used for voice-note transcription)."""
    data = await blob_to_base64(handle)
    mime_type = getattr(handle, "content_type", None) or "audio/webm"
    return ContentPayload(parts=(
        {"inline_data": {"mime_type": mime_type, "data": data}},
        {"text": instruction},
    ))
