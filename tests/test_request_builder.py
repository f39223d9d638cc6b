"""
Tests for scamshield.ai.request_builder — payload shape for each analysis type.
"""

import pytest

from scamshield.ai.codec import bytes_to_base64
from scamshield.ai.request_builder import (
    AnalysisRequest,
    build_audio_request,
    build_request,
    context_header,
    guess_mime_type,
)
from scamshield.core.errors import BlobReadError
from scamshield.models.analysis import AnalysisType, Language, ScamContext


class FakeUpload:
    def __init__(self, data: bytes, content_type: str | None = None, filename: str | None = None):
        self._data = data
        self.content_type = content_type
        self.filename = filename

    async def read(self) -> bytes:
        return self._data


class BrokenUpload:
    async def read(self) -> bytes:
        raise OSError("connection reset while reading upload")


def _request(content, analysis_type=AnalysisType.TEXT, context=ScamContext.SMS):
    return AnalysisRequest(content=content, analysis_type=analysis_type, context=context, language=Language.EN)


class TestTextAndUrl:
    async def test_text_is_single_part_with_context_header(self):
        payload = await build_request(_request("Pay now or lose power"))

        assert len(payload.parts) == 1
        assert not payload.is_multipart
        assert payload.text.startswith("Context: sms. ")
        assert '"Pay now or lose power"' in payload.text

    async def test_text_is_embedded_verbatim(self):
        content = 'Quotes " and \n newlines and ₹500 stay ' + "x" * 5000
        payload = await build_request(_request(content))
        assert content in payload.text

    async def test_url_prompt(self):
        payload = await build_request(
            _request("http://sbi-kyc-update.com", AnalysisType.URL, ScamContext.URL)
        )
        assert payload.text.startswith("Context: url. ")
        assert "phishing/scam potential" in payload.text
        assert '"http://sbi-kyc-update.com"' in payload.text
        assert "banking URL patterns in India" in payload.text

    @pytest.mark.parametrize("context", list(ScamContext))
    def test_context_header_is_verbatim(self, context):
        assert context_header(context) == f"Context: {context.value}"

    async def test_binary_content_for_text_raises(self):
        with pytest.raises(TypeError):
            await build_request(_request(FakeUpload(b"x")))


class TestImage:
    async def test_image_is_inline_part_then_instruction(self):
        data = b"\xff\xd8\xff\xe0fake-jpeg"
        payload = await build_request(
            _request(FakeUpload(data, content_type="image/png"), AnalysisType.IMAGE, ScamContext.WHATSAPP)
        )

        assert payload.is_multipart
        inline, text = payload.parts
        assert inline["inline_data"] == {"mime_type": "image/png", "data": bytes_to_base64(data)}
        assert text["text"] == "Context: whatsapp. Analyze this image for scam potential in India."

    async def test_string_content_for_image_raises(self):
        with pytest.raises(TypeError):
            await build_request(_request("not a file", AnalysisType.IMAGE))

    async def test_unreadable_upload_raises_blob_read_error(self):
        with pytest.raises(BlobReadError):
            await build_request(_request(BrokenUpload(), AnalysisType.IMAGE))

    def test_mime_from_filename(self):
        assert guess_mime_type(FakeUpload(b"", filename="qr.png")) == "image/png"

    def test_mime_defaults_to_jpeg(self):
        assert guess_mime_type(FakeUpload(b"")) == "image/jpeg"


class TestAudio:
    async def test_audio_request_defaults_to_webm(self):
        payload = await build_audio_request(FakeUpload(b"OggS"), "Transcribe")
        inline, text = payload.parts
        assert inline["inline_data"]["mime_type"] == "audio/webm"
        assert text == {"text": "Transcribe"}
