"""Tests for image source loading."""

import base64
import io

import pytest
import requests
from PIL import Image

from core.config import settings
from core.errors import ErrorCode, OcrError
from ingestion.file_handler import FileHandler, load_image_bytes


class TestFileHandler:
    """Every accepted source resolves to the same encoded bytes."""

    def test_raw_bytes(self, make_image_bytes):
        data = make_image_bytes()
        assert FileHandler.load_bytes(data) == data
        assert FileHandler.load_bytes(bytearray(data)) == data

    def test_path_and_string_path(self, make_image_bytes, tmp_path):
        data = make_image_bytes()
        path = tmp_path / "passport.png"
        path.write_bytes(data)
        assert FileHandler.load_bytes(path) == data
        assert load_image_bytes(str(path)) == data

    def test_missing_file(self, tmp_path):
        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes(tmp_path / "missing.png")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_data_url(self, make_image_bytes):
        data = make_image_bytes()
        url = "data:image/png;base64," + base64.b64encode(data).decode("ascii")
        assert FileHandler.load_bytes(url) == data

    def test_non_image_data_url(self):
        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes("data:text/plain;base64,aGVsbG8=")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_pil_image_encoded_as_png(self):
        data = FileHandler.load_bytes(Image.new("RGB", (8, 8), (10, 20, 30)))
        with Image.open(io.BytesIO(data)) as decoded:
            assert decoded.format == "PNG"
            assert decoded.size == (8, 8)

    def test_binary_file_object(self, make_image_bytes):
        data = make_image_bytes()
        assert FileHandler.load_bytes(io.BytesIO(data)) == data

    def test_text_file_object_rejected(self):
        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes(io.StringIO("not binary"))
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    @pytest.mark.parametrize("source", [None, b"", "", 42])
    def test_unusable_sources(self, source):
        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes(source)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_oversized_image(self, monkeypatch):
        monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 16)
        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes(b"x" * 17)
        assert exc_info.value.code == ErrorCode.INVALID_INPUT

    def test_download_failure(self, monkeypatch):
        def _fail(*args, **kwargs):
            raise requests.ConnectionError("unreachable")

        monkeypatch.setattr(requests, "get", _fail)
        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes("https://example.invalid/passport.jpg")
        assert exc_info.value.code == ErrorCode.PROCESSING_FAILED

    def test_download(self, image_server):
        assert FileHandler.load_bytes(image_server.url) == image_server.body


class StreamedResponse:
    """Stands in for a streamed ``requests`` response."""

    def __init__(self, chunks, headers=None):
        self.chunks = chunks
        self.headers = headers or {}
        self.served = 0
        self.closed = False

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.closed = True

    def raise_for_status(self):
        pass

    def iter_content(self, chunk_size=1):
        for chunk in self.chunks:
            self.served += 1
            yield chunk


class TestStreamedDownload:
    """Downloads are read in chunks, capped and always closed."""

    @pytest.fixture
    def serve(self, monkeypatch):
        calls = []

        def _serve(response):
            def _get(url, **kwargs):
                calls.append(kwargs)
                return response
            monkeypatch.setattr(requests, "get", _get)
            return calls
        return _serve

    def test_oversized_stream_stops_early(self, monkeypatch, serve):
        """A body without content-length is cut off once it passes the limit."""
        monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 100)
        response = StreamedResponse([b"x" * 60] * 10)
        calls = serve(response)

        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes("https://example.com/passport.png")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert response.served == 2
        assert response.closed
        assert calls[0]["stream"] is True

    def test_declared_length_over_limit(self, monkeypatch, serve):
        monkeypatch.setattr(settings, "MAX_IMAGE_BYTES", 100)
        response = StreamedResponse([b"x" * 10], headers={"content-length": "5000"})
        serve(response)

        with pytest.raises(OcrError) as exc_info:
            FileHandler.load_bytes("https://example.com/passport.png")
        assert exc_info.value.code == ErrorCode.INVALID_INPUT
        assert response.served == 0
        assert response.closed

    def test_chunks_joined_and_closed(self, serve, make_image_bytes):
        data = make_image_bytes()
        response = StreamedResponse([data[:50], data[50:]])
        serve(response)
        assert FileHandler.load_bytes("https://example.com/passport.png") == data
        assert response.closed

    def test_timeout_capped_by_setting(self, monkeypatch, serve, make_image_bytes):
        monkeypatch.setattr(settings, "DOWNLOAD_TIMEOUT_SECONDS", 10.0)
        calls = serve(StreamedResponse([make_image_bytes()]))
        FileHandler.load_bytes("https://example.com/a.png", timeout=2.5)
        FileHandler.load_bytes("https://example.com/b.png", timeout=60.0)
        assert [call["timeout"] for call in calls] == [2.5, 10.0]
