"""Image source resolution: turn whatever the caller handed us into raw bytes."""

import base64
import binascii
import io
import re
from pathlib import Path
from typing import Any, Optional, Union
import requests
from PIL import Image
from core.logging import log
from core.config import settings
from core.errors import ErrorCode, OcrError
from core.utils import validate_image_format

ImageSource = Union[str, Path, bytes, bytearray, memoryview, io.IOBase, Image.Image]

DATA_URL_PATTERN = re.compile(r'^data:image/([A-Za-z0-9.+-]+)(;[^,]*)?,(.*)$', re.DOTALL)
HTTP_URL_PATTERN = re.compile(r'^https?://', re.IGNORECASE)
DOWNLOAD_CHUNK_BYTES = 64 * 1024


class FileHandler:
    """Handles image source detection and loading."""

    @staticmethod
    def load_bytes(source: Any, timeout: Optional[float] = None) -> bytes:
        """Load raw image bytes from any supported source.

        Supports: filesystem path, bytes, binary file object, PIL Image,
        ``data:image/...`` URL, ``http(s)://`` URL.

        Args:
            source: Image source
            timeout: Download timeout in seconds, capped at
                     settings.DOWNLOAD_TIMEOUT_SECONDS (URL sources only)

        Returns:
            bytes: Raw (still encoded) image bytes

        Raises:
            OcrError: INVALID_INPUT for unusable sources,
                      PROCESSING_FAILED for download failures
        """
        if source is None:
            raise OcrError(ErrorCode.INVALID_INPUT, "Image source required")

        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
        elif isinstance(source, Image.Image):
            data = FileHandler._encode_image(source)
        elif isinstance(source, Path):
            data = FileHandler._read_file(source)
        elif isinstance(source, str):
            data = FileHandler._load_from_string(source, timeout)
        elif hasattr(source, 'read'):
            data = source.read()
            if not isinstance(data, (bytes, bytearray)):
                raise OcrError(ErrorCode.INVALID_INPUT, "File object must be opened in binary mode")
            data = bytes(data)
        else:
            raise OcrError(ErrorCode.INVALID_INPUT, f"Unsupported image source type: {type(source).__name__}")

        FileHandler._check_size(data)
        return data

    @staticmethod
    def _load_from_string(source: str, timeout: Optional[float] = None) -> bytes:
        if not source:
            raise OcrError(ErrorCode.INVALID_INPUT, "Image source required")
        if source.startswith('data:'):
            return FileHandler._decode_data_url(source)
        if HTTP_URL_PATTERN.match(source):
            return FileHandler._download(source, timeout)
        return FileHandler._read_file(Path(source))

    @staticmethod
    def _read_file(path: Path) -> bytes:
        if not path.is_file():
            raise OcrError(ErrorCode.INVALID_INPUT, f"File not found: {path}")
        log.debug(f"Reading image file: {path}")
        return path.read_bytes()

    @staticmethod
    def _decode_data_url(url: str) -> bytes:
        match = DATA_URL_PATTERN.match(url)
        if not match:
            raise OcrError(ErrorCode.INVALID_INPUT, "Invalid image URL format")

        subtype, params, payload = match.groups()
        if not validate_image_format(subtype.split('+')[0]):
            raise OcrError(ErrorCode.INVALID_INPUT, f"Unsupported image type: image/{subtype}")
        if not params or 'base64' not in params:
            raise OcrError(ErrorCode.INVALID_INPUT, "Only base64 data URLs are supported")

        try:
            return base64.b64decode(payload, validate=False)
        except (binascii.Error, ValueError) as e:
            raise OcrError(ErrorCode.INVALID_INPUT, f"Failed to decode base64 data: {e}")

    @staticmethod
    def _download(url: str, timeout: Optional[float] = None) -> bytes:
        if timeout is None or timeout > settings.DOWNLOAD_TIMEOUT_SECONDS:
            timeout = settings.DOWNLOAD_TIMEOUT_SECONDS
        log.info(f"Downloading image: {url}")
        try:
            with requests.get(url, timeout=timeout, stream=True) as response:
                response.raise_for_status()

                content_length = response.headers.get('content-length')
                if content_length and int(content_length) > settings.MAX_IMAGE_BYTES:
                    raise OcrError(ErrorCode.INVALID_INPUT, f"Image too large: {content_length} bytes")

                buffer = bytearray()
                for chunk in response.iter_content(chunk_size=DOWNLOAD_CHUNK_BYTES):
                    buffer.extend(chunk)
                    if len(buffer) > settings.MAX_IMAGE_BYTES:
                        raise OcrError(ErrorCode.INVALID_INPUT, f"Image too large: over {settings.MAX_IMAGE_BYTES} bytes")
                return bytes(buffer)
        except requests.RequestException as e:
            raise OcrError(ErrorCode.PROCESSING_FAILED, f"Failed to download image: {e}")

    @staticmethod
    def _encode_image(image: Image.Image) -> bytes:
        buffer = io.BytesIO()
        image.save(buffer, format='PNG')
        return buffer.getvalue()

    @staticmethod
    def _check_size(data: bytes) -> None:
        if not data:
            raise OcrError(ErrorCode.INVALID_INPUT, "Image is empty")
        if len(data) > settings.MAX_IMAGE_BYTES:
            raise OcrError(ErrorCode.INVALID_INPUT, f"Image too large: {len(data)} bytes")


def load_image_bytes(source: Any) -> bytes:
    """Module-level shortcut for ``FileHandler.load_bytes``."""
    return FileHandler.load_bytes(source)
