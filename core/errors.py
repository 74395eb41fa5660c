"""Error taxonomy for MRZ extraction.

Every failure leaving the pipeline is an ``OcrError`` carrying exactly one
``ErrorCode``. ``message`` is safe to show to the person holding the passport;
``technical_message`` is diagnostic detail for logs only.
"""

from enum import Enum
from typing import Optional, Dict


class ErrorCode(str, Enum):
    """Closed set of failure kinds."""

    INVALID_INPUT = "INVALID_INPUT"
    TESSERACT_LOAD_FAILED = "TESSERACT_LOAD_FAILED"
    NO_MRZ_DETECTED = "NO_MRZ_DETECTED"
    IMAGE_TOO_BLURRY = "IMAGE_TOO_BLURRY"
    POOR_IMAGE_QUALITY = "POOR_IMAGE_QUALITY"
    INVALID_CHECKSUM = "INVALID_CHECKSUM"
    PROCESSING_TIMEOUT = "PROCESSING_TIMEOUT"
    TIMEOUT = "TIMEOUT"
    PROCESSING_FAILED = "PROCESSING_FAILED"


USER_MESSAGES: Dict[ErrorCode, str] = {
    ErrorCode.INVALID_INPUT: (
        "Please upload a clear photo of your passport's main page "
        "(the one with your photo and details)."
    ),
    ErrorCode.TESSERACT_LOAD_FAILED: (
        "We're having trouble loading the passport scanner. "
        "Please try again in a moment."
    ),
    ErrorCode.NO_MRZ_DETECTED: (
        "We couldn't read your passport. Please make sure the passport page is "
        "fully visible, well-lit, and in focus, then try again."
    ),
    ErrorCode.IMAGE_TOO_BLURRY: (
        "The photo is too blurry to read. Please hold the camera steady and "
        "take the photo in good lighting."
    ),
    ErrorCode.POOR_IMAGE_QUALITY: (
        "The image quality appears poor and resulted in unreliable data. "
        "Please take a clearer, well-lit photo of your passport and try again, "
        "or enter the information manually."
    ),
    ErrorCode.INVALID_CHECKSUM: (
        "The passport information doesn't look right. Please take a clearer "
        "photo with good lighting and try again."
    ),
    ErrorCode.PROCESSING_TIMEOUT: (
        "Processing is taking too long. Please try taking a clearer, well-lit "
        "photo of your passport."
    ),
    ErrorCode.TIMEOUT: "The passport scan was cancelled.",
    ErrorCode.PROCESSING_FAILED: (
        "Something went wrong while processing your passport. "
        "Please try taking a new photo."
    ),
}


class OcrError(Exception):
    """Classified MRZ extraction failure."""

    cancelled = False

    def __init__(self,
                 code: ErrorCode,
                 technical_message: Optional[str] = None,
                 message: Optional[str] = None):
        self.code = ErrorCode(code)
        self.message = message or USER_MESSAGES[self.code]
        self.technical_message = technical_message
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Convert error to JSON-serializable dict"""
        return {
            "code": self.code.value,
            "message": self.message,
            "technical_message": self.technical_message,
        }

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code.value!r}, technical_message={self.technical_message!r})"


class OcrCancelledError(OcrError):
    """Operation cancelled through its cancellation signal."""

    cancelled = True

    def __init__(self, technical_message: str = "Operation cancelled"):
        super().__init__(ErrorCode.TIMEOUT, technical_message)
