"""MRZ recognizer - Tesseract with primary (ocrb) / fallback (eng) models.

RULES:
- Primary model failure (engine error, load failure, too-short text) → fallback once
- Low confidence is a verdict on the image → IMAGE_TOO_BLURRY, no fallback
- Worker is terminated on every exit path (async context manager)
"""

from typing import Callable, Optional
from PIL import Image
from core.logging import log
from core.config import settings
from core.cancellation import CancellationSignal
from core.errors import ErrorCode, OcrError
from ocr.tesseract_worker import (
    EngineLogger,
    EngineLoadError,
    RecognitionOutput,
    TesseractWorker,
    RECOGNIZING_TEXT,
)

# factory(model, logger) -> worker; tests inject fakes here
WorkerFactory = Callable[[str, Optional[EngineLogger]], TesseractWorker]

# recognition milestones as a fraction of the recognition stage
STAGE_FRACTIONS = {
    "initialized tesseract": 0.1,
    "initialized api": 0.2,
}


class InsufficientTextError(Exception):
    """Engine returned fewer characters than an MRZ line could hold."""


class MrzRecognizer:
    """Runs Tesseract over an MRZ crop with a single model fallback."""

    def __init__(self,
                 worker_factory: Optional[WorkerFactory] = None,
                 primary_model: Optional[str] = None,
                 fallback_model: Optional[str] = None,
                 min_confidence: Optional[float] = None,
                 min_text_length: Optional[int] = None):
        """Initialize recognizer.

        Args:
            worker_factory: Builds a worker for a model. If None, uses TesseractWorker
            primary_model: If None, uses settings.OCR_PRIMARY_MODEL
            fallback_model: If None, uses settings.OCR_FALLBACK_MODEL
            min_confidence: Confidence gate (0-100). If None, uses settings.OCR_MIN_CONFIDENCE
            min_text_length: Minimum stripped text length. If None, uses settings.OCR_MIN_TEXT_LENGTH
        """
        self.worker_factory = worker_factory or TesseractWorker
        self.primary_model = primary_model or settings.OCR_PRIMARY_MODEL
        self.fallback_model = fallback_model or settings.OCR_FALLBACK_MODEL
        self.min_confidence = min_confidence if min_confidence is not None else settings.OCR_MIN_CONFIDENCE
        self.min_text_length = min_text_length if min_text_length is not None else settings.OCR_MIN_TEXT_LENGTH

    async def recognize(self,
                        image: Image.Image,
                        signal: Optional[CancellationSignal] = None,
                        progress: Optional[Callable[[float], None]] = None) -> RecognitionOutput:
        """Recognize MRZ text in a preprocessed crop.

        Args:
            image: Grayscale MRZ crop
            signal: Cancellation signal checked after every engine call
            progress: Callback receiving recognition-stage progress (0-1)

        Returns:
            RecognitionOutput: text that passed the length and confidence gates

        Raises:
            OcrError: IMAGE_TOO_BLURRY, TESSERACT_LOAD_FAILED, NO_MRZ_DETECTED,
                      PROCESSING_FAILED, or OcrCancelledError (code TIMEOUT)
        """
        signal = signal or CancellationSignal()

        try:
            return await self._recognize_with_model(self.primary_model, image, signal, progress)
        except (EngineLoadError, InsufficientTextError, RuntimeError, OSError) as e:
            log.warning(f"⚠️  Primary model '{self.primary_model}' failed: {e}")
            log.info(f"Retrying with fallback model '{self.fallback_model}'")

        try:
            return await self._recognize_with_model(self.fallback_model, image, signal, progress)
        except EngineLoadError as e:
            raise OcrError(ErrorCode.TESSERACT_LOAD_FAILED, str(e))
        except InsufficientTextError as e:
            raise OcrError(ErrorCode.NO_MRZ_DETECTED, str(e))
        except (RuntimeError, OSError) as e:
            raise OcrError(ErrorCode.PROCESSING_FAILED, f"Tesseract error: {e}")

    async def _recognize_with_model(self,
                                    model: str,
                                    image: Image.Image,
                                    signal: CancellationSignal,
                                    progress: Optional[Callable[[float], None]]) -> RecognitionOutput:
        signal.raise_if_cancelled()

        def on_engine_progress(status: str, fraction: float) -> None:
            if progress is None:
                return
            if status == RECOGNIZING_TEXT:
                progress(0.2 + 0.8 * fraction)
            elif status in STAGE_FRACTIONS:
                progress(STAGE_FRACTIONS[status])

        log.info(f"Recognizing MRZ with model '{model}'")
        async with self.worker_factory(model, on_engine_progress) as worker:
            signal.raise_if_cancelled()
            await worker.set_parameters(
                char_whitelist=settings.OCR_CHAR_WHITELIST,
                page_seg_mode=settings.OCR_PAGE_SEG_MODE,
            )
            signal.raise_if_cancelled()
            output = await worker.recognize(image)
            signal.raise_if_cancelled()

        stripped = output.text.strip()
        if len(stripped) < self.min_text_length:
            raise InsufficientTextError(
                f"Model '{model}' returned {len(stripped)} chars (< {self.min_text_length})"
            )

        if output.confidence < self.min_confidence:
            raise OcrError(
                ErrorCode.IMAGE_TOO_BLURRY,
                f"OCR confidence {output.confidence:.1f} below {self.min_confidence:.0f} (model '{model}')",
            )

        log.info(f"✅ Model '{model}' recognized {len(stripped)} chars (confidence {output.confidence:.1f})")
        return output
