"""MRZ extraction pipeline - Main orchestrator for passport OCR.

This module orchestrates the complete MRZ pipeline:
1. Source loading and content hashing (cache / in-flight lookup)
2. MRZ band preprocessing (bottom 25%, grayscale)
3. Tesseract recognition (ocrb, fallback eng)
4. Grammar + heuristic parsing
5. Plausibility validation

Every failure leaves as an ``OcrError``; anything unexpected is wrapped once
here as PROCESSING_FAILED.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, Optional
from PIL import Image
from core.logging import log
from core.config import settings
from core.cancellation import CancellationSignal
from core.errors import ErrorCode, OcrError, OcrCancelledError
from core.utils import compute_content_hash
from ingestion.file_handler import FileHandler
from preprocessing.mrz_region import MrzRegionPreprocessor
from postprocessing.models import MrzResult
from postprocessing.mrz_parser import MrzParser
from postprocessing.validator import ResultValidator
from ocr.cache import InFlightRegistry, ProcessingCache
from ocr.recognizer import MrzRecognizer
from ocr.tesseract_worker import is_tesseract_available

# Pipeline checkpoints (percent)
PROGRESS_LOADING = 10
PROGRESS_PREPROCESSING = 20
PROGRESS_RECOGNIZING = 60
PROGRESS_PARSING = 90
PROGRESS_COMPLETE = 100

REQUIRED_DECODERS = ('PNG', 'JPEG')


@dataclass(frozen=True)
class ProgressUpdate:
    status: str  # idle | loading | preprocessing | recognizing | parsing | complete
    percentage: float


ProgressCallback = Callable[[ProgressUpdate], None]


class ProgressReporter:
    """Forwards progress to a callback, never letting the percentage go down."""

    def __init__(self, callback: Optional[ProgressCallback] = None):
        self.callback = callback
        self.last_status: Optional[str] = None
        self.last_percentage = 0.0

    def report(self, status: str, percentage: float) -> None:
        if self.callback is None:
            return
        if percentage < self.last_percentage:
            return
        if percentage == self.last_percentage and status == self.last_status:
            return
        self.last_status = status
        self.last_percentage = percentage
        self.callback(ProgressUpdate(status=status, percentage=percentage))


def has_image_decoders() -> bool:
    """Check that Pillow can decode the common photo formats."""
    Image.init()
    return all(name in Image.OPEN for name in REQUIRED_DECODERS)


def is_ocr_supported() -> bool:
    """Check whether MRZ extraction can run here (image decoders and tesseract binary)."""
    return has_image_decoders() and is_tesseract_available()


class MrzExtractor:
    """Passport MRZ extractor with caching, deduplication, timeout and cancellation.

    The cache and in-flight registry are injected so several extractors (or
    sessions) can share them, and tests can use fresh ones.
    """

    def __init__(self,
                 cache: Optional[ProcessingCache] = None,
                 inflight: Optional[InFlightRegistry] = None,
                 preprocessor: Optional[MrzRegionPreprocessor] = None,
                 recognizer: Optional[MrzRecognizer] = None,
                 parser: Optional[MrzParser] = None,
                 validator: Optional[ResultValidator] = None,
                 timeout: Optional[float] = None):
        """Initialize extractor.

        Args:
            cache: Result cache. If None, a new ProcessingCache(settings.CACHE_MAX_SIZE)
            inflight: Running tasks by content hash. If None, a new registry
            preprocessor: MRZ band preprocessor
            recognizer: Tesseract recognizer
            parser: MRZ text parser
            validator: Plausibility validator
            timeout: Default timeout in seconds. If None, uses settings.OCR_TIMEOUT_SECONDS
        """
        self.cache = cache if cache is not None else ProcessingCache()
        self.inflight = inflight if inflight is not None else InFlightRegistry()
        self.preprocessor = preprocessor or MrzRegionPreprocessor()
        self.recognizer = recognizer or MrzRecognizer()
        self.parser = parser or MrzParser()
        self.validator = validator or ResultValidator()
        self.timeout = timeout if timeout is not None else settings.OCR_TIMEOUT_SECONDS

    async def extract(self,
                      image: Any,
                      timeout: Optional[float] = None,
                      signal: Optional[CancellationSignal] = None,
                      progress_callback: Optional[ProgressCallback] = None,
                      on_cached: Optional[Callable[[str], None]] = None) -> MrzResult:
        """Extract MRZ fields from a passport image.

        Args:
            image: Image source (path, bytes, file object, PIL image, data/http URL)
            timeout: Seconds before PROCESSING_TIMEOUT, counted from the call
                     (source loading included). If None, uses the extractor default
            signal: Cancellation signal; cancelling raises OcrCancelledError
            progress_callback: Receives ProgressUpdate at each stage (not on cache hits)
            on_cached: Called with the content hash when this call's own pipeline
                       run stores its result in the cache

        Returns:
            MrzResult: Validated fields

        Raises:
            OcrError: Classified failure
        """
        timeout = timeout if timeout is not None else self.timeout
        signal = signal or CancellationSignal()

        if not has_image_decoders():
            raise OcrError(ErrorCode.PROCESSING_FAILED, "Pillow image decoders are not available")
        if timeout <= 0:
            raise OcrError(ErrorCode.INVALID_INPUT, f"Timeout must be positive, got {timeout}")
        signal.raise_if_cancelled()

        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        image_bytes = await self._load(image, deadline, timeout, signal)

        key = compute_content_hash(image_bytes)
        reporter = ProgressReporter(progress_callback)

        while True:
            cached = self.cache.get(key)
            if cached is not None:
                log.info(f"Cache hit for image {key[:12]}")
                return cached

            existing = self.inflight.get(key)
            if existing is None:
                return await self._run_owned(key, image_bytes, deadline, timeout, signal, reporter, on_cached)

            log.info(f"Joining in-flight extraction for image {key[:12]}")
            outcome = await self._race(existing, deadline, signal)
            self._raise_for_outcome(outcome, timeout, signal)

            if not existing.cancelled() and existing.exception() is None:
                reporter.report("complete", PROGRESS_COMPLETE)
                return existing.result()

            log.info(f"Shared extraction for image {key[:12]} failed, starting a fresh attempt")
            self.inflight.discard(key, existing)

    async def _load(self,
                    image: Any,
                    deadline: float,
                    timeout: float,
                    signal: CancellationSignal) -> bytes:
        """Resolve the source to bytes within the caller's deadline and signal."""
        remaining = deadline - asyncio.get_running_loop().time()
        loading = asyncio.ensure_future(asyncio.to_thread(FileHandler.load_bytes, image, remaining))
        loading.add_done_callback(_consume_exception)

        try:
            outcome = await self._race(loading, deadline, signal)
        except asyncio.CancelledError:
            loading.cancel()
            raise

        if outcome != "done":
            loading.cancel()
            self._raise_for_outcome(outcome, timeout, signal)

        try:
            return loading.result()
        except OcrError:
            if asyncio.get_running_loop().time() >= deadline:
                # the download ran out the caller's time budget
                self._raise_for_outcome("timeout", timeout, signal)
            raise

    async def _run_owned(self,
                         key: str,
                         image_bytes: bytes,
                         deadline: float,
                         timeout: float,
                         signal: CancellationSignal,
                         reporter: ProgressReporter,
                         on_cached: Optional[Callable[[str], None]] = None) -> MrzResult:
        token = CancellationSignal()
        task = asyncio.create_task(self._run_pipeline(key, image_bytes, token, reporter, on_cached))
        self.inflight.register(key, task)
        task.add_done_callback(lambda done: self._on_task_done(key, done))

        try:
            outcome = await self._race(task, deadline, signal)
        except asyncio.CancelledError:
            self._abandon(key, task, token, "Caller cancelled")
            raise

        if outcome != "done":
            self._abandon(key, task, token, signal.reason if outcome == "cancelled" else "Timed out")
            self._raise_for_outcome(outcome, timeout, signal)

        self.inflight.discard(key, task)
        if task.cancelled():
            raise OcrCancelledError("Pipeline task was cancelled")
        return task.result()

    async def _race(self, task: asyncio.Future, deadline: float, signal: CancellationSignal) -> str:
        """Wait for ``task``, the deadline or the signal; returns done | timeout | cancelled."""
        if signal.cancelled:
            return "cancelled"
        remaining = deadline - asyncio.get_running_loop().time()
        if remaining <= 0:
            return "timeout"

        cancel_waiter = asyncio.ensure_future(signal.wait())
        try:
            done, _ = await asyncio.wait(
                {task, cancel_waiter}, timeout=remaining, return_when=asyncio.FIRST_COMPLETED
            )
        finally:
            cancel_waiter.cancel()

        if task in done:
            return "done"
        if cancel_waiter in done:
            return "cancelled"
        return "timeout"

    @staticmethod
    def _raise_for_outcome(outcome: str, timeout: float, signal: CancellationSignal) -> None:
        if outcome == "timeout":
            log.error(f"MRZ extraction timed out after {timeout:.1f}s")
            raise OcrError(ErrorCode.PROCESSING_TIMEOUT, f"Processing timed out after {timeout:.1f}s")
        if outcome == "cancelled":
            log.info("MRZ extraction cancelled")
            raise OcrCancelledError(signal.reason or "Operation cancelled")

    def _abandon(self, key: str, task: asyncio.Task, token: CancellationSignal, reason: str) -> None:
        """Stop a pipeline this caller owns; the worker terminates in its own cleanup."""
        self.inflight.discard(key, task)
        token.cancel(reason)
        task.cancel()

    def _on_task_done(self, key: str, task: asyncio.Task) -> None:
        self.inflight.discard(key, task)
        if not task.cancelled():
            # retrieve so an abandoned task's error is not reported as unhandled
            task.exception()

    async def _preprocess(self, image_bytes: bytes) -> Image.Image:
        """Crop in a worker thread; a crop finished after cancellation is still closed."""
        cropping = asyncio.ensure_future(asyncio.to_thread(self.preprocessor.process, image_bytes))
        try:
            return await asyncio.shield(cropping)
        except asyncio.CancelledError:
            cropping.add_done_callback(_close_region)
            raise

    async def _run_pipeline(self,
                            key: str,
                            image_bytes: bytes,
                            token: CancellationSignal,
                            reporter: ProgressReporter,
                            on_cached: Optional[Callable[[str], None]] = None) -> MrzResult:
        try:
            reporter.report("loading", PROGRESS_LOADING)
            log.info(f"Starting MRZ extraction for image {key[:12]} ({len(image_bytes)} bytes)")

            reporter.report("preprocessing", PROGRESS_PREPROCESSING)
            region = await self._preprocess(image_bytes)
            try:
                token.raise_if_cancelled()

                reporter.report("recognizing", PROGRESS_RECOGNIZING)
                span = PROGRESS_PARSING - PROGRESS_RECOGNIZING
                output = await self.recognizer.recognize(
                    region,
                    signal=token,
                    progress=lambda fraction: reporter.report("recognizing", PROGRESS_RECOGNIZING + span * fraction),
                )
            finally:
                region.close()
            token.raise_if_cancelled()

            reporter.report("parsing", PROGRESS_PARSING)
            parsed = self.parser.parse(output.text)
            self.validator.validate(parsed.result, parsed.nationality_code)
            token.raise_if_cancelled()

            self.cache.set(key, parsed.result)
            if on_cached is not None:
                on_cached(key)
            reporter.report("complete", PROGRESS_COMPLETE)
            log.info(f"✅ MRZ extraction complete for image {key[:12]}")
            return parsed.result

        except OcrError as e:
            log.error(f"MRZ extraction failed [{e.code.value}]: {e.technical_message}")
            raise
        except Exception as e:
            log.error(f"Unexpected MRZ extraction failure: {type(e).__name__}: {e}")
            raise OcrError(ErrorCode.PROCESSING_FAILED, str(e) or type(e).__name__) from e


def _consume_exception(future: asyncio.Future) -> None:
    if not future.cancelled():
        future.exception()


def _close_region(future: asyncio.Future) -> None:
    if not future.cancelled() and future.exception() is None:
        future.result().close()


_default_extractor: Optional[MrzExtractor] = None


def get_default_extractor() -> MrzExtractor:
    """Lazily created process-wide extractor used by the module-level helpers."""
    global _default_extractor
    if _default_extractor is None:
        _default_extractor = MrzExtractor()
    return _default_extractor


async def extract_mrz(image: Any,
                      timeout: Optional[float] = None,
                      signal: Optional[CancellationSignal] = None,
                      progress_callback: Optional[ProgressCallback] = None) -> MrzResult:
    """Extract MRZ fields with the default extractor (timeout defaults to OCR_TIMEOUT_SECONDS)."""
    return await get_default_extractor().extract(
        image, timeout=timeout, signal=signal, progress_callback=progress_callback
    )


async def extract_mrz_quick(image: Any,
                            timeout: Optional[float] = None,
                            signal: Optional[CancellationSignal] = None,
                            progress_callback: Optional[ProgressCallback] = None) -> MrzResult:
    """Same as ``extract_mrz`` with the shorter OCR_QUICK_TIMEOUT_SECONDS default."""
    return await get_default_extractor().extract(
        image,
        timeout=timeout if timeout is not None else settings.OCR_QUICK_TIMEOUT_SECONDS,
        signal=signal,
        progress_callback=progress_callback,
    )
