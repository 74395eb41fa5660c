"""Per-owner extraction session (status, progress, result and error state).

A session runs at most one extraction at a time. ``reset()`` cancels that
extraction and evicts the cache entries this session inserted; other sessions
sharing the same extractor keep their results and their in-flight work.
"""

from typing import Any, FrozenSet, Optional, Set
from core.logging import log
from core.cancellation import CancellationSignal
from core.errors import ErrorCode, OcrError
from postprocessing.models import MrzResult
from ocr.pipeline import MrzExtractor, ProgressUpdate, get_default_extractor

IDLE_PROGRESS = ProgressUpdate(status="idle", percentage=0)


class PassportOcrSession:
    """Tracks one user's passport extraction."""

    def __init__(self, extractor: Optional[MrzExtractor] = None, timeout: Optional[float] = None):
        """Initialize session.

        Args:
            extractor: Shared extractor. If None, uses the process-wide default
            timeout: Per-extraction timeout in seconds. If None, the extractor default
        """
        self.extractor = extractor or get_default_extractor()
        self.timeout = timeout
        self.status = "idle"  # idle | loading | processing | success | error
        self.result: Optional[MrzResult] = None
        self.error: Optional[str] = None
        self.error_code: Optional[ErrorCode] = None
        self.progress = IDLE_PROGRESS
        self._signal: Optional[CancellationSignal] = None
        self._cache_keys: Set[str] = set()

    @property
    def cache_keys(self) -> FrozenSet[str]:
        """Cache entries stored by extractions this session ran itself."""
        return frozenset(self._cache_keys)

    @property
    def is_processing(self) -> bool:
        return self.status in ("loading", "processing")

    def _on_progress(self, signal: CancellationSignal, update: ProgressUpdate) -> None:
        if signal is self._signal:
            self.progress = update

    def _cancel_current(self, reason: str) -> None:
        if self._signal is not None:
            self._signal.cancel(reason)
            self._signal = None

    async def process_image(self, image: Any) -> Optional[MrzResult]:
        """Extract MRZ fields, recording the outcome on the session.

        Errors are recorded in ``status``/``error``/``error_code`` rather than
        raised. A newer call or ``reset()`` supersedes this one, whose outcome is
        then discarded.

        Returns:
            MrzResult or None on failure / supersession
        """
        if image is None:
            return None

        self._cancel_current("Superseded by a new image")
        signal = CancellationSignal()
        self._signal = signal

        self.status = "loading"
        self.result = None
        self.error = None
        self.error_code = None
        self.progress = ProgressUpdate(status="loading", percentage=5)
        log.info("🚀 Starting passport OCR session processing")

        try:
            if signal is self._signal:
                self.status = "processing"
            result = await self.extractor.extract(
                image,
                timeout=self.timeout,
                signal=signal,
                progress_callback=lambda update: self._on_progress(signal, update),
                on_cached=self._cache_keys.add,
            )
        except OcrError as e:
            if signal is not self._signal:
                return None
            self._signal = None
            self.status = "error"
            self.error = e.message
            self.error_code = e.code
            self.progress = IDLE_PROGRESS
            log.info(f"❌ Session extraction failed: {e.code.value}")
            return None

        if signal is not self._signal:
            return None
        self._signal = None
        self.status = "success"
        self.result = result
        self.progress = ProgressUpdate(status="complete", percentage=100)
        log.info("✅ Session extraction completed")
        return result

    def reset(self) -> None:
        """Cancel this session's extraction, clear its state and its cache entries."""
        self._cancel_current("Session reset")
        for key in self._cache_keys:
            self.extractor.cache.evict(key)
        self._cache_keys.clear()

        self.status = "idle"
        self.result = None
        self.error = None
        self.error_code = None
        self.progress = IDLE_PROGRESS
