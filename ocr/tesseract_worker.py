"""Tesseract recognition worker (one engine instance per recognition attempt).

The worker mirrors the init → configure → recognize → terminate lifecycle of
an OCR engine. Recognition runs the ``tesseract`` binary in a child process
owned by the worker, so ``terminate()`` can kill a run that is still going.
Every blocking call runs in a thread to keep the event loop responsive.
"""

import asyncio
import os
import shlex
import subprocess
import tempfile
import threading
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Tuple
from PIL import Image
import pytesseract
from pytesseract import TesseractError, TesseractNotFoundError
from core.logging import log
from core.config import settings

# logger(status, progress 0-1), same shape as the engine's own progress events
EngineLogger = Callable[[str, float], None]

RECOGNIZING_TEXT = "recognizing text"


class EngineLoadError(RuntimeError):
    """Tesseract binary or requested model could not be loaded."""


@dataclass(frozen=True)
class RecognitionOutput:
    """Text recognized from one image."""
    text: str
    confidence: float  # 0-100, mean word confidence
    model: str


def build_config(tessdata_dir: Optional[str] = None,
                 char_whitelist: Optional[str] = None,
                 page_seg_mode: Optional[int] = None) -> str:
    """Build the tesseract command-line config string."""
    parts = []
    if tessdata_dir:
        parts.append(f'--tessdata-dir "{tessdata_dir}"')
    if page_seg_mode is not None:
        parts.append(f"--psm {int(page_seg_mode)}")
    if char_whitelist:
        parts.append(f"-c tessedit_char_whitelist={char_whitelist}")
    return " ".join(parts)


def assemble_text(data: Dict[str, List]) -> Tuple[str, float]:
    """Rebuild line-structured text and mean confidence from tesseract TSV output.

    Args:
        data: TSV columns as parsed by pytesseract (``Output.DICT`` shape)

    Returns:
        tuple: (text with one recognized line per row, mean word confidence 0-100)
    """
    lines: Dict[Tuple[int, int, int, int], List[str]] = {}
    confidences = []

    for i, word in enumerate(data.get('text', [])):
        word = (word or "").strip()
        if not word:
            continue
        key = (
            int(data['page_num'][i]),
            int(data['block_num'][i]),
            int(data['par_num'][i]),
            int(data['line_num'][i]),
        )
        lines.setdefault(key, []).append(word)

        conf = float(data['conf'][i])
        if conf >= 0:
            confidences.append(conf)

    text = "\n".join(" ".join(words) for _, words in sorted(lines.items()))
    confidence = sum(confidences) / len(confidences) if confidences else 0.0
    return text, confidence


class TesseractWorker:
    """Tesseract OCR worker for a single model.

    Use as ``async with TesseractWorker(...) as worker``: the worker is
    initialized on entry and terminated on every exit path.
    """

    def __init__(self,
                 model: str,
                 logger: Optional[EngineLogger] = None,
                 tessdata_dir: Optional[str] = None,
                 tesseract_cmd: Optional[str] = None,
                 timeout: Optional[float] = None):
        """Initialize worker (no engine call yet).

        Args:
            model: Tesseract language/model name (e.g. 'ocrb', 'eng')
            logger: Optional progress callback ``logger(status, progress)``
            tessdata_dir: Directory containing ``<model>.traineddata``.
                          If None, uses settings.TESSDATA_DIR
            tesseract_cmd: Path to tesseract binary. If None, uses settings.TESSERACT_CMD
            timeout: Per-recognition subprocess timeout in seconds.
                     If None, uses settings.OCR_TIMEOUT_SECONDS
        """
        self.model = model
        self.logger = logger
        self.tessdata_dir = tessdata_dir if tessdata_dir is not None else settings.TESSDATA_DIR
        self.tesseract_cmd = tesseract_cmd if tesseract_cmd is not None else settings.TESSERACT_CMD
        self.timeout = timeout if timeout is not None else settings.OCR_TIMEOUT_SECONDS
        self.char_whitelist: Optional[str] = None
        self.page_seg_mode: Optional[int] = None
        self.initialized = False
        self.terminated = False
        self._process: Optional[subprocess.Popen] = None
        self._process_lock = threading.Lock()

    async def __aenter__(self) -> "TesseractWorker":
        try:
            await self.initialize()
        except BaseException:
            await self.terminate()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.terminate()

    def _emit(self, status: str, progress: float) -> None:
        if self.logger is not None:
            self.logger(status, progress)

    def _check_engine(self) -> None:
        if self.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = self.tesseract_cmd
        try:
            version = pytesseract.get_tesseract_version()
            languages = pytesseract.get_languages(config=build_config(self.tessdata_dir))
        except TesseractNotFoundError as e:
            raise EngineLoadError(f"Tesseract binary not found: {e}") from e
        except (TesseractError, OSError) as e:
            raise EngineLoadError(f"Tesseract failed to start: {e}") from e

        if self.model not in languages:
            raise EngineLoadError(
                f"Model '{self.model}' not installed (available: {', '.join(sorted(languages)) or 'none'})"
            )
        log.debug(f"Tesseract {version} ready with model '{self.model}'")

    async def initialize(self) -> None:
        """Load the engine and verify the model is available.

        Raises:
            EngineLoadError: If the binary or the model cannot be loaded
        """
        if self.terminated:
            raise RuntimeError("Worker already terminated")
        self._emit("loading tesseract core", 0.0)
        await asyncio.to_thread(self._check_engine)
        self.initialized = True
        self._emit("initialized tesseract", 1.0)

    async def set_parameters(self, char_whitelist: Optional[str] = None,
                             page_seg_mode: Optional[int] = None) -> None:
        """Configure character whitelist and page segmentation mode."""
        self.char_whitelist = char_whitelist
        self.page_seg_mode = page_seg_mode
        self._emit("initialized api", 1.0)

    def _spawn(self, image_path: str) -> subprocess.Popen:
        cmd = self.tesseract_cmd or pytesseract.pytesseract.tesseract_cmd
        config = build_config(self.tessdata_dir, self.char_whitelist, self.page_seg_mode)
        args = [cmd, image_path, "stdout", "-l", self.model, *shlex.split(config), "tsv"]
        with self._process_lock:
            if self.terminated:
                raise RuntimeError("Worker terminated before recognition started")
            self._process = subprocess.Popen(args, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
            return self._process

    def _run(self, image: Image.Image) -> Dict[str, List]:
        fd, image_path = tempfile.mkstemp(prefix="mrz_", suffix=".png")
        os.close(fd)
        try:
            image.save(image_path, format="PNG")
            process = self._spawn(image_path)
            try:
                stdout, stderr = process.communicate(timeout=self.timeout)
            except subprocess.TimeoutExpired:
                process.kill()
                process.communicate()
                raise RuntimeError("Tesseract process timeout")
        finally:
            os.remove(image_path)

        if process.returncode != 0:
            if self.terminated:
                raise RuntimeError("Tesseract process killed")
            raise TesseractError(process.returncode, stderr.decode("utf-8", errors="replace").strip())
        return pytesseract.pytesseract.file_to_dict(stdout.decode("utf-8", errors="replace"), "\t", -1)

    async def recognize(self, image: Image.Image) -> RecognitionOutput:
        """Recognize text in ``image``.

        Returns:
            RecognitionOutput: text, mean confidence and model name
        """
        if not self.initialized or self.terminated:
            raise RuntimeError("Worker is not initialized")

        self._emit(RECOGNIZING_TEXT, 0.0)
        data = await asyncio.to_thread(self._run, image)
        text, confidence = assemble_text(data)
        self._emit(RECOGNIZING_TEXT, 1.0)

        log.debug(f"Tesseract[{self.model}] recognized {len(text)} chars, confidence={confidence:.1f}")
        return RecognitionOutput(text=text, confidence=confidence, model=self.model)

    async def terminate(self) -> None:
        """Release the worker. Safe to call more than once."""
        with self._process_lock:
            if self.terminated:
                return
            self.terminated = True
            process = self._process
        self.initialized = False
        if process is not None and process.poll() is None:
            process.kill()
            log.debug(f"Tesseract[{self.model}] process {process.pid} killed")
        log.debug(f"Tesseract[{self.model}] worker terminated")


def is_tesseract_available() -> bool:
    """Check whether the tesseract binary can be started."""
    if settings.TESSERACT_CMD:
        pytesseract.pytesseract.tesseract_cmd = settings.TESSERACT_CMD
    try:
        pytesseract.get_tesseract_version()
    except (TesseractNotFoundError, TesseractError, OSError):
        return False
    return True
