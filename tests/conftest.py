"""Shared fixtures: sample MRZ text, synthetic images and a fake Tesseract engine."""

import os

# No log file during tests
os.environ.setdefault("LOG_FILE", "")

import asyncio
import io
import threading
import time
from datetime import date
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Dict, List, Union

import pytest
from PIL import Image

from ocr.cache import InFlightRegistry, ProcessingCache
from ocr.pipeline import MrzExtractor
from ocr.recognizer import MrzRecognizer
from ocr.tesseract_worker import EngineLoadError, RecognitionOutput, RECOGNIZING_TEXT
from postprocessing.validator import ResultValidator

# ICAO 9303 specimen passport
SPECIMEN_LINE1 = "P<UTOERIKSSON<<ANNA<MARIA<<<<<<<<<<<<<<<<<<<"
SPECIMEN_LINE2 = "L898902C36UTO7408122F1204159ZE184226B<<<<<10"
SPECIMEN_TEXT = f"{SPECIMEN_LINE1}\n{SPECIMEN_LINE2}"

TODAY = date(2024, 6, 1)

EngineOutput = Union[RecognitionOutput, Exception]


class FakeWorker:
    """Stands in for TesseractWorker; behaviour comes from its FakeEngine."""

    def __init__(self, engine: "FakeEngine", model: str, logger=None):
        self.engine = engine
        self.model = model
        self.logger = logger
        self.terminated = False

    async def __aenter__(self):
        try:
            await self.initialize()
        except BaseException:
            await self.terminate()
            raise
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.terminate()

    def _emit(self, status, progress):
        if self.logger is not None:
            self.logger(status, progress)

    async def initialize(self):
        await asyncio.sleep(0)
        if isinstance(self.engine.outputs.get(self.model), EngineLoadError):
            raise self.engine.outputs[self.model]
        self._emit("initialized tesseract", 1.0)

    async def set_parameters(self, char_whitelist=None, page_seg_mode=None):
        self.engine.parameters.append((char_whitelist, page_seg_mode))
        self._emit("initialized api", 1.0)

    async def recognize(self, image):
        self.engine.recognize_calls.append(self.model)
        self._emit(RECOGNIZING_TEXT, 0.0)
        if self.engine.hang:
            await asyncio.Event().wait()
        if self.engine.delay:
            await asyncio.sleep(self.engine.delay)
        output = self.engine.next_output(self.model)
        if isinstance(output, Exception):
            raise output
        self._emit(RECOGNIZING_TEXT, 1.0)
        return output

    async def terminate(self):
        self.terminated = True


class FakeEngine:
    """Worker factory recording every worker it builds and every recognition."""

    def __init__(self, outputs: Dict[str, EngineOutput], hang: bool = False, delay: float = 0.0):
        self.outputs = outputs
        self.hang = hang
        self.delay = delay
        self.workers: List[FakeWorker] = []
        self.recognize_calls: List[str] = []
        self.parameters: List[tuple] = []

    def __call__(self, model, logger=None):
        worker = FakeWorker(self, model, logger)
        self.workers.append(worker)
        return worker

    def next_output(self, model: str) -> EngineOutput:
        """Output for ``model``; a list is consumed one run at a time, the last entry repeats."""
        output = self.outputs[model]
        if isinstance(output, list):
            return output.pop(0) if len(output) > 1 else output[0]
        return output

    @property
    def all_terminated(self) -> bool:
        return all(worker.terminated for worker in self.workers)


def make_output(text: str = SPECIMEN_TEXT, confidence: float = 92.0, model: str = "ocrb") -> RecognitionOutput:
    return RecognitionOutput(text=text, confidence=confidence, model=model)


def encode_image(image: Image.Image, fmt: str = "PNG") -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format=fmt)
    return buffer.getvalue()


@pytest.fixture
def sample_lines():
    return SPECIMEN_LINE1, SPECIMEN_LINE2


@pytest.fixture
def make_image_bytes():
    """Build distinct small PNG images (different shade per seed)."""
    def _make(seed: int = 0, size=(320, 240)) -> bytes:
        shade = (seed * 37) % 256
        return encode_image(Image.new("RGB", size, (shade, 255 - shade, 128)))
    return _make


@pytest.fixture
def fake_engine():
    def _make(outputs=None, hang=False, delay=0.0) -> FakeEngine:
        return FakeEngine(outputs if outputs is not None else {"ocrb": make_output()}, hang=hang, delay=delay)
    return _make


@pytest.fixture
def make_extractor():
    """Extractor wired to a fake engine, fresh cache and fixed validation date."""
    def _make(engine: FakeEngine, cache=None, inflight=None, parser=None, preprocessor=None,
              timeout=5.0) -> MrzExtractor:
        kwargs = {}
        if parser is not None:
            kwargs["parser"] = parser
        if preprocessor is not None:
            kwargs["preprocessor"] = preprocessor
        return MrzExtractor(
            cache=cache if cache is not None else ProcessingCache(max_size=10),
            inflight=inflight if inflight is not None else InFlightRegistry(),
            recognizer=MrzRecognizer(worker_factory=engine),
            validator=ResultValidator(today=TODAY),
            timeout=timeout,
            **kwargs,
        )
    return _make


@pytest.fixture
def make_recognition():
    return make_output


class ImageRequestHandler(BaseHTTPRequestHandler):
    """Serves the server's ``body`` as a PNG after its ``delay``."""

    def do_GET(self):
        time.sleep(self.server.delay)
        self.send_response(200)
        self.send_header("Content-Type", "image/png")
        self.send_header("Content-Length", str(len(self.server.body)))
        self.end_headers()
        self.wfile.write(self.server.body)

    def log_message(self, format, *args):
        pass


class ImageServer(ThreadingHTTPServer):
    daemon_threads = True
    body = b""
    delay = 0.0

    @property
    def url(self) -> str:
        return f"http://127.0.0.1:{self.server_address[1]}/passport.png"

    def handle_error(self, request, client_address):
        # clients that gave up close the socket mid-response
        pass


@pytest.fixture
def image_server(monkeypatch, make_image_bytes):
    """Local HTTP server for URL sources."""
    monkeypatch.setenv("NO_PROXY", "127.0.0.1,localhost")
    monkeypatch.setenv("no_proxy", "127.0.0.1,localhost")
    server = ImageServer(("127.0.0.1", 0), ImageRequestHandler)
    server.body = make_image_bytes()
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    yield server
    server.shutdown()
    server.server_close()
