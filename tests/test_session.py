"""Tests for per-owner extraction sessions."""

import asyncio

from core.errors import USER_MESSAGES, ErrorCode
from core.utils import compute_content_hash
from ocr.session import PassportOcrSession
from conftest import make_output


async def _until(predicate, limit: float = 2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + limit
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.01)


class TestPassportOcrSession:
    """Session state and reset isolation."""

    def test_success_state(self, fake_engine, make_extractor, make_image_bytes):
        session = PassportOcrSession(make_extractor(fake_engine()))
        result = asyncio.run(session.process_image(make_image_bytes()))
        assert session.status == "success"
        assert session.result is result
        assert result.passport_number == "L898902C3"
        assert (session.progress.status, session.progress.percentage) == ("complete", 100)
        assert not session.is_processing
        assert session.error is None

    def test_error_state(self, fake_engine, make_extractor, make_image_bytes):
        engine = fake_engine({"ocrb": make_output(confidence=20.0)})
        session = PassportOcrSession(make_extractor(engine))
        assert asyncio.run(session.process_image(make_image_bytes())) is None
        assert session.status == "error"
        assert session.error_code == ErrorCode.IMAGE_TOO_BLURRY
        assert session.error == USER_MESSAGES[ErrorCode.IMAGE_TOO_BLURRY]
        assert session.result is None
        assert session.progress.percentage == 0

    def test_no_image_is_ignored(self, fake_engine, make_extractor):
        session = PassportOcrSession(make_extractor(fake_engine()))
        assert asyncio.run(session.process_image(None)) is None
        assert session.status == "idle"

    def test_reset_evicts_only_own_entries(self, fake_engine, make_extractor, make_image_bytes):
        """Sessions sharing an extractor keep each other's cached results."""
        extractor = make_extractor(fake_engine())
        first, second = PassportOcrSession(extractor), PassportOcrSession(extractor)
        image_a, image_b = make_image_bytes(1), make_image_bytes(2)

        async def run():
            await first.process_image(image_a)
            await second.process_image(image_b)

        asyncio.run(run())
        first.reset()

        assert compute_content_hash(image_a) not in extractor.cache
        assert compute_content_hash(image_b) in extractor.cache
        assert first.status == "idle"
        assert first.result is None
        assert second.status == "success"

    def test_cache_hit_not_owned(self, fake_engine, make_extractor, make_image_bytes):
        """A session that only read a cached result does not evict it."""
        extractor = make_extractor(fake_engine())
        first, second = PassportOcrSession(extractor), PassportOcrSession(extractor)
        image = make_image_bytes()

        async def run():
            await first.process_image(image)
            await second.process_image(image)

        asyncio.run(run())
        assert second.cache_keys == frozenset()
        second.reset()
        assert compute_content_hash(image) in extractor.cache

    def test_shared_run_owned_by_one_session(self, fake_engine, make_extractor, make_image_bytes):
        """Concurrent sessions on the same image: only the one whose run stored the result owns it."""
        engine = fake_engine(delay=0.1)
        extractor = make_extractor(engine)
        first, second = PassportOcrSession(extractor), PassportOcrSession(extractor)
        image = make_image_bytes()
        key = compute_content_hash(image)

        async def run():
            await asyncio.gather(first.process_image(image), second.process_image(image))

        asyncio.run(run())
        assert engine.recognize_calls == ["ocrb"]
        owners = [session for session in (first, second) if key in session.cache_keys]
        assert len(owners) == 1
        bystander = second if owners[0] is first else first

        bystander.reset()
        assert key in extractor.cache
        owners[0].reset()
        assert key not in extractor.cache

    def test_reset_while_processing(self, fake_engine, make_extractor, make_image_bytes):
        engine = fake_engine(hang=True)
        extractor = make_extractor(engine)
        session = PassportOcrSession(extractor)

        async def run():
            task = asyncio.create_task(session.process_image(make_image_bytes()))
            await _until(lambda: engine.recognize_calls)
            assert session.is_processing
            assert session.progress.status == "recognizing"
            session.reset()
            outcome = await task
            await _until(lambda: engine.all_terminated)
            return outcome

        assert asyncio.run(run()) is None
        assert session.status == "idle"
        assert session.error is None
        assert len(extractor.inflight) == 0
        assert len(extractor.cache) == 0
