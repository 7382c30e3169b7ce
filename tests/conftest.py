import asyncio
import os
import tempfile
from types import SimpleNamespace
from typing import Any, Callable, Dict, List, Optional

os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="receipts-tests-"))
os.environ.setdefault("EXTRACTION_TIMEOUT", "0")
os.environ.setdefault("LLM_API_KEY", "test-key")

import pytest  # noqa: E402

from receipts_backend.services.processing.models import ExtractedRecord, ImageSource  # noqa: E402
from receipts_backend.services.processing.queue import ProcessingQueue  # noqa: E402
from receipts_backend.services.processing.scheduler import BatchScheduler  # noqa: E402
from receipts_backend.services.retry import RetryOptions  # noqa: E402

# Minimal JPEG header; content is never decoded.
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 32


def make_source(name: str) -> ImageSource:
    return ImageSource(filename=name, content_type="image/jpeg", data=JPEG_BYTES + name.encode())


class FakeExtractor:
    """
    Scripted extraction adapter.

    ``script`` maps a filename to a list of outcomes consumed one per call: an
    ExtractedRecord is returned, an exception is raised. Unscripted files get a
    fresh draft record.
    """

    def __init__(self, script: Optional[Dict[str, List[Any]]] = None, *, delay: float = 0.0) -> None:
        self.script = {k: list(v) for k, v in (script or {}).items()}
        self.delay = delay
        self.calls: List[str] = []
        self.in_flight = 0
        self.max_in_flight = 0
        self.gate: Optional[asyncio.Event] = None
        self.on_call: Optional[Callable[[ImageSource], None]] = None

    async def extract(self, source: ImageSource) -> ExtractedRecord:
        self.calls.append(source.filename)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.on_call is not None:
                self.on_call(source)
            if self.gate is not None:
                await self.gate.wait()
            if self.delay:
                await asyncio.sleep(self.delay)
            outcomes = self.script.get(source.filename)
            if outcomes:
                outcome = outcomes.pop(0)
                if isinstance(outcome, BaseException):
                    raise outcome
                return outcome
            return ExtractedRecord.new(fields={"merchantName": source.filename, "totalAmount": 1.0})
        finally:
            self.in_flight -= 1


class RecordingStore:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.saved: List[ExtractedRecord] = []
        self.error = error

    async def save(self, record: ExtractedRecord) -> None:
        await asyncio.sleep(0)
        if self.error is not None:
            raise self.error
        self.saved.append(record)


class RecordingSleep:
    def __init__(self) -> None:
        self.delays: List[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def extraction_settings():
    return SimpleNamespace(concurrent_api_calls=3)


@pytest.fixture
def extractor():
    return FakeExtractor()


@pytest.fixture
def store():
    return RecordingStore()


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def make_scheduler(extraction_settings, extractor, store, recording_sleep):
    def _factory(*, settings=None, adapter=None, sink=None, **overrides: Any) -> BatchScheduler:
        settings = settings or extraction_settings
        adapter = adapter or extractor

        async def load_settings():
            return settings

        options: Dict[str, Any] = {
            "extractor_factory": lambda _settings, debug_log=None: adapter,
            "retry_options": RetryOptions(max_retries=3, initial_delay=1.0, max_delay=10.0),
            "sleep": recording_sleep,
        }
        options.update(overrides)
        return BatchScheduler(ProcessingQueue(), sink or store, load_settings, **options)

    return _factory
