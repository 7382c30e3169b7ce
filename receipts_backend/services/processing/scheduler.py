"""
Batch scheduler for the receipt processing queue.

A run repeatedly takes the first ``concurrent_api_calls`` pending items,
processes them concurrently, waits for the whole slice to settle and then
re-reads the pending set from the live queue, so items added mid-run are
picked up by a later slice. Item failures are converted to ``error`` status;
nothing escapes ``run()``.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Protocol

from ..extraction.engine import ExtractionAdapter, create_extractor
from ..retry import RetryOptions, run_with_retry
from .events import EventLog
from .models import ExtractedRecord, ImageSource, QueueItem
from .queue import ProcessingQueue
from .validation import validation_error

logger = logging.getLogger(__name__)


class RecordSink(Protocol):
    async def save(self, record: ExtractedRecord) -> None:
        ...


ExtractorFactory = Callable[..., ExtractionAdapter]
SettingsLoader = Callable[[], Awaitable[Any]]


def _error_message(exc: BaseException) -> str:
    return str(exc) or type(exc).__name__


class BatchScheduler:
    def __init__(
        self,
        queue: ProcessingQueue,
        store: RecordSink,
        settings_loader: SettingsLoader,
        *,
        extractor_factory: ExtractorFactory = create_extractor,
        image_store: Optional[Any] = None,
        retry_options: Optional[RetryOptions] = None,
        extraction_timeout: Optional[float] = None,
        run_log: Optional[EventLog] = None,
        debug_log: Optional[EventLog] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.queue = queue
        self.store = store
        self.image_store = image_store
        self.retry_options = retry_options or RetryOptions()
        self.extraction_timeout = extraction_timeout
        self.log = run_log if run_log is not None else EventLog("run")
        self.debug_log = debug_log if debug_log is not None else EventLog("debug", max_entries=2000)
        self._settings_loader = settings_loader
        self._extractor_factory = extractor_factory
        self._sleep = sleep
        self._active = False
        self._concurrency_limit = 0
        self._last_updated = time.time()
        self._task: Optional["asyncio.Task[None]"] = None

    @property
    def active(self) -> bool:
        return self._active

    @property
    def concurrency_limit(self) -> int:
        return self._concurrency_limit

    @property
    def last_updated(self) -> float:
        return self._last_updated

    # Caller-facing operations
    def enqueue(self, sources: Iterable[ImageSource]) -> List[QueueItem]:
        return self.queue.add(sources)

    def remove(self, item_id: str) -> bool:
        return self.queue.remove(item_id)

    def clear(self) -> bool:
        if self._active:
            logger.info("Ignoring clear request while a run is active")
            return False
        self.queue.clear()
        self.log.clear()
        return True

    def start_run(self) -> Optional["asyncio.Task[None]"]:
        """Start ``run()`` in the background; returns None if one is already going."""
        if self._active or (self._task is not None and not self._task.done()):
            return None
        self._task = asyncio.create_task(self.run())
        return self._task

    async def shutdown(self) -> None:
        task = self._task
        if task is None or task.done():
            return
        logger.info("Cancelling active processing run")
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    def snapshot(self) -> Dict[str, Any]:
        items = self.queue.items()
        counts = self.queue.counts()
        return {
            "items": [item.to_dict() for item in items],
            "active": self._active,
            "logs": self.log.lines(),
            "processed_count": counts["completed"] + counts["error"],
            "total": len(items),
            "counts": counts,
            "last_updated": self._last_updated,
        }

    # Run loop
    async def run(self) -> None:
        if self._active:
            logger.info("Processing run already active; ignoring start request")
            return
        # Set before the first await so a re-entrant call sees it.
        self._active = True
        self.log.clear()

        try:
            settings = await self._settings_loader()
            limit = max(1, int(settings.concurrent_api_calls))
            self._concurrency_limit = limit
            extractor = self._extractor_factory(settings, debug_log=self.debug_log)

            pending = self.queue.pending()
            if not pending:
                self.log.info("No pending files to process.")
            else:
                self.log.info(f"Starting batch processing for {len(pending)} files (up to {limit} at a time)...")

            while pending:
                batch = pending[:limit]
                # Claim the whole slice before any task runs; a remove() issued
                # after this point is a no-op for these items.
                dispatched = [item for item in batch if self.queue.transition(item.id, "processing")]
                await asyncio.gather(
                    *(self._process_item(item, extractor, settings) for item in dispatched)
                )
                pending = self.queue.pending()
        except Exception:
            logger.exception("Batch processing loop error")
            self.log.error("Batch processing interrupted by system error.")
        finally:
            self._active = False
            self.log.info("Processing queue finished.")

    async def _extract_once(self, extractor: ExtractionAdapter, source: ImageSource) -> ExtractedRecord:
        if self.extraction_timeout:
            return await asyncio.wait_for(extractor.extract(source), timeout=self.extraction_timeout)
        return await extractor.extract(source)

    async def _process_item(self, item: QueueItem, extractor: ExtractionAdapter, settings: Any) -> None:
        name = item.source.filename
        max_retries = self.retry_options.max_retries

        def on_retry(attempt: int, delay: float, exc: BaseException) -> None:
            self.log.warn(f"Retry attempt {attempt}/{max_retries} for {name} after {delay:.1f}s: {_error_message(exc)}")

        try:
            image_ref: Optional[str] = None
            if self.image_store is not None:
                self.log.info(f"Storing image {name}...")
                image_ref = await self.image_store.store(item.source, settings, log=self.debug_log)

            self.log.info(f"Analyzing {name}...")
            record = await run_with_retry(
                lambda: self._extract_once(extractor, item.source),
                self.retry_options,
                on_retry=on_retry,
                sleep=self._sleep,
            )

            invalid = validation_error(record)
            if invalid:
                self.queue.transition(item.id, "error", invalid)
                self.log.error(f"Validation failed for {name}: {invalid}")
                return

            if record.status == "error":
                message = record.error or "Extraction returned error"
                self.queue.transition(item.id, "error", message)
                self.log.error(f"Error processing {name}: {message}")
                return

            if image_ref and not record.source_image_ref:
                record.source_image_ref = image_ref

            self.log.info(f"Saving {name}...")
            try:
                await self.store.save(record)
            except Exception as exc:
                logger.exception("Saving record %s for %s failed", record.id, name)
                message = _error_message(exc)
                self.queue.transition(item.id, "error", message)
                self.log.error(f"Failed to save {name}: {message}")
                return

            self._touch()
            self.queue.transition(item.id, "completed")
            self.log.success(f"Successfully processed {name}")
        except Exception as exc:
            logger.exception("Processing failed for %s", name)
            message = _error_message(exc)
            self.queue.transition(item.id, "error", message)
            self.log.error(f"Critical failure: {name}: {message}")

    def _touch(self) -> None:
        now = time.time()
        self._last_updated = now if now > self._last_updated else self._last_updated + 1e-6
