"""Background batching of mapped items, flushed by count, size or time."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Generic, TypeVar

I = TypeVar("I")
O = TypeVar("O")

_log = logging.getLogger(__name__)

_QUEUE_SIZE = 100
_POLL_SECONDS = 0.02
_CLOSED = object()


def handle_error(err: BaseException, logger: Any = None) -> None:
    """Log an error raised while mapping or flushing."""
    (logger or _log).error("error: %s", err)


class BatchProcessor(Generic[I, O]):
    """Buffers mapped items and hands them to ``flush_func`` in batches.

    A batch is flushed when it reaches ``max_batch_size`` items, before an item
    would push it past ``max_batch_bytes``, and every ``flush_interval``
    seconds. Limits of zero or less are disabled. Processing starts at once in
    a background thread.
    """

    def __init__(
        self,
        max_batch_size: int,
        max_batch_bytes: int,
        flush_interval: float,
        map_func: Callable[[I], O],
        flush_func: Callable[[list[O]], None],
        item_sizer: Callable[[O], int],
        logger: Any = None,
        after_flush: Callable[[list[O]], None] | None = None,
    ) -> None:
        self.max_batch_size = max_batch_size
        self.max_batch_bytes = max_batch_bytes
        self.flush_interval = flush_interval
        self.map_func = map_func
        self.flush_func = flush_func
        self.item_sizer = item_sizer
        self.after_flush = after_flush
        self.logger = logger or _log

        self._queue: queue.Queue = queue.Queue(maxsize=_QUEUE_SIZE)
        self._cancelled = threading.Event()
        self._closed = False
        self._batch: list[O] = []
        self._current_bytes = 0

        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()
        self.logger.debug("batch processor successfully started")

    def add(self, item: I) -> None:
        """Enqueue one item; blocks while the input queue is full."""
        if self._closed:
            raise RuntimeError("batch processor input is closed")
        self._put(item)
        self.logger.debug("item added to buffer %r", item)

    def wait(self) -> None:
        """Close the input and block until the final flush has completed."""
        if not self._closed:
            self._closed = True
            self.logger.info("batch processor input channel closed")
            try:
                self._put(_CLOSED)
            except RuntimeError:
                pass
        self._thread.join()
        self.logger.info("batch processor wait done")

    def cancel(self) -> None:
        """Stop processing: the worker flushes what it holds and exits."""
        self._cancelled.set()

    def _put(self, item: object) -> None:
        while True:
            if not self._thread.is_alive():
                raise RuntimeError("batch processor is not running")
            try:
                self._queue.put(item, timeout=_POLL_SECONDS)
                return
            except queue.Full:
                continue

    def _run(self) -> None:
        interval = self.flush_interval
        next_tick = time.monotonic() + interval if interval and interval > 0 else None

        while True:
            if self._cancelled.is_set():
                self.logger.info("context done. flushing buffer")
                self._flush()
                return

            timeout = _POLL_SECONDS
            if next_tick is not None:
                now = time.monotonic()
                if now >= next_tick:
                    self.logger.info("time interval reached. flushing buffer")
                    self._flush()
                    while next_tick <= time.monotonic():
                        next_tick += interval
                    continue
                timeout = min(timeout, next_tick - now)

            try:
                item = self._queue.get(timeout=timeout)
            except queue.Empty:
                continue

            if item is _CLOSED:
                self.logger.info("input channel closed. flushing buffer")
                self._flush()
                return
            self._process(item)

    def _process(self, item: I) -> None:
        try:
            out = self.map_func(item)
        except Exception as err:
            handle_error(err, self.logger)
            return

        size = self.item_sizer(out)
        if self.max_batch_bytes > 0 and self._current_bytes + size > self.max_batch_bytes:
            self.logger.info("max batch bytes reached. flushing buffer")
            self._flush()

        self._batch.append(out)
        self._current_bytes += size

        if self.max_batch_size > 0 and len(self._batch) >= self.max_batch_size:
            self.logger.info("max batch size reached. flushing buffer")
            self._flush()

    def _flush(self) -> None:
        if not self._batch:
            self.logger.debug("nothing to flush")
            return
        batch = self._batch
        self._batch = []
        self._current_bytes = 0
        try:
            self.flush_func(batch)
        except Exception as err:
            handle_error(err, self.logger)
        if self.after_flush is not None:
            self.after_flush(batch)
            self.logger.debug("after flush hook called")