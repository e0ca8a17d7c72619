"""Staging CloudTrail EMF records in per-region files and flushing them."""

from __future__ import annotations

import json
import logging
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any

from geras.emf import METRIC_UNIT_COUNT, CloudTrailEvent, EMFInput, EMFRecord, build

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_log = logging.getLogger(__name__)


def _timestamp_of(line: bytes) -> int | None:
    """Return the _aws.Timestamp of an EMF line, or None if it cannot be read."""
    try:
        doc = json.loads(line)
    except ValueError:
        return None
    if not isinstance(doc, dict):
        return None
    meta = doc.get("_aws")
    if meta is None:
        return 0
    if not isinstance(meta, dict):
        return None
    value = meta.get("Timestamp")
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return value


class CTFileBatcher:
    """Writes CloudTrail events as EMF lines to ``emf_<region>.ndjson`` files.

    Per region the record count and byte size are tracked; the file is
    flushed through ``emf_flusher`` and truncated when ``max_count`` records
    or ``max_bytes`` bytes are reached (limits of zero or less are disabled),
    every ``flush_interval`` seconds, and once more on ``stop``.
    """

    def __init__(
        self,
        namespace: str,
        metric_name: str,
        base_dir: str | os.PathLike,
        max_count: int,
        max_bytes: int,
        flush_interval: float,
        emf_flusher: Any,
        logger: Any = None,
    ) -> None:
        if flush_interval <= 0:
            raise ValueError("flush interval must be positive")
        self.namespace = namespace
        self.metric_name = metric_name
        self.base_dir = Path(base_dir)
        self.max_count = max_count
        self.max_bytes = max_bytes
        self.flush_interval = flush_interval
        self.emf_flusher = emf_flusher
        self.logger = logger or _log

        self._lock = threading.Lock()
        self._counts: dict[str, int] = {}
        self._sizes: dict[str, int] = {}
        self._region_locks: dict[str, threading.Lock] = {}
        self._ticker_stop = threading.Event()
        self._cancelled = threading.Event()
        self._ticker = threading.Thread(target=self._tick, daemon=True)
        self._ticker.start()

    def __enter__(self) -> "CTFileBatcher":
        return self

    def __exit__(self, *exc: object) -> None:
        self.stop()

    def add(self, region: str, event: CloudTrailEvent) -> None:
        """Append ``event`` as an EMF line for ``region``, flushing at the limits."""
        try:
            record = build(
                EMFInput(
                    namespace=self.namespace,
                    metric_name=self.metric_name,
                    value=1,
                    unit=METRIC_UNIT_COUNT,
                    dimensions=[["eventName", event.event_name]],
                    timestamp=event.event_time,
                ),
                self.logger,
            )
        except ValueError as err:
            self.logger.error("EMF build failed: %s", err)
            return
        data = record.payload
        record_size = len(data) + 1

        with self._lock:
            prev_count = self._counts.get(region, 0)
            prev_size = self._sizes.get(region, 0)
        if (self.max_count > 0 and prev_count + 1 > self.max_count) or (
            self.max_bytes > 0 and prev_size + record_size > self.max_bytes
        ):
            self.logger.info("threshold reached for region %s before add; flushing", region)
            self._flush_region(region)

        try:
            with self._path(region).open("ab") as stash:
                stash.write(data + b"\n")
        except OSError as err:
            self.logger.error("unable to open file for region %s: %s", region, err)
            return

        with self._lock:
            self._counts[region] = self._counts.get(region, 0) + 1
            self._sizes[region] = self._sizes.get(region, 0) + record_size
            new_count = self._counts[region]
            new_size = self._sizes[region]

        if (self.max_count > 0 and new_count >= self.max_count) or (
            self.max_bytes > 0 and new_size >= self.max_bytes
        ):
            self.logger.info("threshold reached for region %s after add; flushing", region)
            self._flush_region(region)

    def stop(self) -> None:
        """Stop periodic flushing and flush every known region once."""
        self._ticker_stop.set()
        if self._ticker is not threading.current_thread():
            self._ticker.join()
        self._flush_all()
        self._cancelled.set()

    def _path(self, region: str) -> Path:
        return self.base_dir / f"emf_{region}.ndjson"

    def _region_lock(self, region: str) -> threading.Lock:
        with self._lock:
            return self._region_locks.setdefault(region, threading.Lock())

    def _tick(self) -> None:
        while not self._ticker_stop.wait(self.flush_interval):
            if self._cancelled.is_set():
                return
            self._flush_all()

    def _flush_all(self) -> None:
        with self._lock:
            regions = list(self._counts)
        if not regions:
            return
        with ThreadPoolExecutor(max_workers=len(regions)) as pool:
            list(pool.map(self._flush_region, regions))

    def _flush_region(self, region: str) -> None:
        if self._cancelled.is_set():
            return
        path = self._path(region)
        with self._region_lock(region):
            try:
                with path.open("rb") as stash:
                    lines = stash.read().splitlines()
            except OSError as err:
                self.logger.error("cannot open file for flush for region %s: %s", region, err)
                return

            batch = []
            for line in lines:
                self.logger.debug("flushing line: %s", line)
                millis = _timestamp_of(line)
                if millis is None:
                    continue
                batch.append(
                    EMFRecord(
                        payload=bytes(line),
                        timestamp=_EPOCH + timedelta(milliseconds=millis),
                    )
                )

            if batch:
                try:
                    self.emf_flusher.flush(region, batch)
                except Exception as err:
                    self.logger.error("flush failed for region %s: %s", region, err)

            try:
                os.truncate(path, 0)
            except OSError as err:
                self.logger.error("failed to truncate file for region %s: %s", region, err)
            with self._lock:
                self._counts[region] = 0
                self._sizes[region] = 0