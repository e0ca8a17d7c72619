"""Batching CloudTrail events as EMF records shipped to CloudWatch Logs."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable

from geras.batchprocessor import BatchProcessor
from geras.emf import METRIC_UNIT_COUNT, CloudTrailEvent, EMFRecord
from geras.emfbatcher import make_flush_func

CALL_COUNT = "CallCount"

_PREFIX = "cloudtrail: "
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ZERO_TIME = datetime(1, 1, 1, tzinfo=timezone.utc)

_log = logging.getLogger(__name__)


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def cloudtrail_event_to_record(event: CloudTrailEvent, namespace: str) -> EMFRecord:
    """Build a CallCount EMF record, one call of ``event.event_name``."""
    moment = event.event_time or _ZERO_TIME
    doc = {
        "_aws": {
            "Timestamp": _unix_millis(moment),
            "CloudWatchMetrics": [
                {
                    "Namespace": namespace,
                    "Dimensions": [["eventName"]],
                    "Metrics": [{"Name": CALL_COUNT, "Unit": METRIC_UNIT_COUNT}],
                }
            ],
        },
        "eventName": event.event_name,
        CALL_COUNT: 1,
    }
    payload = json.dumps(doc, sort_keys=True, separators=(",", ":")).encode("utf-8")
    return EMFRecord(payload=payload, timestamp=moment)


class CloudTrailEMFBatcher:
    """Maps CloudTrail events to EMF records, batches them and puts them in a log stream.

    Batches are flushed by record count, by byte size (payload plus
    ``overhead`` per record) or every ``flush_interval`` seconds. The
    underlying processor is available as ``batcher``.
    """

    def __init__(
        self,
        max_bytes: int,
        max_events: int,
        flush_interval: float,
        overhead: int,
        client: Any,
        namespace: str,
        log_group: str,
        log_stream: str,
        logger: Any = None,
        after_flush: Callable[[list[EMFRecord]], None] | None = None,
    ) -> None:
        logger = logger or _log

        def map_event(event: CloudTrailEvent) -> EMFRecord:
            logger.debug(_PREFIX + "mapping CloudTrailEvent to EMFRecord; CloudTrailEvent=%r", event)
            record = cloudtrail_event_to_record(event, namespace)
            logger.debug(_PREFIX + "mapped CloudTrailEvent to EMFRecord; EMFRecord=%s", record.payload)
            return record

        def size_of(record: EMFRecord) -> int:
            return len(record.payload) + overhead

        flush = make_flush_func(
            client,
            log_group,
            log_stream,
            lambda record: record.payload,
            lambda record: _unix_millis(record.timestamp),
            logger,
        )
        self.batcher: BatchProcessor[CloudTrailEvent, EMFRecord] = BatchProcessor(
            max_events,
            max_bytes,
            flush_interval,
            map_event,
            flush,
            size_of,
            logger,
            after_flush,
        )
        logger.debug("%s new batch processor", _PREFIX)