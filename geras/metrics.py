"""Batching CloudWatch metric readings as EMF records."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any

from geras.batchprocessor import BatchProcessor
from geras.emf import EMFRecord
from geras.emfbatcher import make_flush_func

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

_log = logging.getLogger(__name__)


@dataclass
class CloudWatchMetric:
    """One metric reading with metadata that becomes its dimensions."""

    name: str
    value: float
    unit: str
    timestamp: datetime
    metadata: dict[str, str] = field(default_factory=dict)


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def _number(value: float) -> float | int:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


def build_emf_record(metric: CloudWatchMetric, namespace: str) -> EMFRecord:
    """Encode ``metric`` as an EMF record; metadata keys form one sorted dimension set.

    Raises ValueError when the value cannot be encoded (NaN or infinity).
    """
    dim_keys = sorted(metric.metadata)
    doc: dict[str, Any] = {
        "_aws": {
            "Timestamp": _unix_millis(metric.timestamp),
            "CloudWatchMetrics": [
                {
                    "Namespace": namespace,
                    "Dimensions": [dim_keys],
                    "Metrics": [{"Name": metric.name, "Unit": metric.unit}],
                }
            ],
        },
        metric.name: _number(metric.value),
    }
    for key in dim_keys:
        doc[key] = metric.metadata[key]
    payload = json.dumps(
        doc, sort_keys=True, separators=(",", ":"), allow_nan=False
    ).encode("utf-8")
    return EMFRecord(payload=payload, timestamp=metric.timestamp)


class CloudWatchMetricBatcher:
    """Maps metrics to EMF records and puts them in batches into a log stream.

    The underlying processor is available as ``batcher``.
    """

    def __init__(
        self,
        client: Any,
        namespace: str,
        log_group: str,
        log_stream: str,
        max_events: int,
        max_bytes: int,
        flush_interval: float,
        overhead: int,
        logger: Any = None,
    ) -> None:
        logger = logger or _log

        def map_metric(metric: CloudWatchMetric) -> EMFRecord:
            return build_emf_record(metric, namespace)

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
        self.batcher: BatchProcessor[CloudWatchMetric, EMFRecord] = BatchProcessor(
            max_events,
            max_bytes,
            flush_interval,
            map_metric,
            flush,
            size_of,
            logger,
        )