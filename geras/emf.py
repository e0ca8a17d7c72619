"""Building CloudWatch Embedded Metric Format documents and shipping them."""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Sequence

from geras.emfbatcher import LogRecord
from geras.safemap import TypedMap

METRIC_UNIT_COUNT = "Count"

_NO_CLIENT_FOUND = "no client found for region"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FRACTION = re.compile(r"(\.\d{6})\d+")

_log = logging.getLogger(__name__)


@dataclass
class EMFInput:
    """The minimal inputs needed to build one metric document."""

    namespace: str
    metric_name: str
    value: float
    unit: str
    dimensions: Sequence[Sequence[str]] = field(default_factory=list)
    timestamp: datetime | None = None


@dataclass(frozen=True)
class EMFRecord:
    """An encoded EMF document and the time it describes."""

    payload: bytes
    timestamp: datetime


@dataclass(frozen=True)
class CloudTrailEvent:
    """The fields of a CloudTrail event that metrics are built from."""

    event_name: str = ""
    event_time: datetime | None = None
    aws_region: str = ""

    @classmethod
    def from_dict(cls, data: Any) -> "CloudTrailEvent":
        """Build an event from decoded CloudTrail JSON."""
        if not isinstance(data, dict):
            raise ValueError("cloudtrail event must be a JSON object")
        raw_time = data.get("eventTime")
        return cls(
            event_name=str(data.get("eventName") or ""),
            event_time=_parse_time(raw_time) if raw_time else None,
            aws_region=str(data.get("awsRegion") or ""),
        )


def _parse_time(value: Any) -> datetime:
    if not isinstance(value, str):
        raise ValueError(f"invalid eventTime: {value!r}")
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION.sub(r"\1", text)
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def _number(value: float) -> float | int:
    if isinstance(value, float) and value.is_integer() and abs(value) < 1e21:
        return int(value)
    return value


def build(input: EMFInput, logger: Any = None) -> EMFRecord:
    """Return the JSON-encoded EMF document for ``input``.

    Raises ValueError when the value cannot be encoded (NaN or infinity).
    """
    logger = logger or _log
    ts = input.timestamp or datetime.now(timezone.utc)

    doc: dict[str, Any] = {input.metric_name: _number(input.value)}
    dim_names = []
    for dim in input.dimensions:
        if len(dim) >= 2:
            name, value = dim[0], dim[1]
            doc[name] = value
            dim_names.append(name)

    doc["_aws"] = {
        "Timestamp": _unix_millis(ts),
        "CloudWatchMetrics": [
            {
                "Namespace": input.namespace,
                "Dimensions": [dim_names],
                "Metrics": [{"Name": input.metric_name, "Unit": input.unit}],
            }
        ],
    }

    try:
        payload = json.dumps(
            doc, sort_keys=True, separators=(",", ":"), allow_nan=False
        ).encode("utf-8")
    except ValueError as err:
        logger.error("Error: %s", err)
        raise
    return EMFRecord(payload=payload, timestamp=ts)


def convert_sqs_message_to_emf(
    body: str,
    namespace: str,
    metric_name: str,
    unit: str,
    dimensions: Sequence[Sequence[str]],
    logger: Any = None,
) -> EMFRecord:
    """Turn the body of an SQS-wrapped CloudTrail event into an EMF record.

    Any unit other than Count is reported and replaced by Count.
    """
    logger = logger or _log
    try:
        event = CloudTrailEvent.from_dict(json.loads(body))
    except ValueError as err:
        logger.error("Error: %s", err)
        raise

    if unit.lower() == METRIC_UNIT_COUNT.lower():
        logger.debug("Metric unit is %s for %s metric ", unit, metric_name)
    else:
        logger.warning("Unknown metric unit %s for %s metric", unit, metric_name)
        logger.warning("Defaulting to Count")

    return build(
        EMFInput(
            namespace=namespace,
            metric_name=metric_name,
            value=1,
            unit=METRIC_UNIT_COUNT,
            dimensions=dimensions,
            timestamp=event.event_time,
        ),
        logger,
    )


class EMFFlusher:
    """Sends batches of EMF records to CloudWatch Logs using per-region clients."""

    def __init__(
        self,
        client_map: TypedMap,
        log_stream_name: str,
        log_group_name: str,
        logger: Any = None,
    ) -> None:
        self.client_map = client_map
        self.log_stream_name = log_stream_name
        self.log_group_name = log_group_name
        self.logger = logger or _log

    def flush(self, region: str, batch: Sequence[EMFRecord]) -> None:
        """Put ``batch`` into the log stream of ``region``, oldest first.

        Raises LookupError when no client is known for the region; errors
        from the client propagate.
        """
        if not batch:
            self.logger.info("batch empty for %s region", region)
            return
        self.logger.info(
            "flushing %d records to %s region; logroup %s logstream %s",
            len(batch), region, self.log_group_name, self.log_stream_name,
        )
        client = self.client_map.load(region)
        if client is None:
            raise LookupError(f"{_NO_CLIENT_FOUND} {region}")

        events = sorted(
            (
                LogRecord(
                    message=record.payload.decode("utf-8"),
                    timestamp=_unix_millis(record.timestamp),
                )
                for record in batch
            ),
            key=lambda event: event.timestamp,
        )
        client.put_log_events(
            log_group_name=self.log_group_name,
            log_stream_name=self.log_stream_name,
            log_events=events,
        )
        self.logger.info(
            "successfully flushed %d records to %s region; logroup %s logstream %s",
            len(batch), region, self.log_group_name, self.log_stream_name,
        )