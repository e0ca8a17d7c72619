"""A reusable flush step that ships batches of records to CloudWatch Logs."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Sequence, TypeVar

T = TypeVar("T")

_PREFIX = "emfbatcher: "
_log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LogRecord:
    """One log event: a message and its timestamp in epoch milliseconds."""

    message: str
    timestamp: int


class FlushError(Exception):
    """Raised when a batch could not be put into CloudWatch Logs."""


def make_flush_func(
    client: Any,
    log_group: str,
    log_stream: str,
    extract_payload: Callable[[T], bytes],
    extract_timestamp: Callable[[T], int],
    logger: Any = None,
) -> Callable[[Sequence[T]], None]:
    """Return a function that sends a batch of records in one put call.

    The events are sorted by timestamp, as CloudWatch Logs requires.
    """
    logger = logger or _log

    def flush(batch: Sequence[T]) -> None:
        if not batch:
            return
        events = sorted(
            (
                LogRecord(
                    message=extract_payload(record).decode("utf-8"),
                    timestamp=extract_timestamp(record),
                )
                for record in batch
            ),
            key=lambda event: event.timestamp,
        )
        try:
            client.put_log_events(
                log_group_name=log_group,
                log_stream_name=log_stream,
                log_events=events,
            )
        except Exception as err:
            logger.error(_PREFIX + "error flushing batch: %s", err)
            raise FlushError(f"{_PREFIX}error flushing batch: {err}") from err
        logger.debug(
            _PREFIX + "flushed batch batchSize : %s , logGroup : %s , logStream : %s",
            len(batch), log_group, log_stream,
        )

    return flush