"""Making sure a CloudWatch Logs group and stream exist in every region."""

from __future__ import annotations

from typing import Any, Callable, Iterable, Iterator, Mapping, Protocol, Sequence


class ResourceAlreadyExistsError(Exception):
    """Raised by a client when the group or stream to create already exists."""


class OperationAbortedError(Exception):
    """Raised by a client when a concurrent change aborted the operation."""


class EnsureError(Exception):
    """Raised when a log group or stream could not be found or created."""

    def __init__(self, region: str, message: str) -> None:
        super().__init__(f"[{region}] {message}")
        self.region = region


class CloudWatchLogsClient(Protocol):
    """The CloudWatch Logs operations this package relies on.

    Describe calls return one page shaped like the service response, for
    example ``{"logGroups": [{"logGroupName": ...}], "nextToken": ...}``;
    a missing or empty ``nextToken`` marks the last page.
    """

    region: str

    def put_log_events(
        self, *, log_group_name: str, log_stream_name: str, log_events: Sequence[Any]
    ) -> Any: ...

    def create_log_group(self, *, log_group_name: str) -> Any: ...

    def describe_log_groups(
        self, *, log_group_name_prefix: str, next_token: str | None = None
    ) -> Mapping[str, Any]: ...

    def describe_log_streams(
        self,
        *,
        log_group_name: str,
        log_stream_name_prefix: str,
        next_token: str | None = None,
    ) -> Mapping[str, Any]: ...

    def create_log_stream(self, *, log_group_name: str, log_stream_name: str) -> Any: ...


ClientFactory = Callable[[str], CloudWatchLogsClient]

_RACE_ERRORS = (ResourceAlreadyExistsError, OperationAbortedError)


def _pages(call: Callable[..., Mapping[str, Any]], **params: Any) -> Iterator[Mapping[str, Any]]:
    token: str | None = None
    while True:
        page = call(**params, next_token=token) or {}
        yield page
        token = page.get("nextToken")
        if not token:
            return


def _names(items: Iterable[Mapping[str, Any]] | None, key: str) -> Iterator[Any]:
    for item in items or ():
        yield item.get(key)


def ensure_log_group_exists(client: CloudWatchLogsClient, group_name: str) -> None:
    """Create ``group_name`` unless a group with exactly that name exists."""
    try:
        for page in _pages(client.describe_log_groups, log_group_name_prefix=group_name):
            if group_name in _names(page.get("logGroups"), "logGroupName"):
                return
    except Exception as err:
        raise EnsureError(client.region, f"describe log groups: {err}") from err

    try:
        client.create_log_group(log_group_name=group_name)
    except _RACE_ERRORS:
        return  # created concurrently by another process
    except Exception as err:
        raise EnsureError(
            client.region, f'create log group "{group_name}": {err}'
        ) from err


def ensure_log_stream_exists(
    client: CloudWatchLogsClient, group_name: str, stream_name: str
) -> None:
    """Create ``stream_name`` in ``group_name`` unless it already exists."""
    try:
        for page in _pages(
            client.describe_log_streams,
            log_group_name=group_name,
            log_stream_name_prefix=stream_name,
        ):
            if stream_name in _names(page.get("logStreams"), "logStreamName"):
                return
    except Exception as err:
        raise EnsureError(client.region, f"describe log streams: {err}") from err

    try:
        client.create_log_stream(log_group_name=group_name, log_stream_name=stream_name)
    except _RACE_ERRORS:
        return  # created concurrently by another process
    except Exception as err:
        raise EnsureError(
            client.region, f'create log stream "{stream_name}": {err}'
        ) from err


def ensure_group_and_stream_across_regions(
    regions: Iterable[str],
    group_name: str,
    stream_name: str,
    factory: ClientFactory,
) -> None:
    """For each region, build a client and ensure the group and stream exist.

    Stops at the first region that fails.
    """
    for region in regions:
        try:
            client = factory(region)
        except Exception as err:
            raise EnsureError(region, f"client init: {err}") from err
        ensure_log_group_exists(client, group_name)
        ensure_log_stream_exists(client, group_name, stream_name)