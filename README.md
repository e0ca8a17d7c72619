# geras

Tools for turning events and measurements into CloudWatch Embedded Metric
Format (EMF) documents. The package batches these documents and ships them to
CloudWatch Logs through a client object that you supply. It uses only the
standard library.

## Installation

```
pip install .
```

To also install what the test suite needs:

```
pip install ".[test]"
```

## Modules

### `geras.safemap`

`TypedMap` is a string-keyed map guarded by a lock. It has these methods:

- `store(key, value)` saves a value under a key.
- `load(key)` returns the value, or `None` when the key is missing.
- `delete(key)` removes a key. A missing key is ignored.
- `range(fn)` calls `fn(key, value)` for each entry and stops as soon as `fn`
  returns a false value.

It also supports `in`, `len()` and iteration over its keys.

### `geras.batchprocessor`

`BatchProcessor(max_batch_size, max_batch_bytes, flush_interval, map_func,
flush_func, item_sizer, logger=None, after_flush=None)` starts a background
thread as soon as it is created.

Each item given to `add()` is passed through `map_func`. A batch is handed to
`flush_func` in three cases:

- before an item would push the batch past `max_batch_bytes`, where each
  item's size comes from `item_sizer`;
- when the batch reaches `max_batch_size` items;
- every `flush_interval` seconds.

A limit of zero or less turns that check off.

Errors raised by `map_func` or `flush_func` are logged through
`handle_error` and do not stop the processor. If `after_flush` is given, it
is called with each batch after that batch is flushed.

`wait()` closes the input, does a final flush and joins the thread. After
that, `add()` raises `RuntimeError`. `cancel()` makes the worker flush what it
holds and exit.

### `geras.emf`

- `build(input, logger=None)` encodes an `EMFInput` as an `EMFRecord`:
  - The payload is compact JSON bytes with sorted keys.
  - When `timestamp` is `None`, the current UTC time is used.
  - Only dimension pairs of at least two elements are included.
  - A value of NaN or infinity raises `ValueError`.
- `convert_sqs_message_to_emf(body, namespace, metric_name, unit, dimensions,
  logger=None)`:
  - It decodes a CloudTrail event from a JSON string and builds a metric with
    value 1 at the event's time.
  - Any unit other than `Count` is logged as a warning and replaced by
    `Count`.
  - Invalid JSON raises `ValueError`.
- `CloudTrailEvent.from_dict(data)` reads `eventName`, `eventTime` (ISO 8601)
  and `awsRegion`.
- `EMFFlusher(client_map, log_stream_name, log_group_name, logger=None)`
  looks up a client by region in a `TypedMap`.
  - `flush(region, batch)` sorts the records by timestamp and calls the
    client's `put_log_events`.
  - An empty batch does nothing.
  - An unknown region raises `LookupError` ("no client found for region ...").
  - Errors from the client propagate.

### `geras.emfbatcher`

`make_flush_func(client, log_group, log_stream, extract_payload,
extract_timestamp, logger=None)` returns a function that takes a batch of
records. The function:

- turns each record into a `LogRecord(message, timestamp)`;
- sorts the `LogRecord`s by timestamp;
- sends them in one `put_log_events` call.

Client failures are logged and re-raised as `FlushError`. An empty batch does
nothing.

### `geras.cwlclient`

`CloudWatchLogsClient` is a `Protocol` describing the client this package
expects:

- a `region` attribute;
- the methods `put_log_events`, `create_log_group`, `describe_log_groups`,
  `describe_log_streams` and `create_log_stream`, all called with keyword
  arguments.

Describe calls return one page shaped like
`{"logGroups": [...], "nextToken": ...}`, and pages are followed until
`nextToken` is empty.

- `ensure_log_group_exists(client, group_name)` creates the group unless one
  with exactly that name exists.
- `ensure_log_stream_exists(client, group_name, stream_name)` does the same
  for a stream.
- `ensure_group_and_stream_across_regions(regions, group_name, stream_name,
  factory)` builds a client per region with `factory(region)` and ensures
  both. It stops at the first failure.

If a client raises `ResourceAlreadyExistsError` or `OperationAbortedError`
during creation, the resource counts as existing. Any other failure raises
`EnsureError`, whose message starts with `[region]`.

### `geras.extension`

`ExtensionClient(runtime_api)` talks to the Lambda Extensions API at
`http://<runtime_api>/2020-01-01/extension` using `urllib`. Its methods are:

- `register(name)` registers for `INVOKE` and `SHUTDOWN` events, stores the
  extension identifier and returns a `RegisterResponse`.
- `next_event()` blocks and returns a `NextEventResponse`. Its `event_type` is
  an `EventType` when the value is known.
- `init_error(error_type)` and `exit_error(error_type)` return a
  `StatusResponse`.

Non-200 responses, connection failures and bodies that are not JSON objects
raise `ExtensionError`.

### `geras.cloudtrail`

- `cloudtrail_event_to_record(event, namespace)` builds a `CallCount` metric
  (value 1, unit `Count`) with an `eventName` dimension.
- `CloudTrailEMFBatcher(max_bytes, max_events, flush_interval, overhead,
  client, namespace, log_group, log_stream, logger=None, after_flush=None)`
  wraps a `BatchProcessor`, available as `.batcher`. A record's size is its
  payload length plus `overhead`.

### `geras.filebatcher`

`CTFileBatcher(namespace, metric_name, base_dir, max_count, max_bytes,
flush_interval, emf_flusher, logger=None)` stages records on disk.

- `add(region, event)` appends the event as one EMF line to
  `base_dir/emf_<region>.ndjson`.
- It keeps a count and a byte size per region. When a record would pass
  `max_count` or `max_bytes`, the file is flushed first. When the limits are
  reached, it is flushed right after the write.
- A flush reads the file, passes the records to `emf_flusher.flush(region,
  batch)`, then truncates the file.
- A background thread flushes every region every `flush_interval` seconds.
  The interval must be positive, otherwise the constructor raises
  `ValueError`.
- `stop()` ends the periodic flushing and flushes every region once. The
  batcher is also a context manager that calls `stop()` on exit.

### `geras.metrics`

- `CloudWatchMetric(name, value, unit, timestamp, metadata)` is one metric
  reading.
- `build_emf_record(metric, namespace)` encodes it. The sorted metadata keys
  form a single dimension set and are written as fields.
- `CloudWatchMetricBatcher(client, namespace, log_group, log_stream,
  max_events, max_bytes, flush_interval, overhead, logger=None)` wraps a
  `BatchProcessor`, available as `.batcher`.

Wherever a `logger` is accepted, `None` means the module's own
`logging.Logger`. Any object with `debug`, `info`, `warning` and `error`
methods will do.

## Example

```python
from datetime import datetime, timezone

from geras.emf import EMFInput, build

record = build(
    EMFInput(
        namespace="MyApp",
        metric_name="CallCount",
        value=1,
        unit="Count",
        dimensions=[["eventName", "RunInstances"]],
        timestamp=datetime.now(timezone.utc),
    )
)
print(record.payload.decode())
```

## What the package does not do

- It has no command-line program. It also has no ready-made Lambda handler or
  extension process; those are for you to assemble from the pieces above.
- It contains no AWS SDK client. To talk to CloudWatch Logs, pass an object
  that meets the `CloudWatchLogsClient` protocol, for example a thin wrapper
  around an SDK you already use. Apart from `ExtensionClient`, which calls the
  local Extensions API, the package makes no network calls itself.

## Running the tests

```
pytest
```