"""A small client for the Lambda Extensions API."""

from __future__ import annotations

import json
import logging
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping

_API_VERSION = "2020-01-01"
_NAME_HEADER = "Lambda-Extension-Name"
_IDENTIFIER_HEADER = "Lambda-Extension-Identifier"
_ERROR_TYPE_HEADER = "Lambda-Extension-Function-Error-Type"

_log = logging.getLogger(__name__)


class EventType(str, Enum):
    """The kinds of event delivered by the next-event call."""

    INVOKE = "INVOKE"
    SHUTDOWN = "SHUTDOWN"


class ExtensionError(Exception):
    """Raised when a call to the Extensions API fails."""


@dataclass(frozen=True)
class Tracing:
    type: str = ""
    value: str = ""


@dataclass(frozen=True)
class RegisterResponse:
    function_name: str = ""
    function_version: str = ""
    handler: str = ""


@dataclass(frozen=True)
class NextEventResponse:
    event_type: EventType | str = ""
    deadline_ms: int = 0
    request_id: str = ""
    invoked_function_arn: str = ""
    tracing: Tracing = field(default_factory=Tracing)


@dataclass(frozen=True)
class StatusResponse:
    status: str = ""


def _event_type(value: Any) -> EventType | str:
    try:
        return EventType(value)
    except ValueError:
        return str(value or "")


class ExtensionClient:
    """Registers an extension and polls for its events."""

    def __init__(self, runtime_api: str) -> None:
        self.base_url = f"http://{runtime_api}/{_API_VERSION}/extension"
        self.extension_id = ""

    def register(self, name: str) -> RegisterResponse:
        """Register for INVOKE and SHUTDOWN events under ``name``."""
        body = json.dumps({"events": [EventType.INVOKE.value, EventType.SHUTDOWN.value]})
        data, headers = self._request(
            "POST", "/register", {_NAME_HEADER: name}, body.encode("utf-8")
        )
        self.extension_id = headers.get(_IDENTIFIER_HEADER) or ""
        _log.debug("registered extension id %s", self.extension_id)
        return RegisterResponse(
            function_name=str(data.get("functionName") or ""),
            function_version=str(data.get("functionVersion") or ""),
            handler=str(data.get("handler") or ""),
        )

    def next_event(self) -> NextEventResponse:
        """Block until the next invoke or shutdown event arrives."""
        data, _ = self._request(
            "GET", "/event/next", {_IDENTIFIER_HEADER: self.extension_id}
        )
        tracing = data.get("tracing") or {}
        if not isinstance(tracing, Mapping):
            raise ExtensionError("invalid tracing in next event response")
        return NextEventResponse(
            event_type=_event_type(data.get("eventType")),
            deadline_ms=int(data.get("deadlineMs") or 0),
            request_id=str(data.get("requestId") or ""),
            invoked_function_arn=str(data.get("invokedFunctionArn") or ""),
            tracing=Tracing(
                type=str(tracing.get("type") or ""),
                value=str(tracing.get("value") or ""),
            ),
        )

    def init_error(self, error_type: str) -> StatusResponse:
        """Report a failure to initialise after registering."""
        return self._report("/init/error", error_type)

    def exit_error(self, error_type: str) -> StatusResponse:
        """Report an unexpected failure before exiting."""
        return self._report("/exit/error", error_type)

    def _report(self, action: str, error_type: str) -> StatusResponse:
        data, _ = self._request(
            "POST",
            action,
            {_IDENTIFIER_HEADER: self.extension_id, _ERROR_TYPE_HEADER: error_type},
        )
        return StatusResponse(status=str(data.get("status") or ""))

    def _request(
        self,
        method: str,
        action: str,
        headers: Mapping[str, str],
        body: bytes | None = None,
    ) -> tuple[dict[str, Any], Mapping[str, str]]:
        request = urllib.request.Request(
            self.base_url + action, data=body, method=method, headers=dict(headers)
        )
        try:
            with urllib.request.urlopen(request) as response:
                status, reason = response.status, response.reason
                payload = response.read()
                response_headers = response.headers
        except urllib.error.HTTPError as err:
            raise ExtensionError(
                f"request failed with status {err.code} {err.reason}"
            ) from err
        except urllib.error.URLError as err:
            raise ExtensionError(f"request failed: {err.reason}") from err

        if status != 200:
            raise ExtensionError(f"request failed with status {status} {reason}")
        try:
            data = json.loads(payload)
        except ValueError as err:
            raise ExtensionError(f"invalid response body: {err}") from err
        if not isinstance(data, dict):
            raise ExtensionError("response body is not a JSON object")
        return data, response_headers