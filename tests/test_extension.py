import json
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from geras.extension import (
    EventType,
    ExtensionClient,
    ExtensionError,
    NextEventResponse,
    RegisterResponse,
    StatusResponse,
    Tracing,
)

PREFIX = "/2020-01-01/extension"


class _Handler(BaseHTTPRequestHandler):
    def _handle(self):
        length = int(self.headers.get("Content-Length") or 0)
        body = self.rfile.read(length) if length else b""
        self.server.requests.append((self.command, self.path, self.headers, body))
        status, headers, payload = self.server.routes.get(
            (self.command, self.path), (404, {}, b"{}")
        )
        self.send_response(status)
        for name, value in headers.items():
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    do_GET = _handle
    do_POST = _handle

    def log_message(self, format, *args):
        pass


@pytest.fixture
def server():
    srv = ThreadingHTTPServer(("127.0.0.1", 0), _Handler)
    srv.requests = []
    srv.routes = {}
    thread = threading.Thread(target=srv.serve_forever, daemon=True)
    thread.start()
    yield srv
    srv.shutdown()
    srv.server_close()


@pytest.fixture
def client(server):
    return ExtensionClient(f"127.0.0.1:{server.server_address[1]}")


def _json(data):
    return json.dumps(data).encode()


def test_base_url():
    client = ExtensionClient("localhost:9001")
    assert client.base_url == "http://localhost:9001/2020-01-01/extension"
    assert client.extension_id == ""


def test_register_sends_name_and_events(server, client):
    server.routes[("POST", PREFIX + "/register")] = (
        200,
        {"Lambda-Extension-Identifier": "ext-id-1"},
        _json({"functionName": "fn", "functionVersion": "$LATEST", "handler": "main"}),
    )
    res = client.register("emf")
    assert res == RegisterResponse(function_name="fn", function_version="$LATEST", handler="main")
    assert client.extension_id == "ext-id-1"
    method, path, headers, body = server.requests[0]
    assert (method, path) == ("POST", PREFIX + "/register")
    assert headers.get("Lambda-Extension-Name") == "emf"
    assert json.loads(body) == {"events": ["INVOKE", "SHUTDOWN"]}


def test_next_event_uses_identifier(server, client):
    server.routes[("POST", PREFIX + "/register")] = (
        200,
        {"Lambda-Extension-Identifier": "ext-id-2"},
        _json({}),
    )
    server.routes[("GET", PREFIX + "/event/next")] = (
        200,
        {},
        _json(
            {
                "eventType": "SHUTDOWN",
                "deadlineMs": 1234,
                "requestId": "req-1",
                "invokedFunctionArn": "arn-1",
                "tracing": {"type": "X-Amzn-Trace-Id", "value": "trace-1"},
            }
        ),
    )
    client.register("emf")
    event = client.next_event()
    assert event == NextEventResponse(
        event_type=EventType.SHUTDOWN,
        deadline_ms=1234,
        request_id="req-1",
        invoked_function_arn="arn-1",
        tracing=Tracing(type="X-Amzn-Trace-Id", value="trace-1"),
    )
    assert server.requests[-1][2].get("Lambda-Extension-Identifier") == "ext-id-2"


def test_next_event_invoke_compares_to_string(server, client):
    server.routes[("GET", PREFIX + "/event/next")] = (200, {}, _json({"eventType": "INVOKE"}))
    event = client.next_event()
    assert event.event_type is EventType.INVOKE
    assert event.event_type == "INVOKE"


@pytest.mark.parametrize("method_name, action", [("init_error", "/init/error"), ("exit_error", "/exit/error")])
def test_error_reports(server, client, method_name, action):
    server.routes[("POST", PREFIX + action)] = (200, {}, _json({"status": "OK"}))
    res = getattr(client, method_name)("Extension.Failure")
    assert res == StatusResponse(status="OK")
    method, path, headers, _ = server.requests[0]
    assert (method, path) == ("POST", PREFIX + action)
    assert headers.get("Lambda-Extension-Function-Error-Type") == "Extension.Failure"


def test_http_error_status_raises(server, client):
    server.routes[("POST", PREFIX + "/register")] = (500, {}, _json({}))
    with pytest.raises(ExtensionError, match="500"):
        client.register("emf")
    assert client.extension_id == ""


def test_non_200_success_status_raises(server, client):
    server.routes[("GET", PREFIX + "/event/next")] = (202, {}, _json({}))
    with pytest.raises(ExtensionError, match="202"):
        client.next_event()


def test_invalid_json_raises(server, client):
    server.routes[("GET", PREFIX + "/event/next")] = (200, {}, b"not-json")
    with pytest.raises(ExtensionError):
        client.next_event()


def test_unreachable_server_raises():
    client = ExtensionClient("127.0.0.1:1")
    with pytest.raises(ExtensionError):
        client.init_error("Extension.Failure")