"""
Pytest configuration and fixtures for Chat Relay tests.
"""

import json
import os
import socketserver
import sys
import tempfile
import threading
import time
from http.server import BaseHTTPRequestHandler
from pathlib import Path
from types import SimpleNamespace

import pytest

# Request logs go to a scratch directory, resolved at import time.
os.environ.setdefault("CHAT_RELAY_LOG_DIR", tempfile.mkdtemp(prefix="chat-relay-logs-"))

SRC_ROOT = Path(__file__).resolve().parents[1] / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

from chat_relay.core.catalog import ModelCatalog
from chat_relay.telemetry.metrics import MetricsCollector
from tests.helpers import FakeUpstreamClient


class ThreadedTCPServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    allow_reuse_address = True
    daemon_threads = True


class UpstreamRequestHandler(BaseHTTPRequestHandler):
    """Mimics the chat-completions endpoint of an OpenRouter-compatible API."""

    def _json_response(self, data: dict, status: int = 200):
        payload = json.dumps(data).encode("utf-8")
        self.send_response(status)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(payload)))
        self.end_headers()
        self.wfile.write(payload)

    def _stream_response(self, lines, pause_after: int | None, pause_seconds: float, interval: float = 0.0):
        self.send_response(200)
        self.send_header("Content-Type", "text/event-stream")
        self.end_headers()
        for index, line in enumerate(lines):
            self.wfile.write(f"{line}\n\n".encode())
            self.wfile.flush()
            if pause_after is not None and index == pause_after:
                time.sleep(pause_seconds)
            elif interval:
                time.sleep(interval)

    def do_POST(self):
        state = self.server.server_state  # type: ignore[attr-defined]
        length = int(self.headers.get("Content-Length", "0"))
        raw = self.rfile.read(length) if length else b"{}"
        try:
            payload = json.loads(raw.decode("utf-8"))
        except json.JSONDecodeError:
            payload = {}

        if self.path != "/api/v1/chat/completions":
            self._json_response({"error": {"message": "not found"}}, status=404)
            return

        state.setdefault("calls", []).append(
            {"payload": payload, "headers": dict(self.headers.items())}
        )

        status = state.get("status", 200)
        if status != 200:
            self._json_response({"error": {"message": state.get("error_message", "upstream failure")}}, status=status)
            return

        if payload.get("stream"):
            self._stream_response(
                state.get("stream_lines", []),
                state.get("pause_after"),
                state.get("pause_seconds", 0.0),
                state.get("interval", 0.0),
            )
            return

        self._json_response(state.get("completion", {"choices": [{"message": {"content": "hi"}}]}))

    def log_message(self, format, *args):
        # Suppress default HTTP server logging to keep test output clean.
        return


@pytest.fixture
def upstream_server():
    """Start a lightweight HTTP server that mimics the upstream completions endpoint."""
    state: dict = {}

    server = ThreadedTCPServer(("127.0.0.1", 0), UpstreamRequestHandler)
    server.server_state = state  # type: ignore[attr-defined]

    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()

    base_url = f"http://127.0.0.1:{server.server_address[1]}/api/v1"

    try:
        yield SimpleNamespace(base_url=base_url, state=state)
    finally:
        server.shutdown()
        server.server_close()


@pytest.fixture(autouse=True)
def reset_metrics():
    """Start every test with an empty metrics store."""
    MetricsCollector.reset()
    yield
    MetricsCollector.reset()


@pytest.fixture
def catalog():
    """Built-in model catalogue."""
    return ModelCatalog.default()


@pytest.fixture
def fake_upstream():
    """Scripted upstream client; configure ``streams`` and ``completions`` per test."""
    return FakeUpstreamClient()
