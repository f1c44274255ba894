"""
Unit tests for the memory-service health probe and fallback messages.

Tests cover:
- Forced-unhealthy short circuit
- Probing a real local HTTP server (2xx, 5xx, closed port, timeout)
- Fallback message lookup for every kind of input
"""

from __future__ import annotations

import http.server
import socket
import threading
import time
from contextlib import contextmanager
from typing import Iterator

import pytest

from mako_hooks.config import Settings, get_settings
from mako_hooks.errors import ProbeError
from mako_hooks.memory import (
    DEFAULT_FALLBACK,
    FALLBACK_MESSAGES,
    FALLBACK_PREFIX,
    is_fallback_message,
    is_memory_service_healthy,
    memory_fallback_message,
    probe_memory_service,
)


# ==============================================================================
# Local HTTP server
# ==============================================================================

@contextmanager
def serve(status: int, delay: float = 0.0) -> Iterator[int]:
    """Serve ``status`` for every GET on a free loopback port."""

    class Handler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):  # noqa: N802
            if delay:
                time.sleep(delay)
            self.send_response(status)
            self.send_header("Content-Length", "2")
            self.end_headers()
            self.wfile.write(b"ok")

        def log_message(self, *args):
            pass

    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server.server_address[1]
    finally:
        server.shutdown()
        server.server_close()


@contextmanager
def serve_trickle(header_lines: int = 8, interval: float = 0.5) -> Iterator[int]:
    """Send a status line, then one header line every ``interval`` seconds."""

    class Handler(http.server.BaseHTTPRequestHandler):
        def do_GET(self):  # noqa: N802
            try:
                self.wfile.write(b"HTTP/1.1 200 OK\r\n")
                self.wfile.flush()
                for i in range(header_lines):
                    time.sleep(interval)
                    self.wfile.write(f"X-Slow-{i}: 1\r\n".encode())
                    self.wfile.flush()
                self.wfile.write(b"Content-Length: 0\r\n\r\n")
            except OSError:
                pass

        def log_message(self, *args):
            pass

    server = http.server.ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    server.daemon_threads = True
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield server.server_address[1]
    finally:
        server.shutdown()
        server.server_close()


def free_port() -> int:
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestProbe:
    """Tests for probe_memory_service."""

    def test_2xx_is_healthy(self):
        """Test that a 200 answer passes."""
        with serve(200) as port:
            probe_memory_service(f"http://127.0.0.1:{port}/")

    def test_5xx_raises(self):
        """Test that a server error is a probe failure."""
        with serve(503) as port:
            with pytest.raises(ProbeError, match="503"):
                probe_memory_service(f"http://127.0.0.1:{port}/")

    def test_closed_port_raises(self):
        """Test that a refused connection is a probe failure."""
        with pytest.raises(ProbeError):
            probe_memory_service(f"http://127.0.0.1:{free_port()}/", timeout=1.0)

    def test_timeout_is_bounded(self):
        """Test that a slow server fails within the timeout."""
        with serve(200, delay=1.5) as port:
            start = time.monotonic()
            with pytest.raises(ProbeError):
                probe_memory_service(f"http://127.0.0.1:{port}/", timeout=0.3)
            assert time.monotonic() - start < 1.4

    def test_trickling_headers_hit_overall_deadline(self):
        """Test that a response trickled in under the socket timeout still fails in time."""
        with serve_trickle(header_lines=8, interval=0.25) as port:
            start = time.monotonic()
            with pytest.raises(ProbeError, match="did not answer"):
                probe_memory_service(f"http://127.0.0.1:{port}/", timeout=0.6)
            assert time.monotonic() - start < 1.2


class TestHealth:
    """Tests for is_memory_service_healthy."""

    def test_forced_unhealthy_without_io(self, monkeypatch):
        """Test that MCP_MEMORY_HEALTHY=false returns False fast and never probes."""
        def fail(*args, **kwargs):
            raise AssertionError("probe must not run")

        monkeypatch.setattr("mako_hooks.memory.probe_memory_service", fail)

        start = time.monotonic()
        assert is_memory_service_healthy() is False
        assert time.monotonic() - start < 0.05

    def test_healthy_server(self, monkeypatch):
        """Test a reachable service on the configured port."""
        monkeypatch.delenv("MCP_MEMORY_HEALTHY")
        with serve(200) as port:
            monkeypatch.setenv("MCP_HTTP_PORT", str(port))
            get_settings.cache_clear()
            assert is_memory_service_healthy() is True

    def test_unhealthy_server(self, monkeypatch):
        """Test that a 500 answer is unhealthy."""
        monkeypatch.delenv("MCP_MEMORY_HEALTHY")
        with serve(500) as port:
            monkeypatch.setenv("MCP_HTTP_PORT", str(port))
            assert is_memory_service_healthy(Settings()) is False

    def test_nothing_listening(self, monkeypatch):
        """Test that a closed port is unhealthy, not an exception."""
        monkeypatch.delenv("MCP_MEMORY_HEALTHY")
        monkeypatch.setenv("MCP_HTTP_PORT", str(free_port()))
        assert is_memory_service_healthy(Settings()) is False

    def test_trickling_server_is_unhealthy_within_bound(self, monkeypatch):
        """Test the default deadline against a server that never finishes its headers."""
        monkeypatch.delenv("MCP_MEMORY_HEALTHY")
        with serve_trickle(header_lines=8, interval=0.5) as port:
            monkeypatch.setenv("MCP_HTTP_PORT", str(port))
            start = time.monotonic()
            assert is_memory_service_healthy(Settings()) is False
            assert time.monotonic() - start < 2.5

    def test_unexpected_error_is_unhealthy(self, monkeypatch):
        """Test that any probe error is folded into False."""
        monkeypatch.delenv("MCP_MEMORY_HEALTHY")

        def explode(*args, **kwargs):
            raise RuntimeError("boom")

        monkeypatch.setattr("mako_hooks.memory.probe_memory_service", explode)
        assert is_memory_service_healthy(Settings()) is False


class TestFallbackMessages:
    """Tests for memory_fallback_message."""

    @pytest.mark.parametrize("hook", sorted(FALLBACK_MESSAGES))
    def test_known_hooks(self, hook):
        """Test that each known hook gets its own prefixed message."""
        message = memory_fallback_message(hook)
        assert message == FALLBACK_MESSAGES[hook]
        assert message.startswith(FALLBACK_PREFIX)

    def test_known_messages_are_distinct(self):
        """Test that hooks are not given the same text."""
        assert len(set(FALLBACK_MESSAGES.values())) == len(FALLBACK_MESSAGES)

    def test_subagent_message_mentions_store_memory(self):
        """Test the sub-agent notice names the skipped operation."""
        assert "store_memory()" in memory_fallback_message("subagent-stop-memory")

    def test_pre_compact_message_mentions_retrieve_memory(self):
        """Test the pre-compact notice names the operation that may fail."""
        assert "retrieve_memory()" in memory_fallback_message("pre-compact-save")

    @pytest.mark.parametrize("hook", ["unknown-hook", "", None, 42, object()])
    def test_unknown_inputs_get_default(self, hook):
        """Test that unknown or non-string input yields the default message."""
        assert memory_fallback_message(hook) == DEFAULT_FALLBACK

    def test_broken_str_gets_default(self):
        """Test that an object whose __str__ raises still yields a message."""

        class Broken:
            def __str__(self):
                raise RuntimeError("no")

        assert memory_fallback_message(Broken()) == DEFAULT_FALLBACK

    def test_is_fallback_message(self):
        """Test fallback detection."""
        assert is_fallback_message(DEFAULT_FALLBACK)
        assert not is_fallback_message("Agent 'hojo' a termine.")
        assert not is_fallback_message(None)
