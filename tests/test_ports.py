"""Tests for the listen-port startup check."""

from __future__ import annotations

import socket
from collections.abc import Iterator

import pytest

from imageshelter.utils.ports import MAX_PORT, port_conflict, suggest_port


@pytest.fixture
def listening_port() -> Iterator[int]:
    """Yield a port held by a listening socket for the duration of the test."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        sock.listen(1)
        yield sock.getsockname()[1]


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class TestPortConflict:
    def test_free_port_has_no_conflict(self) -> None:
        assert port_conflict("127.0.0.1", _free_port()) is None

    def test_taken_port_is_reported(self, listening_port: int) -> None:
        message = port_conflict("127.0.0.1", listening_port)

        assert message is not None
        assert message.startswith(f"Port {listening_port} is already in use on 127.0.0.1")
        assert "→ Fix:" in message

    def test_suggestion_matches_cli_example(self, listening_port: int) -> None:
        """The offered port and the example invocation agree."""
        message = port_conflict("127.0.0.1", listening_port)
        assert message is not None

        if "Stop the process" in message:
            pytest.skip("no free port near the listening socket")
        suggested = message.split("Use port ", 1)[1].split(" ", 1)[0]
        assert f"imageshelter --port {suggested}" in message
        assert int(suggested) > listening_port


class TestSuggestPort:
    def test_skips_the_taken_port(self, listening_port: int) -> None:
        suggestion = suggest_port("127.0.0.1", listening_port)
        assert suggestion is None or listening_port < suggestion <= listening_port + 100

    def test_never_past_the_port_range(self) -> None:
        assert suggest_port("127.0.0.1", MAX_PORT) is None

    def test_zero_span(self, listening_port: int) -> None:
        assert suggest_port("127.0.0.1", listening_port, span=0) is None
