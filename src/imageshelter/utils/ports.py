"""Startup check that the configured listen address is free."""

from __future__ import annotations

import logging
import socket

logger = logging.getLogger(__name__)

# How far above a taken port to look for a free one to suggest
SUGGESTION_SPAN = 100
MAX_PORT = 65535


def _can_bind(host: str, port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        try:
            sock.bind((host, port))
        except OSError:
            return False
    return True


def suggest_port(host: str, taken: int, span: int = SUGGESTION_SPAN) -> int | None:
    """Return the first bindable port after ``taken``, looking ``span`` ports ahead."""
    last = min(taken + span, MAX_PORT)
    return next((p for p in range(taken + 1, last + 1) if _can_bind(host, p)), None)


def port_conflict(host: str, port: int) -> str | None:
    """Describe why the server could not listen on ``host:port``.

    The message follows the other startup errors: what is wrong, then a
    ``→ Fix:`` line. When a nearby port is free it is offered together with
    the matching CLI invocation.

    Args:
        host: Address the server will bind
        port: Port the server will bind

    Returns:
        Error message, or None if the port can be bound
    """
    if _can_bind(host, port):
        return None

    logger.debug(f"Port {port} on {host} is taken")
    alternative = suggest_port(host, port)
    if alternative is None:
        fix = "Stop the process using this port or choose a different port"
    else:
        fix = (
            f"Use port {alternative} instead (available)\n"
            f"  Example: imageshelter --port {alternative}"
        )
    return f"Port {port} is already in use on {host}\n  → Fix: {fix}"
