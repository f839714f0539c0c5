"""Utility functions and helpers."""

from __future__ import annotations

from imageshelter.utils.ports import port_conflict, suggest_port

__all__ = [
    "port_conflict",
    "suggest_port",
]
