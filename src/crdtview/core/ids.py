"""ULID-based origin tags for scope transactions."""

from __future__ import annotations

from ulid import ULID

SCOPE_ORIGIN_PREFIX = "scope"


def generate_scope_origin() -> str:
    """Generate a new transaction origin with the scope_ prefix."""
    return f"{SCOPE_ORIGIN_PREFIX}_{ULID()}"
