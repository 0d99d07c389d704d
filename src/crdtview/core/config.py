"""Scope options: defaults and validation."""

from __future__ import annotations

from typing import Any, TypedDict

from crdtview.core.ids import generate_scope_origin

TRANSACTION_MODES: frozenset[str] = frozenset({"auto", "manual"})

DEFAULT_TRANSACTION_MODE = "auto"


class ScopeOptions(TypedDict, total=False):
    transaction_mode: str
    origin: Any
    rollback_on_error: bool


def default_scope_options() -> ScopeOptions:
    """Return the default scope options.

    ``origin`` is left as ``None``; :func:`resolve_scope_options` replaces it
    with a freshly generated ``scope_<ULID>`` tag so that every scope can tell
    its own transactions apart from everybody else's.
    """
    return {
        "transaction_mode": DEFAULT_TRANSACTION_MODE,
        "origin": None,
        "rollback_on_error": False,
    }


def validate_transaction_mode(mode: object) -> bool:
    """Return ``True`` if *mode* is one of :data:`TRANSACTION_MODES`."""
    return isinstance(mode, str) and mode in TRANSACTION_MODES


def resolve_scope_options(**overrides: Any) -> ScopeOptions:
    """Merge *overrides* over the defaults and validate the result.

    ``None`` overrides are treated as "use the default".

    Raises:
        ValueError: For unknown option names, an unknown transaction mode, or
            a non-bool ``rollback_on_error``.
    """
    options = default_scope_options()
    for key, value in overrides.items():
        if key not in options:
            raise ValueError(f"Unknown scope option: '{key}'")
        if value is not None:
            options[key] = value  # type: ignore[literal-required]

    mode = options["transaction_mode"]
    if not validate_transaction_mode(mode):
        valid = ", ".join(sorted(TRANSACTION_MODES))
        raise ValueError(f"Invalid transaction_mode '{mode}'. Valid modes: {valid}")

    if not isinstance(options["rollback_on_error"], bool):
        raise ValueError("rollback_on_error must be a bool")

    if options["origin"] is None:
        options["origin"] = generate_scope_origin()
    return options
