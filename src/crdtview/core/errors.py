"""Error taxonomy for the view layer.

Every error is raised synchronously at the point of violation.  Callers that
only care about the category can catch ``ConversionError``, ``AccessError``
or ``ScopeError``; everything derives from ``CrdtViewError``.
"""

from __future__ import annotations


class CrdtViewError(Exception):
    """Base class for all crdtview errors."""


# ---------------------------------------------------------------------------
# Conversion
# ---------------------------------------------------------------------------


class ConversionError(CrdtViewError):
    """Raised when a value cannot be translated to or from the store."""


class UnsupportedTypeError(ConversionError):
    """Raised for values that are not primitives, plain containers, raw values or store nodes."""


class CyclicStructureError(ConversionError):
    """Raised when a plain container references itself, directly or indirectly."""


class CannotCloneUnparentedError(ConversionError):
    """Raised when an unparented store node is used twice in one conversion."""


class AlreadyConvertedError(ConversionError):
    """Raised when a plain value was required but a store node or view was given."""


# ---------------------------------------------------------------------------
# Access
# ---------------------------------------------------------------------------


class AccessError(CrdtViewError):
    """Raised for invalid reads or writes through a view."""


class RevokedViewError(AccessError):
    """Raised when a view is used after its scope closed or was invalidated."""


class DeletedNodeError(AccessError):
    """Raised when a view's backing store node has been deleted."""


class UnsupportedPropertyError(AccessError):
    """Raised for keys, attributes or definitions a view cannot represent."""


# ---------------------------------------------------------------------------
# Scope
# ---------------------------------------------------------------------------


class ScopeError(CrdtViewError):
    """Raised for invalid scope usage."""


class NestedScopeError(ScopeError):
    """Raised when a scope is opened while another one is still open."""


class ScopeInvalidatedError(ScopeError):
    """Raised when a scope operation is attempted after external invalidation."""
