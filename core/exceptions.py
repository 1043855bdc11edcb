"""
Exception hierarchy for featurestream.

Every failure raised by the client derives from FeatureServiceError so callers
can catch the whole family at once, or pick out transport, remote, schema,
predicate and geometry problems individually.

Classes:
    FeatureServiceError: Base class for all client errors
    TransportError: HTTP failure (after retries on the read path)
    RemoteError: Service returned a top-level error envelope
    SchemaError: Declared record shape does not match the layer schema
    MissingFieldError: Unknown field read by name
    UnsupportedExpression: Predicate node outside the supported subset
    UnsupportedGeometry: Geometry shape outside the supported subset
    PartialEditFailure: One failed item in an otherwise accepted edit batch
"""

from dataclasses import dataclass
from typing import List, Optional


class FeatureServiceError(Exception):
    """Base exception for FeatureServer client errors."""
    pass


class TransportError(FeatureServiceError):
    """The HTTP request could not be completed."""

    def __init__(self, message: str, url: Optional[str] = None, cause: Optional[BaseException] = None):
        self.message = message
        self.url = url
        self.cause = cause
        super().__init__(f"{message} ({url})" if url else message)


class RemoteError(FeatureServiceError):
    """The service answered with a top-level error object."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        code: Optional[int] = None,
        details: Optional[List[str]] = None
    ):
        self.message = message
        self.url = url
        self.code = code
        self.details = details or []
        super().__init__(f"{message} ({url})" if url else message)


class SchemaError(FeatureServiceError):
    """Record shape and layer schema disagree."""
    pass


class MissingFieldError(SchemaError, KeyError):
    """A field name is neither mapped nor present as an unmapped field."""

    def __init__(self, field_name: str):
        self.field_name = field_name
        super().__init__(f"Field '{field_name}' does not exist.")

    def __str__(self) -> str:
        return self.args[0]


class UnsupportedExpression(FeatureServiceError):
    """Predicate compiler met an expression it cannot render."""
    pass


class UnsupportedGeometry(FeatureServiceError, ValueError):
    """Geometry codec or operation met an unsupported shape."""
    pass


@dataclass
class PartialEditFailure:
    """
    One item-level failure inside an edit batch that had no top-level error.

    Attributes:
        operation: 'add', 'update' or 'delete'
        index: Position of the item in the submitted list
        object_id: Object ID reported by the service, if any
        code: Error code reported for the item
        description: Error description reported for the item
    """
    operation: str
    index: int
    object_id: Optional[int] = None
    code: Optional[int] = None
    description: Optional[str] = None
