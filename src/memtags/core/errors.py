"""Error types raised by the tag hierarchy core.

Validation errors are raised before any request is sent. Network and server
errors wrap failures of the memory server API and always carry a message that
can be shown to a user as-is.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class TagHierarchyError(Exception):
    """Base class for tag hierarchy failures."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(TagHierarchyError):
    """Rejected locally; no request was made."""


class SelfParentError(ValidationError):
    """A tag cannot be its own parent."""

    def __init__(self, message: str = "A tag cannot be its own parent", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)


class InvalidTagNameError(ValidationError):
    """Tag name is empty or contains < or >."""


class NetworkError(TagHierarchyError):
    """The request never produced a server response."""

    DEFAULT_MESSAGE = "Network error occurred"


class ServerError(TagHierarchyError):
    """The server responded with a failure."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message, details)
        self.status_code = status_code


class MalformedResponseError(ServerError):
    """The server answered successfully but the body had an unexpected shape."""


class TreeDepthError(TagHierarchyError):
    """A tree walk went deeper than the configured limit."""

    def __init__(self, max_depth: int, tag_id: Optional[int] = None):
        super().__init__(
            f"Tag hierarchy exceeds maximum depth of {max_depth}",
            {"max_depth": max_depth, "tag_id": tag_id},
        )
        self.max_depth = max_depth
