"""
Exception hierarchy for the catchment index.

Errors on direct single-catchment operations (missing catchment, bad
geometry) propagate to the caller. Re-index failures triggered by an
already committed write are reported as ReindexError without undoing
the write.
"""

from typing import Any


class CatchmentIndexError(Exception):
    """Base class for all catchment index errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def __str__(self) -> str:
        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{self.message} ({context_str})"
        return self.message


class CatchmentNotFoundError(CatchmentIndexError):
    """No catchment matches the given identity."""

    def __init__(self, catchment_id: str):
        super().__init__(
            "Catchment not found", {"catchment_id": catchment_id}
        )
        self.catchment_id = catchment_id


class DuplicateNameError(CatchmentIndexError):
    """Catchment name already taken (only when uniqueness is enforced)."""

    def __init__(self, name: str):
        super().__init__("Catchment name already exists", {"name": name})
        self.name = name


class MalformedGeometryError(CatchmentIndexError):
    """Boundary could not be parsed, is degenerate, or is invalid."""


class TopologyError(CatchmentIndexError):
    """
    Boundary cannot be converted without losing holes or parts.

    Raised instead of flattening a multi-part or holed boundary into a
    single vertex ring.
    """


class IndexUnavailableError(CatchmentIndexError):
    """Grid catalog or association storage could not be read."""


class ReindexError(CatchmentIndexError):
    """
    Grid association refresh failed after a committed boundary write.

    The boundary change is kept; the catchment retains its previous
    (possibly stale) association entries.
    """

    def __init__(self, catchment_id: str, reason: str):
        super().__init__(
            "Boundary saved but grid association was not refreshed",
            {"catchment_id": catchment_id, "reason": reason},
        )
        self.catchment_id = catchment_id
        self.reason = reason
