"""
Exceptions raised by the GRD core.

Row-level rejections and classification warnings are not exceptions: they are
collected into the batch report. Only the conditions below are raised.
"""


class GrdEtlError(Exception):
    """Base class for errors raised by this package."""


class NormLoadError(GrdEtlError):
    """The Norma MINSAL source could not be fetched or parsed."""


class PersistenceError(GrdEtlError):
    """Writing a single episode failed; reported per row, never fatal to a batch."""

    def __init__(self, message: str, conflict: bool = False):
        super().__init__(message)
        self.conflict = conflict


class Forbidden(GrdEtlError):
    """A role tried to write fields outside its partition."""

    def __init__(self, reason: str, partition: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.partition = partition


class InvalidUpdate(GrdEtlError):
    """An update request names unknown, read-only or derived fields, or carries bad values."""
