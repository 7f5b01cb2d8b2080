"""Exception types raised by the comparison engine."""

from __future__ import annotations


class ReproCheckError(Exception):
    """Base class for repro_check errors."""


class InputError(ReproCheckError):
    """Invalid or missing input supplied by an external collaborator."""

    def __init__(self, message: str, *, side: str | None = None) -> None:
        super().__init__(message)
        self.side = side


class TreeOrderError(ReproCheckError):
    """A path sequence handed to the differ is unsorted or holds duplicates."""


class ExtractionError(ReproCheckError):
    """A container could not be extracted into its scratch directory."""


class AggregatorStateError(ReproCheckError):
    """Tier results were recorded out of order or after finalization."""
