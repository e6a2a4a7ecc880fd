"""Error kinds and the result type returned by map mutators."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(Enum):
    OUT_OF_MEMORY = "out_of_memory"
    SPATIAL_REFERENCE = "spatial_reference"
    DATA_SOURCE = "data_source"
    CANVAS = "canvas"
    VALIDATION = "validation"


class TilepressError(Exception):
    """Base error; every subclass carries the kind it reports."""

    kind: ErrorKind = ErrorKind.VALIDATION

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class OutOfMemoryError(TilepressError):
    kind = ErrorKind.OUT_OF_MEMORY


class SpatialReferenceError(TilepressError):
    kind = ErrorKind.SPATIAL_REFERENCE


class DataSourceError(TilepressError):
    kind = ErrorKind.DATA_SOURCE


class CanvasError(TilepressError):
    kind = ErrorKind.CANVAS


class ValidationError(TilepressError):
    kind = ErrorKind.VALIDATION


class UnknownStyleError(ValidationError, ValueError):
    """Raised when a style key has no registered effect."""


class OwnershipError(ValueError):
    """Raised when a value already owned by one list is pushed into another."""


@dataclass(frozen=True, slots=True)
class Outcome:
    """`Valid` when `error` is None, `Invalid(error)` otherwise."""

    error: TilepressError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def invalid(cls, error: TilepressError) -> Outcome:
        return cls(error=error)


VALID = Outcome()
