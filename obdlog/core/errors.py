"""Domain-specific errors for obdlog."""

from __future__ import annotations

from enum import Enum


class ErrorKind(Enum):
    FILE_UNAVAILABLE = "file_unavailable"
    MALFORMED_DEFINITION = "malformed_definition"
    DEVICE_UNAVAILABLE = "device_unavailable"
    NOT_FOUND = "not_found"
    FORMULA = "formula"


class ObdlogError(Exception):
    """Base error for obdlog.

    Every subclass carries a `kind` so callers can branch on the category of
    failure without inspecting the message.
    """

    kind: ErrorKind


class FileUnavailableError(ObdlogError):
    """Raised when a file required for reading or writing cannot be opened."""

    kind = ErrorKind.FILE_UNAVAILABLE


class MalformedDefinitionError(ObdlogError):
    """Raised when a vehicle or request definition fails schema validation."""

    kind = ErrorKind.MALFORMED_DEFINITION


class DeviceUnavailableError(ObdlogError):
    """Raised when the adapter cannot be reached or capability discovery fails."""

    kind = ErrorKind.DEVICE_UNAVAILABLE


class NotFoundError(ObdlogError):
    """Raised when a lookup by identity finds no match."""

    kind = ErrorKind.NOT_FOUND


class FormulaError(ObdlogError):
    """Raised when a value formula is unsafe or cannot be evaluated."""

    kind = ErrorKind.FORMULA
