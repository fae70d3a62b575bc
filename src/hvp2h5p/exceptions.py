"""
Exceptions raised by the hvp2h5p migration tool.

Exception Hierarchy:
    Hvp2H5PError (base)
    +-- ConfigurationError      (aborts a batch before any record is touched)
    +-- NotFoundError           (fatal for one record)
    +-- TransformError          (fatal for one record)
    +-- AssetWriteError         (reported as a warning)
    +-- RetentionError          (reported as a warning)
    +-- StoreError              (fatal only while persisting the new activity)
    +-- MigrationStateError     (invalid state machine transition)

Each class carries an ``error_code`` for programmatic handling and a
``fatal_for_record`` flag with its usual severity, reported by
``to_dict()``. The flag is informational: the engine decides severity by
migration step. Any failure up to storing the new activity's package
fails the record, any later failure becomes a warning, whatever its type.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hvp2h5p.models import MigrationState


class Hvp2H5PError(Exception):
    """
    Base exception for all migration errors.

    Attributes:
        message: Human-readable error description.
        record_id: Identifier of the legacy record involved, if any.
    """

    error_code: str = "HVP2H5P_ERROR"
    fatal_for_record: bool = True

    def __init__(self, message: str, *, record_id: int | None = None) -> None:
        self.message = message
        self.record_id = record_id
        super().__init__(message)

    def __str__(self) -> str:
        """Return formatted error string with context."""
        if self.record_id is not None:
            return f"{self.message} (record_id={self.record_id})"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the exception to a dictionary for logging.

        Returns:
            Dictionary representation of the error.
        """
        return {
            "message": self.message,
            "record_id": self.record_id,
            "error_code": self.error_code,
            "fatal_for_record": self.fatal_for_record,
        }


class ConfigurationError(Hvp2H5PError):
    """
    Raised for invalid operator input: policy codes, limits, filters.

    Raised before any record is processed, so a batch either starts with
    a valid configuration or does nothing at all.
    """

    error_code = "CONFIGURATION_ERROR"


class NotFoundError(Hvp2H5PError):
    """Raised when a legacy record or stored asset cannot be found."""

    error_code = "NOT_FOUND"


class TransformError(Hvp2H5PError):
    """
    Raised when a legacy activity cannot be converted to the new format.

    Typical causes are malformed ``json_content``, an out-of-range display
    option bitmask, or a legacy activity with no content package.
    """

    error_code = "TRANSFORM_ERROR"


class AssetWriteError(Hvp2H5PError):
    """
    Raised when a package cannot be written to the content bank.

    The new activity already owns its private copy of the package when
    this is raised, so the record's migration still succeeds.
    """

    error_code = "ASSET_WRITE_ERROR"
    fatal_for_record = False


class RetentionError(Hvp2H5PError):
    """Raised when the legacy activity cannot be hidden or removed."""

    error_code = "RETENTION_ERROR"
    fatal_for_record = False


class StoreError(Hvp2H5PError):
    """
    Raised when a record or asset store operation fails.

    Wraps driver errors so callers never depend on SQLAlchemy exception
    types.
    """

    error_code = "STORE_ERROR"
    fatal_for_record = False


class MigrationStateError(Hvp2H5PError):
    """
    Raised on an invalid migration state transition.

    Attributes:
        current: The state the record was in.
        requested: The state that was requested.
    """

    error_code = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        current: MigrationState,
        requested: MigrationState,
        *,
        record_id: int | None = None,
    ) -> None:
        self.current = current
        self.requested = requested
        super().__init__(
            f"Invalid migration state transition: {current.value} -> {requested.value}",
            record_id=record_id,
        )


def describe_error(error: BaseException) -> str:
    """
    Return the message to report for ``error``.

    Hvp2H5PError subclasses report their ``message``; any other exception
    reports its string form, or its class name when that is empty.
    """
    if isinstance(error, Hvp2H5PError):
        return error.message
    return str(error) or type(error).__name__


__all__ = [
    "describe_error",
    "Hvp2H5PError",
    "ConfigurationError",
    "NotFoundError",
    "TransformError",
    "AssetWriteError",
    "RetentionError",
    "StoreError",
    "MigrationStateError",
]
