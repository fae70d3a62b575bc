"""
Data models for the hvp -> h5pactivity migration.

Records:
    - Course: Container registry entry (used for log lines only)
    - HvpActivity: Legacy interactive content activity
    - H5PActivity: Migrated activity in the new format
    - ContentBankEntry: Item in the shared content bank

Assets:
    - AssetCoordinates: Address of a stored file
    - StoredAsset: File content plus optional alias reference
    - ContentBankReference: Result of adding a package to the content bank

Policies and state:
    - RetentionPolicy: What happens to the legacy activity afterwards
    - CopyPolicy: Whether the package is added to the content bank
    - MigrationState: Per-record migration state machine

Results:
    - MigrationOutcome, Skipped, BatchEntry, BatchReport, AuditRow
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hvp2h5p.exceptions import ConfigurationError

CONTENT_TYPE_H5P = "contenttype_h5p"
"""Content bank content type for H5P packages."""

DISPLAY_OPTIONS_MASK = 0b11111
"""Frame, download, embed, copyright and about-button bits."""


# =============================================================================
# Records
# =============================================================================


class Record(BaseModel):
    """
    Base class for persisted records.

    The id is assigned by the record store and stays ``None`` until the
    record has been saved.
    """

    model_config = ConfigDict(from_attributes=True, validate_assignment=True)

    id: int | None = Field(default=None, description="Store-assigned identifier")


class Course(Record):
    """A course, the container owning activities and content bank items."""

    shortname: str
    fullname: str = ""


class HvpActivity(Record):
    """
    A legacy interactive content activity.

    ``name``, ``course`` and ``timecreated`` form the correlation key that
    identifies the activity's migrated counterpart. Only ``visible`` ever
    changes after creation.
    """

    course: int
    name: str
    intro: str = ""
    introformat: int = 1
    timecreated: int
    timemodified: int = 0
    main_library_id: int
    json_content: str = "{}"
    disable: int = Field(default=0, description="Display option bitmask")
    grade: int = 100
    visible: bool = True

    @property
    def correlation_key(self) -> tuple[str, int, int]:
        """The (name, course, timecreated) triple used to detect migration."""
        return (self.name, self.course, self.timecreated)


class H5PActivity(Record):
    """An activity in the new format, created once per migrated HvpActivity."""

    course: int
    name: str
    intro: str = ""
    introformat: int = 1
    timecreated: int
    timemodified: int = 0
    displayoptions: int = 0
    enabletracking: bool = True
    grade: int = 100
    grademethod: int = 1

    @property
    def correlation_key(self) -> tuple[str, int, int]:
        """The (name, course, timecreated) triple copied from the legacy activity."""
        return (self.name, self.course, self.timecreated)


class ContentBankEntry(Record):
    """An item in a course's shared content bank."""

    course: int
    name: str
    contenttype: str = CONTENT_TYPE_H5P
    timecreated: int
    timemodified: int = 0


# =============================================================================
# Assets
# =============================================================================


class AssetCoordinates(BaseModel):
    """
    Address of a stored file.

    Mirrors the six-part file address of the storage layer: context,
    component, file area, item id, path and file name.
    """

    model_config = ConfigDict(frozen=True)

    context_id: int
    component: str
    filearea: str
    itemid: int = 0
    filepath: str = "/"
    filename: str

    @field_validator("filepath")
    @classmethod
    def _validate_filepath(cls, value: str) -> str:
        if not value.startswith("/") or not value.endswith("/"):
            raise ValueError(f"filepath must start and end with '/', got {value!r}")
        return value

    @property
    def pathname(self) -> str:
        """Path relative to the file area: ``/<itemid><filepath><filename>``."""
        return f"/{self.itemid}{self.filepath}{self.filename}"

    def with_location(self, **changes: Any) -> AssetCoordinates:
        """Return a copy with some coordinates replaced."""
        return self.model_copy(update=changes)


class StoredAsset(BaseModel):
    """
    A stored file.

    When ``reference`` is set the file is an alias: reads follow the
    referenced file while it exists and fall back to ``content`` otherwise.
    """

    coordinates: AssetCoordinates
    content: bytes
    contenthash: str = ""
    reference: AssetCoordinates | None = None

    def model_post_init(self, context: Any) -> None:
        if not self.contenthash:
            self.contenthash = hashlib.sha1(self.content).hexdigest()  # nosec B324 - content addressing

    @property
    def filesize(self) -> int:
        return len(self.content)

    @property
    def is_alias(self) -> bool:
        return self.reference is not None


@dataclass(frozen=True)
class ContentBankReference:
    """
    A package copy in the content bank.

    Attributes:
        entry_id: Id of the created ContentBankEntry.
        coordinates: Where the content bank copy is stored.
        linked: True when the new activity's package follows this copy.
    """

    entry_id: int
    coordinates: AssetCoordinates
    linked: bool


# =============================================================================
# Policies
# =============================================================================


class RetentionPolicy(Enum):
    """
    What happens to the legacy activity after a successful migration.

    Values match the operator-facing ``keeporiginal`` codes.
    """

    REMOVE = 0
    KEEP = 1
    HIDE = 2

    @classmethod
    def from_code(cls, code: Any) -> RetentionPolicy:
        """
        Translate an external ``keeporiginal`` code.

        Raises:
            ConfigurationError: If the code is not 0, 1 or 2
        """
        return _policy_from_code(cls, code, "keeporiginal")


class CopyPolicy(Enum):
    """
    Whether the package is added to the content bank.

    Values match the operator-facing ``copy2cb`` codes.
    """

    NONE = 0
    LINKED_COPY = 1
    COPY = 2

    @classmethod
    def from_code(cls, code: Any) -> CopyPolicy:
        """
        Translate an external ``copy2cb`` code.

        Raises:
            ConfigurationError: If the code is not 0, 1 or 2
        """
        return _policy_from_code(cls, code, "copy2cb")


def _policy_from_code(enum_cls: Any, code: Any, option: str) -> Any:
    if isinstance(code, enum_cls):
        return code
    try:
        value = int(str(code).strip())
    except (TypeError, ValueError):
        raise ConfigurationError(f"{option} must be an integer.") from None
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(str(member.value) for member in enum_cls)
        raise ConfigurationError(f"{option} must be one of {allowed}, got {value}.") from None


# =============================================================================
# Migration state
# =============================================================================


class MigrationState(Enum):
    """
    Per-record migration state.

    State machine transitions:
        SELECTED -> CONTENT_TRANSFORMED -> ASSET_LINKED -> RETAINED  -> DONE
                                                       \\-> DISPOSED -> DONE
        Any non-terminal state ---------------------------> FAILED
    """

    SELECTED = "selected"
    CONTENT_TRANSFORMED = "content_transformed"
    ASSET_LINKED = "asset_linked"
    RETAINED = "retained"
    DISPOSED = "disposed"
    DONE = "done"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (MigrationState.DONE, MigrationState.FAILED)


VALID_TRANSITIONS: dict[MigrationState, set[MigrationState]] = {
    MigrationState.SELECTED: {MigrationState.CONTENT_TRANSFORMED, MigrationState.FAILED},
    MigrationState.CONTENT_TRANSFORMED: {MigrationState.ASSET_LINKED, MigrationState.FAILED},
    MigrationState.ASSET_LINKED: {
        MigrationState.RETAINED,
        MigrationState.DISPOSED,
        MigrationState.FAILED,
    },
    MigrationState.RETAINED: {MigrationState.DONE, MigrationState.FAILED},
    MigrationState.DISPOSED: {MigrationState.DONE, MigrationState.FAILED},
    MigrationState.DONE: set(),  # Terminal
    MigrationState.FAILED: set(),  # Terminal
}


# =============================================================================
# Results
# =============================================================================


@dataclass
class MigrationOutcome:
    """
    Result of migrating one legacy activity.

    Attributes:
        legacy_id: Id of the legacy activity.
        success: Whether the new activity was created.
        warnings: Non-fatal problems, in the order they happened.
        new_record_id: Id of the created H5PActivity when successful.
        state: Final MigrationState.
        error: Message of the fatal error when not successful.
        content_bank: Content bank copy, when one was created.
    """

    legacy_id: int
    success: bool
    warnings: list[str] = field(default_factory=list)
    new_record_id: int | None = None
    state: MigrationState = MigrationState.DONE
    error: str | None = None
    content_bank: ContentBankReference | None = None

    @classmethod
    def failed(cls, legacy_id: int, message: str) -> MigrationOutcome:
        """Build the outcome of a record whose migration failed fatally."""
        return cls(
            legacy_id=legacy_id,
            success=False,
            warnings=[message],
            state=MigrationState.FAILED,
            error=message,
        )


@dataclass(frozen=True)
class Skipped:
    """A selected record that was not migrated (dry run)."""

    legacy_id: int
    reason: str = "dry run"


@dataclass(frozen=True)
class BatchEntry:
    """One processed record of a batch, in selection order."""

    legacy: HvpActivity
    result: MigrationOutcome | Skipped
    course: Course | None = None

    @property
    def skipped(self) -> bool:
        return isinstance(self.result, Skipped)

    @property
    def succeeded(self) -> bool:
        return isinstance(self.result, MigrationOutcome) and self.result.success

    @property
    def failed(self) -> bool:
        return isinstance(self.result, MigrationOutcome) and not self.result.success


@dataclass
class BatchReport:
    """
    Outcome log of a batch run.

    Attributes:
        entries: Processed records in selection order.
        dry_run: Whether the batch ran without migrating.
        stopped: Whether the batch was stopped before processing every record.
    """

    entries: list[BatchEntry] = field(default_factory=list)
    dry_run: bool = False
    stopped: bool = False

    @property
    def processed(self) -> int:
        return len(self.entries)

    @property
    def succeeded(self) -> int:
        return sum(1 for entry in self.entries if entry.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for entry in self.entries if entry.failed)

    @property
    def skipped(self) -> int:
        return sum(1 for entry in self.entries if entry.skipped)

    @property
    def nothing_to_do(self) -> bool:
        """True when the selector found no eligible records."""
        return not self.entries and not self.stopped

    def to_dict(self) -> dict[str, Any]:
        return {
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "dry_run": self.dry_run,
            "stopped": self.stopped,
        }


AUDIT_CSV_HEADER = ("oldcmid", "oldname", "oldembed", "newcmid", "newname", "newembed")


@dataclass(frozen=True)
class AuditRow:
    """A reconciled legacy/new pair with both embed links."""

    oldcmid: int
    oldname: str
    oldembed: str
    newcmid: int
    newname: str
    newembed: str

    def as_csv_row(self) -> list[str]:
        return [
            str(self.oldcmid),
            self.oldname,
            self.oldembed,
            str(self.newcmid),
            self.newname,
            self.newembed,
        ]


__all__ = [
    "AUDIT_CSV_HEADER",
    "CONTENT_TYPE_H5P",
    "DISPLAY_OPTIONS_MASK",
    "VALID_TRANSITIONS",
    "AssetCoordinates",
    "AuditRow",
    "BatchEntry",
    "BatchReport",
    "ContentBankEntry",
    "ContentBankReference",
    "CopyPolicy",
    "Course",
    "H5PActivity",
    "HvpActivity",
    "MigrationOutcome",
    "MigrationState",
    "Record",
    "RetentionPolicy",
    "Skipped",
    "StoredAsset",
]
