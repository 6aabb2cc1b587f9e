import enum


class RecordStatus(str, enum.Enum):
    """Record status values used throughout the application.

    Used in Record model to track where a record is in its lifecycle.
    """
    DRAFT = "draft"
    FAILED = "failed"
    PERMANENTLY_FAILED = "permanently_failed"
    QUEUED = "queued"
    UPLOADED = "uploaded"


class OutcomeLevel(str, enum.Enum):
    """Severity levels for outcomes reported to the presentation layer."""
    ERROR = "error"
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"


class OutcomeStatus(str, enum.Enum):
    """Result kinds returned by coordinator operations."""
    FAILED = "failed"
    NOOP = "noop"
    PENDING = "pending"
    SUCCESS = "success"


class ConfirmationKind(str, enum.Enum):
    """Reasons an operation can suspend waiting for the user."""
    AUTOSAVE_RECOVERY = "autosave_recovery"
    DISCARD_ON_LOAD = "discard_on_load"
    DISCARD_ON_RESET = "discard_on_reset"
    RECORD_NAME = "record_name"


class SessionPhase(str, enum.Enum):
    """Editing session states.

    Autosave runs orthogonally as a shadow of EDITING.
    """
    CLEAN = "clean"
    EDITING = "editing"
    SAVED_DRAFT = "saved_draft"
    SAVED_FINAL = "saved_final"
    SUBMITTED = "submitted"


class FormEvent(str, enum.Enum):
    """Event tags observable by an embedding context."""
    EDITED = "edited"
    QUEUE_SUBMISSION_SUCCESS = "queuesubmissionsuccess"
    SUBMISSION_SUCCESS = "submissionsuccess"
