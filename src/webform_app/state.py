"""Editing session state owned by the record coordinator."""
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from shared.enums import ConfirmationKind, OutcomeLevel, OutcomeStatus, SessionPhase


@dataclass
class PendingConfirmation:
    """An operation suspended until the user decides.

    Resumed through RecordCoordinator.resume() or by re-invoking the same
    operation with confirmed=True.
    """
    kind: ConfirmationKind
    message_key: str
    heading_key: Optional[str] = None
    default_name: Optional[str] = None
    error_message: Optional[str] = None
    instance_id: Optional[str] = None


@dataclass
class Decision:
    """The user's answer to a pending confirmation."""
    accepted: bool
    value: Optional[str] = None


@dataclass
class Outcome:
    """Result of a coordinator operation, consumed by the presentation layer."""
    status: OutcomeStatus
    message: str = ''
    level: OutcomeLevel = OutcomeLevel.INFO
    duration: Optional[float] = None
    heading: Optional[str] = None
    error: Optional[Exception] = None
    pending: Optional[PendingConfirmation] = None
    data: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self):
        return self.status in (OutcomeStatus.SUCCESS, OutcomeStatus.NOOP)

    @property
    def is_pending(self):
        return self.status == OutcomeStatus.PENDING


@dataclass
class EditingState:
    """Explicit session state replacing module-level globals.

    Lifecycle: init -> active -> torn down on reset/load.
    """
    session: Any = None
    phase: SessionPhase = SessionPhase.CLEAN
    draft: bool = False
    active_instance_id: Optional[str] = None
    pending: Optional[PendingConfirmation] = None
    commit_in_progress: bool = False

    def reset_editing_state(self):
        """Reset record association when the session is rebuilt blank."""
        self.phase = SessionPhase.CLEAN
        self.draft = False
        self.active_instance_id = None
