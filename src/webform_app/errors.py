"""Error taxonomy for record lifecycle operations.

Storage and transport faults are normalized into these classes at their
boundaries (RecordStore, SubmissionTransport) before reaching the coordinator.
"""


class RecordError(Exception):
    """Base class for record lifecycle errors."""

    message_key = 'error.unknown'

    def __init__(self, message=None):
        super().__init__(message or '')
        self.message = message


class LoadError(RecordError):
    """The editing session could not be initialized."""

    message_key = 'alert.loaderror.heading'

    def __init__(self, causes, advice=None):
        if isinstance(causes, str):
            causes = [causes]
        self.causes = list(causes or [])
        self.advice = advice
        super().__init__('; '.join(self.causes))


class ValidationFailed(RecordError):
    """The session reports invalid data."""

    message_key = 'alert.validationerror.msg'


class DuplicateName(RecordError):
    """Another record of the same survey already uses the name."""

    message_key = 'confirm.save.existingerror'

    def __init__(self, name=None, message=None):
        self.name = name
        super().__init__(message)


class NotFound(RecordError):
    """Referenced record is missing or has no payload."""

    message_key = 'alert.recordnotfound.msg'

    def __init__(self, instance_id=None, message=None):
        self.instance_id = instance_id
        super().__init__(message)


class StorageUnavailable(RecordError):
    """Record store failure that is not a uniqueness violation."""

    message_key = 'confirm.save.unkownerror'


class AuthRequired(RecordError):
    """Submission was rejected because the user must log in again."""

    message_key = 'alert.submissionerror.authrequiredmsg'

    def __init__(self, login_url=None, message=None):
        self.login_url = login_url
        super().__init__(message)


class TransportError(RecordError):
    """Generic submission transport failure."""

    message_key = 'alert.submissionerror.heading'

    def __init__(self, message=None, status_code=None):
        self.status_code = status_code
        super().__init__(message)


class TransportPartial(RecordError):
    """Submission went through but some attachments were not transmitted."""

    message_key = 'alert.submissionerror.fnfmsg'

    def __init__(self, failed_files):
        self.failed_files = list(failed_files)
        super().__init__(', '.join(self.failed_files))


class AutosaveFailure(RecordError):
    """Autosave could not be written. Logged only."""


class ConfirmationPending(RecordError):
    """A conflicting operation was attempted while a confirmation is outstanding."""

    message_key = 'alert.confirmationpending.msg'

    def __init__(self, pending_kind=None):
        self.pending_kind = pending_kind
        super().__init__(f"Waiting for confirmation: {pending_kind}")


class ExportError(RecordError):
    """Export finished with errors; export_file holds whatever was written."""

    message_key = 'alert.export.error.msg'

    def __init__(self, message=None, export_file=None):
        self.export_file = export_file
        super().__init__(message)
