"""Record lifecycle coordination: save, autosave, load, reset and submit.

The coordinator owns the editing session and never renders anything. Every
operation returns an Outcome; operations that would discard work or need a
record name suspend with a PendingConfirmation and are completed by resume()
or by re-invoking them with confirmed=True.
"""
import logging
import os
import threading
from urllib.parse import unquote

from pydantic import ValidationError as SchemaError

from shared.enums import ConfirmationKind, FormEvent, OutcomeLevel, OutcomeStatus, RecordStatus, SessionPhase
from shared.schemas import RecordCreate, ValidationError
from shared.utils import default_record_name

from .errors import (
    AuthRequired, AutosaveFailure, ConfirmationPending, DuplicateName, ExportError, LoadError,
    NotFound, StorageUnavailable, TransportError, TransportPartial, ValidationFailed
)
from .messages import t, error_response_message
from .session_adapter import FormData, FormSession
from .state import Decision, EditingState, Outcome, PendingConfirmation


class RecordCoordinator:
    """Orchestrates record lifecycle transitions for one editing session."""

    def __init__(self, config, store, upload_queue=None, transport=None, notifier=None, session_factory=None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.config = config
        self.store = store
        self.upload_queue = upload_queue
        self.transport = transport
        self.notifier = notifier
        self.session_factory = session_factory or FormSession
        self.form_data = None
        self.state = EditingState()
        # Operations run to completion one at a time, autosave never waits
        self._lock = threading.RLock()

    # Helpers
    @property
    def session(self):
        return self.state.session

    @property
    def enketo_id(self):
        return self.config.enketo_id or self.store.enketo_id

    def _require_session(self):
        if self.state.session is None:
            raise RuntimeError("Editing session has not been started")
        return self.state.session

    def _suspend(self, pending, message=''):
        self.state.pending = pending
        self.logger.debug(f"Suspended for confirmation: {pending.kind.value}")
        return Outcome(OutcomeStatus.PENDING, message=message, pending=pending)

    def _check_pending(self, kind):
        """Reject operations that conflict with an outstanding confirmation.

        An operation of the same kind takes over the pending confirmation.
        """
        pending = self.state.pending
        if pending is None:
            return None
        if pending.kind == kind:
            self.state.pending = None
            return None
        self.logger.info(f"Rejected {kind.value if kind else 'operation'}: {pending.kind.value} is pending")
        return Outcome(
            OutcomeStatus.FAILED,
            message=t('alert.confirmationpending.msg'),
            level=OutcomeLevel.WARNING,
            error=ConfirmationPending(pending.kind),
            pending=pending
        )

    def _set_active(self, instance_id):
        self.state.active_instance_id = instance_id
        if not self.config.offline:
            return
        try:
            self.store.set_active(instance_id)
        except StorageUnavailable as e:
            self.logger.warning(f"Could not persist active record: {e}")

    def _reset_to_blank(self):
        """Tear down the current session and start a clean one from the template."""
        self.state.reset_editing_state()
        errors = self.state.session.reset_to_blank()
        if errors:
            self.logger.warning(f"Blank form reported load errors: {errors}")
        self._set_active(None)

    # Draft intent
    def set_draft_status(self, status):
        """Record whether the user intends to save a draft or a final record."""
        self.state.draft = bool(status) and self.config.draft_enabled and self.config.offline
        return self.state.draft

    def get_draft_status(self):
        return self.state.draft

    # Session start
    def start_session(self, form_data: FormData, recover_autosave=None):
        """Construct the editing session, offering recovery of an autosave snapshot.

        Args:
            form_data: template and optional instance data
            recover_autosave: None to ask the user, True/False once decided
        """
        with self._lock:
            rejected = self._check_pending(ConfirmationKind.AUTOSAVE_RECOVERY)
            if rejected:
                return rejected
            self.form_data = form_data
            recovered_files = None

            if self.config.offline and not form_data.instance_str:
                try:
                    snapshot = self.store.get_autosaved()
                except StorageUnavailable as e:
                    return self._load_failure(LoadError([str(e)]), form_data)

                if snapshot and snapshot.xml:
                    if recover_autosave is None:
                        return self._suspend(PendingConfirmation(
                            kind=ConfirmationKind.AUTOSAVE_RECOVERY,
                            message_key='confirm.autosaveload.msg',
                            heading_key='confirm.autosaveload.heading'
                        ), t('confirm.autosaveload.msg'))
                    if recover_autosave:
                        self.logger.info("Recovering autosaved record")
                        form_data = form_data.with_instance(snapshot.xml)
                        recovered_files = snapshot.files
                    else:
                        self.logger.info("Discarding autosaved record")
                        try:
                            self.store.remove_autosaved()
                        except StorageUnavailable as e:
                            self.logger.warning(f"Could not discard autosaved record: {e}")

            session = self.session_factory(form_data)
            try:
                errors = session.init()
            except LoadError as e:
                errors = e.causes
            if errors:
                return self._load_failure(LoadError(errors), form_data)

            self.state = EditingState(session=session)
            if recovered_files is not None:
                session.set_files(recovered_files)
                session.mark_edited()
                self.state.phase = SessionPhase.EDITING
                self._set_active(self.store.autosave_key)
            elif form_data.instance_str:
                self.state.phase = SessionPhase.EDITING

            self.logger.info(f"Editing session started for survey {self.enketo_id}")
            return Outcome(OutcomeStatus.SUCCESS, data={'recovered': recovered_files is not None})

    def _load_failure(self, error, form_data):
        error.advice = t('alert.loaderror.editadvice') if form_data.instance_str else t('alert.loaderror.entryadvice')
        self.logger.error(f"Form could not be loaded: {error.causes}")
        return Outcome(
            OutcomeStatus.FAILED,
            message='; '.join(error.causes),
            level=OutcomeLevel.ERROR,
            heading=t('alert.loaderror.heading'),
            error=error
        )

    # Confirmation protocol
    def resume(self, decision: Decision):
        """Complete or cancel the pending operation with the user's decision."""
        with self._lock:
            pending = self.state.pending
            if pending is None:
                return Outcome(OutcomeStatus.NOOP)
            self.state.pending = None
            kind = pending.kind
            self.logger.debug(f"Resuming {kind.value} (accepted={decision.accepted})")

            if kind == ConfirmationKind.AUTOSAVE_RECOVERY:
                return self.start_session(self.form_data, recover_autosave=decision.accepted)
            if not decision.accepted:
                return Outcome(OutcomeStatus.NOOP, data={'cancelled': kind})
            if kind == ConfirmationKind.DISCARD_ON_RESET:
                return self.reset_session(confirmed=True)
            if kind == ConfirmationKind.DISCARD_ON_LOAD:
                return self.load_record(pending.instance_id, confirmed=True)
            return self.save_record(decision.value or pending.default_name, confirmed=True)

    def cancel(self):
        return self.resume(Decision(accepted=False))

    # Reset
    def reset_session(self, confirmed=False):
        """Discard the session and start a blank one, asking first if there are unsaved edits."""
        with self._lock:
            rejected = self._check_pending(ConfirmationKind.DISCARD_ON_RESET)
            if rejected:
                return rejected
            session = self._require_session()
            if not confirmed and session.has_unsaved_edits():
                return self._suspend(PendingConfirmation(
                    kind=ConfirmationKind.DISCARD_ON_RESET,
                    message_key='confirm.save.msg'
                ), t('confirm.save.msg'))
            self._reset_to_blank()
            self.logger.info("Session reset to blank form")
            return Outcome(OutcomeStatus.SUCCESS)

    # Load
    def load_record(self, instance_id, confirmed=False):
        """Open a stored record for editing."""
        with self._lock:
            rejected = self._check_pending(ConfirmationKind.DISCARD_ON_LOAD)
            if rejected:
                return rejected
            session = self._require_session()
            if not confirmed and session.has_unsaved_edits():
                return self._suspend(PendingConfirmation(
                    kind=ConfirmationKind.DISCARD_ON_LOAD,
                    message_key='confirm.discardcurrent.msg',
                    heading_key='confirm.discardcurrent.heading',
                    instance_id=instance_id
                ), t('confirm.discardcurrent.msg'))

            try:
                record = self.store.get(instance_id)
            except StorageUnavailable as e:
                return Outcome(OutcomeStatus.FAILED, message=str(e), level=OutcomeLevel.ERROR, error=e)

            # only drafts can be edited, queued records are immutable
            if not record or not record.xml or record.status != RecordStatus.DRAFT:
                self.logger.warning(f"Record {instance_id} not found among drafts")
                return Outcome(
                    OutcomeStatus.FAILED,
                    message=t('alert.recordnotfound.msg'),
                    level=OutcomeLevel.ERROR,
                    error=NotFound(instance_id)
                )

            try:
                warnings = session.reset_to_instance(record.xml)
            except LoadError as e:
                self._reset_to_blank()
                e.advice = t('alert.loaderror.editadvice')
                self.logger.error(f"Record {instance_id} could not be loaded: {e.causes}")
                return Outcome(OutcomeStatus.FAILED, message='; '.join(e.causes), level=OutcomeLevel.ERROR,
                               heading=t('alert.loaderror.heading'), error=e)

            session.set_files(record.files)
            self.state.draft = True
            self.state.phase = SessionPhase.EDITING
            session.bind_record_name(record.name)
            self._set_active(record.instance_id)
            self.logger.info(f"Loaded record {record.instance_id} ({record.name})")

            if warnings:
                error = LoadError(warnings, advice=t('alert.loaderror.editadvice'))
                return Outcome(OutcomeStatus.SUCCESS, message='; '.join(warnings), level=OutcomeLevel.WARNING,
                               heading=t('alert.loaderror.heading'), error=error, data={'record': record})
            return Outcome(
                OutcomeStatus.SUCCESS,
                message=t('alert.recordloadsuccess.msg', recordName=record.name),
                level=OutcomeLevel.SUCCESS,
                duration=self.config.feedback_duration_short,
                data={'record': record}
            )

    # Save
    def get_record_name(self):
        """Resolve the default record name for the current session."""
        session = self._require_session()
        name = session.get_instance_name() or session.get_bound_record_name()
        if name:
            return name
        count = self.store.get_counter(self.enketo_id)
        return default_record_name(session.get_survey_name(), count)

    def save_record(self, name=None, confirmed=False, prior_error_message=None):
        """Save the session as a draft or final record.

        Resolves a default name when none is given, suspends drafts for name
        confirmation, then commits through the record store.
        """
        with self._lock:
            rejected = self._check_pending(ConfirmationKind.RECORD_NAME)
            if rejected:
                return rejected
            session = self._require_session()
            draft = self.get_draft_status()

            # lets the session update e.g. its completion timestamp
            session.before_save_hook()

            if not name:
                try:
                    name = self.get_record_name()
                except (StorageUnavailable, DuplicateName) as e:
                    return Outcome(OutcomeStatus.FAILED, message=str(e), level=OutcomeLevel.ERROR, error=e)
                confirmed = False

            if draft and not confirmed:
                return self._suspend(PendingConfirmation(
                    kind=ConfirmationKind.RECORD_NAME,
                    message_key='confirm.save.name',
                    heading_key='formfooter.savedraft.label',
                    default_name=name,
                    error_message=prior_error_message
                ), prior_error_message or '')

            return self._commit(session, name, draft)

    def _commit(self, session, name, draft):
        self.state.commit_in_progress = True
        try:
            snapshot = session.get_snapshot()
            try:
                record = RecordCreate(
                    instance_id=snapshot.instance_id,
                    enketo_id=self.enketo_id,
                    name=name,
                    xml=snapshot.xml,
                    draft=draft,
                    deprecated_id=snapshot.deprecated_id,
                    files=snapshot.files
                )
            except (SchemaError, ValidationError) as e:
                self.logger.warning(f"Record rejected before storage: {e}")
                return Outcome(OutcomeStatus.FAILED, message=str(e), level=OutcomeLevel.ERROR,
                               error=ValidationFailed(str(e)), data={'name': name, 'draft': draft})

            bound_name = session.get_bound_record_name()
            if bound_name:
                stored = self.store.update(record, previous_name=bound_name)
            else:
                stored = self.store.set(record)
        except DuplicateName:
            message = t('confirm.save.existingerror')
            self.logger.info(f"Record name '{name}' already exists")
            return Outcome(OutcomeStatus.FAILED, message=message, level=OutcomeLevel.ERROR,
                           error=DuplicateName(name=name, message=message),
                           data={'name': name, 'draft': draft})
        except StorageUnavailable as e:
            message = e.message or t('confirm.save.unkownerror')
            return Outcome(OutcomeStatus.FAILED, message=message, level=OutcomeLevel.ERROR,
                           error=e, data={'name': name, 'draft': draft})
        finally:
            self.state.commit_in_progress = False

        try:
            self.store.remove_autosaved()
        except StorageUnavailable as e:
            self.logger.warning(f"Could not remove autosaved record: {e}")
        self._reset_to_blank()

        phase = SessionPhase.SAVED_DRAFT if draft else SessionPhase.SAVED_FINAL
        self.logger.info(f"Record {stored.instance_id} saved as {'draft' if draft else 'final'}")
        if draft:
            message = t('alert.recordsavesuccess.draftmsg')
        else:
            message = t('alert.recordsavesuccess.finalmsg')
            if self.upload_queue:
                # Delayed so the saved and uploaded messages never show together
                self.upload_queue.schedule_flush(self.config.upload_delay)
        return Outcome(OutcomeStatus.SUCCESS, message=message, level=OutcomeLevel.SUCCESS,
                       duration=self.config.feedback_duration_medium,
                       data={'record': stored, 'phase': phase})

    # Autosave
    def auto_save(self):
        """Overwrite the autosave slot with unsaved new work. Best effort."""
        if not self.config.offline:
            return Outcome(OutcomeStatus.NOOP)
        if not self._lock.acquire(blocking=False):
            self.logger.debug("Autosave dropped: another operation is in progress")
            return Outcome(OutcomeStatus.NOOP)
        try:
            session = self.state.session
            if session is None or self.state.commit_in_progress:
                return Outcome(OutcomeStatus.NOOP)
            # Records loaded from storage are not autosaved
            if session.get_bound_record_name():
                return Outcome(OutcomeStatus.NOOP)
            snapshot = session.get_snapshot()
            self.store.update_autosaved({'xml': snapshot.xml, 'files': snapshot.files})
            self.logger.debug("Autosave successful")
            return Outcome(OutcomeStatus.SUCCESS)
        except (StorageUnavailable, DuplicateName) as e:
            self.logger.warning(f"Autosave error: {e}")
            return Outcome(OutcomeStatus.FAILED, error=AutosaveFailure(str(e)))
        finally:
            self._lock.release()

    def notify_value_change(self):
        """Handle a data change in the session: edited signal plus autosave."""
        if self.state.phase == SessionPhase.CLEAN:
            self.state.phase = SessionPhase.EDITING
        if self.notifier:
            self.notifier.emit(FormEvent.EDITED)
        return self.auto_save()

    # Direct submission
    def submit_record(self):
        """Hand the session data directly to the transport (online mode)."""
        with self._lock:
            rejected = self._check_pending(None)
            if rejected:
                return rejected
            session = self._require_session()
            session.before_save_hook()
            snapshot = session.get_snapshot()
            record = {
                'xml': snapshot.xml,
                'files': snapshot.files,
                'instance_id': snapshot.instance_id,
                'deprecated_id': snapshot.deprecated_id
            }

            try:
                result = self.transport.upload_record(record)
            except AuthRequired as e:
                here = f'<a href="{self.config.login_url}" target="_blank">{t("here")}</a>'
                return Outcome(OutcomeStatus.FAILED, message=t('alert.submissionerror.authrequiredmsg', here=here),
                               level=OutcomeLevel.ERROR, heading=t('alert.submissionerror.heading'), error=e,
                               data={'login_url': self.config.login_url})
            except TransportError as e:
                message = e.message or error_response_message(e.status_code)
                return Outcome(OutcomeStatus.FAILED, message=message, level=OutcomeLevel.ERROR,
                               heading=t('alert.submissionerror.heading'), error=e)

            level = OutcomeLevel.SUCCESS
            error = None
            message = ''
            if result.failed_files:
                level = OutcomeLevel.WARNING
                error = TransportPartial(result.failed_files)
                message = t('alert.submissionerror.fnfmsg', failedFiles=', '.join(result.failed_files),
                            supportEmail=self.config.support_email)

            if self.notifier:
                self.notifier.emit(FormEvent.SUBMISSION_SUCCESS)
            self.state.phase = SessionPhase.SUBMITTED
            data = {'failed_files': list(result.failed_files), 'instance_id': snapshot.instance_id}

            if self.config.return_url:
                message = f"{message}\n{t('alert.submissionsuccess.redirectmsg')}".strip()
                data['redirect_url'] = unquote(self.config.return_url)
                data['redirect_delay'] = self.config.redirect_delay
            else:
                message = message or t('alert.submissionsuccess.msg')
                self._reset_to_blank()

            self.logger.info(f"Record {snapshot.instance_id} submitted")
            return Outcome(OutcomeStatus.SUCCESS, message=message, level=level,
                           heading=t('alert.submissionsuccess.heading'), error=error, data=data)

    # Submit button and validation
    def validate_form(self):
        session = self._require_session()
        if session.validate():
            return Outcome(OutcomeStatus.SUCCESS, message=t('alert.validationsuccess.msg'),
                           level=OutcomeLevel.SUCCESS, heading=t('alert.validationsuccess.heading'))
        return Outcome(OutcomeStatus.FAILED, message=t('alert.validationerror.msg'), level=OutcomeLevel.ERROR,
                       error=ValidationFailed(t('alert.validationerror.msg')))

    def submit_form(self):
        """Save a draft, or validate then save (offline) or submit (online)."""
        self._require_session()
        if self.config.offline and self.get_draft_status():
            return self.save_record()
        validation = self.validate_form()
        if not validation.ok:
            return validation
        if self.config.offline:
            return self.save_record()
        return self.submit_record()

    # Queue, listing and export
    def upload_queue_now(self):
        """Manual flush of the upload queue, ignoring retry backoff."""
        report = self.upload_queue.enqueue_and_flush(force=True)
        if report.skipped:
            return Outcome(OutcomeStatus.NOOP, data={'report': report})
        if report.auth_required:
            here = f'<a href="{self.config.login_url}" target="_blank">{t("here")}</a>'
            return Outcome(OutcomeStatus.FAILED, message=t('alert.submissionerror.authrequiredmsg', here=here),
                           level=OutcomeLevel.ERROR, error=AuthRequired(login_url=self.config.login_url),
                           data={'report': report})
        if report.failed:
            message = '; '.join(f"{name}: {reason}" for name, reason in report.failed.items())
            return Outcome(OutcomeStatus.FAILED, message=message, level=OutcomeLevel.WARNING,
                           heading=t('alert.submissionerror.heading'),
                           error=TransportError(message), data={'report': report})
        if not report.succeeded:
            return Outcome(OutcomeStatus.NOOP, data={'report': report})
        return Outcome(OutcomeStatus.SUCCESS, message=self.queue_success_message(report.succeeded),
                       level=OutcomeLevel.SUCCESS, duration=self.config.feedback_duration_long,
                       data={'report': report})

    @staticmethod
    def queue_success_message(names):
        return t('alert.queuesubmissionsuccess.msg', count=len(names), recordNames=', '.join(names))

    def list_records(self):
        """Drafts and queued records of the survey for the record list."""
        return self.store.get_records(include_queued=True)

    def export_records(self, export_dir=None):
        """Export all stored records of the survey to a zip archive."""
        export_dir = export_dir or self.config.export_dir or os.path.join(
            os.path.dirname(os.path.abspath(self.store.db_path)), 'exports'
        )
        survey_name = self.session.get_survey_name() if self.session else self.enketo_id
        try:
            path = self.store.export_to_zip(survey_name, export_dir)
        except ExportError as e:
            message = t('alert.export.error.msg', errors=e.message)
            if e.export_file:
                message = f"{message}\n{t('alert.export.error.filecreatedmsg', exportFile=e.export_file)}"
            return Outcome(OutcomeStatus.FAILED, message=message, level=OutcomeLevel.ERROR,
                           heading=t('alert.export.error.heading'), error=e,
                           data={'export_file': e.export_file})
        except StorageUnavailable as e:
            return Outcome(OutcomeStatus.FAILED, message=t('alert.export.error.msg', errors=str(e)),
                           level=OutcomeLevel.ERROR, heading=t('alert.export.error.heading'), error=e)
        return Outcome(OutcomeStatus.SUCCESS, message=t('alert.export.success.msg', exportFile=path),
                       level=OutcomeLevel.SUCCESS, heading=t('alert.export.success.heading'),
                       data={'export_file': path})
