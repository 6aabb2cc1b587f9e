"""Webform event handlers: form footer buttons, record list and value changes."""
import threading

from shared.enums import ConfirmationKind, FormEvent, OutcomeLevel, OutcomeStatus
from ..errors import DuplicateName, LoadError
from ..messages import t
from ..state import Outcome


class WebformHandler:
    """Turns user actions into coordinator calls and presents the outcomes."""

    def __init__(self, app):
        self.app = app
        self.auto_save_timer = None
        self.redirect_timer = None
        self._timer_lock = threading.Lock()
        if self.app.notifier:
            self.app.notifier.subscribe(self.on_notification)

    @property
    def coordinator(self):
        return self.app.coordinator

    @property
    def gui(self):
        return self.app.gui

    # Outcome presentation
    def resolve_pending(self, pending):
        """Ask the user to decide on a suspended operation."""
        if pending.kind == ConfirmationKind.RECORD_NAME:
            return self.gui.prompt_for_name(pending)
        return self.gui.request_confirmation(pending)

    def present(self, outcome):
        """Resolve confirmations until the operation settles, then report it."""
        while True:
            if outcome.is_pending:
                outcome = self.coordinator.resume(self.resolve_pending(outcome.pending))
                continue
            error = outcome.error
            if isinstance(error, DuplicateName) and outcome.data.get('draft'):
                # Ask again for a draft name, showing why the last one was refused
                outcome = self.coordinator.save_record(
                    name=outcome.data.get('name'), prior_error_message=outcome.message
                )
                continue
            break

        if isinstance(outcome.error, LoadError):
            self.gui.alert_load_errors(outcome.error)
        elif outcome.status != OutcomeStatus.NOOP:
            self.gui.report_outcome(outcome)

        redirect_url = outcome.data.get('redirect_url')
        if outcome.ok and redirect_url:
            self.schedule_redirect(redirect_url, outcome.data.get('redirect_delay', 0))
        return outcome

    def schedule_redirect(self, url, delay):
        """Leave the form after the success message had time to show."""
        self.redirect_timer = threading.Timer(delay, self.gui.redirect, args=[url])
        self.redirect_timer.daemon = True
        self.redirect_timer.start()
        return self.redirect_timer

    # Session lifecycle
    def start(self, form_data):
        self.app.logger.info("Starting webform session")
        return self.present(self.coordinator.start_session(form_data))

    def on_submit_button(self):
        self.cancel_auto_save()
        return self.present(self.coordinator.submit_form())

    def on_save_draft(self):
        self.cancel_auto_save()
        self.coordinator.set_draft_status(True)
        return self.present(self.coordinator.save_record())

    def on_reset(self):
        self.cancel_auto_save()
        return self.present(self.coordinator.reset_session())

    def on_load_record(self, instance_id):
        self.cancel_auto_save()
        return self.present(self.coordinator.load_record(instance_id))

    def on_validate(self):
        return self.present(self.coordinator.validate_form())

    def on_draft_toggle(self, value):
        """Update the draft intent and return the matching submit button label."""
        draft = self.coordinator.set_draft_status(value)
        return t('formfooter.savedraft.btn') if draft else t('formfooter.submit.btn')

    def on_upload(self):
        outcome = self.coordinator.upload_queue_now()
        # Successful uploads are announced through the queue notification
        if outcome.status == OutcomeStatus.FAILED:
            self.gui.report_outcome(outcome)
        return outcome

    def on_export(self, export_dir=None):
        return self.present(self.coordinator.export_records(export_dir))

    # Autosave
    def schedule_auto_save(self):
        """Debounced value change handling; rapid edits produce one autosave."""
        with self._timer_lock:
            if self.auto_save_timer:
                self.auto_save_timer.cancel()
            self.auto_save_timer = threading.Timer(
                self.app.config.auto_save_delay, self.perform_auto_save
            )
            self.auto_save_timer.daemon = True
            self.auto_save_timer.start()
            return self.auto_save_timer

    def cancel_auto_save(self):
        with self._timer_lock:
            if self.auto_save_timer:
                self.auto_save_timer.cancel()
                self.auto_save_timer = None

    def perform_auto_save(self):
        # Autosave failures are logged by the coordinator and never shown
        outcome = self.coordinator.notify_value_change()
        if outcome.status == OutcomeStatus.FAILED:
            self.app.logger.debug(f"Autosave not written: {outcome.error}")
        return outcome

    def on_value_change(self):
        if self.app.config.auto_save_delay <= 0:
            return self.perform_auto_save()
        return self.schedule_auto_save()

    # Notifications
    def on_notification(self, event_type, *args):
        if event_type == FormEvent.QUEUE_SUBMISSION_SUCCESS:
            self.gui.report_outcome(Outcome(
                OutcomeStatus.SUCCESS,
                message=self.coordinator.queue_success_message(list(args)),
                level=OutcomeLevel.SUCCESS,
                duration=self.app.config.feedback_duration_long
            ))
