"""Tests for webform event handlers."""
from unittest.mock import Mock, patch

import pytest

from shared.enums import ConfirmationKind, FormEvent, OutcomeLevel, OutcomeStatus
from src.webform_app.errors import LoadError, StorageUnavailable
from src.webform_app.handlers.webform_handler import WebformHandler
from src.webform_app.services.upload_queue import UploadQueue
from src.webform_app.state import Decision


class MockApp:
    """Mock app class for testing handlers."""
    def __init__(self, config, coordinator, notifier):
        self.config = config
        self.coordinator = coordinator
        self.notifier = notifier
        self.gui = Mock()
        self.logger = Mock()


@pytest.fixture
def mock_app(config, started, notifier):
    return MockApp(config, started, notifier)


@pytest.fixture
def handler(mock_app):
    return WebformHandler(mock_app)


def reported_messages(gui):
    return [c.args[0].message for c in gui.report_outcome.call_args_list]


def test_handler_initialization(handler, mock_app, notifier):
    assert handler.app == mock_app
    assert handler.auto_save_timer is None
    assert notifier.unsubscribe(handler.on_notification) is True


class TestSaving:
    """Test save flows through the GUI."""

    def test_save_draft_prompts_for_name(self, handler, mock_app, store):
        mock_app.gui.prompt_for_name.return_value = Decision(accepted=True, value='Visit')

        outcome = handler.on_save_draft()

        assert outcome.ok
        pending = mock_app.gui.prompt_for_name.call_args.args[0]
        assert pending.default_name == 'Census - 1'
        assert [r.name for r in store.get_records()] == ['Visit']
        assert reported_messages(mock_app.gui) == ['Record saved as draft.']

    def test_duplicate_draft_name_reprompts(self, handler, mock_app, store):
        handler.on_submit_button()
        mock_app.gui.prompt_for_name.side_effect = [
            Decision(accepted=True, value='Census - 1'),
            Decision(accepted=True, value='Other'),
        ]

        outcome = handler.on_save_draft()

        assert outcome.ok
        second_prompt = mock_app.gui.prompt_for_name.call_args_list[1].args[0]
        assert second_prompt.default_name == 'Census - 1'
        assert second_prompt.error_message == 'A record with this name already exists. Please choose another name.'
        assert sorted(r.name for r in store.get_records()) == ['Census - 1', 'Other']

    def test_name_prompt_cancelled(self, handler, mock_app, store):
        mock_app.gui.prompt_for_name.return_value = Decision(accepted=False)

        outcome = handler.on_save_draft()

        assert outcome.status == OutcomeStatus.NOOP
        mock_app.gui.report_outcome.assert_not_called()
        assert store.get_records() == []

    def test_final_save_reported(self, handler, mock_app, store):
        outcome = handler.on_submit_button()
        assert outcome.ok
        assert reported_messages(mock_app.gui) == ['Record queued for submission.']
        mock_app.gui.prompt_for_name.assert_not_called()

    def test_draft_toggle_label(self, handler, mock_app):
        assert handler.on_draft_toggle(True) == 'Save Draft'
        assert handler.on_draft_toggle(False) == 'Submit'


class TestConfirmations:
    """Test discard confirmations and load errors."""

    def test_reset_declined_keeps_edits(self, handler, mock_app):
        mock_app.coordinator.session.set_value('household', 'Unsaved')
        mock_app.gui.request_confirmation.return_value = Decision(accepted=False)

        outcome = handler.on_reset()

        assert outcome.status == OutcomeStatus.NOOP
        pending = mock_app.gui.request_confirmation.call_args.args[0]
        assert pending.kind == ConfirmationKind.DISCARD_ON_RESET
        assert mock_app.coordinator.session.get_value('household') == 'Unsaved'

    def test_reset_accepted(self, handler, mock_app):
        mock_app.coordinator.session.set_value('household', 'Unsaved')
        mock_app.gui.request_confirmation.return_value = Decision(accepted=True)

        assert handler.on_reset().ok
        assert mock_app.coordinator.session.get_value('household') == ''

    def test_load_error_alerted(self, handler, mock_app, store):
        store.set({'instance_id': 'uuid:bad', 'name': 'Broken', 'xml': '<data><broken>'})

        handler.on_load_record('uuid:bad')

        error = mock_app.gui.alert_load_errors.call_args.args[0]
        assert isinstance(error, LoadError)
        mock_app.gui.report_outcome.assert_not_called()

    def test_autosave_recovery_on_start(self, handler, mock_app, store, form_data, instance_xml):
        store.update_autosaved({'xml': instance_xml(household='Lee')})
        mock_app.gui.request_confirmation.return_value = Decision(accepted=True)

        outcome = handler.start(form_data)

        assert outcome.ok
        pending = mock_app.gui.request_confirmation.call_args.args[0]
        assert pending.kind == ConfirmationKind.AUTOSAVE_RECOVERY
        assert mock_app.coordinator.session.get_value('household') == 'Lee'


class TestSubmission:
    """Test direct submission presentation."""

    def test_redirect_scheduled(self, handler, mock_app, config):
        config.offline = False
        config.return_url = 'https://example.org/done'

        outcome = handler.on_submit_button()

        assert outcome.ok
        handler.redirect_timer.join(5)
        mock_app.gui.redirect.assert_called_once_with('https://example.org/done')

    def test_auth_error_reported(self, handler, mock_app, config, transport, auth_error):
        config.offline = False
        transport.error = auth_error

        outcome = handler.on_submit_button()

        assert outcome.status == OutcomeStatus.FAILED
        assert mock_app.gui.report_outcome.call_args.args[0].level == OutcomeLevel.ERROR
        mock_app.gui.redirect.assert_not_called()


class TestAutoSave:
    """Test debounced autosave."""

    def test_immediate_when_no_delay(self, handler, mock_app, store):
        mock_app.coordinator.session.set_value('household', 'Typing')
        outcome = handler.on_value_change()
        assert outcome.status == OutcomeStatus.SUCCESS
        assert store.get_autosaved() is not None

    def test_debounced(self, handler, mock_app, config, store):
        config.auto_save_delay = 60
        first = handler.on_value_change()
        second = handler.on_value_change()

        assert first.finished.is_set()
        assert handler.auto_save_timer is second
        handler.cancel_auto_save()
        assert second.finished.is_set()
        assert store.get_autosaved() is None

    def test_failure_not_shown(self, handler, mock_app, store):
        with patch.object(store, 'update_autosaved', side_effect=StorageUnavailable('disk full')):
            outcome = handler.perform_auto_save()
        assert outcome.status == OutcomeStatus.FAILED
        mock_app.gui.report_outcome.assert_not_called()


class TestQueue:
    """Test upload queue presentation."""

    def test_queue_success_notification(self, handler, mock_app, notifier):
        notifier.emit(FormEvent.QUEUE_SUBMISSION_SUCCESS, 'Census - 1', 'Census - 2')

        outcome = mock_app.gui.report_outcome.call_args.args[0]
        assert outcome.message == '2 record(s) submitted successfully: Census - 1, Census - 2'
        assert outcome.duration == mock_app.config.feedback_duration_long

    def test_manual_upload(self, handler, mock_app, store, transport, notifier):
        mock_app.coordinator.upload_queue = UploadQueue(store, transport, notifier=notifier)
        handler.on_submit_button()
        mock_app.coordinator.upload_queue.cancel_scheduled()
        mock_app.gui.report_outcome.reset_mock()

        outcome = handler.on_upload()

        assert outcome.ok
        assert reported_messages(mock_app.gui) == ['1 record(s) submitted successfully: Census - 1']

    def test_manual_upload_failure(self, handler, mock_app, store, transport, auth_error):
        mock_app.coordinator.upload_queue = UploadQueue(store, transport)
        handler.on_submit_button()
        mock_app.coordinator.upload_queue.cancel_scheduled()
        mock_app.gui.report_outcome.reset_mock()
        transport.error = auth_error

        outcome = handler.on_upload()

        assert outcome.status == OutcomeStatus.FAILED
        mock_app.gui.report_outcome.assert_called_once()
