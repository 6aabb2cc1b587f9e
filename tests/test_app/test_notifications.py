"""Tests for record event notifications."""
import json
from unittest.mock import Mock

from shared.enums import FormEvent
from src.webform_app.services.notifications import Notifier, get_notifier, to_parent_message


def test_to_parent_message():
    assert json.loads(to_parent_message(FormEvent.SUBMISSION_SUCCESS)) == {'enketoEvent': 'submissionsuccess'}
    assert json.loads(to_parent_message('edited')) == {'enketoEvent': 'edited'}


def test_emit_reaches_listeners(notifier):
    listener = Mock()
    notifier.subscribe(listener)
    notifier.emit(FormEvent.QUEUE_SUBMISSION_SUCCESS, 'Census - 1')
    listener.assert_called_once_with(FormEvent.QUEUE_SUBMISSION_SUCCESS, 'Census - 1')


def test_subscribe_is_idempotent(notifier):
    listener = Mock()
    notifier.subscribe(listener)
    notifier.subscribe(listener)
    notifier.emit(FormEvent.EDITED)
    assert listener.call_count == 1


def test_unsubscribe(notifier):
    listener = Mock()
    notifier.subscribe(listener)
    assert notifier.unsubscribe(listener) is True
    assert notifier.unsubscribe(listener) is False
    notifier.emit(FormEvent.EDITED)
    listener.assert_not_called()


def test_listener_error_does_not_reach_emitter(notifier):
    failing = Mock(side_effect=RuntimeError("boom"))
    other = Mock()
    notifier.subscribe(failing)
    notifier.subscribe(other)

    notifier.emit(FormEvent.EDITED)
    other.assert_called_once_with(FormEvent.EDITED)


def test_global_notifier_is_singleton():
    assert get_notifier() is get_notifier()
    assert isinstance(get_notifier(), Notifier)
