"""Pytest configuration and fixtures for webform record tests."""
import pytest
from unittest.mock import Mock

from src.webform_app.config_manager import ConfigManager
from src.webform_app.coordinator import RecordCoordinator
from src.webform_app.errors import AuthRequired
from src.webform_app.record_store import RecordStore
from src.webform_app.services.notifications import Notifier
from src.webform_app.services.submission_transport import SubmissionResult
from src.webform_app.session_adapter import FormData
from shared.schemas import ContentFile, normalize_files


ENKETO_ID = 'census01'

FORM_MODEL = """
<model>
    <instance>
        <data id="census">
            <household/>
            <members/>
            <meta>
                <instanceID/>
                <timeEnd/>
            </meta>
        </data>
    </instance>
</model>
"""

NAMED_FORM_MODEL = """
<model>
    <instance>
        <data id="census">
            <household/>
            <meta>
                <instanceID/>
                <instanceName/>
            </meta>
        </data>
    </instance>
</model>
"""


def make_instance(household='Smith', instance_id='uuid:rec-1', extra=''):
    return (
        f'<data id="census"><household>{household}</household><members>3</members>{extra}'
        f'<meta><instanceID>{instance_id}</instanceID><timeEnd/></meta></data>'
    )


class FakeTransport:
    """Records submissions and answers with a configurable result or error."""

    def __init__(self):
        self.calls = []
        self.error = None
        self.errors_by_id = {}

    def upload_record(self, record):
        self.calls.append(record)
        error = self.errors_by_id.get(record.get('instance_id'), self.error)
        if error:
            raise error
        failed = [f.name for f in normalize_files(record.get('files')) if not isinstance(f, ContentFile)]
        return SubmissionResult(status_code=201, failed_files=failed, instance_id=record.get('instance_id'))


@pytest.fixture
def config(tmp_path):
    """Offline configuration with a temporary database."""
    return ConfigManager(
        db_path=str(tmp_path / 'records.db'),
        export_dir=str(tmp_path / 'exports'),
        enketo_id=ENKETO_ID,
        auto_save_delay=0,
        redirect_delay=0,
    )


@pytest.fixture
def store(config):
    """Record store backed by a temporary SQLite file."""
    record_store = RecordStore(config.db_path, ENKETO_ID)
    yield record_store
    record_store.close()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def notifier():
    return Notifier()


@pytest.fixture
def form_data():
    return FormData(model_str=FORM_MODEL, survey_name='Census')


@pytest.fixture
def coordinator(config, store, transport, notifier):
    """Coordinator without a started session; the upload queue is a Mock."""
    return RecordCoordinator(config, store, upload_queue=Mock(), transport=transport, notifier=notifier)


@pytest.fixture
def started(coordinator, form_data):
    """Coordinator with a blank session started."""
    outcome = coordinator.start_session(form_data)
    assert outcome.ok
    return coordinator


@pytest.fixture
def auth_error():
    return AuthRequired(login_url='/login')


@pytest.fixture
def instance_xml():
    """Factory for record data matching FORM_MODEL."""
    return make_instance


@pytest.fixture
def named_form_data():
    """Form whose records carry meta/instanceName."""
    return FormData(model_str=NAMED_FORM_MODEL, survey_name='Census')
