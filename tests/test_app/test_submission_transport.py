"""Tests for the HTTP submission transport."""
import pytest
import requests
from unittest.mock import Mock, patch

from src.webform_app.errors import AuthRequired, TransportError
from src.webform_app.services.submission_transport import SubmissionTransport


def make_response(status_code, json_body=None, reason='OK'):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    if json_body is None:
        response.json.side_effect = ValueError("No JSON")
    else:
        response.json.return_value = json_body
    return response


@pytest.fixture
def http():
    return Mock()


@pytest.fixture
def transport(http):
    return SubmissionTransport(
        'https://forms.example.org/submission', timeout=5, max_retries=3, retry_delay=0.5,
        login_url='/login', session=http
    )


@pytest.fixture
def record():
    return {
        'xml': '<data><household>Smith</household></data>',
        'files': [('photo.jpg', b'123'), 'audio.mp3'],
        'instance_id': 'uuid:rec-1',
        'deprecated_id': 'uuid:old'
    }


@patch('src.webform_app.services.submission_transport.time.sleep')
class TestUploadRecord:
    """Test record submission."""

    def test_success(self, mock_sleep, transport, http, record):
        http.post.return_value = make_response(201)

        result = transport.upload_record(record)

        assert result.status_code == 201
        assert result.instance_id == 'uuid:rec-1'
        assert result.failed_files == ['audio.mp3']
        args, kwargs = http.post.call_args
        assert args[0] == 'https://forms.example.org/submission'
        assert 'xml_submission_file' in kwargs['files']
        assert kwargs['files']['photo.jpg'][1] == b'123'
        assert 'audio.mp3' not in kwargs['files']
        assert kwargs['data'] == {'instanceID': 'uuid:rec-1', 'deprecatedID': 'uuid:old'}
        assert kwargs['headers']['X-OpenRosa-Version'] == '1.0'
        mock_sleep.assert_not_called()

    def test_auth_required(self, mock_sleep, transport, http, record):
        http.post.return_value = make_response(401, reason='Unauthorized')

        with pytest.raises(AuthRequired) as exc_info:
            transport.upload_record(record)
        assert exc_info.value.login_url == '/login'
        assert http.post.call_count == 1

    def test_client_error_not_retried(self, mock_sleep, transport, http, record):
        http.post.return_value = make_response(400, {'message': 'Form is closed'}, reason='Bad Request')

        with pytest.raises(TransportError) as exc_info:
            transport.upload_record(record)
        assert exc_info.value.status_code == 400
        assert exc_info.value.message == 'Form is closed'
        assert http.post.call_count == 1

    def test_server_error_retried_with_backoff(self, mock_sleep, transport, http, record):
        http.post.return_value = make_response(503, reason='Service Unavailable')

        with pytest.raises(TransportError) as exc_info:
            transport.upload_record(record)
        assert exc_info.value.status_code == 503
        assert http.post.call_count == 3
        assert [c.args[0] for c in mock_sleep.call_args_list] == [0.5, 1.0]

    def test_recovers_after_retry(self, mock_sleep, transport, http, record):
        http.post.side_effect = [make_response(500, reason='Error'), make_response(201)]

        result = transport.upload_record(record)
        assert result.status_code == 201
        assert http.post.call_count == 2

    def test_connection_error(self, mock_sleep, transport, http, record):
        http.post.side_effect = requests.exceptions.ConnectionError("refused")

        with pytest.raises(TransportError) as exc_info:
            transport.upload_record(record)
        assert exc_info.value.status_code == 0
        assert exc_info.value.message == 'Failed to connect with the server.'
        assert http.post.call_count == 3
