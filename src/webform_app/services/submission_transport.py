"""HTTP transport for submitting records to the server."""
import time
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import requests

from shared.schemas import ContentFile, normalize_files
from ..errors import AuthRequired, TransportError
from ..messages import error_response_message


@dataclass
class SubmissionResult:
    """Outcome of a transmitted record."""
    status_code: int
    failed_files: List[str] = field(default_factory=list)
    instance_id: Optional[str] = None


class SubmissionTransport:
    """Submits one record as an OpenRosa multipart POST with retry logic.

    Attachments known only by name cannot be sent and are reported back in
    failed_files while the submission itself still goes through.
    """

    RETRYABLE_STATUS = (408, 429)

    def __init__(self, submission_url, timeout=30.0, max_retries=3, retry_delay=1.0,
                 login_url='/login', session=None):
        self.submission_url = submission_url
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay
        self.login_url = login_url
        self.http = session or requests.Session()
        self.logger = logging.getLogger(self.__class__.__name__)

    def _build_payload(self, record):
        files = {
            'xml_submission_file': ('xml_submission_file.xml', record['xml'].encode('utf-8'), 'text/xml')
        }
        failed_files = []
        for file_ref in normalize_files(record.get('files')):
            if isinstance(file_ref, ContentFile):
                files[file_ref.name] = (file_ref.name, file_ref.content, 'application/octet-stream')
            else:
                failed_files.append(file_ref.name)
        data = {}
        if record.get('instance_id'):
            data['instanceID'] = record['instance_id']
        if record.get('deprecated_id'):
            data['deprecatedID'] = record['deprecated_id']
        return files, data, failed_files

    def upload_record(self, record):
        """Submit a record dict with 'xml', 'files', 'instance_id', 'deprecated_id'.

        Returns:
            SubmissionResult

        Raises:
            AuthRequired: server answered 401
            TransportError: any other failure after retries
        """
        files, data, failed_files = self._build_payload(record)
        if failed_files:
            self.logger.warning(f"Attachments without content will not be submitted: {failed_files}")

        headers = {'X-OpenRosa-Version': '1.0'}
        last_exception = None
        response = None

        for attempt in range(self.max_retries):
            try:
                response = self.http.post(
                    self.submission_url, files=files, data=data, headers=headers, timeout=self.timeout
                )
                if response.status_code < 400:
                    self.logger.info(f"Submitted record {record.get('instance_id')} ({response.status_code})")
                    return SubmissionResult(
                        status_code=response.status_code,
                        failed_files=failed_files,
                        instance_id=record.get('instance_id')
                    )
                if response.status_code == 401:
                    raise AuthRequired(login_url=self.login_url)
                # Don't retry on client errors except timeout and rate limit
                if response.status_code < 500 and response.status_code not in self.RETRYABLE_STATUS:
                    break
            except requests.exceptions.RequestException as e:
                last_exception = e
                response = None

            if attempt < self.max_retries - 1:
                reason = last_exception if response is None else f"{response.status_code} {response.reason}"
                self.logger.warning(f"Submission failed (attempt {attempt + 1}/{self.max_retries}): {reason}")
                time.sleep(self.retry_delay * (2 ** attempt))  # Exponential backoff

        if response is not None:
            message = self._response_message(response)
            self.logger.error(f"Submission rejected with status {response.status_code}: {message}")
            raise TransportError(message, status_code=response.status_code)

        self.logger.error(f"Submission failed after {self.max_retries} attempts: {last_exception}")
        raise TransportError(error_response_message(0), status_code=0) from last_exception

    @staticmethod
    def _response_message(response):
        try:
            body = response.json()
            if isinstance(body, dict) and body.get('message'):
                return body['message']
        except ValueError:
            pass
        return error_response_message(response.status_code)
