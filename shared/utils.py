"""Shared utility functions for the webform record controller.

This module contains small helpers used by the record store, the upload
queue and the coordinator.
"""

import hashlib
import logging
import re
import uuid

from shared.models import AUTOSAVE_KEY_PREFIX

logger = logging.getLogger(__name__)

CONTENT_HASH_ALGO = 'sha256'

_UNSAFE_FILENAME_CHARS = re.compile(r'[^\w\-. ]+')


def autosave_key(enketo_id):
    """Return the sentinel key of the autosave slot for a survey."""
    return f"{AUTOSAVE_KEY_PREFIX}{enketo_id}"


def is_autosave_key(key):
    return bool(key) and key.startswith(AUTOSAVE_KEY_PREFIX)


def default_record_name(survey_name, count):
    """Build the machine-generated record name '<survey name> - <n>'."""
    return f"{survey_name} - {count}"


def generate_instance_id():
    """Generate a new OpenRosa style instance id."""
    return f"uuid:{uuid.uuid4()}"


def compute_content_hash(data):
    """Compute a SHA256 hex digest of attachment or submission content.

    Args:
        data: Raw bytes or str (encoded as UTF-8)

    Returns:
        str: Hexadecimal hash string (64 characters)

    Raises:
        TypeError: If input type is invalid
    """
    if isinstance(data, str):
        data = data.encode('utf-8')
    if not isinstance(data, (bytes, bytearray)):
        raise TypeError(f"Cannot hash object of type {type(data).__name__}")
    hasher = hashlib.new(CONTENT_HASH_ALGO)
    hasher.update(data)
    return hasher.hexdigest()


def safe_filename(name, fallback='record'):
    """Make a record name usable as a path component inside an archive."""
    cleaned = _UNSAFE_FILENAME_CHARS.sub('_', name or '').strip(' .')
    return cleaned or fallback
