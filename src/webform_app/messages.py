"""User-facing message catalog.

Messages are looked up by dotted key and interpolated with keyword arguments.
Unknown keys are returned unchanged so missing entries stay visible.
"""
import logging

logger = logging.getLogger(__name__)

MESSAGES = {
    # Autosave recovery
    'confirm.autosaveload.heading': 'Unsaved record found',
    'confirm.autosaveload.msg': 'A record was being edited when the form was closed. Would you like to continue editing it?',
    'confirm.autosaveload.posButton': 'Recover',
    'confirm.autosaveload.negButton': 'Discard',

    # Discarding unsaved work
    'confirm.save.msg': 'Unsaved changes will be lost. Are you sure you want to start a new record?',
    'confirm.discardcurrent.heading': 'Unsaved changes',
    'confirm.discardcurrent.msg': 'The current record has unsaved changes. Loading another record will discard them.',
    'confirm.discardcurrent.posButton': 'Discard and load',

    # Saving
    'formfooter.savedraft.label': 'Save as draft',
    'formfooter.savedraft.btn': 'Save Draft',
    'formfooter.submit.btn': 'Submit',
    'confirm.save.name': 'Record name',
    'confirm.save.hint': 'Enter a name that identifies this record',
    'confirm.save.posButton': 'Save & Close',
    'confirm.default.negButton': 'Cancel',
    'confirm.save.existingerror': 'A record with this name already exists. Please choose another name.',
    'confirm.save.unkownerror': 'An unknown error occurred while saving the record.',
    'alert.recordsavesuccess.draftmsg': 'Record saved as draft.',
    'alert.recordsavesuccess.finalmsg': 'Record queued for submission.',
    'alert.confirmationpending.msg': 'Please answer the open question before continuing.',

    # Loading
    'alert.recordnotfound.msg': 'Record could not be found.',
    'alert.recordloadsuccess.msg': 'Record "{recordName}" loaded.',
    'alert.loaderror.heading': 'Loading error',
    'alert.loaderror.entryadvice': 'Please contact the survey administrator.',
    'alert.loaderror.editadvice': 'This record could not be loaded for editing. Please contact the survey administrator.',

    # Validation
    'alert.validationerror.msg': 'Form contains errors. Please see fields marked in red.',
    'alert.validationsuccess.heading': 'Valid',
    'alert.validationsuccess.msg': 'The form contains no errors.',

    # Direct submission
    'alert.submission.msg': 'Submitting...',
    'alert.submission.redirectmsg': 'After submission you will be redirected.',
    'alert.submissionsuccess.heading': 'Submission successful',
    'alert.submissionsuccess.msg': 'The record was submitted successfully.',
    'alert.submissionsuccess.redirectmsg': 'You will now be redirected.',
    'alert.submissionerror.heading': 'Submission failed',
    'alert.submissionerror.authrequiredmsg': 'Authentication is required. Please log in {here} and try again.',
    'alert.submissionerror.fnfmsg': 'The following attachments could not be submitted: {failedFiles}. Please contact {supportEmail}.',
    'here': 'here',

    # Queue
    'alert.queuesubmissionsuccess.msg': '{count} record(s) submitted successfully: {recordNames}',

    # Export
    'alert.export.success.heading': 'Export completed',
    'alert.export.success.msg': 'Records were exported to {exportFile}.',
    'alert.export.error.heading': 'Export failed',
    'alert.export.error.msg': 'Errors occurred during export: {errors}',
    'alert.export.error.filecreatedmsg': 'An export file with the records that could be exported was created: {exportFile}',

    'error.unknown': 'Unknown error',
}

STATUS_MESSAGES = {
    0: 'Failed to connect with the server.',
    400: 'The submission was rejected by the server.',
    403: 'You are not allowed to submit this form.',
    404: 'The submission endpoint could not be found.',
    408: 'The server took too long to respond.',
    413: 'The submission is too large.',
    500: 'The server encountered an error.',
    503: 'The server is temporarily unavailable.',
}


def t(key, **kwargs):
    """Translate a message key, interpolating keyword arguments."""
    template = MESSAGES.get(key)
    if template is None:
        logger.debug(f"Missing message key: {key}")
        return key
    try:
        return template.format(**kwargs)
    except (KeyError, IndexError) as e:
        logger.warning(f"Missing interpolation value {e} for message {key}")
        return template


def error_response_message(status_code):
    """Generic message for a failed HTTP response status."""
    if status_code in STATUS_MESSAGES:
        return STATUS_MESSAGES[status_code]
    if status_code and status_code >= 500:
        return STATUS_MESSAGES[500]
    return f"{t('alert.submissionerror.heading')} ({status_code})"
