"""Repository for pure database CRUD operations on records."""
import logging
from contextlib import contextmanager
from sqlalchemy import update, select
from sqlalchemy.exc import IntegrityError

from shared.enums import RecordStatus
from shared.models import (
    Record, RecordFile, AutoSavedRecord, AutoSavedFile, RecordCounter, StoreProperty, now
)
from shared.schemas import RecordResponse, AutoSavedSnapshot, ContentFile


@contextmanager
def session_scope(session_factory):
    """Provide a transactional scope around a series of operations."""
    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _file_rows(model, files):
    return [
        model(
            name=file_ref.name,
            content=file_ref.content if isinstance(file_ref, ContentFile) else None,
            position=position
        )
        for position, file_ref in enumerate(files)
    ]


class RecordRepository:
    """Pure database CRUD operations for records, autosave snapshots and counters."""

    def __init__(self, session_factory):
        """Initialize repository with session factory."""
        self.session_factory = session_factory
        self.logger = logging.getLogger(self.__class__.__name__)

    def _get_session(self):
        """Get a database session."""
        return self.session_factory()

    # Record operations
    def get_record(self, instance_id):
        """Get a record by instance id."""
        session = self._get_session()
        try:
            record = session.get(Record, instance_id)
            return RecordResponse.model_validate(record) if record else None
        finally:
            session.close()

    def list_records(self, enketo_id=None, statuses=None):
        """List records, optionally filtered by survey and status, oldest first."""
        session = self._get_session()
        try:
            query = session.query(Record)
            if enketo_id:
                query = query.filter(Record.enketo_id == enketo_id)
            if statuses:
                query = query.filter(Record.status.in_(list(statuses)))
            records = query.order_by(Record.created_at, Record.instance_id).all()
            return [RecordResponse.model_validate(r) for r in records]
        finally:
            session.close()

    def add_record(self, record_data, status):
        """Insert a new record. Fails on duplicate instance id or name."""
        with session_scope(self.session_factory) as session:
            record = Record(
                instance_id=record_data.instance_id,
                enketo_id=record_data.enketo_id,
                name=record_data.name,
                xml=record_data.xml,
                draft=record_data.draft,
                deprecated_id=record_data.deprecated_id,
                status=status,
                files=_file_rows(RecordFile, record_data.files)
            )
            session.add(record)
            session.flush()
            session.refresh(record)
            return RecordResponse.model_validate(record)

    def replace_record(self, record_data, status, previous_name=None):
        """Replace an existing record's content, files and status.

        The existing row is found by instance id, falling back to the record of
        the same survey bound under previous_name. Inserts when neither exists.
        """
        with session_scope(self.session_factory) as session:
            record = session.get(Record, record_data.instance_id)
            if record is None and previous_name:
                record = session.query(Record).filter_by(
                    enketo_id=record_data.enketo_id, name=previous_name
                ).first()
            if record is None:
                self.logger.debug(f"No record to replace for {record_data.instance_id}, inserting")
                record = Record(instance_id=record_data.instance_id, enketo_id=record_data.enketo_id)
                session.add(record)
            elif record.instance_id != record_data.instance_id:
                # Instance id changed while editing, re-key by replacing the row
                session.delete(record)
                session.flush()
                record = Record(instance_id=record_data.instance_id, enketo_id=record_data.enketo_id)
                session.add(record)

            record.name = record_data.name
            record.xml = record_data.xml
            record.draft = record_data.draft
            record.deprecated_id = record_data.deprecated_id
            record.status = status
            record.retry_count = 0
            record.last_retry_at = None
            record.last_error = ''
            record.files = _file_rows(RecordFile, record_data.files)
            session.flush()
            session.refresh(record)
            return RecordResponse.model_validate(record)

    def get_record_status(self, instance_id):
        session = self._get_session()
        try:
            return session.execute(
                select(Record.status).where(Record.instance_id == instance_id)
            ).scalar_one_or_none()
        finally:
            session.close()

    def delete_record(self, instance_id):
        """Delete a record and its files."""
        with session_scope(self.session_factory) as session:
            record = session.get(Record, instance_id)
            if record:
                session.delete(record)
            return record is not None

    def record_upload_failure(self, instance_id, error, max_retries):
        """Track a failed upload attempt. Returns the new status or None."""
        with session_scope(self.session_factory) as session:
            record = session.get(Record, instance_id)
            if record is None:
                return None
            record.retry_count = (record.retry_count or 0) + 1
            record.last_retry_at = now()
            record.last_error = str(error)
            if record.retry_count >= max_retries:
                record.status = RecordStatus.PERMANENTLY_FAILED
            else:
                record.status = RecordStatus.FAILED
            return record.status

    def mark_uploaded(self, instance_id):
        """Flag a record the server already accepted so it is never sent again."""
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(Record)
                .where(Record.instance_id == instance_id)
                .values(status=RecordStatus.UPLOADED, updated_at=now())
            )
            return result.rowcount > 0

    def delete_uploaded(self, enketo_id):
        """Delete records left behind after an upload whose removal failed."""
        with session_scope(self.session_factory) as session:
            records = session.query(Record).filter_by(
                enketo_id=enketo_id, status=RecordStatus.UPLOADED
            ).all()
            for record in records:
                session.delete(record)
            return len(records)

    def reset_failed_records(self, instance_ids=None):
        """Put permanently failed records back into the queue."""
        with session_scope(self.session_factory) as session:
            query = session.query(Record).filter_by(status=RecordStatus.PERMANENTLY_FAILED)
            if instance_ids:
                query = query.filter(Record.instance_id.in_(instance_ids))
            count = 0
            for record in query.all():
                record.status = RecordStatus.FAILED
                record.retry_count = 0
                record.last_retry_at = None
                count += 1
            return count

    # Autosave operations
    def get_autosaved(self, key):
        """Get the autosave snapshot stored under key."""
        session = self._get_session()
        try:
            snapshot = session.get(AutoSavedRecord, key)
            return AutoSavedSnapshot.model_validate(snapshot) if snapshot else None
        finally:
            session.close()

    def put_autosaved(self, key, enketo_id, xml, files):
        """Create or overwrite the single autosave snapshot for key."""
        with session_scope(self.session_factory) as session:
            snapshot = session.get(AutoSavedRecord, key)
            if snapshot is None:
                snapshot = AutoSavedRecord(key=key, enketo_id=enketo_id)
                session.add(snapshot)
            snapshot.xml = xml
            snapshot.files = _file_rows(AutoSavedFile, files)
            session.flush()
            session.refresh(snapshot)
            return AutoSavedSnapshot.model_validate(snapshot)

    def delete_autosaved(self, key):
        """Delete the autosave snapshot stored under key."""
        with session_scope(self.session_factory) as session:
            snapshot = session.get(AutoSavedRecord, key)
            if snapshot:
                session.delete(snapshot)
            return snapshot is not None

    # Counter operations
    def increment_counter(self, survey_id):
        """Increment and return the counter of a survey in one transaction.

        Another process sharing the database may create the counter row
        between the update and the insert; the increment is then retried
        against that row.
        """
        try:
            return self._increment_counter(survey_id)
        except IntegrityError:
            self.logger.debug(f"Counter row for {survey_id} created concurrently, retrying")
            return self._increment_counter(survey_id)

    def _increment_counter(self, survey_id):
        with session_scope(self.session_factory) as session:
            result = session.execute(
                update(RecordCounter)
                .where(RecordCounter.survey_id == survey_id)
                .values(value=RecordCounter.value + 1, updated_at=now())
            )
            if result.rowcount == 0:
                session.add(RecordCounter(survey_id=survey_id, value=1))
                session.flush()
                return 1
            return session.execute(
                select(RecordCounter.value).where(RecordCounter.survey_id == survey_id)
            ).scalar_one()

    def get_counter(self, survey_id):
        """Read the counter of a survey without incrementing it."""
        session = self._get_session()
        try:
            counter = session.get(RecordCounter, survey_id)
            return counter.value if counter else 0
        finally:
            session.close()

    # Property operations
    def get_property(self, key):
        session = self._get_session()
        try:
            prop = session.get(StoreProperty, key)
            return prop.value if prop else None
        finally:
            session.close()

    def set_property(self, key, value):
        with session_scope(self.session_factory) as session:
            prop = session.get(StoreProperty, key)
            if prop is None:
                prop = StoreProperty(key=key)
                session.add(prop)
            prop.value = value
