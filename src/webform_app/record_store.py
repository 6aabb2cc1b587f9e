"""Durable local storage for records, the autosave slot and record counters."""
import json
import logging
import threading
import zipfile
from functools import wraps
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from shared.enums import RecordStatus
from shared.models import Base, ACTIVE_RECORD_PROPERTY, now
from shared.schemas import RecordCreate, ContentFile, normalize_files
from shared.utils import autosave_key, compute_content_hash, safe_filename

from .errors import DuplicateName, StorageUnavailable, ExportError
from .repositories.record_repository import RecordRepository


def storage_operation(operation):
    """Decorator normalizing SQLAlchemy faults into the record error taxonomy.

    Uniqueness violations become DuplicateName, every other database fault
    becomes StorageUnavailable. Errors are logged once here.
    """
    def decorator(func):
        @wraps(func)
        def wrapper(self, *args, **kwargs):
            try:
                return func(self, *args, **kwargs)
            except IntegrityError as e:
                record = args[0] if args else None
                name = record.get('name') if isinstance(record, dict) else getattr(record, 'name', None)
                self.logger.warning(f"Uniqueness violation during {operation}: {e.orig}")
                raise DuplicateName(name=name, message=str(e.orig)) from e
            except SQLAlchemyError as e:
                self.logger.error(f"Storage failure during {operation}: {e}", exc_info=True)
                raise StorageUnavailable(f"Failed to {operation}: {e}") from e
        return wrapper
    return decorator


class RecordStore:
    """Keyed record storage for one survey, backed by SQLite.

    Records are keyed by instance id, the autosave snapshot by a sentinel key
    derived from the survey identity, counters by survey identity.
    """

    # Everything except records the server already accepted
    STORED_STATUSES = (
        RecordStatus.DRAFT, RecordStatus.QUEUED, RecordStatus.FAILED, RecordStatus.PERMANENTLY_FAILED
    )

    def __init__(self, db_path, enketo_id):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.db_path = str(db_path)
        self.enketo_id = enketo_id
        self.autosave_key = autosave_key(enketo_id)

        if self.db_path != ':memory:':
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)
        self.logger.info(f"Initializing RecordStore with path: {self.db_path} (survey {enketo_id})")

        self.engine = create_engine(f'sqlite:///{self.db_path}')

        @event.listens_for(self.engine, "connect")
        def enable_foreign_keys(db_conn, conn_record):
            cursor = db_conn.cursor()
            cursor.execute("PRAGMA foreign_keys = ON")
            cursor.close()

        Base.metadata.create_all(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)
        self.repository = RecordRepository(self.Session)

        # Serializes counter increments and multi-step writes within the process
        self._write_lock = threading.RLock()
        self.logger.info("RecordStore initialized")

    def _build_record(self, record):
        if isinstance(record, RecordCreate):
            return record
        data = dict(record)
        data.setdefault('enketo_id', self.enketo_id)
        return RecordCreate(**data)

    @staticmethod
    def _status_for(record):
        return RecordStatus.DRAFT if record.draft else RecordStatus.QUEUED

    @storage_operation("get record")
    def get(self, instance_id):
        """Return the record or None when absent."""
        if not instance_id:
            return None
        return self.repository.get_record(instance_id)

    @storage_operation("create record")
    def set(self, record):
        """Store a new record. Raises DuplicateName if the name is taken."""
        record = self._build_record(record)
        with self._write_lock:
            stored = self.repository.add_record(record, self._status_for(record))
        self.logger.info(f"Stored record {stored.instance_id} ({stored.status})")
        return stored

    @storage_operation("update record")
    def update(self, record, previous_name=None):
        """Replace an existing record. Queued records can no longer be changed."""
        record = self._build_record(record)
        with self._write_lock:
            status = self.repository.get_record_status(record.instance_id)
            if status is not None and status != RecordStatus.DRAFT:
                raise StorageUnavailable(
                    f"Record {record.instance_id} is queued for upload and cannot be changed"
                )
            stored = self.repository.replace_record(
                record, self._status_for(record), previous_name=previous_name or record.name
            )
        self.logger.info(f"Updated record {stored.instance_id} ({stored.status})")
        return stored

    @storage_operation("remove record")
    def remove(self, instance_id):
        with self._write_lock:
            return self.repository.delete_record(instance_id)

    @storage_operation("list records")
    def get_records(self, include_queued=True):
        """Records of this survey; drafts only unless include_queued."""
        statuses = self.STORED_STATUSES if include_queued else [RecordStatus.DRAFT]
        return self.repository.list_records(self.enketo_id, statuses)

    @storage_operation("list uploadable records")
    def get_uploadable(self):
        """Final records waiting for (re)transmission."""
        return self.repository.list_records(
            self.enketo_id, [RecordStatus.QUEUED, RecordStatus.FAILED]
        )

    @storage_operation("mark record uploaded")
    def mark_uploaded(self, instance_id):
        with self._write_lock:
            return self.repository.mark_uploaded(instance_id)

    @storage_operation("purge uploaded records")
    def purge_uploaded(self):
        """Delete records whose upload succeeded but whose removal did not."""
        with self._write_lock:
            removed = self.repository.delete_uploaded(self.enketo_id)
        if removed:
            self.logger.info(f"Purged {removed} uploaded record(s)")
        return removed

    @storage_operation("track upload failure")
    def record_upload_failure(self, instance_id, error, max_retries):
        return self.repository.record_upload_failure(instance_id, error, max_retries)

    @storage_operation("recover failed uploads")
    def recover_failed(self, instance_ids=None):
        return self.repository.reset_failed_records(instance_ids)

    @storage_operation("get autosaved record")
    def get_autosaved(self):
        return self.repository.get_autosaved(self.autosave_key)

    @storage_operation("update autosaved record")
    def update_autosaved(self, partial):
        """Overwrite the autosave slot with the variable portion of a record."""
        files = normalize_files(partial.get('files'))
        with self._write_lock:
            return self.repository.put_autosaved(
                self.autosave_key, self.enketo_id, partial['xml'], files
            )

    @storage_operation("remove autosaved record")
    def remove_autosaved(self):
        with self._write_lock:
            removed = self.repository.delete_autosaved(self.autosave_key)
        if removed:
            self.logger.debug("Autosaved record removed")
        return removed

    @storage_operation("increment counter")
    def get_counter(self, survey_id=None):
        """Atomically increment and return the counter of a survey."""
        with self._write_lock:
            return self.repository.increment_counter(survey_id or self.enketo_id)

    @storage_operation("set active record")
    def set_active(self, instance_id):
        self.repository.set_property(ACTIVE_RECORD_PROPERTY, instance_id)

    @storage_operation("get active record")
    def get_active(self):
        return self.repository.get_property(ACTIVE_RECORD_PROPERTY)

    def export_to_zip(self, survey_name, export_dir):
        """Write every stored record of the survey into a zip archive.

        Returns the archive path. Raises ExportError carrying the archive path
        if some records could not be written.
        """
        Path(export_dir).mkdir(parents=True, exist_ok=True)
        timestamp = now().strftime('%Y%m%d_%H%M%S')
        export_path = Path(export_dir) / f"{safe_filename(survey_name, 'records')}_{timestamp}.zip"

        records = self.get_records(include_queued=True)
        errors = []
        manifest = []
        try:
            with zipfile.ZipFile(export_path, 'w', zipfile.ZIP_DEFLATED) as export_zip:
                for record in records:
                    folder = safe_filename(record.name or record.instance_id)
                    try:
                        export_zip.writestr(f"{folder}/submission.xml", record.xml)
                        attachments = []
                        for file_ref in record.files:
                            if isinstance(file_ref, ContentFile):
                                export_zip.writestr(f"{folder}/{safe_filename(file_ref.name, 'file')}", file_ref.content)
                                attachments.append(file_ref.name)
                            else:
                                errors.append(f"{record.name}: attachment {file_ref.name} has no content")
                        manifest.append({
                            'instanceId': record.instance_id,
                            'name': record.name,
                            'draft': record.draft,
                            'status': str(record.status),
                            'hash': compute_content_hash(record.xml),
                            'files': attachments
                        })
                    except (OSError, ValueError, zipfile.BadZipFile) as e:
                        errors.append(f"{record.name}: {e}")
                export_zip.writestr('manifest.json', json.dumps({
                    'enketoId': self.enketo_id,
                    'surveyName': survey_name,
                    'exportedAt': timestamp,
                    'records': manifest
                }, indent=2))
        except OSError as e:
            self.logger.error(f"Export failed: {e}")
            if export_path.exists():
                export_path.unlink()
            raise ExportError(str(e)) from e

        if errors:
            self.logger.warning(f"Export completed with {len(errors)} error(s): {errors}")
            raise ExportError('; '.join(errors), export_file=str(export_path))

        self.logger.info(f"Exported {len(records)} record(s) to {export_path}")
        return str(export_path)

    def close(self):
        """Dispose of the engine."""
        if hasattr(self, 'engine'):
            self.engine.dispose()
            self.logger.info("Database engine disposed")
