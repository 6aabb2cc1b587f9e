from datetime import datetime, timezone
from sqlalchemy import Column, Integer, String, Boolean, Text, LargeBinary, DateTime, ForeignKey, Index, text, Enum, CheckConstraint, UniqueConstraint
from sqlalchemy.orm import relationship, declarative_base
from shared.enums import RecordStatus

Base = declarative_base()

# Autosave snapshots are stored under keys with this prefix followed by the
# survey identity. Real instance ids are 'uuid:...' strings and never collide.
AUTOSAVE_KEY_PREFIX = '__autoSave_'

# Key of the store property holding the active record's instance id
ACTIVE_RECORD_PROPERTY = 'active_record'


def now():
    """Return current UTC datetime without tzinfo.

    SQLite strips timezone info, so naive UTC is stored and compared everywhere.
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TimestampMixin:
    """Mixin providing creation and update timestamps."""

    created_at = Column(DateTime, default=now)
    updated_at = Column(DateTime, default=now, onupdate=now)


class Record(Base, TimestampMixin):
    __tablename__ = 'record'
    instance_id = Column(String(255), primary_key=True, nullable=False)
    enketo_id = Column(String(100), nullable=False, index=True, server_default="")
    name = Column(String(200), nullable=True)
    xml = Column(Text, nullable=False, server_default="")
    draft = Column(Boolean, default=True, nullable=False, server_default='1')
    deprecated_id = Column(String(255), nullable=True)
    status = Column(Enum(RecordStatus, values_callable=lambda e: [m.value for m in e]), default=RecordStatus.DRAFT, nullable=False, server_default=text("'draft'"))
    retry_count = Column(Integer, default=0, server_default='0')
    last_retry_at = Column(DateTime)
    last_error = Column(Text, server_default="")
    files = relationship('RecordFile', backref='record', cascade='all, delete-orphan',
                         order_by='RecordFile.position', lazy='selectin')

    __table_args__ = (
        UniqueConstraint('enketo_id', 'name', name='uq_record_survey_name'),
        CheckConstraint('retry_count >= 0', name='chk_record_retry_count'),
    )

Index('idx_record_survey_status', Record.enketo_id, Record.status)


class RecordFile(Base):
    __tablename__ = 'record_file'
    id = Column(Integer, primary_key=True, nullable=False)
    record_id = Column(String(255), ForeignKey('record.instance_id', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(500), nullable=False, server_default="")
    content = Column(LargeBinary, nullable=True)
    position = Column(Integer, default=0, server_default='0')


class AutoSavedRecord(Base, TimestampMixin):
    """Single shadow copy of in-progress work for one survey."""
    __tablename__ = 'autosaved_record'
    key = Column(String(255), primary_key=True, nullable=False)
    enketo_id = Column(String(100), nullable=False, unique=True, server_default="")
    xml = Column(Text, nullable=False, server_default="")
    files = relationship('AutoSavedFile', backref='snapshot', cascade='all, delete-orphan',
                         order_by='AutoSavedFile.position', lazy='selectin')


class AutoSavedFile(Base):
    __tablename__ = 'autosaved_file'
    id = Column(Integer, primary_key=True, nullable=False)
    snapshot_key = Column(String(255), ForeignKey('autosaved_record.key', ondelete='CASCADE'), nullable=False, index=True)
    name = Column(String(500), nullable=False, server_default="")
    content = Column(LargeBinary, nullable=True)
    position = Column(Integer, default=0, server_default='0')


class RecordCounter(Base):
    __tablename__ = 'record_counter'
    survey_id = Column(String(100), primary_key=True, nullable=False)
    value = Column(Integer, nullable=False, default=0, server_default='0')
    updated_at = Column(DateTime, default=now, onupdate=now)

    __table_args__ = (
        CheckConstraint('value >= 0', name='chk_counter_non_negative'),
    )


class StoreProperty(Base):
    __tablename__ = 'store_property'
    key = Column(String(100), primary_key=True, nullable=False)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, default=now, onupdate=now)
