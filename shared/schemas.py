"""Pydantic schemas for validation and serialization."""
from datetime import datetime
from typing import Optional, List, Union, Literal, Any, Annotated
from pydantic import BaseModel, Field, field_validator, ConfigDict, TypeAdapter
import bleach
from shared.enums import RecordStatus


MAX_RECORD_NAME_LENGTH = 200


class ValidationError(Exception):
    """Raised when input validation fails."""
    pass


def validate_string_length(value: str, field_name: str, min_length: int = 0, max_length: Optional[int] = None) -> str:
    """Validate string length constraints."""
    if not isinstance(value, str):
        raise ValidationError(f"Validation failed: {field_name} must be a string")
    value = value.strip()
    if len(value) < min_length:
        raise ValidationError(f"Validation failed: {field_name} must be at least {min_length} characters")
    if max_length and len(value) > max_length:
        raise ValidationError(f"Validation failed: {field_name} must be no more than {max_length} characters")
    return value


def sanitize_record_name(text: str) -> str:
    """Strip markup from a user-entered record name.

    Plain text (the common case) is returned untouched without invoking bleach.
    """
    if not text:
        return text
    if '<' not in text and '>' not in text and '&' not in text:
        return text
    return bleach.clean(text, tags=[], attributes={}, strip=True)


# File reference variants
class NamedFile(BaseModel):
    """Attachment known only by name, content lives elsewhere."""
    kind: Literal['named'] = 'named'
    name: str = Field(..., min_length=1)

    model_config = ConfigDict(frozen=True)


class ContentFile(BaseModel):
    """Attachment carrying its content in memory."""
    kind: Literal['content'] = 'content'
    name: str = Field(..., min_length=1)
    content: bytes

    model_config = ConfigDict(frozen=True)


FileRef = Annotated[Union[NamedFile, ContentFile], Field(discriminator='kind')]

_file_ref_adapter = TypeAdapter(FileRef)


def to_file_ref(entry: Any):
    """Normalize an attachment entry into a NamedFile or ContentFile.

    Accepts plain names, (name, content) tuples, dicts with 'name' and an
    optional 'content' or 'item', and existing file references.
    """
    if isinstance(entry, (NamedFile, ContentFile)):
        return entry
    if isinstance(entry, str):
        return NamedFile(name=entry)
    if isinstance(entry, tuple) and len(entry) == 2:
        name, content = entry
        return ContentFile(name=name, content=content) if content is not None else NamedFile(name=name)
    if isinstance(entry, dict):
        if 'kind' in entry:
            return _file_ref_adapter.validate_python(entry)
        content = entry.get('content', entry.get('item'))
        if content is None:
            return NamedFile(name=entry['name'])
        return ContentFile(name=entry['name'], content=content)
    if hasattr(entry, 'name') and hasattr(entry, 'content'):
        # Stored file rows
        if entry.content is None:
            return NamedFile(name=entry.name)
        return ContentFile(name=entry.name, content=entry.content)
    raise ValidationError(f"Validation failed: unsupported file entry {entry!r}")


def normalize_files(entries) -> List:
    """Normalize a sequence of attachment entries, preserving order."""
    return [to_file_ref(entry) for entry in (entries or [])]


# Session snapshot
class SessionSnapshot(BaseModel):
    xml: str
    instance_id: Optional[str] = None
    deprecated_id: Optional[str] = None
    files: List[FileRef] = Field(default_factory=list)

    @field_validator('files', mode='before')
    @classmethod
    def normalize_file_entries(cls, v):
        return normalize_files(v)


# Record Schemas
class RecordBase(BaseModel):
    instance_id: str = Field(..., min_length=1, max_length=255)
    enketo_id: str = Field(..., min_length=1, max_length=100)
    name: Optional[str] = Field(default=None, max_length=MAX_RECORD_NAME_LENGTH)
    xml: str
    draft: bool = True
    deprecated_id: Optional[str] = Field(default=None, max_length=255)
    files: List[FileRef] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def validate_name(cls, v):
        if v is None:
            return v
        return validate_string_length(sanitize_record_name(v), 'name', 1, MAX_RECORD_NAME_LENGTH)

    @field_validator('files', mode='before')
    @classmethod
    def normalize_file_entries(cls, v):
        return normalize_files(v)

    model_config = ConfigDict(use_enum_values=True)


class RecordCreate(RecordBase):
    pass


class RecordResponse(RecordBase):
    status: RecordStatus = RecordStatus.DRAFT
    retry_count: int = 0
    last_retry_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class AutoSavedSnapshot(BaseModel):
    """Variable portion of a record kept in the autosave slot."""
    xml: str
    files: List[FileRef] = Field(default_factory=list)
    enketo_id: Optional[str] = None
    key: Optional[str] = None

    @field_validator('files', mode='before')
    @classmethod
    def normalize_file_entries(cls, v):
        return normalize_files(v)

    model_config = ConfigDict(from_attributes=True)
