"""Session adapter over the in-memory form editing session.

The coordinator only talks to the SessionAdapter contract. FormSession is the
concrete adapter over an XForm model string: it tracks instance data, record
identity fields, attachments and the edit status. Form logic evaluation is
owned by the form engine and plugged in through the validator callable.
"""
import copy
import logging
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Callable, List, Optional

from shared.models import now
from shared.schemas import SessionSnapshot, normalize_files, to_file_ref
from shared.utils import generate_instance_id
from .errors import LoadError


@dataclass
class FormData:
    """Everything needed to (re)build an editing session."""
    model_str: str
    instance_str: Optional[str] = None
    survey_name: Optional[str] = None
    external: List[dict] = field(default_factory=list)
    submitted: bool = False

    def blank(self):
        """Same form, no instance data."""
        return FormData(model_str=self.model_str, survey_name=self.survey_name, external=self.external)

    def with_instance(self, instance_str, submitted=False):
        return FormData(model_str=self.model_str, instance_str=instance_str,
                        survey_name=self.survey_name, external=self.external, submitted=submitted)


class SessionAdapter:
    """Accessors the coordinator needs from an editing session."""

    def init(self) -> List[str]:
        """Initialize the session. Returns non-fatal load errors, raises LoadError if unusable."""
        raise NotImplementedError

    def get_snapshot(self) -> SessionSnapshot:
        raise NotImplementedError

    def has_unsaved_edits(self) -> bool:
        raise NotImplementedError

    def get_bound_record_name(self) -> Optional[str]:
        raise NotImplementedError

    def bind_record_name(self, name):
        raise NotImplementedError

    def reset_to_blank(self):
        raise NotImplementedError

    def reset_to_instance(self, xml) -> List[str]:
        raise NotImplementedError

    def before_save_hook(self):
        raise NotImplementedError

    def get_survey_name(self) -> str:
        raise NotImplementedError

    def get_instance_name(self) -> Optional[str]:
        raise NotImplementedError

    def validate(self) -> bool:
        raise NotImplementedError

    def set_files(self, entries):
        raise NotImplementedError

    def mark_edited(self):
        raise NotImplementedError


def _local(tag):
    return tag.rsplit('}', 1)[-1] if isinstance(tag, str) else tag


def _find_child(element, name):
    for child in element:
        if _local(child.tag) == name:
            return child
    return None


def _namespace(tag):
    return tag[1:].split('}', 1)[0] if tag.startswith('{') else None


def _leaf_paths(element, prefix=''):
    paths = set()
    for child in element:
        path = f"{prefix}/{_local(child.tag)}" if prefix else _local(child.tag)
        if len(child):
            paths |= _leaf_paths(child, path)
        else:
            paths.add(path)
    return paths


class FormSession(SessionAdapter):
    """Editing session over an XForm model and optional instance string."""

    META = 'meta'
    INSTANCE_ID = 'instanceID'
    DEPRECATED_ID = 'deprecatedID'
    INSTANCE_NAME = 'instanceName'
    TIME_END = 'timeEnd'

    def __init__(self, form_data: FormData, validator: Optional[Callable] = None):
        self.logger = logging.getLogger(self.__class__.__name__)
        self.form_data = form_data
        self.validator = validator
        self.template_root = None
        self.root = None
        self.files = []
        self.record_name = None
        self.edited = False

    # Initialization
    def _parse_template(self):
        try:
            model = ET.fromstring(self.form_data.model_str)
        except ET.ParseError as e:
            raise LoadError([f"Form model could not be parsed: {e}"])

        instance = model if _local(model.tag) == 'instance' else None
        if instance is None:
            instance = next((el for el in model.iter() if _local(el.tag) == 'instance'), None)
        if instance is None or not len(instance):
            raise LoadError(["Form model has no primary instance"])
        return instance[0]

    def _ensure_meta(self, root):
        meta = _find_child(root, self.META)
        if meta is None:
            ns = _namespace(root.tag)
            meta = ET.SubElement(root, f"{{{ns}}}{self.META}" if ns else self.META)
        return meta

    def _meta_value(self, name):
        meta = _find_child(self.root, self.META) if self.root is not None else None
        node = _find_child(meta, name) if meta is not None else None
        if node is None or not (node.text or '').strip():
            return None
        return node.text.strip()

    def _set_meta_value(self, name, value):
        meta = self._ensure_meta(self.root)
        node = _find_child(meta, name)
        if node is None:
            ns = _namespace(meta.tag)
            node = ET.SubElement(meta, f"{{{ns}}}{name}" if ns else name)
        node.text = value

    def init(self):
        """Build the instance from the template and the optional instance string."""
        self.template_root = self._parse_template()
        warnings = []

        if self.form_data.instance_str:
            try:
                root = ET.fromstring(self.form_data.instance_str)
            except ET.ParseError as e:
                raise LoadError([f"Record data could not be parsed: {e}"])
            if _local(root.tag) != _local(self.template_root.tag):
                raise LoadError([
                    f"Record data belongs to '{_local(root.tag)}', not to form '{_local(self.template_root.tag)}'"
                ])
            known = _leaf_paths(self.template_root)
            for path in sorted(_leaf_paths(root) - known):
                if not path.startswith(f"{self.META}/"):
                    warnings.append(f"Unrecognized node in record data: /{path}")
            self.root = root
        else:
            self.root = copy.deepcopy(self.template_root)

        current_id = self._meta_value(self.INSTANCE_ID)
        if self.form_data.instance_str and self.form_data.submitted and current_id:
            # Editing a submitted record supersedes it under a new instance id
            self._set_meta_value(self.DEPRECATED_ID, current_id)
            current_id = None
        if not current_id:
            self._set_meta_value(self.INSTANCE_ID, generate_instance_id())

        self.files = []
        self.record_name = None
        self.edited = False
        for warning in warnings:
            self.logger.warning(warning)
        return warnings

    # Adapter contract
    def get_snapshot(self):
        return SessionSnapshot(
            xml=self.get_data_str(),
            instance_id=self.get_instance_id(),
            deprecated_id=self.get_deprecated_id(),
            files=list(self.files)
        )

    def has_unsaved_edits(self):
        return self.edited

    def get_bound_record_name(self):
        return self.record_name

    def bind_record_name(self, name):
        self.record_name = name

    def reset_to_blank(self):
        self.form_data = self.form_data.blank()
        return self.init()

    def reset_to_instance(self, xml, submitted=False):
        self.form_data = self.form_data.with_instance(xml, submitted=submitted)
        return self.init()

    def before_save_hook(self):
        """Stamp the completion time if the form records one."""
        meta = _find_child(self.root, self.META)
        if meta is not None and _find_child(meta, self.TIME_END) is not None:
            self._set_meta_value(self.TIME_END, now().isoformat(timespec='seconds') + 'Z')

    def get_survey_name(self):
        if self.form_data.survey_name:
            return self.form_data.survey_name
        if self.template_root is not None:
            return self.template_root.get('id') or _local(self.template_root.tag)
        return ''

    def get_instance_name(self):
        return self._meta_value(self.INSTANCE_NAME)

    def validate(self):
        if self.validator is None:
            return True
        return bool(self.validator(self))

    # Session data
    def get_data_str(self):
        return ET.tostring(self.root, encoding='unicode')

    def get_instance_id(self):
        return self._meta_value(self.INSTANCE_ID)

    def get_deprecated_id(self):
        return self._meta_value(self.DEPRECATED_ID)

    def _node(self, path):
        node = self.root
        for part in path.strip('/').split('/'):
            node = _find_child(node, part)
            if node is None:
                raise KeyError(f"Unknown node: /{path.strip('/')}")
        return node

    def get_value(self, path):
        return self._node(path).text or ''

    def set_value(self, path, value):
        """Set a leaf value and mark the session as edited."""
        node = self._node(path)
        if len(node):
            raise ValueError(f"Cannot set value of group /{path.strip('/')}")
        node.text = '' if value is None else str(value)
        self.edited = True

    def add_file(self, entry):
        """Attach a file (name, (name, bytes) or dict) and mark the session as edited."""
        file_ref = to_file_ref(entry)
        self.files = [f for f in self.files if f.name != file_ref.name] + [file_ref]
        self.edited = True
        return file_ref

    def set_files(self, entries):
        self.files = normalize_files(entries)

    def mark_edited(self):
        self.edited = True
