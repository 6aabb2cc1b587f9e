"""Tests for the XForm editing session adapter."""
import pytest

from shared.schemas import ContentFile, NamedFile
from src.webform_app.errors import LoadError
from src.webform_app.session_adapter import FormData, FormSession


@pytest.fixture
def session(form_data):
    form_session = FormSession(form_data)
    assert form_session.init() == []
    return form_session


class TestInit:
    """Test session construction."""

    def test_blank_session_gets_instance_id(self, session):
        assert session.get_instance_id().startswith('uuid:')
        assert session.get_deprecated_id() is None
        assert session.has_unsaved_edits() is False
        assert session.get_bound_record_name() is None

    def test_instance_data_is_loaded(self, form_data, instance_xml):
        session = FormSession(form_data.with_instance(instance_xml()))
        assert session.init() == []
        assert session.get_value('household') == 'Smith'
        assert session.get_instance_id() == 'uuid:rec-1'

    def test_unknown_nodes_are_warnings(self, form_data, instance_xml):
        session = FormSession(form_data.with_instance(instance_xml(extra='<pets>2</pets>')))
        warnings = session.init()
        assert warnings == ['Unrecognized node in record data: /pets']
        assert session.get_value('household') == 'Smith'

    def test_unparseable_instance(self, form_data):
        session = FormSession(form_data.with_instance('<data><broken>'))
        with pytest.raises(LoadError, match="could not be parsed"):
            session.init()

    def test_instance_of_other_form(self, form_data):
        session = FormSession(form_data.with_instance('<other><a/></other>'))
        with pytest.raises(LoadError) as exc_info:
            session.init()
        assert "not to form 'data'" in exc_info.value.causes[0]

    def test_model_without_instance(self):
        session = FormSession(FormData(model_str='<model><bind/></model>'))
        with pytest.raises(LoadError, match="no primary instance"):
            session.init()

    def test_submitted_record_gets_new_id(self, form_data, instance_xml):
        session = FormSession(form_data.with_instance(instance_xml(), submitted=True))
        session.init()
        assert session.get_deprecated_id() == 'uuid:rec-1'
        assert session.get_instance_id() != 'uuid:rec-1'


class TestEditing:
    """Test value changes and attachments."""

    def test_set_value_marks_edited(self, session):
        session.set_value('/household', 'Jones')
        assert session.get_value('household') == 'Jones'
        assert session.has_unsaved_edits() is True

    def test_set_unknown_path(self, session):
        with pytest.raises(KeyError):
            session.set_value('nothing', 'x')

    def test_set_group_value(self, session):
        with pytest.raises(ValueError):
            session.set_value('meta', 'x')

    def test_add_file_replaces_same_name(self, session):
        session.add_file('photo.jpg')
        session.add_file(('photo.jpg', b'123'))
        assert session.get_snapshot().files == [ContentFile(name='photo.jpg', content=b'123')]
        assert session.has_unsaved_edits() is True

    def test_snapshot(self, session):
        session.set_value('household', 'Jones')
        snapshot = session.get_snapshot()
        assert '<household>Jones</household>' in snapshot.xml
        assert snapshot.instance_id == session.get_instance_id()

    def test_before_save_hook_stamps_time_end(self, session):
        session.before_save_hook()
        assert session.get_value('meta/timeEnd').endswith('Z')

    def test_reset_to_blank(self, session):
        session.set_value('household', 'Jones')
        session.bind_record_name('Census - 1')
        old_id = session.get_instance_id()

        session.reset_to_blank()
        assert session.get_value('household') == ''
        assert session.get_bound_record_name() is None
        assert session.has_unsaved_edits() is False
        assert session.get_instance_id() != old_id

    def test_reset_to_instance(self, session, instance_xml):
        session.add_file('a.jpg')
        assert session.reset_to_instance(instance_xml(household='Lee')) == []
        assert session.get_value('household') == 'Lee'
        assert session.get_snapshot().files == []

    def test_set_files(self, session):
        session.set_files(['a.jpg'])
        assert session.get_snapshot().files == [NamedFile(name='a.jpg')]
        assert session.has_unsaved_edits() is False


class TestNamesAndValidation:
    """Test survey names, instance names and validation."""

    def test_survey_name_from_form_data(self, session):
        assert session.get_survey_name() == 'Census'

    def test_survey_name_from_root_id(self, form_data):
        session = FormSession(FormData(model_str=form_data.model_str))
        session.init()
        assert session.get_survey_name() == 'census'

    def test_instance_name(self, named_form_data):
        session = FormSession(named_form_data)
        session.init()
        assert session.get_instance_name() is None
        session.set_value('meta/instanceName', 'Smith household')
        assert session.get_instance_name() == 'Smith household'

    def test_validate_default(self, session):
        assert session.validate() is True

    def test_validate_with_validator(self, form_data):
        session = FormSession(form_data, validator=lambda s: s.get_value('household') != '')
        session.init()
        assert session.validate() is False
        session.set_value('household', 'Smith')
        assert session.validate() is True
