"""
Tests for field mappings, suggestions and the mapping store
"""
import json

import pytest

from mappings import (
    MappingStore,
    clean_mapping,
    read_mapping_file,
    suggest_mapping,
    tag_fields,
    write_mapping_file,
)
from snapshot import FieldDescriptor, PageSnapshot

FLOW = [
    PageSnapshot("One", "https://x.test/apply?sid=1", [
        FieldDescriptor('[name="first_name"]', "input", "text", "first_name"),
        FieldDescriptor("#mail", "input", "email", "", "mail"),
        FieldDescriptor("form > input:nth-of-type(3)", "input", "tel", "", "", "Phone number"),
        FieldDescriptor('[name="x1"]', "input", "text", "x1"),
    ]),
]


def test_tag_fields():
    fields = FLOW[0].fields[:2]
    tagged = tag_fields(fields, {'[name="first_name"]': "First Name"})
    assert tagged == [(fields[0], "First Name"), (fields[1], None)]


def test_clean_mapping_drops_empty_entries():
    assert clean_mapping({"a": "A", "b": "", "": "C"}) == {"a": "A"}


def test_suggest_by_name_id_and_label():
    header = ["First Name", "MAIL", "phone-number", "Notes"]
    assert suggest_mapping(FLOW, header) == {
        '[name="first_name"]': "First Name",
        "#mail": "MAIL",
        "form > input:nth-of-type(3)": "phone-number",
    }


def test_mapping_file(tmp_path):
    path = tmp_path / "mapping.json"
    write_mapping_file(path, {"#mail": "Email"})
    assert read_mapping_file(path) == {"#mail": "Email"}


def test_mapping_file_must_be_object(tmp_path):
    path = tmp_path / "mapping.json"
    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ValueError):
        read_mapping_file(path)


class TestMappingStore:

    def test_save_and_load(self, tmp_path):
        store = MappingStore(tmp_path / "store.json")
        store.save(FLOW, {"#mail": "Email"})

        same_form_new_session = [PageSnapshot("One", "https://x.test/apply?sid=2", FLOW[0].fields)]
        assert store.load(same_form_new_session) == {"#mail": "Email"}

        raw = json.loads((tmp_path / "store.json").read_text(encoding="utf-8"))
        (entry,) = raw.values()
        assert entry["steps"] == 1
        assert entry["first_url"] == "https://x.test/apply?sid=1"

    def test_unknown_flow(self, tmp_path):
        store = MappingStore(tmp_path / "missing.json")
        assert store.load(FLOW) == {}
