"""
Tests for page snapshots and flow files
"""
import asyncio
import json

from fakes import FakeDocument, control, step
from snapshot import (
    FieldDescriptor,
    PageSnapshot,
    field_from_control,
    flow_fingerprint,
    load_flow,
    save_flow,
    snapshot,
)


def test_snapshot_collects_fillable_fields():
    doc = FakeDocument([step("https://x.test/a", title="Apply", controls=[
        control("first", label="  First\n name "),
        control("token", type="hidden"),
        control("notes", tag="textarea", placeholder="Anything else?"),
        control("go", tag="button"),
    ])])
    snap = asyncio.run(snapshot(doc))

    assert snap.title == "Apply"
    assert snap.url == "https://x.test/a"
    assert snap.selectors == ('[name="first"]', '[name="notes"]')
    assert snap.fields[0].label == "First name"
    assert snap.fields[1].label == "Anything else?"
    assert snap.fields[1].tag == "textarea"


def test_snapshot_without_form_is_empty():
    doc = FakeDocument([step("https://x.test/done", has_form=False)])
    snap = asyncio.run(snapshot(doc))
    assert snap.fields == []
    assert snap.url == "https://x.test/done"


def test_field_from_control_keeps_type():
    fd = field_from_control(control("agree", type="CHECKBOX"))
    assert fd.input_type == "checkbox"
    assert fd.selector == '[name="agree"]'


def test_signature_compares_url_and_selectors():
    a = PageSnapshot("t", "u", [FieldDescriptor('[name="a"]', "input")])
    b = PageSnapshot("other title", "u", [FieldDescriptor('[name="a"]', "input", label="A")])
    c = PageSnapshot("t", "u", [FieldDescriptor('[name="b"]', "input")])
    assert a.signature() == b.signature()
    assert a.signature() != c.signature()


def test_flow_file_round_trip(tmp_path):
    flow = [
        PageSnapshot("One", "https://x.test/1", [FieldDescriptor('[name="a"]', "input", "text", "a")]),
        PageSnapshot("Two", "https://x.test/2", []),
    ]
    path = tmp_path / "flow.json"
    save_flow(path, flow)

    assert json.loads(path.read_text(encoding="utf-8"))["steps"][0]["fields"][0]["name"] == "a"
    assert load_flow(path) == flow


def test_fingerprint_ignores_query_and_titles():
    f1 = [PageSnapshot("A", "https://x.test/form?session=1", [FieldDescriptor('[name="a"]', "input")])]
    f2 = [PageSnapshot("B", "https://x.test/form?session=2", [FieldDescriptor('[name="a"]', "input")])]
    f3 = [PageSnapshot("A", "https://x.test/form", [FieldDescriptor('[name="b"]', "input")])]
    assert flow_fingerprint(f1) == flow_fingerprint(f2)
    assert flow_fingerprint(f1) != flow_fingerprint(f3)
