"""
Tests for the advance-control and form predicate tables
"""
import re

from heuristics import choose_form, find_advance, is_advance_kind, match_advance


class TestAdvanceKind:

    def test_buttons_and_links(self):
        assert is_advance_kind({"tag": "button"})
        assert is_advance_kind({"tag": "a"})
        assert is_advance_kind({"tag": "div", "role": "button"})

    def test_input_types(self):
        assert is_advance_kind({"tag": "input", "type": "submit"})
        assert is_advance_kind({"tag": "input", "type": "image"})
        assert not is_advance_kind({"tag": "input", "type": "text"})
        assert not is_advance_kind({"tag": "input", "type": "reset"})


class TestMatchAdvance:

    def test_text(self):
        assert match_advance({"tag": "button", "text": "Next step"}) == "text"

    def test_case_insensitive(self):
        assert match_advance({"tag": "a", "text": "CONTINUE"}) == "text"

    def test_value(self):
        assert match_advance({"tag": "input", "type": "button", "value": "Proceed"}) == "value"

    def test_aria_label(self):
        assert match_advance({"tag": "button", "text": "", "aria_label": "Go forward"}) == "aria-label"

    def test_arrow_glyph(self):
        assert match_advance({"tag": "button", "text": "»"}) == "text"

    def test_whole_words_only(self):
        assert match_advance({"tag": "button", "text": "Nextcloud login"}) is None

    def test_rejects_text_input_with_matching_value(self):
        assert match_advance({"tag": "input", "type": "text", "value": "next"}) is None

    def test_custom_table(self):
        table = [{"name": "send", "attr": "text", "pattern": re.compile(r"send", re.I)}]
        assert match_advance({"tag": "button", "text": "Send"}, table) == "send"
        assert match_advance({"tag": "button", "text": "Next"}, table) is None


class TestFindAdvance:

    def test_document_order(self):
        cands = [
            {"index": 0, "tag": "a", "text": "Home"},
            {"index": 1, "tag": "button", "text": "Back"},
            {"index": 2, "tag": "button", "aria_label": "next page"},
            {"index": 3, "tag": "button", "text": "Next"},
        ]
        cand, rule = find_advance(cands)
        assert cand["index"] == 2
        assert rule == "aria-label"

    def test_none(self):
        assert find_advance([{"index": 0, "tag": "button", "text": "Back"}]) is None
        assert find_advance([]) is None


class TestChooseForm:

    def test_first_rendered(self):
        forms = [{"index": 0, "rendered": False}, {"index": 1, "rendered": True}, {"index": 2, "rendered": True}]
        assert choose_form(forms)["index"] == 1

    def test_falls_back_to_first(self):
        forms = [{"index": 0, "rendered": False}, {"index": 1, "rendered": False}]
        assert choose_form(forms)["index"] == 0

    def test_no_forms(self):
        assert choose_form([]) is None
