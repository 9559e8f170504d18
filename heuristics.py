# heuristics.py
"""
Ranked predicate tables used to read structure out of an unknown document.

Each table is a plain list so callers can pass their own. Advance entries match
a regex against one attribute of a candidate control; form entries carry a
``test`` callable. The first entry that accepts wins.
"""
import re
from typing import Any, Dict, List, Optional, Tuple

# progression vocabulary, matched case-insensitively anywhere in the attribute
ADVANCE_PATTERN = re.compile(r"\b(next|continue|proceed|forward|step|page)\b|[›»]", re.I)

BUTTON_INPUT_TYPES = {"button", "submit", "image"}

ADVANCE_HEURISTICS: List[Dict[str, Any]] = [
    {"name": "text", "attr": "text", "pattern": ADVANCE_PATTERN},
    {"name": "value", "attr": "value", "pattern": ADVANCE_PATTERN},
    {"name": "aria-label", "attr": "aria_label", "pattern": ADVANCE_PATTERN},
]

FORM_HEURISTICS: List[Dict[str, Any]] = [
    {"name": "rendered", "test": lambda form: bool(form.get("rendered"))},
]


def is_advance_kind(candidate: Dict[str, Any]) -> bool:
    tag = (candidate.get("tag") or "").lower()
    if tag in ("button", "a"):
        return True
    if tag == "input":
        return (candidate.get("type") or "").lower() in BUTTON_INPUT_TYPES
    return (candidate.get("role") or "").lower() == "button"


def match_advance(candidate: Dict[str, Any], heuristics=None) -> Optional[str]:
    """Name of the first heuristic that accepts the candidate, or None."""
    if not is_advance_kind(candidate):
        return None
    for h in heuristics or ADVANCE_HEURISTICS:
        test = h.get("test")
        if test is not None:
            if test(candidate):
                return h["name"]
            continue
        value = candidate.get(h["attr"]) or ""
        if value and h["pattern"].search(str(value)):
            return h["name"]
    return None


def find_advance(candidates: List[Dict[str, Any]], heuristics=None) -> Optional[Tuple[Dict[str, Any], str]]:
    # document order decides, not heuristic rank
    for c in candidates:
        hit = match_advance(c, heuristics)
        if hit:
            return c, hit
    return None


def choose_form(forms: List[Dict[str, Any]], heuristics=None) -> Optional[Dict[str, Any]]:
    """Pick the current form; falls back to the first form in document order."""
    if not forms:
        return None
    for h in heuristics or FORM_HEURISTICS:
        for form in forms:
            if h["test"](form):
                return form
    return forms[0]
