# locators.py
"""
Selector synthesis for fillable controls.

A selector has to re-resolve to the same control while the document keeps its
state, so the most stable attribute wins: ``[name="..."]`` first, then ``#id``,
then a structural path from the root. The path is computed from a *lineage*
collected in the page (see ``page_document.FORM_CONTROLS_JS``)::

    {"tag": "input", "name": "", "id": "",
     "path": [{"tag": "input", "id": "", "index": 2, "count": 2},
              {"tag": "div", "id": "", "index": 1, "count": 1},
              {"tag": "form", "id": "signup", "index": 1, "count": 1}]}

``path`` runs from the element upwards and stops below <html>. ``index`` is the
1-based position among same-tag siblings, ``count`` the number of them.
"""
import re
from typing import Any, Dict, Optional

_IDENT = re.compile(r"^-?[A-Za-z_][A-Za-z0-9_-]*$")

# [name="x"], [name='x'], [name=x] and the bare name=x form written by older flow files
_LEGACY_NAME = (
    re.compile(r'^\[\s*name\s*=\s*"(.*)"\s*\]$', re.S),
    re.compile(r"^\[\s*name\s*=\s*'(.*)'\s*\]$", re.S),
    re.compile(r"^\[\s*name\s*=\s*([^\]\"']+?)\s*\]$"),
    re.compile(r"^name\s*=\s*(.+)$", re.S),
)


def css_string(value: str) -> str:
    """Quote a value for use inside a CSS attribute selector."""
    escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\a ")
    return f'"{escaped}"'


def name_selector(name: str) -> str:
    return f"[name={css_string(name)}]"


def id_selector(dom_id: str, tag: str = "") -> str:
    if _IDENT.match(dom_id):
        return f"{tag}#{dom_id}"
    return f"{tag}[id={css_string(dom_id)}]"


def synthesize(lineage: Dict[str, Any]) -> str:
    name = lineage.get("name") or ""
    if name:
        return name_selector(name)
    dom_id = lineage.get("id") or ""
    if dom_id:
        return id_selector(dom_id)

    segments = []
    for node in lineage.get("path") or []:
        tag = (node.get("tag") or "").lower()
        if not tag or tag == "html":
            break
        if node.get("id"):
            # an ancestor with an id anchors the path
            segments.insert(0, id_selector(node["id"], tag))
            break
        if int(node.get("count") or 1) > 1:
            tag += f":nth-of-type({int(node.get('index') or 1)})"
        segments.insert(0, tag)
    return " > ".join(segments)


def legacy_name(selector: str) -> Optional[str]:
    """Pull a field name out of a selector that failed to parse as CSS."""
    sel = (selector or "").strip()
    for pat in _LEGACY_NAME:
        m = pat.match(sel)
        if m:
            name = m.group(1).replace('\\"', '"').replace("\\\\", "\\").strip()
            return name or None
    return None
