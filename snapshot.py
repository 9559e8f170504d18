# snapshot.py
import hashlib
import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import urlsplit

from heuristics import choose_form
from locators import synthesize
from utils import norm_space

logger = logging.getLogger(__name__)

FILLABLE_TAGS = ("input", "textarea", "select")


# -----------------------
# Data model
# -----------------------

@dataclass(frozen=True)
class FieldDescriptor:
    selector: str
    tag: str
    input_type: str = ""
    name: str = ""
    dom_id: str = ""
    label: str = ""

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "FieldDescriptor":
        return cls(
            selector=data["selector"],
            tag=data.get("tag", "input"),
            input_type=data.get("input_type", ""),
            name=data.get("name", ""),
            dom_id=data.get("dom_id", ""),
            label=data.get("label", ""),
        )


@dataclass
class PageSnapshot:
    """One step of a flow: the fillable fields of the current form at recording time."""
    title: str
    url: str
    fields: List[FieldDescriptor] = field(default_factory=list)

    @property
    def selectors(self) -> Tuple[str, ...]:
        return tuple(f.selector for f in self.fields)

    def signature(self) -> Tuple[str, Tuple[str, ...]]:
        """Location plus field selectors; two steps with equal signatures are the same step."""
        return self.url, self.selectors

    def to_dict(self) -> Dict[str, Any]:
        return {"title": self.title, "url": self.url, "fields": [f.to_dict() for f in self.fields]}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PageSnapshot":
        return cls(
            title=data.get("title", ""),
            url=data.get("url", ""),
            fields=[FieldDescriptor.from_dict(f) for f in data.get("fields", [])],
        )


Flow = List[PageSnapshot]


@dataclass(frozen=True)
class FormHandle:
    index: int
    rendered: bool = True


# -----------------------
# Capture
# -----------------------

async def current_form(doc) -> Optional[FormHandle]:
    form = choose_form(await doc.list_forms())
    if form is None:
        return None
    return FormHandle(index=int(form["index"]), rendered=bool(form.get("rendered")))


def field_from_control(raw: Dict[str, Any]) -> Optional[FieldDescriptor]:
    tag = (raw.get("tag") or "").lower()
    if tag not in FILLABLE_TAGS:
        return None
    input_type = (raw.get("type") or "").lower()
    if input_type == "hidden":
        return None
    label = norm_space(raw.get("label_text")) or norm_space(raw.get("placeholder"))
    return FieldDescriptor(
        selector=synthesize(raw),
        tag=tag,
        input_type=input_type,
        name=raw.get("name") or "",
        dom_id=raw.get("id") or "",
        label=label,
    )


async def snapshot(doc) -> PageSnapshot:
    """Capture the current form of ``doc``. Never fails on a page without forms."""
    form = await current_form(doc)
    fields: List[FieldDescriptor] = []
    if form is None:
        logger.debug("[snap] no form on %s", doc.url)
    else:
        for raw in await doc.form_controls(form.index):
            fd = field_from_control(raw)
            if fd is not None:
                fields.append(fd)
    return PageSnapshot(title=await doc.title(), url=doc.url, fields=fields)


# -----------------------
# Flow files
# -----------------------

def flow_to_dict(flow: Flow) -> Dict[str, Any]:
    return {"steps": [s.to_dict() for s in flow]}


def flow_from_dict(data: Dict[str, Any]) -> Flow:
    return [PageSnapshot.from_dict(s) for s in data.get("steps", [])]


def save_flow(path, flow: Flow) -> None:
    Path(path).write_text(json.dumps(flow_to_dict(flow), indent=2, ensure_ascii=False), encoding="utf-8")


def load_flow(path) -> Flow:
    return flow_from_dict(json.loads(Path(path).read_text(encoding="utf-8")))


def flow_fingerprint(flow: Flow) -> str:
    """Stable key for a recorded flow. Query strings are ignored (session tokens)."""
    parts = []
    for step in flow:
        u = urlsplit(step.url)
        parts.append([f"{u.scheme}://{u.netloc}{u.path}", list(step.selectors)])
    blob = json.dumps(parts, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha1(blob.encode("utf-8")).hexdigest()
