# mappings.py
"""
Selector -> column mappings: tagging recorded fields, name/label based
suggestions, and a JSON store that remembers the mapping of each recorded flow.
"""
import json
import logging
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

from snapshot import FieldDescriptor, Flow, flow_fingerprint
from utils import norm_key

logger = logging.getLogger(__name__)

FieldMapping = Dict[str, str]
TaggedField = Tuple[FieldDescriptor, Optional[str]]


def tag_fields(fields: Sequence[FieldDescriptor], mapping: FieldMapping) -> List[TaggedField]:
    """Attach the mapped column (or None) to every field of a step."""
    return [(f, mapping.get(f.selector) or None) for f in fields]


def clean_mapping(mapping: Dict[str, str], header: Optional[Sequence[str]] = None) -> FieldMapping:
    out: FieldMapping = {}
    known = set(header) if header is not None else None
    for sel, col in mapping.items():
        if not sel or not col:
            continue
        if known is not None and col not in known:
            logger.warning("[map] column %r (for %s) is not in the data header", col, sel)
        out[sel] = col
    return out


def suggest_mapping(flow: Flow, header: Sequence[str]) -> FieldMapping:
    """Propose a column per field when the column matches the field's name, id or label."""
    by_key: Dict[str, str] = {}
    for col in header:
        by_key.setdefault(norm_key(col), col)
    by_key.pop("", None)

    out: FieldMapping = {}
    for step in flow:
        for f in step.fields:
            for attr in (f.name, f.dom_id, f.label):
                col = by_key.get(norm_key(attr))
                if col:
                    out[f.selector] = col
                    break
    return out


def read_mapping_file(path) -> FieldMapping:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path}: mapping must be a JSON object of selector -> column")
    return clean_mapping(data)


def write_mapping_file(path, mapping: FieldMapping) -> None:
    Path(path).write_text(json.dumps(mapping, indent=2, ensure_ascii=False), encoding="utf-8")


class MappingStore:
    """All saved mappings in one JSON file, keyed by flow fingerprint."""

    def __init__(self, path):
        self.path = Path(path)

    def _read(self) -> Dict[str, Dict]:
        if not self.path.exists():
            return {}
        return json.loads(self.path.read_text(encoding="utf-8"))

    def load(self, flow: Flow) -> FieldMapping:
        entry = self._read().get(flow_fingerprint(flow))
        if not entry:
            return {}
        return clean_mapping(entry.get("mapping", {}))

    def save(self, flow: Flow, mapping: FieldMapping) -> None:
        data = self._read()
        data[flow_fingerprint(flow)] = {
            "first_url": flow[0].url if flow else "",
            "steps": len(flow),
            "mapping": clean_mapping(mapping),
        }
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        logger.info("[map] saved %d mapping(s) to %s", len(mapping), self.path)
