# utils.py
import re
from typing import Any


def norm_space(s: Any) -> str:
    return re.sub(r"\s+", " ", str(s or "")).strip()


def norm_case(s: Any) -> str:
    return norm_space(s).lower()


def norm_key(s: Any) -> str:
    """Lowercase and drop everything but letters and digits: 'First Name' == 'first_name'."""
    return re.sub(r"[^0-9a-z]+", "", norm_case(s))


def dump_snapshot(snapshot, note=""):
    """Print what a recorded step contains: title, url and one line per field."""
    print("\n=== Fields on page =============================================")
    if note:
        print(note)
    print(f"Title: {snapshot.title}")
    print(f"URL:   {snapshot.url}")
    print(f"Count: {len(snapshot.fields)}")
    for i, f in enumerate(snapshot.fields, 1):
        kind = f.tag if f.tag != "input" else f"input[{f.input_type or 'text'}]"
        label = f"  label='{f.label[:60]}'" if f.label else ""
        print(f"  {i:02d}. {kind:<18} name='{f.name}' id='{f.dom_id}' selector='{f.selector}'{label}")
    print("================================================================\n")
