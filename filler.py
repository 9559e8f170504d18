# filler.py
import logging
from typing import Dict, List, Optional, Sequence

from mappings import TaggedField
from utils import norm_case

logger = logging.getLogger(__name__)

TRUTHY = ("true", "1", "yes")


def is_truthy(value) -> bool:
    return norm_case(value) in TRUTHY


def pick_option(options: List[Dict[str, str]], value: str) -> Optional[str]:
    """Option value matching ``value`` by value first, then by display text."""
    for o in options:
        if o.get("value") == value:
            return o["value"]
    for o in options:
        if o.get("text") == value:
            return o.get("value", "")
    return None


async def fill_fields(doc, tagged: Sequence[TaggedField], row: Dict[str, str], state=None) -> bool:
    """
    Write one row into the fields of one step.

    Unmapped fields are left as they are, fields whose selector no longer
    resolves are skipped. Returns False only when a stop was requested
    between two fields.
    """
    for field, column in tagged:
        if state is not None and state.stop_requested:
            return False
        if not column:
            continue
        target = await doc.resolve(field.selector)
        if target is None:
            logger.info("[skip] control not on page: %s (csv: %s)", field.selector, column)
            continue
        value = row.get(column, "") or ""
        kind = (field.input_type or "").lower()

        if field.tag == "select":
            opt = pick_option(await doc.select_options(target), value)
            if opt is None:
                logger.debug("[warn] no option %r in %s; writing raw value", value, field.selector)
                opt = value
            await doc.write_select(target, opt)
            logger.debug("[SELECT] %s <- %r", field.selector, opt)
        elif kind in ("checkbox", "radio"):
            on = is_truthy(value)
            await doc.write_checked(target, on)
            logger.debug("[CHECK] %s <- %s", field.selector, on)
        else:
            await doc.write_text(target, value)
            logger.debug("[TYPE] %s <- %r", field.selector, value)
    return True
