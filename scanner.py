# scanner.py
"""
Read-only walk through a multi-step form.

Each step is snapshotted, then the first advance-looking control is clicked
while the document is held in discovery mode, so nothing the click triggers
reaches the network or submits a form for real.
"""
import logging
from contextlib import asynccontextmanager
from typing import Awaitable, Callable, Optional

from config import MAX_SCAN_STEPS, Timings
from heuristics import find_advance
from snapshot import Flow, PageSnapshot, snapshot
from utils import norm_space

logger = logging.getLogger(__name__)

StepCallback = Callable[[int, PageSnapshot], Awaitable[None]]


@asynccontextmanager
async def discovery_mode(doc):
    """Side effects stay suppressed for the body of the block, released on every exit path."""
    await doc.suppress_side_effects()
    try:
        yield doc
    finally:
        await doc.restore_side_effects()


def _describe(candidate) -> str:
    text = norm_space(candidate.get("text") or candidate.get("value") or candidate.get("aria_label"))
    return f"<{candidate.get('tag')}> '{text[:40]}'"


async def scan(doc, max_steps: int = MAX_SCAN_STEPS, timings: Optional[Timings] = None,
               on_step: Optional[StepCallback] = None, heuristics=None) -> Flow:
    timings = timings or Timings()
    flow: Flow = []
    if max_steps < 1:
        return flow

    async with discovery_mode(doc):
        try:
            current = await snapshot(doc)
            while True:
                flow.append(current)
                logger.info("[scan] step %d: %d field(s) at %s", len(flow), len(current.fields), current.url)
                if on_step is not None:
                    await on_step(len(flow), current)
                if len(flow) >= max_steps:
                    logger.info("[done] step limit (%d) reached", max_steps)
                    break

                hit = find_advance(await doc.advance_candidates(), heuristics)
                if hit is None:
                    logger.info("[done] no advance control on step %d; flow complete", len(flow))
                    break
                candidate, rule = hit
                logger.info("[scan] advancing via %s (matched %s)", _describe(candidate), rule)
                await doc.activate(candidate["index"])
                await doc.sleep(timings.settle_ms)

                nxt = await snapshot(doc)
                if nxt.signature() == current.signature():
                    logger.info("[done] page unchanged after advance; flow complete")
                    break
                current = nxt
        except Exception:
            logger.exception("[warn] scan interrupted after %d step(s)", len(flow))
    return flow
