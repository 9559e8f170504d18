# step_sync.py
"""
Wait for the document to present the next step after an advance action.

Three watchers race and the first one decides:
  mutation  - a subtree change while a form is present (in-place SPA steps),
              counted from doc.arm_observer(), which callers invoke before advancing
  location  - the URL differs from the one before the advance (real navigation)
  timeout   - nothing happened in time; whatever form is there is used
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from config import POLL_INTERVAL_MS, STEP_TIMEOUT_MS
from snapshot import FormHandle, current_form

logger = logging.getLogger(__name__)


@dataclass
class StepSyncResult:
    navigated: bool
    form: Optional[FormHandle]
    trigger: str

    @property
    def timed_out(self) -> bool:
        return self.trigger == "timeout"


async def await_next_step(doc, previous_url: str, timeout_ms: int = STEP_TIMEOUT_MS,
                          poll_ms: int = POLL_INTERVAL_MS) -> StepSyncResult:
    async def watch_mutation():
        return "mutation" if await doc.wait_for_mutation() else None

    async def watch_location():
        while doc.url == previous_url:
            await asyncio.sleep(poll_ms / 1000)
        return "location"

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000
    watchers = {asyncio.ensure_future(watch_mutation()), asyncio.ensure_future(watch_location())}
    trigger = "timeout"
    try:
        pending = set(watchers)
        while pending and trigger == "timeout":
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(pending, timeout=remaining,
                                               return_when=asyncio.FIRST_COMPLETED)
            for t in done:
                if t.exception() is not None:
                    logger.warning("[sync] watcher failed: %s", t.exception())
                elif t.result():
                    trigger = t.result()
                    break
    finally:
        # exactly one outcome: every watcher is torn down before returning
        for t in watchers:
            t.cancel()
        await asyncio.gather(*watchers, return_exceptions=True)
        await doc.stop_observing()

    navigated = doc.url != previous_url
    if navigated:
        await doc.wait_until_loaded(timeout_ms)
    form = await current_form(doc)
    if trigger == "timeout":
        logger.info("[sync] no step change after %d ms; continuing with current page", timeout_ms)
    else:
        logger.debug("[sync] %s (navigated=%s)", trigger, navigated)
    return StepSyncResult(navigated=navigated, form=form, trigger=trigger)
