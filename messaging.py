# messaging.py
"""
Request/response surface of the automation context.

Every operation answers with a dict carrying an explicit ``ok`` field and never
raises; log lines, scan progress and the terminal event travel separately on
the ``Notifier`` stream.
"""
import logging
from typing import Any, Dict, Optional

from bulk_runner import BulkReplayEngine, RunState
from config import MAX_SCAN_STEPS, Timings
from errors import Busy
from mappings import clean_mapping
from notifier import PROGRESS, Notification, Notifier
from scanner import scan
from snapshot import Flow, PageSnapshot, flow_from_dict, flow_to_dict, snapshot
from tabular import ensure_row_objects

logger = logging.getLogger(__name__)


def _as_flow(flow) -> Flow:
    if isinstance(flow, dict):
        return flow_from_dict(flow)
    return [PageSnapshot.from_dict(s) if isinstance(s, dict) else s for s in flow]


class AutomationService:
    def __init__(self, doc, notifier: Optional[Notifier] = None, timings: Optional[Timings] = None,
                 state: Optional[RunState] = None, screenshots: bool = False,
                 restart_url: Optional[str] = None):
        self.doc = doc
        self.notifier = notifier or Notifier()
        self.timings = timings or Timings()
        self.engine = BulkReplayEngine(doc, self.notifier, state=state, timings=self.timings,
                                       screenshots=screenshots, restart_url=restart_url)
        self._scanning = False

    async def detect_fields(self) -> Dict[str, Any]:
        try:
            snap = await snapshot(self.doc)
        except Exception as e:
            logger.exception("[error] detectFields failed")
            return {"ok": False, "error": str(e), "fields": []}
        await self.notifier.log(f"[detect] {len(snap.fields)} field(s) on {snap.url}", source=logger)
        return {"ok": True, "fields": [f.to_dict() for f in snap.fields], "step": snap.to_dict()}

    async def scan_flow(self, max_steps: int = MAX_SCAN_STEPS) -> Dict[str, Any]:
        # scanning and replay never share the document
        if self.engine.state.busy or self._scanning:
            return {"ok": False, "error": str(Busy())}

        async def progress(n: int, step: PageSnapshot):
            await self.notifier.publish(Notification(
                PROGRESS, f"Recorded step {n}: {len(step.fields)} field(s)",
                {"step": n, "url": step.url, "title": step.title},
            ))

        self._scanning = True
        try:
            flow = await scan(self.doc, max_steps=max_steps, timings=self.timings, on_step=progress)
        except Exception as e:
            logger.exception("[error] scanFlow failed")
            return {"ok": False, "error": str(e)}
        finally:
            self._scanning = False
        return {"ok": True, **flow_to_dict(flow)}

    async def start_bulk(self, flow, dataset, mapping, delay_ms: Optional[int] = None) -> Dict[str, Any]:
        if self._scanning:
            return {"ok": False, "error": str(Busy())}
        try:
            steps = _as_flow(flow)
            rows = ensure_row_objects(dataset)
            mapping = clean_mapping(mapping or {})
            delay_ms = None if delay_ms in (None, "") else int(delay_ms)
        except (TypeError, ValueError, KeyError) as e:
            await self.notifier.log(f"[error] {e}", logging.ERROR, logger)
            return {"ok": False, "error": str(e)}
        if not rows:
            await self.notifier.log("[error] Load CSV first: no data rows", logging.ERROR, logger)
            return {"ok": False, "error": "no rows"}
        if not mapping:
            await self.notifier.log("[error] Create at least one mapping", logging.ERROR, logger)
            return {"ok": False, "error": "empty mapping"}
        accepted = await self.engine.start(steps, rows, mapping, delay_ms)
        if not accepted:
            return {"ok": False, "error": str(Busy()) if self.engine.state.busy else "rejected"}
        return {"ok": True}

    async def stop_bulk(self) -> Dict[str, Any]:
        stopping = self.engine.stop()
        if stopping:
            await self.notifier.log("[stop] Stop signalled", source=logger)
        return {"ok": True, "stopping": stopping}

    async def handle(self, message: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch a ``{"type": ..., ...}`` message to the matching operation."""
        kind = message.get("type")
        if kind == "detectFields":
            return await self.detect_fields()
        if kind == "scanFlow":
            raw = message.get("maxSteps")
            try:
                max_steps = MAX_SCAN_STEPS if raw is None else int(raw)
            except (TypeError, ValueError):
                return {"ok": False, "error": f"bad maxSteps: {message.get('maxSteps')!r}"}
            return await self.scan_flow(max_steps)
        if kind == "startBulk":
            return await self.start_bulk(message.get("flow") or [], message.get("rows") or [],
                                         message.get("mapping") or {}, message.get("delay"))
        if kind == "stopBulk":
            return await self.stop_bulk()
        return {"ok": False, "error": f"unknown message type: {kind!r}"}
