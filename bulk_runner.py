# bulk_runner.py
"""
Replays a recorded flow once per data row.

Rows run strictly in dataset order and steps strictly in recorded order, one
at a time. Stopping is cooperative: ``stop()`` raises a flag that is checked
before every row, step, field and step wait.
"""
import asyncio
import logging
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from config import Timings
from errors import AdvanceNotFound, Busy, FormFlowError, NoFormFound, RowCancelled
from filler import fill_fields
from heuristics import find_advance
from mappings import FieldMapping, tag_fields
from notifier import FINISHED, SCREENSHOT, Notification, Notifier
from snapshot import Flow, FormHandle, current_form
from step_sync import await_next_step
from tabular import DataRow, ensure_row_objects

logger = logging.getLogger(__name__)


class RunStatus(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPING = "stopping"
    FINISHED = "finished"


@dataclass
class RunState:
    status: RunStatus = RunStatus.IDLE
    current_row_index: int = 0
    current_step_index: int = 0
    stop_requested: bool = False

    @property
    def busy(self) -> bool:
        return self.status in (RunStatus.RUNNING, RunStatus.STOPPING)


@dataclass
class RowResult:
    index: int
    ok: bool
    reason: str = ""
    steps_done: int = 0
    cancelled: bool = False


@dataclass
class RunSummary:
    total: int
    rows: List[RowResult] = field(default_factory=list)
    cancelled: bool = False

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.rows if r.ok)

    @property
    def failed(self) -> int:
        return sum(1 for r in self.rows if not r.ok)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "cancelled": self.cancelled,
            "rows": [asdict(r) for r in self.rows],
        }


class BulkReplayEngine:
    def __init__(self, doc, notifier: Optional[Notifier] = None, state: Optional[RunState] = None,
                 timings: Optional[Timings] = None, screenshots: bool = False,
                 restart_url: Optional[str] = None):
        self.doc = doc
        self.restart_url = restart_url
        self.notifier = notifier or Notifier()
        self.state = state or RunState()
        self.timings = timings or Timings()
        self.screenshots = screenshots
        self._task: Optional[asyncio.Task] = None

    # -----------------------
    # Control
    # -----------------------

    async def start(self, flow: Flow, dataset: Sequence, mapping: FieldMapping,
                    delay_ms: Optional[int] = None) -> bool:
        """Begin a run in the background. False when busy or the rows are unusable."""
        if self.state.busy:
            await self._emit(f"[busy] {Busy()}; start request rejected", logging.WARNING)
            return False
        try:
            rows = ensure_row_objects(dataset)
        except TypeError as e:
            await self._emit(f"[error] {e}", logging.ERROR)
            return False

        delay = self.timings.row_delay_ms if delay_ms is None else max(0, int(delay_ms))
        self.state.status = RunStatus.RUNNING
        self.state.stop_requested = False
        self.state.current_row_index = 0
        self.state.current_step_index = 0
        self._task = asyncio.get_running_loop().create_task(self._run(list(flow), rows, dict(mapping), delay))
        return True

    def stop(self) -> bool:
        if not self.state.busy:
            return False
        self.state.stop_requested = True
        self.state.status = RunStatus.STOPPING
        logger.info("[stop] stop requested during row %d", self.state.current_row_index)
        return True

    async def wait(self) -> Optional[RunSummary]:
        if self._task is None:
            return None
        return await self._task

    async def run(self, flow: Flow, dataset: Sequence, mapping: FieldMapping,
                  delay_ms: Optional[int] = None) -> Optional[RunSummary]:
        """start() and wait for the summary; None if the start was rejected."""
        if not await self.start(flow, dataset, mapping, delay_ms):
            return None
        return await self.wait()

    # -----------------------
    # Loop
    # -----------------------

    async def _run(self, flow: Flow, rows: List[DataRow], mapping: FieldMapping, delay_ms: int) -> RunSummary:
        summary = RunSummary(total=len(rows))
        try:
            await self._emit(f"[start] Bulk run started: {len(rows)} rows, {len(flow)} step(s), delay {delay_ms}ms")
            for i, row in enumerate(rows, 1):
                if self.state.stop_requested:
                    summary.cancelled = True
                    break
                self.state.current_row_index = i
                await self._emit(f"[row] Submitting row {i}/{len(rows)}")
                result = await self._replay_row_safely(flow, row, mapping, i)
                summary.rows.append(result)
                if self.screenshots:
                    await self.notifier.publish(Notification(SCREENSHOT, f"row {i}", {"row": i, "ok": result.ok}))
                if result.cancelled:
                    summary.cancelled = True
                    break
                if i < len(rows):
                    await self.doc.sleep(delay_ms)
            if self.state.stop_requested:
                summary.cancelled = True
        finally:
            self.state.status = RunStatus.IDLE if (summary.cancelled or self.state.stop_requested) else RunStatus.FINISHED
            self.state.stop_requested = False

        if summary.cancelled:
            await self._emit("[stop] Stopped by user")
        msg = f"Bulk run finished: {summary.succeeded}/{summary.total} ok, {summary.failed} failed"
        await self._emit(f"[done] {msg}")
        await self.notifier.publish(Notification(FINISHED, msg, summary.to_dict()))
        return summary

    async def _replay_row_safely(self, flow: Flow, row: DataRow, mapping: FieldMapping, i: int) -> RowResult:
        try:
            steps = await self._replay_row(flow, row, mapping, i)
        except RowCancelled as e:
            await self._emit(f"[stop] row {i} aborted: {e}", logging.WARNING)
            return RowResult(i, False, str(e), self._steps_done(), cancelled=True)
        except FormFlowError as e:
            await self._emit(f"[fail] row {i}: {e}", logging.WARNING)
            return RowResult(i, False, str(e), self._steps_done())
        except Exception as e:
            logger.exception("[fail] row %d: unexpected error", i)
            await self._emit(f"[fail] row {i}: {e}", logging.ERROR)
            return RowResult(i, False, str(e), self._steps_done())
        await self._emit(f"[done] row {i} submitted ({steps} step(s))")
        return RowResult(i, True, steps_done=steps)

    def _steps_done(self) -> int:
        return max(0, self.state.current_step_index - 1)

    async def _replay_row(self, flow: Flow, row: DataRow, mapping: FieldMapping, i: int) -> int:
        if self.restart_url:
            await self.doc.goto(self.restart_url)
        for s, step in enumerate(flow):
            if self.state.stop_requested:
                raise RowCancelled()
            self.state.current_step_index = s + 1
            form = await current_form(self.doc)
            if form is None and step.fields:
                raise NoFormFound(s)

            filled = await fill_fields(self.doc, tag_fields(step.fields, mapping), row, self.state)
            if not filled or self.state.stop_requested:
                raise RowCancelled()

            previous_url = self.doc.url
            # the next step may render inside the click handler itself
            await self.doc.arm_observer()
            try:
                how = await self._advance(form, s)
                await self._emit(f"[step] row {i} step {s + 1}/{len(flow)} filled, advanced via {how}",
                                 logging.DEBUG)
                if self.state.stop_requested:
                    raise RowCancelled()
            except Exception:
                await self.doc.stop_observing()
                raise
            result = await await_next_step(self.doc, previous_url, self.timings.step_timeout_ms,
                                           self.timings.poll_ms)
            if result.timed_out:
                await self._emit(f"[sync] row {i} step {s + 1}: next step not detected, continuing", logging.INFO)
        return len(flow)

    async def _advance(self, form: Optional[FormHandle], step_index: int) -> str:
        if form is not None and await self.doc.click_submit(form.index):
            return "submit control"
        hit = find_advance(await self.doc.advance_candidates())
        if hit is not None:
            await self.doc.activate(hit[0]["index"])
            return f"advance control ({hit[1]})"
        if form is not None and await self.doc.submit_form(form.index):
            return "form.submit()"
        raise AdvanceNotFound(step_index)

    async def _emit(self, message: str, level: int = logging.INFO) -> None:
        await self.notifier.log(message, level, logger)
