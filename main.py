# main.py
import argparse
import asyncio
import logging
import signal
from pathlib import Path

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

import config
from config import Timings
from mappings import MappingStore, read_mapping_file, suggest_mapping, write_mapping_file
from messaging import AutomationService
from notifier import SCREENSHOT, Notification
from page_document import PageDocument
from snapshot import PageSnapshot, load_flow, save_flow
from tabular import load_dataset, to_data_rows
from utils import dump_snapshot

logger = logging.getLogger("formflow")


def setup_logging(debug: bool, log_file: str = None) -> None:
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.append(logging.FileHandler(log_file, mode="w", encoding="utf-8"))
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        handlers=handlers,
    )


def timings_from(opts) -> Timings:
    return Timings(
        settle_ms=opts.settle,
        step_timeout_ms=opts.step_timeout,
        row_delay_ms=opts.delay,
    )


# -----------------------
# Commands
# -----------------------

async def cmd_detect(service: AutomationService, opts) -> int:
    resp = await service.detect_fields()
    if not resp["ok"]:
        logger.error("[error] %s", resp["error"])
        return 1
    dump_snapshot(PageSnapshot.from_dict(resp["step"]))
    if opts.out:
        save_flow(opts.out, [PageSnapshot.from_dict(resp["step"])])
        logger.info("[save] single-step flow written to %s", opts.out)
    return 0


async def cmd_scan(service: AutomationService, opts) -> int:
    resp = await service.scan_flow(opts.max_steps)
    if not resp["ok"]:
        logger.error("[error] %s", resp["error"])
        return 1
    flow = [PageSnapshot.from_dict(s) for s in resp["steps"]]
    for i, step in enumerate(flow, 1):
        dump_snapshot(step, note=f"STEP {i}")
    save_flow(opts.out, flow)
    logger.info("[save] %d step(s) written to %s", len(flow), opts.out)
    return 0


async def cmd_run(service: AutomationService, doc: PageDocument, opts) -> int:
    flow = load_flow(opts.flow)
    table = load_dataset(opts.csv, delimiter=opts.delimiter)
    if opts.mapping:
        mapping = read_mapping_file(opts.mapping)
    else:
        mapping = MappingStore(opts.store).load(flow)
        logger.info("[map] %d mapping(s) loaded from %s", len(mapping), opts.store)

    if opts.screenshots:
        shot_dir = Path(opts.screenshots)
        shot_dir.mkdir(parents=True, exist_ok=True)

        async def on_note(note: Notification):
            if note.kind != SCREENSHOT:
                return
            path = shot_dir / f"row-{note.data['row']:04d}.png"
            try:
                await doc.screenshot(str(path))
                logger.info("[shot] %s", path)
            except PlaywrightError as e:
                logger.error("[shot] screenshot failed: %s", e)

        service.notifier.subscribe(on_note)

    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, service.engine.stop)
    except NotImplementedError:
        pass

    resp = await service.start_bulk(flow, to_data_rows(table), mapping, opts.delay)
    if not resp["ok"]:
        logger.error("[error] %s", resp["error"])
        return 1
    summary = await service.engine.wait()
    for r in summary.rows:
        if not r.ok:
            logger.warning("[fail] row %d: %s", r.index, r.reason)
    return 0 if summary.failed == 0 and not summary.cancelled else 2


def cmd_map(opts) -> int:
    flow = load_flow(opts.flow)
    table = load_dataset(opts.csv, delimiter=opts.delimiter)
    mapping = suggest_mapping(flow, table.header)
    for sel, col in mapping.items():
        print(f"  {sel}  ->  {col}")
    unmatched = [f.selector for s in flow for f in s.fields if f.selector not in mapping]
    if unmatched:
        print(f"[skip] {len(unmatched)} field(s) without a matching column: {unmatched}")
    write_mapping_file(opts.out, mapping)
    MappingStore(opts.store).save(flow, mapping)
    return 0


async def run(opts) -> int:
    if opts.command == "map":
        return cmd_map(opts)

    start_url = opts.url
    if not start_url and getattr(opts, "flow", None):
        flow = load_flow(opts.flow)
        start_url = flow[0].url if flow else None
    if not start_url:
        logger.error("[error] --url is required")
        return 1

    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=not opts.headful)
        ctx = await browser.new_context(viewport={"width": 1360, "height": 900})
        page = await ctx.new_page()
        logger.info("[nav] %s", start_url)
        await page.goto(start_url, wait_until="domcontentloaded")

        doc = PageDocument(page)
        service = AutomationService(
            doc,
            timings=timings_from(opts),
            screenshots=bool(getattr(opts, "screenshots", None)),
            restart_url=start_url if getattr(opts, "restart", False) else None,
        )
        try:
            if opts.command == "detect":
                return await cmd_detect(service, opts)
            if opts.command == "scan":
                return await cmd_scan(service, opts)
            return await cmd_run(service, doc, opts)
        finally:
            await ctx.close()
            await browser.close()


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Record a multi-step web form and replay it once per CSV row")
    p.add_argument("--debug", action="store_true", help="Verbose logs.")
    p.add_argument("--log-file", default=None, help="Also write logs to this file.")
    sub = p.add_subparsers(dest="command", required=True)

    def browser_opts(sp):
        sp.add_argument("--url", default=None, help="Page to open (defaults to the flow's first step).")
        sp.add_argument("--headful", action="store_true", help="Visible browser window.")
        sp.add_argument("--settle", type=int, default=config.SETTLE_DELAY_MS, help="Wait after an advance click (ms).")
        sp.add_argument("--step-timeout", type=int, default=config.STEP_TIMEOUT_MS, help="Max wait for the next step (ms).")
        sp.add_argument("--delay", type=int, default=config.ROW_DELAY_MS, help="Pause between rows (ms).")

    d = sub.add_parser("detect", help="Print the fields of the current form.")
    browser_opts(d)
    d.add_argument("--out", default=None, help="Save the page as a one-step flow JSON.")

    s = sub.add_parser("scan", help="Walk the form without submitting anything and record each step.")
    browser_opts(s)
    s.add_argument("--max-steps", type=int, default=config.MAX_SCAN_STEPS)
    s.add_argument("--out", default="flow.json")

    m = sub.add_parser("map", help="Suggest a selector -> column mapping from names and labels.")
    m.add_argument("--flow", required=True)
    m.add_argument("--csv", required=True)
    m.add_argument("--delimiter", default=",")
    m.add_argument("--out", default="mapping.json")
    m.add_argument("--store", default="mappings_store.json")

    r = sub.add_parser("run", help="Fill and submit the recorded flow once per CSV row.")
    browser_opts(r)
    r.add_argument("--flow", required=True)
    r.add_argument("--csv", required=True)
    r.add_argument("--delimiter", default=",")
    r.add_argument("--mapping", default=None, help="mapping.json; defaults to the store entry for this flow.")
    r.add_argument("--store", default="mappings_store.json")
    r.add_argument("--restart", action="store_true", help="Reopen the start URL before every row.")
    r.add_argument("--screenshots", nargs="?", const=config.SCREENSHOT_DIR, default=None,
                   help="Capture a screenshot after every row into DIR.")
    return p.parse_args(argv)


def main(argv=None) -> int:
    opts = parse_args(argv)
    setup_logging(opts.debug, opts.log_file)
    try:
        return asyncio.run(run(opts))
    except KeyboardInterrupt:
        print("\n[cancelled]")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
