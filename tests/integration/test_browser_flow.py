"""
Integration tests: the in-page snippets against a real Chromium DOM.

Pages are built with ``page.set_content``; the only "server" is a
``page.route`` handler that counts requests to http://formflow.test/.
Skipped when no Chromium build is installed for Playwright.
"""
import asyncio
from contextlib import asynccontextmanager

import pytest
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from bulk_runner import BulkReplayEngine
from config import Timings
from messaging import AutomationService
from notifier import Notifier
from page_document import PageDocument
from scanner import scan
from snapshot import FieldDescriptor, PageSnapshot, snapshot
from step_sync import await_next_step

pytestmark = pytest.mark.integration

TIMINGS = Timings(settle_ms=150, poll_ms=25, step_timeout_ms=3000, row_delay_ms=0)

_chromium_ok = None


def _chromium_available() -> bool:
    global _chromium_ok
    if _chromium_ok is None:
        async def launch():
            async with async_playwright() as pw:
                browser = await pw.chromium.launch(headless=True)
                await browser.close()
        try:
            asyncio.run(launch())
            _chromium_ok = True
        except PlaywrightError:
            _chromium_ok = False
    return _chromium_ok


@pytest.fixture(autouse=True)
def require_chromium():
    if not _chromium_available():
        pytest.skip("Chromium for Playwright is not installed (playwright install chromium)")


@asynccontextmanager
async def open_page(html, api_hits=None):
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=True)
        try:
            page = await browser.new_page()
            if api_hits is not None:
                async def serve(route):
                    api_hits.append(route.request.method)
                    await route.fulfill(status=200, body="ok",
                                        headers={"Access-Control-Allow-Origin": "*"})
                await page.route("http://formflow.test/**", serve)
            await page.set_content(html)
            yield page
        finally:
            await browser.close()


# two steps rendered in place; "Next" posts to the api before swapping
WIZARD_HTML = """
<html><body>
<form id="wizard" onsubmit="return false">
  <div id="fields"><input name="first" placeholder="First name"></div>
  <button type="button" id="next">Next</button>
</form>
<script>
  document.getElementById('next').addEventListener('click', () => {
    fetch('http://formflow.test/api/step', {method: 'POST', body: 'first'});
    document.getElementById('fields').innerHTML = '<input name="email" type="email">';
    document.getElementById('next').textContent = 'Finish';
  });
</script>
</body></html>
"""

# a submit handler that re-renders synchronously and loops back to step 1
IN_PLACE_HTML = """
<html><body>
<form id="wizard">
  <div id="fields"></div>
  <button type="submit">Continue</button>
</form>
<script>
  const steps = ['<input name="first">', '<input name="email" type="email">'];
  let n = 0;
  window.submitted = [];
  const form = document.getElementById('wizard');
  const render = () => { document.getElementById('fields').innerHTML = steps[n]; };
  form.addEventListener('submit', (e) => {
    e.preventDefault();
    window.submitted.push(Object.fromEntries(new FormData(form)));
    n = (n + 1) % steps.length;
    render();
  });
  render();
</script>
</body></html>
"""


class TestDiscoveryScan:

    def test_scan_sends_nothing_and_restores_page(self):
        hits = []

        async def go():
            async with open_page(WIZARD_HTML, hits) as page:
                doc = PageDocument(page)
                flow = await scan(doc, timings=TIMINGS)
                await page.wait_for_timeout(200)
                restored = await page.evaluate("() => window.__formflowSaved === undefined")
                return flow, restored

        flow, restored = asyncio.run(go())
        assert [s.selectors for s in flow] == [('[name="first"]',), ('[name="email"]',)]
        assert flow[0].fields[0].label == "First name"
        assert hits == []
        assert restored

    def test_same_page_does_send_outside_discovery(self):
        hits = []

        async def go():
            async with open_page(WIZARD_HTML, hits) as page:
                async with page.expect_request("http://formflow.test/api/step"):
                    await page.click("#next")
                await page.wait_for_timeout(100)

        asyncio.run(go())
        assert hits == ["POST"]


class TestSelectors:

    def test_structural_path_resolves_to_same_control(self):
        html = """
        <html><body><form>
          <div><input placeholder="a" data-mark="one"><input placeholder="b" data-mark="two"></div>
          <textarea data-mark="three"></textarea>
        </form></body></html>
        """

        async def go():
            async with open_page(html) as page:
                doc = PageDocument(page)
                snap = await snapshot(doc)
                marks = []
                for f in snap.fields:
                    for _ in range(2):
                        target = await doc.resolve(f.selector)
                        marks.append(await target.get_attribute("data-mark"))
                return snap.selectors, marks

        selectors, marks = asyncio.run(go())
        assert selectors == (
            "body > form > div > input:nth-of-type(1)",
            "body > form > div > input:nth-of-type(2)",
            "body > form > textarea",
        )
        assert marks == ["one", "one", "two", "two", "three", "three"]

    def test_detect_fields_prefers_visible_form(self):
        html = """
        <html><body>
          <form style="display:none"><input name="hidden_one"></form>
          <form><input name="visible_one"><input type="hidden" name="token"></form>
        </body></html>
        """

        async def go():
            async with open_page(html) as page:
                return await AutomationService(PageDocument(page), timings=TIMINGS).detect_fields()

        resp = asyncio.run(go())
        assert resp["ok"]
        assert [f["selector"] for f in resp["fields"]] == ['[name="visible_one"]']


class TestInPlaceSteps:

    def test_observer_armed_before_click_sees_render(self):
        async def go():
            async with open_page(IN_PLACE_HTML) as page:
                doc = PageDocument(page)
                url = doc.url
                await doc.arm_observer()
                await doc.click_submit(0)
                return await await_next_step(doc, url, timeout_ms=3000, poll_ms=25)

        result = asyncio.run(go())
        assert result.trigger == "mutation"
        assert not result.navigated

    def test_replay_over_in_place_steps(self):
        async def go():
            async with open_page(IN_PLACE_HTML) as page:
                doc = PageDocument(page)
                url = doc.url
                flow = [
                    PageSnapshot("", url, [FieldDescriptor('[name="first"]', "input", "text", "first")]),
                    PageSnapshot("", url, [FieldDescriptor('[name="email"]', "input", "email", "email")]),
                ]
                notifier = Notifier()
                notes = []
                notifier.subscribe(notes.append)
                engine = BulkReplayEngine(doc, notifier=notifier, timings=TIMINGS)
                summary = await engine.run(flow, [
                    {"First": "Ann", "Email": "a@x.com"},
                    {"First": "Bo", "Email": "b@x.com"},
                ], {'[name="first"]': "First", '[name="email"]': "Email"})
                submitted = await page.evaluate("() => window.submitted")
                return summary, submitted, [n.message for n in notes]

        summary, submitted, messages = asyncio.run(go())
        assert summary.succeeded == 2
        assert submitted == [{"first": "Ann"}, {"email": "a@x.com"}, {"first": "Bo"}, {"email": "b@x.com"}]
        assert not [m for m in messages if "next step not detected" in m]
