# page_document.py
"""
Playwright-backed access to the document under automation.

The scan/replay core only talks to this small surface, so the same algorithms
run against an in-memory document in tests. In-page work is done with
``page.evaluate`` snippets; everything that decides something lives in Python.
"""
import logging
from typing import Any, Dict, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page, Route
from playwright.async_api import TimeoutError as PlaywrightTimeout

from errors import ResolutionFailure
from locators import legacy_name, name_selector

logger = logging.getLogger(__name__)

ADVANCE_QUERY = "button, a, input, [role='button']"
SUBMIT_QUERY = "[type='submit'], button:not([type])"

# request kinds that never reach the network while discovery mode is held
BLOCKED_RESOURCE_TYPES = {"fetch", "xhr", "eventsource", "ping"}

# -----------------------
# In-page snippets
# -----------------------

LIST_FORMS_JS = """
() => Array.from(document.forms).map((f, i) => ({
  index: i,
  id: f.id || '',
  name: f.getAttribute('name') || '',
  rendered: f.offsetParent !== null || f.getClientRects().length > 0,
}))
"""

FORM_CONTROLS_JS = """
(index) => {
  const form = document.forms[index];
  if (!form) return [];
  const lineage = (el) => {
    const path = [];
    let node = el;
    while (node && node.nodeType === 1 && node.tagName.toLowerCase() !== 'html') {
      let pos = 1, count = 1;
      if (node.parentElement) {
        const same = Array.from(node.parentElement.children).filter(s => s.tagName === node.tagName);
        pos = same.indexOf(node) + 1;
        count = same.length;
      }
      path.push({tag: node.tagName.toLowerCase(), id: node.id || '', index: pos, count: count});
      if (node.id) break;
      node = node.parentElement;
    }
    return path;
  };
  return Array.from(form.querySelectorAll('input, textarea, select')).map(el => ({
    tag: el.tagName.toLowerCase(),
    type: (el.type || '').toLowerCase(),
    name: el.getAttribute('name') || '',
    id: el.id || '',
    label_text: el.labels && el.labels.length ? el.labels[0].innerText : '',
    placeholder: el.getAttribute('placeholder') || '',
    path: lineage(el),
  }));
}
"""

ADVANCE_CANDIDATES_JS = """
(query) => Array.from(document.querySelectorAll(query)).map((el, i) => ({
  index: i,
  tag: el.tagName.toLowerCase(),
  type: (el.type || el.getAttribute('type') || '').toLowerCase(),
  role: el.getAttribute('role') || '',
  text: (el.innerText || el.textContent || '').trim(),
  value: (el.tagName === 'INPUT' || el.tagName === 'BUTTON') ? (el.value || '') : '',
  aria_label: el.getAttribute('aria-label') || '',
}))
"""

ACTIVATE_JS = """
([query, index]) => {
  const el = document.querySelectorAll(query)[index];
  if (!el) return false;
  el.dispatchEvent(new MouseEvent('click', {bubbles: true, cancelable: true, view: window}));
  return true;
}
"""

WRITE_TEXT_JS = """
(el, value) => {
  el.focus();
  el.value = value;
  el.dispatchEvent(new Event('input', {bubbles: true}));
  el.dispatchEvent(new Event('change', {bubbles: true}));
}
"""

WRITE_CHECKED_JS = """
(el, on) => {
  if (el.checked === on) return;
  el.checked = on;
  el.dispatchEvent(new Event('change', {bubbles: true}));
}
"""

SELECT_OPTIONS_JS = "el => Array.from(el.options || []).map(o => ({value: o.value, text: o.text}))"

WRITE_SELECT_JS = """
(el, value) => {
  el.value = value;
  el.dispatchEvent(new Event('change', {bubbles: true}));
}
"""

CLICK_SUBMIT_JS = """
([index, query]) => {
  const form = document.forms[index];
  const btn = form && form.querySelector(query);
  if (!btn) return false;
  btn.click();
  return true;
}
"""

SUBMIT_FORM_JS = """
(index) => {
  const form = document.forms[index];
  if (!form) return false;
  form.submit();
  return true;
}
"""

# armed before an advance so changes made inside the click handler are not lost
ARM_OBSERVER_JS = """
() => {
  const prev = window.__formflowObserver;
  if (prev) { prev.observer.disconnect(); if (prev.resolve) prev.resolve(false); }
  const state = {mutated: false, resolve: null, observer: null};
  state.observer = new MutationObserver(() => {
    if (document.forms.length > 0) {
      state.mutated = true;
      state.observer.disconnect();
      if (state.resolve) state.resolve(true);
    }
  });
  state.observer.observe(document.documentElement, {childList: true, subtree: true, attributes: true, characterData: true});
  window.__formflowObserver = state;
}
"""

# false when nothing is armed on this document (a navigation replaced it)
WAIT_MUTATION_JS = """
() => new Promise((resolve) => {
  const state = window.__formflowObserver;
  if (!state) return resolve(false);
  if (state.mutated) return resolve(true);
  state.resolve = resolve;
})
"""

STOP_OBSERVING_JS = """
() => {
  const cur = window.__formflowObserver;
  if (!cur) return;
  cur.observer.disconnect();
  if (cur.resolve) cur.resolve(false);
  window.__formflowObserver = null;
}
"""

SUPPRESS_JS = """
() => {
  if (window.__formflowSaved) return false;
  const saved = {
    fetch: window.fetch,
    send: XMLHttpRequest.prototype.send,
    submit: HTMLFormElement.prototype.submit,
    requestSubmit: HTMLFormElement.prototype.requestSubmit,
    beacon: navigator.sendBeacon,
    onSubmit: (e) => e.preventDefault(),
  };
  window.__formflowSaved = saved;
  window.fetch = () => new Promise(() => {});
  XMLHttpRequest.prototype.send = function () {};
  HTMLFormElement.prototype.submit = function () {};
  if (saved.requestSubmit) HTMLFormElement.prototype.requestSubmit = function () {};
  if (saved.beacon) navigator.sendBeacon = () => false;
  window.addEventListener('submit', saved.onSubmit, true);
  return true;
}
"""

RESTORE_JS = """
() => {
  const saved = window.__formflowSaved;
  if (!saved) return false;
  window.fetch = saved.fetch;
  XMLHttpRequest.prototype.send = saved.send;
  HTMLFormElement.prototype.submit = saved.submit;
  if (saved.requestSubmit) HTMLFormElement.prototype.requestSubmit = saved.requestSubmit;
  if (saved.beacon) navigator.sendBeacon = saved.beacon;
  window.removeEventListener('submit', saved.onSubmit, true);
  delete window.__formflowSaved;
  return true;
}
"""


class PageDocument:
    def __init__(self, page: Page):
        self.page = page
        self.blocked_requests = 0
        self._guarded = False
        self._observing = False
        self._rearm_handler = self._rearm

    # -----------------------
    # Reading
    # -----------------------

    @property
    def url(self) -> str:
        return self.page.url

    async def title(self) -> str:
        try:
            return await self.page.title()
        except PlaywrightError as e:
            logger.debug("[doc] title unavailable: %s", e)
            return ""

    async def list_forms(self) -> List[Dict[str, Any]]:
        return await self.page.evaluate(LIST_FORMS_JS)

    async def form_controls(self, form_index: int) -> List[Dict[str, Any]]:
        return await self.page.evaluate(FORM_CONTROLS_JS, form_index)

    async def advance_candidates(self) -> List[Dict[str, Any]]:
        return await self.page.evaluate(ADVANCE_CANDIDATES_JS, ADVANCE_QUERY)

    async def resolve(self, selector: str) -> Optional[Locator]:
        """Locator for ``selector`` or None. Never raises."""
        try:
            return await self._lookup(selector)
        except ResolutionFailure as e:
            logger.debug("[doc] %s", e)
            return None

    async def _lookup(self, selector: str) -> Locator:
        try:
            loc = self.page.locator(selector)
            if await loc.count():
                return loc.first
        except PlaywrightError as e:
            name = legacy_name(selector)
            if name is None:
                raise ResolutionFailure(selector) from e
            loc = self.page.locator(name_selector(name))
            if await loc.count():
                return loc.first
        raise ResolutionFailure(selector)

    async def select_options(self, target: Locator) -> List[Dict[str, str]]:
        return await target.evaluate(SELECT_OPTIONS_JS)

    # -----------------------
    # Writing
    # -----------------------

    async def write_text(self, target: Locator, value: str) -> None:
        await target.evaluate(WRITE_TEXT_JS, value)

    async def write_checked(self, target: Locator, on: bool) -> None:
        await target.evaluate(WRITE_CHECKED_JS, on)

    async def write_select(self, target: Locator, value: str) -> None:
        await target.evaluate(WRITE_SELECT_JS, value)

    async def activate(self, index: int) -> bool:
        """Synthetic click on the index-th advance candidate."""
        try:
            return bool(await self.page.evaluate(ACTIVATE_JS, [ADVANCE_QUERY, index]))
        except PlaywrightError as e:
            # the click may tear down the execution context by navigating
            logger.debug("[doc] activate(%s) interrupted: %s", index, e)
            return True

    async def click_submit(self, form_index: int) -> bool:
        try:
            return bool(await self.page.evaluate(CLICK_SUBMIT_JS, [form_index, SUBMIT_QUERY]))
        except PlaywrightError as e:
            logger.debug("[doc] submit click interrupted: %s", e)
            return True

    async def submit_form(self, form_index: int) -> bool:
        try:
            return bool(await self.page.evaluate(SUBMIT_FORM_JS, form_index))
        except PlaywrightError as e:
            logger.debug("[doc] form.submit() interrupted: %s", e)
            return True

    # -----------------------
    # Observation
    # -----------------------

    async def arm_observer(self) -> None:
        """Start recording subtree changes; call before the action that may cause them."""
        try:
            await self.page.evaluate(ARM_OBSERVER_JS)
            self._observing = True
        except PlaywrightError as e:
            logger.debug("[doc] could not arm observer: %s", e)

    async def wait_for_mutation(self) -> bool:
        """
        True on the first subtree change (with a form present) since arm_observer().
        Arms first when nothing is armed, so only later changes count then.
        """
        if not self._observing:
            await self.arm_observer()
        try:
            return bool(await self.page.evaluate(WAIT_MUTATION_JS))
        except PlaywrightError as e:
            logger.debug("[doc] mutation observer lost: %s", e)
            return False

    async def stop_observing(self) -> None:
        self._observing = False
        try:
            await self.page.evaluate(STOP_OBSERVING_JS)
        except PlaywrightError as e:
            logger.debug("[doc] observer cleanup skipped: %s", e)

    async def goto(self, url: str) -> None:
        await self.page.goto(url, wait_until="domcontentloaded")

    async def wait_until_loaded(self, timeout_ms: int) -> None:
        try:
            await self.page.wait_for_load_state("domcontentloaded", timeout=timeout_ms)
        except PlaywrightTimeout:
            logger.debug("[doc] domcontentloaded not reached in %d ms", timeout_ms)

    async def sleep(self, ms: int) -> None:
        if ms > 0:
            await self.page.wait_for_timeout(ms)

    async def screenshot(self, path: str) -> None:
        await self.page.screenshot(path=path, full_page=True)

    # -----------------------
    # Discovery mode
    # -----------------------

    async def suppress_side_effects(self) -> None:
        if self._guarded:
            return
        await self.page.route("**/*", self._guard_route)
        self.page.on("domcontentloaded", self._rearm_handler)
        self._guarded = True
        await self._rearm()

    async def restore_side_effects(self) -> None:
        if not self._guarded:
            return
        self._guarded = False
        self.page.remove_listener("domcontentloaded", self._rearm_handler)
        try:
            await self.page.evaluate(RESTORE_JS)
        except PlaywrightError as e:
            logger.debug("[guard] in-page restore skipped: %s", e)
        await self.page.unroute("**/*", self._guard_route)
        logger.debug("[guard] released; %d request(s) blocked", self.blocked_requests)

    async def _rearm(self, *_: Any) -> None:
        try:
            await self.page.evaluate(SUPPRESS_JS)
        except PlaywrightError as e:
            logger.debug("[guard] could not patch page: %s", e)

    async def _guard_route(self, route: Route) -> None:
        req = route.request
        if req.resource_type in BLOCKED_RESOURCE_TYPES or req.method != "GET":
            self.blocked_requests += 1
            logger.info("[guard] blocked %s %s", req.method, req.url)
            await route.abort()
            return
        await route.continue_()
