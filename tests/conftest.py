"""Shared fixtures: an in-memory page standing in for the nodriver browser."""

import json
from pathlib import Path

import pytest

from config import BUSY_MARKER
from errors import ScriptEvaluationError
from model_selection import STORAGE_READ_SCRIPT, STORAGE_WRITE_SCRIPT
from session_store import SessionStore


class FakeElement:
    def __init__(self, text="", enabled=True, visible=True, on_click=None):
        self.text = text
        self.enabled = enabled
        self.visible = visible
        self.on_click = on_click
        self.clicks = 0
        self.value = None


class FakePage:
    """Implements the BrowserPage surface against plain dicts and a fake clock.

    sleep() advances `clock` instead of waiting. While `clock < busy_until`
    the body text carries the busy marker.
    """

    def __init__(self, elements=None, body="", url="about:blank"):
        self.elements = {k: list(v) for k, v in (elements or {}).items()}
        self.body = body
        self.url = url
        self.title = "Google AI Studio"
        self.clock = 0.0
        self.busy_until = 0.0
        self.local_storage = {}
        self.storage_failures = 0
        self.storage_readonly = False
        self.broken_selectors = set()
        self.redirect_url = None
        self.reload_error = None
        self.navigate_error = None
        self.browser_cookies = []
        self.injected = []
        self.navigations = []
        self.reloads = []
        self.keys = []
        self.screenshots = []
        self.sleeps = []
        self.closed = False

    def add(self, selector, *elements):
        self.elements.setdefault(selector, []).extend(elements)
        return elements[0] if len(elements) == 1 else elements

    # --- Navigation ---

    async def navigate(self, url, wait_until="load", timeout=30):
        self.navigations.append(url)
        if self.navigate_error is not None:
            raise self.navigate_error
        self.url = self.redirect_url or url

    async def reload(self, wait_until="networkidle", timeout=30):
        self.reloads.append(wait_until)
        if self.reload_error is not None:
            raise self.reload_error

    async def current_url(self):
        return self.url

    # --- Queries ---

    def _lookup(self, selector):
        if selector in self.broken_selectors:
            raise RuntimeError(f"selector {selector} exploded")
        return self.elements.get(selector, [])

    async def wait_for_selector(self, selector, timeout):
        found = self._lookup(selector)
        return found[0] if found else None

    async def query_selector(self, selector):
        found = self._lookup(selector)
        return found[0] if found else None

    async def query_selector_all(self, selector):
        return list(self._lookup(selector))

    async def is_enabled(self, element):
        return element.enabled

    async def is_visible(self, element):
        return element.visible

    async def text_content(self, element=None):
        if element is not None:
            return element.text
        if self.clock < self.busy_until:
            return f"{self.body}\n{BUSY_MARKER}"
        return self.body

    # --- Interaction ---

    async def click(self, element):
        element.clicks += 1
        if element.on_click is not None:
            element.on_click(self)

    async def fill(self, element, text):
        element.value = text

    async def press_key(self, combo):
        self.keys.append(combo)

    async def evaluate(self, script, arg=None):
        if script is STORAGE_WRITE_SCRIPT:
            if self.storage_failures:
                self.storage_failures -= 1
                raise ScriptEvaluationError("Script failed: SecurityError: localStorage is disabled")
            prefs = json.loads(self.local_storage.get(arg["key"]) or "{}")
            prefs[arg["field"]] = arg["value"]
            if not self.storage_readonly:
                self.local_storage[arg["key"]] = json.dumps(prefs)
            check = json.loads(self.local_storage.get(arg["key"]) or "{}")
            return json.dumps({"success": check.get(arg["field"]) == arg["value"], "preferences": check})
        if script is STORAGE_READ_SCRIPT:
            prefs = json.loads(self.local_storage.get(arg["key"]) or "{}")
            return prefs.get(arg["field"])
        if script == "document.title":
            return self.title
        return None

    async def screenshot(self, path):
        self.screenshots.append(Path(path).name)

    async def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.clock += seconds

    # --- Cookies ---

    async def cookies(self):
        return list(self.browser_cookies)

    async def add_cookies(self, cookies):
        self.injected.extend(cookies)
        return len(cookies)

    async def close(self):
        self.closed = True


@pytest.fixture
def page():
    return FakePage()


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "session.json")
