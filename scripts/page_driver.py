#!/usr/bin/env python3
"""
Browser capability surface on top of nodriver.

Everything the automation core needs from a browser goes through
BrowserPage: navigate, query, click, fill, press keys, evaluate scripts,
read text, screenshot, reload, cookies and sleep. The core never touches
nodriver directly, so tests can substitute an in-memory page.
"""

import asyncio
import json
import time
from pathlib import Path

import nodriver as uc
from nodriver import cdp

from config import (
    BROWSER_ARGS, HEADLESS, NAVIGATION_TIMEOUT, USER_AGENT, USER_DATA_DIR,
    GEMINI_COOKIE_DOMAINS, clean_browser_locks,
)
from diag import log
from errors import ScriptEvaluationError

# key -> (key, code, windows virtual key code, text)
_KEYS = {
    "Enter": ("Enter", "Enter", 13, "\r"),
    "Escape": ("Escape", "Escape", 27, None),
    "Backspace": ("Backspace", "Backspace", 8, None),
    "Tab": ("Tab", "Tab", 9, None),
    "A": ("a", "KeyA", 65, "a"),
}

# CDP modifier bit flags
_MODIFIERS = {"Alt": 1, "Control": 2, "Meta": 4, "Shift": 8}

# Editing commands Chrome only honours when passed explicitly over CDP
_KEY_COMMANDS = {("Control", "A"): ["selectAll"], ("Meta", "A"): ["selectAll"]}

_FILL_JS = '''(el) => {
    const text = %s;
    el.focus();
    if (el.isContentEditable) {
        el.textContent = text;
    } else if (el.tagName === 'TEXTAREA' || el.tagName === 'INPUT') {
        const proto = el.tagName === 'TEXTAREA'
            ? HTMLTextAreaElement.prototype : HTMLInputElement.prototype;
        Object.getOwnPropertyDescriptor(proto, 'value').set.call(el, text);
    } else {
        return false;
    }
    el.dispatchEvent(new Event('input', {bubbles: true}));
    el.dispatchEvent(new Event('change', {bubbles: true}));
    return true;
}'''


def cookie_to_param(c: dict):
    """Build a CDP CookieParam from a stored cookie dict."""
    same_site = None
    if c.get("sameSite") in ["Strict", "Lax", "None"]:
        same_site = cdp.network.CookieSameSite(c["sameSite"])

    name = c["name"]
    domain = c.get("domain", "")
    expires = c.get("expires")
    expires = cdp.network.TimeSinceEpoch(expires) if expires and expires > 0 else None

    # __Host- cookies must NOT have a domain attribute set
    if name.startswith("__Host-"):
        protocol = "https" if c.get("secure", False) else "http"
        return cdp.network.CookieParam(
            name=name, value=c["value"],
            url=f"{protocol}://{domain.lstrip('.')}{c.get('path', '/')}",
            path="/", secure=True,
            http_only=c.get("httpOnly", False),
            same_site=same_site, expires=expires,
        )
    return cdp.network.CookieParam(
        name=name, value=c["value"], domain=domain,
        path=c.get("path", "/"),
        secure=c.get("secure", False),
        http_only=c.get("httpOnly", False),
        same_site=same_site, expires=expires,
    )


def cookie_from_cdp(c) -> dict:
    return {
        "name": c.name,
        "value": c.value,
        "domain": c.domain,
        "path": c.path,
        "expires": c.expires,
        "httpOnly": c.http_only,
        "secure": c.secure,
        "sameSite": c.same_site.value if c.same_site else None,
    }


def _wanted_domain(domain: str) -> bool:
    bare = (domain or "").lstrip(".")
    return any(bare == d or bare.endswith("." + d) for d in GEMINI_COOKIE_DOMAINS)


class BrowserPage:
    """One nodriver browser with a single tab."""

    def __init__(self, browser, tab, verbose: bool = False):
        self.browser = browser
        self.tab = tab
        self.verbose = verbose

    @classmethod
    async def launch(
        cls,
        headless: bool = HEADLESS,
        user_agent: str = USER_AGENT,
        browser_args: list[str] | None = None,
        user_data_dir: Path | None = USER_DATA_DIR,
        verbose: bool = False,
    ) -> "BrowserPage":
        args = list(browser_args or BROWSER_ARGS)
        if user_agent:
            args.append(f"--user-agent={user_agent}")
        if user_data_dir is not None:
            Path(user_data_dir).mkdir(parents=True, exist_ok=True)
            clean_browser_locks(Path(user_data_dir))

        log(f"browser: starting headless={headless}", verbose)
        browser = await uc.start(
            headless=headless,
            user_data_dir=str(user_data_dir) if user_data_dir else None,
            browser_args=args,
        )
        tab = await browser.get("about:blank")
        return cls(browser, tab, verbose=verbose)

    # --- Navigation ---

    async def navigate(self, url: str, wait_until: str = "load", timeout: float = NAVIGATION_TIMEOUT):
        log(f"browser: navigate {url} (wait_until={wait_until})", self.verbose)
        await asyncio.wait_for(self.tab.get(url), timeout=timeout)
        await self._wait_for_load(wait_until, timeout)

    async def reload(self, wait_until: str = "networkidle", timeout: float = NAVIGATION_TIMEOUT):
        log("browser: reload", self.verbose)
        await self.tab.send(cdp.page.reload())
        await self._wait_for_load(wait_until, timeout)

    async def current_url(self) -> str:
        try:
            href = await self.evaluate("window.location.href")
        except ScriptEvaluationError:
            href = None
        return href or self.tab.url or ""

    async def _wait_for_load(self, wait_until: str, timeout: float):
        """readyState == complete; for networkidle also a stable resource count."""
        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            try:
                state = await self.evaluate("document.readyState")
            except ScriptEvaluationError:
                state = None
            if state == "complete":
                break
            await self.tab.sleep(0.25)

        if wait_until != "networkidle":
            return

        last_count = -1
        while time.monotonic() < deadline:
            try:
                count = await self.evaluate("performance.getEntriesByType('resource').length")
            except ScriptEvaluationError:
                count = None
            if count is not None and count == last_count:
                return
            last_count = count
            await self.tab.sleep(0.5)

    # --- Queries ---

    async def wait_for_selector(self, selector: str, timeout: float):
        try:
            return await self.tab.select(selector, timeout=timeout)
        except asyncio.TimeoutError:
            return None

    async def query_selector(self, selector: str):
        return await self.tab.query_selector(selector)

    async def query_selector_all(self, selector: str) -> list:
        return list(await self.tab.query_selector_all(selector) or [])

    async def is_enabled(self, element) -> bool:
        return bool(await element.apply(
            "(el) => !el.disabled && el.getAttribute('aria-disabled') !== 'true'"
        ))

    async def is_visible(self, element) -> bool:
        return bool(await element.apply(
            "(el) => { const r = el.getBoundingClientRect(); "
            "return r.width > 0 && r.height > 0 && getComputedStyle(el).visibility !== 'hidden'; }"
        ))

    async def text_content(self, element=None) -> str:
        if element is None:
            return await self.evaluate("document.body ? document.body.textContent : ''") or ""
        return await element.apply("(el) => el.textContent || ''") or ""

    # --- Interaction ---

    async def click(self, element):
        await element.click()

    async def fill(self, element, text: str):
        filled = await element.apply(_FILL_JS % json.dumps(text))
        if not filled:
            await element.clear_input()
            await element.send_keys(text)

    async def press_key(self, combo: str):
        """Press a key or modifier combination such as "Control+A"."""
        *mods, key = combo.split("+")
        key_name, code, vk, text = _KEYS.get(key.upper() if len(key) == 1 else key, (key, key, 0, None))
        modifiers = sum(_MODIFIERS.get(m, 0) for m in mods)
        commands = _KEY_COMMANDS.get((mods[0], key.upper())) if mods else None
        if modifiers:
            text = None

        await self.tab.send(cdp.input_.dispatch_key_event(
            type_="keyDown", key=key_name, code=code, text=text,
            windows_virtual_key_code=vk, native_virtual_key_code=vk,
            modifiers=modifiers or None, commands=commands,
        ))
        await self.tab.send(cdp.input_.dispatch_key_event(
            type_="keyUp", key=key_name, code=code,
            windows_virtual_key_code=vk, native_virtual_key_code=vk,
            modifiers=modifiers or None,
        ))

    async def evaluate(self, script: str, arg=None):
        """Run JavaScript via CDP Runtime.evaluate.

        With `arg`, `script` must be a function expression; it is called with
        the JSON-encoded argument. Thrown exceptions raise ScriptEvaluationError.
        """
        expression = f"({script})({json.dumps(arg)})" if arg is not None else script
        result, exception = await self.tab.send(cdp.runtime.evaluate(
            expression, return_by_value=True, await_promise=True,
        ))
        if exception is not None:
            detail = exception.exception.description if exception.exception else exception.text
            raise ScriptEvaluationError(f"Script failed: {detail}")
        if result is None:
            return None
        return result.value

    async def screenshot(self, path: Path | str):
        await self.tab.save_screenshot(str(path))
        log(f"browser: screenshot saved to {path}", self.verbose)

    async def sleep(self, seconds: float):
        await self.tab.sleep(seconds)

    # --- Cookies ---

    async def cookies(self) -> list[dict]:
        """Cookies for the AI Studio / Google domains."""
        raw = await self.browser.connection.send(cdp.storage.get_cookies())
        return [cookie_from_cdp(c) for c in raw or [] if _wanted_domain(c.domain)]

    async def add_cookies(self, cookies: list[dict]) -> int:
        """Inject stored cookies; returns how many were accepted."""
        injected = 0
        for c in cookies:
            if not c.get("value") or not c.get("name"):
                continue
            try:
                await self.browser.connection.send(cdp.storage.set_cookies([cookie_to_param(c)]))
                injected += 1
            except Exception as e:
                log(f"browser: cookie {c.get('name')} rejected: {e}", self.verbose)
        log(f"browser: {injected}/{len(cookies)} cookies injected", self.verbose)
        return injected

    async def close(self):
        if self.browser:
            self.browser.stop()
            self.browser = None
