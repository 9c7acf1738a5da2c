#!/usr/bin/env python3
"""
Gemini CLI - Send prompts to Google AI Studio and get responses.
Drives the AI Studio web app in a stealth browser, authenticating with
cookies saved from a previous session.
Supports model selection (Gemini 2.5 Pro, Gemini Flash Latest) through
AI Studio's own localStorage preferences, with a UI fallback.
"""

import asyncio
import argparse
import json
import sys
import time
from dataclasses import dataclass, field
from pathlib import Path

from config import (
    HEADLESS, RESPONSE_TIMEOUT, NAVIGATION_TIMEOUT, USER_AGENT,
    GEMINI_URL, LOGIN_URL_MARKERS, AUTH_SETTLE_DELAY, SCREENSHOTS_DIR,
    ensure_data_dirs,
)
from diag import log, warn
from element_locator import dismiss_overlay
from errors import (
    AuthenticationRequiredError, ElementNotFoundError, GeminiError, ValidationError,
)
from extraction import extract_response
from model_registry import (
    DEFAULT_MODEL, ModelId, all_models, describe, parse_alias_or_fail, supported_aliases,
)
from model_selection import SelectionResult, apply_model
from session_store import SessionStore
from submission import QueryRun


@dataclass
class ClientOptions:
    headless: bool = HEADLESS
    response_timeout: float = RESPONSE_TIMEOUT
    user_agent: str = USER_AGENT
    keep_session_alive: bool = False
    # Diagnostic mode: visible browser, screenshots, interactive sign-in
    debug: bool = False
    verbose: bool = False
    enable_session_persistence: bool = True
    enable_model_selection: bool = True
    model: ModelId | None = None
    # True when the model came from an explicit --model argument
    model_from_cli: bool = False
    screenshot_dir: Path = field(default_factory=lambda: SCREENSHOTS_DIR)


async def launch_browser_page(options: ClientOptions):
    """Default page factory: a real nodriver browser."""
    from page_driver import BrowserPage

    return await BrowserPage.launch(
        headless=options.headless,
        user_agent=options.user_agent,
        verbose=options.verbose or options.debug,
    )


# ── Auth check ────────────────────────────────────────────────────────

async def check_auth_status(page) -> tuple[bool, str]:
    """
    Check whether AI Studio accepted our cookies.

    Returns:
        tuple: (is_authenticated, error_message)
    """
    current_url = await page.current_url()
    if any(marker in current_url for marker in LOGIN_URL_MARKERS):
        return False, f"Redirected to Google sign-in ({current_url})"
    return True, ""


def _ask_operator(message: str) -> str:
    return input(message)


class GeminiClient:
    """One browser session against AI Studio; queries run sequentially."""

    def __init__(self, options: ClientOptions | None = None, store: SessionStore | None = None,
                 page_factory=None, operator_prompt=_ask_operator):
        self.options = options or ClientOptions()
        self.store = store if store is not None else SessionStore(verbose=self.verbose)
        self.page_factory = page_factory or launch_browser_page
        self.operator_prompt = operator_prompt
        self.page = None
        self.last_selection: SelectionResult | None = None
        self._initialized = False

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        await self.close()

    @property
    def verbose(self) -> bool:
        return self.options.verbose or self.options.debug

    @property
    def persist(self) -> bool:
        return self.options.enable_session_persistence

    # --- Lifecycle ---

    async def initialize(self):
        """Launch the browser, restore cookies, open AI Studio, check auth."""
        opts = self.options
        if opts.debug:
            ensure_data_dirs()

        record = self.store.load() if self.persist else None

        self.page = await self.page_factory(opts)
        if record and record.cookies:
            injected = await self.page.add_cookies(record.cookies)
            log(f"session: restored {injected}/{len(record.cookies)} cookies", self.verbose)

        await self.page.navigate(GEMINI_URL, wait_until="networkidle", timeout=NAVIGATION_TIMEOUT)
        await self._handle_authentication()
        await dismiss_overlay(self.page, self.verbose)
        self._initialized = True

    async def _handle_authentication(self):
        page = self.page
        await page.sleep(AUTH_SETTLE_DELAY)

        is_auth, reason = await check_auth_status(page)
        if is_auth:
            return

        current_url = await page.current_url()
        if not self.options.debug:
            raise AuthenticationRequiredError(
                f"Authentication required: {reason}. "
                "Run with --debug to sign in interactively.",
                url=current_url,
            )

        await asyncio.to_thread(
            self.operator_prompt,
            "Sign in to your Google account in the browser window, then press Enter to continue...",
        )
        while not (await check_auth_status(page))[0]:
            await page.sleep(1)
        log("auth: sign-in complete", self.verbose)

        if self.persist:
            await self._persist_cookies()

    async def _persist_cookies(self, model: ModelId | None = None):
        """Save browser cookies (and the model). Failures only warn."""
        try:
            self.store.save(await self.page.cookies(), model)
        except Exception as e:
            warn(f"Could not save session cookies: {e}")

    async def reset_session(self):
        """Navigate back to a fresh chat; tear the browser down if that fails."""
        try:
            if self.page is not None:
                await self.page.navigate(GEMINI_URL, wait_until="networkidle",
                                         timeout=NAVIGATION_TIMEOUT)
        except Exception as e:
            log(f"reset: navigation failed ({e}), closing browser", self.verbose)
            await self.close()

    async def close(self):
        if self.page is not None:
            try:
                await self.page.close()
            finally:
                self.page = None
        self._initialized = False

    # --- Queries ---

    def resolve_model(self) -> ModelId:
        """Explicit option, else the persisted preference, else the default."""
        if self.options.model is not None:
            return self.options.model
        if self.persist:
            preferred = self.store.get_preferred_model()
            if preferred is not None:
                return preferred
        return DEFAULT_MODEL

    async def _screenshot(self, name: str):
        path = Path(self.options.screenshot_dir) / name
        try:
            await self.page.screenshot(path)
            print(f"Screenshot saved to {path}", file=sys.stderr)
        except Exception as e:
            log(f"screenshot {name} failed: {e}", self.verbose)

    async def query(self, prompt: str) -> str:
        """Send one prompt and return the response text."""
        if not self._initialized or self.page is None:
            await self.initialize()

        opts = self.options
        page = self.page
        try:
            if opts.debug:
                title = await page.evaluate("document.title")
                textareas = await page.query_selector_all("textarea")
                log(f"page title: {title!r}, {len(textareas)} textarea elements", self.verbose)

            model = self.resolve_model()
            if opts.enable_model_selection:
                self.last_selection = await apply_model(
                    page, model,
                    store=self.store if self.persist else None,
                    explicit=opts.model_from_cli,
                    verbose=self.verbose,
                    after_reload=lambda: dismiss_overlay(page, self.verbose),
                )

            run = QueryRun(page, verbose=self.verbose)
            try:
                await run.submit(prompt)
            except ElementNotFoundError:
                if opts.debug:
                    await self._screenshot("debug.png")
                raise

            await run.wait_for_completion(opts.response_timeout)
            if opts.debug:
                await self._screenshot("response_ready.png")

            response = await extract_response(page, verbose=self.verbose)

            if self.persist:
                await self._persist_cookies(model)
            return response

        except Exception:
            if not opts.keep_session_alive:
                await self.reset_session()
            raise

    async def query_with_screenshots(self, prompt: str) -> str:
        """query() with before/after screenshots and a dump of the last page lines."""
        self.options.debug = True
        self.options.headless = False
        ensure_data_dirs()
        if not self._initialized or self.page is None:
            await self.initialize()

        await self._screenshot("before.png")
        response = await self.query(prompt)
        await self._screenshot("after.png")

        body = await self.page.text_content()
        lines = [line.strip() for line in body.split("\n") if line.strip()]
        print("Last 20 lines of the page:", file=sys.stderr)
        for line in lines[-20:]:
            print(f">> {line}", file=sys.stderr)
        return response


async def run_query(
    prompt: str,
    model_alias: str | None = None,
    debug: bool = False,
    options: ClientOptions | None = None,
    store: SessionStore | None = None,
    page_factory=None,
) -> str:
    """Validate the alias, open a session, send the prompt, close the browser."""
    model = parse_alias_or_fail(model_alias) if model_alias else None

    options = options or ClientOptions(headless=HEADLESS and not debug)
    if debug:
        options.debug = True
    if model is not None:
        options.model = model
        options.model_from_cli = True

    async with GeminiClient(options, store=store, page_factory=page_factory) as client:
        if options.debug:
            return await client.query_with_screenshots(prompt)
        return await client.query(prompt)


# ── CLI ───────────────────────────────────────────────────────────────

def _models_help() -> str:
    lines = []
    for descriptor in all_models():
        aliases = ", ".join(sorted(descriptor.aliases))
        default = " (default)" if descriptor.is_default else ""
        lines.append(f"  {descriptor.display_name}{default}\n      aliases: {aliases}")
    return "\n".join(lines)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Send prompts to Google AI Studio (Gemini) via a browser",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=f"""
Examples:
  python gemini.py "What is recursion?"
  python gemini.py --model flash "Quick question"
  python gemini.py --debug --model pro "Complex analysis"
  python gemini.py --list-models
  python gemini.py --probe --show-browser

Models:
{_models_help()}

Output:
  By default, prints only the response text.
  Use --json for full JSON output with metadata.
"""
    )
    parser.add_argument("prompt", nargs="*",
                        help="The prompt to send (words are joined with spaces)")
    parser.add_argument("--model", "-m",
                        help="Gemini model alias (pro, flash, latest, 2.5, ...)")
    parser.add_argument("--debug", action="store_true",
                        help="Visible browser, screenshots, interactive sign-in and debug logging")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable debug logging to stderr")
    parser.add_argument("--timeout", "-t", type=int, default=RESPONSE_TIMEOUT,
                        help=f"Response timeout in seconds (default: {RESPONSE_TIMEOUT})")
    parser.add_argument("--show-browser", action="store_true",
                        help="Show browser window")
    parser.add_argument("--keep-session", action="store_true",
                        help="Do not reset the page after a failed query")
    parser.add_argument("--no-session", action="store_true",
                        help="Do not read or write the saved session file")
    parser.add_argument("--no-model-select", action="store_true",
                        help="Leave AI Studio's current model untouched")
    parser.add_argument("--json", action="store_true",
                        help="Output full JSON response")
    parser.add_argument("--list-models", action="store_true",
                        help="List supported models and aliases")
    parser.add_argument("--clear-session", action="store_true",
                        help="Delete the saved session (cookies and model preference)")
    parser.add_argument("--probe", action="store_true",
                        help="Open AI Studio and report which selectors match")
    return parser


def _list_models(as_json: bool):
    if as_json:
        print(json.dumps([
            {
                "id": d.model.value,
                "display_name": d.display_name,
                "description": d.description,
                "storage_id": d.storage_id,
                "default": d.is_default,
                "aliases": sorted(d.aliases),
            }
            for d in all_models()
        ], indent=2))
        return
    for descriptor in all_models():
        print(descriptor)
    print(f"\nAliases: {', '.join(supported_aliases())}")


def main(argv: list[str] | None = None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.list_models:
        _list_models(args.json)
        return

    if args.clear_session:
        SessionStore(verbose=args.verbose).clear()
        print("Session cleared.", file=sys.stderr)
        return

    prompt = " ".join(args.prompt).strip()
    if not prompt and not args.probe:
        parser.error("a prompt is required")

    verbose = args.verbose or args.debug
    options = ClientOptions(
        headless=HEADLESS and not (args.debug or args.show_browser),
        response_timeout=args.timeout,
        keep_session_alive=args.keep_session,
        debug=args.debug,
        verbose=args.verbose,
        enable_session_persistence=not args.no_session,
        enable_model_selection=not args.no_model_select,
    )

    try:
        if args.probe:
            from dom_debug import run_probe
            report = asyncio.run(run_probe(options))
            print(json.dumps(report, indent=2))
            return

        model_alias = args.model
        if model_alias:
            model = parse_alias_or_fail(model_alias)
            print(f"Using model: {describe(model).display_name}", file=sys.stderr)
        else:
            log(f"Using default model resolution (fallback {describe(DEFAULT_MODEL).display_name})", verbose)

        start_time = time.time()
        response = asyncio.run(run_query(prompt, model_alias, debug=args.debug, options=options))
        total_time = int(time.time() - start_time)

    except ValidationError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)
    except GeminiError as e:
        if args.json:
            print(json.dumps({"success": False, "stage": e.stage, "error": str(e)}, indent=2))
        else:
            print(f"Error ({e.stage}): {e}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if args.json:
        model = options.model
        if model is None and options.enable_session_persistence:
            model = SessionStore().get_preferred_model()
        model = model or DEFAULT_MODEL
        print(json.dumps({
            "success": True,
            "response": response,
            "prompt": prompt,
            "model": describe(model).display_name,
            "total_time_seconds": total_time,
        }, indent=2))
    else:
        print(response)


if __name__ == "__main__":
    main()
