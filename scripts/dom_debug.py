#!/usr/bin/env python3
"""
Diagnostic: open AI Studio with the saved session and report which selector
of every cascade matches, which model localStorage currently holds, and the
page text AI Studio renders. Nothing is typed or sent.

Usage:
    python3 scripts/gemini.py --probe --show-browser
    python3 scripts/dom_debug.py
"""
import asyncio
import json

from config import (
    GEMINI_INPUT_SELECTORS, GEMINI_SEND_SELECTORS, GEMINI_CLOSE_SELECTORS,
    GEMINI_MODEL_DROPDOWN_SELECTORS, GEMINI_MODEL_OPTION_SELECTORS,
    GEMINI_MODEL_UI_MARKERS, GEMINI_RESPONSE_SELECTORS,
)
from model_registry import describe
from model_selection import read_model_preference

PROBE_CASCADES = {
    "input": GEMINI_INPUT_SELECTORS,
    "send": GEMINI_SEND_SELECTORS,
    "close": GEMINI_CLOSE_SELECTORS,
    "model dropdown": GEMINI_MODEL_DROPDOWN_SELECTORS,
    "model option": GEMINI_MODEL_OPTION_SELECTORS,
    "model ui marker": GEMINI_MODEL_UI_MARKERS,
    "response": GEMINI_RESPONSE_SELECTORS,
}


async def probe_page(page) -> dict:
    """Match counts per selector and the first matching selector per role."""
    roles = {}
    for role, selectors in PROBE_CASCADES.items():
        counts = {}
        for sel in selectors:
            try:
                counts[sel] = len(await page.query_selector_all(sel))
            except Exception as e:
                counts[sel] = f"error: {e}"
        first_hit = next((s for s, n in counts.items() if isinstance(n, int) and n > 0), None)
        roles[role] = {"first_match": first_hit, "counts": counts}

    stored = await read_model_preference(page)
    page_text = await page.text_content() or ""
    lines = [line.strip() for line in page_text.split("\n") if line.strip()]

    return {
        "url": await page.current_url(),
        "roles": roles,
        "stored_model": describe(stored).display_name if stored else None,
        "text_lines": len(lines),
        "last_lines": lines[-20:],
    }


async def run_probe(options) -> dict:
    """Open a session like a query would and probe the resulting page."""
    from gemini import GeminiClient

    async with GeminiClient(options) as client:
        await client.initialize()
        return await probe_page(client.page)


def main():
    from gemini import ClientOptions

    report = asyncio.run(run_probe(ClientOptions(headless=False, verbose=True)))
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
