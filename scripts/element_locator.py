#!/usr/bin/env python3
"""
Cascading-selector element lookup.

AI Studio's markup drifts, so each interactive role has an ordered list of
selectors (see config.py). One pass, first usable hit wins; the cascade is
the retry mechanism.
"""

from config import GEMINI_CLOSE_SELECTORS, LOCATOR_TIMEOUT
from diag import log
from errors import ElementNotFoundError


async def find_element(
    page,
    role: str,
    selectors: list[str],
    timeout: float = LOCATOR_TIMEOUT,
    clickable: bool = False,
    verbose: bool = False,
):
    """Return the first present, enabled (and visible if clickable) match, or None.

    timeout is the wait per selector; 0 queries without waiting.
    """
    for selector in selectors:
        log(f"locate {role}: trying {selector}", verbose)
        try:
            if timeout:
                element = await page.wait_for_selector(selector, timeout=timeout)
            else:
                element = await page.query_selector(selector)
            if element is None:
                log(f"locate {role}: {selector} not found", verbose)
                continue
            if not await page.is_enabled(element):
                log(f"locate {role}: {selector} is disabled", verbose)
                continue
            if clickable and not await page.is_visible(element):
                log(f"locate {role}: {selector} is not visible", verbose)
                continue
        except Exception as e:
            log(f"locate {role}: {selector} failed: {e}", verbose)
            continue

        log(f"locate {role}: found via {selector}", verbose)
        return element

    return None


async def require_element(
    page,
    role: str,
    selectors: list[str],
    timeout: float = LOCATOR_TIMEOUT,
    clickable: bool = False,
    verbose: bool = False,
):
    """find_element for critical roles: raises ElementNotFoundError on a miss."""
    element = await find_element(page, role, selectors, timeout=timeout,
                                 clickable=clickable, verbose=verbose)
    if element is None:
        raise ElementNotFoundError(role, selectors)
    return element


async def dismiss_overlay(page, verbose: bool = False) -> bool:
    """Close a welcome dialog / banner if one is showing. Never raises.

    Falls back to Escape when no close control matches.
    """
    button = await find_element(page, "close", GEMINI_CLOSE_SELECTORS,
                                timeout=0, clickable=True, verbose=verbose)
    try:
        if button is not None:
            await page.click(button)
            await page.sleep(0.5)
            return True
        await page.press_key("Escape")
    except Exception as e:
        log(f"dismiss_overlay: {e}", verbose)
    return False
