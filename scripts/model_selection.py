#!/usr/bin/env python3
"""
Make AI Studio use a given model.

Two mechanisms, tried in order:
  A. storage channel: rewrite `promptModel` inside the aiStudioUserPreference
     localStorage blob, read it back to verify, reload if the UI has not
     picked it up.
  B. UI dropdown: open the model selector and click the matching option.

Neither failure aborts a query; AI Studio then keeps whatever model it
already had selected.
"""

import json
from dataclasses import dataclass

from config import (
    GEMINI_MODEL_DROPDOWN_SELECTORS, GEMINI_MODEL_OPTION_SELECTORS,
    GEMINI_MODEL_UI_MARKERS, NAVIGATION_TIMEOUT, STORAGE_MODEL_FIELD,
    STORAGE_PREFERENCE_KEY,
)
from diag import log
from element_locator import find_element
from errors import StorageChannelError
from model_registry import ModelDescriptor, ModelId, describe, find_by_storage_id

# Called with {key, field, value}. Unknown blob fields are preserved.
STORAGE_WRITE_SCRIPT = '''(args) => {
    let prefs = {};
    try {
        const raw = localStorage.getItem(args.key);
        const parsed = raw ? JSON.parse(raw) : null;
        if (parsed && typeof parsed === 'object' && !Array.isArray(parsed)) prefs = parsed;
    } catch (e) {
        prefs = {};
    }
    prefs[args.field] = args.value;
    localStorage.setItem(args.key, JSON.stringify(prefs));
    const check = JSON.parse(localStorage.getItem(args.key) || '{}');
    return JSON.stringify({success: check[args.field] === args.value, preferences: check});
}'''

# Called with {key, field}; returns the field value or null
STORAGE_READ_SCRIPT = '''(args) => {
    try {
        const prefs = JSON.parse(localStorage.getItem(args.key) || '{}');
        return prefs && typeof prefs === 'object' ? (prefs[args.field] ?? null) : null;
    } catch (e) {
        return null;
    }
}'''


@dataclass
class SelectionResult:
    model: ModelId
    mechanism: str | None = None     # "storage", "dropdown" or None
    fallback_used: bool = False
    reloaded: bool = False
    preferences: dict | None = None

    @property
    def applied(self) -> bool:
        return self.mechanism is not None


async def write_model_preference(page, model: ModelId, verbose: bool = False) -> dict:
    """Storage channel write + verify. Returns the resulting preference blob."""
    descriptor = describe(model)
    log(f"storage: setting {STORAGE_MODEL_FIELD}={descriptor.storage_id}", verbose)
    try:
        raw = await page.evaluate(STORAGE_WRITE_SCRIPT, {
            "key": STORAGE_PREFERENCE_KEY,
            "field": STORAGE_MODEL_FIELD,
            "value": descriptor.storage_id,
        })
        result = json.loads(raw) if isinstance(raw, str) else raw
    except Exception as e:
        raise StorageChannelError(f"localStorage write failed: {e}") from e

    if not isinstance(result, dict):
        raise StorageChannelError(f"localStorage write returned {result!r}")
    preferences = result.get("preferences") or {}
    if not result.get("success") or preferences.get(STORAGE_MODEL_FIELD) != descriptor.storage_id:
        raise StorageChannelError(
            f"localStorage verification failed: {STORAGE_MODEL_FIELD}="
            f"{preferences.get(STORAGE_MODEL_FIELD)!r}",
            preferences=preferences,
        )
    log(f"storage: verified {descriptor.display_name}", verbose)
    return preferences


async def read_model_preference(page) -> ModelId | None:
    """Model currently recorded in AI Studio's localStorage, if recognised."""
    try:
        value = await page.evaluate(STORAGE_READ_SCRIPT, {
            "key": STORAGE_PREFERENCE_KEY,
            "field": STORAGE_MODEL_FIELD,
        })
    except Exception:
        return None
    descriptor = find_by_storage_id(value if isinstance(value, str) else None)
    return descriptor.model if descriptor else None


async def needs_reload(page, descriptor: ModelDescriptor) -> bool:
    """Guess whether AI Studio must reload to pick up the stored model.

    True unless a rendered model selector already shows the target model.
    """
    for selector in GEMINI_MODEL_UI_MARKERS:
        try:
            marker = await page.query_selector(selector)
            if marker is None:
                continue
            text = await page.text_content(marker)
        except Exception:
            continue
        if descriptor.display_name.lower() in (text or "").lower():
            return False
    return True


def _option_matches(text: str, descriptor: ModelDescriptor, exact: bool) -> bool:
    text = (text or "").lower()
    if exact:
        return descriptor.display_name.lower() in text
    return bool(descriptor.option_keyword) and descriptor.option_keyword.lower() in text


async def select_via_dropdown(page, model: ModelId, verbose: bool = False) -> bool:
    """Open the model selector and click the target option. False on any miss."""
    descriptor = describe(model)
    dropdown = await find_element(page, "model dropdown", GEMINI_MODEL_DROPDOWN_SELECTORS,
                                  clickable=True, verbose=verbose)
    if dropdown is None:
        log("dropdown: model selector not found", verbose)
        return False

    try:
        await page.click(dropdown)
        await page.sleep(1)

        for selector in GEMINI_MODEL_OPTION_SELECTORS:
            options = await page.query_selector_all(selector)
            if not options:
                continue
            texts = [await page.text_content(o) for o in options]
            # Full display name first, then the "Pro"/"Flash" keyword
            for exact in (True, False):
                for option, text in zip(options, texts):
                    if _option_matches(text, descriptor, exact):
                        log(f"dropdown: clicking '{(text or '').strip()}' via {selector}", verbose)
                        await page.click(option)
                        await page.sleep(1)
                        return True
            log(f"dropdown: {len(options)} options via {selector}, none match {descriptor.display_name}", verbose)

        log("dropdown: no matching option", verbose)
        await page.press_key("Escape")
    except Exception as e:
        log(f"dropdown: {e}", verbose)
    return False


async def apply_model(
    page,
    model: ModelId,
    store=None,
    explicit: bool = False,
    verbose: bool = False,
    after_reload=None,
) -> SelectionResult:
    """Apply a model via the storage channel, falling back to the dropdown.

    store: SessionStore (or None to skip persistence).
    after_reload: async callable run after a reload (e.g. overlay dismissal).
    """
    descriptor = describe(model)
    method = "cli" if explicit else "automated"
    result = SelectionResult(model=descriptor.model)

    try:
        result.preferences = await write_model_preference(page, model, verbose)
    except StorageChannelError as e:
        log(f"storage channel failed ({e}); trying the model dropdown", verbose)
    else:
        result.mechanism = "storage"
        if await needs_reload(page, descriptor):
            log("storage: reloading so AI Studio picks up the new model", verbose)
            try:
                await page.reload(wait_until="networkidle", timeout=NAVIGATION_TIMEOUT)
                result.reloaded = True
                if after_reload is not None:
                    await after_reload()
            except Exception as e:
                log(f"storage: reload failed: {e}", verbose)
        if store is not None:
            store.save_preferred_model(descriptor.model, method, fallback_used=False)
        return result

    result.fallback_used = True
    if await select_via_dropdown(page, model, verbose):
        result.mechanism = "dropdown"
    else:
        log(f"model selection failed; AI Studio keeps its current model "
            f"(wanted {descriptor.display_name})", verbose)

    if store is not None:
        store.save_preferred_model(descriptor.model, method, fallback_used=True)
    return result
