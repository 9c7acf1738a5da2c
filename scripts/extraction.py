#!/usr/bin/env python3
"""
Response extraction once generation is complete.

Strategies, first non-empty result wins:
  1. structured response nodes (ms-text-chunk and friends)
  2. line scan of the page text with a strict UI-chrome filter
  3. the same scan with wider bounds and a shorter deny list
  4. a fixed placeholder asking the operator to re-run with --debug
"""

import re
from dataclasses import dataclass

from config import (
    EXTRACTION_PLACEHOLDER, GEMINI_RESPONSE_SELECTORS, LINE_SCAN_BOUNDS,
    LINE_SCAN_DENY, LINE_SCAN_MIN_WORDS, MIN_CHUNK_LENGTH, PRIMARY_CHUNK_SELECTOR,
    RELAXED_SCAN_BOUNDS, RELAXED_SCAN_DENY, RELAXED_SCAN_MIN_WORDS,
    RESPONSE_FORMAT_REPLACEMENTS,
)
from diag import log
from model_registry import all_models


@dataclass
class ExtractionCandidate:
    text: str
    strategy: str

    @property
    def length(self) -> int:
        return len(self.text)


def format_response(text: str) -> str:
    """Cosmetic markdown pass over extracted text."""
    if not text or not text.strip():
        return text
    for needle, replacement in RESPONSE_FORMAT_REPLACEMENTS:
        text = text.replace(needle, replacement)
    return re.sub(r"\n{3,}", "\n\n", text).strip()


def scan_lines(
    text: str,
    bounds: tuple[int, int],
    min_words: int,
    deny: list[str],
    strategy: str = "line-scan",
) -> list[ExtractionCandidate]:
    """Lines of page text that look like prose rather than UI chrome."""
    low, high = bounds
    candidates = []
    for line in text.split("\n"):
        line = line.strip()
        if not low <= len(line) <= high:
            continue
        if len(line.split()) <= min_words:
            continue
        if any(marker in line for marker in deny):
            continue
        candidates.append(ExtractionCandidate(line, strategy))
    return candidates


async def collect_structured(page, verbose: bool = False) -> list[ExtractionCandidate]:
    """Texts of the first response selector with usable matches."""
    for selector in GEMINI_RESPONSE_SELECTORS:
        try:
            elements = await page.query_selector_all(selector)
            log(f"extract: {selector} -> {len(elements)} elements", verbose)
            candidates = []
            for element in elements:
                text = (await page.text_content(element) or "").strip()
                if len(text) >= MIN_CHUNK_LENGTH:
                    candidates.append(ExtractionCandidate(text, selector))
        except Exception as e:
            log(f"extract: {selector} failed: {e}", verbose)
            continue
        if candidates:
            return candidates
    return []


def _strict_deny() -> list[str]:
    return LINE_SCAN_DENY + [m.display_name for m in all_models()]


async def extract_response(page, verbose: bool = False) -> str:
    """Harvest the answer text. Never raises for a missing answer."""
    candidates = await collect_structured(page, verbose)
    if candidates:
        log(f"extract: {len(candidates)} structured text blocks", verbose)
        if candidates[0].strategy == PRIMARY_CHUNK_SELECTOR:
            return format_response("\n\n".join(c.text for c in candidates))
        return format_response(max(candidates, key=lambda c: c.length).text)

    body = await page.text_content()

    candidates = scan_lines(body, LINE_SCAN_BOUNDS, LINE_SCAN_MIN_WORDS, _strict_deny())
    if candidates:
        log(f"extract: {len(candidates)} line-scan candidates", verbose)
        return format_response(candidates[0].text)

    candidates = scan_lines(body, RELAXED_SCAN_BOUNDS, RELAXED_SCAN_MIN_WORDS,
                            RELAXED_SCAN_DENY, strategy="relaxed-scan")
    if candidates:
        log(f"extract: {len(candidates)} relaxed-scan candidates", verbose)
        return format_response(candidates[0].text)

    log("extract: no response found", verbose)
    return EXTRACTION_PLACEHOLDER
