#!/usr/bin/env python3
"""
Configuration for the Gemini AI Studio CLI
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
PROJECT_DIR = Path(__file__).parent.parent
load_dotenv(PROJECT_DIR / ".env")

# Data directories
DATA_DIR = Path(os.getenv("GEMINI_DATA_DIR", str(PROJECT_DIR / "data")))
SCREENSHOTS_DIR = DATA_DIR / "screenshots"
SESSION_FILE = Path(os.getenv("GEMINI_SESSION_FILE", str(DATA_DIR / "gemini_session.json")))

# Optional persistent Chrome profile; cookies come from SESSION_FILE either way
_profile = os.getenv("BROWSER_PROFILE_DIR", "")
USER_DATA_DIR = Path(_profile) if _profile else None


def ensure_data_dirs():
    """Create the data and screenshot directories if missing."""
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    SCREENSHOTS_DIR.mkdir(exist_ok=True)


def clean_browser_locks(profile_dir: Path | None = USER_DATA_DIR):
    """Remove stale Chrome singleton locks left by crashed/killed browser processes."""
    if profile_dir is None:
        return
    for name in ('SingletonLock', 'SingletonSocket', 'SingletonCookie'):
        lock = profile_dir / name
        if lock.exists() or lock.is_symlink():
            try:
                lock.unlink()
            except OSError:
                pass


# Browser settings
HEADLESS = os.getenv("HEADLESS", "true").lower() == "true"  # --debug forces a visible window
RESPONSE_TIMEOUT = int(os.getenv("RESPONSE_TIMEOUT", "120"))  # 2 min generation ceiling
NAVIGATION_TIMEOUT = int(os.getenv("NAVIGATION_TIMEOUT", "30"))
USER_AGENT = os.getenv(
    "GEMINI_USER_AGENT",
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/124.0.0.0 Safari/537.36",
)

# Browser args for stealth
BROWSER_ARGS = [
    "--disable-blink-features=AutomationControlled",
    "--no-first-run",
    "--no-default-browser-check",
    "--no-sandbox",
    "--disable-dev-shm-usage",
]

# AI Studio URLs
GEMINI_URL = os.getenv("GEMINI_URL", "https://aistudio.google.com/prompts/new_chat")

# A redirect to any of these means the cookies did not authenticate us
LOGIN_URL_MARKERS = ["accounts.google.com", "signin", "ServiceLogin"]

# Cookie domains worth persisting between runs
GEMINI_COOKIE_DOMAINS = [
    "aistudio.google.com",
    "google.com",
    "accounts.google.com",
]

# ── Selector cascades ─────────────────────────────────────────────────
# Order is priority: component/semantic selectors first, bare tags last.
# All entries are plain CSS; nodriver resolves them with DOM.querySelector.

# Prompt input (AI Studio renders a plain textarea inside ms-prompt-input-wrapper)
GEMINI_INPUT_SELECTORS = [
    'ms-prompt-input-wrapper textarea',
    'textarea[aria-label*="prompt" i]',
    'textarea[placeholder*="Enter a prompt"]',
    '[data-testid="chat-input"]',
    '.chat-input textarea',
    'textarea:not([readonly])',
    'textarea',
    '[contenteditable="true"]',
    'input[type="text"]',
]

# Run / send button
GEMINI_SEND_SELECTORS = [
    'ms-run-button button',
    '[data-testid="send-button"]',
    'button[aria-label*="Run"]',
    'button[aria-label*="Send"]',
    'button[title*="Send"]',
    'button[type="submit"]',
]

# Close controls for welcome dialogs / cookie banners / tours
GEMINI_CLOSE_SELECTORS = [
    'ms-dialog button[aria-label="close"]',
    'button[aria-label="Close"]',
    'button[aria-label="close"]',
    'button[mattooltip="Close"]',
    '.cdk-overlay-container button[aria-label*="lose"]',
    'button.close-button',
]

# Model selector control in the run settings panel
GEMINI_MODEL_DROPDOWN_SELECTORS = [
    'ms-model-selector mat-select',
    'ms-model-selector button',
    '[data-test-model-selector]',
    'mat-select[aria-label*="model" i]',
    'button[aria-label*="model" i]',
]

# Options inside the opened model selector
GEMINI_MODEL_OPTION_SELECTORS = [
    'ms-model-option',
    'mat-option',
    '.mat-mdc-option',
    '[role="option"]',
]

# Elements whose presence means the model selector UI has rendered
GEMINI_MODEL_UI_MARKERS = [
    'ms-model-selector',
    '[data-test-model-selector]',
    'mat-select[aria-label*="model" i]',
]

# Response containers; ms-text-chunk holds the answer split into chunks
GEMINI_RESPONSE_SELECTORS = [
    'ms-text-chunk',
    '.ms-text-chunk',
    '[class*="ms-text-chunk"]',
    'ms-cmark-node',
    '.cmark-node',
]
PRIMARY_CHUNK_SELECTOR = 'ms-text-chunk'

# ── Storage channel ───────────────────────────────────────────────────
# AI Studio keeps its run settings as one JSON blob in localStorage
STORAGE_PREFERENCE_KEY = "aiStudioUserPreference"
STORAGE_MODEL_FIELD = "promptModel"

# ── Response polling ──────────────────────────────────────────────────
BUSY_MARKER = "Running..."
POLL_INTERVAL = 2.0     # seconds between busy-marker checks
SETTLE_DELAY = 3.0      # pause after the marker disappears
SUBMIT_DELAY = 1.0      # pause between Enter and the send-button click
AUTH_SETTLE_DELAY = 3.0  # pause before inspecting the URL for a login redirect
LOCATOR_TIMEOUT = 3.0   # per-selector wait inside a cascade

# ── Extraction ────────────────────────────────────────────────────────
MIN_CHUNK_LENGTH = 20

# Strict line scan (UI chrome deny list; model banners are added from the registry)
LINE_SCAN_BOUNDS = (50, 2000)
LINE_SCAN_MIN_WORDS = 10
LINE_SCAN_DENY = [
    "Submit:",
    "API",
    "Upload",
    "Google",
    "Run prompt",
    "This tool is not compatible",
    "reset_settings",
]

# Relaxed line scan
RELAXED_SCAN_BOUNDS = (100, 1500)
RELAXED_SCAN_MIN_WORDS = 15
RELAXED_SCAN_DENY = [
    "API",
    "Upload",
    "tool is not compatible",
]

EXTRACTION_PLACEHOLDER = (
    "Could not find a response on the page. "
    "Re-run with --debug to capture screenshots of the page state."
)

# Literal substring -> markdown rewrites, applied in order
RESPONSE_FORMAT_REPLACEMENTS = [
    # Headings
    ("Summary:", "\n## Summary:"),
    ("Advantages:", "\n### Advantages:"),
    ("Disadvantages:", "\n### Disadvantages:"),
    # List markers
    ("1. ", "\n1. "),
    ("2. ", "\n2. "),
    ("3. ", "\n3. "),
    # Bold labels
    ("Example:", "\n- **Example:** "),
    ("Note:", "\n- **Note:** "),
    # Citation markers glued to sentence ends
    *[(f".[{n}]", ".\n") for n in range(1, 9)],
    # Grounding sources footer
    ("Sources  help", "\n---\n**Sources:** "),
]
