#!/usr/bin/env python3
"""
Session persistence: auth cookies plus the last used model.

The record is a single JSON file. Version 1 was a bare array of cookies;
version 2 wraps them in an object with the model preference and selection
history. Old files are upgraded in place on first read.

Persistence is best-effort: nothing here raises past the caller, failures
are printed as warnings so a broken session file never aborts a query.
"""

import json
import os
import tempfile
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from config import SESSION_FILE
from diag import log, warn
from model_registry import ModelId

SCHEMA_VERSION = 2

SELECTION_METHODS = ("manual", "automated", "cli", "legacy", "migrated")

_KNOWN_FIELDS = {"version", "cookies", "preferredModel", "modelSelectionHistory", "lastUsed"}

# PascalCase and snake_case cookie keys from older session files -> our keys
_COOKIE_KEYS = {
    "Name": "name",
    "Value": "value",
    "Domain": "domain",
    "Path": "path",
    "Expires": "expires",
    "HttpOnly": "httpOnly",
    "Secure": "secure",
    "SameSite": "sameSite",
    "http_only": "httpOnly",
    "same_site": "sameSite",
}


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def normalize_cookie(cookie: dict) -> dict:
    """Return a copy of a cookie dict with camelCase keys."""
    return {_COOKIE_KEYS.get(k, k): v for k, v in cookie.items()}


def _parse_model(value) -> ModelId | None:
    """Accept enum values ("gemini-flash-latest") and member names ("FLASH")."""
    if not value:
        return None
    try:
        return ModelId(value)
    except ValueError:
        pass
    try:
        return ModelId[str(value).upper()]
    except KeyError:
        return None


@dataclass
class SelectionHistory:
    last_selection: str | None = None
    selection_method: str = "manual"
    fallback_used: bool = False

    def to_dict(self) -> dict:
        return {
            "lastSelection": self.last_selection,
            "selectionMethod": self.selection_method,
            "fallbackUsed": self.fallback_used,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "SelectionHistory":
        return cls(
            last_selection=data.get("lastSelection"),
            selection_method=data.get("selectionMethod") or "manual",
            fallback_used=bool(data.get("fallbackUsed", False)),
        )


@dataclass
class SessionRecord:
    version: int = SCHEMA_VERSION
    cookies: list = field(default_factory=list)
    preferred_model: ModelId | None = None
    history: SelectionHistory | None = None
    last_used: str | None = None
    # Fields written by a newer schema; carried through untouched
    extra: dict = field(default_factory=dict)
    # preferredModel value this version does not recognise
    unknown_model: str | None = None

    def to_dict(self) -> dict:
        data = dict(self.extra)
        data.update({
            "version": self.version,
            "cookies": self.cookies,
            "preferredModel": self.preferred_model.value if self.preferred_model else self.unknown_model,
            "modelSelectionHistory": self.history.to_dict() if self.history else None,
            "lastUsed": self.last_used,
        })
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SessionRecord":
        history = data.get("modelSelectionHistory")
        cookies = data.get("cookies") or []
        if not isinstance(cookies, list):
            raise ValueError("cookies must be a list")
        raw_model = data.get("preferredModel")
        preferred = _parse_model(raw_model)
        return cls(
            version=int(data.get("version", 1)),
            cookies=[normalize_cookie(c) for c in cookies if isinstance(c, dict)],
            preferred_model=preferred,
            unknown_model=raw_model if preferred is None and raw_model else None,
            history=SelectionHistory.from_dict(history) if isinstance(history, dict) else None,
            last_used=data.get("lastUsed"),
            extra={k: v for k, v in data.items() if k not in _KNOWN_FIELDS},
        )


class SessionStore:
    """Versioned JSON session file. One process at a time; no locking."""

    def __init__(self, path: Path | str = SESSION_FILE, verbose: bool = False):
        self.path = Path(path)
        self.verbose = verbose

    # --- Public API ---

    def load(self) -> SessionRecord | None:
        """Read the session file, upgrading legacy formats. None if absent or corrupt."""
        if not self.path.exists():
            log(f"session: no session file at {self.path}", self.verbose)
            return None

        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            if isinstance(data, list):
                record = self._migrate_cookie_array(data)
            elif isinstance(data, dict):
                record = SessionRecord.from_dict(data)
                if record.version < SCHEMA_VERSION:
                    record = self._upgrade_record(record)
            else:
                raise ValueError(f"unexpected top-level JSON type {type(data).__name__}")
        except (OSError, ValueError, TypeError) as e:
            warn(f"Could not load session from {self.path}: {e}")
            return None

        log(
            f"session: loaded v{record.version}, {len(record.cookies)} cookies, "
            f"preferred={record.preferred_model.value if record.preferred_model else None}",
            self.verbose,
        )
        return record

    def save(self, cookies: list[dict], preferred_model: ModelId | None = None) -> None:
        """Merge cookies (and optionally the preferred model) into the record."""
        record = self.load() or SessionRecord()
        record.cookies = [normalize_cookie(c) for c in cookies]
        if preferred_model is not None:
            record.preferred_model = ModelId(preferred_model)
        record.last_used = _now()
        if self._write(record):
            log(f"session: saved {len(record.cookies)} cookies", self.verbose)

    def get_preferred_model(self) -> ModelId | None:
        record = self.load()
        return record.preferred_model if record else None

    def get_selection_history(self) -> SelectionHistory | None:
        record = self.load()
        return record.history if record else None

    def save_preferred_model(
        self,
        model: ModelId,
        method: str = "manual",
        fallback_used: bool = False,
    ) -> None:
        """Record the model preference and how it was applied. Cookies are kept."""
        if method not in SELECTION_METHODS:
            warn(f"Unknown selection method '{method}', recording as 'manual'")
            method = "manual"
        record = self.load() or SessionRecord()
        now = _now()
        record.preferred_model = ModelId(model)
        record.history = SelectionHistory(
            last_selection=now,
            selection_method=method,
            fallback_used=fallback_used,
        )
        record.last_used = now
        if self._write(record):
            log(f"session: preferred model {record.preferred_model.value} ({method}, fallback={fallback_used})", self.verbose)

    def clear(self) -> None:
        """Delete the session file."""
        try:
            self.path.unlink()
            log(f"session: cleared {self.path}", self.verbose)
        except FileNotFoundError:
            pass
        except OSError as e:
            warn(f"Could not clear session {self.path}: {e}")

    # --- Internals ---

    def _migrate_cookie_array(self, cookies: list) -> SessionRecord:
        """Version 1 (bare cookie array) -> version 2."""
        now = _now()
        record = SessionRecord(
            version=SCHEMA_VERSION,
            cookies=[normalize_cookie(c) for c in cookies if isinstance(c, dict)],
            history=SelectionHistory(last_selection=now, selection_method="migrated"),
            last_used=now,
        )
        log("session: migrated cookie array to v2", self.verbose)
        self._write(record)
        return record

    def _upgrade_record(self, record: SessionRecord) -> SessionRecord:
        """Older object records get history synthesised and the current version."""
        if record.history is None:
            record.history = SelectionHistory(last_selection=_now(), selection_method="legacy")
        record.version = SCHEMA_VERSION
        log("session: upgraded legacy record to v2", self.verbose)
        self._write(record)
        return record

    def _write(self, record: SessionRecord) -> bool:
        """Atomic write (temp file + replace). Returns False on failure."""
        record.version = max(record.version, SCHEMA_VERSION)
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            payload = json.dumps(record.to_dict(), indent=2)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=str(self.path.parent)
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
            return True
        except (OSError, TypeError, ValueError) as e:
            warn(f"Could not save session to {self.path}: {e}")
            return False
        finally:
            if tmp_path is not None and tmp_path.exists():
                try:
                    tmp_path.unlink()
                except OSError:
                    pass
