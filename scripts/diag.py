"""Diagnostic output. stdout is reserved for the response text / JSON."""

import sys


def log(msg: str, verbose: bool, tag: str = "gemini") -> None:
    """Print debug message to stderr if verbose mode is enabled."""
    if verbose:
        print(f"[{tag}] {msg}", file=sys.stderr)


def warn(msg: str, tag: str = "gemini") -> None:
    """Print a non-fatal warning to stderr regardless of verbosity."""
    print(f"[{tag}] WARNING: {msg}", file=sys.stderr)
