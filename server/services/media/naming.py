"""Canonical keys and storage filenames for free-text item names."""

import hashlib
import re

MAX_KEY_LENGTH = 100

_DISALLOWED = re.compile(r"[^a-z0-9\s-]")
_WHITESPACE = re.compile(r"\s+")
_HYPHENS = re.compile(r"-+")


def normalize_name(name: str) -> str:
    """Map a human-entered name to its canonical cache key.

    Trims, lowercases, drops everything outside ``[a-z0-9\\s-]``, turns
    whitespace runs into single hyphens, collapses repeated hyphens and
    truncates to ``MAX_KEY_LENGTH``. Names with nothing left after
    stripping (emoji, non-latin scripts) get a key derived from a hash of
    the trimmed input so the result is never empty.

    >>> normalize_name("Chicken   Soup!")
    'chicken-soup'
    """
    trimmed = name.strip()
    key = _DISALLOWED.sub("", trimmed.lower())
    key = _WHITESPACE.sub("-", key)
    key = _HYPHENS.sub("-", key)
    key = key[:MAX_KEY_LENGTH]
    if not key.strip("-"):
        digest = hashlib.sha256(trimmed.encode("utf-8")).hexdigest()
        key = f"item-{digest[:16]}"
    return key


def build_filename(key: str, extension: str) -> str:
    return f"{key}.{extension.lstrip('.')}"


def initials(name: str) -> str:
    """Two-letter placeholder label shown when no image is available."""
    if not name or not name.strip():
        return "??"

    words = name.split()
    if len(words) == 1:
        return words[0][:2].upper()
    return (words[0][0] + words[1][0]).upper()
