"""Find the website a prompt refers to, if any."""

from __future__ import annotations

import re
from urllib.parse import urlparse

_URL_IN_TEXT = re.compile(r"https?://[^\s<>\"'`)\]]+", re.I)
_BARE_DOMAIN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?\.)+[a-z0-9][a-z0-9-]{0,61}[a-z0-9]$",
    re.I,
)
_TRAILING_PUNCTUATION = ".,;:!?"


def is_valid_web_url(url: str) -> bool:
    """True for an http(s) URL with a dotted hostname."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    if parsed.scheme not in ("http", "https"):
        return False
    host = parsed.hostname or ""
    return "." in host and not host.startswith(".") and not host.endswith(".")


def normalize_url(value: str) -> str:
    """Add an ``https://`` scheme to a bare domain."""
    value = value.strip()
    if not re.match(r"^https?://", value, re.I):
        value = f"https://{value}"
    return value


def extract_first_valid_url(text: str) -> str | None:
    """Return the first http(s) URL in *text*, stripped of sentence punctuation."""
    for match in _URL_IN_TEXT.finditer(text):
        candidate = match.group(0).rstrip(_TRAILING_PUNCTUATION)
        if is_valid_web_url(candidate):
            return candidate
    return None


def detect_target_url(prompt: str) -> str | None:
    """Return the URL a prompt points at.

    A URL with a scheme anywhere in the prompt wins. Otherwise a prompt that
    is nothing but a domain ("stripe.com") is treated as that site.
    """
    url = extract_first_valid_url(prompt)
    if url:
        return url
    trimmed = prompt.strip()
    if _BARE_DOMAIN.match(trimmed):
        normalized = normalize_url(trimmed)
        if is_valid_web_url(normalized):
            return normalized
    return None
