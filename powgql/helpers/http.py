"""HTTP header and URL utilities."""

from __future__ import annotations

from urllib.parse import urlsplit

from powgql.formats.powhttp import Headers


def get_header(headers: Headers, name: str) -> str | None:
    """Get a header value by name (case-insensitive, first match wins)."""
    name_lower = name.lower()
    for pair in headers:
        if len(pair) >= 2 and pair[0].lower() == name_lower:
            return pair[1]
    return None


def url_host(url: str) -> str:
    """Return the lowercase hostname of *url*, without port ("" if none)."""
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def url_path(url: str) -> str:
    try:
        return urlsplit(url).path
    except ValueError:
        return ""


def host_matches(host: str, pattern: str) -> bool:
    """Match a hostname against a filter.

    A leading ``*.`` matches the bare domain or any subdomain of it; anything
    else is an exact, case-insensitive comparison.  ``*.`` alone matches
    nothing.
    """
    host = host.lower()
    pattern = pattern.strip().lower()
    if not pattern.startswith("*."):
        return host == pattern
    base = pattern[2:]
    if not base:
        return False
    return host == base or host.endswith("." + base)
