"""Content-type classification (JSON / textual / binary)."""

from __future__ import annotations

from enum import Enum


class ContentCategory(str, Enum):
    JSON = "json"
    XML = "xml"
    HTML = "html"
    YAML = "yaml"
    CSV = "csv"
    FORM = "form"
    TEXT = "text"
    BINARY = "binary"


_TEXTUAL_MARKERS = ("json", "xml", "javascript", "html", "css", "yaml", "form-urlencoded")
_BINARY_MARKERS = ("octet-stream", "gzip", "zip", "pdf")
_BINARY_PREFIXES = ("image/", "audio/", "video/")


def media_type(content_type: str) -> str:
    """``application/json; charset=utf-8`` -> ``application/json``"""
    return content_type.split(";", 1)[0].strip().lower()


def is_json(content_type: str) -> bool:
    return "json" in content_type.lower()


def classify(content_type: str) -> ContentCategory:
    """Classify a Content-Type header value into a broad category."""
    media = media_type(content_type)
    if not media:
        return ContentCategory.BINARY
    if "json" in media:
        return ContentCategory.JSON
    if media in ("text/html", "application/xhtml+xml"):
        return ContentCategory.HTML
    if "xml" in media:
        return ContentCategory.XML
    if "yaml" in media:
        return ContentCategory.YAML
    if media in ("text/csv", "text/tab-separated-values"):
        return ContentCategory.CSV
    if media == "application/x-www-form-urlencoded":
        return ContentCategory.FORM
    if media.startswith("text/"):
        return ContentCategory.TEXT
    return ContentCategory.BINARY


def is_textual(content_type: str) -> bool:
    ct = content_type.lower()
    return ct.startswith("text/") or any(m in ct for m in _TEXTUAL_MARKERS)


def is_binary(content_type: str, data: bytes) -> bool:
    """Decide whether a body is binary, falling back to UTF-8 validity."""
    ct = content_type.lower()
    if is_textual(ct):
        return False
    if ct.startswith(_BINARY_PREFIXES) or any(m in ct for m in _BINARY_MARKERS):
        return True
    try:
        data.decode("utf-8")
    except UnicodeDecodeError:
        return True
    return False
