"""Collaborators shared by the tools, wired once per process."""

from __future__ import annotations

from dataclasses import dataclass, field

from powgql.client import PowhttpClient
from powgql.config import Config
from powgql.entries import CaptureClient, EntryCache, EntrySource
from powgql.graphql.cache import AnalysisCache, ParseCache
from powgql.search import SearchService

DEFAULT_SESSION = "active"


@dataclass
class Deps:
    config: Config
    entries: EntrySource
    search: SearchService
    parse_cache: ParseCache = field(default_factory=ParseCache)
    analysis_cache: AnalysisCache = field(default_factory=AnalysisCache)

    @property
    def client(self) -> CaptureClient:
        return self.entries.client


def build_deps(config: Config, client: CaptureClient | None = None) -> Deps:
    """Wire the default collaborators; pass *client* to replace the HTTP client."""
    if client is None:
        client = PowhttpClient(config.base_url, timeout_s=config.http_timeout_s)
    entries = EntrySource(
        client,
        EntryCache(config.entry_cache_max_items),
        workers=config.fetch_workers,
    )
    return Deps(config=config, entries=entries, search=SearchService(entries))


def resolve_session_id(session_id: str | None) -> str:
    return (session_id or "").strip() or DEFAULT_SESSION
