"""Pydantic models for the powhttp capture API (sessions and entries)."""

from __future__ import annotations

from pydantic import BaseModel, Field

# Headers travel as ordered ``[name, value]`` pairs; duplicates are allowed.
Headers = list[list[str]]


class Session(BaseModel):
    id: str
    name: str = ""
    entry_ids: list[str] = Field(default_factory=list, alias="entryIds")

    model_config = {"populate_by_name": True}


class EntryRequest(BaseModel):
    method: str | None = None
    path: str | None = None
    http_version: str | None = Field(default=None, alias="httpVersion")
    headers: Headers = Field(default_factory=list)
    body: str | None = None  # base64

    model_config = {"populate_by_name": True}


class EntryResponse(BaseModel):
    http_version: str | None = Field(default=None, alias="httpVersion")
    status_code: int | None = Field(default=None, alias="statusCode")
    status_text: str | None = Field(default=None, alias="statusText")
    headers: Headers = Field(default_factory=list)
    body: str | None = None  # base64

    model_config = {"populate_by_name": True}


class Timings(BaseModel):
    started_at: int = Field(default=0, alias="startedAt")  # unix ms
    blocked: int | None = None
    dns: int | None = None
    connect: int | None = None
    send: int | None = None
    wait: int | None = None
    receive: int | None = None
    ssl: int | None = None

    model_config = {"populate_by_name": True}


class ProcessInfo(BaseModel):
    pid: int = 0
    name: str | None = None


class SessionEntry(BaseModel):
    id: str
    url: str = ""
    http_version: str = Field(default="", alias="httpVersion")
    transaction_type: str = Field(default="request", alias="transactionType")
    request: EntryRequest = Field(default_factory=EntryRequest)
    response: EntryResponse | None = None
    is_web_socket: bool = Field(default=False, alias="isWebSocket")
    timings: Timings = Field(default_factory=Timings)
    process: ProcessInfo | None = None

    model_config = {"populate_by_name": True, "extra": "ignore"}
