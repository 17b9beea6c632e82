from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Any

import requests

from .errors import NetworkFailure
from .models import BillableEntry, RemoteEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_BACKEND_URL = "http://localhost:3001"

_CLIENT_PREFIX = re.compile(r"^\[.*?\]\s*\|\s*")
_TITLE_LINE = re.compile(r"Professional Legal Billable Summary for(?:[^\n:]*:)?\s*", re.IGNORECASE)
_EMAIL_DATE = re.compile(r"^Email Date\s*[:|-]?\s*", re.IGNORECASE)
_NEWLINES = re.compile(r"\n+")


@dataclass(frozen=True)
class LogResult:
    remote_id: str
    response: dict[str, Any]


class BackendClient:
    """HTTP client for the summarize/log/entries service."""

    def __init__(
        self,
        base_url: str = DEFAULT_BACKEND_URL,
        timeout_seconds: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._session = session or requests.Session()

    def summarize(self, recipient: str, subject: str, content: str) -> str:
        data = self._request_json(
            "POST",
            "/summarize",
            {"recipient": recipient, "subject": subject, "content": content},
        )
        summary = data.get("summary")
        if not isinstance(summary, str):
            raise NetworkFailure("Summary response did not include a summary.")
        return clean_summary(summary)

    def log_entry(self, entry: BillableEntry) -> LogResult:
        data = self._request_json("POST", "/log", entry.log_payload())
        if not data.get("success"):
            error = data.get("error") or "Backend rejected the entry."
            raise NetworkFailure(str(error), body=str(error))
        LOGGER.info("Logged entry %s to backend", entry.id)
        return LogResult(remote_id=_remote_id(data), response=data)

    def list_entries(self) -> list[RemoteEntry]:
        data = self._request_json("GET", "/entries")
        raw_entries = data.get("entries")
        if not data.get("success") or not isinstance(raw_entries, list):
            raise NetworkFailure("Entries response was not successful.")
        return [_remote_entry(raw) for raw in raw_entries if isinstance(raw, dict)]

    def _request_json(self, method: str, path: str, payload: dict[str, Any] | None = None) -> dict[str, Any]:
        url = f"{self.base_url}{path}"
        try:
            response = self._session.request(method, url, json=payload, timeout=self.timeout_seconds)
        except requests.RequestException as exc:
            raise NetworkFailure(f"Request to {path} failed: {exc}") from exc

        if not 200 <= response.status_code < 300:
            body = response.text
            raise NetworkFailure(
                f"Server responded with {response.status_code}: {body}",
                status=response.status_code,
                body=body,
            )

        try:
            data = response.json()
        except ValueError as exc:
            raise NetworkFailure(
                f"Request to {path} returned non-JSON response.",
                status=response.status_code,
                body=response.text,
            ) from exc
        if not isinstance(data, dict):
            raise NetworkFailure(f"Request to {path} returned unexpected JSON.", status=response.status_code)
        return data


def clean_summary(summary: str) -> str:
    text = _CLIENT_PREFIX.sub("", summary)
    text = _TITLE_LINE.sub("", text)
    text = _EMAIL_DATE.sub("", text)
    text = _NEWLINES.sub(" ", text.strip())
    return text.strip()


def _remote_id(data: dict[str, Any]) -> str:
    for key in ("result", "entries", "entry"):
        value = data.get(key)
        if isinstance(value, list) and value:
            value = value[-1]
        if isinstance(value, dict) and value.get("_id"):
            return str(value["_id"])
    return ""


def _remote_entry(raw: dict[str, Any]) -> RemoteEntry:
    try:
        time_spent = int(float(raw.get("timeSpent") or 0))
    except (TypeError, ValueError):
        time_spent = 0
    return RemoteEntry(
        id=str(raw.get("_id", "")),
        recipient=str(raw.get("recipient") or ""),
        subject=str(raw.get("subject") or ""),
        content=str(raw.get("content") or ""),
        summary=str(raw.get("summary") or ""),
        time_spent_ms=max(0, time_spent),
        created_at=str(raw.get("createdAt") or ""),
    )
