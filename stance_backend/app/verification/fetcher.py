"""Fetcher collaborator interface plus an HTTP adapter for a JSON data provider."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

import httpx

from stance_backend.app.config.settings import Settings


class FetcherError(Exception):
    """Raised by fetchers that prefer exceptions over error results."""


@dataclass(frozen=True)
class Citation:
    url: str
    title: Optional[str] = None
    fetched_at: Optional[float] = None


@dataclass(frozen=True)
class FetchResult:
    ok: bool
    data: Any = None
    error: Optional[str] = None
    citations: Tuple[Citation, ...] = field(default_factory=tuple)
    fetched_at: Optional[float] = None

    @classmethod
    def failure(cls, error: str) -> "FetchResult":
        return cls(ok=False, error=error)


class Fetcher(ABC):
    """Live-data retrieval injected into the verification mediator."""

    @abstractmethod
    async def fetch(self, category: str, query: str, *, max_sources: int, timeout_ms: int) -> FetchResult:
        """
        Retrieve data for one query.

        Args:
            category: live-data category or freshness domain
            query: claim text or entity to look up
            max_sources: upper bound on sources consulted
            timeout_ms: per-call budget

        Returns:
            FetchResult; provider failures are returned, not raised
        """


def _parse_citations(raw: Any, limit: int) -> Tuple[Citation, ...]:
    if not isinstance(raw, list):
        return ()
    citations = []
    for item in raw[:limit]:
        if isinstance(item, str):
            citations.append(Citation(url=item))
        elif isinstance(item, dict) and isinstance(item.get("url"), str):
            fetched_at = item.get("fetched_at")
            citations.append(
                Citation(
                    url=item["url"],
                    title=item.get("title") if isinstance(item.get("title"), str) else None,
                    fetched_at=float(fetched_at) if isinstance(fetched_at, (int, float)) else None,
                )
            )
    return tuple(citations)


class HttpFetcher(Fetcher):
    """Calls ``GET {base_url}/{category}?q=...&limit=...`` and expects
    ``{"ok": bool, "data": ..., "error": str?, "citations": [...], "fetched_at": float?}``.
    """

    def __init__(self, base_url: str, api_key: Optional[str] = None, client: Optional[httpx.AsyncClient] = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._client = client or httpx.AsyncClient(
            limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
        )

    async def fetch(self, category: str, query: str, *, max_sources: int, timeout_ms: int) -> FetchResult:
        headers: Dict[str, str] = {"Accept": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        try:
            resp = await self._client.get(
                f"{self._base_url}/{category}",
                params={"q": query, "limit": max_sources},
                headers=headers,
                timeout=httpx.Timeout(timeout_ms / 1000.0),
            )
        except httpx.TimeoutException:
            return FetchResult.failure("timeout")
        except httpx.HTTPError:
            return FetchResult.failure("transport_error")

        if resp.status_code >= 400:
            return FetchResult.failure(f"http_{resp.status_code}")
        try:
            body = resp.json()
        except ValueError:
            return FetchResult.failure("bad_response")
        if not isinstance(body, dict):
            return FetchResult.failure("bad_response")

        fetched_at = body.get("fetched_at")
        return FetchResult(
            ok=bool(body.get("ok", True)),
            data=body.get("data"),
            error=body.get("error") if isinstance(body.get("error"), str) else None,
            citations=_parse_citations(body.get("citations"), max_sources),
            fetched_at=float(fetched_at) if isinstance(fetched_at, (int, float)) else None,
        )

    async def aclose(self) -> None:
        await self._client.aclose()


def build_fetcher(settings: Settings) -> Optional[Fetcher]:
    if not settings.fetcher_base_url:
        return None
    return HttpFetcher(settings.fetcher_base_url, api_key=settings.fetcher_api_key)


__all__ = ["FetcherError", "Citation", "FetchResult", "Fetcher", "HttpFetcher", "build_fetcher"]
