from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlparse

import httpx

from .errors import SecondaryIndexError


logger = logging.getLogger(__name__)

DEFAULT_INDEX_TIMEOUT_S = 30.0


@dataclass(frozen=True, slots=True)
class SearchHit:
    id: str
    score: float | None
    source: dict[str, Any]


def validate_index_url(url: str) -> str:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise SecondaryIndexError(f"Secondary index URL must be an absolute http(s) URL, got: {url!r}")
    return url.rstrip("/")


class SecondaryIndex:
    """Client for an Elasticsearch-compatible full-text index.

    Used from the listener's worker threads, hence the synchronous client.
    """

    def __init__(self, url: str, *, timeout_s: float | None = None, transport: httpx.BaseTransport | None = None):
        self._url = validate_index_url(url)
        self._client = httpx.Client(
            timeout=httpx.Timeout(timeout_s or DEFAULT_INDEX_TIMEOUT_S),
            transport=transport,
        )

    @property
    def url(self) -> str:
        return self._url

    def search(self, term: str, *, limit: int = 10) -> list[SearchHit]:
        body = {"query": {"query_string": {"query": term}}, "size": int(limit)}
        try:
            resp = self._client.post(f"{self._url}/_search", json=body)
            resp.raise_for_status()
            payload = resp.json()
        except httpx.HTTPStatusError as e:
            raise SecondaryIndexError(
                f"Secondary index returned HTTP {e.response.status_code}",
                details={"url": self._url},
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise SecondaryIndexError(f"Secondary index request failed: {e}", details={"url": self._url}) from e

        hits = payload.get("hits", {}).get("hits", []) if isinstance(payload, dict) else []
        out: list[SearchHit] = []
        for h in hits:
            if not isinstance(h, dict):
                continue
            source = h.get("_source")
            out.append(
                SearchHit(
                    id=str(h.get("_id", "")),
                    score=h.get("_score"),
                    source=source if isinstance(source, dict) else {},
                )
            )
        logger.debug("index_search", extra={"term": term, "hits": len(out)})
        return out

    def close(self) -> None:
        self._client.close()
