"""Fetcher for web documents, directly or through a scraping proxy."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional
from urllib.parse import urlsplit

import requests

from parley.config import get_settings
from parley.infra.logging_config import get_logger

logger = get_logger("document_fetcher")

USER_AGENT = "parley/0.1 (+https://core.telegram.org/bots)"
TRANSIENT_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})


@dataclass(frozen=True)
class DocumentFetchRequest:
    url: str
    render_js: bool = False


@dataclass
class FetchResult:
    """Result of a document fetch: a body, or an error flagged transient or not."""

    body: Optional[str] = None
    status_code: Optional[int] = None
    error: Optional[str] = None
    transient: bool = False


def is_valid_url(url: Optional[str]) -> bool:
    if not url:
        return False
    try:
        parts = urlsplit(url.strip())
    except ValueError:
        return False
    return parts.scheme in ("http", "https") and bool(parts.netloc)


class DocumentFetcher:
    """
    Fetches one document body per request.

    With an API token every request goes through the scraping proxy
    (token and target URL as query parameters); without one the target is
    requested directly.
    """

    def __init__(
        self,
        api_token: Optional[str] = None,
        api_url: Optional[str] = None,
        timeout_seconds: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._api_token = api_token
        self._api_url = api_url
        self._timeout = timeout_seconds
        self._session = session or requests.Session()

    def fetch(self, request: DocumentFetchRequest) -> FetchResult:
        if not is_valid_url(request.url):
            return FetchResult(error=f"Invalid URL: {request.url!r}")

        target = request.url.strip()
        params: Optional[dict[str, str]] = None
        if self._api_token and self._api_url:
            params = {"token": self._api_token, "url": target}
            if request.render_js:
                params["render"] = "true"
            target = self._api_url
        logger.info(
            "Fetching document %s (proxy %s)",
            request.url,
            "on" if params is not None else "off",
        )

        try:
            resp = self._session.get(
                target,
                params=params,
                headers={"User-Agent": USER_AGENT, "Accept": "text/html,*/*"},
                timeout=self._timeout,
            )
        except (requests.Timeout, requests.ConnectionError) as e:
            return FetchResult(error=str(e), transient=True)
        except requests.RequestException as e:
            return FetchResult(error=str(e))

        if resp.status_code != 200:
            return FetchResult(
                status_code=resp.status_code,
                error=f"HTTP {resp.status_code}: {resp.text[:200] if resp.text else 'no body'}",
                transient=resp.status_code in TRANSIENT_STATUS_CODES,
            )
        return FetchResult(body=resp.text, status_code=resp.status_code)


def build_document_fetcher_from_env() -> DocumentFetcher:
    settings = get_settings()
    logger.info(
        "Document fetcher config: scrape_api_token=%s, scrape_api_url=%s",
        "set" if settings.scrape_api_token else "not set",
        settings.scrape_api_url,
    )
    return DocumentFetcher(
        api_token=settings.scrape_api_token,
        api_url=settings.scrape_api_url,
        timeout_seconds=settings.fetch_timeout_seconds,
    )
