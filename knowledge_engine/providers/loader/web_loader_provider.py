"""URL loader using httpx and trafilatura.

Fetches a page via httpx and extracts its main text with trafilatura,
stripping navigation, ads and boilerplate.  Plain-text and Markdown
responses are returned as-is.
"""

from __future__ import annotations

import httpx
import structlog
import trafilatura

from knowledge_engine.interfaces.url_loader import IUrlLoader
from knowledge_engine.utils.errors import ParseError

logger = structlog.get_logger(logger_name=__name__)

_DEFAULT_TIMEOUT = 10.0
_DEFAULT_HEADERS = {
    "User-Agent": "Mozilla/5.0 (compatible; knowledge-engine/0.1)",
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,text/plain;q=0.8,*/*;q=0.5",
}
_PASSTHROUGH_TYPES = ("text/plain", "text/markdown")


class WebLoaderProvider(IUrlLoader):
    """Page text extraction backed by httpx + trafilatura."""

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        timeout: float = _DEFAULT_TIMEOUT,
    ) -> None:
        self._owns_client = http_client is None
        self._client = http_client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout),
            headers=_DEFAULT_HEADERS,
            follow_redirects=True,
        )

    async def load(self, uri: str) -> str:
        """Fetch *uri* and return its readable text."""
        try:
            response = await self._client.get(uri)
            response.raise_for_status()
        except httpx.TimeoutException as exc:
            raise ParseError(
                message=f"Timeout fetching {uri}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPStatusError as exc:
            raise ParseError(
                message=f"HTTP {exc.response.status_code} for {uri}",
                provider_name=self.get_provider_name(),
            ) from exc
        except httpx.HTTPError as exc:
            raise ParseError(
                message=f"HTTP error fetching {uri}: {exc}",
                provider_name=self.get_provider_name(),
            ) from exc

        content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
        if content_type in _PASSTHROUGH_TYPES:
            text = response.text
        else:
            text = trafilatura.extract(response.text, include_comments=False, include_tables=True)

        if not text or not text.strip():
            logger.warning("url_extraction_empty", url=uri, content_type=content_type)
            raise ParseError(
                message=f"No readable content extracted from {uri}",
                provider_name=self.get_provider_name(),
            )

        logger.info("url_loaded", url=uri, text_length=len(text))
        return text

    async def aclose(self) -> None:
        """Close the HTTP client if this loader created it."""
        if self._owns_client:
            await self._client.aclose()

    def get_provider_name(self) -> str:
        return "web_loader"
