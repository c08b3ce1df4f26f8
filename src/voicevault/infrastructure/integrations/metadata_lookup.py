"""HTTP metadata lookup client implementation."""

import logging
from typing import Any

import httpx

from voicevault.config.settings import EnrichmentSettings
from voicevault.domain.entities import WorkMetadata
from voicevault.domain.exceptions import MetadataLookupError
from voicevault.domain.ports import IMetadataLookup

logger = logging.getLogger(__name__)


class HttpMetadataLookup(IMetadataLookup):
    """Fetch work metadata records from a JSON catalog endpoint.

    Expects ``GET {base_url}/{external_code}`` to answer with::

        {"title": "...", "circle": "..." | null,
         "voice_actors": ["..."], "tags": ["..."]}
    """

    # Hey future me, the client is created LAZILY on first fetch so building the container
    # (or running tests that never enrich) doesn't open sockets. close() on shutdown!
    # Pacing between requests is the enrichment service's job, not ours.
    def __init__(self, settings: EnrichmentSettings) -> None:
        """
        Initialize lookup client.

        Args:
            settings: Enrichment configuration settings
        """
        self.settings = settings
        self._client: httpx.AsyncClient | None = None

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.settings.base_url.rstrip("/") + "/",
                headers={
                    "User-Agent": self.settings.user_agent,
                    "Accept": "application/json",
                },
                timeout=self.settings.timeout,
            )
        return self._client

    async def close(self) -> None:
        """Close HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def fetch(self, external_code: str) -> WorkMetadata:
        """
        Fetch the metadata record for one external code.

        Args:
            external_code: Upper-cased external code (e.g. "RJ01234567")

        Returns:
            Parsed metadata record

        Raises:
            MetadataLookupError: On 404, any other HTTP error, transport failure
                or a malformed body
        """
        client = await self._get_client()
        try:
            response = await client.get(external_code)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                raise MetadataLookupError(external_code, "not found") from e
            raise MetadataLookupError(
                external_code, f"HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise MetadataLookupError(external_code, f"transport error: {e}") from e
        except ValueError as e:
            raise MetadataLookupError(external_code, "response is not JSON") from e

        logger.debug("Fetched metadata for %s", external_code)
        return self._parse_record(external_code, payload)

    # Yo, the record is the ONLY contract with the outside. Be strict about title (a work
    # without a title makes no sense) and lenient about the lists (missing = empty).
    @staticmethod
    def _parse_record(external_code: str, payload: Any) -> WorkMetadata:
        if not isinstance(payload, dict):
            raise MetadataLookupError(external_code, "record is not an object")

        title = payload.get("title")
        if not isinstance(title, str) or not title.strip():
            raise MetadataLookupError(external_code, "record has no title")

        circle = payload.get("circle")
        if circle is not None and not isinstance(circle, str):
            raise MetadataLookupError(external_code, "circle must be a string")

        def _names(key: str) -> list[str]:
            value = payload.get(key) or []
            if not isinstance(value, list):
                raise MetadataLookupError(external_code, f"{key} must be a list")
            return [str(item).strip() for item in value if str(item).strip()]

        return WorkMetadata(
            title=title.strip(),
            circle=circle.strip() or None if circle else None,
            voice_actors=_names("voice_actors"),
            tags=_names("tags"),
        )
