"""HTTP-backed external catalogs."""

from __future__ import annotations

from typing import Any

import httpx
from pydantic import ValidationError

from catalink.core.catalog.base import ExternalCatalog
from catalink.core.catalog.models import ExternalListing, MatchSource
from catalink.core.errors import SourceFetchFailed

DEFAULT_LISTINGS_PATH = "/listings"
USER_AGENT = "Catalink/0.1"


class HttpExternalCatalog(ExternalCatalog):
    """Reads listings from a source's JSON API.

    Source config::

        {"kind": "http", "base_url": "https://api.example.com",
         "api_key": "...", "listings_path": "/listings"}

    The endpoint receives ``brand`` and ``category_id`` query parameters and
    returns either a JSON list of listings or ``{"items": [...]}``.
    """

    def __init__(self, client: httpx.AsyncClient | None = None, timeout: float = 15.0) -> None:
        super().__init__("http")
        self.timeout = timeout
        self._client = client

    async def __aenter__(self) -> HttpExternalCatalog:
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), follow_redirects=True
            )
        return self._client

    async def list_by_source(
        self,
        source: MatchSource,
        brand: str | None = None,
        category_id: str | None = None,
    ) -> list[ExternalListing]:
        base_url = source.config.get("base_url")
        if not base_url:
            raise SourceFetchFailed(source.code, "source config has no base_url")

        url = str(base_url).rstrip("/") + source.config.get("listings_path", DEFAULT_LISTINGS_PATH)
        params = {k: v for k, v in {"brand": brand, "category_id": category_id}.items() if v}
        headers = {"User-Agent": USER_AGENT, "Accept": "application/json"}
        if api_key := source.config.get("api_key"):
            headers["Authorization"] = f"Bearer {api_key}"

        self.logger.debug("Fetching listings", source=source.code, url=url, params=params)
        try:
            response = await self.client.get(url, params=params, headers=headers)
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            raise SourceFetchFailed(source.code, f"HTTP {e.response.status_code}") from e
        except httpx.RequestError as e:
            raise SourceFetchFailed(source.code, f"{type(e).__name__}: {e}") from e
        except ValueError as e:
            raise SourceFetchFailed(source.code, "response is not valid JSON") from e

        return self._parse_listings(source, payload)

    def _parse_listings(self, source: MatchSource, payload: Any) -> list[ExternalListing]:
        items = payload.get("items") if isinstance(payload, dict) else payload
        if not isinstance(items, list):
            raise SourceFetchFailed(source.code, "unexpected payload shape")

        listings: list[ExternalListing] = []
        for raw in items:
            if not isinstance(raw, dict):
                raise SourceFetchFailed(source.code, "listing entry is not an object")
            data = dict(raw)
            data.setdefault("external_key", data.get("key") or data.get("id"))
            data["source_code"] = source.code
            if data.get("external_key") is not None:
                data["external_key"] = str(data["external_key"])
            try:
                listings.append(ExternalListing.model_validate(data))
            except ValidationError as e:
                raise SourceFetchFailed(source.code, f"invalid listing: {e.errors()[0]['msg']}") from e
        return listings


class RoutingExternalCatalog(ExternalCatalog):
    """Dispatches each source to the catalog registered for its ``kind``."""

    def __init__(self, catalogs: dict[str, ExternalCatalog]) -> None:
        super().__init__("routing")
        self.catalogs = catalogs

    async def list_by_source(
        self,
        source: MatchSource,
        brand: str | None = None,
        category_id: str | None = None,
    ) -> list[ExternalListing]:
        catalog = self.catalogs.get(source.kind)
        if catalog is None:
            raise SourceFetchFailed(source.code, f"no catalog for source kind '{source.kind}'")
        return await catalog.list_by_source(source, brand=brand, category_id=category_id)
