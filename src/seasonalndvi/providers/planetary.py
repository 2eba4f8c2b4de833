"""MODIS surface reflectance via the Microsoft Planetary Computer STAC API."""

from __future__ import annotations

import logging
import random
import time
from typing import Any

import numpy as np
import requests

from seasonalndvi._types import Bounds, FloatArray, Grid
from seasonalndvi.config import Config
from seasonalndvi.exceptions import CollectionNotFoundError, SourceUnavailableError
from seasonalndvi.providers.base import (
    CatalogEntry,
    CollectionInfo,
    DataProvider,
    ProviderStatus,
)
from seasonalndvi.raster import TRUNCATED_KEY
from seasonalndvi.seasons import DateRange

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Planetary Computer constants
# ---------------------------------------------------------------------------

_SIGN_URL = "https://planetarycomputer.microsoft.com/api/sas/v1/sign"
_PAGE_LIMIT = 250
_MAX_ITEMS = 10_000

# ---------------------------------------------------------------------------
# Timeout and retry constants
# ---------------------------------------------------------------------------

_STATUS_TIMEOUT = 10  # shorter timeout for status checks
_READ_TIMEOUT = 300  # 5-minute read timeout for large responses

_MAX_RETRIES = 3
_INITIAL_BACKOFF = 1.0  # seconds
_MAX_BACKOFF = 60.0  # seconds
_RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504, 408})
_SUCCESS_STATUS_CODES = frozenset({200})
_NOT_FOUND_STATUS = 404

# Asset media types that hold raster bands (COGs).
_RASTER_MEDIA_PREFIX = "image/tiff"


class PlanetaryComputerProvider(DataProvider):
    """Raster collections from Microsoft Planetary Computer.

    Catalog search is public. Asset URLs are signed with the Planetary
    Computer SAS API right before each read.

    Args:
        config: Frozen configuration snapshot.

    Example:
        >>> from seasonalndvi.config import Config
        >>> provider = PlanetaryComputerProvider(config=Config())
        >>> provider.name
        'planetary-computer'
    """

    _name: str = "planetary-computer"

    def __init__(self, config: Config) -> None:
        super().__init__(config)
        self._session: requests.Session = requests.Session()
        self._stac_url = config.stac_url

    def describe_collection(self, collection_id: str) -> CollectionInfo:
        """Fetch the STAC collection document.

        Band names come from the collection's ``item_assets``.

        Raises:
            CollectionNotFoundError: If the collection does not exist.
            SourceUnavailableError: If the STAC API is unreachable.
        """
        url = f"{self._stac_url}/collections/{collection_id}"
        try:
            resp = self._retry_request("get", url)
        except CollectionNotFoundError:
            raise CollectionNotFoundError(
                what=f"Raster collection not found: {collection_id!r}",
                cause=f"{self._stac_url} has no such collection",
                fix="Check the collection id, e.g. 'modis-09A1-061'",
            ) from None

        body = self._json(resp, "collection description")
        item_assets: dict[str, Any] = body.get("item_assets", {})
        bands = [
            key for key, asset in item_assets.items()
            if _is_raster_asset(asset)
        ]
        return CollectionInfo(
            collection_id=collection_id,
            title=str(body.get("title", "")),
            bands=bands,
        )

    def search(
        self,
        collection_id: str,
        bounds: Bounds,
        date_range: DateRange | None,
        **params: Any,
    ) -> list[CatalogEntry]:
        """Search the STAC API, following ``next`` pagination links.

        Args:
            collection_id: STAC collection id.
            bounds: ``(min_lon, min_lat, max_lon, max_lat)``.
            date_range: Temporal filter, or ``None``.
            **params: ``limit`` (int) caps the total number of items.

        Returns:
            Matching catalog entries; empty if none.

        Raises:
            SourceUnavailableError: If the STAC API fails after retries.
        """
        max_items = int(params.get("limit", _MAX_ITEMS))
        search_body: dict[str, Any] = {
            "collections": [collection_id],
            "bbox": list(bounds),
            "limit": min(_PAGE_LIMIT, max_items),
        }
        if date_range is not None:
            if date_range.is_empty:
                return []
            search_body["datetime"] = date_range.to_stac_interval()

        logger.info(
            "Searching %s: bbox=%s, datetime=%s",
            collection_id,
            search_body["bbox"],
            search_body.get("datetime", "any"),
        )

        entries: list[CatalogEntry] = []
        method, url, body = "post", f"{self._stac_url}/search", search_body
        while True:
            kwargs: dict[str, Any] = {"json": body} if method == "post" else {}
            page = self._json(self._retry_request(method, url, **kwargs), "search page")
            for feature in page.get("features", []):
                entries.append(self._parse_stac_item(feature))

            next_link = _next_link(page)
            if next_link is None or len(entries) >= max_items:
                break
            method = str(next_link.get("method", "GET")).lower()
            url = next_link["href"]
            if next_link.get("merge"):
                body = {**search_body, **next_link.get("body", {})}
            else:
                body = next_link.get("body", search_body)

        logger.debug("Found %d %s granules", len(entries), collection_id)
        truncated = len(entries) > max_items or (
            next_link is not None and len(entries) >= max_items
        )
        entries = entries[:max_items]
        if truncated:
            logger.warning(
                "%s search truncated at %d items; later pages were not fetched. "
                "Narrow the date range or region.",
                collection_id,
                max_items,
            )
            for entry in entries:
                entry.metadata[TRUNCATED_KEY] = str(max_items)
        return entries

    def _parse_stac_item(self, item: dict[str, Any]) -> CatalogEntry:
        """Parse a STAC item into a CatalogEntry."""
        properties = item.get("properties", {})
        assets = {
            key: asset["href"]
            for key, asset in item.get("assets", {}).items()
            if asset.get("href") and _is_raster_asset(asset)
        }
        return CatalogEntry(
            provider=self._name,
            product_id=str(item.get("id", "")),
            timestamp=str(
                properties.get("datetime") or properties.get("start_datetime", "")
            ),
            geometry=item.get("geometry") or {},
            assets=assets,
            metadata={
                "platform": str(properties.get("platform", "")),
                "tile": f"h{properties.get('modis:horizontal-tile', '')}"
                f"v{properties.get('modis:vertical-tile', '')}",
            },
        )

    def read_band(
        self,
        entries: list[CatalogEntry],
        band: str,
        grid: Grid,
    ) -> FloatArray:
        """Read *band* from every granule onto *grid* and mosaic them.

        The first granule with a valid value wins each pixel.

        Raises:
            SourceUnavailableError: If signing or reading an asset fails.
        """
        mosaic = grid.empty()
        for entry in entries:
            href = entry.assets.get(band)
            if href is None:
                continue
            tile = self._read_warped(self._sign_href(href), grid)
            fill = np.isnan(mosaic) & ~np.isnan(tile)
            mosaic[fill] = tile[fill]
        return mosaic

    def _sign_href(self, href: str) -> str:
        """Return *href* with a Planetary Computer SAS token appended."""
        resp = self._retry_request("get", _SIGN_URL, params={"href": href})
        signed = self._json(resp, "signing response").get("href")
        if not signed:
            raise SourceUnavailableError(
                what="Planetary Computer URL signing failed",
                cause="Signing response has no 'href'",
                fix="Try again; check Planetary Computer status",
            )
        return str(signed)

    @staticmethod
    def _read_warped(href: str, grid: Grid) -> FloatArray:
        """Resample one COG band onto *grid*; no-data becomes NaN."""
        import rasterio
        from rasterio.enums import Resampling
        from rasterio.errors import RasterioError
        from rasterio.vrt import WarpedVRT

        try:
            with rasterio.Env(GDAL_DISABLE_READDIR_ON_OPEN="EMPTY_DIR"):
                with rasterio.open(href) as src, WarpedVRT(
                    src,
                    crs=grid.crs,
                    transform=grid.transform,
                    width=grid.width,
                    height=grid.height,
                    resampling=Resampling.average,
                ) as vrt:
                    band = vrt.read(1, masked=True)
        except RasterioError as exc:
            raise SourceUnavailableError(
                what="Failed to read raster asset",
                cause=str(exc),
                fix="Try again; the asset may be temporarily unavailable",
            ) from exc
        return np.ma.filled(band.astype(np.float32), np.nan)

    @staticmethod
    def _json(resp: requests.Response, what: str) -> dict[str, Any]:
        try:
            body: Any = resp.json()
        except ValueError as exc:
            raise SourceUnavailableError(
                what=f"Planetary Computer returned invalid JSON for {what}",
                cause=str(exc),
                fix="Try again; check Planetary Computer status if persistent",
            ) from exc
        if not isinstance(body, dict):
            raise SourceUnavailableError(
                what=f"Planetary Computer returned unexpected {what}",
                cause=f"Expected a JSON object, got {type(body).__name__}",
                fix="Try again; check Planetary Computer status if persistent",
            )
        return body

    def _retry_request(
        self,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> requests.Response:
        """Execute HTTP request with retry and exponential backoff.

        Args:
            method: HTTP method (``"get"``, ``"post"``, etc.).
            url: Target URL.
            **kwargs: Additional keyword arguments for ``requests.Session.request``.

        Returns:
            Successful HTTP response.

        Raises:
            CollectionNotFoundError: On HTTP 404.
            SourceUnavailableError: On other non-retryable errors, or when
                all retries are exhausted.
        """
        kwargs.setdefault("timeout", (self._config.request_timeout_s, _READ_TIMEOUT))
        last_status: int = 0
        last_exc: requests.RequestException | None = None

        for attempt in range(_MAX_RETRIES):
            try:
                resp = self._session.request(method, url, **kwargs)

                if resp.status_code in _SUCCESS_STATUS_CODES:
                    return resp

                last_status = resp.status_code

                if resp.status_code == _NOT_FOUND_STATUS:
                    raise CollectionNotFoundError(
                        what=f"Resource not found: {url}",
                        cause="HTTP 404",
                        fix="Check the identifier",
                    )

                if resp.status_code not in _RETRYABLE_STATUS_CODES:
                    raise SourceUnavailableError(
                        what="Planetary Computer request failed",
                        cause=f"HTTP {resp.status_code}",
                        fix="Check Planetary Computer status at https://planetarycomputer.microsoft.com/",
                    )

                backoff = self._compute_backoff(attempt)
                logger.warning(
                    "Planetary Computer request failed (HTTP %d, attempt %d/%d), "
                    "retrying in %.1fs...",
                    resp.status_code,
                    attempt + 1,
                    _MAX_RETRIES,
                    backoff,
                )
                time.sleep(backoff)

            except SourceUnavailableError:
                raise
            except requests.RequestException as exc:
                last_exc = exc
                if attempt < _MAX_RETRIES - 1:
                    backoff = self._compute_backoff(attempt)
                    logger.warning(
                        "Planetary Computer request failed (%s, attempt %d/%d), "
                        "retrying in %.1fs...",
                        type(exc).__name__,
                        attempt + 1,
                        _MAX_RETRIES,
                        backoff,
                    )
                    time.sleep(backoff)

        if last_exc is not None:
            raise SourceUnavailableError(
                what="Planetary Computer request failed after retries",
                cause=str(last_exc),
                fix="Check internet connection and try again",
            ) from last_exc

        raise SourceUnavailableError(
            what="Planetary Computer request failed after retries",
            cause=f"HTTP {last_status} after {_MAX_RETRIES} retries",
            fix="Check Planetary Computer status at https://planetarycomputer.microsoft.com/",
        )

    @staticmethod
    def _compute_backoff(attempt: int) -> float:
        """Compute exponential backoff with jitter.

        Args:
            attempt: Zero-based attempt index.

        Returns:
            Wait time in seconds (randomized).
        """
        base_delay: float = min(_INITIAL_BACKOFF * (2**attempt), _MAX_BACKOFF)
        jitter: float = random.uniform(0, base_delay * 0.1)  # noqa: S311
        return float(base_delay + jitter)

    def check_status(self) -> ProviderStatus:
        """Check the STAC API is reachable. Never raises."""
        try:
            resp = self._session.get(self._stac_url, timeout=_STATUS_TIMEOUT)
            if resp.status_code in _SUCCESS_STATUS_CODES:
                return ProviderStatus(available=True)
            return ProviderStatus(
                available=False,
                message=f"Planetary Computer returned HTTP {resp.status_code}",
            )
        except requests.RequestException as exc:
            return ProviderStatus(
                available=False,
                message=f"Planetary Computer API unreachable: {exc}",
            )


def _is_raster_asset(asset: dict[str, Any]) -> bool:
    media_type = str(asset.get("type", ""))
    return not media_type or media_type.startswith(_RASTER_MEDIA_PREFIX)


def _next_link(page: dict[str, Any]) -> dict[str, Any] | None:
    for link in page.get("links", []):
        if link.get("rel") == "next" and link.get("href"):
            return link
    return None
