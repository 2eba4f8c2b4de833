"""Administrative boundary resolution from vector feature datasets.

A ``Boundary`` is the analysis region every later stage filters and
clips against. Boundaries are resolved from GeoJSON feature
collections, either a registered public dataset or a local file.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal

import requests
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

from seasonalndvi._types import Bounds
from seasonalndvi.config import Config, get_default_config
from seasonalndvi.exceptions import (
    AmbiguousRegionError,
    CollectionNotFoundError,
    ConfigurationError,
    NotFoundError,
    SourceUnavailableError,
)

logger = logging.getLogger(__name__)

_NATURAL_EARTH_GEOJSON = (
    "https://raw.githubusercontent.com/nvkelso/natural-earth-vector/master/geojson"
)

VECTOR_DATASETS: dict[str, str] = {
    "naturalearth/admin0": f"{_NATURAL_EARTH_GEOJSON}/ne_10m_admin_0_countries.geojson",
    "naturalearth/admin0-110m": (
        f"{_NATURAL_EARTH_GEOJSON}/ne_110m_admin_0_countries.geojson"
    ),
}
"""Registered vector dataset identifiers and their GeoJSON locations."""

MultiMatchPolicy = Literal["union", "error"]


@dataclass(frozen=True)
class Boundary:
    """Analysis region as a (multi)polygon in EPSG:4326.

    Args:
        geometry: Shapely polygon or multipolygon.
        dataset_id: Vector dataset the boundary came from.
        attribute: Property name used to select it.
        value: Property value used to select it.
        feature_count: Number of source features merged into it.

    Example:
        >>> from shapely.geometry import box
        >>> region = Boundary(geometry=box(68.0, 6.0, 98.0, 36.0))
        >>> region.bounds
        (68.0, 6.0, 98.0, 36.0)
    """

    geometry: BaseGeometry
    dataset_id: str = ""
    attribute: str = ""
    value: Any = None
    feature_count: int = 1

    @classmethod
    def from_geojson(cls, geometry: dict[str, Any], **kwargs: Any) -> Boundary:
        """Build a boundary from a GeoJSON geometry mapping."""
        return cls(geometry=shape(geometry), **kwargs)

    @property
    def bounds(self) -> Bounds:
        """``(min_lon, min_lat, max_lon, max_lat)`` of the region."""
        minx, miny, maxx, maxy = self.geometry.bounds
        return (float(minx), float(miny), float(maxx), float(maxy))

    @property
    def __geo_interface__(self) -> dict[str, Any]:
        return dict(mapping(self.geometry))

    def intersection(self, other: Boundary) -> Boundary:
        """Return the region shared by both boundaries."""
        return Boundary(
            geometry=self.geometry.intersection(other.geometry),
            dataset_id=self.dataset_id,
            attribute=self.attribute,
            value=self.value,
            feature_count=self.feature_count,
        )

    def __repr__(self) -> str:
        label = f"{self.attribute}={self.value!r}" if self.attribute else "custom"
        minx, miny, maxx, maxy = self.bounds
        return (
            f"Boundary({label}, features={self.feature_count}, "
            f"bounds=({minx:.2f}, {miny:.2f}, {maxx:.2f}, {maxy:.2f}))"
        )


def load_features(
    dataset_id: str,
    *,
    config: Config | None = None,
    session: requests.Session | None = None,
) -> list[dict[str, Any]]:
    """Load the features of a vector dataset.

    Args:
        dataset_id: A key of ``VECTOR_DATASETS`` or a path to a GeoJSON
            feature collection.
        config: Configuration supplying the request timeout.
        session: Optional HTTP session (tests inject mocks here).

    Returns:
        List of GeoJSON feature mappings.

    Raises:
        CollectionNotFoundError: If the dataset does not exist.
        SourceUnavailableError: If the dataset cannot be fetched or parsed.
    """
    cfg = config if config is not None else get_default_config()
    url = VECTOR_DATASETS.get(dataset_id)
    if url is not None:
        payload = _fetch_geojson(url, dataset_id, cfg, session)
    else:
        payload = _read_geojson(dataset_id)

    features = payload.get("features") if isinstance(payload, dict) else None
    if not isinstance(features, list):
        raise SourceUnavailableError(
            what=f"Vector dataset {dataset_id!r} is not a feature collection",
            cause="GeoJSON has no 'features' list",
            fix="Provide a GeoJSON FeatureCollection",
        )
    logger.debug("Loaded %d features from %s", len(features), dataset_id)
    return features


def _fetch_geojson(
    url: str,
    dataset_id: str,
    config: Config,
    session: requests.Session | None,
) -> Any:
    if session is not None:
        return _get_geojson(session, url, dataset_id, config)
    with requests.Session() as http:
        return _get_geojson(http, url, dataset_id, config)


def _get_geojson(
    http: requests.Session,
    url: str,
    dataset_id: str,
    config: Config,
) -> Any:
    logger.info("Fetching vector dataset %s", dataset_id)
    try:
        resp = http.get(url, timeout=config.request_timeout_s)
    except requests.RequestException as exc:
        raise SourceUnavailableError(
            what=f"Vector dataset {dataset_id!r} could not be fetched",
            cause=str(exc),
            fix="Check internet connection and try again",
        ) from exc

    if resp.status_code == 404:
        raise CollectionNotFoundError(
            what=f"Vector dataset {dataset_id!r} not found",
            cause=f"HTTP 404 from {url}",
            fix="Use a local GeoJSON file instead",
        )
    if resp.status_code != 200:
        raise SourceUnavailableError(
            what=f"Vector dataset {dataset_id!r} could not be fetched",
            cause=f"HTTP {resp.status_code}",
            fix="Try again later",
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise SourceUnavailableError(
            what=f"Vector dataset {dataset_id!r} returned invalid JSON",
            cause=str(exc),
            fix="Try again later",
        ) from exc


def _read_geojson(dataset_id: str) -> Any:
    path = Path(dataset_id).expanduser()
    if not path.is_file():
        known = ", ".join(sorted(VECTOR_DATASETS))
        raise CollectionNotFoundError(
            what=f"Unknown vector dataset: {dataset_id!r}",
            cause="Not a registered dataset and no such file exists",
            fix=f"Use one of: {known}, or a path to a GeoJSON file",
        )
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise SourceUnavailableError(
            what=f"Cannot read vector dataset {path}",
            cause=str(exc),
            fix="Check the file is readable GeoJSON",
        ) from exc


def select_region(
    dataset_id: str,
    attribute: str,
    value: Any,
    *,
    on_multiple: MultiMatchPolicy = "union",
    config: Config | None = None,
    session: requests.Session | None = None,
) -> Boundary:
    """Resolve the boundary whose *attribute* equals *value*.

    Args:
        dataset_id: Vector dataset identifier (see ``load_features``).
        attribute: Feature property to compare.
        value: Expected property value.
        on_multiple: ``"union"`` merges several matching features into one
            region; ``"error"`` rejects them.
        config: Configuration supplying the request timeout.
        session: Optional HTTP session.

    Returns:
        The resolved ``Boundary``.

    Raises:
        NotFoundError: If no feature matches or matches have no geometry.
        AmbiguousRegionError: If several features match and
            *on_multiple* is ``"error"``.
        ConfigurationError: If *on_multiple* is not a known policy.
        SourceUnavailableError: If the dataset cannot be loaded.

    Example:
        >>> india = select_region("naturalearth/admin0", "ADMIN", "India")
        >>> india.feature_count
        1
    """
    if on_multiple not in ("union", "error"):
        raise ConfigurationError(
            what=f"Unknown multi-match policy: {on_multiple!r}",
            cause="Valid policies are: union, error",
            fix="Pass on_multiple='union' or on_multiple='error'",
        )

    features = load_features(dataset_id, config=config, session=session)
    matches = [
        feature
        for feature in features
        if (feature.get("properties") or {}).get(attribute) == value
    ]

    if not matches:
        raise NotFoundError(
            what=f"No features matched {attribute} == {value!r}",
            cause=f"Dataset {dataset_id!r} has {len(features)} features, none match",
            fix="Check the attribute name and value spelling",
        )

    if len(matches) > 1 and on_multiple == "error":
        raise AmbiguousRegionError(
            what=f"{len(matches)} features matched {attribute} == {value!r}",
            cause="The region filter is not unique",
            fix="Use a more specific filter or on_multiple='union'",
        )

    geometries = [shape(f["geometry"]) for f in matches if f.get("geometry")]
    if not geometries:
        raise NotFoundError(
            what=f"Features matching {attribute} == {value!r} have no geometry",
            cause=f"Dataset {dataset_id!r} stores null geometries for them",
            fix="Use a dataset with polygon geometries",
        )
    geometry = unary_union(geometries) if len(geometries) > 1 else geometries[0]

    if len(matches) > 1:
        logger.info(
            "Merged %d features matching %s == %r", len(matches), attribute, value
        )

    return Boundary(
        geometry=geometry,
        dataset_id=dataset_id,
        attribute=attribute,
        value=value,
        feature_count=len(matches),
    )
