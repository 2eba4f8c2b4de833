"""Vegetation index computation.

``compute_ndvi`` is pure array arithmetic. ``derive_ndvi`` wraps it as a
deferred band so it only runs when a sink reads the image.
"""

from __future__ import annotations

from typing import Any

import numpy as np
import numpy.typing as npt

from seasonalndvi._types import Grid
from seasonalndvi.exceptions import NotFoundError
from seasonalndvi.raster import Image, ImageCollection

NDVI_BAND = "NDVI"

MODIS_RED = "sur_refl_b01"
MODIS_NIR = "sur_refl_b02"


def compute_ndvi(
    red: npt.NDArray[np.floating[Any]],
    nir: npt.NDArray[np.floating[Any]],
) -> npt.NDArray[np.floating[Any]]:
    """Compute Normalised Difference Vegetation Index (NDVI).

    NDVI = (NIR - Red) / (NIR + Red).  Masked (NaN) pixels propagate
    to NaN in the output.  Where ``nir + red == 0`` the result is NaN
    (avoids division-by-zero).

    Parameters:
        red: Red band array (e.g., MODIS ``sur_refl_b01``), shape ``(H, W)``.
        nir: Near-infrared band array (e.g., MODIS ``sur_refl_b02``), same shape.

    Returns:
        NDVI array with the same shape as the inputs. Floating inputs keep
        their dtype; integer reflectance yields float32. Values are in
        ``[-1, 1]`` for valid non-negative reflectance, ``NaN`` otherwise.

    Example:
        >>> import numpy as np
        >>> red = np.array([[0.1, 0.2]], dtype=np.float32)
        >>> nir = np.array([[0.5, 0.4]], dtype=np.float32)
        >>> ndvi = compute_ndvi(red, nir)
        >>> ndvi.shape
        (1, 2)
    """
    red_f = red.astype(np.float64)
    nir_f = nir.astype(np.float64)

    denominator = nir_f + red_f

    with np.errstate(divide="ignore", invalid="ignore"):
        ndvi: npt.NDArray[np.floating[Any]] = np.where(
            denominator == 0.0,
            np.nan,
            (nir_f - red_f) / denominator,
        )

    out_dtype = red.dtype if np.issubdtype(red.dtype, np.floating) else np.float32
    return ndvi.astype(out_dtype)


def derive_ndvi(
    image: Image,
    red: str = MODIS_RED,
    nir: str = MODIS_NIR,
) -> Image:
    """Return *image* with an added ``NDVI`` band.

    The original bands are untouched. The new band is deferred: it reads
    *red* and *nir* on whatever grid the sink asks for.

    Args:
        image: Source image holding *red* and *nir*.
        red: Red band name.
        nir: Near-infrared band name.

    Returns:
        A new ``Image`` with ``NDVI`` appended.

    Raises:
        NotFoundError: If *red* or *nir* is not a band of *image*.
    """
    missing = [b for b in (red, nir) if b not in image.bands]
    if missing:
        raise NotFoundError(
            what=f"Cannot derive NDVI for image {image.image_id}",
            cause=f"Missing bands: {', '.join(missing)}",
            fix="Open the collection with the red and near-infrared bands",
        )

    def _ndvi(grid: Grid) -> npt.NDArray[np.floating[Any]]:
        return compute_ndvi(image.read(red, grid), image.read(nir, grid))

    return image.add_bands({NDVI_BAND: _ndvi})


def ndvi_collection(
    collection: ImageCollection,
    red: str = MODIS_RED,
    nir: str = MODIS_NIR,
) -> ImageCollection:
    """Map ``derive_ndvi`` over every image of *collection*."""
    return collection.map(lambda image: derive_ndvi(image, red=red, nir=nir))
