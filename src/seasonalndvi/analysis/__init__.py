"""NDVI derivation and seasonal compositing."""

from seasonalndvi.analysis.compositing import (
    SeasonalComposite,
    composite,
    temporal_mean,
)
from seasonalndvi.analysis.vegetation import (
    NDVI_BAND,
    compute_ndvi,
    derive_ndvi,
    ndvi_collection,
)

__all__ = [
    "NDVI_BAND",
    "SeasonalComposite",
    "composite",
    "compute_ndvi",
    "derive_ndvi",
    "ndvi_collection",
    "temporal_mean",
]
