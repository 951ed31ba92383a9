"""Coverage masks for reprojected rasters.

Warping a raster into another projection introduces pixels with no source
coverage. The mask marks covered pixels 255 and introduced pixels 0 so they
can be made transparent through the destination alpha band.
"""

from __future__ import annotations

import logging
from typing import Any

from rasterio.enums import Resampling

from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.io import ALPHA_OPAQUE, DEFAULT_BLOCK_ROWS, copy_band_rows, fill_band, library_call, warp_bands
from alphawarp.raster.memory import MemoryProbe
from alphawarp.raster.models import DestinationGeometry
from alphawarp.raster.progress import StageProgress
from alphawarp.raster.shaper import choose_backing, estimate_bytes
from alphawarp.raster.store import StoreScope

LOGGER = logging.getLogger(__name__)

# Alpha band position by destination band count.
ALPHA_BAND_BY_COUNT = {2: 2, 4: 4}

MaskRaster = Any


def synthesize_mask(
    source: Any,
    geometry: DestinationGeometry,
    *,
    scope: StoreScope,
    probe: MemoryProbe,
    progress: StageProgress,
    resampling: Resampling = Resampling.nearest,
    block_rows: int = DEFAULT_BLOCK_ROWS,
) -> MaskRaster:
    """Warp an all-covered source mask into the destination geometry."""
    with library_call("masking"):
        source_mask = scope.create(
            "source_mask",
            width=source.width,
            height=source.height,
            count=1,
            dtype="uint8",
            crs=source.crs,
            transform=source.transform,
            backing=choose_backing(probe, estimate_bytes(1, source.width, source.height, "uint8")),
        )
        destination_mask = scope.create(
            "destination_mask",
            width=geometry.width,
            height=geometry.height,
            count=1,
            dtype="uint8",
            crs=geometry.crs_wkt,
            transform=geometry.transform,
            backing=choose_backing(probe, estimate_bytes(1, geometry.width, geometry.height, "uint8")),
        )
        fill_band(source_mask, 1, ALPHA_OPAQUE, block_rows=block_rows)
        fill_band(destination_mask, 1, 0, block_rows=block_rows)
    try:
        warp_bands(
            source_mask,
            destination_mask,
            [(1, 1)],
            resampling=resampling,
            progress=progress,
            block_rows=block_rows,
        )
    finally:
        scope.dispose(source_mask)
    LOGGER.debug(
        "Synthesized %dx%d coverage mask", geometry.width, geometry.height, extra={"stage": "masking"}
    )
    return destination_mask


def mask_alpha_band(destination: Any) -> int:
    """Return the alpha band a mask is composited into."""
    try:
        return ALPHA_BAND_BY_COUNT[destination.count]
    except KeyError:
        raise InvalidArgumentError(
            f"Cannot apply a mask to a {destination.count}-band raster; expected 2 or 4 bands."
        ) from None


def apply_mask(destination: Any, mask: MaskRaster, invert: bool = False) -> None:
    """Copy the mask into the destination alpha band, row by row."""
    band = mask_alpha_band(destination)
    copy_band_rows(mask, 1, destination, band, invert=invert)
    LOGGER.debug("Composited mask into band %d (invert=%s)", band, invert, extra={"stage": "mask_apply"})
