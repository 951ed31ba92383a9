"""Neatline detection and trimming.

Some formats (GeoPDF most notably) carry a ``NEATLINE`` metadata item: a WKT
polygon marking the valid map area inside a raster padded with collars or
legends. Trimming warps the raster into the neatline's envelope.
"""

from __future__ import annotations

import logging
import math
from typing import Any

from rasterio.enums import Resampling
from shapely import wkt
from shapely.errors import ShapelyError

from alphawarp.raster.geotransform import AffineTransform
from alphawarp.raster.io import fill_band, library_call, warp_bands
from alphawarp.raster.memory import MemoryProbe
from alphawarp.raster.models import Envelope
from alphawarp.raster.progress import StageProgress
from alphawarp.raster.shaper import apply_band_styles, choose_backing, describe_source, estimate_bytes
from alphawarp.raster.store import StoreScope

LOGGER = logging.getLogger(__name__)

NEATLINE_KEY = "NEATLINE"


def read_neatline(dataset: Any, *, tolerance: float = 1e-9) -> Envelope | None:
    """Return the neatline envelope, or None if absent or equal to the extent."""
    text = dataset.tags().get(NEATLINE_KEY)
    if not text:
        return None
    try:
        geometry = wkt.loads(text)
    except ShapelyError as exc:
        LOGGER.warning("Ignoring unreadable NEATLINE metadata: %s", exc)
        return None
    if geometry.is_empty:
        return None
    min_x, min_y, max_x, max_y = geometry.bounds
    neatline = Envelope(min_x, max_x, min_y, max_y)
    extent = AffineTransform.from_dataset(dataset).envelope()
    if neatline.almost_equals(extent, tolerance):
        return None
    return neatline


def trim_to_neatline(
    source: Any,
    neatline: Envelope,
    *,
    scope: StoreScope,
    probe: MemoryProbe,
    progress: StageProgress,
    block_rows: int,
) -> Any | None:
    """Warp a nearest-neighbour copy of ``source`` into the neatline geometry.

    Returns None when the neatline does not overlap the raster.
    """
    transform = AffineTransform.from_dataset(source)
    window = neatline.intersection(transform.envelope())
    if window.is_empty:
        LOGGER.warning("Neatline %s does not overlap the raster; nothing to trim.", neatline.as_bounds())
        return None
    step_x, step_y = transform.pixel_size
    width = max(1, math.ceil(window.width / step_x - 1e-9))
    height = max(1, math.ceil(window.height / step_y - 1e-9))
    trimmed_transform = AffineTransform(window.min_x, step_x, 0.0, window.max_y, 0.0, -step_y, width, height)

    description = describe_source(source)
    backing = choose_backing(
        probe, estimate_bytes(source.count, width, height, description.dtype)
    )
    with library_call("trim"):
        trimmed = scope.create(
            "trimmed",
            width=width,
            height=height,
            count=source.count,
            dtype=description.dtype,
            crs=source.crs,
            transform=trimmed_transform.to_affine(),
            backing=backing,
            nodata=source.nodata,
        )
        apply_band_styles(trimmed, description.colorinterps, description.colormap)
        if source.nodata is not None:
            for band in range(1, source.count + 1):
                fill_band(trimmed, band, source.nodata)

    LOGGER.info(
        "Trimming %dx%d raster to neatline (%dx%d)",
        source.width,
        source.height,
        width,
        height,
        extra={"stage": "trimming"},
    )
    bands = [(band, band) for band in range(1, source.count + 1)]
    warp_bands(
        source,
        trimmed,
        bands,
        resampling=Resampling.nearest,
        progress=progress,
        block_rows=block_rows,
        src_nodata=source.nodata,
        dst_nodata=source.nodata,
    )
    return trimmed
