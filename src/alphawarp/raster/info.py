"""Raster inspection helpers."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import rasterio

from alphawarp.raster.crs import srs_epsg, srs_identifier
from alphawarp.raster.geotransform import AffineTransform
from alphawarp.raster.io import library_call
from alphawarp.raster.models import RasterInfo
from alphawarp.raster.neatline import read_neatline
from alphawarp.raster.shaper import classify_layout


def _crs_fields(dataset: Any) -> tuple[str | None, int | None]:
    if not dataset.crs:
        return None, None
    wkt = dataset.crs.to_wkt()
    return srs_identifier(wkt), srs_epsg(wkt)


def inspect_raster(source: str | Path | Any) -> RasterInfo:
    """Collect size, band roles, georeferencing and neatline of a raster."""
    if isinstance(source, (str, Path)):
        with library_call("inspect"):
            with rasterio.open(source) as dataset:
                return inspect_raster(dataset)
    transform = AffineTransform.from_dataset(source)
    crs, epsg = _crs_fields(source)
    interps = tuple(interp.name for interp in source.colorinterp)
    return RasterInfo(
        path=str(source.name) if getattr(source, "name", None) else None,
        driver=source.driver,
        width=source.width,
        height=source.height,
        count=source.count,
        dtypes=tuple(source.dtypes),
        colorinterps=interps,
        layout=classify_layout(interps, source.dtypes[0] if source.count else "uint8").value,
        nodata=source.nodata,
        coefficients=transform.coefficients,
        envelope=transform.envelope(srs=crs),
        crs=crs,
        epsg=epsg,
        neatline=read_neatline(source),
        overview_count=len(source.overviews(1)) if source.count else 0,
    )
