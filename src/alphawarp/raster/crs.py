"""CRS normalization and transformation helpers."""

from __future__ import annotations

import math
from typing import Any, Iterable

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError
from rasterio.crs import CRS as RasterioCRS

from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.geotransform import AffineTransform, envelope_of_points
from alphawarp.raster.models import Envelope

DEFAULT_DENSIFY_PTS = 21


def resolve_srs(value: Any) -> CRS:
    """Normalize an EPSG code, WKT, PROJ string or CRS object into a pyproj CRS."""
    if value is None:
        raise InvalidArgumentError("A spatial reference is required.")
    if isinstance(value, CRS):
        return value
    if isinstance(value, RasterioCRS):
        return CRS.from_wkt(value.to_wkt())
    if isinstance(value, int):
        value = f"EPSG:{value}"
    elif isinstance(value, str):
        value = value.strip()
        if value.isdigit():
            value = f"EPSG:{value}"
    try:
        return CRS.from_user_input(value)
    except CRSError as exc:
        raise InvalidArgumentError(f"Unrecognized spatial reference {value!r}: {exc}") from exc


def srs_to_wkt(value: Any) -> str:
    return resolve_srs(value).to_wkt()


def srs_epsg(value: Any) -> int | None:
    """Return the EPSG code if the CRS can be identified, else None."""
    return resolve_srs(value).to_epsg()


def srs_identifier(value: Any) -> str:
    """Return an ``EPSG:n`` identifier when possible, otherwise WKT."""
    crs = resolve_srs(value)
    epsg = crs.to_epsg()
    return f"EPSG:{epsg}" if epsg is not None else crs.to_wkt()


def same_srs(first: Any, second: Any) -> bool:
    return resolve_srs(first).equals(resolve_srs(second), ignore_axis_order=True)


def transformer(src: Any, dst: Any) -> Transformer:
    """Return a transformer that respects lon/lat axis order."""
    return Transformer.from_crs(resolve_srs(src), resolve_srs(dst), always_xy=True)


def transform_points(
    points: Iterable[tuple[float, float]], src: Any, dst: Any
) -> list[tuple[float, float]]:
    """Transform ground points between CRSs, dropping non-finite results."""
    xs: list[float] = []
    ys: list[float] = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    out_xs, out_ys = transformer(src, dst).transform(xs, ys)
    return [
        (x, y) for x, y in zip(out_xs, out_ys) if math.isfinite(x) and math.isfinite(y)
    ]


def transform_envelope(
    transform: AffineTransform,
    src: Any,
    dst: Any,
    *,
    densify_pts: int = DEFAULT_DENSIFY_PTS,
) -> Envelope:
    """Project a raster footprint into another CRS.

    Border pixels go through the (possibly rotated) affine first, then through
    the CRS transformation, so curved edges and rotated corners both count.
    """
    ground = [transform.pixel_to_ground(px, py) for px, py in transform.edge_pixels(densify_pts)]
    projected = transform_points(ground, src, dst)
    if not projected:
        raise InvalidArgumentError("Raster footprint cannot be projected into the target CRS.")
    return envelope_of_points(projected, srs=srs_identifier(dst))
