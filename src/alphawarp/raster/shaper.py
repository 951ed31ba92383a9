"""Destination band layout and allocation.

The source's colour roles decide what the destination looks like. Layouts form
a closed set (`SourceLayout`); each one has exactly one planner in
``_PLANNERS`` so adding a layout without a planner fails loudly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Mapping, Sequence

import numpy as np
from rasterio.enums import ColorInterp

from alphawarp.errors import ResourceExhaustedError
from alphawarp.raster.io import fill_band, library_call, nodata_or_default, opaque_value
from alphawarp.raster.memory import MemoryProbe, can_reserve
from alphawarp.raster.models import BandSpec, DestinationGeometry, DestinationPlan
from alphawarp.raster.store import Backing, StoreScope

LOGGER = logging.getLogger(__name__)

FIXED_OVERHEAD_BYTES = 100_000


class SourceLayout(Enum):
    """Colour composition of a source raster."""

    RGB = "rgb"
    RGBA = "rgba"
    GRAYSCALE = "grayscale"
    PALETTED_WITH_ALPHA = "paletted_with_alpha"
    PALETTED_NO_ALPHA = "paletted_no_alpha"
    UNDEFINED = "undefined"


@dataclass(frozen=True)
class SourceDescription:
    """Band roles and pixel type of a source raster."""

    colorinterps: tuple[str, ...]
    dtype: str
    nodata: float | None = None
    colormap: Mapping[int, tuple[int, ...]] | None = None

    @property
    def count(self) -> int:
        return len(self.colorinterps)

    def find(self, role: str) -> int | None:
        """Return the 1-based index of the first band with ``role``."""
        for index, interp in enumerate(self.colorinterps, start=1):
            if interp == role:
                return index
        return None


def describe_source(dataset: Any) -> SourceDescription:
    """Collect band roles, pixel type and colour table from a dataset."""
    interps = tuple(interp.name for interp in dataset.colorinterp)
    colormap = None
    if "palette" in interps:
        index = interps.index("palette") + 1
        try:
            colormap = dataset.colormap(index)
        except ValueError:
            LOGGER.warning("Palette band %d has no colour table.", index)
    return SourceDescription(
        colorinterps=interps,
        dtype=dataset.dtypes[0],
        nodata=dataset.nodata,
        colormap=colormap,
    )


def classify_layout(colorinterps: Sequence[str], dtype: str = "uint8") -> SourceLayout:
    """Infer the source layout from band colour roles and pixel type.

    Only byte palettes stay indexed; wider palette indices are warped as
    plain data into an RGBA layout of the source type.
    """
    roles = set(colorinterps)
    has_alpha = "alpha" in roles
    if "palette" in roles and np.dtype(dtype) == np.uint8:
        return SourceLayout.PALETTED_WITH_ALPHA if has_alpha else SourceLayout.PALETTED_NO_ALPHA
    if {"red", "green", "blue"} <= roles:
        return SourceLayout.RGBA if has_alpha else SourceLayout.RGB
    data_bands = [role for role in colorinterps if role != "alpha"]
    if "gray" in roles and len(data_bands) == 1:
        return SourceLayout.GRAYSCALE
    if len(data_bands) == 1 and data_bands[0] == "undefined":
        return SourceLayout.GRAYSCALE
    return SourceLayout.UNDEFINED


def _alpha_spec(source: SourceDescription, create_mask: bool) -> BandSpec:
    # The synthesized mask replaces the source alpha when masking is on.
    source_alpha = None if create_mask else source.find("alpha")
    return BandSpec("alpha", source_alpha, is_alpha=True)


def _plan_paletted(source: SourceDescription, create_mask: bool) -> list[BandSpec]:
    bands = [BandSpec("palette", source.find("palette"))]
    if create_mask or source.find("alpha") is not None:
        bands.append(_alpha_spec(source, create_mask))
    return bands


def _plan_rgb(source: SourceDescription, create_mask: bool) -> list[BandSpec]:
    return [
        BandSpec("red", source.find("red")),
        BandSpec("green", source.find("green")),
        BandSpec("blue", source.find("blue")),
        _alpha_spec(source, create_mask),
    ]


def _plan_grayscale(source: SourceDescription, create_mask: bool) -> list[BandSpec]:
    gray = next(
        index for index, role in enumerate(source.colorinterps, start=1) if role != "alpha"
    )
    if create_mask:
        return [
            BandSpec("red", gray),
            BandSpec("green", gray),
            BandSpec("blue", gray),
            _alpha_spec(source, create_mask),
        ]
    bands = [BandSpec("gray", gray)]
    if source.find("alpha") is not None:
        bands.append(_alpha_spec(source, create_mask))
    return bands


def _plan_undefined(source: SourceDescription, create_mask: bool) -> list[BandSpec]:
    data = [
        index for index, role in enumerate(source.colorinterps, start=1) if role != "alpha"
    ][:3]
    bands = [
        BandSpec(role, data[position] if position < len(data) else None)
        for position, role in enumerate(("red", "green", "blue"))
    ]
    bands.append(_alpha_spec(source, create_mask))
    return bands


_PLANNERS: dict[SourceLayout, Callable[[SourceDescription, bool], list[BandSpec]]] = {
    SourceLayout.RGB: _plan_rgb,
    SourceLayout.RGBA: _plan_rgb,
    SourceLayout.GRAYSCALE: _plan_grayscale,
    SourceLayout.PALETTED_WITH_ALPHA: _plan_paletted,
    SourceLayout.PALETTED_NO_ALPHA: _plan_paletted,
    SourceLayout.UNDEFINED: _plan_undefined,
}

_UNPLANNED = set(SourceLayout) - set(_PLANNERS)
if _UNPLANNED:
    raise RuntimeError(f"No destination planner for layouts: {sorted(l.name for l in _UNPLANNED)}")


def plan_destination(
    source: SourceDescription,
    *,
    create_mask: bool = True,
    copy_nodata: bool = False,
) -> DestinationPlan:
    """Choose the destination bands, pixel type and nodata for a source."""
    layout = classify_layout(source.colorinterps, source.dtype)
    bands = tuple(_PLANNERS[layout](source, create_mask))
    is_paletted = layout in (SourceLayout.PALETTED_WITH_ALPHA, SourceLayout.PALETTED_NO_ALPHA)
    dtype = "uint8" if is_paletted else source.dtype
    nodata = nodata_or_default(source.nodata, dtype) if copy_nodata else None
    return DestinationPlan(
        layout=layout.value,
        bands=bands,
        dtype=dtype,
        nodata=nodata,
        colormap=source.colormap if is_paletted else None,
    )


def estimate_bytes(bands: int, width: int, height: int, dtype: str) -> int:
    """Bytes needed to hold a raster in memory, plus a fixed overhead."""
    return bands * width * height * np.dtype(dtype).itemsize + FIXED_OVERHEAD_BYTES


def choose_backing(probe: MemoryProbe, nbytes: int) -> Backing:
    """Use memory when the probe grants the reservation, disk otherwise."""
    if can_reserve(probe, nbytes):
        return Backing.MEMORY
    LOGGER.info("Cannot reserve %d bytes, falling back to disk.", nbytes)
    return Backing.DISK


def apply_band_styles(
    dataset: Any,
    colorinterps: Sequence[str],
    colormap: Mapping[int, tuple[int, ...]] | None = None,
) -> None:
    """Set colour roles (and the palette, if any) on a freshly created raster."""
    if colormap and "palette" in colorinterps:
        dataset.write_colormap(list(colorinterps).index("palette") + 1, colormap)
    dataset.colorinterp = [ColorInterp[name] for name in colorinterps]


def _creation_options(plan: DestinationPlan) -> dict[str, str]:
    roles = [band.colorinterp for band in plan.bands]
    if roles[:3] == ["red", "green", "blue"] and plan.dtype in ("uint8", "uint16"):
        options = {"photometric": "RGB"}
        if plan.alpha_band == 4:
            options["alpha"] = "YES"
        return options
    return {}


def allocate_destination(
    plan: DestinationPlan,
    geometry: DestinationGeometry,
    *,
    scope: StoreScope,
    probe: MemoryProbe,
    block_rows: int,
):
    """Create the destination raster, in memory when possible, else on disk.

    Alpha bands are filled fully opaque before anything is warped in.
    Falling back to disk is silent; only a failing disk store raises.
    """
    required = estimate_bytes(plan.count, geometry.width, geometry.height, plan.dtype)
    backing = choose_backing(probe, required)
    # Nodata is dataset-wide in GeoTIFF, so it would also tag the alpha band.
    nodata = plan.nodata if plan.alpha_band is None else None
    kwargs = dict(
        width=geometry.width,
        height=geometry.height,
        count=plan.count,
        dtype=plan.dtype,
        crs=geometry.crs_wkt,
        transform=geometry.transform,
        nodata=nodata,
        **_creation_options(plan),
    )
    with library_call("allocate"):
        try:
            destination = scope.create("destination", backing=backing, **kwargs)
        except MemoryError:
            if backing is Backing.DISK:
                raise ResourceExhaustedError("Destination raster does not fit in memory or on disk.")
            LOGGER.info("In-memory allocation failed, falling back to disk.")
            destination = scope.create("destination", backing=Backing.DISK, **kwargs)
        apply_band_styles(destination, [band.colorinterp for band in plan.bands], plan.colormap)
        for index, band in enumerate(plan.bands, start=1):
            if band.is_alpha:
                fill_band(destination, index, opaque_value(plan.dtype), block_rows=block_rows)
            elif nodata is not None:
                fill_band(destination, index, nodata, block_rows=block_rows)
    LOGGER.debug(
        "Allocated %s destination %dx%d (%s, %d bands)",
        backing.value,
        geometry.width,
        geometry.height,
        plan.layout,
        plan.count,
        extra={"stage": "allocating"},
    )
    return destination
