"""Data models used by the reprojection pipeline."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping, Tuple

from rasterio.io import DatasetReaderBase
from rasterio.transform import Affine

# An open rasterio dataset; the pipeline never closes handles it did not create.
RasterHandle = DatasetReaderBase

Coefficients = Tuple[float, float, float, float, float, float]


@dataclass(frozen=True)
class Envelope:
    """Axis-aligned bounding box in ground coordinates."""

    min_x: float
    max_x: float
    min_y: float
    max_y: float
    srs: str | None = None

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    @property
    def is_empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def as_bounds(self) -> tuple[float, float, float, float]:
        """Return (left, bottom, right, top) like rasterio bounds."""
        return (self.min_x, self.min_y, self.max_x, self.max_y)

    def almost_equals(self, other: "Envelope", tolerance: float = 1e-9) -> bool:
        """Compare two envelopes coordinate by coordinate."""
        return all(
            abs(a - b) <= tolerance
            for a, b in zip(self.as_bounds(), other.as_bounds())
        )

    def intersection(self, other: "Envelope") -> "Envelope":
        return Envelope(
            min_x=max(self.min_x, other.min_x),
            max_x=min(self.max_x, other.max_x),
            min_y=max(self.min_y, other.min_y),
            max_y=min(self.max_y, other.max_y),
            srs=self.srs,
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "min_x": self.min_x,
            "max_x": self.max_x,
            "min_y": self.min_y,
            "max_y": self.max_y,
            "srs": self.srs,
        }


class PipelineState(Enum):
    """Stages of a reprojection run."""

    IDLE = "idle"
    TRIMMING = "trimming"
    GEOMETRY_SETUP = "geometry_setup"
    MASKING = "masking"
    ALLOCATING = "allocating"
    WARPING = "warping"
    MASK_APPLY = "mask_apply"
    OVERVIEWS = "overviews"
    SAVING = "saving"
    DONE = "done"
    CANCELLED = "cancelled"
    FAILED = "failed"


class PipelineStatus(Enum):
    """Terminal outcome of a reprojection run."""

    DONE = "done"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class PipelineOptions:
    """Caller supplied configuration for one reprojection run."""

    target_srs: str | int
    output_path: Path | None = None
    driver: str = "GTiff"
    resampling: str = "bilinear"
    pixel_spacing: float = 0.0
    generate_overviews: bool = False
    overview_tile_size: int = 256
    overview_resampling: str = "nearest"
    create_mask: bool = True
    invert_mask: bool = False
    copy_nodata: bool = False
    block_rows: int = 256
    creation_options: Mapping[str, str] = field(default_factory=dict)

    def as_dict(self) -> dict[str, Any]:
        return {
            "target_srs": self.target_srs,
            "output_path": str(self.output_path) if self.output_path else None,
            "driver": self.driver,
            "resampling": self.resampling,
            "pixel_spacing": self.pixel_spacing,
            "generate_overviews": self.generate_overviews,
            "overview_tile_size": self.overview_tile_size,
            "overview_resampling": self.overview_resampling,
            "create_mask": self.create_mask,
            "invert_mask": self.invert_mask,
            "copy_nodata": self.copy_nodata,
            "block_rows": self.block_rows,
            "creation_options": dict(self.creation_options),
        }


@dataclass(frozen=True)
class DestinationGeometry:
    """Size, georeferencing and footprint of a destination raster."""

    width: int
    height: int
    coefficients: Coefficients
    crs_wkt: str
    envelope: Envelope
    pixel_spacing: float

    @property
    def transform(self) -> Affine:
        return Affine.from_gdal(*self.coefficients)


@dataclass(frozen=True)
class BandSpec:
    """One destination band: its colour role and optional warp source."""

    colorinterp: str
    source_band: int | None = None
    is_alpha: bool = False


@dataclass(frozen=True)
class DestinationPlan:
    """Band layout and pixel type chosen for a destination raster."""

    layout: str
    bands: tuple[BandSpec, ...]
    dtype: str
    nodata: float | None = None
    colormap: Mapping[int, tuple[int, ...]] | None = None

    @property
    def count(self) -> int:
        return len(self.bands)

    @property
    def alpha_band(self) -> int | None:
        for index, band in enumerate(self.bands, start=1):
            if band.is_alpha:
                return index
        return None

    @property
    def band_map(self) -> tuple[tuple[int, int], ...]:
        """Return (source band, destination band) warp pairs."""
        return tuple(
            (band.source_band, index)
            for index, band in enumerate(self.bands, start=1)
            if band.source_band is not None
        )


@dataclass(frozen=True)
class OverviewPlan:
    """Overview levels computed for a raster."""

    levels: int
    factors: tuple[int, ...]
    existing: int = 0
    consistent: bool = True

    @property
    def needs_build(self) -> bool:
        return self.existing == 0 and bool(self.factors)


@dataclass(frozen=True)
class ReprojectResult:
    """Outcome of a reprojection run."""

    status: PipelineStatus
    output_path: Path | None = None
    driver: str | None = None
    width: int | None = None
    height: int | None = None
    band_count: int | None = None
    envelope: Envelope | None = None
    overview_factors: tuple[int, ...] = ()
    trimmed: bool = False
    masked: bool = False
    noop: bool = False
    stages: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status is PipelineStatus.DONE

    def open(self) -> RasterHandle:
        """Open the written destination raster for reading."""
        import rasterio

        if self.output_path is None:
            raise ValueError("Cancelled runs have no destination raster.")
        return rasterio.open(self.output_path)

    def as_dict(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "output_path": str(self.output_path) if self.output_path else None,
            "driver": self.driver,
            "width": self.width,
            "height": self.height,
            "band_count": self.band_count,
            "envelope": self.envelope.as_dict() if self.envelope else None,
            "overview_factors": list(self.overview_factors),
            "trimmed": self.trimmed,
            "masked": self.masked,
            "noop": self.noop,
            "stages": list(self.stages),
        }


@dataclass(frozen=True)
class RasterInfo:
    """Metadata extracted from a raster dataset."""

    path: str | None
    driver: str
    width: int
    height: int
    count: int
    dtypes: tuple[str, ...]
    colorinterps: tuple[str, ...]
    layout: str
    nodata: float | None
    coefficients: Coefficients
    envelope: Envelope
    crs: str | None
    epsg: int | None
    neatline: Envelope | None
    overview_count: int

    def as_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "driver": self.driver,
            "width": self.width,
            "height": self.height,
            "count": self.count,
            "dtypes": list(self.dtypes),
            "colorinterps": list(self.colorinterps),
            "layout": self.layout,
            "nodata": self.nodata,
            "coefficients": list(self.coefficients),
            "envelope": self.envelope.as_dict(),
            "crs": self.crs,
            "epsg": self.epsg,
            "neatline": self.neatline.as_dict() if self.neatline else None,
            "overview_count": self.overview_count,
        }
