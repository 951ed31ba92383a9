"""Affine pixel/ground mapping for a single raster.

Coefficients follow the GDAL ordering::

    Xp = T0 + T1 * px + T2 * py
    Yp = T3 + T4 * px + T5 * py

In a north-up image T1 is the pixel width, T5 the (negative) pixel height and
T2/T4 are zero. Rotated or sheared rasters carry non-zero T2/T4, so any of the
four corners may be the extremum of the ground footprint.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence

from rasterio.transform import Affine

from alphawarp.errors import GeometryDegenerateError, InvalidArgumentError
from alphawarp.raster.models import Coefficients, Envelope


@dataclass(frozen=True)
class AffineTransform:
    """Immutable 6-coefficient transform plus the raster size it describes."""

    t0: float
    t1: float
    t2: float
    t3: float
    t4: float
    t5: float
    width: int = 0
    height: int = 0

    @classmethod
    def from_gdal(
        cls, coefficients: Sequence[float], width: int = 0, height: int = 0
    ) -> "AffineTransform":
        if len(coefficients) != 6:
            raise InvalidArgumentError(
                f"Affine transform needs 6 coefficients, got {len(coefficients)}."
            )
        t0, t1, t2, t3, t4, t5 = (float(value) for value in coefficients)
        return cls(t0, t1, t2, t3, t4, t5, int(width), int(height))

    @classmethod
    def from_affine(cls, affine: Affine, width: int = 0, height: int = 0) -> "AffineTransform":
        return cls.from_gdal(affine.to_gdal(), width, height)

    @classmethod
    def from_dataset(cls, dataset) -> "AffineTransform":
        return cls.from_affine(dataset.transform, dataset.width, dataset.height)

    @property
    def coefficients(self) -> Coefficients:
        return (self.t0, self.t1, self.t2, self.t3, self.t4, self.t5)

    def to_affine(self) -> Affine:
        return Affine.from_gdal(*self.coefficients)

    @property
    def determinant(self) -> float:
        return self.t1 * self.t5 - self.t2 * self.t4

    @property
    def is_degenerate(self) -> bool:
        return self.determinant == 0.0

    @property
    def is_north_up(self) -> bool:
        return self.t2 == 0.0 and self.t4 == 0.0

    @property
    def pixel_size(self) -> tuple[float, float]:
        """Ground length of one pixel step along each image axis."""
        return (math.hypot(self.t1, self.t4), math.hypot(self.t2, self.t5))

    def pixel_to_ground(self, px: float, py: float) -> tuple[float, float]:
        return (
            self.t0 + self.t1 * px + self.t2 * py,
            self.t3 + self.t4 * px + self.t5 * py,
        )

    def inverse(self) -> "AffineTransform":
        """Return the ground-to-pixel transform."""
        det = self.determinant
        if det == 0.0:
            raise GeometryDegenerateError(
                f"Affine transform {self.coefficients} has a zero determinant."
            )
        i1 = self.t5 / det
        i2 = -self.t2 / det
        i4 = -self.t4 / det
        i5 = self.t1 / det
        i0 = -i1 * self.t0 - i2 * self.t3
        i3 = -i4 * self.t0 - i5 * self.t3
        return AffineTransform(i0, i1, i2, i3, i4, i5, self.width, self.height)

    def ground_to_pixel(self, gx: float, gy: float) -> tuple[float, float]:
        return self.inverse().pixel_to_ground(gx, gy)

    def corners(self, width: float | None = None, height: float | None = None):
        w = self.width if width is None else width
        h = self.height if height is None else height
        return [
            self.pixel_to_ground(px, py)
            for px, py in ((0, 0), (w, 0), (0, h), (w, h))
        ]

    def envelope(
        self,
        width: float | None = None,
        height: float | None = None,
        srs: str | None = None,
    ) -> Envelope:
        """Bounding box of all four transformed corners."""
        return envelope_of_points(self.corners(width, height), srs=srs)

    def edge_pixels(self, densify_pts: int = 0) -> list[tuple[float, float]]:
        """Return pixel coordinates along the raster border, corners included."""
        w, h = float(self.width), float(self.height)
        steps = max(densify_pts, 0) + 2
        points: list[tuple[float, float]] = []
        for index in range(steps):
            fraction = index / (steps - 1)
            points.extend([(w * fraction, 0.0), (w * fraction, h)])
            points.extend([(0.0, h * fraction), (w, h * fraction)])
        return points


def envelope_of_points(points: Iterable[tuple[float, float]], srs: str | None = None) -> Envelope:
    """Return the axis-aligned bounding box of ground points."""
    xs: list[float] = []
    ys: list[float] = []
    for x, y in points:
        xs.append(x)
        ys.append(y)
    if not xs:
        raise InvalidArgumentError("Cannot compute an envelope without points.")
    return Envelope(min(xs), max(xs), min(ys), max(ys), srs)


def compute_envelope(transform: AffineTransform | Affine | Sequence[float], width: int, height: int) -> Envelope:
    """Compute the ground envelope of a raster of the given size."""
    if isinstance(transform, Affine):
        transform = AffineTransform.from_affine(transform, width, height)
    elif not isinstance(transform, AffineTransform):
        transform = AffineTransform.from_gdal(transform, width, height)
    if width < 0 or height < 0:
        raise InvalidArgumentError("Raster size must be non-negative.")
    return transform.envelope(width, height)
