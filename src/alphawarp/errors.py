"""Typed errors raised by the reprojection pipeline."""

from __future__ import annotations


class AlphaWarpError(Exception):
    """Base class for all alphawarp errors."""


class InvalidArgumentError(AlphaWarpError, ValueError):
    """Raised when a caller passes an unusable argument."""


class GeometryDegenerateError(AlphaWarpError):
    """Raised when an affine transform cannot be inverted."""


class ResourceExhaustedError(AlphaWarpError):
    """Raised when neither memory nor disk can hold a raster."""


class ExternalLibraryError(AlphaWarpError):
    """Raised when rasterio/GDAL reports a failure during a stage."""

    def __init__(self, stage: str, library_message: str) -> None:
        self.stage = stage
        self.library_message = library_message
        super().__init__(f"{stage} failed: {library_message}")


class OperationCancelled(Exception):
    """Internal signal used to unwind a cancelled pipeline.

    Never escapes `reproject`; callers see a CANCELLED result instead.
    """
