"""Reproject rasters with transparent, alpha-masked borders."""

from alphawarp.errors import (
    AlphaWarpError,
    ExternalLibraryError,
    GeometryDegenerateError,
    InvalidArgumentError,
    ResourceExhaustedError,
)
from alphawarp.raster import (
    CancellationToken,
    PipelineOptions,
    PipelineStatus,
    ProgressEvent,
    ReprojectResult,
    compute_envelope,
    compute_pyramid_levels,
    extract_alpha,
    inspect_raster,
    reproject,
)

__version__ = "0.1.0"

__all__ = [
    "AlphaWarpError",
    "CancellationToken",
    "ExternalLibraryError",
    "GeometryDegenerateError",
    "InvalidArgumentError",
    "PipelineOptions",
    "PipelineStatus",
    "ProgressEvent",
    "ReprojectResult",
    "ResourceExhaustedError",
    "__version__",
    "compute_envelope",
    "compute_pyramid_levels",
    "extract_alpha",
    "inspect_raster",
    "reproject",
]
