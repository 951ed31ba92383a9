"""Raster reprojection engine and exports."""

from alphawarp.raster.crs import resolve_srs, same_srs, srs_identifier, transform_envelope
from alphawarp.raster.geotransform import AffineTransform, compute_envelope
from alphawarp.raster.info import inspect_raster
from alphawarp.raster.io import extract_alpha, nodata_or_default
from alphawarp.raster.mask import apply_mask, synthesize_mask
from alphawarp.raster.memory import (
    AlwaysExhaustedProbe,
    MemoryEstimate,
    PsutilMemoryProbe,
    UnlimitedMemoryProbe,
)
from alphawarp.raster.models import (
    DestinationGeometry,
    DestinationPlan,
    Envelope,
    OverviewPlan,
    PipelineOptions,
    PipelineState,
    PipelineStatus,
    RasterInfo,
    ReprojectResult,
)
from alphawarp.raster.neatline import read_neatline
from alphawarp.raster.orchestrator import (
    ReprojectionOrchestrator,
    compute_destination_geometry,
    reproject,
)
from alphawarp.raster.progress import CancellationToken, ProgressEvent
from alphawarp.raster.pyramid import compute_pyramid_levels, plan_overviews
from alphawarp.raster.shaper import SourceLayout, classify_layout, plan_destination
from alphawarp.raster.store import Backing, RasterStore

__all__ = [
    "AffineTransform",
    "AlwaysExhaustedProbe",
    "Backing",
    "CancellationToken",
    "DestinationGeometry",
    "DestinationPlan",
    "Envelope",
    "MemoryEstimate",
    "OverviewPlan",
    "PipelineOptions",
    "PipelineState",
    "PipelineStatus",
    "ProgressEvent",
    "PsutilMemoryProbe",
    "RasterInfo",
    "RasterStore",
    "ReprojectResult",
    "ReprojectionOrchestrator",
    "SourceLayout",
    "UnlimitedMemoryProbe",
    "apply_mask",
    "classify_layout",
    "compute_destination_geometry",
    "compute_envelope",
    "compute_pyramid_levels",
    "extract_alpha",
    "inspect_raster",
    "nodata_or_default",
    "plan_destination",
    "plan_overviews",
    "read_neatline",
    "reproject",
    "resolve_srs",
    "same_srs",
    "srs_identifier",
    "synthesize_mask",
    "transform_envelope",
]
