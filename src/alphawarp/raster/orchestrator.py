"""Reprojection pipeline.

A run walks through the `PipelineState` stages in order::

    IDLE -> TRIMMING? -> GEOMETRY_SETUP -> MASKING? -> ALLOCATING -> WARPING
         -> MASK_APPLY? -> OVERVIEWS? -> SAVING -> DONE | CANCELLED | FAILED

Every intermediate raster is created through a `StoreScope`, so leaving the
run by any path (success, cancellation, error) disposes all of them. A
cancelled run returns a CANCELLED result instead of raising.
"""

from __future__ import annotations

import logging
import math
from contextlib import ExitStack
from dataclasses import replace
from pathlib import Path
from typing import Any

import rasterio

from alphawarp.errors import GeometryDegenerateError, InvalidArgumentError, OperationCancelled
from alphawarp.logging_utils import reset_stage, set_stage
from alphawarp.raster.crs import resolve_srs, same_srs, srs_identifier, transform_envelope, transform_points
from alphawarp.raster.geotransform import AffineTransform
from alphawarp.raster.io import library_call, remove_output, resolve_resampling, save_copy, warp_bands
from alphawarp.raster.mask import apply_mask, synthesize_mask
from alphawarp.raster.memory import MemoryProbe, PsutilMemoryProbe
from alphawarp.raster.models import (
    DestinationGeometry,
    Envelope,
    PipelineOptions,
    PipelineState,
    PipelineStatus,
    ReprojectResult,
)
from alphawarp.raster.neatline import read_neatline, trim_to_neatline
from alphawarp.raster.progress import CancellationToken, ProgressCallback, StageProgress
from alphawarp.raster.pyramid import is_power_of_two, plan_overviews
from alphawarp.raster.shaper import allocate_destination, describe_source, plan_destination
from alphawarp.raster.store import RasterStore, StoreScope

LOGGER = logging.getLogger(__name__)

_TERMINAL = (PipelineState.DONE, PipelineState.CANCELLED, PipelineState.FAILED)


def native_pixel_spacing(transform: AffineTransform, src_srs: Any, dst_srs: Any) -> float | None:
    """Measure one source pixel step, in target units, at the raster centre.

    Returns the finer of the column and row steps, or None when the centre
    cannot be projected.
    """
    cx, cy = transform.width / 2.0, transform.height / 2.0
    ground = [
        transform.pixel_to_ground(cx, cy),
        transform.pixel_to_ground(cx + 1, cy),
        transform.pixel_to_ground(cx, cy + 1),
    ]
    projected = transform_points(ground, src_srs, dst_srs)
    if len(projected) != 3:
        return None
    (x0, y0), (x1, y1), (x2, y2) = projected
    steps = [step for step in (math.hypot(x1 - x0, y1 - y0), math.hypot(x2 - x0, y2 - y0)) if step > 0]
    return min(steps) if steps else None


def compute_destination_geometry(
    source: Any,
    target_srs: Any,
    pixel_spacing: float = 0.0,
) -> DestinationGeometry:
    """Size and georeference the destination raster for a source.

    The destination is always north-up and covers the projected footprint of
    the (possibly rotated) source.
    """
    transform = AffineTransform.from_dataset(source)
    if transform.is_degenerate:
        raise GeometryDegenerateError("Source geotransform has a zero determinant.")
    src_srs = source.crs.to_wkt()
    footprint = transform_envelope(transform, src_srs, target_srs)
    spacing = pixel_spacing
    if spacing <= 0:
        spacing = native_pixel_spacing(transform, src_srs, target_srs) or 0.0
    if spacing <= 0 or not math.isfinite(spacing):
        spacing = min(footprint.width / transform.width, footprint.height / transform.height)
        LOGGER.warning("Could not measure native pixel spacing; using %.6g from the footprint.", spacing)
    if spacing <= 0:
        raise GeometryDegenerateError("Projected footprint has zero extent.")
    width = max(1, math.ceil(footprint.width / spacing - 1e-9))
    height = max(1, math.ceil(footprint.height / spacing - 1e-9))
    envelope = Envelope(
        min_x=footprint.min_x,
        max_x=footprint.min_x + width * spacing,
        min_y=footprint.max_y - height * spacing,
        max_y=footprint.max_y,
        srs=footprint.srs,
    )
    return DestinationGeometry(
        width=width,
        height=height,
        coefficients=(footprint.min_x, spacing, 0.0, footprint.max_y, 0.0, -spacing),
        crs_wkt=resolve_srs(target_srs).to_wkt(),
        envelope=envelope,
        pixel_spacing=spacing,
    )


def validate_options(options: PipelineOptions) -> None:
    """Reject unusable options before anything is allocated."""
    if options.output_path is None:
        raise InvalidArgumentError("An output path is required.")
    if not math.isfinite(options.pixel_spacing) or options.pixel_spacing < 0:
        raise InvalidArgumentError(
            "Pixel spacing must be a finite value >= 0 (0 selects the native spacing)."
        )
    if options.block_rows <= 0:
        raise InvalidArgumentError("block_rows must be positive.")
    if options.generate_overviews and not is_power_of_two(options.overview_tile_size):
        raise InvalidArgumentError(
            f"Overview tile size {options.overview_tile_size} is not a power of two."
        )
    resolve_resampling(options.resampling)
    resolve_resampling(options.overview_resampling)


class ReprojectionOrchestrator:
    """Drive one reprojection run and record the stages it passed through."""

    def __init__(
        self,
        options: PipelineOptions,
        *,
        progress: ProgressCallback | None = None,
        token: CancellationToken | None = None,
        store: RasterStore | None = None,
        probe: MemoryProbe | None = None,
    ) -> None:
        self.options = options
        self.callback = progress
        self.token = token or CancellationToken()
        self.store = store or RasterStore()
        self.probe = probe or PsutilMemoryProbe()
        self.history: list[PipelineState] = [PipelineState.IDLE]
        self._stages: list[PipelineState] = []
        self._output_written = False

    @property
    def state(self) -> PipelineState:
        return self.history[-1]

    def _transition(self, state: PipelineState) -> None:
        if state not in _TERMINAL:
            self.token.raise_if_cancelled()
        set_stage(state.value)
        LOGGER.debug("%s -> %s", self.state.value, state.value)
        self.history.append(state)

    def _progress(self, state: PipelineState) -> StageProgress:
        return StageProgress(
            self.callback,
            self.token,
            stage=state.value,
            index=self._stages.index(state),
            steps=len(self._stages),
        )

    def run(self, source: str | Path | Any) -> ReprojectResult:
        """Reproject ``source`` and write it to ``options.output_path``."""
        if source is None:
            raise InvalidArgumentError("A source raster is required.")
        validate_options(self.options)
        target = resolve_srs(self.options.target_srs)
        output_path = Path(self.options.output_path)
        stage_token = set_stage(self.state.value)
        try:
            return self._run(source, target, output_path)
        finally:
            reset_stage(stage_token)

    def _run(self, source: Any, target: Any, output_path: Path) -> ReprojectResult:
        try:
            with ExitStack() as stack:
                if isinstance(source, (str, Path)):
                    with library_call("open"):
                        source = stack.enter_context(rasterio.open(source))
                scope = stack.enter_context(self.store.scope())
                result = self._execute(source, target, output_path, scope)
        except OperationCancelled:
            return self._cancelled(output_path)
        except Exception:
            if self._output_written:
                remove_output(output_path)
            if self.token.cancelled:
                return self._cancelled(output_path)
            self._transition(PipelineState.FAILED)
            raise
        self._transition(PipelineState.DONE)
        LOGGER.info(
            "Wrote %s (%dx%d, %d bands)",
            output_path,
            result.width,
            result.height,
            result.band_count,
        )
        return replace(result, stages=self._stage_names())

    def _stage_names(self) -> tuple[str, ...]:
        return tuple(state.value for state in self.history)

    def _cancelled(self, output_path: Path) -> ReprojectResult:
        if self._output_written:
            remove_output(output_path)
        self._transition(PipelineState.CANCELLED)
        LOGGER.info("Reprojection cancelled")
        return ReprojectResult(status=PipelineStatus.CANCELLED, stages=self._stage_names())

    def _plan_stages(self, *, trimming: bool, noop: bool) -> None:
        options = self.options
        stages: list[PipelineState] = []
        if trimming:
            stages.append(PipelineState.TRIMMING)
        if not noop:
            if options.create_mask:
                stages.append(PipelineState.MASKING)
            stages.append(PipelineState.WARPING)
            if options.create_mask:
                stages.append(PipelineState.MASK_APPLY)
        if options.generate_overviews and not noop:
            stages.append(PipelineState.OVERVIEWS)
        stages.append(PipelineState.SAVING)
        if options.generate_overviews and noop:
            # Unchanged copies get their overviews built on the written file.
            stages.append(PipelineState.OVERVIEWS)
        self._stages = stages

    def _execute(
        self, source: Any, target: Any, output_path: Path, scope: StoreScope
    ) -> ReprojectResult:
        options = self.options
        if not source.crs:
            raise InvalidArgumentError("Source raster has no spatial reference.")
        if AffineTransform.from_dataset(source).is_degenerate:
            raise GeometryDegenerateError("Source geotransform has a zero determinant.")

        neatline = read_neatline(source)
        self._plan_stages(trimming=neatline is not None, noop=False)
        trimmed = False
        if neatline is not None:
            self._transition(PipelineState.TRIMMING)
            effective = trim_to_neatline(
                source,
                neatline,
                scope=scope,
                probe=self.probe,
                progress=self._progress(PipelineState.TRIMMING),
                block_rows=options.block_rows,
            )
            if effective is None:
                raise InvalidArgumentError("Neatline does not overlap the raster.")
            source = effective
            trimmed = True

        self._transition(PipelineState.GEOMETRY_SETUP)
        transform = AffineTransform.from_dataset(source)
        noop = (
            not trimmed
            and transform.is_north_up
            and options.pixel_spacing <= 0
            and same_srs(source.crs.to_wkt(), target)
        )
        if noop:
            self._plan_stages(trimming=False, noop=True)
            return self._copy_unchanged(source, output_path)

        geometry = compute_destination_geometry(source, target, options.pixel_spacing)
        LOGGER.info(
            "Destination %dx%d at %.6g units/pixel in %s",
            geometry.width,
            geometry.height,
            geometry.pixel_spacing,
            srs_identifier(target),
            extra={"stage": "geometry_setup"},
        )

        mask = None
        if options.create_mask:
            self._transition(PipelineState.MASKING)
            mask = synthesize_mask(
                source,
                geometry,
                scope=scope,
                probe=self.probe,
                progress=self._progress(PipelineState.MASKING),
                block_rows=options.block_rows,
            )

        self._transition(PipelineState.ALLOCATING)
        plan = plan_destination(
            describe_source(source),
            create_mask=options.create_mask,
            copy_nodata=options.copy_nodata,
        )
        destination = allocate_destination(
            plan, geometry, scope=scope, probe=self.probe, block_rows=options.block_rows
        )

        self._transition(PipelineState.WARPING)
        dst_nodata = plan.nodata if plan.alpha_band is None else None
        warp_bands(
            source,
            destination,
            plan.band_map,
            resampling=resolve_resampling(options.resampling),
            progress=self._progress(PipelineState.WARPING),
            block_rows=options.block_rows,
            src_nodata=source.nodata,
            dst_nodata=dst_nodata,
        )

        if mask is not None:
            self._transition(PipelineState.MASK_APPLY)
            progress = self._progress(PipelineState.MASK_APPLY)
            progress.tick(0.0, "compositing mask")
            apply_mask(destination, mask, invert=options.invert_mask)
            scope.dispose(mask)
            progress.tick(1.0, "mask composited")

        factors = self._build_overviews(destination)
        self._save(destination, output_path)
        return ReprojectResult(
            status=PipelineStatus.DONE,
            output_path=output_path,
            driver=options.driver,
            width=geometry.width,
            height=geometry.height,
            band_count=plan.count,
            envelope=geometry.envelope,
            overview_factors=factors,
            trimmed=trimmed,
            masked=mask is not None,
        )

    def _copy_unchanged(self, source: Any, output_path: Path) -> ReprojectResult:
        LOGGER.info("Source already in the target projection; copying unchanged.", extra={"stage": "geometry_setup"})
        self._save(source, output_path)
        factors: tuple[int, ...] = ()
        if self.options.generate_overviews:
            with library_call("overviews"):
                with rasterio.open(output_path, "r+") as written:
                    factors = self._build_overviews(written)
        transform = AffineTransform.from_dataset(source)
        return ReprojectResult(
            status=PipelineStatus.DONE,
            output_path=output_path,
            driver=self.options.driver,
            width=source.width,
            height=source.height,
            band_count=source.count,
            envelope=transform.envelope(srs=srs_identifier(source.crs.to_wkt())),
            overview_factors=factors,
            noop=True,
        )

    def _build_overviews(self, dataset: Any) -> tuple[int, ...]:
        options = self.options
        if not options.generate_overviews:
            return ()
        self._transition(PipelineState.OVERVIEWS)
        progress = self._progress(PipelineState.OVERVIEWS)
        overview = plan_overviews(
            options.overview_tile_size,
            dataset.width,
            dataset.height,
            existing=len(dataset.overviews(1)),
        )
        if not overview.needs_build:
            progress.tick(1.0, "no overviews to build")
            return tuple(dataset.overviews(1))
        progress.tick(0.0, f"building {overview.levels} levels")
        resampling = resolve_resampling(options.overview_resampling)
        with library_call("overviews"):
            dataset.build_overviews(list(overview.factors), resampling)
            dataset.update_tags(ns="rio_overview", resampling=resampling.name)
        progress.tick(1.0, f"built {overview.levels} levels")
        return overview.factors

    def _save(self, dataset: Any, output_path: Path) -> None:
        self._transition(PipelineState.SAVING)
        self._output_written = True
        save_copy(
            dataset,
            output_path,
            driver=self.options.driver,
            creation_options=self.options.creation_options,
            progress=self._progress(PipelineState.SAVING),
        )


def reproject(
    source: str | Path | Any,
    options: PipelineOptions,
    *,
    progress: ProgressCallback | None = None,
    token: CancellationToken | None = None,
    store: RasterStore | None = None,
    probe: MemoryProbe | None = None,
) -> ReprojectResult:
    """Reproject a raster into ``options.target_srs``.

    ``source`` may be a path or an open rasterio dataset; an open dataset
    stays open and owned by the caller. Returns a CANCELLED result when the
    progress callback or the token asks to stop.
    """
    orchestrator = ReprojectionOrchestrator(
        options, progress=progress, token=token, store=store, probe=probe
    )
    return orchestrator.run(source)
