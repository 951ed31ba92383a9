"""Raster I/O and warp primitives built on rasterio."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Mapping, Sequence

import numpy as np
import rasterio
import rasterio.shutil
from rasterio.enums import ColorInterp, Resampling
from rasterio.warp import reproject
from rasterio.windows import Window
from rasterio.windows import transform as window_transform

from alphawarp.errors import (
    AlphaWarpError,
    ExternalLibraryError,
    InvalidArgumentError,
    OperationCancelled,
)
from alphawarp.raster.progress import StageProgress

LOGGER = logging.getLogger(__name__)

DEFAULT_BLOCK_ROWS = 256
ALPHA_OPAQUE = 255
ALPHA_TRANSPARENT = 0


def resolve_resampling(method: str | Resampling) -> Resampling:
    """Return the rasterio resampling enum for a method name."""
    if isinstance(method, Resampling):
        return method
    try:
        return Resampling[str(method).lower()]
    except KeyError as exc:
        choices = ", ".join(item.name for item in Resampling)
        raise InvalidArgumentError(
            f"Unknown resampling method {method!r}; expected one of: {choices}"
        ) from exc


@contextmanager
def library_call(stage: str) -> Iterator[None]:
    """Re-raise anything rasterio/GDAL throws as ExternalLibraryError."""
    try:
        yield
    except (AlphaWarpError, OperationCancelled):
        raise
    except Exception as exc:
        message = str(exc) or exc.__class__.__name__
        LOGGER.debug("Library failure: %s", message, extra={"stage": stage})
        raise ExternalLibraryError(stage, message) from exc


def opaque_value(dtype: str) -> float:
    """Return the fully opaque alpha value for a pixel type."""
    kind = np.dtype(dtype)
    if np.issubdtype(kind, np.integer):
        return float(np.iinfo(kind).max)
    return 1.0


def nodata_or_default(nodata: float | None, dtype: str) -> float | None:
    """Missing nodata on 8-bit bands defaults to 255."""
    if nodata is None and np.dtype(dtype) == np.uint8:
        return 255.0
    return nodata


def fill_band(dataset: Any, band: int, value: float, *, block_rows: int = DEFAULT_BLOCK_ROWS) -> None:
    """Fill one band with a constant, block by block."""
    dtype = dataset.dtypes[band - 1]
    for window in row_windows(dataset.width, dataset.height, block_rows):
        block = np.full((window.height, window.width), value, dtype=dtype)
        dataset.write(block, band, window=window)


def row_windows(width: int, height: int, block_rows: int) -> Iterator[Window]:
    """Yield full-width windows of at most ``block_rows`` rows."""
    if block_rows <= 0:
        raise InvalidArgumentError("block_rows must be positive.")
    for row_off in range(0, height, block_rows):
        yield Window(0, row_off, width, min(block_rows, height - row_off))


def warp_bands(
    source: Any,
    destination: Any,
    band_map: Sequence[tuple[int, int]],
    *,
    resampling: Resampling,
    progress: StageProgress,
    block_rows: int = DEFAULT_BLOCK_ROWS,
    src_nodata: float | None = None,
    dst_nodata: float | None = None,
) -> None:
    """Warp source bands into destination bands one row block at a time.

    ``band_map`` holds (source band, destination band) pairs; one source band
    may feed several destination bands. Progress is reported after every
    block and a cancelled token stops the warp at the next block boundary.
    """
    if not band_map:
        raise InvalidArgumentError("Nothing to warp: band map is empty.")
    source_bands = sorted({src for src, _ in band_map})
    targets = {src: [dst for s, dst in band_map if s == src] for src in source_bands}
    dtype = destination.dtypes[band_map[0][1] - 1]
    height = destination.height
    progress.tick(0.0, "warp started")
    for window in row_windows(destination.width, height, block_rows):
        buffer = np.zeros((len(source_bands), window.height, window.width), dtype=dtype)
        if dst_nodata is not None:
            buffer.fill(dst_nodata)
        with library_call("warp"):
            reproject(
                source=rasterio.band(source, source_bands),
                destination=buffer,
                dst_transform=window_transform(window, destination.transform),
                dst_crs=destination.crs,
                resampling=resampling,
                src_nodata=src_nodata,
                dst_nodata=dst_nodata,
            )
            for position, src in enumerate(source_bands):
                for dst in targets[src]:
                    destination.write(buffer[position], dst, window=window)
        done = (window.row_off + window.height) / height
        progress.tick(done, f"rows {window.row_off}-{window.row_off + window.height}")


def copy_band_rows(
    source: Any,
    source_band: int,
    destination: Any,
    destination_band: int,
    *,
    invert: bool = False,
    block_rows: int = 1,
) -> None:
    """Copy one band row by row, optionally XOR-ing every byte with 0xFF.

    Byte values are rescaled to the destination's opaque value when the
    destination band is wider than 8 bits.
    """
    if (source.width, source.height) != (destination.width, destination.height):
        raise InvalidArgumentError(
            f"Band sizes differ: {source.width}x{source.height} vs "
            f"{destination.width}x{destination.height}"
        )
    dst_dtype = destination.dtypes[destination_band - 1]
    scale = opaque_value(dst_dtype) / ALPHA_OPAQUE
    for window in row_windows(source.width, source.height, block_rows):
        with library_call("mask_apply"):
            row = source.read(source_band, window=window).astype(np.uint8, copy=False)
            if invert:
                row = np.bitwise_xor(row, 0xFF)
            if scale != 1.0:
                row = row.astype(np.float64) * scale
            destination.write(row.astype(dst_dtype, copy=False), destination_band, window=window)


def save_copy(
    dataset: Any,
    path: Path,
    *,
    driver: str,
    creation_options: Mapping[str, Any] | None = None,
    progress: StageProgress,
) -> Path:
    """Persist a raster to ``path`` with the requested driver.

    A partially written file is removed when the copy fails.
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    options = dict(creation_options or {})
    if driver.upper() == "GTIFF" and dataset.overviews(1):
        options.setdefault("COPY_SRC_OVERVIEWS", "YES")
    progress.tick(0.0, f"writing {path.name}")
    try:
        with library_call("save"):
            rasterio.shutil.copy(dataset, path, driver=driver, **options)
    except ExternalLibraryError:
        remove_output(path)
        raise
    progress(1.0, f"wrote {path.name}")
    return path


def remove_output(path: Path | None) -> None:
    """Delete an output file and the sidecars GDAL may have written."""
    if path is None:
        return
    path = Path(path)
    for candidate in (path, path.with_name(path.name + ".ovr"), path.with_name(path.name + ".aux.xml")):
        candidate.unlink(missing_ok=True)


def find_alpha_band(dataset: Any) -> int | None:
    for index, interp in enumerate(dataset.colorinterp, start=1):
        if interp == ColorInterp.alpha:
            return index
    return None


def extract_alpha(source: str | Path | Any, output_path: Path, *, driver: str = "GTiff") -> Path | None:
    """Write the alpha band of a raster to its own single-band file.

    Returns None when the raster has no alpha band.
    """
    if isinstance(source, (str, Path)):
        with rasterio.open(source) as dataset:
            return extract_alpha(dataset, output_path, driver=driver)
    index = find_alpha_band(source)
    if index is None:
        LOGGER.info("Raster has no alpha band; nothing to extract.")
        return None
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        "driver": driver,
        "width": source.width,
        "height": source.height,
        "count": 1,
        "dtype": source.dtypes[index - 1],
        "crs": source.crs,
        "transform": source.transform,
    }
    with library_call("extract_alpha"):
        with rasterio.open(output_path, "w", **profile) as dest:
            for window in row_windows(source.width, source.height, DEFAULT_BLOCK_ROWS):
                dest.write(source.read(index, window=window), 1, window=window)
    return output_path
