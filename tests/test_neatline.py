from __future__ import annotations

import logging
from pathlib import Path

import numpy as np
import rasterio

from alphawarp.raster.memory import UnlimitedMemoryProbe
from alphawarp.raster.neatline import read_neatline, trim_to_neatline
from alphawarp.raster.models import Envelope
from alphawarp.raster.progress import CancellationToken, silent_progress
from alphawarp.raster.store import RasterStore
from tests.utils import gradient, write_raster

BOUNDS = (0.0, 0.0, 400.0, 400.0)


def _raster(tmp_path: Path, neatline: str | None) -> Path:
    tags = {"NEATLINE": neatline} if neatline else None
    return write_raster(
        tmp_path / "collared.tif",
        gradient(40, 40),
        bounds=BOUNDS,
        crs="EPSG:3857",
        tags=tags,
    )


def test_read_neatline_envelope(tmp_path: Path) -> None:
    path = _raster(tmp_path, "POLYGON ((100 50, 350 50, 300 300, 100 300, 100 50))")

    with rasterio.open(path) as dataset:
        neatline = read_neatline(dataset)

    assert neatline == Envelope(100.0, 350.0, 50.0, 300.0)


def test_neatline_matching_extent_is_ignored(tmp_path: Path) -> None:
    path = _raster(tmp_path, "POLYGON ((0 0, 400 0, 400 400, 0 400, 0 0))")

    with rasterio.open(path) as dataset:
        assert read_neatline(dataset) is None


def test_missing_or_broken_neatline(tmp_path: Path, caplog) -> None:
    with rasterio.open(_raster(tmp_path, None)) as dataset:
        assert read_neatline(dataset) is None

    broken = write_raster(
        tmp_path / "broken.tif",
        gradient(4, 4),
        bounds=BOUNDS,
        crs="EPSG:3857",
        tags={"NEATLINE": "POLYGON ((1 2"},
    )
    with caplog.at_level(logging.WARNING, logger="alphawarp.raster.neatline"):
        with rasterio.open(broken) as dataset:
            assert read_neatline(dataset) is None
    assert "NEATLINE" in caplog.text


def test_trim_to_neatline_copies_pixels(tmp_path: Path) -> None:
    path = _raster(tmp_path, None)
    store = RasterStore(tmp_path / "scratch")

    with rasterio.open(path) as source, store.scope() as scope:
        trimmed = trim_to_neatline(
            source,
            Envelope(100.0, 300.0, 200.0, 400.0),
            scope=scope,
            probe=UnlimitedMemoryProbe(),
            progress=silent_progress(CancellationToken()),
            block_rows=7,
        )
        assert (trimmed.width, trimmed.height) == (20, 20)
        assert trimmed.bounds == (100.0, 200.0, 300.0, 400.0)
        np.testing.assert_array_equal(trimmed.read(1), source.read(1)[0:20, 10:30])

    assert store.live_count == 0


def test_trim_outside_raster_returns_none(tmp_path: Path) -> None:
    store = RasterStore(tmp_path / "scratch")

    with rasterio.open(_raster(tmp_path, None)) as source, store.scope() as scope:
        trimmed = trim_to_neatline(
            source,
            Envelope(1000.0, 2000.0, 1000.0, 2000.0),
            scope=scope,
            probe=UnlimitedMemoryProbe(),
            progress=silent_progress(CancellationToken()),
            block_rows=16,
        )

    assert trimmed is None
    assert store.created_count == 0
