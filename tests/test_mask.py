from __future__ import annotations

import numpy as np
import pytest
from rasterio.transform import Affine, from_origin

from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.mask import apply_mask, synthesize_mask
from alphawarp.raster.memory import UnlimitedMemoryProbe
from alphawarp.raster.orchestrator import compute_destination_geometry
from alphawarp.raster.progress import CancellationToken, silent_progress
from alphawarp.raster.store import RasterStore

ROTATED = Affine.translation(1000, 1000) * Affine.rotation(30) * Affine.scale(10, -10)


def _blank(scope, name: str, count: int, *, dtype: str = "uint8", size=(6, 4), transform=None):
    width, height = size
    return scope.create(
        name,
        width=width,
        height=height,
        count=count,
        dtype=dtype,
        crs="EPSG:3857",
        transform=transform or from_origin(0, 100, 10, 10),
    )


def _mask_with(scope, values: np.ndarray):
    mask = _blank(scope, "mask", 1, size=(values.shape[1], values.shape[0]))
    mask.write(values, 1)
    return mask


def test_synthesized_mask_marks_uncovered_corners(store: RasterStore) -> None:
    with store.scope() as scope:
        source = _blank(scope, "rotated", 1, size=(40, 40), transform=ROTATED)
        geometry = compute_destination_geometry(source, "EPSG:3857")

        mask = synthesize_mask(
            source,
            geometry,
            scope=scope,
            probe=UnlimitedMemoryProbe(),
            progress=silent_progress(CancellationToken()),
            block_rows=8,
        )
        values = mask.read(1)

        assert (mask.width, mask.height) == (geometry.width, geometry.height)
        assert set(np.unique(values)) <= {0, 255}
        assert values[0, 0] == 0
        assert values[-1, -1] == 0
        assert values[geometry.height // 2, geometry.width // 2] == 255

    assert store.live_count == 0


def test_apply_mask_to_four_band_raster(store: RasterStore) -> None:
    values = np.array([[0, 255, 255, 0, 0, 255]] * 4, dtype="uint8")
    with store.scope() as scope:
        destination = _blank(scope, "rgba", 4)
        mask = _mask_with(scope, values)

        apply_mask(destination, mask)

        np.testing.assert_array_equal(destination.read(4), values)
        assert destination.read(1).max() == 0


def test_apply_mask_inverted_to_two_band_raster(store: RasterStore) -> None:
    values = np.array([[0, 255, 255, 0, 0, 255]] * 4, dtype="uint8")
    with store.scope() as scope:
        destination = _blank(scope, "palette_alpha", 2)
        mask = _mask_with(scope, values)

        apply_mask(destination, mask, invert=True)

        np.testing.assert_array_equal(destination.read(2), 255 - values)


def test_apply_mask_scales_to_wide_alpha(store: RasterStore) -> None:
    values = np.array([[0, 255, 0, 255, 0, 255]] * 4, dtype="uint8")
    with store.scope() as scope:
        destination = _blank(scope, "rgba16", 4, dtype="uint16")
        mask = _mask_with(scope, values)

        apply_mask(destination, mask)

        assert set(np.unique(destination.read(4))) == {0, 65535}


@pytest.mark.parametrize("count", [1, 3, 5])
def test_apply_mask_rejects_other_band_counts(store: RasterStore, count: int) -> None:
    with store.scope() as scope:
        destination = _blank(scope, "odd", count)
        mask = _mask_with(scope, np.zeros((4, 6), dtype="uint8"))

        with pytest.raises(InvalidArgumentError):
            apply_mask(destination, mask)


def test_apply_mask_rejects_size_mismatch(store: RasterStore) -> None:
    with store.scope() as scope:
        destination = _blank(scope, "rgba", 4)
        mask = _mask_with(scope, np.zeros((3, 6), dtype="uint8"))

        with pytest.raises(InvalidArgumentError):
            apply_mask(destination, mask)
