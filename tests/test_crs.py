from __future__ import annotations

import pytest
from rasterio.crs import CRS as RasterioCRS
from rasterio.transform import Affine

from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.crs import (
    resolve_srs,
    same_srs,
    srs_identifier,
    transform_envelope,
    transform_points,
)
from alphawarp.raster.geotransform import AffineTransform


def test_resolve_srs_accepts_codes_and_objects() -> None:
    assert resolve_srs(4326).to_epsg() == 4326
    assert resolve_srs("3857").to_epsg() == 3857
    assert resolve_srs("EPSG:32633").to_epsg() == 32633
    assert resolve_srs(RasterioCRS.from_epsg(4326)).to_epsg() == 4326


def test_resolve_srs_rejects_garbage() -> None:
    with pytest.raises(InvalidArgumentError):
        resolve_srs("not a projection")
    with pytest.raises(InvalidArgumentError):
        resolve_srs(None)


def test_same_srs_ignores_representation() -> None:
    wkt = resolve_srs(3857).to_wkt()

    assert same_srs(wkt, "EPSG:3857")
    assert not same_srs(4326, 3857)


def test_srs_identifier_prefers_epsg() -> None:
    assert srs_identifier(resolve_srs(4326).to_wkt()) == "EPSG:4326"


def test_transform_points_axis_order() -> None:
    (x, y), = transform_points([(2.0, 1.0)], "EPSG:4326", "EPSG:3857")

    assert 200000 < x < 250000
    assert 100000 < y < 120000


def test_transform_envelope_geographic_to_mercator() -> None:
    transform = AffineTransform.from_affine(
        Affine.translation(2.0, 1.5) * Affine.scale(0.05, -0.05), 10, 10
    )

    envelope = transform_envelope(transform, "EPSG:4326", "EPSG:3857")

    assert envelope.srs == "EPSG:3857"
    assert envelope.min_x < envelope.max_x
    assert envelope.min_y < envelope.max_y
    assert 200000 < envelope.min_x < 300000
    assert 100000 < envelope.min_y < 200000
