from __future__ import annotations

import logging

import pytest

from alphawarp import compute_pyramid_levels
from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.pyramid import is_power_of_two, overview_factors, plan_overviews


@pytest.mark.parametrize(
    ("tile", "width", "height", "expected"),
    [
        (256, 1024, 1024, 2),
        (256, 4096, 2048, 4),
        (256, 256, 256, 0),
        (256, 100, 50, 0),
        (256, 257, 10, 1),
        (512, 10000, 300, 5),
    ],
)
def test_compute_pyramid_levels(tile: int, width: int, height: int, expected: int) -> None:
    assert compute_pyramid_levels(tile, width, height) == expected


@pytest.mark.parametrize("tile", [0, -256, 300, 255])
def test_tile_size_must_be_power_of_two(tile: int) -> None:
    with pytest.raises(InvalidArgumentError):
        compute_pyramid_levels(tile, 1024, 1024)


def test_raster_size_must_be_positive() -> None:
    with pytest.raises(InvalidArgumentError):
        compute_pyramid_levels(256, 0, 1024)


def test_is_power_of_two() -> None:
    assert is_power_of_two(1)
    assert is_power_of_two(1024)
    assert not is_power_of_two(3)
    assert not is_power_of_two(0)


def test_overview_factors() -> None:
    assert overview_factors(0) == ()
    assert overview_factors(3) == (2, 4, 8)


def test_plan_overviews_flags_mismatch(caplog) -> None:
    with caplog.at_level(logging.WARNING, logger="alphawarp.raster.pyramid"):
        plan = plan_overviews(256, 1024, 1024, existing=5)

    assert plan.levels == 2
    assert not plan.consistent
    assert not plan.needs_build
    assert "5 overview levels" in caplog.text


def test_plan_overviews_fresh_raster() -> None:
    plan = plan_overviews(256, 2048, 512)

    assert plan.factors == (2, 4, 8)
    assert plan.consistent
    assert plan.needs_build
