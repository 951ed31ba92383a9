"""Overview (pyramid) level planning."""

from __future__ import annotations

import logging
import math

from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.models import OverviewPlan

LOGGER = logging.getLogger(__name__)

DEFAULT_TILE_SIZE = 256


def is_power_of_two(value: int) -> bool:
    """Return True for 1, 2, 4, 8, ..."""
    return isinstance(value, int) and value > 0 and (value & (value - 1)) == 0


def compute_pyramid_levels(tile_size: int, width: int, height: int) -> int:
    """Return how many halvings bring the raster down to one tile."""
    if not is_power_of_two(tile_size):
        raise InvalidArgumentError(f"Tile size {tile_size} is not a power of two.")
    if width <= 0 or height <= 0:
        raise InvalidArgumentError(f"Raster size must be positive, got {width}x{height}.")
    x_level = math.log2(width / tile_size)
    y_level = math.log2(height / tile_size)
    return max(0, math.ceil(max(x_level, y_level)))


def overview_factors(levels: int) -> tuple[int, ...]:
    """Return reduction factors 2, 4, ... 2**levels."""
    if levels < 0:
        raise InvalidArgumentError("Overview level count must be >= 0.")
    return tuple(2 ** level for level in range(1, levels + 1))


def plan_overviews(
    tile_size: int,
    width: int,
    height: int,
    *,
    existing: int = 0,
) -> OverviewPlan:
    """Plan overviews, flagging a mismatch with overviews already present."""
    levels = compute_pyramid_levels(tile_size, width, height)
    consistent = existing == 0 or existing == levels
    if not consistent:
        LOGGER.warning(
            "Raster carries %d overview levels but %d were computed; keeping existing.",
            existing,
            levels,
        )
    return OverviewPlan(
        levels=levels,
        factors=overview_factors(levels),
        existing=existing,
        consistent=consistent,
    )
