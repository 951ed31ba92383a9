"""Memory reservation probes used to pick a raster backing store."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import psutil

LOGGER = logging.getLogger(__name__)

MIN_FREE_BYTES = 256 * 1024 * 1024


@dataclass(frozen=True)
class MemoryEstimate:
    """Outcome of asking a probe for a reservation."""

    required_bytes: int
    available_bytes: int | None
    fits: bool
    reason: str


class MemoryProbe(Protocol):
    """Anything that can answer whether a reservation would succeed."""

    def estimate(self, nbytes: int) -> MemoryEstimate:
        ...


class PsutilMemoryProbe:
    """Check available system memory, keeping a safety margin free."""

    def __init__(self, min_free_bytes: int = MIN_FREE_BYTES) -> None:
        self.min_free_bytes = min_free_bytes

    def estimate(self, nbytes: int) -> MemoryEstimate:
        available = int(psutil.virtual_memory().available)
        fits = nbytes + self.min_free_bytes <= available
        reason = f"Req: {nbytes / 1e6:.1f}MB, Avail: {available / 1e6:.1f}MB"
        return MemoryEstimate(nbytes, available, fits, reason)


class UnlimitedMemoryProbe:
    """Always grant the reservation."""

    def estimate(self, nbytes: int) -> MemoryEstimate:
        return MemoryEstimate(nbytes, None, True, "unlimited")


class AlwaysExhaustedProbe:
    """Always refuse the reservation (simulated memory pressure)."""

    def estimate(self, nbytes: int) -> MemoryEstimate:
        return MemoryEstimate(nbytes, 0, False, "memory exhausted")


def can_reserve(probe: MemoryProbe, nbytes: int) -> bool:
    """Ask the probe, treating probe failures as exhaustion."""
    try:
        estimate = probe.estimate(nbytes)
    except (OSError, RuntimeError) as exc:
        LOGGER.warning("Memory probe failed (%s); assuming exhaustion.", exc)
        return False
    LOGGER.debug("Memory reservation check: %s", estimate.reason)
    return estimate.fits
