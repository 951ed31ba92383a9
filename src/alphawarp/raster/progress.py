"""Progress events and cooperative cancellation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from alphawarp.errors import OperationCancelled

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProgressEvent:
    """Progress update delivered to a caller callback."""

    fraction: float
    stage: str
    detail: str | None = None
    stage_fraction: float = 0.0


# Returning True asks the pipeline to cancel.
ProgressCallback = Callable[[ProgressEvent], Optional[bool]]


class CancellationToken:
    """Explicit cancellation state shared by one pipeline run."""

    def __init__(self) -> None:
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise OperationCancelled()


class StageProgress:
    """Map one stage's progress onto the overall run and fold in cancellation."""

    def __init__(
        self,
        callback: ProgressCallback | None,
        token: CancellationToken,
        *,
        stage: str,
        index: int,
        steps: int,
    ) -> None:
        self.callback = callback
        self.token = token
        self.stage = stage
        self.index = index
        self.steps = max(steps, 1)

    def overall(self, stage_fraction: float) -> float:
        stage_fraction = min(max(stage_fraction, 0.0), 1.0)
        return min((self.index + stage_fraction) / self.steps, 1.0)

    def __call__(self, stage_fraction: float, detail: str | None = None) -> bool:
        """Report progress; return True if the run is now cancelled."""
        if self.callback is not None:
            event = ProgressEvent(
                fraction=self.overall(stage_fraction),
                stage=self.stage,
                detail=detail,
                stage_fraction=stage_fraction,
            )
            if self.callback(event):
                LOGGER.info("Cancellation requested", extra={"stage": self.stage})
                self.token.cancel()
        return self.token.cancelled

    def tick(self, stage_fraction: float, detail: str | None = None) -> None:
        """Report progress and unwind immediately if cancelled."""
        self(stage_fraction, detail)
        self.token.raise_if_cancelled()


def silent_progress(token: CancellationToken, stage: str = "internal") -> StageProgress:
    """Return a stage adapter without a callback that still honours the token."""
    return StageProgress(None, token, stage=stage, index=0, steps=1)
