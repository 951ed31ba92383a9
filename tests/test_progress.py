from __future__ import annotations

import pytest

from alphawarp.errors import OperationCancelled
from alphawarp.raster.progress import CancellationToken, StageProgress, silent_progress


def test_stage_progress_maps_onto_overall_fraction() -> None:
    events = []
    progress = StageProgress(events.append, CancellationToken(), stage="warping", index=1, steps=4)

    progress(0.0)
    progress(0.5, "half")
    progress(1.0)

    assert [event.fraction for event in events] == [0.25, 0.375, 0.5]
    assert events[1].detail == "half"
    assert all(event.stage == "warping" for event in events)


def test_callback_returning_true_cancels_token() -> None:
    token = CancellationToken()
    progress = StageProgress(lambda event: True, token, stage="saving", index=0, steps=1)

    assert progress(0.1) is True
    assert token.cancelled
    with pytest.raises(OperationCancelled):
        progress.tick(0.2)


def test_tick_honours_external_cancellation() -> None:
    token = CancellationToken()
    progress = silent_progress(token)
    progress.tick(0.5)

    token.cancel()

    with pytest.raises(OperationCancelled):
        progress.tick(0.6)


def test_fraction_is_clamped() -> None:
    progress = StageProgress(None, CancellationToken(), stage="x", index=2, steps=3)

    assert progress.overall(5.0) == 1.0
    assert progress.overall(-1.0) == pytest.approx(2 / 3)
