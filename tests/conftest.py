from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = ROOT / "src"
if str(SRC_ROOT) not in sys.path:
    sys.path.insert(0, str(SRC_ROOT))

import pytest  # noqa: E402

from alphawarp.raster import store as raster_store  # noqa: E402
from alphawarp.raster.memory import UnlimitedMemoryProbe  # noqa: E402
from alphawarp.raster.store import RasterStore  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_temp_dir(monkeypatch, tmp_path) -> None:
    """Keep disk-backed rasters inside the test's temp directory."""
    monkeypatch.setenv(raster_store.ENV_TMPDIR, str(tmp_path / "scratch"))


@pytest.fixture
def store(tmp_path):
    with RasterStore(tmp_path / "scratch") as raster_store_instance:
        yield raster_store_instance


@pytest.fixture
def probe() -> UnlimitedMemoryProbe:
    return UnlimitedMemoryProbe()
