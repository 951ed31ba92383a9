"""Creation and disposal of intermediate rasters.

Every raster the pipeline creates comes from a `RasterStore`. The store keeps
track of what is still open so a run can prove it leaked nothing, and it owns
the backing storage (an in-memory GeoTIFF or a temporary file on disk).
"""

from __future__ import annotations

import logging
import os
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Iterator

import rasterio
from rasterio.io import MemoryFile

from alphawarp.errors import ResourceExhaustedError

LOGGER = logging.getLogger(__name__)

ENV_TMPDIR = "ALPHAWARP_TMPDIR"


class Backing(Enum):
    """Where a raster's pixels live."""

    MEMORY = "memory"
    DISK = "disk"


@dataclass(frozen=True)
class StoreRecord:
    """One raster created by a store."""

    name: str
    backing: Backing
    width: int
    height: int
    count: int
    dtype: str


@dataclass
class _Entry:
    record: StoreRecord
    dataset: Any
    memfile: MemoryFile | None = None
    path: Path | None = None


def default_temp_dir() -> Path:
    """Return the directory used for disk-backed rasters."""
    configured = os.environ.get(ENV_TMPDIR)
    return Path(configured) if configured else Path(tempfile.gettempdir())


class RasterStore:
    """Factory and registry for pipeline-owned rasters."""

    def __init__(self, temp_dir: Path | None = None) -> None:
        self.temp_dir = Path(temp_dir) if temp_dir else default_temp_dir()
        self._live: dict[int, _Entry] = {}
        self.records: list[StoreRecord] = []
        self.disposed_count = 0

    @property
    def live_count(self) -> int:
        return len(self._live)

    @property
    def created_count(self) -> int:
        return len(self.records)

    def backing_of(self, dataset: Any) -> Backing | None:
        entry = self._live.get(id(dataset))
        return entry.record.backing if entry else None

    def create(
        self,
        name: str,
        *,
        width: int,
        height: int,
        count: int,
        dtype: str,
        crs: Any = None,
        transform: Any = None,
        backing: Backing = Backing.MEMORY,
        nodata: float | None = None,
        **creation_options: Any,
    ):
        """Create a writable GeoTIFF-backed raster and register it."""
        profile = {
            "driver": "GTiff",
            "width": int(width),
            "height": int(height),
            "count": int(count),
            "dtype": dtype,
            "crs": crs,
            "transform": transform,
            "nodata": nodata,
            **creation_options,
        }
        record = StoreRecord(name, backing, int(width), int(height), int(count), str(dtype))
        if backing is Backing.MEMORY:
            memfile = MemoryFile()
            try:
                dataset = memfile.open(**profile)
            except Exception:
                memfile.close()
                raise
            entry = _Entry(record, dataset, memfile=memfile)
        else:
            path = self._temp_path(name)
            try:
                dataset = rasterio.open(path, "w+", **profile)
            except Exception as exc:
                path.unlink(missing_ok=True)
                raise ResourceExhaustedError(
                    f"Could not create disk-backed raster {path}: {exc}"
                ) from exc
            entry = _Entry(record, dataset, path=path)
        self._live[id(dataset)] = entry
        self.records.append(record)
        LOGGER.debug("Created %s raster %s (%dx%dx%d %s)", backing.value, name, width, height, count, dtype)
        return dataset

    def _temp_path(self, name: str) -> Path:
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            handle, raw_path = tempfile.mkstemp(prefix=f"{name}-", suffix=".tif", dir=self.temp_dir)
        except OSError as exc:
            raise ResourceExhaustedError(
                f"Temporary directory {self.temp_dir} is not usable: {exc}"
            ) from exc
        os.close(handle)
        path = Path(raw_path)
        path.unlink()
        return path

    def dispose(self, dataset: Any) -> None:
        """Close a raster and release its backing storage."""
        entry = self._live.pop(id(dataset), None)
        if entry is None:
            return
        try:
            entry.dataset.close()
        finally:
            if entry.memfile is not None:
                entry.memfile.close()
            if entry.path is not None:
                for sidecar in (entry.path, entry.path.with_name(entry.path.name + ".ovr"),
                                entry.path.with_name(entry.path.name + ".aux.xml")):
                    sidecar.unlink(missing_ok=True)
            self.disposed_count += 1
            LOGGER.debug("Disposed raster %s", entry.record.name)

    def close_all(self) -> None:
        for entry in list(self._live.values()):
            self.dispose(entry.dataset)

    @contextmanager
    def scope(self) -> Iterator["StoreScope"]:
        """Dispose everything created inside the block on every exit path."""
        scope = StoreScope(self)
        try:
            yield scope
        finally:
            scope.release()

    def __enter__(self) -> "RasterStore":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close_all()


class StoreScope:
    """Handles created through a scope are disposed when it closes."""

    def __init__(self, store: RasterStore) -> None:
        self.store = store
        self._owned: list[Any] = []

    def create(self, name: str, **kwargs: Any):
        dataset = self.store.create(name, **kwargs)
        self._owned.append(dataset)
        return dataset

    def adopt(self, dataset: Any) -> Any:
        """Take ownership of a raster created elsewhere in the same store."""
        if dataset is not None and all(item is not dataset for item in self._owned):
            self._owned.append(dataset)
        return dataset

    def dispose(self, dataset: Any) -> None:
        """Dispose a raster early and stop tracking it."""
        self._owned = [item for item in self._owned if item is not dataset]
        self.store.dispose(dataset)

    def release(self) -> None:
        while self._owned:
            self.store.dispose(self._owned.pop())
