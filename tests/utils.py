from __future__ import annotations

import os
from pathlib import Path
from typing import Mapping, Sequence, Tuple

import numpy as np
import rasterio
from rasterio.enums import ColorInterp
from rasterio.transform import Affine, from_bounds


def write_raster(
    path: Path,
    data: np.ndarray,
    *,
    bounds: Tuple[float, float, float, float] | None = None,
    transform: Affine | None = None,
    crs: str = "EPSG:4326",
    nodata: float | None = None,
    colorinterp: Sequence[str] | None = None,
    colormap: Mapping[int, tuple[int, ...]] | None = None,
    tags: Mapping[str, str] | None = None,
) -> Path:
    """Write a GeoTIFF from a 2-D (one band) or 3-D (bands first) array."""
    if data.ndim == 2:
        data = data[np.newaxis, ...]
    count, height, width = data.shape
    if transform is None:
        transform = from_bounds(*(bounds or (0.0, 0.0, 1.0, 1.0)), width=width, height=height)
    path.parent.mkdir(parents=True, exist_ok=True)
    profile = {
        "driver": "GTiff",
        "height": height,
        "width": width,
        "count": count,
        "dtype": data.dtype,
        "crs": crs,
        "transform": transform,
        "nodata": nodata,
    }
    if colorinterp and list(colorinterp)[:3] == ["red", "green", "blue"]:
        profile["photometric"] = "RGB"
        if "alpha" in colorinterp:
            profile["alpha"] = "YES"
    with rasterio.open(path, "w", **profile) as dataset:
        dataset.write(data)
        if colormap:
            dataset.write_colormap(1, colormap)
        if colorinterp:
            dataset.colorinterp = [ColorInterp[name] for name in colorinterp]
        if tags:
            dataset.update_tags(**tags)
    return path


def gradient(height: int, width: int, dtype: str = "uint8") -> np.ndarray:
    """Return a non-zero test pattern."""
    rows = np.arange(height, dtype=np.int64)[:, np.newaxis]
    cols = np.arange(width, dtype=np.int64)[np.newaxis, :]
    return ((rows * 7 + cols * 3) % 200 + 20).astype(dtype)


def with_src_env(base_env: dict[str, str] | None = None) -> dict[str, str]:
    """Return an environment with repo src/ on PYTHONPATH."""
    env = dict(base_env or os.environ)
    repo_root = Path(__file__).resolve().parents[1]
    src_path = repo_root / "src"
    if src_path.exists():
        existing = env.get("PYTHONPATH", "")
        entries = [entry for entry in existing.split(os.pathsep) if entry]
        src_str = str(src_path)
        if src_str not in entries:
            entries.insert(0, src_str)
        env["PYTHONPATH"] = os.pathsep.join(entries)
    return env
