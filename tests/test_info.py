from __future__ import annotations

import numpy as np

from alphawarp import inspect_raster
from tests.utils import write_raster


def test_inspect_raster(tmp_path) -> None:
    path = tmp_path / "rgb.tif"
    data = np.zeros((3, 6, 8), dtype="uint8")
    write_raster(
        path,
        data,
        bounds=(10.0, 20.0, 18.0, 26.0),
        crs="EPSG:4326",
        colorinterp=["red", "green", "blue"],
        tags={"NEATLINE": "POLYGON ((11 21, 17 21, 17 25, 11 25, 11 21))"},
    )

    info = inspect_raster(path)

    assert info.width == 8
    assert info.height == 6
    assert info.count == 3
    assert info.layout == "rgb"
    assert info.colorinterps == ("red", "green", "blue")
    assert info.epsg == 4326
    assert info.crs == "EPSG:4326"
    assert info.envelope.as_bounds() == (10.0, 20.0, 18.0, 26.0)
    assert info.coefficients == (10.0, 1.0, 0.0, 26.0, 0.0, -1.0)
    assert info.neatline is not None
    assert info.neatline.as_bounds() == (11.0, 21.0, 17.0, 25.0)
    assert info.overview_count == 0

    payload = info.as_dict()
    assert payload["envelope"]["srs"] == "EPSG:4326"
    assert payload["dtypes"] == ["uint8", "uint8", "uint8"]
