from __future__ import annotations

import json
from pathlib import Path

import pytest

from alphawarp.config import load_options_file, normalize_options, parse_creation_options
from alphawarp.errors import InvalidArgumentError


def test_normalize_options_defaults() -> None:
    options = normalize_options({"target_srs": 3857, "output_path": "out.tif"})

    assert options.target_srs == 3857
    assert options.output_path == Path("out.tif")
    assert options.resampling == "bilinear"
    assert options.create_mask is True
    assert options.invert_mask is False


def test_aliases_and_overrides() -> None:
    options = normalize_options(
        {"t_srs": "EPSG:4326", "overviews": True, "co": ["compress=deflate"], "resampling": "Cubic"},
        generate_overviews=None,
        block_rows=32,
    )

    assert options.target_srs == "EPSG:4326"
    assert options.generate_overviews is True
    assert options.block_rows == 32
    assert options.resampling == "cubic"
    assert options.creation_options == {"COMPRESS": "deflate"}


def test_unknown_keys_and_values_are_rejected() -> None:
    with pytest.raises(InvalidArgumentError):
        normalize_options({"target_srs": 4326, "colour": "blue"})
    with pytest.raises(InvalidArgumentError):
        normalize_options({"target_srs": 4326, "resampling": "sharpen"})
    with pytest.raises(InvalidArgumentError):
        normalize_options({"target_srs": 4326, "block_rows": 0})
    with pytest.raises(InvalidArgumentError):
        normalize_options({"output_path": "x.tif"})


def test_parse_creation_options() -> None:
    assert parse_creation_options(["TILED=YES", "blockxsize=256"]) == {
        "TILED": "YES",
        "BLOCKXSIZE": "256",
    }
    assert parse_creation_options({"compress": "lzw"}) == {"COMPRESS": "lzw"}
    with pytest.raises(InvalidArgumentError):
        parse_creation_options(["TILED"])


def test_load_options_file(tmp_path: Path) -> None:
    path = tmp_path / "options.json"
    path.write_text(
        json.dumps({"schema_version": "1.0", "target_srs": "EPSG:3857", "pixel_spacing": 30}),
        encoding="utf-8",
    )

    options = load_options_file(path, output_path=tmp_path / "out.tif")

    assert options.pixel_spacing == 30
    assert options.output_path == tmp_path / "out.tif"


def test_load_options_file_rejects_non_objects(tmp_path: Path) -> None:
    path = tmp_path / "options.json"
    path.write_text("[1, 2, 3]", encoding="utf-8")

    with pytest.raises(InvalidArgumentError):
        load_options_file(path)
    with pytest.raises(InvalidArgumentError):
        load_options_file(tmp_path / "missing.json")
