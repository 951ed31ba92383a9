"""Pipeline option loading and normalization helpers."""

from __future__ import annotations

import json
from dataclasses import fields
from pathlib import Path
from typing import Any, Iterable, Mapping

import jsonschema

from alphawarp.contracts import validate_pipeline_options
from alphawarp.errors import InvalidArgumentError
from alphawarp.raster.io import resolve_resampling
from alphawarp.raster.models import PipelineOptions

# Alternative spellings accepted in option files.
_ALIASES = {
    "t_srs": "target_srs",
    "target_crs": "target_srs",
    "output": "output_path",
    "overviews": "generate_overviews",
    "mask": "create_mask",
    "spacing": "pixel_spacing",
    "co": "creation_options",
}

_FIELDS = {field.name for field in fields(PipelineOptions)}


def parse_creation_options(values: Iterable[str] | Mapping[str, Any] | None) -> dict[str, str]:
    """Turn ``KEY=VALUE`` strings (or a mapping) into driver creation options."""
    if values is None:
        return {}
    if isinstance(values, Mapping):
        return {str(key).upper(): str(value) for key, value in values.items()}
    options: dict[str, str] = {}
    for item in values:
        key, sep, value = str(item).partition("=")
        if not sep or not key.strip():
            raise InvalidArgumentError(f"Creation option {item!r} is not KEY=VALUE.")
        options[key.strip().upper()] = value.strip()
    return options


def _canonical(payload: Mapping[str, Any]) -> dict[str, Any]:
    canonical: dict[str, Any] = {}
    for key, value in payload.items():
        name = _ALIASES.get(key, key)
        if name == "schema_version":
            continue
        canonical[name] = value
    return canonical


def normalize_options(payload: Mapping[str, Any] | None = None, **overrides: Any) -> PipelineOptions:
    """Merge a raw options payload with overrides into PipelineOptions.

    Overrides set to None are ignored so unset CLI flags keep file values.
    """
    merged = _canonical(payload or {})
    merged.update(_canonical({key: value for key, value in overrides.items() if value is not None}))

    unknown = sorted(set(merged) - _FIELDS)
    if unknown:
        raise InvalidArgumentError(f"Unknown pipeline options: {', '.join(unknown)}")
    if "target_srs" not in merged or merged["target_srs"] in (None, ""):
        raise InvalidArgumentError("A target spatial reference (target_srs) is required.")

    if "creation_options" in merged:
        merged["creation_options"] = parse_creation_options(merged["creation_options"])
    for key in ("resampling", "overview_resampling"):
        if key in merged:
            merged[key] = resolve_resampling(merged[key]).name
    if merged.get("output_path") is not None:
        merged["output_path"] = str(merged["output_path"])

    try:
        validate_pipeline_options(merged)
    except jsonschema.ValidationError as exc:
        raise InvalidArgumentError(f"Invalid pipeline options: {exc.message}") from exc

    if merged.get("output_path") is not None:
        merged["output_path"] = Path(merged["output_path"])
    return PipelineOptions(**merged)


def load_options_file(path: Path, **overrides: Any) -> PipelineOptions:
    """Load, validate and normalize a JSON options file."""
    try:
        payload = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise InvalidArgumentError(f"Cannot read options file {path}: {exc}") from exc
    if not isinstance(payload, Mapping):
        raise InvalidArgumentError("Options file must contain a JSON object.")
    return normalize_options(payload, **overrides)
