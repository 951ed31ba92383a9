"""Schema validation helpers for pipeline options and reproject reports."""

from __future__ import annotations

import json
from importlib import resources
from typing import Any, Mapping

import jsonschema

SCHEMA_VERSION = "1.0"


def _load_schema(name: str) -> dict[str, Any]:
    """Load a JSON schema bundled in the package."""
    with resources.files("alphawarp.schemas").joinpath(name).open("r", encoding="utf-8") as handle:
        return json.load(handle)


def validate_pipeline_options(payload: Mapping[str, Any]) -> None:
    """Validate a pipeline options payload against the schema."""
    schema = _load_schema("pipeline_options.schema.json")
    jsonschema.validate(payload, schema)


def validate_reproject_report(report: Mapping[str, Any]) -> None:
    """Validate a reproject report against the schema."""
    schema = _load_schema("reproject_report.schema.json")
    jsonschema.validate(report, schema)
