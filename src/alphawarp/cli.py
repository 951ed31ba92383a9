"""Command-line interface for alphawarp."""

from __future__ import annotations

import argparse
import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from alphawarp import __version__
from alphawarp.config import load_options_file, normalize_options
from alphawarp.contracts import SCHEMA_VERSION, validate_reproject_report
from alphawarp.errors import AlphaWarpError
from alphawarp.logging_utils import LogOptions, configure_logging
from alphawarp.raster.info import inspect_raster
from alphawarp.raster.io import extract_alpha
from alphawarp.raster.models import PipelineOptions, ReprojectResult
from alphawarp.raster.orchestrator import reproject
from alphawarp.raster.progress import ProgressEvent
from alphawarp.raster.pyramid import compute_pyramid_levels, overview_factors

RESAMPLING_CHOICES = ("nearest", "bilinear", "cubic", "cubic_spline", "lanczos", "average", "mode")
EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130
LOGGER = logging.getLogger("alphawarp.cli")


def _add_reproject_parser(subparsers: argparse._SubParsersAction) -> None:
    reproject_parser = subparsers.add_parser(
        "reproject", help="Reproject a raster, masking uncovered pixels as transparent."
    )
    reproject_parser.add_argument("source", help="Source raster path.")
    reproject_parser.add_argument("output", help="Destination raster path.")
    reproject_parser.add_argument(
        "--t-srs",
        dest="target_srs",
        help="Target spatial reference (EPSG code, EPSG:n, WKT or PROJ string).",
    )
    reproject_parser.add_argument(
        "--resampling",
        choices=RESAMPLING_CHOICES,
        help="Resampling method for pixel data (default: bilinear).",
    )
    reproject_parser.add_argument(
        "--pixel-spacing",
        type=float,
        help="Destination pixel size in target units (default: native spacing).",
    )
    reproject_parser.add_argument("--driver", help="Output driver (default: GTiff).")
    reproject_parser.add_argument(
        "--overviews",
        dest="generate_overviews",
        action="store_true",
        default=None,
        help="Build overview levels on the destination.",
    )
    reproject_parser.add_argument(
        "--overview-tile-size",
        type=int,
        help="Tile size used to compute overview levels (power of two, default: 256).",
    )
    reproject_parser.add_argument(
        "--no-mask",
        dest="create_mask",
        action="store_false",
        default=None,
        help="Skip the coverage mask; uncovered pixels stay as warped.",
    )
    reproject_parser.add_argument(
        "--invert-mask",
        action="store_true",
        default=None,
        help="Invert the coverage mask before writing it to the alpha band.",
    )
    reproject_parser.add_argument(
        "--copy-nodata",
        action="store_true",
        default=None,
        help="Carry the source nodata value to the destination.",
    )
    reproject_parser.add_argument(
        "--block-rows",
        type=int,
        help="Rows warped per block (default: 256).",
    )
    reproject_parser.add_argument(
        "--co",
        action="append",
        metavar="KEY=VALUE",
        help="Driver creation option (repeatable).",
    )
    reproject_parser.add_argument("--config", help="Path to a JSON options file.")
    reproject_parser.add_argument("--report", help="Write a JSON run report to this path.")
    reproject_parser.add_argument(
        "--extract-alpha",
        help="Also write the destination alpha band to this single-band raster.",
    )


def _add_levels_parser(subparsers: argparse._SubParsersAction) -> None:
    levels = subparsers.add_parser("levels", help="Compute overview levels for a raster size.")
    levels.add_argument("--tile-size", type=int, default=256, help="Tile size (power of two).")
    levels.add_argument("width", type=int, help="Raster width in pixels.")
    levels.add_argument("height", type=int, help="Raster height in pixels.")


def _add_info_parser(subparsers: argparse._SubParsersAction) -> None:
    info = subparsers.add_parser("info", help="Describe a raster's bands and georeferencing.")
    info.add_argument("source", help="Raster path.")
    info.add_argument("--json", action="store_true", help="Print JSON instead of text.")


def _add_version_parser(subparsers: argparse._SubParsersAction) -> None:
    subparsers.add_parser("version", help="Print the alphawarp version.")


def _options_from_args(args: argparse.Namespace) -> PipelineOptions:
    """Combine an optional options file with CLI flags (flags win)."""
    overrides: dict[str, Any] = {
        "target_srs": args.target_srs,
        "output_path": args.output,
        "resampling": args.resampling,
        "pixel_spacing": args.pixel_spacing,
        "driver": args.driver,
        "generate_overviews": args.generate_overviews,
        "overview_tile_size": args.overview_tile_size,
        "create_mask": args.create_mask,
        "invert_mask": args.invert_mask,
        "copy_nodata": args.copy_nodata,
        "block_rows": args.block_rows,
        "creation_options": args.co,
    }
    if args.config:
        return load_options_file(Path(args.config), **overrides)
    return normalize_options(None, **overrides)


def _log_progress(event: ProgressEvent) -> bool:
    LOGGER.debug(
        "%3.0f%% %s",
        event.fraction * 100,
        event.detail or "",
        extra={"stage": event.stage},
    )
    return False


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def build_report(
    source: str,
    options: PipelineOptions,
    result: ReprojectResult | None,
    error: str | None = None,
) -> dict[str, Any]:
    """Assemble the JSON run report for a reprojection."""
    report: dict[str, Any] = {
        "schema_version": SCHEMA_VERSION,
        "created_at": _utc_now(),
        "source": str(source),
        "options": options.as_dict(),
        "result": result.as_dict() if result else {"status": "failed", "stages": []},
    }
    if error:
        report["error"] = error
    return report


def _write_report(path: Path, report: dict[str, Any]) -> None:
    validate_reproject_report(report)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(report, indent=2), encoding="utf-8")
    LOGGER.info("Report written to %s", path)


def _run_reproject(args: argparse.Namespace) -> int:
    options = _options_from_args(args)
    try:
        result = reproject(args.source, options, progress=_log_progress)
    except AlphaWarpError as exc:
        if args.report:
            _write_report(Path(args.report), build_report(args.source, options, None, str(exc)))
        raise
    if args.report:
        _write_report(Path(args.report), build_report(args.source, options, result))
    if not result.ok:
        LOGGER.warning("Reprojection cancelled; no output written.")
        return EXIT_CANCELLED
    if args.extract_alpha:
        written = extract_alpha(result.output_path, Path(args.extract_alpha))
        if written:
            LOGGER.info("Alpha band written to %s", written)
    return EXIT_OK


def _format_info(payload: dict[str, Any]) -> str:
    envelope = payload["envelope"]
    lines = [
        f"Path: {payload['path']}",
        f"Driver: {payload['driver']}",
        f"Size: {payload['width']} x {payload['height']}, {payload['count']} bands",
        f"Bands: {', '.join(payload['colorinterps'])} ({', '.join(payload['dtypes'])})",
        f"Layout: {payload['layout']}",
        f"CRS: {payload['crs'] or 'none'}",
        (
            "Envelope: "
            f"{envelope['min_x']:.6f}, {envelope['min_y']:.6f}, "
            f"{envelope['max_x']:.6f}, {envelope['max_y']:.6f}"
        ),
        f"Nodata: {payload['nodata']}",
        f"Overviews: {payload['overview_count']}",
    ]
    if payload["neatline"]:
        neatline = payload["neatline"]
        lines.append(
            "Neatline: "
            f"{neatline['min_x']:.6f}, {neatline['min_y']:.6f}, "
            f"{neatline['max_x']:.6f}, {neatline['max_y']:.6f}"
        )
    return "\n".join(lines)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI entrypoint and return an exit code."""
    parser = argparse.ArgumentParser(
        prog="alphawarp",
        description="Reproject rasters with transparent borders",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase log verbosity (repeatable).",
    )
    parser.add_argument(
        "--quiet",
        action="store_true",
        help="Reduce log output to warnings and errors.",
    )
    parser.add_argument(
        "--log-json",
        action="store_true",
        help="Emit logs as JSON on stderr.",
    )
    parser.add_argument(
        "--log-file",
        help="Optional path for JSON log output.",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    _add_reproject_parser(subparsers)
    _add_levels_parser(subparsers)
    _add_info_parser(subparsers)
    _add_version_parser(subparsers)

    args = parser.parse_args(argv)
    log_file_value = getattr(args, "log_file", None)
    log_options = LogOptions(
        verbose=getattr(args, "verbose", 0) or 0,
        quiet=bool(getattr(args, "quiet", False)),
        log_file=Path(log_file_value) if log_file_value else None,
        json_console=bool(getattr(args, "log_json", False)),
    )
    configure_logging(log_options)

    if args.command == "version":
        print(__version__)
        return EXIT_OK
    try:
        if args.command == "reproject":
            if not args.target_srs and not args.config:
                parser.error("--t-srs or --config is required for reproject")
            return _run_reproject(args)
        if args.command == "levels":
            levels = compute_pyramid_levels(args.tile_size, args.width, args.height)
            factors = " ".join(str(factor) for factor in overview_factors(levels))
            print(f"{levels} {factors}".rstrip())
            return EXIT_OK
        if args.command == "info":
            payload = inspect_raster(Path(args.source)).as_dict()
            if args.json:
                print(json.dumps(payload, indent=2))
            else:
                print(_format_info(payload))
            return EXIT_OK
    except AlphaWarpError as exc:
        LOGGER.error("%s", exc)
        return EXIT_FAILED
    parser.error(f"Unknown command: {args.command}")
    return EXIT_FAILED
