"""Command line interface for template progress tracking.

Usage:
    python -m canvas_progress.cli encode  --name N --tile X Y --pixel X Y --image URL
    python -m canvas_progress.cli decode  <token>
    python -m canvas_progress.cli stats   <token>  [--sort total] [--ascending] [--color ID]
                                                   [--overlay out.png] [--pings] [--csv stats.csv]
    python -m canvas_progress.cli watch   <token>  [--interval 60]

Subcommands:
  encode  - Build a share token from template coordinates and an image URL
  decode  - Print the record behind a share token
  stats   - Stitch the live canvas once, print per-colour progress
  watch   - Keep refreshing the live canvas and log progress until interrupted
"""

import argparse
import asyncio
import csv
import dataclasses
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from canvas_progress.config import AUTO_UPDATE_INTERVAL, FetchConfig, marker_colors_from_env
from canvas_progress.diff import MarkerColors, classify_difference
from canvas_progress.refresh import (
    LiveImageUpdated,
    RefreshController,
    RefreshEvent,
    RefreshFailed,
)
from canvas_progress.render import (
    format_statistics_table,
    render_overlay,
    save_image,
)
from canvas_progress.statistics import (
    SORT_KEYS,
    StatisticsRow,
    compute_statistics,
    sort_rows,
    summarize,
    visible_rows,
)
from canvas_progress.stitcher import stitch
from canvas_progress.template import Template, TemplateDecodeError, TemplateImageError
from canvas_progress.tiles import TileFetcher

logger = logging.getLogger("canvas_progress")

EXIT_BAD_INPUT = 2


def _setup_logging(debug: bool = False, quiet: bool = False):
    if debug:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    else:
        level = logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    # PNG chunk tracing drowns out tile logs under --debug
    logging.getLogger("PIL").setLevel(max(level, logging.INFO))


def _fetch_config(args) -> FetchConfig:
    """Environment settings overridden by whatever flags were given.

    Raises:
        ValueError: an override is out of range.
    """
    overrides = {}
    if args.host:
        overrides["host"] = args.host
    if args.tile_size is not None:
        overrides["tile_size"] = args.tile_size
    if args.cooldown is not None:
        overrides["cooldown"] = args.cooldown
    if args.timeout is not None:
        overrides["timeout"] = args.timeout
    if args.proxy:
        overrides["proxies"] = list(args.proxy)
    if args.no_cache_bust:
        overrides["cache_bust"] = False
    return dataclasses.replace(FetchConfig.from_env(), **overrides)


def _load_template(token: str) -> Template:
    template = Template.deserialize(token)
    template.load_template_image()
    return template


def _write_statistics_csv(rows: List[StatisticsRow], path: Path) -> None:
    fieldnames = [
        "color_id",
        "color_name",
        "premium",
        "rgb",
        "total",
        "completed",
        "completion_ratio",
        "remaining",
    ]
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="") as csvfile:
        writer = csv.DictWriter(csvfile, fieldnames=fieldnames)
        writer.writeheader()
        for row in rows:
            record = row.to_dict()
            record["rgb"] = "#{:02x}{:02x}{:02x}".format(*record["rgb"])
            record["completion_ratio"] = round(record["completion_ratio"], 6)
            writer.writerow(record)
    logger.info("Statistics written to %s", path)


# ---- Subcommand: encode ----

def cmd_encode(args):
    try:
        template = Template(
            name=args.name,
            tile_x=args.tile[0],
            tile_y=args.tile[1],
            pixel_x=args.pixel[0],
            pixel_y=args.pixel[1],
            image_url=args.image,
        )
    except ValueError as e:
        logger.error("Invalid template: %s", e)
        return EXIT_BAD_INPUT
    print(template.serialize())
    return 0


# ---- Subcommand: decode ----

def cmd_decode(args):
    try:
        template = Template.deserialize(args.token)
    except TemplateDecodeError as e:
        logger.error("%s", e)
        return EXIT_BAD_INPUT
    print(json.dumps(template.to_record(), indent=2, ensure_ascii=False))
    return 0


# ---- Subcommand: stats ----

def cmd_stats(args):
    try:
        config = _fetch_config(args)
    except ValueError as e:
        logger.error("Invalid fetch settings: %s", e)
        return EXIT_BAD_INPUT

    try:
        template = _load_template(args.token)
    except (TemplateDecodeError, TemplateImageError) as e:
        logger.error("%s", e)
        return EXIT_BAD_INPUT

    fetcher = TileFetcher(config)
    try:
        live = asyncio.run(stitch(template.placement(), fetcher))
    except ValueError as e:
        logger.error("Cannot stitch template %r: %s", template.name, e)
        return EXIT_BAD_INPUT
    template.set_live_image(live)

    rows = compute_statistics(template.template_image, template.live_image)
    summary = summarize(rows)
    shown = rows if args.all else visible_rows(rows)
    shown = sort_rows(shown, key=args.sort, descending=not args.ascending)

    print(f"Template: {template.name}  ({template.width}x{template.height} at "
          f"tile {template.tile_x},{template.tile_y} + {template.pixel_x},{template.pixel_y})")
    print(format_statistics_table(shown, summary))

    if args.csv:
        _write_statistics_csv(shown, args.csv)

    if args.overlay:
        markers = MarkerColors.from_mapping(marker_colors_from_env())
        try:
            result = classify_difference(
                template.template_image, template.live_image,
                selected_color_id=args.color, markers=markers,
            )
        except ValueError as e:
            logger.error("%s", e)
            return EXIT_BAD_INPUT
        logger.info("%d pixel(s) missing", result.missing_count)
        image = render_overlay(
            result.overlay,
            missing=result.missing if args.pings else None,
            scale=args.scale,
        )
        save_image(image, args.overlay)
    return 0


# ---- Subcommand: watch ----

def _log_event(event: RefreshEvent) -> None:
    if isinstance(event, LiveImageUpdated):
        summary = summarize(event.statistics)
        logger.info(
            "%s: %d/%d pixels (%.2f%%), %d remaining",
            event.template.name, summary.completed, summary.total,
            summary.completion_ratio * 100, summary.remaining,
        )
    elif isinstance(event, RefreshFailed):
        logger.error("%s: refresh failed: %s", event.template.name, event.error)
    else:
        logger.info("%s: refresh cancelled", event.template.name)


async def _watch(template: Template, fetcher: TileFetcher, interval: float,
                 max_refreshes: Optional[int]) -> None:
    done = asyncio.Event()

    def on_event(event: RefreshEvent) -> None:
        _log_event(event)
        if max_refreshes is not None and controller.refresh_count >= max_refreshes:
            done.set()

    controller = RefreshController(template, fetcher, on_event, interval=interval)
    controller.start()
    try:
        await done.wait()
    finally:
        await controller.stop()


def cmd_watch(args):
    try:
        config = _fetch_config(args)
    except ValueError as e:
        logger.error("Invalid fetch settings: %s", e)
        return EXIT_BAD_INPUT

    try:
        template = _load_template(args.token)
    except (TemplateDecodeError, TemplateImageError) as e:
        logger.error("%s", e)
        return EXIT_BAD_INPUT

    fetcher = TileFetcher(config)
    try:
        asyncio.run(_watch(template, fetcher, args.interval, args.count))
    except KeyboardInterrupt:
        logger.info("Stopped")
    return 0


# ---- Parser ----

def _add_fetch_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--host", help="Tile server base URL.")
    p.add_argument("--tile-size", type=int, help="Tile edge length in pixels.")
    p.add_argument("--cooldown", type=float, help="Seconds to wait before retrying a failed tile.")
    p.add_argument("--timeout", type=float, help="Per-request timeout in seconds.")
    p.add_argument("--proxy", action="append",
                   help="Relay URL template with a {url} placeholder (repeatable).")
    p.add_argument("--no-cache-bust", action="store_true",
                   help="Do not append ?t=<ms> to tile URLs.")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="canvas-progress",
        description="Track pixel-art template progress against the live canvas.",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    parser.add_argument("--quiet", action="store_true", help="Only log warnings and errors.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("encode", help="Create a share token.")
    p.add_argument("--name", required=True)
    p.add_argument("--tile", type=int, nargs=2, metavar=("X", "Y"), required=True,
                   help="Tile containing the template's top-left pixel.")
    p.add_argument("--pixel", type=int, nargs=2, metavar=("X", "Y"), required=True,
                   help="Offset of the top-left pixel inside that tile.")
    p.add_argument("--image", required=True, help="Template image URL, data URL or path.")
    p.set_defaults(func=cmd_encode)

    p = sub.add_parser("decode", help="Show the record behind a share token.")
    p.add_argument("token")
    p.set_defaults(func=cmd_decode)

    p = sub.add_parser("stats", help="Stitch once and print per-colour progress.")
    p.add_argument("token")
    p.add_argument("--sort", choices=SORT_KEYS, default="total")
    p.add_argument("--ascending", action="store_true")
    p.add_argument("--all", action="store_true", help="Include colours absent from the template.")
    p.add_argument("--color", type=int, help="Only mark pixels of this palette id in the overlay.")
    p.add_argument("--overlay", type=Path, help="Write the difference overlay PNG here.")
    p.add_argument("--scale", type=int, default=8, help="Overlay enlargement factor.")
    p.add_argument("--pings", action="store_true", help="Ring every missing pixel in the overlay.")
    p.add_argument("--csv", type=Path, help="Write the statistics rows as CSV.")
    _add_fetch_args(p)
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("watch", help="Refresh periodically and log progress.")
    p.add_argument("token")
    p.add_argument("--interval", type=float, default=AUTO_UPDATE_INTERVAL,
                   help="Seconds between refreshes (default: %(default)s).")
    p.add_argument("--count", type=int, help="Stop after this many successful refreshes.")
    _add_fetch_args(p)
    p.set_defaults(func=cmd_watch)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.debug, args.quiet)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
