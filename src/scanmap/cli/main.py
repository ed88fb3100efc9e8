"""CLI entry point for scanmap."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from scanmap.acquisition import BoundaryClient, BoundaryQueryError, write_geojson
from scanmap.config import PipelineConfig, load_config
from scanmap.core.models import CompressionReport, FileRecord, TileMetadata
from scanmap.georeference import GeoreferenceCatalog, GeoreferenceError, raster_bounds
from scanmap.inventory import DelegateError, InventoryManager, nth_largest, verify_derivatives, write_report
from scanmap.logging import configure_logging, get_logger
from scanmap.publishing import PublishError, PublishingManager, tile_url_template
from scanmap.tiling import TileCommandError, TilingManager
from scanmap.webmap import TileLayer, WebMapBuilder, layer_from_tilejson, load_overlay

LOGGER = get_logger(__name__)

DEFAULT_CONFIG = Path("configs/base/pipeline.yaml")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="scanmap command-line interface")
    parser.add_argument("--log-json", action="store_true", help="Emit logs in JSON format")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: INFO)")
    parser.add_argument("--log-file", default=None, help="Also write logs to this file")
    subcommands = parser.add_subparsers(dest="command", required=True)

    inventory = subcommands.add_parser("inventory", help="List raster files by size and report totals")
    _add_config_argument(inventory)
    inventory.add_argument("--source", type=Path, default=None, help="Directory of scanned rasters")
    inventory.add_argument("--pattern", default=None, help="Case-insensitive filename regex")
    inventory.add_argument("--rank", type=int, default=None, help="Print the Nth largest file (1-based)")
    inventory.add_argument("--write-report", type=Path, default=None, help="Write a JSON report to this path")

    compress = subcommands.add_parser("compress", help="Resize and re-encode rasters, then report savings")
    _add_config_argument(compress)
    compress.add_argument("--source", type=Path, default=None, help="Directory of scanned rasters")
    compress.add_argument("--output", type=Path, default=None, help="Directory receiving derivative folders")
    compress.add_argument("--max-dimension", type=int, default=None, help="Bounding box edge in pixels")
    compress.add_argument("--format", dest="target_format", default=None, help="Re-encode target format")
    compress.add_argument("--quality", type=int, default=None, help="Re-encode quality (0-100)")
    compress.add_argument("--skip-resize", action="store_true", help="Do not run the resize stage")
    compress.add_argument("--skip-reencode", action="store_true", help="Do not run the re-encode stage")
    compress.add_argument(
        "--reuse-existing",
        action="store_true",
        help="Reuse derivatives whose source hash and parameters are unchanged",
    )
    compress.add_argument("--fail-fast", action="store_true", help="Stop at the first failed file")
    compress.add_argument("--report", type=Path, default=None, help="Write a JSON report to this path")

    boundaries = subcommands.add_parser("boundaries", help="Fetch boundary polygons as GeoJSON")
    _add_config_argument(boundaries)
    boundaries.add_argument("--area", default=None, help="Place name or 'south,west,north,east'")
    boundaries.add_argument("--name", default=None, help="Feature name to match")
    boundaries.add_argument("--key", default=None, help="OSM tag key to match (default: name)")
    boundaries.add_argument("--output", type=Path, default=None, help="GeoJSON output path")

    georef = subcommands.add_parser("georef", help="List georeferenced rasters in a folder")
    _add_config_argument(georef)
    georef.add_argument("--folder", type=Path, default=None, help="Folder holding georeferenced rasters")
    georef.add_argument("--bounds", action="store_true", help="Also print WGS84 bounds via gdalinfo")

    tile = subcommands.add_parser("tile", help="Generate a tile pyramid with gdal2tiles")
    _add_config_argument(tile)
    tile.add_argument("--input", type=Path, required=True, help="Georeferenced source raster")
    tile.add_argument("--out", type=Path, default=None, help="Tile output directory")
    tile.add_argument("--min-zoom", type=int, default=None, help="Minimum zoom level")
    tile.add_argument("--max-zoom", type=int, default=None, help="Maximum zoom level")
    tile.add_argument("--resampling", default=None, help="gdal2tiles resampling method")
    tile.add_argument("--tms", action="store_true", help="Write TMS rows instead of XYZ")
    tile.add_argument("--webviewer", default=None, help="Viewer page to generate (default: leaflet)")
    tile.add_argument("--processes", type=int, default=None, help="gdal2tiles worker processes")
    tile.add_argument("--dry-run", action="store_true", help="Print commands without executing them")

    publish = subcommands.add_parser("publish", help="Copy a tile tree to static hosting")
    _add_config_argument(publish)
    publish.add_argument("--tiles", type=Path, required=True, help="Tile directory to publish")
    publish.add_argument("--destination", default=None, help="Target directory or host:path")
    publish.add_argument("--base-url", default=None, help="Public URL of the destination")
    publish.add_argument("--min-zoom", type=int, default=None, help="Minimum zoom recorded in TileJSON")
    publish.add_argument("--max-zoom", type=int, default=None, help="Maximum zoom recorded in TileJSON")
    publish.add_argument("--tms", action="store_true", help="Tiles use the TMS row order")
    extent = publish.add_mutually_exclusive_group()
    extent.add_argument("--source", type=Path, default=None, help="Georeferenced raster the tiles came from")
    extent.add_argument("--bounds", default=None, metavar="W,S,E,N", help="WGS84 extent recorded in TileJSON")
    publish.add_argument("--dry-run", action="store_true", help="Print actions without copying")

    webmap = subcommands.add_parser("webmap", help="Compose the interactive Leaflet map")
    _add_config_argument(webmap)
    webmap.add_argument(
        "--layer",
        action="append",
        default=[],
        metavar="NAME=URL",
        help="Tile layer URL template with {z}/{x}/{y} (repeatable)",
    )
    webmap.add_argument(
        "--tilejson",
        type=Path,
        action="append",
        default=[],
        help="TileJSON written by publish; supplies URL, zooms and bounds (repeatable)",
    )
    webmap.add_argument("--tms", action="store_true", help="Tile layers use the TMS row order")
    webmap.add_argument("--overlay", type=Path, action="append", default=[], help="GeoJSON overlay (repeatable)")
    webmap.add_argument("--output", type=Path, default=None, help="HTML output path")
    webmap.add_argument("--title", default=None, help="Page title")
    webmap.add_argument("--zoom", type=int, default=None, help="Initial zoom level")
    return parser


def _add_config_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to pipeline configuration file (YAML or JSON)",
    )


def main(argv: Iterable[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)

    configure_logging(level=args.log_level, json_logs=args.log_json, log_file=args.log_file)

    handlers = {
        "inventory": _handle_inventory,
        "compress": _handle_compress,
        "boundaries": _handle_boundaries,
        "georef": _handle_georef,
        "tile": _handle_tile,
        "publish": _handle_publish,
        "webmap": _handle_webmap,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.error("Unknown command")
        return 1
    return handler(args)


def _load_pipeline_config(path: Path | None) -> PipelineConfig:
    if path is not None:
        resolved = path.resolve()
        if not resolved.exists():
            raise SystemExit(f"Configuration file not found: {resolved}")
        return load_config(resolved)
    if DEFAULT_CONFIG.exists():
        return load_config(DEFAULT_CONFIG.resolve())
    return PipelineConfig()


def _handle_inventory(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    if args.pattern is not None:
        cfg.compression.extension_pattern = args.pattern
    source_dir = (args.source or cfg.source_dir).resolve()
    if not source_dir.is_dir():
        raise SystemExit(f"Source directory not found: {source_dir}")

    manager = InventoryManager(source_dir, output_dir=cfg.output_dir, config=cfg.compression)
    records = manager.scan()
    _print_records(records)

    if args.rank is not None:
        try:
            chosen = nth_largest(records, args.rank)
        except IndexError as exc:
            LOGGER.error(str(exc))
            return 1
        print(f"rank {args.rank}\t{chosen.path}\t{chosen.original_size_mb:.2f} MB")

    summary = manager.report(records)
    _print_summary(summary)
    if args.write_report:
        write_report(summary, records, args.write_report)
    return 0


def _handle_compress(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    compression = cfg.compression
    if args.reuse_existing:
        compression.reuse_existing = True
    if args.fail_fast:
        compression.fail_fast = True

    source_dir = (args.source or cfg.source_dir).resolve()
    if not source_dir.is_dir():
        raise SystemExit(f"Source directory not found: {source_dir}")
    output_dir = (args.output or cfg.output_dir).resolve()

    manager = InventoryManager(source_dir, output_dir=output_dir, config=compression)
    records = manager.scan()
    if not records:
        LOGGER.warning("nothing to compress", extra={"source": str(source_dir)})
        return 0

    try:
        if not args.skip_resize:
            records = manager.resize_all(records, args.max_dimension)
        if not args.skip_reencode:
            records = manager.reencode_all(records, args.target_format, args.quality)
    except DelegateError as exc:
        LOGGER.error("compression stopped: %s", exc)
        return 1
    except ValueError as exc:
        LOGGER.error("invalid compression settings: %s", exc)
        return 1

    if not args.skip_resize:
        for record, size in verify_derivatives(records, manager.resized_dir):
            LOGGER.warning(
                "resized file larger than original",
                extra={"path": record.path, "original_mb": record.original_size_mb, "resized_mb": size},
            )

    _print_records(records)
    summary = manager.report(records)
    _print_summary(summary)
    if args.report:
        write_report(summary, records, args.report)
    return 0


def _handle_boundaries(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    settings = cfg.boundaries
    area = args.area or settings.area
    name = args.name or settings.name
    if not area or not name:
        raise SystemExit("Both --area and --name are required (or set them in the boundaries section)")

    client = BoundaryClient(
        overpass_url=settings.overpass_url,
        nominatim_url=settings.nominatim_url,
        timeout=settings.timeout_seconds,
    )
    try:
        collection = client.fetch(area, name, key=args.key or settings.key)
    except BoundaryQueryError as exc:
        LOGGER.error("boundary query failed: %s", exc)
        return 1

    output = args.output or (cfg.output_dir / settings.output)
    write_geojson(collection, output)
    LOGGER.info("boundaries written", extra={"path": str(output), "features": len(collection)})
    return 0


def _handle_georef(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    folder = (args.folder or cfg.georeference_dir).resolve()
    if not folder.is_dir():
        raise SystemExit(f"Georeference folder not found: {folder}")

    catalog = GeoreferenceCatalog(folder, extension_pattern=cfg.compression.extension_pattern)
    for raster in catalog.scan():
        gcps = "-" if raster.gcp_count is None else str(raster.gcp_count)
        line = f"{raster.path.name}\t{raster.method}\t{gcps}"
        if args.bounds:
            try:
                bounds = catalog.bounds(raster.path)
            except GeoreferenceError as exc:
                LOGGER.error("unable to read bounds: %s", exc)
                return 1
            line += "\t" + ",".join(f"{value:.6f}" for value in bounds)
        print(line)
    for path in catalog.unreferenced:
        print(f"{path.name}\tunreferenced\t-")
    return 0


def _handle_tile(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    source = args.input.resolve()
    if not source.exists():
        raise SystemExit(f"Input raster not found: {source}")

    tiles_root = cfg.output_dir / "tiles"
    manager = TilingManager(cfg.tiling, output_dir=tiles_root, dry_run=args.dry_run)
    try:
        tileset = manager.generate_tiles(
            source,
            min_zoom=args.min_zoom,
            max_zoom=args.max_zoom,
            resampling=args.resampling,
            output_dir=args.out.resolve() if args.out else None,
            xyz=False if args.tms else None,
            webviewer=args.webviewer,
            processes=args.processes,
        )
    except TileCommandError as exc:
        LOGGER.error("tiling failed: %s", exc)
        return 1
    except ValueError as exc:
        LOGGER.error("invalid tiling settings: %s", exc)
        return 1

    for zoom, count in tileset.tile_counts.items():
        print(f"z{zoom}\t{count}")
    LOGGER.info(
        "tiling outputs",
        extra={"directory": str(tileset.directory), "scheme": tileset.scheme, "viewer": str(tileset.viewer)},
    )
    return 0


def _handle_publish(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    destination = args.destination or cfg.publishing.destination
    if not destination:
        raise SystemExit("No destination given; pass --destination or set publishing.destination")
    tile_dir = args.tiles.resolve()
    try:
        bounds = _tileset_bounds(args)
    except (GeoreferenceError, ValueError) as exc:
        LOGGER.error("unable to determine tile bounds: %s", exc)
        return 1

    publisher = PublishingManager(dry_run=args.dry_run)
    try:
        result = publisher.publish(tile_dir, destination)
    except PublishError as exc:
        LOGGER.error("publish failed: %s", exc)
        return 1

    base_url = args.base_url or cfg.publishing.base_url
    if base_url:
        url = tile_url_template(base_url, tile_dir.name, cfg.tiling.tile_format)
        metadata = TileMetadata(
            name=tile_dir.name,
            description=f"Tiles generated from {tile_dir.name}",
            tiles=(url,),
            minzoom=cfg.tiling.min_zoom if args.min_zoom is None else args.min_zoom,
            maxzoom=cfg.tiling.max_zoom if args.max_zoom is None else args.max_zoom,
            format=cfg.tiling.tile_format,
            scheme="tms" if args.tms else "xyz",
        )
        if bounds is not None:
            metadata.bounds = bounds
        publisher.generate_tilejson(metadata, tile_dir.parent / f"{tile_dir.name}.tilejson.json")
        print(url)

    LOGGER.info("publish outputs", extra={"destination": result.destination, "remote": result.remote})
    return 0


def _handle_webmap(args: argparse.Namespace) -> int:
    cfg = _load_pipeline_config(args.config)
    try:
        layers = [_parse_layer(value, tms=args.tms) for value in args.layer]
        layers += [layer_from_tilejson(path) for path in args.tilejson]
        overlays = [load_overlay(path) for path in args.overlay]
    except (OSError, ValueError) as exc:
        LOGGER.error("invalid web map input: %s", exc)
        return 1
    if not layers and not overlays:
        raise SystemExit("Nothing to draw; pass at least one --layer, --tilejson or --overlay")

    builder = WebMapBuilder(cfg.webmap)
    destination = args.output or (cfg.output_dir / cfg.webmap.output)
    builder.build(layers, overlays, destination, title=args.title, zoom=args.zoom)
    print(destination)
    return 0


def _parse_layer(value: str, *, tms: bool) -> TileLayer:
    name, sep, url = value.partition("=")
    if not sep or not url.strip():
        raise ValueError(f"Layer must be NAME=URL, got: {value}")
    return TileLayer(name=name.strip(), url_template=url.strip(), tms=tms)


def _tileset_bounds(args: argparse.Namespace) -> Optional[Tuple[float, float, float, float]]:
    if args.source is not None:
        return raster_bounds(args.source.resolve())
    if args.bounds is None:
        return None
    parts = [part.strip() for part in args.bounds.split(",")]
    if len(parts) != 4:
        raise ValueError(f"Bounds must be W,S,E,N, got: {args.bounds}")
    west, south, east, north = (float(part) for part in parts)
    if west >= east or south >= north:
        raise ValueError(f"Bounds must satisfy west < east and south < north, got: {args.bounds}")
    return (west, south, east, north)


def _print_records(records: List[FileRecord]) -> None:
    for record in records:
        columns = [record.path, f"{record.original_size_mb:.2f}"]
        for size in (record.resized_size_mb, record.jpeg_size_mb):
            columns.append("-" if size is None else f"{size:.2f}")
        print("\t".join(columns))


def _print_summary(summary: CompressionReport) -> None:
    print(f"files\t{summary.file_count}")
    print(f"original_mb\t{summary.original_total_mb:.2f}")
    if summary.resized_ratio is not None:
        print(f"resized_mb\t{summary.resized_total_mb:.2f}\tratio\t{summary.resized_ratio:.1f}")
    if summary.jpeg_ratio is not None:
        print(f"reencoded_mb\t{summary.jpeg_total_mb:.2f}\tratio\t{summary.jpeg_ratio:.1f}")
    failed = summary.resized.failed + summary.reencoded.failed
    if failed:
        print(f"failed\t{failed}")


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
