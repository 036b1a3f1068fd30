"""Command-line entrypoints for the havenmap location core."""
from __future__ import annotations

import argparse
import asyncio
import json
import re
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

try:
    import uvloop
except ImportError:  # pragma: no cover - uvloop optional on some platforms
    uvloop = None

from havenmap.config import DEFAULT_LOGGING_PATH, DEFAULT_SETTINGS_PATH, Settings, load_settings
from havenmap.fetch.session import create_geocode_session
from havenmap.geo.models import Coordinate, ProximityQuery
from havenmap.geo.proximity import build_radius_polygon, distance_km
from havenmap.observability.log import configure_logging
from havenmap.orchestrator.batch import ResolutionOrchestrator, polygon_feature
from havenmap.orchestrator.entity_loader import load_entities
from havenmap.privacy.jitter import PositionJitter
from havenmap.resolve.resolver import GeocodeResolver


def _coordinate(value: str) -> Coordinate:
    try:
        return Coordinate.parse(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


class CoordinateArgumentParser(argparse.ArgumentParser):
    """Treats ``-38.3,144.3`` as a value rather than an unknown option.

    Python 3.11 only recognises bare negative numbers, so southern-hemisphere
    ``lat,lng`` pairs would otherwise be rejected. Subparsers inherit the class.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._negative_number_matcher = re.compile(r"^-\.?\d")


def build_arg_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = CoordinateArgumentParser(prog="havenmap", description="Location resolution and proximity search")
    parser.add_argument("--settings", default=str(DEFAULT_SETTINGS_PATH), help="Path to settings TOML")
    parser.add_argument("--logging", default=str(DEFAULT_LOGGING_PATH), help="Path to logging YAML")
    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Resolve place names to coordinates")
    resolve.add_argument("queries", nargs="+", help="Free-text place names")

    distance = sub.add_parser("distance", help="Great-circle distance between two points")
    distance.add_argument("origin", type=_coordinate, help="lat,lng")
    distance.add_argument("target", type=_coordinate, help="lat,lng")

    map_cmd = sub.add_parser("map", help="Build the GeoJSON point collection for a batch of entities")
    map_cmd.add_argument("--entities", required=True, help="CSV or JSONL file with id and location_text")
    centre = map_cmd.add_mutually_exclusive_group()
    centre.add_argument("--center", type=_coordinate, help="Search centre as lat,lng")
    centre.add_argument("--center-text", help="Search centre as a place name")
    map_cmd.add_argument("--radius", type=float, help="Search radius in km")
    map_cmd.add_argument("--output", help="Write GeoJSON here instead of stdout")
    map_cmd.add_argument("--metrics", help="Write run counters to this JSON file")

    polygon = sub.add_parser("polygon", help="Emit the search-radius ring as a GeoJSON feature")
    polygon.add_argument("--center", type=_coordinate, required=True, help="lat,lng")
    polygon.add_argument("--radius", type=float, required=True, help="Radius in km")
    polygon.add_argument("--segments", type=int, help="Ring resolution")

    return parser


async def run_resolve(args: argparse.Namespace, settings: Settings) -> List[dict]:
    """Resolve each query and return ``{query, lat, lng}`` rows."""
    geocode = settings.geocode
    async with create_geocode_session(
        user_agent=geocode.user_agent,
        timeout=geocode.timeout_seconds,
        max_connections=geocode.max_connections,
        blocked_hosts=geocode.blocked_hosts,
    ) as client:
        resolver = GeocodeResolver.from_settings(settings, client)
        coordinates = await asyncio.gather(*(resolver.resolve(query) for query in args.queries))
        resolver.cache.save()
    return [
        {"query": query, "lat": coordinate.lat, "lng": coordinate.lng}
        for query, coordinate in zip(args.queries, coordinates)
    ]


async def run_map(args: argparse.Namespace, settings: Settings) -> dict:
    """Resolve the entity file and return the GeoJSON collection."""
    if args.radius is not None and args.center is None and args.center_text is None:
        raise SystemExit("--radius needs --center or --center-text")
    try:
        entities = load_entities(Path(args.entities))
    except (OSError, ValueError) as exc:
        raise SystemExit(f"Failed to load entities: {exc}")

    geocode = settings.geocode
    async with create_geocode_session(
        user_agent=geocode.user_agent,
        timeout=geocode.timeout_seconds,
        max_connections=geocode.max_connections,
        blocked_hosts=geocode.blocked_hosts,
    ) as client:
        resolver = GeocodeResolver.from_settings(settings, client)
        orchestrator = ResolutionOrchestrator(
            resolver,
            jitter=PositionJitter(settings.privacy.jitter_km),
            polygon_segments=settings.search.polygon_segments,
            concurrency=settings.search.concurrency,
        )
        query: Optional[ProximityQuery] = None
        if args.center is not None or args.center_text is not None:
            center = args.center or await resolver.resolve(args.center_text)
            query = ProximityQuery(center=center, radius_km=args.radius)
        run_id = datetime.utcnow().strftime("%Y%m%dT%H%M%S")
        payload = await orchestrator.resolve_all(entities, query, run_id=run_id)
        resolver.cache.save()

    if args.metrics:
        resolver.metrics.export(path=Path(args.metrics), run_id=run_id)
    return payload.to_geojson()


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    settings = load_settings(Path(args.settings))
    configure_logging(Path(args.logging))

    if uvloop is not None:
        uvloop.install()

    if args.command == "distance":
        print(json.dumps({"distance_km": distance_km(args.origin, args.target)}))
        return

    if args.command == "polygon":
        segments = args.segments or settings.search.polygon_segments
        try:
            ring = build_radius_polygon(args.center, args.radius, segments)
        except ValueError as exc:
            raise SystemExit(str(exc))
        print(json.dumps(polygon_feature(ring), indent=2))
        return

    if args.command == "resolve":
        print(json.dumps(asyncio.run(run_resolve(args, settings)), indent=2))
        return

    if args.command == "map":
        collection = asyncio.run(run_map(args, settings))
        text = json.dumps(collection, indent=2)
        if args.output:
            Path(args.output).write_text(text, encoding="utf-8")
        else:
            sys.stdout.write(text + "\n")


if __name__ == "__main__":
    main()
