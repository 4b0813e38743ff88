"""Command-line access to offline packs and cached lookups.

Usage
-----
::

    python -m pycitynav packs list
    python -m pycitynav packs show pack_52.37000_4.89000_1600
    python -m pycitynav packs delete pack_52.37000_4.89000_1600
    python -m pycitynav packs size
    python -m pycitynav nearby 52.37 4.89 --radius 800 --save-pack
    python -m pycitynav route 52.37 4.89 52.36 4.90
    python -m pycitynav locate 52.37 4.89

Options::

    --db FILE        SQLite file (default: $CITYNAV_DB_PATH or ./citynav-packs.sqlite3)
    --json           Output as machine-readable JSON
    --verbose, -v    Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Any

from pycitynav.client import CityNavClient
from pycitynav.config import CityNavConfig
from pycitynav.exceptions import CityNavError
from pycitynav.location import FixedPositionProvider
from pycitynav.models.location import Position
from pycitynav.models.route import Coordinate


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="pycitynav", description="CityNav offline cache tool")
    parser.add_argument("--db", help="SQLite file holding packs and caches")
    parser.add_argument("--json", action="store_true", dest="json_mode", help="Output machine-readable JSON")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    packs = commands.add_parser("packs", help="Manage offline packs")
    pack_commands = packs.add_subparsers(dest="pack_command", required=True)
    pack_commands.add_parser("list", help="List stored packs")
    pack_commands.add_parser("size", help="Show the metadata-derived storage estimate")
    show = pack_commands.add_parser("show", help="Print a pack's manifest and records")
    show.add_argument("pack_id")
    delete = pack_commands.add_parser("delete", help="Delete a pack")
    delete.add_argument("pack_id")

    nearby = commands.add_parser("nearby", help="Nearby POIs around a point")
    nearby.add_argument("lat", type=float)
    nearby.add_argument("lon", type=float)
    nearby.add_argument("--radius", type=float, help="Search radius in meters")
    nearby.add_argument("--save-pack", action="store_true", help="Store the result as an offline pack")

    route = commands.add_parser("route", help="Route between two points")
    for name in ("from_lat", "from_lon", "to_lat", "to_lon"):
        route.add_argument(name, type=float)

    locate = commands.add_parser("locate", help="Reverse-geocode a position and remember it")
    locate.add_argument("lat", type=float)
    locate.add_argument("lon", type=float)
    return parser


def _emit(payload: Any, lines: list[str], *, json_mode: bool) -> None:
    if json_mode:
        print(json.dumps(payload, indent=2, default=str, ensure_ascii=False))
    else:
        print("\n".join(lines))


async def _run_packs(client: CityNavClient, args: argparse.Namespace) -> int:
    packs = client.packs
    if args.pack_command == "list":
        manifests = await packs.list_packs()
        lines = [
            f"{m.id}  items={m.item_count}  size={m.size_bytes}B  encoding={m.content_encoding}"
            for m in sorted(manifests, key=lambda m: m.created_at)
        ] or ["No packs stored"]
        _emit([m.to_record() for m in manifests], lines, json_mode=args.json_mode)
        return 0

    if args.pack_command == "size":
        estimate = await packs.estimate_size()
        _emit(
            estimate.to_record(),
            [f"{estimate.count} packs, {estimate.total_bytes} bytes"],
            json_mode=args.json_mode,
        )
        return 0

    if args.pack_command == "show":
        manifest = await packs.get_pack_manifest(args.pack_id)
        if manifest is None:
            print(f"No pack {args.pack_id}", file=sys.stderr)
            return 1
        pois = await packs.load_pack_pois(args.pack_id) or []
        lines = [f"{manifest.id}  center={manifest.center}  radius={manifest.radius_meters}m"]
        lines.extend(f"  {p.category:<20} {p.name or '-'}  ({p.lat:.5f}, {p.lon:.5f})" for p in pois)
        _emit(
            {"manifest": manifest.to_record(), "pois": [p.to_record() for p in pois]},
            lines,
            json_mode=args.json_mode,
        )
        return 0

    deleted = await packs.delete_pack(args.pack_id)
    _emit({"deleted": deleted}, [f"deleted={deleted}"], json_mode=args.json_mode)
    return 0 if deleted else 1


async def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.db:
        overrides["db_path"] = args.db
    config = CityNavConfig.from_env(**overrides)

    provider = None
    if args.command == "locate":
        provider = FixedPositionProvider(Position(lat=args.lat, lon=args.lon))

    async with CityNavClient(config, provider=provider) as client:
        if args.command == "packs":
            return await _run_packs(client, args)

        if args.command == "nearby":
            lookup = await client.get_pois(args.lat, args.lon, args.radius)
            lines = [f"source={lookup.source} count={len(lookup.value)}"]
            if lookup.error:
                lines.append(f"warning: {lookup.error}")
            lines.extend(f"  {p.category:<20} {p.name or '-'}" for p in lookup.value)
            if args.save_pack and lookup.value:
                manifest = await client.save_pack(args.lat, args.lon, lookup.value)
                lines.append(f"saved pack {manifest.id}")
            _emit(
                {"source": lookup.source, "error": lookup.error, "pois": [p.to_record() for p in lookup.value]},
                lines,
                json_mode=args.json_mode,
            )
            return 0

        if args.command == "route":
            lookup = await client.get_route(
                Coordinate(lat=args.from_lat, lon=args.from_lon),
                Coordinate(lat=args.to_lat, lon=args.to_lon),
            )
            result = lookup.value
            lines = [f"distance={result.distance:.0f}m duration={result.duration:.0f}s"]
            lines.extend(f"  {s.maneuver:<30} {s.name or '-'}  {s.distance:.0f}m" for s in result.steps)
            _emit(result.to_record(), lines, json_mode=args.json_mode)
            return 0

        location = await client.get_current_location()
        _emit(
            location.to_record(),
            [f"{location.city}, {location.country}", location.address or ""],
            json_mode=args.json_mode,
        )
        return 0


def main(argv: list[str] | None = None) -> int:
    args = _build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run(args))
    except CityNavError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
