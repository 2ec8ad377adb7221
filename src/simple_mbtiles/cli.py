# %%
import argparse
import logging
import sqlite3
from pathlib import Path
import sys

from .config import Config
from .core import MBTilesDB
from .geo import TileId
from .metadata import decode_metadata, encode_metadata

logger = logging.getLogger(__name__)

EMPTY_VECTOR_LAYERS = '{"vector_layers":[]}'

# %%
def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Read and write MBTiles archives")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")
    commands = parser.add_subparsers(dest="command")

    info = commands.add_parser("info", help="Print the metadata of an archive")
    info.add_argument("mbtiles_file", type=str, help="Path to MBTiles file")

    create = commands.add_parser("create", help="Create a new archive with metadata")
    create.add_argument("mbtiles_file", type=str, help="Path of the new MBTiles file")
    create.add_argument("--name", required=True, help="Name of the tileset")
    create.add_argument("--format", required=True, help="Tile format: pbf, jpg, png, webp or a media type")
    create.add_argument("--json", help=f"Vector layer JSON for pbf tilesets (default: {EMPTY_VECTOR_LAYERS})")
    create.add_argument("--bounds", help="west,south,east,north")
    create.add_argument("--center", help="lon,lat,zoom")
    create.add_argument("--minzoom", type=int)
    create.add_argument("--maxzoom", type=int)
    create.add_argument("--attribution")
    create.add_argument("--description")
    create.add_argument("--type", choices=["overlay", "baselayer"])
    create.add_argument("--version", type=int, help="Revision of the tileset")
    create.add_argument("--grids", action="store_true", help="Also create the UTFGrid tables")
    create.add_argument("--no-index", action="store_true", help="Do not create the unique tile index")

    get_tile = commands.add_parser("get-tile", help="Read one tile (XYZ address)")
    get_tile.add_argument("mbtiles_file", type=str, help="Path to MBTiles file")
    get_tile.add_argument("z", type=int)
    get_tile.add_argument("x", type=int)
    get_tile.add_argument("y", type=int)
    get_tile.add_argument("-o", "--output", type=str, help="Write the tile data to this file")

    put_tile = commands.add_parser("put-tile", help="Store one tile (XYZ address)")
    put_tile.add_argument("mbtiles_file", type=str, help="Path to MBTiles file")
    put_tile.add_argument("z", type=int)
    put_tile.add_argument("x", type=int)
    put_tile.add_argument("y", type=int)
    put_tile.add_argument("input", type=str, help="File holding the (already compressed) tile data")

    return parser

# %%
def metadata_rows_from_args(args) -> list:
    rows = [("name", args.name), ("format", args.format)]
    if args.format == "pbf":
        rows.append(("json", args.json if args.json is not None else EMPTY_VECTOR_LAYERS))
    for key in ("bounds", "center", "minzoom", "maxzoom", "attribution", "description", "type", "version"):
        value = getattr(args, key)
        if value is not None:
            rows.append((key, str(value)))
    return rows

def cmd_info(config: Config, args) -> int:
    db = MBTilesDB(config.mbtiles_file)
    ignored = []
    metadata = db.get_metadata(ignored=ignored)
    for name, value in encode_metadata(metadata):
        print(f"{name}: {value}")
    for name, value in metadata.custom.items():
        print(f"{name}: {value} (custom)")
    for name, value in ignored:
        logger.warning(f"Ignored malformed metadata row {name!r}: {value!r}")
    if not db.is_mbtiles():
        logger.warning(f"{config.mbtiles_file} does not carry the MBTiles application id")
    return 0

def cmd_create(config: Config, args) -> int:
    if (args.minzoom is None) != (args.maxzoom is None):
        print("--minzoom and --maxzoom must be given together", file=sys.stderr)
        return 2
    if args.json is not None and args.format != "pbf":
        print("--json only applies to --format pbf", file=sys.stderr)
        return 2
    ignored = []
    metadata = decode_metadata(metadata_rows_from_args(args), ignored=ignored)
    if ignored:
        for name, value in ignored:
            print(f"Invalid --{name}: {value}", file=sys.stderr)
        return 2
    db = MBTilesDB.create(config.mbtiles_file, grids=config.create_grids, index=config.create_index)
    db.put_metadata(metadata)
    print(f"Created {config.mbtiles_file}")
    return 0

def cmd_get_tile(config: Config, args) -> int:
    db = MBTilesDB(config.mbtiles_file)
    tile_id = TileId(args.z, args.x, args.y)
    tile_data = db.get_tile(tile_id)
    if tile_data is None:
        print(f"No tile found with id {args.z}/{args.x}/{args.y}")
        return 1
    bounds = tile_id.bounds()
    print(f"Found tile {args.z}/{args.x}/{args.y}, data length: {len(tile_data)}, "
          f"bounds: {bounds.west},{bounds.south},{bounds.east},{bounds.north}")
    if args.output:
        Path(args.output).write_bytes(tile_data)
    return 0

def cmd_put_tile(config: Config, args) -> int:
    db = MBTilesDB(config.mbtiles_file)
    tile_id = TileId(args.z, args.x, args.y)
    db.put_tile(tile_id, Path(args.input).read_bytes())
    print(f"Stored tile {args.z}/{args.x}/{args.y}")
    return 0

COMMANDS = {
    "info": cmd_info,
    "create": cmd_create,
    "get-tile": cmd_get_tile,
    "put-tile": cmd_put_tile,
}

# %%
def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        print("No command specified")
        return 2

    config = Config(
        mbtiles_file=Path(args.mbtiles_file),
        create_grids=getattr(args, "grids", False),
        create_index=not getattr(args, "no_index", False),
        log_level=args.log_level.upper()
    )
    logging.basicConfig(level=config.log_level)

    try:
        return COMMANDS[args.command](config, args)
    except (ValueError, OSError, sqlite3.Error) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

# %%
if __name__ == "__main__":
    sys.exit(main())
