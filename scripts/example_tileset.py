# %%
import argparse
import gzip
from pathlib import Path
import sys

from simple_mbtiles.core import MBTilesDB
from simple_mbtiles.geo import TileId
from simple_mbtiles.metadata import Metadata, MvtMetadata, Pbf, write_metadata
from simple_mbtiles.store import put_tile

def main(argv=None):
    parser = argparse.ArgumentParser(description="Write a tiny vector tileset and read it back")
    parser.add_argument("mbtiles_file", type=str, nargs='?', default="example.mbtiles", help="Path of the new MBTiles file")
    args = parser.parse_args(argv)

    path = Path(args.mbtiles_file)
    if path.exists():
        print(f"{path} already exists")
        sys.exit(2)

    tile_id = TileId(1, 1, 0)
    db = MBTilesDB.create(path)
    with db.transaction() as conn:
        write_metadata(conn, Metadata(
            name="example_tileset",
            format=Pbf(MvtMetadata(vector_layers=[]))
        ))
        put_tile(conn, tile_id, gzip.compress(b""))  # Gzip-compressed MVT PBF

    print(db.get_metadata())

    tile_data = db.get_tile(tile_id)
    if tile_data is not None:
        print(f"Found tile {tile_id}, data length: {len(tile_data)}")
    else:
        print(f"No tile found with id {tile_id}")

if __name__ == "__main__":
    main()
