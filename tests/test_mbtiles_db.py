# %% [markdown]
"""
# Test Suite for MBTiles Archives

This notebook contains tests for the archive layer including:
1. Creation of dummy vector tile data
2. Generation of test MBTiles databases
3. Reading metadata, tiles and grids from existing files
4. Writing new archives inside transactions
"""

# %%
import gzip
import json
import sqlite3
import subprocess
import sys
import tempfile
from pathlib import Path
from typing import Generator

import mapbox_vector_tile
import pytest
from shapely.geometry import Point

from simple_mbtiles import store
from simple_mbtiles.core import MBTilesDB
from simple_mbtiles.geo import GeoRect, TileId, TmsTileId
from simple_mbtiles.metadata import (
    InvalidMetadataError, Metadata, MvtMetadata, Pbf, Png, TileType, ZoomRange,
    read_metadata, write_metadata,
)
from simple_mbtiles.schema import MBTILES_APPLICATION_ID, create_schema, get_application_id

# %% [markdown]
"""
## Fixtures for Testing
"""

# %%
def create_dummy_vector_tile() -> bytes:
    """Create a simple vector tile with a single point feature"""
    point = Point(0, 0)

    layers = [{
        "name": "test_layer",
        "features": [{
            "geometry": point,
            "properties": {"name": "test_point"},
            "geometry_type": "Point"
        }],
        "version": 2,
        "extent": 4096
    }]
    return mapbox_vector_tile.encode(layers)

# %%
@pytest.fixture
def test_mbtiles() -> Generator[Path, None, None]:
    """Create a temporary MBTiles file written by a foreign tool"""
    with tempfile.NamedTemporaryFile(suffix='.mbtiles', delete=False) as tmp:
        conn = sqlite3.connect(tmp.name)
        cursor = conn.cursor()

        cursor.execute('''
            CREATE TABLE metadata (name text, value text);
        ''')
        cursor.execute('''
            CREATE TABLE tiles (
                zoom_level integer,
                tile_column integer,
                tile_row integer,
                tile_data blob
            );
        ''')

        metadata = {
            "name": "test_tiles",
            "format": "pbf",
            "json": json.dumps({"vector_layers": [
                {"id": "test_layer", "fields": {"name": "String"}, "minzoom": 0, "maxzoom": 0}
            ]}),
            "bounds": "-180.0,-85.0511,180.0,85.0511",
            "center": "0,0,0",
            "minzoom": "0",
            "maxzoom": "0",
            "generator_options": "test-options",
            "version": "2"
        }
        cursor.executemany(
            "INSERT INTO metadata VALUES (?, ?)",
            metadata.items()
        )

        tile_data = gzip.compress(create_dummy_vector_tile())
        cursor.execute(
            "INSERT INTO tiles VALUES (?, ?, ?, ?)",
            (0, 0, 0, tile_data)  # Single tile at zoom 0
        )

        conn.commit()
        conn.close()

        yield Path(tmp.name)

        Path(tmp.name).unlink()

# %%
@pytest.fixture
def new_mbtiles(tmp_path) -> MBTilesDB:
    """A freshly created, empty archive with grid tables"""
    return MBTilesDB.create(tmp_path / "new.mbtiles", grids=True)

# %% [markdown]
"""
## Reading existing archives
"""

# %%
def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        MBTilesDB(tmp_path / "missing.mbtiles")

# %%
def test_read_foreign_metadata(test_mbtiles):
    db = MBTilesDB(test_mbtiles)
    metadata = db.get_metadata()
    assert metadata.name == "test_tiles"
    assert isinstance(metadata.format, Pbf)
    assert metadata.format.mvt_metadata.vector_layers[0].id == "test_layer"
    assert metadata.bounds == GeoRect.from_bounds(-180, -85.0511, 180, 85.0511)
    assert metadata.zoom_range == ZoomRange(0, 0)
    assert metadata.version == 2
    assert metadata.custom == {"generator_options": "test-options"}
    assert not db.is_mbtiles()

# %%
def test_read_tile(test_mbtiles):
    db = MBTilesDB(test_mbtiles)
    tile = db.get_tile(TileId(0, 0, 0))
    assert tile is not None

    tile_data = mapbox_vector_tile.decode(gzip.decompress(tile))
    assert "test_layer" in tile_data
    assert tile_data["test_layer"]["features"][0]["properties"]["name"] == "test_point"

# %%
def test_missing_tile(test_mbtiles):
    db = MBTilesDB(test_mbtiles)
    assert db.get_tile(TileId(1, 1, 1)) is None

# %%
def test_read_metadata_with_broken_json(test_mbtiles):
    conn = sqlite3.connect(test_mbtiles)
    with conn:
        conn.execute("UPDATE metadata SET value = '{broken' WHERE name = 'json'")
    conn.close()

    with pytest.raises(InvalidMetadataError):
        MBTilesDB(test_mbtiles).get_metadata()

# %%
def test_read_metadata_reports_ignored_rows(test_mbtiles):
    conn = sqlite3.connect(test_mbtiles)
    with conn:
        conn.execute("INSERT INTO metadata VALUES ('center', '1,2')")
        conn.execute("INSERT INTO metadata VALUES ('type', 'underlay')")
    conn.close()

    ignored = []
    metadata = MBTilesDB(test_mbtiles).get_metadata(ignored=ignored)
    assert metadata.type is None
    assert metadata.name == "test_tiles"
    assert ignored == [("center", "1,2"), ("type", "underlay")]

# %% [markdown]
"""
## Creating and writing archives
"""

# %%
def test_create_schema(new_mbtiles):
    assert new_mbtiles.is_mbtiles()
    with new_mbtiles.get_connection() as conn:
        assert get_application_id(conn) == MBTILES_APPLICATION_ID
        tables = {name for (name,) in conn.execute("SELECT name FROM sqlite_master WHERE type='table'")}
        indexes = {name for (name,) in conn.execute("SELECT name FROM sqlite_master WHERE type='index'")}
    assert tables == {"metadata", "tiles", "grids", "grid_data"}
    assert indexes == {"tile_index"}

# %%
def test_create_refuses_existing_file(test_mbtiles):
    with pytest.raises(FileExistsError):
        MBTilesDB.create(test_mbtiles)

# %%
def test_write_example_tileset(new_mbtiles):
    metadata = Metadata(name="example_tileset", format=Pbf(MvtMetadata(vector_layers=[])))
    new_mbtiles.put_metadata(metadata)

    with new_mbtiles.get_connection() as conn:
        rows = conn.execute("SELECT name, value FROM metadata ORDER BY rowid").fetchall()
    assert rows == [
        ("name", "example_tileset"),
        ("json", '{"vector_layers":[]}'),
        ("format", "pbf"),
    ]
    assert new_mbtiles.get_metadata() == metadata

# %%
def test_write_metadata_appends_rows(new_mbtiles):
    new_mbtiles.put_metadata(Metadata(name="first", format=Png()))
    new_mbtiles.put_metadata(Metadata(name="second", format=Png(), type=TileType.OVERLAY))

    with new_mbtiles.get_connection() as conn:
        names = conn.execute("SELECT COUNT(*) FROM metadata WHERE name = 'name'").fetchone()[0]
        assert names == 2
        assert store.get_row(conn, "name") == "second"
    metadata = new_mbtiles.get_metadata()
    assert metadata.name == "second"
    assert metadata.type is TileType.OVERLAY

# %%
def test_transaction_rolls_back_on_error(new_mbtiles):
    with pytest.raises(RuntimeError):
        with new_mbtiles.transaction() as conn:
            write_metadata(conn, Metadata(name="partial", format=Png()))
            raise RuntimeError("abort")

    with new_mbtiles.get_connection() as conn:
        assert store.get_all_rows(conn) == []

# %%
def test_tile_round_trip(new_mbtiles):
    tile_data = gzip.compress(create_dummy_vector_tile())
    new_mbtiles.put_tile(TileId(3, 1, 2), tile_data)

    assert new_mbtiles.get_tile(TileId(3, 1, 2)) == tile_data
    assert new_mbtiles.get_tile(TmsTileId(3, 1, 5)) == tile_data
    assert new_mbtiles.get_tile(TileId(3, 1, 5)) is None

    with new_mbtiles.get_connection() as conn:
        stored = conn.execute("SELECT zoom_level, tile_column, tile_row FROM tiles").fetchall()
    assert stored == [(3, 1, 5)]

# %%
def test_raw_tile_key_round_trip(new_mbtiles):
    with new_mbtiles.transaction() as conn:
        store.put_tile(conn, (1, 2, 3), b"\x00\x01tile")

    with new_mbtiles.get_connection() as conn:
        assert store.get_tile(conn, (1, 2, 3)) == b"\x00\x01tile"
        assert store.get_tile(conn, (1, 2, 4)) is None

# %%
def test_duplicate_tile_violates_index(new_mbtiles):
    new_mbtiles.put_tile(TileId(0, 0, 0), b"one")
    with pytest.raises(sqlite3.IntegrityError):
        new_mbtiles.put_tile(TileId(0, 0, 0), b"two")
    assert new_mbtiles.get_tile(TileId(0, 0, 0)) == b"one"

# %%
def test_duplicate_tile_without_index(tmp_path):
    db = MBTilesDB.create(tmp_path / "no_index.mbtiles", index=False)
    db.put_tile(TileId(0, 0, 0), b"one")
    db.put_tile(TileId(0, 0, 0), b"two")
    with db.get_connection() as conn:
        assert conn.execute("SELECT COUNT(*) FROM tiles").fetchone()[0] == 2

# %%
def test_grid_round_trip(new_mbtiles):
    grid = gzip.compress(json.dumps({"grid": [" !"], "keys": ["", "1"]}).encode())
    tile = TileId(2, 1, 1)
    new_mbtiles.put_grid(tile, grid)
    new_mbtiles.put_grid_data(tile, "1", '{"name":"Somewhere"}')

    assert new_mbtiles.get_grid(tile) == grid
    assert new_mbtiles.get_grid_data(tile, "1") == '{"name":"Somewhere"}'
    assert new_mbtiles.get_grid_data(tile, "2") is None
    assert new_mbtiles.get_grid(TileId(2, 0, 0)) is None

# %%
def test_metadata_in_caller_transaction(tmp_path):
    """Schema, metadata and tiles written in one transaction, as a single new archive"""
    path = tmp_path / "single.mbtiles"
    conn = sqlite3.connect(str(path))
    with conn:
        create_schema(conn)
        write_metadata(conn, Metadata(name="single", format=Png(), zoom_range=ZoomRange(0, 1)))
        store.put_tile(conn, TileId(1, 0, 1), b"png bytes")
    metadata = read_metadata(conn)
    conn.close()

    assert metadata == Metadata(name="single", format=Png(), zoom_range=ZoomRange(0, 1))
    assert MBTilesDB(path).get_tile(TmsTileId(1, 0, 0)) == b"png bytes"

# %%
def test_metadata_rows(new_mbtiles):
    """Row store on its own: append-only rows, missing names read as None"""
    with new_mbtiles.transaction() as conn:
        assert store.get_all_rows(conn) == []
        assert store.get_row(conn, "name") is None
        store.put_row(conn, "name", "rows")
        store.put_row(conn, "my_custom_key", "42")
        store.put_row(conn, "name", "rows again")

    with new_mbtiles.get_connection() as conn:
        assert store.get_all_rows(conn) == [("name", "rows"), ("my_custom_key", "42"), ("name", "rows again")]
        assert store.get_row(conn, "name") == "rows again"
        assert store.get_row(conn, "my_custom_key") == "42"
        assert store.get_row(conn, "attribution") is None

# %%
def test_failed_create_leaves_no_file(tmp_path, monkeypatch):
    path = tmp_path / "broken.mbtiles"

    def failing_schema(conn, grids=False, index=True):
        conn.execute('CREATE TABLE metadata (name text, value text)')
        raise sqlite3.OperationalError("disk I/O error")

    monkeypatch.setattr("simple_mbtiles.core.create_schema", failing_schema)
    with pytest.raises(sqlite3.OperationalError):
        MBTilesDB.create(path)
    assert not path.exists()

    monkeypatch.undo()
    db = MBTilesDB.create(path)
    assert db.is_mbtiles()

# %%
def test_example_script(tmp_path):
    """The example script writes a vector tileset and finds its tile again"""
    script = Path(__file__).resolve().parents[1] / "scripts" / "example_tileset.py"
    path = tmp_path / "example.mbtiles"
    result = subprocess.run(
        [sys.executable, str(script), str(path)],
        capture_output=True, text=True, cwd=tmp_path
    )
    assert result.returncode == 0, result.stderr
    assert "Found tile" in result.stdout

    db = MBTilesDB(path)
    assert db.get_metadata() == Metadata(name="example_tileset", format=Pbf(MvtMetadata(vector_layers=[])))
    assert gzip.decompress(db.get_tile(TileId(1, 1, 0))) == b""
