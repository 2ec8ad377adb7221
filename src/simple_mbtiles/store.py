# %%
#|export
from typing import List, Optional, Tuple, Union

from .geo import TileId, TmsTileId

# A plain (zoom_level, tile_column, tile_row) tuple is used as stored, unchecked
AnyTileId = Union[TileId, TmsTileId, Tuple[int, int, int]]

def _key(tile_id: AnyTileId) -> Tuple[int, int, int]:
    # XYZ addresses are flipped, MBTiles rows count from the south edge
    if isinstance(tile_id, TileId):
        tile_id = tile_id.to_tms()
    if isinstance(tile_id, TmsTileId):
        return (tile_id.z, tile_id.x, tile_id.y)
    return tuple(tile_id)

def _fetch_one(conn, sql: str, params: tuple):
    result = conn.execute(sql, params).fetchone()
    return result[0] if result else None

# %%
def get_all_rows(conn) -> List[Tuple[str, str]]:
    """All (name, value) rows of the metadata table, in storage order"""
    return list(conn.execute('SELECT name, value FROM metadata'))

def get_row(conn, name: str) -> Optional[str]:
    """The value of the last metadata row called `name`, or None"""
    result = None
    for (value,) in conn.execute('SELECT value FROM metadata WHERE name = ?', (name,)):
        result = value
    return result

def put_row(conn, name: str, value: str):
    conn.execute('INSERT INTO metadata (name, value) VALUES (?, ?)', (name, value))

# %%
def get_tile(conn, tile_id: AnyTileId) -> Optional[bytes]:
    return _fetch_one(
        conn,
        'SELECT tile_data FROM tiles WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?',
        _key(tile_id)
    )

def put_tile(conn, tile_id: AnyTileId, tile_data: bytes):
    """Store a tile blob as is; vector tiles are expected to be gzipped by the caller"""
    conn.execute(
        'INSERT INTO tiles (zoom_level, tile_column, tile_row, tile_data) VALUES (?, ?, ?, ?)',
        _key(tile_id) + (tile_data,)
    )

# %%
def get_grid(conn, tile_id: AnyTileId) -> Optional[bytes]:
    return _fetch_one(
        conn,
        'SELECT grid FROM grids WHERE zoom_level = ? AND tile_column = ? AND tile_row = ?',
        _key(tile_id)
    )

def put_grid(conn, tile_id: AnyTileId, grid: bytes):
    """Store a (gzipped) UTFGrid blob for a tile"""
    conn.execute(
        'INSERT INTO grids (zoom_level, tile_column, tile_row, grid) VALUES (?, ?, ?, ?)',
        _key(tile_id) + (grid,)
    )

def get_grid_data(conn, tile_id: AnyTileId, key: str) -> Optional[str]:
    return _fetch_one(
        conn,
        'SELECT key_json FROM grid_data '
        'WHERE zoom_level = ? AND tile_column = ? AND tile_row = ? AND key_name = ?',
        _key(tile_id) + (key,)
    )

def put_grid_data(conn, tile_id: AnyTileId, key: str, key_json: str):
    conn.execute(
        'INSERT INTO grid_data (zoom_level, tile_column, tile_row, key_name, key_json) VALUES (?, ?, ?, ?, ?)',
        _key(tile_id) + (key, key_json)
    )
