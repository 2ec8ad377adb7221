# %%
#|export
import sqlite3
from pathlib import Path
from typing import Any, List, Optional, Tuple, Union
import contextlib
import logging

from . import store
from .metadata import Metadata, read_metadata, write_metadata
from .schema import MBTILES_APPLICATION_ID, create_schema, get_application_id
from .store import AnyTileId

logger = logging.getLogger(__name__)

class MBTilesDB:
    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        if not self.db_path.exists():
            raise FileNotFoundError(f"MBTiles file not found: {db_path}")

    @classmethod
    def create(cls, db_path: Union[str, Path], grids: bool = False, index: bool = True) -> "MBTilesDB":
        """Create a new, empty archive"""
        db_path = Path(db_path)
        if db_path.exists():
            raise FileExistsError(f"MBTiles file already exists: {db_path}")
        # Autocommit connection: DDL and PRAGMAs only join an explicit BEGIN
        conn = sqlite3.connect(str(db_path), isolation_level=None)
        try:
            conn.execute('BEGIN')
            create_schema(conn, grids=grids, index=index)
            conn.execute('COMMIT')
        except sqlite3.Error:
            conn.close()
            db_path.unlink(missing_ok=True)
            logger.error(f"Failed to create MBTiles archive {db_path}, removed it")
            raise
        finally:
            conn.close()
        logger.info(f"Created MBTiles archive {db_path}")
        return cls(db_path)

    @contextlib.contextmanager
    def get_connection(self):
        """Create a new connection for each operation"""
        conn = sqlite3.connect(str(self.db_path))
        try:
            yield conn
        finally:
            conn.close()

    @contextlib.contextmanager
    def transaction(self):
        """Connection whose writes are committed on success, rolled back on error"""
        with self.get_connection() as conn:
            with conn:
                yield conn

    def is_mbtiles(self) -> bool:
        with self.get_connection() as conn:
            return get_application_id(conn) == MBTILES_APPLICATION_ID

    def get_metadata(self, ignored: Optional[List[Tuple[Any, Any]]] = None) -> Metadata:
        with self.get_connection() as conn:
            return read_metadata(conn, ignored=ignored)

    def put_metadata(self, metadata: Metadata):
        with self.transaction() as conn:
            write_metadata(conn, metadata)

    def get_tile(self, tile_id: AnyTileId) -> Optional[bytes]:
        with self.get_connection() as conn:
            return store.get_tile(conn, tile_id)

    def put_tile(self, tile_id: AnyTileId, tile_data: bytes):
        with self.transaction() as conn:
            store.put_tile(conn, tile_id, tile_data)

    def get_grid(self, tile_id: AnyTileId) -> Optional[bytes]:
        with self.get_connection() as conn:
            return store.get_grid(conn, tile_id)

    def put_grid(self, tile_id: AnyTileId, grid: bytes):
        with self.transaction() as conn:
            store.put_grid(conn, tile_id, grid)

    def get_grid_data(self, tile_id: AnyTileId, key: str) -> Optional[str]:
        with self.get_connection() as conn:
            return store.get_grid_data(conn, tile_id, key)

    def put_grid_data(self, tile_id: AnyTileId, key: str, key_json: str):
        with self.transaction() as conn:
            store.put_grid_data(conn, tile_id, key, key_json)
