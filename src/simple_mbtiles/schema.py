# %%
#|export
import logging

logger = logging.getLogger(__name__)

# Officially assigned MBTiles magic number ("MPBX")
MBTILES_APPLICATION_ID = 0x4d504258

def create_metadata_table(conn):
    conn.execute('''
        CREATE TABLE metadata (name text, value text);
    ''')

def create_tiles_table(conn):
    conn.execute('''
        CREATE TABLE tiles (
            zoom_level integer,
            tile_column integer,
            tile_row integer,
            tile_data blob
        );
    ''')

def create_grid_tables(conn):
    """Optional UTFGrid tables for interactive overlays"""
    conn.execute('''
        CREATE TABLE grids (
            zoom_level integer,
            tile_column integer,
            tile_row integer,
            grid blob
        );
    ''')
    conn.execute('''
        CREATE TABLE grid_data (
            zoom_level integer,
            tile_column integer,
            tile_row integer,
            key_name text,
            key_json text
        );
    ''')

def create_tile_index(conn):
    conn.execute('''
        CREATE UNIQUE INDEX tile_index ON tiles (zoom_level, tile_column, tile_row);
    ''')

def set_application_id(conn):
    # PRAGMA arguments cannot be bound parameters
    conn.execute(f'PRAGMA application_id = {MBTILES_APPLICATION_ID}')

def get_application_id(conn) -> int:
    return conn.execute('PRAGMA application_id').fetchone()[0]

# %%
def create_schema(conn, grids: bool = False, index: bool = True):
    """Set up an empty archive: file tag, tables and (optionally) the tile index"""
    set_application_id(conn)
    create_metadata_table(conn)
    create_tiles_table(conn)
    if grids:
        create_grid_tables(conn)
    if index:
        create_tile_index(conn)
    logger.info(f"Created MBTiles schema (grids={grids}, index={index})")
