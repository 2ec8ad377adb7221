# %%
#|export
from dataclasses import dataclass
import mercantile

MAX_ZOOM = 30

def flip_y(zoom: int, y: int) -> int:
    """Convert between TMS and XYZ tile coordinates"""
    return (1 << zoom) - 1 - y

@dataclass(frozen=True)
class GeoCoord:
    """A WGS84 longitude/latitude pair in degrees"""
    lon: float
    lat: float

    def __post_init__(self):
        if not -180.0 <= self.lon <= 180.0:
            raise ValueError(f"Longitude out of range: {self.lon}")
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"Latitude out of range: {self.lat}")

@dataclass(frozen=True)
class GeoRect:
    top_left: GeoCoord
    bottom_right: GeoCoord

    def __post_init__(self):
        if self.top_left.lat < self.bottom_right.lat or self.top_left.lon > self.bottom_right.lon:
            raise ValueError(f"Not a top-left/bottom-right corner pair: {self.top_left}, {self.bottom_right}")

    @classmethod
    def from_bounds(cls, west: float, south: float, east: float, north: float) -> "GeoRect":
        return cls(GeoCoord(west, north), GeoCoord(east, south))

    @property
    def west(self) -> float:
        return self.top_left.lon

    @property
    def south(self) -> float:
        return self.bottom_right.lat

    @property
    def east(self) -> float:
        return self.bottom_right.lon

    @property
    def north(self) -> float:
        return self.top_left.lat

def _check_tile(z: int, x: int, y: int):
    if not 0 <= z <= MAX_ZOOM:
        raise ValueError(f"Zoom level out of range: {z}")
    limit = 1 << z
    if not (0 <= x < limit and 0 <= y < limit):
        raise ValueError(f"Tile {z}/{x}/{y} outside the zoom {z} grid")

@dataclass(frozen=True)
class TileId:
    """XYZ tile address, row 0 at the north edge"""
    z: int
    x: int
    y: int

    def __post_init__(self):
        _check_tile(self.z, self.x, self.y)

    @classmethod
    def containing(cls, coord: GeoCoord, zoom: int) -> "TileId":
        try:
            tile = mercantile.tile(coord.lon, coord.lat, zoom)
        except mercantile.InvalidLatitudeError as e:
            raise ValueError(f"No tile contains latitude {coord.lat}") from e
        return cls(tile.z, tile.x, tile.y)

    def to_tms(self) -> "TmsTileId":
        return TmsTileId(self.z, self.x, flip_y(self.z, self.y))

    def bounds(self) -> GeoRect:
        bbox = mercantile.bounds(self.x, self.y, self.z)
        return GeoRect.from_bounds(bbox.west, bbox.south, bbox.east, bbox.north)

@dataclass(frozen=True)
class TmsTileId:
    """TMS tile address as stored in MBTiles, row 0 at the south edge"""
    z: int
    x: int
    y: int

    def __post_init__(self):
        _check_tile(self.z, self.x, self.y)

    def to_xyz(self) -> TileId:
        return TileId(self.z, self.x, flip_y(self.z, self.y))
