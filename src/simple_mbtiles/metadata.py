# %%
#|export
"""
Typed MBTiles metadata and its codec.

The `metadata` table is a flat list of text (name, value) rows. This module
turns those rows into a `Metadata` record and back again:

- Known keys are parsed into typed fields. A value that does not parse is
  dropped instead of failing the read, so a foreign or damaged row never
  hides the rest of the tileset.
- `format` and `json` are only meaningful together and are resolved once
  all rows have been seen. A `pbf` tileset whose `json` row is missing or
  invalid is an error.
- Unknown keys end up in `Metadata.custom`. They are not written back by
  `encode_metadata`.

See https://github.com/mapbox/mbtiles-spec/blob/master/1.3/spec.md
"""
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, NamedTuple, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_serializer

from .geo import GeoCoord, GeoRect
from .store import get_all_rows, put_row

logger = logging.getLogger(__name__)

_U32_MAX = 0xFFFFFFFF

# ASCII only, no whitespace or digit separators
_UINT_RE = re.compile(r"\+?[0-9]+")
_FLOAT_RE = re.compile(r"[+-]?(?:(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][+-]?[0-9]+)?|inf|infinity|nan)", re.IGNORECASE)

class InvalidMetadataError(ValueError):
    """Metadata that cannot be read as a tileset (e.g. pbf without valid layer JSON)"""

# %% [markdown]
"""
## Vector tile layer description (the `json` row)
"""

# %%
class FieldType(str, Enum):
    """Layer attribute type. Attributes with mixed types are declared as String."""
    NUMBER = "Number"
    BOOLEAN = "Boolean"
    STRING = "String"

class VectorLayer(BaseModel):
    model_config = ConfigDict(strict=True)

    id: str
    fields: Dict[str, FieldType]
    description: str = ""
    minzoom: Optional[int] = Field(default=None, ge=0, le=_U32_MAX)
    maxzoom: Optional[int] = Field(default=None, ge=0, le=_U32_MAX)

    @model_serializer(mode="wrap")
    def serialize_present_fields(self, handler):
        data = handler(self)
        if not data.get("description"):
            data.pop("description", None)
        for key in ("minzoom", "maxzoom"):
            if data.get(key) is None:
                data.pop(key, None)
        return data

class MvtMetadata(BaseModel):
    model_config = ConfigDict(strict=True)

    vector_layers: List[VectorLayer]
    # mapbox-geostats object, kept as plain JSON
    tilestats: Optional[Dict[str, Any]] = None

    @model_serializer(mode="wrap")
    def serialize_present_fields(self, handler):
        data = handler(self)
        if data.get("tilestats") is None:
            data.pop("tilestats", None)
        return data

# %% [markdown]
"""
## Tile formats and layer types
"""

# %%
@dataclass
class Pbf:
    """Gzipped Mapbox Vector Tiles, described by a `json` row"""
    mvt_metadata: MvtMetadata
    tag = "pbf"

@dataclass
class Jpg:
    tag = "jpg"

@dataclass
class Png:
    tag = "png"

@dataclass
class Webp:
    tag = "webp"

@dataclass
class Other:
    """Any other format, usually an IETF media type"""
    tag: str

FileFormat = Union[Pbf, Jpg, Png, Webp, Other]

_RASTER_FORMATS = {cls.tag: cls for cls in (Jpg, Png, Webp)}

class TileType(str, Enum):
    OVERLAY = "overlay"
    BASELAYER = "baselayer"

class ZoomRange(NamedTuple):
    """Inclusive zoom range"""
    minzoom: int
    maxzoom: int

@dataclass
class Metadata:
    name: str = ""
    format: FileFormat = field(default_factory=lambda: Other(""))
    # Maximum extent of the rendered map area
    bounds: Optional[GeoRect] = None
    # Default view: position and zoom level
    center: Optional[Tuple[GeoCoord, int]] = None
    zoom_range: Optional[ZoomRange] = None
    attribution: Optional[str] = None
    description: Optional[str] = None
    type: Optional[TileType] = None
    # Revision of the tileset, not of the MBTiles spec
    version: Optional[int] = None
    # Rows with names not listed above
    custom: Dict[str, str] = field(default_factory=dict)

# %% [markdown]
"""
## Decoding
"""

# %%
@dataclass
class _Pending:
    """Row values that can only be placed once every row has been read"""
    format_tag: str = ""
    json_text: Optional[str] = None
    minzoom: Optional[int] = None
    maxzoom: Optional[int] = None

def _parse_uint(text: str) -> int:
    if not _UINT_RE.fullmatch(text):
        raise ValueError(f"not an unsigned integer: {text!r}")
    number = int(text)
    if not 0 <= number <= _U32_MAX:
        raise ValueError(f"{number} is not an unsigned 32-bit integer")
    return number

def _parse_float(text: str) -> float:
    if not _FLOAT_RE.fullmatch(text):
        raise ValueError(f"not a number: {text!r}")
    return float(text)

def _split(text: str, count: int) -> List[str]:
    parts = text.split(",")
    if len(parts) != count:
        raise ValueError(f"expected {count} comma-separated values, got {len(parts)}")
    return parts

def _decode_name(metadata, pending, text):
    metadata.name = text

def _decode_format(metadata, pending, text):
    pending.format_tag = text

def _decode_json(metadata, pending, text):
    pending.json_text = text

def _decode_bounds(metadata, pending, text):
    west, south, east, north = (_parse_float(part) for part in _split(text, 4))
    metadata.bounds = GeoRect.from_bounds(west, south, east, north)

def _decode_center(metadata, pending, text):
    lon, lat, zoom = _split(text, 3)
    metadata.center = (GeoCoord(_parse_float(lon), _parse_float(lat)), _parse_uint(zoom))

def _decode_minzoom(metadata, pending, text):
    pending.minzoom = _parse_uint(text)

def _decode_maxzoom(metadata, pending, text):
    pending.maxzoom = _parse_uint(text)

def _decode_attribution(metadata, pending, text):
    metadata.attribution = text

def _decode_description(metadata, pending, text):
    metadata.description = text

def _decode_type(metadata, pending, text):
    metadata.type = TileType(text)

def _decode_version(metadata, pending, text):
    metadata.version = _parse_uint(text)

_DECODERS: Dict[str, Callable[[Metadata, _Pending, str], None]] = {
    "name": _decode_name,
    "format": _decode_format,
    "json": _decode_json,
    "bounds": _decode_bounds,
    "center": _decode_center,
    "minzoom": _decode_minzoom,
    "maxzoom": _decode_maxzoom,
    "attribution": _decode_attribution,
    "description": _decode_description,
    "type": _decode_type,
    "version": _decode_version,
}

def _row_text(value) -> str:
    # SQLite is dynamically typed: foreign writers may store numbers
    if isinstance(value, str):
        return value
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    raise ValueError(f"not a text value: {type(value).__name__}")

def _resolve_format(pending: _Pending) -> FileFormat:
    tag = pending.format_tag
    if tag == Pbf.tag:
        if pending.json_text is None:
            logger.error("Vector tileset has no 'json' metadata row")
            raise InvalidMetadataError("format is pbf but the 'json' row is missing")
        try:
            mvt_metadata = MvtMetadata.model_validate_json(pending.json_text)
        except ValidationError as e:
            logger.error(f"Invalid vector layer JSON: {e}")
            raise InvalidMetadataError(f"format is pbf but the 'json' row is invalid: {e}") from e
        return Pbf(mvt_metadata)
    raster = _RASTER_FORMATS.get(tag)
    if raster is not None:
        return raster()
    return Other(tag)

def decode_metadata(rows: Iterable[Tuple[str, str]],
                    ignored: Optional[List[Tuple[Any, Any]]] = None) -> Metadata:
    """Build a `Metadata` record from (name, value) metadata rows.

    Rows may come in any order; when a name repeats, the last row that
    parses wins. Values that do not parse are skipped and, when `ignored`
    is a list, appended to it. Raises `InvalidMetadataError` when the
    format is pbf and the `json` row is missing or invalid.
    """
    metadata = Metadata()
    pending = _Pending()

    for name, value in rows:
        try:
            if not isinstance(name, str):
                raise ValueError("row has no text name")
            text = _row_text(value)
            decoder = _DECODERS.get(name)
            if decoder is None:
                metadata.custom[name] = text
            else:
                decoder(metadata, pending, text)
        except ValueError as e:
            logger.debug(f"Ignoring metadata row {name!r}={value!r}: {e}")
            if ignored is not None:
                ignored.append((name, value))

    metadata.format = _resolve_format(pending)

    if pending.minzoom is not None and pending.maxzoom is not None:
        metadata.zoom_range = ZoomRange(pending.minzoom, pending.maxzoom)

    return metadata

def read_metadata(conn, ignored: Optional[List[Tuple[Any, Any]]] = None) -> Metadata:
    return decode_metadata(get_all_rows(conn), ignored=ignored)

# %% [markdown]
"""
## Encoding
"""

# %%
def _format_float(value: float) -> str:
    # Shortest round-trip text, positional, no trailing ".0"
    text = format(Decimal(repr(float(value))), "f")
    return text[:-2] if text.endswith(".0") else text

def encode_metadata(metadata: Metadata) -> List[Tuple[str, str]]:
    """The (name, value) rows describing `metadata`, in write order.

    `custom` entries are not included.
    """
    rows = [("name", metadata.name)]

    if isinstance(metadata.format, Pbf):
        rows.append(("json", metadata.format.mvt_metadata.model_dump_json()))
    rows.append(("format", metadata.format.tag))

    if metadata.bounds is not None:
        bounds = metadata.bounds
        rows.append(("bounds", ",".join(
            _format_float(v) for v in (bounds.west, bounds.south, bounds.east, bounds.north)
        )))

    if metadata.center is not None:
        coord, zoom = metadata.center
        rows.append(("center", f"{_format_float(coord.lon)},{_format_float(coord.lat)},{zoom}"))

    if metadata.zoom_range is not None:
        rows.append(("minzoom", str(metadata.zoom_range.minzoom)))
        rows.append(("maxzoom", str(metadata.zoom_range.maxzoom)))

    if metadata.attribution is not None:
        rows.append(("attribution", metadata.attribution))

    if metadata.description is not None:
        rows.append(("description", metadata.description))

    if metadata.type is not None:
        rows.append(("type", metadata.type.value))

    if metadata.version is not None:
        rows.append(("version", str(metadata.version)))

    return rows

def write_metadata(conn, metadata: Metadata):
    """Insert the metadata rows within the caller's transaction.

    Plain inserts: existing rows are not replaced.
    """
    rows = encode_metadata(metadata)
    for name, value in rows:
        put_row(conn, name, value)
    logger.debug(f"Wrote {len(rows)} metadata rows for {metadata.name!r}")
