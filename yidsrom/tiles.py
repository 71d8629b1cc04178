import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

from yidsrom.bytecursor import ByteCursor
from yidsrom.errors import InvalidTileError, MalformedDataError, OutOfGridBoundsError

logger = logging.getLogger(__name__)

MAX_TILE_ID = 0x3FF
MAX_PALETTE = 0xF
MAX_LAYER_DIMENSION = 0xFFFF
MPBZ_OFFSET_MARKER = 0xFFFF


@dataclass(frozen=True)
class MapTile:
    """One MPBZ record: tile id in bits 0-9, flips in 10-11, palette in 12-15."""
    tile_id: int = 0
    flip_h: bool = False
    flip_v: bool = False
    palette: int = 0

    @classmethod
    def from_short(cls, value: int) -> 'MapTile':
        return cls(tile_id=value & MAX_TILE_ID, flip_h=bool(value >> 10 & 1), flip_v=bool(value >> 11 & 1), palette=value >> 12 & MAX_PALETTE)

    def to_short(self) -> int:
        return self.tile_id & MAX_TILE_ID | int(self.flip_h) << 10 | int(self.flip_v) << 11 | (self.palette & MAX_PALETTE) << 12

    def validate(self) -> None:
        if not 0 <= self.tile_id <= MAX_TILE_ID:
            raise InvalidTileError(f'Tile id {self.tile_id} outside 0..{MAX_TILE_ID}')
        if not 0 <= self.palette <= MAX_PALETTE:
            raise InvalidTileError(f'Palette {self.palette} outside 0..{MAX_PALETTE}')

    @property
    def is_blank(self) -> bool:
        return self.to_short() == 0


BLANK_TILE = MapTile()


def _check_dimensions(width: int, height: int) -> None:
    if not (0 <= width <= MAX_LAYER_DIMENSION and 0 <= height <= MAX_LAYER_DIMENSION):
        raise OutOfGridBoundsError(f'Layer size {width}x{height} outside 0..{MAX_LAYER_DIMENSION}')


class TileGrid:
    """
    The tile map of one background layer (MPBZ).

    tile_offset counts leading rows that are implied blank and not stored;
    bottom_trim is carried through untouched.
    """

    def __init__(self, width: int, height: int, tiles: Optional[List[MapTile]] = None, tile_offset: int = 0, bottom_trim: int = 0):
        _check_dimensions(width, height)
        if tiles is None:
            tiles = [BLANK_TILE] * (width * height)
        if len(tiles) != width * height:
            raise MalformedDataError(f'Tile grid {width}x{height} needs {width * height} cells, got {len(tiles)}')
        self.width = width
        self.height = height
        self.tiles: List[MapTile] = list(tiles)
        self.tile_offset = tile_offset
        self.bottom_trim = bottom_trim

    def __eq__(self, other):
        if not isinstance(other, TileGrid):
            return NotImplemented
        return (self.width, self.height, self.tile_offset, self.bottom_trim, self.tiles) == (other.width, other.height, other.tile_offset, other.bottom_trim, other.tiles)

    def __repr__(self):
        return f'TileGrid({self.width}x{self.height}, offset={self.tile_offset}, trim={self.bottom_trim})'

    def _index(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise OutOfGridBoundsError(f'Cell ({x}, {y}) outside {self.width}x{self.height} grid', x=x, y=y)
        return y * self.width + x

    def get_tile(self, x: int, y: int) -> MapTile:
        return self.tiles[self._index(x, y)]

    def _coerce(self, current: MapTile, tile: Union[MapTile, int]) -> MapTile:
        if isinstance(tile, MapTile):
            new_tile = tile
        else:
            new_tile = MapTile(tile_id=tile, flip_h=current.flip_h, flip_v=current.flip_v, palette=current.palette)
        new_tile.validate()
        return new_tile

    def set_tile(self, x: int, y: int, tile: Union[MapTile, int]) -> MapTile:
        """
        Replace one cell. An int replaces only the tile id and keeps the
        cell's flips and palette.
        """
        index = self._index(x, y)
        new_tile = self._coerce(self.tiles[index], tile)
        self.tiles[index] = new_tile
        self._settle_offset()
        return new_tile

    def fill_rect(self, x: int, y: int, width: int, height: int, tile: Union[MapTile, int]) -> None:
        if width <= 0 or height <= 0:
            return
        self._index(x, y)
        self._index(x + width - 1, y + height - 1)
        staged = list(self.tiles)
        for row in range(y, y + height):
            for col in range(x, x + width):
                i = row * self.width + col
                staged[i] = self._coerce(staged[i], tile)
        self.tiles = staged
        self._settle_offset()

    def rows(self) -> Iterator[List[MapTile]]:
        for y in range(self.height):
            yield self.tiles[y * self.width:(y + 1) * self.width]

    def resized(self, width: int, height: int) -> 'TileGrid':
        _check_dimensions(width, height)
        tiles: List[MapTile] = []
        for y in range(height):
            for x in range(width):
                if x < self.width and y < self.height:
                    tiles.append(self.tiles[y * self.width + x])
                else:
                    tiles.append(BLANK_TILE)
        grid = TileGrid(width, height, tiles, min(self.tile_offset, height), self.bottom_trim)
        grid._settle_offset()
        return grid

    def _settle_offset(self) -> None:
        # implied rows must stay blank or they would be lost on encode
        for row in range(min(self.tile_offset, self.height)):
            start = row * self.width
            if any(not t.is_blank for t in self.tiles[start:start + self.width]):
                logger.debug('[TileGrid] Lowering tile_offset %d -> %d', self.tile_offset, row)
                self.tile_offset = row
                return

    @classmethod
    def decode(cls, data: bytes, width: int, height: int) -> 'TileGrid':
        rdr = ByteCursor(data)
        tile_offset = 0
        bottom_trim = 0
        if rdr.remaining() >= 6 and rdr.peek_u16() == MPBZ_OFFSET_MARKER:
            rdr.skip(2)
            tile_offset = rdr.read_u16()
            bottom_trim = rdr.read_u16()
        tiles = [BLANK_TILE] * (tile_offset * width)
        while rdr.remaining() >= 2:
            tiles.append(MapTile.from_short(rdr.read_u16()))
        if rdr.remaining():
            raise MalformedDataError(f'MPBZ has a stray trailing byte after {len(tiles)} tiles', offset=rdr.position)
        expected = width * height
        if len(tiles) > expected:
            raise MalformedDataError(f'MPBZ holds {len(tiles)} tiles for a {width}x{height} layer')
        if len(tiles) < expected:
            logger.warning('[TileGrid] MPBZ holds %d of %d tiles, padding with blanks', len(tiles), expected)
            tiles.extend([BLANK_TILE] * (expected - len(tiles)))
        return cls(width, height, tiles, tile_offset, bottom_trim)

    def encode(self) -> bytes:
        out = ByteCursor()
        index = 0
        # a leading 0xFFFF tile would otherwise be read as the marker
        first_is_marker = bool(self.tiles) and self.tiles[0].to_short() == MPBZ_OFFSET_MARKER
        if self.tile_offset > 0 or self.bottom_trim > 0 or first_is_marker:
            out.write_u16(MPBZ_OFFSET_MARKER)
            out.write_u16(self.tile_offset)
            out.write_u16(self.bottom_trim)
            index = self.tile_offset * self.width
        for tile in self.tiles[index:]:
            out.write_u16(tile.to_short())
        return out.getvalue()


class CollisionLayer:
    """COLZ: one byte per 16x16 pixel cell, width is half the layer width."""

    def __init__(self, width: int, cells: bytes = b'', trailing: bytes = b''):
        self.width = width
        self.cells = bytearray(cells)
        self.trailing = bytes(trailing)

    @property
    def height(self) -> int:
        return len(self.cells) // self.width if self.width else 0

    def __eq__(self, other):
        if not isinstance(other, CollisionLayer):
            return NotImplemented
        return (self.width, bytes(self.cells), self.trailing) == (other.width, bytes(other.cells), other.trailing)

    def __repr__(self):
        return f'CollisionLayer({self.width}x{self.height})'

    def _index(self, x: int, y: int) -> int:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise OutOfGridBoundsError(f'Collision cell ({x}, {y}) outside {self.width}x{self.height} grid', x=x, y=y)
        return y * self.width + x

    def get_cell(self, x: int, y: int) -> int:
        return self.cells[self._index(x, y)]

    def set_cell(self, x: int, y: int, value: int) -> None:
        index = self._index(x, y)
        if not 0 <= value <= 0xFF:
            raise ValueError(f'Collision value 0x{value:X} does not fit a byte')
        self.cells[index] = value

    def resized(self, width: int, height: int) -> 'CollisionLayer':
        cells = bytearray(width * height)
        for y in range(min(height, self.height)):
            for x in range(min(width, self.width)):
                cells[y * width + x] = self.cells[y * self.width + x]
        return CollisionLayer(width, cells)

    @classmethod
    def decode(cls, data: bytes, width: int) -> 'CollisionLayer':
        if width <= 0:
            return cls(0, b'', data)
        usable = len(data) - len(data) % width
        if usable != len(data):
            logger.debug('[CollisionLayer] %d bytes beyond the last full row', len(data) - usable)
        return cls(width, data[:usable], data[usable:])

    def encode(self) -> bytes:
        return bytes(self.cells) + self.trailing
