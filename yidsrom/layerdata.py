import copy
import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from yidsrom.bytecursor import ByteCursor
from yidsrom.cancel import CancelToken, check_cancel
from yidsrom.chunkutil import Chunk, pad4
from yidsrom.errors import MalformedDataError, RomError
from yidsrom.lz10util import compress_lz10, decompress_lz10
from yidsrom.settings import EditorSettings
from yidsrom.tiles import CollisionLayer, MapTile, TileGrid

logger = logging.getLogger(__name__)

INFO_BASE_SIZE = 0x18
KNOWN_INFO_SIZES = (0x18, 0x20, 0x24)
SCEN_CHILD_TAGS = ('INFO', 'COLZ', 'PLTB', 'SCRL', 'MPBZ', 'ANMZ', 'IMGB', 'IMBZ', 'PLAN', 'RAST')


@dataclass
class LayerInfo:
    layer_width: int = 0
    layer_height: int = 0
    height_offset: int = 0
    x_scroll: int = 0x1000
    y_scroll: int = 0x1000
    which_bg: int = 0
    layer_order: int = 0
    char_base_block: int = 0
    screen_base_block: int = 0
    color_mode: int = 0
    imbz_name: Optional[str] = None

    @classmethod
    def from_bytes(cls, data: bytes) -> 'LayerInfo':
        if len(data) not in KNOWN_INFO_SIZES:
            logger.warning('[LayerInfo] Unusual INFO size: 0x%X', len(data))
        rdr = ByteCursor(data)
        info = cls()
        info.layer_width = rdr.read_u16()
        info.layer_height = rdr.read_u16()
        info.height_offset = rdr.read_u32()
        info.x_scroll = rdr.read_u32()
        info.y_scroll = rdr.read_u32()
        info.which_bg = rdr.read_u8()
        info.layer_order = rdr.read_u8()
        info.char_base_block = rdr.read_u8()
        info.screen_base_block = rdr.read_u8()
        info.color_mode = rdr.read_u32()
        if len(data) > INFO_BASE_SIZE:
            info.imbz_name = rdr.read_c_string()
        return info

    def to_bytes(self) -> bytes:
        out = ByteCursor()
        out.write_u16(self.layer_width)
        out.write_u16(self.layer_height)
        out.write_u32(self.height_offset)
        out.write_u32(self.x_scroll)
        out.write_u32(self.y_scroll)
        out.write_u8(self.which_bg)
        out.write_u8(self.layer_order)
        out.write_u8(self.char_base_block)
        out.write_u8(self.screen_base_block)
        out.write_u32(self.color_mode)
        if self.imbz_name is not None:
            out.write_c_string(self.imbz_name)
            out.pad(4)
        return out.getvalue()

    @property
    def is_256_color(self) -> bool:
        return bool(self.color_mode & 1)

    @property
    def collision_width(self) -> int:
        return self.layer_width // 2


LayerPart = Union[LayerInfo, TileGrid, CollisionLayer, Chunk]


class TileLayer:
    """
    One SCEN background: INFO, the MPBZ tile grid, optional COLZ collision,
    and the remaining children kept as raw chunks in their original order.
    """

    def __init__(self, parts: Optional[List[LayerPart]] = None):
        self.parts: List[LayerPart] = list(parts or [])

    def __eq__(self, other):
        if not isinstance(other, TileLayer):
            return NotImplemented
        return self.parts == other.parts

    def __repr__(self):
        info = self.info
        bg = info.which_bg if info else '?'
        return f'TileLayer(bg={bg}, {self.width}x{self.height}, collision={self.collision is not None})'

    @classmethod
    def new(cls, width: int, height: int, which_bg: int = 1, with_collision: bool = False) -> 'TileLayer':
        info = LayerInfo(layer_width=width, layer_height=height, which_bg=which_bg)
        parts: List[LayerPart] = [info, TileGrid(width, height)]
        if with_collision:
            parts.insert(1, CollisionLayer(width // 2, bytes(width // 2 * (height // 2))))
        return cls(parts)

    def _first(self, kind):
        for part in self.parts:
            if isinstance(part, kind):
                return part
        return None

    @property
    def info(self) -> Optional[LayerInfo]:
        return self._first(LayerInfo)

    @property
    def tiles(self) -> Optional[TileGrid]:
        return self._first(TileGrid)

    @property
    def collision(self) -> Optional[CollisionLayer]:
        return self._first(CollisionLayer)

    @property
    def extra_chunks(self) -> List[Chunk]:
        return [p for p in self.parts if isinstance(p, Chunk)]

    @property
    def which_bg(self) -> Optional[int]:
        return self.info.which_bg if self.info else None

    @property
    def width(self) -> int:
        return self.info.layer_width if self.info else 0

    @property
    def height(self) -> int:
        return self.info.layer_height if self.info else 0

    @property
    def tileset_name(self) -> Optional[str]:
        return self.info.imbz_name if self.info else None

    def _grid(self) -> TileGrid:
        grid = self.tiles
        if grid is None:
            raise MalformedDataError('Layer has no MPBZ tile grid')
        return grid

    def get_tile(self, x: int, y: int) -> MapTile:
        return self._grid().get_tile(x, y)

    def set_tile(self, x: int, y: int, tile: Union[MapTile, int]) -> MapTile:
        return self._grid().set_tile(x, y, tile)

    def fill_rect(self, x: int, y: int, width: int, height: int, tile: Union[MapTile, int]) -> None:
        self._grid().fill_rect(x, y, width, height, tile)

    def resize(self, width: int, height: int) -> None:
        """Resize tiles and collision together, keeping the top-left content."""
        info = self.info
        if info is None:
            raise MalformedDataError('Layer has no INFO to resize')
        new_grid = self.tiles.resized(width, height) if self.tiles is not None else None
        new_col = self.collision.resized(width // 2, height // 2) if self.collision is not None else None
        staged = []
        for part in self.parts:
            if isinstance(part, TileGrid):
                staged.append(new_grid)
            elif isinstance(part, CollisionLayer):
                staged.append(new_col)
            else:
                staged.append(part)
        self.parts = staged
        info.layer_width = width
        info.layer_height = height
        logger.info('[TileLayer] BG%d resized to %dx%d', info.which_bg, width, height)

    def clone(self) -> 'TileLayer':
        return copy.deepcopy(self)

    @classmethod
    def from_chunk(cls, chunk: Chunk, cancel: Optional[CancelToken] = None) -> 'TileLayer':
        parts: List[LayerPart] = []
        info: Optional[LayerInfo] = None
        for child in chunk.children or []:
            try:
                if child.name == 'INFO':
                    info = LayerInfo.from_bytes(child.payload)
                    parts.append(info)
                elif child.name == 'MPBZ':
                    if info is None:
                        raise MalformedDataError('MPBZ before INFO')
                    raw = decompress_lz10(child.payload)
                    parts.append(TileGrid.decode(raw, info.layer_width, info.layer_height))
                elif child.name == 'COLZ':
                    if info is None:
                        raise MalformedDataError('COLZ before INFO')
                    raw = decompress_lz10(child.payload)
                    parts.append(CollisionLayer.decode(raw, info.collision_width))
                else:
                    if child.name not in SCEN_CHILD_TAGS:
                        logger.warning("[TileLayer] Unknown SCEN child '%s' kept as raw data", child.name)
                    parts.append(child)
            except RomError as exc:
                raise exc.add_context(tag=child.name, offset=child.offset if child.offset >= 0 else None)
            check_cancel(cancel, f'SCEN/{child.name}')
        return cls(parts)

    def to_chunk(self, settings: Optional[EditorSettings] = None, cancel: Optional[CancelToken] = None) -> Chunk:
        settings = settings or EditorSettings()
        children: List[Chunk] = []
        for part in self.parts:
            if isinstance(part, LayerInfo):
                children.append(Chunk.leaf('INFO', part.to_bytes()))
            elif isinstance(part, TileGrid):
                packed = compress_lz10(part.encode(), settings.lz_chain_depth, settings.lz_vram_safe)
                children.append(Chunk.leaf('MPBZ', pad4(packed)))
            elif isinstance(part, CollisionLayer):
                packed = compress_lz10(part.encode(), settings.lz_chain_depth, settings.lz_vram_safe)
                children.append(Chunk.leaf('COLZ', pad4(packed)))
            else:
                children.append(Chunk(tag=part.tag, payload=part.payload, children=copy.deepcopy(part.children)))
            check_cancel(cancel, f'SCEN/{children[-1].name}')
        return Chunk.container('SCEN', children)
