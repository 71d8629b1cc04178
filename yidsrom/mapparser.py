import copy
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from yidsrom import chunkutil
from yidsrom.cancel import CancelToken, check_cancel
from yidsrom.chunkutil import Chunk, pad4
from yidsrom.courseparser import EntranceExitList
from yidsrom.errors import NotFoundError, RomError, UnknownMagicError
from yidsrom.layerdata import TileLayer
from yidsrom.lz10util import CompressedBlob, decode_blob, encode_blob, is_lz10
from yidsrom.pathdata import PathList, PathPoint
from yidsrom.settings import EditorSettings
from yidsrom.sprites import SpriteDatabase, SpriteInstance, SpriteList
from yidsrom.tiles import CollisionLayer, MapTile
from yidsrom.triggerdata import TriggerList, TriggerRegion

logger = logging.getLogger(__name__)

MAP_ROOT_TAG = 'SET\x00'


@dataclass
class OpaqueSegment:
    """A top-level chunk kept byte for byte (GRAD, ALPH, BLKZ, BRAK, unknown tags)."""
    chunk: Chunk

    @property
    def tag(self) -> str:
        return self.chunk.name


Segment = Union[TileLayer, SpriteList, PathList, TriggerList, OpaqueSegment]


class Map:
    """
    One editable map: the segments of its MPDZ file in file order, plus the
    entrances and exits its course stores for it.
    """

    def __init__(self, name: str = '', segments: Optional[List[Segment]] = None, links: Optional[EntranceExitList] = None, music: int = 0, root_tag: str = MAP_ROOT_TAG, compressed: bool = True):
        self.name = name
        self.segments: List[Segment] = list(segments or [])
        self.links = links if links is not None else EntranceExitList()
        self.music = music
        self.root_tag = root_tag
        self.compressed = compressed

    def __eq__(self, other):
        if not isinstance(other, Map):
            return NotImplemented
        return (self.name, self.root_tag, self.music, self.segments, self.links) == (other.name, other.root_tag, other.music, other.segments, other.links)

    def __repr__(self):
        return f"Map('{self.name}', {len(self.segments)} segments)"

    def clone(self) -> 'Map':
        return copy.deepcopy(self)

    def _of_type(self, kind) -> list:
        return [s for s in self.segments if isinstance(s, kind)]

    @property
    def layers(self) -> List[TileLayer]:
        return self._of_type(TileLayer)

    @property
    def opaque_segments(self) -> List[OpaqueSegment]:
        return self._of_type(OpaqueSegment)

    def layer(self, which_bg: int) -> TileLayer:
        for layer in self.layers:
            if layer.which_bg == which_bg:
                return layer
        raise NotFoundError(f"Map '{self.name}' has no layer on BG{which_bg}")

    @property
    def collision(self) -> Optional[CollisionLayer]:
        for layer in self.layers:
            if layer.collision is not None:
                return layer.collision
        return None

    @property
    def sprites(self) -> Optional[SpriteList]:
        found = self._of_type(SpriteList)
        return found[0] if found else None

    @property
    def paths(self) -> Optional[PathList]:
        found = self._of_type(PathList)
        return found[0] if found else None

    @property
    def triggers(self) -> Optional[TriggerList]:
        found = self._of_type(TriggerList)
        return found[0] if found else None

    @property
    def entrances(self):
        return self.links.entrances

    @property
    def exits(self):
        return self.links.exits

    def set_tile(self, which_bg: int, x: int, y: int, tile: Union[MapTile, int]) -> MapTile:
        return self.layer(which_bg).set_tile(x, y, tile)

    def set_collision(self, x: int, y: int, value: int) -> None:
        collision = self.collision
        if collision is None:
            raise NotFoundError(f"Map '{self.name}' has no collision layer")
        collision.set_cell(x, y, value)

    def add_sprite(self, type_id: int, x: int, y: int, settings: Optional[bytes] = None, database: Optional[SpriteDatabase] = None) -> SpriteInstance:
        sprites = self.sprites
        if sprites is not None:
            return sprites.add(type_id, x, y, settings, database)
        sprites = SpriteList()
        sprite = sprites.add(type_id, x, y, settings, database)
        self.segments.append(sprites)
        return sprite

    def move_sprite(self, sprite: SpriteInstance, x: int, y: int) -> None:
        self._require(self.sprites, 'sprite list').move(sprite, x, y)

    def remove_sprite(self, sprite: SpriteInstance) -> None:
        self._require(self.sprites, 'sprite list').remove(sprite)

    def set_sprite_settings(self, sprite: SpriteInstance, settings: bytes, database: Optional[SpriteDatabase] = None) -> None:
        self._require(self.sprites, 'sprite list').set_settings(sprite, settings, database)

    def add_path(self, points: List[PathPoint]) -> int:
        paths = self.paths
        if paths is not None:
            return paths.add_path(points)
        paths = PathList()
        index = paths.add_path(points)
        self.segments.append(paths)
        return index

    def remove_path(self, index: int) -> None:
        self._require(self.paths, 'path list').remove_path(index)

    def add_trigger(self, region: TriggerRegion) -> int:
        triggers = self.triggers
        if triggers is not None:
            return triggers.add(region)
        triggers = TriggerList()
        index = triggers.add(region)
        self.segments.append(triggers)
        return index

    def set_trigger(self, index: int, region: TriggerRegion) -> None:
        self._require(self.triggers, 'trigger list').set(index, region)

    def remove_trigger(self, index: int) -> None:
        self._require(self.triggers, 'trigger list').remove(index)

    def _require(self, segment, label: str):
        if segment is None:
            raise NotFoundError(f"Map '{self.name}' has no {label}")
        return segment

    def summary(self) -> Dict[str, Any]:
        return {'name': self.name, 'music': self.music, 'layers': [(layer.which_bg, layer.width, layer.height, layer.tileset_name) for layer in self.layers], 'has_collision': self.collision is not None, 'sprites': len(self.sprites) if self.sprites is not None else 0, 'paths': len(self.paths) if self.paths is not None else 0, 'triggers': len(self.triggers) if self.triggers is not None else 0, 'entrances': len(self.links.entrances), 'exits': len(self.links.exits), 'unresolved_exits': len(self.links.unresolved_exits), 'opaque': [s.tag for s in self.opaque_segments]}


def _decode_scen(chunk: Chunk, cancel: Optional[CancelToken]) -> Segment:
    return TileLayer.from_chunk(chunk, cancel)


def _decode_setd(chunk: Chunk, cancel: Optional[CancelToken]) -> Segment:
    return SpriteList.from_bytes(chunk.payload)


def _decode_path(chunk: Chunk, cancel: Optional[CancelToken]) -> Segment:
    return PathList.from_bytes(chunk.payload)


def _decode_area(chunk: Chunk, cancel: Optional[CancelToken]) -> Segment:
    return TriggerList.from_bytes(chunk.payload)


SEGMENT_DECODERS = {'SCEN': _decode_scen, 'SETD': _decode_setd, 'PATH': _decode_path, 'AREA': _decode_area}


def decode_map(chunk: Chunk, name: str = '', links: Optional[EntranceExitList] = None, music: int = 0, cancel: Optional[CancelToken] = None) -> Map:
    if chunk.name != 'SET' or chunk.children is None:
        raise UnknownMagicError(f"Map root must be a SET container, got '{chunk.name}'", tag=chunk.name)
    segments: List[Segment] = []
    for child in chunk.children:
        decoder = SEGMENT_DECODERS.get(child.name)
        try:
            segments.append(decoder(child, cancel) if decoder else OpaqueSegment(copy.deepcopy(child)))
        except RomError as exc:
            raise exc.add_context(tag=child.name, offset=child.offset if child.offset >= 0 else None)
        check_cancel(cancel, child.name)
    logger.debug("[MapParser] Decoded '%s': %s", name, ', '.join(c.name for c in chunk.children))
    return Map(name, segments, links, music, chunk.tag)


def encode_map(map_: Map, settings: Optional[EditorSettings] = None, cancel: Optional[CancelToken] = None) -> Chunk:
    """Rebuild the SET tree from the model's current field values."""
    settings = settings or EditorSettings()
    children: List[Chunk] = []
    for segment in map_.segments:
        if isinstance(segment, TileLayer):
            children.append(segment.to_chunk(settings, cancel))
        elif isinstance(segment, SpriteList):
            children.append(Chunk.leaf('SETD', segment.to_bytes()))
        elif isinstance(segment, PathList):
            children.append(Chunk.leaf('PATH', pad4(segment.to_bytes())))
        elif isinstance(segment, TriggerList):
            children.append(Chunk.leaf('AREA', pad4(segment.to_bytes())))
        elif isinstance(segment, OpaqueSegment):
            children.append(copy.deepcopy(segment.chunk))
        else:
            raise TypeError(f'Unsupported map segment {segment!r}')
        check_cancel(cancel, children[-1].name)
    return Chunk.container(map_.root_tag, children)


def decode_map_file(data: bytes, name: str = '', links: Optional[EntranceExitList] = None, music: int = 0, cancel: Optional[CancelToken] = None) -> Map:
    """Decode an MPDZ file: LZ10 around a SET chunk tree."""
    if is_lz10(data):
        blob = decode_blob(data)
    else:
        blob = CompressedBlob(data=bytes(data), compressed=False, compressed_size=len(data))
    check_cancel(cancel, 'MPDZ')
    root = chunkutil.parse(blob.data, closed_tags=('SET',))
    map_ = decode_map(root, name, links, music, cancel)
    map_.compressed = blob.compressed
    return map_


def encode_map_file(map_: Map, settings: Optional[EditorSettings] = None, cancel: Optional[CancelToken] = None) -> bytes:
    settings = settings or EditorSettings()
    raw = chunkutil.serialize(encode_map(map_, settings, cancel))
    packed = encode_blob(CompressedBlob(data=raw, compressed=map_.compressed), settings.lz_chain_depth, settings.lz_vram_safe)
    check_cancel(cancel, 'MPDZ')
    return packed
