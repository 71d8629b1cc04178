import csv
import functools
import io
import logging
import struct
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Dict, List, Optional

from yidsrom.bytecursor import ByteCursor
from yidsrom.errors import InvalidSettingsError, MalformedDataError, NotFoundError, OutOfGridBoundsError, UnknownSpriteTypeError

logger = logging.getLogger(__name__)

SPRITE_HEADER_SIZE = 8
MAX_COORDINATE = 0xFFFF
FIELD_FORMATS = {'u8': '<B', 'u16': '<H', 'u32': '<I'}


@dataclass
class SpriteField:
    name: str
    kind: str
    offset: int

    @property
    def size(self) -> int:
        return struct.calcsize(FIELD_FORMATS[self.kind])


@dataclass
class SpriteMetadata:
    sprite_id: int
    name: str
    description: str = ''
    default_settings_len: int = 0
    fields: List[SpriteField] = field(default_factory=list)

    def get_field(self, name: str) -> SpriteField:
        for f in self.fields:
            if f.name == name:
                return f
        raise NotFoundError(f"Sprite 0x{self.sprite_id:X} ({self.name}) has no field '{name}'")


def _parse_int(text: str) -> int:
    text = text.strip()
    return int(text, 16) if text.lower().startswith('0x') else int(text)


def _parse_fields(text: str) -> List[SpriteField]:
    fields: List[SpriteField] = []
    offset = 0
    for item in filter(None, (s.strip() for s in text.split(';'))):
        name, _, kind = item.partition(':')
        kind = kind.strip() or 'u8'
        if kind not in FIELD_FORMATS:
            raise ValueError(f"Unknown field type '{kind}' in '{item}'")
        fields.append(SpriteField(name.strip(), kind, offset))
        offset += fields[-1].size
    return fields


class SpriteDatabase:
    """Known sprite types keyed by id, loaded from a CSV table."""

    def __init__(self, entries: Optional[Dict[int, SpriteMetadata]] = None):
        self.entries: Dict[int, SpriteMetadata] = dict(entries or {})

    def __contains__(self, sprite_id: int) -> bool:
        return sprite_id in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def get(self, sprite_id: int) -> Optional[SpriteMetadata]:
        return self.entries.get(sprite_id)

    def default_settings(self, sprite_id: int) -> bytes:
        meta = self.entries.get(sprite_id)
        if meta is None:
            raise UnknownSpriteTypeError(f'Sprite type 0x{sprite_id:X} has no known settings layout', sprite_id=f'0x{sprite_id:X}')
        return bytes(meta.default_settings_len)

    @classmethod
    def from_csv_text(cls, text: str) -> 'SpriteDatabase':
        entries: Dict[int, SpriteMetadata] = {}
        for row in csv.DictReader(io.StringIO(text)):
            try:
                sprite_id = _parse_int(row['id'])
                meta = SpriteMetadata(sprite_id=sprite_id, name=row['name'].strip(), description=(row.get('description') or '').strip(), default_settings_len=_parse_int(row['settings_length']), fields=_parse_fields(row.get('fields') or ''))
            except (KeyError, ValueError) as e:
                logger.error('[SpriteDatabase] Skipping bad row %s: %s', row, e)
                continue
            end = max((f.offset + f.size for f in meta.fields), default=0)
            if end > meta.default_settings_len:
                logger.error('[SpriteDatabase] Fields of 0x%X overrun its %d settings bytes', sprite_id, meta.default_settings_len)
                continue
            entries[sprite_id] = meta
        logger.debug('[SpriteDatabase] Loaded %d sprite types', len(entries))
        return cls(entries)

    @classmethod
    def from_csv_file(cls, path: Path) -> 'SpriteDatabase':
        return cls.from_csv_text(Path(path).read_text(encoding='utf-8'))


@functools.lru_cache(maxsize=1)
def default_database() -> SpriteDatabase:
    text = resources.files('yidsrom').joinpath('data', 'sprites.csv').read_text(encoding='utf-8')
    return SpriteDatabase.from_csv_text(text)


@dataclass
class SpriteInstance:
    type_id: int
    x: int
    y: int
    settings: bytes = b''

    @property
    def settings_length(self) -> int:
        return len(self.settings)

    def get_field(self, name: str, database: Optional[SpriteDatabase] = None) -> int:
        meta = _require_meta(self.type_id, database)
        f = meta.get_field(name)
        return struct.unpack_from(FIELD_FORMATS[f.kind], self.settings, f.offset)[0]

    def referenced_path(self, database: Optional[SpriteDatabase] = None) -> Optional[int]:
        meta = (database or default_database()).get(self.type_id)
        if meta is None or not any(f.name == 'path_id' for f in meta.fields):
            return None
        return self.get_field('path_id', database)


def _require_meta(type_id: int, database: Optional[SpriteDatabase]) -> SpriteMetadata:
    meta = (database or default_database()).get(type_id)
    if meta is None:
        raise UnknownSpriteTypeError(f'Sprite type 0x{type_id:X} has no known field layout', sprite_id=f'0x{type_id:X}')
    return meta


def _check_position(x: int, y: int) -> None:
    if not (0 <= x <= MAX_COORDINATE and 0 <= y <= MAX_COORDINATE):
        raise OutOfGridBoundsError(f'Sprite position ({x}, {y}) outside 0..0x{MAX_COORDINATE:X}', x=x, y=y)


class SpriteList:
    """SETD: back-to-back sprite records, zero padded to 4 bytes."""

    def __init__(self, sprites: Optional[List[SpriteInstance]] = None):
        self.sprites: List[SpriteInstance] = list(sprites or [])

    def __eq__(self, other):
        if not isinstance(other, SpriteList):
            return NotImplemented
        return self.sprites == other.sprites

    def __len__(self) -> int:
        return len(self.sprites)

    def __iter__(self):
        return iter(self.sprites)

    def __repr__(self):
        return f'SpriteList({len(self.sprites)} sprites)'

    def index_of(self, sprite: SpriteInstance) -> int:
        for i, s in enumerate(self.sprites):
            if s is sprite:
                return i
        raise NotFoundError(f'Sprite {sprite} is not in this list')

    def add(self, type_id: int, x: int, y: int, settings: Optional[bytes] = None, database: Optional[SpriteDatabase] = None) -> SpriteInstance:
        if not 0 <= type_id <= 0xFFFF:
            raise UnknownSpriteTypeError(f'Sprite type {type_id} does not fit 16 bits')
        _check_position(x, y)
        database = database or default_database()
        if settings is None:
            settings = database.default_settings(type_id)
        else:
            settings = bytes(settings)
            meta = database.get(type_id)
            if meta is not None and len(settings) != meta.default_settings_len:
                raise InvalidSettingsError(f'Sprite 0x{type_id:X} ({meta.name}) takes {meta.default_settings_len} settings bytes, got {len(settings)}')
        if len(settings) > 0xFFFF:
            raise InvalidSettingsError(f'{len(settings)} settings bytes do not fit the length field')
        sprite = SpriteInstance(type_id, x, y, settings)
        self.sprites.append(sprite)
        return sprite

    def move(self, sprite: SpriteInstance, x: int, y: int) -> None:
        self.index_of(sprite)
        _check_position(x, y)
        sprite.x = x
        sprite.y = y

    def remove(self, sprite: SpriteInstance) -> None:
        del self.sprites[self.index_of(sprite)]

    def set_settings(self, sprite: SpriteInstance, settings: bytes, database: Optional[SpriteDatabase] = None) -> None:
        self.index_of(sprite)
        meta = (database or default_database()).get(sprite.type_id)
        expected = meta.default_settings_len if meta is not None else sprite.settings_length
        if len(settings) != expected:
            raise InvalidSettingsError(f'Sprite 0x{sprite.type_id:X} takes {expected} settings bytes, got {len(settings)}')
        sprite.settings = bytes(settings)

    def set_field(self, sprite: SpriteInstance, name: str, value: int, database: Optional[SpriteDatabase] = None) -> None:
        self.index_of(sprite)
        f = _require_meta(sprite.type_id, database).get_field(name)
        if f.offset + f.size > len(sprite.settings):
            raise InvalidSettingsError(f"Field '{name}' lies past the {len(sprite.settings)} settings bytes")
        try:
            packed = struct.pack(FIELD_FORMATS[f.kind], value)
        except struct.error as e:
            raise InvalidSettingsError(f"Value {value} does not fit field '{name}' ({f.kind})") from e
        settings = bytearray(sprite.settings)
        settings[f.offset:f.offset + f.size] = packed
        sprite.settings = bytes(settings)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'SpriteList':
        rdr = ByteCursor(data)
        sprites: List[SpriteInstance] = []
        while rdr.remaining() >= SPRITE_HEADER_SIZE:
            type_id = rdr.read_u16()
            settings_len = rdr.read_u16()
            x = rdr.read_u16()
            y = rdr.read_u16()
            sprites.append(SpriteInstance(type_id, x, y, rdr.read_bytes(settings_len)))
        tail = rdr.read_bytes(rdr.remaining())
        if any(tail):
            raise MalformedDataError(f'SETD ends with {len(tail)} stray bytes after {len(sprites)} sprites', offset=len(data) - len(tail))
        return cls(sprites)

    def to_bytes(self) -> bytes:
        out = ByteCursor()
        for sprite in self.sprites:
            out.write_u16(sprite.type_id)
            out.write_u16(sprite.settings_length)
            out.write_u16(sprite.x)
            out.write_u16(sprite.y)
            out.write_bytes(sprite.settings)
        out.pad(4)
        return out.getvalue()
