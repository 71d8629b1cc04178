import logging
import re
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from yidsrom import chunkutil
from yidsrom.bytecursor import ByteCursor
from yidsrom.chunkutil import Chunk
from yidsrom.errors import InvalidLinkError, MalformedDataError, NotFoundError, RomError

logger = logging.getLogger(__name__)

CSCN_NAME_SIZE = 16
MAX_MAP_NAME_LENGTH = CSCN_NAME_SIZE - 1
MAP_FILE_EXTENSION = '.mpdz'
COURSE_FILE_EXTENSION = '.crsb'
EXIT_TYPE_NAMES = {0: 'Walk Right (Silent)', 1: 'Walk Left (Silent)', 2: 'Touch Pipe Up', 3: 'Press Up Pipe', 4: 'Press Down Pipe', 5: 'Blue Door Unlocked', 6: 'Blue Door Locked', 7: 'Boss Door', 9: 'Walk Right Map Quit', 12: 'Area Trigger (Pipe)', 13: 'Minigame Exit'}
_WORLD_PATTERN = re.compile('^(\\d+)-')


def exit_type_name(exit_type: int) -> str:
    name = EXIT_TYPE_NAMES.get(exit_type)
    if name is None:
        return f'Type 0x{exit_type:X}'
    return f'{exit_type:X}: {name}'


@dataclass
class MapEntrance:
    x: int
    y: int
    flags: int = 0


@dataclass
class MapExit:
    x: int
    y: int
    exit_type: int
    target_map: int
    target_entrance: int
    unresolved: bool = field(default=False, compare=False)

    @property
    def type_name(self) -> str:
        return exit_type_name(self.exit_type)


def _check_u16(**values: int) -> None:
    for name, value in values.items():
        if not 0 <= value <= 0xFFFF:
            raise InvalidLinkError(f'{name}={value} does not fit 16 bits')


def _check_target(target_map: int, target_entrance: int) -> None:
    if not 0 <= target_map <= 0xFF or not 0 <= target_entrance <= 0xFF:
        raise InvalidLinkError(f'Exit target ({target_map}, {target_entrance}) does not fit 8 bits')


class EntranceExitList:
    """The entrances and exits a course stores for one of its maps."""

    def __init__(self, entrances: Optional[List[MapEntrance]] = None, exits: Optional[List[MapExit]] = None):
        self.entrances: List[MapEntrance] = list(entrances or [])
        self.exits: List[MapExit] = list(exits or [])

    def __eq__(self, other):
        if not isinstance(other, EntranceExitList):
            return NotImplemented
        return (self.entrances, self.exits) == (other.entrances, other.exits)

    def __repr__(self):
        return f'EntranceExitList({len(self.entrances)} entrances, {len(self.exits)} exits)'

    @property
    def unresolved_exits(self) -> List[MapExit]:
        return [e for e in self.exits if e.unresolved]

    def add_entrance(self, x: int, y: int, flags: int = 0) -> int:
        _check_u16(x=x, y=y, flags=flags)
        if len(self.entrances) >= 0xFFFF:
            raise InvalidLinkError('Entrance count does not fit 16 bits')
        self.entrances.append(MapEntrance(x, y, flags))
        return len(self.entrances) - 1

    def remove_entrance(self, index: int) -> None:
        if not 0 <= index < len(self.entrances):
            raise NotFoundError(f'No entrance {index}')
        del self.entrances[index]

    def add_exit(self, x: int, y: int, exit_type: int, target_map: int, target_entrance: int) -> int:
        _check_u16(x=x, y=y, exit_type=exit_type)
        _check_target(target_map, target_entrance)
        if len(self.exits) >= 0xFF:
            raise InvalidLinkError('Exit count does not fit 8 bits')
        self.exits.append(MapExit(x, y, exit_type, target_map, target_entrance, unresolved=True))
        return len(self.exits) - 1

    def set_exit_target(self, index: int, target_map: int, target_entrance: int) -> None:
        if not 0 <= index < len(self.exits):
            raise NotFoundError(f'No exit {index}')
        _check_target(target_map, target_entrance)
        exit_ = self.exits[index]
        exit_.target_map = target_map
        exit_.target_entrance = target_entrance
        exit_.unresolved = True

    def remove_exit(self, index: int) -> None:
        if not 0 <= index < len(self.exits):
            raise NotFoundError(f'No exit {index}')
        del self.exits[index]


class CourseMap:
    """One CSCN record: which map file a course uses and how it links."""

    def __init__(self, map_name: str, music: int = 0, links: Optional[EntranceExitList] = None):
        self.map_name = map_name
        self.music = music
        self.links = links if links is not None else EntranceExitList()

    def __eq__(self, other):
        if not isinstance(other, CourseMap):
            return NotImplemented
        return (self.map_name, self.music, self.links) == (other.map_name, other.music, other.links)

    def __repr__(self):
        return f"CourseMap('{self.map_name}', music=0x{self.music:X}, {self.links!r})"

    @property
    def filename(self) -> str:
        return self.map_name + MAP_FILE_EXTENSION

    def rename(self, map_name: str) -> None:
        if not map_name or len(map_name) > MAX_MAP_NAME_LENGTH or not map_name.isascii() or '\x00' in map_name:
            raise InvalidLinkError(f"Map name '{map_name}' must be 1..{MAX_MAP_NAME_LENGTH} ASCII characters")
        self.map_name = map_name

    @classmethod
    def from_bytes(cls, data: bytes, base_offset: int = 0) -> 'CourseMap':
        rdr = ByteCursor(data, base_offset=base_offset)
        entrance_count = rdr.read_u16()
        exit_count = rdr.read_u8()
        music = rdr.read_u8()
        map_name = rdr.read_fixed_string(CSCN_NAME_SIZE)
        links = EntranceExitList()
        for _ in range(entrance_count):
            links.entrances.append(MapEntrance(rdr.read_u16(), rdr.read_u16(), rdr.read_u16()))
        rdr.align(4)
        for _ in range(exit_count):
            links.exits.append(MapExit(rdr.read_u16(), rdr.read_u16(), rdr.read_u16(), rdr.read_u8(), rdr.read_u8()))
        return cls(map_name, music, links)

    def to_bytes(self) -> bytes:
        out = ByteCursor()
        out.write_u16(len(self.links.entrances))
        out.write_u8(len(self.links.exits))
        out.write_u8(self.music)
        out.write_fixed_string(self.map_name, CSCN_NAME_SIZE)
        for entrance in self.links.entrances:
            out.write_u16(entrance.x)
            out.write_u16(entrance.y)
            out.write_u16(entrance.flags)
        out.pad(4)
        for exit_ in self.links.exits:
            out.write_u16(exit_.x)
            out.write_u16(exit_.y)
            out.write_u16(exit_.exit_type)
            out.write_u8(exit_.target_map)
            out.write_u8(exit_.target_entrance)
        out.pad(4)
        return out.getvalue()


def course_stem(name: str) -> str:
    if name.lower().endswith(COURSE_FILE_EXTENSION):
        return name[:-len(COURSE_FILE_EXTENSION)]
    return name


class Course:
    """A CRSB file: the ordered maps of one level."""

    def __init__(self, name: str = '', maps: Optional[List[CourseMap]] = None):
        self.name = course_stem(name.rsplit('/', 1)[-1])
        self.maps: List[CourseMap] = list(maps or [])

    def __eq__(self, other):
        if not isinstance(other, Course):
            return NotImplemented
        return (self.name, self.maps) == (other.name, other.maps)

    def __repr__(self):
        return f"Course('{self.name}', {len(self.maps)} maps)"

    @property
    def world_index(self) -> Optional[int]:
        match = _WORLD_PATTERN.match(self.name)
        return int(match.group(1)) if match else None

    def get_map(self, map_id: int) -> CourseMap:
        if not isinstance(map_id, int) or not 0 <= map_id < len(self.maps):
            raise NotFoundError(f"Course '{self.name}' has no map {map_id}", course=self.name)
        return self.maps[map_id]

    def resolve_exits(self, map_exists: Optional[Callable[[str], bool]] = None) -> List[Tuple[int, int]]:
        """
        Flag every exit whose target map, target entrance or target map file
        is missing. Returns (map index, exit index) for the flagged exits.
        """
        flagged: List[Tuple[int, int]] = []
        for map_index, course_map in enumerate(self.maps):
            for exit_index, exit_ in enumerate(course_map.links.exits):
                ok = exit_.target_map < len(self.maps)
                if ok:
                    target = self.maps[exit_.target_map]
                    ok = exit_.target_entrance < len(target.links.entrances)
                    if ok and map_exists is not None:
                        ok = map_exists(target.filename)
                exit_.unresolved = not ok
                if not ok:
                    flagged.append((map_index, exit_index))
        if flagged:
            logger.warning("[Course] %s: %d unresolved exit(s): %s", self.name, len(flagged), flagged)
        return flagged

    @classmethod
    def decode(cls, data: bytes, name: str = '') -> 'Course':
        root = chunkutil.parse(data, closed_tags=('CRSB',), nested=())
        rdr = ByteCursor(root.payload, base_offset=8)
        count = rdr.read_u32()
        records = chunkutil.parse_sequence(root.payload[4:], base_offset=12, nested=(), closed_tags=('CSCN',))
        if len(records) != count:
            raise MalformedDataError(f'CRSB declares {count} maps but holds {len(records)}', tag='CRSB')
        maps = []
        for i, record in enumerate(records):
            try:
                maps.append(CourseMap.from_bytes(record.payload, record.offset + 8))
            except RomError as exc:
                raise exc.add_context(tag='CSCN', map=i)
        course = cls(name, maps)
        logger.debug('[Course] Decoded %s: %d maps', course.name or '<unnamed>', len(maps))
        return course

    def encode(self) -> bytes:
        body = ByteCursor()
        body.write_u32(len(self.maps))
        for course_map in self.maps:
            body.write_bytes(chunkutil.serialize(Chunk.leaf('CSCN', course_map.to_bytes())))
        body.pad(4)
        return chunkutil.serialize(Chunk.leaf('CRSB', body.getvalue()))
