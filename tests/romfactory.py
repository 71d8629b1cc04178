"""
Builders for small synthetic game files and images used across the tests
"""

import struct
from typing import List, Optional, Sequence, Tuple

from yidsrom.chunkutil import Chunk, pad4, serialize
from yidsrom.fntutil import build_fnt
from yidsrom.lz10util import compress_lz10
from yidsrom.narcutil import build_narc
from yidsrom.ndsheader import HEADER_FIELDS, LOGO_CRC16, NDSHeader, align_up

MAP_WIDTH = 8
MAP_HEIGHT = 4
SLOT_SIZE = 0x100


def tile_value(x: int, y: int) -> int:
    """Tile id (x + y) % 7 with palette 1"""
    return (x + y) % 7 | 1 << 12


def info_payload(width: int = MAP_WIDTH, height: int = MAP_HEIGHT, which_bg: int = 1, imbz_name: Optional[str] = None) -> bytes:
    data = struct.pack('<HHIIIBBBBI', width, height, 0, 0x1000, 0x1000, which_bg, 1, 0, 2, 0)
    if imbz_name is not None:
        data = pad4(data + imbz_name.encode('ascii') + b'\x00')
    return data


def scen_chunk(width: int = MAP_WIDTH, height: int = MAP_HEIGHT, which_bg: int = 1, with_collision: bool = True, imbz_name: Optional[str] = None, extra: Sequence[Chunk] = ()) -> Chunk:
    tiles = b''.join(struct.pack('<H', tile_value(x, y)) for y in range(height) for x in range(width))
    children = [Chunk.leaf('INFO', info_payload(width, height, which_bg, imbz_name))]
    if with_collision:
        cells = bytes(i % 3 for i in range(width // 2 * (height // 2)))
        children.append(Chunk.leaf('COLZ', pad4(compress_lz10(cells))))
    children.append(Chunk.leaf('MPBZ', pad4(compress_lz10(tiles))))
    children.extend(extra)
    return Chunk.container('SCEN', children)


def setd_payload() -> bytes:
    coin = struct.pack('<HHHH', 0x00, 4, 16, 32) + bytes(4)
    ferry = struct.pack('<HHHH', 0x57, 8, 48, 64) + bytes([0, 2, 1, 0, 0, 0, 0, 0])
    return coin + ferry


def path_payload() -> bytes:
    return struct.pack('<I', 1) + struct.pack('<hhII', 0, 16, 0x1000, 0x2000) + struct.pack('<hhII', 0, 0, 0x2000, 0x2000)


def area_payload() -> bytes:
    return struct.pack('<HHHH', 1, 2, 5, 6)


def map_chunk(extra: Sequence[Chunk] = ()) -> Chunk:
    children = [scen_chunk(), Chunk.leaf('SETD', setd_payload()), Chunk.leaf('PATH', path_payload()), Chunk.leaf('AREA', area_payload()), Chunk.leaf('GRAD', b'\x01\x02\x03\x04')]
    children.extend(extra)
    return Chunk.container('SET\x00', children)


def map_file(extra: Sequence[Chunk] = ()) -> bytes:
    """A compressed MPDZ"""
    return compress_lz10(serialize(map_chunk(extra)))


def cscn_payload(name: str, music: int, entrances: Sequence[Tuple[int, int, int]], exits: Sequence[Tuple[int, int, int, int, int]]) -> bytes:
    data = struct.pack('<HBB', len(entrances), len(exits), music) + name.encode('ascii').ljust(16, b'\x00')
    for entrance in entrances:
        data += struct.pack('<HHH', *entrance)
    data = pad4(data)
    for exit_ in exits:
        data += struct.pack('<HHHBB', *exit_)
    return pad4(data)


def course_file(maps: Sequence[Tuple[str, int, list, list]] = None) -> bytes:
    if maps is None:
        maps = [('1-1_main', 3, [(10, 20, 0)], [(30, 40, 2, 0, 0)])]
    body = struct.pack('<I', len(maps))
    for name, music, entrances, exits in maps:
        body += serialize(Chunk.leaf('CSCN', cscn_payload(name, music, entrances, exits)))
    return serialize(Chunk.leaf('CRSB', body))


def scenario_files() -> List[bytes]:
    """Course, map and an unrelated file, each padded to one 0x100 slot"""
    files = [course_file(), map_file(), bytes(range(256))]
    for data in files:
        if len(data) > SLOT_SIZE:
            raise ValueError(f'Synthetic file of {len(data)} bytes does not fit a slot')
    return [data.ljust(SLOT_SIZE, b'\x00') for data in files]


SCENARIO_NAMES = ['1-1.crsb', '1-1_main.mpdz', 'misc.bin']


def make_narc(files: Optional[List[bytes]] = None, names: Optional[List[str]] = None) -> bytes:
    files = scenario_files() if files is None else files
    names = SCENARIO_NAMES if names is None else names
    return build_narc(files, build_fnt(names))


BANNER = bytes(range(64)) * 4


def make_nds(files: Optional[List[bytes]] = None, names: Optional[List[str]] = None, game_code: str = 'AYWE') -> bytes:
    """
    Header, FNT at 0x200, FAT at 0x400, files from 0x600 on 0x200 boundaries,
    then a banner the header points at.
    """
    files = scenario_files() if files is None else files
    names = SCENARIO_NAMES if names is None else names
    fnt = build_fnt(names)
    image = bytearray(b'\xff' * 0x600)
    image[0x200:0x200 + len(fnt)] = fnt
    fat = b''
    for data in files:
        start = len(image)
        image.extend(data)
        fat += struct.pack('<II', start, start + len(data))
        image.extend(b'\xff' * (align_up(len(image), 0x200) - len(image)))
    image[0x400:0x400 + len(fat)] = fat
    banner_addr = len(image)
    image.extend(BANNER)
    header = NDSHeader(values={name: 0 for name, _, _ in HEADER_FIELDS})
    header.raw[0:12] = b'YOSHI DS'.ljust(12, b'\x00')
    header.raw[12:16] = game_code.encode('ascii')
    header.set('filename_table_addr', 0x200)
    header.set('filename_size', len(fnt))
    header.set('fat_addr', 0x400)
    header.set('fat_size', len(fat))
    header.set('icon_title_addr', banner_addr)
    header.set('rom_size', len(image))
    header.set('header_size', 0x4000)
    header.set('logo_crc16', LOGO_CRC16)
    header.update_crc()
    image[:0x200] = header.to_bytes()
    return bytes(image)
