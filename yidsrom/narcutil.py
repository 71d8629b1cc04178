import struct
from dataclasses import dataclass, field
from typing import List, Optional

from yidsrom.errors import InvalidImageError, UnsupportedVersionError
from yidsrom.ndsheader import FATEntry, align_up

NARC_MAGIC = b'NARC'
NARC_BOM = 65534
NARC_VERSION = 256
NARC_HEADER_SIZE = 16


def u16(b: bytes, o: int) -> int:
    return struct.unpack_from('<H', b, o)[0]


def u32(b: bytes, o: int) -> int:
    return struct.unpack_from('<I', b, o)[0]


@dataclass
class NarcSections:
    """Section offsets of a NARC; entries are relative to the GMIF data."""
    btaf_off: int
    btnf_off: int
    btnf_size: int
    gmif_off: int
    entries: List[FATEntry] = field(default_factory=list)

    @property
    def data_base(self) -> int:
        return self.gmif_off + 8

    @property
    def fnt_offset(self) -> int:
        return self.btnf_off + 8

    @property
    def fnt_size(self) -> int:
        return self.btnf_size - 8


def _expect(blob: bytes, off: int, magic: bytes) -> int:
    if off + 8 > len(blob) or blob[off:off + 4] != magic:
        raise InvalidImageError(f"NARC missing {magic.decode()} at 0x{off:X}")
    size = u32(blob, off + 4)
    if size < 8 or off + size > len(blob):
        raise InvalidImageError(f'NARC section {magic.decode()} size {size} exceeds the image')
    return size


def read_narc_sections(blob: bytes) -> NarcSections:
    if len(blob) < NARC_HEADER_SIZE or blob[:4] != NARC_MAGIC:
        raise InvalidImageError('Not a NARC file')
    bom, version = u16(blob, 4), u16(blob, 6)
    if bom != NARC_BOM or version != NARC_VERSION:
        raise UnsupportedVersionError(f'NARC BOM 0x{bom:04X} / version 0x{version:04X} not supported')
    off = u16(blob, 12) or NARC_HEADER_SIZE
    btaf_size = _expect(blob, off, b'BTAF')
    count = u32(blob, off + 8)
    if 12 + count * 8 > btaf_size:
        raise InvalidImageError(f'BTAF of {btaf_size} bytes cannot hold {count} entries')
    entries = [FATEntry.from_bytes(blob, off + 12 + i * 8) for i in range(count)]
    btnf_off = off + btaf_size
    btnf_size = _expect(blob, btnf_off, b'BTNF')
    gmif_off = btnf_off + btnf_size
    _expect(blob, gmif_off, b'GMIF')
    return NarcSections(off, btnf_off, btnf_size, gmif_off, entries)


def parse_narc(blob: bytes) -> List[bytes]:
    sections = read_narc_sections(blob)
    base = sections.data_base
    return [blob[base + e.start_addr:base + e.end_addr] for e in sections.entries]


def build_narc(files: List[bytes], fnt: Optional[bytes] = None, alignment: int = 4) -> bytes:
    gmif_data = bytearray()
    btaf_entries = bytearray()
    for file_data in files:
        start = len(gmif_data)
        gmif_data.extend(file_data)
        btaf_entries.extend(struct.pack('<II', start, len(gmif_data)))
        gmif_data.extend(b'\x00' * (align_up(len(gmif_data), alignment) - len(gmif_data)))
    gmif_section = b'GMIF' + struct.pack('<I', 8 + len(gmif_data)) + bytes(gmif_data)
    btaf_size = align_up(12 + len(btaf_entries), 4)
    btaf_section = b'BTAF' + struct.pack('<II', btaf_size, len(files)) + bytes(btaf_entries)
    btaf_section += b'\x00' * (btaf_size - len(btaf_section))
    if fnt is None:
        fnt = struct.pack('<IHH', 4, 0, 1)
    fnt = fnt + b'\x00' * (-len(fnt) & 3)
    btnf_section = b'BTNF' + struct.pack('<I', 8 + len(fnt)) + fnt
    total_size = NARC_HEADER_SIZE + len(btaf_section) + len(btnf_section) + len(gmif_section)
    header = NARC_MAGIC + struct.pack('<HHIHH', NARC_BOM, NARC_VERSION, total_size, NARC_HEADER_SIZE, 3)
    return header + btaf_section + btnf_section + gmif_section
