import struct
from dataclasses import dataclass, field
from typing import Dict, List, Tuple

from yidsrom.errors import InvalidImageError

NDS_HEADER_SIZE = 512
HEADER_CRC_SPAN = 350
LOGO_CRC16 = 53078


def _build_crc16_table() -> List[int]:
    table = []
    for i in range(256):
        crc = i
        for _ in range(8):
            crc = crc >> 1 ^ 40961 if crc & 1 else crc >> 1
        table.append(crc)
    return table


CRC16_TABLE = _build_crc16_table()


def calculate_crc16(data: bytes) -> int:
    crc = 65535
    for byte in data:
        crc = crc >> 8 & 255 ^ CRC16_TABLE[(crc ^ byte) & 255]
    return crc & 65535


def align_up(value: int, alignment: int) -> int:
    return value + alignment - 1 & ~(alignment - 1)


# (name, offset, struct format) for the header words the editor reads or rewrites
HEADER_FIELDS: Tuple[Tuple[str, int, str], ...] = (('arm9_rom_addr', 32, '<I'), ('arm9_size', 44, '<I'), ('arm7_rom_addr', 48, '<I'), ('arm7_size', 60, '<I'), ('filename_table_addr', 64, '<I'), ('filename_size', 68, '<I'), ('fat_addr', 72, '<I'), ('fat_size', 76, '<I'), ('arm9_overlay_addr', 80, '<I'), ('arm9_overlay_size', 84, '<I'), ('arm7_overlay_addr', 88, '<I'), ('arm7_overlay_size', 92, '<I'), ('icon_title_addr', 104, '<I'), ('rom_size', 128, '<I'), ('header_size', 132, '<I'), ('logo_crc16', 348, '<H'), ('header_crc16', 350, '<H'), ('debug_rom_addr', 352, '<I'))

# Header words holding ROM offsets; moved along with the data they point at
ROM_POINTER_FIELDS = ('arm9_rom_addr', 'arm7_rom_addr', 'filename_table_addr', 'fat_addr', 'arm9_overlay_addr', 'arm7_overlay_addr', 'icon_title_addr', 'debug_rom_addr')


@dataclass
class NDSHeader:
    """
    Cartridge header. Only the words in HEADER_FIELDS are decoded; every
    other byte is carried in raw and written back unchanged.
    """
    raw: bytearray = field(default_factory=lambda: bytearray(NDS_HEADER_SIZE))
    values: Dict[str, int] = field(default_factory=dict)

    @classmethod
    def from_bytes(cls, data: bytes) -> 'NDSHeader':
        if len(data) < NDS_HEADER_SIZE:
            raise InvalidImageError(f'Header data too short: {len(data)} < {NDS_HEADER_SIZE} bytes')
        h = cls(raw=bytearray(data[:NDS_HEADER_SIZE]))
        for name, offset, fmt in HEADER_FIELDS:
            h.values[name] = struct.unpack_from(fmt, h.raw, offset)[0]
        return h

    def to_bytes(self) -> bytes:
        data = bytearray(self.raw)
        for name, offset, fmt in HEADER_FIELDS:
            struct.pack_into(fmt, data, offset, self.values.get(name, 0))
        return bytes(data)

    def __getattr__(self, name: str) -> int:
        values = self.__dict__.get('values', {})
        if name in values:
            return values[name]
        raise AttributeError(name)

    def set(self, name: str, value: int) -> None:
        if name not in self.values:
            raise KeyError(name)
        self.values[name] = value

    def compute_crc(self) -> int:
        return calculate_crc16(self.to_bytes()[:HEADER_CRC_SPAN])

    def update_crc(self) -> None:
        self.values['header_crc16'] = self.compute_crc()

    @property
    def crc_valid(self) -> bool:
        return self.compute_crc() == self.values['header_crc16']

    @property
    def game_title_str(self) -> str:
        return bytes(self.raw[0:12]).decode('ascii', errors='ignore').strip('\x00')

    @property
    def game_code_str(self) -> str:
        return bytes(self.raw[12:16]).decode('ascii', errors='ignore')

    @property
    def fat_entry_count(self) -> int:
        return self.values['fat_size'] // 8


@dataclass
class FATEntry:
    start_addr: int
    end_addr: int

    @property
    def size(self) -> int:
        return self.end_addr - self.start_addr

    @classmethod
    def from_bytes(cls, data: bytes, offset: int = 0) -> 'FATEntry':
        start, end = struct.unpack_from('<II', data, offset)
        return cls(start, end)

    def to_bytes(self) -> bytes:
        return struct.pack('<II', self.start_addr, self.end_addr)

    def shifted(self, delta: int) -> 'FATEntry':
        return FATEntry(self.start_addr + delta, self.end_addr + delta)

    def __repr__(self):
        return f'FATEntry(start=0x{self.start_addr:08X}  end=0x{self.end_addr:08X}  size={self.size:,})'


def read_fat(data: bytes, offset: int, count: int) -> List[FATEntry]:
    if offset < 0 or offset + count * 8 > len(data):
        raise InvalidImageError(f'FAT of {count} entries at 0x{offset:X} runs past the image ({len(data):,} bytes)')
    return [FATEntry.from_bytes(data, offset + i * 8) for i in range(count)]


def write_fat(entries: List[FATEntry]) -> bytes:
    return b''.join(e.to_bytes() for e in entries)
