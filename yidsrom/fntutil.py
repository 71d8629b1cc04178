import struct
from typing import Dict, List

from yidsrom.errors import InvalidImageError

ROOT_DIR_ID = 61440
SUBDIR_FLAG = 128


def parse_fnt(data: bytes, fnt_offset: int = 0, fnt_size: int = None) -> Dict[str, int]:
    """
    Walk a file name table starting at the root directory and map every
    lower-cased path ('dir/name.ext') to its file index.
    """
    if fnt_size is None:
        fnt_size = len(data) - fnt_offset
    if fnt_offset < 0 or fnt_offset + fnt_size > len(data):
        raise InvalidImageError(f'FNT at 0x{fnt_offset:X} (+{fnt_size}) lies outside the image')
    index: Dict[str, int] = {}
    if fnt_size >= 8:
        _walk_dir(data, fnt_offset, fnt_offset + fnt_size, ROOT_DIR_ID, '', index, set())
    return index


def _walk_dir(data: bytes, fnt_base: int, fnt_end: int, dir_id: int, parent_path: str, index: Dict[str, int], seen: set) -> None:
    dir_num = dir_id & 4095
    if dir_num in seen:
        raise InvalidImageError(f'FNT directory 0x{dir_id:04X} is referenced twice')
    seen.add(dir_num)
    dir_entry_offset = fnt_base + dir_num * 8
    if dir_entry_offset + 8 > fnt_end:
        raise InvalidImageError(f'FNT directory 0x{dir_id:04X} lies outside the table')
    entries_rel, first_idx = struct.unpack_from('<IH', data, dir_entry_offset)
    pos = fnt_base + entries_rel
    current_file_idx = first_idx
    while pos < fnt_end:
        type_len = data[pos]
        pos += 1
        if type_len == 0:
            break
        name_len = type_len & 127
        if pos + name_len > fnt_end:
            raise InvalidImageError(f'FNT name at 0x{pos:X} runs past the table')
        name = data[pos:pos + name_len].decode('ascii', errors='replace')
        pos += name_len
        full_path = (f'{parent_path}/{name}' if parent_path else name).lower()
        if type_len & SUBDIR_FLAG:
            if pos + 2 > fnt_end:
                raise InvalidImageError(f'FNT subdirectory id at 0x{pos:X} runs past the table')
            sub_dir_id = struct.unpack_from('<H', data, pos)[0]
            pos += 2
            _walk_dir(data, fnt_base, fnt_end, sub_dir_id, full_path, index, seen)
        else:
            index[full_path] = current_file_idx
            current_file_idx += 1


def build_fnt(names: List[str]) -> bytes:
    """FNT with a single root directory holding names in file-index order."""
    entries = bytearray()
    for name in names:
        raw = name.encode('ascii')
        if not 0 < len(raw) < SUBDIR_FLAG:
            raise ValueError(f"File name '{name}' must be 1..127 ASCII characters")
        entries.append(len(raw))
        entries.extend(raw)
    entries.append(0)
    table = struct.pack('<IHH', 8, 0, 1) + bytes(entries)
    return table + b'\x00' * (-len(table) & 3)
