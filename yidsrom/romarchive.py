import copy
import logging
import struct
from typing import Dict, Iterable, List, Optional, Tuple, Union

from yidsrom.cancel import CancelToken, check_cancel
from yidsrom.courseparser import COURSE_FILE_EXTENSION, Course, course_stem
from yidsrom.errors import ArchiveClosedError, InvalidImageError, NotFoundError, RomError, UnsupportedVersionError
from yidsrom.fntutil import parse_fnt
from yidsrom.mapparser import Map, decode_map_file, encode_map_file
from yidsrom.narcutil import NARC_MAGIC, NarcSections, read_narc_sections
from yidsrom.ndsheader import LOGO_CRC16, NDS_HEADER_SIZE, ROM_POINTER_FIELDS, FATEntry, NDSHeader, align_up, read_fat, write_fat
from yidsrom.settings import EditorSettings

logger = logging.getLogger(__name__)

CourseId = Union[str, int]


def splice_entry(image: bytearray, entries: List[FATEntry], index: int, data: bytes, alignment: int, fill: int, barriers: Iterable[int] = ()) -> Tuple[int, int]:
    """
    Replace the bytes of entries[index] in place.

    The old file's aligned span (capped at the next occupied offset) is
    swapped for the new data padded to the alignment. Every entry starting at
    or after the old end moves by the returned delta. Returns (delta, old_end)
    so callers can move their own offsets the same way.
    """
    entry = entries[index]
    start, old_end = entry.start_addr, entry.end_addr
    later = [e.start_addr for i, e in enumerate(entries) if i != index and e.size > 0 and e.start_addr >= old_end]
    later.extend(p for p in barriers if p >= old_end)
    next_start = min(later, default=len(image))
    old_stop = max(min(align_up(old_end, alignment), next_start), old_end)
    new_end = start + len(data)
    new_stop = align_up(new_end, alignment)
    delta = new_stop - old_stop
    image[start:old_stop] = bytes(data) + bytes([fill]) * (new_stop - new_end)
    for i, e in enumerate(entries):
        if i != index and e.start_addr >= old_end and not e.start_addr == e.end_addr == 0:
            entries[i] = e.shifted(delta)
    entries[index] = FATEntry(start, new_end)
    return (delta, old_end)


def _check_entries(entries: List[FATEntry], data_start: int, data_end: int) -> None:
    used = []
    for i, e in enumerate(entries):
        if e.end_addr < e.start_addr:
            raise InvalidImageError(f'File {i} ends before it starts: {e!r}', subfile=i)
        if e.size == 0:
            continue
        if e.start_addr < data_start or e.end_addr > data_end:
            raise InvalidImageError(f'File {i} lies outside 0x{data_start:X}..0x{data_end:X}: {e!r}', subfile=i)
        used.append((e.start_addr, e.end_addr, i))
    used.sort()
    for (_, prev_end, prev_i), (start, _, i) in zip(used, used[1:]):
        if start < prev_end:
            raise InvalidImageError(f'Files {prev_i} and {i} overlap', subfile=i)


class ArchiveLayout:
    """Where each sub-file lives in an image, and how to rebuild the image after edits."""
    kind = ''

    def __init__(self, entries: List[FATEntry], paths: Dict[str, int]):
        self.entries = entries
        self.paths = paths
        self.names: Dict[int, str] = {index: path for path, index in paths.items()}

    def describe(self) -> Dict[str, object]:
        return {'kind': self.kind, 'files': len(self.entries)}

    def rebuild(self, image: bytes, replacements: Dict[int, bytes], settings: EditorSettings, cancel: Optional[CancelToken] = None) -> Tuple[bytes, 'ArchiveLayout']:
        raise NotImplementedError


class NdsLayout(ArchiveLayout):
    kind = 'NDS'

    def __init__(self, header: NDSHeader, entries: List[FATEntry], paths: Dict[str, int]):
        super().__init__(entries, paths)
        self.header = header

    @classmethod
    def parse(cls, image: bytes, settings: EditorSettings) -> 'NdsLayout':
        if len(image) < NDS_HEADER_SIZE:
            raise InvalidImageError(f'Image too small: {len(image)} bytes')
        header = NDSHeader.from_bytes(image)
        if header.logo_crc16 != LOGO_CRC16:
            raise InvalidImageError(f'Not an NDS image (logo checksum 0x{header.logo_crc16:04X})')
        if header.game_code_str not in settings.supported_game_codes:
            raise UnsupportedVersionError(f"Game code '{header.game_code_str}' is not supported", game_code=header.game_code_str)
        if settings.verify_header_crc and not header.crc_valid:
            raise InvalidImageError(f'Header CRC 0x{header.header_crc16:04X} does not match 0x{header.compute_crc():04X}')
        entries = read_fat(image, header.fat_addr, header.fat_entry_count)
        _check_entries(entries, NDS_HEADER_SIZE, len(image))
        paths = parse_fnt(image, header.filename_table_addr, header.filename_size)
        return cls(header, entries, paths)

    def describe(self) -> Dict[str, object]:
        info = super().describe()
        info.update(title=self.header.game_title_str, game_code=self.header.game_code_str, rom_size=self.header.rom_size)
        return info

    def rebuild(self, image, replacements, settings, cancel=None):
        for index in replacements:
            entry = self.entries[index]
            if entry.start_addr < NDS_HEADER_SIZE:
                raise NotFoundError(f'File {index} is an unused FAT slot ({entry!r})', subfile=index)
        out = bytearray(image)
        header = copy.deepcopy(self.header)
        entries = list(self.entries)
        for index in sorted(replacements, key=lambda i: entries[i].start_addr, reverse=True):
            pointers = [header.values[name] for name in ROM_POINTER_FIELDS if header.values[name]]
            delta, old_end = splice_entry(out, entries, index, replacements[index], settings.nds_file_alignment, settings.nds_fill_byte, pointers)
            for name in ROM_POINTER_FIELDS:
                if header.values[name] >= old_end:
                    header.set(name, header.values[name] + delta)
            if header.rom_size >= old_end:
                header.set('rom_size', header.rom_size + delta)
            logger.debug('[NDS] Spliced file %d: delta %+d after 0x%X', index, delta, old_end)
            check_cancel(cancel, f'file {index}')
        fat = write_fat(entries)
        out[header.fat_addr:header.fat_addr + len(fat)] = fat
        header.update_crc()
        out[:NDS_HEADER_SIZE] = header.to_bytes()
        return (bytes(out), NdsLayout(header, entries, self.paths))


class NarcLayout(ArchiveLayout):
    kind = 'NARC'

    def __init__(self, sections: NarcSections, paths: Dict[str, int]):
        base = sections.data_base
        super().__init__([e.shifted(base) for e in sections.entries], paths)
        self.sections = sections

    @classmethod
    def parse(cls, image: bytes, settings: EditorSettings) -> 'NarcLayout':
        sections = read_narc_sections(image)
        gmif_end = sections.gmif_off + struct.unpack_from('<I', image, sections.gmif_off + 4)[0]
        layout = cls(sections, parse_fnt(image, sections.fnt_offset, sections.fnt_size))
        _check_entries(layout.entries, sections.data_base, gmif_end)
        return layout

    def rebuild(self, image, replacements, settings, cancel=None):
        out = bytearray(image)
        entries = list(self.entries)
        gmif_size_off = self.sections.gmif_off + 4
        total = 0
        for index in sorted(replacements, key=lambda i: entries[i].start_addr, reverse=True):
            gmif_end = self.sections.gmif_off + struct.unpack_from('<I', out, gmif_size_off)[0]
            delta, _ = splice_entry(out, entries, index, replacements[index], settings.narc_alignment, 0, [gmif_end])
            struct.pack_into('<I', out, gmif_size_off, gmif_end - self.sections.gmif_off + delta)
            total += delta
            logger.debug('[NARC] Spliced file %d: delta %+d', index, delta)
            check_cancel(cancel, f'file {index}')
        struct.pack_into('<I', out, 8, struct.unpack_from('<I', out, 8)[0] + total)
        base = self.sections.data_base
        relative = [e.shifted(-base) for e in entries]
        btaf = write_fat(relative)
        out[self.sections.btaf_off + 12:self.sections.btaf_off + 12 + len(btaf)] = btaf
        sections = copy.copy(self.sections)
        sections.entries = relative
        return (bytes(out), NarcLayout(sections, self.paths))


def detect_layout(image: bytes, settings: EditorSettings) -> ArchiveLayout:
    if image[:4] == NARC_MAGIC:
        return NarcLayout.parse(image, settings)
    return NdsLayout.parse(image, settings)


class RomArchive:
    """
    An opened game image (full NDS cartridge or a bare NARC) and the
    course/map operations on top of it. The image bytes are never edited in
    place: every commit builds a new image and swaps it in once complete.
    """

    def __init__(self, settings: Optional[EditorSettings] = None):
        self.settings = settings or EditorSettings()
        self._image: Optional[bytes] = None
        self._layout: Optional[ArchiveLayout] = None

    @classmethod
    def from_image(cls, image: bytes, settings: Optional[EditorSettings] = None) -> 'RomArchive':
        archive = cls(settings)
        archive.open(image)
        return archive

    def open(self, image: bytes) -> 'RomArchive':
        image = bytes(image)
        try:
            layout = detect_layout(image, self.settings)
        except RomError:
            self.close()
            raise
        self._image, self._layout = image, layout
        logger.info('[RomArchive] Opened %s image: %d files, %s bytes', layout.kind, len(layout.entries), f'{len(image):,}')
        return self

    def close(self) -> None:
        self._image = None
        self._layout = None
        logger.debug('[RomArchive] Closed')

    @property
    def is_open(self) -> bool:
        return self._layout is not None

    def _require_open(self) -> ArchiveLayout:
        if self._layout is None:
            raise ArchiveClosedError('Archive is not open')
        return self._layout

    @property
    def kind(self) -> str:
        return self._require_open().kind

    @property
    def file_count(self) -> int:
        return len(self._require_open().entries)

    def info(self) -> Dict[str, object]:
        info = self._require_open().describe()
        info['size'] = len(self._image)
        return info

    def file_range(self, index: int) -> Tuple[int, int]:
        layout = self._require_open()
        if not isinstance(index, int) or not 0 <= index < len(layout.entries):
            raise NotFoundError(f'No file {index}', subfile=index)
        entry = layout.entries[index]
        return (entry.start_addr, entry.end_addr)

    def read_file(self, index: int) -> bytes:
        start, end = self.file_range(index)
        return self._image[start:end]

    def file_name(self, index: int) -> Optional[str]:
        return self._require_open().names.get(index)

    def find_file(self, name: str) -> int:
        """Exact FNT path first, then the first path ending in '/name'."""
        paths = self._require_open().paths
        key = name.strip('/').lower()
        if key in paths:
            return paths[key]
        for path, index in sorted(paths.items(), key=lambda item: item[1]):
            if path.endswith('/' + key):
                return index
        raise NotFoundError(f"No file named '{name}'", name=name)

    def has_file(self, name: str) -> bool:
        try:
            self.find_file(name)
        except NotFoundError:
            return False
        return True

    def courses(self) -> List[str]:
        layout = self._require_open()
        found = sorted((index, path) for path, index in layout.paths.items() if path.endswith(COURSE_FILE_EXTENSION))
        return [course_stem(path.rsplit('/', 1)[-1]) for _, path in found]

    def _course_index(self, course_id: CourseId) -> int:
        if isinstance(course_id, int) and not isinstance(course_id, bool):
            self.file_range(course_id)
            return course_id
        name = str(course_id)
        if not name.lower().endswith(COURSE_FILE_EXTENSION):
            name += COURSE_FILE_EXTENSION
        return self.find_file(name)

    def _decode_course(self, index: int) -> Course:
        name = self.file_name(index) or str(index)
        try:
            return Course.decode(self.read_file(index), name)
        except RomError as exc:
            raise exc.add_context(subfile=index, name=name)

    def extract_course(self, course_id: CourseId) -> Course:
        course = self._decode_course(self._course_index(course_id))
        course.resolve_exits(self.has_file)
        return course

    def maps(self, course_id: CourseId) -> List[str]:
        return [m.map_name for m in self._decode_course(self._course_index(course_id)).maps]

    def extract_map(self, course_id: CourseId, map_id: int, cancel: Optional[CancelToken] = None) -> Map:
        course = self.extract_course(course_id)
        course_map = course.get_map(map_id)
        index = self.find_file(course_map.filename)
        name = self.file_name(index) or course_map.filename
        try:
            map_ = decode_map_file(self.read_file(index), course_map.map_name, copy.deepcopy(course_map.links), course_map.music, cancel)
        except RomError as exc:
            raise exc.add_context(subfile=index, name=name)
        logger.info("[RomArchive] Loaded map '%s' (%s #%d)", course_map.map_name, course.name, map_id)
        return map_

    def commit_map(self, course_id: CourseId, map_id: int, map_: Map, cancel: Optional[CancelToken] = None) -> List[int]:
        """
        Write map_ back as map map_id of the course. Returns the indices of the
        sub-files that were replaced; the image is untouched on any error.
        """
        course_index = self._course_index(course_id)
        course = self._decode_course(course_index)
        course_map = course.get_map(map_id)
        map_index = self.find_file(course_map.filename)
        if map_.name and map_.name != course_map.map_name:
            logger.warning("[RomArchive] Map is named '%s' but is stored as '%s'", map_.name, course_map.map_name)
        try:
            map_bytes = encode_map_file(map_, self.settings, cancel)
        except RomError as exc:
            raise exc.add_context(subfile=map_index, name=self.file_name(map_index))
        replacements: Dict[int, bytes] = {}
        if map_bytes != self.read_file(map_index):
            replacements[map_index] = map_bytes
        updated = copy.deepcopy(course)
        updated.maps[map_id].links = copy.deepcopy(map_.links)
        updated.maps[map_id].music = map_.music
        if updated != course:
            replacements[course_index] = updated.encode()
        if replacements:
            self.replace_files(replacements, cancel)
        logger.info("[RomArchive] Committed map '%s': replaced files %s", course_map.map_name, sorted(replacements))
        return sorted(replacements)

    def replace_files(self, replacements: Dict[int, bytes], cancel: Optional[CancelToken] = None) -> None:
        layout = self._require_open()
        for index in replacements:
            self.file_range(index)
        check_cancel(cancel, 'commit')
        image, new_layout = layout.rebuild(self._image, replacements, self.settings, cancel)
        check_cancel(cancel, 'commit')
        self._image, self._layout = image, new_layout

    def export(self) -> bytes:
        self._require_open()
        return self._image

    def snapshot(self) -> 'RomArchive':
        """An independent archive over the same image, for a worker thread."""
        clone = RomArchive(copy.deepcopy(self.settings))
        if self._layout is not None:
            clone._image = self._image
            clone._layout = copy.deepcopy(self._layout)
        return clone


def open_rom(image: bytes, settings: Optional[EditorSettings] = None) -> RomArchive:
    return RomArchive.from_image(image, settings)
