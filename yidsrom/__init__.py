from yidsrom.cancel import CancelToken
from yidsrom.chunkutil import Chunk, parse, serialize
from yidsrom.courseparser import Course, CourseMap, EntranceExitList, MapEntrance, MapExit
from yidsrom.errors import RomError, FormatError, ArchiveError, NotFoundError, MutationError, OperationCancelledError
from yidsrom.lz10util import compress_lz10, decompress_lz10
from yidsrom.maploader import MapLoader, MapData
from yidsrom.mapparser import Map, OpaqueSegment, decode_map_file, encode_map_file
from yidsrom.narcutil import parse_narc, build_narc
from yidsrom.romarchive import RomArchive, open_rom
from yidsrom.settings import EditorSettings, load_settings
__all__ = ['CancelToken', 'Chunk', 'parse', 'serialize', 'Course', 'CourseMap', 'EntranceExitList', 'MapEntrance', 'MapExit', 'RomError', 'FormatError', 'ArchiveError', 'NotFoundError', 'MutationError', 'OperationCancelledError', 'compress_lz10', 'decompress_lz10', 'MapLoader', 'MapData', 'Map', 'OpaqueSegment', 'decode_map_file', 'encode_map_file', 'parse_narc', 'build_narc', 'RomArchive', 'open_rom', 'EditorSettings', 'load_settings']
