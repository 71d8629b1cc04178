import logging
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from yidsrom.cancel import CancelToken
from yidsrom.courseparser import Course
from yidsrom.errors import ArchiveClosedError
from yidsrom.mapparser import Map
from yidsrom.romarchive import CourseId, RomArchive
from yidsrom.settings import EditorSettings

logger = logging.getLogger(__name__)


class MapData:

    def __init__(self, course_id: CourseId, map_id: int, map_: Map):
        self.course_id = course_id
        self.map_id = map_id
        self.map = map_
        self.dirty = False

    @property
    def map_name(self) -> str:
        return self.map.name

    def get_layer_count(self) -> int:
        return len(self.map.layers)

    def has_collision(self) -> bool:
        return self.map.collision is not None


class MapLoader:
    """
    Editing session: one ROM file on disk, one archive, and the map
    currently being edited. All disk I/O of the core goes through here.
    """

    def __init__(self, settings: Optional[EditorSettings] = None):
        self.settings = settings or EditorSettings()
        self.archive = RomArchive(self.settings)
        self.rom_path: Optional[Path] = None
        self.current_map: Optional[MapData] = None
        self.on_map_loaded: Optional[Callable[[MapData], None]] = None

    def load_rom(self, rom_path: Path) -> RomArchive:
        rom_path = Path(rom_path)
        image = rom_path.read_bytes()
        archive = RomArchive(self.settings)
        archive.open(image)
        self.archive = archive
        self.rom_path = rom_path
        self.current_map = None
        logger.info('[MapLoader] Loaded %s', rom_path.name)
        return archive

    def list_courses(self) -> List[str]:
        return self.archive.courses() if self.archive.is_open else []

    def list_maps(self, course_id: CourseId) -> List[str]:
        return self.archive.maps(course_id)

    def get_course(self, course_id: CourseId) -> Course:
        return self.archive.extract_course(course_id)

    def load_map(self, course_id: CourseId, map_id: int, cancel: Optional[CancelToken] = None) -> MapData:
        map_ = self.archive.extract_map(course_id, map_id, cancel)
        map_data = MapData(course_id, map_id, map_)
        self.current_map = map_data
        logger.info('[MapLoader] %s: %d layers, collision=%s', map_data.map_name, map_data.get_layer_count(), map_data.has_collision())
        if self.on_map_loaded:
            self.on_map_loaded(map_data)
        return map_data

    def get_current_map(self) -> Optional[MapData]:
        return self.current_map

    def commit_current(self, cancel: Optional[CancelToken] = None) -> List[int]:
        if self.current_map is None:
            raise ArchiveClosedError('No map loaded')
        data = self.current_map
        replaced = self.archive.commit_map(data.course_id, data.map_id, data.map, cancel)
        data.dirty = False
        return replaced

    def save_rom(self, output_path: Optional[Path] = None) -> Path:
        """Write the archive's current image; defaults to the loaded path."""
        target = Path(output_path) if output_path is not None else self.rom_path
        if target is None:
            raise ArchiveClosedError('No ROM path to save to')
        image = self.archive.export()
        tmp = target.with_name(target.name + '.tmp')
        tmp.write_bytes(image)
        tmp.replace(target)
        logger.info('[MapLoader] Saved %s (%s bytes)', target.name, f'{len(image):,}')
        return target

    def rom_summary(self) -> Tuple[str, int]:
        info = self.archive.info()
        return (str(info.get('title') or info['kind']), int(info['files']))

    def clear(self):
        self.current_map = None
        self.archive.close()
        self.rom_path = None
        logger.debug('[MapLoader] Cleared session')
