import logging
from typing import Callable, List, Optional

from yidsrom.errors import RomError
from yidsrom.maploader import MapData, MapLoader

logger = logging.getLogger(__name__)


class MapEntry:

    def __init__(self, course: str, map_id: int, name: str):
        self.course = course
        self.map_id = map_id
        self.name = name

    def __str__(self):
        return f'{self.map_id:02d}  {self.name}'

    def __repr__(self):
        return f"MapEntry(course='{self.course}', map_id={self.map_id}, name='{self.name}')"


class MapSelector:
    """Course and map picking on top of a MapLoader, reported through callbacks."""

    def __init__(self, map_loader: Optional[MapLoader] = None):
        self.map_loader = map_loader or MapLoader()
        self.courses: List[str] = []
        self.map_entries: List[MapEntry] = []
        self.selected_course: Optional[str] = None
        self.selected_map: Optional[MapEntry] = None
        self.on_courses_loaded: Optional[Callable[[List[str]], None]] = None
        self.on_maps_loaded: Optional[Callable[[List[MapEntry]], None]] = None
        self.on_map_selected: Optional[Callable[[MapEntry], None]] = None
        self.on_map_data_loaded: Optional[Callable[[MapData], None]] = None
        self.map_loader.on_map_loaded = self._on_map_data_loaded

    def refresh_courses(self) -> List[str]:
        self.courses = self.map_loader.list_courses()
        self.map_entries = []
        self.selected_course = None
        self.selected_map = None
        logger.info('[MapSelector] %d courses', len(self.courses))
        if self.on_courses_loaded:
            self.on_courses_loaded(self.courses)
        return self.courses

    def select_course(self, course: str) -> List[MapEntry]:
        names = self.map_loader.list_maps(course)
        self.selected_course = course
        self.map_entries = [MapEntry(course, i, name) for i, name in enumerate(names)]
        if self.on_maps_loaded:
            self.on_maps_loaded(self.map_entries)
        return self.map_entries

    def select_course_by_index(self, index: int) -> Optional[List[MapEntry]]:
        if 0 <= index < len(self.courses):
            return self.select_course(self.courses[index])
        logger.warning('[MapSelector] Invalid course index %d', index)
        return None

    def select_map_by_index(self, index: int) -> Optional[MapData]:
        if not 0 <= index < len(self.map_entries):
            logger.warning('[MapSelector] Invalid map index %d', index)
            return None
        entry = self.map_entries[index]
        self.selected_map = entry
        if self.on_map_selected:
            self.on_map_selected(entry)
        try:
            return self.map_loader.load_map(entry.course, entry.map_id)
        except RomError:
            logger.exception("[MapSelector] Could not load map '%s'", entry.name)
            raise

    def get_loaded_map_data(self) -> Optional[MapData]:
        return self.map_loader.get_current_map()

    def _on_map_data_loaded(self, map_data: MapData):
        logger.debug('[MapSelector] Map data loaded: %s', map_data.map_name)
        if self.on_map_data_loaded:
            self.on_map_data_loaded(map_data)
