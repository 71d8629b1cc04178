import logging
from pathlib import Path
from typing import List, Optional

from PyQt6.QtCore import Qt
from PyQt6.QtGui import QFont
from PyQt6.QtWidgets import QApplication, QFileDialog, QFrame, QHBoxLayout, QLabel, QMainWindow, QMessageBox, QPushButton, QScrollArea, QVBoxLayout, QWidget

from yidsgui.mapselector import MapEntry, MapSelector
from yidsrom.errors import RomError
from yidsrom.maploader import MapData, MapLoader
from yidsrom.settings import EditorSettings

logger = logging.getLogger(__name__)

COLOR_BG_MAIN = '#1f4a2b'
COLOR_ELEMENT_BG = '#2d5e38'
COLOR_ACCENT = '#8cc63f'
COLOR_HOVER = '#3b7546'
COLOR_TEXT = '#FFFFFF'
WINDOW_WIDTH = 1000
WINDOW_HEIGHT = 700
GLOBAL_STYLE = f'''
    QMainWindow, QWidget {{
        background-color: {COLOR_BG_MAIN};
        color: {COLOR_TEXT};
        font-family: Arial;
    }}
    QPushButton.primary {{
        background-color: {COLOR_ELEMENT_BG};
        border: 2px solid {COLOR_ACCENT};
        border-radius: 10px;
        font-size: 12px;
        font-weight: bold;
        min-height: 40px;
    }}
    QPushButton.primary:hover, QPushButton.small:hover {{
        background-color: {COLOR_HOVER};
    }}
    QPushButton.primary:disabled, QPushButton.small:disabled {{
        color: #6a7a6a;
        border-color: #3a5a40;
    }}
    QPushButton.small {{
        background-color: {COLOR_ELEMENT_BG};
        border: 1px solid {COLOR_ACCENT};
        border-radius: 5px;
        font-size: 10px;
        min-height: 30px;
        text-align: left;
        padding: 2px 8px;
    }}
    QFrame.panel {{
        background-color: {COLOR_ELEMENT_BG};
        border: 2px solid {COLOR_ACCENT};
        border-radius: 10px;
    }}
    QLabel {{
        background-color: transparent;
        font-size: 11px;
    }}
'''


def _primary_btn(text: str, parent: QWidget = None) -> QPushButton:
    btn = QPushButton(text, parent)
    btn.setProperty('class', 'primary')
    btn.setFont(QFont('Arial', 12, QFont.Weight.Bold))
    return btn


def _small_btn(text: str, parent: QWidget = None) -> QPushButton:
    btn = QPushButton(text, parent)
    btn.setProperty('class', 'small')
    btn.setFont(QFont('Arial', 10))
    return btn


def _panel_frame(parent: QWidget = None) -> QFrame:
    frame = QFrame(parent)
    frame.setProperty('class', 'panel')
    return frame


class ScrollContainer(QScrollArea):

    def __init__(self, parent: QWidget = None):
        super().__init__(parent)
        self.setWidgetResizable(True)
        self.setHorizontalScrollBarPolicy(Qt.ScrollBarPolicy.ScrollBarAlwaysOff)
        self._inner = QWidget()
        self._layout = QVBoxLayout(self._inner)
        self._layout.setContentsMargins(5, 5, 5, 5)
        self._layout.setSpacing(2)
        self._layout.addStretch()
        self.setWidget(self._inner)

    def add_widget(self, widget: QWidget):
        self._layout.insertWidget(self._layout.count() - 1, widget)

    def item_count(self) -> int:
        return self._layout.count() - 1

    def clear_items(self):
        while self._layout.count() > 1:
            item = self._layout.takeAt(0)
            if item.widget():
                item.widget().deleteLater()


def format_summary(map_data: MapData) -> str:
    summary = map_data.map.summary()
    lines = [f"Map: {summary['name']}", f"Music: 0x{summary['music']:02X}", '']
    for which_bg, width, height, tileset in summary['layers']:
        lines.append(f'BG{which_bg}: {width} x {height}' + (f'  ({tileset})' if tileset else ''))
    lines.append(f"Collision: {'yes' if summary['has_collision'] else 'no'}")
    lines.append(f"Sprites: {summary['sprites']}   Paths: {summary['paths']}   Triggers: {summary['triggers']}")
    lines.append(f"Entrances: {summary['entrances']}   Exits: {summary['exits']}")
    if summary['unresolved_exits']:
        lines.append(f"Unresolved exits: {summary['unresolved_exits']}")
    if summary['opaque']:
        lines.append(f"Kept as-is: {', '.join(summary['opaque'])}")
    return '\n'.join(lines)


class RomEditorGUI(QMainWindow):

    def __init__(self, settings: Optional[EditorSettings] = None):
        super().__init__()
        self.setWindowTitle("Yoshi's Island DS - Level Editor")
        self.resize(WINDOW_WIDTH, WINDOW_HEIGHT)
        self.setStyleSheet(GLOBAL_STYLE)
        self.map_loader = MapLoader(settings)
        self.map_selector = MapSelector(self.map_loader)
        self.map_selector.on_courses_loaded = self._handle_courses_loaded
        self.map_selector.on_maps_loaded = self._handle_maps_loaded
        self.map_selector.on_map_data_loaded = self._handle_map_data_loaded
        self.course_buttons: List[QPushButton] = []
        self.map_buttons: List[QPushButton] = []
        self._build_ui()
        self._reset_ui_state()

    def _build_ui(self):
        central = QWidget()
        self.setCentralWidget(central)
        main_layout = QHBoxLayout(central)
        main_layout.setContentsMargins(20, 20, 20, 20)
        main_layout.setSpacing(10)
        left = QWidget()
        left.setFixedWidth(240)
        vbox = QVBoxLayout(left)
        vbox.setContentsMargins(0, 0, 0, 0)
        self.btn_rom = _primary_btn('OPEN ROM')
        self.btn_rom.clicked.connect(self._on_open_rom_clicked)
        vbox.addWidget(self.btn_rom)
        self.course_scroll = self._add_list_panel(vbox, 3)
        self.map_scroll = self._add_list_panel(vbox, 2)
        main_layout.addWidget(left)
        panel = _panel_frame()
        pvbox = QVBoxLayout(panel)
        self.summary_label = QLabel('Open a ROM to begin')
        self.summary_label.setAlignment(Qt.AlignmentFlag.AlignTop | Qt.AlignmentFlag.AlignLeft)
        self.summary_label.setFont(QFont('Arial', 11))
        pvbox.addWidget(self.summary_label)
        main_layout.addWidget(panel, stretch=1)
        right = QWidget()
        right.setFixedWidth(200)
        rvbox = QVBoxLayout(right)
        rvbox.setContentsMargins(0, 0, 0, 0)
        self.btn_commit = _primary_btn('COMMIT MAP')
        self.btn_commit.clicked.connect(self._on_commit_map)
        rvbox.addWidget(self.btn_commit)
        self.btn_save = _primary_btn('SAVE ROM')
        self.btn_save.clicked.connect(self._on_save_rom)
        rvbox.addWidget(self.btn_save)
        rvbox.addStretch()
        main_layout.addWidget(right)
        self._status_lbl = QLabel('Ready')
        self.statusBar().addWidget(self._status_lbl, 1)

    def _add_list_panel(self, vbox: QVBoxLayout, stretch: int) -> ScrollContainer:
        panel = _panel_frame()
        inner = QVBoxLayout(panel)
        inner.setContentsMargins(5, 5, 5, 5)
        scroll = ScrollContainer()
        inner.addWidget(scroll)
        vbox.addWidget(panel, stretch=stretch)
        return scroll

    def _set_status(self, message: str):
        self._status_lbl.setText(message)
        QApplication.processEvents()
        logger.debug('[GUI] %s', message)

    def _reset_ui_state(self):
        self.btn_commit.setEnabled(False)
        self.btn_save.setEnabled(False)
        self._clear_buttons(self.course_buttons, self.course_scroll)
        self._clear_buttons(self.map_buttons, self.map_scroll)
        self._set_status('Ready')

    def _clear_buttons(self, buttons: List[QPushButton], scroll: ScrollContainer):
        buttons.clear()
        scroll.clear_items()

    def _show_error(self, title: str, exc: Exception):
        logger.error('[GUI] %s: %s', title, exc)
        self._set_status(title)
        QMessageBox.critical(self, 'Error', f'{title}\n\n{exc}')

    def _on_open_rom_clicked(self):
        path, _ = QFileDialog.getOpenFileName(self, 'Select ROM', '', 'NDS ROM files (*.nds);;NARC archives (*.narc);;All files (*.*)')
        if path:
            self.open_rom(Path(path))

    def open_rom(self, path: Path) -> bool:
        self._reset_ui_state()
        self._set_status(f'Opening {path.name}...')
        try:
            self.map_loader.load_rom(path)
            self.map_selector.refresh_courses()
        except (RomError, OSError) as exc:
            self._show_error('ROM could not be opened', exc)
            return False
        title, files = self.map_loader.rom_summary()
        self.btn_save.setEnabled(True)
        self._set_status(f'{title}: {files} files, {len(self.map_selector.courses)} courses')
        return True

    def _handle_courses_loaded(self, courses: List[str]):
        self._clear_buttons(self.course_buttons, self.course_scroll)
        for i, name in enumerate(courses):
            btn = _small_btn(name)
            btn.clicked.connect(lambda checked, idx=i: self._on_course_clicked(idx))
            self.course_scroll.add_widget(btn)
            self.course_buttons.append(btn)

    def _on_course_clicked(self, index: int):
        try:
            self.map_selector.select_course_by_index(index)
        except RomError as exc:
            self._show_error('Course could not be read', exc)

    def _handle_maps_loaded(self, entries: List[MapEntry]):
        self._clear_buttons(self.map_buttons, self.map_scroll)
        for i, entry in enumerate(entries):
            btn = _small_btn(str(entry))
            btn.clicked.connect(lambda checked, idx=i: self._on_map_clicked(idx))
            self.map_scroll.add_widget(btn)
            self.map_buttons.append(btn)
        self._set_status(f'{self.map_selector.selected_course}: {len(entries)} maps')

    def _on_map_clicked(self, index: int):
        try:
            self.map_selector.select_map_by_index(index)
        except RomError as exc:
            self._show_error('Map could not be loaded', exc)

    def _handle_map_data_loaded(self, map_data: MapData):
        self.summary_label.setText(format_summary(map_data))
        self.btn_commit.setEnabled(True)
        self._set_status(f'Loaded {map_data.map_name}')

    def _on_commit_map(self):
        try:
            replaced = self.map_loader.commit_current()
        except RomError as exc:
            self._show_error('Map could not be committed', exc)
            return
        self._set_status(f'Committed ({len(replaced)} files replaced)')

    def _on_save_rom(self):
        if self.map_loader.rom_path is None:
            return
        path, _ = QFileDialog.getSaveFileName(self, 'Save ROM', str(self.map_loader.rom_path), 'NDS ROM files (*.nds);;All files (*.*)')
        if not path:
            return
        try:
            saved = self.map_loader.save_rom(Path(path))
        except (RomError, OSError) as exc:
            self._show_error('ROM could not be saved', exc)
            return
        self._set_status(f'Saved {saved.name}')
