"""
Tests for settings, logging setup, the MapLoader session and the GUI shell
"""

import json
import logging
import os

import pytest

from yidsrom.errors import ArchiveClosedError, InvalidImageError
from yidsrom.logging_config import LOGGER_NAMES, setup_logging
from yidsrom.maploader import MapLoader
from yidsrom.romarchive import open_rom
from yidsrom.settings import EditorSettings, load_settings


class TestSettings:

    def test_defaults(self):
        settings = load_settings(environ={})
        assert settings == EditorSettings()
        assert settings.nds_file_alignment == 0x200

    def test_file_then_environment(self, temp_dir):
        path = temp_dir / 'yidsrom.json'
        path.write_text(json.dumps({'lz_chain_depth': 8, 'narc_alignment': 16, 'bogus': 1}))
        settings = load_settings(path, environ={'YIDSROM_NARC_ALIGNMENT': '0x20', 'YIDSROM_LZ_VRAM_SAFE': 'yes'})
        assert settings.lz_chain_depth == 8
        assert settings.narc_alignment == 0x20
        assert settings.lz_vram_safe is True

    def test_game_codes_from_environment(self):
        settings = load_settings(environ={'YIDSROM_SUPPORTED_GAME_CODES': 'aywe, ayzz'})
        assert settings.supported_game_codes == ('AYWE', 'AYZZ')

    def test_debug_flag(self):
        assert load_settings(environ={'YIDSROM_DEBUG': '1'}).log_level == 'DEBUG'

    def test_invalid_alignment(self):
        with pytest.raises(ValueError):
            EditorSettings(nds_file_alignment=0x300)

    def test_save_and_load(self, temp_dir):
        path = temp_dir / 'settings.json'
        EditorSettings(lz_chain_depth=12).save(path)
        assert load_settings(path, environ={}).lz_chain_depth == 12


@pytest.fixture
def reset_loggers():
    yield
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        for handler in list(logger.handlers):
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True


class TestLogging:

    def test_file_handler(self, temp_dir, reset_loggers):
        logger = setup_logging(temp_dir, 'INFO')
        logging.getLogger('yidsrom.romarchive').info('hello')
        for handler in logger.handlers:
            handler.flush()
        assert 'hello' in (temp_dir / 'yidsrom.log').read_text(encoding='utf-8')
        assert not logger.propagate

    def test_debug_environment(self, monkeypatch, reset_loggers):
        monkeypatch.setenv('YIDSROM_DEBUG', '1')
        logger = setup_logging(None, 'WARNING')
        assert logger.level == logging.DEBUG


class TestMapLoader:

    def test_load_edit_save(self, temp_dir, narc_image):
        rom_path = temp_dir / 'course.narc'
        rom_path.write_bytes(narc_image)
        loader = MapLoader()
        seen = []
        loader.on_map_loaded = seen.append
        loader.load_rom(rom_path)
        assert loader.list_courses() == ['1-1']
        data = loader.load_map('1-1', 0)
        assert seen == [data]
        data.map.set_tile(1, 1, 1, 0x42)
        assert loader.commit_current() == [1]
        out = loader.save_rom(temp_dir / 'edited.narc')
        reopened = open_rom(out.read_bytes())
        assert reopened.extract_map('1-1', 0).layer(1).get_tile(1, 1).tile_id == 0x42
        assert rom_path.read_bytes() == narc_image

    def test_failed_open_keeps_session(self, temp_dir, narc_image):
        good = temp_dir / 'good.narc'
        good.write_bytes(narc_image)
        bad = temp_dir / 'bad.nds'
        bad.write_bytes(b'\x00' * 64)
        loader = MapLoader()
        loader.load_rom(good)
        with pytest.raises(InvalidImageError):
            loader.load_rom(bad)
        assert loader.rom_path == good
        assert loader.list_courses() == ['1-1']

    def test_commit_without_map(self):
        with pytest.raises(ArchiveClosedError):
            MapLoader().commit_current()

    def test_clear(self, temp_dir, nds_image):
        rom_path = temp_dir / 'game.nds'
        rom_path.write_bytes(nds_image)
        loader = MapLoader()
        loader.load_rom(rom_path)
        assert loader.rom_summary() == ('YOSHI DS', 3)
        loader.clear()
        assert loader.list_courses() == []


class TestGui:

    def test_window_lists_courses_and_maps(self, temp_dir, narc_image, monkeypatch):
        monkeypatch.setenv('QT_QPA_PLATFORM', os.environ.get('QT_QPA_PLATFORM', 'offscreen'))
        pytest.importorskip('PyQt6.QtWidgets')
        from PyQt6.QtWidgets import QApplication
        from yidsgui.gui import RomEditorGUI

        app = QApplication.instance() or QApplication([])
        rom_path = temp_dir / 'course.narc'
        rom_path.write_bytes(narc_image)
        window = RomEditorGUI()
        assert window.open_rom(rom_path)
        assert len(window.course_buttons) == 1
        window._on_course_clicked(0)
        assert len(window.map_buttons) == 1
        window._on_map_clicked(0)
        assert 'Map: 1-1_main' in window.summary_label.text()
        assert window.btn_commit.isEnabled()
        window.close()
        app.processEvents()
