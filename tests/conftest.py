"""
Shared pytest fixtures for the editor core tests
"""

import tempfile
from pathlib import Path

import pytest

from tests import romfactory
from yidsrom.courseparser import EntranceExitList, MapEntrance, MapExit
from yidsrom.mapparser import decode_map_file
from yidsrom.settings import EditorSettings


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def settings():
    return EditorSettings()


@pytest.fixture
def map_bytes():
    return romfactory.map_file()


@pytest.fixture
def sample_map(map_bytes):
    """The synthetic map with the links its course stores for it"""
    links = EntranceExitList([MapEntrance(10, 20, 0)], [MapExit(30, 40, 2, 0, 0)])
    return decode_map_file(map_bytes, '1-1_main', links, 3)


@pytest.fixture
def narc_image():
    return romfactory.make_narc()


@pytest.fixture
def nds_image():
    return romfactory.make_nds()
