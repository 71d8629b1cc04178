"""
Tests for tiles, layers, sprites, paths and trigger regions
"""

import struct

import pytest

from tests import romfactory
from yidsrom.errors import InvalidPathError, InvalidRegionError, InvalidSettingsError, InvalidTileError, MalformedDataError, NotFoundError, OutOfGridBoundsError, UnknownSpriteTypeError
from yidsrom.layerdata import LayerInfo, TileLayer
from yidsrom.mapparser import decode_map_file, encode_map_file
from yidsrom.pathdata import PathList, PathPoint
from yidsrom.sprites import SpriteDatabase, SpriteList, default_database
from yidsrom.tiles import BLANK_TILE, CollisionLayer, MapTile, TileGrid
from yidsrom.triggerdata import TriggerList, TriggerRegion

PATH_SPRITE_CSV = 'id,name,description,settings_length,fields\n0x57,Path Platform,,8,path_id:u8;speed:u8;direction:u8\n'


class TestMapTile:

    def test_bit_layout(self):
        tile = MapTile.from_short(0x3C05)
        assert tile.tile_id == 5
        assert tile.flip_h and tile.flip_v
        assert tile.palette == 3
        assert tile.to_short() == 0x3C05

    def test_validate_rejects_large_id(self):
        with pytest.raises(InvalidTileError):
            MapTile(tile_id=0x400).validate()


class TestTileGrid:

    def test_bounds(self):
        grid = TileGrid(4, 3)
        for y in range(3):
            for x in range(4):
                grid.set_tile(x, y, MapTile(tile_id=x + y))
                assert grid.get_tile(x, y).tile_id == x + y
        for x, y in [(4, 0), (0, 3), (-1, 0), (10, 10)]:
            with pytest.raises(OutOfGridBoundsError):
                grid.set_tile(x, y, MapTile(tile_id=1))

    def test_int_keeps_flips_and_palette(self):
        grid = TileGrid(2, 2, [MapTile(1, True, False, 4)] * 4)
        grid.set_tile(1, 1, 9)
        assert grid.get_tile(1, 1) == MapTile(9, True, False, 4)

    def test_fill_rect_is_all_or_nothing(self):
        grid = TileGrid(4, 4)
        with pytest.raises(InvalidTileError):
            grid.fill_rect(0, 0, 2, 2, MapTile(tile_id=0x800))
        assert all(t == BLANK_TILE for t in grid.tiles)
        grid.fill_rect(1, 1, 2, 2, 3)
        assert grid.get_tile(2, 2).tile_id == 3
        assert grid.get_tile(0, 0).tile_id == 0

    def test_offset_header_round_trip(self):
        data = struct.pack('<HHH', 0xFFFF, 1, 0) + struct.pack('<HH', 5, 6)
        grid = TileGrid.decode(data, 2, 2)
        assert grid.tile_offset == 1
        assert grid.get_tile(0, 0) == BLANK_TILE
        assert grid.get_tile(1, 1).tile_id == 6
        assert grid.encode() == data

    def test_edit_inside_implied_rows_lowers_offset(self):
        data = struct.pack('<HHH', 0xFFFF, 1, 0) + struct.pack('<HH', 5, 6)
        grid = TileGrid.decode(data, 2, 2)
        grid.set_tile(0, 0, 7)
        assert grid.tile_offset == 0
        assert TileGrid.decode(grid.encode(), 2, 2).get_tile(0, 0).tile_id == 7

    def test_short_grid_is_padded(self):
        grid = TileGrid.decode(struct.pack('<H', 3), 2, 2)
        assert grid.get_tile(0, 0).tile_id == 3
        assert grid.get_tile(1, 1) == BLANK_TILE

    def test_oversized_grid_is_malformed(self):
        with pytest.raises(MalformedDataError):
            TileGrid.decode(bytes(10), 2, 2)

    def test_first_tile_equal_to_marker_round_trips(self):
        grid = TileGrid(4, 2)
        marker_tile = MapTile(0x3FF, True, True, 15)
        grid.set_tile(0, 0, marker_tile)
        data = grid.encode()
        assert data[:6] == struct.pack('<HHH', 0xFFFF, 0, 0)
        again = TileGrid.decode(data, 4, 2)
        assert again.get_tile(0, 0) == marker_tile
        assert again == grid

    def test_map_file_with_marker_tile_round_trips(self, sample_map):
        marker_tile = MapTile(0x3FF, True, True, 15)
        sample_map.set_tile(1, 0, 0, marker_tile)
        again = decode_map_file(encode_map_file(sample_map), sample_map.name, sample_map.links, sample_map.music)
        assert again.layer(1).get_tile(0, 0) == marker_tile
        assert again == sample_map

    def test_resize_keeps_top_left(self):
        grid = TileGrid(2, 2, [MapTile(i) for i in range(4)])
        bigger = grid.resized(3, 3)
        assert bigger.get_tile(1, 1).tile_id == 3
        assert bigger.get_tile(2, 2) == BLANK_TILE


class TestCollision:

    def test_cells_and_trailing(self):
        layer = CollisionLayer.decode(bytes(range(7)), 3)
        assert layer.height == 2
        assert layer.get_cell(2, 1) == 5
        assert layer.encode() == bytes(range(7))

    def test_set_cell(self):
        layer = CollisionLayer(2, bytes(4))
        layer.set_cell(1, 1, 0x20)
        assert layer.get_cell(1, 1) == 0x20
        with pytest.raises(OutOfGridBoundsError):
            layer.set_cell(2, 0, 1)


class TestTileLayer:

    def test_decode_scen(self):
        layer = TileLayer.from_chunk(romfactory.scen_chunk(imbz_name='tileset_a'))
        assert layer.which_bg == 1
        assert (layer.width, layer.height) == (8, 4)
        assert layer.tileset_name == 'tileset_a'
        assert layer.get_tile(3, 2).tile_id == 5
        assert layer.collision.width == 4

    def test_info_round_trip(self):
        payload = romfactory.info_payload(imbz_name='abc')
        assert LayerInfo.from_bytes(payload).to_bytes() == payload

    def test_round_trip_keeps_raw_children(self):
        extra = [romfactory.Chunk.leaf('PLTB', b'\x11' * 8)]
        layer = TileLayer.from_chunk(romfactory.scen_chunk(extra=extra))
        again = TileLayer.from_chunk(layer.to_chunk())
        assert again == layer
        assert again.extra_chunks[0].payload == b'\x11' * 8

    def test_missing_info(self):
        chunk = romfactory.scen_chunk()
        chunk.children = chunk.children[1:]
        with pytest.raises(MalformedDataError):
            TileLayer.from_chunk(chunk)

    def test_resize_updates_info_and_collision(self):
        layer = TileLayer.new(8, 4, with_collision=True)
        layer.resize(10, 6)
        assert layer.info.layer_width == 10
        assert layer.tiles.width == 10
        assert layer.collision.width == 5
        assert layer.collision.height == 3


class TestSprites:

    @pytest.fixture
    def path_db(self):
        return SpriteDatabase.from_csv_text(PATH_SPRITE_CSV)

    def test_add_known_type_uses_defaults(self, path_db):
        sprites = SpriteList()
        sprite = sprites.add(0x57, 100, 200, database=path_db)
        assert sprite.settings == bytes(8)
        decoded = SpriteList.from_bytes(sprites.to_bytes())
        assert decoded.sprites[0].type_id == 0x57
        assert (decoded.sprites[0].x, decoded.sprites[0].y) == (100, 200)
        assert decoded.sprites[0].settings == bytes(8)

    def test_add_round_trip_with_settings(self):
        sprites = SpriteList()
        sprites.add(0x13, 5, 6, b'\x01\x00\x00\x00')
        decoded = SpriteList.from_bytes(sprites.to_bytes())
        assert decoded == sprites

    def test_unknown_type_needs_settings(self):
        sprites = SpriteList()
        with pytest.raises(UnknownSpriteTypeError):
            sprites.add(0x1FF, 0, 0)
        sprite = sprites.add(0x1FF, 0, 0, b'\x00\x01')
        assert sprite.settings_length == 2

    def test_wrong_settings_length(self, path_db):
        with pytest.raises(InvalidSettingsError):
            SpriteList().add(0x57, 0, 0, b'\x00', path_db)
        with pytest.raises(InvalidSettingsError):
            SpriteList().add(0x28, 0, 0, b'\x00')

    def test_position_out_of_range(self):
        with pytest.raises(OutOfGridBoundsError):
            SpriteList().add(0x00, -1, 0)

    def test_fields(self, path_db):
        sprites = SpriteList()
        platform = sprites.add(0x57, 0, 0, database=path_db)
        sprites.set_field(platform, 'path_id', 2, path_db)
        assert platform.get_field('path_id', path_db) == 2
        assert platform.referenced_path(path_db) == 2
        with pytest.raises(NotFoundError):
            sprites.set_field(platform, 'missing', 1, path_db)

    def test_remove_by_identity(self):
        sprites = SpriteList()
        first = sprites.add(0x00, 1, 1)
        second = sprites.add(0x00, 1, 1)
        sprites.remove(second)
        assert sprites.sprites == [first]
        assert sprites.sprites[0] is first

    def test_stray_tail_is_malformed(self):
        data = SpriteList().to_bytes() + b'\x01\x02'
        with pytest.raises(MalformedDataError):
            SpriteList.from_bytes(data)

    def test_database_from_csv(self):
        db = SpriteDatabase.from_csv_text('id,name,description,settings_length,fields\n0x10,Thing,,2,a:u8;b:u8\nbad,row,,x,\n')
        assert len(db) == 1
        assert db.get(0x10).get_field('b').offset == 1

    def test_default_database_loaded(self):
        db = default_database()
        assert db.get(0x28).name == 'Flower'
        assert db.get(0x3B).name == 'Red Coin'
        assert 0x57 not in db


class TestPaths:

    def test_round_trip(self):
        paths = PathList.from_bytes(romfactory.path_payload())
        assert len(paths) == 1
        assert paths[0].points[-1].is_terminator
        assert paths.to_bytes() == romfactory.path_payload()

    def test_terminator_rules(self):
        with pytest.raises(InvalidPathError):
            PathList().add_path([PathPoint(0, 5, 0, 0)])
        with pytest.raises(InvalidPathError):
            PathList().add_path([PathPoint(0, 0, 0, 0), PathPoint(0, 0, 0, 0)])

    def test_point_edits_are_transactional(self):
        paths = PathList()
        paths.add_path([PathPoint(0, 8, 0, 0), PathPoint(0, 0, 16, 0)])
        with pytest.raises(InvalidPathError):
            paths[0].remove_point(1)
        assert len(paths[0]) == 2
        paths[0].insert_point(1, PathPoint(90, 4, 8, 0))
        assert len(paths[0]) == 3


class TestTriggers:

    def test_round_trip(self):
        triggers = TriggerList.from_bytes(romfactory.area_payload())
        assert triggers.regions == [TriggerRegion(1, 2, 5, 6)]
        assert triggers.to_bytes() == romfactory.area_payload()

    def test_inverted_region(self):
        with pytest.raises(InvalidRegionError):
            TriggerList().add(TriggerRegion(5, 0, 1, 0))

    def test_bad_length(self):
        with pytest.raises(MalformedDataError):
            TriggerList.from_bytes(b'\x00' * 6)

    def test_contains(self):
        assert TriggerRegion(1, 2, 5, 6).contains(5, 6)
        assert not TriggerRegion(1, 2, 5, 6).contains(0, 6)
