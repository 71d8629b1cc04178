"""
Tests for the byte cursor, the LZ10 codec and the chunk container
"""

import os
import struct

import pytest

from yidsrom.bytecursor import ByteCursor
from yidsrom.chunkutil import Chunk, parse, parse_sequence, serialize
from yidsrom.errors import CorruptStreamError, OutOfBoundsError, TruncatedChunkError, UnknownMagicError
from yidsrom.lz10util import CompressedBlob, compress_lz10, decode_blob, decompress_lz10, encode_blob, is_lz10


class TestByteCursor:

    def test_reads_little_endian(self):
        rdr = ByteCursor(b'\x01\x02\x03\x04\xff\xff')
        assert rdr.read_u16() == 0x0201
        assert rdr.read_u16() == 0x0403
        assert rdr.read_i16() == -1
        assert rdr.at_end()

    def test_read_past_end_reports_absolute_offset(self):
        rdr = ByteCursor(b'\x00\x00\x00', base_offset=0x40)
        rdr.read_u16()
        with pytest.raises(OutOfBoundsError) as exc_info:
            rdr.read_u16()
        assert exc_info.value.context['offset'] == 0x42

    def test_write_after_seek_zero_fills(self):
        out = ByteCursor()
        out.seek(3)
        out.write_u8(7)
        assert out.getvalue() == b'\x00\x00\x00\x07'

    def test_fixed_string_round_trip(self):
        out = ByteCursor()
        out.write_fixed_string('1-1_main', 16)
        assert len(out.getvalue()) == 16
        assert ByteCursor(out.getvalue()).read_fixed_string(16) == '1-1_main'

    def test_fixed_string_too_long(self):
        with pytest.raises(ValueError):
            ByteCursor().write_fixed_string('x' * 17, 16)

    def test_pad_and_align(self):
        out = ByteCursor()
        out.write_u8(1)
        out.pad(4, 0xAA)
        assert out.getvalue() == b'\x01\xaa\xaa\xaa'
        rdr = ByteCursor(out.getvalue())
        rdr.read_u8()
        rdr.align(4)
        assert rdr.at_end()


class TestLZ10:

    @pytest.mark.parametrize('data', [b'', b'a', b'abcabcabcabcabcabcabc', bytes(5000), bytes(range(256)) * 20])
    def test_round_trip(self, data):
        assert decompress_lz10(compress_lz10(data)) == data

    def test_round_trip_random(self):
        data = os.urandom(3000) + bytes(3000)
        assert decompress_lz10(compress_lz10(data)) == data

    def test_vram_safe_never_uses_displacement_one(self):
        packed = compress_lz10(b'\x05' * 200, vram_safe=True)
        assert decompress_lz10(packed) == b'\x05' * 200
        # single flag group: literal, literal, then back-references
        flags = packed[4]
        pos = 5
        for bit in range(8):
            if pos >= len(packed):
                break
            if flags & 0x80 >> bit:
                disp = ((packed[pos] & 0xF) << 8 | packed[pos + 1]) + 1
                assert disp >= 2
                pos += 2
            else:
                pos += 1

    def test_header_records_size(self):
        packed = compress_lz10(b'xyz' * 10)
        assert packed[0] == 0x10
        assert int.from_bytes(packed[1:4], 'little') == 30
        assert is_lz10(packed)

    def test_back_reference_before_start_is_corrupt(self):
        # one flag byte with the first token a back-reference
        stream = b'\x10\x04\x00\x00' + b'\x80' + b'\x00\x05'
        with pytest.raises(CorruptStreamError):
            decompress_lz10(stream)

    def test_truncated_input_is_corrupt(self):
        packed = compress_lz10(bytes(range(100)))
        with pytest.raises(CorruptStreamError):
            decompress_lz10(packed[:-10])

    def test_bad_magic(self):
        with pytest.raises(CorruptStreamError):
            decompress_lz10(b'\x11\x04\x00\x00\x00abcd')

    def test_small_extended_size_is_corrupt(self):
        stream = b'\x10\x00\x00\x00' + struct.pack('<I', 4) + b'\x00abcd'
        with pytest.raises(CorruptStreamError):
            decompress_lz10(stream)
        assert decompress_lz10(b'\x10\x00\x00\x00' + bytes(8)) == b''

    def test_expected_size_mismatch(self):
        with pytest.raises(CorruptStreamError):
            decompress_lz10(compress_lz10(b'abcd'), expected_size=5)

    def test_blob_keeps_uncompressed_flag(self):
        blob = CompressedBlob(data=b'raw bytes', compressed=False)
        assert encode_blob(blob) == b'raw bytes'
        packed = encode_blob(CompressedBlob(data=b'abc' * 8))
        assert decode_blob(packed).data == b'abc' * 8


class TestChunks:

    def test_parse_nested_tree(self):
        inner = serialize(Chunk.leaf('INFO', b'\x01\x02\x03\x04'))
        scen = b'SCEN' + struct.pack('<I', len(inner)) + inner
        data = b'SET\x00' + struct.pack('<I', len(scen)) + scen
        root = parse(data)
        assert root.name == 'SET'
        assert root.children[0].name == 'SCEN'
        assert root.children[0].children[0].payload == b'\x01\x02\x03\x04'
        assert root.children[0].children[0].offset == 16

    def test_serialize_round_trip(self):
        tree = Chunk.container('SET\x00', [Chunk.leaf('GRAD', b'abcd'), Chunk.container('SCEN', [Chunk.leaf('PLTB', b'\x00' * 8)])])
        assert parse(serialize(tree)) == tree

    def test_trailing_file_padding_ignored(self):
        data = serialize(Chunk.leaf('CRSB', b'\x00' * 4)) + b'\x00' * 20
        assert parse(data, nested=()).payload == b'\x00' * 4

    def test_truncated_chunk(self):
        data = b'GRAD' + struct.pack('<I', 100) + b'\x00' * 4
        with pytest.raises(TruncatedChunkError):
            parse_sequence(data)

    def test_closed_tag_set(self):
        data = serialize(Chunk.leaf('XXXX', b''))
        with pytest.raises(UnknownMagicError) as exc_info:
            parse_sequence(data, closed_tags=('CSCN',))
        assert exc_info.value.context['tag'] == 'XXXX'

    def test_open_tag_set_keeps_unknown_tags(self):
        data = serialize(Chunk.leaf('XXXX', b'1234'))
        assert parse_sequence(data)[0].payload == b'1234'

    def test_compressed_tag_detection(self):
        assert Chunk.leaf('MPBZ', b'').is_compressed
        assert not Chunk.leaf('INFO', b'').is_compressed
