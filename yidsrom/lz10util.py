import logging
import struct
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from yidsrom.errors import CorruptStreamError

logger = logging.getLogger(__name__)

LZ10_MAGIC = 0x10
MIN_MATCH = 3
MAX_MATCH = 18
MIN_DISPLACEMENT = 1
MAX_DISPLACEMENT = 4096
MAX_SHORT_SIZE = 0xFFFFFF


@dataclass
class CompressedBlob:
    data: bytes
    compressed: bool = True
    compressed_size: int = 0


def is_lz10(data: bytes) -> bool:
    return len(data) >= 4 and data[0] == LZ10_MAGIC


def _read_header(data: bytes) -> Tuple[int, int]:
    if len(data) < 4:
        raise CorruptStreamError(f'LZ10 header needs 4 bytes, got {len(data)}', offset=0)
    if data[0] != LZ10_MAGIC:
        raise CorruptStreamError(f'Bad LZ10 magic 0x{data[0]:02X}', offset=0)
    size = data[1] | data[2] << 8 | data[3] << 16
    if size == 0 and len(data) >= 8:
        extended = struct.unpack_from('<I', data, 4)[0]
        if extended > MAX_SHORT_SIZE:
            return (extended, 8)
        # zero here is padding after an empty stream
        if extended:
            raise CorruptStreamError(f'Extended LZ10 size {extended} fits the 24-bit field', offset=4)
    return (size, 4)


def _decompress(data: bytes, expected_size: Optional[int]) -> Tuple[bytes, int]:
    dst_size, src_i = _read_header(data)
    if expected_size is not None and expected_size != dst_size:
        raise CorruptStreamError(f'LZ10 header declares {dst_size} bytes, expected {expected_size}', offset=1)
    n = len(data)
    out = bytearray()
    while len(out) < dst_size:
        if src_i >= n:
            raise CorruptStreamError(f'Input ended with {dst_size - len(out)} bytes left to produce', offset=src_i)
        flags = data[src_i]
        src_i += 1
        for bit in range(8):
            if len(out) >= dst_size:
                break
            if flags & 128 >> bit == 0:
                if src_i >= n:
                    raise CorruptStreamError('Literal flag points past end of input', offset=src_i)
                out.append(data[src_i])
                src_i += 1
                continue
            if src_i + 1 >= n:
                raise CorruptStreamError('Back-reference flag points past end of input', offset=src_i)
            b1 = data[src_i]
            b2 = data[src_i + 1]
            src_i += 2
            disp = ((b1 & 15) << 8 | b2) + 1
            length = (b1 >> 4) + MIN_MATCH
            copy_pos = len(out) - disp
            if copy_pos < 0:
                raise CorruptStreamError(f'Back-reference {disp} bytes back with only {len(out)} bytes of output', offset=src_i - 2)
            length = min(length, dst_size - len(out))
            if disp >= length:
                out += out[copy_pos:copy_pos + length]
            else:
                for _ in range(length):
                    out.append(out[copy_pos])
                    copy_pos += 1
    return (bytes(out), src_i)


def decompress_lz10(data: bytes, expected_size: Optional[int] = None) -> bytes:
    """
    Inflate a Nintendo LZ10 stream.

    Trailing bytes after the last needed token are ignored; chunk payloads
    are zero padded to 4 bytes.
    """
    out, _ = _decompress(data, expected_size)
    return out


def compress_lz10(data: bytes, chain_depth: int = 64, vram_safe: bool = False) -> bytes:
    """
    Deflate with a greedy hash-chain search.

    Back-references span 1..4096 bytes (2..4096 with vram_safe) and copy
    3..18 bytes, matching the decoder above.
    """
    data = bytes(data)
    n = len(data)
    output = bytearray([LZ10_MAGIC])
    if n > MAX_SHORT_SIZE:
        output += b'\x00\x00\x00' + struct.pack('<I', n)
    else:
        output += n.to_bytes(3, 'little')
    if n == 0:
        return bytes(output)
    min_disp = 2 if vram_safe else MIN_DISPLACEMENT
    head: Dict[int, int] = {}
    prev = [-1] * n

    def insert(pos: int) -> None:
        if pos + 2 < n:
            key = data[pos] | data[pos + 1] << 8 | data[pos + 2] << 16
            prev[pos] = head.get(key, -1)
            head[key] = pos

    def find_best_match(pos: int) -> Tuple[int, int]:
        if pos + 2 >= n:
            return (0, 0)
        key = data[pos] | data[pos + 1] << 8 | data[pos + 2] << 16
        j = head.get(key, -1)
        limit = min(MAX_MATCH, n - pos)
        best_len = 0
        best_disp = 0
        checked = 0
        while j >= 0 and checked < chain_depth:
            disp = pos - j
            if disp > MAX_DISPLACEMENT:
                break
            if disp >= min_disp:
                match_len = MIN_MATCH
                while match_len < limit and data[j + match_len] == data[pos + match_len]:
                    match_len += 1
                if match_len > best_len:
                    best_len = match_len
                    best_disp = disp
                    if best_len == limit:
                        break
            j = prev[j]
            checked += 1
        return (best_len, best_disp)
    pos = 0
    while pos < n:
        block_header_pos = len(output)
        output.append(0)
        flags = 0
        for bit in range(8):
            if pos >= n:
                break
            match_len, match_disp = find_best_match(pos)
            if match_len >= MIN_MATCH:
                flags |= 128 >> bit
                encoded_disp = match_disp - 1
                output.append(match_len - MIN_MATCH << 4 | encoded_disp >> 8)
                output.append(encoded_disp & 255)
                for p in range(pos, pos + match_len):
                    insert(p)
                pos += match_len
            else:
                output.append(data[pos])
                insert(pos)
                pos += 1
        output[block_header_pos] = flags
    return bytes(output)


def decode_blob(payload: bytes) -> CompressedBlob:
    data, consumed = _decompress(payload, None)
    logger.debug('[LZ10] %d -> %d bytes (%d consumed)', len(payload), len(data), consumed)
    return CompressedBlob(data=data, compressed=True, compressed_size=len(payload))


def encode_blob(blob: CompressedBlob, chain_depth: int = 64, vram_safe: bool = False) -> bytes:
    if not blob.compressed:
        return bytes(blob.data)
    packed = compress_lz10(blob.data, chain_depth=chain_depth, vram_safe=vram_safe)
    blob.compressed_size = len(packed)
    return packed
