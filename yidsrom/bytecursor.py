import struct
from typing import Union

from yidsrom.errors import OutOfBoundsError

_U8 = struct.Struct('<B')
_I8 = struct.Struct('<b')
_U16 = struct.Struct('<H')
_I16 = struct.Struct('<h')
_U32 = struct.Struct('<I')
_I32 = struct.Struct('<i')


class ByteCursor:
    """
    Little-endian reader/writer over a byte buffer.

    Reads are bounds-checked and raise OutOfBoundsError. Writes past the
    end grow the buffer, zero-filling any gap left by a forward seek.
    """

    def __init__(self, data: Union[bytes, bytearray, None] = None, base_offset: int = 0):
        self._buf = bytearray(data) if data is not None else bytearray()
        self._pos = 0
        self.base_offset = base_offset

    @property
    def position(self) -> int:
        return self._pos

    def __len__(self) -> int:
        return len(self._buf)

    def seek(self, offset: int) -> int:
        if offset < 0:
            raise OutOfBoundsError('Seek before start of buffer', offset=self.base_offset + offset)
        self._pos = offset
        return self._pos

    def skip(self, count: int) -> None:
        self._need(count)
        self._pos += count

    def remaining(self) -> int:
        return max(0, len(self._buf) - self._pos)

    def at_end(self) -> bool:
        return self._pos >= len(self._buf)

    def getvalue(self) -> bytes:
        return bytes(self._buf)

    def _need(self, size: int) -> None:
        if self._pos + size > len(self._buf):
            raise OutOfBoundsError(f'Read of {size} bytes past end of buffer ({self.remaining()} available)', offset=self.base_offset + self._pos)

    def _unpack(self, fmt: struct.Struct) -> int:
        self._need(fmt.size)
        value = fmt.unpack_from(self._buf, self._pos)[0]
        self._pos += fmt.size
        return value

    def read_u8(self) -> int:
        return self._unpack(_U8)

    def read_i8(self) -> int:
        return self._unpack(_I8)

    def read_u16(self) -> int:
        return self._unpack(_U16)

    def read_i16(self) -> int:
        return self._unpack(_I16)

    def read_u32(self) -> int:
        return self._unpack(_U32)

    def read_i32(self) -> int:
        return self._unpack(_I32)

    def peek_u16(self) -> int:
        self._need(2)
        return _U16.unpack_from(self._buf, self._pos)[0]

    def read_bytes(self, count: int) -> bytes:
        if count < 0:
            raise OutOfBoundsError(f'Negative read length {count}', offset=self.base_offset + self._pos)
        self._need(count)
        data = bytes(self._buf[self._pos:self._pos + count])
        self._pos += count
        return data

    def read_fixed_string(self, size: int) -> str:
        raw = self.read_bytes(size)
        return raw.split(b'\x00', 1)[0].decode('ascii', errors='replace')

    def read_c_string(self) -> str:
        end = self._buf.find(b'\x00', self._pos)
        if end < 0:
            raise OutOfBoundsError('Unterminated string', offset=self.base_offset + self._pos)
        raw = bytes(self._buf[self._pos:end])
        self._pos = end + 1
        return raw.decode('ascii', errors='replace')

    def align(self, boundary: int = 4) -> None:
        """Skip forward on reads to the next multiple of boundary."""
        pad = -self._pos % boundary
        if pad:
            self.skip(min(pad, self.remaining()))

    def _put(self, data: bytes) -> None:
        end = self._pos + len(data)
        if self._pos > len(self._buf):
            self._buf.extend(b'\x00' * (self._pos - len(self._buf)))
        self._buf[self._pos:end] = data
        self._pos = end

    def write_u8(self, value: int) -> None:
        self._put(_U8.pack(value))

    def write_i8(self, value: int) -> None:
        self._put(_I8.pack(value))

    def write_u16(self, value: int) -> None:
        self._put(_U16.pack(value))

    def write_i16(self, value: int) -> None:
        self._put(_I16.pack(value))

    def write_u32(self, value: int) -> None:
        self._put(_U32.pack(value))

    def write_i32(self, value: int) -> None:
        self._put(_I32.pack(value))

    def write_bytes(self, data: bytes) -> None:
        self._put(bytes(data))

    def write_fixed_string(self, text: str, size: int) -> None:
        raw = text.encode('ascii')
        if b'\x00' in raw or len(raw) > size:
            raise ValueError(f"String '{text}' does not fit a {size} byte field")
        self._put(raw + b'\x00' * (size - len(raw)))

    def write_c_string(self, text: str) -> None:
        self._put(text.encode('ascii') + b'\x00')

    def pad(self, boundary: int = 4, fill: int = 0) -> None:
        """Write fill bytes up to the next multiple of boundary."""
        count = -self._pos % boundary
        if count:
            self._put(bytes([fill]) * count)
