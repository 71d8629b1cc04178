import logging
from dataclasses import dataclass, field
from typing import Iterable, Iterator, List, Optional

from yidsrom.bytecursor import ByteCursor
from yidsrom.errors import RomError, TruncatedChunkError, UnknownMagicError

logger = logging.getLogger(__name__)

CHUNK_HEADER_SIZE = 8
DEFAULT_NESTED = frozenset({'SET', 'SCEN'})


def tag_name(tag: str) -> str:
    """Tag without trailing NUL padding ('SET\\x00' -> 'SET')."""
    return tag.rstrip('\x00')


@dataclass
class Chunk:
    tag: str
    payload: bytes = b''
    children: Optional[List['Chunk']] = None
    offset: int = field(default=-1, compare=False, repr=False)

    @classmethod
    def leaf(cls, tag: str, payload: bytes) -> 'Chunk':
        return cls(tag=tag, payload=bytes(payload))

    @classmethod
    def container(cls, tag: str, children: Iterable['Chunk']) -> 'Chunk':
        return cls(tag=tag, children=list(children))

    @property
    def name(self) -> str:
        return tag_name(self.tag)

    @property
    def is_container(self) -> bool:
        return self.children is not None

    @property
    def is_compressed(self) -> bool:
        return len(self.name) == 4 and self.name.endswith('Z')

    def find(self, tag: str) -> Optional['Chunk']:
        for child in self.children or []:
            if child.name == tag_name(tag):
                return child
        return None

    def find_all(self, tag: str) -> List['Chunk']:
        return [c for c in self.children or [] if c.name == tag_name(tag)]

    def walk(self) -> Iterator['Chunk']:
        yield self
        for child in self.children or []:
            yield from child.walk()

    def content_size(self) -> int:
        if self.children is None:
            return len(self.payload)
        return sum(c.serialized_size() for c in self.children)

    def serialized_size(self) -> int:
        return CHUNK_HEADER_SIZE + self.content_size()


def _encode_tag(tag: str) -> bytes:
    raw = tag.encode('latin-1')
    if len(raw) != 4:
        raise ValueError(f"Chunk tag must be 4 bytes, got '{tag}'")
    return raw


def parse_sequence(data: bytes, base_offset: int = 0, nested: Iterable[str] = DEFAULT_NESTED, closed_tags: Optional[Iterable[str]] = None) -> List[Chunk]:
    """
    Parse back-to-back chunks filling the whole of data.

    Tags listed in nested are parsed recursively. When closed_tags is given,
    any other tag raises UnknownMagicError; otherwise unknown tags are kept
    as raw payload chunks.
    """
    nested = frozenset(nested)
    closed = frozenset(tag_name(t) for t in closed_tags) if closed_tags is not None else None
    rdr = ByteCursor(data, base_offset=base_offset)
    chunks: List[Chunk] = []
    while not rdr.at_end():
        start = rdr.position
        if rdr.remaining() < CHUNK_HEADER_SIZE:
            raise TruncatedChunkError(f'{rdr.remaining()} trailing bytes cannot hold a chunk header', offset=base_offset + start)
        tag = rdr.read_bytes(4).decode('latin-1')
        length = rdr.read_u32()
        if closed is not None and tag_name(tag) not in closed:
            raise UnknownMagicError(f"Unexpected chunk tag '{tag_name(tag)}' (allowed: {', '.join(sorted(closed))})", tag=tag_name(tag), offset=base_offset + start)
        if length > rdr.remaining():
            raise TruncatedChunkError(f"Chunk '{tag_name(tag)}' declares {length} bytes but only {rdr.remaining()} remain", tag=tag_name(tag), offset=base_offset + start)
        body_offset = base_offset + rdr.position
        body = rdr.read_bytes(length)
        if tag_name(tag) in nested:
            try:
                children = parse_sequence(body, body_offset, nested)
            except RomError as exc:
                raise exc.add_context(parent=tag_name(tag))
            chunks.append(Chunk(tag=tag, children=children, offset=base_offset + start))
        else:
            chunks.append(Chunk(tag=tag, payload=body, offset=base_offset + start))
    return chunks


def parse(data: bytes, closed_tags: Optional[Iterable[str]] = None, nested: Iterable[str] = DEFAULT_NESTED) -> Chunk:
    """
    Parse the root chunk at the start of data.

    Bytes after the root chunk are file padding and are not part of the tree.
    """
    if len(data) < CHUNK_HEADER_SIZE:
        raise TruncatedChunkError(f'{len(data)} bytes cannot hold a chunk header', offset=0)
    rdr = ByteCursor(data[:CHUNK_HEADER_SIZE])
    rdr.skip(4)
    length = rdr.read_u32()
    end = CHUNK_HEADER_SIZE + length
    if end > len(data):
        raise TruncatedChunkError(f"Root chunk '{tag_name(data[:4].decode('latin-1'))}' declares {length} bytes but only {len(data) - CHUNK_HEADER_SIZE} remain", offset=0)
    if end < len(data):
        logger.debug('[Chunk] Ignoring %d bytes after root chunk', len(data) - end)
    return parse_sequence(data[:end], 0, nested, closed_tags)[0]


def serialize(chunk: Chunk) -> bytes:
    """Rebuild a chunk, deriving every length field from its content."""
    if chunk.children is None:
        content = bytes(chunk.payload)
    else:
        content = b''.join(serialize(c) for c in chunk.children)
    out = ByteCursor()
    out.write_bytes(_encode_tag(chunk.tag))
    out.write_u32(len(content))
    out.write_bytes(content)
    return out.getvalue()


def pad4(data: bytes) -> bytes:
    return bytes(data) + b'\x00' * (-len(data) & 3)
