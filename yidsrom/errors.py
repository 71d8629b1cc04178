from typing import Any, Dict


class RomError(Exception):
    """Base exception for ROM editing errors"""

    def __init__(self, message: str = '', **context: Any):
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = {k: v for k, v in context.items() if v is not None}

    def add_context(self, **context: Any) -> 'RomError':
        for key, value in context.items():
            if value is not None and key not in self.context:
                self.context[key] = value
        return self

    def __str__(self) -> str:
        if not self.context:
            return self.message
        parts = []
        for key, value in self.context.items():
            if key == 'offset' and isinstance(value, int):
                parts.append(f'offset=0x{value:X}')
            else:
                parts.append(f'{key}={value}')
        return f"{self.message} [{', '.join(parts)}]"


class FormatError(RomError):
    """Raised when input bytes do not match the expected layout"""


class OutOfBoundsError(FormatError):
    """Raised when a read runs past the end of a buffer"""


class TruncatedChunkError(FormatError):
    """Raised when a chunk declares more bytes than remain"""


class UnknownMagicError(FormatError):
    """Raised when a tag is not allowed in a closed context"""


class CorruptStreamError(FormatError):
    """Raised when an LZ10 stream is inconsistent"""


class MalformedDataError(FormatError):
    """Raised when a decoded payload contradicts its own header fields"""


class ArchiveError(RomError):
    """Base exception for archive level failures"""


class InvalidImageError(ArchiveError):
    """Raised when the file table is broken or the image is not a ROM"""


class UnsupportedVersionError(ArchiveError):
    """Raised when the game revision or container version is not recognized"""


class ArchiveClosedError(ArchiveError):
    """Raised when an operation needs an open archive"""


class NotFoundError(RomError, LookupError):
    """Raised when a course, map or file lookup misses"""


class MutationError(RomError, ValueError):
    """Base exception for rejected model edits"""


class OutOfGridBoundsError(MutationError):
    """Raised when a cell coordinate lies outside the grid"""


class InvalidTileError(MutationError):
    """Raised when a tile id or palette is out of range"""


class UnknownSpriteTypeError(MutationError):
    """Raised when a sprite type has no known settings layout"""


class InvalidSettingsError(MutationError):
    """Raised when sprite settings do not fit the type"""


class InvalidPathError(MutationError):
    """Raised when a path edit would break the terminator layout"""


class InvalidRegionError(MutationError):
    """Raised when a trigger rectangle is inverted"""


class InvalidLinkError(MutationError):
    """Raised when an entrance or exit edit is out of range"""


class OperationCancelledError(RomError):
    """Raised when a cancel token fires between chunks"""
