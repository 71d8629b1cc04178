from dataclasses import dataclass
from typing import List, Optional

from yidsrom.bytecursor import ByteCursor
from yidsrom.errors import InvalidRegionError, MalformedDataError, NotFoundError

TRIGGER_RECORD_SIZE = 8


@dataclass(frozen=True)
class TriggerRegion:
    """AREA rectangle in tile units. Sprites refer to it by list index."""
    left_x: int
    top_y: int
    right_x: int
    bottom_y: int

    def validate(self) -> None:
        for value in (self.left_x, self.top_y, self.right_x, self.bottom_y):
            if not 0 <= value <= 0xFFFF:
                raise InvalidRegionError(f'Coordinate {value} of {self} does not fit 16 bits')
        if self.left_x > self.right_x or self.top_y > self.bottom_y:
            raise InvalidRegionError(f'{self} is inverted')

    def contains(self, x: int, y: int) -> bool:
        return self.left_x <= x <= self.right_x and self.top_y <= y <= self.bottom_y


class TriggerList:

    def __init__(self, regions: Optional[List[TriggerRegion]] = None):
        self.regions: List[TriggerRegion] = list(regions or [])

    def __eq__(self, other):
        if not isinstance(other, TriggerList):
            return NotImplemented
        return self.regions == other.regions

    def __len__(self) -> int:
        return len(self.regions)

    def __repr__(self):
        return f'TriggerList({len(self.regions)} regions)'

    def add(self, region: TriggerRegion) -> int:
        region.validate()
        self.regions.append(region)
        return len(self.regions) - 1

    def set(self, index: int, region: TriggerRegion) -> None:
        if not 0 <= index < len(self.regions):
            raise NotFoundError(f'No trigger {index}')
        region.validate()
        self.regions[index] = region

    def remove(self, index: int) -> None:
        if not 0 <= index < len(self.regions):
            raise NotFoundError(f'No trigger {index}')
        del self.regions[index]

    @classmethod
    def from_bytes(cls, data: bytes) -> 'TriggerList':
        if len(data) % TRIGGER_RECORD_SIZE:
            raise MalformedDataError(f'AREA size {len(data)} is not a multiple of {TRIGGER_RECORD_SIZE}')
        rdr = ByteCursor(data)
        regions = []
        while not rdr.at_end():
            regions.append(TriggerRegion(rdr.read_u16(), rdr.read_u16(), rdr.read_u16(), rdr.read_u16()))
        return cls(regions)

    def to_bytes(self) -> bytes:
        out = ByteCursor()
        for region in self.regions:
            out.write_u16(region.left_x)
            out.write_u16(region.top_y)
            out.write_u16(region.right_x)
            out.write_u16(region.bottom_y)
        return out.getvalue()
