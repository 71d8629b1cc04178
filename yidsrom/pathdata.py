from dataclasses import dataclass
from typing import List, Optional

from yidsrom.bytecursor import ByteCursor
from yidsrom.errors import InvalidPathError, NotFoundError


@dataclass(frozen=True)
class PathPoint:
    angle: int
    distance: int
    x_fine: int
    y_fine: int

    @property
    def is_terminator(self) -> bool:
        return self.distance == 0

    def validate(self) -> None:
        if not -0x8000 <= self.angle <= 0x7FFF or not -0x8000 <= self.distance <= 0x7FFF:
            raise InvalidPathError(f'Angle/distance of {self} do not fit 16 bits')
        if not 0 <= self.x_fine <= 0xFFFFFFFF or not 0 <= self.y_fine <= 0xFFFFFFFF:
            raise InvalidPathError(f'Position of {self} does not fit 32 bits')


def _validate_points(points: List[PathPoint]) -> None:
    if not points:
        raise InvalidPathError('A path needs at least its terminator point')
    for i, point in enumerate(points):
        point.validate()
        last = i == len(points) - 1
        if last and not point.is_terminator:
            raise InvalidPathError('The last point of a path must have distance 0', point=i)
        if not last and point.is_terminator:
            raise InvalidPathError('Only the last point of a path may have distance 0', point=i)


class PathDefinition:
    """Ordered control points; the final point (distance 0) ends the line."""

    def __init__(self, points: List[PathPoint]):
        _validate_points(points)
        self.points: List[PathPoint] = list(points)

    def __eq__(self, other):
        if not isinstance(other, PathDefinition):
            return NotImplemented
        return self.points == other.points

    def __len__(self) -> int:
        return len(self.points)

    def __repr__(self):
        return f'PathDefinition({len(self.points)} points)'

    def _apply(self, staged: List[PathPoint]) -> None:
        _validate_points(staged)
        self.points = staged

    def insert_point(self, index: int, point: PathPoint) -> None:
        staged = list(self.points)
        staged.insert(index, point)
        self._apply(staged)

    def set_point(self, index: int, point: PathPoint) -> None:
        if not 0 <= index < len(self.points):
            raise NotFoundError(f'Path has no point {index}')
        staged = list(self.points)
        staged[index] = point
        self._apply(staged)

    def remove_point(self, index: int) -> None:
        if not 0 <= index < len(self.points):
            raise NotFoundError(f'Path has no point {index}')
        staged = list(self.points)
        del staged[index]
        self._apply(staged)


class PathList:

    def __init__(self, paths: Optional[List[PathDefinition]] = None):
        self.paths: List[PathDefinition] = list(paths or [])

    def __eq__(self, other):
        if not isinstance(other, PathList):
            return NotImplemented
        return self.paths == other.paths

    def __len__(self) -> int:
        return len(self.paths)

    def __getitem__(self, index: int) -> PathDefinition:
        return self.paths[index]

    def __repr__(self):
        return f'PathList({len(self.paths)} paths)'

    def add_path(self, points: List[PathPoint]) -> int:
        self.paths.append(PathDefinition(points))
        return len(self.paths) - 1

    def remove_path(self, index: int) -> None:
        if not 0 <= index < len(self.paths):
            raise NotFoundError(f'No path {index}')
        del self.paths[index]

    @classmethod
    def from_bytes(cls, data: bytes) -> 'PathList':
        rdr = ByteCursor(data)
        count = rdr.read_u32()
        paths: List[PathDefinition] = []
        for _ in range(count):
            points: List[PathPoint] = []
            while True:
                point = PathPoint(rdr.read_i16(), rdr.read_i16(), rdr.read_u32(), rdr.read_u32())
                points.append(point)
                if point.is_terminator:
                    break
            paths.append(PathDefinition(points))
        return cls(paths)

    def to_bytes(self) -> bytes:
        out = ByteCursor()
        out.write_u32(len(self.paths))
        for path in self.paths:
            for point in path.points:
                out.write_i16(point.angle)
                out.write_i16(point.distance)
                out.write_u32(point.x_fine)
                out.write_u32(point.y_fine)
        return out.getvalue()
