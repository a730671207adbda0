"""
Pydantic data models for the fast ellipse extractor.

Every intermediate entity of the extraction (segments, lines, arcs,
extended arcs, ellipses) is a validated record. Index lists are owned by
value on each record and always point into containers of the previous stage.
"""

import math
from enum import Enum
from typing import Dict, Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


Point = Tuple[int, int]


class LineGroup(int, Enum):
    """Scan direction of segments and lines."""
    HORIZONTAL = 1
    VERTICAL = 2
    DIAGONAL_DOWN = 3  # top-left to bottom-right
    DIAGONAL_UP = 4    # bottom-left to top-right


class ArcGroup(int, Enum):
    """Octant of an ellipse boundary that an arc approximates."""
    TOP = 1
    TOP_RIGHT = 2
    RIGHT = 3
    BOTTOM_RIGHT = 4
    BOTTOM = 5
    BOTTOM_LEFT = 6
    LEFT = 7
    TOP_LEFT = 8

    @property
    def line_group(self):
        """Line group the arcs of this octant are chained from."""
        return _ARC_LINE_GROUPS[self]

    @property
    def predecessor(self):
        """Adjacent octant visited before this one."""
        return ArcGroup(8 if self.value == 1 else self.value - 1)

    @property
    def successor(self):
        """Adjacent octant visited after this one."""
        return ArcGroup(1 if self.value == 8 else self.value + 1)

    @property
    def reversed_line_order(self):
        """True for the lower half octants, whose lines run end to start."""
        return self.value > 4


_ARC_LINE_GROUPS = {
    ArcGroup.TOP: LineGroup.HORIZONTAL,
    ArcGroup.TOP_RIGHT: LineGroup.DIAGONAL_DOWN,
    ArcGroup.RIGHT: LineGroup.VERTICAL,
    ArcGroup.BOTTOM_RIGHT: LineGroup.DIAGONAL_UP,
    ArcGroup.BOTTOM: LineGroup.HORIZONTAL,
    ArcGroup.BOTTOM_LEFT: LineGroup.DIAGONAL_DOWN,
    ArcGroup.LEFT: LineGroup.VERTICAL,
    ArcGroup.TOP_LEFT: LineGroup.DIAGONAL_UP,
}


def arc_groups_for(line_group):
    """Return the two octants sharing a line group (upper octant first)."""
    return tuple(g for g in ArcGroup if g.line_group == line_group)


class FitFailure(str, Enum):
    """Why an ellipse or circle estimate was rejected."""
    SINGULAR_MATRIX = "singular_matrix"
    DEGENERATE_CONIC = "degenerate_conic"
    INSUFFICIENT_GEOMETRY = "insufficient_geometry"


class Segment(BaseModel):
    """A run of foreground pixels along one scan direction."""
    start: Point
    end: Point
    length: int
    used: int = 0

    model_config = ConfigDict(extra="forbid")


class Line(BaseModel):
    """A chain of collinear segments of one scan direction."""
    start: Point
    end: Point
    mid: Point
    tangent: float  # radians
    length: int
    group: LineGroup
    segments: List[int] = Field(default_factory=list)
    used: int = 0

    model_config = ConfigDict(extra="forbid")


class Arc(BaseModel):
    """A chain of lines approximating a circular arc."""
    start: Point
    end: Point
    mid: Point  # estimated circle center
    r2: int  # estimated squared radius
    first_vec: Point
    last_vec: Point
    group: ArcGroup
    lines: List[int] = Field(default_factory=list)
    used: int = 0

    model_config = ConfigDict(extra="forbid")


class EllipseParams(BaseModel):
    """
    Center, semi-axes and orientation of a fitted ellipse.

    `a` is the major semi-axis. `t` is the direction of the minor axis in
    image coordinates, so the major axis lies at `t - pi/2`.
    """
    x: float
    y: float
    a: float
    b: float
    t: float

    model_config = ConfigDict(extra="forbid")

    @property
    def major_axis_angle(self):
        """Direction of the major axis in image coordinates, in (-pi/2, pi/2]."""
        return wrap_half_turn(self.t - math.pi / 2)

    def set_params(self, params):
        """Copy center, axes and orientation from another parameter set."""
        self.x, self.y = params.x, params.y
        self.a, self.b, self.t = params.a, params.b, params.t


class FitResult(BaseModel):
    """Outcome of a conic or circle fit: parameters or a failure kind."""
    params: Optional[EllipseParams] = None
    failure: Optional[FitFailure] = None

    model_config = ConfigDict(extra="forbid")

    @property
    def ok(self):
        return self.params is not None

    @classmethod
    def success(cls, x, y, a, b, t):
        return cls(params=EllipseParams(x=x, y=y, a=a, b=b, t=t))

    @classmethod
    def failed(cls, failure):
        return cls(failure=failure)


class ExtendedArc(EllipseParams):
    """Three arcs of adjacent octants and the ellipse fitted through them."""
    group: ArcGroup  # octant of the middle arc
    arc_indices: Tuple[int, int, int]  # predecessor, own and successor octant
    ix: float = 0.0  # intersection of the end tangents
    iy: float = 0.0
    slope_lb: float = 0.0  # slope of the line beam
    used: int = 0

    def arc_groups(self):
        """Octants of the three base arcs, in arc_indices order."""
        return (self.group.predecessor, self.group, self.group.successor)

    def base_arcs(self):
        """Yield (octant, arc index) pairs of the three base arcs."""
        return zip(self.arc_groups(), self.arc_indices)


class Ellipse(EllipseParams):
    """An extracted ellipse and the extended arcs merged into it."""
    coverage: float = 0.0
    merged_arcs: List[int] = Field(default_factory=list)


def _empty_groups(enum_type):
    return lambda: {g: [] for g in enum_type}


class ExtractionResult(BaseModel):
    """
    All entities found by one extraction run.

    Segments, lines and arcs are kept per group; views across all groups are
    built on demand.
    """
    width: int = 0
    height: int = 0
    segments: Dict[LineGroup, List[Segment]] = Field(default_factory=_empty_groups(LineGroup))
    lines: Dict[LineGroup, List[Line]] = Field(default_factory=_empty_groups(LineGroup))
    arcs: Dict[ArcGroup, List[Arc]] = Field(default_factory=_empty_groups(ArcGroup))
    extended_arcs: List[ExtendedArc] = Field(default_factory=list)
    ellipses: List[Ellipse] = Field(default_factory=list)

    model_config = ConfigDict(extra="forbid")

    def all_segments(self) -> Iterator[Segment]:
        for group in LineGroup:
            yield from self.segments[group]

    def all_lines(self) -> Iterator[Line]:
        for group in LineGroup:
            yield from self.lines[group]

    def all_arcs(self) -> Iterator[Arc]:
        for group in ArcGroup:
            yield from self.arcs[group]

    def counts(self):
        """Entity counts per stage, for logging and summaries."""
        return {
            "segments": sum(len(v) for v in self.segments.values()),
            "lines": sum(len(v) for v in self.lines.values()),
            "arcs": sum(len(v) for v in self.arcs.values()),
            "extended_arcs": len(self.extended_arcs),
            "ellipses": len(self.ellipses),
        }


def wrap_half_turn(angle):
    """Wrap an orientation angle into (-pi/2, pi/2]."""
    wrapped = math.fmod(angle + math.pi / 2, math.pi)
    if wrapped <= 0:
        wrapped += math.pi
    return wrapped - math.pi / 2
