"""
Arc extraction for the fast ellipse extractor.

Chains lines of one scan direction into circular arcs. Every arc search runs
through four passes (backward/forward along the arc, downward/upward in the
search window), each followed by an extra pass in the inverted window
direction that continues from the last line accepted. A circle is re-fitted
after every tentative extension and has to agree with the line tangents.
"""

import math
from abc import ABC, abstractmethod
from enum import Enum

from fastellipse.models import Arc, ArcGroup, LineGroup
from fastellipse.primitives.pixels import add_moments, line_pixels, moment_sums
from fastellipse.tracer import get_tracer, trace


# smallest squared radius of an extracted arc (radius 10 px)
MIN_ARC_R2 = 100
MIN_INTERIOR_ANGLE = 135.0


def estimate_circle(xs, ys):
    """
    Closed-form least-squares circle through a set of pixels.

    Returns (x, y, r2) or None when the normal equations are singular.
    """
    return circle_from_moments(moment_sums(xs, ys))


def circle_from_moments(moments):
    """Solve the 2x2 circle normal equations from raw moment sums."""
    n, sx, sy, sxx, syy, sxy, sxxx, syyy, sxyy, sxxy = moments
    if n == 0:
        return None

    a1 = 2 * (sx * sx - n * sxx)
    b1 = 2 * (sx * sy - n * sxy)
    a2 = b1
    b2 = 2 * (sy * sy - n * syy)
    c1 = sxx * sx - n * sxxx + sx * syy - n * sxyy
    c2 = sxx * sy - n * syyy + sy * syy - n * sxxy

    det = a1 * b2 - a2 * b1
    if det == 0:
        return None

    x = (c1 * b2 - c2 * b1) / det
    y = (a1 * c2 - a2 * c1) / det
    r2 = (sxx - 2 * x * sx + n * x * x + syy - 2 * y * sy + n * y * y) / n
    return x, y, r2


def _round_half_up(value):
    return int(math.floor(value + 0.5))


def _outside(value, low, high):
    return value < low or value > high


class TraceState(Enum):
    """Main passes of an arc search, in execution order."""
    BACKWARD_DOWN = (False, False)
    BACKWARD_UP = (False, True)
    FORWARD_DOWN = (True, False)
    FORWARD_UP = (True, True)

    @property
    def forward(self):
        return self.value[0]

    @property
    def upward(self):
        return self.value[1]


NEXT_STATE = {
    TraceState.BACKWARD_DOWN: TraceState.BACKWARD_UP,
    TraceState.BACKWARD_UP: TraceState.FORWARD_DOWN,
    TraceState.FORWARD_DOWN: TraceState.FORWARD_UP,
    TraceState.FORWARD_UP: None,
}


def _curvature_matches(angle, forward, upward, flipped):
    """Check the sign of the tangent change for the pass direction."""
    expected = 1 if forward == upward else -1
    if flipped:
        expected = -expected
    return angle * expected >= 0


class ArcFrame(ABC):
    """Search window and classification rules for the arcs of one line group."""

    # vertical and up-right lines use mirrored tangents
    flipped = False

    def __init__(self, width, max_gap):
        self.width = width
        self.max_gap = max_gap

    def to_frame(self, point):
        return point

    @abstractmethod
    def anchor(self, line, forward):
        """Point of the target line the window is attached to."""

    @abstractmethod
    def window(self, line, upward):
        """Return (along_pos, along_neg, across_pos, across_neg) gap limits."""

    @abstractmethod
    def outside_band(self, candidate, anchor, window):
        """True when both candidate end points leave the window band."""

    @abstractmethod
    def offset(self, candidate, anchor, forward):
        pass

    @abstractmethod
    def out_of_window(self, dx, dy, window):
        pass

    @abstractmethod
    def classify(self, cx, cy, chain, lines):
        """Return (arc group, reverse) for a finished chain."""

    def center_direction(self, cx, cy, mid):
        """Direction from a line midpoint to the estimated center, in tangent convention."""
        dx = cx - mid[0]
        dy = cy - mid[1]
        angle = math.atan2(dx, dy)
        if self.flipped:
            if dx < 0:
                angle += math.pi
        elif dy < 0:
            angle += -math.pi if dx >= 0 else math.pi
        return angle


class HorizontalArcFrame(ArcFrame):
    """Top and bottom arcs."""

    def anchor(self, line, forward):
        return line.end if forward else line.start

    def window(self, line, upward):
        across = (self.max_gap - 1, 1) if upward else (1, self.max_gap - 1)
        return (self.max_gap, line.length // 2 - 1) + across

    def outside_band(self, candidate, anchor, window):
        low, high = anchor[1] - window[2], anchor[1] + window[3]
        return _outside(candidate.start[1], low, high) and _outside(candidate.end[1], low, high)

    def offset(self, candidate, anchor, forward):
        if forward:
            return candidate.start[0] - anchor[0], candidate.start[1] - anchor[1]
        return anchor[0] - candidate.end[0], anchor[1] - candidate.end[1]

    def out_of_window(self, dx, dy, window):
        return (dx > window[0] or dx < -window[1]
                or dy > window[2] or dy < -window[3]
                or (dx <= 0 and abs(dy) > 1)
                or (dx > 0 and abs(dy) > dx))

    def classify(self, cx, cy, chain, lines):
        x1, y1 = lines[chain[0]].start
        x2, _ = lines[chain[-1]].end
        if cy >= y1:
            return ArcGroup.TOP, x1 > x2
        return ArcGroup.BOTTOM, x1 < x2


class VerticalArcFrame(ArcFrame):
    """Right and left arcs."""

    flipped = True

    def anchor(self, line, forward):
        return line.end if forward else line.start

    def window(self, line, upward):
        across = (self.max_gap - 1, 1) if upward else (1, self.max_gap - 1)
        return (self.max_gap, line.length // 2 - 1) + across

    def outside_band(self, candidate, anchor, window):
        low, high = anchor[0] - window[2], anchor[0] + window[3]
        return _outside(candidate.start[0], low, high) and _outside(candidate.end[0], low, high)

    def offset(self, candidate, anchor, forward):
        if forward:
            return candidate.start[0] - anchor[0], candidate.start[1] - anchor[1]
        return anchor[0] - candidate.end[0], anchor[1] - candidate.end[1]

    def out_of_window(self, dx, dy, window):
        return (dy > window[0] or dy < -window[1]
                or dx > window[2] or dx < -window[3]
                or (dy <= 0 and abs(dx) > 1)
                or (dy > 0 and abs(dx) > dy))

    def classify(self, cx, cy, chain, lines):
        x1, y1 = lines[chain[0]].start
        _, y2 = lines[chain[-1]].end
        if cx <= x1:
            return ArcGroup.RIGHT, y1 > y2
        return ArcGroup.LEFT, y1 < y2


class DiagonalDownArcFrame(ArcFrame):
    """Top-right and bottom-left arcs, measured in the (x+y, w-1-x+y) frame."""

    def to_frame(self, point):
        return point[0] + point[1], self.width - 1 - point[0] + point[1]

    def anchor(self, line, forward):
        return self.to_frame(line.end if forward else line.start)

    def window(self, line, upward):
        across = (self.max_gap, 1) if upward else (1, self.max_gap)
        return (2 * self.max_gap + 1, line.length // 2) + across

    def outside_band(self, candidate, anchor, window):
        low, high = anchor[1] - window[2], anchor[1] + window[3]
        return (_outside(self.to_frame(candidate.start)[1], low, high)
                and _outside(self.to_frame(candidate.end)[1], low, high))

    def offset(self, candidate, anchor, forward):
        if forward:
            x, y = self.to_frame(candidate.start)
            return x - anchor[0], y - anchor[1]
        x, y = self.to_frame(candidate.end)
        return anchor[0] - x, anchor[1] - y

    def out_of_window(self, dx, dy, window):
        return (dx > window[0] or dx < -window[1]
                or dy > window[2] or dy < -window[3]
                or (dx <= 1 and abs(dy) > 1)
                or (dx > 1 and abs(dy) > dx // 2))

    def classify(self, cx, cy, chain, lines):
        first_x, first_y = self.to_frame(lines[chain[0]].start)
        last_x, _ = self.to_frame(lines[chain[-1]].end)
        _, center_y = self.to_frame((cx, cy))
        if center_y >= first_y:
            return ArcGroup.TOP_RIGHT, first_x > last_x
        return ArcGroup.BOTTOM_LEFT, first_x < last_x


class DiagonalUpArcFrame(ArcFrame):
    """Bottom-right and top-left arcs, measured in the (x+y, w-1-x+y) frame."""

    flipped = True

    def to_frame(self, point):
        return point[0] + point[1], self.width - 1 - point[0] + point[1]

    def anchor(self, line, forward):
        return self.to_frame(line.start if forward else line.end)

    def window(self, line, upward):
        across = (1, self.max_gap) if upward else (self.max_gap, 1)
        return (2 * self.max_gap + 1, line.length // 2) + across

    def outside_band(self, candidate, anchor, window):
        low, high = anchor[0] - window[2], anchor[0] + window[3]
        return (_outside(self.to_frame(candidate.start)[0], low, high)
                and _outside(self.to_frame(candidate.end)[0], low, high))

    def offset(self, candidate, anchor, forward):
        if forward:
            x, y = self.to_frame(candidate.end)
            return anchor[0] - x, anchor[1] - y
        x, y = self.to_frame(candidate.start)
        return x - anchor[0], y - anchor[1]

    def out_of_window(self, dx, dy, window):
        # only the positive side of the parallel gap is limited here
        return (dy > window[0] or dy < -window[1]
                or dx > window[2] or dx < -window[3]
                or (dy <= 1 and abs(dx) > 1)
                or (dy > 1 and dx > dy // 2))

    def classify(self, cx, cy, chain, lines):
        chain.reverse()
        first_x, first_y = self.to_frame(lines[chain[0]].start)
        _, last_y = self.to_frame(lines[chain[-1]].end)
        center_x, _ = self.to_frame((cx, cy))
        if center_x <= first_x:
            return ArcGroup.BOTTOM_RIGHT, first_y > last_y
        return ArcGroup.TOP_LEFT, first_y < last_y


def make_arc_frame(group, width, max_gap):
    """Build the arc frame of a line group."""
    frames = {
        LineGroup.HORIZONTAL: HorizontalArcFrame,
        LineGroup.VERTICAL: VerticalArcFrame,
        LineGroup.DIAGONAL_DOWN: DiagonalDownArcFrame,
        LineGroup.DIAGONAL_UP: DiagonalUpArcFrame,
    }
    if group not in frames:
        raise ValueError(f"Unknown line group: {group}")
    return frames[group](width, max_gap)


class ArcTracer:
    """
    Traces arcs through the lines of one scan direction.

    Line moment sums are cached so re-fitting the circle after each
    extension only adds up per-line totals.
    """

    def __init__(self, lines, segments, frame, max_tangent_error):
        self.lines = lines
        self.segments = segments
        self.frame = frame
        self.max_tangent_error = max_tangent_error
        self._moments = {}

    def moments(self, idx):
        if idx not in self._moments:
            xs, ys = line_pixels(self.lines[idx], self.segments)
            self._moments[idx] = moment_sums(xs, ys)
        return self._moments[idx]

    def fit_circle(self, chain):
        return circle_from_moments(add_moments(*(self.moments(i) for i in chain)))

    def trace(self, seed):
        """Run all passes from a seed line and return the chained line indices."""
        chain = [seed]
        state = TraceState.BACKWARD_DOWN

        while state is not None:
            if state is TraceState.FORWARD_DOWN:
                chain.reverse()
            last = self._run_pass(chain, seed, state.forward, state.upward)
            if last is not None:
                self._run_pass(chain, last, state.forward, not state.upward)
            state = NEXT_STATE[state]

        return chain

    def _run_pass(self, chain, start, forward, upward):
        """
        Extend the chain from one target line in one direction.

        Returns the index of the last line accepted, or None.
        """
        target = start
        candidate = start - 1 if upward else start + 1
        step = -1 if upward else 1
        last_accepted = None

        while True:
            candidate = self._find_candidate(target, candidate, forward, upward)
            if candidate is None:
                return last_accepted

            if self._try_extend(chain, target, candidate):
                target = candidate
                last_accepted = candidate

            candidate += step

    def _find_candidate(self, target, candidate, forward, upward):
        frame = self.frame
        target_line = self.lines[target]
        anchor = frame.anchor(target_line, forward)
        window = frame.window(target_line, upward)
        step = -1 if upward else 1

        while 0 <= candidate < len(self.lines):
            line = self.lines[candidate]
            if frame.outside_band(line, anchor, window):
                return None
            dx, dy = frame.offset(line, anchor, forward)
            angle = line.tangent - target_line.tangent
            if (frame.out_of_window(dx, dy, window)
                    or not _curvature_matches(angle, forward, upward, frame.flipped)):
                candidate += step
                continue
            return candidate

        return None

    def _try_extend(self, chain, target, candidate):
        """Append a candidate if the interior angle and circle tangents agree."""
        tangent1 = self.lines[target].tangent
        tangent2 = self.lines[candidate].tangent
        interior = 180.0 - abs(math.degrees(tangent2 - tangent1))
        if not MIN_INTERIOR_ANGLE <= interior <= 180.0:
            return False

        chain.append(candidate)
        circle = self.fit_circle(chain)
        if circle is None:
            chain.pop()
            return False

        cx, cy, _ = circle
        for idx, tangent in ((target, tangent1), (candidate, tangent2)):
            estimated = self.frame.center_direction(cx, cy, self.lines[idx].mid)
            if abs(math.degrees(estimated - tangent)) > self.max_tangent_error:
                chain.pop()
                return False

        return True

    def build_arc(self, chain):
        """Turn a finished chain into an Arc, or None if it is too small."""
        circle = self.fit_circle(chain)
        if circle is None:
            return None
        x = _round_half_up(circle[0])
        y = _round_half_up(circle[1])
        r2 = _round_half_up(circle[2])
        if r2 < MIN_ARC_R2 or len(chain) < 2:
            return None

        group, reverse = self.frame.classify(x, y, chain, self.lines)
        start = self.lines[chain[0]].start
        end = self.lines[chain[-1]].end
        if reverse:
            chain.reverse()
            start, end = end, start

        first, last = self.lines[chain[0]], self.lines[chain[-1]]
        if group.reversed_line_order:
            first_vec = (first.start[0] - first.end[0], first.start[1] - first.end[1])
            last_vec = (last.start[0] - last.end[0], last.start[1] - last.end[1])
        else:
            first_vec = (first.end[0] - first.start[0], first.end[1] - first.start[1])
            last_vec = (last.end[0] - last.start[0], last.end[1] - last.start[1])

        return Arc(
            start=start,
            end=end,
            mid=(x, y),
            r2=r2,
            first_vec=first_vec,
            last_vec=last_vec,
            group=group,
            lines=list(chain),
        )


@trace(label="extract_group_arcs")
def extract_group_arcs(lines, segments, group, width, config):
    """
    Extract the arcs of the two octants served by one line group.

    Lines of accepted arcs get their `used` counter incremented; the next
    seed is the next line that is still unused.

    Returns:
        dict ArcGroup -> list of Arc (only the two octants of this group)
    """
    frame = make_arc_frame(group, width, config.arcs.max_line_gap)
    tracer = ArcTracer(lines, segments, frame, config.arcs.max_line_tangent_error)

    arcs = {}
    count = len(lines)
    seed = 0

    while seed < count:
        chain = tracer.trace(seed)
        arc = tracer.build_arc(chain)
        if arc is not None:
            arcs.setdefault(arc.group, []).append(arc)
            for idx in arc.lines:
                lines[idx].used += 1

        seed += 1
        while seed < count and lines[seed].used > 0:
            seed += 1

    return arcs


@trace(label="extract_arcs")
def extract_arcs(lines, segments, width, config):
    """
    Extract arcs for all eight octants.

    Args:
        lines: dict LineGroup -> list of Line
        segments: dict LineGroup -> list of Segment
        width: image width, needed for diagonal coordinates
        config: ExtractorConfig

    Returns:
        dict ArcGroup -> list of Arc
    """
    log = get_tracer()

    arcs = {g: [] for g in ArcGroup}
    for group in LineGroup:
        found = extract_group_arcs(lines[group], segments[group], group, width, config)
        for arc_group, group_arcs in found.items():
            arcs[arc_group].extend(group_arcs)

    for arc_group in ArcGroup:
        log.event(f"{arc_group.name.lower()} arcs: {len(arcs[arc_group])}", level="DEBUG")

    return arcs
