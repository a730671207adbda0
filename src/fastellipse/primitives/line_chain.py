"""
Line extraction for the fast ellipse extractor.

Greedily chains consecutive segments of one scan direction into straight
lines. The search window, slope and span rules differ per direction, so each
direction gets a small frame object that knows its own geometry.
"""

import math
from abc import ABC, abstractmethod

from fastellipse.models import Line, LineGroup
from fastellipse.tracer import get_tracer, trace


def _round_half_up(value):
    return math.floor(value + 0.5)


def _ratio(num, den):
    """Slope helper; None when the denominator vanishes."""
    if den == 0:
        return None
    return num / den


def upright_tangent(start, end):
    """Tangent of a directed line with the y axis pointing up."""
    return math.atan2(-(end[1] - start[1]), end[0] - start[0])


def mirrored_tangent(start, end):
    """
    Tangent used by vertical and up-right diagonal lines.

    Mirrored against upright_tangent. The arc tracer and the ellipse
    tangent checks depend on this convention.
    """
    return math.atan2(end[1] - start[1], -(end[0] - start[0]))


class ScanFrame(ABC):
    """Geometry rules for chaining segments of one scan direction."""

    def __init__(self, width, max_gap):
        self.width = width
        self.max_gap = max_gap

    @abstractmethod
    def window(self, target):
        """Return (positive limit, negative limit, scan-line boundary) around a target segment."""

    @abstractmethod
    def past_window(self, candidate, window):
        """True once candidates lie on scan lines beyond the window."""

    @abstractmethod
    def fits_positive(self, candidate, target, window):
        pass

    @abstractmethod
    def fits_negative(self, candidate, target, window):
        pass

    @abstractmethod
    def span(self, first, last, positive):
        """Length of a chain given its first and last segment."""

    @abstractmethod
    def tangent(self, start, end):
        pass

    def slope(self, seed, candidate, positive):
        if positive:
            return _ratio(candidate.end[1] - seed.start[1], candidate.end[0] - seed.start[0])
        return _ratio(seed.end[1] - candidate.start[1], seed.end[0] - candidate.start[0])

    def deviation(self, longest, slope):
        # diagonal pixels carry twice the quantization error, so halve it
        return 0.5 * (
            (longest.start[1] - slope * longest.start[0])
            - (longest.end[1] - slope * longest.end[0])
        )

    def endpoints(self, first, last, positive):
        if positive:
            return first.start, last.end
        return last.start, first.end

    def diag_x(self, point):
        return point[0] + point[1]

    def diag_y(self, point):
        return self.width - 1 - point[0] + point[1]


class AxisFrame(ScanFrame):
    """Rows (along=0) or columns (along=1)."""

    def __init__(self, width, max_gap, along, tangent_fn):
        super().__init__(width, max_gap)
        self.along = along
        self.across = 1 - along
        self._tangent = tangent_fn

    def window(self, target):
        u, v = self.along, self.across
        pos = target.end[u] + self.max_gap
        neg = target.start[u] - self.max_gap
        delta = target.end[u] - target.start[u]
        if delta == 0:
            return pos, neg, math.inf
        min_slope = -0.5 / delta
        boundary = target.end[v] + _round_half_up(min_slope * (neg - target.end[u]))
        return pos, neg, boundary

    def past_window(self, candidate, window):
        return candidate.start[self.across] > window[2]

    def fits_positive(self, candidate, target, window):
        u = self.along
        return (candidate.start[u] <= window[0]
                and candidate.start[u] >= target.end[u] - target.length // 2 + 1)

    def fits_negative(self, candidate, target, window):
        u = self.along
        return (candidate.end[u] >= window[1]
                and candidate.end[u] <= target.start[u] + target.length // 2 - 1)

    def slope(self, seed, candidate, positive):
        u, v = self.along, self.across
        if positive:
            return _ratio(candidate.end[v] - seed.start[v], candidate.end[u] - seed.start[u])
        return _ratio(seed.end[v] - candidate.start[v], seed.end[u] - candidate.start[u])

    def deviation(self, longest, slope):
        return slope * (longest.end[self.along] - longest.start[self.along])

    def span(self, first, last, positive):
        u = self.along
        if positive:
            return last.end[u] - first.start[u] + 1
        return first.end[u] - last.start[u] + 1

    def tangent(self, start, end):
        return self._tangent(start, end)


class DiagonalDownFrame(ScanFrame):
    """Diagonals running down-right, measured along x+y."""

    def window(self, target):
        start_x, end_x = self.diag_x(target.start), self.diag_x(target.end)
        pos = end_x + 1 + 2 * self.max_gap
        neg = start_x - 1 - 2 * self.max_gap
        delta = end_x - start_x
        if delta == 0:
            return pos, neg, math.inf
        min_slope = -0.5 / delta
        boundary = self.diag_y(target.end) + _round_half_up(min_slope * (neg - end_x))
        return pos, neg, boundary

    def past_window(self, candidate, window):
        return self.diag_y(candidate.start) > window[2]

    def fits_positive(self, candidate, target, window):
        x = self.diag_x(candidate.start)
        return x <= window[0] and x >= self.diag_x(target.end) - target.length + 1

    def fits_negative(self, candidate, target, window):
        x = self.diag_x(candidate.end)
        return x >= window[1] and x <= self.diag_x(target.start) + target.length - 1

    def span(self, first, last, positive):
        if positive:
            return last.end[1] - first.start[1] + 1
        return first.end[0] - last.start[0] + 1

    def tangent(self, start, end):
        return upright_tangent(start, end)


class DiagonalUpFrame(ScanFrame):
    """Diagonals running up-right, measured along w-1-x+y."""

    def window(self, target):
        start_y, end_y = self.diag_y(target.start), self.diag_y(target.end)
        pos = start_y + 1 + 2 * self.max_gap
        neg = end_y - 1 - 2 * self.max_gap
        delta = start_y - end_y
        if delta == 0:
            return pos, neg, -math.inf
        min_slope = -0.5 / delta
        boundary = self.diag_x(target.end) - _round_half_up(min_slope * (neg - start_y))
        return pos, neg, boundary

    def past_window(self, candidate, window):
        return self.diag_x(candidate.start) < window[2]

    def fits_positive(self, candidate, target, window):
        y = self.diag_y(candidate.start)
        return y >= window[1] and y <= self.diag_y(target.end) + target.length - 1

    def fits_negative(self, candidate, target, window):
        y = self.diag_y(candidate.end)
        return y <= window[0] and y >= self.diag_y(target.start) - target.length + 1

    def span(self, first, last, positive):
        if positive:
            return first.start[1] - last.end[1] + 1
        return first.end[0] - last.start[0] + 1

    def endpoints(self, first, last, positive):
        if positive:
            return last.end, first.start
        return first.end, last.start

    def tangent(self, start, end):
        return mirrored_tangent(start, end)


def make_frame(group, width, max_gap):
    """Build the scan frame of a line group."""
    if group == LineGroup.HORIZONTAL:
        return AxisFrame(width, max_gap, along=0, tangent_fn=upright_tangent)
    if group == LineGroup.VERTICAL:
        return AxisFrame(width, max_gap, along=1, tangent_fn=mirrored_tangent)
    if group == LineGroup.DIAGONAL_DOWN:
        return DiagonalDownFrame(width, max_gap)
    if group == LineGroup.DIAGONAL_UP:
        return DiagonalUpFrame(width, max_gap)
    raise ValueError(f"Unknown line group: {group}")


def grow_chain(segments, seed, frame, max_quantization_error):
    """
    Chain segments starting at a seed segment.

    The slope sign is fixed by the first accepted pair. Growth stops when no
    candidate lies in the window or when the longest member deviates more
    than max_quantization_error from the line through the chain ends.

    Returns (segment indices, positive_slope).
    """
    count = len(segments)
    chain = [seed]
    target = longest = seed
    candidate = seed + 1
    positive = True
    first_candidate = True

    while candidate < count:
        window = frame.window(segments[target])
        found = None

        while candidate < count:
            seg = segments[candidate]
            if seg.used > 0:
                candidate += 1
                continue
            if frame.past_window(seg, window):
                break
            if (positive or first_candidate) and frame.fits_positive(seg, segments[target], window):
                positive = True
                found = candidate
                break
            if (not positive or first_candidate) and frame.fits_negative(seg, segments[target], window):
                positive = False
                found = candidate
                break
            candidate += 1

        if found is None:
            break

        if segments[longest].length < segments[found].length:
            longest = found

        slope = frame.slope(segments[seed], segments[found], positive)
        if slope is None or abs(frame.deviation(segments[longest], slope)) > max_quantization_error:
            if first_candidate:
                positive = True
            break

        first_candidate = False
        chain.append(found)
        target = found
        candidate = found + 1

    return chain, positive


@trace(label="extract_group_lines")
def extract_group_lines(segments, group, width, config):
    """
    Chain the segments of one scan direction into lines.

    Segments of accepted lines get their `used` counter incremented; the
    next seed is the next segment that is still unused.

    Returns:
        list of Line for this group
    """
    frame = make_frame(group, width, config.lines.max_segment_gap)
    max_error = config.lines.max_quantization_error
    min_length = config.lines.min_line_length

    lines = []
    count = len(segments)
    seed = 0

    while seed < count:
        chain, positive = grow_chain(segments, seed, frame, max_error)
        first, last = segments[chain[0]], segments[chain[-1]]
        length = frame.span(first, last, positive)

        if length >= min_length:
            start, end = frame.endpoints(first, last, positive)
            lines.append(Line(
                start=start,
                end=end,
                mid=((start[0] + end[0]) // 2, (start[1] + end[1]) // 2),
                tangent=frame.tangent(start, end),
                length=length,
                group=group,
                segments=chain,
            ))
            for idx in chain:
                segments[idx].used += 1

        seed += 1
        while seed < count and segments[seed].used > 0:
            seed += 1

    return lines


@trace(label="extract_lines")
def extract_lines(segments, width, config):
    """
    Extract lines for all four scan directions.

    Args:
        segments: dict LineGroup -> list of Segment
        width: image width, needed for diagonal coordinates
        config: ExtractorConfig

    Returns:
        dict LineGroup -> list of Line
    """
    tracer = get_tracer()

    lines = {}
    for group in LineGroup:
        lines[group] = extract_group_lines(segments[group], group, width, config)
        tracer.event(f"{group.name.lower()} lines: {len(lines[group])}", level="DEBUG")

    return lines
