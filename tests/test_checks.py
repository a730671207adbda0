"""Tests for the geometric consistency checks."""

import math

import pytest


def _line(group, start, end, length):
    from fastellipse.models import Line

    return Line(
        start=start,
        end=end,
        mid=((start[0] + end[0]) // 2, (start[1] + end[1]) // 2),
        tangent=math.atan2(-(end[1] - start[1]), end[0] - start[0]),
        length=length,
        group=group,
    )


def _arc(group, start, end, lines=(0,), first_vec=(1, 0), last_vec=(1, 0), mid=(0, 0), r2=100):
    from fastellipse.models import Arc

    return Arc(
        start=start,
        end=end,
        mid=mid,
        r2=r2,
        first_vec=first_vec,
        last_vec=last_vec,
        group=group,
        lines=list(lines),
    )


@pytest.fixture
def top_result():
    """Three arcs on the upper octants of a radius 10 circle around (50, 50)."""
    from fastellipse.models import ArcGroup, ExtendedArc, ExtractionResult, LineGroup

    result = ExtractionResult(width=100, height=100)
    result.lines[LineGroup.HORIZONTAL] = [
        _line(LineGroup.HORIZONTAL, (44, 42), (50, 40), 12),
        _line(LineGroup.HORIZONTAL, (50, 40), (56, 42), 8),
    ]
    result.lines[LineGroup.DIAGONAL_UP] = [_line(LineGroup.DIAGONAL_UP, (42, 44), (40, 50), 10)]
    result.lines[LineGroup.DIAGONAL_DOWN] = [_line(LineGroup.DIAGONAL_DOWN, (56, 42), (60, 50), 10)]

    result.arcs[ArcGroup.TOP_LEFT] = [_arc(ArcGroup.TOP_LEFT, (40, 50), (44, 42))]
    result.arcs[ArcGroup.TOP] = [_arc(ArcGroup.TOP, (44, 42), (56, 42), lines=(0, 1))]
    result.arcs[ArcGroup.TOP_RIGHT] = [_arc(ArcGroup.TOP_RIGHT, (58, 44), (60, 50))]

    for _ in range(2):
        result.extended_arcs.append(ExtendedArc(
            group=ArcGroup.TOP,
            arc_indices=(0, 0, 0),
            x=50.0, y=50.0, a=10.0, b=10.0, t=0.0,
        ))
    return result


class TestBasicGeometry:
    """Tests for the small geometric helpers."""

    def test_vector_angle(self):
        """Test angles between vectors in degrees."""
        from fastellipse.fitting.checks import vector_angle

        assert vector_angle((1, 0), (0, 1)) == pytest.approx(90.0)
        assert vector_angle((1, 1), (2, 2)) == pytest.approx(0.0, abs=1e-6)
        assert vector_angle((1, 0), (-3, 0)) == pytest.approx(180.0)

    def test_zero_vector_angle_is_nan(self):
        """Test that a zero vector yields nan, which never exceeds a threshold."""
        from fastellipse.fitting.checks import vector_angle

        angle = vector_angle((0, 0), (1, 0))
        assert math.isnan(angle)
        assert not angle > 16.0

    def test_vertical_slope(self):
        """Test that vertical lines get a large finite slope."""
        from fastellipse.fitting.checks import INFINITE_SLOPE, slope_of

        assert slope_of(0, 5) == INFINITE_SLOPE
        assert slope_of(0, -5) == -INFINITE_SLOPE
        assert slope_of(4, 2) == 0.5
        assert math.isnan(slope_of(0, 0))

    def test_major_axis_frame_folds_minus_ninety(self):
        """Test that -90 degrees is folded to +90 before rotating."""
        from fastellipse.fitting.checks import major_axis_frame

        assert major_axis_frame(0.0) == pytest.approx(math.pi / 2)
        assert major_axis_frame(-math.pi / 2) == pytest.approx(0.0)
        assert major_axis_frame(math.pi / 2) == pytest.approx(0.0)

    def test_line_point_distance(self):
        """Test the distance of a point from a horizontal line."""
        from fastellipse.fitting.checks import line_point_distance

        assert abs(line_point_distance(0, 0, 0, 5, 0.0)) == pytest.approx(5.0)
        assert abs(line_point_distance(3, 5, 0, 5, 0.0)) == pytest.approx(0.0)

    def test_circumference_of_circle(self):
        """Test that the approximation is exact for circles."""
        from fastellipse.fitting.checks import ellipse_circumference

        assert ellipse_circumference(10.0, 10.0) == pytest.approx(2 * math.pi * 10.0)


class TestLineBeam:
    """Tests for the line beam through two tangent lines."""

    def test_intersection_and_slope(self):
        """Test the tangent intersection and the beam slope."""
        from fastellipse.fitting.checks import line_beam
        from fastellipse.models import LineGroup

        first = _line(LineGroup.DIAGONAL_DOWN, (0, 0), (10, 10), 10)
        last = _line(LineGroup.DIAGONAL_UP, (20, 0), (30, -10), 10)

        ix, iy, slope = line_beam(first, last)

        assert (ix, iy) == pytest.approx((10.0, 10.0))
        assert slope == pytest.approx(-2.0)

    def test_center_distance(self):
        """Test the distance of a center from the beam."""
        from fastellipse.fitting.checks import line_beam_center_distance
        from fastellipse.models import LineGroup

        first = _line(LineGroup.DIAGONAL_DOWN, (0, 0), (10, 10), 10)
        last = _line(LineGroup.DIAGONAL_UP, (20, 0), (30, -10), 10)

        on_beam = line_beam_center_distance(first, last, 15.0, 0.0)
        off_beam = line_beam_center_distance(first, last, 20.0, 10.0)

        assert on_beam[3] == pytest.approx(0.0, abs=1e-9)
        assert abs(off_beam[3]) == pytest.approx(20.0 / math.sqrt(5.0))

    def test_parallel_lines(self):
        """Test that parallel tangents have no beam."""
        from fastellipse.fitting.checks import line_beam_center_distance
        from fastellipse.models import LineGroup

        first = _line(LineGroup.HORIZONTAL, (0, 0), (10, 0), 11)
        last = _line(LineGroup.HORIZONTAL, (0, 5), (10, 5), 11)

        assert line_beam_center_distance(first, last, 5.0, 2.0) is None


class TestArcsConnect:
    """Tests for the arc connection test."""

    def test_adjacent_arcs_connect(self, default_config):
        """Test that a short continuation along the chord connects."""
        from fastellipse.fitting.checks import arcs_connect
        from fastellipse.models import ArcGroup

        first = _arc(ArcGroup.TOP_LEFT, (0, 10), (10, 0))
        second = _arc(ArcGroup.TOP, (12, -1), (30, -3))

        assert arcs_connect(first, second, second, default_config)

    def test_large_gap(self, default_config):
        """Test that arcs further apart than max_arc_gap do not connect."""
        from fastellipse.fitting.checks import arcs_connect
        from fastellipse.models import ArcGroup

        first = _arc(ArcGroup.TOP_LEFT, (0, 10), (10, 0))
        second = _arc(ArcGroup.TOP, (40, 0), (60, -2))

        assert not arcs_connect(first, second, second, default_config)

    def test_start_too_close(self, default_config):
        """Test that a second arc starting inside the first chord is rejected."""
        from fastellipse.fitting.checks import arcs_connect
        from fastellipse.models import ArcGroup

        first = _arc(ArcGroup.TOP_LEFT, (0, 10), (10, 0))
        second = _arc(ArcGroup.TOP, (2, 12), (20, 0))

        assert not arcs_connect(first, second, second, default_config)

    def test_start_off_chord_direction(self, default_config):
        """Test that a start point far off the chord direction is rejected."""
        from fastellipse.fitting.checks import arcs_connect
        from fastellipse.models import ArcGroup

        first = _arc(ArcGroup.TOP_LEFT, (0, 10), (10, 0))
        second = _arc(ArcGroup.TOP, (20, 10), (30, 10))

        assert not arcs_connect(first, second, second, default_config)

    def test_gap_angle(self, default_config):
        """Test that a gap has to follow the end directions of both arcs."""
        from fastellipse.fitting.checks import arcs_connect
        from fastellipse.models import ArcGroup

        first = _arc(ArcGroup.TOP_LEFT, (0, 10), (10, 0), last_vec=(1, -1))
        along = _arc(ArcGroup.TOP, (15, -5), (30, -8), first_vec=(1, -1))
        across = _arc(ArcGroup.TOP, (15, -5), (30, -8), first_vec=(1, 1))

        assert arcs_connect(first, along, along, default_config)
        assert not arcs_connect(first, across, across, default_config)


class TestEllipseChecks:
    """Tests for ellipse residual, tangent and coverage checks."""

    def test_point_mismatch_on_circle(self, top_result):
        """Test that arc end points on the circle have zero residual."""
        from fastellipse.fitting.checks import ellipse_point_mismatch
        from fastellipse.models import EllipseParams

        ext = top_result.extended_arcs[0]
        params = EllipseParams(x=50.0, y=50.0, a=10.0, b=10.0, t=0.0)

        assert ellipse_point_mismatch(ext, params, top_result) == pytest.approx(0.0, abs=1e-12)

    def test_point_mismatch_off_circle(self, top_result):
        """Test the residual against a larger circle."""
        from fastellipse.fitting.checks import ellipse_point_mismatch
        from fastellipse.models import EllipseParams

        ext = top_result.extended_arcs[0]
        params = EllipseParams(x=50.0, y=50.0, a=12.5, b=12.5, t=0.0)

        assert ellipse_point_mismatch(ext, params, top_result) == pytest.approx(0.36)

    def test_ellipse_tangent(self):
        """Test the ellipse tangent at the right and top of a circle."""
        from fastellipse.fitting.checks import ellipse_tangent, major_axis_frame
        from fastellipse.models import EllipseParams

        params = EllipseParams(x=0.0, y=0.0, a=10.0, b=10.0, t=0.0)
        phi = major_axis_frame(params.t)

        assert ellipse_tangent(params, (10, 0), phi) == pytest.approx(math.pi / 2)
        assert ellipse_tangent(params, (0, -10), phi) == pytest.approx(0.0, abs=1e-9)

    def test_coverage_counts_lines_once(self, top_result):
        """Test that lines shared by merged extended arcs are counted once."""
        from fastellipse.fitting.checks import ellipse_coverage
        from fastellipse.models import Ellipse

        single = Ellipse(x=50.0, y=50.0, a=10.0, b=10.0, t=0.0, merged_arcs=[0])
        merged = Ellipse(x=50.0, y=50.0, a=10.0, b=10.0, t=0.0, merged_arcs=[0, 1])

        expected = 40.0 / (20.0 * math.pi)
        assert ellipse_coverage(single, top_result) == pytest.approx(expected)
        assert ellipse_coverage(merged, top_result) == pytest.approx(expected)


def _offset_tangents(result, params, offset):
    """Set every line tangent to the ellipse tangent at its midpoint plus offset."""
    from fastellipse.fitting.checks import ellipse_tangent, major_axis_frame

    phi = major_axis_frame(params.t)
    for lines in result.lines.values():
        for line in lines:
            line.tangent = ellipse_tangent(params, line.mid, phi) + offset


class TestTangentErrors:
    """Tests for counting base lines that disagree with the ellipse tangent."""

    @pytest.mark.parametrize("offset", [0.0, 0.2, -0.2])
    def test_within_limit(self, top_result, default_config, offset):
        """Test that deviations below max_arc_tangent_error are not counted."""
        from fastellipse.fitting.checks import tangent_errors

        ext = top_result.extended_arcs[0]
        _offset_tangents(top_result, ext, offset)

        assert tangent_errors(ext, ext, top_result, default_config) == 0

    def test_all_lines_counted(self, top_result, default_config):
        """Test that every disagreeing line of the three base arcs counts."""
        from fastellipse.fitting.checks import tangent_errors

        ext = top_result.extended_arcs[0]
        _offset_tangents(top_result, ext, 0.5)
        default_config.extended_arcs.max_tangent_errors = 10

        assert tangent_errors(ext, ext, top_result, default_config) == 4

    def test_counting_stops_above_limit(self, top_result, default_config):
        """Test that counting stops once max_tangent_errors is exceeded."""
        from fastellipse.fitting.checks import tangent_errors

        ext = top_result.extended_arcs[0]
        _offset_tangents(top_result, ext, 0.5)
        default_config.extended_arcs.max_tangent_errors = 1

        assert tangent_errors(ext, ext, top_result, default_config) == 2

    def test_stage_one_counts_nothing(self, top_result, default_config):
        """Test that extraction stage 1 does not count tangent errors."""
        from fastellipse.fitting.checks import tangent_errors

        ext = top_result.extended_arcs[0]
        _offset_tangents(top_result, ext, 0.5)
        default_config.extended_arcs.extraction_stage = 1

        assert tangent_errors(ext, ext, top_result, default_config) == 0
