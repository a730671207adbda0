"""
SVG export of extraction results.
"""

import math

import svgwrite

from fastellipse.tracer import get_tracer, trace


@trace(label="emit_ellipses_svg")
def emit_ellipses_svg(result, stroke_width=1, stroke_color="red", draw_arcs=False):
    """
    Create an SVG document with one <ellipse> per extracted ellipse.

    Args:
        result: ExtractionResult
        stroke_width: line width
        stroke_color: stroke color
        draw_arcs: also draw the chord of every arc

    Returns:
        svgwrite.Drawing object
    """
    tracer = get_tracer()

    width, height = result.width, result.height
    dwg = svgwrite.Drawing(size=(f"{width}px", f"{height}px"))
    dwg.viewbox(0, 0, width, height)

    if draw_arcs:
        arc_group = dwg.g(id="arcs", fill="none", stroke="green", stroke_width=stroke_width)
        for arc in result.all_arcs():
            arc_group.add(dwg.line(start=arc.start, end=arc.end, class_=f"arc-{arc.group.name.lower()}"))
        dwg.add(arc_group)

    ellipse_group = dwg.g(id="ellipses", fill="none", stroke=stroke_color, stroke_width=stroke_width)
    for idx, ellipse in enumerate(result.ellipses):
        angle = math.degrees(ellipse.major_axis_angle)
        shape = dwg.ellipse(
            center=(round(ellipse.x, 3), round(ellipse.y, 3)),
            r=(round(ellipse.a, 3), round(ellipse.b, 3)),
            id=f"ellipse-{idx}",
        )
        shape.rotate(round(angle, 3), center=(round(ellipse.x, 3), round(ellipse.y, 3)))
        ellipse_group.add(shape)
    dwg.add(ellipse_group)

    tracer.event(f"SVG emitted with {len(result.ellipses)} ellipses")

    return dwg
