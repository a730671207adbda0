"""
Configuration management for the fast ellipse extractor.

Loads YAML configuration with defaults for every extraction tolerance and
for the command line preprocessing and output.
"""

import os
from dataclasses import asdict, dataclass, field

import yaml


@dataclass
class SegmentsConfig:
    """Configuration for segment detection."""
    min_segment_length: int = 2
    segment_tolerance: int = 0  # largest value step inside one segment


@dataclass
class LinesConfig:
    """Configuration for line extraction."""
    max_segment_gap: int = 1
    min_line_length: int = 6
    max_quantization_error: float = 0.74


@dataclass
class ArcsConfig:
    """Configuration for arc extraction."""
    max_line_gap: int = 3
    max_line_tangent_error: float = 14.0  # degrees


@dataclass
class ExtendedArcsConfig:
    """Configuration for extended arc extraction."""
    max_arc_gap: int = 25
    max_arc_tangent_error: float = 18.0  # degrees
    min_arc_distance_ratio: float = 0.56
    max_arc_distance_angle: float = 16.0  # degrees
    min_gap_angle_distance: int = 2
    max_gap_angle: float = 30.0  # degrees
    max_arc_overlap_gap: float = 1.0
    max_interior_angle_mismatches: int = 1
    max_tangent_errors: int = 1
    max_lb_center_mismatch: float = 4.0
    extraction_stage: int = 3  # 1 interior angles, 2 + tangents, 3 + line beam


@dataclass
class EllipsesConfig:
    """Configuration for ellipse merging."""
    max_ext_arc_mismatch: float = 0.3
    max_center_mismatch: float = 5.0
    min_radius_match_ratio: float = 0.8
    min_coverage: float = 0.25


@dataclass
class EdgesConfig:
    """Configuration for turning photos into edge maps before extraction."""
    method: str = "canny"  # "canny" or "otsu"
    canny_low: int = 50
    canny_high: int = 150
    blur_kernel: int = 3
    thin: bool = True


@dataclass
class TracingConfig:
    """Configuration for runtime tracing."""
    enabled: bool = False
    level: str = "INFO"
    file_path: str = None
    json_output: bool = False


@dataclass
class OutputConfig:
    """Configuration for overlay and SVG rendering."""
    stroke_width: int = 1
    color: str = "red"
    draw_arcs: bool = False


@dataclass
class ExtractorConfig:
    """Complete extractor configuration."""
    segments: SegmentsConfig = field(default_factory=SegmentsConfig)
    lines: LinesConfig = field(default_factory=LinesConfig)
    arcs: ArcsConfig = field(default_factory=ArcsConfig)
    extended_arcs: ExtendedArcsConfig = field(default_factory=ExtendedArcsConfig)
    ellipses: EllipsesConfig = field(default_factory=EllipsesConfig)
    edges: EdgesConfig = field(default_factory=EdgesConfig)
    tracing: TracingConfig = field(default_factory=TracingConfig)
    output: OutputConfig = field(default_factory=OutputConfig)


SECTIONS = (
    "segments",
    "lines",
    "arcs",
    "extended_arcs",
    "ellipses",
    "edges",
    "tracing",
    "output",
)


def load_config(config_path=None):
    """
    Load configuration from YAML file.

    Falls back to defaults for any missing values.
    """
    config = ExtractorConfig()

    if config_path and os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            yaml_data = yaml.safe_load(f) or {}

        config = _merge_config(config, yaml_data)

    return config


def _merge_config(config, yaml_data):
    """Merge YAML data into config dataclass. Unknown keys are ignored."""
    for section in SECTIONS:
        if section not in yaml_data:
            continue
        target = getattr(config, section)
        for key, value in (yaml_data[section] or {}).items():
            if hasattr(target, key):
                setattr(target, key, value)

    return config


def validate_config(config):
    """
    Check the documented parameter ranges.

    Raises ValueError listing every violation.
    """
    errors = []

    if config.segments.min_segment_length < 2:
        errors.append("segments.min_segment_length must be >= 2")
    if not 0 <= config.segments.segment_tolerance <= 254:
        errors.append("segments.segment_tolerance must be in 0..254")
    if config.lines.max_segment_gap < 1:
        errors.append("lines.max_segment_gap must be >= 1")
    if config.lines.min_line_length < 3:
        errors.append("lines.min_line_length must be >= 3")
    if config.lines.max_quantization_error <= 0.5:
        errors.append("lines.max_quantization_error must be > 0.5")
    if config.arcs.max_line_gap < 1:
        errors.append("arcs.max_line_gap must be >= 1")
    if config.extended_arcs.max_arc_gap < 1:
        errors.append("extended_arcs.max_arc_gap must be >= 1")
    if not 0 <= config.extended_arcs.min_arc_distance_ratio <= 1:
        errors.append("extended_arcs.min_arc_distance_ratio must be in [0, 1]")
    if config.extended_arcs.extraction_stage not in (1, 2, 3):
        errors.append("extended_arcs.extraction_stage must be 1, 2 or 3")
    if not 0 < config.ellipses.max_ext_arc_mismatch < 1:
        errors.append("ellipses.max_ext_arc_mismatch must be in (0, 1)")
    if config.edges.method not in ("canny", "otsu"):
        errors.append("edges.method must be 'canny' or 'otsu'")

    if errors:
        raise ValueError("Invalid configuration: " + "; ".join(errors))

    return config


def save_default_config(path):
    """Save default configuration to YAML file for reference."""
    config = ExtractorConfig()

    yaml_data = {section: asdict(getattr(config, section)) for section in SECTIONS}
    # the trace file is a command line concern
    yaml_data["tracing"].pop("file_path")

    with open(path, "w", encoding="utf-8") as f:
        yaml.dump(yaml_data, f, default_flow_style=False, sort_keys=False)
