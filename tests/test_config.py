"""Tests for configuration loading and validation."""

import os

import pytest
import yaml


class TestLoadConfig:
    """Tests for YAML configuration loading."""

    def test_defaults(self):
        """Test the documented default tolerances."""
        from fastellipse.config import load_config

        config = load_config()

        assert config.segments.min_segment_length == 2
        assert config.lines.max_segment_gap == 1
        assert config.lines.min_line_length == 6
        assert config.lines.max_quantization_error == 0.74
        assert config.arcs.max_line_gap == 3
        assert config.extended_arcs.extraction_stage == 3
        assert config.ellipses.min_coverage == 0.25

    def test_missing_file_gives_defaults(self, temp_dir):
        """Test that a non-existent path falls back to defaults."""
        from fastellipse.config import ExtractorConfig, load_config

        config = load_config(os.path.join(temp_dir, "missing.yaml"))

        assert config == ExtractorConfig()

    def test_partial_yaml_merges(self, temp_dir):
        """Test that YAML values override only the keys they name."""
        from fastellipse.config import load_config

        path = os.path.join(temp_dir, "config.yaml")
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump({
                "lines": {"max_segment_gap": 3},
                "ellipses": {"min_coverage": 0.4, "unknown_key": 1},
                "not_a_section": {"x": 1},
            }, f)

        config = load_config(path)

        assert config.lines.max_segment_gap == 3
        assert config.lines.min_line_length == 6
        assert config.ellipses.min_coverage == 0.4
        assert not hasattr(config.ellipses, "unknown_key")

    def test_empty_yaml(self, temp_dir):
        """Test that an empty file is the same as no file."""
        from fastellipse.config import ExtractorConfig, load_config

        path = os.path.join(temp_dir, "empty.yaml")
        open(path, "w", encoding="utf-8").close()

        assert load_config(path) == ExtractorConfig()

    def test_default_config_round_trip(self, temp_dir):
        """Test that a saved default config loads back to the defaults."""
        from fastellipse.config import ExtractorConfig, load_config, save_default_config

        path = os.path.join(temp_dir, "defaults.yaml")
        save_default_config(path)

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)

        assert "file_path" not in data["tracing"]
        assert load_config(path) == ExtractorConfig()


class TestValidateConfig:
    """Tests for parameter range validation."""

    def test_defaults_are_valid(self, default_config):
        """Test that the defaults pass validation."""
        from fastellipse.config import validate_config

        assert validate_config(default_config) is default_config

    def test_all_violations_reported(self, default_config):
        """Test that every violation is listed in one error."""
        from fastellipse.config import validate_config

        default_config.segments.min_segment_length = 1
        default_config.lines.max_quantization_error = 0.5
        default_config.edges.method = "sobel"

        with pytest.raises(ValueError) as excinfo:
            validate_config(default_config)

        message = str(excinfo.value)
        assert "min_segment_length" in message
        assert "max_quantization_error" in message
        assert "edges.method" in message

    @pytest.mark.parametrize("section,key,value", [
        ("segments", "segment_tolerance", 255),
        ("lines", "max_segment_gap", 0),
        ("lines", "min_line_length", 2),
        ("arcs", "max_line_gap", 0),
        ("extended_arcs", "min_arc_distance_ratio", 1.5),
        ("ellipses", "max_ext_arc_mismatch", 1.0),
    ])
    def test_out_of_range(self, default_config, section, key, value):
        """Test single out-of-range parameters."""
        from fastellipse.config import validate_config

        setattr(getattr(default_config, section), key, value)

        with pytest.raises(ValueError):
            validate_config(default_config)
