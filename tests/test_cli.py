"""End-to-end tests for the command line interface."""

import json
import os

import cv2
import numpy as np
import pytest
import yaml


class TestRunCommand:
    """Tests for the run command."""

    def test_run_writes_artifacts(self, synthetic_input_file, temp_dir):
        """Test that a run writes JSON, overlay and SVG."""
        from fastellipse.cli import main

        out_dir = os.path.join(temp_dir, "out")
        code = main(["run", "--input", synthetic_input_file, "--out", out_dir])

        assert code == 0
        for name in ("ellipses.json", "overlay.png", "ellipses.svg"):
            assert os.path.exists(os.path.join(out_dir, name))

        with open(os.path.join(out_dir, "ellipses.json"), "r", encoding="utf-8") as f:
            data = json.load(f)
        assert data["width"] == 200
        assert len(data["ellipses"]) == 1

        overlay = cv2.imread(os.path.join(out_dir, "overlay.png"))
        assert overlay.shape == (200, 200, 3)

        with open(os.path.join(out_dir, "ellipses.svg"), "r", encoding="utf-8") as f:
            svg = f.read()
        assert "<ellipse" in svg

    def test_run_summary_printed(self, synthetic_input_file, temp_dir, capsys):
        """Test that the run prints stage counts."""
        from fastellipse.cli import main

        main(["run", "-i", synthetic_input_file, "-o", os.path.join(temp_dir, "out")])

        out = capsys.readouterr().out
        assert "Extraction completed successfully." in out
        assert "Ellipses: 1" in out

    def test_missing_input(self, temp_dir, capsys):
        """Test that a missing input file exits with 1."""
        from fastellipse.cli import main

        code = main([
            "run",
            "--input", os.path.join(temp_dir, "nope.png"),
            "--out", os.path.join(temp_dir, "out"),
        ])

        assert code == 1
        assert "Error" in capsys.readouterr().err

    def test_invalid_config_file(self, synthetic_input_file, temp_dir):
        """Test that an out-of-range config value exits with 1."""
        from fastellipse.cli import main

        path = os.path.join(temp_dir, "bad.yaml")
        with open(path, "w", encoding="utf-8") as f:
            yaml.dump({"extended_arcs": {"extraction_stage": 7}}, f)

        code = main([
            "run",
            "-i", synthetic_input_file,
            "-o", os.path.join(temp_dir, "out"),
            "-c", path,
        ])

        assert code == 1

    def test_trace_file(self, synthetic_input_file, temp_dir):
        """Test that --trace-file captures the trace."""
        from fastellipse.cli import main
        from fastellipse.tracer import configure_tracer

        trace_path = os.path.join(temp_dir, "trace.log")
        code = main([
            "run",
            "-i", synthetic_input_file,
            "-o", os.path.join(temp_dir, "out"),
            "--trace",
            "--trace-file", trace_path,
        ])
        configure_tracer(enabled=False)

        assert code == 0
        with open(trace_path, "r", encoding="utf-8") as f:
            content = f.read()
        assert "cli:cli_run" in content
        assert "save_outputs" in content


class TestRunExtraction:
    """Tests for run_extraction with edge preprocessing."""

    def test_photo_goes_through_edges(self, temp_dir, default_config):
        """Test that a filled gray disk is turned into edges first."""
        from fastellipse.cli import run_extraction

        img = np.full((200, 200), 200, dtype=np.uint8)
        cv2.ellipse(img, (100, 100), (60, 40), 0, 0, 360, 60, -1)
        path = os.path.join(temp_dir, "photo.png")
        cv2.imwrite(path, img)

        result = run_extraction(path, os.path.join(temp_dir, "out"), default_config)

        assert result.width == 200
        assert result.counts()["segments"] > 0
        assert os.path.exists(os.path.join(temp_dir, "out", "ellipses.json"))


class TestEdgeMap:
    """Tests for edge map preparation."""

    def test_canny_edges_are_binary(self, default_config):
        """Test that Canny output is a thin 0/255 map."""
        from fastellipse.preprocess.edges import build_edge_map

        img = np.full((100, 100), 220, dtype=np.uint8)
        cv2.circle(img, (50, 50), 30, 40, -1)

        edges = build_edge_map(img, default_config)

        assert edges.shape == img.shape
        assert set(np.unique(edges).tolist()) <= {0, 255}
        assert edges[50, 50] == 0
        assert np.count_nonzero(edges) > 0

    def test_otsu_edges(self, default_config):
        """Test that Otsu strokes are thinned to foreground lines."""
        from fastellipse.preprocess.edges import build_edge_map

        default_config.edges.method = "otsu"
        img = np.full((100, 100), 255, dtype=np.uint8)
        cv2.circle(img, (50, 50), 30, 0, 3)

        edges = build_edge_map(img, default_config)

        assert edges[50, 50] == 0
        assert 0 < np.count_nonzero(edges) < np.count_nonzero(img == 0)


class TestInitConfig:
    """Tests for the init-config command."""

    def test_init_config(self, temp_dir):
        """Test that init-config writes a loadable YAML file."""
        from fastellipse.cli import main
        from fastellipse.config import ExtractorConfig, load_config

        path = os.path.join(temp_dir, "fastellipse_config.yaml")
        code = main(["init-config", "--out", path])

        assert code == 0
        assert load_config(path) == ExtractorConfig()

    def test_no_command_prints_help(self, capsys):
        """Test that no subcommand prints usage and succeeds."""
        from fastellipse.cli import main

        assert main([]) == 0
        assert "usage" in capsys.readouterr().out.lower()


class TestLoadImage:
    """Tests for image loading."""

    def test_load_grayscale(self, synthetic_input_file):
        """Test that images load as 2D uint8 with metadata."""
        from fastellipse.io.load_image import is_binary, load_image

        img, meta = load_image(synthetic_input_file)

        assert img.shape == (200, 200)
        assert meta["width"] == 200
        assert is_binary(img)

    def test_color_file_loaded_as_grayscale(self, temp_dir):
        """Test that color files are converted to a single channel."""
        from fastellipse.io.load_image import is_binary, load_image

        img = np.zeros((50, 80, 3), dtype=np.uint8)
        cv2.circle(img, (40, 25), 15, (0, 0, 255), 1)
        path = os.path.join(temp_dir, "color.png")
        cv2.imwrite(path, img)

        gray, meta = load_image(path)

        assert gray.shape == (50, 80)
        assert meta["height"] == 50
        assert is_binary(gray)

    def test_unsupported_extension(self, temp_dir):
        """Test that unknown extensions are rejected."""
        from fastellipse.io.load_image import load_image

        path = os.path.join(temp_dir, "image.txt")
        with open(path, "w", encoding="utf-8") as f:
            f.write("not an image")

        with pytest.raises(ValueError):
            load_image(path)
