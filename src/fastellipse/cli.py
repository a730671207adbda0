"""
Command-line interface for the fast ellipse extractor.

Provides commands for extracting ellipses from an image and for writing a
default configuration file.
"""

import argparse
import os
import sys

from fastellipse.config import load_config, save_default_config, validate_config
from fastellipse.tracer import configure_tracer, get_tracer


def main(argv=None):
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="fastellipse: extract ellipses from edge images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # Run command
    run_parser = subparsers.add_parser("run", help="Extract ellipses from an image")
    run_parser.add_argument(
        "--input", "-i",
        required=True,
        help="Input image file",
    )
    run_parser.add_argument(
        "--out", "-o",
        required=True,
        help="Output directory",
    )
    run_parser.add_argument(
        "--config", "-c",
        default=None,
        help="Path to YAML configuration file",
    )
    run_parser.add_argument(
        "--edges",
        dest="edges",
        action="store_true",
        default=None,
        help="Build an edge map first (default: only for non-binary images)",
    )
    run_parser.add_argument(
        "--no-edges",
        dest="edges",
        action="store_false",
        help="Use the image as edge map as it is",
    )
    run_parser.add_argument(
        "--trace",
        action="store_true",
        help="Enable runtime tracing",
    )
    run_parser.add_argument(
        "--trace-level",
        default="INFO",
        choices=["ERROR", "WARN", "INFO", "DEBUG"],
        help="Trace log level",
    )
    run_parser.add_argument(
        "--trace-file",
        default=None,
        help="Path to write trace logs",
    )
    run_parser.add_argument(
        "--trace-json",
        action="store_true",
        help="Enable JSON trace output",
    )

    # Init config command
    init_parser = subparsers.add_parser("init-config", help="Create default config file")
    init_parser.add_argument(
        "--out", "-o",
        default="fastellipse_config.yaml",
        help="Output path for config file",
    )

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    if args.command == "run":
        return handle_run(args)
    elif args.command == "init-config":
        return handle_init_config(args)

    return 0


def run_extraction(input_path, out_dir, config, edges=None):
    """
    Load an image, extract ellipses and write ellipses.json, overlay.png
    and ellipses.svg to out_dir.

    Returns the ExtractionResult.
    """
    from fastellipse.export.svg_emit import emit_ellipses_svg
    from fastellipse.io.load_image import is_binary, load_image
    from fastellipse.io.save_artifacts import draw_ellipse_overlay, ensure_dir, save_image, save_json, save_svg
    from fastellipse.pipeline import extract_ellipses
    from fastellipse.preprocess.edges import build_edge_map

    tracer = get_tracer()

    gray, _ = load_image(input_path)
    if edges is None:
        edges = not is_binary(gray)

    if edges:
        edge_map = build_edge_map(gray, config)
    else:
        edge_map = gray

    result = extract_ellipses(edge_map, config)

    with tracer.span("save_outputs", module="cli"):
        ensure_dir(out_dir)
        save_json(result, os.path.join(out_dir, "ellipses.json"))

        overlay = draw_ellipse_overlay(
            gray, result,
            color=config.output.color,
            thickness=config.output.stroke_width,
            draw_arcs=config.output.draw_arcs,
        )
        save_image(overlay, os.path.join(out_dir, "overlay.png"))

        drawing = emit_ellipses_svg(
            result,
            stroke_width=config.output.stroke_width,
            stroke_color=config.output.color,
            draw_arcs=config.output.draw_arcs,
        )
        save_svg(drawing, os.path.join(out_dir, "ellipses.svg"))

    return result


def handle_run(args):
    """Handle the run command."""
    tracer = get_tracer()

    try:
        config = validate_config(load_config(args.config))

        # command line flags win over the config file
        configure_tracer(
            enabled=args.trace or config.tracing.enabled,
            level=args.trace_level if args.trace else config.tracing.level,
            file_path=args.trace_file or config.tracing.file_path,
            json_output=args.trace_json or config.tracing.json_output,
        )

        with tracer.span("cli_run", module="cli"):
            result = run_extraction(args.input, args.out, config, edges=args.edges)

        counts = result.counts()
        print("\nExtraction completed successfully.")
        print(f"  Segments: {counts['segments']}")
        print(f"  Lines: {counts['lines']}")
        print(f"  Arcs: {counts['arcs']}")
        print(f"  Extended arcs: {counts['extended_arcs']}")
        print(f"  Ellipses: {counts['ellipses']}")
        for idx, ellipse in enumerate(result.ellipses):
            print(f"    [{idx}] center=({ellipse.x:.1f}, {ellipse.y:.1f}) "
                  f"axes=({ellipse.a:.1f}, {ellipse.b:.1f}) coverage={ellipse.coverage:.2f}")
        print(f"\nOutputs saved to: {args.out}/")
        print("  - ellipses.json")
        print("  - overlay.png")
        print("  - ellipses.svg")

        return 0

    except (OSError, ValueError) as e:
        tracer.event(f"Extraction failed: {str(e)}", level="ERROR")
        print(f"\nError: {str(e)}", file=sys.stderr)
        return 1

    finally:
        tracer.close()


def handle_init_config(args):
    """Handle the init-config command."""
    save_default_config(args.out)
    print(f"Default configuration saved to: {args.out}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
