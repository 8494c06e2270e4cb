#!/usr/bin/env python3
"""Main Entry Point and CLI Integration.

This module provides the command-line interface for the thread-flow
scheduler. It loads configuration, reads one input file per thread, builds
and validates the dependency graph, schedules and lays it out, and writes the
requested rendering.
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from src.config import AppConfig, load_config
from src.editor.session import SessionState, analyze
from src.graph.builder import GraphBuilder
from src.graph.serialize import export_files
from src.log_config import bind_context, clear_context, configure_logging, get_logger
from src.render.visualize import generate_visualization, render_svg

logger = get_logger(__name__)

OUTPUT_FORMATS = ["json", "svg", "mermaid", "dot"]


def collect_input_paths(inputs: list[str], config: AppConfig) -> list[Path]:
    """Expand files and directories into the list of thread files.

    Directories are searched (non-recursively) with the configured patterns.
    Missing paths are logged and skipped.

    Args:
        inputs: Paths given on the command line
        config: Application configuration

    Returns:
        Thread file paths in a stable order
    """
    paths: list[Path] = []

    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            found: set[Path] = set()
            for pattern in config.input.patterns:
                found.update(p for p in path.glob(pattern) if p.is_file())
            paths.extend(sorted(found))
        elif path.is_file():
            paths.append(path)
        else:
            logger.warning("input_path_not_found", path=raw)

    return paths


async def read_thread_files(paths: list[Path], encoding: str = "utf-8") -> dict[str, str]:
    """Read all thread files concurrently.

    Unreadable files are logged and left out of the result.

    Args:
        paths: Files to read
        encoding: Text encoding

    Returns:
        Mapping of file name to content
    """

    async def read_one(path: Path) -> tuple[Path, str | None]:
        try:
            return path, await asyncio.to_thread(path.read_text, encoding=encoding)
        except (OSError, UnicodeDecodeError) as e:
            logger.exception("failed_to_read_thread_file", path=str(path), error=str(e))
            return path, None

    results = await asyncio.gather(*(read_one(path) for path in paths))

    files = {path.name: text for path, text in results if text is not None}
    logger.info("thread_files_read", requested=len(paths), read=len(files))
    return files


def render_output(state: SessionState, output_format: str) -> str:
    """Render the analysis in the requested format.

    Raises:
        ValueError: If the format is not supported
    """
    if output_format == "json":
        return json.dumps(state.to_dict(), indent=2, ensure_ascii=False)
    if output_format == "svg":
        return render_svg(state)
    return generate_visualization(state.graph, output_format)


def run(args: argparse.Namespace) -> int:
    """Run the pipeline for parsed command-line arguments.

    Args:
        args: Parsed command-line arguments

    Returns:
        Exit code (0 for success, 1 for failure)
    """
    exit_code = 0

    configure_logging(args.log_level, json_logs=not args.console_logs)

    try:
        config = load_config(args.config)

        # Override logging level if specified via CLI
        if args.log_level_explicit:
            config.logging_level = args.log_level
        configure_logging(config.logging_level, json_logs=not args.console_logs)

        for warning in config.validate_config():
            logger.warning("configuration_warning", message=warning)

        paths = collect_input_paths(args.inputs, config)
        if not paths:
            logger.error("no_thread_files_found", inputs=args.inputs)
            return 1

        bind_context(input_count=len(paths))
        files = asyncio.run(read_thread_files(paths, config.input.encoding))
        if not files:
            logger.error("no_thread_files_readable")
            return 1

        result = GraphBuilder().build(files)
        state = analyze(result.graph, config, result.parse_errors)

        output = render_output(state, args.format)
        if args.output:
            Path(args.output).write_text(output + "\n", encoding="utf-8")
            logger.info("output_written", path=args.output, format=args.format)
        else:
            sys.stdout.write(output + "\n")

        if args.export_dir:
            export_dir = Path(args.export_dir)
            export_dir.mkdir(parents=True, exist_ok=True)
            for file_name, text in export_files(result.graph).items():
                (export_dir / file_name).write_text(text + "\n", encoding="utf-8")
            logger.info("graph_exported", directory=str(export_dir))

        logger.info(
            "pipeline_complete",
            nodes=len(result.graph),
            scheduled=len(state.schedule.entries),
            unresolved=len(state.schedule.unresolved),
            diagnostics=len(state.report.diagnostics),
        )

        if args.strict and state.report.diagnostics:
            logger.warning("diagnostics_present_in_strict_mode", count=len(state.report.diagnostics))
            exit_code = 1

    except FileNotFoundError as e:
        logger.exception("configuration_file_not_found", error=str(e))
        exit_code = 1

    except ValueError as e:
        logger.exception("configuration_validation_error", error=str(e))
        exit_code = 1

    except OSError as e:
        logger.exception("output_write_failed", error=str(e))
        exit_code = 1

    finally:
        clear_context()

    return exit_code


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        description="Thread Flow Scheduler - Validate, schedule and lay out per-thread task files",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Schedule every thread file in a directory and print JSON
  python main.py threads/

  # Render an SVG timeline
  python main.py t0.json t1.json --format svg -o timeline.svg

  # Fail when validation finds problems
  python main.py threads/ --strict

  # Write the normalized per-thread files back out
  python main.py threads/ --export-dir normalized/
        """,
    )

    parser.add_argument(
        "inputs",
        nargs="+",
        help="Thread files or directories containing thread files",
    )

    parser.add_argument(
        "-c",
        "--config",
        type=str,
        default=None,
        help="Path to configuration YAML file (default: threadflow.yaml if present)",
    )

    parser.add_argument(
        "-f",
        "--format",
        choices=OUTPUT_FORMATS,
        default="json",
        help="Output format (default: json)",
    )

    parser.add_argument(
        "-o",
        "--output",
        type=str,
        default=None,
        help="Write output to this file instead of stdout",
    )

    parser.add_argument(
        "--export-dir",
        type=str,
        default=None,
        help="Write the graph back out as one JSON file per thread",
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Exit with status 1 when any diagnostic is reported",
    )

    parser.add_argument(
        "-d",
        "--debug",
        action="store_true",
        help="Enable debug output (DEBUG level)",
    )

    parser.add_argument(
        "--console-logs",
        action="store_true",
        help="Use human-readable console logs instead of JSON",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=None,
        help="Set logging level (default: from configuration, INFO)",
    )

    args = parser.parse_args(argv)

    args.log_level_explicit = args.debug or args.log_level is not None
    if args.debug:
        args.log_level = "DEBUG"
    elif args.log_level is None:
        args.log_level = "INFO"

    return args


def main() -> None:
    """Main entry point for the thread-flow scheduler."""
    args = parse_args()
    sys.exit(run(args))


if __name__ == "__main__":
    main()
