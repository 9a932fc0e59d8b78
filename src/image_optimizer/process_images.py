#!/usr/bin/env python3
"""
Local Image Optimizer CLI

Reads images → Optimizes (resize/re-encode, optionally via AI) → Exports/uploads
Supports serial and multithreaded batch runners
"""

import argparse
import signal
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from dotenv import load_dotenv

from .core import (
    ConfigurationError,
    ImageFormat,
    OptimizationSettings,
    SourceImage,
    Strategy,
    get_logger,
    set_debug_logging,
)
from .core.config import PipelineConfig
from .core.exporters import LocalExportSink, publish_batch
from .core.factories import OptimizerPipelineFactory
from .core.image_utils import SUPPORTED_INPUT_FORMATS
from .processors import CancellationToken, log_configuration, log_final_statistics

IMAGE_EXTENSIONS = {
    f".{name}" for name in set(SUPPORTED_INPUT_FORMATS.values())
} | {".jpg", ".tif"}

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CANCELLED = 130


def add_optimize_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the optimize options on ``parser``."""
    parser.add_argument("inputs", nargs="+", help="Image files or directories to optimize")
    parser.add_argument(
        "--format",
        type=str,
        default=None,
        choices=[f.value for f in ImageFormat] + ["jpg"],
        help="Target format (default: webp)",
    )
    parser.add_argument(
        "--quality", type=float, default=None, help="Quality 0-100 for jpeg/webp (default: 80)"
    )
    parser.add_argument("--max-width", type=int, default=None, help="Maximum width (default: 1920)")
    parser.add_argument("--max-height", type=int, default=None, help="Maximum height (default: 1080)")
    parser.add_argument(
        "--no-max-width", action="store_true", help="Do not constrain the width"
    )
    parser.add_argument(
        "--no-max-height", action="store_true", help="Do not constrain the height"
    )
    parser.add_argument(
        "--ignore-aspect-ratio",
        action="store_true",
        help="Clamp width and height independently",
    )
    parser.add_argument(
        "--strategy",
        type=str,
        default="default",
        choices=["default", "ai"],
        help="'default' (deterministic) or 'ai' (Gemini with fallback to default)",
    )
    parser.add_argument(
        "--processor",
        type=str,
        default="serial",
        choices=["serial", "multithread"],
        help="Batch runner to use (default: serial)",
    )
    parser.add_argument("--workers", type=int, default=None, help="Threads for the multithread runner")
    parser.add_argument(
        "--output-dir", default="optimized", help="Directory for exported files (default: ./optimized)"
    )
    parser.add_argument("--upload-bucket", default=None, help="Also upload results to this S3 bucket")
    parser.add_argument("--upload-prefix", default=None, help="S3 key prefix for uploads")
    parser.add_argument("--debug", action="store_true", help="Enable debug logging")


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """
    Parses command-line arguments for the image optimizer.

    Returns:
        An `argparse.Namespace` object containing the parsed arguments.
    """
    parser = argparse.ArgumentParser(
        description="Image optimizer with default and AI-with-fallback strategies"
    )
    add_optimize_arguments(parser)
    return parser.parse_args(argv)


def collect_input_paths(inputs: Sequence[str]) -> List[Path]:
    """Expand directories into their image files, keeping argument order."""
    paths: List[Path] = []
    for raw in inputs:
        path = Path(raw)
        if path.is_dir():
            paths.extend(
                sorted(
                    p for p in path.iterdir()
                    if p.is_file() and p.suffix.lower() in IMAGE_EXTENSIONS
                )
            )
        elif path.is_file():
            paths.append(path)
        else:
            raise ConfigurationError(f"Input not found: {raw}")
    return paths


def read_sources(paths: Sequence[Path]) -> List[SourceImage]:
    """Load every input up front so unreadable files abort before processing."""
    sources = []
    for path in paths:
        try:
            sources.append(SourceImage.from_path(path))
        except OSError as e:
            raise ConfigurationError(f"Cannot read input {path}: {e}") from e
    return sources


def build_config(args: argparse.Namespace) -> PipelineConfig:
    """Merge environment configuration with command-line overrides."""
    workers = args.workers
    if args.processor == "multithread" and workers is None:
        workers = 4
    if args.processor == "serial":
        workers = 1
    return PipelineConfig.from_env(
        workers=workers,
        upload_bucket=args.upload_bucket,
        upload_prefix=args.upload_prefix,
        debug=args.debug or None,
    )


def _bound(value: Optional[int], default: Optional[int]) -> Optional[int]:
    return default if value is None else value


def build_settings(args: argparse.Namespace, config: PipelineConfig) -> OptimizationSettings:
    """Build 0-100 settings; rescaling happens in the orchestrator."""
    defaults = config.default_settings()
    try:
        return OptimizationSettings(
            quality=defaults.quality if args.quality is None else args.quality,
            format=args.format or defaults.format,
            max_width=None if args.no_max_width else _bound(args.max_width, defaults.max_width),
            max_height=None if args.no_max_height else _bound(args.max_height, defaults.max_height),
            maintain_aspect_ratio=not args.ignore_aspect_ratio,
        )
    except ValueError as e:
        raise ConfigurationError(f"Invalid optimization settings: {e}") from e


def run(args: argparse.Namespace) -> int:
    """Run one optimization batch and return the process exit code."""
    logger = get_logger("cli")
    load_dotenv()

    config = build_config(args)
    if config.debug:
        set_debug_logging()

    settings = build_settings(args, config)
    strategy = Strategy.AI_WITH_FALLBACK if args.strategy == "ai" else Strategy.DEFAULT
    sources = read_sources(collect_input_paths(args.inputs))
    if not sources:
        logger.warning("No images found to optimize.")
        return EXIT_OK

    orchestrator = OptimizerPipelineFactory.create_orchestrator(config)
    upload_sink = (
        OptimizerPipelineFactory.create_upload_sink(config) if config.upload_bucket else None
    )

    processor_name = "Multithreaded" if config.workers > 1 else "Serial"
    log_configuration(logger, strategy, settings.to_options(), processor_name, len(sources))

    # Ctrl+C finishes the current item and leaves the rest pending.
    cancel_token = CancellationToken()
    previous_handler = signal.signal(signal.SIGINT, lambda signum, frame: cancel_token.cancel())
    try:
        batch = orchestrator.run(
            sources,
            strategy=strategy,
            options=settings,
            cancel_token=cancel_token,
            on_progress=lambda event: logger.info(
                f"Progress: {event.completed}/{event.total} ({event.progress:.0f}%) "
                f"- {event.filename}: {event.state.value}"
            ),
        )
    finally:
        signal.signal(signal.SIGINT, previous_handler)

    log_final_statistics(logger, batch)

    exported, export_failures = publish_batch(
        batch, LocalExportSink(args.output_dir), numbered=len(sources) > 1
    )
    logger.info(f"Exported {len(exported)} image(s) to {args.output_dir}")

    upload_failures: List[str] = []
    if upload_sink is not None:
        uploaded, upload_failures = publish_batch(batch, upload_sink, numbered=len(sources) > 1)
        logger.info(f"Uploaded {len(uploaded)} image(s) to s3://{config.upload_bucket}")

    for item in batch.items:
        if item.failed:
            logger.error(f"{item.original.filename}: {item.error_type}: {item.error}")

    if batch.cancelled:
        return EXIT_CANCELLED
    if batch.failed_count or export_failures or upload_failures:
        return EXIT_FAILED
    return EXIT_OK


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Main entry point for the image optimizer script.

    Configuration errors abort before any image is processed and exit
    with status 1.
    """
    logger = get_logger("cli")
    try:
        args = parse_args(argv)
        sys.exit(run(args))
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        sys.exit(EXIT_FAILED)
    except KeyboardInterrupt:
        logger.warning("Processing interrupted by user.")
        sys.exit(EXIT_CANCELLED)
    except Exception as e:
        logger.error(f"Processing failed: {e}", exc_info=True)
        sys.exit(EXIT_FAILED)


if __name__ == "__main__":
    main()
