"""Main module for the image optimizer CLI."""

import sys
import argparse
from typing import Optional, Sequence

from . import __version__
from .core import ConfigurationError, get_logger
from .process_images import EXIT_CANCELLED, EXIT_FAILED, add_optimize_arguments, run


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="image-optimizer",
        description="Image Optimizer - resize, re-encode and compress images, optionally with AI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Optimize two photos to WebP at 80% quality (defaults)
  image-optimizer optimize photo1.jpg photo2.png

  # JPEG at 70%, no height bound, 4 worker threads
  image-optimizer optimize photos/ --format jpeg --quality 70 \\
                           --no-max-height --processor multithread

  # AI enhancement with fallback (needs GOOGLE_API_KEY)
  image-optimizer optimize photo.jpg --strategy ai

  # Show version
  image-optimizer version
        """,
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    optimize_parser = subparsers.add_parser(
        "optimize", help="Optimize images and export them to a directory"
    )
    add_optimize_arguments(optimize_parser)

    subparsers.add_parser("version", help="Show version information")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> None:
    """
    Entry point for the unified command-line interface of the Image Optimizer.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "optimize":
        logger = get_logger("cli")
        try:
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

    elif args.command == "version":
        print("Image Optimizer CLI")
        print(f"Version {__version__}")
        print("Resize, re-encode and compress images with optional AI enhancement")
        sys.exit(0)

    else:
        parser.print_help()
        sys.exit(1)


if __name__ == "__main__":
    main()
