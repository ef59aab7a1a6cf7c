"""Main CLI interface for the metadata cleaner."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from ..config.constants import VERBOSE_LOGGING_THRESHOLD
from ..core import ConfigManager, ProcessingError, ProcessingOptions, ValidationError, with_config_overrides
from .commands import MediaCommands
from .report import print_failure

LOG = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_VALIDATION = 2
EXIT_INTERRUPTED = 130


class MetadataCleanerCLI:
    """Argument parsing, logging setup and command routing."""

    def __init__(self, config_path: Path | None = None) -> None:
        self.config_manager = ConfigManager(config_path)
        self.media_commands = MediaCommands(self.config_manager)

    @staticmethod
    def setup_logging(verbosity: int, default_level: str = "WARNING") -> None:
        """Setup logging based on verbosity level; ``default_level`` applies without -v."""
        level_map = {
            0: getattr(logging, default_level.upper(), logging.WARNING),
            1: logging.INFO,
            2: logging.DEBUG,
        }
        level = level_map.get(verbosity, logging.DEBUG)

        if verbosity >= VERBOSE_LOGGING_THRESHOLD:
            log_format = "%(levelname)s: %(name)s: %(message)s"
        else:
            log_format = "%(levelname)s: %(message)s"

        logging.basicConfig(level=level, format=log_format, handlers=[logging.StreamHandler(sys.stderr)])

        # Per-line engine output only at -vv
        if verbosity < VERBOSE_LOGGING_THRESHOLD:
            logging.getLogger("metadata_cleaner.core.engine").setLevel(logging.WARNING)
        else:
            logging.getLogger("metadata_cleaner.core.engine").setLevel(logging.NOTSET)

    def build_parser(self) -> argparse.ArgumentParser:
        """Build the argument parser."""
        parser = argparse.ArgumentParser(
            prog="metadata-cleaner",
            description="Strip and rewrite media metadata with FFmpeg",
            formatter_class=argparse.RawDescriptionHelpFormatter,
            epilog="""
Examples:
  # Show what the file carries
  metadata-cleaner probe clip.mp4

  # Preview the engine commands for an options file
  metadata-cleaner plan clip.mp4 --options options.yaml

  # Process and write clip_cleaned.mp4 into ./out
  metadata-cleaner process clip.mp4 --options options.yaml --output-dir out
            """,
        )

        parser.add_argument(
            "-v",
            "--verbose",
            action="count",
            default=0,
            help="Increase verbosity (-v for info, -vv for debug)",
        )
        parser.add_argument("--config", type=Path, help="Path to configuration file")
        parser.add_argument("--timeout", type=int, help="Per-command engine timeout in seconds")
        parser.add_argument(
            "--probe-mode",
            choices=("json", "log"),
            help="Read metadata from ffprobe JSON or from the ffmpeg log",
        )
        parser.add_argument("--container", help="Output container extension (mp4, mkv, ...)")

        subparsers = parser.add_subparsers(dest="command", required=True, help="Available commands")
        self.media_commands.add_subcommands(subparsers)
        return parser

    @staticmethod
    def create_processing_options(args: argparse.Namespace) -> ProcessingOptions:
        """Create processing options from CLI arguments."""
        return ProcessingOptions(
            timeout=getattr(args, "timeout", None),
            probe_mode=getattr(args, "probe_mode", None),
            container=getattr(args, "container", None),
        )

    def run(self, args: list[str] | None = None) -> int:
        """Run the CLI with given arguments."""
        parser = self.build_parser()
        parsed_args = parser.parse_args(args)

        if getattr(parsed_args, "config", None):
            self.config_manager = ConfigManager(parsed_args.config)
            self.media_commands.config_manager = self.config_manager

        self.setup_logging(parsed_args.verbose, self.config_manager.config.global_.log_level)

        processing_options = self.create_processing_options(parsed_args)

        try:
            with with_config_overrides(self.config_manager) as config_mgr:
                config_mgr.apply_processing_options(processing_options)
                return self.media_commands.handle_command(parsed_args)

        except KeyboardInterrupt:
            LOG.info("Operation cancelled by user")
            return EXIT_INTERRUPTED
        except ValidationError as e:
            LOG.error("Invalid request: %s", e)
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_VALIDATION
        except ProcessingError as e:
            LOG.error("Processing failed: %s", e)
            print_failure(e)
            return EXIT_FAILURE
        except Exception:
            LOG.exception("Unexpected error")
            return EXIT_FAILURE


def main() -> int:
    """Entry point for the CLI."""
    cli = MetadataCleanerCLI()
    return cli.run()


if __name__ == "__main__":
    sys.exit(main())
