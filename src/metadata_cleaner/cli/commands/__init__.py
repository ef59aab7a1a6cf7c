"""CLI command handlers."""

from .media import MediaCommands, StepProgress, load_options_file, write_results

__all__ = ["MediaCommands", "StepProgress", "load_options_file", "write_results"]
