"""Command-line interface for the metadata cleaner."""

from .main import MetadataCleanerCLI, main

__all__ = ["MetadataCleanerCLI", "main"]
