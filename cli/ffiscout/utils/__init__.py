"""Utility functions for ffiscout."""

from .file_utils import (
    canonical_path,
    first_existing,
    read_file_bytes,
    read_file_content,
    unique_paths,
)
from .process import run_tool

__all__ = [
    "canonical_path",
    "first_existing",
    "read_file_bytes",
    "read_file_content",
    "unique_paths",
    "run_tool",
]
