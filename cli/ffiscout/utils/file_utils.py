"""File discovery and reading utilities."""

import os
from pathlib import Path
from typing import Iterable, List, Optional, Union

PathLike = Union[str, Path]


def canonical_path(file_path: PathLike) -> str:
    """Real, absolute form of a path, used as the visited-set key."""
    return os.path.realpath(os.fspath(file_path))


def first_existing(candidates: Iterable[Path]) -> Optional[Path]:
    """Return the first candidate that is an existing regular file."""
    for candidate in candidates:
        if candidate.is_file():
            return candidate
    return None


def unique_paths(paths: Iterable[PathLike]) -> List[str]:
    """De-duplicate paths, keeping the first occurrence of each."""
    seen = set()
    result = []
    for path in paths:
        text = os.fspath(path)
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return result


def read_file_bytes(file_path: PathLike) -> bytes:
    """Read a file as raw bytes."""
    try:
        with open(file_path, "rb") as f:
            return f.read()
    except OSError as e:
        raise RuntimeError(f"Failed to read file {file_path}: {e}")


def read_file_content(file_path: PathLike) -> str:
    """Read file content as string, dropping undecodable bytes."""
    try:
        with open(file_path, "r", encoding="utf-8", errors="ignore") as f:
            return f.read()
    except OSError as e:
        raise RuntimeError(f"Failed to read file {file_path}: {e}")
