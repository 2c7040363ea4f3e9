"""Shared object inspection: DWARF signatures and dynamic symbols."""

from .extractor import BinarySignatureExtractor
from .types import DebugTypeGraph, TypeEntry, TypeResolver

__all__ = ["BinarySignatureExtractor", "DebugTypeGraph", "TypeEntry", "TypeResolver"]
