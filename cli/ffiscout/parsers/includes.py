"""Recursive #include walk with the primary / fallback parser pair."""

import logging
from pathlib import Path
from typing import Optional

from ..config import FFIScoutConfig
from ..errors import HeaderParseError, UnresolvableIncludeError
from ..session import DiscoverySession
from .base import IncludeDirective, resolve_include
from .declarations import DeclarationParser
from .fallback import FallbackLineParser

logger = logging.getLogger(__name__)

__all__ = ["IncludeGraphResolver", "resolve_include"]


class IncludeGraphResolver:
    """Walks a header and everything it includes into one session.

    Each file is handed to the tree-sitter parser first; a file it rejects
    goes to the line parser, which then walks that file's includes itself.
    """

    def __init__(
        self,
        config: Optional[FFIScoutConfig] = None,
        primary: Optional[DeclarationParser] = None,
        fallback: Optional[FallbackLineParser] = None,
    ):
        self.config = config or FFIScoutConfig()
        self.primary = primary or DeclarationParser(self.config)
        self.fallback = fallback or FallbackLineParser(self.config)

    def walk(self, path: Path, session: DiscoverySession, depth: int = 0) -> None:
        """Parse ``path`` and, recursively, the headers it includes.

        Args:
            path: Header to parse
            session: Accumulator shared by the whole walk
            depth: Include depth of ``path``; the starting header is 0
        """
        if depth > session.max_include_depth:
            logger.debug(f"Include depth limit reached at {path}")
            return
        if not session.mark_visited(path):
            return

        try:
            result = self.primary.parse_file(path, session)
        except HeaderParseError as e:
            logger.info(f"{e}; using line parser")
            session.note(str(e))
            try:
                self.fallback.parse_file(path, session, depth)
            except RuntimeError as read_error:
                logger.warning(f"Skipping unreadable header {path}: {read_error}")
                session.note(str(read_error))
            return

        for include in result.includes:
            try:
                target = self.resolve(include, path, session)
            except UnresolvableIncludeError as e:
                logger.debug(str(e))
                continue
            self.walk(target, session, depth + 1)

    @staticmethod
    def resolve(include: IncludeDirective, including_file: Path, session: DiscoverySession) -> Path:
        """Resolve an include directive against the session's search paths.

        Raises:
            UnresolvableIncludeError: No such file exists
        """
        target = resolve_include(include.name, including_file, session.search_paths)
        if target is None:
            raise UnresolvableIncludeError(f"Cannot resolve #include {include.name} from {including_file}")
        return target
