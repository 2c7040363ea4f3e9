"""Line-oriented fallback parser.

Used for headers the tree-sitter parser rejects. It only understands
single-line declarations, but it never refuses a file: undecodable bytes are
dropped and anything it does not recognise is skipped.
"""

import logging
import re
from pathlib import Path
from typing import Optional, Tuple

from ..models import FunctionSignature
from ..session import DiscoverySession
from ..utils import read_file_content
from .base import (
    BaseHeaderParser,
    HeaderParseResult,
    IncludeDirective,
    format_type,
    parse_parameters,
    resolve_include,
    strip_annotations,
    tokenize_c,
)

logger = logging.getLogger(__name__)

INCLUDE_RE = re.compile(r'^\s*#\s*include\s*([<"])([^>"]+)[>"]')
FUNCTION_MACRO_RE = re.compile(r"^\s*#\s*define\s+([A-Za-z_]\w*)\(([^)]*)\)\s*(.*)$")
OBJECT_MACRO_RE = re.compile(r"^\s*#\s*define\s+([A-Za-z_]\w*)(?:\s+(.*))?$")
# [extern] [ANNOTATION] return-type [ANNOTATION] name ( ...
FUNCTION_RE = re.compile(
    r"^\s*(?:extern\s+)?(?:[A-Z_][A-Z0-9_]*\s+)?"
    r"(?P<ret>[A-Za-z_][\w\s]*?[\s*]+?)"
    r"(?:[A-Z_][A-Z0-9_]*\s+)?"
    r"(?P<name>[A-Za-z_]\w*)\s*\((?P<rest>.*)$"
)
TRAILING_ANNOTATION_RE = re.compile(r"^\s*(?:[A-Z_][A-Z0-9_]*\s*(?:\([^()]*\))?\s*)*;\s*$")

_INLINE_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/")
_NOT_RETURN_TYPES = frozenset({"typedef", "return", "if", "while", "for", "switch", "sizeof", "else", "do"})


class FallbackLineParser(BaseHeaderParser):
    """Regex scanner over header lines."""

    name = "fallback"

    def parse_file(self, file_path: Path, session: DiscoverySession, depth: int = 0) -> HeaderParseResult:
        """Parse a header and every header it includes.

        Each included header is walked where its ``#include`` line stands, so
        definitions after the line can use what the included header defines.
        The caller is responsible for marking ``file_path`` itself as visited.
        """
        text = read_file_content(file_path)
        return self._parse(text, session, str(file_path), Path(file_path), depth)

    def walk(self, file_path: Path, session: DiscoverySession, depth: int = 0) -> Optional[HeaderParseResult]:
        """Parse a header stand-alone, honouring the visited set and depth bound."""
        if depth > session.max_include_depth:
            return None
        if not session.mark_visited(file_path):
            return None
        try:
            return self.parse_file(file_path, session, depth)
        except RuntimeError as e:
            logger.warning(f"Skipping unreadable header {file_path}: {e}")
            session.note(str(e))
            return None

    def parse_text(self, text: str, session: DiscoverySession, file_path: str = "<memory>") -> HeaderParseResult:
        return self._parse(text, session, file_path)

    def _parse(
        self,
        text: str,
        session: DiscoverySession,
        file_path: str,
        source: Optional[Path] = None,
        depth: int = 0,
    ) -> HeaderParseResult:
        """Scan ``text``; includes are followed only when ``source`` is given."""
        result = HeaderParseResult(file_path=file_path, parser=self.name)
        evaluator = self.evaluator(session)

        for number, line in self._logical_lines(text):
            match = INCLUDE_RE.match(line)
            if match:
                result.includes.append(IncludeDirective(match.group(2), match.group(1) == "<", number))
                if source is not None:
                    self._follow(match.group(2), source, session, depth)
                continue

            match = FUNCTION_MACRO_RE.match(line)
            if match:
                params = [p.strip() for p in match.group(2).split(",") if p.strip()]
                self.define_macro(session, result, match.group(1), params, match.group(3))
                continue

            match = OBJECT_MACRO_RE.match(line)
            if match:
                if match.group(2):
                    self.define_constant(session, result, match.group(1), match.group(2), evaluator)
                continue

            if line.lstrip().startswith("#"):
                continue

            found = self.match_function(line)
            if found is not None:
                self.declare_function(session, result, *found)

        logger.debug(
            f"{file_path} (fallback): {len(result.constants)} constants, "
            f"{len(result.functions)} functions"
        )
        return result

    def _follow(self, name: str, source: Path, session: DiscoverySession, depth: int) -> None:
        target = resolve_include(name, source, session.search_paths)
        if target is None:
            logger.debug(f"Unresolved include {name} in {source}")
            return
        self.walk(target, session, depth + 1)

    def match_function(self, line: str) -> Optional[Tuple[str, FunctionSignature]]:
        """Match a single-line prototype such as ``extern API int f(int x);``."""
        match = FUNCTION_RE.match(line)
        if not match:
            return None

        rest = match.group("rest")
        depth = 1
        close = None
        for index, char in enumerate(rest):
            if char == "(":
                depth += 1
            elif char == ")":
                depth -= 1
                if depth == 0:
                    close = index
                    break
        if close is None or not TRAILING_ANNOTATION_RE.match(rest[close + 1:]):
            return None

        ret_tokens = strip_annotations(tokenize_c(match.group("ret")), self.noise)
        if not ret_tokens:
            # DWORD WINAPI f(void): the "annotation" slot took the real type.
            ret_tokens = strip_annotations(tokenize_c(line[:match.start("name")]), self.noise)
        ret_tokens = [t for t in ret_tokens if t != "extern"]
        if not ret_tokens or ret_tokens[0] in _NOT_RETURN_TYPES or match.group("name") in _NOT_RETURN_TYPES:
            return None

        params = parse_parameters(strip_annotations(tokenize_c(rest[:close]), self.noise))
        if params is None:
            return None
        return match.group("name"), FunctionSignature(return_type=format_type(ret_tokens), params=params)

    @staticmethod
    def _logical_lines(text: str):
        """Yield (line number, text) with comments removed and continuations joined."""
        in_comment = False
        pending = ""
        pending_start = 0
        for number, raw in enumerate(text.splitlines(), start=1):
            line = raw
            if in_comment:
                end = line.find("*/")
                if end < 0:
                    continue
                line = line[end + 2:]
                in_comment = False

            line = _INLINE_BLOCK_COMMENT_RE.sub(" ", line)
            start = line.find("/*")
            if start >= 0:
                line = line[:start]
                in_comment = True
            comment = line.find("//")
            if comment >= 0:
                line = line[:comment]

            if line.rstrip().endswith("\\"):
                if not pending:
                    pending_start = number
                pending += line.rstrip()[:-1] + " "
                continue
            if pending:
                line = pending + line
                number = pending_start
                pending = ""
            if line.strip():
                yield number, line
