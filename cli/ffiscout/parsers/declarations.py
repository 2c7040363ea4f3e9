"""Primary header parser built on tree-sitter.

Preprocessor directives are read structurally from the syntax tree. Every
other leaf token (declarations, ``#ifdef`` bodies, ``extern "C"`` blocks and
ERROR regions that unknown macros produce) is flattened into one token
stream, which is then scanned for prototypes and enum bodies. Headers full of
export macros rarely parse cleanly, so the scan never relies on tree-sitter
having understood a declaration.
"""

import logging
from pathlib import Path
from typing import List, Optional, Tuple, Union

from tree_sitter import Language, Node, Parser

from ..errors import HeaderParseError, UnresolvableExpressionError
from ..models import FunctionSignature
from ..session import DiscoverySession
from ..utils import read_file_bytes
from .base import (
    BaseHeaderParser,
    HeaderParseResult,
    IncludeDirective,
    TAG_KEYWORDS,
    format_type,
    is_identifier,
    matching_close,
    parse_parameters,
    strip_annotations,
)
from .expressions import MacroExpressionEvaluator, to_int64

logger = logging.getLogger(__name__)

# Nodes kept as a single token instead of being descended into.
ATOMIC_NODE_TYPES = frozenset({
    "string_literal", "char_literal", "concatenated_string",
    "system_lib_string", "number_literal",
})
DIRECTIVE_NODE_TYPES = frozenset({"preproc_def", "preproc_function_def", "preproc_include"})
CONDITIONAL_NODE_TYPES = frozenset({"preproc_if", "preproc_ifdef", "preproc_elif", "preproc_elifdef"})
# Directives with no bearing on declarations (#undef, #pragma, #error, ...).
IGNORED_NODE_TYPES = frozenset({"comment", "preproc_call"})

# Words that can never start a prototype's return type.
STATEMENT_KEYWORDS = frozenset({
    "typedef", "return", "if", "else", "while", "for", "do", "switch", "case",
    "goto", "break", "continue", "sizeof", "default",
})

Token = Union[str, Node]


class DeclarationParser(BaseHeaderParser):
    """Parser for C headers using tree-sitter-c."""

    name = "tree-sitter"

    def __init__(self, config=None):
        super().__init__(config)
        self.parser = None
        self.initialize()

    def initialize(self) -> None:
        """Initialize tree-sitter C parser."""
        try:
            import tree_sitter_c
            self.parser = Parser(Language(tree_sitter_c.language()))
        except Exception as e:
            raise RuntimeError(
                f"Failed to initialize C parser. "
                f"Make sure tree-sitter-c is installed: pip install tree-sitter-c. "
                f"Error: {e}"
            )

    def parse_file(self, file_path: Path, session: DiscoverySession) -> HeaderParseResult:
        """Parse a header file into the session.

        Raises:
            HeaderParseError: The file is unreadable, not UTF-8 text, or too
                large to tokenize
        """
        try:
            source = read_file_bytes(file_path)
        except RuntimeError as e:
            raise HeaderParseError(file_path, str(e))
        if b"\x00" in source:
            raise HeaderParseError(file_path, "file contains NUL bytes")
        try:
            source.decode("utf-8")
        except UnicodeDecodeError as e:
            raise HeaderParseError(file_path, f"not UTF-8 text ({e.reason} at byte {e.start})")
        return self._parse_source(source, session, str(file_path))

    def parse_text(self, text: str, session: DiscoverySession, file_path: str = "<memory>") -> HeaderParseResult:
        """Parse header text (e.g. preprocessor output) into the session."""
        if "\x00" in text:
            raise HeaderParseError(file_path, "text contains NUL bytes")
        return self._parse_source(text.encode("utf-8"), session, file_path)

    def _parse_source(self, source: bytes, session: DiscoverySession, file_path: str) -> HeaderParseResult:
        tree = self.parser.parse(source)
        if tree is None or tree.root_node is None:
            raise HeaderParseError(file_path, "tree-sitter returned no tree")

        result = HeaderParseResult(file_path=file_path, parser=self.name)
        stream = self._token_stream(tree.root_node, source, file_path)
        evaluator = self.evaluator(session)
        self._scan(stream, source, session, result, evaluator)

        logger.debug(
            f"{file_path}: {len(result.constants)} constants, {len(result.macros)} macros, "
            f"{len(result.functions)} functions, {len(result.includes)} includes"
        )
        return result

    def _token_stream(self, root: Node, source: bytes, file_path: str) -> List[Token]:
        """Flatten the tree into leaf tokens, keeping directive nodes in place."""
        stream: List[Token] = []
        limit = self.config.max_tokens_per_file
        count = 0
        stack = [root]
        while stack:
            node = stack.pop()
            kind = node.type
            if node.start_byte == node.end_byte or kind in IGNORED_NODE_TYPES:
                continue
            if kind in DIRECTIVE_NODE_TYPES:
                stream.append(node)
                continue
            if kind in ATOMIC_NODE_TYPES or node.child_count == 0:
                text = source[node.start_byte:node.end_byte].decode("utf-8", errors="replace").strip()
                if not text or text.startswith("#"):
                    continue
                count += 1
                if count > limit:
                    raise HeaderParseError(file_path, f"more than {limit} tokens")
                stream.append(text)
                continue

            skipped = set()
            if kind in CONDITIONAL_NODE_TYPES:
                for field_name in ("condition", "name"):
                    child = node.child_by_field_name(field_name)
                    if child is not None:
                        skipped.add((child.start_byte, child.end_byte))
            for child in reversed(node.children):
                if (child.start_byte, child.end_byte) not in skipped:
                    stack.append(child)
        return stream

    def _scan(
        self,
        stream: List[Token],
        source: bytes,
        session: DiscoverySession,
        result: HeaderParseResult,
        evaluator: MacroExpressionEvaluator,
    ) -> None:
        """Split the token stream into statements and handle each one."""
        statement: List[str] = []
        index = 0
        while index < len(stream):
            token = stream[index]
            if not isinstance(token, str):
                self._directive(token, source, session, result, evaluator)
                index += 1
                continue

            if token == ";":
                self._declaration(statement, session, result)
                statement = []
            elif token == "{":
                end = self._matching_brace(stream, index)
                if statement and statement[0] == "extern" and "".join(statement[1:]) == '"C"':
                    # extern "C" { ... }: the block's content is ordinary top level
                    stream = stream[:index] + stream[index + 1:end] + stream[end + 1:]
                    statement = []
                    continue

                if "enum" in statement:
                    self._enum(stream[index + 1:end], source, session, result, evaluator)
                else:
                    for inner in stream[index + 1:end]:
                        if not isinstance(inner, str):
                            self._directive(inner, source, session, result, evaluator)
                if statement and statement[-1] == ")" and "=" not in statement:
                    # Function definition: the body ends the statement.
                    statement = []
                else:
                    statement.append("{}")
                index = end
            elif token == "}":
                statement = []
            else:
                statement.append(token)
            index += 1

    @staticmethod
    def _matching_brace(stream: List[Token], start: int) -> int:
        depth = 0
        for index in range(start, len(stream)):
            token = stream[index]
            if token == "{":
                depth += 1
            elif token == "}":
                depth -= 1
                if depth == 0:
                    return index
        return len(stream)

    def _directive(
        self,
        node: Node,
        source: bytes,
        session: DiscoverySession,
        result: HeaderParseResult,
        evaluator: MacroExpressionEvaluator,
    ) -> None:
        def text_of(child: Optional[Node]) -> str:
            if child is None:
                return ""
            return source[child.start_byte:child.end_byte].decode("utf-8", errors="replace")

        name = text_of(node.child_by_field_name("name"))
        if node.type == "preproc_def":
            if name:
                self.define_constant(session, result, name, text_of(node.child_by_field_name("value")), evaluator)
        elif node.type == "preproc_function_def":
            params_node = node.child_by_field_name("parameters")
            params = []
            if params_node is not None:
                params = [text_of(child) for child in params_node.children if child.type == "identifier"]
            if name:
                self.define_macro(session, result, name, params, text_of(node.child_by_field_name("value")))
        elif node.type == "preproc_include":
            path_node = node.child_by_field_name("path")
            if path_node is None:
                return
            path = text_of(path_node)
            if path_node.type == "system_lib_string":
                result.includes.append(IncludeDirective(path.strip("<>"), True, node.start_point[0] + 1))
            elif path_node.type == "string_literal":
                result.includes.append(IncludeDirective(path.strip('"'), False, node.start_point[0] + 1))
            else:
                session.note(f"Skipping computed include {path} in {result.file_path}")

    def _declaration(self, statement: List[str], session: DiscoverySession, result: HeaderParseResult) -> None:
        found = self.match_prototype(statement)
        if found is not None:
            name, signature = found
            self.declare_function(session, result, name, signature)

    def match_prototype(self, statement: List[str]) -> Optional[Tuple[str, FunctionSignature]]:
        """Match ``[extern] noise* type noise* name ( params ) noise*`` (no ``;``)."""
        tokens = strip_annotations(statement, self.noise)
        while tokens and tokens[0] == "extern":
            tokens = tokens[1:]
        if not tokens or tokens[0] in STATEMENT_KEYWORDS:
            return None
        if any(token in ("=", "{}") or token.startswith('"') for token in tokens):
            return None

        candidates = [
            index for index in self._top_level_groups(tokens)
            if index > 0 and is_identifier(tokens[index - 1])
        ]
        removed: List[Tuple[int, int]] = []
        for position, paren in enumerate(candidates):
            close = matching_close(tokens, paren)
            before = self._without(tokens[:paren - 1], removed)
            if not before:
                # An annotation call in front of the return type.
                removed.append((paren - 1, close))
                continue
            later = candidates[position + 1:]
            if later and any(is_identifier(t) or t == "*" for t in tokens[close + 1:later[0] - 1]):
                removed.append((paren - 1, close))
                continue

            name = tokens[paren - 1]
            if not all(is_identifier(t) or t == "*" for t in before):
                return None
            if before[-1] in TAG_KEYWORDS or any(t in STATEMENT_KEYWORDS for t in before):
                return None
            trailing = tokens[close + 1:]
            if trailing and trailing[0] == "(":
                # Function returning a function pointer, or a pointer declarator.
                return None
            params = parse_parameters(tokens[paren + 1:close])
            if params is None:
                return None
            return name, FunctionSignature(return_type=format_type(before), params=params)
        return None

    @staticmethod
    def _top_level_groups(tokens: List[str]) -> List[int]:
        groups = []
        depth = 0
        for index, token in enumerate(tokens):
            if token in ("(", "["):
                if depth == 0 and token == "(":
                    groups.append(index)
                depth += 1
            elif token in (")", "]"):
                depth -= 1
        return groups

    @staticmethod
    def _without(tokens: List[str], spans: List[Tuple[int, int]]) -> List[str]:
        return [
            token for index, token in enumerate(tokens)
            if not any(start <= index <= end for start, end in spans)
        ]

    def _enum(
        self,
        body: List[Token],
        source: bytes,
        session: DiscoverySession,
        result: HeaderParseResult,
        evaluator: MacroExpressionEvaluator,
    ) -> None:
        """Store enum members as constants.

        Members and the directives between them are handled in source order,
        so a ``#define`` inside the body can use the members above it.
        Implicit members continue from the previous value. After an explicit
        value that cannot be resolved, implicit members are dropped until the
        next resolvable explicit value.
        """
        previous: Optional[int] = -1
        member: List[str] = []
        depth = 0
        for token in body + [","]:
            if not isinstance(token, str):
                self._directive(token, source, session, result, evaluator)
                continue
            if token in ("(", "[", "{"):
                depth += 1
            elif token in (")", "]", "}"):
                depth -= 1
            elif token == "," and depth == 0:
                previous = self._enum_member(member, previous, session, result, evaluator)
                member = []
                continue
            member.append(token)

    def _enum_member(
        self,
        tokens: List[str],
        previous: Optional[int],
        session: DiscoverySession,
        result: HeaderParseResult,
        evaluator: MacroExpressionEvaluator,
    ) -> Optional[int]:
        """Define one member and return the value the next implicit member follows."""
        member = strip_annotations(tokens, self.noise)
        if not member or not is_identifier(member[0]):
            return previous
        name = member[0]
        if len(member) > 2 and member[1] == "=":
            expression = " ".join(member[2:])
            try:
                value = evaluator.resolve(expression)
            except UnresolvableExpressionError as e:
                result.dropped.append(name)
                session.note(f"Failed to resolve enum member {name} = {expression}: {e}")
                return None
        elif len(member) == 1 and previous is not None:
            try:
                value = to_int64(previous + 1)
            except UnresolvableExpressionError:
                return None
        else:
            result.dropped.append(name)
            return previous
        session.define_constant(name, value)
        result.constants.append(name)
        session.note(f"Enum constant: {name} = {value}")
        return value
