"""Base parser interface for C header parsers."""

import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from ..config import FFIScoutConfig
from ..errors import UnresolvableExpressionError
from ..models import FunctionParam, FunctionSignature
from ..session import DiscoverySession
from ..utils import first_existing
from .expressions import MacroExpressionEvaluator

# Object-like macros only count as constants when named like one.
CONSTANT_NAME_RE = re.compile(r"^[A-Z_][A-Za-z0-9_]*$")

C_TYPE_KEYWORDS = frozenset({
    "void", "char", "short", "int", "long", "float", "double", "signed",
    "unsigned", "_Bool", "bool", "_Complex", "const", "volatile", "restrict",
    "__restrict", "__restrict__", "struct", "union", "enum", "register",
})

TAG_KEYWORDS = frozenset({"struct", "union", "enum"})

# Always noise, and swallow a following parenthesised group.
ANNOTATION_KEYWORDS = frozenset({
    "__attribute__", "__attribute", "__declspec", "__asm__", "__asm", "asm",
    "_Noreturn", "__restrict", "__restrict__",
})

_CLOSERS = {"(": ")", "[": "]", "{": "}"}
_C_TOKEN_RE = re.compile(
    r'"(?:\\.|[^"\\])*"'
    r"|'(?:\\.|[^'\\])*'"
    r"|\.\.\."
    r"|[A-Za-z_]\w*"
    r"|\d[\w.]*"
    r"|->|##|<<|>>"
    r"|\S"
)

_BLOCK_COMMENT_RE = re.compile(r"/\*.*?\*/", re.S)
_LINE_COMMENT_RE = re.compile(r"//[^\n]*")


@dataclass
class IncludeDirective:
    """An #include found in a header."""
    name: str
    is_system: bool
    line: int = 0


@dataclass
class HeaderParseResult:
    """What one parser pass added to the session for a single file."""
    file_path: str
    parser: str
    includes: List[IncludeDirective] = field(default_factory=list)
    constants: List[str] = field(default_factory=list)
    macros: List[str] = field(default_factory=list)
    functions: List[str] = field(default_factory=list)
    dropped: List[str] = field(default_factory=list)


def strip_comments(text: str) -> str:
    """Remove C block and line comments."""
    return _LINE_COMMENT_RE.sub("", _BLOCK_COMMENT_RE.sub(" ", text))


def format_type(tokens: Iterable[str]) -> str:
    """Join type tokens C-style, gluing ``*`` to the preceding word.

    ``["const", "char", "*"]`` -> ``"const char*"``
    """
    text = ""
    for token in tokens:
        if token == "*":
            text += "*"
        elif text:
            text += " " + token
        else:
            text = token
    return text


def resolve_include(name: str, including_file: Path, search_paths: Iterable[str]) -> Optional[Path]:
    """Find the file an #include refers to.

    Names with a directory part (``SDL3/SDL_stdinc.h``) are looked up in the
    search paths; bare names are looked up next to the including file.
    """
    if "/" in name or os.sep in name:
        return first_existing(Path(directory) / name for directory in search_paths)
    candidate = Path(including_file).parent / name
    return candidate if candidate.is_file() else None


def is_identifier(token: str) -> bool:
    return bool(token) and (token[0].isalpha() or token[0] == "_") and token.replace("_", "a").isalnum()


def is_all_caps(token: str) -> bool:
    return is_identifier(token) and token.upper() == token and any(c.isalpha() for c in token)


def tokenize_c(text: str) -> List[str]:
    """Lex C text into the same kind of token list tree-sitter leaves give."""
    return _C_TOKEN_RE.findall(text)


def matching_close(tokens: List[str], start: int) -> int:
    """Index of the bracket closing ``tokens[start]``, or the last index."""
    opener = tokens[start]
    closer = _CLOSERS[opener]
    depth = 0
    for index in range(start, len(tokens)):
        if tokens[index] == opener:
            depth += 1
        elif tokens[index] == closer:
            depth -= 1
            if depth == 0:
                return index
    return len(tokens) - 1


def split_top_level(tokens: List[str], separator: str = ",") -> List[List[str]]:
    """Split tokens on separators that are not inside any brackets."""
    parts: List[List[str]] = [[]]
    depth = 0
    for token in tokens:
        if token in _CLOSERS:
            depth += 1
        elif token in _CLOSERS.values():
            depth -= 1
        elif token == separator and depth == 0:
            parts.append([])
            continue
        parts[-1].append(token)
    return parts


def strip_annotations(tokens: List[str], noise: Iterable[str]) -> List[str]:
    """Drop annotation macros and ``__attribute__((...))``-style groups."""
    noise = set(noise)
    kept = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if token in noise or token in ANNOTATION_KEYWORDS:
            index += 1
            if index < len(tokens) and tokens[index] == "(":
                index = matching_close(tokens, index) + 1
            continue
        kept.append(token)
        index += 1
    return kept


def parse_parameter(tokens: List[str]) -> Optional[FunctionParam]:
    """Turn the tokens of one parameter into a FunctionParam.

    Arrays decay to pointers; function pointers keep a ``(*)`` type and the
    inner name. Returns None for tokens that cannot be a parameter.
    """
    tokens = _drop_parameter_annotations(tokens)
    if not tokens:
        return None
    if tokens == ["..."]:
        return FunctionParam(type="...")

    if "(" in tokens:
        return _function_pointer_parameter(tokens)

    decayed = False
    while "[" in tokens:
        start = tokens.index("[")
        end = matching_close(tokens, start)
        tokens = tokens[:start] + tokens[end + 1:]
        decayed = True

    name = None
    last = tokens[-1]
    if (
        len(tokens) > 1
        and is_identifier(last)
        and last not in C_TYPE_KEYWORDS
        and tokens[-2] not in TAG_KEYWORDS
    ):
        name = last
        tokens = tokens[:-1]

    if not all(is_identifier(token) or token == "*" for token in tokens):
        return None
    type_text = format_type(tokens + ["*"] if decayed else tokens)
    return FunctionParam(type=type_text, name=name)


def parse_parameters(tokens: List[str]) -> Optional[Tuple[FunctionParam, ...]]:
    """Parse the tokens between a declarator's parentheses.

    ``()`` and ``(void)`` both give an empty tuple. None means the list is
    not a valid parameter list.
    """
    if not tokens or tokens == ["void"]:
        return ()
    params = []
    for part in split_top_level(tokens):
        param = parse_parameter(part)
        if param is None:
            return None
        params.append(param)
    return tuple(params)


def _drop_parameter_annotations(tokens: List[str]) -> List[str]:
    # NAME(args) groups that are not part of a function-pointer declarator,
    # e.g. SDL_OUT_Z_CAP(maxlen) char *text
    kept = []
    index = 0
    while index < len(tokens):
        token = tokens[index]
        if (
            is_identifier(token)
            and index + 2 < len(tokens)
            and tokens[index + 1] == "("
            and tokens[index + 2] != "*"
            and (not kept or kept[-1] != ")")
            and any(is_identifier(t) for t in tokens[matching_close(tokens, index + 1) + 1:])
        ):
            index = matching_close(tokens, index + 1) + 1
            continue
        kept.append(token)
        index += 1
    return kept


def _function_pointer_parameter(tokens: List[str]) -> Optional[FunctionParam]:
    start = tokens.index("(")
    end = matching_close(tokens, start)
    inner = tokens[start + 1:end]
    rest = tokens[end + 1:]
    if not inner or inner[0] != "*" or not rest or rest[0] != "(":
        return None
    name = inner[-1] if len(inner) > 1 and is_identifier(inner[-1]) else None
    args = parse_parameters(rest[1:matching_close(rest, 0)])
    arg_types = ", ".join(arg.type for arg in args) if args else "void"
    return FunctionParam(type=f"{format_type(tokens[:start])}(*)({arg_types})", name=name)


class BaseHeaderParser(ABC):
    """Abstract base class for header parsers.

    Both concrete parsers write into the same ``DiscoverySession``; they only
    differ in how they read the text.
    """

    name = "base"

    def __init__(self, config: Optional[FFIScoutConfig] = None):
        self.config = config or FFIScoutConfig()
        self.noise = frozenset(self.config.noise_annotations)

    @abstractmethod
    def parse_file(self, file_path: Path, session: DiscoverySession) -> HeaderParseResult:
        """Parse one header file into the session."""
        pass

    @abstractmethod
    def parse_text(self, text: str, session: DiscoverySession, file_path: str = "<memory>") -> HeaderParseResult:
        """Parse header text into the session."""
        pass

    def evaluator(self, session: DiscoverySession) -> MacroExpressionEvaluator:
        return MacroExpressionEvaluator(session.constants, session.macros, session.macro_params)

    def define_constant(
        self,
        session: DiscoverySession,
        result: HeaderParseResult,
        name: str,
        value_text: str,
        evaluator: MacroExpressionEvaluator,
    ) -> Optional[int]:
        """Evaluate an object-like macro value and store it if it resolves."""
        if not CONSTANT_NAME_RE.match(name):
            return None
        value_text = " ".join(strip_comments(value_text).replace("\\\n", " ").split())
        if not value_text:
            return None
        try:
            value = evaluator.resolve(value_text)
        except UnresolvableExpressionError as e:
            result.dropped.append(name)
            session.note(f"Failed to parse constant {name} = {value_text}: {e}")
            return None
        session.define_constant(name, value)
        result.constants.append(name)
        session.note(f"Constant: {name} = {value} (0x{value & 0xFFFFFFFFFFFFFFFF:x})")
        return value

    def define_macro(
        self,
        session: DiscoverySession,
        result: HeaderParseResult,
        name: str,
        params: List[str],
        body: str,
    ) -> None:
        body = " ".join(strip_comments(body).replace("\\\n", " ").split())
        session.define_macro(name, params, body)
        result.macros.append(name)
        session.note(f"Macro: {name}({', '.join(params)}) = {body}")

    def declare_function(
        self,
        session: DiscoverySession,
        result: HeaderParseResult,
        name: str,
        signature: FunctionSignature,
    ) -> None:
        session.declare_function(name, signature)
        result.functions.append(name)
        session.note(f"Function: {signature.render(name)}")
