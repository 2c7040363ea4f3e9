"""Evaluation of #define values and enum initializers.

Only the integer subset that shows up in library headers is understood:
hex / binary / octal / decimal literals with C suffixes, references to
constants defined earlier, ``| ^ & << >> + -`` and unary ``- ~``, integer
casts, and invocations of simple function-like macros such as
``SDL_UINT64_C(c) c##ULL``. Anything else is unresolvable, and the caller
drops the constant instead of storing a placeholder.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional, Tuple

from ..errors import UnresolvableExpressionError

logger = logging.getLogger(__name__)

INT64_MIN = -(1 << 63)
UINT64_LIMIT = 1 << 64
MAX_EXPANSION_DEPTH = 16

# <stdint.h> constant wrappers; they expand to their argument plus a suffix.
BUILTIN_WRAPPERS = frozenset({
    "INT8_C", "INT16_C", "INT32_C", "INT64_C", "INTMAX_C",
    "UINT8_C", "UINT16_C", "UINT32_C", "UINT64_C", "UINTMAX_C",
})

_INTEGER_TYPE_WORDS = frozenset({
    "char", "short", "int", "long", "signed", "unsigned", "const", "size_t",
    "ssize_t", "ptrdiff_t", "intptr_t", "uintptr_t", "_Bool", "bool",
})
_FIXED_WIDTH_TYPE = re.compile(r"^(?:u?int(?:8|16|32|64|max)_t|[US]int(?:8|16|32|64))$")

_TOKEN_RE = re.compile(
    r"\s*(?:"
    r"(?P<number>(?:0[xX][0-9a-fA-F]+|0[bB][01]+|[0-9]+)[uUlL]*)(?![\w.])"
    r"|(?P<ident>[A-Za-z_]\w*)"
    r"|(?P<op><<|>>|\|\||&&|##|[|&^~+\-(),])"
    r")"
)
_LITERAL_RE = re.compile(r"^(?P<sign>[+-]?)(?P<digits>0[xX][0-9a-fA-F]+|0[bB][01]+|[0-9]+)[uUlL]*$")
_TOKEN_PASTE_RE = re.compile(r"^\s*([A-Za-z_]\w*)\s*##\s*(\w+)\s*$")


def to_int64(value: int) -> int:
    """Reinterpret a value that fits in 64 bits as a signed 64-bit integer."""
    if value < INT64_MIN or value >= UINT64_LIMIT:
        raise UnresolvableExpressionError(f"value {value} does not fit in 64 bits")
    if value >= (1 << 63):
        return value - UINT64_LIMIT
    return value


def parse_integer_literal(text: str) -> Optional[int]:
    """Parse a single C integer literal, or return None."""
    match = _LITERAL_RE.match(text.strip())
    if not match:
        return None
    digits = match.group("digits")
    lowered = digits.lower()
    try:
        if lowered.startswith("0x"):
            value = int(digits[2:], 16)
        elif lowered.startswith("0b"):
            value = int(digits[2:], 2)
        elif len(digits) > 1 and digits.startswith("0"):
            value = int(digits, 8)
        else:
            value = int(digits, 10)
    except ValueError:
        return None
    if match.group("sign") == "-":
        value = -value
    try:
        return to_int64(value)
    except UnresolvableExpressionError:
        return None


def tokenize_expression(text: str) -> List[Tuple[str, str]]:
    """Split an expression into (kind, text) tokens."""
    tokens = []
    pos = 0
    text = text.rstrip()
    while pos < len(text):
        match = _TOKEN_RE.match(text, pos)
        if not match or match.end() == pos:
            raise UnresolvableExpressionError(f"unexpected character {text[pos:].strip()[:1]!r} in {text!r}")
        kind = match.lastgroup
        tokens.append((kind, match.group(kind)))
        pos = match.end()
    return tokens


def _looks_like_integer_type(words: List[str]) -> bool:
    return bool(words) and all(
        word in _INTEGER_TYPE_WORDS or _FIXED_WIDTH_TYPE.match(word) for word in words
    )


class MacroExpressionEvaluator:
    """Resolves value expressions against the constants and macros seen so far.

    Lookups go to the live mappings, so a constant defined later in the same
    header is not visible to an earlier definition (single pass, no forward
    references).
    """

    def __init__(
        self,
        constants: Mapping[str, int],
        macros: Mapping[str, str],
        macro_params: Optional[Mapping[str, List[str]]] = None,
        max_depth: int = MAX_EXPANSION_DEPTH,
    ):
        self.constants = constants
        self.macros = macros
        self.macro_params = macro_params if macro_params is not None else {}
        self.max_depth = max_depth

    def evaluate(self, text: str) -> Optional[int]:
        """Resolve an expression, returning None when it cannot be resolved."""
        try:
            return self.resolve(text)
        except UnresolvableExpressionError as e:
            logger.debug(f"Unresolvable expression {text!r}: {e}")
            return None

    def resolve(self, text: str, depth: int = 0) -> int:
        """Resolve an expression to a signed 64-bit integer.

        Raises:
            UnresolvableExpressionError: Any part of the expression is unknown
        """
        if depth > self.max_depth:
            raise UnresolvableExpressionError(f"macro expansion deeper than {self.max_depth}")
        text = text.strip()
        if not text:
            raise UnresolvableExpressionError("empty expression")

        # Plain literals are by far the most common value.
        literal = parse_integer_literal(text)
        if literal is not None:
            return literal

        parser = _ExpressionParser(tokenize_expression(text), self, depth)
        return parser.parse()

    def expand_call(self, name: str, args: List[str], depth: int) -> int:
        """Evaluate ``name(args)`` for a function-like macro."""
        body = self.macros.get(name)
        if body is None:
            if name in BUILTIN_WRAPPERS and len(args) == 1:
                return self.resolve(args[0], depth + 1)
            raise UnresolvableExpressionError(f"unknown macro {name}")

        paste = _TOKEN_PASTE_RE.match(body)
        if paste and len(args) == 1:
            return self.resolve(args[0].strip() + paste.group(2), depth + 1)

        params = self.macro_params.get(name)
        if params:
            if len(params) != len(args):
                raise UnresolvableExpressionError(
                    f"macro {name} takes {len(params)} argument(s), got {len(args)}"
                )
            for param, arg in zip(params, args):
                body = re.sub(rf"\b{re.escape(param)}\b", f"({arg})", body)
        return self.resolve(body, depth + 1)


class _ExpressionParser:
    """Precedence climbing over tokens: ``|`` < ``^`` < ``&`` < shifts < ``+ -``."""

    _BINARY_LEVELS = (("|",), ("^",), ("&",), ("<<", ">>"), ("+", "-"))

    def __init__(self, tokens: List[Tuple[str, str]], evaluator: MacroExpressionEvaluator, depth: int):
        self.tokens = tokens
        self.pos = 0
        self.evaluator = evaluator
        self.depth = depth

    def parse(self) -> int:
        value = self._binary(0)
        if self.pos != len(self.tokens):
            raise UnresolvableExpressionError(f"unexpected token {self.tokens[self.pos][1]!r}")
        return value

    def _peek(self) -> Optional[Tuple[str, str]]:
        return self.tokens[self.pos] if self.pos < len(self.tokens) else None

    def _take(self) -> Tuple[str, str]:
        token = self._peek()
        if token is None:
            raise UnresolvableExpressionError("unexpected end of expression")
        self.pos += 1
        return token

    def _expect(self, text: str) -> None:
        kind, value = self._take()
        if value != text:
            raise UnresolvableExpressionError(f"expected {text!r}, found {value!r}")

    def _binary(self, level: int) -> int:
        if level == len(self._BINARY_LEVELS):
            return self._unary()
        operators = self._BINARY_LEVELS[level]
        left = self._binary(level + 1)
        while True:
            token = self._peek()
            if token is None or token[0] != "op" or token[1] not in operators:
                return left
            self.pos += 1
            right = self._binary(level + 1)
            left = self._apply(token[1], left, right)

    @staticmethod
    def _apply(op: str, left: int, right: int) -> int:
        if op == "|":
            return to_int64(left | right)
        if op == "^":
            return to_int64(left ^ right)
        if op == "&":
            return to_int64(left & right)
        if op in ("<<", ">>"):
            if not 0 <= right < 64:
                raise UnresolvableExpressionError(f"shift count {right} out of range")
            if op == "<<":
                return to_int64((left << right) & (UINT64_LIMIT - 1))
            return left >> right
        if op == "+":
            return to_int64((left + right) & (UINT64_LIMIT - 1))
        return to_int64((left - right) & (UINT64_LIMIT - 1))

    def _unary(self) -> int:
        token = self._peek()
        if token is not None and token[0] == "op" and token[1] in ("-", "+", "~"):
            self.pos += 1
            operand = self._unary()
            if token[1] == "-":
                return to_int64((-operand) & (UINT64_LIMIT - 1))
            if token[1] == "~":
                return to_int64((~operand) & (UINT64_LIMIT - 1))
            return operand
        return self._primary()

    def _primary(self) -> int:
        kind, value = self._take()
        if kind == "number":
            literal = parse_integer_literal(value)
            if literal is None:
                raise UnresolvableExpressionError(f"bad literal {value!r}")
            return literal

        if kind == "op" and value == "(":
            cast_end = self._cast_end()
            if cast_end is not None:
                self.pos = cast_end
                return self._unary()
            inner = self._binary(0)
            self._expect(")")
            return inner

        if kind == "ident":
            nxt = self._peek()
            if nxt is not None and nxt[1] == "(":
                self.pos += 1
                args = self._call_arguments()
                return self.evaluator.expand_call(value, args, self.depth)
            if value in self.evaluator.constants:
                return self.evaluator.constants[value]
            raise UnresolvableExpressionError(f"unknown identifier {value}")

        raise UnresolvableExpressionError(f"unexpected token {value!r}")

    def _cast_end(self) -> Optional[int]:
        """If the tokens after '(' form ``type-words )``, return the index after ')'."""
        words = []
        index = self.pos
        while index < len(self.tokens) and self.tokens[index][0] == "ident":
            words.append(self.tokens[index][1])
            index += 1
        if index < len(self.tokens) and self.tokens[index][1] == ")" and _looks_like_integer_type(words):
            return index + 1
        return None

    def _call_arguments(self) -> List[str]:
        """Collect raw argument texts up to the matching ')'."""
        args: List[str] = []
        current: List[str] = []
        nesting = 0
        while True:
            kind, value = self._take()
            if value == "(":
                nesting += 1
            elif value == ")":
                if nesting == 0:
                    break
                nesting -= 1
            elif value == "," and nesting == 0:
                args.append(" ".join(current))
                current = []
                continue
            current.append(value)
        if current or args:
            args.append(" ".join(current))
        return args
