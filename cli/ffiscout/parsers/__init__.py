"""C header parsers."""

from .base import BaseHeaderParser, HeaderParseResult, IncludeDirective
from .declarations import DeclarationParser
from .expressions import MacroExpressionEvaluator
from .fallback import FallbackLineParser
from .includes import IncludeGraphResolver, resolve_include
from .locator import HeaderLocator, query_include_paths
from .preprocessor import preprocess_header

__all__ = [
    "BaseHeaderParser",
    "HeaderParseResult",
    "IncludeDirective",
    "DeclarationParser",
    "MacroExpressionEvaluator",
    "FallbackLineParser",
    "IncludeGraphResolver",
    "resolve_include",
    "HeaderLocator",
    "query_include_paths",
    "preprocess_header",
]
