"""Per-library discovery state shared by every header parser."""

import logging
from pathlib import Path
from typing import Dict, List, Optional, Set

from .config import FFIScoutConfig
from .models import FunctionSignature, LibrarySignatureSet
from .utils import canonical_path

logger = logging.getLogger(__name__)


class DiscoverySession:
    """Accumulator for one discovery session.

    Holds the visited-header set, the include search paths and the
    constants / macros / functions found so far. One session belongs to one
    library; it is never shared between concurrent discoveries.
    """

    def __init__(self, config: Optional[FFIScoutConfig] = None, search_paths: Optional[List[str]] = None):
        self.config = config or FFIScoutConfig()
        self.search_paths: List[str] = list(search_paths) if search_paths is not None else list(self.config.system_include_dirs)
        self.signatures = LibrarySignatureSet()
        self.macro_params: Dict[str, List[str]] = {}
        self.visited: Set[str] = set()
        self.parsed_files: List[str] = []
        self.diagnostics: List[str] = []

    @property
    def constants(self) -> Dict[str, int]:
        return self.signatures.constants

    @property
    def macros(self) -> Dict[str, str]:
        return self.signatures.macros

    @property
    def functions(self) -> Dict[str, FunctionSignature]:
        return self.signatures.functions

    @property
    def max_include_depth(self) -> int:
        return self.config.max_include_depth

    def note(self, message: str) -> None:
        """Record a diagnostic. Kept on the session only in verbose mode."""
        logger.debug(message)
        if self.config.verbose:
            self.diagnostics.append(message)

    def is_visited(self, path) -> bool:
        return canonical_path(path) in self.visited

    def mark_visited(self, path) -> bool:
        """Mark a header as parsed. Returns False if it already was."""
        key = canonical_path(path)
        if key in self.visited:
            return False
        self.visited.add(key)
        self.parsed_files.append(str(Path(path)))
        return True

    def define_constant(self, name: str, value: int) -> None:
        # Redefinition replaces the earlier value, as the preprocessor does.
        if name in self.constants and self.constants[name] != value:
            self.note(f"Constant {name} redefined: {self.constants[name]} -> {value}")
        self.constants[name] = value

    def define_macro(self, name: str, params: List[str], body: str) -> None:
        self.macros[name] = body
        self.macro_params[name] = list(params)

    def declare_function(self, name: str, signature: FunctionSignature) -> None:
        self.functions[name] = signature
