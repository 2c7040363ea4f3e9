"""Data model for discovered library surfaces."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class FunctionParam:
    """One parameter of a C function. The name is cosmetic and may be absent."""
    type: str
    name: Optional[str] = None


@dataclass(frozen=True)
class FunctionSignature:
    """Return type plus ordered parameters. ``params == ()`` means ``(void)``."""
    return_type: str
    params: Tuple[FunctionParam, ...] = ()

    @property
    def param_types(self) -> List[str]:
        return [param.type for param in self.params]

    def render(self, name: str) -> str:
        """Render the signature as a C-like prototype string."""
        parts = []
        for param in self.params:
            parts.append(f"{param.type} {param.name}" if param.name else param.type)
        return f"{self.return_type} {name}({', '.join(parts) or 'void'})"


class Provenance(str, Enum):
    """Which strategy produced a function entry."""
    HEADER = "header"
    DEBUG_INFO = "debug_info"
    SYMBOL_ONLY = "symbol_only"


@dataclass(frozen=True)
class DiscoveredFunction:
    """A function known to exist in a library.

    ``signature`` is None only for ``Provenance.SYMBOL_ONLY`` entries, whose
    types must be supplied by the caller.
    """
    name: str
    provenance: Provenance
    signature: Optional[FunctionSignature] = None


@dataclass
class LibrarySignatureSet:
    """Constants, function-like macros and header-declared functions."""
    constants: Dict[str, int] = field(default_factory=dict)
    macros: Dict[str, str] = field(default_factory=dict)
    functions: Dict[str, FunctionSignature] = field(default_factory=dict)


@dataclass(frozen=True)
class StageError:
    """A discovery stage that failed hard (currently only binary extraction)."""
    stage: str
    message: str


@dataclass(frozen=True)
class DiscoveryResult:
    """Merged output of one discovery session. Immutable once returned."""
    library: str
    constants: Mapping[str, int]
    macros: Mapping[str, str]
    functions: Mapping[str, DiscoveredFunction]
    header_paths: Tuple[str, ...] = ()
    include_paths: Tuple[str, ...] = ()
    errors: Tuple[StageError, ...] = ()
    diagnostics: Tuple[str, ...] = ()

    @classmethod
    def build(
        cls,
        library: str,
        signature_set: LibrarySignatureSet,
        functions: Dict[str, DiscoveredFunction],
        header_paths: List[str],
        include_paths: List[str],
        errors: List[StageError],
        diagnostics: List[str],
    ) -> "DiscoveryResult":
        """Freeze accumulated state into a result."""
        return cls(
            library=library,
            constants=MappingProxyType(dict(signature_set.constants)),
            macros=MappingProxyType(dict(signature_set.macros)),
            functions=MappingProxyType(dict(functions)),
            header_paths=tuple(header_paths),
            include_paths=tuple(include_paths),
            errors=tuple(errors),
            diagnostics=tuple(diagnostics),
        )

    @property
    def signatures(self) -> Dict[str, FunctionSignature]:
        """Typed entries only."""
        return {
            name: entry.signature
            for name, entry in self.functions.items()
            if entry.signature is not None
        }

    @property
    def symbol_only(self) -> List[str]:
        """Names known to exist but without any type information."""
        return sorted(
            name for name, entry in self.functions.items()
            if entry.provenance is Provenance.SYMBOL_ONLY
        )

    def provenance_of(self, name: str) -> Optional[Provenance]:
        entry = self.functions.get(name)
        return entry.provenance if entry else None

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready representation."""
        functions = {}
        for name in sorted(self.signatures):
            entry = self.functions[name]
            functions[name] = {
                "returnType": entry.signature.return_type,
                "params": [
                    {"type": param.type, "name": param.name} for param in entry.signature.params
                ],
                "provenance": entry.provenance.value,
            }
        return {
            "library": self.library,
            "headers": list(self.header_paths),
            "includePaths": list(self.include_paths),
            "constants": dict(sorted(self.constants.items())),
            "macros": dict(sorted(self.macros.items())),
            "functions": functions,
            "symbolOnly": self.symbol_only,
            "errors": [{"stage": err.stage, "message": err.message} for err in self.errors],
        }
