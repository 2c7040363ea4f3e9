"""ffiscout - discover the callable surface of native C libraries."""

__version__ = "0.1.0"

from .config import FFIScoutConfig, Precedence, load_config
from .discovery import SignatureDiscovery
from .models import (
    DiscoveredFunction,
    DiscoveryResult,
    FunctionParam,
    FunctionSignature,
    Provenance,
    StageError,
)

__all__ = [
    "FFIScoutConfig",
    "load_config",
    "Precedence",
    "SignatureDiscovery",
    "DiscoveredFunction",
    "DiscoveryResult",
    "FunctionParam",
    "FunctionSignature",
    "Provenance",
    "StageError",
]
