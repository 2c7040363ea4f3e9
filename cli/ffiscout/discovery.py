"""Discovery orchestrator: headers first, then the shared object."""

import logging
from pathlib import Path
from typing import Dict, Iterable, List, Optional

from .binary import BinarySignatureExtractor
from .config import FFIScoutConfig, Precedence
from .errors import BinaryExtractionError, HeaderNotFoundError, HeaderParseError, ToolUnavailableError
from .models import DiscoveredFunction, DiscoveryResult, Provenance, StageError
from .parsers import HeaderLocator, IncludeGraphResolver, preprocess_header
from .session import DiscoverySession

logger = logging.getLogger(__name__)


class SignatureDiscovery:
    """Builds the callable surface of a C library.

    Example:
        >>> discovery = SignatureDiscovery()
        >>> result = discovery.discover("sdl3", shared_object="/usr/lib/libSDL3.so")
        >>> result.constants["SDL_INIT_VIDEO"]
        32
    """

    def __init__(
        self,
        config: Optional[FFIScoutConfig] = None,
        locator: Optional[HeaderLocator] = None,
        resolver: Optional[IncludeGraphResolver] = None,
        extractor: Optional[BinarySignatureExtractor] = None,
    ):
        self.config = config or FFIScoutConfig()
        self.locator = locator or HeaderLocator(self.config)
        self.resolver = resolver or IncludeGraphResolver(self.config)
        self.extractor = extractor or BinarySignatureExtractor(self.config)

    def discover(
        self,
        library: str,
        shared_object: Optional[str] = None,
        extra_include_paths: Iterable[str] = (),
    ) -> DiscoveryResult:
        """Run every stage for one library and merge the results.

        Args:
            library: Logical library name (``sdl3``, ``raylib``, ``m``, ...)
            shared_object: Path to the library's .so, if available
            extra_include_paths: Directories searched before any other

        Returns:
            Immutable DiscoveryResult. Header results are always present,
            binary stage failures are listed in ``errors``.
        """
        search_paths = self.locator.search_paths(library, extra_include_paths)
        session = DiscoverySession(self.config, search_paths)
        errors: List[StageError] = []

        headers = self._parse_headers(library, session)
        functions: Dict[str, DiscoveredFunction] = {
            name: DiscoveredFunction(name, Provenance.HEADER, signature)
            for name, signature in session.functions.items()
        }

        if shared_object:
            self._merge_debug_info(shared_object, functions, errors, session)
            self._merge_symbols(shared_object, functions, errors, session)

        typed = sum(1 for entry in functions.values() if entry.signature is not None)
        logger.info(
            f"{library}: {len(session.constants)} constants, {typed} typed functions, "
            f"{len(functions) - typed} symbol-only, {len(errors)} stage error(s)"
        )
        return DiscoveryResult.build(
            library=library,
            signature_set=session.signatures,
            functions=functions,
            header_paths=[str(path) for path in headers],
            include_paths=search_paths,
            errors=errors,
            diagnostics=session.diagnostics,
        )

    def _parse_headers(self, library: str, session: DiscoverySession) -> List[Path]:
        try:
            headers = self.locator.find_headers(library, session.search_paths)
        except HeaderNotFoundError as e:
            logger.warning(str(e))
            session.note(str(e))
            return []

        for header in headers:
            session.note(f"Parsing C header: {header}")
            self.resolver.walk(header, session)
            if self.config.use_preprocessor:
                self._parse_preprocessed(header, session)
        return headers

    def _parse_preprocessed(self, header: Path, session: DiscoverySession) -> None:
        """Add what the real preprocessor reveals without overriding parsed entries."""
        try:
            text = preprocess_header(header, session.search_paths, self.config)
        except ToolUnavailableError as e:
            logger.warning(f"Preprocessor unavailable: {e}")
            session.note(str(e))
            return

        expanded = DiscoverySession(self.config, session.search_paths)
        try:
            self.resolver.primary.parse_text(text, expanded, f"{header} (preprocessed)")
        except HeaderParseError as e:
            logger.warning(str(e))
            session.note(str(e))
            return

        added = 0
        for name, signature in expanded.functions.items():
            if name not in session.functions:
                session.declare_function(name, signature)
                added += 1
        for name, value in expanded.constants.items():
            if name not in session.constants:
                session.define_constant(name, value)
        logger.info(f"Preprocessor added {added} function(s) for {header}")

    def _merge_debug_info(
        self,
        shared_object: str,
        functions: Dict[str, DiscoveredFunction],
        errors: List[StageError],
        session: DiscoverySession,
    ) -> None:
        try:
            debug_signatures = self.extractor.extract_debug_signatures(shared_object)
        except BinaryExtractionError as e:
            logger.warning(f"Debug info stage failed: {e}")
            errors.append(StageError("debug_info", str(e)))
            return

        replace = self.config.precedence == Precedence.DEBUG_INFO
        for name, signature in debug_signatures.items():
            if name in functions and not replace:
                continue
            functions[name] = DiscoveredFunction(name, Provenance.DEBUG_INFO, signature)
            session.note(f"Found function from DWARF: {signature.render(name)}")

    def _merge_symbols(
        self,
        shared_object: str,
        functions: Dict[str, DiscoveredFunction],
        errors: List[StageError],
        session: DiscoverySession,
    ) -> None:
        try:
            names = self.extractor.extract_symbol_names(shared_object)
        except BinaryExtractionError as e:
            logger.warning(f"Symbol table stage failed: {e}")
            errors.append(StageError("symbols", str(e)))
            return

        for name in names:
            if name not in functions:
                functions[name] = DiscoveredFunction(name, Provenance.SYMBOL_ONLY)
                session.note(f"Symbol without type information: {name}")
