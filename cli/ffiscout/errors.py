"""Exception hierarchy for ffiscout.

Only ``BinaryExtractionError`` (and its subclass ``ObjectOpenError``) is
allowed to escape the stage that raised it. Every other error is caught where
it happens and turned into missing data plus a diagnostic message.
"""


class FFIScoutError(Exception):
    """Base class for all ffiscout errors."""


class ToolUnavailableError(FFIScoutError):
    """An external tool (pkg-config, the C preprocessor) is missing or failed."""

    def __init__(self, tool: str, reason: str):
        self.tool = tool
        self.reason = reason
        super().__init__(f"{tool}: {reason}")


class HeaderNotFoundError(FFIScoutError):
    """No main header could be located for a library."""


class HeaderParseError(FFIScoutError):
    """The primary declaration parser could not tokenize a header."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Failed to parse {path}: {reason}")


class UnresolvableExpressionError(FFIScoutError):
    """A constant expression could not be reduced to an integer."""


class UnresolvableIncludeError(FFIScoutError):
    """An #include directive did not resolve to an existing file."""


class BinaryExtractionError(FFIScoutError):
    """Debug info or symbol data could not be read from a shared object."""

    def __init__(self, path, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"{path}: {reason}")


class ObjectOpenError(BinaryExtractionError):
    """The shared object could not be opened or is not an ELF object."""
