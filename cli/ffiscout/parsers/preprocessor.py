"""Running a header through the system C preprocessor."""

import logging
from pathlib import Path
from typing import Iterable, Optional

from ..config import FFIScoutConfig
from ..utils import run_tool

logger = logging.getLogger(__name__)


def preprocess_header(header: Path, include_paths: Iterable[str], config: Optional[FFIScoutConfig] = None) -> str:
    """Expand a header with ``cc -E -dD`` and return the output.

    ``-dD`` keeps the ``#define`` lines in the output so constants survive
    preprocessing alongside the expanded declarations.

    Raises:
        ToolUnavailableError: The preprocessor is missing, failed or timed out
    """
    config = config or FFIScoutConfig()
    args = [config.preprocessor, "-E", "-dD", "-x", "c", "-"]
    args.extend(f"-I{path}" for path in include_paths)
    output = run_tool(args, config.tool_timeout, input_text=f'#include "{header}"\n')
    logger.debug(f"Preprocessed {header}: {len(output)} characters")
    return output
