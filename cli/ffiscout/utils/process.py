"""Running external tools with a bounded wait."""

import logging
import subprocess
from typing import List, Optional

from ..errors import ToolUnavailableError

logger = logging.getLogger(__name__)


def run_tool(args: List[str], timeout: float, input_text: Optional[str] = None) -> str:
    """Run an external command and return its standard output.

    Args:
        args: Command line, program first
        timeout: Seconds to wait before the process is killed
        input_text: Optional text written to the process's stdin

    Returns:
        Captured stdout decoded as UTF-8 (undecodable bytes replaced)

    Raises:
        ToolUnavailableError: The program is missing, exited non-zero or timed out
    """
    tool = args[0]
    logger.debug(f"Running {' '.join(args)}")
    try:
        completed = subprocess.run(
            args,
            input=input_text.encode("utf-8") if input_text is not None else None,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            timeout=timeout,
            check=False,
        )
    except FileNotFoundError:
        raise ToolUnavailableError(tool, "not installed")
    except subprocess.TimeoutExpired:
        raise ToolUnavailableError(tool, f"timed out after {timeout}s")
    except OSError as e:
        raise ToolUnavailableError(tool, str(e))

    if completed.returncode != 0:
        stderr = completed.stderr.decode("utf-8", errors="replace").strip()
        raise ToolUnavailableError(tool, f"exit status {completed.returncode}: {stderr}")

    return completed.stdout.decode("utf-8", errors="replace")
