"""Finding include directories and the main header for a library."""

import logging
from pathlib import Path
from typing import Iterable, List, Optional

from ..config import FFIScoutConfig
from ..errors import HeaderNotFoundError, ToolUnavailableError
from ..utils import first_existing, run_tool, unique_paths

logger = logging.getLogger(__name__)

HEADER_TEMPLATES = (
    "{name}.h",
    "{name}/{name}.h",
    "{name}/{upper}.h",
    "lib{name}.h",
    "{name}/lib{name}.h",
)


def query_include_paths(library: str, config: Optional[FFIScoutConfig] = None) -> List[str]:
    """Ask the build-config tool for a library's include directories.

    The library name is tried first, then its known package-name variants;
    the first package the tool knows about wins.

    Returns:
        Directories from ``-I`` flags, or an empty list if the tool is
        unavailable or knows none of the names
    """
    config = config or FFIScoutConfig()
    packages = [library] + list(config.package_variants.get(library, []))

    for package in packages:
        try:
            output = run_tool([config.build_config_tool, "--cflags", package], config.tool_timeout)
        except ToolUnavailableError as e:
            logger.debug(f"{config.build_config_tool} has nothing for {package}: {e.reason}")
            continue

        includes = [flag[2:] for flag in output.split() if flag.startswith("-I") and len(flag) > 2]
        logger.info(f"{config.build_config_tool} --cflags {package}: {len(includes)} include path(s)")
        return includes

    logger.info(f"No build-config package found for {library}; using conventional include paths")
    return []


class HeaderLocator:
    """Turns a logical library name into header files on disk."""

    def __init__(self, config: Optional[FFIScoutConfig] = None):
        self.config = config or FFIScoutConfig()

    def search_paths(self, library: str, extra_paths: Iterable[str] = ()) -> List[str]:
        """Extra paths, then build-config paths, then the conventional directories."""
        return unique_paths(
            list(extra_paths)
            + list(self.config.extra_include_dirs)
            + query_include_paths(library, self.config)
            + list(self.config.system_include_dirs)
        )

    def candidate_names(self, library: str) -> List[str]:
        """Relative header paths to try for a library, most specific first."""
        names = [library, library.upper()]
        if library.startswith("lib") and len(library) > 3:
            names.extend([library[3:], library[3:].upper()])

        candidates = list(self.config.header_aliases.get(library, []))
        for name in names:
            for template in HEADER_TEMPLATES:
                candidates.append(template.format(name=name, upper=name.upper()))
        return unique_paths(candidates)

    def find_main_header(self, library: str, search_paths: Iterable[str]) -> Path:
        """Return the first existing candidate header.

        Raises:
            HeaderNotFoundError: No candidate exists in any search path
        """
        search_paths = list(search_paths)
        for relative in self.candidate_names(library):
            found = first_existing(Path(directory) / relative for directory in search_paths)
            if found is not None:
                logger.info(f"Main header for {library}: {found}")
                return found
        raise HeaderNotFoundError(f"Could not find a header for {library} in {search_paths}")

    def find_headers(self, library: str, search_paths: Iterable[str]) -> List[Path]:
        """Every header to parse for a library.

        For aliases naming several headers (``c`` -> math.h, stdlib.h, ...)
        each existing one is returned; otherwise this is the main header.

        Raises:
            HeaderNotFoundError: Nothing was found
        """
        search_paths = list(search_paths)
        aliases = self.config.header_aliases.get(library, [])
        if len(aliases) > 1:
            found = []
            for relative in aliases:
                header = first_existing(Path(directory) / relative for directory in search_paths)
                if header is not None:
                    found.append(header)
                else:
                    logger.debug(f"Alias header {relative} for {library} not found")
            if found:
                return found
        return [self.find_main_header(library, search_paths)]
