"""Configuration management for ffiscout."""

import yaml
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


DEFAULT_SYSTEM_INCLUDE_DIRS = ["./include", "/usr/include", "/usr/local/include"]

# Vendor export / calling-convention macros that sit between ``extern`` and the
# return type or between the return type and the function name.
DEFAULT_NOISE_ANNOTATIONS = [
    "SDL_DECLSPEC",
    "SDLCALL",
    "SDL_MALLOC",
    "SDL_FORCE_INLINE",
    "SDL_NORETURN",
    "SDL_ANALYZER_NORETURN",
    "SDL_PRINTF_FORMAT_STRING",
    "SDL_SCANF_FORMAT_STRING",
    "RAYLIB_API",
    "RLAPI",
    "RMAPI",
    "GLAPI",
    "GLAPIENTRY",
    "APIENTRY",
    "WINAPI",
    "CALLBACK",
    "static",
    "inline",
    "__inline",
    "__inline__",
    "__extension__",
    "__cdecl",
    "__stdcall",
    "__fastcall",
    "__THROW",
    "__wur",
]

DEFAULT_HEADER_ALIASES: Dict[str, List[str]] = {
    "sdl3": ["SDL3/SDL.h"],
    "SDL3": ["SDL3/SDL.h"],
    "sdl2": ["SDL2/SDL.h"],
    "SDL2": ["SDL2/SDL.h"],
    "GL": ["GL/gl.h"],
    "GLU": ["GL/glu.h"],
    "pthread": ["pthread.h"],
    "m": ["math.h"],
    "c": ["math.h", "stdlib.h", "string.h", "stdio.h"],
}

DEFAULT_PACKAGE_VARIANTS: Dict[str, List[str]] = {
    "sdl3": ["SDL3", "sdl3-dev"],
    "raylib": ["raylib5", "RayLib5"],
}


class Precedence(str, Enum):
    """Which source wins when headers and debug info both describe a function."""
    HEADER = "header"
    DEBUG_INFO = "debug_info"


class FFIScoutConfig(BaseSettings):
    """ffiscout configuration settings."""

    model_config = SettingsConfigDict(
        env_prefix="FFISCOUT_",
        case_sensitive=False,
        env_file_encoding="utf-8",
        extra="ignore",
    )

    verbose: bool = Field(
        default=False,
        description="Collect diagnostic messages into the discovery result"
    )

    max_include_depth: int = Field(
        default=20,
        description="Maximum #include recursion depth; deeper headers are silently skipped"
    )

    max_tokens_per_file: int = Field(
        default=1_000_000,
        description="Token limit above which the primary parser gives up on a header"
    )

    system_include_dirs: List[str] = Field(
        default_factory=lambda: list(DEFAULT_SYSTEM_INCLUDE_DIRS),
        description="Conventional include directories searched after build-config paths"
    )

    extra_include_dirs: List[str] = Field(
        default_factory=list,
        description="Additional include directories searched before everything else"
    )

    build_config_tool: str = Field(
        default="pkg-config",
        description="Build-configuration query tool used to find include flags"
    )

    preprocessor: str = Field(
        default="cc",
        description="C compiler driver used for the optional preprocessing strategy"
    )

    use_preprocessor: bool = Field(
        default=False,
        description="Also run located headers through the external preprocessor"
    )

    tool_timeout: float = Field(
        default=30.0,
        description="Timeout in seconds for every external tool invocation"
    )

    precedence: Precedence = Field(
        default=Precedence.HEADER,
        description="Which source wins on a name collision"
    )

    noise_annotations: List[str] = Field(
        default_factory=lambda: list(DEFAULT_NOISE_ANNOTATIONS),
        description="Annotation macros skipped when reading function declarations"
    )

    header_aliases: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_HEADER_ALIASES.items()},
        description="Library name -> header paths relative to an include directory"
    )

    package_variants: Dict[str, List[str]] = Field(
        default_factory=lambda: {k: list(v) for k, v in DEFAULT_PACKAGE_VARIANTS.items()},
        description="Library name -> alternative build-config package names"
    )

    exported_only: bool = Field(
        default=False,
        description="Drop undefined (imported) function symbols from the dynamic symbol table"
    )


def get_config_file_path(directory: Path) -> Path:
    """Get the path to the config file in the given directory."""
    return directory / ".ffiscoutrc"


def load_config(config_path: Optional[Path] = None, directory: Optional[Path] = None) -> FFIScoutConfig:
    """Load configuration from file or environment variables."""
    config_file = None
    if config_path:
        config_file = Path(config_path)
    elif directory:
        config_file = get_config_file_path(directory)

    if config_file and config_file.exists():
        return _from_file(config_file)

    default_config = Path.home() / ".ffiscoutrc"
    if default_config.exists():
        return _from_file(default_config)

    return FFIScoutConfig()


def _from_file(config_file: Path) -> FFIScoutConfig:
    # save_config writes YAML; anything else is treated as a dotenv file.
    with open(config_file, "r", encoding="utf-8") as f:
        text = f.read()
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError:
        data = None
    if isinstance(data, dict):
        return FFIScoutConfig(**data)
    return FFIScoutConfig(_env_file=str(config_file))


def save_config(config: FFIScoutConfig, directory: Path) -> None:
    """Save configuration to file in the given directory."""
    config_file = get_config_file_path(directory)

    config_dict = config.model_dump(mode="json", exclude_none=True)

    with open(config_file, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False)
