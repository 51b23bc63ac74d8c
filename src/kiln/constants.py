"""kiln constants.

Single source of truth for defaults shared between the rendering core, the
settings layer and the CLI.
"""

from __future__ import annotations

# =============================================================================
# Template syntax
# =============================================================================

#: Opening delimiter of an embedded expression
EXPRESSION_OPEN: str = "${{"

#: Closing delimiter of an embedded expression
EXPRESSION_CLOSE: str = "}}"

# =============================================================================
# Recipe defaults
# =============================================================================

#: Build number used when a recipe does not declare one
DEFAULT_BUILD_NUMBER: int = 0

#: Number of hex characters of the variant hash used in build strings
BUILD_STRING_HASH_LENGTH: int = 7

#: Package archive extension used in output filenames
PACKAGE_EXTENSION: str = ".conda"

#: Default pin expressions for pin_subpackage / pin_compatible
DEFAULT_MIN_PIN: str = "x.x.x.x.x.x"
DEFAULT_MAX_PIN: str = "x"

# =============================================================================
# Compilers
# =============================================================================

#: Default compiler package per (operating system, language)
DEFAULT_COMPILERS: dict[str, dict[str, str]] = {
    "linux": {"c": "gcc", "cxx": "gxx", "fortran": "gfortran", "rust": "rust"},
    "osx": {"c": "clang", "cxx": "clangxx", "fortran": "gfortran", "rust": "rust"},
    "win": {"c": "vs2017", "cxx": "vs2017", "fortran": "flang", "rust": "rust"},
    "emscripten": {"c": "emscripten", "cxx": "emscripten", "rust": "rust"},
}

#: Default core-dependency-tree distribution name and architecture
DEFAULT_CDT_NAME: str = "cos7"

# =============================================================================
# Concurrency
# =============================================================================

#: Default number of worker threads used to assemble variants concurrently
DEFAULT_MAX_WORKERS: int = 4
