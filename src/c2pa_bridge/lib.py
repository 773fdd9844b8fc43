# Copyright 2025 Adobe. All rights reserved.
# This file is licensed to you under the Apache License,
# Version 2.0 (http://www.apache.org/licenses/LICENSE-2.0)
# or the MIT license (http://opensource.org/licenses/MIT),
# at your option.

# Unless required by applicable law or agreed to in writing,
# this software is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR REPRESENTATIONS OF ANY KIND, either express or
# implied. See the LICENSE-MIT and LICENSE-APACHE files for the
# specific language governing permissions and limitations under
# each license.

"""
Native engine discovery.

Finds the compiled C2PA engine for the running platform and loads it
with ctypes. Nothing here knows about the ABI itself, see _ffi.py.
"""

import os
import sys
import ctypes
import logging
import platform
from enum import Enum
from pathlib import Path
from typing import Optional

# Verbose search logging, off by default
DEBUG_LIBRARY_LOADING = False

LIBRARY_NAME_ENV = "C2PA_LIBRARY_NAME"

logger = logging.getLogger("c2pa_bridge.loader")
logger.addHandler(logging.NullHandler())


class CPUArchitecture(Enum):
    """CPU architecture names as reported by the platform module."""
    AARCH64 = "aarch64"
    X86_64 = "x86_64"
    ARM64 = "arm64"


def default_library_name() -> str:
    """File name of the engine library on this platform."""
    if sys.platform == "darwin":
        return "libc2pa_c.dylib"
    elif sys.platform == "win32":
        return "c2pa_c.dll"
    elif sys.platform.startswith("linux"):
        return "libc2pa_c.so"
    raise RuntimeError(f"Unsupported platform: {sys.platform}")


def _get_architecture() -> str:
    if sys.platform == "darwin":
        # Rosetta reports x86_64 from platform.machine()
        if platform.processor() == "arm":
            return CPUArchitecture.ARM64.value
        return CPUArchitecture.X86_64.value
    return platform.machine()


def get_platform_identifier() -> str:
    """Get the release identifier (arch-os) used for prebuilt engines.

    Returns one of:
    - aarch64-apple-darwin / x86_64-apple-darwin / universal-apple-darwin
    - x86_64-pc-windows-msvc
    - x86_64-unknown-linux-gnu / aarch64-unknown-linux-gnu
    """
    system = platform.system().lower()
    arch = _get_architecture()

    if system == "darwin":
        if arch == CPUArchitecture.ARM64.value:
            return "aarch64-apple-darwin"
        elif arch == CPUArchitecture.X86_64.value:
            return "x86_64-apple-darwin"
        return "universal-apple-darwin"
    elif system == "windows":
        return "x86_64-pc-windows-msvc"
    elif system == "linux":
        if arch in (CPUArchitecture.ARM64.value, CPUArchitecture.AARCH64.value):
            return "aarch64-unknown-linux-gnu"
        return "x86_64-unknown-linux-gnu"
    raise ValueError(f"Unsupported operating system: {system}")


def _get_platform_dir() -> str:
    if sys.platform == "darwin":
        return "apple-darwin"
    elif sys.platform == "win32":
        return "pc-windows-msvc"
    return "unknown-linux-gnu"


def library_search_paths() -> list[Path]:
    """
    Directories probed for the engine, in order.

    Each base directory is tried as-is and with the platform directory and
    platform identifier appended, then LD_LIBRARY_PATH entries.
    """
    platform_id = get_platform_identifier()
    subfolders = (None, _get_platform_dir(), platform_id)

    package_dir = Path(__file__).parent
    base_paths = [
        Path.cwd(),
        Path.cwd() / "artifacts",
        Path.cwd() / "libs",
        package_dir,
        package_dir / "libs",
    ]

    paths = []
    for base in base_paths:
        for sub in subfolders:
            paths.append(base / sub if sub else base)

    if sys.platform == "darwin" and platform_id != "universal-apple-darwin":
        paths.extend(base / "universal-apple-darwin" for base in base_paths)

    paths.extend(Path(p) for p in os.environ.get(
        "LD_LIBRARY_PATH", "").split(os.pathsep) if p)
    return paths


def _load_single_library(lib_name: str,
                         search_paths: list[Path]) -> Optional[ctypes.CDLL]:
    """Load lib_name from the first search path that has it, or None."""
    for path in search_paths:
        lib_path = path / lib_name
        if not lib_path.exists():
            if DEBUG_LIBRARY_LOADING:  # pragma: no cover
                logger.debug("Library not found at: %s", lib_path)
            continue
        try:
            return ctypes.CDLL(str(lib_path))
        except OSError as e:
            if "incompatible architecture" in str(e):
                logger.error(
                    "Architecture mismatch: %s is not compatible with %s",
                    lib_path, _get_architecture())
            else:
                logger.error("Failed to load library from %s: %s",
                             lib_path, e)
    return None


def dynamically_load_library(lib_name: Optional[str] = None) -> ctypes.CDLL:
    """
    Load the engine library.

    Args:
        lib_name: Optional file name to look for instead of the platform
          default. The C2PA_LIBRARY_NAME environment variable is tried
          first when set.

    Returns:
        The loaded library

    Raises:
        RuntimeError: If no loadable library was found
    """
    search_paths = library_search_paths()
    if DEBUG_LIBRARY_LOADING:  # pragma: no cover
        logger.info("Platform identifier: %s", get_platform_identifier())
        logger.info("Search paths: %s", [str(p) for p in search_paths])

    candidates = []
    env_lib_name = os.environ.get(LIBRARY_NAME_ENV)
    if env_lib_name:
        candidates.append(env_lib_name)
    candidates.append(lib_name or default_library_name())

    for candidate in candidates:
        lib = _load_single_library(candidate, search_paths)
        if lib is not None:
            logger.debug("Loaded engine library %s", candidate)
            return lib
        logger.error("Could not find %s in any of the search paths",
                     candidate)

    raise RuntimeError(
        f"Could not find {' or '.join(candidates)} in any of the search "
        f"paths (Platform: {get_platform_identifier()}, "
        f"Architecture: {_get_architecture()})")
