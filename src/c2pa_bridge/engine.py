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

"""Process-wide engine entry points: version, settings, capabilities."""

import ctypes
import json
import logging
from pathlib import Path
from typing import Any, Union

from . import _ffi
from .errors import C2paError, raise_last_error, take_string

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())


def version() -> str:
    """Get the engine version string, e.g. "c2pa-c/0.65.1 c2pa-rs/0.65.1"."""
    return take_string(_ffi.lib().c2pa_version())


def sdk_version() -> str:
    """
    Returns the underlying c2pa-rs version.
    """
    vstr = version()
    for part in vstr.split():
        if part.startswith("c2pa-rs/"):
            return part.split("/", 1)[1]
    # Local builds may not follow the usual format
    return vstr  # pragma: no cover


def load_settings(settings: Union[str, dict], format: str = "json") -> None:
    """Load engine settings.

    Settings are process-wide and stay in effect until the next call;
    the last load wins.

    Args:
        settings: The settings document, or a dict (sent as JSON)
        format: Format of the settings string, "json" or "toml"

    Raises:
        C2paError: If the engine rejects the settings
    """
    if not isinstance(settings, str):
        try:
            settings = json.dumps(settings)
        except (TypeError, ValueError) as e:
            raise C2paError.Json(
                f"Failed to serialize settings JSON: {e}") from e
        format = "json"

    result = _ffi.lib().c2pa_load_settings(
        settings.encode('utf-8'),
        format.encode('utf-8')
    )
    if result != 0:
        raise_last_error("Error loading settings")
    logger.debug("Loaded %s settings", format)


def load_settings_file(path: Union[str, Path]) -> None:
    """Load engine settings from a .json or .toml file.

    Raises:
        C2paError.FileNotFound: If the file does not exist
        C2paError: If the engine rejects the settings
    """
    path = Path(path)
    try:
        text = path.read_text(encoding='utf-8')
    except FileNotFoundError as e:
        raise C2paError.FileNotFound(f"File not found: {path}") from e
    except (OSError, UnicodeError) as e:
        raise C2paError.Io(f"Could not read settings {path}: {e}") from e
    load_settings(text, path.suffix[1:] or "json")


def supported_mime_types(function_name: str) -> list[str]:
    """MIME types and extensions reported by an engine listing call.

    The answer is cached until another library is installed.
    """
    def fetch() -> list[str]:
        library = _ffi.lib()
        count = ctypes.c_size_t()
        arr = getattr(library, function_name)(ctypes.pointer(count))
        if not arr:
            raise_last_error("Failed to get supported MIME types")

        try:
            result = []
            for i in range(count.value):
                if arr[i] is None:
                    continue
                mime_type = arr[i].decode("utf-8", errors='replace')
                if mime_type:
                    result.append(mime_type)
            return result
        finally:
            try:
                library.c2pa_free_string_array(arr, count.value)
            except Exception:
                logger.error("Failed to release native string array")

    return list(_ffi.cached(function_name, fetch))


def encode_json(value: Any, what: str) -> bytes:
    """Encode a JSON document given as str or JSON-serializable object."""
    if not isinstance(value, str):
        try:
            value = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise C2paError.Json(
                f"Failed to serialize {what} JSON: {e}") from e
    try:
        return value.encode('utf-8')
    except UnicodeError as e:
        raise C2paError.Encoding(
            f"Invalid UTF-8 characters in {what}: {e}") from e
