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
Error channel.

Every engine entry point reports failure with a sentinel (NULL or a
negative integer) and leaves a message in the engine's last-error slot.
The helpers here copy that message out, release the engine's copy and
turn it into a typed exception. They must run right after the failing
call, on the same thread, with no other engine call in between; the
wrappers do this inside the lock of the handle they used.
"""

import ctypes
import logging
from typing import NoReturn, Optional, Union

from . import _ffi

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())

MANIFEST_NOT_FOUND = "ManifestNotFound"


class C2paError(Exception):
    """Base class for every failure raised by this package.

    The engine's diagnostic text is kept verbatim in `message`. Engine
    error kinds are available as attributes, e.g. C2paError.Json.
    """

    def __init__(self, message: str = ""):
        self.message = message
        super().__init__(message)


class ConstructionFailure(C2paError):
    """Bad manifest JSON, certificate/algorithm pairing or input encoding."""


class IOFailure(C2paError):
    """A stream or file could not be opened, read, written or seeked."""


class NotFoundFailure(C2paError):
    """A manifest, resource or file is absent."""


class UnsupportedFormatFailure(C2paError):
    """The engine cannot parse or embed into the given format."""


class EngineFailure(C2paError):
    """Any other engine failure."""


class Assertion(ConstructionFailure):
    pass


class AssertionNotFound(NotFoundFailure):
    pass


class Decoding(EngineFailure):
    pass


class Encoding(ConstructionFailure):
    pass


class FileNotFound(IOFailure, NotFoundFailure):
    pass


class Io(IOFailure):
    pass


class Json(ConstructionFailure):
    pass


class Manifest(ConstructionFailure):
    pass


class ManifestNotFound(NotFoundFailure):
    pass


class NotSupported(UnsupportedFormatFailure):
    pass


class Other(EngineFailure):
    pass


class RemoteManifest(EngineFailure):
    pass


class ResourceNotFound(NotFoundFailure):
    pass


class Signature(EngineFailure):
    pass


class Verify(EngineFailure):
    pass


_ERROR_KINDS = {
    cls.__name__: cls for cls in (
        Assertion, AssertionNotFound, Decoding, Encoding, FileNotFound,
        Io, Json, Manifest, ManifestNotFound, NotSupported, Other,
        RemoteManifest, ResourceNotFound, Signature, Verify,
    )
}

for _name, _kind in _ERROR_KINDS.items():
    setattr(C2paError, _name, _kind)


def take_string(value) -> str:
    """Copy a NUL-terminated engine string and free the engine's copy."""
    if not value:
        return ""
    try:
        raw = ctypes.cast(value, ctypes.c_char_p).value
        return raw.decode('utf-8', errors='replace') if raw else ""
    finally:
        try:
            _ffi.lib().c2pa_string_free(value)
        except Exception:
            logger.error("Failed to release native string")


def last_error() -> Optional[str]:
    """Text of the last engine failure on this thread, if any."""
    return take_string(_ffi.lib().c2pa_error()) or None


def error_kind(message: str) -> Optional[type]:
    """Engine kind of a message such as 'Json: expected value'."""
    head = message.split(None, 1)[0] if message else ""
    return _ERROR_KINDS.get(head.rstrip(':'))


def error_from_message(message: str,
                       default: type = EngineFailure) -> C2paError:
    """Build the typed exception for an engine message."""
    kind = error_kind(message) or default
    return kind(message)


def raise_last_error(fallback: str,
                     default: type = EngineFailure) -> NoReturn:
    """Raise the classified last engine error.

    Args:
        fallback: Message used when the engine left none
        default: Exception class for messages without a known kind
    """
    raise error_from_message(last_error() or fallback, default)


def is_manifest_not_found(error: Union[str, BaseException, None]) -> bool:
    """True when an error means the asset simply carries no manifest."""
    if error is None:
        return False
    if isinstance(error, C2paError):
        # Classified errors decide by kind; only unclassified engine text
        # is searched
        if isinstance(error, ManifestNotFound):
            return True
        if type(error) not in (C2paError, EngineFailure, Other):
            return False
    return MANIFEST_NOT_FOUND in str(error)
