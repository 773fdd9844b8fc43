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
ctypes view of the engine's C ABI.

Holds the opaque structure types, the callback signatures and the
function prototypes. The library itself is loaded lazily on first use
so that importing the package never requires the native engine.
"""

import ctypes
import enum
import logging
import threading
from typing import Any, Callable, Optional

from .lib import dynamically_load_library

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())

REQUIRED_FUNCTIONS = [
    'c2pa_version',
    'c2pa_error',
    'c2pa_string_free',
    'c2pa_load_settings',
    'c2pa_create_stream',
    'c2pa_release_stream',
    'c2pa_reader_from_stream',
    'c2pa_reader_from_manifest_data_and_stream',
    'c2pa_reader_free',
    'c2pa_reader_json',
    'c2pa_reader_resource_to_stream',
    'c2pa_reader_supported_mime_types',
    'c2pa_builder_from_json',
    'c2pa_builder_from_archive',
    'c2pa_builder_free',
    'c2pa_builder_set_no_embed',
    'c2pa_builder_set_remote_url',
    'c2pa_builder_add_resource',
    'c2pa_builder_add_ingredient_from_stream',
    'c2pa_builder_to_archive',
    'c2pa_builder_sign',
    'c2pa_builder_data_hashed_placeholder',
    'c2pa_builder_sign_data_hashed_embeddable',
    'c2pa_builder_supported_mime_types',
    'c2pa_format_embeddable',
    'c2pa_manifest_bytes_free',
    'c2pa_signer_create',
    'c2pa_signer_from_info',
    'c2pa_signer_reserve_size',
    'c2pa_signer_free',
    'c2pa_ed25519_sign',
    'c2pa_signature_free',
    'c2pa_free_string_array',
]


class C2paSeekMode(enum.IntEnum):
    """Seek origin passed to the seek callback."""
    START = 0
    CURRENT = 1
    END = 2


ReadCallback = ctypes.CFUNCTYPE(
    ctypes.c_ssize_t,
    ctypes.c_void_p,
    ctypes.POINTER(ctypes.c_uint8),
    ctypes.c_ssize_t)
SeekCallback = ctypes.CFUNCTYPE(
    ctypes.c_ssize_t,
    ctypes.c_void_p,
    ctypes.c_ssize_t,
    ctypes.c_int)
WriteCallback = ctypes.CFUNCTYPE(
    ctypes.c_ssize_t,
    ctypes.c_void_p,
    ctypes.POINTER(ctypes.c_uint8),
    ctypes.c_ssize_t)
FlushCallback = ctypes.CFUNCTYPE(ctypes.c_ssize_t, ctypes.c_void_p)
# context, data, data_len, signature_out, signature_max_len
SignerCallback = ctypes.CFUNCTYPE(
    ctypes.c_ssize_t,
    ctypes.c_void_p,
    ctypes.POINTER(ctypes.c_ubyte),
    ctypes.c_size_t,
    ctypes.POINTER(ctypes.c_ubyte),
    ctypes.c_size_t)


class StreamContext(ctypes.Structure):
    """Opaque stream context."""
    _fields_ = []


class C2paStream(ctypes.Structure):
    """The engine's stream: a context pointer plus four callbacks.

    The engine drives all asset I/O through this table, so assets are
    never loaded into memory in one piece on the Python side.
    """
    _fields_ = [
        ("context", ctypes.POINTER(StreamContext)),
        ("reader", ReadCallback),
        ("seeker", SeekCallback),
        ("writer", WriteCallback),
        ("flusher", FlushCallback),
    ]


class C2paSigner(ctypes.Structure):
    """Opaque signer handle."""
    _fields_ = []


class C2paReader(ctypes.Structure):
    """Opaque reader handle."""
    _fields_ = []


class C2paBuilder(ctypes.Structure):
    """Opaque builder handle."""
    _fields_ = []


class C2paSignerInfoStruct(ctypes.Structure):
    """Key material for engine-native signers."""
    _fields_ = [
        ("alg", ctypes.c_char_p),
        ("sign_cert", ctypes.c_char_p),
        ("private_key", ctypes.c_char_p),
        ("ta_url", ctypes.c_char_p),
    ]


_P = ctypes.POINTER
_BYTES = _P(ctypes.c_ubyte)
_BYTES_OUT = _P(_P(ctypes.c_ubyte))

# name -> (argtypes, restype)
_PROTOTYPES = {
    'c2pa_create_stream': (
        [_P(StreamContext), ReadCallback, SeekCallback, WriteCallback,
         FlushCallback], _P(C2paStream)),
    'c2pa_release_stream': ([_P(C2paStream)], None),

    'c2pa_version': ([], ctypes.c_void_p),
    'c2pa_error': ([], ctypes.c_void_p),
    'c2pa_string_free': ([ctypes.c_void_p], None),
    'c2pa_load_settings': ([ctypes.c_char_p, ctypes.c_char_p], ctypes.c_int),
    'c2pa_free_string_array': (
        [_P(ctypes.c_char_p), ctypes.c_size_t], None),

    'c2pa_reader_from_stream': (
        [ctypes.c_char_p, _P(C2paStream)], _P(C2paReader)),
    'c2pa_reader_from_manifest_data_and_stream': (
        [ctypes.c_char_p, _P(C2paStream), _BYTES, ctypes.c_size_t],
        _P(C2paReader)),
    'c2pa_reader_free': ([_P(C2paReader)], None),
    'c2pa_reader_json': ([_P(C2paReader)], ctypes.c_void_p),
    'c2pa_reader_resource_to_stream': (
        [_P(C2paReader), ctypes.c_char_p, _P(C2paStream)], ctypes.c_int64),
    'c2pa_reader_supported_mime_types': (
        [_P(ctypes.c_size_t)], _P(ctypes.c_char_p)),

    'c2pa_builder_from_json': ([ctypes.c_char_p], _P(C2paBuilder)),
    'c2pa_builder_from_archive': ([_P(C2paStream)], _P(C2paBuilder)),
    'c2pa_builder_free': ([_P(C2paBuilder)], None),
    'c2pa_builder_set_no_embed': ([_P(C2paBuilder)], None),
    'c2pa_builder_set_remote_url': (
        [_P(C2paBuilder), ctypes.c_char_p], ctypes.c_int),
    'c2pa_builder_add_resource': (
        [_P(C2paBuilder), ctypes.c_char_p, _P(C2paStream)], ctypes.c_int),
    'c2pa_builder_add_ingredient_from_stream': (
        [_P(C2paBuilder), ctypes.c_char_p, ctypes.c_char_p, _P(C2paStream)],
        ctypes.c_int),
    'c2pa_builder_to_archive': (
        [_P(C2paBuilder), _P(C2paStream)], ctypes.c_int),
    'c2pa_builder_sign': (
        [_P(C2paBuilder), ctypes.c_char_p, _P(C2paStream), _P(C2paStream),
         _P(C2paSigner), _BYTES_OUT], ctypes.c_int64),
    'c2pa_builder_data_hashed_placeholder': (
        [_P(C2paBuilder), ctypes.c_size_t, ctypes.c_char_p, _BYTES_OUT],
        ctypes.c_int64),
    'c2pa_builder_sign_data_hashed_embeddable': (
        [_P(C2paBuilder), _P(C2paSigner), ctypes.c_char_p, ctypes.c_char_p,
         _P(C2paStream), _BYTES_OUT], ctypes.c_int64),
    'c2pa_builder_supported_mime_types': (
        [_P(ctypes.c_size_t)], _P(ctypes.c_char_p)),
    'c2pa_format_embeddable': (
        [ctypes.c_char_p, _BYTES, ctypes.c_size_t, _BYTES_OUT],
        ctypes.c_int64),
    'c2pa_manifest_bytes_free': ([_BYTES], None),

    'c2pa_signer_create': (
        [ctypes.c_void_p, SignerCallback, ctypes.c_int, ctypes.c_char_p,
         ctypes.c_char_p], _P(C2paSigner)),
    'c2pa_signer_from_info': (
        [_P(C2paSignerInfoStruct)], _P(C2paSigner)),
    'c2pa_signer_reserve_size': ([_P(C2paSigner)], ctypes.c_int64),
    'c2pa_signer_free': ([_P(C2paSigner)], None),
    'c2pa_ed25519_sign': (
        [_BYTES, ctypes.c_size_t, ctypes.c_char_p], _BYTES),
    'c2pa_signature_free': ([_BYTES], None),
}

_lib = None
_lib_lock = threading.Lock()
# Engine answers that never change for a given library (mime types...)
_cache: dict[str, Any] = {}


def _validate_library_exports(library) -> None:
    """Fail fast when the library lacks any function this package calls.

    Catches incomplete builds and version mismatches before the first
    engine call instead of with an AttributeError halfway through one.

    Raises:
        ImportError: listing the missing symbols
    """
    missing = [name for name in REQUIRED_FUNCTIONS
               if not hasattr(library, name)]
    if missing:
        raise ImportError(
            "Library is missing required function symbols: "
            f"{', '.join(missing)}\n"
            "This could indicate an incomplete or corrupted library "
            "installation or a version mismatch between the library "
            "and this Python wrapper.")


def _apply_prototypes(library: ctypes.CDLL) -> None:
    for name, (argtypes, restype) in _PROTOTYPES.items():
        func = getattr(library, name)
        func.argtypes = argtypes
        func.restype = restype


def use_library(library) -> Optional[Any]:
    """Install the engine library used by every wrapper.

    Accepts a ctypes.CDLL (prototypes get applied) or any object exposing
    the same functions, e.g. an in-process stand-in for tests.
    None forgets the current library; the next engine call loads the
    native one again. Cached engine data is dropped. Returns the
    previously installed library.
    """
    global _lib
    if library is not None:
        _validate_library_exports(library)
    if isinstance(library, ctypes.CDLL):
        _apply_prototypes(library)
    with _lib_lock:
        previous, _lib = _lib, library
        _cache.clear()
    return previous


def lib():
    """The engine library, loaded on first use."""
    global _lib
    if _lib is None:
        with _lib_lock:
            if _lib is None:
                loaded = dynamically_load_library()
                _validate_library_exports(loaded)
                _apply_prototypes(loaded)
                _lib = loaded
    return _lib


def cached(key: str, compute: Callable[[], Any]) -> Any:
    """Memoize an engine answer until the library changes."""
    if key not in _cache:
        value = compute()
        if value:
            _cache[key] = value
        return value
    return _cache[key]


def take_bytes(ptr, size: int, release: Callable) -> bytes:
    """Copy an engine-allocated buffer and release it with `release`."""
    if not ptr:
        return b""
    try:
        return ctypes.string_at(ptr, size) if size > 0 else b""
    finally:
        try:
            release(ptr)
        except Exception:
            logger.error("Failed to release native buffer memory")


def new_bytes_out():
    """An out-parameter slot the engine fills with a buffer pointer."""
    return ctypes.POINTER(ctypes.c_ubyte)()


def to_ubyte_array(data: bytes):
    return (ctypes.c_ubyte * len(data)).from_buffer_copy(data)
