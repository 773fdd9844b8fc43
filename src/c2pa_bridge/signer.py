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

import ctypes
import enum
import logging
from typing import Callable, Optional, Union

from . import _ffi
from ._handle import NativeHandle
from .errors import (
    C2paError,
    ConstructionFailure,
    raise_last_error,
)

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())


class C2paSigningAlg(enum.IntEnum):
    """Supported signing algorithms (engine enum values)."""
    ES256 = 0
    ES384 = 1
    ES512 = 2
    PS256 = 3
    PS384 = 4
    PS512 = 5
    ED25519 = 6


_ALG_TO_STRING_BYTES_MAPPING = {
    alg: alg.name.lower().encode('utf-8') for alg in C2paSigningAlg
}

AlgLike = Union[C2paSigningAlg, int, str, bytes]


def resolve_alg(alg: AlgLike) -> C2paSigningAlg:
    """Accept an enum member, its value, or a name such as "Es256".

    Raises:
        ConstructionFailure: For unknown algorithms
    """
    try:
        if isinstance(alg, C2paSigningAlg):
            return alg
        if isinstance(alg, bytes):
            alg = alg.decode('utf-8')
        if isinstance(alg, str):
            return C2paSigningAlg[alg.strip().upper()]
        if isinstance(alg, int):
            return C2paSigningAlg(alg)
    except (KeyError, ValueError, UnicodeError):
        pass
    raise ConstructionFailure(f"Unsupported signing algorithm: {alg!r}")


def _to_bytes(value: Union[str, bytes, None], field: str) -> Optional[bytes]:
    if value is None or isinstance(value, bytes):
        return value
    if isinstance(value, str):
        try:
            return value.encode('utf-8')
        except UnicodeError as e:
            raise C2paError.Encoding(
                f"Invalid UTF-8 characters in {field}: {e}") from e
    raise TypeError(f"{field} must be string or bytes, got {type(value)}")


class C2paSignerInfo(_ffi.C2paSignerInfoStruct):
    """Key material for an engine-native signer."""

    def __init__(self, alg: AlgLike, sign_cert, private_key, ta_url=None):
        """
        Args:
            alg: Signing algorithm, as enum, name or bytes
            sign_cert: PEM certificate chain (str or bytes)
            private_key: PEM private key (str or bytes)
            ta_url: Optional RFC 3161 timestamp authority URL

        Raises:
            ValueError: If the certificate or key is missing
        """
        if sign_cert is None:
            raise ValueError("sign_cert must be set")
        if private_key is None:
            raise ValueError("private_key must be set")

        super().__init__(
            _ALG_TO_STRING_BYTES_MAPPING[resolve_alg(alg)],
            _to_bytes(sign_cert, "sign_cert"),
            _to_bytes(private_key, "private_key"),
            _to_bytes(ta_url, "ta_url"),
        )


class Signer(NativeHandle):
    """Engine-side signer: algorithm, certificates, TSA and a way to sign.

    Build one with from_callback() (Python does the cryptography) or
    from_info() (the engine signs with the given key). A Signer is only
    borrowed by Builder operations; the caller keeps it and closes it.
    """

    _kind = "Signer"
    _release_function = "c2pa_signer_free"

    _ERROR_MESSAGES = {
        'callback_error': "Error in signer callback: {}",
        'info_error': "Failed to create signer from configured signer_info",
        'create_error': "Failed to create signer",
        'invalid_certs': "Invalid certificate data: {}",
        'invalid_tsa': "Invalid TSA URL: {}",
        'reserve_error': "Failed to get reserve size",
    }

    @staticmethod
    def _raise_construction_error(fallback: str) -> None:
        try:
            raise_last_error(fallback, ConstructionFailure)
        except ConstructionFailure:
            raise
        except C2paError as e:
            raise ConstructionFailure(e.message) from e

    @classmethod
    def from_info(cls, signer_info: C2paSignerInfo) -> 'Signer':
        """Create a signer from key material the engine signs with.

        Raises:
            ConstructionFailure: If the engine rejects the material
        """
        signer = cls()
        with signer._lock:
            ptr = _ffi.lib().c2pa_signer_from_info(ctypes.pointer(signer_info))
            if not ptr:
                cls._raise_construction_error(
                    cls._ERROR_MESSAGES['info_error'])
            signer._adopt(ptr)
        signer._alg = resolve_alg(signer_info.alg)
        return signer

    @classmethod
    def from_callback(
        cls,
        callback: Callable[[bytes], bytes],
        alg: AlgLike,
        certs: Union[str, bytes],
        tsa_url: Optional[str] = None
    ) -> 'Signer':
        """Create a signer that calls back into Python to sign.

        The engine calls `callback(data)` synchronously from inside sign
        operations, possibly more than once. It must return the raw
        signature for `alg`. Exceptions raised by the callback are logged
        and reported to the engine as a failed signature, which then
        fails the sign operation.

        Args:
            callback: Function that signs data and returns the signature
            alg: The signing algorithm to use
            certs: Certificate chain in PEM format
            tsa_url: Optional RFC 3161 timestamp authority URL

        Raises:
            ConstructionFailure: Missing certificates, malformed TSA URL,
              or the engine rejected the certificate/algorithm pairing
        """
        if not certs:
            raise ConstructionFailure(
                cls._ERROR_MESSAGES['invalid_certs'].format(
                    "Missing certificate data"))
        if tsa_url and not tsa_url.startswith(("http://", "https://")):
            raise ConstructionFailure(
                cls._ERROR_MESSAGES['invalid_tsa'].format(
                    "Invalid TSA URL format"))

        algorithm = resolve_alg(alg)
        certs_bytes = _to_bytes(certs, "certs")
        tsa_url_bytes = _to_bytes(tsa_url, "tsa_url") if tsa_url else None

        callback_cb = _ffi.SignerCallback(cls._wrap_callback(callback))

        signer = cls()
        with signer._lock:
            ptr = _ffi.lib().c2pa_signer_create(
                None,
                callback_cb,
                int(algorithm),
                certs_bytes,
                tsa_url_bytes
            )
            if not ptr:
                cls._raise_construction_error(
                    cls._ERROR_MESSAGES['create_error'])
            signer._adopt(ptr)
        # One thunk per signer, alive as long as the signer
        signer._callback_cb = callback_cb
        signer._alg = algorithm
        return signer

    @classmethod
    def _wrap_callback(cls, callback: Callable[[bytes], bytes]):
        """Boundary shim between the engine and a Python signing function.

        Copies the data out, calls back, copies the signature into the
        engine's buffer and returns its length. Every failure, including
        exceptions and oversized signatures, becomes -1.
        """
        def wrapped_callback(context, data_ptr, data_len,
                             signed_bytes_ptr, signed_len):
            try:
                if (not data_ptr or data_len <= 0
                        or not signed_bytes_ptr or signed_len <= 0):
                    return -1
                data = ctypes.string_at(data_ptr, data_len)
                signature = callback(data)
                if not signature:
                    return -1
                if len(signature) > signed_len:
                    logger.error(
                        cls._ERROR_MESSAGES['callback_error'].format(
                            f"signature of {len(signature)} bytes exceeds "
                            f"the {signed_len} bytes reserved"))
                    return -1
                ctypes.memmove(signed_bytes_ptr, bytes(signature),
                               len(signature))
                return len(signature)
            except Exception as e:
                logger.error(
                    cls._ERROR_MESSAGES['callback_error'].format(str(e)))
                return -1

        return wrapped_callback

    def __init__(self):
        """Not meant to be called directly, use from_info() or
        from_callback()."""
        super().__init__()
        self._callback_cb = None
        self._alg = None

    def _release_owned(self) -> None:
        self._callback_cb = None

    @property
    def alg(self) -> Optional[C2paSigningAlg]:
        """Algorithm this signer was created for."""
        return self._alg

    def reserve_size(self) -> int:
        """Bytes to reserve for signatures from this signer.

        Placeholders and embeddable signatures must leave at least this
        much room.

        Raises:
            C2paError: If the signer is closed or the engine fails
        """
        with self._lock:
            self._ensure_valid_state()
            result = _ffi.lib().c2pa_signer_reserve_size(self._handle)
            if result < 0:
                raise_last_error(self._ERROR_MESSAGES['reserve_error'])
            return result


def ed25519_sign(data: bytes, private_key: Union[str, bytes]) -> bytes:
    """Sign data with Ed25519 using the engine's implementation.

    Handy inside a callback signer created for C2paSigningAlg.ED25519.

    Args:
        data: The data to sign
        private_key: The private key in PEM format

    Returns:
        The 64-byte signature

    Raises:
        C2paError: If the key is unusable or signing fails
    """
    if not data:
        raise C2paError("Data to sign cannot be empty")
    if not private_key:
        raise C2paError("Private key must be a non-empty string")

    key_bytes = _to_bytes(private_key, "private_key")
    data_array = _ffi.to_ubyte_array(bytes(data))
    library = _ffi.lib()

    signature_ptr = library.c2pa_ed25519_sign(
        data_array, len(data), key_bytes)
    if not signature_ptr:
        raise_last_error("Failed to sign data with Ed25519")

    # Ed25519 signatures are always 64 bytes
    return _ffi.take_bytes(signature_ptr, 64, library.c2pa_signature_free)
