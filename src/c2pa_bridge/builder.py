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
import io
import logging
from contextlib import ExitStack
from pathlib import Path
from typing import Any, Optional, Union

from . import _ffi, engine
from ._handle import NativeHandle
from .engine import encode_json
from .errors import C2paError, raise_last_error
from .signer import Signer
from .stream import Stream, format_from_path, is_path, open_file

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())


def _encode(value: str, what: str) -> bytes:
    try:
        return value.encode('utf-8')
    except UnicodeError as e:
        raise C2paError.Encoding(
            f"Invalid UTF-8 characters in {what}: {e}") from e


def format_embeddable(format: str, manifest_bytes: bytes) -> bytes:
    """Convert a raw manifest store into the embeddable form of a format.

    The output depends only on its inputs: the same format and bytes
    always give the same result.

    Args:
        format: The MIME type or extension of the target format
        manifest_bytes: The raw manifest bytes

    Returns:
        The embeddable manifest bytes

    Raises:
        C2paError.NotSupported: If the format is not supported
        C2paError: If there was an error converting the manifest
    """
    format_bytes = _encode(format, "format")
    data = _ffi.to_ubyte_array(bytes(manifest_bytes))
    result_ptr = _ffi.new_bytes_out()

    library = _ffi.lib()
    result = library.c2pa_format_embeddable(
        format_bytes, data, len(data), ctypes.pointer(result_ptr))
    if result < 0 or not result_ptr:
        raise_last_error("Failed to format embeddable manifest")
    return _ffi.take_bytes(result_ptr, result,
                           library.c2pa_manifest_bytes_free)


class Builder(NativeHandle):
    """A manifest under construction, and the operations that sign it.

    Example:
        ```
        with Builder(manifest_json) as builder, \\
                open("in.jpg", "rb") as src, open("out.jpg", "w+b") as dst:
            builder.sign(signer, "image/jpeg", src, dst)
        ```
    """

    _kind = "Builder"
    _release_function = "c2pa_builder_free"

    _ERROR_MESSAGES = {
        'builder_error': "Failed to create builder",
        'archive_read_error': "Failed to create builder from archive",
        'url_error': "Error setting remote URL",
        'resource_error': "Error adding resource {}",
        'ingredient_error': "Error adding ingredient",
        'archive_error': "Error writing archive",
        'sign_error': "Error during signing",
        'placeholder_error': "Error creating data hashed placeholder",
        'embeddable_error': "Error signing data hashed embeddable manifest",
        'signer_error': "Invalid or closed signer",
    }

    format_embeddable = staticmethod(format_embeddable)

    @classmethod
    def get_supported_mime_types(cls) -> list[str]:
        """Get the list of MIME types and extensions the Builder can sign.

        Raises:
            C2paError: If there was an error retrieving the MIME types
        """
        return engine.supported_mime_types(
            'c2pa_builder_supported_mime_types')

    @classmethod
    def from_json(cls, manifest_json: Any) -> 'Builder':
        """Create a new Builder from a JSON manifest (string or dict)."""
        return cls(manifest_json)

    @classmethod
    def from_archive(cls, source: Union[str, Path, Any]) -> 'Builder':
        """Restore a Builder written by to_archive().

        Args:
            source: A readable stream or the path of the archive

        Raises:
            C2paError.FileNotFound: If the archive path does not exist
            C2paError: If the archive cannot be read
        """
        builder = cls.__new__(cls)
        NativeHandle.__init__(builder)
        with ExitStack() as stack:
            if is_path(source):
                source = stack.enter_context(open_file(source, 'rb'))
            stream = stack.enter_context(Stream.for_reading(source))
            with builder._lock:
                ptr = _ffi.lib().c2pa_builder_from_archive(stream._stream)
                if not ptr:
                    raise_last_error(
                        cls._ERROR_MESSAGES['archive_read_error'])
                builder._adopt(ptr)
        return builder

    def __init__(self, manifest_json: Any):
        """Initialize a new Builder instance.

        Args:
            manifest_json: The manifest JSON definition (string or dict)

        Raises:
            C2paError.Json: If the manifest JSON cannot be serialized or
              the engine rejects it
            C2paError.Encoding: If it contains invalid UTF-8 characters
        """
        super().__init__()
        json_bytes = encode_json(manifest_json, "manifest")
        with self._lock:
            ptr = _ffi.lib().c2pa_builder_from_json(json_bytes)
            if not ptr:
                raise_last_error(self._ERROR_MESSAGES['builder_error'])
            self._adopt(ptr)

    def set_no_embed(self) -> None:
        """Do not embed the manifest store into the asset when signing.

        Used for cloud or sidecar manifests; sign() still returns the
        manifest bytes.
        """
        with self._lock:
            self._ensure_valid_state()
            self._lib.c2pa_builder_set_no_embed(self._handle)

    def set_remote_url(self, remote_url: str) -> None:
        """Embed a reference to a remotely hosted manifest when signing.

        Raises:
            C2paError: If there was an error setting the remote URL
        """
        url_bytes = _encode(remote_url, "remote URL")
        with self._lock:
            self._ensure_valid_state()
            result = self._lib.c2pa_builder_set_remote_url(
                self._handle, url_bytes)
            if result < 0:
                raise_last_error(self._ERROR_MESSAGES['url_error'])

    def add_resource(self, uri: str, source: Union[str, Path, Any]) -> None:
        """Add a binary resource referenced by the manifest.

        Args:
            uri: The identifier the manifest JSON uses for the resource
            source: A readable stream or the path of the resource data

        Raises:
            C2paError: If there was an error adding the resource
        """
        uri_bytes = _encode(uri, "resource URI")
        with self._lock, ExitStack() as stack:
            self._ensure_valid_state()
            if is_path(source):
                source = stack.enter_context(open_file(source, 'rb'))
            stream = stack.enter_context(Stream.for_reading(source))
            result = self._lib.c2pa_builder_add_resource(
                self._handle, uri_bytes, stream._stream)
            if result < 0:
                raise_last_error(
                    self._ERROR_MESSAGES['resource_error'].format(uri))

    def add_ingredient(self, ingredient_json: Any, format: Optional[str],
                       source: Union[str, Path, Any]) -> None:
        """Add an ingredient to the builder.

        Args:
            ingredient_json: The JSON ingredient definition (string or dict)
            format: The MIME type or extension of the ingredient. May be
              None when `source` is a path; its extension is used.
            source: A readable stream or the path of the ingredient

        Raises:
            C2paError: If there was an error adding the ingredient
            C2paError.Encoding: If the ingredient JSON or format
              contains invalid UTF-8 characters

        Example:
            ```
            with open(ingredient_file_path, 'rb') as a_file:
                builder.add_ingredient(ingredient_json, "image/jpeg", a_file)
            ```
        """
        if is_path(source):
            if format is None:
                format = format_from_path(source)
            with open_file(source, 'rb') as f:
                self.add_ingredient_from_stream(ingredient_json, format, f)
        else:
            if format is None:
                raise C2paError("A format is required for stream ingredients")
            self.add_ingredient_from_stream(ingredient_json, format, source)

    def add_ingredient_from_stream(self, ingredient_json: Any, format: str,
                                   source: Any) -> None:
        """Add an ingredient read from a stream.

        Raises:
            C2paError: If there was an error adding the ingredient
        """
        ingredient_bytes = encode_json(ingredient_json, "ingredient")
        format_bytes = _encode(format, "format")
        with self._lock:
            self._ensure_valid_state()
            with Stream.for_reading(source) as stream:
                result = self._lib.c2pa_builder_add_ingredient_from_stream(
                    self._handle, ingredient_bytes, format_bytes,
                    stream._stream)
                if result < 0:
                    raise_last_error(self._ERROR_MESSAGES['ingredient_error'])

    def to_archive(self, dest: Union[str, Path, Any]) -> None:
        """Write the builder state (manifest, resources, ingredients).

        Args:
            dest: A writable stream or a path

        Raises:
            C2paError: If there was an error writing the archive
        """
        with self._lock, ExitStack() as stack:
            self._ensure_valid_state()
            if is_path(dest):
                dest = stack.enter_context(open_file(dest, 'w+b'))
            stream = stack.enter_context(Stream.for_writing(dest))
            result = self._lib.c2pa_builder_to_archive(
                self._handle, stream._stream)
            if result < 0:
                raise_last_error(self._ERROR_MESSAGES['archive_error'])

    def _check_signer(self, signer: Signer) -> None:
        if not isinstance(signer, Signer):
            raise C2paError(self._ERROR_MESSAGES['signer_error'])

    def _borrow_signer(self, signer: Signer) -> None:
        try:
            signer._ensure_valid_state()
        except C2paError as e:
            raise C2paError(self._ERROR_MESSAGES['signer_error']) from e

    def _take_manifest_bytes(self, result: int, result_ptr,
                             fallback: str) -> bytes:
        if result < 0 or not result_ptr:
            raise_last_error(fallback)
        return _ffi.take_bytes(result_ptr, result,
                               self._lib.c2pa_manifest_bytes_free)

    def sign(self, signer: Signer, format: str, source: Any,
             dest: Any = None) -> bytes:
        """Sign the builder's manifest into an asset.

        Args:
            signer: The signer to use; it stays owned by the caller
            format: The MIME type or extension of the content
            source: The source stream, only ever read
            dest: The destination stream, ideally opened in w+b mode.
              When omitted the signed asset is produced in memory and
              dropped.

        Returns:
            Manifest bytes

        Raises:
            C2paError.NotSupported: If the format is not supported
            C2paError: If there was an error during signing
        """
        format_bytes = _encode(format, "format")
        if dest is None:
            # Signed asset goes to memory
            dest = io.BytesIO()
        self._check_signer(signer)

        with self._lock, signer._lock, ExitStack() as stack:
            self._ensure_valid_state()
            self._borrow_signer(signer)
            source_stream = stack.enter_context(Stream.for_reading(source))
            dest_stream = stack.enter_context(Stream(dest))

            result_ptr = _ffi.new_bytes_out()
            result = self._lib.c2pa_builder_sign(
                self._handle,
                format_bytes,
                source_stream._stream,
                dest_stream._stream,
                signer._handle,
                ctypes.pointer(result_ptr)
            )
            manifest_bytes = self._take_manifest_bytes(
                result, result_ptr, self._ERROR_MESSAGES['sign_error'])

        logger.debug("Signed %s asset, manifest is %d bytes",
                     format, len(manifest_bytes))
        return manifest_bytes

    def sign_file(self, source_path: Union[str, Path],
                  dest_path: Union[str, Path], signer: Signer) -> bytes:
        """Sign a file and write the signed asset to another file.

        The format is taken from the source file extension. Missing
        parent directories of `dest_path` are created. A partially
        written destination is left in place on failure.

        Returns:
            Manifest bytes

        Raises:
            C2paError.FileNotFound: If the source file does not exist
            C2paError.Io: If the destination cannot be created
            C2paError: If there was an error during signing
        """
        format = format_from_path(source_path)
        with open_file(source_path, 'rb') as source_file:
            dest_dir = Path(dest_path).parent
            try:
                dest_dir.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise C2paError.Io(
                    f"Could not create directory {dest_dir}: {e}") from e
            with open_file(dest_path, 'w+b') as dest_file:
                return self.sign(signer, format, source_file, dest_file)

    def data_hashed_placeholder(self, reserved_size: int,
                                format: str) -> bytes:
        """Placeholder manifest for data-hashed signing workflows.

        The placeholder gets embedded in the asset first, the asset is
        hashed with it excluded, then sign_data_hashed_embeddable()
        produces the final manifest of the same size.

        Args:
            reserved_size: Bytes to reserve for the signature; use at
              least signer.reserve_size()
            format: The MIME type or extension of the asset

        Raises:
            ValueError: If reserved_size is not a non-negative int
            C2paError: If there was an error creating the placeholder
        """
        if (isinstance(reserved_size, bool)
                or not isinstance(reserved_size, int)
                or reserved_size < 0):
            raise ValueError(
                f"reserved_size must be a non-negative int, "
                f"got {reserved_size!r}")
        format_bytes = _encode(format, "format")

        with self._lock:
            self._ensure_valid_state()
            result_ptr = _ffi.new_bytes_out()
            result = self._lib.c2pa_builder_data_hashed_placeholder(
                self._handle, reserved_size, format_bytes,
                ctypes.pointer(result_ptr))
            return self._take_manifest_bytes(
                result, result_ptr, self._ERROR_MESSAGES['placeholder_error'])

    def sign_data_hashed_embeddable(
            self,
            signer: Signer,
            data_hash: Any,
            format: str,
            asset: Union[str, Path, Any, None] = None) -> bytes:
        """Sign a manifest for an asset hashed outside the engine.

        Args:
            signer: The signer to use; it stays owned by the caller
            data_hash: DataHash JSON (string or dict) with the exclusions
              and the hash of the asset
            format: The MIME type or extension of the asset, or "c2pa"
              for the unformatted manifest store
            asset: Optional stream or path of the asset; when given the
              engine recomputes the hash from it

        Returns:
            The embeddable manifest bytes

        Raises:
            C2paError: If there was an error during signing
        """
        data_hash_bytes = encode_json(data_hash, "data hash")
        self._check_signer(signer)
        format_bytes = _encode(format, "format")

        with self._lock, signer._lock, ExitStack() as stack:
            self._ensure_valid_state()
            self._borrow_signer(signer)
            asset_stream = None
            if asset is not None:
                if is_path(asset):
                    asset = stack.enter_context(open_file(asset, 'rb'))
                asset_stream = stack.enter_context(
                    Stream.for_reading(asset))._stream

            result_ptr = _ffi.new_bytes_out()
            result = self._lib.c2pa_builder_sign_data_hashed_embeddable(
                self._handle,
                signer._handle,
                data_hash_bytes,
                format_bytes,
                asset_stream,
                ctypes.pointer(result_ptr)
            )
            return self._take_manifest_bytes(
                result, result_ptr, self._ERROR_MESSAGES['embeddable_error'])
