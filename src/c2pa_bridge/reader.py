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

import json
import logging
from pathlib import Path
from typing import Any, Optional, Union

from . import _ffi, engine
from ._handle import NativeHandle
from .errors import (
    C2paError,
    is_manifest_not_found,
    raise_last_error,
    take_string,
)
from .stream import Stream, format_from_path, is_path, open_file

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())


class Reader(NativeHandle):
    """Read-only view of the manifest store of an asset.

    The Reader owns its engine handle and the stream bridge it was built
    on, plus the file when it opened one itself. All of them are released
    together by close() or at the end of a `with` block.

    Example:
        ```
        with Reader("image/jpeg", output) as reader:
            manifest_json = reader.json()
        ```
        Where `output` is either an in-memory stream or an opened file.
    """

    _kind = "Reader"
    _release_function = "c2pa_reader_free"

    _ERROR_MESSAGES = {
        'reader_error': "Failed to create reader",
        'manifest_error': "Invalid manifest data: must be bytes",
        'json_error': "Error during manifest parsing in Reader",
        'resource_error': "Error during resource {} to stream conversion",
        'encoding_error': "Invalid UTF-8 characters in input: {}",
    }

    @classmethod
    def get_supported_mime_types(cls) -> list[str]:
        """Get the list of MIME types and extensions the Reader accepts.

        Raises:
            C2paError: If there was an error retrieving the MIME types
        """
        return engine.supported_mime_types('c2pa_reader_supported_mime_types')

    @classmethod
    def try_create(cls,
                   format_or_path: Union[str, Path],
                   stream: Optional[Any] = None,
                   manifest_data: Optional[bytes] = None
                   ) -> Optional['Reader']:
        """Like the constructor, but None when the asset has no manifest.

        Every other failure still raises.
        """
        try:
            return cls(format_or_path, stream, manifest_data)
        except C2paError as e:
            if is_manifest_not_found(e):
                logger.debug("No manifest found in %s", format_or_path)
                return None
            raise

    def __init__(self,
                 format_or_path: Union[str, Path],
                 stream: Optional[Any] = None,
                 manifest_data: Optional[bytes] = None):
        """Create a new Reader.

        Args:
            format_or_path: The format (MIME type or extension) of
              `stream`, or the path of the asset to read when `stream`
              is omitted
            stream: Optional file-like object, or a path opened with the
              explicit format
            manifest_data: Optional detached manifest store to validate
              against the asset

        Raises:
            C2paError.FileNotFound: If the asset path does not exist
            C2paError.ManifestNotFound: If the asset has no manifest
            C2paError.NotSupported: If the format is not supported
            C2paError.Encoding: If the format contains invalid UTF-8
            C2paError: For any other failure creating the reader
        """
        super().__init__()
        self._own_stream = None
        self._backing_file = None

        if manifest_data is not None and not isinstance(
                manifest_data, (bytes, bytearray, memoryview)):
            raise TypeError(self._ERROR_MESSAGES['manifest_error'])

        if stream is None:
            format = format_from_path(format_or_path)
            source = format_or_path
        else:
            format = str(format_or_path)
            source = stream

        try:
            format_bytes = format.encode('utf-8')
        except UnicodeError as e:
            raise C2paError.Encoding(
                self._ERROR_MESSAGES['encoding_error'].format(str(e))) from e

        try:
            if is_path(source):
                self._backing_file = open_file(source, 'rb')
                source = self._backing_file
            self._own_stream = Stream.for_reading(source)
            self._create(format_bytes, manifest_data)
        except Exception:
            self._release_owned()
            raise

    def _create(self, format_bytes: bytes, manifest_data) -> None:
        library = _ffi.lib()
        with self._lock:
            if manifest_data is None:
                ptr = library.c2pa_reader_from_stream(
                    format_bytes, self._own_stream._stream)
            else:
                data = _ffi.to_ubyte_array(bytes(manifest_data))
                ptr = library.c2pa_reader_from_manifest_data_and_stream(
                    format_bytes, self._own_stream._stream,
                    data, len(data))
            if not ptr:
                raise_last_error(self._ERROR_MESSAGES['reader_error'])
            self._adopt(ptr)

    def _release_owned(self) -> None:
        # The stream goes before the file it reads from
        stream, self._own_stream = self._own_stream, None
        if stream is not None:
            stream.close()
        backing_file, self._backing_file = self._backing_file, None
        if backing_file is not None:
            backing_file.close()

    def json(self) -> str:
        """Get the manifest store as a JSON string.

        Raises:
            C2paError: If the reader is closed or the engine fails
        """
        with self._lock:
            self._ensure_valid_state()
            result = self._lib.c2pa_reader_json(self._handle)
            if not result:
                raise_last_error(self._ERROR_MESSAGES['json_error'])
            return take_string(result)

    def get_active_manifest(self) -> Optional[dict]:
        """The active manifest of the store, parsed, or None."""
        store = json.loads(self.json())
        label = store.get("active_manifest")
        if not label:
            return None
        return store.get("manifests", {}).get(label)

    def get_manifest(self, label: str) -> Optional[dict]:
        """A manifest of the store by label, parsed, or None."""
        store = json.loads(self.json())
        return store.get("manifests", {}).get(label)

    def resource_to_stream(self, uri: str, stream: Any) -> int:
        """Write a resource to a stream.

        Args:
            uri: The identifier of the resource, as found in the manifest
            stream: The writable file-like object to write to

        Returns:
            The number of bytes written

        Raises:
            C2paError.ResourceNotFound: If the store has no such resource
            C2paError: If there was an error writing the resource
        """
        try:
            uri_bytes = uri.encode('utf-8')
        except UnicodeError as e:
            raise C2paError.Encoding(
                self._ERROR_MESSAGES['encoding_error'].format(str(e))) from e

        with self._lock:
            self._ensure_valid_state()
            with Stream.for_writing(stream) as stream_obj:
                result = self._lib.c2pa_reader_resource_to_stream(
                    self._handle, uri_bytes, stream_obj._stream)
                if result < 0:
                    raise_last_error(
                        self._ERROR_MESSAGES['resource_error'].format(uri))
                return result

    def get_resource(self, uri: str,
                     destination: Union[str, Path, Any]) -> int:
        """Write a resource to a path or a writable stream.

        A destination path is created (or truncated) even if the resource
        turns out to be missing.

        Raises:
            C2paError.Io: If the destination path cannot be opened
            C2paError.ResourceNotFound: If the store has no such resource
        """
        if is_path(destination):
            with open_file(destination, 'wb') as f:
                return self.resource_to_stream(uri, f)
        return self.resource_to_stream(uri, destination)


def read_manifest_json(format_or_path: Union[str, Path],
                       stream: Optional[Any] = None) -> Optional[str]:
    """Manifest store JSON of an asset, or None when it carries none.

    Raises:
        C2paError: For every failure other than a missing manifest
    """
    reader = Reader.try_create(format_or_path, stream)
    if reader is None:
        return None
    with reader:
        return reader.json()
