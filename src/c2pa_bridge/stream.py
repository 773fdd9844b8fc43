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
import io
import logging
import os
from itertools import count
from pathlib import Path
from typing import Any, Optional, Union

from . import _ffi
from .errors import C2paError, raise_last_error

logger = logging.getLogger("c2pa_bridge.stream")
logger.addHandler(logging.NullHandler())

# Sentinel returned to the engine by every failing callback
_FAILURE = -1


class StreamMode(enum.IntFlag):
    """Capabilities a Stream exposes to the engine."""
    READ = 1
    WRITE = 2
    SEEK = 4


_REQUIRED_METHODS = {
    StreamMode.READ: ('read',),
    StreamMode.WRITE: ('write',),
    StreamMode.SEEK: ('seek', 'tell'),
}


def _probe(file_like_stream, predicate: str, fallback: str) -> bool:
    check = getattr(file_like_stream, predicate, None)
    if callable(check):
        try:
            return bool(check())
        except (ValueError, OSError):
            # Closed io objects raise on readable()/writable()
            return False
    return callable(getattr(file_like_stream, fallback, None))


def detect_mode(file_like_stream) -> StreamMode:
    """Capabilities of a Python file-like object."""
    mode = StreamMode(0)
    if _probe(file_like_stream, 'readable', 'read'):
        mode |= StreamMode.READ
    if _probe(file_like_stream, 'writable', 'write'):
        mode |= StreamMode.WRITE
    if _probe(file_like_stream, 'seekable', 'seek'):
        mode |= StreamMode.SEEK
    return mode


class Stream:
    """Bridge from a Python file-like object to the engine's stream ABI.

    The engine never sees the Python object. It gets a C2paStream table
    of four callbacks (read, seek, write, flush) which forward to the
    object one call at a time: no buffering, no retries, and no copy of
    the whole asset. Each callback returns -1 on failure and never lets a
    Python exception cross into native code.

    Which callbacks are live depends on the capabilities (StreamMode) of
    the bridge. A callback whose capability is missing fails with -1
    without touching the wrapped object, so a read-only bridge can hand
    the engine a writable object without ever being written to.

    The Stream does not own the wrapped object: close() releases the
    engine-side stream only, the opener still closes the file.

    Example:
        ```
        with open("photo.jpg", "rb") as f, Stream.for_reading(f) as s:
            engine_call(s._stream)
        ```
    """

    # Unique ids for tracing stream usage in debug logs
    _stream_id_counter = count(start=0, step=1)
    _MAX_STREAM_ID = 2**31 - 1

    def __init__(self, file_like_stream: Any,
                 mode: Optional[StreamMode] = None):
        """Bridge a file-like object.

        Args:
            file_like_stream: Object with read/write/seek/tell/flush as
              needed by `mode`
            mode: Capabilities to expose. Detected from the object
              (readable()/writable()/seekable() or method presence)
              when omitted.

        Raises:
            TypeError: The object lacks a method `mode` requires, or has
              no usable capability at all
            C2paError: The engine refused to create the stream
        """
        # Initialized first so __del__ can run on a failed construction
        self._closed = False
        self._initialized = False
        self._stream = None
        self._lib = None

        stream_counter = next(Stream._stream_id_counter)
        if stream_counter >= Stream._MAX_STREAM_ID:  # pragma: no cover
            Stream._stream_id_counter = count(start=0, step=1)
            stream_counter = next(Stream._stream_id_counter)
        self._stream_id = f"{id(self)}-{stream_counter}"

        if mode is None:
            mode = detect_mode(file_like_stream)
        mode = StreamMode(mode)
        if not mode & (StreamMode.READ | StreamMode.WRITE):
            raise TypeError(
                "Object must be a stream-like object that can be read "
                "or written, got {}".format(type(file_like_stream).__name__))

        missing = [name for flag, names in _REQUIRED_METHODS.items()
                   if mode & flag
                   for name in names
                   if not callable(getattr(file_like_stream, name, None))]
        if missing:
            raise TypeError(
                "Object must be a stream-like object with methods: {}. "
                "Missing: {}".format(
                    ", ".join(n for f in _REQUIRED_METHODS if mode & f
                              for n in _REQUIRED_METHODS[f]),
                    ", ".join(missing)))

        self._file_like_stream = file_like_stream
        self._mode = mode

        # Kept as attributes: ctypes thunks must outlive the engine stream
        self._read_cb = _ffi.ReadCallback(self._read)
        self._seek_cb = _ffi.SeekCallback(self._seek)
        self._write_cb = _ffi.WriteCallback(self._write)
        self._flush_cb = _ffi.FlushCallback(self._flush)

        self._lib = _ffi.lib()
        self._stream = self._lib.c2pa_create_stream(
            None,
            self._read_cb,
            self._seek_cb,
            self._write_cb,
            self._flush_cb
        )
        if not self._stream:
            raise_last_error("Failed to create stream", C2paError)

        self._initialized = True
        logger.debug("Created stream %s (%s)", self._stream_id, mode)

    @classmethod
    def for_reading(cls, file_like_stream: Any) -> 'Stream':
        """Read-only bridge: writes from the engine always fail."""
        return cls(file_like_stream, StreamMode.READ | StreamMode.SEEK)

    @classmethod
    def for_writing(cls, file_like_stream: Any) -> 'Stream':
        """Write-only bridge: reads from the engine always fail."""
        return cls(file_like_stream, StreamMode.WRITE | StreamMode.SEEK)

    @classmethod
    def for_read_write(cls, file_like_stream: Any) -> 'Stream':
        return cls(file_like_stream,
                   StreamMode.READ | StreamMode.WRITE | StreamMode.SEEK)

    def _usable(self, capability: StreamMode) -> bool:
        return (self._initialized and not self._closed
                and bool(self._mode & capability))

    def _read(self, ctx, data, length):
        """Fill up to `length` bytes at `data`; 0 at end of stream."""
        if not self._usable(StreamMode.READ):
            return _FAILURE
        try:
            if not data or length < 0:
                return _FAILURE
            if length == 0:
                return 0

            readinto = getattr(self._file_like_stream, 'readinto', None)
            if callable(readinto):
                # Read straight into the engine's buffer
                target = (ctypes.c_ubyte * length).from_address(
                    ctypes.addressof(data.contents))
                n = readinto(memoryview(target).cast('B'))
                return n or 0

            buffer = self._file_like_stream.read(length)
            if not buffer:
                return 0
            actual_length = min(len(buffer), length)
            ctypes.memmove(data, buffer, actual_length)
            return actual_length
        except Exception as e:
            logger.debug("Stream %s read failed: %s", self._stream_id, e)
            return _FAILURE

    def _seek(self, ctx, offset, whence):
        """Reposition and return the new absolute position.

        Python streams keep one cursor for reading and writing, so a
        read/write bridge moves both at once.
        """
        if not self._usable(StreamMode.SEEK):
            return _FAILURE
        try:
            whence = _ffi.C2paSeekMode(whence)
            self._file_like_stream.seek(offset, int(whence))
            return self._file_like_stream.tell()
        except Exception as e:
            logger.debug("Stream %s seek failed: %s", self._stream_id, e)
            return _FAILURE

    def _write(self, ctx, data, length):
        """Write exactly `length` bytes from `data`."""
        if not self._usable(StreamMode.WRITE):
            return _FAILURE
        try:
            if not data or length < 0:
                return _FAILURE
            if length == 0:
                return 0

            chunk = ctypes.string_at(data, length)
            written = 0
            while written < length:
                n = self._file_like_stream.write(
                    chunk[written:] if written else chunk)
                if n is None:
                    # Non-blocking raw streams wrote nothing; other
                    # writers without a return value took it all
                    if isinstance(self._file_like_stream, io.RawIOBase):
                        return _FAILURE
                    break
                if n <= 0:
                    return _FAILURE
                written += n
            return length
        except Exception as e:
            logger.debug("Stream %s write failed: %s", self._stream_id, e)
            return _FAILURE

    def _flush(self, ctx):
        if not self._initialized or self._closed:
            return _FAILURE
        try:
            flush = getattr(self._file_like_stream, 'flush', None)
            if callable(flush):
                flush()
            return 0
        except Exception as e:
            logger.debug("Stream %s flush failed: %s", self._stream_id, e)
            return _FAILURE

    def __enter__(self):
        if not self._initialized:
            raise RuntimeError("Stream was not properly initialized")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        try:
            self.close()
        except Exception:
            # Destructors must not raise
            pass

    def close(self):
        """Release the engine-side stream.

        The wrapped Python object stays open; whoever opened it closes
        it. Multiple calls are handled gracefully.
        """
        if getattr(self, '_closed', True):
            return
        self._closed = True
        self._initialized = False

        stream, self._stream = self._stream, None
        if stream and self._lib is not None:
            try:
                self._lib.c2pa_release_stream(stream)
            except Exception as e:
                logger.error("Error cleaning up stream: %s", e)
        logger.debug("Released stream %s", self._stream_id)

        # Thunks go last, the engine stream referenced them
        self._read_cb = None
        self._seek_cb = None
        self._write_cb = None
        self._flush_cb = None

    @property
    def mode(self) -> StreamMode:
        return self._mode

    @property
    def stream_id(self) -> str:
        return self._stream_id

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def initialized(self) -> bool:
        return self._initialized


def is_path(value: Any) -> bool:
    """True for file system paths (str or os.PathLike), not streams."""
    return isinstance(value, (str, os.PathLike))


def format_from_path(path: Union[str, os.PathLike]) -> str:
    """Format identifier of a path: its extension without the dot.

    No other normalization happens; the engine decides whether it knows
    the format.
    """
    return Path(path).suffix[1:]


def open_file(path: Union[str, os.PathLike], mode: str):
    """open() with failures mapped to C2paError.FileNotFound / Io.

    Only a missing file opened for reading is FileNotFound; a destination
    that cannot be created is an Io failure.
    """
    try:
        return open(path, mode)
    except FileNotFoundError as e:
        if 'r' not in mode:
            raise C2paError.Io(f"Could not create {path}: {e}") from e
        raise C2paError.FileNotFound(f"File not found: {path}") from e
    except OSError as e:
        raise C2paError.Io(f"Could not open {path}: {e}") from e
