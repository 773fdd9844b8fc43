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
import os
import tempfile
import unittest

from c2pa_bridge import C2paError, Stream, StreamMode, _ffi
from c2pa_bridge.stream import detect_mode, format_from_path, open_file

from fake_engine import FakeEngine, FakeEngineTestCase


class ReadOnlyObject:
    """Has read/seek/tell but no readinto, readable() or write()."""

    def __init__(self, data):
        self._inner = io.BytesIO(data)

    def read(self, size=-1):
        return self._inner.read(size)

    def seek(self, offset, whence=0):
        return self._inner.seek(offset, whence)

    def tell(self):
        return self._inner.tell()


class TrickleWriter(io.RawIOBase):
    """Accepts one byte per write() call."""

    def __init__(self):
        self.data = bytearray()

    def writable(self):
        return True

    def seekable(self):
        return True

    def seek(self, offset, whence=0):
        return len(self.data)

    def tell(self):
        return len(self.data)

    def write(self, b):
        self.data += bytes(b[:1])
        return 1


class BlockedWriter(io.RawIOBase):
    """Non-blocking raw writer that never has room."""

    def writable(self):
        return True

    def write(self, b):
        return None


class ExplodingStream(io.BytesIO):
    def read(self, size=-1):
        raise OSError("disk on fire")

    def readinto(self, b):
        raise OSError("disk on fire")

    def flush(self):
        raise OSError("disk on fire")


def _buffer(size):
    buf = (ctypes.c_uint8 * size)()
    return buf, ctypes.cast(buf, ctypes.POINTER(ctypes.c_uint8))


class TestStreamModes(unittest.TestCase):
    def test_detect_mode_of_binary_file_objects(self):
        self.assertEqual(detect_mode(io.BytesIO()),
                         StreamMode.READ | StreamMode.WRITE | StreamMode.SEEK)
        self.assertEqual(detect_mode(ReadOnlyObject(b"")),
                         StreamMode.READ | StreamMode.SEEK)

    def test_detect_mode_of_closed_file(self):
        f = io.BytesIO()
        f.close()
        self.assertEqual(detect_mode(f), StreamMode(0))

    def test_format_from_path_strips_the_dot_only(self):
        self.assertEqual(format_from_path("/tmp/photo.JPG"), "JPG")
        self.assertEqual(format_from_path("archive.tar.gz"), "gz")
        self.assertEqual(format_from_path("README"), "")

    def test_open_file_maps_missing_file(self):
        with self.assertRaises(C2paError.FileNotFound):
            open_file("/definitely/not/here.jpg", "rb")

    def test_open_file_maps_other_os_errors(self):
        with tempfile.TemporaryDirectory() as tmp:
            with self.assertRaises(C2paError.Io):
                open_file(tmp, "rb")


class TestStream(FakeEngineTestCase):
    def test_engine_reads_through_the_bridge(self):
        data = os.urandom(4321)
        with Stream.for_reading(io.BytesIO(data)) as stream:
            self.assertEqual(self.engine._read_all(stream._stream), data)

    def test_read_falls_back_to_read_without_readinto(self):
        with Stream(ReadOnlyObject(b"abcdef")) as stream:
            self.assertEqual(stream.mode, StreamMode.READ | StreamMode.SEEK)
            self.assertEqual(self.engine._read_all(stream._stream), b"abcdef")

    def test_engine_writes_through_the_bridge(self):
        target = io.BytesIO()
        with Stream.for_writing(target) as stream:
            self.engine._write_all(stream._stream, b"hello engine")
        self.assertEqual(target.getvalue(), b"hello engine")

    def test_short_writes_are_completed(self):
        target = TrickleWriter()
        with Stream.for_writing(target) as stream:
            self.engine._write_all(stream._stream, b"0123456789")
        self.assertEqual(bytes(target.data), b"0123456789")

    def test_blocked_raw_writer_fails(self):
        data = (ctypes.c_uint8 * 4).from_buffer_copy(b"data")
        with Stream(BlockedWriter(), StreamMode.WRITE) as stream:
            self.assertEqual(stream._stream.contents.writer(None, data, 4), -1)

    def test_read_write_bridge_shares_one_cursor(self):
        target = io.BytesIO()
        first = (ctypes.c_uint8 * 6).from_buffer_copy(b"abcdef")
        second = (ctypes.c_uint8 * 2).from_buffer_copy(b"XY")
        buf, ptr = _buffer(6)
        with Stream.for_read_write(target) as stream:
            table = stream._stream.contents
            self.assertEqual(table.writer(None, first, 6), 6)
            self.assertEqual(table.seeker(None, 2, 0), 2)
            self.assertEqual(table.reader(None, buf, 2), 2)
            self.assertEqual(bytes(buf[:2]), b"cd")
            # The write lands where the read stopped
            self.assertEqual(table.writer(None, second, 2), 2)
            self.assertEqual(table.seeker(None, 0, 0), 0)
            self.assertEqual(table.reader(None, buf, 6), 6)
            self.assertEqual(bytes(buf), b"abcdXY")
        self.assertEqual(target.getvalue(), b"abcdXY")

    def test_read_only_bridge_refuses_writes(self):
        target = io.BytesIO(b"original")
        buf, ptr = _buffer(4)
        with Stream.for_reading(target) as stream:
            table = stream._stream.contents
            self.assertEqual(table.writer(None, buf, 4), -1)
        self.assertEqual(target.getvalue(), b"original")

    def test_write_only_bridge_refuses_reads(self):
        buf, ptr = _buffer(4)
        with Stream.for_writing(io.BytesIO(b"secret")) as stream:
            self.assertEqual(stream._stream.contents.reader(None, buf, 4), -1)

    def test_seek_reports_position_and_rejects_bad_whence(self):
        with Stream.for_reading(io.BytesIO(b"0123456789")) as stream:
            table = stream._stream.contents
            self.assertEqual(table.seeker(None, 3, 0), 3)
            self.assertEqual(table.seeker(None, 2, 1), 5)
            self.assertEqual(table.seeker(None, -1, 2), 9)
            self.assertEqual(table.seeker(None, 0, 7), -1)

    def test_read_at_end_returns_zero(self):
        buf, ptr = _buffer(8)
        with Stream.for_reading(io.BytesIO(b"ab")) as stream:
            table = stream._stream.contents
            table.seeker(None, 0, 2)
            self.assertEqual(table.reader(None, buf, 8), 0)

    def test_exceptions_become_failures(self):
        buf, ptr = _buffer(8)
        with self.assertLogs("c2pa_bridge.stream", level="DEBUG"):
            with Stream(ExplodingStream(b"data")) as stream:
                table = stream._stream.contents
                self.assertEqual(table.reader(None, buf, 8), -1)
                self.assertEqual(table.flusher(None), -1)

    def test_callbacks_fail_after_close(self):
        buf, ptr = _buffer(4)
        source = io.BytesIO(b"data")
        stream = Stream.for_read_write(source)
        stream.close()
        self.assertTrue(stream.closed)
        self.assertEqual(stream._read(None, ptr, 4), -1)
        self.assertEqual(stream._write(None, ptr, 4), -1)
        self.assertEqual(stream._seek(None, 0, 0), -1)
        self.assertEqual(stream._flush(None), -1)
        # The wrapped object is not owned by the bridge
        self.assertFalse(source.closed)

    def test_close_is_idempotent(self):
        stream = Stream(io.BytesIO())
        stream.close()
        stream.close()
        self.assertEqual(self.engine.double_frees, [])

    def test_rejects_objects_without_stream_methods(self):
        with self.assertRaises(TypeError):
            Stream(object())
        with self.assertRaises(TypeError):
            Stream.for_writing(ReadOnlyObject(b""))

    def test_engine_refusing_stream_raises(self):
        _ffi.use_library(FakeEngine(fail_stream_creation=True))
        with self.assertRaises(C2paError.Other):
            Stream(io.BytesIO())

    def test_stream_ids_are_unique(self):
        with Stream(io.BytesIO()) as a, Stream(io.BytesIO()) as b:
            self.assertNotEqual(a.stream_id, b.stream_id)
            self.assertTrue(a.initialized)


if __name__ == '__main__':
    unittest.main()
