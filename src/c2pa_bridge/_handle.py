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

import logging
import threading

from . import _ffi
from .errors import C2paError

logger = logging.getLogger("c2pa_bridge")
logger.addHandler(logging.NullHandler())


class NativeHandle:
    """Exclusive owner of one engine-side handle.

    Subclasses set `_kind` (used in messages) and `_release_function`
    (name of the engine call freeing the handle). The handle is released
    exactly once: by close(), by leaving a `with` block, or by the
    destructor when neither happened. Handles cannot be copied or shared
    between wrappers.

    Every engine call made with the handle, together with the error query
    that may follow it, runs under `self._lock`.
    """

    _kind = "Handle"
    _release_function = None

    def __init__(self):
        # Set first so __del__ works on partially constructed objects
        self._closed = False
        self._initialized = False
        self._handle = None
        self._lib = None
        self._lock = threading.RLock()

    def _adopt(self, handle) -> None:
        """Take ownership of a freshly created engine handle."""
        self._handle = handle
        self._lib = _ffi.lib()
        self._initialized = True

    def __copy__(self):
        raise TypeError(f"{self._kind} owns a native handle and cannot be "
                        "copied")

    def __deepcopy__(self, memo):
        return self.__copy__()

    def __enter__(self):
        self._ensure_valid_state()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()

    def __del__(self):
        self._cleanup_resources()

    def _ensure_valid_state(self) -> None:
        """
        Raises:
            C2paError: If the wrapper is closed or never got a handle
        """
        if self._closed:
            raise C2paError(f"{self._kind} is closed")
        if not self._initialized:
            raise C2paError(f"{self._kind} is not properly initialized")
        if not self._handle:
            raise C2paError(f"{self._kind} is closed")

    def _release_owned(self) -> None:
        """Release resources owned next to the handle (streams, files)."""

    def _cleanup_resources(self) -> None:
        # Safe to call from close() and __del__ without double frees
        if getattr(self, '_closed', True):
            return
        self._closed = True
        handle, self._handle = self._handle, None
        try:
            if handle and self._lib and self._release_function:
                getattr(self._lib, self._release_function)(handle)
        except Exception:
            logger.error("Failed to free native %s resources", self._kind)
        try:
            self._release_owned()
        except Exception:
            logger.error("Failed to release %s owned resources", self._kind)
        self._initialized = False

    def close(self) -> None:
        """Release the native resources.

        Multiple calls are handled gracefully. Errors during cleanup are
        logged, not raised.
        """
        lock = getattr(self, '_lock', None)
        if lock is None:
            return
        with lock:
            self._cleanup_resources()

    @property
    def closed(self) -> bool:
        return self._closed
