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

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("c2pa-bridge")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "unknown"

from .builder import Builder, format_embeddable
from .engine import load_settings, load_settings_file, sdk_version
from .engine import version as engine_version
from .errors import (
    C2paError,
    ConstructionFailure,
    EngineFailure,
    IOFailure,
    NotFoundFailure,
    UnsupportedFormatFailure,
)
from .reader import Reader, read_manifest_json
from .signer import C2paSignerInfo, C2paSigningAlg, Signer, ed25519_sign
from .stream import Stream, StreamMode  # NOQA

# Re-export C2paError and its subclasses
__all__ = [
    'Builder',
    'C2paError',
    'C2paSignerInfo',
    'C2paSigningAlg',
    'ConstructionFailure',
    'EngineFailure',
    'IOFailure',
    'NotFoundFailure',
    'Reader',
    'Signer',
    'Stream',
    'StreamMode',
    'UnsupportedFormatFailure',
    'ed25519_sign',
    'engine_version',
    'format_embeddable',
    'load_settings',
    'load_settings_file',
    'read_manifest_json',
    'sdk_version',
]
