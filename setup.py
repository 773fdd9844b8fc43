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

# Project metadata lives in pyproject.toml. This file bundles a prebuilt
# engine library from artifacts/<platform>/ into the package when one
# is available, and sets the platform classifier.

from setuptools import setup, find_packages
import sys
import platform
import shutil
from pathlib import Path

# Directory structure
ARTIFACTS_DIR = Path('artifacts')  # Where prebuilt engine libraries are kept
PACKAGE_LIBS_DIR = Path('src/c2pa_bridge/libs')  # Bundled into the wheel


def get_platform_identifier() -> str:
    """Platform identifier (arch-os) of the prebuilt engine to bundle."""
    system = platform.system().lower()
    machine = platform.machine().lower()
    if system == "darwin":
        return "universal-apple-darwin"
    elif system == "windows":
        return "x86_64-pc-windows-msvc"
    elif system == "linux":
        if machine in ("aarch64", "arm64"):
            return "aarch64-unknown-linux-gnu"
        return "x86_64-unknown-linux-gnu"
    raise ValueError(f"Unsupported operating system: {system}")


def get_platform_classifier(platform_name):
    """Get the appropriate classifier for a platform."""
    if platform_name.endswith('windows-msvc'):
        return "Operating System :: Microsoft :: Windows"
    elif platform_name.endswith('apple-darwin'):
        return "Operating System :: MacOS"
    elif platform_name.endswith('linux-gnu'):
        return "Operating System :: POSIX :: Linux"
    else:
        raise ValueError(f"Unknown platform: {platform_name}")


def copy_platform_libraries(platform_name):
    """Copy the engine library for a platform into the package.

    Returns:
        True when libraries were copied, False when none are available
    """
    platform_dir = ARTIFACTS_DIR / platform_name
    platform_files = [f for f in platform_dir.glob('*') if f.is_file()] \
        if platform_dir.exists() else []
    if not platform_files:
        print(f"Warning: No libraries found for platform {platform_name}")
        return False

    if PACKAGE_LIBS_DIR.exists():
        shutil.rmtree(PACKAGE_LIBS_DIR)
    PACKAGE_LIBS_DIR.mkdir(parents=True, exist_ok=True)
    for file in platform_files:
        shutil.copy2(file, PACKAGE_LIBS_DIR / file.name)
    return True


target_platform = get_platform_identifier()
bundled = False
if 'bdist_wheel' in sys.argv or 'build' in sys.argv:
    print(f"Building wheel for target platform: {target_platform}")
    bundled = copy_platform_libraries(target_platform)

try:
    setup(
        package_dir={"": "src"},
        packages=find_packages(where="src"),
        include_package_data=True,
        package_data={
            "c2pa_bridge": ["libs/*"],
        },
        classifiers=[
            "Programming Language :: Python :: 3",
            get_platform_classifier(target_platform),
        ],
    )
finally:
    # Clean up
    if bundled and PACKAGE_LIBS_DIR.exists():
        shutil.rmtree(PACKAGE_LIBS_DIR)
