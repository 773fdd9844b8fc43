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

# This example reads the C2PA manifest store of a media file, prints the
# active manifest and saves its thumbnail, if it has one.
#
# Usage: python read.py <image_path> [settings.json|settings.toml]

import json
import sys

import c2pa_bridge


if __name__ == '__main__':
    if len(sys.argv) < 2:
        print(f"Usage: python {sys.argv[0]} <image_path> [settings]")
        sys.exit(1)

    if len(sys.argv) > 2:
        c2pa_bridge.load_settings_file(sys.argv[2])

    image_path = sys.argv[1]
    try:
        reader = c2pa_bridge.Reader.try_create(image_path)
        if reader is None:
            print(f"{image_path} has no Content Credentials")
            sys.exit(0)

        with reader:
            manifest = reader.get_active_manifest()
            print(json.dumps(manifest, indent=2))

            thumbnail = (manifest or {}).get("thumbnail")
            if thumbnail:
                target = image_path + ".thumbnail"
                size = reader.get_resource(thumbnail["identifier"], target)
                print(f"Saved {size} byte thumbnail to {target}")
    except c2pa_bridge.C2paError as e:
        print(f"Error reading C2PA data from {image_path}: {e}")
        sys.exit(1)
