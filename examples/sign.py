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

# This example signs an image with a callback signer, archives the
# builder for later, and prints the manifest of the signed image.
#
# Usage: python sign.py <source.jpg> <dest.jpg> <certs.pem> <private.key>

import sys

import c2pa_bridge
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.hazmat.backends import default_backend

manifest_definition = {
    "claim_generator": "python_example",
    "claim_generator_info": [{
        "name": "python_example",
        "version": "0.0.1",
    }],
    "format": "image/jpeg",
    "title": "Python Example Image",
    "ingredients": [],
    "assertions": [
        {
            "label": "c2pa.actions",
            "data": {
                "actions": [
                    {
                        "action": "c2pa.created",
                        "digitalSourceType": "http://cv.iptc.org/newscodes/digitalsourcetype/digitalCreation"
                    }
                ]
            }
        }
    ]
}


def es256_signer(key: bytes):
    """Signing function for a PEM encoded EC private key."""
    private_key = serialization.load_pem_private_key(
        key,
        password=None,
        backend=default_backend()
    )

    def sign(data: bytes) -> bytes:
        return private_key.sign(data, ec.ECDSA(hashes.SHA256()))
    return sign


def main(source_path, dest_path, certs_path, key_path):
    print("engine version:", c2pa_bridge.sdk_version())

    # Fine for development; production keys belong in a KMS or HSM
    with open(certs_path, "rb") as cert_file:
        certs = cert_file.read()
    with open(key_path, "rb") as key_file:
        key = key_file.read()

    with c2pa_bridge.Signer.from_callback(
        callback=es256_signer(key),
        alg=c2pa_bridge.C2paSigningAlg.ES256,
        certs=certs.decode('utf-8'),
        tsa_url="http://timestamp.digicert.com"
    ) as signer, c2pa_bridge.Builder(manifest_definition) as builder:
        manifest_bytes = builder.sign_file(source_path, dest_path, signer)
        # sign_file created the destination directory
        builder.to_archive(dest_path + ".c2pa")
        print(f"Signed {dest_path}, manifest is {len(manifest_bytes)} bytes")

    print("\nManifest store of the signed image:")
    print(c2pa_bridge.read_manifest_json(dest_path))


if __name__ == '__main__':
    if len(sys.argv) != 5:
        print(f"Usage: python {sys.argv[0]} <source> <dest> <certs> <key>")
        sys.exit(1)
    main(*sys.argv[1:])
