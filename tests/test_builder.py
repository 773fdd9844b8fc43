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

import base64
import hashlib
import io
import json
import os
import shutil
import tempfile
import unittest

from c2pa_bridge import (
    Builder,
    C2paError,
    C2paSigningAlg,
    ConstructionFailure,
    EngineFailure,
    IOFailure,
    NotFoundFailure,
    Reader,
    UnsupportedFormatFailure,
    format_embeddable,
)

from fake_engine import MANIFEST, FakeEngineTestCase


class TestBuilder(FakeEngineTestCase):
    def setUp(self):
        super().setUp()
        self.temp_dir = tempfile.mkdtemp()
        self.source_path = os.path.join(self.temp_dir, "C.jpg")
        with open(self.source_path, "wb") as f:
            f.write(self.asset())

    def tearDown(self):
        shutil.rmtree(self.temp_dir)
        super().tearDown()

    def read_active(self, data, format="image/jpeg"):
        with Reader(format, io.BytesIO(data)) as reader:
            return reader.get_active_manifest()

    def test_sign_to_stream(self):
        dest = io.BytesIO()
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            manifest_bytes = builder.sign(
                signer, "image/jpeg", io.BytesIO(self.asset()), dest)
        self.assertTrue(manifest_bytes)
        self.assertEqual(self.read_active(dest.getvalue())["title"], "C.jpg")

    def test_sign_without_destination(self):
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            manifest_bytes = builder.sign(
                signer, "image/jpeg", io.BytesIO(self.asset()))
        self.assertTrue(manifest_bytes)

    def test_sign_every_algorithm(self):
        for alg in C2paSigningAlg:
            with self.subTest(alg=alg.name):
                dest = io.BytesIO()
                with Builder(MANIFEST) as builder, \
                        self.make_signer(alg) as signer:
                    builder.sign(signer, "image/jpeg",
                                 io.BytesIO(self.asset()), dest)
                active = self.read_active(dest.getvalue())
                self.assertEqual(active["signature_info"]["alg"].upper(),
                                 alg.name)

    def test_source_stream_is_never_written(self):
        source = io.BytesIO(self.asset())
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            builder.sign(signer, "image/jpeg", source, io.BytesIO())
        self.assertEqual(source.getvalue(), self.asset())
        self.assertFalse(source.closed)

    def test_builder_from_json_string(self):
        with Builder.from_json(json.dumps(MANIFEST)) as builder, \
                self.make_signer() as signer:
            dest = io.BytesIO()
            builder.sign(signer, "jpg", io.BytesIO(self.asset()), dest)
        self.assertEqual(self.read_active(dest.getvalue())["title"], "C.jpg")

    def test_malformed_manifest(self):
        with self.assertRaises(ConstructionFailure) as ctx:
            Builder('{"title": ')
        self.assertIsInstance(ctx.exception, C2paError.Json)

    def test_unserializable_manifest(self):
        with self.assertRaises(C2paError.Json):
            Builder({"title": object()})

    def test_unsupported_format(self):
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            with self.assertRaises(UnsupportedFormatFailure):
                builder.sign(signer, "mimetype/does-not-exist",
                             io.BytesIO(self.asset()), io.BytesIO())

    def test_sign_file(self):
        dest_path = os.path.join(self.temp_dir, "nested", "dir", "out.jpg")
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            manifest_bytes = builder.sign_file(
                self.source_path, dest_path, signer)
        self.assertTrue(manifest_bytes)
        with Reader(dest_path) as reader:
            self.assertEqual(reader.get_active_manifest()["title"], "C.jpg")

    def test_sign_file_missing_source(self):
        dest_path = os.path.join(self.temp_dir, "out.jpg")
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            with self.assertRaises(C2paError.FileNotFound) as ctx:
                builder.sign_file(os.path.join(self.temp_dir, "nope.jpg"),
                                  dest_path, signer)
        self.assertIsInstance(ctx.exception, IOFailure)
        self.assertIsInstance(ctx.exception, NotFoundFailure)
        self.assertNotIsInstance(ctx.exception, ConstructionFailure)
        self.assertFalse(os.path.exists(dest_path))

    def test_set_no_embed(self):
        dest = io.BytesIO()
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            builder.set_no_embed()
            manifest_bytes = builder.sign(
                signer, "image/jpeg", io.BytesIO(self.asset()), dest)
        self.assertTrue(manifest_bytes)
        self.assertEqual(dest.getvalue(), self.asset())

    def test_set_remote_url(self):
        dest = io.BytesIO()
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            builder.set_remote_url("https://example.com/manifest.c2pa")
            builder.sign(signer, "image/jpeg", io.BytesIO(self.asset()), dest)
        self.assertEqual(self.read_active(dest.getvalue())["remote_url"],
                         "https://example.com/manifest.c2pa")

    def test_add_resource_from_path(self):
        resource_path = os.path.join(self.temp_dir, "thumb.jpg")
        with open(resource_path, "wb") as f:
            f.write(b"thumbnail data")
        dest = io.BytesIO()
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            builder.add_resource("thumbnail", resource_path)
            builder.sign(signer, "image/jpeg", io.BytesIO(self.asset()), dest)

        output = io.BytesIO()
        with Reader("image/jpeg", io.BytesIO(dest.getvalue())) as reader:
            reader.resource_to_stream("thumbnail", output)
        self.assertEqual(output.getvalue(), b"thumbnail data")

    def test_add_ingredient(self):
        ingredient = self.signed_asset(payload=b"parent")
        ingredient_path = os.path.join(self.temp_dir, "A.jpg")
        with open(ingredient_path, "wb") as f:
            f.write(ingredient)

        dest = io.BytesIO()
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            builder.add_ingredient({"title": "A.jpg"}, "image/jpeg",
                                   io.BytesIO(ingredient))
            builder.add_ingredient('{"title": "A again"}', None,
                                   ingredient_path)
            builder.sign(signer, "image/jpeg", io.BytesIO(self.asset()), dest)

        ingredients = self.read_active(dest.getvalue())["ingredients"]
        self.assertEqual([i["title"] for i in ingredients],
                         ["A.jpg", "A again"])
        self.assertTrue(all("active_manifest" in i for i in ingredients))

    def test_add_ingredient_errors(self):
        with Builder(MANIFEST) as builder:
            with self.assertRaises(C2paError):
                builder.add_ingredient({"title": "x"}, None,
                                       io.BytesIO(self.asset()))
            with self.assertRaises(C2paError.Json):
                builder.add_ingredient("{bad", "image/jpeg",
                                       io.BytesIO(self.asset()))
            with self.assertRaises(C2paError.FileNotFound):
                builder.add_ingredient({"title": "x"}, None,
                                       os.path.join(self.temp_dir, "no.jpg"))

    def test_archive_round_trip(self):
        archive = io.BytesIO()
        with Builder(MANIFEST) as builder:
            builder.add_resource("thumbnail", io.BytesIO(b"thumb"))
            builder.add_ingredient({"title": "A.jpg"}, "image/jpeg",
                                   io.BytesIO(self.asset(b"parent")))
            builder.to_archive(archive)

        archive.seek(0)
        dest = io.BytesIO()
        with Builder.from_archive(archive) as restored, \
                self.make_signer() as signer:
            restored.sign(signer, "image/jpeg", io.BytesIO(self.asset()),
                          dest)

        with Reader("image/jpeg", io.BytesIO(dest.getvalue())) as reader:
            active = reader.get_active_manifest()
            output = io.BytesIO()
            reader.resource_to_stream("thumbnail", output)
        self.assertEqual(active["title"], "C.jpg")
        self.assertEqual(active["ingredients"][0]["title"], "A.jpg")
        self.assertEqual(output.getvalue(), b"thumb")

    def test_archive_round_trip_through_file(self):
        archive_path = os.path.join(self.temp_dir, "builder.c2pa")
        with Builder(MANIFEST) as builder:
            builder.to_archive(archive_path)
        with Builder.from_archive(archive_path) as restored:
            self.assertFalse(restored.closed)

    def test_from_archive_errors(self):
        with self.assertRaises(C2paError.Decoding):
            Builder.from_archive(io.BytesIO(b"definitely not an archive"))
        with self.assertRaises(C2paError.FileNotFound):
            Builder.from_archive(os.path.join(self.temp_dir, "none.c2pa"))

    def test_sign_with_invalid_signer(self):
        with Builder(MANIFEST) as builder:
            with self.assertRaises(C2paError):
                builder.sign("not a signer", "image/jpeg",
                             io.BytesIO(self.asset()), io.BytesIO())

    def test_closed_builder(self):
        builder = Builder(MANIFEST)
        builder.close()
        builder.close()
        with self.make_signer() as signer:
            with self.assertRaises(C2paError):
                builder.sign(signer, "image/jpeg",
                             io.BytesIO(self.asset()), io.BytesIO())
        with self.assertRaises(C2paError):
            builder.set_no_embed()
        with self.assertRaises(C2paError):
            builder.to_archive(io.BytesIO())

    def test_sign_without_manifest_buffer_fails(self):
        # Engine reports a length but hands back no buffer
        self.engine.c2pa_builder_sign = lambda *args: 42
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            with self.assertRaises(EngineFailure) as ctx:
                builder.sign(signer, "image/jpeg",
                             io.BytesIO(self.asset()), io.BytesIO())
        self.assertEqual(ctx.exception.message, "Error during signing")

    def test_supported_mime_types(self):
        self.assertIn("image/jpeg", Builder.get_supported_mime_types())


class TestDataHashedSigning(FakeEngineTestCase):
    def test_placeholder_rejects_bad_sizes(self):
        with Builder(MANIFEST) as builder:
            for size in (-1, 1.5, "100", True):
                with self.subTest(size=size):
                    with self.assertRaises(ValueError):
                        builder.data_hashed_placeholder(size, "image/jpeg")

    def test_placeholder_and_embeddable_have_the_same_size(self):
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            placeholder = builder.data_hashed_placeholder(
                signer.reserve_size(), "image/jpeg")
            data_hash = {
                "exclusions": [{"start": 2, "length": len(placeholder)}],
                "name": "jumbf manifest",
                "alg": "sha256",
                "hash": base64.b64encode(
                    hashlib.sha256(b"asset").digest()).decode(),
                "pad": " ",
            }
            embeddable = builder.sign_data_hashed_embeddable(
                signer, data_hash, "image/jpeg")
        self.assertEqual(len(embeddable), len(placeholder))
        self.assertTrue(embeddable.startswith(b"\xff\xeb"))

    def test_placeholder_without_buffer_fails(self):
        self.engine.c2pa_builder_data_hashed_placeholder = lambda *args: 100
        with Builder(MANIFEST) as builder:
            with self.assertRaises(EngineFailure):
                builder.data_hashed_placeholder(10, "image/jpeg")

    def test_reserve_size_covers_data_hashed_signatures(self):
        asset = self.asset(b"hashed elsewhere")
        data_hash = {
            "exclusions": [],
            "alg": "sha256",
            "hash": base64.b64encode(hashlib.sha256(asset).digest()).decode(),
        }
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            reserve = signer.reserve_size()
            builder.data_hashed_placeholder(reserve, "image/jpeg")
            builder.sign_data_hashed_embeddable(
                signer, data_hash, "image/jpeg")
            builder.sign_data_hashed_embeddable(
                signer, dict(data_hash, hash=""), "image/jpeg",
                io.BytesIO(asset))
        self.assertEqual(len(self.engine.signatures), 2)
        for signature in self.engine.signatures:
            self.assertLessEqual(len(signature), reserve)

    def test_embeddable_hashes_the_asset(self):
        asset = self.asset(b"data to hash")
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            embeddable = builder.sign_data_hashed_embeddable(
                signer,
                json.dumps({"exclusions": [], "alg": "sha256", "hash": ""}),
                "c2pa",
                io.BytesIO(asset))

        document = json.loads(embeddable)
        manifests = document["store"]["manifests"]
        (manifest,) = manifests.values()
        data_hash = manifest["assertions"][-1]["data"]
        self.assertEqual(base64.b64decode(data_hash["hash"]),
                         hashlib.sha256(asset).digest())

    def test_embeddable_needs_a_hash_without_asset(self):
        with Builder(MANIFEST) as builder, self.make_signer() as signer:
            with self.assertRaises(C2paError.Json):
                builder.sign_data_hashed_embeddable(
                    signer, {"exclusions": [], "hash": ""}, "c2pa")

    def test_format_embeddable(self):
        raw = b"raw manifest store"
        first = format_embeddable("image/jpeg", raw)
        second = Builder.format_embeddable("image/jpeg", raw)
        self.assertEqual(first, second)
        self.assertNotEqual(first, raw)
        self.assertEqual(format_embeddable("c2pa", raw), raw)

    def test_format_embeddable_unsupported(self):
        with self.assertRaises(C2paError.NotSupported):
            format_embeddable("text/plain", b"data")


if __name__ == '__main__':
    unittest.main()
