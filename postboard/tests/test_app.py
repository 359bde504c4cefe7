import json
import shutil
import tempfile
import unittest

from fastapi.testclient import TestClient

from postboard.app import create_app
from postboard.config import Settings
from postboard.db import InMemoryPostStore
from postboard.errors import PostStoreError
from postboard.storage import InMemoryBlobStore, LocalBlobStore
from postboard.tests.images import TEXT_BYTES, jpeg_bytes, large_png_bytes, png_bytes


class BrokenPostStore(InMemoryPostStore):
    def list_all(self):
        raise PostStoreError("connection refused")


def _json(name="gopher", body="hello world!"):
    return json.dumps({"name": name, "body": body})


class BackendApiTests(unittest.TestCase):
    def setUp(self):
        self.blob_dir = tempfile.mkdtemp()
        self.settings = Settings(max_attachment_bytes=2 * 1024 * 1024)
        self.posts = InMemoryPostStore()
        self.blobs = LocalBlobStore(self.blob_dir, url_prefix="/blobs")
        self.client = TestClient(
            create_app(self.settings, post_store=self.posts, blob_store=self.blobs)
        )

    def tearDown(self):
        shutil.rmtree(self.blob_dir, ignore_errors=True)

    def _post(self, json_field=None, image=None):
        data = {"json": json_field} if json_field is not None else {}
        files = {"attachment-file": ("dummy", image, "application/octet-stream")} if image else None
        return self.client.post("/posts", data=data, files=files)

    def test_post_without_attachment(self):
        response = self._post(_json())
        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["name"], "gopher")
        self.assertEqual(payload["body"], "hello world!")
        self.assertEqual(payload["imageurl"], "")
        self.assertTrue(payload["created_at"])
        self.assertEqual(self.blobs.list_blobs(), [])

    def test_post_with_jpeg_is_fetchable(self):
        image = jpeg_bytes()
        response = self._post(_json(), image)
        self.assertEqual(response.status_code, 200)
        imageurl = response.json()["imageurl"]
        self.assertTrue(imageurl.startswith("/blobs/"))
        self.assertTrue(imageurl.endswith(".jpeg"))

        fetched = self.client.get(imageurl)
        self.assertEqual(fetched.status_code, 200)
        self.assertEqual(fetched.content, image)

    def test_post_with_png(self):
        response = self._post(_json(name="Sophia", body="bowwow"), png_bytes())
        self.assertEqual(response.status_code, 200)
        self.assertTrue(response.json()["imageurl"].endswith(".png"))

    def test_oversized_attachment_is_413(self):
        response = self._post(_json(), large_png_bytes(3 * 1024 * 1024))
        self.assertEqual(response.status_code, 413)
        self.assertIn("error", response.json())
        self.assertEqual(self.posts.list_all(), [])
        self.assertEqual(self.blobs.list_blobs(), [])

    def test_text_attachment_is_415(self):
        response = self._post(_json(), TEXT_BYTES)
        self.assertEqual(response.status_code, 415)
        self.assertEqual(self.posts.list_all(), [])
        self.assertEqual(self.blobs.list_blobs(), [])

    def test_corrupt_image_headers_are_415(self):
        cases = {
            "jpeg": jpeg_bytes()[:40],
            "png": png_bytes()[:20],
            "webp": b"RIFF\0\0\0\0WEBPVP8 ",
        }
        for label, image in cases.items():
            with self.subTest(label=label):
                response = self._post(_json(), image)
                self.assertEqual(response.status_code, 415)
                self.assertEqual(
                    response.json(), {"error": "DecodeConfig error, unrecognized image format"}
                )
        self.assertEqual(self.posts.list_all(), [])
        self.assertEqual(self.blobs.list_blobs(), [])

    def test_missing_json_is_400(self):
        response = self._post(None, png_bytes())
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json(), {"error": "Empty json error"})

    def test_malformed_json_is_400(self):
        response = self._post("{not json")
        self.assertEqual(response.status_code, 400)
        self.assertIn("error", response.json())

    def test_json_sent_as_file_part(self):
        response = self.client.post(
            "/posts", files={"json": ("json", _json(), "application/json")}
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "gopher")

    def test_json_decoding_matches_for_field_and_file_part(self):
        raw = b'{"name": "\xff", "body": "latin-1 bytes"}'
        as_field = self.client.post(
            "/posts",
            data={"json": raw},
            files={"attachment-file": ("", b"", "application/octet-stream")},
        )
        as_file = self.client.post(
            "/posts", files={"json": ("json", raw, "application/json")}
        )
        self.assertEqual(as_field.status_code, 200)
        self.assertEqual(as_file.status_code, 200)
        self.assertEqual(as_field.json()["name"], as_file.json()["name"])
        self.assertEqual(as_file.json()["name"], "ÿ")

    def test_empty_file_input_counts_as_no_attachment(self):
        response = self.client.post(
            "/posts",
            data={"json": _json()},
            files={"attachment-file": ("", b"", "application/octet-stream")},
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["imageurl"], "")

    def test_list_posts_in_insertion_order(self):
        self.assertEqual(self._post(_json()).status_code, 200)
        self.assertEqual(self._post(_json(name="koro", body="wanwan"), jpeg_bytes()).status_code, 200)

        response = self.client.get("/posts")
        self.assertEqual(response.status_code, 200)
        posts = response.json()
        self.assertEqual([p["name"] for p in posts], ["gopher", "koro"])
        self.assertEqual(posts[0]["imageurl"], "")
        self.assertNotEqual(posts[1]["imageurl"], "")

    def test_list_empty_store(self):
        response = self.client.get("/posts")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), [])

    def test_list_failure_is_500(self):
        client = TestClient(
            create_app(self.settings, post_store=BrokenPostStore(), blob_store=InMemoryBlobStore())
        )
        response = client.get("/posts")
        self.assertEqual(response.status_code, 500)
        self.assertIn("error", response.json())

    def test_index_page(self):
        response = self.client.get("/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("text/html", response.headers["content-type"])

    def test_unknown_routes_are_forbidden(self):
        for method, path in (("GET", "/nope"), ("DELETE", "/posts"), ("PUT", "/")):
            with self.subTest(method=method, path=path):
                response = self.client.request(method, path)
                self.assertEqual(response.status_code, 403)
                self.assertEqual(response.json(), {"error": "Forbidden"})


class LifespanTests(unittest.TestCase):
    def test_backends_opened_from_settings(self):
        settings = Settings(use_in_memory_backends=True)
        with TestClient(create_app(settings)) as client:
            response = client.post("/posts", data={"json": _json()})
            self.assertEqual(response.status_code, 200)
            self.assertEqual(len(client.get("/posts").json()), 1)
            backends = client.app.state.backends
            self.assertIsInstance(backends.post_store, InMemoryPostStore)
            self.assertIsInstance(backends.blob_store, InMemoryBlobStore)


if __name__ == "__main__":
    unittest.main()
