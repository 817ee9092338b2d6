from __future__ import annotations

import io
import unittest

from PIL import Image

from _helpers import ApiTestCase
from myzo.integrations.storage.mock_provider import MockStorageProvider


def _png(size=(1600, 900), color=(120, 80, 40)) -> io.BytesIO:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format="PNG")
    buf.seek(0)
    return buf


class ProductImageUploadTestCase(ApiTestCase):
    def _post(self, token: str, files: list):
        return self.client.post(
            "/api/upload",
            headers=self.auth(token),
            data={"images": files},
            content_type="multipart/form-data",
        )

    def test_upload_resizes_and_stores_jpegs(self):
        _uid, token = self.register(admin=True)
        res = self._post(token, [(_png(), f"bag-{i}.png", "image/png") for i in range(3)])
        self.assertEqual(res.status_code, 200, res.get_data(as_text=True))
        urls = res.get_json()["urls"]
        self.assertEqual(len(urls), 3)
        for url in urls:
            key = url.split("https://storage.example.com/", 1)[1]
            self.assertTrue(key.startswith("products/") and key.endswith(".jpg"))
            stored = Image.open(io.BytesIO(MockStorageProvider.objects[key]))
            self.assertEqual(stored.format, "JPEG")
            self.assertLessEqual(max(stored.size), 1200)

    def test_too_few_images(self):
        _uid, token = self.register(admin=True)
        res = self._post(token, [(_png(), "only.png", "image/png")])
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "TOO_FEW_IMAGES")

    def test_unsupported_type(self):
        _uid, token = self.register(admin=True)
        files = [(_png(), "a.png", "image/png"), (_png(), "b.png", "image/png"), (io.BytesIO(b"GIF89a"), "c.gif", "image/gif")]
        res = self._post(token, files)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "UNSUPPORTED_TYPE")

    def test_corrupt_image(self):
        _uid, token = self.register(admin=True)
        files = [(_png(), "a.png", "image/png"), (_png(), "b.png", "image/png"), (io.BytesIO(b"not an image"), "c.jpg", "image/jpeg")]
        res = self._post(token, files)
        self.assertEqual(res.status_code, 400)
        self.assertEqual(res.get_json()["error"], "INVALID_IMAGE")

    def test_customers_cannot_upload(self):
        _uid, token = self.register()
        res = self._post(token, [(_png(), f"bag-{i}.png", "image/png") for i in range(3)])
        self.assertEqual(res.status_code, 403)


if __name__ == "__main__":
    unittest.main()
