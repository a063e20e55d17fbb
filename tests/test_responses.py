import json
import unittest

from mediashelf.epub import Outcome, Resolution
from mediashelf.errors import InvalidIdError, parse_positive_id
from mediashelf.responses import DISPLAY_OPTIONS_STUB, content_type_for, resource_response


class ContentTypeTests(unittest.TestCase):
    def test_known_extensions(self) -> None:
        expected = {
            "META-INF/container.xml": "application/xml",
            "OEBPS/content.opf": "application/oebps-package+xml",
            "toc.ncx": "application/x-dtbncx+xml",
            "Text/ch1.xhtml": "application/xhtml+xml",
            "index.html": "text/html",
            "Styles/STYLE.CSS": "text/css",
            "cover.JPG": "image/jpeg",
            "cover.jpeg": "image/jpeg",
            "a.png": "image/png",
            "a.gif": "image/gif",
            "a.svg": "image/svg+xml",
            "f.ttf": "font/ttf",
            "f.otf": "font/otf",
            "f.woff": "font/woff",
            "f.woff2": "font/woff2",
        }
        for path, content_type in expected.items():
            with self.subTest(path=path):
                self.assertEqual(content_type_for(path), content_type)

    def test_unknown_or_missing_extension(self) -> None:
        self.assertEqual(content_type_for("mimetype"), "application/octet-stream")
        self.assertEqual(content_type_for("image.webp"), "application/octet-stream")


class ResourceResponseTests(unittest.TestCase):
    def test_found_uses_requested_path_extension(self) -> None:
        resolution = Resolution(Outcome.FOUND, "oebps/STYLE.css", "OEBPS/style.CSS", b"p{}")
        response = resource_response(resolution)
        self.assertEqual(response.body, b"p{}")
        self.assertEqual(response.headers["content-type"], "text/css")
        self.assertEqual(response.headers["access-control-allow-methods"], "GET, OPTIONS")

    def test_optional_missing_stub(self) -> None:
        response = resource_response(Resolution(Outcome.OPTIONAL_MISSING, "META-INF/com.apple.ibooks.display-options.xml"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.body.decode("utf-8"), DISPLAY_OPTIONS_STUB)
        self.assertEqual(response.headers["cache-control"], "public, max-age=3600")

    def test_not_found_json(self) -> None:
        response = resource_response(Resolution(Outcome.NOT_FOUND, "OEBPS/nope.xhtml"))
        self.assertEqual(response.status_code, 404)
        self.assertEqual(json.loads(response.body), {"error": "File not found in EPUB: OEBPS/nope.xhtml"})


class ParseIdTests(unittest.TestCase):
    def test_accepts_positive_integers(self) -> None:
        self.assertEqual(parse_positive_id("42"), 42)
        self.assertEqual(parse_positive_id(" 7 "), 7)

    def test_rejects_everything_else(self) -> None:
        for raw in (None, "", "0", "-1", "1.5", "abc", "12abc"):
            with self.subTest(raw=raw):
                with self.assertRaises(InvalidIdError) as ctx:
                    parse_positive_id(raw)
                self.assertEqual(ctx.exception.status_code, 400)
                self.assertEqual(ctx.exception.to_dict()["error"], "Invalid ebook ID")


if __name__ == "__main__":
    unittest.main()
