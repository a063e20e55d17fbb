import asyncio
import json
import tempfile
import unittest
import zipfile
from io import BytesIO
from pathlib import Path
from typing import Optional

from starlette.requests import Request

from mediashelf.env import Settings
from mediashelf.errors import CorruptArchiveError, FetchError, InvalidIdError, NotFoundError
from mediashelf.services import build_services
from mediashelf.web import ebook_id_from_request, ebook_resource, ebook_resource_by_id, ebook_resource_options

EBOOK_ADDRESS = "http://objects.test/ebook/jane-doe/sample.epub"


def _zip_bytes(entries: list[tuple[str, bytes]]) -> bytes:
    buffer = BytesIO()
    with zipfile.ZipFile(buffer, "w") as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buffer.getvalue()


class FakeFetcher:
    def __init__(self, files: dict[str, bytes]) -> None:
        self.files = files
        self.calls: list[str] = []

    def fetch(self, url: str) -> bytes:
        self.calls.append(url)
        if url not in self.files:
            raise FetchError("Failed to fetch ebook file", url, status_code=404)
        return self.files[url]


def _request(path: str, query: str = "", referer: Optional[str] = None) -> Request:
    headers = []
    if referer is not None:
        headers.append((b"referer", referer.encode("utf-8")))
    return Request(
        {
            "type": "http",
            "method": "GET",
            "path": path,
            "query_string": query.encode("utf-8"),
            "headers": headers,
        }
    )


class EbookResourceTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        base = Path(self._tmp.name)
        self.services = build_services(
            Settings(library_dir=base / "objects", db_path=base / "mediashelf.db", public_base_url="http://objects.test")
        )
        self.services.start()
        self.fetcher = FakeFetcher(
            {
                EBOOK_ADDRESS: _zip_bytes(
                    [
                        ("mimetype", b"application/epub+zip"),
                        ("META-INF/container.xml", b"<container/>"),
                        ("OEBPS/content.opf", b"<package/>"),
                        ("OEBPS/Styles/style.css", b"p{margin:0}"),
                        ("OEBPS/Fonts/font.xyz", b"\x00\x01"),
                    ]
                )
            }
        )
        self.services.fetcher = self.fetcher
        self.ebook = self.services.store.create_ebook("Sample", "Jane Doe", EBOOK_ADDRESS)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def _get(self, path: str, query: str = "", referer: Optional[str] = None):
        request = _request(f"/ebook-library/{path}", query, referer)
        return asyncio.run(ebook_resource(request, path, services=self.services))

    def test_path_variants_return_same_bytes(self) -> None:
        query = f"ebookId={self.ebook.id}"
        bodies = {self._get(path, query).body for path in ("OEBPS/content.opf", "/OEBPS/content.opf", "oebps/CONTENT.OPF")}
        self.assertEqual(bodies, {b"<package/>"})

    def test_found_resource_headers(self) -> None:
        response = self._get("OEBPS/Styles/style.css", f"ebookId={self.ebook.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.headers["content-type"], "text/css")
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertEqual(response.headers["cache-control"], "public, max-age=3600")

    def test_unknown_extension_is_octet_stream(self) -> None:
        response = self._get("OEBPS/Fonts/font.xyz", f"ebookId={self.ebook.id}")
        self.assertEqual(response.headers["content-type"], "application/octet-stream")

    def test_opf_content_type(self) -> None:
        response = self._get("OEBPS/content.opf", f"ebookId={self.ebook.id}")
        self.assertEqual(response.headers["content-type"], "application/oebps-package+xml")

    def test_apple_display_options_stub(self) -> None:
        response = self._get("META-INF/com.apple.ibooks.display-options.xml", f"ebookId={self.ebook.id}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.body, b'<?xml version="1.0" encoding="UTF-8"?><display_options/>')
        self.assertEqual(response.headers["content-type"], "application/xml")

    def test_missing_resource_is_404_naming_path(self) -> None:
        with self.assertLogs("mediashelf.web", level="WARNING"):
            response = self._get("OEBPS/Text/missing.xhtml", f"ebookId={self.ebook.id}")
        self.assertEqual(response.status_code, 404)
        payload = json.loads(response.body)
        self.assertEqual(payload["error"], "File not found in EPUB: OEBPS/Text/missing.xhtml")

    def test_unknown_ebook_is_404_before_fetch(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            self._get("OEBPS/content.opf", "ebookId=999")
        self.assertEqual(ctx.exception.error, "Ebook not found")
        self.assertEqual(self.fetcher.calls, [])

    def test_missing_id_is_400(self) -> None:
        with self.assertRaises(InvalidIdError) as ctx:
            self._get("OEBPS/content.opf")
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertEqual(self.fetcher.calls, [])

    def test_non_numeric_id_is_400(self) -> None:
        for query in ("ebookId=abc", "ebookId=12abc", "ebookId=0", "ebookId=-3"):
            with self.subTest(query=query):
                with self.assertRaises(InvalidIdError):
                    self._get("OEBPS/content.opf", query)

    def test_referer_without_id_is_400(self) -> None:
        with self.assertRaises(InvalidIdError):
            self._get("OEBPS/content.opf", referer="http://localhost/ebook-library")

    def test_id_inferred_from_referer(self) -> None:
        response = self._get("OEBPS/content.opf", referer=f"http://localhost/ebook-library/{self.ebook.id}")
        self.assertEqual(response.body, b"<package/>")

    def test_query_id_wins_over_referer(self) -> None:
        request = _request("/ebook-library/x", "ebookId=7", "http://localhost/ebook-library/3")
        self.assertEqual(ebook_id_from_request(request), 7)

    def test_invalid_query_id_falls_back_to_referer(self) -> None:
        response = self._get(
            "OEBPS/content.opf",
            "ebookId=abc",
            referer=f"http://localhost/ebook-library/{self.ebook.id}",
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.body, b"<package/>")

    def test_invalid_query_id_without_referer_is_400(self) -> None:
        with self.assertRaises(InvalidIdError) as ctx:
            ebook_id_from_request(_request("/ebook-library/x", "ebookId=abc"))
        self.assertEqual(ctx.exception.status_code, 400)
        self.assertIn("abc", ctx.exception.details)

    def test_empty_path_is_404(self) -> None:
        with self.assertRaises(NotFoundError) as ctx:
            self._get("", f"ebookId={self.ebook.id}")
        self.assertEqual(ctx.exception.error, "Resource path not specified")

    def test_fetch_error_propagates_upstream_status(self) -> None:
        broken = self.services.store.create_ebook("Gone", "Nobody", "http://objects.test/missing.epub")
        with self.assertRaises(FetchError) as ctx:
            self._get("OEBPS/content.opf", f"ebookId={broken.id}")
        self.assertEqual(ctx.exception.status_code, 404)

    def test_corrupt_archive_is_500(self) -> None:
        self.fetcher.files["http://objects.test/bad.epub"] = b"not a zip"
        bad = self.services.store.create_ebook("Bad", "Nobody", "http://objects.test/bad.epub")
        with self.assertRaises(CorruptArchiveError) as ctx:
            self._get("OEBPS/content.opf", f"ebookId={bad.id}")
        self.assertEqual(ctx.exception.status_code, 500)

    def test_archive_refetched_without_cache(self) -> None:
        query = f"ebookId={self.ebook.id}"
        self._get("OEBPS/content.opf", query)
        self._get("OEBPS/content.opf", query)
        self.assertEqual(self.fetcher.calls, [EBOOK_ADDRESS, EBOOK_ADDRESS])

    def test_archive_cache_avoids_refetch(self) -> None:
        self.services.archive_cache.max_entries = 4
        query = f"ebookId={self.ebook.id}"
        self._get("OEBPS/content.opf", query)
        self._get("OEBPS/Styles/style.css", query)
        self.assertEqual(self.fetcher.calls, [EBOOK_ADDRESS])

    def test_id_in_path_route(self) -> None:
        response = asyncio.run(
            ebook_resource_by_id(str(self.ebook.id), "/OEBPS/content.opf", services=self.services)
        )
        self.assertEqual(response.body, b"<package/>")

    def test_id_in_path_route_without_path_redirects_to_proxy(self) -> None:
        response = asyncio.run(ebook_resource_by_id(str(self.ebook.id), "", services=self.services))
        self.assertEqual(response.status_code, 307)
        self.assertEqual(response.headers["location"], f"/api/ebook-library/{self.ebook.id}/proxy")
        self.assertEqual(self.fetcher.calls, [])

    def test_id_in_path_route_without_path_checks_ebook(self) -> None:
        with self.assertRaises(NotFoundError):
            asyncio.run(ebook_resource_by_id("999", "", services=self.services))

    def test_options_preflight(self) -> None:
        response = asyncio.run(ebook_resource_options("META-INF/container.xml"))
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.body, b"")
        self.assertEqual(response.headers["access-control-allow-origin"], "*")
        self.assertEqual(response.headers["access-control-allow-methods"], "GET, OPTIONS")
        self.assertEqual(response.headers["access-control-allow-headers"], "Content-Type")


if __name__ == "__main__":
    unittest.main()
