import tempfile
import unittest
from pathlib import Path

from mediashelf.storage import ObjectStore, ebook_extension, ebook_key, slugify, unused_ebook_key


class SlugTests(unittest.TestCase):
    def test_slugify(self) -> None:
        self.assertEqual(slugify("Dune Messiah!"), "dune-messiah")
        self.assertEqual(slugify("  Spaced   Out -- Title "), "-spaced-out-title-")
        self.assertEqual(slugify("Ursula K. Le Guin"), "ursula-k-le-guin")

    def test_ebook_key(self) -> None:
        self.assertEqual(ebook_key("Frank Herbert", "Dune", "epub"), "ebook/frank-herbert/dune.epub")

    def test_ebook_key_placeholders_for_empty_slugs(self) -> None:
        self.assertEqual(ebook_key("刘慈欣", "三体", "epub"), "ebook/unknown/untitled.epub")
        self.assertEqual(ebook_key("Frank Herbert", "Dune", "epub", "ab12cd34"), "ebook/frank-herbert/dune-ab12cd34.epub")

    def test_ebook_extension(self) -> None:
        self.assertEqual(ebook_extension("Book.AZW3"), "azw3")
        self.assertEqual(ebook_extension("book.epub"), "epub")
        self.assertIsNone(ebook_extension("book.txt"))
        self.assertIsNone(ebook_extension("README"))


class ObjectStoreTests(unittest.TestCase):
    def test_unused_ebook_key_keeps_plain_key_when_free(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = ObjectStore(Path(tmp), "http://objects.test")
            self.assertEqual(unused_ebook_key(store, "Frank Herbert", "Dune", "epub"), "ebook/frank-herbert/dune.epub")

    def test_unused_ebook_key_suffixes_taken_keys(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = ObjectStore(Path(tmp), "http://objects.test")
            store.put("ebook/frank-herbert/dune.epub", b"first")
            key = unused_ebook_key(store, "Frank Herbert", "Dune?", "epub")
            self.assertRegex(key, r"^ebook/frank-herbert/dune-[0-9a-f]{8}\.epub$")
            self.assertFalse(store.exists(key))

    def test_unused_ebook_key_suffixes_empty_slugs(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = ObjectStore(Path(tmp), "http://objects.test")
            first = unused_ebook_key(store, "刘慈欣", "三体", "epub")
            store.put(first, b"a")
            second = unused_ebook_key(store, "刘慈欣", "球状闪电", "epub")
            self.assertRegex(first, r"^ebook/unknown/untitled-[0-9a-f]{8}\.epub$")
            self.assertNotEqual(first, second)

    def test_put_address_and_delete(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            store = ObjectStore(Path(tmp), "http://objects.test/")
            address = store.put("ebook/a b/c.epub", b"data")
            self.assertEqual(address, "http://objects.test/ebook/a%20b/c.epub")
            self.assertEqual(store.key_for_address(address), "ebook/a b/c.epub")
            self.assertTrue(store.exists("ebook/a b/c.epub"))
            self.assertEqual((Path(tmp) / "ebook" / "a b" / "c.epub").read_bytes(), b"data")
            self.assertTrue(store.delete("ebook/a b/c.epub"))
            self.assertFalse(store.delete("ebook/a b/c.epub"))

    def test_foreign_address_has_no_key(self) -> None:
        store = ObjectStore(Path("/unused"), "http://objects.test")
        self.assertIsNone(store.key_for_address("https://bucket.s3.amazonaws.com/ebook/x.epub"))
        self.assertIsNone(store.key_for_address("http://objects.test/"))

    def test_keys_cannot_escape_root(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            root = Path(tmp) / "objects"
            store = ObjectStore(root, "http://objects.test")
            store.put("../../escape.epub", b"x")
            self.assertTrue((root / "escape.epub").exists())
            self.assertFalse((Path(tmp) / "escape.epub").exists())
            with self.assertRaises(ValueError):
                store.put("..", b"x")


if __name__ == "__main__":
    unittest.main()
