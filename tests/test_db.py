import sqlite3
import tempfile
import unittest
from pathlib import Path

from mediashelf.db import ComicStore, EbookStore, TvShowStore, init_db
from mediashelf.models import VideoVersionDraft


class EbookStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "nested" / "mediashelf.db"
        self.store = EbookStore(self.path)
        self.store.init()

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_init_is_idempotent(self) -> None:
        init_db(self.path)
        conn = sqlite3.connect(self.path)
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
            indexes = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
        finally:
            conn.close()
        self.assertIn("ebooks", tables)
        self.assertIn("ebook_bookmarks", tables)
        self.assertIn("idx_ebooks_title_author", indexes)

    def test_ebook_roundtrip(self) -> None:
        created = self.store.create_ebook("Dune", "Frank Herbert", "http://objects.test/dune.epub")
        fetched = self.store.find_ebook_by_id(created.id)
        self.assertEqual(fetched, created)
        self.assertEqual(self.store.find_ebook_by_title_author("Dune", "Frank Herbert"), created)
        self.assertIsNone(self.store.find_ebook_by_title_author("Dune", "Someone Else"))
        self.assertIsNone(self.store.find_ebook_by_id(created.id + 1))

    def test_list_ebooks_search_and_offset(self) -> None:
        self.store.create_ebook("Emma", "Jane Austen", "a")
        self.store.create_ebook("Persuasion", "Jane Austen", "b")
        self.store.create_ebook("Dune", "Frank Herbert", "c")
        rows, total = self.store.list_ebooks(1, 2)
        self.assertEqual(total, 3)
        self.assertEqual([row.title for row in rows], ["Dune", "Emma"])
        rows, total = self.store.list_ebooks(2, 2)
        self.assertEqual([row.title for row in rows], ["Persuasion"])
        rows, total = self.store.list_ebooks(1, 15, "  JANE ")
        self.assertEqual(total, 2)

    def test_bookmarks_follow_creation_order_and_cascade(self) -> None:
        ebook = self.store.create_ebook("Dune", "Frank Herbert", "c")
        first = self.store.create_bookmark(ebook.id, "One", "epubcfi(/6/2)")
        second = self.store.create_bookmark(ebook.id, "Two", "epubcfi(/6/4)", "Chapter 2", 12.5)
        listed = self.store.list_bookmarks(ebook.id)
        self.assertEqual([item.bookmark_id for item in listed], [first.bookmark_id, second.bookmark_id])
        self.assertEqual(self.store.get_bookmark(second.bookmark_id), second)

        self.assertTrue(self.store.delete_ebook(ebook.id))
        self.assertEqual(self.store.list_bookmarks(ebook.id), [])
        self.assertIsNone(self.store.get_bookmark(first.bookmark_id))
        self.assertFalse(self.store.delete_ebook(ebook.id))

    def test_bookmark_requires_existing_ebook(self) -> None:
        with self.assertRaises(sqlite3.IntegrityError):
            self.store.create_bookmark(123, "Orphan", "epubcfi(/6/2)")


if __name__ == "__main__":
    unittest.main()


class ComicAndTvStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "mediashelf.db"
        self.comics = ComicStore(self.path)
        self.comics.init()
        self.tv_shows = TvShowStore(self.path)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_media_tables_created(self) -> None:
        conn = sqlite3.connect(self.path)
        try:
            tables = {row[0] for row in conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'")}
        finally:
            conn.close()
        for name in ("comics", "comic_chapters", "chapter_images", "tv_shows", "tv_episodes", "video_versions"):
            self.assertIn(name, tables)

    def test_chapters_are_reused_and_counted(self) -> None:
        comic = self.comics.create_comic("Beck", "http://objects.test/t.jpg", "manga", tags=["music"])
        first = self.comics.get_or_create_chapter(comic.comic_id, 1.0)
        self.assertEqual(self.comics.get_or_create_chapter(comic.comic_id, 1.0), first)
        self.comics.add_chapter_image(first, 2, "http://objects.test/2.jpg")
        self.comics.add_chapter_image(first, 1, "http://objects.test/1.jpg")
        self.comics.get_or_create_chapter(comic.comic_id, 2.5)

        self.assertEqual(self.comics.refresh_chapter_count(comic.comic_id), 2)
        self.assertEqual(self.comics.find_comic_by_id(comic.comic_id).tags, ["music"])
        self.assertEqual(self.comics.existing_chapter_numbers(comic.comic_id, [1.0, 3.0, 2.5]), [1.0, 2.5])
        chapters = self.comics.list_chapters(comic.comic_id)
        self.assertEqual([chapter.chapter_number for chapter in chapters], [2.5, 1.0])
        self.assertEqual(chapters[1].image_count, 2)
        images = self.comics.chapter_images(comic.comic_id, 1.0)
        self.assertEqual([image.image_ordering for image in images], [1, 2])

    def test_comic_delete_cascades_to_pages(self) -> None:
        comic = self.comics.create_comic("Beck", "t", "manga")
        chapter_id = self.comics.get_or_create_chapter(comic.comic_id, 1.0)
        self.comics.add_chapter_image(chapter_id, 1, "p")
        conn = self.comics._connect()
        try:
            with conn:
                conn.execute("DELETE FROM comics WHERE comic_id = ?", (comic.comic_id,))
            remaining = conn.execute("SELECT COUNT(*) FROM chapter_images").fetchone()[0]
        finally:
            conn.close()
        self.assertEqual(remaining, 0)

    def test_episode_and_versions_written_together(self) -> None:
        show = self.tv_shows.create_tv_show("Frasier", "http://objects.test/f.jpg", "Radio", ["sitcom"])
        drafts = [
            VideoVersionDraft("v0", 1080, "tv-show/1-frasier/season-1/episode-2/v0", "http://o/v0.m3u8", 5000000, 1920, 1080, True),
            VideoVersionDraft("v1", 720, "tv-show/1-frasier/season-1/episode-2/v1", "http://o/v1.m3u8", 2800000, 1280, 720, False),
        ]
        episode, versions = self.tv_shows.create_episode(show.tv_show_id, 1, 2, "Space Quest", "s", "m", drafts)
        self.assertEqual(self.tv_shows.find_episode(show.tv_show_id, 1, 2), episode)
        self.assertIsNone(self.tv_shows.find_episode(show.tv_show_id, 1, 3))
        self.assertEqual(self.tv_shows.list_video_versions(episode.episode_id), versions)
        self.assertTrue(versions[0].is_default)
        self.assertFalse(versions[1].is_default)
        self.assertEqual(self.tv_shows.list_episodes(show.tv_show_id), [episode])
