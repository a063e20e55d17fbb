from __future__ import annotations

import datetime as dt
import json
import sqlite3
from pathlib import Path
from typing import Optional

from .models import (
    Bookmark,
    ChapterImage,
    Comic,
    ComicChapter,
    Ebook,
    TvEpisode,
    TvShow,
    VideoVersion,
    VideoVersionDraft,
)

EBOOK_COLUMNS = "id, ebook_title, ebook_author, ebook_address"
BOOKMARK_COLUMNS = (
    "bookmark_id, ebook_id, bookmark_name, chapter_title, cfi, position_percentage, created_at, updated_at"
)


def _now_iso() -> str:
    return dt.datetime.now(dt.timezone.utc).isoformat()


def connect(path: Path) -> sqlite3.Connection:
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(path)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys = ON")
    return conn


def init_db(path: Path) -> None:
    conn = connect(path)
    with conn:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ebooks (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                ebook_title TEXT NOT NULL,
                ebook_author TEXT NOT NULL,
                ebook_address TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS ebook_bookmarks (
                bookmark_id INTEGER PRIMARY KEY AUTOINCREMENT,
                ebook_id INTEGER NOT NULL REFERENCES ebooks(id) ON DELETE CASCADE,
                bookmark_name TEXT NOT NULL,
                chapter_title TEXT,
                cfi TEXT,
                position_percentage REAL,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS comics (
                comic_id INTEGER PRIMARY KEY AUTOINCREMENT,
                comic_title TEXT NOT NULL UNIQUE,
                thumbnail_address TEXT NOT NULL,
                comic_description TEXT,
                number_of_chapters INTEGER NOT NULL DEFAULT 0,
                comic_type TEXT NOT NULL,
                tags TEXT NOT NULL DEFAULT '[]',
                views INTEGER NOT NULL DEFAULT 0,
                updated_at TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'ongoing'
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS comic_chapters (
                chapter_id INTEGER PRIMARY KEY AUTOINCREMENT,
                comic_id INTEGER NOT NULL REFERENCES comics(comic_id) ON DELETE CASCADE,
                chapter_number REAL NOT NULL,
                favorite INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS chapter_images (
                image_id INTEGER PRIMARY KEY AUTOINCREMENT,
                chapter_id INTEGER NOT NULL REFERENCES comic_chapters(chapter_id) ON DELETE CASCADE,
                image_ordering INTEGER NOT NULL,
                image_path TEXT NOT NULL
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tv_shows (
                tv_show_id INTEGER PRIMARY KEY AUTOINCREMENT,
                title TEXT NOT NULL,
                thumbnail_address TEXT NOT NULL,
                description TEXT,
                tags TEXT NOT NULL DEFAULT '[]',
                updated_at TEXT NOT NULL,
                views INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS tv_episodes (
                episode_id INTEGER PRIMARY KEY AUTOINCREMENT,
                tv_show_id INTEGER NOT NULL REFERENCES tv_shows(tv_show_id) ON DELETE CASCADE,
                season_number INTEGER NOT NULL,
                episode_number INTEGER NOT NULL,
                episode_title TEXT NOT NULL,
                sprite_address TEXT NOT NULL,
                master_playlist_address TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                views INTEGER NOT NULL DEFAULT 0
            )
            """
        )
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS video_versions (
                version_id INTEGER PRIMARY KEY AUTOINCREMENT,
                tv_episode_id INTEGER NOT NULL REFERENCES tv_episodes(episode_id) ON DELETE CASCADE,
                version_number TEXT NOT NULL,
                resolution INTEGER,
                base_path TEXT NOT NULL,
                playlist_path TEXT NOT NULL,
                bandwidth INTEGER,
                width INTEGER,
                height INTEGER,
                is_default INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_ebooks_title_author ON ebooks(ebook_title, ebook_author)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_ebook_bookmarks_ebook_id ON ebook_bookmarks(ebook_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_ebook_bookmarks_created_at ON ebook_bookmarks(created_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_comics_updated_at ON comics(updated_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_comic_chapters_comic_id ON comic_chapters(comic_id)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_comic_chapters_chapter_number ON comic_chapters(chapter_number)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_chapter_images_chapter_id ON chapter_images(chapter_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_chapter_images_ordering ON chapter_images(chapter_id, image_ordering)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tv_shows_updated_at ON tv_shows(updated_at)")
        conn.execute("CREATE INDEX IF NOT EXISTS idx_tv_episodes_tv_show_id ON tv_episodes(tv_show_id)")
        conn.execute(
            "CREATE INDEX IF NOT EXISTS idx_tv_episodes_season_episode "
            "ON tv_episodes(tv_show_id, season_number, episode_number)"
        )
        conn.execute("CREATE INDEX IF NOT EXISTS idx_video_versions_tv_episode_id ON video_versions(tv_episode_id)")
    conn.close()


def _row_to_ebook(row: sqlite3.Row) -> Ebook:
    return Ebook(
        id=row["id"],
        title=row["ebook_title"],
        author=row["ebook_author"],
        address=row["ebook_address"],
    )


def _row_to_bookmark(row: sqlite3.Row) -> Bookmark:
    return Bookmark(
        bookmark_id=row["bookmark_id"],
        ebook_id=row["ebook_id"],
        bookmark_name=row["bookmark_name"],
        chapter_title=row["chapter_title"],
        cfi=row["cfi"],
        position_percentage=row["position_percentage"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _search_clause(search: str) -> tuple[str, list[object]]:
    cleaned = (search or "").strip().lower()
    if not cleaned:
        return "", []
    pattern = f"%{cleaned}%"
    return " WHERE lower(ebook_title) LIKE ? OR lower(ebook_author) LIKE ?", [pattern, pattern]


class SqliteStore:
    """Base for the per-media stores; all of them share one sqlite file.

    Each call opens its own connection, so one store can be shared by
    concurrent requests.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def init(self) -> None:
        init_db(self.path)

    def _connect(self) -> sqlite3.Connection:
        return connect(self.path)


class EbookStore(SqliteStore):
    """Ebook and bookmark persistence."""

    def find_ebook_by_id(self, ebook_id: int) -> Optional[Ebook]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {EBOOK_COLUMNS} FROM ebooks WHERE id = ?", (ebook_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_ebook(row) if row else None

    def find_ebook_by_title_author(self, title: str, author: str) -> Optional[Ebook]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {EBOOK_COLUMNS} FROM ebooks WHERE ebook_title = ? AND ebook_author = ? LIMIT 1",
                (title, author),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_ebook(row) if row else None

    def list_ebooks(self, page: int, per_page: int, search: str = "") -> tuple[list[Ebook], int]:
        where, params = _search_clause(search)
        offset = (max(1, page) - 1) * per_page
        conn = self._connect()
        try:
            total = conn.execute(f"SELECT COUNT(*) FROM ebooks{where}", params).fetchone()[0]
            rows = conn.execute(
                f"SELECT {EBOOK_COLUMNS} FROM ebooks{where} ORDER BY ebook_author ASC, id ASC LIMIT ? OFFSET ?",
                [*params, per_page, offset],
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_ebook(row) for row in rows], int(total)

    def create_ebook(self, title: str, author: str, address: str) -> Ebook:
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "INSERT INTO ebooks (ebook_title, ebook_author, ebook_address) VALUES (?, ?, ?)",
                    (title, author, address),
                )
                ebook_id = cursor.lastrowid
        finally:
            conn.close()
        return Ebook(id=int(ebook_id), title=title, author=author, address=address)

    def delete_ebook(self, ebook_id: int) -> bool:
        conn = self._connect()
        try:
            with conn:
                deleted = conn.execute("DELETE FROM ebooks WHERE id = ?", (ebook_id,)).rowcount
        finally:
            conn.close()
        return deleted > 0

    def list_bookmarks(self, ebook_id: int) -> list[Bookmark]:
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {BOOKMARK_COLUMNS} FROM ebook_bookmarks WHERE ebook_id = ? "
                "ORDER BY created_at ASC, bookmark_id ASC",
                (ebook_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_bookmark(row) for row in rows]

    def get_bookmark(self, bookmark_id: int) -> Optional[Bookmark]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {BOOKMARK_COLUMNS} FROM ebook_bookmarks WHERE bookmark_id = ?",
                (bookmark_id,),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_bookmark(row) if row else None

    def create_bookmark(
        self,
        ebook_id: int,
        bookmark_name: str,
        cfi: str,
        chapter_title: Optional[str] = None,
        position_percentage: Optional[float] = None,
    ) -> Bookmark:
        now = _now_iso()
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO ebook_bookmarks (
                        ebook_id, bookmark_name, chapter_title, cfi, position_percentage, created_at, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (ebook_id, bookmark_name, chapter_title, cfi, position_percentage, now, now),
                )
                bookmark_id = cursor.lastrowid
        finally:
            conn.close()
        return Bookmark(
            bookmark_id=int(bookmark_id),
            ebook_id=ebook_id,
            bookmark_name=bookmark_name,
            chapter_title=chapter_title,
            cfi=cfi,
            position_percentage=position_percentage,
            created_at=now,
            updated_at=now,
        )

    def delete_bookmark(self, bookmark_id: int) -> None:
        conn = self._connect()
        try:
            with conn:
                conn.execute("DELETE FROM ebook_bookmarks WHERE bookmark_id = ?", (bookmark_id,))
        finally:
            conn.close()


COMIC_COLUMNS = (
    "comic_id, comic_title, thumbnail_address, comic_description, number_of_chapters, "
    "comic_type, tags, views, updated_at, status"
)
TV_SHOW_COLUMNS = "tv_show_id, title, thumbnail_address, description, tags, views, updated_at"
EPISODE_COLUMNS = (
    "episode_id, tv_show_id, season_number, episode_number, episode_title, "
    "sprite_address, master_playlist_address, views, updated_at"
)
VIDEO_VERSION_COLUMNS = (
    "version_id, tv_episode_id, version_number, resolution, base_path, playlist_path, "
    "bandwidth, width, height, is_default"
)


def _load_tags(raw: Optional[str]) -> list[str]:
    try:
        value = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _row_to_comic(row: sqlite3.Row) -> Comic:
    return Comic(
        comic_id=row["comic_id"],
        comic_title=row["comic_title"],
        thumbnail_address=row["thumbnail_address"],
        comic_description=row["comic_description"],
        number_of_chapters=row["number_of_chapters"],
        comic_type=row["comic_type"],
        tags=_load_tags(row["tags"]),
        views=row["views"],
        updated_at=row["updated_at"],
        status=row["status"],
    )


def _row_to_tv_show(row: sqlite3.Row) -> TvShow:
    return TvShow(
        tv_show_id=row["tv_show_id"],
        title=row["title"],
        thumbnail_address=row["thumbnail_address"],
        description=row["description"],
        tags=_load_tags(row["tags"]),
        views=row["views"],
        updated_at=row["updated_at"],
    )


def _row_to_episode(row: sqlite3.Row) -> TvEpisode:
    return TvEpisode(
        episode_id=row["episode_id"],
        tv_show_id=row["tv_show_id"],
        season_number=row["season_number"],
        episode_number=row["episode_number"],
        episode_title=row["episode_title"],
        sprite_address=row["sprite_address"],
        master_playlist_address=row["master_playlist_address"],
        views=row["views"],
        updated_at=row["updated_at"],
    )


def _row_to_video_version(row: sqlite3.Row) -> VideoVersion:
    return VideoVersion(
        version_id=row["version_id"],
        tv_episode_id=row["tv_episode_id"],
        version_number=row["version_number"],
        resolution=row["resolution"],
        base_path=row["base_path"],
        playlist_path=row["playlist_path"],
        bandwidth=row["bandwidth"],
        width=row["width"],
        height=row["height"],
        is_default=bool(row["is_default"]),
    )


class ComicStore(SqliteStore):
    """Comics, their chapters and the ordered page images of each chapter."""

    def find_comic_by_id(self, comic_id: int) -> Optional[Comic]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {COMIC_COLUMNS} FROM comics WHERE comic_id = ?", (comic_id,)).fetchone()
        finally:
            conn.close()
        return _row_to_comic(row) if row else None

    def find_comic_by_title(self, title: str) -> Optional[Comic]:
        conn = self._connect()
        try:
            row = conn.execute(f"SELECT {COMIC_COLUMNS} FROM comics WHERE comic_title = ?", (title,)).fetchone()
        finally:
            conn.close()
        return _row_to_comic(row) if row else None

    def create_comic(
        self,
        title: str,
        thumbnail_address: str,
        comic_type: str,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> Comic:
        now = _now_iso()
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO comics (
                        comic_title, thumbnail_address, comic_description, comic_type, tags, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    (title, thumbnail_address, description, comic_type, json.dumps(tags or [], ensure_ascii=False), now),
                )
                comic_id = cursor.lastrowid
        finally:
            conn.close()
        return Comic(
            comic_id=int(comic_id),
            comic_title=title,
            thumbnail_address=thumbnail_address,
            comic_description=description,
            number_of_chapters=0,
            comic_type=comic_type,
            tags=list(tags or []),
            updated_at=now,
        )

    def existing_chapter_numbers(self, comic_id: int, numbers: list[float]) -> list[float]:
        if not numbers:
            return []
        placeholders = ", ".join("?" for _ in numbers)
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT DISTINCT chapter_number FROM comic_chapters "
                f"WHERE comic_id = ? AND chapter_number IN ({placeholders}) ORDER BY chapter_number ASC",
                [comic_id, *numbers],
            ).fetchall()
        finally:
            conn.close()
        return [float(row["chapter_number"]) for row in rows]

    def get_or_create_chapter(self, comic_id: int, chapter_number: float) -> int:
        conn = self._connect()
        try:
            with conn:
                row = conn.execute(
                    "SELECT chapter_id FROM comic_chapters WHERE comic_id = ? AND chapter_number = ? LIMIT 1",
                    (comic_id, chapter_number),
                ).fetchone()
                if row:
                    return int(row["chapter_id"])
                cursor = conn.execute(
                    "INSERT INTO comic_chapters (comic_id, chapter_number) VALUES (?, ?)",
                    (comic_id, chapter_number),
                )
                return int(cursor.lastrowid)
        finally:
            conn.close()

    def add_chapter_image(self, chapter_id: int, image_ordering: int, image_path: str) -> ChapterImage:
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "INSERT INTO chapter_images (chapter_id, image_ordering, image_path) VALUES (?, ?, ?)",
                    (chapter_id, image_ordering, image_path),
                )
                image_id = cursor.lastrowid
        finally:
            conn.close()
        return ChapterImage(
            image_id=int(image_id),
            chapter_id=chapter_id,
            image_ordering=image_ordering,
            image_path=image_path,
        )

    def refresh_chapter_count(self, comic_id: int) -> int:
        conn = self._connect()
        try:
            with conn:
                conn.execute(
                    """
                    UPDATE comics
                    SET number_of_chapters = (SELECT COUNT(*) FROM comic_chapters WHERE comic_id = ?),
                        updated_at = ?
                    WHERE comic_id = ?
                    """,
                    (comic_id, _now_iso(), comic_id),
                )
                row = conn.execute(
                    "SELECT number_of_chapters FROM comics WHERE comic_id = ?", (comic_id,)
                ).fetchone()
        finally:
            conn.close()
        return int(row["number_of_chapters"]) if row else 0

    def list_chapters(self, comic_id: int) -> list[ComicChapter]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT c.chapter_id, c.comic_id, c.chapter_number, c.favorite,
                       COUNT(i.image_id) AS image_count,
                       (SELECT f.image_path FROM chapter_images f WHERE f.chapter_id = c.chapter_id
                        ORDER BY f.image_ordering ASC LIMIT 1) AS first_image_path
                FROM comic_chapters c
                LEFT JOIN chapter_images i ON i.chapter_id = c.chapter_id
                WHERE c.comic_id = ?
                GROUP BY c.chapter_id, c.chapter_number, c.favorite
                ORDER BY c.chapter_number DESC
                """,
                (comic_id,),
            ).fetchall()
        finally:
            conn.close()
        return [
            ComicChapter(
                chapter_id=row["chapter_id"],
                comic_id=row["comic_id"],
                chapter_number=float(row["chapter_number"]),
                favorite=bool(row["favorite"]),
                image_count=int(row["image_count"]),
                first_image_path=row["first_image_path"],
            )
            for row in rows
        ]

    def chapter_images(self, comic_id: int, chapter_number: float) -> list[ChapterImage]:
        conn = self._connect()
        try:
            rows = conn.execute(
                """
                SELECT i.image_id, i.chapter_id, i.image_ordering, i.image_path
                FROM chapter_images i
                JOIN comic_chapters c ON c.chapter_id = i.chapter_id
                WHERE c.comic_id = ? AND c.chapter_number = ?
                ORDER BY i.image_ordering ASC, i.image_id ASC
                """,
                (comic_id, chapter_number),
            ).fetchall()
        finally:
            conn.close()
        return [
            ChapterImage(
                image_id=row["image_id"],
                chapter_id=row["chapter_id"],
                image_ordering=row["image_ordering"],
                image_path=row["image_path"],
            )
            for row in rows
        ]


class TvShowStore(SqliteStore):
    """TV shows, their episodes and the HLS variants of each episode."""

    def find_tv_show(self, tv_show_id: int) -> Optional[TvShow]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {TV_SHOW_COLUMNS} FROM tv_shows WHERE tv_show_id = ?", (tv_show_id,)
            ).fetchone()
        finally:
            conn.close()
        return _row_to_tv_show(row) if row else None

    def create_tv_show(
        self,
        title: str,
        thumbnail_address: str,
        description: Optional[str] = None,
        tags: Optional[list[str]] = None,
    ) -> TvShow:
        now = _now_iso()
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    "INSERT INTO tv_shows (title, thumbnail_address, description, tags, updated_at) VALUES (?, ?, ?, ?, ?)",
                    (title, thumbnail_address, description, json.dumps(tags or [], ensure_ascii=False), now),
                )
                tv_show_id = cursor.lastrowid
        finally:
            conn.close()
        return TvShow(
            tv_show_id=int(tv_show_id),
            title=title,
            thumbnail_address=thumbnail_address,
            description=description,
            tags=list(tags or []),
            updated_at=now,
        )

    def find_episode(self, tv_show_id: int, season_number: int, episode_number: int) -> Optional[TvEpisode]:
        conn = self._connect()
        try:
            row = conn.execute(
                f"SELECT {EPISODE_COLUMNS} FROM tv_episodes "
                "WHERE tv_show_id = ? AND season_number = ? AND episode_number = ? LIMIT 1",
                (tv_show_id, season_number, episode_number),
            ).fetchone()
        finally:
            conn.close()
        return _row_to_episode(row) if row else None

    def create_episode(
        self,
        tv_show_id: int,
        season_number: int,
        episode_number: int,
        episode_title: str,
        sprite_address: str,
        master_playlist_address: str,
        versions: list[VideoVersionDraft],
    ) -> tuple[TvEpisode, list[VideoVersion]]:
        """Insert an episode and its variant rows in one transaction."""

        now = _now_iso()
        created: list[VideoVersion] = []
        conn = self._connect()
        try:
            with conn:
                cursor = conn.execute(
                    """
                    INSERT INTO tv_episodes (
                        tv_show_id, season_number, episode_number, episode_title,
                        sprite_address, master_playlist_address, updated_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        tv_show_id,
                        season_number,
                        episode_number,
                        episode_title,
                        sprite_address,
                        master_playlist_address,
                        now,
                    ),
                )
                episode_id = int(cursor.lastrowid)
                for draft in versions:
                    version_cursor = conn.execute(
                        """
                        INSERT INTO video_versions (
                            tv_episode_id, version_number, resolution, base_path, playlist_path,
                            bandwidth, width, height, is_default, created_at, updated_at
                        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                        """,
                        (
                            episode_id,
                            draft.version_number,
                            draft.resolution,
                            draft.base_path,
                            draft.playlist_path,
                            draft.bandwidth,
                            draft.width,
                            draft.height,
                            1 if draft.is_default else 0,
                            now,
                            now,
                        ),
                    )
                    created.append(
                        VideoVersion(
                            version_id=int(version_cursor.lastrowid),
                            tv_episode_id=episode_id,
                            version_number=draft.version_number,
                            resolution=draft.resolution,
                            base_path=draft.base_path,
                            playlist_path=draft.playlist_path,
                            bandwidth=draft.bandwidth,
                            width=draft.width,
                            height=draft.height,
                            is_default=draft.is_default,
                        )
                    )
                conn.execute("UPDATE tv_shows SET updated_at = ? WHERE tv_show_id = ?", (now, tv_show_id))
        finally:
            conn.close()
        episode = TvEpisode(
            episode_id=episode_id,
            tv_show_id=tv_show_id,
            season_number=season_number,
            episode_number=episode_number,
            episode_title=episode_title,
            sprite_address=sprite_address,
            master_playlist_address=master_playlist_address,
            updated_at=now,
        )
        return episode, created

    def list_episodes(self, tv_show_id: int) -> list[TvEpisode]:
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {EPISODE_COLUMNS} FROM tv_episodes WHERE tv_show_id = ? "
                "ORDER BY season_number ASC, episode_number ASC",
                (tv_show_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_episode(row) for row in rows]

    def list_video_versions(self, episode_id: int) -> list[VideoVersion]:
        conn = self._connect()
        try:
            rows = conn.execute(
                f"SELECT {VIDEO_VERSION_COLUMNS} FROM video_versions WHERE tv_episode_id = ? ORDER BY version_id ASC",
                (episode_id,),
            ).fetchall()
        finally:
            conn.close()
        return [_row_to_video_version(row) for row in rows]
