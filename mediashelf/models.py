from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Optional


@dataclass
class Ebook:
    id: int
    title: str
    author: str
    address: str


@dataclass
class Bookmark:
    bookmark_id: int
    ebook_id: int
    bookmark_name: str
    chapter_title: Optional[str]
    cfi: Optional[str]
    position_percentage: Optional[float]
    created_at: str
    updated_at: str


@dataclass
class Pagination:
    current_page: int
    total_items: int
    items_per_page: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total_items / self.items_per_page) if self.items_per_page else 0


def ebook_to_dict(ebook: Ebook) -> dict:
    return {
        "id": ebook.id,
        "title": ebook.title,
        "author": ebook.author,
        "address": ebook.address,
    }


def bookmark_to_dict(bookmark: Bookmark) -> dict:
    return {
        "bookmark_id": bookmark.bookmark_id,
        "bookmark_name": bookmark.bookmark_name,
        "chapter_title": bookmark.chapter_title,
        "cfi": bookmark.cfi,
        "position_percentage": bookmark.position_percentage,
        "created_at": bookmark.created_at,
        "updated_at": bookmark.updated_at,
    }


def pagination_to_dict(pagination: Pagination) -> dict:
    return {
        "currentPage": pagination.current_page,
        "totalPages": pagination.total_pages,
        "totalItems": pagination.total_items,
        "itemsPerPage": pagination.items_per_page,
    }


@dataclass
class Comic:
    comic_id: int
    comic_title: str
    thumbnail_address: str
    comic_description: Optional[str]
    number_of_chapters: int
    comic_type: str
    tags: list[str] = field(default_factory=list)
    views: int = 0
    status: str = "ongoing"
    updated_at: str = ""


@dataclass
class ComicChapter:
    chapter_id: int
    comic_id: int
    chapter_number: float
    favorite: bool = False
    image_count: int = 0
    first_image_path: Optional[str] = None


@dataclass
class ChapterImage:
    image_id: int
    chapter_id: int
    image_ordering: int
    image_path: str


@dataclass
class TvShow:
    tv_show_id: int
    title: str
    thumbnail_address: str
    description: Optional[str]
    tags: list[str] = field(default_factory=list)
    views: int = 0
    updated_at: str = ""


@dataclass
class TvEpisode:
    episode_id: int
    tv_show_id: int
    season_number: int
    episode_number: int
    episode_title: str
    sprite_address: str
    master_playlist_address: str
    views: int = 0
    updated_at: str = ""


@dataclass
class VideoVersion:
    version_id: int
    tv_episode_id: int
    version_number: str
    resolution: Optional[int]
    base_path: str
    playlist_path: str
    bandwidth: Optional[int]
    width: Optional[int]
    height: Optional[int]
    is_default: bool


@dataclass(frozen=True)
class VideoVersionDraft:
    version_number: str
    resolution: Optional[int]
    base_path: str
    playlist_path: str
    bandwidth: Optional[int]
    width: Optional[int]
    height: Optional[int]
    is_default: bool

def format_chapter_number(value: float) -> str:
    return f"{value:g}"


def comic_to_dict(comic: Comic) -> dict:
    return {
        "comic_id": comic.comic_id,
        "comic_title": comic.comic_title,
        "thumbnail_address": comic.thumbnail_address,
        "comic_description": comic.comic_description,
        "number_of_chapters": comic.number_of_chapters,
        "comic_type": comic.comic_type,
        "tags": list(comic.tags),
        "views": comic.views,
        "updated_at": comic.updated_at,
        "status": comic.status,
    }


def chapter_to_dict(chapter: ComicChapter) -> dict:
    return {
        "chapter_id": chapter.chapter_id,
        "chapter_number": chapter.chapter_number,
        "image_count": chapter.image_count,
        "first_image_path": chapter.first_image_path,
        "favorite": chapter.favorite,
    }


def chapter_image_to_dict(image: ChapterImage) -> dict:
    return {
        "chapter_id": image.chapter_id,
        "image_ordering": image.image_ordering,
        "image_path": image.image_path,
    }


def tv_show_to_dict(show: TvShow) -> dict:
    return {
        "tv_show_id": show.tv_show_id,
        "title": show.title,
        "thumbnail_address": show.thumbnail_address,
        "description": show.description,
        "tags": list(show.tags),
        "views": show.views,
        "updated_at": show.updated_at,
    }


def episode_to_dict(episode: TvEpisode) -> dict:
    return {
        "episode_id": episode.episode_id,
        "tv_show_id": episode.tv_show_id,
        "season_number": episode.season_number,
        "episode_number": episode.episode_number,
        "episode_title": episode.episode_title,
        "sprite_address": episode.sprite_address,
        "master_playlist_address": episode.master_playlist_address,
        "views": episode.views,
        "updated_at": episode.updated_at,
    }


def video_version_to_dict(version: VideoVersion) -> dict:
    return {
        "version_id": version.version_id,
        "version_number": version.version_number,
        "resolution": version.resolution,
        "base_path": version.base_path,
        "playlist_path": version.playlist_path,
        "bandwidth": version.bandwidth,
        "width": version.width,
        "height": version.height,
        "is_default": version.is_default,
    }
