from __future__ import annotations

import logging
import re
import urllib.parse
import uuid
from pathlib import Path, PurePosixPath
from typing import Callable, Optional

ALLOWED_EBOOK_EXTENSIONS = ("epub", "pdf", "mobi", "azw", "azw3")
EBOOK_PREFIX = "ebook"
ALLOWED_IMAGE_EXTENSIONS = ("jpg", "jpeg", "png", "gif", "webp")
COMIC_PREFIX = "comic"
TV_SHOW_PREFIX = "tv-show"

logger = logging.getLogger("mediashelf.storage")


def slugify(value: str) -> str:
    slug = value.lower()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"\s+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip()


def ebook_extension(filename: str) -> Optional[str]:
    suffix = PurePosixPath(filename or "").suffix.lower().lstrip(".")
    if suffix in ALLOWED_EBOOK_EXTENSIONS:
        return suffix
    return None


def ebook_key(author: str, title: str, extension: str, suffix: str = "") -> str:
    author_slug = slugify(author) or "unknown"
    title_slug = slugify(title) or "untitled"
    if suffix:
        title_slug = f"{title_slug}-{suffix}"
    return f"{EBOOK_PREFIX}/{author_slug}/{title_slug}.{extension}"


def unused_key(objects: ObjectStore, make_key: Callable[[str], str], force_suffix: bool = False) -> str:
    """First key from ``make_key`` that no stored object uses.

    ``make_key("")`` is tried first unless ``force_suffix`` is set; after that
    a random 8-hex suffix is passed until a free key turns up.
    """
    key = make_key("")
    if not force_suffix and not objects.exists(key):
        return key
    suffix = uuid.uuid4().hex[:8]
    key = make_key(suffix)
    while objects.exists(key):
        suffix = uuid.uuid4().hex[:8]
        key = make_key(suffix)
    return key


def unused_ebook_key(objects: ObjectStore, author: str, title: str, extension: str) -> str:
    # Titles that slug to nothing (CJK-only, punctuation) always get a suffix.
    return unused_key(
        objects,
        lambda suffix: ebook_key(author, title, extension, suffix),
        force_suffix=not (slugify(title) and slugify(author)),
    )


def image_extension(filename: str) -> Optional[str]:
    suffix = PurePosixPath(filename or "").suffix.lower().lstrip(".")
    if suffix in ALLOWED_IMAGE_EXTENSIONS:
        return suffix
    return None


def media_folder(title: str, media_id: int) -> str:
    slug = slugify(title).strip("-")
    return f"{media_id}-{slug}" if slug else str(media_id)


def comic_thumbnail_key(comic_type: str, title: str, extension: str, suffix: str = "") -> str:
    folder = slugify(title).strip("-") or "untitled"
    if suffix:
        folder = f"{folder}-{suffix}"
    return f"{COMIC_PREFIX}/{comic_type}/{folder}/thumbnail.{extension}"


def chapter_image_key(comic_type: str, comic_folder: str, chapter_label: str, order_label: str, extension: str) -> str:
    return f"{COMIC_PREFIX}/{comic_type}/{comic_folder}/{chapter_label}/{order_label}.{extension}"


def tv_show_thumbnail_key(title: str, extension: str, suffix: str = "") -> str:
    folder = slugify(title).strip("-") or "untitled"
    if suffix:
        folder = f"{folder}-{suffix}"
    return f"{TV_SHOW_PREFIX}/{folder}/thumbnail.{extension}"


def episode_base_key(show_folder: str, season_number: int, episode_number: int) -> str:
    return f"{TV_SHOW_PREFIX}/{show_folder}/season-{season_number}/episode-{episode_number}"


class ObjectStore:
    """Key/value file storage published under ``public_base_url``.

    Objects live under ``root`` on disk; the web app mounts that directory
    at ``/objects`` so every stored object has a plain HTTP address.
    """

    def __init__(self, root: Path, public_base_url: str) -> None:
        self.root = root
        self.public_base_url = public_base_url.rstrip("/")

    def ensure_root(self) -> Path:
        self.root.mkdir(parents=True, exist_ok=True)
        return self.root

    def _path_for(self, key: str) -> Path:
        parts = [part for part in PurePosixPath(key).parts if part not in {"", ".", "..", "/"}]
        if not parts:
            raise ValueError(f"Invalid object key: {key!r}")
        return self.root.joinpath(*parts)

    def address_for(self, key: str) -> str:
        return f"{self.public_base_url}/{urllib.parse.quote(key)}"

    def key_for_address(self, address: str) -> Optional[str]:
        prefix = f"{self.public_base_url}/"
        if not address.startswith(prefix):
            return None
        key = urllib.parse.unquote(address[len(prefix):])
        return key or None

    def put(self, key: str, data: bytes) -> str:
        path = self._path_for(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.info("stored object %s (%d bytes)", key, len(data))
        return self.address_for(key)

    def exists(self, key: str) -> bool:
        return self._path_for(key).is_file()

    def delete(self, key: str) -> bool:
        path = self._path_for(key)
        if not path.exists():
            return False
        path.unlink()
        logger.info("deleted object %s", key)
        return True
