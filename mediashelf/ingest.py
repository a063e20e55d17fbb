from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import Callable, Iterable, Optional

from .errors import ValidationError
from .models import VideoVersionDraft
from .storage import image_extension

NUMBER_RE = re.compile(r"\d+")
SPRITE_RE = re.compile(r"^sprites?\.(jpg|jpeg|png)$", re.IGNORECASE)
STREAM_INF_PREFIX = "#EXT-X-STREAM-INF:"
ATTRIBUTE_RE = re.compile(r'([A-Z0-9-]+)=("[^"]*"|[^,]*)')
MASTER_PLAYLIST = "master.m3u8"


@dataclass(frozen=True)
class UploadedFile:
    """One file of a directory upload; ``path`` is relative to the picked folder."""

    path: str
    data: bytes

    @property
    def parts(self) -> tuple[str, ...]:
        return tuple(part for part in PurePosixPath(self.path.replace("\\", "/")).parts if part not in {"", "/"})

    @property
    def name(self) -> str:
        parts = self.parts
        return parts[-1] if parts else ""


def pair_upload_paths(names: list[str], paths: list[str]) -> list[str]:
    # Browsers send relative paths out of band; fall back to the bare filename.
    return [paths[index] if index < len(paths) and paths[index] else name for index, name in enumerate(names)]


def first_number(text: str) -> Optional[str]:
    match = NUMBER_RE.search(text or "")
    return match.group(0) if match else None


@dataclass(frozen=True)
class ChapterPage:
    order: int
    order_label: str
    extension: str
    file: UploadedFile


@dataclass
class ChapterFolder:
    name: str
    chapter_label: Optional[str]
    pages: list[ChapterPage] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    @property
    def chapter_number(self) -> Optional[float]:
        return float(self.chapter_label) if self.chapter_label else None

    @property
    def valid(self) -> bool:
        return not self.errors


def _chapter_folder(name: str, files: list[UploadedFile]) -> ChapterFolder:
    folder = ChapterFolder(name=name, chapter_label=first_number(name))
    if folder.chapter_label is None:
        folder.errors.append(f'Folder "{name}" must contain a chapter number')
    elif folder.chapter_number <= 0:
        folder.errors.append(f'Folder "{name}" must have a chapter number above zero')

    images = [(upload, image_extension(upload.name)) for upload in files]
    images = [(upload, extension) for upload, extension in images if extension]
    if not images:
        folder.errors.append(f'No valid image files found in "{name}"')
        return folder

    unnumbered = False
    seen: dict[int, str] = {}
    for upload, extension in images:
        label = first_number(upload.name.split(".")[0])
        if label is None or int(label) <= 0:
            unnumbered = True
            continue
        order = int(label)
        if order in seen:
            folder.errors.append(f'Page {order} appears twice in "{name}" ({seen[order]}, {upload.name})')
            continue
        seen[order] = upload.name
        folder.pages.append(ChapterPage(order=order, order_label=label, extension=extension, file=upload))
    if unnumbered:
        folder.errors.append(f'Files in "{name}" must contain order numbers above zero (e.g., page01.jpg, img_02.png)')
    folder.pages.sort(key=lambda page: page.order)
    return folder


def group_chapter_folders(files: Iterable[UploadedFile]) -> list[ChapterFolder]:
    """Group a directory upload into chapters, one per innermost folder.

    The chapter number is the first digit run of the folder name and the
    page order is the first digit run of each image's stem. Files that sit
    at the top of the upload, outside any folder, are ignored. Folders come
    back sorted by chapter number; invalid folders carry their errors.
    """

    grouped: dict[tuple[str, ...], list[UploadedFile]] = {}
    for upload in files:
        parts = upload.parts
        if len(parts) < 2:
            continue
        grouped.setdefault(parts[:-1], []).append(upload)

    folders = [_chapter_folder(parent[-1], uploads) for parent, uploads in grouped.items()]
    folders.sort(key=lambda item: (item.chapter_number is None, item.chapter_number or 0.0, item.name))

    claimed: dict[float, str] = {}
    for folder in folders:
        number = folder.chapter_number
        if number is None:
            continue
        if number in claimed:
            folder.errors.append(f'Chapter {folder.chapter_label} is in both "{claimed[number]}" and "{folder.name}"')
        else:
            claimed[number] = folder.name
    return folders


def chapter_errors(folders: list[ChapterFolder]) -> list[str]:
    return [error for folder in folders for error in folder.errors]


@dataclass(frozen=True)
class PlaylistVariant:
    playlist_path: str
    bandwidth: Optional[int] = None
    width: Optional[int] = None
    height: Optional[int] = None

    @property
    def resolution(self) -> Optional[int]:
        return self.height


def _stream_attributes(line: str) -> dict[str, str]:
    raw = line[len(STREAM_INF_PREFIX):].strip()
    return {key: value.strip().strip('"') for key, value in ATTRIBUTE_RE.findall(raw)}


def parse_master_playlist(text: str) -> list[PlaylistVariant]:
    """Variant streams of an HLS master playlist, in playlist order."""

    variants: list[PlaylistVariant] = []
    pending: Optional[dict[str, str]] = None
    for raw_line in (text or "").splitlines():
        line = raw_line.strip()
        if not line:
            continue
        if line.startswith(STREAM_INF_PREFIX):
            pending = _stream_attributes(line)
            continue
        if line.startswith("#") or pending is None:
            continue
        width = height = bandwidth = None
        size = pending.get("RESOLUTION", "")
        if "x" in size:
            raw_width, raw_height = size.split("x", 1)
            if raw_width.isdigit() and raw_height.isdigit():
                width, height = int(raw_width), int(raw_height)
        if pending.get("BANDWIDTH", "").isdigit():
            bandwidth = int(pending["BANDWIDTH"])
        variants.append(PlaylistVariant(playlist_path=line, bandwidth=bandwidth, width=width, height=height))
        pending = None
    return variants


@dataclass
class EpisodeFiles:
    master: UploadedFile
    sprite: Optional[UploadedFile]
    # (path relative to the episode folder, file)
    others: list[tuple[str, UploadedFile]]


def _is_master(upload: UploadedFile) -> bool:
    return upload.name == MASTER_PLAYLIST or upload.path.endswith(MASTER_PLAYLIST)


def plan_episode_files(files: list[UploadedFile], sprite: Optional[UploadedFile] = None) -> EpisodeFiles:
    """Split an HLS output directory into master playlist, sprite and the rest.

    Every other file keeps its path below the picked folder, so variant
    playlists stay where the master playlist points at them.
    """

    master_index = next((index for index, upload in enumerate(files) if _is_master(upload)), None)
    if master_index is None:
        raise ValidationError("master.m3u8 file not found in uploaded directory")

    sprite_index = None
    if sprite is None:
        sprite_index = next(
            (
                index
                for index, upload in enumerate(files)
                if index != master_index and SPRITE_RE.match(upload.name)
            ),
            None,
        )
        if sprite_index is not None:
            sprite = files[sprite_index]

    others: list[tuple[str, UploadedFile]] = []
    for index, upload in enumerate(files):
        if index in (master_index, sprite_index):
            continue
        parts = upload.parts
        relative = "/".join(parts[1:]) if len(parts) > 1 else upload.name
        if relative:
            others.append((relative, upload))
    return EpisodeFiles(master=files[master_index], sprite=sprite, others=others)


def video_version_drafts(
    variants: list[PlaylistVariant],
    base_key: str,
    address_for: Callable[[str], str],
) -> list[VideoVersionDraft]:
    drafts = []
    for index, variant in enumerate(variants):
        playlist = variant.playlist_path.lstrip("/")
        directory = str(PurePosixPath(playlist).parent)
        drafts.append(
            VideoVersionDraft(
                version_number=f"v{index}",
                resolution=variant.resolution,
                base_path=f"{base_key}/{directory}" if directory not in {"", "."} else base_key,
                playlist_path=address_for(f"{base_key}/{playlist}"),
                bandwidth=variant.bandwidth,
                width=variant.width,
                height=variant.height,
                is_default=index == 0,
            )
        )
    return drafts
