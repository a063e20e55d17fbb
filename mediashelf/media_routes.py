from __future__ import annotations

import json
import logging
import urllib.parse
from typing import Optional

from fastapi import APIRouter, Depends, File, Form, Request, UploadFile
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

from .errors import ConflictError, NotFoundError, ValidationError, parse_positive_id
from .ingest import (
    ChapterFolder,
    UploadedFile,
    chapter_errors,
    group_chapter_folders,
    pair_upload_paths,
    parse_master_playlist,
    plan_episode_files,
    video_version_drafts,
)
from .models import (
    Comic,
    TvShow,
    chapter_image_to_dict,
    chapter_to_dict,
    comic_to_dict,
    episode_to_dict,
    format_chapter_number,
    tv_show_to_dict,
    video_version_to_dict,
)
from .services import Services, get_services
from .storage import (
    chapter_image_key,
    comic_thumbnail_key,
    episode_base_key,
    image_extension,
    media_folder,
    slugify,
    tv_show_thumbnail_key,
    unused_key,
)

COMIC_TYPES = ("manga", "webtoon", "western")
INVALID_IMAGE_MESSAGE = "Invalid file type. Only JPG, PNG, GIF, and WebP are allowed."

logger = logging.getLogger("mediashelf.media")
router = APIRouter()


def _parse_tags(raw: str) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        return []
    if not isinstance(value, list):
        return []
    return [str(item) for item in value]


def _parse_chapter_number(raw: object) -> float:
    text = str(raw).strip() if raw is not None else ""
    try:
        value = float(text)
    except ValueError:
        raise ValidationError("Invalid chapterNumber", f"expected a positive number, got {text!r}") from None
    if not value > 0 or value == float("inf"):
        raise ValidationError("Invalid chapterNumber", f"expected a positive number, got {text!r}")
    return value


def _parse_file_paths(raw: str) -> list[str]:
    if not raw:
        return []
    try:
        value = json.loads(raw)
    except json.JSONDecodeError:
        raise ValidationError("Invalid filePaths", "expected a JSON array of strings") from None
    if not isinstance(value, list):
        raise ValidationError("Invalid filePaths", "expected a JSON array of strings")
    return [item if isinstance(item, str) else "" for item in value]


async def _read_uploads(files: list[UploadFile], file_paths: str) -> list[UploadedFile]:
    paths = pair_upload_paths([upload.filename or "" for upload in files], _parse_file_paths(file_paths))
    return [UploadedFile(path=path, data=await upload.read()) for path, upload in zip(paths, files)]


def _require_comic(services: Services, comic_id: int) -> Comic:
    comic = services.comics.find_comic_by_id(comic_id)
    if comic is None:
        raise NotFoundError("Comic not found")
    return comic


def _require_tv_show(services: Services, tv_show_id: int) -> TvShow:
    show = services.tv_shows.find_tv_show(tv_show_id)
    if show is None:
        raise NotFoundError("TV show not found")
    return show


def _store_comic(
    services: Services,
    title: str,
    comic_type: str,
    description: Optional[str],
    tags: list[str],
    extension: str,
    data: bytes,
) -> Comic:
    if services.comics.find_comic_by_title(title) is not None:
        raise ConflictError("A comic with this title already exists")
    key = unused_key(
        services.objects,
        lambda suffix: comic_thumbnail_key(comic_type, title, extension, suffix),
        force_suffix=not slugify(title).strip("-"),
    )
    address = services.objects.put(key, data)
    return services.comics.create_comic(title, address, comic_type, description, tags)


@router.post("/api/settings/manage-comics/create-comic")
async def create_comic(
    thumbnail: Optional[UploadFile] = File(None),
    comic_title: str = Form(""),
    comic_description: str = Form(""),
    comic_type: str = Form(""),
    tags: str = Form(""),
    services: Services = Depends(get_services),
) -> JSONResponse:
    if thumbnail is None or not thumbnail.filename:
        raise ValidationError("Thumbnail file is required")
    title = (comic_title or "").strip()
    kind = (comic_type or "").strip().lower()
    if not title or not kind:
        raise ValidationError("Comic title and type are required")
    if kind not in COMIC_TYPES:
        raise ValidationError("Invalid comic type", f"expected one of {', '.join(COMIC_TYPES)}")
    extension = image_extension(thumbnail.filename)
    if extension is None:
        raise ValidationError(INVALID_IMAGE_MESSAGE)
    data = await thumbnail.read()

    comic = await run_in_threadpool(
        _store_comic,
        services,
        title,
        kind,
        (comic_description or "").strip() or None,
        _parse_tags(tags),
        extension,
        data,
    )
    logger.info("created comic %s (%s)", comic.comic_id, comic.comic_title)
    return JSONResponse(comic_to_dict(comic), status_code=201)


@router.get("/api/comic-library/{comic}")
async def comic_detail(comic: str, services: Services = Depends(get_services)) -> dict:
    comic_id = parse_positive_id(comic, "comic ID")
    record = await run_in_threadpool(_require_comic, services, comic_id)
    chapters = await run_in_threadpool(services.comics.list_chapters, comic_id)
    payload = comic_to_dict(record)
    payload["chapters"] = [chapter_to_dict(chapter) for chapter in chapters]
    return payload


@router.post("/api/comic-library/{comic}/check-chapters")
async def check_chapters(request: Request, comic: str, services: Services = Depends(get_services)) -> JSONResponse:
    comic_id = parse_positive_id(comic, "comic ID")
    try:
        payload = await request.json()
    except ValueError:
        payload = None
    numbers = payload.get("chapterNumbers") if isinstance(payload, dict) else None
    if not isinstance(numbers, list):
        raise ValidationError("Chapter numbers array is required")
    wanted = [_parse_chapter_number(number) for number in numbers]
    existing = await run_in_threadpool(services.comics.existing_chapter_numbers, comic_id, wanted)
    return JSONResponse([format_chapter_number(number) for number in existing])


@router.get("/api/comic-library/{comic}/{chapter}")
async def chapter_detail(comic: str, chapter: str, services: Services = Depends(get_services)) -> dict:
    comic_id = parse_positive_id(comic, "comic ID")
    chapter_number = _parse_chapter_number(chapter)
    record = await run_in_threadpool(_require_comic, services, comic_id)
    images = await run_in_threadpool(services.comics.chapter_images, comic_id, chapter_number)
    if not images:
        raise NotFoundError("Chapter not found")
    numbers = sorted(item.chapter_number for item in await run_in_threadpool(services.comics.list_chapters, comic_id))
    position = numbers.index(chapter_number)
    return {
        "comic": {"comic_id": record.comic_id, "comic_title": record.comic_title},
        "chapter_number": chapter_number,
        "images": [chapter_image_to_dict(image) for image in images],
        "prev_chapter": numbers[position - 1] if position > 0 else None,
        "next_chapter": numbers[position + 1] if position + 1 < len(numbers) else None,
    }


def _store_chapter_page(
    services: Services,
    comic: Comic,
    chapter_label: str,
    chapter_number: float,
    order_label: str,
    order: int,
    extension: str,
    data: bytes,
) -> tuple[str, str]:
    folder = media_folder(comic.comic_title, comic.comic_id)
    key = chapter_image_key(comic.comic_type, folder, chapter_label, order_label, extension)
    if services.objects.exists(key):
        raise ConflictError(f"Image {order_label} for chapter {chapter_label} already exists")
    address = services.objects.put(key, data)
    chapter_id = services.comics.get_or_create_chapter(comic.comic_id, chapter_number)
    services.comics.add_chapter_image(chapter_id, order, address)
    return key, address


def _add_chapter_page(
    services: Services,
    comic_id: int,
    chapter_label: str,
    chapter_number: float,
    order_label: str,
    order: int,
    extension: str,
    data: bytes,
) -> tuple[str, str]:
    comic = _require_comic(services, comic_id)
    stored = _store_chapter_page(
        services, comic, chapter_label, chapter_number, order_label, order, extension, data
    )
    services.comics.refresh_chapter_count(comic_id)
    return stored


@router.post("/api/settings/manage-comics/create-chapter")
async def create_chapter(
    file: Optional[UploadFile] = File(None),
    comic_id: str = Form("", alias="comicId"),
    chapter_number: str = Form("", alias="chapterNumber"),
    image_order: str = Form("", alias="imageOrder"),
    services: Services = Depends(get_services),
) -> dict:
    if file is None or not file.filename:
        raise ValidationError("No file provided")
    if not comic_id or not chapter_number or not image_order:
        raise ValidationError("Missing required fields")
    comic = parse_positive_id(comic_id, "comicId")
    number = _parse_chapter_number(chapter_number)
    order = parse_positive_id(image_order, "imageOrder")
    extension = image_extension(file.filename)
    if extension is None:
        raise ValidationError(INVALID_IMAGE_MESSAGE)
    data = await file.read()

    key, address = await run_in_threadpool(
        _add_chapter_page,
        services,
        comic,
        chapter_number.strip(),
        number,
        image_order.strip(),
        order,
        extension,
        data,
    )
    return {
        "url": address,
        "key": key,
        "chapterNumber": number,
        "imageOrder": order,
        "comicId": comic,
    }


def ingest_chapters(services: Services, comic_id: int, uploads: list[UploadedFile]) -> dict:
    """Store every page of a chapter directory upload and build its rows.

    Nothing is written unless every folder is valid, none of the chapters
    exists yet and none of the target objects is taken.
    """

    comic = _require_comic(services, comic_id)
    folders: list[ChapterFolder] = group_chapter_folders(uploads)
    if not folders:
        raise ValidationError("No chapter folders found in upload", "put each chapter's images in its own folder")
    errors = chapter_errors(folders)
    if errors:
        raise ValidationError("Chapter structure validation failed", "; ".join(errors))

    existing = services.comics.existing_chapter_numbers(comic_id, [folder.chapter_number for folder in folders])
    if existing:
        listed = ", ".join(format_chapter_number(number) for number in existing)
        raise ConflictError(f"Chapters already exist: {listed}")

    folder_name = media_folder(comic.comic_title, comic.comic_id)
    for folder in folders:
        for page in folder.pages:
            key = chapter_image_key(comic.comic_type, folder_name, folder.chapter_label, page.order_label, page.extension)
            if services.objects.exists(key):
                raise ConflictError(f"Image {page.order_label} for chapter {folder.chapter_label} already exists")

    chapters = []
    for folder in folders:
        addresses = []
        for page in folder.pages:
            _, address = _store_chapter_page(
                services,
                comic,
                folder.chapter_label,
                folder.chapter_number,
                page.order_label,
                page.order,
                page.extension,
                page.file.data,
            )
            addresses.append(address)
        logger.info("comic %s: stored chapter %s with %d pages", comic_id, folder.chapter_label, len(addresses))
        chapters.append(
            {
                "folder": folder.name,
                "chapter_number": folder.chapter_number,
                "image_count": len(addresses),
                "images": addresses,
            }
        )
    number_of_chapters = services.comics.refresh_chapter_count(comic_id)
    return {
        "comicId": comic_id,
        "chapters": chapters,
        "totalImages": sum(chapter["image_count"] for chapter in chapters),
        "numberOfChapters": number_of_chapters,
    }


@router.post("/api/settings/manage-comics/upload-chapters")
async def upload_chapters(
    files: Optional[list[UploadFile]] = File(None),
    file_paths: str = Form("", alias="filePaths"),
    comic_id: str = Form("", alias="comicId"),
    services: Services = Depends(get_services),
) -> JSONResponse:
    comic = parse_positive_id(comic_id, "comicId")
    if not files:
        raise ValidationError("No files provided")
    uploads = await _read_uploads(files, file_paths)
    result = await run_in_threadpool(ingest_chapters, services, comic, uploads)
    return JSONResponse(result, status_code=201)


def _valid_url(value: str) -> bool:
    parsed = urllib.parse.urlparse(value)
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def _store_tv_show(
    services: Services,
    title: str,
    description: Optional[str],
    tags: list[str],
    thumbnail: Optional[tuple[str, bytes]],
    thumbnail_address: str,
) -> TvShow:
    address = thumbnail_address
    if thumbnail is not None:
        extension, data = thumbnail
        key = unused_key(
            services.objects,
            lambda suffix: tv_show_thumbnail_key(title, extension, suffix),
            force_suffix=not slugify(title).strip("-"),
        )
        address = services.objects.put(key, data)
    return services.tv_shows.create_tv_show(title, address, description, tags)


@router.post("/api/settings/manage-tv-shows/create-tv-show")
async def create_tv_show(
    thumbnail: Optional[UploadFile] = File(None),
    title: str = Form(""),
    description: str = Form(""),
    thumbnail_address: str = Form(""),
    tags: str = Form(""),
    services: Services = Depends(get_services),
) -> JSONResponse:
    cleaned_title = (title or "").strip()
    if not cleaned_title:
        raise ValidationError("TV show title is required")
    has_file = thumbnail is not None and bool(thumbnail.filename)
    address = (thumbnail_address or "").strip()
    if not has_file and not address:
        raise ValidationError("Thumbnail is required. Either upload a file or provide a URL.")

    upload = None
    if has_file:
        extension = image_extension(thumbnail.filename)
        if extension is None:
            raise ValidationError("Invalid thumbnail file type. Only JPG, PNG, GIF, and WebP are allowed.")
        upload = (extension, await thumbnail.read())
    elif not _valid_url(address):
        raise ValidationError("Thumbnail address must be a valid URL.")

    show = await run_in_threadpool(
        _store_tv_show,
        services,
        cleaned_title,
        (description or "").strip() or None,
        _parse_tags(tags),
        upload,
        address,
    )
    logger.info("created tv show %s (%s)", show.tv_show_id, show.title)
    return JSONResponse(tv_show_to_dict(show), status_code=201)


@router.get("/api/tv-library/{tv_show}")
async def tv_show_detail(tv_show: str, services: Services = Depends(get_services)) -> dict:
    tv_show_id = parse_positive_id(tv_show, "TV show ID")
    show = await run_in_threadpool(_require_tv_show, services, tv_show_id)
    episodes = await run_in_threadpool(services.tv_shows.list_episodes, tv_show_id)
    seasons: dict[int, list[dict]] = {}
    for episode in episodes:
        versions = await run_in_threadpool(services.tv_shows.list_video_versions, episode.episode_id)
        item = episode_to_dict(episode)
        item["video_versions"] = [video_version_to_dict(version) for version in versions]
        seasons.setdefault(episode.season_number, []).append(item)
    payload = tv_show_to_dict(show)
    payload["seasons"] = [
        {"season_number": number, "episodes": items} for number, items in sorted(seasons.items())
    ]
    return payload


def ingest_episode(
    services: Services,
    tv_show_id: int,
    season_number: int,
    episode_number: int,
    episode_title: str,
    uploads: list[UploadedFile],
    sprite: Optional[UploadedFile] = None,
) -> dict:
    """Store an HLS episode directory and create the episode and variant rows."""

    show = _require_tv_show(services, tv_show_id)
    if services.tv_shows.find_episode(tv_show_id, season_number, episode_number) is not None:
        raise ConflictError(f"Season {season_number} episode {episode_number} already exists")
    plan = plan_episode_files(uploads, sprite)
    master_text = plan.master.data.decode("utf-8", errors="replace")
    variants = parse_master_playlist(master_text)

    base_key = episode_base_key(media_folder(show.title, show.tv_show_id), season_number, episode_number)
    master_address = services.objects.put(f"{base_key}/master.m3u8", plan.master.data)
    sprite_address = master_address
    if plan.sprite is not None:
        sprite_extension = image_extension(plan.sprite.name) or "jpg"
        sprite_address = services.objects.put(f"{base_key}/sprite.{sprite_extension}", plan.sprite.data)
    for relative, upload in plan.others:
        services.objects.put(f"{base_key}/{relative}", upload.data)

    drafts = video_version_drafts(variants, base_key, services.objects.address_for)
    episode, versions = services.tv_shows.create_episode(
        tv_show_id,
        season_number,
        episode_number,
        episode_title,
        sprite_address,
        master_address,
        drafts,
    )
    logger.info(
        "tv show %s: stored S%sE%s with %d files and %d variants",
        tv_show_id,
        season_number,
        episode_number,
        len(plan.others) + 1,
        len(versions),
    )
    return {
        "episode_id": episode.episode_id,
        "tv_show_id": tv_show_id,
        "season_number": season_number,
        "episode_number": episode_number,
        "episode_title": episode.episode_title,
        "master_playlist_address": master_address,
        "sprite_address": sprite_address,
        "variants_created": len(versions),
    }


@router.post("/api/settings/manage-tv-shows/upload-episode")
async def upload_episode(
    files: Optional[list[UploadFile]] = File(None),
    sprite: Optional[UploadFile] = File(None),
    file_paths: str = Form("", alias="filePaths"),
    tv_show_id: str = Form(""),
    season_number: str = Form(""),
    episode_number: str = Form(""),
    episode_title: str = Form(""),
    services: Services = Depends(get_services),
) -> JSONResponse:
    title = (episode_title or "").strip()
    if not tv_show_id or not season_number or not episode_number or not title:
        raise ValidationError("TV show ID, season number, episode number, and episode title are required")
    if not files:
        raise ValidationError("No files provided")
    show_id = parse_positive_id(tv_show_id, "TV show ID")
    season = parse_positive_id(season_number, "season number")
    episode = parse_positive_id(episode_number, "episode number")

    uploads = await _read_uploads(files, file_paths)
    sprite_upload = None
    if sprite is not None and sprite.filename:
        sprite_upload = UploadedFile(path=sprite.filename, data=await sprite.read())
    result = await run_in_threadpool(
        ingest_episode, services, show_id, season, episode, title, uploads, sprite_upload
    )
    return JSONResponse(result, status_code=201)
