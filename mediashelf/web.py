from __future__ import annotations

import logging
import re
import urllib.parse
from typing import Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Request, Response, UploadFile
from fastapi.responses import JSONResponse, RedirectResponse
from fastapi.staticfiles import StaticFiles
from starlette.concurrency import run_in_threadpool

from . import media_routes
from .epub import ArchiveIndex, extract_epub_metadata, resolve
from .errors import (
    ConflictError,
    CorruptArchiveError,
    ForbiddenError,
    InvalidIdError,
    MediaLibraryError,
    NotFoundError,
    ValidationError,
    parse_positive_id,
)
from .models import Ebook, Pagination, bookmark_to_dict, ebook_to_dict, pagination_to_dict
from .responses import (
    error_response,
    preflight_response,
    proxy_cors_headers,
    public_cache_headers,
    resource_response,
)
from .services import Services, build_services, get_services
from .storage import ALLOWED_EBOOK_EXTENSIONS, ebook_extension, unused_ebook_key

EBOOKS_PAGE_SIZE = 15
REFERER_EBOOK_RE = re.compile(r"/ebook-library/(\d+)")
DEFAULT_EBOOK_CONTENT_TYPE = "application/epub+zip"

logger = logging.getLogger("mediashelf.web")
router = APIRouter()


def _clamp_int(value: object, minimum: int, default: int) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        return default
    return max(minimum, parsed)


def ebook_id_from_request(request: Request) -> int:
    """Ebook id for the page-relative resource route.

    EPUB readers request container files relative to the reader page, so the
    id is not in the path. A valid ``ebookId`` query parameter wins; the
    ``Referer`` header is the fallback when the parameter is absent or not a
    positive integer, and is unreliable in browsers that trim it. Prefer
    ``/api/ebook-library/{ebook}/{path}`` for new clients.
    """

    raw = request.query_params.get("ebookId")
    query_error: Optional[InvalidIdError] = None
    if raw:
        try:
            return parse_positive_id(raw)
        except InvalidIdError as exc:
            query_error = exc
    match = REFERER_EBOOK_RE.search(request.headers.get("referer") or "")
    if match:
        try:
            ebook_id = parse_positive_id(match.group(1))
        except InvalidIdError:
            pass
        else:
            logger.debug("ebook id %s taken from referer", ebook_id)
            return ebook_id
    if query_error is not None:
        raise query_error
    raise InvalidIdError("Ebook ID not found in request")


def _require_ebook(services: Services, ebook_id: int) -> Ebook:
    ebook = services.store.find_ebook_by_id(ebook_id)
    if ebook is None:
        raise NotFoundError("Ebook not found")
    return ebook


def _load_archive(services: Services, ebook: Ebook) -> ArchiveIndex:
    index = services.archive_cache.get(ebook.id, ebook.address)
    if index is not None:
        return index
    data = services.fetcher.fetch(ebook.address)
    index = ArchiveIndex.from_bytes(data)
    services.archive_cache.put(ebook.id, ebook.address, index)
    return index


def serve_ebook_resource(services: Services, ebook_id: int, internal_path: str) -> Response:
    ebook = _require_ebook(services, ebook_id)
    if not internal_path:
        raise NotFoundError("Resource path not specified")
    index = _load_archive(services, ebook)
    resolution = resolve(internal_path, index)
    if not resolution.found:
        logger.warning("File not found in EPUB (may be optional): %s", internal_path)
    return resource_response(resolution)


@router.get("/ebook-library/{path:path}")
async def ebook_resource(request: Request, path: str, services: Services = Depends(get_services)) -> Response:
    ebook_id = ebook_id_from_request(request)
    return await run_in_threadpool(serve_ebook_resource, services, ebook_id, path)


@router.options("/ebook-library/{path:path}")
async def ebook_resource_options(path: str) -> Response:
    return preflight_response()


@router.get("/api/ebook-library")
async def list_ebooks(request: Request, services: Services = Depends(get_services)) -> dict:
    page = _clamp_int(request.query_params.get("page"), 1, 1)
    search = request.query_params.get("search") or ""
    ebooks, total = await run_in_threadpool(services.store.list_ebooks, page, EBOOKS_PAGE_SIZE, search)
    pagination = Pagination(current_page=page, total_items=total, items_per_page=EBOOKS_PAGE_SIZE)
    return {
        "ebooks": [ebook_to_dict(ebook) for ebook in ebooks],
        "pagination": pagination_to_dict(pagination),
    }


@router.get("/api/ebook-library/{ebook}")
async def ebook_detail(ebook: str, services: Services = Depends(get_services)) -> dict:
    ebook_id = parse_positive_id(ebook)
    record = await run_in_threadpool(_require_ebook, services, ebook_id)
    bookmarks = await run_in_threadpool(services.store.list_bookmarks, ebook_id)
    payload = ebook_to_dict(record)
    payload["bookmarks"] = [bookmark_to_dict(bookmark) for bookmark in bookmarks]
    return payload


def _proxy_headers(ebook: Ebook, upstream: dict[str, str]) -> dict[str, str]:
    filename = urllib.parse.quote(ebook.title, safe="")
    headers = {
        "Content-Type": upstream.get("Content-Type") or DEFAULT_EBOOK_CONTENT_TYPE,
        "Content-Disposition": f'inline; filename="{filename}.epub"',
        "Accept-Ranges": upstream.get("Accept-Ranges") or "bytes",
        **proxy_cors_headers(),
        **public_cache_headers(),
    }
    return headers


@router.get("/api/ebook-library/{ebook}/proxy")
async def proxy_ebook(request: Request, ebook: str, services: Services = Depends(get_services)) -> Response:
    ebook_id = parse_positive_id(ebook)
    record = await run_in_threadpool(_require_ebook, services, ebook_id)
    range_header = request.headers.get("range")
    fetched = await run_in_threadpool(services.fetcher.fetch_range, record.address, range_header)
    headers = _proxy_headers(record, fetched.headers)
    content_range = fetched.headers.get("Content-Range")
    if range_header and content_range:
        headers["Content-Range"] = content_range
        return Response(content=fetched.body, status_code=206, headers=headers)
    return Response(content=fetched.body, status_code=200, headers=headers)


@router.head("/api/ebook-library/{ebook}/proxy")
async def proxy_ebook_head(ebook: str, services: Services = Depends(get_services)) -> Response:
    try:
        ebook_id = parse_positive_id(ebook)
        record = await run_in_threadpool(_require_ebook, services, ebook_id)
        fetched = await run_in_threadpool(services.fetcher.head, record.address)
    except MediaLibraryError as exc:
        logger.warning("proxy HEAD failed: %s", exc.error)
        return Response(status_code=exc.status_code)
    headers = {
        "Content-Type": fetched.headers.get("Content-Type") or DEFAULT_EBOOK_CONTENT_TYPE,
        "Content-Length": fetched.headers.get("Content-Length") or "0",
        "Accept-Ranges": "bytes",
        **proxy_cors_headers(),
    }
    return Response(status_code=200, headers=headers)


@router.options("/api/ebook-library/{ebook}/proxy")
async def proxy_ebook_options(ebook: str) -> Response:
    headers = {
        **proxy_cors_headers(),
        "Access-Control-Expose-Headers": "Content-Range, Content-Length, Accept-Ranges",
    }
    return Response(status_code=200, headers=headers)


def _optional_text(payload: dict, key: str) -> Optional[str]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError("Invalid request data", f"{key}: expected a string")
    return value or None


def _required_text(payload: dict, key: str, label: str) -> str:
    value = payload.get(key)
    if not isinstance(value, str) or not value:
        raise ValidationError("Invalid request data", f"{key}: {label} is required")
    return value


def _percentage(payload: dict) -> Optional[float]:
    value = payload.get("position_percentage")
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValidationError("Invalid request data", "position_percentage: expected a number")
    if value < 0 or value > 100:
        raise ValidationError("Invalid request data", "position_percentage: must be between 0 and 100")
    return float(value)


@router.post("/api/ebook-library/{ebook}/bookmarks")
async def create_bookmark(
    request: Request, ebook: str, services: Services = Depends(get_services)
) -> JSONResponse:
    ebook_id = parse_positive_id(ebook)
    try:
        payload = await request.json()
    except ValueError:
        raise ValidationError("Invalid request data", "body must be a JSON object") from None
    if not isinstance(payload, dict):
        raise ValidationError("Invalid request data", "body must be a JSON object")

    bookmark_name = _required_text(payload, "bookmark_name", "Bookmark name")
    cfi = _required_text(payload, "cfi", "CFI")
    chapter_title = _optional_text(payload, "chapter_title")
    position = _percentage(payload)

    await run_in_threadpool(_require_ebook, services, ebook_id)
    bookmark = await run_in_threadpool(
        services.store.create_bookmark,
        ebook_id,
        bookmark_name,
        cfi,
        chapter_title,
        position,
    )
    return JSONResponse(bookmark_to_dict(bookmark), status_code=201)


@router.delete("/api/ebook-library/{ebook}/bookmarks")
async def delete_bookmark(request: Request, ebook: str, services: Services = Depends(get_services)) -> dict:
    ebook_id = parse_positive_id(ebook)
    raw_bookmark_id = request.query_params.get("bookmarkId")
    if not raw_bookmark_id:
        raise InvalidIdError("Bookmark ID is required")
    bookmark_id = parse_positive_id(raw_bookmark_id, "bookmark ID")

    bookmark = await run_in_threadpool(services.store.get_bookmark, bookmark_id)
    if bookmark is None:
        raise NotFoundError("Bookmark not found")
    if bookmark.ebook_id != ebook_id:
        raise ForbiddenError("Bookmark does not belong to this ebook")
    await run_in_threadpool(services.store.delete_bookmark, bookmark_id)
    return {"message": "Bookmark deleted successfully"}


@router.get("/api/ebook-library/{ebook}/{path:path}")
async def ebook_resource_by_id(ebook: str, path: str, services: Services = Depends(get_services)) -> Response:
    ebook_id = parse_positive_id(ebook)
    if not path:
        await run_in_threadpool(_require_ebook, services, ebook_id)
        return RedirectResponse(f"/api/ebook-library/{ebook_id}/proxy")
    return await run_in_threadpool(serve_ebook_resource, services, ebook_id, path)


@router.options("/api/ebook-library/{ebook}/{path:path}")
async def ebook_resource_by_id_options(ebook: str, path: str) -> Response:
    return preflight_response()


def _store_ebook(services: Services, title: str, author: str, extension: str, data: bytes) -> tuple[Ebook, str]:
    if services.store.find_ebook_by_title_author(title, author) is not None:
        raise ConflictError("An ebook with this title and author already exists")
    key = unused_ebook_key(services.objects, author, title, extension)
    address = services.objects.put(key, data)
    return services.store.create_ebook(title, author, address), key


@router.post("/api/settings/manage-ebooks/create-ebook")
async def create_ebook(
    ebook_file: Optional[UploadFile] = File(None),
    ebook_title: str = Form(""),
    ebook_author: str = Form(""),
    services: Services = Depends(get_services),
) -> JSONResponse:
    if ebook_file is None or not ebook_file.filename:
        raise ValidationError("Ebook file is required")
    extension = ebook_extension(ebook_file.filename)
    if extension is None:
        allowed = ", ".join(ext.upper() for ext in ALLOWED_EBOOK_EXTENSIONS)
        raise ValidationError(f"Invalid file type. Only {allowed} are allowed.")
    data = await ebook_file.read()
    if not data:
        raise ValidationError("Ebook file is required", "uploaded file is empty")

    title = (ebook_title or "").strip()
    author = (ebook_author or "").strip()
    if extension == "epub" and (not title or not author):
        try:
            metadata = await run_in_threadpool(extract_epub_metadata, data)
        except CorruptArchiveError as exc:
            raise ValidationError("Invalid EPUB file", exc.details) from exc
        title = title or (metadata.get("title") or "")
        author = author or (metadata.get("author") or "")
    if not title or not author:
        raise ValidationError("Ebook title and author are required")

    record, key = await run_in_threadpool(_store_ebook, services, title, author, extension, data)
    logger.info("created ebook %s (%s by %s)", record.id, record.title, record.author)
    payload = ebook_to_dict(record)
    payload["key"] = key
    payload["ebookUrl"] = record.address
    return JSONResponse(payload, status_code=201)


def _remove_ebook(services: Services, ebook_id: int) -> None:
    record = _require_ebook(services, ebook_id)
    key = services.objects.key_for_address(record.address)
    if key:
        try:
            services.objects.delete(key)
        except (OSError, ValueError):
            logger.exception("failed to delete stored object for ebook %s", ebook_id)
    services.store.delete_ebook(ebook_id)
    services.archive_cache.invalidate(ebook_id)


@router.delete("/api/settings/manage-ebooks/delete-ebook")
async def delete_ebook(request: Request, services: Services = Depends(get_services)) -> dict:
    raw = request.query_params.get("id")
    if not raw:
        raise InvalidIdError("Ebook ID is required")
    ebook_id = parse_positive_id(raw)
    await run_in_threadpool(_remove_ebook, services, ebook_id)
    logger.info("deleted ebook %s", ebook_id)
    return {"message": "Ebook deleted successfully", "id": ebook_id}


async def handle_media_error(request: Request, exc: MediaLibraryError) -> Response:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log("%s %s -> %s: %s", request.method, request.url.path, exc.status_code, exc.details or exc.error)
    return error_response(exc)


async def catch_unexpected_errors(request: Request, call_next):
    # Must not re-raise: ServerErrorMiddleware logs anything that reaches it.
    try:
        return await call_next(request)
    except Exception as exc:
        logger.exception("unhandled error on %s %s", request.method, request.url.path)
        return error_response(MediaLibraryError("Internal server error", str(exc) or type(exc).__name__))


def create_app(services: Optional[Services] = None) -> FastAPI:
    services = services or build_services()
    app = FastAPI(title="mediashelf")
    app.state.services = services

    @app.on_event("startup")
    async def startup() -> None:
        logging.basicConfig(level=services.settings.log_level)
        services.start()
        logger.info(
            "database at %s, objects under %s served as %s",
            services.settings.db_path,
            services.objects.root,
            services.objects.public_base_url,
        )

    app.add_exception_handler(MediaLibraryError, handle_media_error)
    app.middleware("http")(catch_unexpected_errors)
    app.include_router(router)
    app.include_router(media_routes.router)
    app.mount("/objects", StaticFiles(directory=services.objects.ensure_root()), name="objects")
    return app


app = create_app()
