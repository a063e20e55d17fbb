from __future__ import annotations

from pathlib import PurePosixPath

from fastapi import Response
from fastapi.responses import JSONResponse

from .epub import Outcome, Resolution
from .errors import MediaLibraryError, NotFoundError

DEFAULT_CONTENT_TYPE = "application/octet-stream"
DISPLAY_OPTIONS_STUB = '<?xml version="1.0" encoding="UTF-8"?><display_options/>'

CONTENT_TYPES = {
    "xml": "application/xml",
    "opf": "application/oebps-package+xml",
    "ncx": "application/x-dtbncx+xml",
    "xhtml": "application/xhtml+xml",
    "html": "text/html",
    "css": "text/css",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "woff": "font/woff",
    "woff2": "font/woff2",
}


def content_type_for(path: str) -> str:
    suffix = PurePosixPath(path).suffix.lower().lstrip(".")
    return CONTENT_TYPES.get(suffix, DEFAULT_CONTENT_TYPE)


def resource_cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, OPTIONS",
        "Access-Control-Allow-Headers": "Content-Type",
    }


def proxy_cors_headers() -> dict[str, str]:
    return {
        "Access-Control-Allow-Origin": "*",
        "Access-Control-Allow-Methods": "GET, HEAD, OPTIONS",
        "Access-Control-Allow-Headers": "Range, Content-Type",
    }


def public_cache_headers() -> dict[str, str]:
    return {"Cache-Control": "public, max-age=3600"}


def resource_headers() -> dict[str, str]:
    return {**resource_cors_headers(), **public_cache_headers()}


def error_response(exc: MediaLibraryError) -> JSONResponse:
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


def preflight_response() -> Response:
    return Response(status_code=200, headers=resource_cors_headers())


def resource_response(resolution: Resolution) -> Response:
    if resolution.outcome is Outcome.OPTIONAL_MISSING:
        return Response(
            content=DISPLAY_OPTIONS_STUB,
            status_code=200,
            headers={"Content-Type": "application/xml", **resource_headers()},
        )
    if resolution.outcome is Outcome.NOT_FOUND or resolution.content is None:
        return error_response(NotFoundError(f"File not found in EPUB: {resolution.requested_path}"))
    return Response(
        content=resolution.content,
        status_code=200,
        headers={"Content-Type": content_type_for(resolution.requested_path), **resource_headers()},
    )
