from __future__ import annotations

from typing import Optional


class MediaLibraryError(Exception):
    """Base error rendered as a JSON ``{error, details?}`` body."""

    status_code = 500

    def __init__(self, error: str, details: Optional[str] = None, status_code: Optional[int] = None) -> None:
        super().__init__(error)
        self.error = error
        self.details = details
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict:
        payload = {"error": self.error}
        if self.details:
            payload["details"] = self.details
        return payload


class InvalidIdError(MediaLibraryError):
    status_code = 400


class ValidationError(MediaLibraryError):
    status_code = 400


class ForbiddenError(MediaLibraryError):
    status_code = 403


class NotFoundError(MediaLibraryError):
    status_code = 404


class ConflictError(MediaLibraryError):
    status_code = 409


class FetchError(MediaLibraryError):
    """Remote archive could not be retrieved.

    ``status_code`` mirrors the upstream status when the remote host answered,
    and is 502 when it could not be reached at all.
    """

    status_code = 502


class CorruptArchiveError(MediaLibraryError):
    status_code = 500


def parse_positive_id(raw: object, label: str = "ebook ID") -> int:
    text = str(raw).strip() if raw is not None else ""
    if not text:
        raise InvalidIdError(f"Invalid {label}", f"{label} is required")
    try:
        value = int(text)
    except ValueError:
        raise InvalidIdError(f"Invalid {label}", f"expected a positive integer, got {text!r}") from None
    if value <= 0:
        raise InvalidIdError(f"Invalid {label}", f"expected a positive integer, got {text!r}")
    return value
