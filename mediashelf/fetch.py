from __future__ import annotations

import urllib.error
import urllib.request
from dataclasses import dataclass, field
from typing import Optional

from .env import DEFAULT_USER_AGENT
from .errors import FetchError

PASSTHROUGH_HEADERS = ("Content-Type", "Content-Length", "Content-Range", "Accept-Ranges")


@dataclass
class FetchedFile:
    status: int
    body: bytes = b""
    headers: dict[str, str] = field(default_factory=dict)


class ArchiveFetcher:
    """Single-attempt HTTP GET of stored ebook files.

    Addresses come from the database, never from the client.
    """

    def __init__(self, user_agent: str = DEFAULT_USER_AGENT, timeout: float = 30.0) -> None:
        self.user_agent = user_agent
        self.timeout = timeout

    def _open(self, url: str, method: str = "GET", range_header: Optional[str] = None) -> FetchedFile:
        headers = {"User-Agent": self.user_agent}
        if range_header:
            headers["Range"] = range_header
        req = urllib.request.Request(url, headers=headers, method=method)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                body = response.read() if method != "HEAD" else b""
                status = response.status
                passthrough = {
                    name: response.headers[name] for name in PASSTHROUGH_HEADERS if response.headers.get(name)
                }
        except urllib.error.HTTPError as exc:
            raise FetchError("Failed to fetch ebook file", f"{url}: HTTP {exc.code}", status_code=exc.code) from exc
        except (urllib.error.URLError, OSError, ValueError) as exc:
            raise FetchError("Failed to fetch ebook file", str(exc)) from exc
        return FetchedFile(status=status, body=body, headers=passthrough)

    def fetch(self, url: str) -> bytes:
        return self._open(url).body

    def fetch_range(self, url: str, range_header: Optional[str] = None) -> FetchedFile:
        return self._open(url, range_header=range_header)

    def head(self, url: str) -> FetchedFile:
        return self._open(url, method="HEAD")
