from __future__ import annotations

import enum
import threading
import time
import zipfile
import zlib
from collections import OrderedDict
from dataclasses import dataclass
from io import BytesIO
from pathlib import PurePosixPath
from typing import Callable, Optional

from lxml import etree as LXML_ET

from .errors import CorruptArchiveError

CONTAINER_PATH = "META-INF/container.xml"
CONTAINER_NS = "urn:oasis:names:tc:opendocument:xmlns:container"
OPF_NS = "http://www.idpf.org/2007/opf"


class ArchiveIndex:
    """Read-only view of a zip archive held in memory."""

    def __init__(self, zf: zipfile.ZipFile) -> None:
        self._zf = zf
        self._entries: dict[str, zipfile.ZipInfo] = {}
        for info in zf.infolist():
            if info.is_dir():
                continue
            # First occurrence wins for duplicated names.
            self._entries.setdefault(info.filename, info)

    @classmethod
    def from_bytes(cls, data: bytes) -> "ArchiveIndex":
        try:
            zf = zipfile.ZipFile(BytesIO(data))
        except (zipfile.BadZipFile, zipfile.LargeZipFile, ValueError) as exc:
            raise CorruptArchiveError("Failed to parse ebook archive", str(exc)) from exc
        return cls(zf)

    def list_entries(self) -> list[str]:
        return list(self._entries)

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def get_entry(self, path: str) -> Optional[bytes]:
        info = self._entries.get(path)
        if info is None:
            return None
        try:
            return self._zf.read(info)
        except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError) as exc:
            raise CorruptArchiveError("Failed to read ebook archive entry", f"{path}: {exc}") from exc


class Outcome(enum.Enum):
    FOUND = "found"
    OPTIONAL_MISSING = "optional-missing"
    NOT_FOUND = "not-found"


@dataclass
class Resolution:
    outcome: Outcome
    requested_path: str
    matched_path: Optional[str] = None
    content: Optional[bytes] = None

    @property
    def found(self) -> bool:
        return self.outcome is Outcome.FOUND


Matcher = Callable[[str, ArchiveIndex], Optional[str]]


def _strip_leading_slash(path: str) -> str:
    return path[1:] if path.startswith("/") else path


def match_exact(path: str, index: ArchiveIndex) -> Optional[str]:
    return path if path in index else None


def match_without_leading_slash(path: str, index: ArchiveIndex) -> Optional[str]:
    candidate = _strip_leading_slash(path)
    return candidate if candidate in index else None


def match_with_leading_slash(path: str, index: ArchiveIndex) -> Optional[str]:
    candidate = f"/{path}"
    return candidate if candidate in index else None


def match_case_insensitive(path: str, index: ArchiveIndex) -> Optional[str]:
    candidates = {path.lower(), f"/{path}".lower(), _strip_leading_slash(path).lower()}
    for entry in index.list_entries():
        if entry.lower() in candidates:
            return entry
    return None


# Applied in order; the first matcher returning an entry name wins.
MATCHERS: tuple[Matcher, ...] = (
    match_exact,
    match_without_leading_slash,
    match_with_leading_slash,
    match_case_insensitive,
)


def is_optional_missing(path: str) -> bool:
    """Apple iBooks display-options files are requested by readers but rarely shipped."""
    return "META-INF" in path and "com.apple" in path


def resolve(requested_path: str, index: ArchiveIndex) -> Resolution:
    for matcher in MATCHERS:
        matched = matcher(requested_path, index)
        if matched is None:
            continue
        content = index.get_entry(matched)
        if content is not None:
            return Resolution(Outcome.FOUND, requested_path, matched, content)
    if is_optional_missing(requested_path):
        return Resolution(Outcome.OPTIONAL_MISSING, requested_path)
    return Resolution(Outcome.NOT_FOUND, requested_path)


class ArchiveCache:
    """Bounded LRU of parsed archives keyed by ebook id.

    Entries also remember the address they were fetched from, so an ebook
    whose address changed is fetched again. ``max_entries == 0`` disables
    caching.
    """

    def __init__(self, max_entries: int = 0, ttl: float = 300.0, clock: Callable[[], float] = time.monotonic) -> None:
        self.max_entries = max_entries
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._items: "OrderedDict[int, tuple[str, float, ArchiveIndex]]" = OrderedDict()

    @property
    def enabled(self) -> bool:
        return self.max_entries > 0

    def get(self, ebook_id: int, address: str) -> Optional[ArchiveIndex]:
        if not self.enabled:
            return None
        with self._lock:
            item = self._items.get(ebook_id)
            if item is None:
                return None
            cached_address, stored_at, index = item
            if cached_address != address or self._clock() - stored_at > self.ttl:
                del self._items[ebook_id]
                return None
            self._items.move_to_end(ebook_id)
            return index

    def put(self, ebook_id: int, address: str, index: ArchiveIndex) -> None:
        if not self.enabled:
            return
        with self._lock:
            self._items[ebook_id] = (address, self._clock(), index)
            self._items.move_to_end(ebook_id)
            while len(self._items) > self.max_entries:
                self._items.popitem(last=False)

    def invalidate(self, ebook_id: int) -> None:
        with self._lock:
            self._items.pop(ebook_id, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)


def _tag_local_name(tag: object) -> str:
    if not tag or not isinstance(tag, str):
        return ""
    if "}" in tag:
        return tag.split("}", 1)[1]
    return tag


def _xml_root_from_bytes(raw: bytes) -> LXML_ET._Element:
    parser = LXML_ET.XMLParser(resolve_entities=False, no_network=True, recover=True)
    return LXML_ET.fromstring(raw, parser=parser)


def _opf_path(index: ArchiveIndex) -> Optional[str]:
    container_raw = index.get_entry(CONTAINER_PATH)
    if container_raw is None:
        return None
    root = _xml_root_from_bytes(container_raw)
    if root is None:
        return None
    rootfile = root.find(f".//{{{CONTAINER_NS}}}rootfile")
    full_path = ""
    if rootfile is not None:
        full_path = (rootfile.attrib.get("full-path") or "").strip()
    if not full_path:
        for node in root.iter():
            if _tag_local_name(node.tag) != "rootfile":
                continue
            candidate = (node.attrib.get("full-path") or "").strip()
            if candidate:
                full_path = candidate
                break
    if not full_path:
        return None
    return PurePosixPath(full_path.lstrip("/")).as_posix()


def extract_epub_metadata(data: bytes) -> dict[str, Optional[str]]:
    """Read dc:title and the first dc:creator from an EPUB package document.

    Missing container or OPF yields ``None`` values rather than an error;
    a payload that is not a zip raises ``CorruptArchiveError``.
    """

    result: dict[str, Optional[str]] = {"title": None, "author": None}
    index = ArchiveIndex.from_bytes(data)
    opf_path = _opf_path(index)
    if not opf_path:
        return result
    opf = resolve(opf_path, index)
    if not opf.found or not opf.content:
        return result
    root = _xml_root_from_bytes(opf.content)
    if root is None:
        return result
    metadata = root.find(f"{{{OPF_NS}}}metadata")
    if metadata is None:
        metadata = next((child for child in root if _tag_local_name(child.tag) == "metadata"), None)
    if metadata is None:
        return result

    for node in metadata:
        local = _tag_local_name(node.tag)
        if local not in {"title", "creator"}:
            continue
        text = "".join(node.itertext()).strip()
        if not text:
            continue
        if local == "title" and result["title"] is None:
            result["title"] = text
        elif local == "creator" and result["author"] is None:
            result["author"] = text
    return result
