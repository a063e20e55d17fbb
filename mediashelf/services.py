from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from starlette.requests import Request

from .db import ComicStore, EbookStore, TvShowStore
from .env import Settings, load_settings
from .epub import ArchiveCache
from .fetch import ArchiveFetcher
from .storage import ObjectStore


@dataclass
class Services:
    settings: Settings
    store: EbookStore
    comics: ComicStore
    tv_shows: TvShowStore
    objects: ObjectStore
    fetcher: ArchiveFetcher
    archive_cache: ArchiveCache

    def start(self) -> None:
        self.objects.ensure_root()
        self.store.init()


def build_services(settings: Optional[Settings] = None) -> Services:
    settings = settings or load_settings()
    return Services(
        settings=settings,
        store=EbookStore(settings.db_path),
        comics=ComicStore(settings.db_path),
        tv_shows=TvShowStore(settings.db_path),
        objects=ObjectStore(settings.library_dir, settings.public_base_url),
        fetcher=ArchiveFetcher(user_agent=settings.user_agent, timeout=settings.fetch_timeout),
        archive_cache=ArchiveCache(settings.archive_cache_size, settings.archive_cache_ttl),
    )


def get_services(request: Request) -> Services:
    return request.app.state.services
