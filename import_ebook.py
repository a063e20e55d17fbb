#!/usr/bin/env python3
from __future__ import annotations

import argparse
import sys
from pathlib import Path

from mediashelf.epub import extract_epub_metadata
from mediashelf.errors import CorruptArchiveError
from mediashelf.services import build_services
from mediashelf.storage import ebook_extension, unused_ebook_key


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Copy a local ebook file into the library object store and register it."
    )
    parser.add_argument("input", help="Ebook file path (epub, pdf, mobi, azw, azw3)")
    parser.add_argument("-t", "--title", help="Title (defaults to EPUB metadata)")
    parser.add_argument("-a", "--author", help="Author (defaults to EPUB metadata)")
    return parser.parse_args(argv)


def main(argv: list[str]) -> int:
    args = parse_args(argv)
    input_path = Path(args.input)
    if not input_path.exists():
        print(f"Input file not found: {input_path}", file=sys.stderr)
        return 1

    extension = ebook_extension(input_path.name)
    if extension is None:
        print(f"Unsupported ebook type: {input_path.suffix or input_path.name}", file=sys.stderr)
        return 1

    data = input_path.read_bytes()
    title = (args.title or "").strip()
    author = (args.author or "").strip()
    if extension == "epub" and (not title or not author):
        try:
            metadata = extract_epub_metadata(data)
        except CorruptArchiveError as exc:
            print(f"Not a readable EPUB: {exc.details}", file=sys.stderr)
            return 1
        title = title or (metadata.get("title") or "")
        author = author or (metadata.get("author") or "")
    if not title or not author:
        print("Title and author are required (pass --title/--author)", file=sys.stderr)
        return 1

    services = build_services()
    services.start()
    if services.store.find_ebook_by_title_author(title, author) is not None:
        print(f"Already in library: {title} / {author}", file=sys.stderr)
        return 1

    key = unused_ebook_key(services.objects, author, title, extension)
    address = services.objects.put(key, data)
    ebook = services.store.create_ebook(title, author, address)
    print(f"Imported #{ebook.id}: {ebook.title} by {ebook.author} -> {ebook.address}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
