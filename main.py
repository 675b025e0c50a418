import argparse
import sys
import json
import asyncio
from dataclasses import replace

from epubsmith.models import log, Book, EpubBuildError, ConfigError
from epubsmith.core.config import load_config
from epubsmith.core.packager import EpubPackager

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Assemble a scraped book (JSON) into an EPUB")
    parser.add_argument("book", help="Book JSON file ({title, author, cover, chapters: [{title, content}]})")
    parser.add_argument("-o", "--output", help="Output filename (default: <title>-<author>.epub)")
    parser.add_argument("--config", help="YAML config file")
    parser.add_argument("--image-base-url", help="Base URL relative image sources are resolved against")
    parser.add_argument("--publisher", help="Publisher written to the package metadata")
    parser.add_argument("--no-delay", action="store_true", help="Skip the politeness delay between image requests")
    parser.add_argument("--no-progress", action="store_true", help="Hide the chapter progress bar")
    return parser.parse_args(argv)

def load_book(path: str) -> Book:
    with open(path, 'r', encoding='utf-8') as f:
        return Book.from_dict(json.load(f))

async def async_main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        log.error(str(e))
        return 1

    if args.image_base_url: config = replace(config, image_base_url=args.image_base_url)
    if args.publisher: config = replace(config, publisher=args.publisher)
    if args.no_delay: config = replace(config, delay_min=0.0, delay_max=0.0)
    if args.no_progress: config = replace(config, show_progress=False)

    try:
        book = load_book(args.book)
    except (OSError, ValueError) as e:
        log.error(f"Could not read book {args.book}: {e}")
        return 1

    if not book.chapters:
        log.error("The book has no chapters.")
        return 1

    try:
        data, fname = await EpubPackager.build_archive(book, config=config)
    except EpubBuildError as e:
        log.error(f"EPUB build failed: {e}")
        return 1

    out_path = args.output or fname
    with open(out_path, 'wb') as f:
        f.write(data)
    log.info(f"Wrote EPUB: {out_path}")
    return 0

if __name__ == "__main__":
    sys.exit(asyncio.run(async_main()))
