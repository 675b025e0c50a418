import io
import uuid
import random
import zipfile
import datetime as dt
from functools import lru_cache
from typing import List, Optional, Tuple, Union

from lxml import etree as LXML_ET
from tqdm import tqdm

from . .models import (
    log, Book, BuildConfig, NormalizedChapter, ResolvedCover, EpubBuildError,
    ASSETS_DIR, EPUB_MIMETYPE, IMAGE_DIR_IN_EPUB, PLACEHOLDER_FILENAME, STYLESHEETS
)
from . .utils.naming import new_token, slugify
from .session import get_session
from .resolver import ResourceResolver, placeholder_bytes
from .normalizer import ChapterNormalizer
from .templates import (
    container_template, chapter_template, toc_template, content_template,
    book_title, format_modified
)

OPF_NS = {"opf": "http://www.idpf.org/2007/opf"}

Entry = Tuple[str, Union[str, bytes]]

@lru_cache(maxsize=None)
def read_stylesheet(name: str) -> str:
    return (ASSETS_DIR / name).read_text(encoding="utf-8")

def archive_file_name(book: Book) -> str:
    return f"{slugify(book_title(book.title, book.author))}.epub"

def validate_package(opf: str) -> None:
    """Checks manifest id/href uniqueness and that every IDREF resolves."""
    try:
        root = LXML_ET.fromstring(opf.encode("utf-8"))
    except LXML_ET.XMLSyntaxError as e:
        raise EpubBuildError(f"Package document is not well-formed: {e}") from e

    items = root.findall("opf:manifest/opf:item", OPF_NS)
    ids = [item.get("id") for item in items]
    hrefs = [item.get("href") for item in items]
    dup_ids = sorted({i for i in ids if ids.count(i) > 1})
    if dup_ids:
        raise EpubBuildError(f"Duplicate manifest ids: {', '.join(dup_ids)}")
    dup_hrefs = sorted({h for h in hrefs if hrefs.count(h) > 1})
    if dup_hrefs:
        raise EpubBuildError(f"Duplicate manifest hrefs: {', '.join(dup_hrefs)}")

    known = set(ids)
    missing = [ref.get("idref") for ref in root.findall("opf:spine/opf:itemref", OPF_NS) if ref.get("idref") not in known]
    if missing:
        raise EpubBuildError(f"Spine references unknown manifest items: {', '.join(missing)}")
    for meta in root.findall("opf:metadata/opf:meta[@name='cover']", OPF_NS):
        if meta.get("content") not in known:
            raise EpubBuildError(f"Cover meta references unknown manifest item: {meta.get('content')}")

class EpubPackager:
    @staticmethod
    async def normalize_chapters(book: Book, normalizer: ChapterNormalizer, resolver: ResourceResolver, config: BuildConfig) -> List[NormalizedChapter]:
        chapters = []
        progress = tqdm(book.chapters, desc="Chapters", unit="chapter", disable=not config.show_progress)
        for index, raw in enumerate(progress):
            # One chapter at a time; only its own images are fetched concurrently
            if index > 0 and "<img" in (raw.html_content or "").lower():
                await resolver.politeness_delay()
            chapters.append(await normalizer.normalize(raw, index))
        return chapters

    @staticmethod
    def render_entries(
        book: Book,
        chapters: List[NormalizedChapter],
        cover: Optional[ResolvedCover],
        config: BuildConfig,
        identifier: str,
        modified: str,
    ) -> List[Entry]:
        title = book_title(book.title, book.author)
        entries: List[Entry] = [
            ("mimetype", EPUB_MIMETYPE),
            ("META-INF/container.xml", container_template()),
            ("OEBPS/content.opf", content_template(
                book.title, chapters, book.author, config.publisher, cover,
                identifier=identifier, modified=modified,
                description=book.description, language=config.language,
            )),
            ("OEBPS/toc.xhtml", toc_template(title, chapters, config.language)),
        ]
        for name in STYLESHEETS:
            entries.append((f"OEBPS/{name}", read_stylesheet(name)))
        for chapter in chapters:
            entries.append((f"OEBPS/{chapter.file_name}", chapter_template(chapter, config.language)))
            for image in chapter.images:
                entries.append((f"OEBPS/{IMAGE_DIR_IN_EPUB}/{image.id}", image.data))
        if cover:
            entries.append((f"OEBPS/{IMAGE_DIR_IN_EPUB}/{cover.file_name}", cover.data))
        entries.append((f"OEBPS/{IMAGE_DIR_IN_EPUB}/{PLACEHOLDER_FILENAME}", placeholder_bytes()))
        return entries

    @staticmethod
    def write_zip(entries: List[Entry]) -> bytes:
        names = [name for name, _ in entries]
        if not names or names[0] != "mimetype":
            raise EpubBuildError("The mimetype entry must come first")
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            raise EpubBuildError(f"Duplicate archive entries: {', '.join(dupes)}")

        out_io = io.BytesIO()
        with zipfile.ZipFile(out_io, "w", compression=zipfile.ZIP_DEFLATED) as zf:
            for name, content in entries:
                # EPUB requires mimetype first and uncompressed
                compress = zipfile.ZIP_STORED if name == "mimetype" else zipfile.ZIP_DEFLATED
                zf.writestr(name, content, compress_type=compress)
        return out_io.getvalue()

    @staticmethod
    async def build_archive(
        book: Book,
        session=None,
        config: Optional[BuildConfig] = None,
        rng: Optional[random.Random] = None,
        now: Optional[dt.datetime] = None,
    ) -> Tuple[bytes, str]:
        config = config or BuildConfig()
        if session is None:
            async with get_session(config.fetch_timeout) as own_session:
                return await EpubPackager.build_archive(book, own_session, config, rng, now)

        log.info(f"Building EPUB for '{book.title}' by {book.author or 'unknown author'} ({len(book.chapters)} chapters)")
        resolver = ResourceResolver(session, config, rng)
        normalizer = ChapterNormalizer(resolver)
        chapters = await EpubPackager.normalize_chapters(book, normalizer, resolver, config)
        cover = await resolver.resolve_cover(book.cover_url)

        try:
            identifier = f"urn:uuid:{uuid.UUID(new_token(resolver.rng))}"
            entries = EpubPackager.render_entries(book, chapters, cover, config, identifier, format_modified(now))
            validate_package(dict(entries)["OEBPS/content.opf"])
            data = EpubPackager.write_zip(entries)
        except EpubBuildError:
            raise
        except Exception as e:
            raise EpubBuildError(f"Failed to package '{book.title}': {e}") from e

        file_name = archive_file_name(book)
        image_count = sum(len(c.images) for c in chapters)
        log.info(f"Packaged {file_name}: {len(chapters)} chapters, {image_count} images, cover={'yes' if cover else 'no'}, {len(data)} bytes")
        return data, file_name
