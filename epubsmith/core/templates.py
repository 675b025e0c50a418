import datetime as dt
from typing import List, Optional

from . .models import (
    NormalizedChapter, ResolvedCover, PLACEHOLDER_SRC, STYLESHEETS, DEFAULT_LANGUAGE
)
from . .utils.naming import escape_xml

STYLESHEET_IDS = {"override_v1.css": "style-override", "epub.css": "style-epub"}
NAV_TITLE = "Table of Contents"

def format_modified(moment: Optional[dt.datetime] = None) -> str:
    moment = moment or dt.datetime.now(dt.timezone.utc)
    if moment.tzinfo is not None:
        moment = moment.astimezone(dt.timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%SZ")

def book_title(title: str, author: str) -> str:
    return f"{title} - {author}"

def container_template() -> str:
    return """<?xml version="1.0" encoding="UTF-8"?>
<container version="1.0" xmlns="urn:oasis:names:tc:opendocument:xmlns:container">
  <rootfiles>
    <rootfile full-path="OEBPS/content.opf" media-type="application/oebps-package+xml"/>
  </rootfiles>
</container>
"""

def _stylesheet_links() -> str:
    return "\n".join(f'    <link rel="stylesheet" type="text/css" href="{name}" />' for name in STYLESHEETS)

def chapter_template(chapter: NormalizedChapter, language: str = DEFAULT_LANGUAGE) -> str:
    # content is already serialized markup and goes in as is
    title = escape_xml(chapter.title)
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" xmlns:xlink="http://www.w3.org/1999/xlink" lang="{escape_xml(language)}" xml:lang="{escape_xml(language)}">
  <head>
    <meta charset="UTF-8" />
    <title>{title}</title>
{_stylesheet_links()}
  </head>
  <body>
    <h1>{title}</h1>{chapter.content}
  </body>
</html>
"""

def toc_template(title: str, chapters: List[NormalizedChapter], language: str = DEFAULT_LANGUAGE) -> str:
    entries = "\n".join(
        f'        <li><a href="{chapter.file_name}">{escape_xml(chapter.title)}</a></li>'
        for chapter in chapters
    )
    return f"""<?xml version="1.0" encoding="UTF-8"?>
<!DOCTYPE html>
<html xmlns="http://www.w3.org/1999/xhtml" xmlns:epub="http://www.idpf.org/2007/ops" lang="{escape_xml(language)}" xml:lang="{escape_xml(language)}">
  <head>
    <meta charset="UTF-8" />
    <title>{escape_xml(title)}</title>
{_stylesheet_links()}
  </head>
  <body>
    <nav epub:type="toc" id="toc">
      <h1>{NAV_TITLE}</h1>
      <ol>
{entries}
      </ol>
    </nav>
  </body>
</html>
"""

def _manifest_items(chapters: List[NormalizedChapter], cover: Optional[ResolvedCover]) -> List[str]:
    items = [
        '<item id="toc" href="toc.xhtml" media-type="application/xhtml+xml" properties="nav" />',
        f'<item id="chapter-image-placeholder" href="{PLACEHOLDER_SRC}" media-type="image/jpeg" />',
    ]
    if cover:
        items.append(
            f'<item id="cover-image" href="images/{escape_xml(cover.file_name)}" '
            f'media-type="{escape_xml(cover.mime_type)}" properties="cover-image" />'
        )
    for name in STYLESHEETS:
        items.append(f'<item id="{STYLESHEET_IDS[name]}" href="{name}" media-type="text/css" />')
    for chapter in chapters:
        items.append(f'<item id="chapter-{chapter.id}" href="{chapter.file_name}" media-type="application/xhtml+xml" />')
        for image in chapter.images:
            items.append(
                f'<item id="chapter-image-{escape_xml(image.id)}" href="images/{escape_xml(image.id)}" '
                f'media-type="{escape_xml(image.mime_type)}" />'
            )
    return items

def content_template(
    title: str,
    chapters: List[NormalizedChapter],
    author: str,
    publisher: str,
    cover: Optional[ResolvedCover],
    identifier: str,
    modified: str,
    description: str = "",
    language: str = DEFAULT_LANGUAGE,
) -> str:
    """Package document: metadata, manifest, spine and guide."""
    metadata = [
        f'<dc:identifier id="BookId">{escape_xml(identifier)}</dc:identifier>',
        f'<dc:title>{escape_xml(book_title(title, author))}</dc:title>',
        f'<dc:language>{escape_xml(language)}</dc:language>',
    ]
    if description:
        metadata.append(f'<dc:description>{escape_xml(description)}</dc:description>')
    metadata += [
        f'<dc:creator id="creator">{escape_xml(author)}</dc:creator>',
        f'<dc:publisher>{escape_xml(publisher)}</dc:publisher>',
        f'<meta property="dcterms:modified">{modified}</meta>',
    ]
    if cover:
        metadata.append('<meta name="cover" content="cover-image" />')

    spine = ['<itemref idref="toc" />'] + [f'<itemref idref="chapter-{chapter.id}" />' for chapter in chapters]

    guide = [f'<reference type="toc" title="{NAV_TITLE}" href="toc.xhtml" />']
    if cover:
        # no cover page is written, so the reference targets the image
        guide.append(f'<reference type="cover" title="Cover" href="images/{escape_xml(cover.file_name)}" />')

    def block(lines: List[str]) -> str:
        return "\n".join(f"    {line}" for line in lines)

    return f"""<?xml version="1.0" encoding="UTF-8"?>
<package xmlns="http://www.idpf.org/2007/opf" version="3.0" unique-identifier="BookId">
  <metadata xmlns:dc="http://purl.org/dc/elements/1.1/">
{block(metadata)}
  </metadata>
  <manifest>
{block(_manifest_items(chapters, cover))}
  </manifest>
  <spine>
{block(spine)}
  </spine>
  <guide>
{block(guide)}
  </guide>
</package>
"""
