import re
import asyncio
from bs4 import BeautifulSoup, Comment, Declaration, Doctype, ProcessingInstruction
from lxml import etree as LXML_ET
from typing import List, Optional

from . .models import log, RawChapter, NormalizedChapter, ResolvedImage, UNTITLED_CHAPTER
from .resolver import ResourceResolver, image_src
from .templates import chapter_template

FOREIGN_NAMESPACES = {
    'svg': "http://www.w3.org/2000/svg",
    'math': "http://www.w3.org/1998/Math/MathML",
}
# Prefixes bound on the chapter document's root element
BOUND_PREFIXES = {'xml', 'xmlns', 'xlink', 'epub'}
XML_ATTR_NAME = re.compile(r'^[A-Za-z_][\w.\-]*(?::[A-Za-z_][\w.\-]*)?$')

def chapter_id(index: int) -> str:
    return f"{index:03d}"

def xml_safe_attribute(name: str) -> bool:
    if not XML_ATTR_NAME.match(name):
        return False
    prefix = name.rpartition(':')[0]
    return not prefix or prefix in BOUND_PREFIXES

def ensure_well_formed(chapter: NormalizedChapter) -> None:
    """Raises XMLSyntaxError if the chapter document would not parse as XML."""
    LXML_ET.fromstring(chapter_template(chapter).encode("utf-8"))

class ChapterNormalizer:
    def __init__(self, resolver: ResourceResolver, base_url: Optional[str] = None):
        self.resolver = resolver
        self.base_url = base_url

    @staticmethod
    def clean_markup(soup: BeautifulSoup) -> None:
        """Drops markup that points at resources the archive will never contain,
        or that an XML reader would choke on."""
        for img in soup.find_all('img', srcset=True):
            del img['srcset']
        for node in soup.find_all(['template', 'script']):
            node.decompose()
        for pic in soup.find_all('picture'):
            for source in pic.find_all('source', recursive=False):
                source.decompose()
        for comment in soup.find_all(string=lambda s: isinstance(s, Comment)):
            comment.extract()
        for tag in soup.find_all(True):
            for name in [n for n in tag.attrs if not xml_safe_attribute(str(n))]:
                del tag[name]
            ns = FOREIGN_NAMESPACES.get(tag.name)
            if ns and not tag.get('xmlns'):
                tag['xmlns'] = ns

    @staticmethod
    def fragment_root(soup: BeautifulSoup):
        # Whole documents contribute only their body
        for node in list(soup.contents):
            if isinstance(node, (Declaration, Doctype, ProcessingInstruction)):
                node.extract()
        return soup.body or soup

    async def _resolve_tag(self, img_tag) -> Optional[ResolvedImage]:
        image = await self.resolver.resolve_image(img_tag.get('src'), self.base_url)
        img_tag['src'] = image_src(image)
        return image

    async def normalize(self, raw: RawChapter, index: int) -> NormalizedChapter:
        cid = chapter_id(index)
        title = (raw.title or '').strip() or UNTITLED_CHAPTER
        try:
            # html5lib keeps SVG/MathML attribute case (viewBox) and namespaced attributes
            soup = BeautifulSoup(raw.html_content or '', 'html5lib')
            wrapper = self.fragment_root(soup)
            self.clean_markup(wrapper)

            img_tags = wrapper.find_all('img')
            results = await asyncio.gather(*[self._resolve_tag(tag) for tag in img_tags])
            images: List[ResolvedImage] = [img for img in results if img]
            chapter = NormalizedChapter(id=cid, title=title, content=wrapper.decode_contents(), images=images)
            ensure_well_formed(chapter)
        except Exception as e:
            log.exception(f"Could not normalize chapter {cid} '{title}', writing it with an empty body: {e}")
            return NormalizedChapter(id=cid, title=title, content='', images=[])

        fallbacks = len(img_tags) - len(images)
        if img_tags:
            log.info(f"Chapter {cid} '{title}': {len(images)}/{len(img_tags)} images resolved, {fallbacks} placeholder(s)")
        return chapter
