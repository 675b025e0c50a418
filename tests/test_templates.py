import re
import datetime as dt
from lxml import etree

from epubsmith.models import NormalizedChapter, ResolvedImage, ResolvedCover
from epubsmith.core.templates import (
    container_template, chapter_template, toc_template, content_template, format_modified
)

OPF = {"opf": "http://www.idpf.org/2007/opf", "dc": "http://purl.org/dc/elements/1.1/"}
XHTML = {"x": "http://www.w3.org/1999/xhtml"}

def _chapters():
    return [
        NormalizedChapter("000", "Intro", "<p>Hello</p>"),
        NormalizedChapter("001", "Figures", '<img src="images/aa.png"/>', images=[
            ResolvedImage("aa.png", "image/png", b"1"), ResolvedImage("bb.gif", "image/gif", b"2"),
        ]),
        NormalizedChapter("002", "Code & <Tags>", "<pre>x &lt; y</pre>"),
    ]

def _package(cover=None, title="Sample", description=""):
    return content_template(title, _chapters(), "A. Writer", "O'Reilly Media", cover,
                            identifier="urn:uuid:1234", modified="2024-05-06T07:08:09Z",
                            description=description)

def test_container_points_at_package_document():
    root = etree.fromstring(container_template().encode())
    rootfile = root.find(".//{urn:oasis:names:tc:opendocument:xmlns:container}rootfile")
    assert rootfile.get("full-path") == "OEBPS/content.opf"
    assert container_template() == container_template()

def test_chapter_document_escapes_title_not_content():
    doc = chapter_template(NormalizedChapter("002", "Code & <Tags>", "<pre>x &lt; y</pre>"))
    assert doc.startswith('<?xml version="1.0" encoding="UTF-8"?>')
    assert "<h1>Code &amp; &lt;Tags&gt;</h1><pre>x &lt; y</pre>" in doc
    assert 'href="override_v1.css"' in doc and 'href="epub.css"' in doc
    assert 'xmlns:xlink="http://www.w3.org/1999/xlink"' in doc
    root = etree.fromstring(doc.encode())
    assert root.find("x:head/x:title", XHTML).text == "Code & <Tags>"

def test_toc_lists_chapters_in_order():
    doc = toc_template("Sample - A. Writer", _chapters())
    root = etree.fromstring(doc.encode())
    links = root.findall(".//x:nav/x:ol/x:li/x:a", XHTML)
    assert [a.get("href") for a in links] == ["000.xhtml", "001.xhtml", "002.xhtml"]
    assert [a.text for a in links] == ["Intro", "Figures", "Code & <Tags>"]
    nav = root.find(".//x:nav", XHTML)
    assert nav.get("{http://www.idpf.org/2007/ops}type") == "toc"

def test_package_metadata_without_cover():
    root = etree.fromstring(_package().encode())
    assert root.findtext("opf:metadata/dc:title", namespaces=OPF) == "Sample - A. Writer"
    assert root.findtext("opf:metadata/dc:language", namespaces=OPF) == "en"
    assert root.findtext("opf:metadata/dc:creator", namespaces=OPF) == "A. Writer"
    assert root.findtext("opf:metadata/dc:publisher", namespaces=OPF) == "O'Reilly Media"
    assert root.findtext("opf:metadata/dc:identifier", namespaces=OPF) == "urn:uuid:1234"
    assert root.find("opf:metadata/dc:description", OPF) is None
    assert root.findtext("opf:metadata/opf:meta[@property='dcterms:modified']", namespaces=OPF) == "2024-05-06T07:08:09Z"
    assert root.find("opf:metadata/opf:meta[@name='cover']", OPF) is None
    assert root.find("opf:manifest/opf:item[@id='cover-image']", OPF) is None
    assert root.find("opf:guide/opf:reference[@type='cover']", OPF) is None

def test_package_manifest_spine_and_guide():
    root = etree.fromstring(_package().encode())
    items = root.findall("opf:manifest/opf:item", OPF)
    ids = [i.get("id") for i in items]
    assert len(ids) == len(set(ids))
    assert ids[:2] == ["toc", "chapter-image-placeholder"]
    assert "chapter-001" in ids and "chapter-image-aa.png" in ids and "chapter-image-bb.gif" in ids
    media = {i.get("id"): i.get("media-type") for i in items}
    assert media["chapter-image-bb.gif"] == "image/gif"
    assert media["chapter-image-placeholder"] == "image/jpeg"
    assert root.find("opf:manifest/opf:item[@id='toc']", OPF).get("properties") == "nav"

    spine = [ref.get("idref") for ref in root.findall("opf:spine/opf:itemref", OPF)]
    assert spine == ["toc", "chapter-000", "chapter-001", "chapter-002"]
    assert set(spine) <= set(ids)
    assert [r.get("href") for r in root.findall("opf:guide/opf:reference", OPF)] == ["toc.xhtml"]

def test_package_with_cover_and_description():
    cover = ResolvedCover("cover.png", "image/png", b"c")
    root = etree.fromstring(_package(cover=cover, description="A <short> book").encode())
    assert root.find("opf:metadata/opf:meta[@name='cover']", OPF).get("content") == "cover-image"
    item = root.find("opf:manifest/opf:item[@id='cover-image']", OPF)
    assert item.get("href") == "images/cover.png"
    assert item.get("media-type") == "image/png"
    assert item.get("properties") == "cover-image"
    assert root.find("opf:guide/opf:reference[@type='cover']", OPF).get("href") == "images/cover.png"
    assert root.findtext("opf:metadata/dc:description", namespaces=OPF) == "A <short> book"

def test_package_title_is_escaped():
    title = "<Tom & Jerry's \"Book\">"
    doc = _package(title=title)
    raw = re.search(r"<dc:title>(.*)</dc:title>", doc).group(1)
    assert "<" not in raw and '"' not in raw and "'" not in raw
    assert not re.search(r"&(?!amp;|lt;|gt;|quot;|#x27;)", raw)
    root = etree.fromstring(doc.encode())
    assert root.findtext("opf:metadata/dc:title", namespaces=OPF) == f"{title} - A. Writer"

def test_format_modified():
    moment = dt.datetime(2024, 1, 2, 3, 4, 5, 999, tzinfo=dt.timezone.utc)
    assert format_modified(moment) == "2024-01-02T03:04:05Z"
    plus_two = dt.datetime(2024, 1, 2, 5, 4, 5, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    assert format_modified(plus_two) == "2024-01-02T03:04:05Z"
    assert re.fullmatch(r"\d{4}-\d\d-\d\dT\d\d:\d\d:\d\dZ", format_modified())
