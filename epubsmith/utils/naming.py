import re
import html
import uuid
import random
import posixpath
import unicodedata
from urllib.parse import urlparse
from typing import Optional

MIME_EXTENSIONS = {
    'image/jpeg': 'jpg',
    'image/jpg': 'jpg',
    'image/pjpeg': 'jpg',
    'image/png': 'png',
    'image/gif': 'gif',
    'image/webp': 'webp',
    'image/svg+xml': 'svg',
    'image/bmp': 'bmp',
    'image/avif': 'avif',
    'image/tiff': 'tif',
}
KNOWN_EXTENSIONS = {'jpg', 'jpeg', 'png', 'gif', 'webp', 'svg', 'bmp', 'avif', 'tif', 'tiff'}
EXTENSION_ALIASES = {'jpeg': 'jpg', 'tiff': 'tif'}
DEFAULT_EXTENSION = 'jpg'
SLUG_MAX_LEN = 100

def new_token(rng: Optional[random.Random] = None) -> str:
    """Opaque identifier for one resource; fresh on every call."""
    if rng is None:
        return uuid.uuid4().hex
    return uuid.UUID(int=rng.getrandbits(128), version=4).hex

def extension_for(mime_type: Optional[str], source_url: Optional[str] = None) -> str:
    mime = (mime_type or '').split(';')[0].strip().lower()
    if mime in MIME_EXTENSIONS:
        return MIME_EXTENSIONS[mime]
    if source_url:
        path = urlparse(source_url).path or source_url
        _, ext = posixpath.splitext(posixpath.basename(path))
        ext = ext.lstrip('.').lower()
        if ext in KNOWN_EXTENSIONS:
            return EXTENSION_ALIASES.get(ext, ext)
    return DEFAULT_EXTENSION

def slugify(title: Optional[str]) -> str:
    text = unicodedata.normalize("NFKD", title or "")
    text = text.encode("ascii", "ignore").decode("ascii").lower()
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    text = text[:SLUG_MAX_LEN].strip("-")
    return text or "untitled"

def escape_xml(text: Optional[str]) -> str:
    if text is None:
        return ""
    return html.escape(str(text), quote=True)
