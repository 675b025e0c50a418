import os
import logging
from pathlib import Path
from dataclasses import dataclass, field
from typing import List, Dict, Any

# --- Constants ---
DEFAULT_IMAGE_BASE_URL = "https://learning.oreilly.com/"
DEFAULT_PUBLISHER = "O'Reilly Media"
DEFAULT_LANGUAGE = "en"
FETCH_TIMEOUT = 30.0
MAX_RETRIES = 1
RETRY_DELAY = 1.5
DELAY_MIN = 1.0
DELAY_MAX = 10.0

EPUB_MIMETYPE = "application/epub+zip"
IMAGE_DIR_IN_EPUB = "images"
PLACEHOLDER_FILENAME = "img-placeholder.jpg"
PLACEHOLDER_SRC = f"{IMAGE_DIR_IN_EPUB}/{PLACEHOLDER_FILENAME}"
UNTITLED_CHAPTER = "[Untitled]"
STYLESHEETS = ("override_v1.css", "epub.css")
ASSETS_DIR = Path(__file__).resolve().parent / "assets"

# --- Logging ---
_LOGLEVEL = os.getenv("LOGLEVEL", "INFO").upper()
logging.basicConfig(level=getattr(logging, _LOGLEVEL, logging.INFO),
                    format='%(asctime)s - %(levelname)s - %(message)s')
log = logging.getLogger("epubsmith")

# --- Errors ---

class EpubBuildError(Exception):
    """Raised when templating or packaging cannot produce a valid archive."""

class ConfigError(Exception):
    pass

# --- Data Structures ---

@dataclass
class BuildConfig:
    """Settings shared by the resolver and the packager."""
    image_base_url: str = DEFAULT_IMAGE_BASE_URL
    publisher: str = DEFAULT_PUBLISHER
    language: str = DEFAULT_LANGUAGE
    delay_min: float = DELAY_MIN
    delay_max: float = DELAY_MAX
    fetch_timeout: float = FETCH_TIMEOUT
    max_retries: int = MAX_RETRIES
    show_progress: bool = True

@dataclass
class RawChapter:
    title: str
    html_content: str

@dataclass
class Book:
    title: str
    author: str
    cover_url: str = ""
    chapters: List[RawChapter] = field(default_factory=list)
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Book":
        """Accepts both the scraper's camelCase payload and snake_case keys.

        Raises ValueError when the payload does not have the book shape.
        """
        if not isinstance(data, dict):
            raise ValueError(f"Book must be a JSON object, got {type(data).__name__}")
        raw_chapters = data.get("chapters") or []
        if not isinstance(raw_chapters, list):
            raise ValueError("chapters must be a list")
        chapters = []
        for n, item in enumerate(raw_chapters):
            if not isinstance(item, dict):
                raise ValueError(f"Chapter {n} must be an object, got {type(item).__name__}")
            content = item.get("html_content")
            if content is None:
                content = item.get("htmlContent", item.get("content", ""))
            chapters.append(RawChapter(title=item.get("title") or "", html_content=content or ""))
        cover = data.get("cover_url") or data.get("coverUrl") or data.get("cover") or ""
        return cls(
            title=data.get("title") or "",
            author=data.get("author") or "",
            cover_url=cover,
            chapters=chapters,
            description=data.get("description") or "",
        )

@dataclass
class Blob:
    mime_type: str
    data: bytes

@dataclass
class ResolvedImage:
    id: str
    mime_type: str
    data: bytes

@dataclass
class ResolvedCover:
    file_name: str
    mime_type: str
    data: bytes

@dataclass
class NormalizedChapter:
    id: str
    title: str
    content: str
    images: List[ResolvedImage] = field(default_factory=list)

    @property
    def file_name(self) -> str:
        return f"{self.id}.xhtml"

