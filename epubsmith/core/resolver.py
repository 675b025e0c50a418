import io
import asyncio
import random
from functools import lru_cache
from urllib.parse import urljoin
from typing import Optional, Tuple

from PIL import Image as PillowImage

from . .models import (
    log, BuildConfig, Blob, ResolvedImage, ResolvedCover,
    ASSETS_DIR, PLACEHOLDER_FILENAME, PLACEHOLDER_SRC, IMAGE_DIR_IN_EPUB
)
from . .utils.naming import new_token, extension_for
from .session import fetch_with_retry, GENERIC_MIME_TYPES

@lru_cache(maxsize=1)
def placeholder_bytes() -> bytes:
    """Plain grey JPEG shipped with the package, stored once per archive."""
    return (ASSETS_DIR / PLACEHOLDER_FILENAME).read_bytes()

def identify_image(url: str, blob: Optional[Blob]) -> Tuple[Optional[str], Optional[str]]:
    """Returns ``(mime_type, None)`` for a usable body or ``(None, reason)``."""
    if not blob or not blob.data:
        return None, "Empty body"
    declared = (blob.mime_type or '').lower()
    if declared == 'image/svg+xml':
        return declared, None
    try:
        with PillowImage.open(io.BytesIO(blob.data)) as img:
            fmt = img.format
            img.verify()
    except Exception as e:
        return None, f"Unreadable image ({declared or 'no content type'}): {e}"
    sniffed = PillowImage.MIME.get(fmt or '')
    if declared.startswith('image/') and declared not in GENERIC_MIME_TYPES:
        return declared, None
    if sniffed:
        return sniffed, None
    return None, f"Unknown image format for {url}"

class ResourceResolver:
    def __init__(self, session, config: Optional[BuildConfig] = None, rng: Optional[random.Random] = None):
        self.session = session
        self.config = config or BuildConfig()
        self.rng = rng or random.Random()

    async def politeness_delay(self) -> float:
        delay = self.rng.uniform(self.config.delay_min, self.config.delay_max)
        if delay > 0:
            await asyncio.sleep(delay)
        return delay

    async def _fetch(self, url: str) -> Tuple[Optional[Blob], Optional[str], Optional[str]]:
        try:
            blob = await fetch_with_retry(
                self.session, url,
                max_retries=self.config.max_retries,
                timeout=self.config.fetch_timeout
            )
        except Exception as e:
            return None, None, f"Unexpected error: {e!r}"
        if blob is None:
            return None, None, "Fetch failed"
        mime, err = identify_image(url, blob)
        if err:
            return None, None, err
        return blob, mime, None

    async def resolve_image(self, relative_src: Optional[str], base_url: Optional[str] = None) -> Optional[ResolvedImage]:
        src = (relative_src or '').strip()
        if not src or src.startswith(('data:', 'javascript:', 'mailto:')):
            log.warning(f"Unusable image src {src[:60]!r}, using placeholder")
            return None

        await self.politeness_delay()
        url = urljoin(base_url or self.config.image_base_url, src)
        blob, mime, err = await self._fetch(url)
        if err:
            log.warning(f"Failed to fetch (will use placeholder): {url} ({err})")
            return None

        image_id = f"{new_token(self.rng)}.{extension_for(mime, src)}"
        log.debug(f"Fetched {src} -> {IMAGE_DIR_IN_EPUB}/{image_id}")
        return ResolvedImage(id=image_id, mime_type=mime, data=blob.data)

    async def resolve_cover(self, cover_url: Optional[str]) -> Optional[ResolvedCover]:
        url = (cover_url or '').strip()
        if not url:
            return None
        blob, mime, err = await self._fetch(url)
        if err:
            log.warning(f"Failed to fetch cover image {url} ({err}), continuing without cover")
            return None
        file_name = f"cover.{extension_for(mime, url)}"
        log.info(f"Fetched cover {url} as {file_name}")
        return ResolvedCover(file_name=file_name, mime_type=mime, data=blob.data)

def image_src(image: Optional[ResolvedImage]) -> str:
    if image is None:
        return PLACEHOLDER_SRC
    return f"{IMAGE_DIR_IN_EPUB}/{image.id}"
