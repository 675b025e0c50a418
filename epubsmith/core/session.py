import asyncio
import aiohttp
import socket
from contextlib import asynccontextmanager
from typing import Optional
from aiohttp.resolver import ThreadedResolver
from . .models import log, Blob, FETCH_TIMEOUT, MAX_RETRIES, RETRY_DELAY

GENERIC_MIME_TYPES = {'', 'application/octet-stream', 'binary/octet-stream'}
NON_RETRY_STATUSES = {400, 401, 403, 404, 410, 451}
HEADERS = {
    'User-Agent': 'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36',
    'Accept': 'image/avif,image/webp,image/apng,image/*,*/*;q=0.8',
    'Accept-Language': 'en-US,en;q=0.5',
}

def client_timeout(seconds: Optional[float] = None) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=seconds or FETCH_TIMEOUT)

@asynccontextmanager
async def get_session(timeout: Optional[float] = None):
    # Threaded DNS avoids pycares issues on some platforms; IPv4 only
    connector = aiohttp.TCPConnector(
        resolver=ThreadedResolver(),
        ttl_dns_cache=300,
        family=socket.AF_INET
    )
    async with aiohttp.ClientSession(timeout=client_timeout(timeout), connector=connector) as session:
        yield session

async def fetch_with_retry(
    session,
    url: str,
    max_retries: int = MAX_RETRIES,
    backoff: float = RETRY_DELAY,
    timeout: Optional[float] = None
) -> Optional[Blob]:
    """Fetches ``url`` as a Blob; None on any failure."""
    attempts = max(1, max_retries)
    for attempt in range(attempts):
        try:
            async with session.get(url, headers=HEADERS, timeout=client_timeout(timeout)) as response:
                if response.status == 429 and attempt + 1 < attempts:
                    retry_after = response.headers.get("Retry-After", "")
                    wait_time = max(int(retry_after) if retry_after.isdigit() else 0, backoff * (2 ** attempt))
                    log.warning(f"Rate limit hit (429) for {url}. Cooling down for {wait_time}s...")
                    await asyncio.sleep(wait_time)
                    continue

                if response.status in NON_RETRY_STATUSES:
                    log.warning(f"Non-retryable HTTP {response.status} for {url}")
                    return None

                response.raise_for_status()
                data = await response.read()
                mime = (response.headers.get('Content-Type') or '').split(';')[0].strip().lower()
                return Blob(mime_type=mime, data=data)

        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            if attempt + 1 == attempts:
                log.warning(f"Fetch failed for {url}: {e!r}")
                return None
            wait = backoff * (2 ** attempt)
            log.warning(f"Attempt {attempt + 1}/{attempts} failed for {url}: {e!r}. Retrying in {wait}s.")
            await asyncio.sleep(wait)
    return None
