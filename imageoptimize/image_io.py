"""
Image loading for imageoptimize.

Resolves a data reference (http(s) URL, file:// path or base64 text) into raw
bytes plus a format identifier, then decodes it into a ProcessImage.
"""

import asyncio
import base64
import binascii
import logging
from pathlib import Path
from typing import Optional, Tuple

import aiohttp

from .errors import Base64DecodeError, FetchError, FileReadError
from .images import ProcessImage

logger = logging.getLogger(__name__)

FILE_PREFIX = "file://"
HTTP_PREFIX = "http"
# 5 minutes
FETCH_TIMEOUT = 5 * 60


def format_from_content_type(content_type: Optional[str]) -> Optional[str]:
    """
    Derive a format identifier from a Content-Type header value.

    'image/png' -> 'png', 'image/jpeg; charset=binary' -> 'jpeg'. Values without
    exactly one '/' yield None.
    """
    if not content_type:
        return None
    parts = content_type.split(";", 1)[0].strip().split("/")
    if len(parts) != 2 or not parts[1]:
        return None
    return parts[1]


async def fetch(url: str, timeout: float = FETCH_TIMEOUT) -> Tuple[bytes, Optional[str]]:
    """
    GET `url` and return (body, content_type).

    No retries: any failure is raised immediately as FetchError.
    """
    try:
        client_timeout = aiohttp.ClientTimeout(total=timeout)
        async with aiohttp.ClientSession(timeout=client_timeout) as session:
            async with session.get(url) as resp:
                resp.raise_for_status()
                content_type = resp.headers.get("Content-Type")
                body = await resp.read()
    except (aiohttp.ClientError, asyncio.TimeoutError, UnicodeError) as e:
        raise FetchError(f"fetch {url} fail, {e!r}") from e
    return body, content_type


def read_all(path: str) -> bytes:
    """Read a whole local file."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise FileReadError(f"read {path} fail, {e}") from e


async def resolve_data(data: str, ext: str = "") -> Tuple[bytes, str]:
    """
    Turn a data reference into (raw_bytes, format).

    - 'http...'  -> fetched; format from the Content-Type subtype when present
    - 'file://'  -> read from disk; format from the file extension
    - otherwise  -> standard base64; format is the caller's hint

    Args:
        data: Data reference string
        ext: Format hint, used when the source gives none

    Returns:
        (raw bytes, format identifier)
    """
    if data.startswith(HTTP_PREFIX):
        body, content_type = await fetch(data)
        ext = format_from_content_type(content_type) or ext
        return body, ext

    if data.startswith(FILE_PREFIX):
        path = data[len(FILE_PREFIX):]
        suffix = Path(path).suffix.lstrip(".")
        return read_all(path), suffix or ext

    try:
        return base64.b64decode(data.encode("ascii"), validate=True), ext
    except (binascii.Error, ValueError) as e:
        raise Base64DecodeError(f"base64 decode fail, {e}") from e


async def load_image(data: str, ext: str = "") -> ProcessImage:
    """
    Resolve and decode a data reference into a fresh ProcessImage.

    The original-pixel snapshot is NOT taken here; the pipeline does that for
    the primary load only.
    """
    raw, resolved = await resolve_data(data, ext)
    logger.debug("resolved %d bytes, format=%r", len(raw), resolved)
    return ProcessImage.new(raw, resolved)
