"""
Local file storage for uploads and generated assets.

Files live under ``UPLOAD_DIR`` and are served by the app at
``FILES_URL_PREFIX`` (see ``docmaker.main``).
"""
from __future__ import annotations

import logging
import os
import re
import uuid
from typing import Optional

import aiofiles

from docmaker.config import settings

logger = logging.getLogger(__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def safe_filename(filename: str) -> str:
    """Strip directories and characters that do not belong in a stored name."""
    base = os.path.basename(filename or "")
    cleaned = _UNSAFE_CHARS.sub("_", base).strip("._")
    return cleaned or uuid.uuid4().hex


def public_url(relative_path: str) -> str:
    relative_path = relative_path.replace(os.sep, "/").lstrip("/")
    return f"{settings.APP_BASE_URL.rstrip('/')}{settings.FILES_URL_PREFIX}/{relative_path}"


def local_path(relative_path: str) -> str:
    return os.path.join(settings.UPLOAD_DIR, relative_path)


async def save_bytes(content: bytes, filename: str, subdir: Optional[str] = None) -> str:
    """
    Write *content* to ``UPLOAD_DIR/[subdir/]filename`` and return its public URL.
    """
    name = safe_filename(filename)
    relative = os.path.join(subdir, name) if subdir else name
    path = local_path(relative)
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)

    async with aiofiles.open(path, "wb") as out:
        await out.write(content)

    logger.info("Stored %s (%s bytes)", relative, f"{len(content):,}")
    return public_url(relative)

