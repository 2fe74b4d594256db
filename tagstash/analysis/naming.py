"""Pure functions for filenames, extensions and MIME types.

Display names come from users and from remote URLs, so they are never
trusted: anything placed in a response header goes through
``sanitize_filename`` first.
"""

import mimetypes
import posixpath
import re
import unicodedata
from pathlib import PurePosixPath
from typing import Optional
from urllib.parse import quote, unquote, urlsplit

GENERIC_EXTENSION = ".img"
DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_BY_EXTENSION = {
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".png": "image/png",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".bmp": "image/bmp",
    ".tif": "image/tiff",
    ".tiff": "image/tiff",
}

# Preferred extension for MIME types where mimetypes picks an odd one
EXTENSION_BY_MIME = {
    "image/jpeg": ".jpg",
    "image/png": ".png",
    "image/gif": ".gif",
    "image/webp": ".webp",
    "image/bmp": ".bmp",
    "image/tiff": ".tiff",
    "image/svg+xml": ".svg",
    "image/x-icon": ".ico",
    "image/vnd.microsoft.icon": ".ico",
}

UNSAFE_CHARS = re.compile(r'[\x00-\x1f\x7f\\/:*?"<>|]')
NON_TOKEN_CHARS = re.compile(r"[^A-Za-z0-9._ ()\[\]+-]")


def main_mime_type(content_type: Optional[str]) -> str:
    """Strip parameters and normalize case: ``"Image/JPEG; q=1"`` -> ``"image/jpeg"``."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


def extension_for_content_type(content_type: Optional[str]) -> str:
    """Infer a file extension from a response content type.

    Only ``image/*`` types yield a specific extension; anything else,
    including a missing header, falls back to ``GENERIC_EXTENSION``.
    """
    mime = main_mime_type(content_type)
    if not mime.startswith("image/"):
        return GENERIC_EXTENSION
    if mime in EXTENSION_BY_MIME:
        return EXTENSION_BY_MIME[mime]
    subtype = re.sub(r"[^a-z0-9]", "", mime.split("/", 1)[1].split("+", 1)[0])
    return f".{subtype}" if subtype else GENERIC_EXTENSION


def extension_for_mime(mime_type: Optional[str]) -> str:
    """Recognized extension for a MIME type, ``.bin`` when unknown."""
    mime = main_mime_type(mime_type)
    if mime in EXTENSION_BY_MIME:
        return EXTENSION_BY_MIME[mime]
    guessed = mimetypes.guess_extension(mime) if mime else None
    return guessed or ".bin"


def has_known_extension(name: str) -> bool:
    suffix = PurePosixPath(name).suffix.lower()
    if not suffix:
        return False
    return suffix in MIME_BY_EXTENSION or mimetypes.guess_type(f"x{suffix}")[0] is not None


def sanitize_filename(name: Optional[str]) -> str:
    """Make an untrusted display name safe for storage and headers.

    Query strings and fragments are dropped, directories are stripped and
    control or path characters become ``_``. May return an empty string.
    """
    if not name:
        return ""
    parts = urlsplit(name)
    if parts.scheme and parts.netloc:
        name = parts.path
    else:
        name = name.split("?", 1)[0].split("#", 1)[0]
    name = name.replace("\\", "/")
    name = posixpath.basename(name)
    name = UNSAFE_CHARS.sub("_", name).strip().strip(".")
    return name


def display_name_from_url(url: str, fallback: str) -> str:
    """Derive a display name from a URL path basename.

    Falls back to ``fallback`` when the basename carries no extension.
    """
    basename = posixpath.basename(unquote(urlsplit(url).path))
    name = sanitize_filename(basename)
    if not name or not PurePosixPath(name).suffix:
        return fallback
    return name


def resolve_mime_type(
    mime_type: Optional[str],
    *names: Optional[str],
) -> str:
    """Pick the MIME type to serve.

    The stored MIME type wins; otherwise the first name with a known
    extension decides; otherwise ``application/octet-stream``.
    """
    if mime_type:
        return mime_type
    for name in names:
        if not name:
            continue
        ext = PurePosixPath(name).suffix.lower()
        if ext in MIME_BY_EXTENSION:
            return MIME_BY_EXTENSION[ext]
        guessed = mimetypes.guess_type(f"x{ext}")[0] if ext else None
        if guessed:
            return guessed
    return DEFAULT_MIME_TYPE


def download_name(name: Optional[str], mime_type: Optional[str], fallback: str = "image") -> str:
    """Sanitized name that always ends in a recognized extension."""
    safe = sanitize_filename(name) or fallback
    if not has_known_extension(safe):
        safe = f"{safe}{extension_for_mime(mime_type)}"
    return safe


def ascii_filename(name: str) -> str:
    """ASCII-only fallback for the plain ``filename=`` parameter."""
    stem, suffix = posixpath.splitext(name)
    folded = unicodedata.normalize("NFKD", stem).encode("ascii", "ignore").decode("ascii")
    folded = NON_TOKEN_CHARS.sub("_", folded).strip(" _") or "image"
    suffix = NON_TOKEN_CHARS.sub("", suffix)
    return f"{folded}{suffix}"


def content_disposition(name: Optional[str], mime_type: Optional[str]) -> str:
    """Build an inline Content-Disposition carrying ASCII and UTF-8 names."""
    full = download_name(name, mime_type)
    return (
        f'inline; filename="{ascii_filename(full)}"; '
        f"filename*=UTF-8''{quote(full, safe='')}"
    )
