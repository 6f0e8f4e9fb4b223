import re
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

MB = 1024 * 1024

# (offset, expected bytes) pairs; any match accepts the file
FILE_SIGNATURES: Dict[str, List[Tuple[int, bytes]]] = {
    "image/jpeg": [(0, b"\xFF\xD8\xFF")],
    "image/png": [(0, b"\x89PNG\r\n\x1a\n")],
    "image/gif": [(0, b"GIF87a"), (0, b"GIF89a")],
    "image/x-icon": [(0, b"\x00\x00\x01\x00")],
    "audio/mpeg": [(0, b"\xFF\xFB"), (0, b"\xFF\xF3"), (0, b"\xFF\xF2"), (0, b"ID3")],
    "audio/wav": [(0, b"RIFF")],
    "audio/aac": [(0, b"\xFF\xF1"), (0, b"\xFF\xF9")],
    "video/mp4": [(4, b"ftyp")],
    "video/quicktime": [(4, b"ftyp")],
    "video/avi": [(0, b"RIFF")],
}

MIME_ALIASES = {
    "audio/mp3": "audio/mpeg",
    "image/jpg": "image/jpeg",
    "image/ico": "image/x-icon",
    "image/vnd.microsoft.icon": "image/x-icon",
    "video/mov": "video/quicktime",
}

ALLOWED_MIME_TYPES: Dict[str, List[str]] = {
    "music": ["audio/mpeg", "audio/mp3", "audio/wav", "audio/aac"],
    "audio": ["audio/mpeg", "audio/mp3", "audio/wav", "audio/aac"],
    "photo": ["image/jpeg", "image/jpg", "image/png"],
    "video": ["video/mp4", "video/quicktime", "video/avi", "video/mov"],
}

MAX_FILE_SIZE_BYTES: Dict[str, int] = {
    "music": 100 * MB,
    "audio": 100 * MB,
    "photo": 100 * MB,
    "video": 200 * MB,
}

# background images accept the same formats as photos plus GIF
BACKGROUND_MIME_TYPES = ["image/jpeg", "image/jpg", "image/png", "image/gif"]
FAVICON_MIME_TYPES = ["image/png", "image/x-icon", "image/vnd.microsoft.icon", "image/ico"]

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]")
_DOT_RUN = re.compile(r"\.{2,}")
_UNDERSCORE_RUN = re.compile(r"_{2,}")
_EXTENSION = re.compile(r"^[A-Za-z0-9]{1,10}$")


@dataclass
class UploadCheck:
    valid: bool
    error: Optional[str] = None


def canonical_mime_type(content_type: Optional[str]) -> str:
    value = (content_type or "").split(";")[0].strip().lower()
    return MIME_ALIASES.get(value, value)


def matches_signature(content_type: Optional[str], data: bytes) -> bool:
    patterns = FILE_SIGNATURES.get(canonical_mime_type(content_type))
    if not patterns:
        return False
    for offset, expected in patterns:
        end = offset + len(expected)
        if end > len(data):
            continue
        if data[offset:end] == expected:
            return True
    return False


def validate_upload(
    category: str,
    content_type: Optional[str],
    data: bytes,
    max_bytes: Optional[int] = None,
    allowed_types: Optional[List[str]] = None,
) -> UploadCheck:
    allowed = allowed_types if allowed_types is not None else ALLOWED_MIME_TYPES.get(category)
    if not allowed:
        return UploadCheck(False, f"Unsupported file category: {category}")

    declared = (content_type or "").split(";")[0].strip().lower()
    if declared not in allowed:
        return UploadCheck(False, "File type is not allowed")

    ceiling = max_bytes if max_bytes is not None else MAX_FILE_SIZE_BYTES.get(category, 100 * MB)
    if len(data) > ceiling:
        return UploadCheck(False, f"File exceeds the {ceiling // MB}MB size limit")

    if not matches_signature(declared, data):
        return UploadCheck(False, "File content does not match its declared type")

    return UploadCheck(True)


def _clean(part: str) -> str:
    part = _UNSAFE_CHARS.sub("_", part)
    part = _DOT_RUN.sub(".", part)
    part = _UNDERSCORE_RUN.sub("_", part)
    return part.strip("._")


def sanitize_file_name(name: Optional[str], max_length: int = 255) -> str:
    """Reduce ``name`` to ``[A-Za-z0-9._-]`` with no path components.

    A short alphanumeric extension survives truncation; an empty stem
    becomes ``file``.
    """
    raw = (name or "").replace("\\", "/")
    stem, dot, ext = raw.rpartition(".")
    if not dot or not _EXTENSION.match(ext) or "/" in ext:
        stem, ext = raw, ""

    stem = _clean(stem) or "file"

    # the extension is dropped when it leaves no room for a one-character stem
    if ext and len(ext) + 2 <= max_length:
        stem_limit = max_length - len(ext) - 1
        stem = (stem[:stem_limit].rstrip("._") or "file")[:stem_limit]
        return f"{stem}.{ext}"
    return (stem[:max_length].rstrip("._") or "file")[:max_length]


def build_storage_key(user_id, entry_id, file_type: str, file_name: str) -> str:
    timestamp = int(time.time() * 1000)
    return f"{user_id}/{entry_id}/{file_type}/{timestamp}-{sanitize_file_name(file_name)}"
