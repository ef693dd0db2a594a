"""Classification of upload files into media types."""

import codecs
import logging
from pathlib import Path
from typing import Dict, Optional, Tuple

from .models import MediaType


logger = logging.getLogger(__name__)

SNIFF_LENGTH = 512

_IMAGE_EXTENSIONS = ('.jpg', '.jpeg', '.png', '.gif', '.webp', '.bmp', '.tiff', '.svg')
_DOCUMENT_EXTENSIONS = (
    '.txt', '.pdf', '.doc', '.docx', '.xls', '.xlsx', '.ppt', '.pptx', '.rtf',
    '.odt', '.ods', '.odp', '.csv', '.json', '.xml', '.html', '.htm', '.css',
    '.js', '.md', '.log', '.ini', '.yaml', '.yml', '.toml', '.conf', '.config',
    '.zip', '.rar', '.7z', '.tar', '.gz', '.bz2', '.xz',
)
_VIDEO_EXTENSIONS = (
    '.mp4', '.avi', '.mov', '.wmv', '.flv', '.webm', '.mkv', '.m4v', '.mpg',
    '.mpeg', '.m2v', '.3gp', '.ogv', '.ts', '.mts', '.m2ts',
)
_AUDIO_EXTENSIONS = (
    '.mp3', '.wav', '.ogg', '.flac', '.aac', '.m4a', '.wma', '.opus', '.aiff',
    '.au', '.ra', '.ac3', '.dts', '.amr', '.ape',
)

EXTENSION_TYPES: Dict[str, MediaType] = {}
for _extensions, _media_type in (
    (_IMAGE_EXTENSIONS, MediaType.IMAGE),
    (_DOCUMENT_EXTENSIONS, MediaType.DOCUMENT),
    (_VIDEO_EXTENSIONS, MediaType.VIDEO),
    (_AUDIO_EXTENSIONS, MediaType.AUDIO),
):
    for _ext in _extensions:
        EXTENSION_TYPES[_ext] = _media_type

# Leading byte signatures, checked in order.
_SIGNATURES: Tuple[Tuple[bytes, MediaType], ...] = (
    (b'\xff\xd8\xff', MediaType.IMAGE),
    (b'\x89PNG\r\n\x1a\n', MediaType.IMAGE),
    (b'GIF87a', MediaType.IMAGE),
    (b'GIF89a', MediaType.IMAGE),
    (b'BM', MediaType.IMAGE),
    (b'II*\x00', MediaType.IMAGE),
    (b'MM\x00*', MediaType.IMAGE),
    (b'%PDF-', MediaType.DOCUMENT),
    (b'PK\x03\x04', MediaType.DOCUMENT),
    (b'\xd0\xcf\x11\xe0\xa1\xb1\x1a\xe1', MediaType.DOCUMENT),
    (b'{\\rtf', MediaType.DOCUMENT),
    (b'\x1f\x8b', MediaType.DOCUMENT),
    (b'ID3', MediaType.AUDIO),
    (b'fLaC', MediaType.AUDIO),
    (b'OggS', MediaType.AUDIO),
    (b'\x1aE\xdf\xa3', MediaType.VIDEO),
)


def media_type_from_extension(file_name: str) -> Optional[MediaType]:
    """Look up the media type for a file name's extension."""
    suffix = Path(file_name).suffix.lower()
    if not suffix:
        return None
    return EXTENSION_TYPES.get(suffix)


def sniff_media_type(head: bytes) -> Optional[MediaType]:
    """Guess the media type from the first bytes of a file."""
    if not head:
        return None

    for signature, media_type in _SIGNATURES:
        if head.startswith(signature):
            return media_type

    # RIFF containers: WEBP image, WAVE audio, AVI video
    if head[:4] == b'RIFF' and len(head) >= 12:
        return {
            b'WEBP': MediaType.IMAGE,
            b'WAVE': MediaType.AUDIO,
            b'AVI ': MediaType.VIDEO,
        }.get(head[8:12])

    # ISO base media (mp4/mov/m4a)
    if head[4:8] == b'ftyp':
        brand = head[8:12]
        return MediaType.AUDIO if brand.startswith(b'M4A') else MediaType.VIDEO

    stripped = head.lstrip()
    if stripped.startswith(b'<svg') or (stripped.startswith(b'<?xml') and b'<svg' in head):
        return MediaType.IMAGE

    # Plain text falls back to document; the window may end mid-character
    try:
        codecs.getincrementaldecoder('utf-8')().decode(head, final=False)
    except UnicodeDecodeError:
        return None
    return MediaType.DOCUMENT if b'\x00' not in head else None


def classify_file(path: Path) -> Optional[MediaType]:
    """Classify a file by extension, falling back to a content sniff.

    Returns:
        The media type, or None if it cannot be resolved
    """
    media_type = media_type_from_extension(path.name)
    if media_type is not None:
        return media_type

    try:
        with open(path, 'rb') as f:
            head = f.read(SNIFF_LENGTH)
    except OSError as e:
        logger.debug(f"Could not read {path} for content sniffing: {e}")
        return None

    return sniff_media_type(head)
