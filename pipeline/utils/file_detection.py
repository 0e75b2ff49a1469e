"""
Centralized file type detection using magic bytes.

Magic bytes reference:
- PDF:  %PDF (0x25504446)
- JPEG: 0xFFD8FF
- PNG:  0x89504E47 (89 P N G)
- TIFF: 0x49492A00 (little-endian) or 0x4D4D002A (big-endian)
- BMP:  BM
- GIF:  GIF8
- WEBP: RIFF....WEBP
"""

from typing import Final, Literal

FileType = Literal["pdf", "jpeg", "png", "tiff", "bmp", "gif", "webp"]

MAGIC_BYTES_MAP: Final[dict[bytes, tuple[FileType, str]]] = {
    b"%PDF": ("pdf", "application/pdf"),
    b"\xff\xd8\xff": ("jpeg", "image/jpeg"),
    b"\x89PNG": ("png", "image/png"),
    b"\x49\x49\x2a\x00": ("tiff", "image/tiff"),
    b"\x4d\x4d\x00\x2a": ("tiff", "image/tiff"),
    b"BM": ("bmp", "image/bmp"),
    b"GIF8": ("gif", "image/gif"),
}

IMAGE_TYPES: Final[frozenset[str]] = frozenset(
    {"jpeg", "png", "tiff", "bmp", "gif", "webp"}
)


def detect_file_type_from_bytes(
    header: bytes,
) -> tuple[FileType, str] | None:
    """
    Detect file type from magic bytes header.

    Args:
        header: First 12+ bytes of file

    Returns:
        Tuple of (file_type, mime_type) or None if unrecognized

    Example:
        >>> detect_file_type_from_bytes(b'%PDF-1.4')
        ('pdf', 'application/pdf')
    """
    if header[:4] == b"RIFF" and header[8:12] == b"WEBP":
        return "webp", "image/webp"
    for signature, result in MAGIC_BYTES_MAP.items():
        if header.startswith(signature):
            return result
    return None


def is_image_bytes(data: bytes) -> bool:
    detected = detect_file_type_from_bytes(data[:12])
    return detected is not None and detected[0] in IMAGE_TYPES
