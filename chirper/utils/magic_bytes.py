"""Image type sniffing from leading file bytes.

Uploaded comment images are checked against what their content actually is,
not only the Content-Type the client sent, so a renamed executable or HTML
page is never stored as an image.
"""

from typing import NamedTuple


# Bytes inspected when sniffing
SNIFF_LENGTH = 64
MIN_BYTES_FOR_DETECTION = 4


class ImageCheck(NamedTuple):
    """Outcome of checking an upload against its declared type."""

    ok: bool
    detected_type: str | None
    error: str | None = None


# (offset, pattern, mime type)
# Reference: https://en.wikipedia.org/wiki/List_of_file_signatures
_SIGNATURES: tuple[tuple[int, bytes, str], ...] = (
    (0, b"\xff\xd8\xff", "image/jpeg"),
    (0, b"\x89PNG\r\n\x1a\n", "image/png"),
    (0, b"GIF87a", "image/gif"),
    (0, b"GIF89a", "image/gif"),
    (0, b"BM", "image/bmp"),
    (0, b"II*\x00", "image/tiff"),
    (0, b"MM\x00*", "image/tiff"),
    (4, b"ftypavif", "image/avif"),
    (4, b"ftypheic", "image/heic"),
    (4, b"ftypmif1", "image/heic"),
)


def sniff_image_type(data: bytes) -> str | None:
    """Detect an image MIME type from the first bytes of ``data``.

    SVG is not recognized: it is markup and can carry scripts.
    """
    head = data[:SNIFF_LENGTH]
    if len(head) < MIN_BYTES_FOR_DETECTION:
        return None

    # WebP is RIFF....WEBP
    if head[:4] == b"RIFF" and head[8:12] == b"WEBP":
        return "image/webp"

    for offset, pattern, mime_type in _SIGNATURES:
        if head[offset : offset + len(pattern)] == pattern:
            return mime_type

    return None


def check_image(
    data: bytes,
    declared_type: str | None,
    allowed_types: frozenset[str] | None = None,
) -> ImageCheck:
    """Check ``data`` is an allowed image.

    The declared type only has to be some ``image/*`` type; browsers often
    label a PNG as JPEG and the sniffed type wins.
    """
    detected = sniff_image_type(data)
    if detected is None:
        return ImageCheck(False, None, "Unable to detect image type from content")

    if allowed_types is not None and detected not in allowed_types:
        return ImageCheck(
            False,
            detected,
            f"Image type '{detected}' is not allowed. "
            f"Allowed: {', '.join(sorted(allowed_types))}",
        )

    if declared_type:
        declared_base = declared_type.split(";")[0].strip().lower()
        if not declared_base.startswith("image/"):
            return ImageCheck(
                False,
                detected,
                f"Declared type '{declared_base}' is not an image",
            )

    return ImageCheck(True, detected)
