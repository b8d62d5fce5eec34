import base64
import binascii
import re

from .base import RequestRejected

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w.+-]+/[\w.+-]+)?(?:;[^,]*)?;base64,(?P<data>.*)$", re.S)

_SIGNATURES = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
)


def _sniff_mime_type(data: bytes) -> str | None:
    for magic, mime in _SIGNATURES:
        if data.startswith(magic):
            return mime
    if data[:4] == b"RIFF" and data[8:12] == b"WEBP":
        return "image/webp"
    return None


def normalize_image(image: str, allowed_formats: list[str], max_size_mb: float) -> str:
    """
    Validate a data URL or bare base64 image and return it as a data URL.

    A declared type that is not image/* is ignored in favour of the file signature.
    Raises RequestRejected (INVALID_IMAGE / IMAGE_TOO_LARGE).
    """
    if not isinstance(image, str):
        raise RequestRejected("INVALID_IMAGE", "Image must be a data URL or base64 string")

    match = _DATA_URL_RE.match(image.strip())
    payload = match.group("data") if match else image.strip()
    payload = re.sub(r"\s+", "", payload)

    # Decoded size, checked before decoding.
    if len(payload) * 3 // 4 - payload[-2:].count("=") > max_size_mb * 1024 * 1024:
        raise RequestRejected(
            "IMAGE_TOO_LARGE",
            f"Image is larger than {max_size_mb:g}MB",
        )

    try:
        data = base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        raise RequestRejected("INVALID_IMAGE", "Image data is not valid base64")

    mime = (match.group("mime") or "").lower() if match else ""
    if not mime.startswith("image/"):
        mime = _sniff_mime_type(data) or ""

    allowed = {f.lower() for f in allowed_formats}
    if not data or mime not in allowed:
        raise RequestRejected(
            "INVALID_IMAGE",
            f"Unsupported image format, allowed: {', '.join(allowed_formats)}",
        )

    return f"data:{mime};base64,{payload}"
