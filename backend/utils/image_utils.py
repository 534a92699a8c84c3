import base64
import binascii
import re

MAX_IMAGE_SIZE = 10 * 1024 * 1024  # 10MB decoded
ALLOWED_IMAGE_MIME_TYPES = {
    "image/jpeg",
    "image/png",
    "image/webp",
    "image/gif",
}

_MAGIC_SIGNATURES: list[tuple[bytes, str]] = [
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
]

_DATA_URL_RE = re.compile(r"^data:(?P<mime>[\w/+.-]+)?(?:;[\w=.-]+)*;base64,(?P<data>.*)$", re.DOTALL)


def sniff_image_mime(image_bytes: bytes) -> str | None:
    head = image_bytes[:16]
    for magic, mime in _MAGIC_SIGNATURES:
        if head.startswith(magic):
            return mime
    if len(head) >= 12 and head.startswith(b"RIFF") and head[8:12] == b"WEBP":
        return "image/webp"
    return None


def decode_image_payload(image: str) -> tuple[bytes, str]:
    """Decode a data URL or raw base64 string and check the file signature.

    Returns (bytes, mime). Raises ValueError with a user-facing message.
    """
    value = (image or "").strip()
    if not value:
        raise ValueError("Bild ist erforderlich")
    if value.startswith(("http://", "https://")):
        raise ValueError("Bild-URLs werden nicht unterstützt. Bitte Base64 senden.")

    declared = None
    match = _DATA_URL_RE.match(value)
    if match:
        declared = (match.group("mime") or "").lower() or None
        value = match.group("data")
    elif value.startswith("data:"):
        raise ValueError("Ungültige Data-URL.")

    try:
        image_bytes = base64.b64decode(re.sub(r"\s+", "", value), validate=True)
    except (binascii.Error, ValueError):
        raise ValueError("Bild ist kein gültiges Base64.")

    if not image_bytes:
        raise ValueError("Bild ist leer.")
    if not validate_image_size(len(image_bytes)):
        raise ValueError(f"Bild ist zu groß. Maximal {MAX_IMAGE_SIZE // (1024 * 1024)}MB.")

    mime = sniff_image_mime(image_bytes)
    if mime not in ALLOWED_IMAGE_MIME_TYPES:
        raise ValueError("Nicht unterstütztes Bildformat. Erlaubt: jpg, png, webp, gif.")
    # Strict mismatch check blocks disguised payloads.
    if declared and declared != mime and not (declared == "image/jpg" and mime == "image/jpeg"):
        raise ValueError("Bildtyp passt nicht zur Dateisignatur.")

    return image_bytes, mime


def validate_image_size(size: int) -> bool:
    return size <= MAX_IMAGE_SIZE
