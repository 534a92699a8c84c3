from __future__ import annotations

import base64
import sys
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from ai.image_analyzer import (  # noqa: E402
    ImageAnalysisParseError,
    extract_json,
    get_prompt_for_type,
    GENERAL_PROMPT,
)
from config import Settings  # noqa: E402
from utils.image_utils import decode_image_payload, sniff_image_mime  # noqa: E402

PNG_BYTES = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
JPEG_BYTES = b"\xff\xd8\xff\xe0" + b"\x00" * 64


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def test_decode_accepts_raw_base64_and_data_url():
    image_bytes, mime = decode_image_payload(_b64(PNG_BYTES))
    assert image_bytes == PNG_BYTES
    assert mime == "image/png"

    image_bytes, mime = decode_image_payload(f"data:image/jpeg;base64,{_b64(JPEG_BYTES)}")
    assert image_bytes == JPEG_BYTES
    assert mime == "image/jpeg"


def test_decode_rejects_data_url_signature_mismatch():
    with pytest.raises(ValueError) as excinfo:
        decode_image_payload(f"data:image/jpeg;base64,{_b64(PNG_BYTES)}")
    assert "Dateisignatur" in str(excinfo.value)


def test_decode_rejects_urls_and_garbage():
    with pytest.raises(ValueError):
        decode_image_payload("https://example.com/meal.jpg")
    with pytest.raises(ValueError):
        decode_image_payload("kein base64 !!")
    with pytest.raises(ValueError):
        decode_image_payload(_b64(b"not-an-image"))
    with pytest.raises(ValueError):
        decode_image_payload("")


def test_sniff_webp_signature():
    assert sniff_image_mime(b"RIFF\x00\x00\x00\x00WEBPVP8 ") == "image/webp"
    assert sniff_image_mime(b"plain text") is None


def test_extract_json_direct_fenced_and_embedded():
    assert extract_json('{"detected": true}') == {"detected": True}
    fenced = 'Hier ist das Ergebnis:\n```json\n{"systolic": 120, "diastolic": 80}\n```'
    assert extract_json(fenced) == {"systolic": 120, "diastolic": 80}
    embedded = 'Ergebnis: {"weight": 75.5, "unit": "kg"} Ende'
    assert extract_json(embedded) == {"weight": 75.5, "unit": "kg"}


def test_extract_json_failure_keeps_raw_reply():
    with pytest.raises(ImageAnalysisParseError) as excinfo:
        extract_json("Ich kann auf dem Bild nichts erkennen.")
    assert excinfo.value.raw == "Ich kann auf dem Bild nichts erkennen."


def test_unknown_analysis_type_falls_back_to_general_prompt():
    assert get_prompt_for_type("xray") == GENERAL_PROMPT
    assert "Blutdruckmessgeräts" in get_prompt_for_type("blood_pressure")


def test_production_security_gate_rejects_default_secret_values():
    settings = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="change-me-in-production",
        AUTH_COOKIE_SECURE=False,
    )
    with pytest.raises(RuntimeError):
        settings.validate_security_configuration()


def test_production_security_gate_accepts_hardened_settings():
    settings = Settings(
        ENVIRONMENT="production",
        SECRET_KEY="a-long-random-production-secret",
        AUTH_COOKIE_SECURE=True,
    )
    settings.validate_security_configuration()
    assert settings.is_production_like is True
