import json
import logging
import re

logger = logging.getLogger(__name__)

VISION_MAX_TOKENS = 1000

FOOD_ANALYSIS_PROMPT = """Du bist ein Ernährungsexperte. Analysiere dieses Foto einer Mahlzeit.

Antworte NUR mit einem validen JSON-Objekt in diesem Format:
{
  "detected": true,
  "confidence": 0.85,
  "items": [
    {"name": "Spaghetti Bolognese", "portion": "1 Teller", "calories": 550, "protein": 25, "carbs": 65, "fat": 18}
  ],
  "totalCalories": 550,
  "totalProtein": 25,
  "totalCarbs": 65,
  "totalFat": 18,
  "mealType": "Mittagessen",
  "healthScore": 7,
  "notes": "Ausgewogene Mahlzeit mit guter Proteinquelle"
}

Falls kein Essen erkannt wird:
{
  "detected": false,
  "error": "Kein Essen auf dem Bild erkannt"
}

Schätze die Nährwerte basierend auf typischen Portionsgrößen. Sei realistisch."""

BLOOD_PRESSURE_PROMPT = """Du bist ein medizinischer Assistent. Analysiere dieses Foto eines Blutdruckmessgeräts.

Antworte NUR mit einem validen JSON-Objekt in diesem Format:
{
  "detected": true,
  "confidence": 0.95,
  "systolic": 120,
  "diastolic": 80,
  "pulse": 72,
  "category": "Normal",
  "categoryColor": "green",
  "notes": "Optimaler Blutdruck"
}

Kategorien:
- "Normal" (grün): < 120/80
- "Erhöht" (gelb): 120-129 / < 80
- "Bluthochdruck Stufe 1" (orange): 130-139 / 80-89
- "Bluthochdruck Stufe 2" (rot): ≥ 140 / ≥ 90
- "Hypertensive Krise" (dunkelrot): > 180 / > 120

Falls keine Werte erkannt werden:
{
  "detected": false,
  "error": "Keine Blutdruckwerte auf dem Bild erkannt"
}"""

WEIGHT_PROMPT = """Du bist ein Gesundheitsassistent. Analysiere dieses Foto einer Waage oder Körperanalysewaage.

Antworte NUR mit einem validen JSON-Objekt in diesem Format:
{
  "detected": true,
  "confidence": 0.9,
  "weight": 75.5,
  "unit": "kg",
  "bodyFat": 18.5,
  "muscleMass": 42.3,
  "bmi": 24.2,
  "notes": "Alle erkannten Werte vom Display"
}

Falls keine Werte erkannt werden:
{
  "detected": false,
  "error": "Keine Gewichtswerte auf dem Bild erkannt"
}

Hinweis: Nicht alle Waagen zeigen alle Werte. Gib nur an, was du sicher erkennst."""

GENERAL_PROMPT = """Du bist ein Gesundheitsassistent. Analysiere dieses Bild und erkenne gesundheitsrelevante Daten.

Das können sein:
- Essen/Mahlzeiten → Kalorien schätzen
- Blutdruckmessgerät → Werte ablesen
- Waage → Gewicht ablesen
- Fitness-Tracker Display → Werte ablesen
- Medikamentenpackungen → Medikament identifizieren

Antworte NUR mit einem validen JSON-Objekt:
{
  "type": "food|blood_pressure|weight|fitness|medication|unknown",
  "detected": true,
  "data": { ... je nach Typ ... },
  "summary": "Kurze Zusammenfassung auf Deutsch"
}"""

_PROMPTS = {
    "food": FOOD_ANALYSIS_PROMPT,
    "blood_pressure": BLOOD_PRESSURE_PROMPT,
    "weight": WEIGHT_PROMPT,
    "general": GENERAL_PROMPT,
}

_FENCED_JSON_RE = re.compile(r"```json\s*([\s\S]*?)\s*```")
_BRACE_BLOCK_RE = re.compile(r"\{[\s\S]*\}")


class ImageAnalysisParseError(ValueError):
    """Raised when the model reply contains no parseable JSON object."""

    def __init__(self, raw: str):
        super().__init__("Konnte KI-Antwort nicht verarbeiten")
        self.raw = raw


def get_prompt_for_type(analysis_type: str) -> str:
    return _PROMPTS.get(analysis_type, GENERAL_PROMPT)


def extract_json(content: str):
    """Parse the reply directly, then from a ```json fence, then the outermost brace block."""
    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    match = _FENCED_JSON_RE.search(content) or _BRACE_BLOCK_RE.search(content)
    if not match:
        raise ImageAnalysisParseError(content)
    candidate = match.group(1) if match.groups() else match.group(0)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        raise ImageAnalysisParseError(content)


async def analyze_image(provider, image_bytes: bytes, analysis_type: str = "general"):
    """Send the image to the vision model and return the extracted JSON."""
    result = await provider.chat_with_vision(
        prompt=get_prompt_for_type(analysis_type),
        image_bytes=image_bytes,
        model=provider.get_vision_model(),
        max_tokens=VISION_MAX_TOKENS,
    )
    content = (result.get("content") or "").strip()
    if not content:
        raise ImageAnalysisParseError("")
    analysis = extract_json(content)
    logger.info(f"Image analysis ({analysis_type}) finished with model {result.get('model')}")
    return analysis
