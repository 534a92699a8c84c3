"""German prompt templates for the coaching endpoints."""

DEFAULT_PLAN_GOAL = "Gewicht halten und gesund ernähren"
DEFAULT_COACH_GOAL = "Gesund bleiben"
NO_CONTEXT_TEXT = "Keine erweiterten Gesundheitsdaten verfügbar."
NO_RECOMMENDATION_TEXT = "Keine Empfehlung generiert."
NO_ANSWER_TEXT = "Keine Antwort"

SUMMARY_SYSTEM_PROMPT = "Du bist ein präziser Gesundheits-Analyst."
PLAN_SYSTEM_PROMPT = "Du bist ein präziser Gesundheitscoach."
ALERT_SYSTEM_PROMPT = "Du bist ein freundlicher Gesundheitscoach."
RECOMMEND_SYSTEM_PROMPT = "Du bist ein professioneller Gesundheitsberater."
COACH_SYSTEM_PROMPT = (
    "Du bist ein digitaler Gesundheitscoach. Analysiere Gesundheitsdaten und gib "
    "Empfehlungen, Warnungen und einfache Ernährungs- oder Trainingspläne. "
    "Formatiere deine Antwort in Markdown: 1. **Zusammenfassung** 2. **Warnungen** "
    "3. **Empfehlungen**"
)

COACH_TEMPERATURE = 0.8


def embedding_summary_prompt(summary: dict[str, str]) -> str:
    return f"""Analysiere die Gesundheitsdaten des Nutzers:
- Schritte: {summary['steps']}
- Kalorienverbrauch: {summary['calories']}
- Schlaf: {summary['sleep_hours']}h
- Puls: {summary['heart_rate']} bpm
- Gewicht: {summary['weight']} kg
- Blutdruck: {summary['blood_pressure_systolic']}/{summary['blood_pressure_diastolic']} mmHg
- Sauerstoffsättigung: {summary['oxygen_saturation']} %

Gib eine prägnante Zusammenfassung (50–100 Wörter) der aktuellen Gesundheit, Trends und möglichen Empfehlungen."""


def daily_plan_prompt(*, context: str, calories, steps, weight, goal: str) -> str:
    return f"""Du bist ein digitaler Ernährungs- und Fitnesscoach.
Hier ist eine Zusammenfassung des Nutzers:

{context}

Analysiere die letzten 7 Tage des Nutzers und erstelle für heute einen Vorschlag.

Daten:
- Durchschnittliche Kalorienaufnahme: {calories} kcal
- Durchschnittliche Schritte: {steps}
- Durchschnittliches Gewicht: {weight} kg

Ziel: {goal}

Erstelle:
1. Eine kurze Zusammenfassung der Situation
2. Einen Ernährungsplan für heute (Frühstück, Mittag, Abendessen, Snacks)
3. Einen Trainingsplan (z. B. Bewegung, Spazieren, Krafttraining)
4. Eine Motivation zum Abschluss"""


def alert_prompt(messages: list[str], goal: str) -> str:
    joined = "\n".join(messages)
    return f"""Du bist ein digitaler Gesundheitscoach. Hier sind aktuelle Auffälligkeiten:
{joined}

Das Ziel des Nutzers lautet: {goal}

Erstelle eine kurze, positive Reaktion mit Empfehlungen für heute (max. 50 Wörter):
- Was sollte der Nutzer essen?
- Wie könnte er sich bewegen?
- Wie kann er sich erholen?"""


def coach_user_prompt(summary: str, goal: str) -> str:
    return f"Gesundheitsdaten:\n{summary}\n\nZiel des Nutzers: {goal}"


def recommend_prompt(query_text: str, context: str) -> str:
    return f"""Meine aktuelle Situation: {query_text}

Ähnliche vergangene Gesundheitsdaten:
{context}

Bitte gib mir eine klare, motivierende Empfehlung mit Fokus auf Ernährung, Bewegung und Erholung."""


def daily_digest_line(record) -> str:
    """One line per record for the coach fallback when no summary is stored."""
    def _or_unknown(value):
        return "?" if value is None else value

    return (
        f"Datum {record.date.date().isoformat()}: {record.steps or 0} Schritte, "
        f"Puls {_or_unknown(record.heart_rate)}, Schlaf {_or_unknown(record.sleep_hours)}h, "
        f"Gewicht {_or_unknown(record.weight)}kg"
    )
