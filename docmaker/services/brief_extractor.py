"""
Structured extraction of campaign data from a client brief and an optional
kickoff document.

BriefExtractor.extract(brief_text, kickoff_text) -> Dict   (ExtractedBriefData shape)
normalize_extraction(raw, has_kickoff)            -> Dict
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from docmaker.services.gemini_client import GeminiClient
from docmaker.utils.json_cleanup import parse_llm_json

logger = logging.getLogger(__name__)

DEFAULT_CURRENCY = "₪"

WARN_NO_BRAND = "שם המותג לא נמצא במסמכים - נדרש קלט ידני"
WARN_NO_BUDGET = "תקציב לא נמצא במסמכים - נדרש קלט ידני"
WARN_NO_AUDIENCE = "קהל יעד לא נמצא במסמכים - נדרש קלט ידני"


# ---------------------------------------------------------------------------
# Prompt template
# ---------------------------------------------------------------------------

_EXTRACTION_PROMPT = """\
אתה מומחה אסטרטגי בכיר בסוכנות שיווק משפיענים. קיבלת מסמכים לניתוח:

## מסמך 1: בריף לקוח
{brief}

{kickoff_section}

## המשימה
נתח את המסמכים וחלץ מידע מובנה לבניית הצעת מחיר לקמפיין משפיענים.

## כללים
1. חלץ רק מידע שמופיע במסמכים. אל תמציא נתונים.
2. מידע חסר: מחרוזת ריקה, null או מערך ריק.
3. תקציב הוא מספר. "50K" או "50 אלף" הופכים ל-50000.
4. מטרות: כפי שנכתבו. אם מתאים, מפה לקטגוריות: מודעות, חינוך שוק, נוכחות דיגיטלית, נחשקות ו-FOMO, הנעה למכר, השקת מוצר, חיזוק נאמנות.
5. קהל יעד: דמוגרפיה ספציפית אם קיימת.
6. כשיש סתירה, מסמך ההתנעה גובר.
7. keyInsight רק אם מופיעה במפורש תובנה מבוססת מחקר.

## פורמט הפלט (JSON)
{{
  "brand": {{"name": "", "officialName": null, "background": "", "industry": "", "subIndustry": null, "website": null, "tagline": null}},
  "budget": {{"amount": 0, "currency": "₪", "breakdown": null}},
  "campaignGoals": [],
  "targetAudience": {{
    "primary": {{"gender": "", "ageRange": "", "socioeconomic": null, "lifestyle": null, "interests": [], "painPoints": []}},
    "secondary": null,
    "behavior": null
  }},
  "keyInsight": null,
  "insightSource": null,
  "strategyDirection": null,
  "creativeDirection": null,
  "deliverables": [{{"type": "", "quantity": null, "description": ""}}],
  "influencerPreferences": {{"types": [], "specificNames": [], "criteria": [], "verticals": []}},
  "timeline": {{"startDate": null, "endDate": null, "duration": null, "milestones": []}},
  "additionalNotes": [],
  "_meta": {{"confidence": "high/medium/low", "warnings": [], "extractionNotes": ""}}
}}\
"""

_NO_KICKOFF = "(לא סופק מסמך התנעה)"


def build_extraction_prompt(brief_text: str, kickoff_text: Optional[str] = None) -> str:
    kickoff_section = (
        f"## מסמך 2: מסמך התנעה פנימי\n{kickoff_text}" if kickoff_text else _NO_KICKOFF
    )
    return _EXTRACTION_PROMPT.format(brief=brief_text, kickoff_section=kickoff_section)


# ---------------------------------------------------------------------------
# Normalisation
# ---------------------------------------------------------------------------

def normalize_extraction(raw: Any, has_kickoff: bool) -> Dict[str, Any]:
    """
    Fill required structures and record a warning for every missing essential.

    Never raises; a non-dict input is treated as an empty extraction.
    """
    data: Dict[str, Any] = dict(raw) if isinstance(raw, dict) else {}
    meta = data.get("_meta") if isinstance(data.get("_meta"), dict) else {}
    warnings: List[str] = list(meta.get("warnings") or [])

    brand = data.get("brand") if isinstance(data.get("brand"), dict) else {}
    if not brand.get("name"):
        warnings.append(WARN_NO_BRAND)
        data["brand"] = {
            "name": "",
            "background": brand.get("background") or "",
            "industry": brand.get("industry") or "",
        }

    budget = data.get("budget") if isinstance(data.get("budget"), dict) else {}
    amount = _to_number(budget.get("amount"))
    if amount <= 0:
        warnings.append(WARN_NO_BUDGET)
        data["budget"] = {
            "amount": 0,
            "currency": budget.get("currency") or DEFAULT_CURRENCY,
            "breakdown": budget.get("breakdown"),
        }
    else:
        data["budget"] = {**budget, "amount": amount}

    data["campaignGoals"] = data.get("campaignGoals") or []
    data["additionalNotes"] = data.get("additionalNotes") or []

    audience = data.get("targetAudience") if isinstance(data.get("targetAudience"), dict) else {}
    if not audience.get("primary"):
        warnings.append(WARN_NO_AUDIENCE)
        data["targetAudience"] = {
            "primary": {"gender": "", "ageRange": "", "interests": [], "painPoints": []},
        }

    data["deliverables"] = data.get("deliverables") or []
    data["influencerPreferences"] = data.get("influencerPreferences") or {}
    data["timeline"] = data.get("timeline") or {}

    data["_meta"] = {
        "confidence": meta.get("confidence") or "medium",
        "clientBriefProcessed": True,
        "kickoffDocProcessed": has_kickoff,
        "warnings": warnings,
        "extractionNotes": meta.get("extractionNotes"),
    }
    return data


def _to_number(value: Any) -> float:
    """Budget amounts sometimes arrive as strings ("50000", "50,000")."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").strip())
        except ValueError:
            return 0
    return 0


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class BriefExtractor:
    """Extracts ExtractedBriefData from brief text with Gemini."""

    # (temperature, json_mode) per attempt
    ATTEMPTS = ((0.1, True), (0.2, False))

    def __init__(self) -> None:
        self.gemini = GeminiClient()

    async def extract(self, brief_text: str, kickoff_text: Optional[str] = None) -> Dict[str, Any]:
        """
        Raises:
            ValueError:   empty brief.
            RuntimeError: both attempts failed.
        """
        if not brief_text or not brief_text.strip():
            raise ValueError("Brief text is required")

        prompt = build_extraction_prompt(brief_text, kickoff_text)
        logger.info(
            "Extracting brief data (%d chars, kickoff=%s)", len(brief_text), bool(kickoff_text)
        )

        for attempt, (temperature, json_mode) in enumerate(self.ATTEMPTS, start=1):
            text = await self.gemini.generate(
                prompt,
                model=self.gemini.pro_model,
                temperature=temperature,
                json_mode=json_mode,
            )
            if not text:
                logger.warning("extract: empty response on attempt %d", attempt)
                continue
            try:
                return normalize_extraction(parse_llm_json(text), bool(kickoff_text))
            except ValueError as exc:
                logger.warning("extract: unparseable response on attempt %d (%s)", attempt, exc)

        raise RuntimeError(
            "Failed to extract data from documents. Please check file quality and try again."
        )
