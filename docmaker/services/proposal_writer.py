"""
Long-form proposal copy written by OpenAI under a strict JSON schema.

write_proposal_content() never raises: any provider or schema failure
returns deterministic default content built from the research and the
user's budget and goals.
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional

from docmaker.services.openai_client import OpenAIClient
from docmaker.utils.json_cleanup import safe_stringify

logger = logging.getLogger(__name__)

DEFAULT_CPE = 2.5
DEFAULT_CPM = 15


_WRITER_SYSTEM_PROMPT = """\
אתה מנהל אסטרטגיה בכיר בסוכנות שיווק משפיענים מובילה. תפקידך לכתוב הצעות מחיר מקצועיות ומשכנעות.

## עקרונות הכתיבה:
1. עומק ותוכן: כל פסקה משמעותית ומלאה במידע.
2. טון מותאם לאופי המותג כפי שעולה מהמחקר.
3. ללא סופרלטיבים ריקים.
4. ספציפיות: מספרים, עובדות ותובנות קונקרטיות.
5. ההצעה מספרת סיפור הגיוני מתחילתה ועד סופה.

הלקוח צריך לקרוא את ההצעה ולהגיד "וואו, הם באמת מבינים אותי".
תמיד החזר JSON תקין בלבד.\
"""

_WRITER_USER_PROMPT = """\
## מחקר מותג מפורט:
{research}

## נתונים שחולצו מהבריף:
{extracted}

## קלט מהלקוח:
- תקציב: {budget:,.0f} {currency}
- מטרות שנבחרו: {goals}

כתוב תוכן מלא ועשיר להצעת המחיר.
1. כל "description" לפחות 2 משפטים.
2. המספרים הגיוניים ביחס לתקציב.
3. CPE סביר: 1.5-5 ש"ח, CPM סביר: 10-30 ש"ח.\
"""


def _obj(properties: Dict[str, Any]) -> Dict[str, Any]:
    """Strict-mode object: every property required, nothing extra."""
    return {
        "type": "object",
        "properties": properties,
        "required": list(properties),
        "additionalProperties": False,
    }


_STR = {"type": "string"}
_NUM = {"type": "number"}
_STR_LIST = {"type": "array", "items": _STR}
_TITLED = {"type": "array", "items": _obj({"title": _STR, "description": _STR})}

PROPOSAL_CONTENT_SCHEMA: Dict[str, Any] = _obj({
    "goalsSection": _TITLED,
    "audienceSection": _obj({
        "primary": _obj({"gender": _STR, "ageRange": _STR, "description": _STR}),
        "behavior": _STR,
        "insights": _STR_LIST,
    }),
    "insightSection": _obj({"keyInsight": _STR, "insightSource": _STR}),
    "strategySection": _obj({"headline": _STR, "pillars": _TITLED}),
    "deliverablesSection": _obj({
        "deliverables": {
            "type": "array",
            "items": _obj({"type": _STR, "quantity": _NUM, "description": _STR, "purpose": _STR}),
        },
        "summary": _STR,
    }),
    "metricsSection": _obj({
        "budget": _NUM,
        "currency": _STR,
        "potentialReach": _NUM,
        "potentialEngagement": _NUM,
        "cpe": _NUM,
        "cpm": _NUM,
        "explanation": _STR,
    }),
    "closingStatement": _STR,
})


def default_content(
    brand_research: Optional[Dict[str, Any]],
    budget: float,
    goals: Optional[List[str]] = None,
    currency: str = "₪",
) -> Dict[str, Any]:
    """Content used when the writer is unavailable.  Metrics follow a fixed CPE."""
    research = brand_research or {}
    demographics = research.get("targetDemographics") or {}
    primary = demographics.get("primaryAudience") or {}
    engagement = round((budget or 0) / DEFAULT_CPE)

    return {
        "goalsSection": [
            {"title": g, "description": f"השגת {g} באמצעות תוכן אותנטי ומשכנע"}
            for g in (goals or ["מודעות", "חשיפה"])
        ],
        "audienceSection": {
            "primary": {
                "gender": primary.get("gender") or "נשים וגברים",
                "ageRange": primary.get("ageRange") or "25-45",
                "description": "קהל יעד מגוון המתעניין במוצרי המותג",
            },
            "behavior": demographics.get("behavior") or "צרכנים פעילים ברשתות החברתיות",
            "insights": ["מושפעים מתוכן אותנטי", "מחפשים המלצות אמיתיות"],
        },
        "insightSection": {"keyInsight": "", "insightSource": ""},
        "strategySection": {
            "headline": "שיתוף פעולה עם משפיענים להגברת המודעות למותג",
            "pillars": [
                {"title": "תוכן אותנטי", "description": "הצגת המוצר בשגרה אמיתית"},
                {"title": "סיפור אישי", "description": "שיתוף חוויה אישית"},
            ],
        },
        "deliverablesSection": {
            "deliverables": [
                {"type": "רילים", "quantity": 4, "description": "תוכן וידאו קצר", "purpose": "חשיפה גבוהה"},
                {"type": "סטוריז", "quantity": 12, "description": "תוכן אותנטי", "purpose": "מעורבות"},
            ],
            "summary": "חבילה מאוזנת של תוכן",
        },
        "metricsSection": {
            "budget": budget or 0,
            "currency": currency,
            "potentialReach": engagement * 3,
            "potentialEngagement": engagement,
            "cpe": DEFAULT_CPE,
            "cpm": DEFAULT_CPM,
            "explanation": "המספרים מבוססים על ביצועים ממוצעים בתעשייה",
        },
        "closingStatement": "LET'S GET STARTED",
    }


class ProposalWriter:
    """Writes the proposal sections with OpenAI structured output."""

    def __init__(self) -> None:
        self.openai = OpenAIClient()

    async def write_proposal_content(
        self,
        brand_research: Optional[Dict[str, Any]],
        budget: float,
        goals: Optional[List[str]] = None,
        extracted: Optional[Dict[str, Any]] = None,
        currency: str = "₪",
    ) -> Dict[str, Any]:
        brand_name = (brand_research or {}).get("brandName") or "unknown brand"
        logger.info("Writing proposal content for %s", brand_name)

        user_prompt = _WRITER_USER_PROMPT.format(
            research=json.dumps(brand_research or {}, ensure_ascii=False, indent=2),
            extracted=json.dumps(extracted or {}, ensure_ascii=False, indent=2),
            budget=float(budget or 0),
            currency=currency,
            goals=safe_stringify(goals) or "מודעות, חשיפה",
        )
        try:
            content = await self.openai.chat_json(
                _WRITER_SYSTEM_PROMPT,
                user_prompt,
                schema_name="proposal_content",
                schema=PROPOSAL_CONTENT_SCHEMA,
            )
        except RuntimeError as exc:
            logger.error("Proposal writer failed for %s, using default content: %s", brand_name, exc)
            return default_content(brand_research, budget, goals, currency)

        logger.info("Proposal content written for %s", brand_name)
        return content
