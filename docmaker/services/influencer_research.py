"""
Influencer strategy research.

Produces an InfluencerStrategy dict:
strategyTitle, strategySummary, tiers[], recommendations[], contentThemes[],
expectedKPIs[], suggestedTimeline[], potentialRisks[].
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from docmaker.services.admin_config import get_config
from docmaker.services.gemini_client import GeminiClient
from docmaker.utils.json_cleanup import safe_stringify

logger = logging.getLogger(__name__)

_STRATEGY_PROMPT = """\
{system_prompt}

חשוב: החזר JSON תקין בלבד, ללא טקסט לפני או אחרי.

## פרטי המותג:
- שם: {brand_name}
- תעשייה: {industry}
- קהל יעד: {gender}, {age_range}
- תחומי עניין של הקהל: {interests}
- ערכי מותג: {values}
- טון מותג: {tone}
- מתחרים: {competitors}

## תקציב: {budget:,.0f} ש"ח
## מטרות הקמפיין: {goals}

## המשימה:
1. חפש משפיענים ישראליים אמיתיים שמתאימים למותג (6-10 המלצות).
2. הצע חלוקה לשכבות (Mega, Macro, Micro, Nano) בהתאם לתקציב.
3. הצע נושאי תוכן, KPIs ריאליסטיים ולוח זמנים.

## פורמט:
{{
  "strategyTitle": "", "strategySummary": "",
  "tiers": [{{"name": "", "description": "", "recommendedCount": 0, "budgetAllocation": "", "purpose": ""}}],
  "recommendations": [{{"name": "", "handle": "@username", "platform": "instagram", "category": "", "followers": "", "engagement": "", "avgStoryViews": "", "whyRelevant": "", "contentStyle": "", "estimatedCost": "", "profileUrl": ""}}],
  "contentThemes": [{{"theme": "", "description": "", "examples": []}}],
  "expectedKPIs": [{{"metric": "", "target": "", "rationale": ""}}],
  "suggestedTimeline": [{{"phase": "", "duration": "", "activities": []}}],
  "potentialRisks": [{{"risk": "", "mitigation": ""}}]
}}\
"""


def default_strategy(
    brand_name: str,
    budget: float,
    goals: Optional[List[str]] = None,
) -> Dict[str, Any]:
    """Generic three-tier strategy with KPIs derived from the budget."""
    budget = budget or 0
    return {
        "strategyTitle": f"אסטרטגיית משפיענים עבור {brand_name}",
        "strategySummary": (
            f"אסטרטגיה משולבת הכוללת משפיענים בגדלים שונים להשגת {' ו-'.join(map(str, goals or ['מודעות']))}. "
            "הקמפיין יתמקד בתוכן אותנטי שמתחבר לקהל היעד."
        ),
        "tiers": [
            {
                "name": "Macro Influencers",
                "description": "משפיענים עם 100K+ עוקבים",
                "recommendedCount": 2,
                "budgetAllocation": "40%",
                "purpose": "חשיפה ומודעות",
            },
            {
                "name": "Micro Influencers",
                "description": "משפיענים עם 10K-100K עוקבים",
                "recommendedCount": 4,
                "budgetAllocation": "35%",
                "purpose": "מעורבות והמרות",
            },
            {
                "name": "Nano Influencers",
                "description": "משפיענים עם 1K-10K עוקבים",
                "recommendedCount": 6,
                "budgetAllocation": "25%",
                "purpose": "אותנטיות וקהילה",
            },
        ],
        "recommendations": [],
        "contentThemes": [
            {
                "theme": "שגרה יומית",
                "description": "שילוב המוצר בשגרת היום של המשפיען",
                "examples": ["בוקר טוב עם המוצר", "לפני/אחרי", "השוואה"],
            },
            {
                "theme": "ביקורת אמיתית",
                "description": "חוות דעת כנה על המוצר",
                "examples": ["ראשונים לנסות", "חודש עם המוצר", "התוצאות"],
            },
        ],
        "expectedKPIs": [
            {"metric": "Reach", "target": f"{round(budget * 5):,}", "rationale": "לפי CPM ממוצע בשוק"},
            {"metric": "Engagement", "target": f"{round(budget / 2.5):,}", "rationale": "לפי CPE ממוצע"},
        ],
        "suggestedTimeline": [
            {"phase": "הכנה", "duration": "2 שבועות", "activities": ["בחירת משפיענים", "חוזים", "בריף"]},
            {"phase": "ביצוע", "duration": "4 שבועות", "activities": ["יצירה", "פרסום", "ניטור"]},
        ],
        "potentialRisks": [
            {"risk": "אי עמידה בדדליינים", "mitigation": 'תיאום מראש וגמישות בלו"ז'},
        ],
    }


def recommended_handles(strategy: Dict[str, Any], limit: Optional[int] = None) -> List[str]:
    """Instagram handles from the strategy's recommendations, in order, without duplicates."""
    handles: List[str] = []
    for rec in strategy.get("recommendations") or []:
        if not isinstance(rec, dict):
            continue
        if (rec.get("platform") or "instagram") != "instagram":
            continue
        handle = (rec.get("handle") or "").strip().lstrip("@").rstrip("/")
        if handle and handle not in handles:
            handles.append(handle)
    return handles[:limit] if limit else handles


class InfluencerResearcher:
    """Builds an InfluencerStrategy from brand research, budget and goals."""

    TEMPERATURE = 0.4

    def __init__(self) -> None:
        self.gemini = GeminiClient()

    async def research_influencers(
        self,
        brand_research: Dict[str, Any],
        budget: float,
        goals: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        research = brand_research or {}
        brand_name = research.get("brandName") or ""
        logger.info("Starting influencer research for %s", brand_name)

        system_prompt = await get_config("ai_prompts", "influencer_research.system_prompt")
        primary = await get_config("ai_models", "influencer_research.primary_model")
        fallback = await get_config("ai_models", "influencer_research.fallback_model")
        max_tokens = await get_config("pipeline", "limits.influencer_tokens")

        demographics = research.get("targetDemographics")
        audience = demographics.get("primaryAudience") if isinstance(demographics, dict) else None
        if not isinstance(audience, dict):
            audience = {}
        raw_competitors = research.get("competitors")
        competitors = [
            c.get("name") if isinstance(c, dict) else c
            for c in (raw_competitors if isinstance(raw_competitors, list) else [])
        ]
        prompt = _STRATEGY_PROMPT.format(
            system_prompt=system_prompt,
            brand_name=brand_name,
            industry=research.get("industry") or "לא ידוע",
            gender=audience.get("gender") or "לא ידוע",
            age_range=audience.get("ageRange") or "25-45",
            interests=safe_stringify(audience.get("interests")) or "לא ידוע",
            values=safe_stringify(research.get("brandValues")) or "לא ידוע",
            tone=research.get("toneOfVoice") or "",
            competitors=", ".join(str(c) for c in competitors if c) or "לא ידוע",
            budget=float(budget or 0),
            goals=safe_stringify(goals),
        )

        try:
            strategy = await self.gemini.generate_json(
                prompt,
                models=[primary, fallback],
                temperature=self.TEMPERATURE,
                google_search=True,
                max_output_tokens=int(max_tokens) if max_tokens else None,
            )
        except RuntimeError as exc:
            logger.error("Influencer research failed for %s: %s", brand_name, exc)
            return default_strategy(brand_name, budget, goals)

        if not isinstance(strategy, dict):
            logger.error("Influencer research for %s returned a non-object", brand_name)
            return default_strategy(brand_name, budget, goals)

        logger.info(
            "Influencer research for %s: %d recommendations",
            brand_name, len(strategy.get("recommendations") or []),
        )
        return strategy
