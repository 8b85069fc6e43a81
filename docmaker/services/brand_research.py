"""
Brand research with Gemini and Google Search grounding.

BrandResearch is a plain dict (see ``_RESEARCH_FORMAT`` for its keys).
research_brand() never raises; on any failure it returns
minimal_research() with confidence "low".
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from docmaker.services.admin_config import get_config
from docmaker.services.gemini_client import GeminiClient

logger = logging.getLogger(__name__)

DEFAULT_BRAND_COLORS: Dict[str, Any] = {
    "primary": "#111111",
    "secondary": "#666666",
    "accent": "#E94560",
    "background": "#FFFFFF",
    "text": "#111111",
    "palette": ["#111111", "#666666", "#E94560"],
    "style": "minimal",
    "mood": "מקצועי ומודרני",
}

_RESEARCH_FORMAT = """\
{{
  "brandName": "", "officialName": "", "tagline": "", "industry": "", "subIndustry": "",
  "founded": "", "headquarters": "", "website": "",
  "companyDescription": "3-5 פסקאות", "historyHighlights": [], "businessModel": "",
  "marketPosition": "", "marketShare": "",
  "competitors": [{{"name": "", "description": "", "differentiator": ""}}],
  "uniqueSellingPoints": [], "competitiveAdvantages": [],
  "mainProducts": [{{"name": "", "description": "", "targetMarket": ""}}],
  "pricePositioning": "budget/mid-range/premium/luxury",
  "targetDemographics": {{
    "primaryAudience": {{"gender": "", "ageRange": "", "socioeconomic": "", "lifestyle": "", "interests": [], "painPoints": [], "aspirations": []}},
    "secondaryAudience": {{"gender": "", "ageRange": "", "description": ""}},
    "behavior": "", "purchaseDrivers": []
  }},
  "brandPersonality": [], "brandValues": [], "brandPromise": "", "toneOfVoice": "",
  "visualIdentity": {{"primaryColors": ["#XXXXXX"], "style": "", "moodKeywords": []}},
  "socialPresence": {{"instagram": {{"handle": "", "followers": "", "engagement": "", "contentStyle": ""}}, "tiktok": {{"handle": "", "followers": "", "contentStyle": ""}}}},
  "previousCampaigns": [{{"name": "", "description": "", "results": ""}}],
  "influencerTypes": [], "contentThemes": [], "suggestedApproach": "",
  "recommendedGoals": [], "potentialChallenges": [],
  "industryTrends": [], "seasonality": "", "keyDates": [],
  "sources": [{{"title": "", "url": ""}}],
  "confidence": "high/medium/low", "researchNotes": ""
}}\
"""

_RESEARCH_PROMPT = """\
{system_prompt}

בצע מחקר מעמיק ומקיף על המותג "{brand_name}".
{website_line}

## הנחיות:
1. חפש מידע עדכני ומדויק ב-Google.
2. בדוק את הנוכחות ברשתות החברתיות.
3. נתח את הפוזיציה בשוק לעומת מתחרים.
4. זהה קמפיינים קודמים עם משפיענים.
5. אם אין מידע, ציין "לא נמצא מידע" ואל תמציא.

## החזר JSON בפורמט הבא בלבד:
""" + _RESEARCH_FORMAT


def minimal_research(brand_name: str, website: Optional[str] = None) -> Dict[str, Any]:
    """Research used when the model call fails."""
    return {
        "brandName": brand_name,
        "officialName": brand_name,
        "industry": "לא ידוע",
        "founded": "לא ידוע",
        "headquarters": "ישראל",
        "website": website or "",
        "companyDescription": f"{brand_name} הוא מותג ישראלי. נדרש מחקר נוסף לקבלת מידע מפורט יותר.",
        "historyHighlights": [],
        "businessModel": "לא ידוע",
        "marketPosition": "נדרש מחקר נוסף",
        "competitors": [],
        "uniqueSellingPoints": [],
        "competitiveAdvantages": [],
        "mainProducts": [],
        "pricePositioning": "mid-range",
        "targetDemographics": {
            "primaryAudience": {
                "gender": "נשים וגברים",
                "ageRange": "25-45",
                "socioeconomic": "בינוני-גבוה",
                "lifestyle": "לא ידוע",
                "interests": [],
                "painPoints": [],
                "aspirations": [],
            },
            "behavior": "לא ידוע",
            "purchaseDrivers": [],
        },
        "brandPersonality": [],
        "brandValues": [],
        "brandPromise": "",
        "toneOfVoice": "מקצועי",
        "visualIdentity": {"primaryColors": [], "style": "לא ידוע", "moodKeywords": []},
        "socialPresence": {},
        "previousCampaigns": [],
        "influencerTypes": ["לייפסטייל", "מומחים בתחום"],
        "contentThemes": [],
        "suggestedApproach": "שיתוף פעולה עם משפיענים רלוונטיים לקהל היעד",
        "recommendedGoals": ["מודעות", "חשיפה", "אמינות"],
        "potentialChallenges": [],
        "industryTrends": [],
        "sources": [],
        "confidence": "low",
        "researchNotes": "המחקר האוטומטי לא הצליח לאסוף מידע מספק. מומלץ לבצע מחקר ידני נוסף.",
    }


def resolve_brand_colors(
    logo_colors: Optional[Dict[str, Any]] = None,
    css_colors: Optional[List[str]] = None,
    research: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Pick the brand palette from the first usable source:
    logo analysis, website CSS colours, research visual identity, defaults.
    """
    if logo_colors and logo_colors.get("primary"):
        return {**DEFAULT_BRAND_COLORS, **logo_colors}

    css = [c for c in (css_colors or []) if isinstance(c, str) and c.startswith("#")]
    if css:
        return {
            **DEFAULT_BRAND_COLORS,
            "primary": css[0],
            "secondary": css[1] if len(css) > 1 else "#666666",
            "accent": css[2] if len(css) > 2 else css[0],
            "palette": css[:6],
        }

    identity = (research or {}).get("visualIdentity") or {}
    primary_colors = [c for c in identity.get("primaryColors") or [] if c]
    if primary_colors:
        return {
            "primary": primary_colors[0],
            "secondary": primary_colors[1] if len(primary_colors) > 1 else "#666666",
            "accent": primary_colors[0],
            "background": "#FFFFFF",
            "text": "#111111",
            "palette": primary_colors,
            "style": "minimal",
            "mood": identity.get("style") or "מקצועי",
        }

    return dict(DEFAULT_BRAND_COLORS)


class BrandResearcher:
    """Runs deep brand research on the configured research models."""

    def __init__(self) -> None:
        self.gemini = GeminiClient()

    async def research_brand(self, brand_name: str, website: Optional[str] = None) -> Dict[str, Any]:
        logger.info("Starting brand research for %s", brand_name)

        system_prompt = await get_config("ai_prompts", "brand_research.system_prompt")
        primary = await get_config("ai_models", "brand_research.primary_model")
        fallback = await get_config("ai_models", "brand_research.fallback_model")
        use_search = await get_config("feature_flags", "google_search_in_research")

        prompt = _RESEARCH_PROMPT.format(
            system_prompt=system_prompt,
            brand_name=brand_name,
            website_line=f"האתר הרשמי: {website}" if website else "",
        )
        try:
            research = await self.gemini.generate_json(
                prompt,
                models=[primary, fallback],
                temperature=0.3,
                google_search=bool(use_search),
            )
        except RuntimeError as exc:
            logger.error("Brand research failed for %s: %s", brand_name, exc)
            return minimal_research(brand_name, website)

        if not isinstance(research, dict):
            logger.error("Brand research for %s returned %s, not an object", brand_name, type(research).__name__)
            return minimal_research(brand_name, website)

        research.setdefault("brandName", brand_name)
        if website and not research.get("website"):
            research["website"] = website
        logger.info(
            "Brand research complete for %s: confidence=%s, %d competitors, %d sources",
            brand_name,
            research.get("confidence"),
            len(research.get("competitors") or []),
            len(research.get("sources") or []),
        )
        return research
