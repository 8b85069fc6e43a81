"""
Proposal agent: turns the brief (and optional kickoff notes plus research)
into the extracted facts and the pre-filled wizard step data.

Public API
----------
ProposalAgent.extract_from_brief(brief, kickoff)                   -> Dict  (never raises)
ProposalAgent.generate_proposal(brief, kickoff, research, strategy)  -> Dict {extracted, stepData}
normalize_response(raw, has_kickoff)                               -> Dict {extracted, stepData}
"""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, List, Optional, Tuple

from docmaker.config import settings
from docmaker.services.admin_config import get_config
from docmaker.services.gemini_client import GeminiClient
from docmaker.utils.json_cleanup import parse_llm_json

logger = logging.getLogger(__name__)

_NO_KICKOFF = "(לא סופק מסמך התנעה)"


# ---------------------------------------------------------------------------
# Prompt templates
# ---------------------------------------------------------------------------

_QUICK_EXTRACT_PROMPT = """\
{intro}

## בריף לקוח:
{brief}

{kickoff_section}

החזר JSON עם המבנה הבא בלבד:
{{
  "brand": {{"name": "", "officialName": null, "industry": "", "subIndustry": null, "website": null, "tagline": null, "background": ""}},
  "budget": {{"amount": 0, "currency": "₪", "breakdown": null}},
  "campaignGoals": [],
  "targetAudience": {{
    "primary": {{"gender": "", "ageRange": "", "interests": [], "painPoints": [], "lifestyle": "", "socioeconomic": null}},
    "secondary": null,
    "behavior": ""
  }},
  "keyInsight": null,
  "insightSource": null,
  "deliverables": [{{"type": "", "quantity": null, "description": ""}}],
  "influencerPreferences": {{"types": [], "specificNames": [], "criteria": [], "verticals": []}},
  "timeline": {{"startDate": null, "endDate": null, "duration": null, "milestones": []}},
  "additionalNotes": [],
  "_meta": {{"confidence": "high", "warnings": [], "hasKickoff": {has_kickoff}}}
}}\
"""

_PROPOSAL_PROMPT = """\
{system_prompt}

## מסמך 1: בריף לקוח
{brief}

{kickoff_section}
{research_section}
{writing_rules}

## פורמט הפלט (JSON)
{{
  "extracted": {{
    "brand": {{"name": "", "officialName": null, "background": "", "industry": "", "subIndustry": null, "website": null, "tagline": null}},
    "budget": {{"amount": 0, "currency": "₪", "breakdown": null}},
    "campaignGoals": [],
    "targetAudience": {{"primary": {{"gender": "", "ageRange": "", "socioeconomic": null, "lifestyle": "", "interests": [], "painPoints": []}}, "secondary": null, "behavior": ""}},
    "keyInsight": null,
    "insightSource": null,
    "deliverables": [{{"type": "", "quantity": null, "description": ""}}],
    "influencerPreferences": {{"types": [], "specificNames": [], "criteria": [], "verticals": []}},
    "timeline": {{"startDate": null, "endDate": null, "duration": null, "milestones": []}},
    "additionalNotes": []
  }},
  "stepData": {{
    "brief": {{"brandName": "", "brandBrief": "תקציר מנהלים חד ואלגנטי", "brandPainPoints": [], "brandObjective": "משפט מחץ אחד"}},
    "goals": {{"goals": [{{"title": "", "description": ""}}], "customGoals": []}},
    "target_audience": {{"targetGender": "", "targetAgeRange": "", "targetDescription": "", "targetBehavior": "", "targetInsights": [], "targetSecondary": null}},
    "key_insight": {{"keyInsight": "", "insightSource": "", "insightData": ""}},
    "strategy": {{"strategyHeadline": "", "strategyDescription": "", "strategyPillars": [{{"title": "", "description": ""}}]}},
    "creative": {{"activityTitle": "", "activityConcept": "", "activityDescription": "", "activityApproach": [{{"title": "", "description": ""}}], "activityDifferentiator": ""}},
    "deliverables": {{"deliverables": [{{"type": "", "quantity": 1, "description": "", "purpose": ""}}], "deliverablesSummary": ""}},
    "quantities": {{"influencerCount": 5, "contentTypes": [{{"type": "", "quantityPerInfluencer": 1, "totalQuantity": 5}}], "campaignDurationMonths": 1, "totalDeliverables": 0, "formula": ""}},
    "media_targets": {{"budget": 0, "currency": "₪", "potentialReach": 0, "potentialEngagement": 0, "cpe": 0, "cpm": 0, "estimatedImpressions": 0, "metricsExplanation": ""}},
    "influencers": {{"influencers": [{{"name": "", "username": "", "categories": [], "followers": 0, "engagementRate": 0, "bio": "", "profileUrl": "", "profilePicUrl": ""}}], "influencerStrategy": "", "influencerCriteria": []}}
  }}
}}\
"""


def _kickoff_section(kickoff: Optional[str]) -> str:
    return f"## מסמך 2: מסמך התנעה פנימי\n{kickoff}" if kickoff else _NO_KICKOFF


def _dump(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False)


def build_research_section(
    research: Optional[Dict[str, Any]],
    influencer_strategy: Optional[Dict[str, Any]] = None,
    max_competitors: int = 4,
    max_campaigns: int = 3,
) -> str:
    """Render brand research (and influencer strategy) as prompt context."""
    if not research:
        return ""
    r = research
    lines = [
        "## מחקר אסטרטגי על המותג",
        "**השתמש בנתונים כדי לכתוב תוכן ספציפי ולא גנרי.**",
        f"- מיקום בשוק: {r.get('marketPosition') or ''}",
        f"- מתחרים: {_dump((r.get('competitors') or [])[:max_competitors])}",
        f"- יתרונות תחרותיים: {_dump(r.get('competitiveAdvantages') or [])}",
        f"- יתרונות ייחודיים: {_dump(r.get('uniqueSellingPoints') or [])}",
        f"- טרנדים בתעשייה: {_dump(r.get('industryTrends') or [])}",
        f"- עונתיות: {r.get('seasonality') or ''}",
        f"- אישיות המותג: {_dump(r.get('brandPersonality') or [])}",
        f"- ערכי מותג: {_dump(r.get('brandValues') or [])}",
        f"- הבטחת מותג: {r.get('brandPromise') or ''}",
        f"- טון דיבור: {r.get('toneOfVoice') or ''}",
        f"- קהל יעד מהמחקר: {_dump(r.get('targetDemographics') or {})}",
        f"- קמפיינים קודמים: {_dump((r.get('previousCampaigns') or [])[:max_campaigns])}",
        f"- נוכחות ברשתות: {_dump(r.get('socialPresence') or {})}",
        f"- נושאי תוכן מומלצים: {_dump(r.get('contentThemes') or [])}",
        f"- גישה מומלצת: {r.get('suggestedApproach') or ''}",
        f"- סוגי משפיענים מומלצים: {_dump(r.get('influencerTypes') or [])}",
    ]
    if influencer_strategy:
        lines.append("### אסטרטגיית משפיענים")
        lines.append(_dump(influencer_strategy)[:1500])
    return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------------
# Response normalisation
# ---------------------------------------------------------------------------

def _d(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _l(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def normalize_response(raw: Any, has_kickoff: bool) -> Dict[str, Any]:
    """Fill every field of ``extracted`` and ``stepData`` with a safe default."""
    raw = _d(raw)
    ex = _d(raw.get("extracted"))
    brand = _d(ex.get("brand"))
    budget = _d(ex.get("budget"))
    audience = _d(ex.get("targetAudience"))
    primary = _d(audience.get("primary"))

    extracted: Dict[str, Any] = {
        "brand": {
            "name": brand.get("name") or "",
            "officialName": brand.get("officialName"),
            "background": brand.get("background") or "",
            "industry": brand.get("industry") or "",
            "subIndustry": brand.get("subIndustry"),
            "website": brand.get("website"),
            "tagline": brand.get("tagline"),
        },
        "budget": {
            "amount": budget.get("amount") or 0,
            "currency": budget.get("currency") or "₪",
            "breakdown": budget.get("breakdown"),
        },
        "campaignGoals": _l(ex.get("campaignGoals")),
        "targetAudience": {
            "primary": {
                "gender": primary.get("gender") or "",
                "ageRange": primary.get("ageRange") or "",
                "socioeconomic": primary.get("socioeconomic"),
                "lifestyle": primary.get("lifestyle"),
                "interests": _l(primary.get("interests")),
                "painPoints": _l(primary.get("painPoints")),
            },
            "secondary": audience.get("secondary"),
            "behavior": audience.get("behavior"),
        },
        "keyInsight": ex.get("keyInsight"),
        "insightSource": ex.get("insightSource"),
        "deliverables": _l(ex.get("deliverables")),
        "influencerPreferences": _d(ex.get("influencerPreferences")),
        "timeline": _d(ex.get("timeline")),
        "additionalNotes": _l(ex.get("additionalNotes")),
    }
    warnings: List[str] = []
    if not extracted["brand"]["name"]:
        warnings.append("שם המותג לא נמצא")
    if not extracted["budget"]["amount"]:
        warnings.append("תקציב לא נמצא")
    extracted["_meta"] = {
        "confidence": "high" if extracted["brand"]["name"] else "medium",
        "clientBriefProcessed": True,
        "kickoffDocProcessed": has_kickoff,
        "warnings": warnings,
    }

    sd = _d(raw.get("stepData"))
    brief = _d(sd.get("brief"))
    goals = _d(sd.get("goals"))
    ta = _d(sd.get("target_audience"))
    ki = _d(sd.get("key_insight"))
    strategy = _d(sd.get("strategy"))
    creative = _d(sd.get("creative"))
    deliv = _d(sd.get("deliverables"))
    qty = _d(sd.get("quantities"))
    media = _d(sd.get("media_targets"))
    infl = _d(sd.get("influencers"))
    goal_list = extracted["campaignGoals"]

    if _l(deliv.get("deliverables")):
        deliverables = [
            {
                "type": _d(d).get("type") or "",
                "quantity": _d(d).get("quantity") or 1,
                "description": _d(d).get("description") or "",
                "purpose": _d(d).get("purpose") or "",
            }
            for d in deliv["deliverables"]
        ]
    else:
        deliverables = [
            {
                "type": _d(d).get("type") or "",
                "quantity": _d(d).get("quantity") or 1,
                "description": _d(d).get("description") or "",
                "purpose": "",
            }
            for d in extracted["deliverables"]
        ]

    step_data: Dict[str, Any] = {
        "brief": {
            "brandName": brief.get("brandName") or extracted["brand"]["name"],
            "brandBrief": brief.get("brandBrief") or extracted["brand"]["background"],
            "brandPainPoints": _l(brief.get("brandPainPoints")),
            "brandObjective": brief.get("brandObjective") or (goal_list[0] if goal_list else ""),
        },
        "goals": {
            "goals": _l(goals.get("goals")) or [{"title": g, "description": ""} for g in goal_list],
            "customGoals": _l(goals.get("customGoals")),
        },
        "target_audience": {
            "targetGender": ta.get("targetGender") or extracted["targetAudience"]["primary"]["gender"],
            "targetAgeRange": ta.get("targetAgeRange") or extracted["targetAudience"]["primary"]["ageRange"],
            "targetDescription": ta.get("targetDescription") or extracted["targetAudience"]["primary"]["lifestyle"] or "",
            "targetBehavior": ta.get("targetBehavior") or extracted["targetAudience"]["behavior"] or "",
            "targetInsights": _l(ta.get("targetInsights")) or extracted["targetAudience"]["primary"]["interests"],
            "targetSecondary": ta.get("targetSecondary") or extracted["targetAudience"]["secondary"],
        },
        "key_insight": {
            "keyInsight": ki.get("keyInsight") or "",
            "insightSource": ki.get("insightSource") or "",
            "insightData": ki.get("insightData"),
        },
        "strategy": {
            "strategyHeadline": strategy.get("strategyHeadline") or "",
            "strategyDescription": strategy.get("strategyDescription"),
            "strategyPillars": _l(strategy.get("strategyPillars")),
        },
        "creative": {
            "activityTitle": creative.get("activityTitle") or "",
            "activityConcept": creative.get("activityConcept") or "",
            "activityDescription": creative.get("activityDescription") or "",
            "activityApproach": _l(creative.get("activityApproach")),
            "activityDifferentiator": creative.get("activityDifferentiator"),
            "referenceImages": [],
        },
        "deliverables": {
            "deliverables": deliverables,
            "deliverablesSummary": deliv.get("deliverablesSummary"),
            "referenceImages": [],
        },
        "quantities": {
            "influencerCount": qty.get("influencerCount") or 5,
            "contentTypes": _l(qty.get("contentTypes")),
            "campaignDurationMonths": qty.get("campaignDurationMonths") or 1,
            "totalDeliverables": qty.get("totalDeliverables") or 0,
            "formula": qty.get("formula"),
        },
        "media_targets": {
            "budget": media.get("budget") or extracted["budget"]["amount"],
            "currency": media.get("currency") or extracted["budget"]["currency"],
            "potentialReach": media.get("potentialReach") or 0,
            "potentialEngagement": media.get("potentialEngagement") or 0,
            "cpe": media.get("cpe") or 0,
            "cpm": media.get("cpm"),
            "estimatedImpressions": media.get("estimatedImpressions"),
            "metricsExplanation": media.get("metricsExplanation"),
        },
        "influencers": {
            "influencers": [
                {
                    "name": _d(i).get("name") or "",
                    "username": _d(i).get("username") or "",
                    "profileUrl": _d(i).get("profileUrl") or "",
                    "profilePicUrl": _d(i).get("profilePicUrl") or "",
                    "categories": _l(_d(i).get("categories")),
                    "followers": _d(i).get("followers") or 0,
                    "engagementRate": _d(i).get("engagementRate") or 0,
                    "bio": _d(i).get("bio"),
                }
                for i in _l(infl.get("influencers"))
            ],
            "influencerStrategy": infl.get("influencerStrategy"),
            "influencerCriteria": _l(infl.get("influencerCriteria")),
        },
    }

    return {"extracted": extracted, "stepData": step_data}


def fallback_extraction() -> Dict[str, Any]:
    """Minimal structure returned when quick extraction fails."""
    return {
        "brand": {"name": "", "industry": ""},
        "budget": {"amount": 0, "currency": "₪"},
        "campaignGoals": [],
        "targetAudience": {"primary": {"gender": "", "ageRange": "", "interests": [], "painPoints": []}},
        "_meta": {"confidence": "low", "warnings": ["Extraction failed"]},
    }


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class ProposalAgent:
    """Gemini-backed proposal generator."""

    def __init__(self) -> None:
        self.gemini = GeminiClient()

    async def extract_from_brief(self, brief: str, kickoff: Optional[str] = None) -> Dict[str, Any]:
        """Fast fact extraction on the Flash model.  Falls back instead of raising."""
        intro = await get_config("ai_prompts", "proposal_agent.extraction_prompt_template")
        max_tokens = await get_config("pipeline", "limits.extraction_tokens")
        prompt = _QUICK_EXTRACT_PROMPT.format(
            intro=intro,
            brief=brief,
            kickoff_section=_kickoff_section(kickoff),
            has_kickoff="true" if kickoff else "false",
        )
        text = await self.gemini.generate(
            prompt,
            model=self.gemini.flash_model,
            temperature=0.2,
            json_mode=True,
            max_output_tokens=int(max_tokens) if max_tokens else None,
        )
        try:
            extracted = parse_llm_json(text) if text else None
        except ValueError:
            extracted = None
        if not isinstance(extracted, dict):
            logger.error("extract_from_brief: extraction failed, returning fallback")
            return fallback_extraction()

        logger.info(
            "extract_from_brief: brand=%r budget=%s",
            _d(extracted.get("brand")).get("name"),
            _d(extracted.get("budget")).get("amount"),
        )
        return extracted

    async def generate_proposal(
        self,
        brief: str,
        kickoff: Optional[str] = None,
        brand_research: Optional[Dict[str, Any]] = None,
        influencer_strategy: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """
        Full proposal generation.

        Attempts: primary model in JSON mode, primary model free-form,
        fallback model in JSON mode.

        Raises:
            ValueError:   brief shorter than MIN_BRIEF_LENGTH.
            RuntimeError: every attempt failed.
        """
        if not brief or len(brief.strip()) < settings.MIN_BRIEF_LENGTH:
            raise ValueError("טקסט הבריף קצר מדי לניתוח. ודא שהמסמך נקרא בהצלחה.")

        prompt = await self._build_prompt(brief, kickoff, brand_research, influencer_strategy)
        primary = await get_config("ai_models", "proposal_agent.primary_model")
        fallback = await get_config("ai_models", "proposal_agent.fallback_model")
        attempts: List[Tuple[str, bool]] = [(primary, True), (primary, False), (fallback, True)]

        last_error = ""
        for attempt, (model, json_mode) in enumerate(attempts, start=1):
            text = await self.gemini.generate(prompt, model=model, temperature=0.7, json_mode=json_mode)
            if not text:
                last_error = f"{model} returned an empty response"
                logger.warning("generate_proposal: attempt %d failed (%s)", attempt, last_error)
                continue
            try:
                raw = parse_llm_json(text)
            except ValueError as exc:
                last_error = str(exc)
                logger.warning("generate_proposal: attempt %d unparseable (%s)", attempt, exc)
                continue

            result = normalize_response(raw, bool(kickoff))
            logger.info(
                "generate_proposal: done on attempt %d (brand=%r, goals=%d, influencers=%d)",
                attempt,
                result["extracted"]["brand"]["name"],
                len(result["stepData"]["goals"]["goals"]),
                len(result["stepData"]["influencers"]["influencers"]),
            )
            return result

        raise RuntimeError(f"שגיאה בעיבוד המסמכים: {last_error}")

    async def _build_prompt(
        self,
        brief: str,
        kickoff: Optional[str],
        brand_research: Optional[Dict[str, Any]],
        influencer_strategy: Optional[Dict[str, Any]],
    ) -> str:
        system_prompt = await get_config("ai_prompts", "proposal_agent.system_prompt")
        writing_rules = await get_config("ai_prompts", "proposal_agent.writing_rules")
        max_competitors = await get_config("pipeline", "limits.competitors")
        max_campaigns = await get_config("pipeline", "limits.campaigns")
        return _PROPOSAL_PROMPT.format(
            system_prompt=system_prompt,
            brief=brief,
            kickoff_section=_kickoff_section(kickoff),
            research_section=build_research_section(
                brand_research, influencer_strategy, int(max_competitors), int(max_campaigns)
            ),
            writing_rules=writing_rules,
        )
