"""
Staged AI slide designer.

A deck is produced in three request-sized stages so no single HTTP call
runs for too long:

    foundation  -> design system + slide batches (one LLM call)
    batch N     -> one LLM call per batch of ~5 slides
    finalize    -> validation, auto-fix, consistency pass, logo injection

The output is a JSON presentation AST (canvas 1920x1080) that
:mod:`docmaker.services.html_renderer` turns into HTML.

Public API
----------
proposal_data_from_document(data)                          -> dict
build_fallback_design_system(brand_colors)                 -> dict
generate_design_system(brief_data)                         -> dict
build_slide_batches(data, config)                          -> List[List[dict]]
generate_slides_batch(design_system, slides, batch_index, brand_name, previous_context, slide_index)
create_fallback_slide(slide_input, design_system, index)   -> dict
pipeline_foundation(data, config)                          -> dict
pipeline_batch(foundation, batch_index, previous_context)  -> dict
pipeline_finalize(foundation, all_slides, document_id)     -> dict
regenerate_single_slide(design_system, slide_input, brand_name, instruction)
"""
from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from docmaker.services import storage
from docmaker.services.admin_config import get_config
from docmaker.services.color_utils import hex_to_luminance, validate_and_fix_colors
from docmaker.services.config_defaults import LAYOUT_ARCHETYPES, PACING_MAP, TEMPERATURE_MAP
from docmaker.services.gemini_client import GeminiClient
from docmaker.services.slide_quality import (
    CANVAS_HEIGHT,
    CANVAS_WIDTH,
    SAFE_MARGIN,
    auto_fix_slide,
    check_visual_consistency,
    validate_slide,
)
from docmaker.utils.json_cleanup import safe_stringify

logger = logging.getLogger(__name__)

PIPELINE_NAME = "slide-designer-v3-staged"
PRESENTATION_VERSION = 2
DEFAULT_FONT = "Heebo"
MAX_INFLUENCERS = 6

LEADERS_LOGO_LIGHT = "logos/logo.png"
LEADERS_LOGO_DARK = "logos/logoblack.png"

DEFAULT_BRAND_COLORS: Dict[str, str] = {
    "primary": "#E94560",
    "secondary": "#1A1A2E",
    "accent": "#E94560",
    "style": "corporate",
    "mood": "מקצועי",
}

_CURRENCY_SYMBOLS = {"USD": "$", "EUR": "€"}

_TENSION_SLIDES = ("cover", "insight", "bigIdea", "closing")

IMAGE_SIZE_HINTS: Dict[str, str] = {
    "cover": "full-bleed 1920x1080 behind a dark gradient, or the right half 960x1080",
    "brief": "side panel about 700x800",
    "audience": "portrait panel about 640x900",
    "insight": "background at low opacity or a 900x1080 half",
    "bigIdea": "hero image about 1100x1080",
    "strategy": "accent strip about 600x1080",
    "closing": "full-bleed background at low opacity",
}

# Client logo placement per slide type: x, y, width, height, opacity
_CLIENT_LOGO_SLOTS: Dict[str, Dict[str, float]] = {
    "cover": {"x": 1620, "y": 60, "width": 220, "height": 80, "opacity": 0.95},
    "bigIdea": {"x": 1660, "y": 60, "width": 180, "height": 65, "opacity": 0.85},
    "closing": {"x": 810, "y": 100, "width": 300, "height": 110, "opacity": 1.0},
}

_HEX_COLOR = re.compile(r"#[0-9a-fA-F]{3,8}")


# ---------------------------------------------------------------------------
# Response schemas (Gemini OpenAPI subset)
# ---------------------------------------------------------------------------

def _str() -> Dict[str, Any]:
    return {"type": "STRING"}


def _num() -> Dict[str, Any]:
    return {"type": "NUMBER"}


def _obj(properties: Dict[str, Any], required: Optional[List[str]] = None) -> Dict[str, Any]:
    schema: Dict[str, Any] = {"type": "OBJECT", "properties": properties}
    if required:
        schema["required"] = required
    return schema


_COLOR_KEYS = [
    "primary", "secondary", "accent", "background", "text", "cardBg", "cardBorder",
    "gradientStart", "gradientEnd", "muted", "highlight", "auroraA", "auroraB", "auroraC",
]

DESIGN_SYSTEM_SCHEMA = _obj(
    {
        "creativeDirection": _obj({
            "visualMetaphor": _str(),
            "visualTension": _str(),
            "oneRule": _str(),
            "colorStory": _str(),
            "typographyVoice": _str(),
            "emotionalArc": _str(),
        }),
        "colors": _obj({k: _str() for k in _COLOR_KEYS}, required=["primary", "background", "text"]),
        "fonts": _obj({"heading": _str(), "body": _str()}),
        "typography": _obj({
            "displaySize": _num(),
            "headingSize": _num(),
            "subheadingSize": _num(),
            "bodySize": _num(),
            "captionSize": _num(),
            "letterSpacingTight": _num(),
            "letterSpacingWide": _num(),
            "lineHeightTight": _num(),
            "lineHeightRelaxed": _num(),
            "weightPairs": {"type": "ARRAY", "items": {"type": "ARRAY", "items": {"type": "INTEGER"}}},
        }),
        "spacing": _obj({
            "unit": _num(), "cardPadding": _num(), "cardGap": _num(), "safeMargin": _num(),
        }),
        "effects": _obj({
            "borderRadius": _str(),
            "borderRadiusValue": _num(),
            "decorativeStyle": _str(),
            "shadowStyle": _str(),
            "auroraGradient": _str(),
        }),
        "motif": _obj({
            "type": _str(), "opacity": _num(), "color": _str(), "implementation": _str(),
        }),
    },
    required=["colors", "fonts", "typography"],
)

SLIDE_ELEMENT_SCHEMA = _obj(
    {
        "id": _str(),
        "type": {"type": "STRING", "enum": ["text", "image", "shape"]},
        "x": _num(), "y": _num(), "width": _num(), "height": _num(),
        "zIndex": {"type": "INTEGER"},
        "opacity": _num(),
        "rotation": _num(),
        # text
        "content": _str(),
        "fontSize": _num(),
        "fontWeight": {"type": "INTEGER"},
        "color": _str(),
        "textAlign": _str(),
        "role": _str(),
        "lineHeight": _num(),
        "letterSpacing": _num(),
        "textStroke": _obj({"width": _num(), "color": _str()}),
        # image
        "src": _str(),
        "alt": _str(),
        "objectFit": _str(),
        # shape
        "shapeType": _str(),
        "fill": _str(),
        "border": _str(),
        "borderRadius": _num(),
        "clipPath": _str(),
    },
    required=["id", "type", "x", "y", "width", "height", "zIndex"],
)

SLIDE_BATCH_SCHEMA = _obj(
    {
        "slides": {
            "type": "ARRAY",
            "items": _obj(
                {
                    "id": _str(),
                    "slideType": _str(),
                    "label": _str(),
                    "background": _obj({"type": _str(), "value": _str()}, required=["type", "value"]),
                    "elements": {"type": "ARRAY", "items": SLIDE_ELEMENT_SCHEMA},
                },
                required=["slideType", "background", "elements"],
            ),
        }
    },
    required=["slides"],
)


# ---------------------------------------------------------------------------
# Small helpers
# ---------------------------------------------------------------------------

def format_num(n: Any) -> str:
    """1500000 -> '1.5M', 12400 -> '12K', 0/None -> '0'."""
    if not n:
        return "0"
    try:
        n = float(n)
    except (TypeError, ValueError):
        return str(n)
    if n >= 1_000_000:
        return f"{n / 1_000_000:.1f}M"
    if n >= 1000:
        return f"{round(n / 1000)}K"
    return str(int(n)) if n == int(n) else str(n)


def currency_symbol(code: Optional[str]) -> str:
    """ISO code or symbol -> symbol; shekels unless USD or EUR."""
    code = (code or "").strip()
    if code in _CURRENCY_SYMBOLS.values():
        return code
    return _CURRENCY_SYMBOLS.get(code.upper(), "₪")


def _as_number(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else []


def proposal_data_from_document(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Flatten a document's ``data`` into the proposal fields the slide builder
    reads.  Top-level keys win; missing ones are filled from the wizard
    ``_stepData`` and the quick ``_extractedData``.
    """
    data = data or {}
    steps = data.get("_stepData") or {}
    extracted = data.get("_extractedData") or {}

    brief = steps.get("brief") or {}
    goals = steps.get("goals") or {}
    audience = (steps.get("target_audience") or {})
    insight = steps.get("key_insight") or {}
    strategy = steps.get("strategy") or {}
    creative = steps.get("creative") or {}
    deliverables = steps.get("deliverables") or {}
    quantities = steps.get("quantities") or {}
    media = steps.get("media_targets") or {}
    influencers = steps.get("influencers") or {}

    brand = extracted.get("brand") or {}
    budget = extracted.get("budget") or {}

    flat: Dict[str, Any] = {
        "brandName": brief.get("brandName") or brand.get("name") or "",
        "brandBrief": brief.get("brandBrief") or brand.get("background") or "",
        "brandPainPoints": _as_list(brief.get("brandPainPoints")),
        "brandObjective": brief.get("brandObjective") or "",
        "goalsDetailed": _as_list(goals.get("goals")),
        "goals": _as_list(goals.get("customGoals")) or _as_list(extracted.get("campaignGoals")),
        "targetGender": audience.get("targetGender") or "",
        "targetAgeRange": audience.get("targetAgeRange") or "",
        "targetDescription": audience.get("targetDescription") or "",
        "targetBehavior": audience.get("targetBehavior") or "",
        "targetInsights": _as_list(audience.get("targetInsights")),
        "keyInsight": insight.get("keyInsight") or "",
        "insightSource": insight.get("insightSource") or "",
        "insightData": insight.get("insightData") or "",
        "strategyHeadline": strategy.get("strategyHeadline") or "",
        "strategyDescription": strategy.get("strategyDescription") or "",
        "strategyPillars": _as_list(strategy.get("strategyPillars")),
        "activityTitle": creative.get("activityTitle") or "",
        "activityConcept": creative.get("activityConcept") or "",
        "activityDescription": creative.get("activityDescription") or "",
        "activityApproach": _as_list(creative.get("activityApproach")),
        "activityDifferentiator": creative.get("activityDifferentiator") or "",
        "deliverablesDetailed": _as_list(deliverables.get("deliverablesDetailed"))
        or _as_list(deliverables.get("deliverables")),
        "deliverablesSummary": deliverables.get("deliverablesSummary") or "",
        "influencerCount": quantities.get("influencerCount"),
        "campaignDurationMonths": quantities.get("campaignDurationMonths"),
        "budget": media.get("budget") or budget.get("amount") or 0,
        "currency": media.get("currency") or budget.get("currency") or "ILS",
        "potentialReach": media.get("potentialReach") or 0,
        "potentialEngagement": media.get("potentialEngagement") or 0,
        "cpe": media.get("cpe") or 0,
        "cpm": media.get("cpm") or 0,
        "estimatedImpressions": media.get("estimatedImpressions") or 0,
        "metricsExplanation": media.get("metricsExplanation") or "",
        "influencerStrategy": influencers.get("influencerStrategy") or "",
        "influencerCriteria": _as_list(influencers.get("influencerCriteria")),
        "contentGuidelines": _as_list(influencers.get("contentGuidelines")),
        "enhancedInfluencers": _as_list(influencers.get("influencers")),
    }

    for key, value in data.items():
        if not key.startswith("_") and value not in (None, "", [], {}):
            flat[key] = value
    for key in ("_brandColors", "_brandResearch", "_influencerStrategy", "_scraped", "_scrapedInfluencers"):
        if key in data:
            flat[key] = data[key]
    return flat


# ---------------------------------------------------------------------------
# Design system
# ---------------------------------------------------------------------------

def build_fallback_design_system(brand_colors: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Dark editorial design system derived from the brand's three colours."""
    bc = {**DEFAULT_BRAND_COLORS, **(brand_colors or {})}
    primary, secondary, accent = bc["primary"], bc["secondary"], bc["accent"]
    return {
        "creativeDirection": {
            "visualMetaphor": "מגזין אופנה יוקרתי",
            "visualTension": "טיפוגרפיה ענקית מול מרחב שלילי",
            "oneRule": "כל שקף עם אלמנט אחד שבורח מהמסגרת",
            "colorStory": "רקע כהה, צבע המותג כהדגשה",
            "typographyVoice": "כותרות כבדות וגוף טקסט קליל",
            "emotionalArc": "סקרנות, אמון, התלהבות",
        },
        "colors": {
            "primary": primary,
            "secondary": secondary,
            "accent": accent,
            "background": "#0a0a12",
            "text": "#f0f0f5",
            "cardBg": "#14142a",
            "cardBorder": f"{primary}25",
            "gradientStart": primary,
            "gradientEnd": accent,
            "muted": "#808090",
            "highlight": accent,
            "auroraA": f"{primary}50",
            "auroraB": f"{accent}50",
            "auroraC": f"{secondary}60",
        },
        "fonts": {"heading": DEFAULT_FONT, "body": DEFAULT_FONT},
        "direction": "rtl",
        "typography": {
            "displaySize": 104,
            "headingSize": 56,
            "subheadingSize": 32,
            "bodySize": 22,
            "captionSize": 15,
            "letterSpacingTight": -3,
            "letterSpacingWide": 5,
            "lineHeightTight": 1.0,
            "lineHeightRelaxed": 1.5,
            "weightPairs": [[800, 400]],
        },
        "spacing": {"unit": 8, "cardPadding": 40, "cardGap": 32, "safeMargin": SAFE_MARGIN},
        "effects": {
            "borderRadius": "soft",
            "borderRadiusValue": 16,
            "decorativeStyle": "geometric",
            "shadowStyle": "none",
            "auroraGradient": (
                f"radial-gradient(circle at 20% 50%, {primary}50 0%, transparent 50%), "
                f"radial-gradient(circle at 80% 20%, {accent}50 0%, transparent 40%)"
            ),
        },
        "motif": {
            "type": "diagonal-lines",
            "opacity": 0.08,
            "color": primary,
            "implementation": f"repeating-linear-gradient(45deg, {primary} 0 1px, transparent 1px 40px)",
        },
    }


_DESIGN_SYSTEM_PROMPT = """\
Create a design system for a premium Hebrew (RTL) influencer-marketing proposal deck.

Brand: {brand_name}
Industry: {industry}
Brand personality: {personality}
Brand colours: primary {primary}, secondary {secondary}, accent {accent}
Visual style: {style}. Mood: {mood}
Target audience: {audience}

Requirements:
- Derive the palette from the brand colours. Text must have at least 4.5:1 contrast on the background.
- Headline font and body font must support Hebrew (Heebo, Assistant, Rubik, Frank Ruhl Libre).
- Typography scale: display 96-140px, heading 48-64px, body 18-24px.
- Define one signature visual motif that repeats across slides.
- creativeDirection is a short, concrete art direction in Hebrew.

Return JSON only.\
"""


async def generate_design_system(brief_data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Ask Gemini (Flash, then Pro) for a design system.  Colours are run
    through contrast repair; fonts default to Heebo and direction is rtl.
    Falls back to :func:`build_fallback_design_system`.
    """
    gemini = GeminiClient()
    brand_colors = {**DEFAULT_BRAND_COLORS, **(brief_data.get("brandColors") or {})}
    prompt = _DESIGN_SYSTEM_PROMPT.format(
        brand_name=brief_data.get("brandName") or "",
        industry=brief_data.get("industry") or "לא ידוע",
        personality=safe_stringify(_as_list(brief_data.get("brandPersonality"))) or "מקצועי",
        primary=brand_colors["primary"],
        secondary=brand_colors["secondary"],
        accent=brand_colors["accent"],
        style=brand_colors.get("style") or "corporate",
        mood=brand_colors.get("mood") or "מקצועי",
        audience=brief_data.get("targetAudience") or "לא ידוע",
    )
    system_instruction = await get_config("ai_prompts", "slide_designer.system_instruction")
    models = [gemini.flash_model, gemini.pro_model]

    for attempt, model in enumerate(models):
        try:
            parsed = await gemini.generate_json(
                prompt,
                models=[model],
                system_instruction=system_instruction,
                temperature=0.7,
                response_schema=DESIGN_SYSTEM_SCHEMA,
            )
        except RuntimeError as exc:
            logger.warning("Design system attempt %d (%s) failed: %s", attempt + 1, model, exc)
            parsed = None

        if isinstance(parsed, dict) and (parsed.get("colors") or {}).get("primary"):
            parsed["colors"] = validate_and_fix_colors(parsed["colors"])
            fonts = parsed.get("fonts") or {}
            parsed["fonts"] = {
                "heading": fonts.get("heading") or DEFAULT_FONT,
                "body": fonts.get("body") or DEFAULT_FONT,
            }
            parsed["direction"] = "rtl"
            logger.info("Design system generated with %s", model)
            return parsed

        if attempt < len(models) - 1:
            await asyncio.sleep(GeminiClient.RETRY_DELAY * (attempt + 1))

    logger.error("Design system generation failed, using fallback")
    return build_fallback_design_system(brief_data.get("brandColors"))


# ---------------------------------------------------------------------------
# Slide batches
# ---------------------------------------------------------------------------

def _slide(slide_type: str, title: str, content: Dict[str, Any], image_url: Optional[str] = None) -> Dict[str, Any]:
    slide: Dict[str, Any] = {"slideType": slide_type, "title": title, "content": content}
    if image_url:
        slide["imageUrl"] = image_url
    return slide


def build_slide_batches(data: Dict[str, Any], config: Optional[Dict[str, Any]] = None) -> List[List[Dict[str, Any]]]:
    """
    Split the proposal into three batches of slide inputs.  The influencers
    slide is included only when scraped or recommended influencers exist.
    """
    config = config or {}
    images: Dict[str, str] = config.get("images") or {}
    max_influencers = int(config.get("maxInfluencers") or MAX_INFLUENCERS)

    extra_by_placement: Dict[str, List[str]] = {}
    for extra in config.get("extraImages") or []:
        if isinstance(extra, dict) and extra.get("url"):
            extra_by_placement.setdefault(extra.get("placement") or "", []).append(extra["url"])

    def image_for(slide_type: str, *placements: str) -> Optional[str]:
        for placement in placements:
            if images.get(placement):
                return images[placement]
        extras = extra_by_placement.get(slide_type)
        return extras[0] if extras else None

    cur = currency_symbol(data.get("currency"))
    brand_name = data.get("brandName") or ""

    batch1 = [
        _slide("cover", "שער", {
            "brandName": brand_name,
            "subtitle": data.get("campaignSubtitle") or data.get("strategyHeadline") or "הצעת שיתוף פעולה",
            "issueDate": data.get("issueDate") or datetime.now().strftime("%d.%m.%Y"),
        }, image_for("cover", "coverImage")),
        _slide("brief", "למה התכנסנו?", {
            "headline": "למה התכנסנו?",
            "brandBrief": data.get("brandBrief") or "",
            "painPoints": _as_list(data.get("brandPainPoints")),
            "objective": data.get("brandObjective") or "",
        }, image_for("brief", "brandImage")),
        _slide("goals", "מטרות הקמפיין", {
            "headline": "מטרות הקמפיין",
            "goals": _as_list(data.get("goalsDetailed"))
            or [{"title": g, "description": ""} for g in _as_list(data.get("goals"))],
        }),
        _slide("audience", "קהל היעד", {
            "headline": "קהל היעד",
            "gender": data.get("targetGender") or "",
            "ageRange": data.get("targetAgeRange") or "",
            "description": data.get("targetDescription") or "",
            "behavior": data.get("targetBehavior") or "",
            "insights": _as_list(data.get("targetInsights")),
        }, image_for("audience", "audienceImage")),
        _slide("insight", "התובנה המרכזית", {
            "headline": "התובנה המרכזית",
            "keyInsight": data.get("keyInsight") or "",
            "source": data.get("insightSource") or "",
            "data": data.get("insightData") or "",
        }),
    ]

    batch2 = [
        _slide("strategy", "האסטרטגיה", {
            "headline": "האסטרטגיה",
            "strategyHeadline": data.get("strategyHeadline") or "",
            "description": data.get("strategyDescription") or "",
            "pillars": _as_list(data.get("strategyPillars")),
        }),
        _slide("bigIdea", "הרעיון המרכזי", {
            "headline": data.get("activityTitle") or data.get("strategyHeadline") or "הרעיון המרכזי",
            "concept": data.get("activityConcept") or "",
            "description": data.get("activityDescription") or "",
        }, image_for("bigIdea", "activityImage", "brandImage")),
        _slide("approach", "הגישה שלנו", {
            "headline": "הגישה שלנו",
            "approaches": _as_list(data.get("activityApproach")),
            "differentiator": data.get("activityDifferentiator") or "",
        }),
        _slide("deliverables", "תוצרים", {
            "headline": "תוצרים",
            "deliverables": _as_list(data.get("deliverablesDetailed")),
            "summary": data.get("deliverablesSummary") or "",
        }),
        _slide("metrics", "יעדים ומדדים", {
            "headline": "יעדים ומדדים",
            "budget": f"{cur}{format_num(data.get('budget'))}" if _as_number(data.get("budget")) else "",
            "reach": format_num(data.get("potentialReach")),
            "engagement": format_num(data.get("potentialEngagement")),
            "impressions": format_num(data.get("estimatedImpressions")),
            "cpe": f"{cur}{_as_number(data.get('cpe')):.1f}" if _as_number(data.get("cpe")) else "",
            "explanation": data.get("metricsExplanation") or "",
        }),
    ]

    research = data.get("_influencerStrategy") or data.get("influencerResearch") or {}
    if not isinstance(research, dict):
        research = {}
    themes = [
        (t.get("theme") or "") if isinstance(t, dict) else str(t)
        for t in _as_list(research.get("contentThemes"))
    ]

    batch3 = [
        _slide("influencerStrategy", "אסטרטגיית משפיענים", {
            "headline": "אסטרטגיית משפיענים",
            "strategy": data.get("influencerStrategy") or research.get("strategySummary") or "",
            "criteria": _as_list(data.get("influencerCriteria")) or [t for t in themes if t],
            "guidelines": _as_list(data.get("contentGuidelines")),
        }),
    ]

    influencers = _as_list(data.get("enhancedInfluencers")) or _as_list(data.get("_scrapedInfluencers"))
    recommendations = _as_list(research.get("recommendations"))
    if influencers or recommendations:
        batch3.append(_slide("influencers", "משפיענים מומלצים", {
            "headline": "משפיענים מומלצים",
            "influencers": [
                {
                    "name": inf.get("name") or inf.get("fullName") or inf.get("username") or "",
                    "username": inf.get("username") or "",
                    "profilePicUrl": inf.get("profilePicUrl") or "",
                    "followers": format_num(inf.get("followers") or inf.get("followersCount")),
                    "engagementRate": f"{_as_number(inf.get('engagementRate')):.1f}%",
                    "categories": _as_list(inf.get("categories")),
                }
                for inf in influencers[:max_influencers]
                if isinstance(inf, dict)
            ],
            "aiRecommendations": [
                {
                    "name": rec.get("name") or "",
                    "handle": rec.get("handle") or "",
                    "followers": rec.get("followers") or "",
                    "whyRelevant": rec.get("whyRelevant") or "",
                }
                for rec in recommendations[:max_influencers]
                if isinstance(rec, dict)
            ],
        }))

    batch3.append(_slide("closing", "סיום", {
        "headline": "בואו ניצור ביחד",
        "subheadline": f"נשמח להתחיל לעבוד עם {brand_name}",
        "brandName": brand_name,
    }, image_for("closing", "coverImage")))

    return [batch1, batch2, batch3]


_BATCH_PROMPT = """\
Design {count} slides for the proposal deck of "{brand_name}" (batch {batch_number}).

## Creative direction
{creative_direction}

## Design system
Colours: {colors}
Fonts: heading {heading_font}, body {body_font}
Typography: {typography}
Spacing: {spacing}
Effects: {effects}
Motif: {motif}

## Composition rules
{composition_rules}

## Depth layers
{depth_layers}

## Anti-patterns
- Centered title with three equal cards underneath
- Every element the same size
- Text touching the canvas edge (safe margin {safe_margin}px)
- The same layout as a previous slide

## Element format
{element_format}
{previous_context}
## Slides
{slides}

## Technical rules
{technical_rules}

Return JSON: {{"slides": [...]}} with exactly {count} slides in the given order.\
"""


def _describe_slide(
    slide: Dict[str, Any],
    global_index: int,
    batch_index: int,
    archetypes: List[str],
    pacing_map: Dict[str, Any],
    temperature_map: Dict[str, str],
) -> str:
    slide_type = slide.get("slideType") or "brief"
    pacing = pacing_map.get(slide_type) or pacing_map.get("brief") or PACING_MAP["brief"]
    archetype = archetypes[(global_index + batch_index * 3) % len(archetypes)] if archetypes else ""

    lines = [
        f"### Slide {global_index + 1}: {slide.get('title', '')} (type: {slide_type})",
        f"Pacing: energy={pacing.get('energy')}, density={pacing.get('density')}, "
        f"maxElements={pacing.get('maxElements')}, minWhitespace={pacing.get('minWhitespace')}%",
        f"Colour temperature: {temperature_map.get(slide_type, 'neutral')}",
        f"Layout archetype: {archetype}",
    ]
    if slide_type in _TENSION_SLIDES:
        lines.append("Dramatic tension: break the grid, let one element overflow the canvas edge.")
    if slide.get("imageUrl"):
        hint = IMAGE_SIZE_HINTS.get(slide_type, "any size that serves the composition")
        lines.append(f"Image: {slide['imageUrl']} ({hint})")
    else:
        lines.append("Image: none. Use typography and shapes only.")
    lines.append("Content:")
    lines.append(json.dumps(slide.get("content") or {}, ensure_ascii=False, indent=2))
    return "\n".join(lines)


def _normalize_batch(
    raw_slides: List[Any],
    inputs: List[Dict[str, Any]],
    slide_index: int,
    design_system: Dict[str, Any],
) -> List[Dict[str, Any]]:
    background = (design_system.get("colors") or {}).get("background", "#0a0a12")
    slides: List[Dict[str, Any]] = []
    for i, raw in enumerate(raw_slides):
        if not isinstance(raw, dict):
            continue
        idx = slide_index + i
        source = inputs[i] if i < len(inputs) else {}
        slide = dict(raw)
        slide["id"] = f"slide-{idx}"
        slide["slideType"] = slide.get("slideType") or source.get("slideType") or "brief"
        slide["label"] = slide.get("label") or source.get("title") or f"שקף {idx + 1}"
        if not isinstance(slide.get("background"), dict) or not slide["background"].get("value"):
            slide["background"] = {"type": "solid", "value": background}
        elements = [el for el in _as_list(slide.get("elements")) if isinstance(el, dict)]
        for j, el in enumerate(elements):
            el["id"] = f"el-{idx}-{j}"
        slide["elements"] = elements
        slides.append(slide)
    return slides


async def generate_slides_batch(
    design_system: Dict[str, Any],
    slides: List[Dict[str, Any]],
    batch_index: int,
    brand_name: str,
    previous_context: str = "",
    slide_index: int = 0,
) -> List[Dict[str, Any]]:
    """
    Generate one batch of slides (Flash, then Pro).

    Raises:
        RuntimeError: every model failed or returned no slides.
    """
    gemini = GeminiClient()
    archetypes = await get_config("design_system", "layout_archetypes", LAYOUT_ARCHETYPES)
    pacing_map = await get_config("design_system", "pacing_map", PACING_MAP)
    temperature_map = await get_config("design_system", "temperature_map", TEMPERATURE_MAP)
    composition_rules = await get_config("design_system", "composition_rules")
    depth_layers = await get_config("design_system", "depth_layers")
    system_instruction = await get_config("ai_prompts", "slide_designer.system_instruction")
    element_format = await get_config("ai_prompts", "slide_designer.element_format")
    technical_rules = await get_config("ai_prompts", "slide_designer.technical_rules")
    primary = await get_config("ai_models", "slide_designer.primary_model")
    fallback = await get_config("ai_models", "slide_designer.fallback_model")
    temperature = float(await get_config("ai_models", "slide_designer.temperature", 0.8))

    described = "\n\n".join(
        _describe_slide(s, slide_index + i, batch_index, archetypes, pacing_map, temperature_map)
        for i, s in enumerate(slides)
    )
    context_block = ""
    if previous_context:
        context_block = (
            "\n## Previous slides (do not repeat their layouts)\n" + previous_context.strip() + "\n"
        )

    fonts = design_system.get("fonts") or {}

    def dumps(value: Any) -> str:
        return json.dumps(value or {}, ensure_ascii=False)

    prompt = _BATCH_PROMPT.format(
        count=len(slides),
        brand_name=brand_name,
        batch_number=batch_index + 1,
        creative_direction=dumps(design_system.get("creativeDirection")),
        colors=dumps(design_system.get("colors")),
        heading_font=fonts.get("heading", DEFAULT_FONT),
        body_font=fonts.get("body", DEFAULT_FONT),
        typography=dumps(design_system.get("typography")),
        spacing=dumps(design_system.get("spacing")),
        effects=dumps(design_system.get("effects")),
        motif=dumps(design_system.get("motif")),
        composition_rules=composition_rules,
        depth_layers=depth_layers,
        safe_margin=SAFE_MARGIN,
        element_format=element_format,
        previous_context=context_block,
        slides=described,
        technical_rules=technical_rules,
    )

    models = [m for m in (primary, fallback) if m]
    last_error = "no attempts made"
    for attempt, model in enumerate(models):
        try:
            parsed = await gemini.generate_json(
                prompt,
                models=[model],
                system_instruction=system_instruction,
                temperature=temperature,
                response_schema=SLIDE_BATCH_SCHEMA,
                max_output_tokens=65536,
            )
            raw_slides = parsed.get("slides") if isinstance(parsed, dict) else parsed
            normalized = _normalize_batch(_as_list(raw_slides), slides, slide_index, design_system)
            if normalized:
                logger.info(
                    "Batch %d: %d slides generated with %s", batch_index + 1, len(normalized), model
                )
                return normalized
            last_error = f"{model}: no slides in response"
        except RuntimeError as exc:
            last_error = str(exc)

        logger.warning("Batch %d attempt %d failed: %s", batch_index + 1, attempt + 1, last_error)
        if attempt < len(models) - 1:
            await asyncio.sleep(GeminiClient.RETRY_DELAY * (attempt + 1))

    raise RuntimeError(f"Slide batch {batch_index + 1} failed: {last_error}")


def create_fallback_slide(
    slide_input: Dict[str, Any],
    design_system: Dict[str, Any],
    index: int,
) -> Dict[str, Any]:
    """Minimal on-brand slide used when a batch cannot be generated."""
    colors = design_system.get("colors") or {}
    typography = design_system.get("typography") or {}
    motif = design_system.get("motif") or {}
    content = slide_input.get("content") or {}
    weight_pairs = typography.get("weightPairs") or [[800, 400]]

    title = (
        content.get("headline")
        or content.get("brandName")
        or slide_input.get("title")
        or f"שקף {index + 1}"
    )
    background = colors.get("background", "#0a0a12")

    return {
        "id": f"slide-fallback-{index}",
        "slideType": slide_input.get("slideType") or "brief",
        "label": slide_input.get("title") or title,
        "background": {"type": "solid", "value": background},
        "elements": [
            {
                "id": f"fb-{index}-bg", "type": "shape", "shapeType": "background",
                "x": 0, "y": 0, "width": CANVAS_WIDTH, "height": CANVAS_HEIGHT, "zIndex": 0,
                "fill": (
                    f"radial-gradient(circle at 30% 40%, {colors.get('cardBg', '#14142a')} 0%, "
                    f"{background} 70%)"
                ),
            },
            {
                "id": f"fb-{index}-line", "type": "shape", "shapeType": "divider",
                "x": 120, "y": 200, "width": 60, "height": 4, "zIndex": 4,
                "fill": colors.get("accent", "#E94560"), "opacity": 0.8,
            },
            {
                "id": f"fb-{index}-title", "type": "text", "role": "title",
                "x": 120, "y": 220, "width": 800, "height": 100, "zIndex": 8,
                "content": title,
                "fontSize": typography.get("headingSize", 56),
                "fontWeight": (weight_pairs[0] or [800])[0] if weight_pairs else 800,
                "color": colors.get("text", "#f0f0f5"),
                "textAlign": "right",
            },
            {
                "id": f"fb-{index}-motif", "type": "shape", "shapeType": "decorative",
                "x": -100, "y": 800, "width": 2200, "height": 1, "zIndex": 2,
                "fill": colors.get("muted", "#808090"),
                "opacity": motif.get("opacity", 0.08), "rotation": 15,
            },
        ],
    }


# ---------------------------------------------------------------------------
# Staged pipeline
# ---------------------------------------------------------------------------

async def pipeline_foundation(data: Dict[str, Any], config: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Stage 1: design system and slide batches."""
    config = config or {}
    brand_name = data.get("brandName") or ""
    logger.info("[foundation] Starting for %s", brand_name or "(unnamed brand)")

    brand_colors = data.get("_brandColors") or dict(DEFAULT_BRAND_COLORS)
    research = data.get("_brandResearch") or {}
    audience = " ".join(x for x in (data.get("targetGender"), data.get("targetAgeRange")) if x)
    design_system = await generate_design_system({
        "brandName": brand_name,
        "industry": research.get("industry") or "",
        "brandPersonality": _as_list(research.get("brandPersonality")),
        "brandColors": brand_colors,
        "targetAudience": audience or data.get("targetDescription") or "",
    })

    if "maxInfluencers" not in config:
        config = {**config, "maxInfluencers": await get_config("pipeline", "limits.max_influencer_slides", MAX_INFLUENCERS)}
    batches = build_slide_batches(data, config)

    client_logo = (
        config.get("clientLogoUrl")
        or (data.get("_scraped") or {}).get("logoUrl")
        or data.get("brandLogoUrl")
        or ""
    )
    total = sum(len(b) for b in batches)
    logger.info("[foundation] %d slides in %d batches", total, len(batches))
    return {
        "designSystem": design_system,
        "batches": batches,
        "brandName": brand_name,
        "clientLogo": client_logo,
        "leadersLogo": storage.public_url(LEADERS_LOGO_LIGHT),
        "totalSlides": total,
    }


async def pipeline_batch(
    foundation: Dict[str, Any],
    batch_index: int,
    previous_context: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Stage 2: generate one batch.  On failure the batch is filled with
    fallback slides and the visual summary is passed through unchanged.

    Raises:
        ValueError: *batch_index* is out of range.
    """
    batches = foundation.get("batches") or []
    if batch_index < 0 or batch_index >= len(batches):
        raise ValueError(f"Invalid batch index {batch_index} (have {len(batches)} batches)")

    previous_context = previous_context or {}
    summary = previous_context.get("visualSummary") or ""
    slide_index = int(previous_context.get("slideIndex") or 0)
    batch = batches[batch_index]
    design_system = foundation.get("designSystem") or build_fallback_design_system()

    try:
        slides = await generate_slides_batch(
            design_system, batch, batch_index, foundation.get("brandName") or "", summary, slide_index,
        )
    except RuntimeError as exc:
        logger.error("[batch %d] Generation failed, using fallback slides: %s", batch_index + 1, exc)
        slides = [
            create_fallback_slide(s, design_system, slide_index + i) for i, s in enumerate(batch)
        ]
        return {"slides": slides, "visualSummary": summary, "slideIndex": slide_index + len(batch)}

    lines = [
        f"שקף {slide_index + i + 1} ({s.get('slideType')}): {len(s.get('elements') or [])} elements, "
        f"hasImage: {str(any(e.get('type') == 'image' for e in s.get('elements') or [])).lower()}"
        for i, s in enumerate(slides)
    ]
    return {
        "slides": slides,
        "visualSummary": summary + "\n".join(lines) + "\n",
        "slideIndex": slide_index + len(batch),
    }


def _dominant_background(slide: Dict[str, Any]) -> str:
    background = slide.get("background") or {}
    if background.get("type") == "solid":
        return background.get("value") or "#1a1a2e"
    if background.get("type") == "gradient":
        match = _HEX_COLOR.search(background.get("value") or "")
        return match.group(0) if match else "#1a1a2e"
    return "#1a1a2e"


def inject_leaders_logo(slide: Dict[str, Any]) -> Dict[str, Any]:
    """Agency logo bottom-left; the light variant goes on dark backgrounds."""
    dark = hex_to_luminance(_dominant_background(slide)) < 0.45
    logo = LEADERS_LOGO_LIGHT if dark else LEADERS_LOGO_DARK
    elements = list(slide.get("elements") or [])
    elements.append({
        "id": f"leaders-logo-{slide.get('id')}",
        "type": "image",
        "src": storage.public_url(logo),
        "alt": "Leaders",
        "x": 40, "y": 1000, "width": 140, "height": 50,
        "zIndex": 99,
        "objectFit": "contain",
        "opacity": 0.7,
    })
    return {**slide, "elements": elements}


def inject_client_logo(slide: Dict[str, Any], logo_url: str) -> Dict[str, Any]:
    """Client logo on cover, bigIdea and closing slides only."""
    slot = _CLIENT_LOGO_SLOTS.get(slide.get("slideType") or "")
    if not slot or not logo_url:
        return slide
    elements = list(slide.get("elements") or [])
    elements.append({
        "id": f"client-logo-{slide.get('id')}",
        "type": "image",
        "src": logo_url,
        "alt": "Client Brand",
        "zIndex": 95,
        "objectFit": "contain",
        **slot,
    })
    return {**slide, "elements": elements}


async def pipeline_finalize(
    foundation: Dict[str, Any],
    all_slides: List[Dict[str, Any]],
    document_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Stage 3: validate, auto-fix, align and brand every slide, then assemble
    the presentation.

    Raises:
        ValueError: there are no slides to finalize.
    """
    if not all_slides:
        raise ValueError("No slides to finalize")

    design_system = foundation.get("designSystem") or build_fallback_design_system()
    pacing_map = await get_config("design_system", "pacing_map", PACING_MAP)

    checked: List[Dict[str, Any]] = []
    scores: List[int] = []
    for slide in all_slides:
        pacing = pacing_map.get(slide.get("slideType")) or PACING_MAP["brief"]
        result = validate_slide(slide, design_system, pacing)
        if result.needs_auto_fix:
            slide = auto_fix_slide(slide, result.issues, design_system)
        scores.append(result.score)
        checked.append(slide)

    quality = round(sum(scores) / len(scores))
    checked = check_visual_consistency(checked)
    client_logo = foundation.get("clientLogo") or ""
    branded = [inject_client_logo(inject_leaders_logo(s), client_logo) for s in checked]

    brand_name = foundation.get("brandName") or ""
    logger.info(
        "[finalize] %s: %d slides, quality score %d", document_id or brand_name, len(branded), quality
    )
    return {
        "id": f"pres-{int(time.time() * 1000)}",
        "title": brand_name or "הצעת מחיר",
        "designSystem": design_system,
        "slides": branded,
        "metadata": {
            "brandName": brand_name,
            "createdAt": datetime.now(timezone.utc).isoformat(),
            "version": PRESENTATION_VERSION,
            "pipeline": PIPELINE_NAME,
            "qualityScore": quality,
        },
    }


async def regenerate_single_slide(
    design_system: Dict[str, Any],
    slide_input: Dict[str, Any],
    brand_name: str,
    instruction: Optional[str] = None,
    slide_index: int = 0,
) -> Dict[str, Any]:
    """
    Regenerate one slide, optionally steered by a free-text instruction.

    *slide_index* is the slide's position in the deck; element ids and the
    layout rotation are derived from it.

    Raises:
        RuntimeError: generation failed.
    """
    slide_input = dict(slide_input)
    if instruction:
        slide_input["title"] = f"{slide_input.get('title', '')}\n\nהנחיה נוספת: {instruction}"

    slides = await generate_slides_batch(design_system, [slide_input], 0, brand_name, "", slide_index)
    if not slides:
        raise RuntimeError("Slide regeneration returned no slides")

    slide = slides[0]
    pacing_map = await get_config("design_system", "pacing_map", PACING_MAP)
    pacing = pacing_map.get(slide.get("slideType")) or PACING_MAP["brief"]
    result = validate_slide(slide, design_system, pacing)
    if result.needs_auto_fix:
        slide = auto_fix_slide(slide, result.issues, design_system)
    return slide
