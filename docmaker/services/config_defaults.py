"""
Registry of every admin-configurable parameter and its code default.

Structure: CONFIG_DEFAULTS[category][key] = ConfigDefault(value, description, value_type, group)

An empty ``admin_config`` table means the system runs purely on these
defaults; a DB row with the same (category, key) overrides one of them.
"""
from __future__ import annotations

import dataclasses
from typing import Any, Dict, List, Optional

from docmaker.config import settings

CATEGORIES = (
    "ai_prompts",
    "ai_models",
    "design_system",
    "wizard",
    "pipeline",
    "feature_flags",
)


@dataclasses.dataclass(frozen=True)
class ConfigDefault:
    value: Any
    description: str
    value_type: str  # text | json | number | boolean
    group: Optional[str] = None


# ---------------------------------------------------------------------------
# AI prompts
# ---------------------------------------------------------------------------

PROPOSAL_SYSTEM_PROMPT = """\
אתה מנהל קריאייטיב ואסטרטג ראשי בסוכנות בוטיק לשיווק משפיענים.
המטרה: הצעת מחיר שגורמת ללקוח להגיד "וואו". התוצר ייוצא למצגת PDF מעוצבת.\
"""

PROPOSAL_WRITING_RULES = """\
## חוקי כתיבה
1. שפה סוחפת, קצרה ויוקרתית. לא רובוטית.
2. משפטים קצרים וממוקדים, בלי גושי טקסט.
3. קריאייטיב שובר שגרה, לא "משפיענים מצטלמים עם המוצר".
4. התובנה המרכזית היא מתח בין התנהגות הקהל לבין מה שהמותג מציע.
5. כשיש סתירה, מסמך ההתנעה גובר על הבריף.
6. בלי נקודתיים בכותרות ובשמות מטרות.\
"""

EXTRACTION_INTRO = """\
חלץ מידע עסקי בסיסי מהמסמכים הבאים. אל תייצר אסטרטגיה או קריאייטיב, רק עובדות.
כל מטרה, מדד הצלחה ודרישה שהלקוח הזכיר חייבים להופיע כפי שנכתבו בבריף.\
"""

SLIDE_SYSTEM_INSTRUCTION = """\
You are a world-class creative director designing editorial-quality presentation slides.
Every deck must feel like a premium magazine, never like a generic office template.
Output language: Hebrew (RTL). Font: Heebo. Canvas: 1920x1080px.
Output format: JSON AST only. No HTML, no CSS.
Every slide must use a different composition.\
"""

ELEMENT_FORMAT = """\
Shape: { "id", "type": "shape", "x", "y", "width", "height", "zIndex", "shapeType": "background"|"decorative"|"divider", "fill": "#hex or gradient", "clipPath", "borderRadius", "opacity", "rotation", "border" }
Text:  { "id", "type": "text", "x", "y", "width", "height", "zIndex", "content", "fontSize", "fontWeight": 100-900, "color", "textAlign": "right", "role": "title"|"subtitle"|"body"|"caption"|"label"|"decorative", "lineHeight", "letterSpacing", "opacity", "rotation" }
Image: { "id", "type": "image", "x", "y", "width", "height", "zIndex", "src": "THE_URL", "objectFit": "cover", "borderRadius" }
Role "decorative" is large watermark text (fontSize 200+, low opacity) used as texture.\
"""

TECHNICAL_RULES = """\
- textAlign "right" always. All content text in Hebrew.
- No box-shadow, backdrop-filter or blur filters.
- Fake depth with a dark shape offset by 12px at opacity 0.12-0.18.
- Only use image URLs that appear in the slide data. Never invent URLs.\
"""

BRAND_RESEARCH_PROMPT = """\
אתה חוקר מותגים בכיר. חקור את המותג לעומק בעזרת חיפוש ברשת והחזר עובדות מאומתות בלבד.
כשאין מידע אמין, כתוב זאת במפורש בשדה researchNotes במקום לנחש.\
"""

INFLUENCER_RESEARCH_PROMPT = """\
אתה אסטרטג שיווק משפיענים בישראל. בנה אסטרטגיית משפיענים מותאמת לתקציב ולמטרות,
והמלץ על משפיענים ישראלים אמיתיים ופעילים באינסטגרם.\
"""

PROMPT_DEFAULTS: Dict[str, ConfigDefault] = {
    "proposal_agent.system_prompt": ConfigDefault(
        PROPOSAL_SYSTEM_PROMPT, "System prompt for the proposal agent", "text", "proposal_agent"
    ),
    "proposal_agent.writing_rules": ConfigDefault(
        PROPOSAL_WRITING_RULES, "Writing rules appended to proposal prompts", "text", "proposal_agent"
    ),
    "proposal_agent.extraction_prompt_template": ConfigDefault(
        EXTRACTION_INTRO, "Opening instructions for brief extraction", "text", "proposal_agent"
    ),
    "slide_designer.system_instruction": ConfigDefault(
        SLIDE_SYSTEM_INSTRUCTION, "System instruction for the slide designer", "text", "slide_designer"
    ),
    "slide_designer.element_format": ConfigDefault(
        ELEMENT_FORMAT, "JSON format of each slide element type", "text", "slide_designer"
    ),
    "slide_designer.technical_rules": ConfigDefault(
        TECHNICAL_RULES, "Hard constraints the slide model must respect", "text", "slide_designer"
    ),
    "brand_research.system_prompt": ConfigDefault(
        BRAND_RESEARCH_PROMPT, "System prompt for brand research", "text", "brand_research"
    ),
    "influencer_research.system_prompt": ConfigDefault(
        INFLUENCER_RESEARCH_PROMPT, "System prompt for influencer research", "text", "influencer_research"
    ),
}


# ---------------------------------------------------------------------------
# AI models
# ---------------------------------------------------------------------------

MODEL_DEFAULTS: Dict[str, ConfigDefault] = {
    "proposal_agent.primary_model": ConfigDefault(
        settings.GEMINI_PRO_MODEL, "Primary model for the proposal agent", "text", "proposal_agent"
    ),
    "proposal_agent.fallback_model": ConfigDefault(
        settings.GEMINI_FLASH_MODEL, "Fallback model for the proposal agent", "text", "proposal_agent"
    ),
    "slide_designer.primary_model": ConfigDefault(
        settings.GEMINI_FLASH_MODEL, "First model tried by the slide designer", "text", "slide_designer"
    ),
    "slide_designer.fallback_model": ConfigDefault(
        settings.GEMINI_PRO_MODEL, "Second model tried by the slide designer", "text", "slide_designer"
    ),
    "slide_designer.temperature": ConfigDefault(
        0.8, "Sampling temperature for slide batches", "number", "slide_designer"
    ),
    "brand_research.primary_model": ConfigDefault(
        settings.GEMINI_PRO_MODEL, "Primary model for brand research", "text", "brand_research"
    ),
    "brand_research.fallback_model": ConfigDefault(
        settings.GEMINI_FLASH_MODEL, "Fallback model for brand research", "text", "brand_research"
    ),
    "influencer_research.primary_model": ConfigDefault(
        settings.GEMINI_PRO_MODEL, "Primary model for influencer research", "text", "influencer_research"
    ),
    "influencer_research.fallback_model": ConfigDefault(
        settings.GEMINI_FLASH_MODEL, "Fallback model for influencer research", "text", "influencer_research"
    ),
}


# ---------------------------------------------------------------------------
# Design system
# ---------------------------------------------------------------------------

LAYOUT_ARCHETYPES: List[str] = [
    "Brutalist typography: oversized title with negative overflow, transparent watermark text behind",
    "Asymmetric split: uneven division with a decorative element crossing the dividing line",
    "Overlapping cards: layered cards with offset shadows creating depth",
    "Full-bleed image: edge-to-edge image with gradient overlay and floating text",
    "Diagonal grid: angled composition with rotated text and thin grid lines",
    "Bento box: asymmetric grid of mixed-size cells with visual data inside",
    "Magazine spread: editorial layout with a large pull-quote and dominant image",
    "Data art: oversized numbers as the visual centerpiece with minimal decoration",
]

PACING_MAP: Dict[str, Dict[str, Any]] = {
    "cover": {"energy": "peak", "density": "minimal", "surprise": True, "maxElements": 8, "minWhitespace": 40},
    "brief": {"energy": "calm", "density": "balanced", "surprise": False, "maxElements": 12, "minWhitespace": 30},
    "goals": {"energy": "building", "density": "balanced", "surprise": False, "maxElements": 14, "minWhitespace": 25},
    "audience": {"energy": "building", "density": "balanced", "surprise": False, "maxElements": 12, "minWhitespace": 30},
    "insight": {"energy": "peak", "density": "minimal", "surprise": True, "maxElements": 8, "minWhitespace": 40},
    "whyNow": {"energy": "peak", "density": "balanced", "surprise": True, "maxElements": 10, "minWhitespace": 30},
    "strategy": {"energy": "building", "density": "balanced", "surprise": False, "maxElements": 12, "minWhitespace": 30},
    "competitive": {"energy": "building", "density": "dense", "surprise": False, "maxElements": 16, "minWhitespace": 20},
    "bigIdea": {"energy": "peak", "density": "minimal", "surprise": True, "maxElements": 10, "minWhitespace": 35},
    "approach": {"energy": "calm", "density": "balanced", "surprise": False, "maxElements": 14, "minWhitespace": 25},
    "deliverables": {"energy": "calm", "density": "dense", "surprise": False, "maxElements": 18, "minWhitespace": 20},
    "metrics": {"energy": "building", "density": "dense", "surprise": False, "maxElements": 16, "minWhitespace": 20},
    "influencerStrategy": {"energy": "calm", "density": "balanced", "surprise": False, "maxElements": 12, "minWhitespace": 30},
    "contentStrategy": {"energy": "calm", "density": "balanced", "surprise": False, "maxElements": 14, "minWhitespace": 25},
    "influencers": {"energy": "breath", "density": "dense", "surprise": False, "maxElements": 20, "minWhitespace": 15},
    "timeline": {"energy": "building", "density": "balanced", "surprise": False, "maxElements": 14, "minWhitespace": 25},
    "closing": {"energy": "finale", "density": "minimal", "surprise": True, "maxElements": 8, "minWhitespace": 45},
}

TEMPERATURE_MAP: Dict[str, str] = {
    "cover": "cold", "brief": "cold", "goals": "neutral", "audience": "neutral",
    "insight": "warm", "strategy": "neutral", "bigIdea": "warm", "approach": "neutral",
    "deliverables": "neutral", "metrics": "neutral", "influencerStrategy": "cold",
    "influencers": "neutral", "closing": "warm",
}

DESIGN_DEFAULTS: Dict[str, ConfigDefault] = {
    "layout_archetypes": ConfigDefault(
        LAYOUT_ARCHETYPES, "Eight layout archetypes rotated across slides", "json", "design"
    ),
    "pacing_map": ConfigDefault(
        PACING_MAP, "Energy, density and limits per slide type", "json", "design"
    ),
    "temperature_map": ConfigDefault(
        TEMPERATURE_MAP, "Colour temperature per slide type (cold/neutral/warm)", "json", "design"
    ),
    "composition_rules": ConfigDefault(
        "- Focal points on the rule-of-thirds grid; title on the right third (RTL)\n"
        "- Max font / min font of at least 5:1 (peak slides 10:1)\n"
        "- 80px+ clear space around the main title\n"
        "- Diagonal flow from top-right to bottom-left",
        "Composition rules sent with every batch",
        "text",
        "design",
    ),
    "depth_layers": ConfigDefault(
        "zIndex: 0-1 background | 2-3 decoration | 4-5 structure | 6-8 content | 9-10 hero",
        "Z-index layering convention",
        "text",
        "design",
    ),
}


# ---------------------------------------------------------------------------
# Pipeline limits and feature flags
# ---------------------------------------------------------------------------

PIPELINE_DEFAULTS: Dict[str, ConfigDefault] = {
    "limits.competitors": ConfigDefault(4, "Maximum competitors included in prompts", "number", "limits"),
    "limits.campaigns": ConfigDefault(3, "Maximum previous campaigns included in prompts", "number", "limits"),
    "limits.influencer_tokens": ConfigDefault(6000, "Max output tokens for influencer research", "number", "limits"),
    "limits.extraction_tokens": ConfigDefault(2000, "Max output tokens for quick brief extraction", "number", "limits"),
    "limits.max_influencer_slides": ConfigDefault(6, "Influencers shown on the influencers slide", "number", "limits"),
}

FLAG_DEFAULTS: Dict[str, ConfigDefault] = {
    "google_search_in_research": ConfigDefault(
        True, "Use Google Search grounding in brand and influencer research", "boolean"
    ),
}

CONFIG_DEFAULTS: Dict[str, Dict[str, ConfigDefault]] = {
    "ai_prompts": PROMPT_DEFAULTS,
    "ai_models": MODEL_DEFAULTS,
    "design_system": DESIGN_DEFAULTS,
    "wizard": {},
    "pipeline": PIPELINE_DEFAULTS,
    "feature_flags": FLAG_DEFAULTS,
}


def get_default(category: str, key: str) -> Optional[ConfigDefault]:
    return CONFIG_DEFAULTS.get(category, {}).get(key)
