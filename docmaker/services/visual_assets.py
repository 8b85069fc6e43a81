"""
Brand colours, logo lookup and AI imagery for a proposal.

Colour sources, in order: Gemini's knowledge of the brand by name, then a
vision pass over the logo, then a fixed default palette.  Logos are looked
up through Clearbit by domain.  Generated images are stored through
:mod:`docmaker.services.storage` and returned as public URLs keyed by
placement (coverImage, brandImage, audienceImage, activityImage).
"""
from __future__ import annotations

import asyncio
import logging
import re
import time
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

import httpx

from docmaker.services import storage
from docmaker.services.gemini_client import GeminiClient, InlineImage

logger = logging.getLogger(__name__)

CLEARBIT_URL = "https://logo.clearbit.com/{domain}"

DEFAULT_ASSET_COLORS: Dict[str, Any] = {
    "primary": "#111111",
    "secondary": "#666666",
    "accent": "#2563EB",
    "background": "#FFFFFF",
    "text": "#111111",
    "palette": ["#111111", "#666666", "#2563EB"],
    "style": "minimal",
    "mood": "מודרני ומינימליסטי",
}

_COLOR_FORMAT = """\
{
  "primary": "#XXXXXX", "secondary": "#XXXXXX", "accent": "#XXXXXX",
  "background": "#FFFFFF", "text": "#111111",
  "palette": ["#XXXXXX", "#XXXXXX", "#XXXXXX"],
  "style": "minimal/bold/elegant/playful/corporate",
  "mood": "תיאור קצר של האווירה",
  "logoUrl": null,
  "websiteDomain": null
}\
"""

_BRAND_COLORS_PROMPT = (
    "אתה מומחה מיתוג. זהה את פלטת הצבעים הרשמית של המותג \"{brand_name}\".\n"
    "אם אתה מכיר את המותג, החזר את הצבעים האמיתיים שלו; אחרת הסק מהתעשייה ומהשם.\n"
    "primary הוא הצבע הדומיננטי של המותג. החזר JSON בלבד בפורמט:\n"
) + _COLOR_FORMAT

_LOGO_COLORS_PROMPT = (
    "אתה מומחה עיצוב גרפי. נתח את הלוגו בתמונה וחלץ את פלטת הצבעים של המותג.\n"
    "צבעים בפורמט HEX בלבד. primary הוא הצבע הדומיננטי בלוגו. החזר JSON בלבד בפורמט:\n"
) + _COLOR_FORMAT

# placement key -> prompt describing the shot
_IMAGE_BRIEFS: Dict[str, str] = {
    "coverImage": (
        "Cinematic hero image for an influencer marketing proposal cover for the brand {brand}. "
        "Industry: {industry}. Premium editorial photography, negative space on the right for a title."
    ),
    "brandImage": (
        "Lifestyle photograph that captures the world of the brand {brand} ({industry}). "
        "Authentic Israeli setting, natural light, brand colours {primary} and {accent} as subtle accents."
    ),
    "audienceImage": (
        "Candid photograph of the target audience of {brand}: {audience}. "
        "Real people in an everyday Israeli setting, warm and relatable."
    ),
    "activityImage": (
        "A social media creator filming content for {brand} on a smartphone. "
        "Behind-the-scenes feel, vibrant, colours inspired by {primary} and {accent}."
    ),
}

_NO_TEXT = " No text, no letters, no watermarks, no logos."


def _normalize_colors(parsed: Any, fallback: Dict[str, Any]) -> Dict[str, Any]:
    if not isinstance(parsed, dict):
        return dict(fallback)
    primary = parsed.get("primary") or fallback["primary"]
    secondary = parsed.get("secondary") or fallback["secondary"]
    accent = parsed.get("accent") or primary
    return {
        "primary": primary,
        "secondary": secondary,
        "accent": accent,
        "background": parsed.get("background") or "#FFFFFF",
        "text": parsed.get("text") or "#111111",
        "palette": parsed.get("palette") or [primary, secondary, accent],
        "style": parsed.get("style") or "corporate",
        "mood": parsed.get("mood") or "מקצועי",
        "logoUrl": parsed.get("logoUrl") or None,
        "websiteDomain": parsed.get("websiteDomain") or None,
    }


def domain_from_url(url: Optional[str]) -> Optional[str]:
    """``https://www.example.co.il/about`` -> ``www.example.co.il``."""
    if not url:
        return None
    if not re.match(r"^https?://", url):
        url = f"https://{url}"
    host = urlparse(url).hostname
    return host or None


class VisualAssetsService:
    """Colours, logo and generated images for one brand."""

    LOGO_TIMEOUT = 5.0

    def __init__(self) -> None:
        self.gemini = GeminiClient()

    # ------------------------------------------------------------------
    # Colours
    # ------------------------------------------------------------------

    async def extract_colors_by_brand_name(self, brand_name: str) -> Dict[str, Any]:
        try:
            parsed = await self.gemini.generate_json(
                _BRAND_COLORS_PROMPT.format(brand_name=brand_name),
                models=[self.gemini.pro_model, self.gemini.flash_model],
                temperature=0.2,
                google_search=True,
            )
        except RuntimeError as exc:
            logger.error("Colour analysis for %s failed: %s", brand_name, exc)
            return dict(DEFAULT_ASSET_COLORS)

        colors = _normalize_colors(parsed, DEFAULT_ASSET_COLORS)
        logger.info("Brand %s -> primary=%s accent=%s", brand_name, colors["primary"], colors["accent"])
        return colors

    async def analyze_logo_colors(self, logo_url: str) -> Optional[Dict[str, Any]]:
        """Vision pass over the logo image.  SVG logos are skipped."""
        if logo_url.lower().split("?")[0].endswith(".svg"):
            logger.info("Skipping SVG logo %s", logo_url)
            return None

        try:
            async with httpx.AsyncClient(timeout=15.0, follow_redirects=True) as client:
                resp = await client.get(logo_url)
        except httpx.HTTPError as exc:
            logger.warning("Could not download logo %s: %s", logo_url, exc)
            return None
        if resp.status_code != 200:
            logger.warning("Logo download %s returned HTTP %d", logo_url, resp.status_code)
            return None

        mime = resp.headers.get("content-type", "image/png").split(";")[0]
        try:
            parsed = await self.gemini.generate_json(
                _LOGO_COLORS_PROMPT,
                models=[self.gemini.pro_model],
                temperature=0.2,
                images=[InlineImage(data=resp.content, mime_type=mime)],
            )
        except RuntimeError as exc:
            logger.warning("Logo colour analysis failed: %s", exc)
            return None
        return _normalize_colors(parsed, DEFAULT_ASSET_COLORS)

    # ------------------------------------------------------------------
    # Logo
    # ------------------------------------------------------------------

    async def find_logo(self, domain: Optional[str]) -> Optional[Dict[str, str]]:
        """Return ``{url, source}`` when Clearbit has an image logo for *domain*."""
        if not domain:
            return None
        url = CLEARBIT_URL.format(domain=domain)
        try:
            async with httpx.AsyncClient(timeout=self.LOGO_TIMEOUT, follow_redirects=True) as client:
                resp = await client.head(url)
        except httpx.HTTPError as exc:
            logger.info("Clearbit lookup for %s failed: %s", domain, exc)
            return None

        if resp.status_code == 200 and resp.headers.get("content-type", "").startswith("image/"):
            logger.info("Found logo for %s via Clearbit", domain)
            return {"url": url, "source": "clearbit"}
        return None

    async def find_logo_for_brand(
        self, brand_name: str, domain: Optional[str] = None, hinted_domain: Optional[str] = None
    ) -> Optional[Dict[str, str]]:
        """Try the given domain, the model's hinted domain, then guesses from the brand name."""
        candidates: List[str] = [d for d in (domain, hinted_domain) if d]
        slug = re.sub(r"[^a-zA-Z0-9]", "", brand_name or "").lower()
        if len(slug) >= 2:
            candidates += [f"{slug}{suffix}" for suffix in (".com", ".co.il", ".co")]

        for candidate in candidates:
            logo = await self.find_logo(candidate)
            if logo:
                return logo
        return None

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    async def generate_brand_images(
        self,
        brand_name: str,
        research: Optional[Dict[str, Any]],
        colors: Dict[str, Any],
    ) -> Dict[str, str]:
        """Generate and store the four placement images in parallel; failures are skipped."""
        research = research or {}
        demographics = research.get("targetDemographics")
        audience = demographics.get("primaryAudience") if isinstance(demographics, dict) else None
        if not isinstance(audience, dict):
            audience = {}
        audience_text = ", ".join(
            str(x) for x in (audience.get("gender"), audience.get("ageRange"), audience.get("lifestyle")) if x
        ) or "young urban adults"
        context = {
            "brand": brand_name,
            "industry": research.get("industry") or "consumer brand",
            "audience": audience_text,
            "primary": colors.get("primary", "#111111"),
            "accent": colors.get("accent", "#2563EB"),
        }

        prefix = re.sub(r"[^a-zA-Z0-9]", "", brand_name)[:20] or "brand"
        stamp = int(time.time() * 1000)

        async def _one(placement: str, template: str) -> Optional[str]:
            image = await self.gemini.generate_image(template.format(**context) + _NO_TEXT, aspect_ratio="16:9")
            if image is None:
                logger.warning("No image generated for %s", placement)
                return None
            name = f"{placement.replace('Image', '')}_{stamp}.{image.extension}"
            return await storage.save_bytes(image.data, name, subdir=f"proposals/{prefix}")

        placements = list(_IMAGE_BRIEFS.items())
        results = await asyncio.gather(
            *(_one(p, t) for p, t in placements), return_exceptions=True
        )

        urls: Dict[str, str] = {}
        for (placement, _), result in zip(placements, results):
            if isinstance(result, Exception):
                logger.error("Image generation for %s failed: %s", placement, result)
            elif result:
                urls[placement] = result
        logger.info("Generated %d/%d images for %s", len(urls), len(placements), brand_name)
        return urls

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def build_visual_assets(
        self,
        brand_name: str,
        domain: Optional[str] = None,
        research: Optional[Dict[str, Any]] = None,
        generate_images: bool = True,
    ) -> Dict[str, Any]:
        """Colours, logo and (optionally) images for the brand."""
        domain = domain or domain_from_url((research or {}).get("website"))
        colors = await self.extract_colors_by_brand_name(brand_name)

        logo = None
        if colors.get("logoUrl"):
            logo = {"url": colors["logoUrl"], "source": "gemini"}
        if logo is None:
            logo = await self.find_logo_for_brand(brand_name, domain, colors.get("websiteDomain"))

        using_defaults = colors["primary"] == DEFAULT_ASSET_COLORS["primary"] and colors["accent"] in (
            DEFAULT_ASSET_COLORS["accent"], "#E94560",
        )
        if using_defaults and logo:
            logo_colors = await self.analyze_logo_colors(logo["url"])
            if logo_colors:
                colors = logo_colors

        images: Dict[str, str] = {}
        if generate_images:
            images = await self.generate_brand_images(brand_name, research, colors)

        return {"colors": colors, "logo": logo, "images": images}
