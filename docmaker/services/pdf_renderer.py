"""
HTML slides -> one multi-page PDF.

Each slide page is printed by headless Chromium (Playwright) at 1920x1080
with backgrounds, then the single-page PDFs are merged with PyMuPDF.

Documents that never went through the slide pipeline are rendered from a
fallback presentation assembled from their stored proposal data.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Sequence

import fitz  # PyMuPDF
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright

from docmaker.services.slide_designer import (
    build_fallback_design_system,
    build_slide_batches,
    create_fallback_slide,
    inject_client_logo,
    inject_leaders_logo,
    proposal_data_from_document,
)
from docmaker.services.slide_quality import CANVAS_HEIGHT, CANVAS_WIDTH

logger = logging.getLogger(__name__)

_UNSPLASH = "https://images.unsplash.com/{photo}?w=1920&h=1080&fit=crop"

FALLBACK_IMAGES: Dict[str, str] = {
    "coverImage": _UNSPLASH.format(photo="photo-1557804506-669a67965ba0"),
    "brandImage": _UNSPLASH.format(photo="photo-1497366216548-37526070297c"),
    "audienceImage": _UNSPLASH.format(photo="photo-1522071820081-009f0129c71c"),
    "activityImage": _UNSPLASH.format(photo="photo-1600880292203-757bb62b4baf"),
}

# ms to let web fonts settle; the first page also downloads them
_FIRST_PAGE_WAIT = 800
_PAGE_WAIT = 300


async def render_pdf(html_pages: Sequence[str]) -> bytes:
    """
    Print every page with one browser instance and merge the results.

    Raises:
        ValueError: no pages were given.
        RuntimeError: Chromium could not be launched or a page failed to print.
    """
    if not html_pages:
        raise ValueError("No pages to render")

    logger.info("Rendering %d slides to PDF", len(html_pages))
    merged = fitz.open()
    try:
        async with async_playwright() as pw:
            browser = await pw.chromium.launch(args=["--no-sandbox", "--disable-setuid-sandbox"])
            try:
                page = await browser.new_page(viewport={"width": CANVAS_WIDTH, "height": CANVAS_HEIGHT})
                for i, html in enumerate(html_pages):
                    await page.set_content(html, wait_until="networkidle")
                    await page.evaluate("() => document.fonts && document.fonts.ready")
                    await page.wait_for_timeout(_FIRST_PAGE_WAIT if i == 0 else _PAGE_WAIT)
                    pdf_bytes = await page.pdf(
                        width=f"{CANVAS_WIDTH}px",
                        height=f"{CANVAS_HEIGHT}px",
                        print_background=True,
                        prefer_css_page_size=True,
                    )
                    with fitz.open(stream=pdf_bytes, filetype="pdf") as part:
                        merged.insert_pdf(part)
            finally:
                await browser.close()
    except PlaywrightError as exc:
        merged.close()
        raise RuntimeError(f"PDF rendering failed: {exc}") from exc

    output = merged.tobytes(garbage=3, deflate=True)
    merged.close()
    logger.info("PDF rendered: %d pages, %s bytes", len(html_pages), f"{len(output):,}")
    return output


def fallback_images(data: Dict[str, Any]) -> Dict[str, str]:
    """Generated images first, then scraped website images, then stock photos."""
    generated = data.get("_generatedImages") or {}
    scraped = data.get("_scraped") or {}
    hero = scraped.get("heroImages") or []
    lifestyle = scraped.get("lifestyleImages") or []
    return {
        "coverImage": generated.get("coverImage") or (hero[0] if hero else None) or FALLBACK_IMAGES["coverImage"],
        "brandImage": generated.get("brandImage") or (hero[1] if len(hero) > 1 else None) or FALLBACK_IMAGES["brandImage"],
        "audienceImage": generated.get("audienceImage") or (lifestyle[0] if lifestyle else None) or FALLBACK_IMAGES["audienceImage"],
        "activityImage": generated.get("activityImage") or FALLBACK_IMAGES["activityImage"],
    }


def build_document_presentation(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Presentation built without any LLM call: fallback design system and
    fallback slides for every slide input, with the slide image on the
    left half where one exists.
    """
    flat = proposal_data_from_document(data)
    design_system = build_fallback_design_system(data.get("_brandColors"))
    batches = build_slide_batches(flat, {
        "images": fallback_images(data),
        "extraImages": data.get("_extraImages") or [],
    })
    client_logo = (data.get("_scraped") or {}).get("logoUrl") or data.get("brandLogoUrl") or ""

    slides: List[Dict[str, Any]] = []
    for index, slide_input in enumerate(s for batch in batches for s in batch):
        slide = create_fallback_slide(slide_input, design_system, index)
        if slide_input.get("imageUrl"):
            slide["elements"].append({
                "id": f"fb-{index}-image",
                "type": "image",
                "src": slide_input["imageUrl"],
                "alt": slide_input.get("title") or "",
                "x": 0, "y": 0, "width": CANVAS_WIDTH // 2, "height": CANVAS_HEIGHT,
                "zIndex": 1,
                "objectFit": "cover",
                "opacity": 0.85,
            })
        slides.append(inject_client_logo(inject_leaders_logo(slide), client_logo))

    return {
        "id": "pres-fallback",
        "title": flat.get("brandName") or "הצעת מחיר",
        "designSystem": design_system,
        "slides": slides,
        "metadata": {"brandName": flat.get("brandName") or "", "pipeline": "fallback"},
    }
