"""
Research endpoints.

POST /research           — brand research, palette and client logo.
POST /influencers        — influencer scraping / strategy research / discovery.
POST /generate-proposal  — proposal content, influencers and images in parallel.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.config import settings
from docmaker.database import get_db
from docmaker.dependencies.auth import get_current_user_id, load_owned_document
from docmaker.models.database_models import Document
from docmaker.models.schemas import GenerateProposalRequest, InfluencersRequest, ResearchRequest
from docmaker.services.document_pipeline import DocumentPipeline
from docmaker.services.document_store import PIPELINE_STATUS_KEY, replace_data_key, save_document
from docmaker.services.influencer_research import InfluencerResearcher, recommended_handles
from docmaker.services.influencer_scraper import InfluencerScraper, filter_by_followers
from docmaker.services.proposal_writer import ProposalWriter
from docmaker.services.slide_designer import currency_symbol
from docmaker.services.visual_assets import VisualAssetsService

logger = logging.getLogger(__name__)

router = APIRouter()

INFLUENCER_MODES = ("scrape", "research", "discover")


async def _optional_document(
    document_id: Optional[str], user_id: str, db: AsyncSession
) -> Optional[Document]:
    if not document_id:
        return None
    return await load_owned_document(document_id, user_id, db)


# ---------------------------------------------------------------------------
# Brand research
# ---------------------------------------------------------------------------

@router.post("/research")
async def research_brand(
    body: ResearchRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Research the brand, resolve its colours and find its logo.

    With ``documentId`` the results are merge-patched into the document.
    """
    if not body.brand_name or not body.brand_name.strip():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="brandName is required",
        )
    document = await _optional_document(body.document_id, user_id, db)

    try:
        result = await DocumentPipeline().research(
            db if document else None,
            document,
            body.brand_name.strip(),
            body.website,
            body.logo_colors,
            body.css_colors,
        )
    except Exception as exc:
        logger.exception("Brand research failed for %r", body.brand_name)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to research brand", "details": str(exc)},
        )

    return {"success": True, **result}


# ---------------------------------------------------------------------------
# Influencers
# ---------------------------------------------------------------------------

@router.post("/influencers")
async def influencers(
    body: InfluencersRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Three modes:

    - ``scrape``   — fetch the given ``usernames`` (10K+ followers kept).
    - ``research`` — AI influencer strategy only.
    - ``discover`` — strategy, then scrape its top recommended handles.
    """
    mode = body.mode or "discover"
    if mode not in INFLUENCER_MODES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown mode {mode!r}; expected one of {', '.join(INFLUENCER_MODES)}",
        )
    if mode == "scrape" and not body.usernames:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="usernames are required for scrape mode",
        )
    if mode != "scrape" and not body.brand_research:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"brandResearch is required for {mode} mode",
        )
    document = await _optional_document(body.document_id, user_id, db)
    logger.info("influencers: mode=%s", mode)

    try:
        if mode == "scrape":
            profiles = filter_by_followers(await InfluencerScraper().scrape_profiles(body.usernames))
            scraped = [p.to_dict() for p in profiles]
            if document is not None:
                await save_document(db, document, {"_scrapedInfluencers": scraped})
            return {"success": True, "influencers": scraped, "count": len(scraped)}

        strategy = await InfluencerResearcher().research_influencers(
            body.brand_research, body.budget or 0, body.goals or []
        )
        recommendations = strategy.get("recommendations") or []
        response: Dict[str, Any] = {
            "success": True,
            "strategy": strategy,
            "recommendations": recommendations,
        }
        patch: Dict[str, Any] = {PIPELINE_STATUS_KEY: {"influencers": "complete"}}

        if mode == "discover":
            handles = recommended_handles(strategy, limit=settings.DISCOVER_SCRAPE_LIMIT)
            profiles = await InfluencerScraper().scrape_profiles(handles) if handles else []
            scraped = [p.to_dict() for p in filter_by_followers(profiles)]
            logger.info("Discover: %d handles recommended, %d profiles kept", len(handles), len(scraped))
            response["scrapedInfluencers"] = scraped
            response["combinedCount"] = len(scraped) + len(recommendations)
            patch["_scrapedInfluencers"] = scraped

        if document is not None:
            replace_data_key(document, "_influencerStrategy", strategy)
            await save_document(db, document, patch)
        return response

    except HTTPException:
        raise
    except Exception as exc:
        logger.exception("Influencer request failed (mode=%s)", mode)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to process influencer request", "details": str(exc)},
        )


# ---------------------------------------------------------------------------
# Proposal content
# ---------------------------------------------------------------------------

@router.post("/generate-proposal")
async def generate_proposal(
    body: GenerateProposalRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Dict[str, Any]:
    """
    Write the proposal content while researching influencers, scraping the
    named profiles and generating images in parallel.

    Only the content writer is required; every other task degrades to an
    empty result when it fails.
    """
    if not body.brand_research or not body.budget:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Brand research and budget are required",
        )
    document = await _optional_document(body.document_id, user_id, db)

    research = body.brand_research
    brand_name = research.get("brandName") or ""
    currency = currency_symbol(((body.extracted or {}).get("budget") or {}).get("currency"))
    colors = ((document.data or {}).get("_brandColors") if document else None) or research.get("brandColors") or {}
    logger.info("Generating proposal for %s (budget=%s, goals=%s)", brand_name, body.budget, body.goals)

    async def _no_images() -> Dict[str, str]:
        return {}

    async def _no_profiles() -> List[Any]:
        return []

    scraper = InfluencerScraper()
    content, strategy, profiles, images = await asyncio.gather(
        ProposalWriter().write_proposal_content(research, body.budget, body.goals, body.extracted, currency),
        InfluencerResearcher().research_influencers(research, body.budget, body.goals),
        scraper.scrape_profiles(body.influencer_usernames) if body.influencer_usernames else _no_profiles(),
        VisualAssetsService().generate_brand_images(brand_name, research, colors)
        if body.generate_images else _no_images(),
        return_exceptions=True,
    )

    if isinstance(content, Exception):
        logger.error("Proposal content failed for %s: %s", brand_name, content)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": "Failed to generate proposal", "details": str(content)},
        )
    if isinstance(strategy, Exception):
        logger.error("Influencer research failed for %s: %s", brand_name, strategy)
        strategy = None
    if isinstance(profiles, Exception):
        logger.error("Influencer scraping failed for %s: %s", brand_name, profiles)
        profiles = []
    if isinstance(images, Exception):
        logger.error("Image generation failed for %s: %s", brand_name, images)
        images = {}

    scraped = [p.to_dict() for p in filter_by_followers(profiles)]
    logger.info(
        "Proposal for %s: %d recommendations, %d scraped profiles, %d images",
        brand_name, len((strategy or {}).get("recommendations") or []), len(scraped), len(images),
    )

    if document is not None:
        replace_data_key(document, "_proposalContent", content)
        patch: Dict[str, Any] = {"_scrapedInfluencers": scraped}
        if images:
            patch["_generatedImages"] = images
        if strategy:
            replace_data_key(document, "_influencerStrategy", strategy)
        await save_document(db, document, patch)

    return {
        "success": True,
        "content": content,
        "images": images,
        "influencerStrategy": strategy,
        "scrapedInfluencers": scraped,
    }
