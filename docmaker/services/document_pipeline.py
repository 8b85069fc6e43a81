"""
Document-level orchestration of the AI steps.

Each method runs one step against a stored document and merge-patches its
output into ``document.data``.  Routes call the single steps; ``run_all``
chains them as a background task driven by :mod:`pipeline_manager`.

Public API
----------
DocumentPipeline.research(db, document, brand_name, website, logo_colors, css_colors)
DocumentPipeline.research_influencers(db, document)
DocumentPipeline.build_proposal(db, document)
DocumentPipeline.run_slide_stage(db, document, stage, batch_index)
DocumentPipeline.regenerate_slide(db, document, slide_index, instruction)
DocumentPipeline.run_all(document_id, status)
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from docmaker.database import AsyncSessionLocal
from docmaker.models.database_models import Document, DocumentStatus
from docmaker.services.brand_research import BrandResearcher, resolve_brand_colors
from docmaker.services.document_store import PIPELINE_STATUS_KEY, replace_data_key, save_document
from docmaker.services.influencer_research import InfluencerResearcher
from docmaker.services.pipeline_manager import PipelinePhase, PipelineStatus
from docmaker.services.proposal_agent import ProposalAgent
from docmaker.services.slide_designer import (
    build_slide_batches,
    inject_client_logo,
    inject_leaders_logo,
    pipeline_batch,
    pipeline_finalize,
    pipeline_foundation,
    proposal_data_from_document,
    regenerate_single_slide,
)
from docmaker.services.visual_assets import VisualAssetsService, domain_from_url

logger = logging.getLogger(__name__)

SLIDE_STAGES = ("foundation", "batch", "finalize")


def _client_logo(data: Dict[str, Any]) -> str:
    return (data.get("_scraped") or {}).get("logoUrl") or data.get("brandLogoUrl") or ""


def _extracted_brand(data: Dict[str, Any]) -> Dict[str, Any]:
    extracted = data.get("_extractedData")
    brand = extracted.get("brand") if isinstance(extracted, dict) else None
    return brand if isinstance(brand, dict) else {}


def _slide_config(data: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "images": data.get("_generatedImages") or {},
        "extraImages": data.get("_extraImages") or [],
        "clientLogoUrl": _client_logo(data) or None,
    }


class DocumentPipeline:
    """Runs AI steps against one document row."""

    def __init__(self) -> None:
        self.brand_researcher = BrandResearcher()
        self.influencer_researcher = InfluencerResearcher()
        self.proposal_agent = ProposalAgent()
        self.assets = VisualAssetsService()

    # ------------------------------------------------------------------
    # Research
    # ------------------------------------------------------------------

    async def research(
        self,
        db: Optional[AsyncSession],
        document: Optional[Document],
        brand_name: str,
        website: Optional[str] = None,
        logo_colors: Optional[Dict[str, Any]] = None,
        css_colors: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """
        Brand research, palette and client logo.  When a document is given
        the results are stored under ``_brandResearch``, ``_brandColors`` and
        ``_scraped.logoUrl``.
        """
        research = await self.brand_researcher.research_brand(brand_name, website)
        colors = resolve_brand_colors(logo_colors, css_colors, research)
        logo = await self.assets.find_logo_for_brand(
            brand_name, domain_from_url(website or research.get("website"))
        )
        logos = {"client": logo["url"] if logo else None, "source": logo["source"] if logo else None}

        if document is not None and db is not None:
            replace_data_key(document, "_brandResearch", research)
            replace_data_key(document, "_brandColors", colors)
            patch: Dict[str, Any] = {PIPELINE_STATUS_KEY: {"research": "complete"}}
            if logo:
                patch["_scraped"] = {"logoUrl": logo["url"]}
            await save_document(db, document, patch)
            logger.info("Research stored on document %s", document.id)

        return {"research": research, "colors": colors, "logos": logos}

    async def research_influencers(self, db: AsyncSession, document: Document) -> Dict[str, Any]:
        """Influencer strategy from the stored research, budget and goals."""
        data = document.data or {}
        extracted = data.get("_extractedData") or {}
        budget = (extracted.get("budget") or {}).get("amount") or data.get("budget") or 0
        goals = extracted.get("campaignGoals") or data.get("goals") or []
        strategy = await self.influencer_researcher.research_influencers(
            data.get("_brandResearch") or {"brandName": document.title}, budget, goals
        )
        replace_data_key(document, "_influencerStrategy", strategy)
        await save_document(db, document, {PIPELINE_STATUS_KEY: {"influencers": "complete"}})
        return strategy

    # ------------------------------------------------------------------
    # Proposal
    # ------------------------------------------------------------------

    async def build_proposal(self, db: AsyncSession, document: Document) -> Dict[str, Any]:
        """
        Generate the proposal from the stored brief texts and research.

        Raises:
            ValueError:   the document has no usable brief text.
            RuntimeError: the proposal model failed on every attempt.
        """
        data = document.data or {}
        result = await self.proposal_agent.generate_proposal(
            data.get("_briefText") or "",
            data.get("_kickoffText"),
            data.get("_brandResearch"),
            data.get("_influencerStrategy"),
        )
        replace_data_key(document, "_extractedData", result["extracted"])
        replace_data_key(document, "_stepData", result["stepData"])
        fields: Dict[str, Any] = {}
        brand_name = result["extracted"]["brand"]["name"]
        if brand_name and not document.title:
            fields["title"] = brand_name
        await save_document(db, document, {PIPELINE_STATUS_KEY: {"proposal": "complete"}}, **fields)
        logger.info("Proposal built for document %s (brand=%r)", document.id, brand_name)
        return result

    # ------------------------------------------------------------------
    # Slides
    # ------------------------------------------------------------------

    async def run_slide_stage(
        self,
        db: AsyncSession,
        document: Document,
        stage: str,
        batch_index: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Run one stage of staged slide generation.

        Raises:
            ValueError: unknown stage, missing foundation or bad batch index.
        """
        if stage not in SLIDE_STAGES:
            raise ValueError(f"Unknown stage {stage!r}; expected one of {', '.join(SLIDE_STAGES)}")

        data = document.data or {}
        if stage == "foundation":
            foundation = await pipeline_foundation(proposal_data_from_document(data), _slide_config(data))
            replace_data_key(document, "_pipeline", {
                "foundation": foundation,
                "batchResults": [],
                "status": "foundation_complete",
            })
            await save_document(db, document, {PIPELINE_STATUS_KEY: {"slides": "pending"}})
            return {
                "stage": stage,
                "totalBatches": len(foundation["batches"]),
                "totalSlides": foundation["totalSlides"],
            }

        state = data.get("_pipeline") or {}
        foundation = state.get("foundation")
        if not foundation:
            raise ValueError("Foundation stage has not run for this document")
        results: List[Dict[str, Any]] = list(state.get("batchResults") or [])

        if stage == "batch":
            if batch_index is None:
                raise ValueError("batchIndex is required for the batch stage")
            previous = next((r for r in results if r.get("batchIndex") == batch_index - 1), {})
            result = await pipeline_batch(foundation, batch_index, previous)
            results = [r for r in results if r.get("batchIndex") != batch_index]
            results.append({**result, "batchIndex": batch_index})
            results.sort(key=lambda r: r["batchIndex"])
            replace_data_key(document, "_pipeline", {
                **state,
                "batchResults": results,
                "status": f"batch_{batch_index}_complete",
            })
            await save_document(db, document)
            return {
                "stage": stage,
                "batchIndex": batch_index,
                "slidesGenerated": len(result["slides"]),
                "totalBatches": len(foundation.get("batches") or []),
            }

        all_slides = [slide for r in results for slide in r.get("slides") or []]
        presentation = await pipeline_finalize(foundation, all_slides, document.id)
        replace_data_key(document, "_presentation", presentation)
        await save_document(
            db,
            document,
            {"_pipeline": None, PIPELINE_STATUS_KEY: {"slides": "complete"}},
            status=DocumentStatus.PREVIEW,
        )
        return {"stage": stage, "presentation": presentation}

    async def regenerate_slide(
        self,
        db: AsyncSession,
        document: Document,
        slide_index: int,
        instruction: Optional[str] = None,
    ) -> Dict[str, Any]:
        """
        Regenerate one slide of the stored presentation in place.

        Raises:
            ValueError:   no presentation, or *slide_index* out of range.
            RuntimeError: generation failed.
        """
        data = document.data or {}
        presentation = data.get("_presentation")
        if not presentation:
            raise ValueError("Document has no presentation yet")
        slides = list(presentation.get("slides") or [])
        if slide_index < 0 or slide_index >= len(slides):
            raise ValueError(f"Slide index {slide_index} out of range (0-{len(slides) - 1})")

        current = slides[slide_index]
        inputs = [s for batch in build_slide_batches(proposal_data_from_document(data), _slide_config(data)) for s in batch]
        slide_input = next(
            (s for s in inputs if s["slideType"] == current.get("slideType")),
            {"slideType": current.get("slideType") or "brief", "title": current.get("label") or "", "content": {}},
        )

        new_slide = await regenerate_single_slide(
            presentation.get("designSystem") or {},
            slide_input,
            presentation.get("title") or document.title,
            instruction,
            slide_index=slide_index,
        )
        new_slide["id"] = current.get("id") or new_slide["id"]
        new_slide = inject_client_logo(inject_leaders_logo(new_slide), _client_logo(data))
        slides[slide_index] = new_slide

        replace_data_key(document, "_presentation", {**presentation, "slides": slides})
        await save_document(db, document)
        logger.info("Regenerated slide %d of document %s", slide_index, document.id)
        return new_slide

    # ------------------------------------------------------------------
    # Background end-to-end run
    # ------------------------------------------------------------------

    async def run_all(self, document_id: str, status: PipelineStatus) -> None:
        """
        Research -> proposal -> foundation -> batches -> finalize.

        Steps whose output is already stored are skipped, so a failed run
        can be restarted.  Designed to run as an ``asyncio.Task`` via
        ``PipelineManager``; *status* is mutated in place.
        """
        async with AsyncSessionLocal() as db:
            document = await db.get(Document, document_id)
            if document is None:
                status.phase = PipelinePhase.FAILED
                status.errors.append(f"document {document_id} not found")
                return

            data = document.data or {}

            # ── Research ─────────────────────────────────────────────
            status.phase = PipelinePhase.RESEARCH
            brand_name = (
                data.get("brandName")
                or _extracted_brand(data).get("name")
                or document.title
            )
            if not brand_name and data.get("_briefText"):
                status.current_step = "quick extraction"
                quick = await self.proposal_agent.extract_from_brief(
                    data["_briefText"], data.get("_kickoffText")
                )
                replace_data_key(document, "_extractedData", quick)
                await save_document(db, document)
                data = document.data or {}
                brand_name = _extracted_brand(data).get("name") or ""

            if brand_name and not data.get("_brandResearch"):
                status.current_step = "brand research"
                website = data.get("website") or _extracted_brand(data).get("website")
                await self.research(db, document, brand_name, website)
                await db.commit()

            if not (document.data or {}).get("_influencerStrategy"):
                status.current_step = "influencer research"
                await self.research_influencers(db, document)
                await db.commit()

            if brand_name and not (document.data or {}).get("_generatedImages"):
                status.current_step = "images"
                images = await self.assets.generate_brand_images(
                    brand_name, document.data.get("_brandResearch"), document.data.get("_brandColors") or {}
                )
                if images:
                    await save_document(db, document, {"_generatedImages": images})
                    await db.commit()

            # ── Proposal ─────────────────────────────────────────────
            status.phase = PipelinePhase.PROPOSAL
            if not document.data.get("_stepData"):
                status.current_step = "proposal"
                await self.build_proposal(db, document)
                await db.commit()

            # ── Slides ───────────────────────────────────────────────
            status.phase = PipelinePhase.FOUNDATION
            status.current_step = "foundation"
            result = await self.run_slide_stage(db, document, "foundation")
            await db.commit()
            status.total_batches = result["totalBatches"]

            status.phase = PipelinePhase.BATCHES
            for index in range(status.total_batches):
                status.current_step = f"batch {index + 1}/{status.total_batches}"
                await self.run_slide_stage(db, document, "batch", index)
                await db.commit()
                status.batches_completed += 1

            status.phase = PipelinePhase.FINALIZE
            status.current_step = "finalize"
            await self.run_slide_stage(db, document, "finalize")
            await db.commit()

            status.current_step = None
            status.phase = PipelinePhase.COMPLETED
            logger.info("Pipeline completed for document %s in %.1fs", document_id, status.elapsed_seconds)
