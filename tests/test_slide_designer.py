"""Tests for the slide designer: data flattening, batching, fallbacks and finalize."""
import pytest

from docmaker.services import slide_designer
from docmaker.services.gemini_client import GeminiClient
from docmaker.services.slide_designer import (
    LEADERS_LOGO_DARK,
    LEADERS_LOGO_LIGHT,
    PIPELINE_NAME,
    PRESENTATION_VERSION,
    build_fallback_design_system,
    build_slide_batches,
    create_fallback_slide,
    currency_symbol,
    format_num,
    inject_client_logo,
    inject_leaders_logo,
    pipeline_batch,
    pipeline_finalize,
    pipeline_foundation,
    proposal_data_from_document,
    regenerate_single_slide,
)

DOCUMENT_DATA = {
    "_stepData": {
        "brief": {"brandName": "Acme", "brandBrief": "Coffee roaster", "brandPainPoints": ["awareness"]},
        "goals": {"goals": [{"title": "מודעות", "description": "להגדיל מודעות"}]},
        "target_audience": {"targetGender": "נשים", "targetAgeRange": "25-34"},
        "media_targets": {"budget": 50000, "currency": "USD", "potentialReach": 1500000},
        "influencers": {"influencerStrategy": "מיקרו משפיעניות", "influencers": []},
    },
    "_extractedData": {"brand": {"name": "Ignored"}, "budget": {"amount": 1, "currency": "ILS"}},
    "_brandColors": {"primary": "#112233", "secondary": "#445566", "accent": "#ff6600"},
}


def _slide_types(batches):
    return [[s["slideType"] for s in batch] for batch in batches]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "value, expected",
    [(1500000, "1.5M"), (12400, "12K"), (950, "950"), (0, "0"), (None, "0")],
)
def test_format_num(value, expected):
    assert format_num(value) == expected


def test_currency_symbol():
    assert currency_symbol("USD") == "$"
    assert currency_symbol("eur") == "€"
    assert currency_symbol("$") == "$"
    assert currency_symbol("ILS") == "₪"
    assert currency_symbol(None) == "₪"


def test_proposal_data_prefers_step_data():
    flat = proposal_data_from_document(DOCUMENT_DATA)
    assert flat["brandName"] == "Acme"
    assert flat["budget"] == 50000
    assert flat["currency"] == "USD"
    assert flat["_brandColors"]["primary"] == "#112233"


def test_proposal_data_top_level_keys_win():
    flat = proposal_data_from_document({**DOCUMENT_DATA, "brandName": "Override", "goals": []})
    assert flat["brandName"] == "Override"
    assert "goals" in flat


def test_proposal_data_from_extraction_only():
    flat = proposal_data_from_document({"_extractedData": {"brand": {"name": "Beta"}, "campaignGoals": ["sales"]}})
    assert flat["brandName"] == "Beta"
    assert flat["goals"] == ["sales"]
    assert flat["currency"] == "ILS"


# ---------------------------------------------------------------------------
# Batches
# ---------------------------------------------------------------------------

def test_batches_without_influencers():
    batches = build_slide_batches(proposal_data_from_document(DOCUMENT_DATA))
    assert _slide_types(batches) == [
        ["cover", "brief", "goals", "audience", "insight"],
        ["strategy", "bigIdea", "approach", "deliverables", "metrics"],
        ["influencerStrategy", "closing"],
    ]
    metrics = batches[1][4]["content"]
    assert metrics["budget"] == "$50K"
    assert metrics["reach"] == "1.5M"


def test_batches_leave_missing_money_blank_and_use_research_strategy():
    data = {
        "brandName": "Acme",
        "_influencerStrategy": {
            "strategySummary": "שילוב מיקרו ומאקרו",
            "contentThemes": [{"theme": "בוקר"}, {"theme": "טעימות"}, "מתכונים"],
        },
        "contentGuidelines": ["אותנטיות"],
    }
    batches = build_slide_batches(data)
    metrics = batches[1][4]["content"]
    assert metrics["budget"] == ""
    assert metrics["cpe"] == ""

    strategy = batches[2][0]["content"]
    assert strategy["strategy"] == "שילוב מיקרו ומאקרו"
    assert strategy["criteria"] == ["בוקר", "טעימות", "מתכונים"]
    assert strategy["guidelines"] == ["אותנטיות"]


def test_batches_with_influencers_and_images():
    data = {
        **proposal_data_from_document(DOCUMENT_DATA),
        "_scrapedInfluencers": [
            {"username": f"user{i}", "followers": 20000, "engagementRate": 3.4} for i in range(8)
        ],
    }
    batches = build_slide_batches(data, {
        "images": {"coverImage": "https://img/cover.png"},
        "extraImages": [{"url": "https://img/goals.png", "placement": "goals"}],
        "maxInfluencers": 3,
    })
    assert [s["slideType"] for s in batches[2]] == ["influencerStrategy", "influencers", "closing"]
    influencers = batches[2][1]["content"]["influencers"]
    assert len(influencers) == 3
    assert influencers[0]["followers"] == "20K"
    assert influencers[0]["engagementRate"] == "3.4%"
    assert batches[0][0]["imageUrl"] == "https://img/cover.png"
    assert batches[0][2]["imageUrl"] == "https://img/goals.png"
    assert batches[2][-1]["imageUrl"] == "https://img/cover.png"


# ---------------------------------------------------------------------------
# Design system and fallback slides
# ---------------------------------------------------------------------------

def test_fallback_design_system_uses_brand_colours():
    ds = build_fallback_design_system({"primary": "#112233"})
    assert ds["colors"]["primary"] == "#112233"
    assert ds["colors"]["gradientStart"] == "#112233"
    assert ds["direction"] == "rtl"
    assert ds["fonts"]["heading"] == "Heebo"


def test_create_fallback_slide():
    ds = build_fallback_design_system()
    slide = create_fallback_slide({"slideType": "goals", "title": "מטרות", "content": {"headline": "מטרות הקמפיין"}}, ds, 4)
    assert slide["id"] == "slide-fallback-4"
    assert slide["slideType"] == "goals"
    title = next(e for e in slide["elements"] if e.get("role") == "title")
    assert title["content"] == "מטרות הקמפיין"
    assert slide["background"]["value"] == ds["colors"]["background"]


def test_leaders_logo_variant_follows_background():
    dark = inject_leaders_logo({"id": "s1", "background": {"type": "solid", "value": "#000000"}, "elements": []})
    light = inject_leaders_logo({"id": "s2", "background": {"type": "solid", "value": "#ffffff"}, "elements": []})
    assert dark["elements"][-1]["src"].endswith(LEADERS_LOGO_LIGHT)
    assert light["elements"][-1]["src"].endswith(LEADERS_LOGO_DARK)


def test_client_logo_only_on_branded_slides():
    cover = inject_client_logo({"id": "c", "slideType": "cover", "elements": []}, "https://logo.png")
    brief = inject_client_logo({"id": "b", "slideType": "brief", "elements": []}, "https://logo.png")
    closing = inject_client_logo({"id": "z", "slideType": "closing", "elements": []}, "")
    assert cover["elements"][-1]["src"] == "https://logo.png"
    assert brief["elements"] == []
    assert closing["elements"] == []


# ---------------------------------------------------------------------------
# Staged pipeline (no API key: every model call fails and fallbacks apply)
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_foundation_uses_fallback_design_system():
    foundation = await pipeline_foundation(proposal_data_from_document(DOCUMENT_DATA), {"clientLogoUrl": "https://logo.png"})
    assert foundation["brandName"] == "Acme"
    assert len(foundation["batches"]) == 3
    assert foundation["totalSlides"] == 12
    assert foundation["clientLogo"] == "https://logo.png"
    assert foundation["designSystem"]["colors"]["primary"] == "#112233"


@pytest.mark.asyncio
async def test_batch_falls_back_and_tracks_slide_index():
    foundation = await pipeline_foundation(proposal_data_from_document(DOCUMENT_DATA))
    first = await pipeline_batch(foundation, 0)
    assert [s["id"] for s in first["slides"]] == [f"slide-fallback-{i}" for i in range(5)]
    assert first["slideIndex"] == 5

    second = await pipeline_batch(foundation, 1, first)
    assert second["slides"][0]["id"] == "slide-fallback-5"
    assert second["slideIndex"] == 10


@pytest.mark.asyncio
async def test_batch_index_out_of_range():
    foundation = await pipeline_foundation(proposal_data_from_document(DOCUMENT_DATA))
    with pytest.raises(ValueError):
        await pipeline_batch(foundation, 3)


@pytest.mark.asyncio
async def test_batch_uses_generated_slides(monkeypatch):
    async def fake_batch(design_system, slides, batch_index, brand_name, previous_context="", slide_index=0):
        return [
            {"id": f"slide-{slide_index + i}", "slideType": s["slideType"], "elements": [{"type": "image"}]}
            for i, s in enumerate(slides)
        ]

    monkeypatch.setattr(slide_designer, "generate_slides_batch", fake_batch)
    foundation = await pipeline_foundation(proposal_data_from_document(DOCUMENT_DATA))
    result = await pipeline_batch(foundation, 0)
    assert result["slides"][0]["id"] == "slide-0"
    assert "hasImage: true" in result["visualSummary"]


@pytest.mark.asyncio
async def test_finalize_assembles_presentation():
    foundation = await pipeline_foundation(proposal_data_from_document(DOCUMENT_DATA), {"clientLogoUrl": "https://logo.png"})
    slides = []
    previous = None
    for index in range(len(foundation["batches"])):
        previous = await pipeline_batch(foundation, index, previous)
        slides.extend(previous["slides"])

    presentation = await pipeline_finalize(foundation, slides, "doc-1")
    assert presentation["title"] == "Acme"
    assert len(presentation["slides"]) == 12
    assert presentation["metadata"]["pipeline"] == PIPELINE_NAME
    assert presentation["metadata"]["version"] == PRESENTATION_VERSION
    assert 0 <= presentation["metadata"]["qualityScore"] <= 100

    cover = presentation["slides"][0]
    srcs = [e.get("src") for e in cover["elements"] if e["type"] == "image"]
    assert "https://logo.png" in srcs
    assert any(src.endswith(LEADERS_LOGO_LIGHT) for src in srcs)


@pytest.mark.asyncio
async def test_finalize_requires_slides():
    with pytest.raises(ValueError):
        await pipeline_finalize({"designSystem": build_fallback_design_system()}, [])


@pytest.mark.asyncio
async def test_regenerated_slide_ids_follow_its_position(monkeypatch):
    async def fake_json(self, prompt, **kwargs):
        return {"slides": [{
            "slideType": "brief",
            "background": {"type": "solid", "value": "#0a0a12"},
            "elements": [
                {"type": "text", "role": "title", "content": "כותרת", "x": 120, "y": 120,
                 "width": 900, "height": 160, "fontSize": 72, "color": "#ffffff", "zIndex": 2},
                {"type": "shape", "x": 0, "y": 0, "width": 1920, "height": 1080, "zIndex": 0},
            ],
        }]}

    monkeypatch.setattr(GeminiClient, "generate_json", fake_json)
    slide = await regenerate_single_slide(
        build_fallback_design_system(), {"slideType": "brief", "title": "בריף", "content": {}}, "Acme",
        slide_index=4,
    )
    assert slide["id"] == "slide-4"
    assert [el["id"] for el in slide["elements"]][:2] == ["el-4-0", "el-4-1"]
