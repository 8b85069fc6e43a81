"""Tests for brand research, influencer, proposal content and visual asset endpoints."""
import httpx
import pytest
from httpx import AsyncClient

from docmaker.services.gemini_client import GeminiClient
from docmaker.services.influencer_research import InfluencerResearcher, recommended_handles
from docmaker.services.influencer_scraper import (
    InfluencerScraper,
    InstagramProfile,
    clean_handle,
    filter_by_followers,
    profile_from_user,
)
from docmaker.services.visual_assets import VisualAssetsService, domain_from_url
from tests.conftest import AUTH_HEADERS, AUTH_HEADERS_USER2, create_document

BRAND_RESEARCH = {
    "brandName": "Acme",
    "industry": "Coffee",
    "brandColors": {"primary": "#112233", "accent": "#ff6600"},
}

STRATEGY = {
    "strategyTitle": "Coffee creators",
    "recommendations": [
        {"name": "Dana", "handle": "@dana.coffee", "platform": "instagram"},
        {"name": "Tom", "handle": "tomtok", "platform": "tiktok"},
        {"name": "Dana again", "handle": "dana.coffee/"},
        {"name": "Lior", "handle": "@lior_brews"},
    ],
}


@pytest.fixture
def no_logo_lookup(monkeypatch):
    async def fake_find_logo(self, domain):
        return None

    monkeypatch.setattr(VisualAssetsService, "find_logo", fake_find_logo)


@pytest.fixture
def fake_profiles(monkeypatch):
    requested = []

    async def fake_scrape(self, handles):
        handles = [clean_handle(h) for h in handles]
        requested.extend(handles)
        return [
            InstagramProfile(username=h, followersCount=50_000 if i % 2 == 0 else 500)
            for i, h in enumerate(handles)
        ]

    monkeypatch.setattr(InfluencerScraper, "scrape_profiles", fake_scrape)
    return requested


@pytest.fixture
def fake_strategy(monkeypatch):
    async def fake_research(self, brand_research, budget, goals=None):
        return dict(STRATEGY)

    monkeypatch.setattr(InfluencerResearcher, "research_influencers", fake_research)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def test_clean_handle():
    assert clean_handle(" @dana.coffee/ ") == "dana.coffee"
    assert clean_handle("") == ""


def test_profile_from_user_both_schemes():
    graph = profile_from_user(
        {"full_name": "Dana", "edge_followed_by": {"count": 12000}, "is_verified": True}, "dana"
    )
    assert graph.username == "dana"
    assert graph.followersCount == 12000
    assert graph.isVerified is True

    flat = profile_from_user({"username": "tom", "followersCount": 0, "bio": "hi"}, "x")
    assert flat.username == "tom"
    assert flat.followersCount == 0
    assert flat.biography == "hi"


def test_filter_by_followers():
    profiles = [InstagramProfile("a", followersCount=9_999), InstagramProfile("b", followersCount=10_000)]
    assert [p.username for p in filter_by_followers(profiles)] == ["b"]


def test_recommended_handles():
    assert recommended_handles(STRATEGY) == ["dana.coffee", "lior_brews"]
    assert recommended_handles(STRATEGY, limit=1) == ["dana.coffee"]


def test_domain_from_url():
    assert domain_from_url("https://www.acme.co.il/about") == "www.acme.co.il"
    assert domain_from_url("acme.com") == "acme.com"
    assert domain_from_url(None) is None


@pytest.mark.asyncio
async def test_scraper_without_token_returns_nothing():
    assert await InfluencerScraper().scrape_profiles(["dana"]) == []


@pytest.mark.asyncio
async def test_influencer_prompt_accepts_non_string_lists(monkeypatch):
    prompts = []

    async def fake_json(self, prompt, **kwargs):
        prompts.append(prompt)
        return dict(STRATEGY)

    monkeypatch.setattr(GeminiClient, "generate_json", fake_json)
    research = {
        "brandName": "Acme",
        "targetDemographics": {"primaryAudience": {"interests": ["coffee", 7, {"name": "travel"}]}},
        "brandValues": [None, "quality", 3],
        "competitors": [{"name": "Roastery"}, 42, "Beanz"],
    }
    strategy = await InfluencerResearcher().research_influencers(research, 50_000, ["awareness", 2])

    assert strategy["strategyTitle"] == "Coffee creators"
    assert "coffee, 7, name: travel" in prompts[0]
    assert "Roastery, 42, Beanz" in prompts[0]


def test_profile_counts_are_coerced():
    profile = profile_from_user(
        {"username": "dana", "followers_count": "12,400", "media_count": None, "is_verified": 1},
        "dana",
    )
    assert profile.followersCount == 12400
    assert profile.postsCount == 0
    assert profile.isVerified is True
    assert filter_by_followers([profile]) == [profile]


@pytest.mark.asyncio
async def test_scraper_skips_malformed_payloads(monkeypatch):
    payloads = {
        "good": {"data": {"user": {"username": "good", "edge_followed_by": {"count": 40_000}}}},
        "listbody": [1, 2, 3],
        "listdata": {"data": ["user"]},
        "baduser": {"data": {"user": "nope"}},
        "other": {"data": {"user": {"username": "other", "followers_count": "15000"}}},
    }

    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payloads[request.url.params["handle"]])

    real_client = httpx.AsyncClient
    monkeypatch.setattr(
        httpx, "AsyncClient",
        lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
    )

    scraper = InfluencerScraper()
    scraper.token = "test-token"
    scraper.batch_delay = 0
    profiles = await scraper.scrape_profiles(list(payloads))

    assert [(p.username, p.followersCount) for p in profiles] == [("good", 40_000), ("other", 15_000)]


# ---------------------------------------------------------------------------
# /research
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_research_requires_brand_name(client: AsyncClient):
    resp = await client.post("/api/research", json={"website": "https://acme.com"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_research_degrades_and_stores(client: AsyncClient, no_logo_lookup):
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/research",
        json={"brandName": "Acme", "website": "https://acme.com", "cssColors": ["#aa0000", "#00bb00"], "documentId": doc_id},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["research"]["brandName"] == "Acme"
    assert body["research"]["confidence"] == "low"
    assert body["colors"]["primary"] == "#aa0000"
    assert body["colors"]["accent"] == "#aa0000"
    assert body["logos"] == {"client": None, "source": None}

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["data"]["_brandResearch"]["website"] == "https://acme.com"
    assert doc["data"]["_brandColors"]["secondary"] == "#00bb00"
    assert doc["data"]["_pipelineStatus"]["research"] == "complete"


@pytest.mark.asyncio
async def test_research_logo_colours_win(client: AsyncClient, monkeypatch):
    async def fake_find_logo(self, domain):
        return {"url": f"https://logo.clearbit.com/{domain}", "source": "clearbit"}

    monkeypatch.setattr(VisualAssetsService, "find_logo", fake_find_logo)
    resp = await client.post(
        "/api/research",
        json={"brandName": "Acme", "website": "acme.com", "logoColors": {"primary": "#010203"}},
        headers=AUTH_HEADERS,
    )
    body = resp.json()
    assert body["colors"]["primary"] == "#010203"
    assert body["logos"]["client"] == "https://logo.clearbit.com/acme.com"


@pytest.mark.asyncio
async def test_research_other_users_document(client: AsyncClient, no_logo_lookup):
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/research", json={"brandName": "Acme", "documentId": doc_id}, headers=AUTH_HEADERS_USER2
    )
    assert resp.status_code == 403


# ---------------------------------------------------------------------------
# /influencers
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_influencers_unknown_mode(client: AsyncClient):
    resp = await client.post("/api/influencers", json={"mode": "stalk"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_influencers_scrape_requires_usernames(client: AsyncClient):
    resp = await client.post("/api/influencers", json={"mode": "scrape"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_influencers_research_requires_brand_research(client: AsyncClient):
    resp = await client.post("/api/influencers", json={"mode": "research"}, headers=AUTH_HEADERS)
    assert resp.status_code == 400
    resp = await client.post("/api/influencers", json={}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_influencers_scrape(client: AsyncClient, fake_profiles):
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/influencers",
        json={"mode": "scrape", "usernames": ["@one", "two", "three"], "documentId": doc_id},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["count"] == 2
    assert [p["username"] for p in body["influencers"]] == ["one", "three"]

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert len(doc["data"]["_scrapedInfluencers"]) == 2


@pytest.mark.asyncio
async def test_influencers_research_default_strategy(client: AsyncClient):
    resp = await client.post(
        "/api/influencers",
        json={"mode": "research", "brandResearch": BRAND_RESEARCH, "budget": 25000, "goals": ["מודעות"]},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    body = resp.json()
    assert len(body["strategy"]["tiers"]) == 3
    assert body["recommendations"] == []
    assert body["strategy"]["expectedKPIs"][0]["target"] == "125,000"


@pytest.mark.asyncio
async def test_influencers_discover(client: AsyncClient, fake_strategy, fake_profiles):
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/influencers",
        json={"brandResearch": BRAND_RESEARCH, "budget": 25000, "documentId": doc_id},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert fake_profiles == ["dana.coffee", "lior_brews"]
    assert [p["username"] for p in body["scrapedInfluencers"]] == ["dana.coffee"]
    assert body["combinedCount"] == 1 + len(STRATEGY["recommendations"])

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["data"]["_influencerStrategy"]["strategyTitle"] == "Coffee creators"
    assert doc["data"]["_pipelineStatus"]["influencers"] == "complete"
    assert doc["data"]["_scrapedInfluencers"][0]["username"] == "dana.coffee"


# ---------------------------------------------------------------------------
# /generate-proposal
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_generate_proposal_requires_research_and_budget(client: AsyncClient):
    resp = await client.post("/api/generate-proposal", json={"brandResearch": BRAND_RESEARCH}, headers=AUTH_HEADERS)
    assert resp.status_code == 400


@pytest.mark.asyncio
async def test_generate_proposal_degrades(client: AsyncClient, fake_profiles):
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/generate-proposal",
        json={
            "brandResearch": BRAND_RESEARCH,
            "budget": 40000,
            "goals": ["מודעות"],
            "extracted": {"budget": {"currency": "USD"}},
            "influencerUsernames": ["a", "b"],
            "documentId": doc_id,
        },
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["content"]["metricsSection"]["currency"] == "$"
    assert body["content"]["goalsSection"][0]["title"] == "מודעות"
    assert body["images"] == {}
    assert body["influencerStrategy"]["tiers"]
    assert [p["username"] for p in body["scrapedInfluencers"]] == ["a"]

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["data"]["_proposalContent"]["closingStatement"] == "LET'S GET STARTED"
    assert "_generatedImages" not in doc["data"]
    assert doc["data"]["_influencerStrategy"]["tiers"]


@pytest.mark.asyncio
async def test_generate_proposal_scraper_failure_is_tolerated(client: AsyncClient, monkeypatch):
    async def broken_scrape(self, handles):
        raise RuntimeError("provider down")

    monkeypatch.setattr(InfluencerScraper, "scrape_profiles", broken_scrape)
    resp = await client.post(
        "/api/generate-proposal",
        json={"brandResearch": BRAND_RESEARCH, "budget": 40000, "influencerUsernames": ["a"], "generateImages": False},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200
    assert resp.json()["scrapedInfluencers"] == []


# ---------------------------------------------------------------------------
# /visual-assets
# ---------------------------------------------------------------------------

@pytest.mark.asyncio
async def test_visual_assets_defaults_and_store(client: AsyncClient, no_logo_lookup):
    doc_id = await create_document(client)
    resp = await client.post(
        "/api/visual-assets",
        json={"brandName": "Acme", "generateImages": False, "documentId": doc_id},
        headers=AUTH_HEADERS,
    )
    assert resp.status_code == 200, resp.text
    body = resp.json()
    assert body["logo"] is None
    assert body["images"] == {}
    assert body["colors"]["primary"]

    doc = (await client.get(f"/api/documents/{doc_id}", headers=AUTH_HEADERS)).json()
    assert doc["data"]["_brandColors"] == body["colors"]
    assert "_scraped" not in doc["data"]


@pytest.mark.asyncio
async def test_visual_assets_requires_brand_name(client: AsyncClient):
    resp = await client.post("/api/visual-assets", json={}, headers=AUTH_HEADERS)
    assert resp.status_code == 400
