"""
Instagram profile scraping through the ScrapeCreators API.

Profiles are fetched in small concurrent batches with a pause between
batches.  A handle that fails is logged and skipped; without an API token
scraping is disabled and every call returns an empty list.
"""
from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import Any, Dict, Iterable, List, Optional

import httpx

from docmaker.config import settings

logger = logging.getLogger(__name__)


@dataclasses.dataclass
class InstagramProfile:
    username: str
    fullName: str = ""
    biography: str = ""
    profilePicUrl: str = ""
    followersCount: int = 0
    followingCount: int = 0
    postsCount: int = 0
    isVerified: bool = False
    isBusinessAccount: bool = False
    externalUrl: Optional[str] = None
    businessEmail: Optional[str] = None
    category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return dataclasses.asdict(self)


def clean_handle(handle: str) -> str:
    """``@name/`` -> ``name``."""
    handle = (handle or "").strip()
    if handle.startswith("@"):
        handle = handle[1:]
    return handle.rstrip("/").strip()


def _truthy(user: Dict[str, Any], *keys: str, default: Any = "") -> Any:
    """First non-empty value among *keys*."""
    for key in keys:
        if user.get(key):
            return user[key]
    return default


def _present(user: Dict[str, Any], *keys: str, default: Any = 0) -> Any:
    """First value among *keys* that is not None (0 and False count)."""
    for key in keys:
        value = user.get(key)
        if isinstance(value, dict):
            value = value.get("count")
        if value is not None:
            return value
    return default


def _as_int(value: Any) -> int:
    """Provider counts arrive as ints, floats or strings like "12,400"."""
    try:
        if isinstance(value, (int, float)):
            return int(value)
        return int(float(str(value).replace(",", "").strip()))
    except (ValueError, OverflowError):
        return 0


def profile_from_user(user: Dict[str, Any], handle: str) -> InstagramProfile:
    """Map the provider's user object (either naming scheme) to a profile."""
    return InstagramProfile(
        username=user.get("username") or handle,
        fullName=_truthy(user, "full_name", "fullName"),
        biography=_truthy(user, "biography", "bio"),
        profilePicUrl=_truthy(user, "profile_pic_url_hd", "profile_pic_url", "profilePicUrl"),
        followersCount=_as_int(_present(user, "edge_followed_by", "followers_count", "followersCount")),
        followingCount=_as_int(_present(user, "edge_follow", "following_count", "followingCount")),
        postsCount=_as_int(_present(user, "edge_owner_to_timeline_media", "media_count", "postsCount")),
        isVerified=bool(_present(user, "is_verified", "isVerified", default=False)),
        isBusinessAccount=bool(_present(user, "is_business_account", "isBusinessAccount", default=False)),
        externalUrl=_truthy(user, "external_url", "externalUrl", default=None),
        businessEmail=_truthy(user, "business_email", "businessEmail", default=None),
        category=_truthy(user, "category_name", "category", default=None),
    )


def filter_by_followers(
    profiles: Iterable[InstagramProfile],
    minimum: int = settings.MIN_INFLUENCER_FOLLOWERS,
) -> List[InstagramProfile]:
    return [p for p in profiles if p.followersCount >= minimum]


class InfluencerScraper:
    """ScrapeCreators client."""

    def __init__(self) -> None:
        self.base_url = settings.SCRAPE_CREATORS_BASE_URL.rstrip("/")
        self.token = settings.SCRAPE_CREATORS_TOKEN
        self.batch_size = settings.SCRAPE_BATCH_SIZE
        self.batch_delay = settings.SCRAPE_BATCH_DELAY
        self.timeout = httpx.Timeout(float(settings.SCRAPE_TIMEOUT), connect=10.0)

    @property
    def is_configured(self) -> bool:
        return bool(self.token)

    async def scrape_profiles(self, handles: Iterable[str]) -> List[InstagramProfile]:
        if not self.is_configured:
            logger.warning("SCRAPE_CREATORS_TOKEN not set - influencer scraping disabled")
            return []

        cleaned = [h for h in (clean_handle(h) for h in handles) if h]
        logger.info("Fetching %d Instagram profiles", len(cleaned))

        results: List[InstagramProfile] = []
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            for start in range(0, len(cleaned), self.batch_size):
                batch = cleaned[start:start + self.batch_size]
                profiles = await asyncio.gather(
                    *(self._fetch_profile(client, handle) for handle in batch)
                )
                results.extend(p for p in profiles if p is not None)

                if start + self.batch_size < len(cleaned):
                    await asyncio.sleep(self.batch_delay)

        logger.info("Fetched %d/%d profiles", len(results), len(cleaned))
        return results

    async def _fetch_profile(
        self, client: httpx.AsyncClient, handle: str
    ) -> Optional[InstagramProfile]:
        try:
            resp = await client.get(
                f"{self.base_url}/instagram/profile",
                params={"handle": handle},
                headers={"x-api-key": self.token},
            )
        except httpx.TimeoutException:
            logger.error("ScrapeCreators request for @%s timed out", handle)
            return None
        except httpx.HTTPError as exc:
            logger.error("ScrapeCreators request for @%s failed: %s", handle, exc)
            return None

        if resp.status_code != 200:
            logger.error(
                "ScrapeCreators error for @%s: HTTP %d, body: %s",
                handle, resp.status_code, resp.text[:200],
            )
            return None

        try:
            payload = resp.json()
        except ValueError:
            logger.error("ScrapeCreators returned invalid JSON for @%s", handle)
            return None

        data = payload.get("data") if isinstance(payload, dict) else None
        user = data.get("user") if isinstance(data, dict) else None
        if not isinstance(user, dict) or not user:
            logger.info("No user data for @%s", handle)
            return None

        try:
            profile = profile_from_user(user, handle)
        except (AttributeError, TypeError, ValueError) as exc:
            logger.error("Unexpected profile payload for @%s: %s", handle, exc)
            return None
        logger.info(
            "@%s: %s followers, verified=%s", handle, profile.followersCount, profile.isVerified
        )
        return profile
