"""Profile scraping through an Apify actor."""

from dataclasses import dataclass
from typing import Any, Protocol

from apify_client import ApifyClientAsync
from loguru import logger

from .exceptions import ConfigurationError, NotFoundError, ScraperError
from .retry import with_upstream_retry
from .types import ProfileRecord


@dataclass
class ProfileLookup:
    """Target and optional competitor records matched from a scrape."""

    target: ProfileRecord
    competitor: ProfileRecord | None = None


class ProfileScraper(Protocol):
    """Protocol for profile scrapers."""

    async def fetch_profiles(self, usernames: list[str]) -> list[dict[str, Any]]: ...
    async def health_check(self) -> bool: ...
    async def startup(self) -> None: ...
    async def shutdown(self) -> None: ...


class ApifyProfileScraper:
    """Fetches public profiles with a single actor run per request."""

    def __init__(
        self,
        token: str | None,
        actor_id: str = "apify/instagram-profile-scraper",
        timeout_secs: int = 50,
        client: ApifyClientAsync | None = None,
    ) -> None:
        if not token and client is None:
            raise ConfigurationError("Apify API token is required")

        self.actor_id = actor_id
        self.timeout_secs = timeout_secs
        self.client = client or ApifyClientAsync(token)

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def fetch_profiles(self, usernames: list[str]) -> list[dict[str, Any]]:
        """Scrape all usernames in one run and return the raw dataset items."""
        logger.info(f"Starting {self.actor_id} for usernames: {usernames}")
        return await self._run_actor(usernames)

    @with_upstream_retry("Apify", error_cls=ScraperError)
    async def _run_actor(self, usernames: list[str]) -> list[dict[str, Any]]:
        run = await self.client.actor(self.actor_id).call(
            run_input={"usernames": usernames},
            timeout_secs=self.timeout_secs,
        )
        if run is None:
            raise ScraperError(f"Apify run for {self.actor_id} did not start")

        status = run.get("status")
        logger.debug(f"Apify run {run.get('id')} finished with status {status}")
        if status != "SUCCEEDED":
            message = run.get("statusMessage") or "Unknown error"
            raise ScraperError(f"Apify run {status}: {message}", details={"status": status})

        page = await self.client.dataset(run["defaultDatasetId"]).list_items()
        logger.debug(f"Apify dataset items count: {len(page.items)}")
        return list(page.items)

    async def health_check(self) -> bool:
        """Check if scraper is configured."""
        return self.client is not None


def _unwrap(item: Any) -> dict[str, Any] | None:
    # Some actor versions wrap each profile in a one-element list.
    if isinstance(item, list):
        item = item[0] if item else None
    return item if isinstance(item, dict) else None


def _handle(item: dict[str, Any]) -> str:
    return str(item.get("username") or "").lstrip("@").lower()


def classify_scrape_error(description: str) -> str:
    """Map an actor error description to a not-found code.

    The actor only reports free text, so this is a last-resort pattern match.
    """
    if "private" in description.lower():
        return "private_account"
    if "empty" in description.lower():
        return "empty_response"
    return "profile_not_found"


NOT_FOUND_MESSAGES = {
    "private_account": "This account is private, so its data could not be retrieved.",
    "empty_response": "No data was found for this account. Check that the username is correct.",
    "profile_not_found": "The account may be private or the username may be incorrect.",
}


def match_profiles(
    items: list[Any],
    username: str,
    competitor_id: str | None = None,
) -> ProfileLookup:
    """Match scraped records back to the requested usernames.

    Records carrying an ``error`` field are skipped. Raises NotFoundError when
    the target cannot be resolved; a missing competitor is tolerated.
    """
    target: dict[str, Any] | None = None
    competitor: dict[str, Any] | None = None
    error_items: list[dict[str, Any]] = []

    for raw in items:
        item = _unwrap(raw)
        if item is None:
            continue
        if item.get("error"):
            logger.info(f"Scraper returned error for item: {item.get('errorDescription') or item['error']}")
            error_items.append(item)
            continue

        handle = _handle(item)
        if handle == username.lower():
            target = item
        elif competitor_id and handle == competitor_id.lower():
            competitor = item

    if target is None:
        description = ""
        if error_items:
            # Prefer the error reported for the target itself.
            failed = next(
                (e for e in error_items if _handle(e) in ("", username.lower())), error_items[0]
            )
            description = str(failed.get("errorDescription") or failed.get("error") or "")
        code = classify_scrape_error(description) if description else "profile_not_found"
        details = {"username": username}
        if description:
            details["technical_details"] = description
        raise NotFoundError(NOT_FOUND_MESSAGES[code], code=code, details=details)

    if competitor_id and competitor is None:
        logger.warning(f"Competitor {competitor_id} not found in scrape, continuing without it")

    return ProfileLookup(target=target, competitor=competitor)
