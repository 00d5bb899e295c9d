"""Diagnosis service: result cache gate and generation pipeline."""

import asyncio
from datetime import UTC, datetime, timedelta

from loguru import logger

from .exceptions import GenerationError
from .generator import DiagnosisGenerator, GenerationRequest
from .models import Mode, normalize_competitor_id, normalize_username
from .prompt import build_profile_context, build_query
from .scraper import ProfileScraper, match_profiles
from .storage.protocols import DiagnosisStore
from .types import CacheRecord, DiagnosisResult, HealthStatus


class DiagnosisService:
    """Serves stored diagnoses while fresh, otherwise scrapes and generates.

    There is no per-key locking: two concurrent misses for the same key both
    generate, and both rows are stored.
    """

    def __init__(
        self,
        store: DiagnosisStore,
        scraper: ProfileScraper,
        generator: DiagnosisGenerator,
        cache_ttl: timedelta = timedelta(hours=6),
        request_timeout: float = 60,
        max_posts: int = 5,
        caption_limit: int = 100,
        generation_user: str = "api-user",
    ) -> None:
        """Initialize with injected dependencies."""
        self.store = store
        self.scraper = scraper
        self.generator = generator
        self.cache_ttl = cache_ttl
        self.request_timeout = request_timeout
        self.max_posts = max_posts
        self.caption_limit = caption_limit
        self.generation_user = generation_user

    async def diagnose(
        self,
        username: str,
        mode: Mode | str = Mode.MEDIUM,
        competitor_id: str | None = None,
    ) -> DiagnosisResult:
        """Return a fresh cached diagnosis or generate and store a new one."""
        username = normalize_username(username)
        competitor_id = normalize_competitor_id(competitor_id)
        mode = Mode(mode)
        partition = f"username={username}, mode={mode.value}, competitor_id={competitor_id or 'NULL'}"

        cached = await self._try_cache_get(username, mode, competitor_id)
        if cached:
            logger.info(f"Cache hit: {partition}")
            return {
                "result": cached["diagnosis_result"],
                "cached": True,
                "created_at": cached["created_at"],
            }

        logger.info(f"Cache miss: {partition}. Fetching new data...")

        try:
            result = await asyncio.wait_for(
                self._generate(username, mode, competitor_id),
                timeout=self.request_timeout,
            )
        except TimeoutError as e:
            logger.error(f"Diagnosis exceeded {self.request_timeout}s: {partition}")
            raise GenerationError(
                "AI diagnosis is taking too long", code="timeout", retryable=True
            ) from e

        record = await self._try_cache_set(username, mode, competitor_id, result)
        return {
            "result": result,
            "cached": False,
            "created_at": record["created_at"] if record else datetime.now(UTC),
        }

    async def _generate(self, username: str, mode: Mode, competitor_id: str | None) -> str:
        usernames = [username] + ([competitor_id] if competitor_id else [])
        items = await self.scraper.fetch_profiles(usernames)
        lookup = match_profiles(items, username, competitor_id)

        context = build_profile_context(
            lookup.target,
            username,
            competitor=lookup.competitor,
            competitor_id=competitor_id,
            max_posts=self.max_posts,
            caption_limit=self.caption_limit,
        )
        query = build_query(mode, has_competitor=bool(competitor_id))

        logger.debug("Sending request to generation service")
        answer = await self.generator.generate(
            GenerationRequest(
                profile_context=context,
                mode=mode.value,
                query=query,
                user=self.generation_user,
            )
        )
        if not answer or not answer.strip():
            raise GenerationError("Empty diagnosis result from AI", code="empty_answer")
        return answer

    async def health_check(self) -> HealthStatus:
        """Check health of all components."""
        logger.debug("Performing health checks")

        return {
            "storage": await self._check("storage", self.store.health_check),
            "scraper": await self._check("scraper", self.scraper.health_check),
            "generator": await self._check("generator", self.generator.health_check),
        }

    async def _try_cache_get(
        self, username: str, mode: Mode, competitor_id: str | None
    ) -> CacheRecord | None:
        """Try to read the cache with graceful fallback."""
        since = datetime.now(UTC) - self.cache_ttl
        try:
            record = await self.store.get_latest_diagnosis(username, mode.value, competitor_id, since)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Cache lookup failed (non-critical): {e}")
            return None
        if record and record["diagnosis_result"]:
            return record
        return None

    async def _try_cache_set(
        self, username: str, mode: Mode, competitor_id: str | None, result: str
    ) -> CacheRecord | None:
        """Try to persist the result with graceful fallback."""
        try:
            return await self.store.save_diagnosis(username, mode.value, competitor_id, result)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Failed to save diagnosis to cache: {e}")
            return None

    async def _check(self, name: str, check) -> bool:
        try:
            return bool(await check())
        except Exception as e:  # noqa: BLE001
            logger.error(f"{name.capitalize()} health check failed: {e}")
            return False
