"""Tests for upstream retry logic."""

import httpx
import pytest

from diagnosis_api.exceptions import GenerationError, ScraperError, UpstreamError
from diagnosis_api.retry import with_upstream_retry


@pytest.mark.asyncio
async def test_retries_transient_errors_then_succeeds():
    calls = 0

    @with_upstream_retry("Test", max_retries=3, wait_min=0, wait_max=0)
    async def flaky() -> str:
        nonlocal calls
        calls += 1
        if calls < 3:
            raise httpx.ConnectError("refused")
        return "ok"

    assert await flaky() == "ok"
    assert calls == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    calls = 0

    @with_upstream_retry("Test", error_cls=ScraperError, max_retries=2, wait_min=0, wait_max=0)
    async def down() -> None:
        nonlocal calls
        calls += 1
        raise ConnectionError("unreachable")

    with pytest.raises(ScraperError, match="Test request failed: unreachable"):
        await down()
    assert calls == 2


@pytest.mark.asyncio
async def test_domain_errors_pass_through_without_retry():
    calls = 0

    @with_upstream_retry("Test", wait_min=0, wait_max=0)
    async def unauthorized() -> None:
        nonlocal calls
        calls += 1
        raise GenerationError("auth", code="auth_failed")

    with pytest.raises(GenerationError) as exc_info:
        await unauthorized()

    assert exc_info.value.code == "auth_failed"
    assert calls == 1


@pytest.mark.asyncio
async def test_other_errors_are_wrapped_without_retry():
    calls = 0

    @with_upstream_retry("Test", wait_min=0, wait_max=0)
    async def broken() -> None:
        nonlocal calls
        calls += 1
        raise KeyError("answer")

    with pytest.raises(UpstreamError):
        await broken()
    assert calls == 1
