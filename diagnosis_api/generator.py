"""Diagnosis generation backends using Strategy Pattern."""

from dataclasses import asdict, dataclass
from typing import Any, Protocol

import httpx
import litellm
from loguru import logger

from .config import Settings
from .exceptions import ConfigurationError, GenerationError
from .retry import with_upstream_retry


def setup_litellm() -> None:
    """Setup litellm configuration."""
    litellm.set_verbose = False
    litellm.drop_params = True
    litellm.suppress_debug_info = True


@dataclass
class GenerationRequest:
    """Payload sent to the generation service."""

    profile_context: str
    mode: str
    query: str
    user: str = "api-user"
    response_mode: str = "blocking"


class DiagnosisGenerator(Protocol):
    """Protocol for generation backends."""

    async def generate(self, request: GenerationRequest) -> str: ...
    async def health_check(self) -> bool: ...
    async def startup(self) -> None: ...
    async def shutdown(self) -> None: ...


def extract_answer(data: Any) -> str:
    """Pull the answer text out of a chat or workflow response."""
    if isinstance(data, str):
        return data
    if not isinstance(data, dict):
        return ""
    if data.get("answer"):
        return str(data["answer"])
    if data.get("text"):
        return str(data["text"])
    outputs = data.get("outputs")
    if isinstance(outputs, dict):
        return str(outputs.get("answer") or outputs.get("text") or outputs.get("result") or "")
    return ""


class DifyGenerator:
    """Dify chat-messages client."""

    def __init__(
        self,
        api_key: str | None,
        api_url: str | None,
        timeout: float = 55,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        api_key = (api_key or "").strip()
        api_url = (api_url or "").strip()

        if not api_key:
            raise ConfigurationError("Dify API key is required")
        if not api_url:
            raise ConfigurationError("Dify API URL is required")
        if not api_key.startswith("app-"):
            logger.warning("Dify API key format may be invalid")

        self.api_key = api_key
        if api_url.endswith("/chat-messages"):
            self.endpoint = api_url
        else:
            self.endpoint = f"{api_url.rstrip('/')}/chat-messages"
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        await self.client.aclose()

    async def generate(self, request: GenerationRequest) -> str:
        """Send the request and return a non-empty answer."""
        data = await self._post(request)
        answer = extract_answer(data)
        if not answer.strip():
            keys = list(data) if isinstance(data, dict) else []
            logger.error(f"Dify response does not contain an answer. Keys: {keys}")
            raise GenerationError("Empty diagnosis result from AI", code="empty_answer")
        return answer

    @with_upstream_retry("Dify", error_cls=GenerationError)
    async def _post(self, request: GenerationRequest) -> Any:
        body = {
            "inputs": {"profile_context": request.profile_context, "mode": request.mode},
            "query": request.query,
            "user": request.user,
            "response_mode": request.response_mode,
        }
        headers = {"Authorization": f"Bearer {self.api_key}"}

        logger.debug(f"Dify request to {self.endpoint}")
        try:
            response = await self.client.post(self.endpoint, json=body, headers=headers)
            response.raise_for_status()
        except httpx.TimeoutException as e:
            raise GenerationError(
                "AI diagnosis is taking too long", code="timeout", retryable=True
            ) from e
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 401:
                logger.error("Dify API authentication failed (401)")
                raise GenerationError(
                    "AI diagnosis service authentication failed", code="auth_failed"
                ) from e
            raise GenerationError(
                f"Dify API error: {status} - {_error_message(e.response)}",
                details={"status": status},
            ) from e

        logger.debug(f"Dify response status: {response.status_code}")
        try:
            return response.json()
        except ValueError:
            return response.text

    async def health_check(self) -> bool:
        """Check if generator is configured."""
        return bool(self.api_key)


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return response.text
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return response.text


class LiteLLMGenerator:
    """Direct LLM backend through litellm, for deployments without Dify."""

    def __init__(self, model: str, api_key: str | None, timeout: float = 55) -> None:
        if not api_key:
            raise ConfigurationError("LiteLLM API key is required")

        self.model = model
        self.api_key = api_key
        self.timeout = timeout
        setup_litellm()

    async def startup(self) -> None:
        pass

    async def shutdown(self) -> None:
        pass

    async def generate(self, request: GenerationRequest) -> str:
        """Generate a diagnosis from the query and profile context."""
        answer = await self._complete(request)
        if not answer or not answer.strip():
            raise GenerationError("Empty diagnosis result from AI", code="empty_answer")
        return answer

    @with_upstream_retry("LiteLLM", error_cls=GenerationError)
    async def _complete(self, request: GenerationRequest) -> str:
        payload = asdict(request)
        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=[
                    {"role": "system", "content": f"Diagnosis mode: {payload['mode']}"},
                    {"role": "user", "content": f"{payload['query']}\n\n{payload['profile_context']}"},
                ],
                timeout=self.timeout,
                api_key=self.api_key,
                user=payload["user"],
            )
        except litellm.exceptions.AuthenticationError as e:
            raise GenerationError(
                "AI diagnosis service authentication failed", code="auth_failed"
            ) from e
        except litellm.exceptions.Timeout as e:
            raise GenerationError(
                "AI diagnosis is taking too long", code="timeout", retryable=True
            ) from e

        return response.choices[0].message.content or ""

    async def health_check(self) -> bool:
        """Check if generator is configured."""
        return bool(self.api_key)


def create_generator(settings: Settings) -> DiagnosisGenerator:
    """Factory function to create the configured generation backend."""
    if settings.generation_provider == "litellm":
        logger.info(f"Using LiteLLM generator with model {settings.litellm_model}")
        return LiteLLMGenerator(
            model=settings.litellm_model,
            api_key=settings.litellm_api_key,
            timeout=settings.generation_timeout,
        )

    logger.info("Using Dify generator")
    return DifyGenerator(
        api_key=settings.dify_api_key,
        api_url=settings.dify_api_url,
        timeout=settings.generation_timeout,
    )
