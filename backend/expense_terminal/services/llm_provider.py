"""LLM provider abstraction for transaction classification.

Supports Anthropic (Claude), OpenAI and Ollama (local) with a unified
interface. A provider receives a system instruction and a single user prompt
and returns the completion text plus token usage.

Providers raise ``LLMProviderError`` instead of returning error text so the
caller's retry policy can tell rate limits and outages from bad requests.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass

import httpx
import structlog

from expense_terminal.config import settings

logger = structlog.get_logger()


@dataclass
class LLMCompletion:
    text: str
    input_tokens: int = 0
    output_tokens: int = 0


class LLMProviderError(Exception):
    """A failed completion call.

    ``status_code`` is the upstream HTTP status when known. ``transient``
    marks failures without a status that are still worth retrying
    (timeouts, dropped connections).
    """

    def __init__(self, message: str, status_code: int | None = None, transient: bool | None = None):
        super().__init__(message)
        self.status_code = status_code
        if transient is not None:
            self.transient = transient

    def __str__(self) -> str:
        message = super().__str__()
        if self.status_code is not None:
            return f"[{self.status_code}] {message}"
        return message


class LLMProviderBase(ABC):
    """Abstract base for completion providers."""

    model: str = "?"

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMCompletion:
        """Send a single-turn request and return the completion.

        Raises:
            LLMProviderError: the provider failed or rejected the request.
        """

    def get_model_name(self) -> str:
        """Return the configured model name for this provider."""
        return self.model


class AnthropicProvider(LLMProviderBase):
    """Anthropic Claude provider using the messages API.

    The system prompt is a top-level parameter, not a message.
    """

    def __init__(self) -> None:
        self.api_key = settings.anthropic_api_key
        self.model = settings.anthropic_model

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMCompletion:
        if not self.api_key:
            raise LLMProviderError("Anthropic API key not configured", transient=False)

        import anthropic

        # Retries and timeouts are handled by the caller
        try:
            async with anthropic.AsyncAnthropic(
                api_key=self.api_key,
                timeout=settings.llm_timeout,
                max_retries=0,
            ) as client:
                response = await client.messages.create(
                    model=self.model,
                    system=system_prompt,
                    messages=[{"role": "user", "content": prompt}],
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
        except anthropic.APIStatusError as e:
            raise LLMProviderError(e.message, status_code=e.status_code) from e
        except anthropic.APITimeoutError as e:
            raise LLMProviderError("Anthropic request timed out", transient=True) from e
        except anthropic.APIConnectionError as e:
            raise LLMProviderError(f"Anthropic connection error: {e}", transient=True) from e

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        usage = response.usage
        return LLMCompletion(
            text=text,
            input_tokens=getattr(usage, "input_tokens", 0) or 0,
            output_tokens=getattr(usage, "output_tokens", 0) or 0,
        )


class OpenAIProvider(LLMProviderBase):
    """OpenAI-based provider using the chat completions API."""

    def __init__(self) -> None:
        self.api_key = settings.openai_api_key
        self.model = settings.openai_model

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMCompletion:
        if not self.api_key:
            raise LLMProviderError("OpenAI API key not configured", transient=False)

        import openai

        try:
            async with openai.AsyncOpenAI(
                api_key=self.api_key,
                timeout=settings.llm_timeout,
                max_retries=0,
            ) as client:
                response = await client.chat.completions.create(
                    model=self.model,
                    messages=[
                        {"role": "system", "content": system_prompt},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=temperature,
                    max_tokens=max_tokens,
                )
        except openai.APIStatusError as e:
            raise LLMProviderError(e.message, status_code=e.status_code) from e
        except openai.APITimeoutError as e:
            raise LLMProviderError("OpenAI request timed out", transient=True) from e
        except openai.APIConnectionError as e:
            raise LLMProviderError(f"OpenAI connection error: {e}", transient=True) from e

        text = ""
        if response.choices:
            text = response.choices[0].message.content or ""
        usage = response.usage
        return LLMCompletion(
            text=text,
            input_tokens=getattr(usage, "prompt_tokens", 0) or 0,
            output_tokens=getattr(usage, "completion_tokens", 0) or 0,
        )


class OllamaProvider(LLMProviderBase):
    """Ollama-based provider using the /api/chat endpoint."""

    def __init__(self) -> None:
        self.base_url = settings.llm_base_url.rstrip("/")
        self.model = settings.llm_model

    async def complete(
        self,
        system_prompt: str,
        prompt: str,
        max_tokens: int = 4096,
        temperature: float = 0.0,
    ) -> LLMCompletion:
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(
                    connect=5.0,
                    read=settings.llm_timeout,
                    write=5.0,
                    pool=5.0,
                )
            ) as client:
                resp = await client.post(
                    f"{self.base_url}/api/chat",
                    json={
                        "model": self.model,
                        "messages": [
                            {"role": "system", "content": system_prompt},
                            {"role": "user", "content": prompt},
                        ],
                        "stream": False,
                        "options": {
                            "temperature": temperature,
                            "num_predict": max_tokens,
                        },
                    },
                )
        except httpx.TimeoutException as e:
            logger.warning("ollama_timeout", model=self.model)
            raise LLMProviderError("Ollama request timed out", transient=True) from e
        except httpx.TransportError as e:
            logger.warning("ollama_unreachable", url=self.base_url)
            raise LLMProviderError(f"Ollama unreachable: {e}", transient=True) from e

        if resp.status_code != 200:
            logger.warning("ollama_error", status=resp.status_code, body=resp.text[:200])
            raise LLMProviderError(resp.text[:200] or "Ollama error", status_code=resp.status_code)

        data = resp.json()
        return LLMCompletion(
            text=data.get("message", {}).get("content", ""),
            input_tokens=data.get("prompt_eval_count", 0) or 0,
            output_tokens=data.get("eval_count", 0) or 0,
        )


def get_llm_provider(name: str | None = None) -> LLMProviderBase:
    """Factory: return the configured classification provider."""
    provider = (name or settings.classification_provider).lower()
    if provider == "openai":
        return OpenAIProvider()
    if provider == "ollama":
        return OllamaProvider()
    return AnthropicProvider()
