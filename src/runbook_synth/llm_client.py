"""
LLM providers for text generation and embeddings

Every backend exposes the same capability interface: a provider id, text
generation and single/batch embedding. The backend is chosen from
configuration by create_provider().
"""

import asyncio
import hashlib
import logging
import math
import re
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import httpx
import yaml

from .config import LLMRouterConfig, SynthConfig
from .errors import TransientExternalError, ValidationError, classify_status
from .models import GenerationConfig
from .observability.metrics import get_metrics
from .observability.tracer import add_event, set_attribute, trace_async

logger = logging.getLogger(__name__)

MOCK_RESPONSES_PATH = Path(__file__).parent / "prompts" / "mock_responses.yaml"


class LLMProvider(ABC):
    """Capability interface shared by all generation/embedding backends"""

    def __init__(self, config: LLMRouterConfig):
        self.config = config

    @property
    @abstractmethod
    def provider_id(self) -> str:
        """Identifier recorded on generated checklists"""

    @abstractmethod
    async def generate_text(self, prompt: str, config: GenerationConfig) -> str:
        """Generate a completion for the prompt"""

    @abstractmethod
    async def generate_embedding(self, text: str) -> list[float]:
        """Embed a single text"""

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]:
        """Embed several texts, preserving input order"""
        if not texts:
            return []
        return list(await asyncio.gather(*(self.generate_embedding(t) for t in texts)))

    async def health_check(self) -> bool:
        return True

    def _record_request(self, operation: str) -> None:
        metrics = get_metrics()
        if metrics:
            metrics.record_llm_request(self.provider_id, operation)

    def _record_error(self, operation: str, error: Exception) -> None:
        logger.error(f"{self.provider_id} {operation} failed: {error}")
        metrics = get_metrics()
        if metrics:
            metrics.record_llm_error(self.provider_id, operation, type(error).__name__)
        set_attribute("error.type", type(error).__name__)
        add_event("llm_error", {"operation": operation, "error": str(error)})


class BaseOpenAICompatibleProvider(LLMProvider):
    """Shared implementation for OpenAI-compatible APIs"""

    def __init__(self, config: LLMRouterConfig):
        super().__init__(config)
        self._client = None

    @abstractmethod
    def _get_client(self):
        """Get the AsyncOpenAI client instance"""

    @trace_async("llm.openai_compatible.generate_text")
    async def generate_text(self, prompt: str, config: GenerationConfig) -> str:
        client = self._get_client()
        model = config.model_override or self.config.model

        set_attribute("llm.provider", self.provider_id)
        set_attribute("llm.model", model)
        set_attribute("prompt.length", len(prompt))
        set_attribute("llm.temperature", config.temperature)
        set_attribute("llm.max_tokens", config.max_tokens)

        self._record_request("generate")
        try:
            response = await client.chat.completions.create(
                model=model,
                messages=[{"role": "user", "content": prompt}],
                temperature=config.temperature,
                max_tokens=config.max_tokens,
            )
        except Exception as e:
            self._record_error("generate", e)
            raise

        choice = response.choices[0]
        if response.usage:
            set_attribute("response.tokens_used", response.usage.total_tokens)
        set_attribute("response.finish_reason", choice.finish_reason)
        return choice.message.content or ""

    @trace_async("llm.openai_compatible.embed")
    async def generate_embedding(self, text: str) -> list[float]:
        embeddings = await self.generate_embeddings([text])
        return embeddings[0]

    async def generate_embeddings(self, texts: list[str]) -> list[list[float]]:
        if not texts:
            return []
        client = self._get_client()
        self._record_request("embed")
        try:
            response = await client.embeddings.create(
                model=self.config.embedding_model, input=texts
            )
        except Exception as e:
            self._record_error("embed", e)
            raise
        ordered = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in ordered]


class OpenAIProvider(BaseOpenAICompatibleProvider):
    """OpenAI API backend"""

    @property
    def provider_id(self) -> str:
        return "openai"

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            self._client = AsyncOpenAI(
                api_key=self.config.api_key, timeout=self.config.timeout
            )
        return self._client


class LocalOpenAIProvider(BaseOpenAICompatibleProvider):
    """
    Local OpenAI-compatible inference service

    Works with LMStudio (http://localhost:1234/v1), vLLM, or the OpenAI
    endpoint of Ollama (http://localhost:11434/v1).
    """

    @property
    def provider_id(self) -> str:
        return "local"

    def _get_client(self):
        if self._client is None:
            from openai import AsyncOpenAI

            if not self.config.base_url:
                raise ValidationError(
                    "base_url is required for local LLM provider. "
                    "Examples: http://localhost:11434/v1 (Ollama), "
                    "http://localhost:1234/v1 (LMStudio)"
                )

            self._client = AsyncOpenAI(
                api_key=self.config.api_key or "not-needed",
                base_url=self.config.base_url,
                timeout=self.config.timeout,
            )
        return self._client


class OllamaProvider(LLMProvider):
    """Ollama native API (/api/generate and /api/embeddings)"""

    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(
        self,
        config: LLMRouterConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(config)
        self.base_url = (config.base_url or self.DEFAULT_BASE_URL).rstrip("/")
        self._transport = transport

    @property
    def provider_id(self) -> str:
        return "ollama"

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.config.timeout,
            transport=self._transport,
        )

    async def _post(self, operation: str, path: str, body: dict[str, Any]) -> dict[str, Any]:
        self._record_request(operation)
        try:
            async with self._client() as client:
                response = await client.post(path, json=body)
        except httpx.TransportError as e:
            error = TransientExternalError(f"Ollama connection error: {e}")
            self._record_error(operation, error)
            raise error from e

        if response.status_code >= 400:
            error = classify_status(
                response.status_code, f"Ollama API error: {response.status_code}"
            )
            self._record_error(operation, error)
            raise error
        return response.json()

    @trace_async("llm.ollama.generate_text")
    async def generate_text(self, prompt: str, config: GenerationConfig) -> str:
        model = config.model_override or self.config.model
        set_attribute("llm.model", model)
        data = await self._post(
            "generate",
            "/api/generate",
            {
                "model": model,
                "prompt": prompt,
                "stream": False,
                "options": {
                    "temperature": config.temperature,
                    "num_predict": config.max_tokens,
                },
            },
        )
        return data.get("response", "")

    @trace_async("llm.ollama.embed")
    async def generate_embedding(self, text: str) -> list[float]:
        data = await self._post(
            "embed",
            "/api/embeddings",
            {"model": self.config.embedding_model, "prompt": text},
        )
        embedding = data.get("embedding")
        if not isinstance(embedding, list):
            raise TransientExternalError("Ollama embedding response missing 'embedding'")
        return [float(value) for value in embedding]


class MockLLMProvider(LLMProvider):
    """Deterministic provider for tests and offline development"""

    _TOKEN_PATTERN = re.compile(r"[a-z0-9]+")

    def __init__(self, config: LLMRouterConfig, response: Optional[str] = None):
        super().__init__(config)
        self._dimension = config.embedding_dimensions
        self._response = response if response is not None else self._load_mock_response()

    @staticmethod
    def _load_mock_response() -> str:
        with open(MOCK_RESPONSES_PATH, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        return data.get("checklist", "")

    @property
    def provider_id(self) -> str:
        return "mock"

    async def generate_text(self, prompt: str, config: GenerationConfig) -> str:
        self._record_request("generate")
        await asyncio.sleep(0)
        return self._response

    async def generate_embedding(self, text: str) -> list[float]:
        """Hashed bag-of-words vector, so texts sharing words score as similar"""
        self._record_request("embed")
        vector = [0.0] * self._dimension
        for token in self._TOKEN_PATTERN.findall(text.lower()):
            digest = hashlib.sha256(token.encode()).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimension
            sign = 1.0 if digest[4] % 2 == 0 else -1.0
            vector[index] += sign

        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0:
            return vector
        return [v / norm for v in vector]


def create_provider(
    config: SynthConfig, router_name: Optional[str] = None
) -> LLMProvider:
    """Create the provider configured for a router"""
    router_name = router_name or config.llm.default
    router_config = config.get_llm_router_config(router_name)
    provider = router_config.provider.lower()

    if provider == "openai":
        if router_config.api_key and router_config.api_key.startswith("sk-placeholder"):
            logger.info(
                f"Using mock provider for placeholder API key in router {router_name}"
            )
            return MockLLMProvider(router_config)
        return OpenAIProvider(router_config)
    if provider == "local":
        return LocalOpenAIProvider(router_config)
    if provider == "ollama":
        return OllamaProvider(router_config)
    if provider == "mock":
        return MockLLMProvider(router_config)
    raise ValidationError(
        f"Unknown LLM provider '{router_config.provider}'. "
        "Supported providers are: openai, local, ollama, mock"
    )
