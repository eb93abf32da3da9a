"""Embedding providers behind one ``embed(texts) -> vectors`` interface.

Two behavioural profiles:
- batch-capable APIs (OpenAI-compatible ``/embeddings``) embed up to
  ``batch_size`` texts per request
- single-text APIs (Google ``embedContent``, Ollama ``/api/embeddings``) embed
  one text at a time with an inter-request delay, a length cap and per-item
  failure isolation
"""
import asyncio
import time
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Sequence

import httpx
import structlog
from tenacity import (
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from lumi import config
from lumi.errors import ConfigurationError, DimensionMismatchError
from lumi.providers import (
    BATCH,
    SEQUENTIAL,
    get_provider_spec,
    http_session,
    resolve_api_key,
)

logger = structlog.get_logger()

# Output sizes of well-known models, used for zero vectors before the first
# real vector has been seen.
KNOWN_DIMENSIONS: Dict[str, int] = {
    "text-embedding-3-small": 1536,
    "text-embedding-3-large": 3072,
    "text-embedding-ada-002": 1536,
    "openai/text-embedding-3-small": 1536,
    "openai/text-embedding-3-large": 3072,
    "text-embedding-004": 768,
    "mxbai-embed-large:latest": 1024,
    "mxbai-embed-large": 1024,
    "nomic-embed-text": 768,
}


def _as_text(value: Any, position: int) -> str:
    if isinstance(value, str):
        return value
    logger.warning("non_string_text_coerced", position=position, type=type(value).__name__)
    return str(value)


def _require_text(value: Any) -> str:
    """Query text to embed; blank queries are rejected before any request."""
    text = _as_text(value, 0)
    if not text.strip():
        raise ValueError("Cannot embed an empty query")
    return text


def _is_transient(exc: BaseException) -> bool:
    """Rate limits, server errors and transport failures are worth retrying."""
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return isinstance(exc, httpx.TransportError)


def _log_retry(retry_state) -> None:
    logger.warning(
        "embedding_batch_retry",
        attempt=retry_state.attempt_number,
        error=str(retry_state.outcome.exception()),
    )


class EmbeddingProvider(ABC):
    """Base class for embedding backends."""

    profile: str = ""
    provider_name: str = ""

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        dimension: Optional[int] = None,
        timeout: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        """Initialize the provider.

        Args:
            model: Embedding model identifier
            api_key: Provider credential, if the provider needs one
            base_url: API root (default from the provider catalogue)
            dimension: Vector length for zero vectors (default: known or observed)
            timeout: HTTP timeout in seconds (default from config)
            client: Optional shared httpx client (tests inject a mock transport here)
        """
        self.model = model
        self.api_key = api_key
        self.base_url = (base_url or get_provider_spec(self.provider_name).base_url).rstrip("/")
        self.timeout = timeout or config.HTTP_TIMEOUT
        self._client = client

        self.dimension = dimension or KNOWN_DIMENSIONS.get(model) or config.EMBED_DEFAULT_DIMENSION
        self._dimension_observed = False

        self.stats = {
            "requests": 0,
            "embeddings_generated": 0,
            "failures": 0,
            "truncated": 0,
            "empty": 0,
        }

        logger.info(
            "embedding_provider_initialized",
            provider=self.provider_name,
            profile=self.profile,
            model=self.model,
        )

    def zero_vector(self) -> List[float]:
        """Placeholder vector that keeps index and metadata aligned."""
        return [0.0] * self.dimension

    def _observe(self, vector: List[float]) -> List[float]:
        """Check a returned vector and learn the model's dimension from it."""
        if not vector:
            raise RuntimeError("Empty embedding returned")

        if not self._dimension_observed:
            if len(vector) != self.dimension:
                logger.info(
                    "embedding_dimension_detected",
                    model=self.model,
                    expected=self.dimension,
                    detected=len(vector),
                )
                self.dimension = len(vector)
            self._dimension_observed = True
        elif len(vector) != self.dimension:
            raise DimensionMismatchError(
                f"Model {self.model} returned a vector of length {len(vector)}, "
                f"expected {self.dimension}"
            )

        self.stats["embeddings_generated"] += 1
        return vector

    @abstractmethod
    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts, returning one vector per input in input order."""

    @abstractmethod
    async def embed_query(self, text: str) -> List[float]:
        """Embed a single query. Failures propagate; blank text raises ValueError."""


class BatchEmbeddingProvider(EmbeddingProvider):
    """OpenAI-compatible provider that embeds many texts per request."""

    profile = BATCH
    provider_name = "openai"

    def __init__(
        self,
        model: str,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        provider_name: Optional[str] = None,
        batch_size: Optional[int] = None,
        **kwargs,
    ):
        if provider_name:
            self.provider_name = provider_name
        super().__init__(model, api_key=api_key, base_url=base_url, **kwargs)
        self.batch_size = batch_size or config.EMBED_BATCH_SIZE

    @retry(
        retry=retry_if_exception(_is_transient),
        stop=stop_after_attempt(config.EMBED_MAX_RETRIES),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        before_sleep=_log_retry,
        reraise=True,
    )
    async def _post_batch(self, texts: List[str]) -> List[List[float]]:
        """Send one ``/embeddings`` request for the whole batch."""
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else {}

        async with http_session(self._client, self.timeout) as client:
            logger.debug(
                "embedding_batch_request",
                provider=self.provider_name,
                model=self.model,
                batch_size=len(texts),
            )
            self.stats["requests"] += 1
            response = await client.post(
                f"{self.base_url}/embeddings",
                json={"model": self.model, "input": texts},
                headers=headers,
            )
            response.raise_for_status()
            data = response.json().get("data", [])

        if len(data) != len(texts):
            raise RuntimeError(
                f"Provider returned {len(data)} embeddings for {len(texts)} inputs"
            )

        ordered = sorted(data, key=lambda item: item.get("index", 0))
        return [item["embedding"] for item in ordered]

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts in batches of ``batch_size``.

        Empty texts are not sent; they become zero vectors. Any request that
        still fails after retries raises.
        """
        texts = [_as_text(text, i) for i, text in enumerate(texts)]
        vectors: List[Optional[List[float]]] = [None] * len(texts)

        for start in range(0, len(texts), self.batch_size):
            positions = [
                i for i in range(start, min(start + self.batch_size, len(texts)))
                if texts[i].strip()
            ]
            self.stats["empty"] += min(self.batch_size, len(texts) - start) - len(positions)
            if not positions:
                continue

            try:
                batch_vectors = await self._post_batch([texts[i] for i in positions])
            except httpx.HTTPError as e:
                logger.error(
                    "embedding_batch_failed",
                    provider=self.provider_name,
                    batch_start=start,
                    batch_size=len(positions),
                    error=str(e),
                )
                raise

            for position, vector in zip(positions, batch_vectors):
                vectors[position] = self._observe(vector)

        return [vector if vector is not None else self.zero_vector() for vector in vectors]

    async def embed_query(self, text: str) -> List[float]:
        text = _require_text(text)
        vector = (await self._post_batch([text]))[0]
        return self._observe(vector)


class SequentialEmbeddingProvider(EmbeddingProvider):
    """Provider that accepts one text per request and must be rate limited."""

    profile = SEQUENTIAL

    def __init__(
        self,
        model: str,
        max_chars: Optional[int] = None,
        request_delay: Optional[float] = None,
        **kwargs,
    ):
        super().__init__(model, **kwargs)
        self.max_chars = max_chars or config.EMBED_MAX_CHARS
        self.request_delay = config.EMBED_REQUEST_DELAY if request_delay is None else request_delay
        self._last_request_at: Optional[float] = None

    @abstractmethod
    async def _embed_one(self, text: str) -> List[float]:
        """Perform the network call for a single text."""

    def _prepare(self, text: Any, position: int) -> str:
        text = _as_text(text, position)
        if len(text) > self.max_chars:
            logger.warning(
                "embedding_text_truncated",
                position=position,
                length=len(text),
                max_chars=self.max_chars,
            )
            self.stats["truncated"] += 1
            text = text[: self.max_chars]
        return text

    async def _throttle(self) -> None:
        """Keep at least ``request_delay`` seconds between requests."""
        if self._last_request_at is not None and self.request_delay > 0:
            remaining = self._last_request_at + self.request_delay - time.monotonic()
            if remaining > 0:
                await asyncio.sleep(remaining)

    async def _request(self, text: str) -> List[float]:
        await self._throttle()
        try:
            self.stats["requests"] += 1
            vector = await self._embed_one(text)
        finally:
            self._last_request_at = time.monotonic()
        return self._observe(vector)

    async def embed(self, texts: Sequence[str]) -> List[List[float]]:
        """Embed texts one by one.

        A failing text is logged and replaced with a zero vector; the rest of
        the batch is unaffected.
        """
        vectors: List[Optional[List[float]]] = []

        for position, raw in enumerate(texts):
            text = self._prepare(raw, position)

            if not text.strip():
                logger.warning("empty_text_skipped", position=position)
                self.stats["empty"] += 1
                vectors.append(None)
                continue

            logger.debug(
                "embedding_item_request",
                position=position + 1,
                total=len(texts),
                preview=text[:50],
            )

            try:
                vectors.append(await self._request(text))
            except Exception as e:
                logger.error(
                    "embedding_item_failed",
                    position=position,
                    total=len(texts),
                    error=str(e),
                    error_type=type(e).__name__,
                )
                self.stats["failures"] += 1
                vectors.append(None)

        # Zero vectors are built last so they match the observed dimension
        return [vector if vector is not None else self.zero_vector() for vector in vectors]

    async def embed_query(self, text: str) -> List[float]:
        return await self._request(self._prepare(_require_text(text), 0))


class GoogleEmbeddingProvider(SequentialEmbeddingProvider):
    """Google Generative Language ``embedContent`` endpoint."""

    provider_name = "google"

    def __init__(self, model: str, **kwargs):
        super().__init__(model.removeprefix("models/"), **kwargs)

    async def _embed_one(self, text: str) -> List[float]:
        async with http_session(self._client, self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/models/{self.model}:embedContent",
                json={
                    "model": f"models/{self.model}",
                    "content": {"parts": [{"text": text}]},
                },
                headers={"x-goog-api-key": self.api_key or ""},
            )
            response.raise_for_status()
            data = response.json()

        return data.get("embedding", {}).get("values", [])


class OllamaEmbeddingProvider(SequentialEmbeddingProvider):
    """Local Ollama ``/api/embeddings`` endpoint."""

    provider_name = "ollama"

    async def _embed_one(self, text: str) -> List[float]:
        async with http_session(self._client, self.timeout) as client:
            response = await client.post(
                f"{self.base_url}/api/embeddings",
                json={"model": self.model, "prompt": text},
            )
            response.raise_for_status()
            data = response.json()

        return data.get("embedding", [])


SEQUENTIAL_PROVIDERS = {
    "google": GoogleEmbeddingProvider,
    "ollama": OllamaEmbeddingProvider,
}


def make_embedding_provider(
    provider: str = None,
    model: str = None,
    *,
    batch_size: int = None,
    max_chars: int = None,
    request_delay: float = None,
    dimension: int = None,
    timeout: float = None,
    client: httpx.AsyncClient = None,
) -> EmbeddingProvider:
    """Build the embedding provider for a configured provider name.

    Args:
        provider: Provider name (default from config)
        model: Embedding model (default: EMBED_MODEL, then the provider default)

    Returns:
        A batch or sequential provider, depending on the backend

    Raises:
        ConfigurationError: If the provider is unknown, its credential is
            missing, or no model can be determined
    """
    spec = get_provider_spec(provider or config.EMBED_PROVIDER)
    api_key = resolve_api_key(spec)

    model = model or config.EMBED_MODEL or spec.default_embed_model
    if not model:
        raise ConfigurationError(
            f"Provider {spec.name!r} has no default embedding model; set EMBED_MODEL"
        )

    common = {"dimension": dimension, "timeout": timeout, "client": client}

    if spec.embedding_profile == BATCH:
        return BatchEmbeddingProvider(
            model,
            api_key=api_key,
            base_url=spec.base_url,
            provider_name=spec.name,
            batch_size=batch_size,
            **common,
        )

    provider_cls = SEQUENTIAL_PROVIDERS[spec.name]
    return provider_cls(
        model,
        api_key=api_key,
        base_url=spec.base_url,
        max_chars=max_chars,
        request_delay=request_delay,
        **common,
    )
