"""Catalogue of supported model providers.

Embedding and chat clients both resolve their endpoint and credential here, so a
provider name is validated in exactly one place.
"""
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Dict, Optional

import httpx
import structlog

from lumi import config
from lumi.errors import ConfigurationError

logger = structlog.get_logger()

# Embedding profiles
BATCH = "batch"
SEQUENTIAL = "sequential"

# Chat wire formats
OPENAI_WIRE = "openai"
OLLAMA_WIRE = "ollama"


@dataclass(frozen=True)
class ProviderSpec:
    """Static description of a provider endpoint."""

    name: str
    base_url: str
    api_key_env: Optional[str]
    embedding_profile: str
    chat_wire: Optional[str]
    default_embed_model: Optional[str]
    default_chat_model: Optional[str]


PROVIDERS: Dict[str, ProviderSpec] = {
    "openai": ProviderSpec(
        name="openai",
        base_url="https://api.openai.com/v1",
        api_key_env="OPENAI_API_KEY",
        embedding_profile=BATCH,
        chat_wire=OPENAI_WIRE,
        default_embed_model="text-embedding-3-small",
        default_chat_model="gpt-4o-mini",
    ),
    "openrouter": ProviderSpec(
        name="openrouter",
        base_url="https://openrouter.ai/api/v1",
        api_key_env="OPENROUTER_API_KEY",
        embedding_profile=BATCH,
        chat_wire=OPENAI_WIRE,
        default_embed_model="openai/text-embedding-3-small",
        default_chat_model="openai/gpt-4o-mini",
    ),
    "deepseek": ProviderSpec(
        name="deepseek",
        base_url="https://api.deepseek.com",
        api_key_env="DEEPSEEK_API_KEY",
        embedding_profile=BATCH,
        chat_wire=OPENAI_WIRE,
        default_embed_model=None,
        default_chat_model="deepseek-chat",
    ),
    "google": ProviderSpec(
        name="google",
        base_url="https://generativelanguage.googleapis.com/v1beta",
        api_key_env="GOOGLE_API_KEY",
        embedding_profile=SEQUENTIAL,
        chat_wire=None,
        default_embed_model="text-embedding-004",
        default_chat_model=None,
    ),
    "ollama": ProviderSpec(
        name="ollama",
        base_url=config.OLLAMA_BASE_URL,
        api_key_env=None,
        embedding_profile=SEQUENTIAL,
        chat_wire=OLLAMA_WIRE,
        default_embed_model="mxbai-embed-large:latest",
        default_chat_model="gemma3:12b",
    ),
}


def get_provider_spec(name: str) -> ProviderSpec:
    """Look up a provider by (case-insensitive) name.

    Raises:
        ConfigurationError: If the provider is unknown
    """
    spec = PROVIDERS.get((name or "").strip().lower())
    if spec is None:
        known = ", ".join(sorted(PROVIDERS))
        raise ConfigurationError(f"Unknown provider {name!r} (expected one of: {known})")
    return spec


def resolve_api_key(spec: ProviderSpec) -> Optional[str]:
    """Read the provider credential from the environment.

    Raises:
        ConfigurationError: If the provider needs a key and none is set
    """
    if spec.api_key_env is None:
        return None

    api_key = os.getenv(spec.api_key_env)
    if not api_key:
        logger.error("provider_credential_missing", provider=spec.name, env_var=spec.api_key_env)
        raise ConfigurationError(f"{spec.api_key_env} is not set (required by provider {spec.name!r})")
    return api_key


@asynccontextmanager
async def http_session(
    client: Optional[httpx.AsyncClient], timeout: float
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield the injected client, or a short-lived one closed on exit."""
    if client is not None:
        yield client
        return

    async with httpx.AsyncClient(timeout=timeout) as session:
        yield session
