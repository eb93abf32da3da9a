"""Retrieval-grounded chat on top of the retriever and the chat client.

The assistant answers only from retrieved context. When retrieval yields
nothing or the model call fails, it replies with ``NO_INFORMATION_ANSWER``.
"""
from dataclasses import dataclass, field
from typing import AsyncIterator, Dict, List, Optional, Sequence

import structlog

from lumi.llm_client import ChatClient
from lumi.rag.embedder import make_embedding_provider
from lumi.rag.models import ScoredResult
from lumi.rag.retriever import Retriever, format_context
from lumi.rag.store import ensure_index

logger = structlog.get_logger()

NO_INFORMATION_ANSWER = "I don't have this information in my knowledge base."

SYSTEM_PROMPT = (
    "You are LUMI, a knowledgeable and caring assistant specialised in energy. "
    "Answer ONLY from the information below. If the answer is not there, reply: "
    f"\"{NO_INFORMATION_ANSWER}\" "
    "Keep answers concise (200 words at most) and cite [Source N] when relevant.\n\n"
)


@dataclass
class AssistantReply:
    """Answer text plus the chunks it was grounded on."""

    content: str
    sources: List[ScoredResult] = field(default_factory=list)

    @property
    def grounded(self) -> bool:
        return bool(self.sources)


def last_user_message(history: Sequence[Dict[str, str]]) -> str:
    """Content of the most recent user turn, or an empty string."""
    for message in reversed(history):
        if message.get("role") == "user":
            return message.get("content", "")
    return ""


def build_messages(context: str, history: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    """System prompt with the retrieved context, followed by the conversation."""
    return [{"role": "system", "content": SYSTEM_PROMPT + context}] + [
        {"role": message["role"], "content": message["content"]} for message in history
    ]


class Assistant:
    """Answers conversations using retrieved context."""

    def __init__(self, retriever: Retriever, chat_client: ChatClient):
        self.retriever = retriever
        self.chat_client = chat_client

    async def _retrieve(self, history: Sequence[Dict[str, str]]) -> List[ScoredResult]:
        query = last_user_message(history)
        try:
            return await self.retriever.retrieve(query)
        except Exception as e:
            logger.error(
                "rag_retrieval_failed",
                error=str(e),
                error_type=type(e).__name__,
            )
            return []

    async def answer(self, history: Sequence[Dict[str, str]]) -> AssistantReply:
        """Answer the latest user message in ``history``."""
        results = await self._retrieve(history)
        if not results:
            logger.info("no_relevant_context_found")
            return AssistantReply(content=NO_INFORMATION_ANSWER)

        messages = build_messages(format_context(results), history)
        try:
            content = await self.chat_client.chat(messages)
        except Exception as e:
            logger.error("generation_failed", error=str(e), error_type=type(e).__name__)
            return AssistantReply(content=NO_INFORMATION_ANSWER)

        return AssistantReply(content=content or NO_INFORMATION_ANSWER, sources=results)

    async def stream_answer(
        self, history: Sequence[Dict[str, str]], sources: Optional[List[ScoredResult]] = None
    ) -> AsyncIterator[str]:
        """Stream the answer to the latest user message.

        A failure before the first token yields ``NO_INFORMATION_ANSWER``; a
        failure mid-stream propagates to the caller.

        Args:
            history: Conversation so far
            sources: Optional list the retrieved results are appended to
        """
        results = await self._retrieve(history)
        if sources is not None:
            sources.extend(results)

        if not results:
            logger.info("no_relevant_context_found")
            yield NO_INFORMATION_ANSWER
            return

        messages = build_messages(format_context(results), history)
        started = False
        try:
            async for token in self.chat_client.stream_chat(messages):
                started = True
                yield token
        except Exception as e:
            logger.error(
                "generation_failed",
                error=str(e),
                error_type=type(e).__name__,
                streamed=started,
            )
            if started:
                raise
            yield NO_INFORMATION_ANSWER


async def load_assistant(
    data_dir=None,
    index_path=None,
    embed_provider: str = None,
    embed_model: str = None,
    chat_provider: str = None,
    chat_model: str = None,
    top_k: int = None,
) -> Assistant:
    """Validate configuration, ensure the index exists and wire an Assistant.

    Configuration errors surface before any document is read.
    """
    provider = make_embedding_provider(embed_provider, embed_model)
    chat_client = ChatClient(chat_provider, chat_model)
    index = await ensure_index(data_dir, index_path, provider)
    return Assistant(Retriever(index, provider, top_k=top_k), chat_client)
