"""Main Quart application for the LUMI knowledge assistant."""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, ValidationError
from quart import Quart, jsonify, make_response, request
import structlog

from lumi import config
from lumi.assistant import Assistant, load_assistant
from lumi.logging_config import configure_logging
from lumi.rag.models import ScoredResult

configure_logging()

logger = structlog.get_logger()

app = Quart(__name__)

# Built once before serving; the index inside is shared read-only
_assistant: Optional[Assistant] = None


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str = Field(max_length=config.MAX_MESSAGE_CHARS)


class ChatRequest(BaseModel):
    """Body of the chat endpoints: the conversation, oldest message first."""

    messages: List[ChatMessage] = Field(min_length=1)


async def get_assistant() -> Assistant:
    """Get or create the singleton assistant (builds the index if missing)."""
    global _assistant
    if _assistant is None:
        _assistant = await load_assistant()
    return _assistant


def _source_payload(result: ScoredResult) -> dict:
    text = result.meta.text
    return {
        "doc_id": result.meta.doc_id,
        "content_preview": text[:200] + "..." if len(text) > 200 else text,
        "score": round(result.score, 4),
    }


def _sse(data: str) -> bytes:
    """Encode one server-sent event; multi-line data becomes several ``data:`` lines."""
    return ("".join(f"data: {line}\n" for line in data.split("\n")) + "\n").encode("utf-8")


async def _parse_chat_request():
    """Return ``(history, None)`` or ``(None, error_response)``."""
    data = await request.get_json(silent=True)
    try:
        body = ChatRequest.model_validate(data or {})
    except ValidationError as e:
        details = [f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()]
        logger.warning("invalid_chat_request", errors=details)
        return None, (jsonify({"error": "Invalid request body", "details": details}), 400)

    history = [message.model_dump() for message in body.messages]
    if not any(m["role"] == "user" and m["content"].strip() for m in history):
        return None, (jsonify({"error": "A non-empty user message is required"}), 400)
    return history, None


@app.before_serving
async def startup():
    """Build or load the index before accepting requests."""
    await get_assistant()


@app.route("/api/chat", methods=["POST"])
async def chat():
    """Answer a conversation with retrieved context.

    Expects JSON body:
    {
        "messages": [{"role": "user", "content": "..."}, ...]
    }

    Returns JSON:
    {
        "response": "assistant response text",
        "model": "model_name",
        "sources": [...]
    }
    """
    history, error = await _parse_chat_request()
    if error:
        return error

    try:
        assistant = await get_assistant()

        logger.info("chat_request_received", message_count=len(history))
        reply = await assistant.answer(history)

        logger.info(
            "chat_response_sent",
            response_length=len(reply.content),
            used_rag=reply.grounded,
        )

        return jsonify({
            "response": reply.content,
            "model": assistant.chat_client.model,
            "sources": [_source_payload(result) for result in reply.sources],
        })

    except Exception as e:
        logger.error("chat_endpoint_error", error=str(e), error_type=type(e).__name__)
        return jsonify({
            "error": "An error occurred processing your request. Please try again."
        }), 500


@app.route("/api/lumi-stream", methods=["POST"])
async def lumi_stream():
    """Stream the answer as server-sent events.

    Each fragment is sent as ``data: <text>``; the stream ends with
    ``data: [END]``, or ``data: [ERROR]`` if generation fails mid-way.
    """
    history, error = await _parse_chat_request()
    if error:
        return error

    assistant = await get_assistant()

    async def events():
        try:
            async for token in assistant.stream_answer(history):
                yield _sse(token)
            yield _sse("[END]")
        except Exception as e:
            logger.error("streaming_error", error=str(e), error_type=type(e).__name__)
            yield _sse("[ERROR]")

    response = await make_response(
        events(),
        200,
        {
            "Content-Type": "text/event-stream",
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
        },
    )
    response.timeout = None
    return response


@app.route("/health/ready")
async def health_ready():
    """Readiness probe - check the index is loaded."""
    if _assistant is None:
        return jsonify({"status": "unhealthy", "error": "Index not loaded"}), 503

    index = _assistant.retriever.index
    return jsonify({
        "status": "healthy",
        "chunk_count": len(index),
        "dimension": index.dimension,
        "embedding_model": _assistant.retriever.provider.model,
        "chat_model": _assistant.chat_client.model,
    }), 200


@app.route("/health/live")
async def health_live():
    """Liveness probe - check if app is running."""
    return jsonify({"status": "alive"}), 200


@app.errorhandler(404)
async def not_found(error):
    """Handle 404 errors."""
    return jsonify({"error": "Not found"}), 404


@app.errorhandler(500)
async def internal_error(error):
    """Handle 500 errors."""
    logger.error("internal_server_error", error=str(error))
    return jsonify({"error": "Internal server error"}), 500


if __name__ == "__main__":
    # For development - use hypercorn in production
    app.run(host=config.HOST, port=config.PORT, debug=True)
