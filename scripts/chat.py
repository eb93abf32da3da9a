#!/usr/bin/env python
"""Interactive terminal chat with the LUMI knowledge assistant.

Usage:
    python scripts/chat.py                                   # Chat, building the index if missing
    python scripts/chat.py --reindex                         # Rebuild the index first
    python scripts/chat.py --embed-provider openai --chat-provider deepseek
"""
import argparse
import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from lumi import config
from lumi.assistant import load_assistant
from lumi.errors import LumiError
from lumi.logging_config import configure_logging
from lumi.rag.embedder import make_embedding_provider
from lumi.rag.ingest import build_index

CYAN = "\033[36m"
RESET = "\033[0m"
EXIT_COMMANDS = {"exit", "quit", "q"}


async def main():
    parser = argparse.ArgumentParser(description="Chat with the LUMI knowledge assistant")
    parser.add_argument("--data-dir", type=Path, default=config.DATA_DIR)
    parser.add_argument("--index-file", type=Path, default=config.INDEX_FILE)
    parser.add_argument("--reindex", action="store_true", help="Rebuild the index before chatting")
    parser.add_argument("--embed-provider", default=config.EMBED_PROVIDER)
    parser.add_argument("--embed-model", default=None)
    parser.add_argument("--chat-provider", default=config.CHAT_PROVIDER)
    parser.add_argument("--chat-model", default=None)
    parser.add_argument("--top-k", type=int, default=config.RETRIEVAL_TOP_K)
    args = parser.parse_args()

    configure_logging(level="WARNING", fmt="console")

    try:
        if args.reindex:
            await build_index(
                data_dir=args.data_dir,
                index_path=args.index_file,
                provider=make_embedding_provider(args.embed_provider, args.embed_model),
            )
            print(f"[OK] Index saved to {args.index_file}")

        assistant = await load_assistant(
            data_dir=args.data_dir,
            index_path=args.index_file,
            embed_provider=args.embed_provider,
            embed_model=args.embed_model,
            chat_provider=args.chat_provider,
            chat_model=args.chat_model,
            top_k=args.top_k,
        )
    except (LumiError, FileNotFoundError) as e:
        print(f"[ERR] {e}", file=sys.stderr)
        sys.exit(1)

    print(f"{CYAN}LUMI is ready. Ask me anything! (exit to quit){RESET}")

    history = []
    while True:
        try:
            line = await asyncio.to_thread(input, "[You] > ")
        except EOFError:
            print()
            break

        question = line.strip()
        if not question:
            continue
        if question.lower() in EXIT_COMMANDS:
            break

        history.append({"role": "user", "content": question})
        reply = await assistant.answer(history)
        history.append({"role": "assistant", "content": reply.content})
        print(reply.content)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print()
