#!/usr/bin/env python
"""Rebuild the LUMI vector index from the documents folder.

Usage:
    python scripts/reindex.py                          # Rebuild with config defaults
    python scripts/reindex.py --provider google        # Use another embedding provider
    python scripts/reindex.py --chunk-mode token       # Token windows instead of characters
"""
import argparse
import asyncio
import sys
from pathlib import Path
from datetime import datetime

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from lumi import config
from lumi.errors import ConfigurationError, EmptyCorpusError
from lumi.logging_config import configure_logging
from lumi.rag.chunker import make_chunker
from lumi.rag.embedder import make_embedding_provider
from lumi.rag.ingest import build_index
import structlog

logger = structlog.get_logger()


SUMMARY_ROWS = (
    ("Documents", "documents"),
    ("Chunks indexed", "chunks_created"),
    ("Empty chunks skipped", "chunks_skipped"),
    ("Embeddings generated", "embeddings_generated"),
    ("Embedding failures", "embedding_failures"),
)


class ProgressReporter:
    """Chunk progress bar and end-of-build summary."""

    BAR_WIDTH = 40

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.started = None

    @staticmethod
    def banner(title: str):
        rule = "=" * 60
        print(f"\n{rule}\n  {title}\n{rule}\n")

    def start(self, message: str):
        self.started = datetime.now()
        self.banner(message)

    def update(self, current: int, total: int):
        fraction = current / total if total else 0.0
        filled = int(self.BAR_WIDTH * fraction)
        bar = "█" * filled + "░" * (self.BAR_WIDTH - filled)
        print(f"\r  [{bar}] {fraction:6.1%} ({current}/{total} chunks)", end="", flush=True)
        if self.verbose:
            print()

    def finish(self, stats: dict, index_path: Path):
        elapsed = (datetime.now() - self.started).total_seconds()
        print()
        self.banner("Index rebuilt")
        for label, key in SUMMARY_ROWS:
            print(f"  {label + ':':<24}{stats[key]}")
        print(f"  {'Elapsed:':<24}{elapsed:.1f}s")
        if stats["chunks_created"] and elapsed > 0:
            print(f"  {'Rate:':<24}{stats['chunks_created'] / elapsed:.1f} chunks/sec")

        if stats["embedding_failures"]:
            print(f"\n⚠️  {stats['embedding_failures']} chunk(s) were stored as zero vectors; see the logs.")
        print(f"\n✅ Index written to {index_path}\n")


async def main():
    """Parse arguments, build the index, print a summary."""
    parser = argparse.ArgumentParser(
        description="Rebuild the LUMI vector index",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/reindex.py
  python scripts/reindex.py --provider google --model text-embedding-004
  python scripts/reindex.py --chunk-mode token --chunk-size 750 --chunk-overlap 100
        """,
    )

    parser.add_argument("--data-dir", type=Path, default=config.DATA_DIR,
                        help=f"Documents directory (default: {config.DATA_DIR})")
    parser.add_argument("--index-file", type=Path, default=config.INDEX_FILE,
                        help=f"Index file to write (default: {config.INDEX_FILE})")
    parser.add_argument("--provider", default=config.EMBED_PROVIDER,
                        help=f"Embedding provider (default: {config.EMBED_PROVIDER})")
    parser.add_argument("--model", default=None, help="Embedding model (default: provider default)")
    parser.add_argument("--chunk-mode", choices=["char", "token"], default=config.CHUNK_MODE)
    parser.add_argument("--chunk-size", type=int, default=None)
    parser.add_argument("--chunk-overlap", type=int, default=None)
    parser.add_argument("--force", action="store_true",
                        help="Don't pause before replacing an existing index")
    parser.add_argument("--verbose", "-v", action="store_true", help="Show verbose progress output")

    args = parser.parse_args()

    configure_logging(level="DEBUG" if args.verbose else "WARNING", fmt="console")
    progress = ProgressReporter(verbose=args.verbose)

    try:
        provider = make_embedding_provider(args.provider, args.model)
        chunker = make_chunker(args.chunk_mode, args.chunk_size, args.chunk_overlap)

        print("\n📋 Build settings:")
        print(f"   Data directory:   {args.data_dir}")
        print(f"   Index file:       {args.index_file}")
        print(f"   Provider:         {provider.provider_name} ({provider.profile})")
        print(f"   Embedding model:  {provider.model}")
        print(f"   Chunking:         {chunker.mode}, size {chunker.chunk_size}, overlap {chunker.chunk_overlap}")

        if args.index_file.exists() and not args.force:
            print("\n⚠️  An index already exists and will be replaced once the build succeeds.")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)

        progress.start("Rebuilding index")

        builder = await build_index(
            data_dir=args.data_dir,
            index_path=args.index_file,
            provider=provider,
            chunker=chunker,
            progress_callback=progress.update,
        )

        progress.finish(builder.stats, args.index_file)

    except (ConfigurationError, EmptyCorpusError, FileNotFoundError) as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except Exception as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("reindex_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n\n⚠️  Indexing cancelled by user. The previous index is unchanged.\n")
        sys.exit(1)
