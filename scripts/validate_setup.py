#!/usr/bin/env python
"""Validate setup - check dependencies, provider credentials, documents and index.

Exits with status 1 if any check fails.
"""
import importlib
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

REQUIRED_MODULES = {
    "quart": "Quart web framework",
    "httpx": "HTTP client",
    "numpy": "Vector math",
    "tiktoken": "Tokenizer (token chunking)",
    "tenacity": "Retry/backoff",
    "pydantic": "Data validation",
    "structlog": "Structured logging",
}


class Report:
    """Collects check outcomes and prints them with terminal colors."""

    COLORS = {"ok": "\033[92m", "fail": "\033[91m", "warn": "\033[93m", "info": "\033[94m"}
    SYMBOLS = {"ok": "✓", "fail": "✗", "warn": "⚠", "info": "ℹ"}
    RESET = "\033[0m"

    def __init__(self):
        self.errors = []
        self.warnings = []

    def _line(self, kind: str, msg: str):
        print(f"{self.COLORS[kind]}{self.SYMBOLS[kind]}{self.RESET} {msg}")

    def section(self, title: str):
        rule = "=" * 60
        print(f"\n{self.COLORS['info']}{rule}\n{title:^60}\n{rule}{self.RESET}\n")

    def ok(self, msg: str):
        self._line("ok", msg)

    def info(self, msg: str):
        self._line("info", msg)

    def fail(self, msg: str, summary: str):
        self._line("fail", msg)
        self.errors.append(summary)

    def warn(self, msg: str, summary: str):
        self._line("warn", msg)
        self.warnings.append(summary)

    def summarize(self):
        self.section("Summary")
        if self.errors:
            self._line("fail", f"{len(self.errors)} check(s) failed:")
            for error in self.errors:
                print(f"  - {error}")
        else:
            self.ok("Setup looks good")
        if self.warnings:
            self._line("warn", f"{len(self.warnings)} warning(s):")
            for warning in self.warnings:
                print(f"  - {warning}")
        print()


def check_dependencies(report: Report) -> bool:
    report.section("Dependencies")
    report.info(f"Python {sys.version.split()[0]}")
    if sys.version_info < (3, 10):
        report.fail("Python 3.10 or newer is required", "Python version too old")

    missing = False
    for module_name, description in REQUIRED_MODULES.items():
        try:
            importlib.import_module(module_name)
        except ImportError as e:
            report.fail(f"{description} ({module_name}): {e}", f"Missing: {module_name}")
            missing = True
        else:
            report.ok(f"{description} ({module_name})")
    return not missing


def check_providers(report: Report):
    """Return the configured embedding provider, or None if it is misconfigured."""
    from lumi import config
    from lumi.errors import ConfigurationError
    from lumi.llm_client import ChatClient
    from lumi.rag.embedder import make_embedding_provider

    report.section("Providers")
    report.info(f"Chunking mode: {config.CHUNK_MODE}")

    provider = None
    try:
        provider = make_embedding_provider()
    except ConfigurationError as e:
        report.fail(f"Embedding provider {config.EMBED_PROVIDER}: {e}", "Embedding provider misconfigured")
    else:
        report.ok(f"Embeddings: {provider.provider_name}/{provider.model} ({provider.profile})")

    try:
        chat_client = ChatClient()
    except ConfigurationError as e:
        report.fail(f"Chat provider {config.CHAT_PROVIDER}: {e}", "Chat provider misconfigured")
    else:
        report.ok(f"Chat: {chat_client.provider}/{chat_client.model}")

    return provider


def check_documents(report: Report):
    from lumi import config
    from lumi.rag.ingest import load_documents

    report.section("Documents")
    try:
        documents = load_documents(config.DATA_DIR)
    except FileNotFoundError as e:
        report.fail(str(e), "Data directory missing")
        return

    if not documents:
        report.fail(f"No .txt/.md documents under {config.DATA_DIR}", "No documents")
        return

    total_chars = sum(len(doc.text) for doc in documents)
    report.ok(f"{len(documents)} document(s), {total_chars} characters in {config.DATA_DIR}")


def check_index(report: Report, provider):
    from lumi import config
    from lumi.errors import IndexFormatError
    from lumi.rag.store import load_index

    report.section("Index")
    try:
        index = load_index(config.INDEX_FILE)
    except FileNotFoundError:
        report.warn(f"No index at {config.INDEX_FILE}; it is built on first start", "Index not built yet")
        return
    except IndexFormatError as e:
        report.fail(f"Index unreadable: {e}", "Index malformed")
        return

    report.ok(f"{len(index)} chunks, dimension {index.dimension}")
    manifest = index.manifest
    if manifest is None:
        report.warn("No manifest next to the index", "Embedding model of the index unknown")
        return

    report.info(f"Built {manifest.built_at:%Y-%m-%d %H:%M} with {manifest.embedding_provider}/{manifest.embedding_model}")
    if provider is not None and manifest.embedding_model != provider.model:
        report.fail(
            f"Index uses {manifest.embedding_model}, configuration uses {provider.model}",
            "Index built with another embedding model (run scripts/reindex.py --force)",
        )


def main() -> int:
    report = Report()
    report.section("LUMI Knowledge Assistant - Setup Validation")

    if check_dependencies(report):
        provider = check_providers(report)
        check_documents(report)
        check_index(report, provider)

    report.summarize()
    return 1 if report.errors else 0


if __name__ == "__main__":
    sys.exit(main())
