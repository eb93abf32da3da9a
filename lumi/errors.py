"""Exception types raised by the indexing and retrieval pipeline.

Each error also derives from the builtin exception that plain code would raise
in the same situation, so ``except FileNotFoundError`` and friends keep working.
"""


class LumiError(Exception):
    """Base class for all LUMI errors."""


class ConfigurationError(LumiError, ValueError):
    """Unknown provider, missing credential or invalid setting. Never retried."""


class EmptyCorpusError(LumiError, RuntimeError):
    """No documents were found, or they produced no chunks."""


class IndexNotFoundError(LumiError, FileNotFoundError):
    """The persisted index does not exist."""


class IndexFormatError(LumiError, ValueError):
    """The persisted index is malformed or misaligned."""


class DimensionMismatchError(LumiError, ValueError):
    """Query and index vectors have different lengths."""


class EmbeddingModelMismatchError(LumiError, ValueError):
    """The index was built with a different embedding model than the query uses."""
