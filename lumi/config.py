"""Application configuration with sensible defaults."""
import os
from pathlib import Path

# Paths
BASE_DIR = Path(__file__).parent.parent
DATA_DIR = Path(os.getenv("DATA_DIR", str(BASE_DIR / "data")))
INDEX_FILE = Path(os.getenv("INDEX_FILE", str(BASE_DIR / "index.json")))
DOCUMENT_EXTENSIONS = (".txt", ".md")

# Providers (see lumi.providers for the catalogue)
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "openai")
EMBED_MODEL = os.getenv("EMBED_MODEL")  # None = provider default
CHAT_PROVIDER = os.getenv("CHAT_PROVIDER", "deepseek")
CHAT_MODEL = os.getenv("CHAT_MODEL")    # None = provider default
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434")

# Chunking ("char" or "token")
CHUNK_MODE = os.getenv("CHUNK_MODE", "char")
CHUNK_SIZE = int(os.getenv("CHUNK_SIZE", "1500"))                # characters
CHUNK_OVERLAP = int(os.getenv("CHUNK_OVERLAP", "200"))
TOKEN_CHUNK_SIZE = int(os.getenv("TOKEN_CHUNK_SIZE", "750"))     # tokens
TOKEN_CHUNK_OVERLAP = int(os.getenv("TOKEN_CHUNK_OVERLAP", "100"))
TOKEN_ENCODING = os.getenv("TOKEN_ENCODING", "cl100k_base")

# Embedding
EMBED_BATCH_SIZE = int(os.getenv("EMBED_BATCH_SIZE", "96"))
EMBED_MAX_CHARS = int(os.getenv("EMBED_MAX_CHARS", "1000"))      # sequential providers only
EMBED_REQUEST_DELAY = float(os.getenv("EMBED_REQUEST_DELAY", "0.2"))
EMBED_DEFAULT_DIMENSION = int(os.getenv("EMBED_DEFAULT_DIMENSION", "768"))
EMBED_MAX_RETRIES = int(os.getenv("EMBED_MAX_RETRIES", "3"))

# Retrieval
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "6"))

# HTTP
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "60.0"))
HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", "3000"))
MAX_MESSAGE_CHARS = int(os.getenv("MAX_MESSAGE_CHARS", "2000"))

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "json")  # "json" or "console"
