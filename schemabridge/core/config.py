"""
Engine configuration - environment driven, single point of control.
Values are read once at import; getters re-read the environment for the
settings tests and operators toggle at runtime.
"""

import os
from pathlib import Path

# Version string
VERSION = "1.0.0"

# Knowledge base storage
DB_PATH = os.getenv("DB_PATH", "./data/exemplars.db")
DB_TIMEOUT_SEC = float(os.getenv("DB_TIMEOUT_SEC", "5"))

# Debug flag
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Backend server transport
SERVER_BASE_URL = os.getenv("SERVER_BASE_URL", "http://localhost:9000")
SERVER_FORWARD_PATH = os.getenv("SERVER_FORWARD_PATH", "/")
SERVER_HEALTH_PATH = os.getenv("SERVER_HEALTH_PATH", "/health")
SERVER_TIMEOUT_SEC = float(os.getenv("SERVER_TIMEOUT_SEC", "5"))

# Health monitor
HEALTH_PROBE_INTERVAL_SEC = float(os.getenv("HEALTH_PROBE_INTERVAL_SEC", "15"))
HEALTH_FAILURE_THRESHOLD = int(os.getenv("HEALTH_FAILURE_THRESHOLD", "3"))
DUMMY_MODE = os.getenv("DUMMY_MODE", "false").lower() == "true"

# Schema descriptors and static bridges
CONSUMER_SCHEMA_PATH = os.getenv("CONSUMER_SCHEMA_PATH", "./schemas/consumer.json")
SERVER_SCHEMA_PATH = os.getenv("SERVER_SCHEMA_PATH", "./schemas/server.json")
BRIDGE_FILE_PATH = os.getenv("BRIDGE_FILE_PATH", "")
DUMMY_TEMPLATES_PATH = os.getenv("DUMMY_TEMPLATES_PATH", "")

# Generation capability
GENERATION_PROVIDER = os.getenv("GENERATION_PROVIDER", "mock")  # mock|ollama
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1:8b")
GENERATION_TIMEOUT_SEC = float(os.getenv("GENERATION_TIMEOUT_SEC", "20"))
GENERATION_WORKERS = int(os.getenv("GENERATION_WORKERS", "4"))

# Embedding capability and vector index
EMBED_PROVIDER = os.getenv("EMBED_PROVIDER", "hash")  # hash|sentence
EMBED_MODEL_NAME = os.getenv("EMBED_MODEL_NAME", "all-MiniLM-L6-v2")
EMBED_DIMENSION = int(os.getenv("EMBED_DIMENSION", "384"))
EMBEDDING_TIMEOUT_SEC = float(os.getenv("EMBEDDING_TIMEOUT_SEC", "5"))
VECTOR_PROVIDER = os.getenv("VECTOR_PROVIDER", "memory")  # memory|faiss

# Retrieval and confidence bands
RETRIEVAL_TOP_K = int(os.getenv("RETRIEVAL_TOP_K", "5"))
RETRIEVAL_MAX_DISTANCE = float(os.getenv("RETRIEVAL_MAX_DISTANCE", "0.25"))
CONFIDENCE_HIGH_DISTANCE = float(os.getenv("CONFIDENCE_HIGH_DISTANCE", "0.05"))
CONFIDENCE_MEDIUM_DISTANCE = float(os.getenv("CONFIDENCE_MEDIUM_DISTANCE", "0.15"))
CONFIDENCE_MATCH_BOOST = int(os.getenv("CONFIDENCE_MATCH_BOOST", "3"))

# Response cache
CACHE_TTL_SEC = float(os.getenv("CACHE_TTL_SEC", "300"))
CACHE_MAX_ENTRIES = int(os.getenv("CACHE_MAX_ENTRIES", "1024"))
CACHE_SHARDS = int(os.getenv("CACHE_SHARDS", "8"))

# Validation: strict mode also rejects fields the target schema does not declare
SCHEMA_VALIDATION_STRICT = os.getenv("SCHEMA_VALIDATION_STRICT", "false").lower() == "true"

# Translation unit memoization
TRANSLATION_PROMOTION_THRESHOLD = int(os.getenv("TRANSLATION_PROMOTION_THRESHOLD", "1"))

# Reconciliation after recovery (replays requests against the server)
RECONCILE_ENABLED = os.getenv("RECONCILE_ENABLED", "false").lower() == "true"
RECONCILE_MAX_REPLAY = int(os.getenv("RECONCILE_MAX_REPLAY", "50"))

# Log access and redaction
LOGS_ADMIN_TOKEN = os.getenv("LOGS_ADMIN_TOKEN")  # Required for /logs
REDACTION_ENABLED = os.getenv("REDACTION_ENABLED", "true").lower() == "true"
REDACT_FIELDS = [f.strip() for f in os.getenv("REDACT_FIELDS", "password,secret,token,apiKey,ssn").split(",") if f.strip()]

PROCESSED_BY = os.getenv("PROCESSED_BY", f"schemabridge/{VERSION}")

# Browser consumers allowed to call the API
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",") if o.strip()]


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def is_dummy_mode_forced():
    """Check if dummy mode is forced by configuration."""
    return os.getenv("DUMMY_MODE", "false").lower() == "true"


def is_reconcile_enabled():
    """Check if replay-and-compare reconciliation is enabled."""
    return os.getenv("RECONCILE_ENABLED", "false").lower() == "true"


def get_logs_admin_token():
    """Get the bearer token guarding /logs (None when unset)."""
    return os.getenv("LOGS_ADMIN_TOKEN")


def ensure_db_directory(db_path: str = None):
    """Ensure the database directory exists."""
    Path(db_path or DB_PATH).parent.mkdir(parents=True, exist_ok=True)


def get_vector_store(dimension: int = None):
    """Get configured vector store implementation."""
    dimension = dimension or EMBED_DIMENSION

    if VECTOR_PROVIDER == "faiss":
        from ..vector.faiss_store import FaissVectorStore
        return FaissVectorStore(dimension=dimension)

    from ..vector.index import SimpleInMemoryVectorStore
    return SimpleInMemoryVectorStore()


def get_embedding_provider():
    """Get configured embedding provider implementation."""
    if EMBED_PROVIDER == "sentence":
        from ..vector.embeddings import SentenceTransformerEmbedding
        return SentenceTransformerEmbedding(EMBED_MODEL_NAME)

    from ..vector.embeddings import DeterministicHashEmbedding
    return DeterministicHashEmbedding(dimension=EMBED_DIMENSION)


def get_generation_provider():
    """Get configured generation capability (transform + generate)."""
    if GENERATION_PROVIDER == "ollama":
        from ..generation.ollama_provider import OllamaGenerationProvider
        return OllamaGenerationProvider(model_name=OLLAMA_MODEL)

    from ..generation.mock_provider import MockGenerationProvider
    return MockGenerationProvider()


def validate_config():
    """Validate engine configuration and return any issues."""
    issues = []

    if GENERATION_PROVIDER not in ["mock", "ollama"]:
        issues.append(f"Invalid GENERATION_PROVIDER: {GENERATION_PROVIDER}")

    if EMBED_PROVIDER not in ["hash", "sentence"]:
        issues.append(f"Invalid EMBED_PROVIDER: {EMBED_PROVIDER}")

    if VECTOR_PROVIDER not in ["memory", "faiss"]:
        issues.append(f"Invalid VECTOR_PROVIDER: {VECTOR_PROVIDER}")

    if HEALTH_PROBE_INTERVAL_SEC <= 0:
        issues.append("HEALTH_PROBE_INTERVAL_SEC must be > 0")

    if HEALTH_FAILURE_THRESHOLD < 1:
        issues.append("HEALTH_FAILURE_THRESHOLD must be >= 1")

    if TRANSLATION_PROMOTION_THRESHOLD < 1:
        issues.append("TRANSLATION_PROMOTION_THRESHOLD must be >= 1")

    if not 0 <= CONFIDENCE_HIGH_DISTANCE <= CONFIDENCE_MEDIUM_DISTANCE:
        issues.append("Confidence thresholds must satisfy 0 <= HIGH <= MEDIUM")

    if CACHE_MAX_ENTRIES < 1:
        issues.append("CACHE_MAX_ENTRIES must be >= 1")

    return issues
