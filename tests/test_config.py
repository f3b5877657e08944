"""
Configuration getters, provider wiring and validation.
"""

from schemabridge.core import config
from schemabridge.generation.mock_provider import MockGenerationProvider
from schemabridge.vector.embeddings import DeterministicHashEmbedding
from schemabridge.vector.index import SimpleInMemoryVectorStore


def test_runtime_getters_read_environment(monkeypatch):
    monkeypatch.setenv("DUMMY_MODE", "true")
    monkeypatch.setenv("RECONCILE_ENABLED", "TRUE")
    monkeypatch.setenv("LOGS_ADMIN_TOKEN", "abc")
    monkeypatch.setenv("DEBUG", "false")

    assert config.is_dummy_mode_forced() is True
    assert config.is_reconcile_enabled() is True
    assert config.get_logs_admin_token() == "abc"
    assert config.debug_enabled() is False


def test_defaults_wire_offline_capable_providers(monkeypatch):
    monkeypatch.setattr(config, "GENERATION_PROVIDER", "mock")
    monkeypatch.setattr(config, "EMBED_PROVIDER", "hash")
    monkeypatch.setattr(config, "VECTOR_PROVIDER", "memory")

    assert isinstance(config.get_generation_provider(), MockGenerationProvider)
    assert isinstance(config.get_embedding_provider(), DeterministicHashEmbedding)
    assert isinstance(config.get_vector_store(16), SimpleInMemoryVectorStore)


def test_faiss_store_selected(monkeypatch):
    from schemabridge.vector.faiss_store import FaissVectorStore
    monkeypatch.setattr(config, "VECTOR_PROVIDER", "faiss")

    store = config.get_vector_store(16)

    assert isinstance(store, FaissVectorStore)
    assert store.dimension == 16


def test_validate_config_defaults_clean(monkeypatch):
    monkeypatch.setattr(config, "GENERATION_PROVIDER", "mock")
    monkeypatch.setattr(config, "EMBED_PROVIDER", "hash")
    monkeypatch.setattr(config, "VECTOR_PROVIDER", "memory")

    assert config.validate_config() == []


def test_validate_config_reports_issues(monkeypatch):
    monkeypatch.setattr(config, "GENERATION_PROVIDER", "gpt")
    monkeypatch.setattr(config, "HEALTH_FAILURE_THRESHOLD", 0)
    monkeypatch.setattr(config, "CONFIDENCE_HIGH_DISTANCE", 0.5)
    monkeypatch.setattr(config, "CONFIDENCE_MEDIUM_DISTANCE", 0.1)

    issues = config.validate_config()

    assert "Invalid GENERATION_PROVIDER: gpt" in issues
    assert "HEALTH_FAILURE_THRESHOLD must be >= 1" in issues
    assert "Confidence thresholds must satisfy 0 <= HIGH <= MEDIUM" in issues


def test_ensure_db_directory(tmp_path):
    db_path = tmp_path / "nested" / "dir" / "kb.db"
    config.ensure_db_directory(str(db_path))
    assert db_path.parent.is_dir()
