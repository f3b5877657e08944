"""
Shared fixtures: descriptors, a scripted backend server and an engine factory.
"""

import pytest

from schemabridge.core.errors import ServerError
from schemabridge.core.health import HealthMonitor
from schemabridge.core.knowledge_base import KnowledgeBase
from schemabridge.core.schema import SchemaDescriptor, ONLINE, OFFLINE
from schemabridge.engine.cache import ResponseCache
from schemabridge.engine.engine import TranslationEngine
from schemabridge.engine.predictor import FallbackPredictor
from schemabridge.engine.retrieval import RetrievalEngine
from schemabridge.engine.routes import Contract
from schemabridge.engine.templates import DummyTemplates
from schemabridge.engine.translator import SchemaTranslator
from schemabridge.generation.mock_provider import MockGenerationProvider
from schemabridge.vector.embeddings import DeterministicHashEmbedding
from schemabridge.vector.index import SimpleInMemoryVectorStore

DIMENSION = 64

ALICE = {"firstName": "Alice", "lastName": "Smith"}


@pytest.fixture
def consumer():
    return SchemaDescriptor.from_dict({
        "name": "consumer-users",
        "version": "1",
        "request": {
            "firstName": {"type": "string", "required": True},
            "lastName": {"type": "string", "required": True},
        },
        "response": {
            "fullName": {"type": "string", "required": True},
            "id": {"type": "string", "required": True},
        },
    })


@pytest.fixture
def server():
    return SchemaDescriptor.from_dict({
        "title": "server-users",
        "version": "2",
        "request": {
            "properties": {"f_name": {"type": "string"}, "l_name": {"type": "string"}},
            "required": ["f_name", "l_name"],
        },
        "response": {
            "properties": {"full_name": {"type": "string"}, "user_id": {"type": "string"}},
            "required": ["full_name", "user_id"],
        },
    })


@pytest.fixture
def contract(consumer, server):
    return Contract(consumer=consumer, server=server)


class StubServer:
    """Scripted backend: joins the name fields, records every call."""

    def __init__(self, user_id: str = "xyz123"):
        self.user_id = user_id
        self.up = True
        self.forward_error = None
        self.forward_calls = []
        self.probe_calls = 0

    def forward(self, payload, headers=None):
        self.forward_calls.append(payload)
        if not self.up:
            raise ServerError("Server unreachable", reason=ServerError.UNREACHABLE)
        if self.forward_error is not None:
            raise self.forward_error
        return {"full_name": f"{payload['f_name']} {payload['l_name']}", "user_id": self.user_id}

    def probe(self):
        self.probe_calls += 1
        if not self.up:
            raise ServerError("Health probe failed", reason=ServerError.UNREACHABLE)

    @property
    def calls(self):
        return len(self.forward_calls) + self.probe_calls


@pytest.fixture
def stub_server():
    return StubServer()


@pytest.fixture
def embedder():
    return DeterministicHashEmbedding(dimension=DIMENSION)


@pytest.fixture
def knowledge_base(tmp_path):
    return KnowledgeBase(db_path=str(tmp_path / "exemplars.db"), vector_store=SimpleInMemoryVectorStore())


@pytest.fixture
def make_engine(tmp_path, contract, stub_server, embedder):
    """Factory: engine wired with deterministic collaborators."""

    def factory(state=ONLINE, dummy=False, provider=None, server_client=None, reconcile=False,
                knowledge_base=None, failure_threshold=3):
        server_client = server_client or stub_server
        provider = provider or MockGenerationProvider()
        knowledge_base = knowledge_base or KnowledgeBase(
            db_path=str(tmp_path / "engine.db"), vector_store=SimpleInMemoryVectorStore()
        )
        monitor = HealthMonitor(server_client.probe, interval_sec=60, failure_threshold=failure_threshold,
                                dummy=dummy, initial_state=state if state != ONLINE else OFFLINE)
        if state == ONLINE and not dummy:
            monitor.probe()

        cache = ResponseCache(max_entries=64, default_ttl=300)
        retrieval = RetrievalEngine(knowledge_base, embedder, top_k=5, max_distance=0.25, timeout=5)
        predictor = FallbackPredictor(retrieval, cache, provider, templates=DummyTemplates(rules_path=""), timeout=5)

        engine = TranslationEngine(
            contract=contract,
            monitor=monitor,
            translator=SchemaTranslator(provider, promotion_threshold=1, timeout=5, strict=False),
            server_client=server_client,
            knowledge_base=knowledge_base,
            retrieval=retrieval,
            predictor=predictor,
            cache=cache,
        )
        engine.reconciler.enabled = reconcile
        return engine

    return factory


def _take_offline(engine, failures=3):
    """Drive the monitor offline through real failed probes."""
    engine.server_client.up = False
    for _ in range(failures):
        engine.monitor.probe()
    assert engine.monitor.current_state() == OFFLINE


@pytest.fixture
def take_offline():
    return _take_offline
