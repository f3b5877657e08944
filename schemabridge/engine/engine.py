"""
Translation & Fallback Engine - the per-request control flow.

Online: translate to the server schema, forward, translate back.
Offline/dummy: cache, retrieval, fallback prediction.
Every completed exchange is appended to the knowledge base.
"""

import json
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

from ..core import config
from ..core.errors import CacheError, RetrievalError, ServerError, TranslationError
from ..core.health import HealthMonitor
from ..core.knowledge_base import KnowledgeBase
from ..core.privacy import redact_for_log
from ..core.schema import Exemplar, SchemaDescriptor, ONLINE, OFFLINE, DUMMY, SUCCESS, ERROR
from ..core.server_client import ServerClient
from ..generation.provider import IGenerationProvider
from ..vector.embeddings import IEmbeddingProvider
from .cache import ResponseCache
from .predictor import FallbackPredictor
from .reconcile import Reconciler, ReplayResult
from .retrieval import RetrievalEngine
from .routes import Contract, OnlineRoute, decide_route
from .templates import DummyTemplates
from .translator import SchemaTranslator
from .units import units_from_bridge_file
from util.logging import logger


@dataclass(frozen=True)
class EngineResult:
    """What the API wraps into the response envelope."""
    payload: Dict[str, Any]
    mode: str
    confidence: Optional[str]  # None for server-derived payloads
    cached: bool
    source: str
    exemplar_id: Optional[str] = None

    @property
    def offline_mode(self) -> bool:
        return self.mode == OFFLINE

    @property
    def dummy_mode(self) -> bool:
        return self.mode == DUMMY


class TranslationEngine:
    """Owns the collaborators and runs one request through the chosen route."""

    def __init__(self, contract: Contract, monitor: HealthMonitor, translator: SchemaTranslator,
                 server_client: ServerClient, knowledge_base: KnowledgeBase, retrieval: RetrievalEngine,
                 predictor: FallbackPredictor, cache: ResponseCache, reconciler: Optional[Reconciler] = None):
        self._contract = contract
        self._contract_lock = threading.Lock()
        self.monitor = monitor
        self.translator = translator
        self.server_client = server_client
        self.knowledge_base = knowledge_base
        self.retrieval = retrieval
        self.predictor = predictor
        self.cache = cache

        self.reconciler = reconciler or Reconciler(knowledge_base, cache, replay=self.replay_online)
        self.monitor.add_listener(self.reconciler.on_transition)

    @classmethod
    def from_config(cls, contract: Optional[Contract] = None, db_path: Optional[str] = None,
                    provider: Optional[IGenerationProvider] = None,
                    embedder: Optional[IEmbeddingProvider] = None,
                    server_client: Optional[ServerClient] = None,
                    monitor: Optional[HealthMonitor] = None,
                    knowledge_base: Optional[KnowledgeBase] = None) -> "TranslationEngine":
        """Wire an engine from configuration; any collaborator can be injected."""
        contract = contract or Contract.load(config.CONSUMER_SCHEMA_PATH, config.SERVER_SCHEMA_PATH)
        provider = provider or config.get_generation_provider()
        embedder = embedder or config.get_embedding_provider()
        server_client = server_client or ServerClient()
        monitor = monitor or HealthMonitor(server_client.probe)
        knowledge_base = knowledge_base or KnowledgeBase(db_path=db_path, dimension=embedder.get_dimension())

        cache = ResponseCache()
        retrieval = RetrievalEngine(knowledge_base, embedder)
        predictor = FallbackPredictor(retrieval, cache, provider, templates=DummyTemplates())

        engine = cls(
            contract=contract,
            monitor=monitor,
            translator=SchemaTranslator(provider),
            server_client=server_client,
            knowledge_base=knowledge_base,
            retrieval=retrieval,
            predictor=predictor,
            cache=cache,
        )
        if config.BRIDGE_FILE_PATH:
            engine.load_bridge_file(config.BRIDGE_FILE_PATH)
        return engine

    @property
    def contract(self) -> Contract:
        return self._contract

    def set_contract(self, contract: Contract):
        """Swap descriptors; units for the old versions are dropped."""
        with self._contract_lock:
            self._contract = contract
        self.translator.invalidate_stale(contract.consumer, contract.server)

    def load_bridge_file(self, path: str) -> int:
        """
        Register static units from a bridge file.

        Returns:
            Number of units registered
        """
        try:
            units = units_from_bridge_file(json.loads(Path(path).read_text(encoding="utf-8")))
        except (OSError, ValueError, KeyError) as e:
            logger.error(f"Failed to load bridge file {path}: {e}")
            return 0

        registered = 0
        contract = self.contract
        for unit in units:
            try:
                self.translator.register_unit(unit, contract.consumer, contract.server)
                registered += 1
            except TranslationError as e:
                logger.warning(f"Skipping bridge unit {unit.key}: {e}")

        logger.log_operation("bridge.load", "success", {"path": path, "units": registered})
        return registered

    # Request path

    def translate(self, payload: Dict[str, Any]) -> EngineResult:
        """
        Run one consumer request.

        Raises:
            TranslationError: schema_mismatch while online (never swallowed)
        """
        route = decide_route(self.monitor.current_state(), self.contract)
        if isinstance(route, OnlineRoute):
            return self._online(payload, route)
        return self._fallback(payload, route.mode, route.consumer)

    def _online(self, payload: Dict[str, Any], route: OnlineRoute) -> EngineResult:
        trace: Dict[str, Any] = {}
        try:
            exchange = self._exchange(payload, route.consumer, route.server, trace)
        except ServerError as e:
            self._log_error(payload, route.consumer, e.reason, trace)
            # The monitor re-checks with its own probe; the request falls through
            self.monitor.probe()
            return self._fallback(payload, OFFLINE, route.consumer)
        except TranslationError as e:
            self._log_error(payload, route.consumer, e.reason, trace)
            if e.reason == TranslationError.GENERATION_UNAVAILABLE:
                return self._fallback(payload, OFFLINE, route.consumer)
            if config.debug_enabled():
                logger.debug(f"Rejected translation for request {redact_for_log(payload)}")
            raise

        try:
            self.cache.put(self.cache.fingerprint(payload, route.consumer.key, ONLINE),
                           exchange.response, mode=ONLINE, metadata={"source": "server"})
        except CacheError as e:
            logger.warning(f"Bypassing response cache: {e}")

        exemplar_id = self._append(Exemplar(
            id=Exemplar.new_id(),
            consumer_request=payload,
            schema_version=route.consumer.key,
            mode=ONLINE,
            outcome=SUCCESS,
            response=exchange.response,
            server_request=exchange.server_request,
            server_response=exchange.server_response,
            embedding=self._embed(payload),
            source="server",
        ))
        return EngineResult(payload=exchange.response, mode=ONLINE, confidence=None, cached=False,
                            source="server", exemplar_id=exemplar_id)

    def _exchange(self, payload: Dict[str, Any], consumer: SchemaDescriptor, server: SchemaDescriptor,
                  trace: Dict[str, Any]) -> ReplayResult:
        trace["server_request"] = self.translator.to_server(payload, consumer, server)
        trace["server_response"] = self.server_client.forward(trace["server_request"])
        response = self.translator.to_consumer(trace["server_response"], server, consumer)
        return ReplayResult(
            server_request=trace["server_request"],
            server_response=trace["server_response"],
            response=response,
        )

    def replay_online(self, payload: Dict[str, Any]) -> ReplayResult:
        """Online path without logging or fall-through (reconciliation)."""
        contract = self.contract
        return self._exchange(payload, contract.consumer, contract.server, {})

    def _fallback(self, payload: Dict[str, Any], mode: str, consumer: SchemaDescriptor) -> EngineResult:
        vector = self._embed(payload)
        prediction = self.predictor.predict(payload, mode, consumer, vector=vector or None)

        exemplar_id = self._append(Exemplar(
            id=Exemplar.new_id(),
            consumer_request=payload,
            schema_version=consumer.key,
            mode=mode,
            outcome=SUCCESS,
            response=prediction.payload,
            embedding=vector,
            source=prediction.source,
            confidence=prediction.confidence,
        ))
        return EngineResult(payload=prediction.payload, mode=mode, confidence=prediction.confidence,
                            cached=prediction.cached, source=prediction.source, exemplar_id=exemplar_id)

    # Knowledge base logging

    def _embed(self, payload: Dict[str, Any]) -> List[float]:
        try:
            return self.retrieval.embed(payload)
        except RetrievalError as e:
            logger.warning(f"Exemplar will not be indexed: {e}")
            return []

    def _append(self, exemplar: Exemplar) -> Optional[str]:
        # A lost log entry never fails the request
        try:
            return self.knowledge_base.append(exemplar)
        except RetrievalError as e:
            logger.error(f"Failed to log exemplar {exemplar.id}: {e}")
            return None

    def _log_error(self, payload: Dict[str, Any], consumer: SchemaDescriptor, reason: str, trace: Dict[str, Any]):
        self._append(Exemplar(
            id=Exemplar.new_id(),
            consumer_request=payload,
            schema_version=consumer.key,
            mode=ONLINE,
            outcome=ERROR,
            server_request=trace.get("server_request"),
            server_response=trace.get("server_response"),
            embedding=self._embed(payload),
            source="server",
            error_reason=reason,
        ))

    # Lifecycle and status

    def start(self):
        self.monitor.start()

    def stop(self):
        self.monitor.stop()

    def get_status(self) -> Dict[str, Any]:
        return {
            "health": self.monitor.get_status(),
            "knowledge_base": self.knowledge_base.get_stats(),
            "cache": self.cache.stats(),
            "translation_units": len(self.translator.list_units()),
            "generation": self.translator.provider.model_name,
        }
