"""
End-to-end engine behaviour: routing, fall-through, isolation and logging.
"""

import pytest

from schemabridge.core.errors import ServerError, TranslationError
from schemabridge.core.schema import (
    ONLINE, OFFLINE, DUMMY, SUCCESS, ERROR, CONFIDENCE_HIGH, CONFIDENCE_LOW, CONFIDENCE_UNKNOWN
)
from schemabridge.engine.routes import OnlineRoute, OfflineRoute, DummyRoute, decide_route
from schemabridge.engine.units import TO_SERVER, TO_CONSUMER
from schemabridge.generation.provider import IGenerationProvider, TransformResult

ALICE = {"firstName": "Alice", "lastName": "Smith"}


class BrokenTransformProvider(IGenerationProvider):
    """Returns a server request missing a required field."""

    model_name = "broken"

    def transform(self, request):
        return TransformResult(payload={"f_name": "Alice"}, rules=None, model_used=self.model_name)

    def generate(self, request):
        return {}


class UnavailableProvider(IGenerationProvider):
    model_name = "down"

    def transform(self, request):
        raise TranslationError("model down", reason=TranslationError.GENERATION_UNAVAILABLE)

    def generate(self, request):
        raise TranslationError("model down", reason=TranslationError.GENERATION_UNAVAILABLE)


class TestDecideRoute:
    """Mode dispatch is one function over a closed set of routes."""

    def test_online_and_degraded_use_online_route(self, contract):
        assert isinstance(decide_route(ONLINE, contract), OnlineRoute)
        route = decide_route("degraded", contract)
        assert isinstance(route, OnlineRoute)
        assert route.health == "degraded"

    def test_offline_route(self, contract):
        route = decide_route(OFFLINE, contract)
        assert isinstance(route, OfflineRoute)
        assert route.mode == OFFLINE

    def test_dummy_route_has_no_server_descriptor(self, contract):
        route = decide_route(DUMMY, contract)
        assert isinstance(route, DummyRoute)
        assert not hasattr(route, "server")

    def test_unknown_state_rejected(self, contract):
        with pytest.raises(ValueError):
            decide_route("sideways", contract)


class TestScenarios:
    """The three Alice Smith scenarios."""

    def test_online_translation(self, make_engine, stub_server):
        engine = make_engine(state=ONLINE)

        result = engine.translate(ALICE)

        assert result.payload == {"fullName": "Alice Smith", "id": "xyz123"}
        assert result.mode == ONLINE
        assert result.offline_mode is False
        assert result.dummy_mode is False
        assert result.source == "server"
        assert stub_server.forward_calls == [{"f_name": "Alice", "l_name": "Smith"}]

    def test_offline_with_prior_exemplar(self, make_engine, take_offline):
        engine = make_engine(state=ONLINE)
        engine.translate(ALICE)
        take_offline(engine)
        forwards_before = len(engine.server_client.forward_calls)

        result = engine.translate(ALICE)

        assert result.payload == {"fullName": "Alice Smith", "id": "xyz123"}
        assert result.offline_mode is True
        assert result.mode == OFFLINE
        assert result.source == "retrieval"
        assert result.confidence == CONFIDENCE_HIGH
        assert len(engine.server_client.forward_calls) == forwards_before

    def test_dummy_mode_without_exemplars(self, make_engine, stub_server):
        engine = make_engine(dummy=True)

        result = engine.translate(ALICE)

        assert result.payload["fullName"] == "Alice Smith"
        assert result.payload["id"].startswith("dummy-")
        assert result.dummy_mode is True
        assert result.source == "template"
        assert result.confidence == CONFIDENCE_LOW
        assert stub_server.calls == 0


class TestIsolation:
    """Offline and dummy requests never reach the server transport."""

    @pytest.mark.parametrize("payload", [
        ALICE,
        {"firstName": "Bob", "lastName": "Jones"},
        {"unexpected": [1, 2, 3]},
        {},
    ])
    def test_dummy_never_calls_server(self, make_engine, stub_server, payload):
        engine = make_engine(dummy=True)

        result = engine.translate(payload)
        engine.monitor.probe()

        assert result.dummy_mode is True
        assert stub_server.calls == 0

    def test_offline_flags_every_response(self, make_engine, stub_server):
        engine = make_engine(state=OFFLINE)

        for payload in (ALICE, {"firstName": "Bob", "lastName": "Jones"}):
            result = engine.translate(payload)
            assert result.offline_mode is True
            assert result.mode == OFFLINE

        assert stub_server.forward_calls == []

    def test_offline_without_history_returns_placeholder(self, make_engine):
        engine = make_engine(state=OFFLINE)

        result = engine.translate(ALICE)

        assert result.payload == {"fullName": None, "id": None}
        assert result.confidence == CONFIDENCE_UNKNOWN
        assert result.source == "placeholder"


class TestOnlineFailures:
    """Errors on the online path."""

    def test_server_error_falls_through_to_offline(self, make_engine, stub_server):
        engine = make_engine(state=ONLINE)
        engine.translate(ALICE)
        stub_server.forward_error = ServerError("boom", reason=ServerError.NON_2XX, status_code=500)
        probes_before = stub_server.probe_calls

        result = engine.translate(ALICE)

        assert result.mode == OFFLINE
        assert result.offline_mode is True
        assert result.payload == {"fullName": "Alice Smith", "id": "xyz123"}
        # The monitor re-checked with its own probe
        assert stub_server.probe_calls == probes_before + 1

        errors = engine.knowledge_base.list(outcome=ERROR)
        assert len(errors) == 1
        assert errors[0].error_reason == ServerError.NON_2XX
        assert errors[0].server_request == {"f_name": "Alice", "l_name": "Smith"}

    def test_single_request_failure_does_not_change_state(self, make_engine, stub_server):
        engine = make_engine(state=ONLINE)
        stub_server.forward_error = ServerError("boom", reason=ServerError.TIMEOUT)

        engine.translate(ALICE)

        # Probe still succeeds, so the monitor stays online
        assert engine.monitor.current_state() == ONLINE

    def test_schema_mismatch_surfaces_and_is_logged_as_error(self, make_engine, stub_server):
        engine = make_engine(state=ONLINE, provider=BrokenTransformProvider())

        with pytest.raises(TranslationError) as exc_info:
            engine.translate(ALICE)

        assert exc_info.value.reason == TranslationError.SCHEMA_MISMATCH
        assert stub_server.forward_calls == []
        assert engine.knowledge_base.count(outcome=SUCCESS) == 0
        assert engine.knowledge_base.count(outcome=ERROR) == 1
        assert engine.cache.stats()["entries"] == 0

    def test_generation_unavailable_online_falls_through(self, make_engine, stub_server):
        engine = make_engine(state=ONLINE, provider=UnavailableProvider())

        result = engine.translate(ALICE)

        assert result.mode == OFFLINE
        assert result.confidence == CONFIDENCE_UNKNOWN
        assert stub_server.forward_calls == []


class TestKnowledgeBaseLogging:
    """Every completed exchange becomes an exemplar tagged with its mode."""

    def test_online_exemplar(self, make_engine):
        engine = make_engine(state=ONLINE)

        result = engine.translate(ALICE)

        exemplar = engine.knowledge_base.get(result.exemplar_id)
        assert exemplar.mode == ONLINE
        assert exemplar.outcome == SUCCESS
        assert exemplar.consumer_request == ALICE
        assert exemplar.server_request == {"f_name": "Alice", "l_name": "Smith"}
        assert exemplar.server_response == {"full_name": "Alice Smith", "user_id": "xyz123"}
        assert exemplar.response == {"fullName": "Alice Smith", "id": "xyz123"}
        assert exemplar.schema_version == "consumer-users@1"
        assert exemplar.embedding

    def test_fallback_exemplars_carry_mode(self, make_engine):
        offline_engine = make_engine(state=OFFLINE)
        exemplar = offline_engine.knowledge_base.get(offline_engine.translate(ALICE).exemplar_id)
        assert exemplar.mode == OFFLINE
        assert exemplar.server_response is None
        assert exemplar.source == "placeholder"

    def test_append_failure_does_not_fail_request(self, make_engine):
        engine = make_engine(state=ONLINE)
        from schemabridge.core.errors import RetrievalError

        def broken_append(exemplar):
            raise RetrievalError("disk full")

        engine.knowledge_base.append = broken_append

        result = engine.translate(ALICE)

        assert result.payload == {"fullName": "Alice Smith", "id": "xyz123"}
        assert result.exemplar_id is None


class TestIdempotence:
    """Repeated online requests against a deterministic server."""

    def test_identical_requests_identical_payloads(self, make_engine):
        engine = make_engine(state=ONLINE)

        first = engine.translate(ALICE)
        second = engine.translate(ALICE)

        assert first.payload == second.payload

    def test_units_promoted_after_first_validation(self, make_engine, contract):
        engine = make_engine(state=ONLINE)

        engine.translate(ALICE)

        assert engine.translator.get_unit(contract.consumer, contract.server, TO_SERVER) is not None
        assert engine.translator.get_unit(contract.consumer, contract.server, TO_CONSUMER) is not None
        calls = dict(engine.translator.provider.calls)

        engine.translate(ALICE)

        assert engine.translator.provider.calls == calls


class TestOfflineCache:
    """Offline predictions are cached under the offline mode."""

    def test_second_offline_request_is_cached(self, make_engine, take_offline):
        engine = make_engine(state=ONLINE)
        engine.translate(ALICE)
        take_offline(engine)

        first = engine.translate(ALICE)
        second = engine.translate({"firstName": " alice ", "lastName": "SMITH"})

        assert first.cached is False
        assert second.cached is True
        assert second.payload == first.payload
        assert second.confidence == first.confidence
        assert second.mode == OFFLINE

    def test_retrieval_survives_repeated_offline_traffic(self, make_engine, take_offline):
        engine = make_engine(state=ONLINE)
        engine.translate(ALICE)
        take_offline(engine)

        first = engine.translate(ALICE)
        for _ in range(25):
            engine.translate(ALICE)
        engine.cache.clear()

        later = engine.translate(ALICE)

        assert first.source == "retrieval"
        assert later.source == "retrieval"
        assert later.cached is False
        assert later.payload == {"fullName": "Alice Smith", "id": "xyz123"}
        assert later.confidence == first.confidence


class TestDummyGrounding:
    """Dummy answers are never treated as server data."""

    def test_repeated_dummy_request_stays_template(self, make_engine):
        engine = make_engine(dummy=True)

        first = engine.translate(ALICE)
        engine.cache.clear()
        second = engine.translate(ALICE)

        assert first.source == "template"
        assert second.source == "template"
        assert second.payload == first.payload
        assert second.confidence == CONFIDENCE_LOW

    def test_dummy_grounds_on_server_history(self, make_engine):
        engine = make_engine(state=ONLINE)
        engine.translate(ALICE)
        engine.monitor.force_dummy(True)

        result = engine.translate(ALICE)

        assert result.dummy_mode is True
        assert result.source == "retrieval"
        assert result.payload == {"fullName": "Alice Smith", "id": "xyz123"}
