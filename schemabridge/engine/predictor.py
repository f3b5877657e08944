"""
Fallback Predictor - synthesizes consumer responses when the server is not used.

Order of preference: cached prediction, few-shot generation grounded on
retrieved exemplars, dummy-mode templates, deterministic placeholder. The
placeholder is returned instead of an unguided answer whenever nothing
grounds the prediction.
"""

import copy
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from ..core import config
from ..core.errors import CacheError, RetrievalError, TranslationError
from ..core.schema import (
    SchemaDescriptor, ONLINE, OFFLINE, DUMMY,
    CONFIDENCE_UNKNOWN, CONFIDENCE_LOW, CONFIDENCE_MEDIUM, CONFIDENCE_HIGH, CONFIDENCE_BANDS
)
from ..core.timeouts import call_with_timeout
from ..generation.provider import IGenerationProvider, GenerateRequest
from .cache import ResponseCache
from .retrieval import RetrievalEngine, RetrievalResult
from .templates import DummyTemplates
from .validation import validate_payload, project
from util.logging import logger


@dataclass(frozen=True)
class Prediction:
    payload: Dict[str, Any]
    confidence: str
    cached: bool = False
    source: str = "placeholder"
    matches: int = 0
    nearest_distance: Optional[float] = None


def confidence_band(nearest_distance: Optional[float], matches: int, high_distance: float = None,
                    medium_distance: float = None, match_boost: int = None) -> str:
    """
    Confidence band from the nearest distance and the number of matches.

    Smaller distance or more matches never lowers the band.
    """
    if nearest_distance is None or matches <= 0:
        return CONFIDENCE_UNKNOWN

    high_distance = config.CONFIDENCE_HIGH_DISTANCE if high_distance is None else high_distance
    medium_distance = config.CONFIDENCE_MEDIUM_DISTANCE if medium_distance is None else medium_distance
    match_boost = config.CONFIDENCE_MATCH_BOOST if match_boost is None else match_boost

    if nearest_distance <= high_distance:
        band = CONFIDENCE_HIGH
    elif nearest_distance <= medium_distance:
        band = CONFIDENCE_MEDIUM
    else:
        band = CONFIDENCE_LOW

    if matches >= match_boost:
        band = CONFIDENCE_BANDS[min(CONFIDENCE_BANDS.index(band) + 1, len(CONFIDENCE_BANDS) - 1)]
    return band


def placeholder_payload(consumer: SchemaDescriptor) -> Dict[str, Any]:
    """Every consumer response field present and null."""
    return {name: None for name in consumer.response}


class FallbackPredictor:
    """Predicts consumer responses in offline and dummy mode."""

    def __init__(self, retrieval: RetrievalEngine, cache: ResponseCache, provider: IGenerationProvider,
                 templates: Optional[DummyTemplates] = None, timeout: float = None, cache_ttl: float = None):
        self.retrieval = retrieval
        self.cache = cache
        self.provider = provider
        self.templates = templates if templates is not None else DummyTemplates()
        self.timeout = timeout if timeout is not None else config.GENERATION_TIMEOUT_SEC
        self.cache_ttl = cache_ttl

    def predict(self, payload: Dict[str, Any], mode: str, consumer: SchemaDescriptor,
                vector: Optional[List[float]] = None) -> Prediction:
        """
        Args:
            payload: Consumer request
            mode: offline or dummy
            consumer: Consumer descriptor (the response shape to produce)
            vector: Precomputed request embedding

        Returns:
            Prediction; never raises for capability outages
        """
        if mode not in (OFFLINE, DUMMY):
            raise ValueError(f"Predictions are only made offline or in dummy mode, not {mode}")

        fp = self._fingerprint(payload, consumer, mode)
        if fp is not None:
            entry = self.cache.get(fp)
            if entry is not None:
                prediction = Prediction(
                    payload=copy.deepcopy(entry.payload),
                    confidence=entry.metadata.get("confidence", CONFIDENCE_LOW),
                    cached=True,
                    source="cache",
                    matches=entry.metadata.get("matches", 0),
                )
                logger.log_prediction(mode, prediction.source, prediction.confidence, prediction.matches)
                return prediction

        prediction = self._predict_uncached(payload, mode, consumer, vector)
        logger.log_prediction(mode, prediction.source, prediction.confidence,
                              prediction.matches, prediction.nearest_distance)

        if fp is not None and prediction.source != "placeholder":
            try:
                self.cache.put(fp, prediction.payload, ttl=self.cache_ttl, mode=mode, metadata={
                    "confidence": prediction.confidence,
                    "source": prediction.source,
                    "matches": prediction.matches,
                })
            except CacheError as e:
                logger.warning(f"Bypassing response cache: {e}")

        return prediction

    def _fingerprint(self, payload, consumer, mode) -> Optional[str]:
        try:
            return self.cache.fingerprint(payload, consumer.key, mode)
        except CacheError as e:
            logger.warning(f"Bypassing response cache: {e}")
            return None

    def _predict_uncached(self, payload, mode, consumer, vector) -> Prediction:
        # Offline predictions are grounded on server truth only
        modes = (ONLINE,) if mode == OFFLINE else None
        try:
            result = self.retrieval.search(payload, modes=modes, schema_version=consumer.key, vector=vector)
        except RetrievalError as e:
            logger.warning(f"Retrieval unavailable, predicting without exemplars: {e}")
            result = RetrievalResult()

        if len(result):
            return self._from_exemplars(payload, mode, consumer, result)

        if mode == DUMMY:
            return self._dummy(payload, consumer)

        return Prediction(payload=placeholder_payload(consumer), confidence=CONFIDENCE_UNKNOWN)

    def _from_exemplars(self, payload, mode, consumer, result: RetrievalResult) -> Prediction:
        examples = [{"request": e.consumer_request, "response": e.response} for e in result.exemplars]
        generated = self._generate(GenerateRequest(
            descriptor=consumer, request_payload=payload, examples=examples, mode=mode
        ))
        if generated is None:
            return Prediction(payload=placeholder_payload(consumer), confidence=CONFIDENCE_UNKNOWN)

        return Prediction(
            payload=generated,
            confidence=confidence_band(result.nearest_distance, len(result)),
            source="retrieval",
            matches=len(result),
            nearest_distance=result.nearest_distance,
        )

    def _dummy(self, payload, consumer) -> Prediction:
        rendered = self.templates.render(payload, consumer)
        if rendered is not None:
            return Prediction(payload=rendered, confidence=CONFIDENCE_LOW, source="template")

        generated = self._generate(GenerateRequest(descriptor=consumer, request_payload=payload, mode=DUMMY))
        if generated is not None:
            return Prediction(payload=generated, confidence=CONFIDENCE_LOW, source="generated")

        return Prediction(payload=placeholder_payload(consumer), confidence=CONFIDENCE_UNKNOWN)

    def _generate(self, request: GenerateRequest) -> Optional[Dict[str, Any]]:
        """Generation result projected onto the response shape, or None if unusable."""
        try:
            output = call_with_timeout(self.provider.generate, request, timeout=self.timeout)
        except FuturesTimeoutError:
            logger.warning(f"Generation timed out after {self.timeout}s; using placeholder")
            return None
        except TranslationError as e:
            logger.warning(f"Generation unavailable ({e.reason}); using placeholder")
            return None
        except Exception as e:
            logger.error(f"Generation capability failed: {e}")
            return None

        fields = request.descriptor.response
        errors = validate_payload(output, fields)
        if errors:
            logger.log_schema_validation_error("fallback.generate", errors, descriptor=request.descriptor.key)
            return None
        return project(output, fields)
