"""
HTTP surface of the translation & fallback engine.
"""

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .auth import require_admin
from .schemas import (
    TranslateRequest,
    TranslateResponse,
    ResponseContext,
    ServerStatusResponse,
    LogsQuery,
    LogsResponse,
    GenerateBridgeRequest,
    GenerateBridgeResponse,
    DummyModeRequest,
    DummyModeResponse,
    HealthResponse,
)
from ..core import config
from ..core.db import health_check
from ..core.errors import BridgeError
from ..core.privacy import RedactionPolicy
from ..core.schema import SchemaDescriptor, DUMMY, utcnow
from ..core.timeouts import shutdown_executor
from ..engine.bridge_generator import BridgeGenerator
from ..engine.engine import TranslationEngine
from util.logging import logger


def get_engine(request: Request) -> TranslationEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Engine not initialized")
    return engine


def create_app(engine: Optional[TranslationEngine] = None) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        engine: Pre-wired engine (tests); built from configuration at startup otherwise
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        for issue in config.validate_config():
            logger.warning(f"Configuration issue: {issue}")

        if getattr(app.state, "engine", None) is None:
            app.state.engine = TranslationEngine.from_config()

        app.state.engine.knowledge_base.rebuild_index()
        app.state.engine.start()
        logger.info(f"SchemaBridge {config.VERSION} started")
        try:
            yield
        finally:
            app.state.engine.stop()
            shutdown_executor()
            logger.info("SchemaBridge stopped")

    app = FastAPI(
        title="SchemaBridge API",
        version=config.VERSION,
        description="Schema translation with offline and dummy-mode fallback",
        docs_url="/docs" if config.debug_enabled() else None,
        redoc_url="/redoc" if config.debug_enabled() else None,
        lifespan=lifespan,
    )
    app.state.engine = engine

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(BridgeError)
    async def bridge_error_handler(request: Request, exc: BridgeError):
        logger.log_operation("api.error", "error", {"path": request.url.path, "type": exc.__class__.__name__,
                                                     "reason": exc.reason})
        return JSONResponse(
            status_code=exc.http_status,
            content={
                "error": exc.to_dict(),
                "context": {"processedBy": config.PROCESSED_BY, "timestamp": utcnow().isoformat()},
            },
        )

    @app.post("/translate", response_model=TranslateResponse)
    def translate(req: TranslateRequest, engine: TranslationEngine = Depends(get_engine)):
        """Translate (online) or predict (offline/dummy) a consumer request."""
        result = engine.translate(req.payload)

        return TranslateResponse(
            context=ResponseContext(
                processedBy=config.PROCESSED_BY,
                offlineMode=result.offline_mode,
                dummyMode=result.dummy_mode,
                mode=result.mode,
                confidence=result.confidence,
                cached=result.cached,
                source=result.source,
                timestamp=utcnow().isoformat(),
            ),
            payload=result.payload,
        )

    @app.get("/server-status", response_model=ServerStatusResponse)
    def server_status(engine: TranslationEngine = Depends(get_engine)):
        """Read-only projection of the Health Monitor."""
        status = engine.monitor.get_status()
        return ServerStatusResponse(status=status["status"], lastCheck=status["lastCheck"])

    def _list_logs(query: LogsQuery, engine: TranslationEngine, accessor: str) -> LogsResponse:
        policy = RedactionPolicy()
        exemplars = engine.knowledge_base.list(offset=query.offset, limit=query.limit,
                                               mode=query.mode, outcome=query.outcome)
        items = [policy.redact_exemplar(e.to_dict()) for e in exemplars]
        policy.record_access(accessor, len(items), query.offset)

        return LogsResponse(
            items=items,
            total=engine.knowledge_base.count(mode=query.mode, outcome=query.outcome),
            offset=query.offset,
            limit=query.limit,
            redacted=policy.enabled,
        )

    @app.get("/logs", response_model=LogsResponse)
    def list_logs(
        offset: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=500),
        mode: Optional[str] = None,
        outcome: Optional[str] = None,
        accessor: str = Depends(require_admin),
        engine: TranslationEngine = Depends(get_engine),
    ):
        """Paged exemplar listing (newest first)."""
        try:
            query = LogsQuery(offset=offset, limit=limit, mode=mode, outcome=outcome)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=str(e))
        return _list_logs(query, engine, accessor)

    @app.post("/logs", response_model=LogsResponse)
    def query_logs(query: LogsQuery, accessor: str = Depends(require_admin),
                   engine: TranslationEngine = Depends(get_engine)):
        """Paged exemplar listing with the filter in the body."""
        return _list_logs(query, engine, accessor)

    @app.post("/generate-bridge", response_model=GenerateBridgeResponse)
    def generate_bridge(req: GenerateBridgeRequest, engine: TranslationEngine = Depends(get_engine)):
        """Design-time: static transform code from a pair of descriptors."""
        try:
            consumer = SchemaDescriptor.from_dict(req.consumerSpec)
            server = SchemaDescriptor.from_dict(req.serverSpec)
        except ValueError as e:
            raise HTTPException(status_code=422, detail=f"Invalid schema descriptor: {e}")

        bundle = BridgeGenerator(engine.translator.provider).generate(consumer, server)
        return GenerateBridgeResponse(bridgeCode=bundle.bridge_code, rules=bundle.rules)

    @app.get("/health", response_model=HealthResponse)
    def health(engine: TranslationEngine = Depends(get_engine)):
        """Liveness of the bridge itself (not of the backend server)."""
        db_health = health_check(engine.knowledge_base.db_path)
        return HealthResponse(
            status="healthy" if db_health else "unhealthy",
            version=config.VERSION,
            db_health=db_health,
            exemplar_count=engine.knowledge_base.count() if db_health else 0,
            server_status=engine.monitor.current_state(),
            cache=engine.cache.stats(),
        )

    @app.post("/dummy-mode", response_model=DummyModeResponse)
    def set_dummy_mode(req: DummyModeRequest, accessor: str = Depends(require_admin),
                       engine: TranslationEngine = Depends(get_engine)):
        """Toggle the dummy override at runtime."""
        engine.monitor.force_dummy(req.enabled)
        logger.log_operation("dummy_mode.set", "success", {"enabled": req.enabled, "accessor": accessor})
        state = engine.monitor.current_state()
        return DummyModeResponse(dummyMode=state == DUMMY, status=state)

    return app


app = create_app()
