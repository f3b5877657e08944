"""
Request/response models for the HTTP surface.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..core.schema import MODES, OUTCOMES


class TranslateContext(BaseModel):
    model_config = ConfigDict(extra="allow")

    apiKey: Optional[str] = None
    timestamp: datetime
    metadata: Optional[Dict[str, Any]] = None


class TranslateRequest(BaseModel):
    context: TranslateContext
    payload: Dict[str, Any]


class ResponseContext(BaseModel):
    processedBy: str
    offlineMode: bool
    dummyMode: bool
    mode: str
    confidence: Optional[str] = None
    cached: bool = False
    source: str
    timestamp: str


class TranslateResponse(BaseModel):
    context: ResponseContext
    payload: Dict[str, Any]


class ServerStatusResponse(BaseModel):
    status: str
    lastCheck: Optional[str] = None


class LogsQuery(BaseModel):
    offset: int = Field(default=0, ge=0)
    limit: int = Field(default=50, ge=1, le=500)
    mode: Optional[str] = None
    outcome: Optional[str] = None

    @field_validator('mode')
    @classmethod
    def mode_must_be_valid(cls, v):
        if v is not None and v not in MODES:
            raise ValueError(f'mode must be one of: {list(MODES)}')
        return v

    @field_validator('outcome')
    @classmethod
    def outcome_must_be_valid(cls, v):
        if v is not None and v not in OUTCOMES:
            raise ValueError(f'outcome must be one of: {list(OUTCOMES)}')
        return v


class LogsResponse(BaseModel):
    items: List[Dict[str, Any]]
    total: int
    offset: int
    limit: int
    redacted: bool


class GenerateBridgeRequest(BaseModel):
    consumerSpec: Dict[str, Any]
    serverSpec: Dict[str, Any]


class GenerateBridgeResponse(BaseModel):
    bridgeCode: str
    rules: Dict[str, List[Dict[str, Any]]]


class DummyModeRequest(BaseModel):
    enabled: bool


class DummyModeResponse(BaseModel):
    dummyMode: bool
    status: str


class HealthResponse(BaseModel):
    status: str
    version: str
    db_health: bool
    exemplar_count: int
    server_status: str
    cache: Dict[str, int]
