"""
Generation capability - injectable transform/generate providers.
"""

from .provider import IGenerationProvider, TransformRequest, TransformResult, GenerateRequest

__all__ = [
    'IGenerationProvider',
    'TransformRequest',
    'TransformResult',
    'GenerateRequest'
]
