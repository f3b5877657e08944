"""
SchemaBridge - translation & fallback engine between a consumer and a backend
server whose schemas differ and whose availability is not guaranteed.
"""

from .core.config import VERSION

__version__ = VERSION
