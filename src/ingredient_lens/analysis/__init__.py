"""Remote side of the analysis workflow.

Modules:
- validation: ingredient text bounds
- parser: response shape validation and normalization
- model: prompt, output schema and the OpenAI-backed analyzer
- retry: bounded retry with exponential backoff
- heuristics: offline keyword approximation
- db: owner-scoped SQLite history
- auth: bearer token verification
- service: call-with-retry -> validate -> persist
- server.app: Starlette HTTP surface
"""

from .db import AnalysisDatabase
from .service import AnalysisService, ModelUnavailableError
from .server.app import create_app

__all__ = [
    "AnalysisDatabase",
    "AnalysisService",
    "ModelUnavailableError",
    "create_app",
]
