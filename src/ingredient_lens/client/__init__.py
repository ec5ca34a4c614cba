"""Client side of the analysis workflow: session, remote calls, local history."""

from .barcode import ProductInfo, ProductLookup
from .errors import AnalysisError
from .history import HistoryClient, HistoryPage
from .local_cache import LocalHistoryCache
from .pipeline import AnalysisOutcome, AnalysisPipeline
from .remote import RemoteAnalyzerClient
from .session import Session, SessionGuard, SessionStore
from .state import AppCoordinator, AppState

__all__ = [
    "AnalysisError",
    "AnalysisOutcome",
    "AnalysisPipeline",
    "AppCoordinator",
    "AppState",
    "HistoryClient",
    "HistoryPage",
    "LocalHistoryCache",
    "ProductInfo",
    "ProductLookup",
    "RemoteAnalyzerClient",
    "Session",
    "SessionGuard",
    "SessionStore",
]
