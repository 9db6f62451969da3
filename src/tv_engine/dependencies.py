"""FastAPI dependencies for the process-wide engine and services.

There is exactly one ValuationEngine per process: its per-entity locks only
serialize writers that share the instance. Tests replace these providers
through app.dependency_overrides.
"""

from src.tv_admin.application.service import AdminService
from src.tv_engine.engine import ValuationEngine
from src.tv_market.application.service import ValuationQueryService

_engine: ValuationEngine | None = None
_query_service: ValuationQueryService | None = None
_admin_service: AdminService | None = None


def get_engine() -> ValuationEngine:
    global _engine  # noqa: PLW0603
    if _engine is None:
        _engine = ValuationEngine()
    return _engine


def get_query_service() -> ValuationQueryService:
    global _query_service  # noqa: PLW0603
    if _query_service is None:
        _query_service = ValuationQueryService()
    return _query_service


def get_admin_service() -> AdminService:
    global _admin_service  # noqa: PLW0603
    if _admin_service is None:
        _admin_service = AdminService(get_engine())
    return _admin_service
