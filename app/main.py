"""
HTTP API for Expense Sync

A thin FastAPI layer over the sync flow and the ledger store. Clients
(the offline-first web app) call:

    POST /expenses/sync     reconcile their local records with the ledger
    GET  /expenses          read the whole ledger
    GET  /schema            describe the ledger columns
    POST /expenses/query    run an ad-hoc read-only query
    POST /expenses/mutate   apply raw statements to the ledger

Every route takes ?dev=true to work against the development ledger.

DESIGN PRINCIPLES:
1. No business logic here; routes call exactly one core operation
2. Any core failure is a 500 carrying the error message
3. Responses are never cached by clients or proxies
"""

from collections.abc import Callable
from typing import Any, Optional

import structlog
from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from pydantic import BaseModel, Field
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from expense_sync.audit import AuditLogger, configure_logging
from expense_sync.config import AppSettings, get_settings
from expense_sync.orchestrator import SyncFlow, create_app_components
from expense_sync.queries import QueryExecutor
from expense_sync.services.storage import CsvLedgerStorage

logger = structlog.get_logger(__name__)

ComponentsFactory = Callable[[bool], tuple[SyncFlow, QueryExecutor, CsvLedgerStorage]]


# =============================================================================
# REQUEST BODIES
# =============================================================================

class SyncRequest(BaseModel):
    """Records the client holds; each is validated individually."""
    expenses: list[Any] = Field(..., description="Client expense records")


class QueryRequest(BaseModel):
    query: str = Field(..., min_length=1, description="SQL using %expenses% as the table")


class MutateRequest(BaseModel):
    statements: list[str] = Field(..., description="SQL statements using %expenses% as the table")


# =============================================================================
# MIDDLEWARE
# =============================================================================

class LimitRequestSizeMiddleware(BaseHTTPMiddleware):
    """Reject request bodies above the configured size with 413."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                size = int(content_length)
            except ValueError:
                return Response("Invalid Content-Length header.", status_code=400)
            if size > self.max_bytes:
                logger.warning("request_too_large", path=request.url.path, size=size)
                return Response(
                    f"Request body exceeds {self.max_bytes} bytes.",
                    status_code=413,
                )
        return await call_next(request)


class NoStoreMiddleware(BaseHTTPMiddleware):
    """Mark every response as not cacheable."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["Cache-Control"] = "no-store"
        return response


# =============================================================================
# APPLICATION
# =============================================================================

def create_app(
    settings: Optional[AppSettings] = None,
    components_factory: Optional[ComponentsFactory] = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        settings: App settings (default: from the environment)
        components_factory: Builds (sync_flow, query_executor, storage) for
            a dev flag; called at most once per flag

    Returns:
        The configured application
    """
    settings = settings or get_settings().app
    factory = components_factory or create_app_components
    configure_logging(settings)

    app = FastAPI(title="Expense Sync", debug=settings.debug_mode)

    app.add_middleware(
        LimitRequestSizeMiddleware,
        max_bytes=settings.max_request_size_bytes,
    )
    app.add_middleware(NoStoreMiddleware)
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    components: dict[bool, tuple[SyncFlow, QueryExecutor, CsvLedgerStorage]] = {}

    def get_components(dev: bool) -> tuple[SyncFlow, QueryExecutor, CsvLedgerStorage]:
        """One set of components per environment, created on first use."""
        if dev not in components:
            components[dev] = factory(dev)
        return components[dev]

    def server_error(audit: AuditLogger, error: Exception) -> HTTPException:
        audit.log_error(error)
        return HTTPException(status_code=500, detail=str(error))

    @app.get("/")
    async def hello() -> str:
        return "Hello!"

    @app.get("/expenses")
    async def get_expenses(dev: bool = Query(False)) -> list[dict]:
        audit = AuditLogger("/expenses")
        try:
            _, _, storage = get_components(dev)
            expenses = await storage.load_all()
        except Exception as e:
            raise server_error(audit, e) from e

        audit.log_ledger_loaded(record_count=len(expenses))
        return [expense.to_json_dict() for expense in expenses]

    @app.get("/schema")
    async def get_schema(dev: bool = Query(False)) -> list[dict]:
        audit = AuditLogger("/schema")
        try:
            _, query_executor, _ = get_components(dev)
            columns = await query_executor.describe()
        except Exception as e:
            raise server_error(audit, e) from e

        return [column.model_dump(by_alias=True) for column in columns]

    @app.post("/expenses/sync")
    async def sync_expenses(body: SyncRequest, dev: bool = Query(False)) -> dict:
        audit = AuditLogger("/expenses/sync")
        try:
            sync_flow, _, _ = get_components(dev)
            result = await sync_flow.sync(body.expenses, audit_logger=audit)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e)) from e

        return {"expenses": [e.to_json_dict() for e in result.expenses_for_client]}

    @app.post("/expenses/query")
    async def query_expenses(body: QueryRequest, dev: bool = Query(False)) -> list[dict]:
        audit = AuditLogger("/expenses/query")
        try:
            _, query_executor, _ = get_components(dev)
            result = await query_executor.run(body.query, audit_logger=audit)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e)) from e

        return result.rows

    @app.post("/expenses/mutate")
    async def mutate_expenses(body: MutateRequest, dev: bool = Query(False)) -> Response:
        audit = AuditLogger("/expenses/mutate")
        try:
            _, query_executor, _ = get_components(dev)
            await query_executor.mutate(body.statements, audit_logger=audit)
        except Exception as e:
            raise HTTPException(status_code=500, detail=str(e)) from e

        return Response(status_code=200)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app.main:app", host="0.0.0.0", port=8000)
