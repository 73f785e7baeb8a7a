"""FastAPI application exposing document question-answering as a REST API."""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from docqa import __version__
from docqa.config import Settings
from docqa.errors import (
    DocQAError,
    GenerationError,
    QueryValidationError,
    RetrievalError,
    VectorStoreError,
)
from docqa.ingestion.controller import IngestionState
from docqa.retrieval.models import Citation
from docqa.serving.bootstrap import Services, build_services

logger = logging.getLogger(__name__)


# ── Request / Response schemas ────────────────────────────────────────
class QueryRequest(BaseModel):
    """Incoming question from the user."""

    question: str


class QueryResponse(BaseModel):
    """Answer returned by the service."""

    answer: str
    context_found: bool
    sources: list[str] = []
    citations: list[Citation] = []


class ErrorResponse(BaseModel):
    error: str
    detail: str


class ServiceNotReady(Exception):
    """Raised when a request arrives before startup completed."""


# ── App factory ───────────────────────────────────────────────────────
def create_app(services: Services | None = None, *, settings: Settings | None = None) -> FastAPI:
    """Build the app.

    Startup (store initialisation + ingestion) runs in the lifespan hook,
    before the server accepts connections.  Pass *services* to inject
    pre-built collaborators; ingestion still runs if it has not yet.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        svc = services or build_services(settings or Settings())
        if svc.ingestion.state is IngestionState.NOT_STARTED:
            svc.start()
        app.state.services = svc
        try:
            yield
        finally:
            svc.close()

    app = FastAPI(
        title="DocQA API",
        version=__version__,
        description="Retrieval-augmented question answering over ingested documents.",
        lifespan=lifespan,
    )
    app.state.services = None
    _register_error_handlers(app)
    _register_routes(app)
    return app


def get_services(request: Request) -> Services:
    services: Services | None = request.app.state.services
    if services is None:
        raise ServiceNotReady("Service is starting up")
    return services


# ── Routes ────────────────────────────────────────────────────────────
def _register_routes(app: FastAPI) -> None:
    @app.get("/health")
    async def health() -> dict[str, str]:
        """Liveness probe."""
        return {"status": "ok"}

    @app.get("/ready")
    def ready(services: Services = Depends(get_services)) -> JSONResponse:
        """Readiness probe: ingestion outcome and store size."""
        report = services.ingestion.report
        body = {
            "status": "ready" if report.state is IngestionState.DONE else "degraded",
            "ingestion": report.state.value,
            "records": None,
            "documents": report.documents_read,
            "skipped": len(report.skipped),
        }
        try:
            body["records"] = services.store.count()
        except VectorStoreError as exc:
            logger.error("Vector store unavailable: %s", exc)
            body["status"] = "degraded"
            body["detail"] = f"vector store unavailable: {exc}"
            return JSONResponse(status_code=503, content=body)
        if report.state is IngestionState.FAILED:
            body["detail"] = report.error or "ingestion failed"
            return JSONResponse(status_code=503, content=body)
        return JSONResponse(content=body)

    @app.post("/query", response_model=QueryResponse)
    def query(request: QueryRequest, services: Services = Depends(get_services)) -> QueryResponse:
        """Answer a question from the request body."""
        return _answer(services, request.question)

    @app.get("/ask", response_model=QueryResponse)
    def ask(
        question: str = Query(..., description="The question to answer"),
        services: Services = Depends(get_services),
    ) -> QueryResponse:
        """Answer a question passed as a query parameter."""
        return _answer(services, question)


def _answer(services: Services, question: str) -> QueryResponse:
    result = services.query_service.answer(question)
    return QueryResponse(
        answer=result.answer,
        context_found=result.context_found,
        sources=result.sources,
        citations=result.citations,
    )


# ── Error mapping ─────────────────────────────────────────────────────
def _error(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=code, detail=str(exc)).model_dump(),
    )


def _register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(QueryValidationError)
    async def _invalid_query(request: Request, exc: QueryValidationError) -> JSONResponse:
        return _error(422, "invalid_question", exc)

    @app.exception_handler(RetrievalError)
    async def _retrieval_failed(request: Request, exc: RetrievalError) -> JSONResponse:
        logger.error("Retrieval failed: %s", exc)
        return _error(503, "retrieval_unavailable", exc)

    @app.exception_handler(GenerationError)
    async def _generation_failed(request: Request, exc: GenerationError) -> JSONResponse:
        logger.error("Generation failed: %s", exc)
        return _error(503, "generation_unavailable", exc)

    @app.exception_handler(ServiceNotReady)
    async def _not_ready(request: Request, exc: ServiceNotReady) -> JSONResponse:
        return _error(503, "not_ready", exc)

    # Handlers resolve by MRO, so the subclasses above keep their own codes.
    @app.exception_handler(DocQAError)
    async def _backend_failed(request: Request, exc: DocQAError) -> JSONResponse:
        logger.error("%s: %s", type(exc).__name__, exc)
        return _error(503, "service_unavailable", exc)


app = create_app()
