"""FastAPI application exposing the documentation service as JSON endpoints."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from doccache.config import AppConfig
from doccache.errors import (
    ChunkingError,
    DocCacheError,
    DocumentNotFoundError,
    ExtractionError,
    FetchError,
    SearchError,
)
from doccache.index.indexer import IngestOptions
from doccache.index.search import SearchOptions
from doccache.ranking import Ranker
from doccache.service import DocumentationService

LOGGER = logging.getLogger(__name__)

_STATUS_BY_ERROR: list[tuple[type[DocCacheError], int]] = [
    (DocumentNotFoundError, 404),
    (SearchError, 400),
    (ChunkingError, 400),
    (FetchError, 502),
    (ExtractionError, 422),
]


class AddPayload(BaseModel):
    url: str
    force: bool = False
    timeout: float | None = None
    retry_count: int | None = Field(default=None, ge=1)
    max_chunk_size: int | None = Field(default=None, ge=1)
    overlap: int | None = Field(default=None, ge=0)
    preserve_structure: bool = True


class BatchAddPayload(BaseModel):
    urls: List[str]
    force: bool = False


class SearchPayload(BaseModel):
    query: str
    max_results: int = 10
    include_content: bool = True
    use_external_ranking: bool = False
    project_context: str | None = None


def http_error(exc: DocCacheError) -> HTTPException:
    for error_type, status in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status, detail=str(exc))
    LOGGER.error("Request failed: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def _service(request: Request) -> DocumentationService:
    return request.app.state.service


def create_app(config: AppConfig | None = None, ranker: Ranker | None = None) -> FastAPI:
    """Build the API; the service is opened at startup and closed at shutdown."""
    config = config or AppConfig()
    app = FastAPI(title="DocCache API", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.on_event("startup")
    async def startup_event() -> None:
        logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
        service = DocumentationService.open(config, ranker, base_dir=Path.cwd())
        service.start()
        app.state.service = service

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        service: DocumentationService = app.state.service
        await service.stop()
        service.close()

    @app.post("/documents")
    async def add_document(payload: AddPayload, request: Request) -> dict[str, Any]:
        options = IngestOptions(
            timeout=payload.timeout,
            retry_count=payload.retry_count,
            max_chunk_size=payload.max_chunk_size,
            overlap=payload.overlap,
            preserve_structure=payload.preserve_structure,
            force=payload.force,
        )
        try:
            result = await _service(request).add_documentation(payload.url, options)
        except DocCacheError as exc:
            raise http_error(exc) from exc
        return {
            "status": "ok",
            "doc_id": result.doc_id,
            "url": result.url,
            "title": result.title,
            "cached": result.cached,
            "chunk_count": result.chunk_count,
            "size": result.size,
        }

    @app.post("/documents/batch")
    async def add_documents(payload: BatchAddPayload, request: Request) -> dict[str, Any]:
        if not payload.urls:
            raise HTTPException(status_code=400, detail="No URL provided")
        stats = await _service(request).add_many(payload.urls, IngestOptions(force=payload.force))
        return {
            "status": "ok",
            "stats": {
                "inserted": stats.inserted,
                "updated": stats.updated,
                "skipped": stats.skipped,
                "failed": stats.failed,
                "processed_urls": stats.processed_urls,
            },
        }

    @app.post("/search")
    async def search_documents(payload: SearchPayload, request: Request) -> dict[str, Any]:
        options = SearchOptions(
            max_results=max(1, min(payload.max_results, 50)),
            include_content=payload.include_content,
            use_external_ranking=payload.use_external_ranking,
            project_context=payload.project_context,
        )
        try:
            response = await _service(request).search_documentation(payload.query, options)
        except DocCacheError as exc:
            raise http_error(exc) from exc
        return response.to_dict()

    @app.get("/documents")
    async def list_documents(request: Request) -> dict[str, Any]:
        """List cached documents, newest first."""
        summaries = _service(request).list_documentation()
        return {"documents": [summary.to_dict() for summary in summaries]}

    @app.get("/documents/{doc_id}")
    async def get_document(doc_id: str, request: Request, include_chunks: bool = True) -> dict[str, Any]:
        try:
            document = _service(request).get_documentation(doc_id)
        except DocCacheError as exc:
            raise http_error(exc) from exc
        return document.to_dict(include_chunks=include_chunks)

    @app.delete("/documents/{doc_id}")
    async def delete_document(doc_id: str, request: Request) -> dict[str, Any]:
        try:
            deleted = _service(request).delete_documentation(doc_id)
        except DocCacheError as exc:
            raise http_error(exc) from exc
        return {"status": "ok", "deleted_id": deleted}

    @app.get("/stats")
    async def get_stats(request: Request) -> dict[str, Any]:
        return _service(request).get_service_stats().to_dict()

    @app.post("/sweep")
    async def sweep(request: Request) -> dict[str, Any]:
        removed = _service(request).sweep()
        return {"status": "ok", "removed": removed}

    return app


app = create_app()
