"""Tests for the FastAPI web application."""

from __future__ import annotations

from datetime import timedelta
from pathlib import Path
from typing import Iterator
from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient

from doccache.config import AppConfig
from doccache.errors import DocCacheError, ExtractionError, FetchError
from doccache.index.cache import DocumentCache
from doccache.models import utc_now
from doccache.utils.files import document_id
from doccache.web.app import create_app, http_error

from conftest import FakeFetcher, build_document, sample_page

URL = "https://widgets.dev/start"


class FakeRanker:
    def __init__(self, reply: str) -> None:
        self.reply = reply
        self.prompts: list[str] = []

    async def rerank(self, prompt: str, timeout: float) -> str:
        self.prompts.append(prompt)
        return self.reply


@pytest.fixture
def config(tmp_path: Path) -> AppConfig:
    return AppConfig(db_path=tmp_path / "web.db")


@pytest.fixture
def client(config: AppConfig) -> Iterator[TestClient]:
    with TestClient(create_app(config)) as test_client:
        yield test_client


def _seed(config: AppConfig, *documents) -> None:
    cache = DocumentCache.open(config.db_path)
    for document in documents:
        cache.store(document)
    cache.close()


def _fake_fetcher(*outcomes):
    return patch("doccache.index.indexer.Fetcher", return_value=FakeFetcher(list(outcomes)))


class TestHttpError:
    """Tests for the error to status mapping."""

    @pytest.mark.parametrize(
        "exc, status",
        [
            (FetchError(URL, "down"), 502),
            (ExtractionError(URL, "empty page"), 422),
            (DocCacheError("boom"), 500),
        ],
    )
    def test_status_codes(self, exc: DocCacheError, status: int) -> None:
        assert http_error(exc).status_code == status


class TestAddEndpoint:
    """Tests for POST /documents."""

    def test_add_success(self, client: TestClient) -> None:
        with _fake_fetcher(sample_page(URL, title="Widgets")):
            response = client.post("/documents", json={"url": URL})

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["doc_id"] == document_id(URL)
        assert data["title"] == "Widgets"
        assert data["cached"] is False
        assert data["chunk_count"] == 1

    def test_second_add_is_cached(self, client: TestClient) -> None:
        with _fake_fetcher(sample_page(URL)):
            client.post("/documents", json={"url": URL})
            response = client.post("/documents", json={"url": URL})

        assert response.json()["cached"] is True

    def test_fetch_failure_maps_to_502(self, client: TestClient) -> None:
        with _fake_fetcher(FetchError(URL, "connection refused", attempts=3)):
            response = client.post("/documents", json={"url": URL})

        assert response.status_code == 502
        assert "connection refused" in response.json()["detail"]

    def test_extraction_failure_maps_to_422(self, client: TestClient) -> None:
        with _fake_fetcher(ExtractionError(URL, "Not enough content")):
            response = client.post("/documents", json={"url": URL})

        assert response.status_code == 422

    def test_bad_chunk_options_map_to_400(self, client: TestClient) -> None:
        response = client.post("/documents", json={"url": URL, "max_chunk_size": 50, "overlap": 50})

        assert response.status_code == 400

    def test_payload_validation(self, client: TestClient) -> None:
        response = client.post("/documents", json={"url": URL, "retry_count": 0})

        assert response.status_code == 422


class TestBatchEndpoint:
    """Tests for POST /documents/batch."""

    def test_batch_counts(self, client: TestClient) -> None:
        urls = [URL, "https://widgets.dev/api"]
        with _fake_fetcher(sample_page(urls[0]), FetchError(urls[1], "down")):
            response = client.post("/documents/batch", json={"urls": urls})

        assert response.status_code == 200
        stats = response.json()["stats"]
        assert stats["inserted"] == 1
        assert stats["failed"] == 1
        assert stats["processed_urls"] == urls

    def test_batch_empty(self, client: TestClient) -> None:
        response = client.post("/documents/batch", json={"urls": []})

        assert response.status_code == 400
        assert "No URL provided" in response.json()["detail"]


class TestSearchEndpoint:
    """Tests for POST /search."""

    def test_search_empty_cache(self, client: TestClient) -> None:
        response = client.post("/search", json={"query": "widgets"})

        assert response.status_code == 400
        assert "No documentation cached" in response.json()["detail"]

    def test_search_blank_query(self, config: AppConfig) -> None:
        _seed(config, build_document(processed_at=utc_now()))

        with TestClient(create_app(config)) as client:
            response = client.post("/search", json={"query": "   "})

        assert response.status_code == 400

    def test_search_success(self, config: AppConfig) -> None:
        _seed(
            config,
            build_document("https://a.dev/install", title="Installation Guide", processed_at=utc_now()),
            build_document("https://a.dev/api", title="API Reference", processed_at=utc_now()),
        )

        with TestClient(create_app(config)) as client:
            response = client.post("/search", json={"query": "installation", "max_results": 500})

        assert response.status_code == 200
        data = response.json()
        assert data["search_type"] == "lexical"
        assert data["total_found"] == 1
        assert data["results"][0]["title"] == "Installation Guide"

    def test_search_with_external_ranking(self, config: AppConfig) -> None:
        _seed(
            config,
            build_document("https://a.dev/1", title="Widgets Basics", processed_at=utc_now()),
            build_document("https://a.dev/2", title="Widgets Advanced", processed_at=utc_now()),
        )
        ranker = FakeRanker('[{"rank": 1, "docIndex": 2, "relevanceScore": 9, "reasoning": "deeper"}]')

        with TestClient(create_app(config, ranker)) as client:
            response = client.post(
                "/search",
                json={"query": "widgets", "use_external_ranking": True, "project_context": "dashboard"},
            )

        data = response.json()
        assert data["search_type"] == "reranked"
        assert data["results"][0]["ranker_reasoning"] == "deeper"
        assert "dashboard" in ranker.prompts[0]


class TestDocumentEndpoints:
    """Tests for listing, fetching and deleting documents."""

    def test_list_documents(self, config: AppConfig) -> None:
        _seed(config, build_document(title="Widgets", processed_at=utc_now()))

        with TestClient(create_app(config)) as client:
            response = client.get("/documents")

        documents = response.json()["documents"]
        assert [doc["title"] for doc in documents] == ["Widgets"]

    def test_list_empty(self, client: TestClient) -> None:
        assert client.get("/documents").json() == {"documents": []}

    def test_get_document(self, config: AppConfig) -> None:
        document = build_document(processed_at=utc_now())
        _seed(config, document)

        with TestClient(create_app(config)) as client:
            full = client.get(f"/documents/{document.id}").json()
            bare = client.get(f"/documents/{document.id}", params={"include_chunks": False}).json()

        assert full["url"] == document.url
        assert len(full["chunks"]) == 1
        assert "chunks" not in bare

    def test_get_unknown_document(self, client: TestClient) -> None:
        response = client.get("/documents/nope")

        assert response.status_code == 404

    def test_delete_document(self, config: AppConfig) -> None:
        document = build_document(processed_at=utc_now())
        _seed(config, document)

        with TestClient(create_app(config)) as client:
            response = client.delete(f"/documents/{document.id}")
            missing = client.delete(f"/documents/{document.id}")

        assert response.json() == {"status": "ok", "deleted_id": document.id}
        assert missing.status_code == 404


class TestMaintenanceEndpoints:
    """Tests for GET /stats and POST /sweep."""

    def test_stats(self, config: AppConfig) -> None:
        _seed(config, build_document(processed_at=utc_now()))

        with TestClient(create_app(config)) as client:
            data = client.get("/stats").json()

        assert data["documents_count"] == 1
        assert data["index_size"] == 1
        assert data["cache_path"] == str(config.db_path)

    def test_sweep(self, config: AppConfig) -> None:
        stale = build_document("https://a.dev/old", processed_at=utc_now() - timedelta(days=3))
        fresh = build_document("https://a.dev/new", processed_at=utc_now())
        _seed(config, stale, fresh)

        with TestClient(create_app(config)) as client:
            response = client.post("/sweep")
            remaining = client.get("/documents").json()["documents"]

        assert response.json() == {"status": "ok", "removed": [stale.id]}
        assert [doc["doc_id"] for doc in remaining] == [fresh.id]
