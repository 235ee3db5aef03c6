"""Tests for CLI commands."""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path
from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from doccache.cli import _format_age, _setup_logging, app
from doccache.errors import FetchError
from doccache.index.cache import DocumentCache
from doccache.models import utc_now
from doccache.utils.files import document_id

from conftest import FakeFetcher, build_document, sample_page

runner = CliRunner(env={"COLUMNS": "200"})

URL = "https://widgets.dev/start"


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "cli.db"


@pytest.fixture
def populated_db(db_path: Path) -> Path:
    cache = DocumentCache.open(db_path)
    cache.store(
        build_document(
            "https://a.dev/guide",
            title="Widgets",
            content="Widgets render quickly.",
            headings=["Rendering"],
            processed_at=utc_now(),
        )
    )
    cache.close()
    return db_path


def _fake_fetcher(*outcomes):
    return patch("doccache.index.indexer.Fetcher", return_value=FakeFetcher(list(outcomes)))


class TestSetupLogging:
    """Tests for _setup_logging helper."""

    def test_setup_logging_verbose(self) -> None:
        """Verbose mode sets DEBUG level."""
        with patch("doccache.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=True)
            mock_config.assert_called_once()
            assert mock_config.call_args[1]["level"] == logging.DEBUG

    def test_setup_logging_normal(self) -> None:
        """Normal mode sets INFO level."""
        with patch("doccache.cli.logging.basicConfig") as mock_config:
            _setup_logging(verbose=False)
            assert mock_config.call_args[1]["level"] == logging.INFO


@pytest.mark.parametrize("seconds, expected", [(120, "2m"), (7200, "2.0h"), (172800, "2.0d")])
def test_format_age(seconds: float, expected: str) -> None:
    assert _format_age(seconds) == expected


class TestAddCommand:
    """Tests for the add command."""

    def test_add_single_url(self, db_path: Path) -> None:
        with _fake_fetcher(sample_page(URL, title="Widgets")):
            result = runner.invoke(app, ["add", URL, "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "inserted" in result.output
        assert "Widgets" in result.output
        cache = DocumentCache.open(db_path)
        assert document_id(URL) in cache
        cache.close()

    def test_add_from_file(self, tmp_path: Path, db_path: Path) -> None:
        url_file = tmp_path / "urls.txt"
        url_file.write_text(f"{URL}\n# comment\nhttps://widgets.dev/api\n", encoding="utf-8")

        with _fake_fetcher(sample_page(URL), sample_page("https://widgets.dev/api")):
            result = runner.invoke(app, ["add", "--file", str(url_file), "--db", str(db_path)])

        assert result.exit_code == 0, result.output
        assert "Inserted: 2" in result.output

    def test_add_requires_a_url(self, db_path: Path) -> None:
        result = runner.invoke(app, ["add", "--db", str(db_path)])

        assert result.exit_code != 0

    def test_fetch_failure_exits_with_error(self, db_path: Path) -> None:
        with _fake_fetcher(FetchError(URL, "connection refused", attempts=3)):
            result = runner.invoke(app, ["add", URL, "--db", str(db_path)])

        assert result.exit_code == 1
        assert "Error" in result.output
        assert "connection refused" in result.output

    def test_invalid_overlap_exits_with_error(self, db_path: Path) -> None:
        result = runner.invoke(app, ["add", URL, "--db", str(db_path), "--max-chunk-size", "50", "--overlap", "50"])

        assert result.exit_code == 1
        assert "overlap" in result.output


class TestSearchCommand:
    def test_search_shows_results(self, populated_db: Path) -> None:
        result = runner.invoke(app, ["search", "widgets", "--db", str(populated_db)])

        assert result.exit_code == 0, result.output
        assert "Widgets" in result.output
        assert "lexical" in result.output

    def test_search_no_matches(self, populated_db: Path) -> None:
        result = runner.invoke(app, ["search", "kubernetes", "--db", str(populated_db)])

        assert result.exit_code == 0
        assert "No matches found" in result.output

    def test_search_empty_cache(self, db_path: Path) -> None:
        result = runner.invoke(app, ["search", "widgets", "--db", str(db_path)])

        assert result.exit_code == 1
        assert "No documentation cached" in result.output


class TestListShowDelete:
    def test_list(self, populated_db: Path) -> None:
        result = runner.invoke(app, ["list", "--db", str(populated_db)])

        assert result.exit_code == 0
        assert "Widgets" in result.output

    def test_list_empty(self, db_path: Path) -> None:
        result = runner.invoke(app, ["list", "--db", str(db_path)])

        assert "No documentation cached" in result.output

    def test_show(self, populated_db: Path) -> None:
        doc_id = document_id("https://a.dev/guide")

        result = runner.invoke(app, ["show", doc_id, "--db", str(populated_db), "--chunks"])

        assert result.exit_code == 0, result.output
        assert "https://a.dev/guide" in result.output
        assert "- Rendering" in result.output
        assert "Widgets render quickly." in result.output

    def test_show_unknown(self, populated_db: Path) -> None:
        result = runner.invoke(app, ["show", "nope", "--db", str(populated_db)])

        assert result.exit_code == 1
        assert "Documentation not found" in result.output

    def test_delete(self, populated_db: Path) -> None:
        doc_id = document_id("https://a.dev/guide")

        result = runner.invoke(app, ["delete", doc_id, "--yes", "--db", str(populated_db)])

        assert result.exit_code == 0
        assert f"Deleted {doc_id}" in result.output
        cache = DocumentCache.open(populated_db)
        assert len(cache) == 0
        cache.close()

    def test_delete_aborted(self, populated_db: Path) -> None:
        doc_id = document_id("https://a.dev/guide")

        result = runner.invoke(app, ["delete", doc_id, "--db", str(populated_db)], input="n\n")

        assert result.exit_code == 1
        cache = DocumentCache.open(populated_db)
        assert doc_id in cache
        cache.close()


class TestMaintenanceCommands:
    def test_stats(self, populated_db: Path) -> None:
        result = runner.invoke(app, ["stats", "--db", str(populated_db)])

        assert result.exit_code == 0
        assert "documents count" in result.output

    def test_sweep(self, db_path: Path) -> None:
        cache = DocumentCache.open(db_path)
        cache.store(build_document(processed_at=utc_now() - timedelta(days=3)))
        cache.close()

        result = runner.invoke(app, ["sweep", "--db", str(db_path)])

        assert result.exit_code == 0
        assert "Removed 1 stale documents." in result.output

    def test_web_starts_uvicorn(self, db_path: Path) -> None:
        with patch("doccache.cli.uvicorn.run") as mock_run:
            result = runner.invoke(app, ["web", "--db", str(db_path), "--port", "8123"])

        assert result.exit_code == 0, result.output
        mock_run.assert_called_once()
        assert mock_run.call_args.kwargs["port"] == 8123
