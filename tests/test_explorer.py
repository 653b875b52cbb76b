"""Tests for the command line interface."""
import json

import pytest

import explorer
from homearchive.aggregator import BookSearchAggregator


@pytest.fixture
def providers(provider_factory, candidate_factory):
    return [
        provider_factory("openlibrary", [
            candidate_factory("The Hobbit", isbn="9780547928227", author="J.R.R. Tolkien"),
        ], isbn_results=[
            candidate_factory("The Hobbit", isbn="9780547928227", author="J.R.R. Tolkien"),
        ]),
        provider_factory("googlebooks", [
            candidate_factory("Unfinished Tales", author="J.R.R. Tolkien", source="googlebooks"),
        ]),
    ]


@pytest.fixture(autouse=True)
def wiring(monkeypatch, providers, store):
    monkeypatch.setattr(explorer, "build_aggregator", lambda config: BookSearchAggregator(providers))
    monkeypatch.setattr(explorer, "setup_database", lambda config: store)


def run_cli(argv):
    with pytest.raises(SystemExit) as exc_info:
        explorer.main(argv)
    return exc_info.value.code


def test_no_command_prints_help(capsys):
    assert run_cli([]) == 1
    assert "usage" in capsys.readouterr().out


def test_search_compact(capsys):
    assert run_cli(["search", "tolkien", "--format", "compact"]) == 0

    out = capsys.readouterr().out
    assert "1. The Hobbit - J.R.R. Tolkien" in out
    assert "2. Unfinished Tales - J.R.R. Tolkien" in out


def test_search_json_by_isbn(capsys, providers):
    assert run_cli(["search", "9780547928227", "--by", "isbn", "--format", "json"]) == 0

    data = json.loads(capsys.readouterr().out)
    assert [d["title"] for d in data] == ["The Hobbit"]
    assert providers[1].calls == []


def test_search_table_no_results(capsys, providers):
    providers[0].results = []
    providers[1].results = []

    assert run_cli(["search", "nothing"]) == 0
    assert "No books found." in capsys.readouterr().out


def test_enrich_by_isbn(capsys, store):
    assert run_cli(["enrich", "--isbn", "978-0-547-92822-7", "--format", "compact"]) == 0

    assert "The Hobbit - J.R.R. Tolkien" in capsys.readouterr().out
    assert len(store.books) == 1
    assert store.closed


def test_enrich_invalid_isbn_exits_1(store):
    assert run_cli(["enrich", "--isbn", "12345"]) == 1
    assert store.books == []


def test_enrich_requires_target():
    assert run_cli(["enrich"]) == 2


def test_refresh_unknown_book():
    assert run_cli(["refresh", "9780547928227"]) == 1


def test_health(capsys):
    assert run_cli(["health"]) == 0

    out = capsys.readouterr().out
    assert "openlibrary" in out
    assert "UP" in out


def test_stats(capsys, stored_book):
    assert run_cli(["stats"]) == 0

    out = capsys.readouterr().out
    assert "Total books stored: 1" in out
    assert "Total categories: 1" in out
