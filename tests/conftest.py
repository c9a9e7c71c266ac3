"""Shared test fixtures and configuration."""

from __future__ import annotations

from collections.abc import Callable, Iterable
import os
from pathlib import Path

import pytest

from folklore.config import RankingConfig, Settings, TokenizerConfig
from folklore.search.analyzers import Tokenizer
from folklore.search.documents import DocumentStore
from folklore.search.indexer import Indexer
from folklore.search.postings import PostingStore
from folklore.search.snapshot import IndexSnapshot
from folklore.service import SearchIndex


# The two pages used throughout the ranking tests
DOC1 = ("https://a.example/x", "Title A", "caching strategies for databases")
DOC2 = ("https://b.example/y", "Title B", "database caching layers")


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep FOLKLORE_* variables and stray .env files out of the tests."""
    for key in list(os.environ):
        if key.upper().startswith("FOLKLORE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def tokenizer() -> Tokenizer:
    return Tokenizer(TokenizerConfig())


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(database_path=tmp_path / "index.sqlite3", log_json=False)


@pytest.fixture
def index(settings: Settings) -> SearchIndex:
    return SearchIndex(settings, name="test")


@pytest.fixture
def build_snapshot(tokenizer: Tokenizer) -> Callable[..., IndexSnapshot]:
    """Ingest ``(url, title, raw_text)`` triples into a fresh snapshot."""

    def _build(pages: Iterable[tuple[str, str, str]], *, config: TokenizerConfig | None = None) -> IndexSnapshot:
        active = Tokenizer(config) if config is not None else tokenizer
        documents = DocumentStore(active)
        postings = PostingStore()
        indexer = Indexer(active)
        for url, title, raw_text in pages:
            indexer.ingest(documents, postings, url, title, raw_text)
        return IndexSnapshot(documents=documents, postings=postings, version=1)

    return _build


@pytest.fixture
def ranking() -> RankingConfig:
    return RankingConfig()


@pytest.fixture
def sample_pages() -> list[tuple[str, str, str]]:
    return [DOC1, DOC2]
