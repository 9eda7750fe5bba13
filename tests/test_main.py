"""Tests for the application entry point."""

from pathlib import Path

import pytest

from forward_nqe import main as main_module
from forward_nqe.config import Settings
from forward_nqe.errors import CatalogUnavailable, SyncCancelled
from forward_nqe.models import CommitInfo, QueryDetail, Repository
from forward_nqe.storage import load_catalog, save_catalog


class FakeClient:
    def __init__(self, result=None, error=None):
        self.result = result or {}
        self.error = error
        self.prior_commits = "unset"

    def sync_all_repositories(self, prior_commits, cancel):
        self.prior_commits = prior_commits
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(api_base_url="https://fwd.example.com", api_key="k", api_secret="s", data_dir=tmp_path)


@pytest.fixture
def patched(monkeypatch: pytest.MonkeyPatch, settings: Settings):
    monkeypatch.setattr(main_module, "configure_logging", lambda *a, **k: None)
    monkeypatch.setattr(main_module, "_install_cancel_handlers", lambda cancel: None)
    monkeypatch.setattr(main_module, "load_settings", lambda: settings)

    def _use(client: FakeClient) -> FakeClient:
        monkeypatch.setattr(main_module.ForwardClient, "from_settings", classmethod(lambda cls, s: client))
        return client

    return _use


def _detail(query_id: str, path: str, commit: str) -> QueryDetail:
    return QueryDetail(query_id=query_id, path=path, last_commit=CommitInfo(id=commit), repository=Repository.ORG)


class TestMain:
    def test_first_run_is_full_sync_and_saves(self, patched, settings: Settings) -> None:
        client = patched(FakeClient({"Q1": _detail("Q1", "/a", "c1")}))

        assert main_module.main() == 0

        assert client.prior_commits is None
        assert [d.query_id for d in load_catalog(settings.data_dir)] == ["Q1"]

    def test_incremental_run_keeps_unchanged_queries(self, patched, settings: Settings) -> None:
        save_catalog(settings.data_dir, [_detail("Q1", "/a", "c1"), _detail("Q2", "/b", "c2")])
        client = patched(FakeClient({"Q2": _detail("Q2", "/b", "c3")}))

        assert main_module.main() == 0

        assert client.prior_commits == {"/a": "c1", "/b": "c2"}
        stored = {d.query_id: d.last_commit.id for d in load_catalog(settings.data_dir)}
        assert stored == {"Q1": "c1", "Q2": "c3"}

    def test_cancelled_run_saves_nothing(self, patched, settings: Settings) -> None:
        patched(FakeClient(error=SyncCancelled("org query loading cancelled")))

        assert main_module.main() == main_module.EXIT_CANCELLED
        assert load_catalog(settings.data_dir) == []

    def test_unavailable_catalog_fails(self, patched) -> None:
        patched(FakeClient(error=CatalogUnavailable("both down")))

        assert main_module.main() == 1
