"""Tests for SyncOrchestrator: skipping, partial failures, cancellation and progress."""

import logging
import threading

import pytest

from conftest import FakeTransport, catalog_endpoint, detail, detail_endpoint, summary
from forward_nqe.catalog import CatalogScanner, DetailFetcher
from forward_nqe.errors import ClientRejected, DecodeError, RetriesExhausted, SyncCancelled
from forward_nqe.executor import RequestExecutor
from forward_nqe.models import Repository
from forward_nqe.sync import SyncOrchestrator


def _orchestrator(executor: RequestExecutor, logger=None) -> SyncOrchestrator:
    return SyncOrchestrator(CatalogScanner(executor), DetailFetcher(executor), logger=logger)


def _serve_catalog(transport: FakeTransport, repo: str, entries) -> None:
    transport.route(catalog_endpoint(repo), (200, {"queries": entries, "accessSettings": []}))
    for e in entries:
        transport.route(
            detail_endpoint(repo, e["lastCommitId"]),
            (200, detail("", "", e["lastCommitId"])),
        )


def _detail_calls(transport: FakeTransport):
    return [c for c in transport.calls if "/commits/head/" not in c.endpoint]


class TestSkipping:
    def test_only_changed_query_is_fetched(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        _serve_catalog(transport, "org", [summary("/x", "c1"), summary("/y", "c2")])

        result = _orchestrator(executor).sync_repository(Repository.ORG, {"/x": "c1"})

        calls = _detail_calls(transport)
        assert len(calls) == 1
        assert calls[0].params == {"path": "/y"}
        assert result.skipped_count == 1
        assert result.fetched_count == 1
        assert result.failed_count == 0

    def test_full_sync_without_cache(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        entries = [summary(f"/q{i}", f"c{i}") for i in range(5)]
        _serve_catalog(transport, "fwd", entries)

        result = _orchestrator(executor).sync_repository(Repository.FWD, None)

        paths = [c.params["path"] for c in _detail_calls(transport)]
        assert paths == [f"/q{i}" for i in range(5)]
        assert result.fetched_count == 5
        assert result.skipped_count == 0

    def test_everything_unchanged(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        _serve_catalog(transport, "org", [summary("/a", "c1"), summary("/b", "c2")])

        result = _orchestrator(executor).sync_repository(Repository.ORG, {"/a": "c1", "/b": "c2"})

        assert _detail_calls(transport) == []
        assert result.items == []
        assert result.skipped_count == 2


class TestFinalization:
    def test_identity_comes_from_summary(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        transport.route(catalog_endpoint("org"), (200, {"queries": [summary("/real/path", "c1", "Q-real")]}))
        transport.route(detail_endpoint("org", "c1"), (200, detail("Q-stale", "/stale", "c1")))

        result = _orchestrator(executor).sync_repository(Repository.ORG)

        item = result.items[0]
        assert item.query_id == "Q-real"
        assert item.path == "/real/path"
        assert item.repository is Repository.ORG

    def test_missing_last_commit_id_is_backfilled(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        transport.route(catalog_endpoint("org"), (200, {"queries": [summary("/a", "c7")]}))
        transport.route(detail_endpoint("org", "c7"), (200, detail("Q", "/a", "", lastCommit=None)))

        result = _orchestrator(executor).sync_repository(Repository.ORG)

        assert result.items[0].last_commit.id == "c7"


class TestPartialFailure:
    def test_one_missing_query_does_not_abort(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        entries = [summary("/a", "c1"), summary("/b", "c2"), summary("/c", "c3")]
        _serve_catalog(transport, "org", entries)
        transport.route(detail_endpoint("org", "c2"), (404, b"path not found"))

        result = _orchestrator(executor).sync_repository(Repository.ORG)

        assert result.fetched_count == 2
        assert result.failed_count == 1
        assert [i.path for i in result.items] == ["/a", "/c"]
        assert "/b" in result.first_failure_example
        assert "c2" in result.first_failure_example

    def test_first_failure_is_kept(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        entries = [summary("/a", "c1"), summary("/b", "c2"), summary("/c", "c3")]
        _serve_catalog(transport, "org", entries)
        transport.route(detail_endpoint("org", "c1"), (200, b"{truncated"))
        transport.route(detail_endpoint("org", "c3"), (404, b""))

        result = _orchestrator(executor).sync_repository(Repository.ORG)

        assert result.failed_count == 2
        assert "/a" in result.first_failure_example
        assert "/c" not in result.first_failure_example

    def test_exhausted_retries_count_as_failure(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        _serve_catalog(transport, "org", [summary("/a", "c1"), summary("/b", "c2")])
        transport.route(detail_endpoint("org", "c1"), (503, ""))

        result = _orchestrator(executor).sync_repository(Repository.ORG)

        assert result.failed_count == 1
        assert result.fetched_count == 1
        assert len(transport.calls_to(detail_endpoint("org", "c1"))) == 3

    @pytest.mark.parametrize(
        "outcome,expected",
        [((404, b""), ClientRejected), ((503, b""), RetriesExhausted), ((200, b"nope"), DecodeError)],
    )
    def test_catalog_failure_is_fatal(
        self, transport: FakeTransport, executor: RequestExecutor, outcome, expected
    ) -> None:
        transport.route(catalog_endpoint("org"), outcome)

        with pytest.raises(expected):
            _orchestrator(executor).sync_repository(Repository.ORG)


class TestCancellation:
    def test_cancel_after_item_50_of_200(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        entries = [summary(f"/q{i}", f"c{i}") for i in range(1, 201)]
        _serve_catalog(transport, "org", entries)
        cancel = threading.Event()

        def _cancel_on_fiftieth(request):
            if request.endpoint == detail_endpoint("org", "c50"):
                cancel.set()

        transport.on_send = _cancel_on_fiftieth

        with pytest.raises(SyncCancelled):
            _orchestrator(executor).sync_repository(Repository.ORG, None, cancel)

        paths = [c.params["path"] for c in _detail_calls(transport)]
        assert len(paths) == 50
        assert paths[-1] == "/q50"

    def test_cancelled_before_start_fetches_nothing(self, transport: FakeTransport, executor: RequestExecutor) -> None:
        _serve_catalog(transport, "org", [summary("/a", "c1")])
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(SyncCancelled):
            _orchestrator(executor).sync_repository(Repository.ORG, None, cancel)

        assert transport.calls == []

    def test_cancel_during_detail_backoff_is_not_a_soft_failure(self, transport: FakeTransport) -> None:
        entries = [summary("/a", "c1"), summary("/b", "c2")]
        _serve_catalog(transport, "org", entries)
        transport.route(detail_endpoint("org", "c1"), (503, ""))
        cancel = threading.Event()

        def _sleep(token, seconds):
            token.set()
            return True

        executor = RequestExecutor(transport, sleep=_sleep)  # type: ignore[arg-type]

        with pytest.raises(SyncCancelled):
            _orchestrator(executor).sync_repository(Repository.ORG, None, cancel)

        assert transport.calls_to(detail_endpoint("org", "c2")) == []


class TestProgress:
    def test_progress_logged_every_hundred(
        self, transport: FakeTransport, executor: RequestExecutor, caplog: pytest.LogCaptureFixture
    ) -> None:
        entries = [summary(f"/q{i}", f"c{i}") for i in range(250)]
        _serve_catalog(transport, "fwd", entries)
        log = logging.getLogger("test.progress")

        with caplog.at_level(logging.INFO, logger="test.progress"):
            result = _orchestrator(executor, logger=log).sync_repository(Repository.FWD)

        progress = [r.getMessage() for r in caplog.records if r.getMessage().startswith("Progress:")]
        assert progress == [
            "Progress: 100/250 fwd queries processed (100 successful, 0 failed)",
            "Progress: 200/250 fwd queries processed (200 successful, 0 failed)",
        ]
        assert result.fetched_count == 250
