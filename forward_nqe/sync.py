import dataclasses
import logging
import threading
from typing import Dict, List, Mapping, Optional

from .catalog import CatalogScanner, DetailFetcher, partition
from .errors import CatalogUnavailable, ForwardAPIError, SyncCancelled
from .models import MergedCatalog, QueryDetail, Repository, SyncResult

logger = logging.getLogger(__name__)

PROGRESS_INTERVAL = 100


class SyncOrchestrator:
    """Incremental, commit-aware sync of one NQE repository."""

    def __init__(
        self,
        scanner: CatalogScanner,
        fetcher: DetailFetcher,
        logger: Optional[logging.Logger] = None,
    ):
        self.scanner = scanner
        self.fetcher = fetcher
        self.logger = logger or logging.getLogger(__name__)

    def sync_repository(
        self,
        repository: Repository,
        prior_commits: Optional[Mapping[str, str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """
        Fetch details for every catalog entry whose commit changed.

        Flow:
        - List the catalog (any failure here propagates to the caller).
        - Skip entries whose path maps to the same commit in prior_commits.
        - Fetch the rest in catalog order. A failed fetch is counted and
          the sync moves on; a cancellation aborts with SyncCancelled and no
          partial result.
        """
        if cancel is None:
            cancel = threading.Event()
        repo = Repository(repository)

        catalog = self.scanner.fetch_catalog(repo, cancel)
        to_fetch, skipped = partition(catalog, prior_commits)
        self.logger.info(
            "%s commit comparison results: %d unchanged, %d to fetch", repo.value, skipped, len(to_fetch)
        )

        items: List[QueryDetail] = []
        failed = 0
        first_failure: Optional[str] = None
        total = len(to_fetch)

        for index, summary in enumerate(to_fetch):
            if cancel.is_set():
                self.logger.info(
                    "%s query loading cancelled after processing %d/%d queries", repo.value, index, total
                )
                raise SyncCancelled(f"{repo.value} query loading cancelled")

            try:
                detail = self.fetcher.fetch_detail(summary.last_commit_id, summary.path, repo, cancel)
            except ForwardAPIError as exc:
                failed += 1
                if first_failure is None:
                    first_failure = (
                        f"Example failure: query {summary.path} (commit {summary.last_commit_id}): {exc}"
                    )
            else:
                detail.query_id = summary.query_id
                detail.path = summary.path
                if not detail.last_commit.id:
                    detail.last_commit.id = summary.last_commit_id
                items.append(detail)

            processed = index + 1
            if processed % PROGRESS_INTERVAL == 0:
                if cancel.is_set():
                    self.logger.info(
                        "%s query loading cancelled during progress logging at %d/%d queries",
                        repo.value,
                        processed,
                        total,
                    )
                    raise SyncCancelled(f"{repo.value} query loading cancelled")
                self.logger.info(
                    "Progress: %d/%d %s queries processed (%d successful, %d failed)",
                    processed,
                    total,
                    repo.value,
                    len(items),
                    failed,
                )

        self.logger.info(
            "%s metadata loading complete: %d listed, %d loaded, %d skipped, %d failed",
            repo.value,
            len(catalog),
            len(items),
            skipped,
            failed,
        )
        if first_failure:
            self.logger.debug("%s", first_failure)

        return SyncResult(
            repository=repo,
            items=items,
            skipped_count=skipped,
            failed_count=failed,
            first_failure_example=first_failure,
        )


class RepositoryMerger:
    """Syncs the org and fwd repositories and merges them, org taking precedence."""

    def __init__(self, orchestrator: SyncOrchestrator, logger: Optional[logging.Logger] = None):
        self.orchestrator = orchestrator
        self.logger = logger or logging.getLogger(__name__)

    @staticmethod
    def merge_all(org_result: Optional[SyncResult], fwd_result: Optional[SyncResult]) -> MergedCatalog:
        """
        Merge two repository results keyed by query id.

        A None result stands for a repository whose sync failed outright and
        contributes nothing. org entries overwrite fwd entries with the same id.
        """
        merged: Dict[str, QueryDetail] = {}
        if fwd_result is not None:
            for item in fwd_result.items:
                merged[item.query_id] = dataclasses.replace(item, repository=Repository.FWD)
        if org_result is not None:
            for item in org_result.items:
                merged[item.query_id] = dataclasses.replace(item, repository=Repository.ORG)
        return merged

    def _sync_or_degrade(
        self,
        repository: Repository,
        prior_commits: Optional[Mapping[str, str]],
        cancel: threading.Event,
    ) -> Optional[SyncResult]:
        self.logger.info("Fetching %s repository queries...", repository.value)
        try:
            return self.orchestrator.sync_repository(repository, prior_commits, cancel)
        except SyncCancelled:
            self.logger.info("%s query loading cancelled", repository.value)
            raise
        except ForwardAPIError as exc:
            self.logger.warning("Failed to load %s queries: %s", repository.value, exc)
            return None

    def sync_all_repositories(
        self,
        prior_commits: Optional[Mapping[str, str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> MergedCatalog:
        """
        Sync both repositories and return the merged catalog.

        Raises SyncCancelled if cancelled, CatalogUnavailable if neither
        repository's catalog could be loaded.
        """
        if cancel is None:
            cancel = threading.Event()

        self.logger.info("Loading queries from BOTH repositories (org + fwd)...")
        org_result = self._sync_or_degrade(Repository.ORG, prior_commits, cancel)
        fwd_result = self._sync_or_degrade(Repository.FWD, prior_commits, cancel)

        if org_result is None and fwd_result is None:
            raise CatalogUnavailable("failed to load queries from both org and fwd repositories")

        merged = self.merge_all(org_result, fwd_result)
        self.logger.info(
            "Combined repository loading complete: org=%d fwd=%d unique=%d",
            org_result.fetched_count if org_result else 0,
            fwd_result.fetched_count if fwd_result else 0,
            len(merged),
        )
        return merged
