import logging
import threading
from typing import Any, List, Mapping, Optional, Tuple

import requests

from .errors import DecodeError
from .executor import RequestExecutor
from .models import QueryDetail, QuerySummary, Repository
from .transport import ApiRequest

logger = logging.getLogger(__name__)

CATALOG_MAX_ATTEMPTS = 3
# Detail calls fan out once per query, so they get a smaller retry budget.
DETAIL_MAX_ATTEMPTS = 2


def _decode_json(resp: requests.Response, what: str) -> Any:
    try:
        return resp.json()
    except ValueError as exc:
        raise DecodeError(f"failed to decode {what} response: {exc}") from exc


class CatalogScanner:
    """Lists every query summary at the head commit of a repository."""

    def __init__(self, executor: RequestExecutor, logger: Optional[logging.Logger] = None):
        self.executor = executor
        self.logger = logger or logging.getLogger(__name__)

    def fetch_catalog(
        self,
        repository: Repository,
        cancel: Optional[threading.Event] = None,
    ) -> List[QuerySummary]:
        repo = Repository(repository).value
        request = ApiRequest("GET", f"/api/nqe/repos/{repo}/commits/head/queries")
        resp = self.executor.execute(request, CATALOG_MAX_ATTEMPTS, cancel)

        data = _decode_json(resp, f"{repo} queries")
        if not isinstance(data, dict):
            raise DecodeError(f"failed to decode {repo} queries response: expected an object")

        raw_queries = data.get("queries") or []
        if not isinstance(raw_queries, list):
            raise DecodeError(f"failed to decode {repo} queries response: 'queries' must be a list")

        summaries = [QuerySummary.from_dict(q) for q in raw_queries]
        self.logger.info("Found %d %s queries, checking for changes...", len(summaries), repo)
        return summaries


def partition(
    catalog: List[QuerySummary],
    prior_commits: Optional[Mapping[str, str]],
) -> Tuple[List[QuerySummary], int]:
    """
    Split a catalog into the summaries that need a detail fetch and a skip count.

    An entry is skipped only when prior_commits has its path mapped to the
    same commit id. With no prior_commits every entry is fetched. Catalog
    order is preserved.
    """
    if prior_commits is None:
        return list(catalog), 0

    to_fetch: List[QuerySummary] = []
    skipped = 0
    for summary in catalog:
        if summary.path in prior_commits and prior_commits[summary.path] == summary.last_commit_id:
            skipped += 1
            continue
        to_fetch.append(summary)
    return to_fetch, skipped


class DetailFetcher:
    """Fetches one query's source and commit metadata at a given commit."""

    def __init__(self, executor: RequestExecutor, logger: Optional[logging.Logger] = None):
        self.executor = executor
        self.logger = logger or logging.getLogger(__name__)

    def fetch_detail(
        self,
        commit_id: str,
        path: str,
        repository: Repository,
        cancel: Optional[threading.Event] = None,
    ) -> QueryDetail:
        repo = Repository(repository)
        self.logger.debug("Fetching %s query %s at commit %s", repo.value, path, commit_id)
        request = ApiRequest(
            "GET",
            f"/api/nqe/repos/{repo.value}/commits/{commit_id}/queries",
            params={"path": path},
        )
        resp = self.executor.execute(request, DETAIL_MAX_ATTEMPTS, cancel)
        detail = QueryDetail.from_dict(_decode_json(resp, "query detail"))
        detail.repository = repo
        return detail
