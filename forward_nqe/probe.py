import logging
import sys
from typing import Optional, Tuple

from .client import ForwardClient
from .config import Settings
from .models import QuerySummary, Repository

logger = logging.getLogger(__name__)


def _find_query_in_any_repository(client: ForwardClient, path: str) -> Tuple[Repository, QuerySummary]:
    """
    Search the org then the fwd catalog for a query with the given path.

    Raises RuntimeError if it is in neither.
    """
    for repo in (Repository.ORG, Repository.FWD):
        logger.info("Searching for query %s in %s repository", path, repo.value)
        for summary in client.catalog.fetch_catalog(repo):
            if summary.path == path:
                logger.info("Found query %s in %s repository", path, repo.value)
                return repo, summary

    raise RuntimeError(f"Query '{path}' not found in the org or fwd repository.")


def run_query_probe(settings: Settings, path: str, client: Optional[ForwardClient] = None) -> int:
    """
    Dry-run lookup for a single query:
    - Lists the catalogs until the path is found.
    - Fetches that query's detail at its latest commit.
    - Prints a short report.

    Nothing is written to disk.
    """
    logger.info("Running single-query probe for %s", path)
    client = client or ForwardClient.from_settings(settings)

    try:
        repo, summary = _find_query_in_any_repository(client, path)
        detail = client.details.fetch_detail(summary.last_commit_id, summary.path, repo)
    except RuntimeError as exc:
        logger.error("%s", exc)
        print(str(exc), file=sys.stderr)
        return 1

    last = detail.last_commit
    print(f"=== {summary.path} ({repo.value}) ===")
    print(f"query id:      {summary.query_id}")
    print(f"last commit:   {summary.last_commit_id} by {last.author_email or '?'}: {last.title}")
    print(f"commit count:  {detail.commit_count}")
    print(f"intent:        {detail.intent}")
    print(f"source lines:  {len(detail.source_code.splitlines())}")
    return 0
