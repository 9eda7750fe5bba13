import logging
import threading
from typing import Mapping, Optional

from .catalog import CatalogScanner, DetailFetcher
from .config import Settings
from .crud_client import CrudClient
from .executor import RequestExecutor
from .models import MergedCatalog
from .sync import RepositoryMerger, SyncOrchestrator
from .transport import Transport


class ForwardClient:
    """Forward platform client composed from focused capabilities.

    - catalog: lists query summaries per repository
    - details: fetches one query at a commit
    - crud: networks, devices, snapshots, locations, NQE runs
    """

    def __init__(self, executor: RequestExecutor, logger: Optional[logging.Logger] = None):
        self.executor = executor
        self.catalog = CatalogScanner(executor, logger=logger)
        self.details = DetailFetcher(executor, logger=logger)
        self.crud = CrudClient(executor)
        self._merger = RepositoryMerger(SyncOrchestrator(self.catalog, self.details, logger=logger), logger=logger)

    @classmethod
    def from_settings(cls, settings: Settings) -> "ForwardClient":
        return cls(RequestExecutor(Transport.from_settings(settings)))

    def sync_all_repositories(
        self,
        prior_commits: Optional[Mapping[str, str]] = None,
        cancel: Optional[threading.Event] = None,
    ) -> MergedCatalog:
        return self._merger.sync_all_repositories(prior_commits, cancel)
