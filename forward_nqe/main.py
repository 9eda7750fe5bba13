import logging
import os
import signal
import sys
import threading

from .client import ForwardClient
from .config import load_settings
from .errors import CatalogUnavailable, SyncCancelled
from .logging_config import configure_logging
from .probe import run_query_probe
from .storage import load_catalog, merge_with_existing, prior_commits_from, save_catalog

logger = logging.getLogger(__name__)

EXIT_CANCELLED = 130


def _install_cancel_handlers(cancel: threading.Event) -> None:
    def _handler(signum, _frame):
        logger.warning("Received signal %s; cancelling sync...", signum)
        cancel.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main() -> int:
    # Configure logging early so load_settings() warnings/errors are visible.
    configure_logging(os.getenv("LOG_LEVEL", "INFO"))

    settings = load_settings()
    configure_logging(settings.log_level, settings.log_dir)

    logger.info("Environment initialized - API: %s", settings.api_base_url)
    logger.info(
        "Environment initialized - TLS verification: %s",
        "disabled" if settings.insecure_skip_verify else "enabled",
    )

    if settings.test_query_path:
        # Filtered run: only look up a single query, store nothing.
        return run_query_probe(settings, settings.test_query_path)

    stored = load_catalog(settings.data_dir)
    prior_commits = prior_commits_from(stored) if stored else None

    cancel = threading.Event()
    _install_cancel_handlers(cancel)

    client = ForwardClient.from_settings(settings)
    try:
        merged = client.sync_all_repositories(prior_commits, cancel)
    except SyncCancelled as exc:
        logger.warning("Sync cancelled: %s", exc)
        return EXIT_CANCELLED
    except CatalogUnavailable as exc:
        logger.error("%s", exc)
        return 1

    catalog = merge_with_existing(stored, merged.values())
    save_catalog(settings.data_dir, catalog)
    logger.info("Sync complete: %d updated, %d total queries stored", len(merged), len(catalog))
    return 0


if __name__ == "__main__":
    sys.exit(main())
