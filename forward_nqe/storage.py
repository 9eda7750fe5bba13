import json
import logging
from pathlib import Path
from typing import Dict, Iterable, List

from .errors import DecodeError
from .models import QueryDetail, Repository

logger = logging.getLogger(__name__)

CATALOG_FILE_NAME = "nqe_catalog.json"


def save_catalog(data_dir: Path, details: Iterable[QueryDetail]) -> Path:
    """
    Persist the synced query catalog to JSON.

    The file is rewritten in full on every run and sorted by path so
    successive snapshots diff cleanly.
    """
    data_dir.mkdir(parents=True, exist_ok=True)
    file_path = data_dir / CATALOG_FILE_NAME
    payload = [d.to_dict() for d in sorted(details, key=lambda d: (d.path, d.query_id))]
    logger.info("Saving %d queries to %s", len(payload), file_path)

    tmp_path = file_path.with_suffix(".json.tmp")
    with open(tmp_path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2, sort_keys=True)
    tmp_path.replace(file_path)

    return file_path


def load_catalog(data_dir: Path) -> List[QueryDetail]:
    """Load the stored catalog; a missing or unreadable file yields an empty list."""
    file_path = data_dir / CATALOG_FILE_NAME
    if not file_path.exists():
        logger.info("No stored catalog at %s; a full sync will be performed.", file_path)
        return []

    with open(file_path, "r", encoding="utf-8") as fh:
        try:
            raw = json.load(fh)
        except ValueError as exc:
            # covers both invalid JSON and bytes that are not UTF-8
            logger.error("Failed to parse %s: %s", file_path, exc)
            return []

    if not isinstance(raw, list):
        logger.error("Stored catalog %s is not a list; ignoring it.", file_path)
        return []

    details: List[QueryDetail] = []
    for entry in raw:
        try:
            details.append(QueryDetail.from_dict(entry, strict_repository=True))
        except DecodeError as exc:
            logger.warning("Skipping unreadable stored query in %s: %s", file_path, exc)
    logger.info("Loaded %d stored queries from %s", len(details), file_path)
    return details


def prior_commits_from(details: Iterable[QueryDetail]) -> Dict[str, str]:
    """Build the path -> last commit id map the sync uses to skip unchanged queries."""
    return {d.path: d.last_commit.id for d in details if d.path and d.last_commit.id}


def merge_with_existing(existing: Iterable[QueryDetail], fresh: Iterable[QueryDetail]) -> List[QueryDetail]:
    """
    Overlay freshly synced queries onto the stored ones by query id.

    Unchanged queries are skipped by the sync and therefore only present in
    the stored catalog; they are kept as-is.

    The org-over-fwd precedence of a single sync also holds across runs: a
    stored org query is never replaced by a fresh fwd query with the same
    id, since its org variant may merely have been skipped as unchanged.
    """
    by_id: Dict[str, QueryDetail] = {d.query_id: d for d in existing}
    for d in fresh:
        stored = by_id.get(d.query_id)
        if stored is not None and stored.repository is Repository.ORG and d.repository is Repository.FWD:
            logger.debug("Keeping stored org query %s over fwd %s", stored.path, d.path)
            continue
        by_id[d.query_id] = d
    return list(by_id.values())
