import logging
import os
import sys
from datetime import datetime
from pathlib import Path
from typing import List, Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S"

# Chatty third-party loggers that only matter when debugging the transport.
NOISY_LOGGERS = ("urllib3", "requests")


def _open_log_file(log_dir: Path) -> logging.Handler:
    log_dir.mkdir(parents=True, exist_ok=True)
    stamp = datetime.now().strftime("%Y%m%d-%H%M%S")
    return logging.FileHandler(log_dir / f"forward-nqe-sync_{stamp}.log", mode="w", encoding="utf-8")


def configure_logging(level: str = "INFO", log_dir: Optional[Path] = None) -> None:
    """Send sync logs to stderr and, when log_dir is set, to a per-run file.

    stdout stays free for the single-query report. Calling this again
    replaces the handlers installed by the previous call.
    """
    root = logging.getLogger()
    root.setLevel(level.upper())
    for handler in list(root.handlers):
        root.removeHandler(handler)
        if isinstance(handler, logging.FileHandler):
            handler.close()

    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    file_error: Optional[str] = None
    if log_dir:
        try:
            handlers.append(_open_log_file(log_dir))
        except PermissionError as exc:
            file_error = f"{log_dir} is not writable by uid={os.getuid()} gid={os.getgid()}: {exc}"
        except OSError as exc:
            file_error = f"cannot create a log file under {log_dir}: {exc}"

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)

    quiet = logging.DEBUG if root.level <= logging.DEBUG else logging.WARNING
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(quiet)

    if file_error:
        root.error("Logging to stderr only; %s", file_error)
    elif len(handlers) > 1:
        root.info("Writing sync log to %s", handlers[1].baseFilename)  # type: ignore[attr-defined]
