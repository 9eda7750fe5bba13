import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import urlparse

import yaml

logger = logging.getLogger(__name__)

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _normalize_base_url(url: str, name: str = "FORWARD_API_BASE_URL") -> str:
    """Normalize the API base URL and ensure it has a host."""
    u = url.strip().rstrip("/")
    # Collapse extra slashes after :// (e.g. https:///host -> https://host)
    u = re.sub(r"(https?):///+", r"\1://", u)
    parsed = urlparse(u)
    if not parsed.netloc:
        raise RuntimeError(
            f"{name} has no host: {url!r}. "
            "Use e.g. https://fwd.app (no extra slashes)."
        )
    return u


def _parse_bool(name: str, raw: object, default: bool) -> bool:
    if raw is None:
        return default
    if isinstance(raw, bool):
        return raw
    v = str(raw).strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise RuntimeError(f"Invalid boolean value for {name}={raw!r} (expected true/false).")


def _parse_int(name: str, raw: object, default: int) -> int:
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except (TypeError, ValueError) as exc:
        raise RuntimeError(f"{name} must be an integer, got {raw!r}") from exc


def _opt_str(raw: object) -> Optional[str]:
    if isinstance(raw, str) and raw.strip():
        return raw.strip()
    return None


def _read_secret_file(path: Optional[str]) -> Optional[str]:
    if not path:
        return None
    p = Path(path)
    if not p.is_file():
        logger.warning("Secret file %s does not exist", p)
        return None
    return p.read_text(encoding="utf-8").strip()


@dataclass
class Settings:
    api_base_url: str
    api_key: str
    api_secret: str
    timeout: int = 600
    insecure_skip_verify: bool = False
    ca_cert_path: Optional[str] = None
    client_cert_path: Optional[str] = None
    client_key_path: Optional[str] = None
    default_network_id: Optional[str] = None
    default_snapshot_id: Optional[str] = None
    default_query_limit: int = 10000
    data_dir: Path = Path("data")
    log_level: str = "INFO"
    log_dir: Optional[Path] = None
    test_query_path: Optional[str] = None


def _build_settings(forward: Dict[str, Any], runtime: Dict[str, Any], source: str) -> Settings:
    """Validate raw values from either config source and build Settings."""
    base_url = _opt_str(forward.get("api_base_url"))
    if not base_url:
        raise RuntimeError(f"API base URL is not set ({source}: api_base_url / FORWARD_API_BASE_URL)")
    base_url = _normalize_base_url(base_url)

    api_key = _opt_str(forward.get("api_key"))
    if not api_key:
        raise RuntimeError(f"API key is not set ({source}: api_key / FORWARD_API_KEY)")

    # Prioritize a direct secret over a file-based one
    api_secret = _opt_str(forward.get("api_secret")) or _read_secret_file(_opt_str(forward.get("api_secret_file")))
    if not api_secret:
        raise RuntimeError(
            f"API secret is not set ({source}: api_secret or api_secret_file / "
            "FORWARD_API_SECRET or FORWARD_API_SECRET_FILE)"
        )

    client_cert = _opt_str(forward.get("client_cert_path"))
    client_key = _opt_str(forward.get("client_key_path"))
    if bool(client_cert) != bool(client_key):
        raise RuntimeError("client_cert_path and client_key_path must be set together")

    timeout = _parse_int("timeout", forward.get("timeout"), 600)
    if timeout <= 0:
        raise RuntimeError(f"timeout must be > 0 seconds, got {timeout}")

    data_dir = Path(str(runtime.get("data_dir") or "data"))
    data_dir.mkdir(parents=True, exist_ok=True)

    log_dir_raw = _opt_str(runtime.get("log_dir"))

    return Settings(
        api_base_url=base_url,
        api_key=api_key,
        api_secret=api_secret,
        timeout=timeout,
        insecure_skip_verify=_parse_bool("insecure_skip_verify", forward.get("insecure_skip_verify"), False),
        ca_cert_path=_opt_str(forward.get("ca_cert_path")),
        client_cert_path=client_cert,
        client_key_path=client_key,
        default_network_id=_opt_str(forward.get("default_network_id")),
        default_snapshot_id=_opt_str(forward.get("default_snapshot_id")),
        default_query_limit=_parse_int("default_query_limit", forward.get("default_query_limit"), 10000),
        data_dir=data_dir,
        log_level=str(runtime.get("log_level") or "INFO").upper(),
        log_dir=Path(log_dir_raw) if log_dir_raw else None,
        test_query_path=_opt_str(runtime.get("test_query_path")),
    )


def _load_settings_from_yaml(path: str) -> Settings:
    """Load settings from a single YAML config file."""
    p = Path(path)
    if not p.is_file():
        raise RuntimeError(f"APP_CONFIG_FILE not found: {path}")

    try:
        raw = yaml.safe_load(p.read_text(encoding="utf-8"))
    except yaml.YAMLError as exc:
        raise RuntimeError(f"Failed to read YAML config: {path}") from exc

    if not isinstance(raw, dict):
        raise RuntimeError("YAML config root must be a mapping/object")

    forward = raw.get("forward") or {}
    if not isinstance(forward, dict):
        raise RuntimeError("forward must be a mapping/object")

    runtime = raw.get("runtime") or {}
    if not isinstance(runtime, dict):
        raise RuntimeError("runtime must be a mapping/object")

    return _build_settings(forward, runtime, source=str(p))


def load_settings() -> Settings:
    """Load settings from a YAML file (APP_CONFIG_FILE) or from FORWARD_* environment variables."""
    app_config_file = os.getenv("APP_CONFIG_FILE")
    if app_config_file:
        return _load_settings_from_yaml(app_config_file)

    forward = {
        "api_base_url": os.getenv("FORWARD_API_BASE_URL"),
        "api_key": os.getenv("FORWARD_API_KEY"),
        "api_secret": os.getenv("FORWARD_API_SECRET"),
        "api_secret_file": os.getenv("FORWARD_API_SECRET_FILE"),
        "timeout": os.getenv("FORWARD_TIMEOUT"),
        "insecure_skip_verify": os.getenv("FORWARD_INSECURE_SKIP_VERIFY"),
        "ca_cert_path": os.getenv("FORWARD_CA_CERT_PATH"),
        "client_cert_path": os.getenv("FORWARD_CLIENT_CERT_PATH"),
        "client_key_path": os.getenv("FORWARD_CLIENT_KEY_PATH"),
        "default_network_id": os.getenv("FORWARD_DEFAULT_NETWORK_ID"),
        "default_snapshot_id": os.getenv("FORWARD_DEFAULT_SNAPSHOT_ID"),
        "default_query_limit": os.getenv("FORWARD_DEFAULT_QUERY_LIMIT"),
    }
    runtime = {
        "data_dir": os.getenv("NQE_DATA_DIR"),
        "log_level": os.getenv("LOG_LEVEL"),
        "log_dir": os.getenv("LOG_DIR"),
        "test_query_path": os.getenv("TEST_QUERY_PATH"),
    }
    return _build_settings(forward, runtime, source="environment")
