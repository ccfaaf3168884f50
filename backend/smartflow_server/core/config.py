"""Central configuration.

The server owns no storage: every row lives in the hosted table API. The
only things configured here are how to reach that API and how to serve.

Env vars:
  SMARTFLOW_CONFIG_FILE    - explicit env file to load before anything else
  SMARTFLOW_STORE_URL      - base URL of the hosted table API (no trailing /rest/v1)
  SMARTFLOW_STORE_KEY      - anon/service key sent as `apikey` + bearer token
  SMARTFLOW_STORE_TIMEOUT  - per-request timeout in seconds
  SMARTFLOW_API_KEY        - optional shared key required by the HTTP API
  SMARTFLOW_LOG_LEVEL      - DEBUG, INFO, WARNING, ERROR, CRITICAL
  SMARTFLOW_LOG_TICKS      - 1 to keep per-tick overlay log lines
  SMARTFLOW_VERSION        - override reported version
"""

from pathlib import Path
import os

from dotenv import load_dotenv
from pydantic import BaseModel

from smartflow_server import __version__

_diagnostics: list[str] = []


def _env_file_candidates() -> list[Path]:
    # Local runs keep the store key in backend/config.env (see config.sample.env)
    # instead of the shell or docker-compose.
    candidates = []
    override = os.getenv('SMARTFLOW_CONFIG_FILE')
    if override:
        candidates.append(Path(override))
    candidates.append(Path.cwd() / 'config.env')
    candidates.append(Path.cwd() / 'backend' / 'config.env')
    return candidates


def _load_env_file() -> Path | None:
    for path in _env_file_candidates():
        try:
            if path.is_file():
                load_dotenv(path)
                return path
        except OSError as exc:
            _diagnostics.append(f"invalid_env_file {path} error={exc}")
    return None


_env_file = _load_env_file()
_diagnostics.append(f"env_file={_env_file or '<none>'}")


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError:
        _diagnostics.append(f"invalid_float {name}={value!r} using={default}")
        return default


_docker_mode = _env_flag("DOCKER")
if _docker_mode:
    _diagnostics.append("docker_mode=true")

_store_url = (os.getenv('SMARTFLOW_STORE_URL') or '').strip()
if _store_url:
    _diagnostics.append(f"store_url={_store_url}")
else:
    _diagnostics.append("store_url=<unset>")

_store_key = (os.getenv('SMARTFLOW_STORE_KEY') or '').strip() or None
_diagnostics.append(f"store_key_configured={bool(_store_key)}")

_shared_key = (os.getenv('SMARTFLOW_API_KEY') or '').strip() or None


class Settings(BaseModel):
    app_name: str = 'SmartFlow Backend'
    api_v1_prefix: str = '/api/v1'
    version: str = os.getenv('SMARTFLOW_VERSION', __version__)
    # Logging level for the backend (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = os.getenv('SMARTFLOW_LOG_LEVEL', 'INFO')
    entity_store_url: str = _store_url
    entity_store_key: str | None = _store_key
    request_timeout_s: float = _env_float('SMARTFLOW_STORE_TIMEOUT', 15.0)
    shared_api_key: str | None = _shared_key
    docker_mode: bool = _docker_mode
    # Let per-tick overlay logs through (noisy; player debugging only)
    log_playback_ticks: bool = _env_flag('SMARTFLOW_LOG_TICKS')
    diagnostics: list[str] | None = _diagnostics

settings = Settings()
