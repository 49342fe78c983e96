"""Central configuration.

Values come from the process environment, optionally seeded from a
``config.env`` file (``WATCH_PROGRESS_CONFIG_FILE`` points at an explicit one).

Env vars:
  WATCH_PROGRESS_DATA_DIR     - directory for writable application data (created)
  WATCH_PROGRESS_DB_PATH      - explicit path to SQLite db file (overrides DATA dir)
  WATCH_PROGRESS_CACHE_DIR    - directory for the local progress cache
  WATCH_PROGRESS_REMOTE_URL   - base url of the progress server (client side)
  WATCH_PROGRESS_PUSH_URL     - websocket url of the push side channel
  WATCH_PROGRESS_LOG_LEVEL    - DEBUG, INFO, WARNING, ERROR, CRITICAL
  WATCH_PROGRESS_*            - tracker thresholds and sync cadences (seconds / percent)
"""
from pathlib import Path
import os

from dotenv import load_dotenv
from pydantic import BaseModel

from watch_progress import __version__

_diagnostics: list[str] = []


def _load_env_file() -> None:
    explicit = os.getenv('WATCH_PROGRESS_CONFIG_FILE')
    options = [Path(explicit)] if explicit else []
    options += [Path.cwd() / 'config.env', Path.cwd() / 'backend' / 'config.env']
    for path in options:
        if path.is_file():
            # real environment variables win over the file
            load_dotenv(path, override=False)
            _diagnostics.append(f"env_file={path}")
            return


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, '').strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        _diagnostics.append(f"invalid_float name={name} value={raw!r} using={default}")
        return default


def _select_data_dir() -> Path:
    """First creatable directory among the configured and default locations."""
    options = [os.getenv('WATCH_PROGRESS_DATA_DIR'), str(Path.cwd() / 'data')]
    seen: list[str] = []
    for option in options:
        if not option or option in seen:
            continue
        seen.append(option)
        path = Path(option)
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:  # pragma: no cover
            _diagnostics.append(f"data_dir_unusable path={path} err={exc}")
            continue
        _diagnostics.append(f"data_dir={path}")
        return path
    fallback = Path(__file__).resolve().parents[2] / 'data'
    fallback.mkdir(parents=True, exist_ok=True)
    _diagnostics.append(f"data_dir_fallback={fallback}")
    return fallback


_load_env_file()
data_dir = _select_data_dir()

db_path = os.getenv('WATCH_PROGRESS_DB_PATH')
if db_path:
    db_path = Path(db_path)
else:
    db_path = data_dir / 'progress.db'

cache_dir = Path(os.getenv('WATCH_PROGRESS_CACHE_DIR') or (data_dir / 'cache'))


class Settings(BaseModel):
    app_name: str = 'Watch Progress Server'
    database_url: str = f'sqlite:///{db_path}'
    api_v1_prefix: str = '/api/v1'
    version: str = os.getenv('WATCH_PROGRESS_VERSION', __version__)
    data_dir: Path = data_dir
    db_file: Path = db_path
    cache_dir: Path = cache_dir
    log_level: str = os.getenv('WATCH_PROGRESS_LOG_LEVEL', 'INFO')
    host: str = os.getenv('WATCH_PROGRESS_HOST', '0.0.0.0')
    port: int = int(_env_float('WATCH_PROGRESS_PORT', 5000))
    # Client side: where the tracker pushes progress
    remote_url: str = os.getenv('WATCH_PROGRESS_REMOTE_URL', 'http://localhost:5000/api/v1')
    push_url: str = os.getenv('WATCH_PROGRESS_PUSH_URL', 'ws://localhost:5000/api/v1/ws/progress')
    remote_timeout: float = _env_float('WATCH_PROGRESS_REMOTE_TIMEOUT', 10.0)
    # Tracker thresholds
    skip_threshold: float = _env_float('WATCH_PROGRESS_SKIP_THRESHOLD', 10.0)
    min_watch_time: float = _env_float('WATCH_PROGRESS_MIN_WATCH', 1.0)
    merge_tolerance: float = _env_float('WATCH_PROGRESS_MERGE_TOLERANCE', 0.1)
    completion_threshold: float = _env_float('WATCH_PROGRESS_COMPLETION_THRESHOLD', 99.5)
    # Sync cadences
    ui_interval: float = _env_float('WATCH_PROGRESS_UI_INTERVAL', 1.0)
    persist_interval: float = _env_float('WATCH_PROGRESS_PERSIST_INTERVAL', 5.0)
    diagnostics: list[str] | None = _diagnostics

settings = Settings()
