import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict


BASE_DIR = Path(__file__).resolve().parent
DEFAULT_CONFIG_PATH = BASE_DIR.parent / "client_config.json"

DEFAULT_CLIENT_CONFIG: Dict[str, Any] = {
    "api_base_url": "http://localhost:8000",
    "state_dir": ".talent_search",
    "default_top_k": 5,
    "poll_interval_sec": 3.0,
    "request_timeout_sec": 30.0,
    "upload_timeout_sec": 120.0,
    "user_agent": "talent-search-client/0.1",
}


@dataclass
class ClientConfig:
    api_base_url: str
    state_dir: str
    default_top_k: int
    poll_interval_sec: float
    request_timeout_sec: float
    upload_timeout_sec: float
    user_agent: str


def debug_enabled() -> bool:
    return str(os.getenv("TALENT_SEARCH_DEBUG", "0")).strip().lower() in {"1", "true", "yes"}


def _clamp_int(raw: Any, default: int, lo: int, hi: int) -> int:
    try:
        value = int(raw)
    except (TypeError, ValueError):
        value = default
    return max(lo, min(value, hi))


def _clamp_float(raw: Any, default: float, lo: float, hi: float) -> float:
    try:
        value = float(raw)
    except (TypeError, ValueError):
        value = default
    return max(lo, min(value, hi))


def _read_config_file(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except Exception as exc:
        print(f"[config] ignoring unreadable {path}: {exc}")
        return {}
    if not isinstance(raw, dict):
        return {}
    return raw


def load_client_config(path: Path | None = None) -> ClientConfig:
    if path is None:
        env_path = str(os.getenv("TALENT_SEARCH_CONFIG", "")).strip()
        path = Path(env_path) if env_path else DEFAULT_CONFIG_PATH
    default = DEFAULT_CLIENT_CONFIG
    raw = _read_config_file(path)

    api_base_url = str(raw.get("api_base_url", default["api_base_url"]) or default["api_base_url"])
    env_url = str(os.getenv("TALENT_SEARCH_API_URL", "")).strip()
    if env_url:
        api_base_url = env_url

    state_dir = str(raw.get("state_dir", default["state_dir"]) or default["state_dir"])
    env_state_dir = str(os.getenv("TALENT_SEARCH_STATE_DIR", "")).strip()
    if env_state_dir:
        state_dir = env_state_dir

    user_agent = str(raw.get("user_agent", default["user_agent"]) or default["user_agent"])

    return ClientConfig(
        api_base_url=api_base_url.rstrip("/"),
        state_dir=state_dir,
        default_top_k=_clamp_int(raw.get("default_top_k"), default["default_top_k"], 1, 50),
        poll_interval_sec=_clamp_float(
            raw.get("poll_interval_sec"), default["poll_interval_sec"], 0.5, 60.0
        ),
        request_timeout_sec=_clamp_float(
            raw.get("request_timeout_sec"), default["request_timeout_sec"], 1.0, 300.0
        ),
        upload_timeout_sec=_clamp_float(
            raw.get("upload_timeout_sec"), default["upload_timeout_sec"], 1.0, 600.0
        ),
        user_agent=user_agent,
    )
