"""Runtime settings for json-proxy.

Settings are read from environment variables. A `.env` file is loaded first
when present so local development does not need exported variables.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

MAX_CONTENT_LENGTH = 2 * 1024 * 1024
DEFAULT_USER_AGENT = "JSON-Proxy-Service/1.0"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 3000

    # Fixed-window limiter: at most `rate_limit_max` requests per client per window.
    rate_limit_window: float = 60.0
    rate_limit_max: int = 30
    rate_limit_max_entries: int = 10_000

    probe_timeout: float = 10.0
    fetch_timeout: float = 10.0
    max_redirects: int = 5
    max_content_length: int = MAX_CONTENT_LENGTH

    # Prober only accepts 2xx when set; otherwise any completed response counts.
    strict_status_check: bool = True
    # Apply the limiter to GET /proxy as well as POST /create-proxy.
    rate_limit_fetch_flow: bool = True
    # Reject literal private/loopback addresses and localhost names.
    block_private_networks: bool = False
    # Key the limiter on X-Forwarded-For / X-Real-IP instead of the socket peer.
    # Only safe behind a proxy that overwrites those headers.
    trust_forwarded_headers: bool = False

    proxy_path: str = "/proxy"
    user_agent: str = DEFAULT_USER_AGENT
    log_level: str = "INFO"


def load_dotenv_files() -> None:
    # Try current dir, then home dir
    for env_path in [Path(".env"), Path.home() / ".json-proxy.env"]:
        if env_path.exists():
            load_dotenv(env_path)
            break


def _get(env: Mapping[str, str], *names: str) -> str | None:
    for name in names:
        value = env.get(name)
        if value is not None and value.strip() != "":
            return value.strip()
    return None


def _as_bool(name: str, value: str) -> bool:
    v = value.lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{name}: expected a boolean, got {value!r}")


def _as_int(name: str, value: str, *, minimum: int = 0) -> int:
    try:
        out = int(value)
    except ValueError:
        raise ValueError(f"{name}: expected an integer, got {value!r}") from None
    if out < minimum:
        raise ValueError(f"{name}: must be >= {minimum}, got {out}")
    return out


def _as_float(name: str, value: str) -> float:
    try:
        out = float(value)
    except ValueError:
        raise ValueError(f"{name}: expected a number, got {value!r}") from None
    if out <= 0:
        raise ValueError(f"{name}: must be > 0, got {out}")
    return out


def settings_from_env(env: Mapping[str, str]) -> Settings:
    """Build Settings from a mapping of environment variables.

    Unset variables keep their defaults; malformed ones raise ValueError.
    """
    defaults = Settings()
    kwargs: dict[str, object] = {}

    if (v := _get(env, "JSON_PROXY_HOST")) is not None:
        kwargs["host"] = v
    if (v := _get(env, "JSON_PROXY_PORT", "PORT")) is not None:
        kwargs["port"] = _as_int("JSON_PROXY_PORT", v, minimum=1)

    if (v := _get(env, "JSON_PROXY_RATE_LIMIT_WINDOW")) is not None:
        kwargs["rate_limit_window"] = _as_float("JSON_PROXY_RATE_LIMIT_WINDOW", v)
    if (v := _get(env, "JSON_PROXY_RATE_LIMIT_MAX")) is not None:
        kwargs["rate_limit_max"] = _as_int("JSON_PROXY_RATE_LIMIT_MAX", v, minimum=1)
    if (v := _get(env, "JSON_PROXY_RATE_LIMIT_MAX_ENTRIES")) is not None:
        kwargs["rate_limit_max_entries"] = _as_int("JSON_PROXY_RATE_LIMIT_MAX_ENTRIES", v, minimum=1)

    if (v := _get(env, "JSON_PROXY_PROBE_TIMEOUT")) is not None:
        kwargs["probe_timeout"] = _as_float("JSON_PROXY_PROBE_TIMEOUT", v)
    if (v := _get(env, "JSON_PROXY_FETCH_TIMEOUT")) is not None:
        kwargs["fetch_timeout"] = _as_float("JSON_PROXY_FETCH_TIMEOUT", v)
    if (v := _get(env, "JSON_PROXY_MAX_REDIRECTS")) is not None:
        kwargs["max_redirects"] = _as_int("JSON_PROXY_MAX_REDIRECTS", v)
    if (v := _get(env, "JSON_PROXY_MAX_CONTENT_LENGTH")) is not None:
        kwargs["max_content_length"] = _as_int("JSON_PROXY_MAX_CONTENT_LENGTH", v, minimum=1)

    if (v := _get(env, "JSON_PROXY_STRICT_STATUS")) is not None:
        kwargs["strict_status_check"] = _as_bool("JSON_PROXY_STRICT_STATUS", v)
    if (v := _get(env, "JSON_PROXY_RATE_LIMIT_FETCH")) is not None:
        kwargs["rate_limit_fetch_flow"] = _as_bool("JSON_PROXY_RATE_LIMIT_FETCH", v)
    if (v := _get(env, "JSON_PROXY_BLOCK_PRIVATE")) is not None:
        kwargs["block_private_networks"] = _as_bool("JSON_PROXY_BLOCK_PRIVATE", v)
    if (v := _get(env, "JSON_PROXY_TRUST_FORWARDED")) is not None:
        kwargs["trust_forwarded_headers"] = _as_bool("JSON_PROXY_TRUST_FORWARDED", v)

    if (v := _get(env, "JSON_PROXY_PROXY_PATH")) is not None:
        kwargs["proxy_path"] = v if v.startswith("/") else "/" + v
    if (v := _get(env, "JSON_PROXY_USER_AGENT")) is not None:
        kwargs["user_agent"] = v
    if (v := _get(env, "JSON_PROXY_LOG_LEVEL")) is not None:
        kwargs["log_level"] = v.upper()

    if not kwargs:
        return defaults
    return Settings(**kwargs)  # type: ignore[arg-type]


def load_settings() -> Settings:
    load_dotenv_files()
    return settings_from_env(os.environ)
