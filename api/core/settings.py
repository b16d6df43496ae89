"""
Process settings, read once from the environment at startup.

`DATABASE_URL` wins when set. Otherwise the DSN is assembled from the
`DB_HOST`, `DB_USER`, `DB_PASSWORD`, `DB_NAME` and `DB_PORT` variables.

An optional dotenv file is loaded first. Variables already present in the
process environment take precedence over the file.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import parse_qsl, quote, urlencode, urlsplit, urlunsplit

from dotenv import load_dotenv

ENV_FILE_VAR = "QUOTEMANAGER_ENV_FILE"
DEFAULT_ENV_FILE = ".env"

DEFAULT_CORS_ORIGINS = (
    "http://localhost:5173",
    "http://127.0.0.1:5173",
)


def _env_str(name: str, default: str) -> str:
    return os.environ.get(name, default).strip() or default


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_seconds(name: str, default: float) -> float:
    # Accepts plain seconds or a duration with an ms/s/m suffix ("5s", "500ms").
    raw = os.environ.get(name, "").strip().lower()
    if not raw:
        return default
    scale = 1.0
    for suffix, factor in (("ms", 0.001), ("s", 1.0), ("m", 60.0)):
        if raw.endswith(suffix):
            raw, scale = raw[: -len(suffix)], factor
            break
    try:
        value = float(raw) * scale
    except ValueError:
        return default
    return value if value > 0 else default


def _env_list(
name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def sanitize_database_url(url: str) -> str:
    # asyncpg rejects libpq-only query params such as sslmode.
    parts = urlsplit(url)
    if not parts.query:
        return url

    params = [(k, v) for (k, v) in parse_qsl(parts.query, keep_blank_values=True) if k != "sslmode"]
    query = urlencode(params)
    return urlunsplit((parts.scheme, parts.netloc, parts.path, query, parts.fragment))


@dataclass(frozen=True)
class DBSettings:
    host: str = "db"
    user: str = "postgres"
    password: str = "postgres"
    name: str = "postgres"
    port: int = 5432
    url: str = ""

    def dsn(self) -> str:
        if self.url:
            return sanitize_database_url(self.url)
        return "postgresql://{user}:{password}@{host}:{port}/{name}".format(
            user=quote(self.user, safe=""),
            password=quote(self.password, safe=""),
            host=self.host,
            port=self.port,
            name=quote(self.name, safe=""),
        )

    def redacted_dsn(self) -> str:
        """
        DSN with the password masked, safe for logs.
        """
        parts = urlsplit(self.dsn())
        if parts.password is None:
            return self.dsn()
        netloc = parts.netloc.replace(f":{parts.password}@", ":***@", 1)
        return urlunsplit((parts.scheme, netloc, parts.path, parts.query, parts.fragment))


@dataclass(frozen=True)
class Settings:
    db: DBSettings = field(default_factory=DBSettings)
    pool_min_size: int = 1
    pool_max_size: int = 5
    command_timeout: float = 30.0
    log_level: str = "DEBUG"
    cors_origins: tuple[str, ...] = DEFAULT_CORS_ORIGINS
    http_address: str = "localhost:8081"
    http_timeout: float = 5.0

    def http_host_port(self) -> tuple[str, int]:
        host, _, port = self.http_address.rpartition(":")
        host = host.strip("[]")
        if not host or not port.isdigit():
            return "localhost", 8081
        return host, int(port)


def load_env_file(env_file: str | None = None) -> Path | None:
    """
    Load a dotenv file into the process environment without overriding it.

    The path comes from the argument, then `QUOTEMANAGER_ENV_FILE`. An explicit
    path must exist; the default `.env` is optional.
    """
    explicit = env_file or os.environ.get(ENV_FILE_VAR, "").strip()
    path = Path(explicit or DEFAULT_ENV_FILE)
    if not path.is_file():
        if explicit:
            raise FileNotFoundError(f"env file not found: {path}")
        return None
    load_dotenv(path, override=False)
    return path


def load_settings(env_file: str | None = None) -> Settings:
    load_env_file(env_file)
    db = DBSettings(
        host=_env_str("DB_HOST", "db"),
        user=_env_str("DB_USER", "postgres"),
        password=_env_str("DB_PASSWORD", "postgres"),
        name=_env_str("DB_NAME", "postgres"),
        port=_env_int("DB_PORT", 5432),
        url=os.environ.get("DATABASE_URL", "").strip(),
    )
    min_size = max(0, _env_int("DB_POOL_MIN_SIZE", 1))
    max_size = max(1, min_size, _env_int("DB_POOL_MAX_SIZE", 5))
    return Settings(
        db=db,
        pool_min_size=min_size,
        pool_max_size=max_size,
        command_timeout=_env_float("DB_COMMAND_TIMEOUT", 30.0),
        log_level=_env_str("LOG_LEVEL", "DEBUG").upper(),
        cors_origins=_env_list("CORS_ORIGINS", DEFAULT_CORS_ORIGINS),
        http_address=_env_str("HTTP_SERVER_ADDRESS", "localhost:8081"),
        http_timeout=_env_seconds("HTTP_SERVER_TIMEOUT", 5.0),
    )
