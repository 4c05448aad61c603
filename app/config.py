"""Config loading for EventDesk.

Reads `.eventdesk/config.yaml` (or `~/.eventdesk/config.yaml`).
Raises SystemExit on parse errors or missing `version` field.
If no config file is found, returns default values (safe to run without config).

Config search order:
  1. `config_path` argument (if provided — for testing or explicit override)
  2. EVENTDESK_CONFIG environment variable (if set)
  3. `.eventdesk/config.yaml` (working directory — for development)
  4. `~/.eventdesk/config.yaml` (home directory — for production deployments)

Environment variable overrides (applied after file parsing):
  EVENTDESK_ENV     — overrides environment ("development" | "production")
  EVENTDESK_PORT    — overrides server.port
  EVENTDESK_DB_PATH — overrides store.path
  GOOGLE_TIMEZONE_API_KEY — overrides timezone.api_key
"""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from typing import Optional

import yaml
from limits import parse as parse_rate_limit

from app.constants import (
    DEFAULT_RATE_LIMIT,
    LENIENT_RATE_LIMIT,
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS,
    STRICT_RATE_LIMIT,
    TIMEZONE_API_URL,
    UPLOAD_RATE_LIMIT,
)
from app.models.environment import Environment
from app.utils.logger import get_logger

logger = get_logger(__name__)

# ─── Version constants ────────────────────────────────────────────────────────

SUPPORTED_CONFIG_VERSION = 1

SUPPORTED_VERSIONS: frozenset[int] = frozenset({1})

# Default config search paths (EVENTDESK_CONFIG env var prepended at runtime)
DEFAULT_CONFIG_PATHS = [
    ".eventdesk/config.yaml",
    os.path.expanduser("~/.eventdesk/config.yaml"),
]


def _fail(msg: str) -> None:
    print(msg, file=sys.stderr)
    raise SystemExit(1)


# ─── Dataclasses ─────────────────────────────────────────────────────────────


@dataclass
class ServerConfig:
    """HTTP binding configuration.

    trust_proxy_headers: Take the client address for rate limiting from
                         X-Forwarded-For / X-Real-IP / CF-Connecting-IP. Enable
                         only behind a reverse proxy that sets them.
    """

    host: str = "127.0.0.1"
    port: int = 8080
    trust_proxy_headers: bool = False


@dataclass
class StoreConfig:
    """SQLite store location."""

    path: str = "~/.eventdesk/eventdesk.db"


@dataclass
class StorageConfig:
    """Local object storage for event and sponsor logos.

    logo_dir:        Directory holding ``event-logos/`` and ``sponsor-logos/``.
    public_base_url: Prefix used to build the public URL returned for a stored logo.
    """

    logo_dir: str = "~/.eventdesk/storage"
    public_base_url: str = "/storage"


@dataclass
class TimezoneConfig:
    """Coordinate → timezone lookup (Google Time Zone API)."""

    api_key: Optional[str] = None
    api_url: str = TIMEZONE_API_URL


@dataclass
class RateLimitConfig:
    """Per-class rate strings in `limits` notation ("<amount>/<granularity>")."""

    default: str = DEFAULT_RATE_LIMIT
    strict: str = STRICT_RATE_LIMIT
    lenient: str = LENIENT_RATE_LIMIT
    upload: str = UPLOAD_RATE_LIMIT
    sweep_interval_seconds: float = RATE_LIMIT_SWEEP_INTERVAL_SECONDS


@dataclass
class Config:
    """Root configuration object populated from .eventdesk/config.yaml.

    All fields have safe defaults — EventDesk can start without any config file.
    The default environment is PRODUCTION so the guards fail closed unless
    development mode is requested explicitly.
    """

    version: int = SUPPORTED_CONFIG_VERSION
    environment: Environment = Environment.PRODUCTION
    server: ServerConfig = field(default_factory=ServerConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    rate_limits: RateLimitConfig = field(default_factory=RateLimitConfig)
    timezone: TimezoneConfig = field(default_factory=TimezoneConfig)
    path: Optional[str] = None  # Path to the loaded config file

    @classmethod
    def defaults(cls) -> "Config":
        """Return a fully-default Config (no file required)."""
        return cls()

    @classmethod
    def from_dict(cls, raw: dict, path: Optional[str] = None) -> "Config":
        """Construct Config from a parsed YAML dict.

        Merges user-supplied values onto defaults; unknown keys are silently ignored.

        Raises:
            SystemExit(1): On an invalid environment or an unparseable rate string.
        """
        # ── Environment ───────────────────────────────────────────────────────
        environment = _parse_environment(raw.get("environment", "production"), source="environment")

        # ── Server ────────────────────────────────────────────────────────────
        server_raw = raw.get("server", {})
        server = ServerConfig(
            host=server_raw.get("host", "127.0.0.1"),
            port=server_raw.get("port", 8080),
            trust_proxy_headers=bool(server_raw.get("trust_proxy_headers", False)),
        )

        # ── Store / Storage ───────────────────────────────────────────────────
        store_raw = raw.get("store", {})
        store = StoreConfig(path=store_raw.get("path", StoreConfig.path))

        storage_raw = raw.get("storage", {})
        storage = StorageConfig(
            logo_dir=storage_raw.get("logo_dir", StorageConfig.logo_dir),
            public_base_url=storage_raw.get("public_base_url", StorageConfig.public_base_url),
        )

        # ── Rate limits ───────────────────────────────────────────────────────
        limits_raw = raw.get("rate_limits", {})
        rate_limits = RateLimitConfig(
            default=limits_raw.get("default", DEFAULT_RATE_LIMIT),
            strict=limits_raw.get("strict", STRICT_RATE_LIMIT),
            lenient=limits_raw.get("lenient", LENIENT_RATE_LIMIT),
            upload=limits_raw.get("upload", UPLOAD_RATE_LIMIT),
            sweep_interval_seconds=limits_raw.get(
                "sweep_interval_seconds", RATE_LIMIT_SWEEP_INTERVAL_SECONDS
            ),
        )
        for name in ("default", "strict", "lenient", "upload"):
            value = getattr(rate_limits, name)
            try:
                parse_rate_limit(value)
            except ValueError:
                _fail(
                    f"CONFIG ERROR: Invalid rate_limits.{name}: '{value}'. "
                    "Expected '<amount>/<granularity>', e.g. '60/minute'."
                )

        timezone_raw = raw.get("timezone", {})
        timezone = TimezoneConfig(
            api_key=timezone_raw.get("api_key"),
            api_url=timezone_raw.get("api_url", TIMEZONE_API_URL),
        )

        return cls(
            version=raw.get("version", SUPPORTED_CONFIG_VERSION),
            environment=environment,
            server=server,
            store=store,
            storage=storage,
            rate_limits=rate_limits,
            timezone=timezone,
            path=path,
        )


def _parse_environment(value: object, source: str) -> Environment:
    try:
        return Environment.parse(str(value))
    except ValueError:
        _fail(
            f"CONFIG ERROR: Invalid {source}: '{value}'. "
            f"Supported values: {sorted(e.value for e in Environment)}."
        )
    raise AssertionError("unreachable")


# ─── Config loading ───────────────────────────────────────────────────────────


def load_config(config_path: Optional[str] = None) -> Config:
    """Load and validate EventDesk configuration.

    If no file is found at any of the search paths, returns default Config (not an
    error). If a file is found but invalid, writes error to stderr and raises
    SystemExit(1).

    After loading (or defaulting), EVENTDESK_ENV / EVENTDESK_PORT / EVENTDESK_DB_PATH
    are applied as overrides regardless of whether a config file was found.

    Raises:
        SystemExit(1): On YAML parse error, missing ``version`` field, unsupported
                       version, invalid environment, invalid rate string, or an
                       invalid ``EVENTDESK_PORT``.
    """
    search_paths: list[str] = []
    if config_path:
        search_paths.append(config_path)
    env_config = os.environ.get("EVENTDESK_CONFIG")
    if env_config:
        search_paths.append(env_config)
    search_paths.extend(DEFAULT_CONFIG_PATHS)

    found_path: Optional[str] = None
    for candidate in search_paths:
        expanded = os.path.expanduser(candidate)
        if os.path.isfile(expanded):
            found_path = expanded
            break

    if found_path is None:
        logger.info("No config file found — using defaults", searched=search_paths)
        config = Config.defaults()
        _apply_env_overrides(config)
        return config

    logger.info("Loading config", path=found_path)

    try:
        with open(found_path) as fh:
            raw = yaml.safe_load(fh)
    except yaml.YAMLError as exc:
        _fail(
            f"CONFIG ERROR: Failed to parse {found_path}: {exc}\n"
            "EventDesk refuses to start with an invalid config. "
            "Check the YAML syntax and try again."
        )
    except OSError as exc:
        _fail(f"CONFIG ERROR: Could not read {found_path}: {exc}")

    if not isinstance(raw, dict):
        if raw is None:
            _fail(
                f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
                "Add 'version: 1' to the top of your config file."
            )
        _fail(
            f"CONFIG ERROR: {found_path} is not a valid YAML mapping.\n"
            "The config file must be a YAML dictionary at the top level."
        )

    version = raw.get("version")
    if version is None:
        _fail(
            f"CONFIG ERROR: {found_path} is missing the required 'version' field.\n"
            "Add 'version: 1' to the top of your config file."
        )

    if version not in SUPPORTED_VERSIONS:
        _fail(
            f"CONFIG ERROR: Unsupported config version: {version}. "
            f"Supported versions: {sorted(SUPPORTED_VERSIONS)}."
        )

    config = Config.from_dict(raw, path=found_path)
    _apply_env_overrides(config)

    if config.environment.is_development and config.server.host == "0.0.0.0":
        logger.warning(
            "SECURITY WARNING: development mode disables rate limiting and fails the "
            "origin check open, but the server is bound to 0.0.0.0 (all interfaces)."
        )

    logger.info(
        "Config loaded",
        path=found_path,
        version=config.version,
        environment=config.environment.value,
    )
    return config


def _apply_env_overrides(config: Config) -> None:
    """Apply environment variable overrides to a Config object in-place.

    Raises:
        SystemExit(1): If EVENTDESK_ENV is unknown or EVENTDESK_PORT is not an integer.
    """
    env_mode = os.environ.get("EVENTDESK_ENV")
    if env_mode:
        config.environment = _parse_environment(env_mode, source="EVENTDESK_ENV")

    env_port = os.environ.get("EVENTDESK_PORT")
    if env_port is not None:
        try:
            config.server.port = int(env_port)
        except ValueError:
            _fail(
                f"CONFIG ERROR: EVENTDESK_PORT environment variable is not a valid "
                f"integer: '{env_port}'"
            )

    env_db = os.environ.get("EVENTDESK_DB_PATH")
    if env_db:
        config.store.path = env_db

    env_timezone_key = os.environ.get("GOOGLE_TIMEZONE_API_KEY")
    if env_timezone_key:
        config.timezone.api_key = env_timezone_key
