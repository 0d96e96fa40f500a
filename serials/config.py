"""Config management for Serials.

Reads `config.ini` from DATA_DIR (beside main.py unless the DATA_DIR env var
points elsewhere).
"""

from __future__ import annotations

import configparser
import dataclasses
import os
import pathlib
from typing import Optional

from .domain import RemovalPolicy
from .identity import DEFAULT_TRACKING_PARAMS
from .logging_config import get_logger

logger = get_logger(__name__)


PROJECT_ROOT = pathlib.Path(__file__).resolve().parents[1]

# DATA_DIR holds all persistent state (config.ini, serials.db, serials.log).
DATA_DIR = pathlib.Path(os.environ.get("DATA_DIR", str(PROJECT_ROOT)))
DEFAULT_CONFIG_PATH = DATA_DIR / "config.ini"


@dataclasses.dataclass
class ServerConfig:
    host: str = "127.0.0.1"
    port: int = 8080


@dataclasses.dataclass
class ScannerConfig:
    removal_policy: RemovalPolicy = RemovalPolicy.RETAIN
    preserve_order: bool = False
    tracking_params: tuple[str, ...] = DEFAULT_TRACKING_PARAMS


@dataclasses.dataclass
class FetcherConfig:
    timeout_seconds: float = 30.0
    user_agent: str = "serials-scanner/0.1"


@dataclasses.dataclass
class SerialsConfig:
    server: ServerConfig = dataclasses.field(default_factory=ServerConfig)
    scanner: ScannerConfig = dataclasses.field(default_factory=ScannerConfig)
    fetcher: FetcherConfig = dataclasses.field(default_factory=FetcherConfig)

    @property
    def server_host(self) -> str:
        return self.server.host

    @property
    def server_port(self) -> int:
        return self.server.port


def _parse_bool(value: str, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _parse_list(value: str) -> tuple[str, ...]:
    return tuple(v.strip() for v in value.split(",") if v.strip())


def _parse_policy(value: str) -> RemovalPolicy:
    try:
        return RemovalPolicy(value.strip().lower())
    except ValueError:
        logger.warning(f"Unknown removal_policy '{value}', using 'retain'")
        return RemovalPolicy.RETAIN


def load_config(config_path: Optional[pathlib.Path] = None) -> SerialsConfig:
    """Load configuration from config.ini.

    Defaults to `config.ini` in DATA_DIR.
    """
    path = config_path or DEFAULT_CONFIG_PATH
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    parser = configparser.ConfigParser()
    parser.read(path)

    server = ServerConfig(
        host=parser.get("server", "host", fallback="127.0.0.1"),
        port=parser.getint("server", "port", fallback=8080),
    )

    scanner = ScannerConfig(
        removal_policy=_parse_policy(
            parser.get("scanner", "removal_policy", fallback="retain")
        ),
        preserve_order=_parse_bool(
            parser.get("scanner", "preserve_order", fallback="false"), False
        ),
        tracking_params=_parse_list(
            parser.get(
                "scanner",
                "tracking_params",
                fallback=",".join(DEFAULT_TRACKING_PARAMS),
            )
        ),
    )

    fetcher = FetcherConfig(
        timeout_seconds=parser.getfloat("fetcher", "timeout_seconds", fallback=30.0),
        user_agent=parser.get("fetcher", "user_agent", fallback="serials-scanner/0.1"),
    )

    return SerialsConfig(server=server, scanner=scanner, fetcher=fetcher)


_cached_config: Optional[SerialsConfig] = None


def get_config() -> SerialsConfig:
    """Return the cached config. Loads from disk on first call."""
    global _cached_config
    if _cached_config is None:
        _cached_config = load_config()
    return _cached_config


def reset_config_cache() -> None:
    """Clear the cached config (useful for tests)."""
    global _cached_config
    _cached_config = None


def write_config(
    config: SerialsConfig, config_path: Optional[pathlib.Path] = None
) -> pathlib.Path:
    """Write ``config`` to config.ini, creating DATA_DIR if needed."""
    path = config_path or DEFAULT_CONFIG_PATH

    parser = configparser.ConfigParser()
    parser["server"] = {
        "host": config.server.host,
        "port": str(config.server.port),
    }
    parser["scanner"] = {
        "removal_policy": config.scanner.removal_policy.value,
        "preserve_order": "true" if config.scanner.preserve_order else "false",
        "tracking_params": ",".join(config.scanner.tracking_params),
    }
    parser["fetcher"] = {
        "timeout_seconds": str(config.fetcher.timeout_seconds),
        "user_agent": config.fetcher.user_agent,
    }

    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w") as handle:
        parser.write(handle)
    return path
