"""
Routing configuration loading and caching.

The routing config (ASR rules, phrase overrides, topic patterns) ships with
the package and may be overridden by a remote or local JSON document. Remote
configs are served through a stale-while-revalidate cache: the cached value
is used until its TTL runs out, the next read tries one refresh, and a failed
refresh falls back to the built-in default.
"""

import json
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Union

import requests
from pydantic import ValidationError

from .config import DEFAULT_FETCH_TIMEOUT_SECONDS, DEFAULT_ROUTING_TTL_SECONDS, get_project_metadata_dir
from .debug_log import get_debug_logger
from .types import RoutingConfig

logger = logging.getLogger(__name__)

DATA_DIR = Path(__file__).parent.parent / "data"
ROUTING_CACHE_FILENAME = "routing_cache.json"


class RoutingConfigError(Exception):
    """Raised when a routing config cannot be fetched or parsed."""

    pass


@lru_cache(maxsize=1)
def _load_builtin_routing_data() -> str:
    return (DATA_DIR / "routing.json").read_text(encoding="utf-8")


def default_routing_config() -> RoutingConfig:
    """Return the built-in routing config from package data."""
    return RoutingConfig.model_validate_json(_load_builtin_routing_data())


def parse_routing_config(raw: Union[str, bytes, Dict[str, Any]]) -> RoutingConfig:
    """
    Parse a routing config document.

    Args:
        raw: JSON text or an already-decoded dict

    Returns:
        RoutingConfig

    Raises:
        RoutingConfigError: If the document is malformed
    """
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except json.JSONDecodeError as e:
            raise RoutingConfigError(f"Routing config is not valid JSON: {e}") from e
    if not isinstance(raw, dict):
        raise RoutingConfigError(f"Routing config must be a JSON object, got {type(raw).__name__}")
    try:
        return RoutingConfig.model_validate(raw)
    except ValidationError as e:
        raise RoutingConfigError(f"Routing config has an invalid shape: {e}") from e


def merge_routing_configs(base: RoutingConfig, override: RoutingConfig) -> RoutingConfig:
    """
    Merge an override config over a base config. Override wins for conflicts.

    ASR rules are concatenated (base rules first); phrase overrides, intents
    and topic sections are replaced per key.
    """
    return RoutingConfig(
        asr_normalise=list(base.asr_normalise) + list(override.asr_normalise),
        phrase_overrides={**base.phrase_overrides, **override.phrase_overrides},
        intents={**base.intents, **override.intents},
        topic_sections={**base.topic_sections, **override.topic_sections},
    )


def fetch_routing_config(source: str, timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS, session: Optional[requests.Session] = None) -> RoutingConfig:
    """
    Fetch a routing config from a URL or a local JSON file.

    Args:
        source: http(s) URL or filesystem path
        timeout: Request timeout in seconds
        session: Optional requests session to reuse

    Returns:
        RoutingConfig as published (not merged with the default)

    Raises:
        RoutingConfigError: If the source cannot be read or parsed
    """
    if source.startswith(("http://", "https://")):
        http = session or requests.Session()
        try:
            response = http.get(source, timeout=timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            raise RoutingConfigError(f"Failed to fetch routing config from {source}: {e}") from e
        return parse_routing_config(response.text)

    try:
        text = Path(source).read_text(encoding="utf-8")
    except OSError as e:
        raise RoutingConfigError(f"Failed to read routing config file {source}: {e}") from e
    return parse_routing_config(text)


@dataclass
class CachedRoutingConfig:
    """One cache cell: when the config was stored and the config itself."""

    timestamp: float
    data: RoutingConfig


class RoutingConfigCache:
    """
    Stale-while-revalidate cache for the routing config.

    The cached value is served unconditionally until `ttl_seconds` has
    elapsed. The next `get()` then attempts one refresh through `fetcher`;
    on failure the built-in default is cached and served until the next
    expiry. Readers share the config; the last successful fetch wins.
    """

    def __init__(
        self,
        fetcher: Optional[Callable[[], RoutingConfig]] = None,
        ttl_seconds: float = DEFAULT_ROUTING_TTL_SECONDS,
        clock: Callable[[], float] = time.time,
        cache_path: Optional[Union[str, Path]] = None,
        source_label: str = "custom",
        project_root: str = ".",
    ):
        """
        Initialize the cache.

        Args:
            fetcher: Callable returning the published config, or None for default-only
            ttl_seconds: Seconds a cached config is served before refreshing
            clock: Time source, injectable for tests
            cache_path: Optional JSON file used to persist the last good config
            source_label: Source name used in debug records
            project_root: Project root whose debug session records refreshes
        """
        self.fetcher = fetcher
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self.cache_path = Path(cache_path) if cache_path else None
        self.source_label = source_label
        self.project_root = project_root
        self._entry: Optional[CachedRoutingConfig] = self._load_persisted()

    @classmethod
    def from_source(cls, source: Optional[str], ttl_seconds: float = DEFAULT_ROUTING_TTL_SECONDS, timeout: float = DEFAULT_FETCH_TIMEOUT_SECONDS, project_root: Optional[str] = None) -> "RoutingConfigCache":
        """
        Build a cache that fetches from a URL or file path.

        Remote sources are persisted under the project's .survey_notes directory.
        """
        if not source:
            return cls(ttl_seconds=ttl_seconds, project_root=project_root or ".")
        session = requests.Session()
        cache_path = None
        if source.startswith(("http://", "https://")):
            cache_path = get_project_metadata_dir(project_root) / ROUTING_CACHE_FILENAME
        return cls(
            fetcher=lambda: fetch_routing_config(source, timeout=timeout, session=session),
            ttl_seconds=ttl_seconds,
            cache_path=cache_path,
            source_label=source,
            project_root=project_root or ".",
        )

    @property
    def cached(self) -> Optional[CachedRoutingConfig]:
        return self._entry

    def get(self) -> RoutingConfig:
        """Return the current routing config, refreshing it if the TTL has elapsed."""
        entry = self._entry
        now = self.clock()
        if entry is not None and now - entry.timestamp < self.ttl_seconds:
            return entry.data

        if self.fetcher is None:
            return default_routing_config()

        return self._refresh(now)

    def invalidate(self) -> None:
        """Drop the cached config so the next `get()` refreshes."""
        self._entry = None

    def _refresh(self, now: float) -> RoutingConfig:
        debug_logger = get_debug_logger(self.project_root)
        try:
            published = self.fetcher()
        except Exception as e:
            logger.warning(f"Routing config refresh failed, using built-in default: {e}")
            debug_logger.log_config_refresh(self.source_label, ok=False, error=str(e))
            data = default_routing_config()
            self._entry = CachedRoutingConfig(timestamp=now, data=data)
            return data

        data = merge_routing_configs(default_routing_config(), published)
        self._entry = CachedRoutingConfig(timestamp=now, data=data)
        debug_logger.log_config_refresh(self.source_label, ok=True)
        self._persist(published, now)
        return data

    def _persist(self, published: RoutingConfig, now: float) -> None:
        if self.cache_path is None:
            return
        try:
            self.cache_path.parent.mkdir(parents=True, exist_ok=True)
            payload = {"timestamp": now, "data": published.model_dump(by_alias=True)}
            with open(self.cache_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2)
        except OSError as e:
            logger.warning(f"Could not persist routing config to {self.cache_path}: {e}")

    def _load_persisted(self) -> Optional[CachedRoutingConfig]:
        if self.cache_path is None or not self.cache_path.exists():
            return None
        try:
            with open(self.cache_path, "r", encoding="utf-8") as f:
                payload = json.load(f)
            published = parse_routing_config(payload["data"])
            timestamp = float(payload["timestamp"])
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValueError, RoutingConfigError) as e:
            logger.debug(f"Ignoring unreadable routing cache {self.cache_path}: {e}")
            return None
        return CachedRoutingConfig(timestamp=timestamp, data=merge_routing_configs(default_routing_config(), published))
