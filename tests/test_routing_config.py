"""
Tests for routing config parsing, fetching and the stale-while-revalidate cache.

Network access is never used: remote fetches go through a dummy requests session.
"""

import json

import pytest
import requests

from survey_notes.core.router import TOPIC_PRIORITY
from survey_notes.core.routing import (
    RoutingConfigCache,
    RoutingConfigError,
    default_routing_config,
    fetch_routing_config,
    merge_routing_configs,
    parse_routing_config,
)
from survey_notes.core.structure import NotesStructurer
from survey_notes.core.types import RoutingConfig


class FakeClock:
    """Manually advanced time source."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class DummyResponse:
    def __init__(self, text: str, status_code: int = 200):
        self.text = text
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class DummySession:
    def __init__(self, response: DummyResponse):
        self.response = response
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        return self.response


class TestParsing:
    """Test routing config parsing and merging."""

    def test_default_config(self):
        """Test the built-in config covers every built-in topic."""
        routing = default_routing_config()
        assert set(TOPIC_PRIORITY) <= set(routing.intents)
        assert set(TOPIC_PRIORITY) <= set(routing.topic_sections)
        assert routing.asr_normalise
        assert routing.phrase_overrides["parking permit"] == "Restrictions to work"

    def test_parse_json_text(self):
        """Test parsing a JSON document."""
        routing = parse_routing_config('{"intents": {"pets": "\\\\bdogs?\\\\b"}, "topicSections": {"pets": "External hazards"}}')
        assert routing.intents == {"pets": ["\\bdogs?\\b"]}
        assert routing.topic_sections == {"pets": "External hazards"}

    @pytest.mark.parametrize("raw", ["{oops", "[1, 2]", '{"intents": 5}'])
    def test_parse_errors(self, raw):
        """Test malformed documents raise RoutingConfigError."""
        with pytest.raises(RoutingConfigError):
            parse_routing_config(raw)

    def test_merge_override_wins(self):
        """Test ASR rules concatenate and keyed entries are replaced."""
        base = default_routing_config()
        override = RoutingConfig(
            asr_normalise=[("\\bboyler\\b", "boiler")],
            intents={"flue": ["\\bchimney\\b"]},
            phrase_overrides={"parking permit": "Office notes"},
        )
        merged = merge_routing_configs(base, override)
        assert merged.asr_normalise == base.asr_normalise + [("\\bboyler\\b", "boiler")]
        assert merged.intents["flue"] == ["\\bchimney\\b"]
        assert merged.intents["controls"] == base.intents["controls"]
        assert merged.phrase_overrides["parking permit"] == "Office notes"


class TestFetching:
    """Test fetching from URLs and files."""

    def test_fetch_from_file(self, tmp_path):
        """Test reading a local config file."""
        path = tmp_path / "routing.json"
        path.write_text(json.dumps({"phraseOverrides": {"hello": "Flue"}}))
        assert fetch_routing_config(str(path)).phrase_overrides == {"hello": "Flue"}

    def test_fetch_missing_file(self, tmp_path):
        """Test a missing file raises RoutingConfigError."""
        with pytest.raises(RoutingConfigError):
            fetch_routing_config(str(tmp_path / "missing.json"))

    def test_fetch_from_url(self):
        """Test fetching through a requests session."""
        session = DummySession(DummyResponse('{"phraseOverrides": {"hello": "Flue"}}'))
        routing = fetch_routing_config("https://example.test/routing.json", timeout=2.0, session=session)
        assert routing.phrase_overrides == {"hello": "Flue"}
        assert session.calls == [("https://example.test/routing.json", 2.0)]

    def test_fetch_http_error(self):
        """Test HTTP errors raise RoutingConfigError."""
        session = DummySession(DummyResponse("", status_code=503))
        with pytest.raises(RoutingConfigError):
            fetch_routing_config("https://example.test/routing.json", session=session)


class TestRoutingConfigCache:
    """Test the TTL cache."""

    @pytest.fixture
    def clock(self):
        return FakeClock()

    def _counting_fetcher(self, calls, routing=None, error=None):
        def fetcher():
            calls.append(1)
            if error is not None:
                raise error
            return routing or RoutingConfig(phrase_overrides={"hello": "Flue"})

        return fetcher

    def test_no_fetcher_uses_default(self):
        """Test a cache without a source serves the built-in config."""
        cache = RoutingConfigCache()
        assert cache.get() == default_routing_config()
        assert cache.cached is None

    def test_cached_until_ttl(self, clock):
        """Test the fetched config is served until the TTL runs out."""
        calls = []
        cache = RoutingConfigCache(fetcher=self._counting_fetcher(calls), ttl_seconds=60, clock=clock)

        first = cache.get()
        assert first.phrase_overrides["hello"] == "Flue"
        assert "magnetic filter" in first.phrase_overrides
        assert len(calls) == 1

        clock.now += 30
        cache.get()
        assert len(calls) == 1

        clock.now += 31
        cache.get()
        assert len(calls) == 2

    def test_failed_refresh_caches_default(self, clock):
        """Test a failed refresh serves the default until the next expiry."""
        calls = []
        cache = RoutingConfigCache(fetcher=self._counting_fetcher(calls, error=RoutingConfigError("down")), ttl_seconds=60, clock=clock)

        assert cache.get() == default_routing_config()
        assert cache.cached.data == default_routing_config()
        cache.get()
        assert len(calls) == 1

        clock.now += 61
        cache.get()
        assert len(calls) == 2

    def test_network_error_handled(self, clock):
        """Test requests errors never escape get()."""
        calls = []
        cache = RoutingConfigCache(fetcher=self._counting_fetcher(calls, error=requests.ConnectionError("offline")), ttl_seconds=60, clock=clock)
        assert cache.get() == default_routing_config()

    def test_unexpected_fetcher_error_handled(self, clock):
        """Test any fetcher failure falls back to the default config."""
        calls = []
        cache = RoutingConfigCache(fetcher=self._counting_fetcher(calls, error=RuntimeError("boom")), ttl_seconds=60, clock=clock)
        assert cache.get() == default_routing_config()
        assert NotesStructurer(routing_cache=cache).structure("Flue out the back wall.").section("Flue").plain_text == "• Flue out the back wall;"

    def test_refresh_logged_under_project_root(self, tmp_path, clock, monkeypatch):
        """Test refresh debug records land in the cache's project root."""
        monkeypatch.setenv("SN_DEBUG", "1")
        cache = RoutingConfigCache(fetcher=self._counting_fetcher([]), ttl_seconds=60, clock=clock, project_root=str(tmp_path))
        cache.get()
        records = list((tmp_path / ".survey_notes" / "debug").glob("session_*/*_config_refresh.json"))
        assert len(records) == 1
        assert json.loads(records[0].read_text(encoding="utf-8"))["ok"] is True

    def test_invalidate(self, clock):
        """Test invalidation forces a refresh."""
        calls = []
        cache = RoutingConfigCache(fetcher=self._counting_fetcher(calls), ttl_seconds=60, clock=clock)
        cache.get()
        cache.invalidate()
        assert cache.cached is None
        cache.get()
        assert len(calls) == 2

    def test_persisted_config_reused(self, tmp_path, clock):
        """Test a persisted config is served by a new cache within the TTL."""
        cache_path = tmp_path / "routing_cache.json"
        RoutingConfigCache(fetcher=self._counting_fetcher([]), ttl_seconds=60, clock=clock, cache_path=cache_path).get()
        payload = json.loads(cache_path.read_text())
        assert payload["timestamp"] == 1000.0
        assert payload["data"]["phraseOverrides"] == {"hello": "Flue"}

        calls = []
        fresh = RoutingConfigCache(fetcher=self._counting_fetcher(calls, error=RoutingConfigError("down")), ttl_seconds=60, clock=clock, cache_path=cache_path)
        assert fresh.get().phrase_overrides["hello"] == "Flue"
        assert calls == []

    def test_malformed_persisted_file_ignored(self, tmp_path):
        """Test an unreadable cache file is ignored."""
        cache_path = tmp_path / "routing_cache.json"
        cache_path.write_text("{oops")
        cache = RoutingConfigCache(cache_path=cache_path)
        assert cache.cached is None

    def test_from_source_without_source(self):
        """Test from_source with no source is default-only."""
        cache = RoutingConfigCache.from_source(None)
        assert cache.fetcher is None

    def test_from_file_source(self, tmp_path):
        """Test from_source reads a local file."""
        path = tmp_path / "routing.json"
        path.write_text(json.dumps({"phraseOverrides": {"back boiler": "Future plans"}}))
        cache = RoutingConfigCache.from_source(str(path), project_root=str(tmp_path))
        assert cache.cache_path is None
        assert cache.project_root == str(tmp_path)
        assert cache.get().phrase_overrides["back boiler"] == "Future plans"

    def test_structurer_uses_cached_config(self, clock):
        """Test structuring picks up phrase overrides from the cache."""
        routing = RoutingConfig(phrase_overrides={"back boiler": "Future plans"})
        cache = RoutingConfigCache(fetcher=self._counting_fetcher([], routing=routing), ttl_seconds=60, clock=clock)
        result = NotesStructurer(routing_cache=cache).structure("Remove the back boiler next visit.")
        assert "back boiler" in result.section("Future plans").plain_text
