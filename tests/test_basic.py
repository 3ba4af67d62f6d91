"""
Basic tests for Survey Notes types, configuration and schema resolution.

These tests verify core functionality without requiring API keys or external services.
"""

import io
import json
import os
from unittest.mock import patch

import pytest
from rich.console import Console

from survey_notes.core.config import ConfigError, Config, get_client, load_project_env
from survey_notes.core.debug_log import DebugLogger, get_debug_logger
from survey_notes.core.progress import ProgressReporter
from survey_notes.core.schema import FUTURE_PLANS_DESCRIPTION, FUTURE_PLANS_SECTION, resolve_schema, variant_keys
from survey_notes.core.types import ChecklistItem, RoutingConfig, SectionNote, StructuredNotesResult, StructureOptions


class TestTypes:
    """Test the type definitions and data structures."""

    def test_section_note_aliases(self):
        """Test SectionNote accepts and emits camelCase names."""
        note = SectionNote(section="Flue", plainText="• Horizontal flue;", naturalLanguage="Horizontal flue.")
        assert note.plain_text == "• Horizontal flue;"
        dumped = note.model_dump(by_alias=True)
        assert dumped["plainText"] == "• Horizontal flue;"
        assert dumped["naturalLanguage"] == "Horizontal flue."

    def test_section_note_snake_case(self):
        """Test SectionNote also accepts snake_case names."""
        note = SectionNote(section="Flue", plain_text="• a;")
        assert note.plain_text == "• a;"
        assert note.natural_language == ""

    def test_checklist_item_coercion(self):
        """Test ChecklistItem coerces ids to strings and accepts depotSection."""
        item = ChecklistItem.model_validate({"id": 3, "label": "Filter", "depotSection": "New boiler and controls"})
        assert item.id == "3"
        assert item.section == "New boiler and controls"
        assert item.materials == []

    def test_routing_config_coercion(self):
        """Test RoutingConfig accepts dict rules and single-string intents."""
        routing = RoutingConfig.model_validate(
            {
                "asrNormalise": [{"pattern": "a", "replacement": "b"}, ["c", "d"]],
                "intents": {"flue": "\\bflue\\b"},
            }
        )
        assert routing.asr_normalise == [("a", "b"), ("c", "d")]
        assert routing.intents == {"flue": ["\\bflue\\b"]}

    def test_structure_options_from_dict(self):
        """Test StructureOptions validation from a camelCase dict."""
        options = StructureOptions.model_validate({"forceStructured": True, "expectedSections": ["Flue"]})
        assert options.force_structured is True
        assert options.expected_sections == ["Flue"]
        assert options.already_captured == []
        assert options.similarity_threshold is None

    def test_result_defaults(self):
        """Test the empty result shape."""
        result = StructuredNotesResult()
        dumped = result.model_dump(by_alias=True)
        assert dumped["sections"] == []
        assert dumped["customerSummary"] == ""
        assert dumped["missingInfo"] == []
        assert dumped["checkedItems"] == []
        assert result.section("Flue") is None


class TestConfig:
    """Test configuration management."""

    def test_similarity_threshold_default(self, monkeypatch):
        """Test the default similarity threshold."""
        monkeypatch.delenv("SIMILARITY_THRESHOLD", raising=False)
        assert Config().similarity_threshold == 0.6

    def test_similarity_threshold_from_env(self, monkeypatch):
        """Test the similarity threshold can be overridden."""
        monkeypatch.setenv("SIMILARITY_THRESHOLD", "0.75")
        assert Config().similarity_threshold == 0.75

    @pytest.mark.parametrize("value", ["abc", "1.5", "-0.1"])
    def test_similarity_threshold_invalid(self, monkeypatch, value):
        """Test invalid thresholds fall back to the default."""
        monkeypatch.setenv("SIMILARITY_THRESHOLD", value)
        assert Config().similarity_threshold == 0.6

    def test_routing_defaults(self, monkeypatch):
        """Test routing config settings defaults."""
        monkeypatch.delenv("SURVEY_NOTES_ROUTING_URL", raising=False)
        monkeypatch.delenv("ROUTING_CONFIG_TTL", raising=False)
        monkeypatch.delenv("LLM_MODEL", raising=False)
        config = Config()
        assert config.routing_config_source is None
        assert config.routing_config_ttl == 3600.0
        assert config.llm_model == "gpt-4o-mini"

    def test_missing_api_key(self, monkeypatch):
        """Test that a missing API key raises ConfigError."""
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(ConfigError):
            _ = Config().openai_api_key

    def test_load_project_env(self, tmp_path, monkeypatch):
        """Test loading a project-scoped .env file."""
        monkeypatch.delenv("SN_ENV_FILE", raising=False)
        monkeypatch.delenv("SURVEY_NOTES_ENV_FILE", raising=False)
        monkeypatch.delenv("SN_TEST_VALUE", raising=False)
        env_dir = tmp_path / ".survey_notes"
        env_dir.mkdir()
        (env_dir / ".env").write_text("SN_TEST_VALUE=hello\n")

        loaded = load_project_env(str(tmp_path))

        assert loaded == str(env_dir / ".env")
        assert os.getenv("SN_TEST_VALUE") == "hello"
        monkeypatch.delenv("SN_TEST_VALUE", raising=False)

    def test_get_client_uses_api_key(self, monkeypatch):
        """Test the OpenAI client is created from the environment."""
        monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
        get_client.cache_clear()
        try:
            with patch("survey_notes.core.config.OpenAI") as mock_openai:
                get_client()
            assert mock_openai.call_args.kwargs["api_key"] == "sk-test"
        finally:
            get_client.cache_clear()

    def test_get_client_without_key(self, tmp_path, monkeypatch):
        """Test get_client raises ConfigError when no key can be found."""
        for var in ("OPENAI_API_KEY", "SN_ENV_FILE", "SURVEY_NOTES_ENV_FILE", "SN_PROJECT_ROOT", "SURVEY_NOTES_PROJECT_ROOT"):
            monkeypatch.delenv(var, raising=False)
        monkeypatch.chdir(tmp_path)
        get_client.cache_clear()
        with pytest.raises(ConfigError):
            get_client()
        get_client.cache_clear()


class TestSchema:
    """Test canonical schema resolution."""

    def test_default_schema(self):
        """Test the built-in schema is used when nothing is supplied."""
        schema = resolve_schema(None)
        assert len(schema) == 14
        assert schema.names[0] == "Needs"
        assert schema.names[-1] == FUTURE_PLANS_SECTION
        assert [s.order for s in schema.sections] == list(range(1, 15))

    @pytest.mark.parametrize("raw", ["{not json", [], {}, "", 42])
    def test_malformed_input_uses_default(self, raw):
        """Test empty or malformed input falls back to the default schema."""
        assert len(resolve_schema(raw)) == 14

    def test_variant_names_collapse(self):
        """Test a later spelling variant becomes an alias of the first name."""
        schema = resolve_schema(["Pipe Works", "Pipe work", "Flue"])
        assert schema.names == ["Pipe Works", "Flue", FUTURE_PLANS_SECTION]
        assert schema.resolve("Pipe work") == "Pipe Works"
        assert schema.resolve("pipe works") == "Pipe Works"

    def test_exact_duplicates_dropped(self):
        """Test duplicate names keep the first occurrence."""
        schema = resolve_schema(["Flue", "Flue"])
        assert schema.names == ["Flue", FUTURE_PLANS_SECTION]

    def test_explicit_order(self):
        """Test entries sort by explicit order, unordered entries last."""
        schema = resolve_schema(
            [
                {"name": "Flue", "order": 2},
                {"name": "Office notes"},
                {"name": "Needs", "order": 1},
            ]
        )
        assert schema.names == ["Needs", "Flue", "Office notes", FUTURE_PLANS_SECTION]

    def test_order_ties_keep_input_position(self):
        """Test equal orders keep their original relative order."""
        schema = resolve_schema([{"name": "Flue", "order": 1}, {"name": "Needs", "order": 1}])
        assert schema.names == ["Flue", "Needs", FUTURE_PLANS_SECTION]

    def test_future_plans_always_last(self):
        """Test Future plans is moved to the end and gets a description."""
        schema = resolve_schema(["Future plans", "Flue"])
        assert schema.names == ["Flue", FUTURE_PLANS_SECTION]
        assert schema.sections[-1].description == FUTURE_PLANS_DESCRIPTION

    def test_legacy_name_dropped(self):
        """Test legacy section names are removed."""
        schema = resolve_schema(["arse_cover_notes", "Flue"])
        assert schema.names == ["Flue", FUTURE_PLANS_SECTION]

    def test_object_with_sections_key(self):
        """Test a {'sections': [...]} document with alternate name keys."""
        schema = resolve_schema({"sections": [{"title": "Flue", "description": "Flue route"}]})
        assert schema.names == ["Flue", FUTURE_PLANS_SECTION]
        assert schema.sections[0].description == "Flue route"

    def test_ampersand_variants(self):
        """Test '&' and 'and' spellings resolve to the same section."""
        schema = resolve_schema(["Controls & Settings"])
        assert schema.resolve("controls and settings") == "Controls & Settings"
        assert schema.resolve("Controls Settings") == "Controls & Settings"
        assert schema.resolve("control setting") == "Controls & Settings"
        assert "controls and settings" in schema

    def test_unknown_name(self):
        """Test unknown names do not resolve."""
        schema = resolve_schema(None)
        assert schema.resolve("Garden party") is None
        assert schema.resolve("") is None

    def test_variant_keys(self):
        """Test the lookup keys of a section name."""
        assert variant_keys("Pipe Works") == ["pipe works", "pipe work", "pipeworks", "pipework"]
        assert variant_keys("Pipework") == ["pipework"]
        assert variant_keys("") == []

    def test_one_word_spelling_resolves(self):
        """Test a one-word section name matches its two-word spelling."""
        schema = resolve_schema(["Pipework", "Pipe work", "Flue"])
        assert schema.names == ["Pipework", "Flue", "Future plans"]
        assert schema.resolve("Pipe work") == "Pipework"
        assert schema.resolve("pipe-works") == "Pipework"


class TestModelSettings:
    """Test the LLM model settings."""

    def test_temperature_default(self, monkeypatch):
        """Test the default sampling temperature."""
        monkeypatch.delenv("MODEL_TEMPERATURE", raising=False)
        assert Config().model_temperature == 0.2

    @pytest.mark.parametrize("raw", ["hot", "3.5", "-1"])
    def test_temperature_invalid(self, monkeypatch, raw):
        """Test out-of-range or unparsable temperatures fall back to the default."""
        monkeypatch.setenv("MODEL_TEMPERATURE", raw)
        assert Config().model_temperature == 0.2

    def test_reasoning_flag(self, monkeypatch):
        """Test IS_REASONING_MODEL accepts common truthy spellings."""
        monkeypatch.setenv("IS_REASONING_MODEL", "Yes")
        assert Config().is_reasoning_model is True
        monkeypatch.setenv("IS_REASONING_MODEL", "0")
        assert Config().is_reasoning_model is False


class TestDebugLogging:
    """Test the session debug logger."""

    def test_disabled_writes_nothing(self, tmp_path):
        """Test a disabled logger creates no files."""
        debug_logger = DebugLogger(str(tmp_path), enabled=False)
        assert debug_logger.log_config_refresh("routing.json", ok=True) is None
        assert not (tmp_path / ".survey_notes").exists()

    def test_records_numbered_in_order(self, tmp_path):
        """Test each event is written to its own numbered JSON file."""
        debug_logger = DebugLogger(str(tmp_path), enabled=True)
        first = debug_logger.log_routing("Flue out the back.", [{"statement": "Flue out the back.", "section": "Flue"}, {"statement": "Hello.", "section": None}])
        second = debug_logger.log_llm_response('{"sections": []}')

        assert first.name == "001_routing.json"
        assert second.name == "002_llm_response.json"
        assert first.parent == tmp_path / ".survey_notes" / "debug" / f"session_{debug_logger.session_id}"

        record = json.loads(first.read_text(encoding="utf-8"))
        assert record["event"] == "routing"
        assert record["stats"] == {"statements": 2, "dropped": 1}

    def test_shared_logger_follows_flag(self, tmp_path, monkeypatch):
        """Test the shared logger is rebuilt when SN_DEBUG changes."""
        monkeypatch.setenv("SN_DEBUG", "0")
        assert get_debug_logger(str(tmp_path)).enabled is False
        monkeypatch.setenv("SN_DEBUG", "1")
        assert get_debug_logger(str(tmp_path)).enabled is True
        monkeypatch.setenv("SN_DEBUG", "0")
        assert get_debug_logger(str(tmp_path)).enabled is False


class TestProgressReporter:
    """Test CLI progress reporting."""

    def test_noop_without_console(self):
        """Test calls before initialize do nothing."""
        progress = ProgressReporter()
        progress.step("Routing…")
        progress.complete_step()
        progress.complete_sub_step("detail")
        assert progress.done == []

    def test_steps_ticked(self):
        """Test finished stages are recorded and printed."""
        console = Console(file=io.StringIO(), force_terminal=False, width=120)
        progress = ProgressReporter()
        progress.initialize(console, "Validating input…")
        progress.step("Routing…")
        progress.complete_sub_step("Routed 3 items")
        progress.complete_step("Routing done")

        assert progress.done == ["Validating input…", "Routing done"]
        output = console.file.getvalue()
        assert "✓ Validating input…" in output
        assert "  ✓ Routed 3 items" in output

        progress.reset()
        progress.step("ignored")
        assert progress.active is None
