"""
Configuration management for Survey Notes.

Settings come from environment variables: the similarity threshold, the
routing-config source and its cache timings, and the chat model used by the
LLM structuring path. A project-scoped .env under .survey_notes/ is loaded
explicitly with python-dotenv; nothing is loaded at import time.
"""

import logging
import os
from functools import lru_cache
from pathlib import Path
from typing import Iterator, Optional

from dotenv import load_dotenv
from openai import OpenAI

logger = logging.getLogger(__name__)

DEFAULT_SIMILARITY_THRESHOLD = 0.6
DEFAULT_ROUTING_TTL_SECONDS = 3600.0
DEFAULT_FETCH_TIMEOUT_SECONDS = 5.0
DEFAULT_LLM_MODEL = "gpt-4o-mini"
DEFAULT_MODEL_TEMPERATURE = 0.2

METADATA_DIRNAME = ".survey_notes"
ENV_FILENAME = os.getenv("SN_ENV_FILENAME", ".env")
ENV_FILE_VARS = ("SN_ENV_FILE", "SURVEY_NOTES_ENV_FILE")
PROJECT_ROOT_VARS = ("SN_PROJECT_ROOT", "SURVEY_NOTES_PROJECT_ROOT")

TRUE_VALUES = ("true", "1", "yes", "on")


class ConfigError(Exception):
    """Raised when survey-notes configuration is missing or unusable."""

    pass


@lru_cache(maxsize=32)
def load_config(env_path: str, override: bool = False) -> None:
    """Load one .env file into the process environment (once per path)."""
    load_dotenv(dotenv_path=env_path, override=override)


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} value: {os.getenv(name)!r}. Using {default} as default.")
        return default


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid {name} value: {os.getenv(name)!r}. Using {default} as default.")
        return default


class Config:
    """Environment-backed settings, read on every access."""

    @property
    def similarity_threshold(self) -> float:
        """Jaccard threshold for near-duplicate detection (default: 0.6)."""
        threshold = _env_float("SIMILARITY_THRESHOLD", DEFAULT_SIMILARITY_THRESHOLD)
        if not (0.0 <= threshold <= 1.0):
            logger.warning(f"Invalid SIMILARITY_THRESHOLD value: {threshold}. Using {DEFAULT_SIMILARITY_THRESHOLD} as default.")
            return DEFAULT_SIMILARITY_THRESHOLD
        return threshold

    @property
    def routing_config_source(self) -> Optional[str]:
        """Routing config URL or file path, if one is configured."""
        return os.getenv("SURVEY_NOTES_ROUTING_URL") or None

    @property
    def routing_config_ttl(self) -> float:
        """Seconds a fetched routing config is served before refreshing (default: 3600)."""
        ttl = _env_float("ROUTING_CONFIG_TTL", DEFAULT_ROUTING_TTL_SECONDS)
        if ttl < 0:
            logger.warning(f"Invalid ROUTING_CONFIG_TTL value: {ttl}. Using {DEFAULT_ROUTING_TTL_SECONDS} as default.")
            return DEFAULT_ROUTING_TTL_SECONDS
        return ttl

    @property
    def routing_fetch_timeout(self) -> float:
        """Routing config fetch timeout in seconds (default: 5)."""
        return _env_float("ROUTING_FETCH_TIMEOUT", DEFAULT_FETCH_TIMEOUT_SECONDS)

    @property
    def openai_api_key(self) -> str:
        """OpenAI API key; only the LLM structuring path needs it."""
        key = os.getenv("OPENAI_API_KEY")
        if not key:
            raise ConfigError("OPENAI_API_KEY is not set; it is required for --llm structuring.")
        return key

    @property
    def llm_model(self) -> str:
        """Chat model for the LLM structuring path (default: gpt-4o-mini)."""
        return os.getenv("LLM_MODEL", DEFAULT_LLM_MODEL)

    @property
    def is_reasoning_model(self) -> bool:
        """Whether LLM_MODEL takes reasoning-model parameters (default: False)."""
        return os.getenv("IS_REASONING_MODEL", "false").lower() in TRUE_VALUES

    @property
    def model_temperature(self) -> float:
        """Sampling temperature for non-reasoning models (default: 0.2, range 0-2)."""
        temp = _env_float("MODEL_TEMPERATURE", DEFAULT_MODEL_TEMPERATURE)
        if not (0.0 <= temp <= 2.0):
            logger.warning(f"Invalid MODEL_TEMPERATURE value: {temp}. Using {DEFAULT_MODEL_TEMPERATURE} as default.")
            return DEFAULT_MODEL_TEMPERATURE
        return temp

    @property
    def openai_timeout(self) -> int:
        """OpenAI request timeout in seconds (default: 60)."""
        return _env_int("OPENAI_TIMEOUT", 60)

    @property
    def max_retries(self) -> int:
        """OpenAI client retry count (default: 3)."""
        return _env_int("MAX_RETRIES", 3)


# Global config instance
config = Config()


def find_project_root(start_dir: Optional[str] = None) -> Optional[Path]:
    """Return the nearest directory at or above start_dir (or CWD) holding .survey_notes."""
    start = Path(start_dir) if start_dir else Path.cwd()
    return next((d for d in (start, *start.parents) if (d / METADATA_DIRNAME).is_dir()), None)


def get_project_metadata_dir(project_root: Optional[str] = None) -> Path:
    """Return <project>/.survey_notes for the given root, the detected root, or CWD."""
    if project_root:
        return Path(project_root) / METADATA_DIRNAME
    return (find_project_root() or Path.cwd()) / METADATA_DIRNAME


def _env_file_candidates(project_root: Optional[str]) -> Iterator[Path]:
    for var in ENV_FILE_VARS:
        if os.getenv(var):
            yield Path(os.environ[var])
    root = project_root or next((os.environ[v] for v in PROJECT_ROOT_VARS if os.getenv(v)), None)
    if root:
        yield Path(root) / METADATA_DIRNAME / ENV_FILENAME
        return
    detected = find_project_root()
    if detected is not None:
        yield detected / METADATA_DIRNAME / ENV_FILENAME


def load_project_env(project_root: Optional[str] = None, override: bool = False) -> Optional[str]:
    """
    Load the first existing env file for the project.

    Candidates, in order: SN_ENV_FILE / SURVEY_NOTES_ENV_FILE, then
    <root>/.survey_notes/.env where the root is project_root,
    SN_PROJECT_ROOT, or the nearest directory holding .survey_notes.

    Returns:
        Path of the file loaded, or None
    """
    for candidate in _env_file_candidates(project_root):
        if candidate.is_file():
            load_config(str(candidate), override=override)
            return str(candidate)
    return None


@lru_cache(maxsize=1)
def get_client() -> OpenAI:
    """
    Build the OpenAI client for the LLM structuring path.

    The project .env is consulted when OPENAI_API_KEY is not already set.

    Raises:
        ConfigError: If no API key is available or the client cannot be created
    """
    if not os.getenv("OPENAI_API_KEY"):
        load_project_env()
    try:
        api_key = config.openai_api_key
    except ConfigError as e:
        raise ConfigError(f"{e} Set it in the environment, via SN_ENV_FILE, or in {METADATA_DIRNAME}/{ENV_FILENAME}.") from e
    try:
        return OpenAI(api_key=api_key, timeout=config.openai_timeout, max_retries=config.max_retries)
    except Exception as e:
        raise ConfigError(f"Failed to create OpenAI client: {e}") from e


def validate_config() -> None:
    """
    Check that the LLM structuring path can run.

    Raises:
        ConfigError: If the OpenAI client cannot be configured
    """
    get_client()
