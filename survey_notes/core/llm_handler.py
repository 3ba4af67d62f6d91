"""
LLM handler for the structuring path.

Sends structuring requests to the configured chat model with a JSON response
format, and retries once with reasoning-model parameters when the model
rejects temperature/max_tokens.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from .config import config, get_client
from .debug_log import get_debug_logger

logger = logging.getLogger(__name__)

MAX_RESPONSE_TOKENS = 4000


class SamplingParamsRejected(Exception):
    """Raised when the model rejects sampling params and the adjusted retry fails too."""

    pass


class LLMHandlerError(Exception):
    """Raised when an LLM request fails or returns unusable content."""

    pass


def _error_payload(exception: Exception) -> Optional[Dict[str, Any]]:
    body = getattr(exception, "body", None)
    if isinstance(body, dict):
        return body
    response = getattr(exception, "response", None)
    if response is not None and hasattr(response, "json"):
        try:
            data = response.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
    return None


def rejects_sampling_params(exception: Exception) -> bool:
    """
    Check if the exception is a 400 rejecting temperature/max_tokens.

    That is how the API reports a reasoning model called with standard
    parameters.
    """
    if getattr(exception, "status_code", None) != 400:
        return False
    data = _error_payload(exception)
    if not data:
        return False
    error_info = data.get("error", data)
    if not isinstance(error_info, dict):
        return False
    error_type = str(error_info.get("type") or "").lower()
    error_code = str(error_info.get("code") or "").lower()
    error_param = str(error_info.get("param") or "").lower()
    return (
        error_type == "invalid_request_error"
        and error_code in ("unsupported_value", "unsupported_parameter")
        and error_param in ("temperature", "max_tokens")
    )


def to_reasoning_params(original_params: Dict[str, Any]) -> Dict[str, Any]:
    """Drop temperature and move max_tokens to max_completion_tokens."""
    adjusted_params = original_params.copy()
    adjusted_params.pop("temperature", None)
    if "max_tokens" in adjusted_params:
        adjusted_params["max_completion_tokens"] = adjusted_params.pop("max_tokens")
    logger.info(f"Adjusted parameters for reasoning model: {sorted(adjusted_params)}")
    return adjusted_params


def create_with_param_fallback(client: Any, original_params: Dict[str, Any]) -> Any:
    """
    Make a chat completion request, retrying once with reasoning-model parameters.

    Raises:
        SamplingParamsRejected: If the adjusted retry also fails
    """
    try:
        return client.chat.completions.create(**original_params)
    except Exception as e:
        if not rejects_sampling_params(e):
            raise
        logger.info("Detected reasoning model error, adjusting parameters")
        try:
            return client.chat.completions.create(**to_reasoning_params(original_params))
        except Exception as retry_error:
            raise SamplingParamsRejected(f"Structuring request failed after retrying without temperature: {retry_error}") from e


class LLMHandler:
    """Sends structuring requests to the chat model."""

    def __init__(self, project_root: str = ".", client: Any = None):
        """
        Initialize LLM Handler.

        Args:
            project_root: Project root directory for debug logging
            client: OpenAI-compatible client; created from config when None
        """
        self.project_root = project_root
        self.client = client if client is not None else get_client()
        self.debug_logger = get_debug_logger(project_root)

    def build_request_params(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        request_params: Dict[str, Any] = {
            "model": config.llm_model,
            "messages": messages,
            "response_format": {"type": "json_object"},
        }
        if config.is_reasoning_model:
            request_params["max_completion_tokens"] = MAX_RESPONSE_TOKENS
        else:
            request_params["max_tokens"] = MAX_RESPONSE_TOKENS
            request_params["temperature"] = config.model_temperature
        return request_params

    def make_structuring_request(self, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        """
        Send structuring messages and parse the JSON reply.

        Args:
            messages: System and user chat messages

        Returns:
            Parsed JSON object from the model

        Raises:
            LLMHandlerError: If the request fails or the reply is not a JSON object
        """
        self.debug_logger.log_llm_request(messages)
        try:
            response = create_with_param_fallback(self.client, self.build_request_params(messages))
        except Exception as e:
            raise LLMHandlerError(f"Structuring LLM request failed: {e}") from e

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError) as e:
            raise LLMHandlerError(f"Malformed response from structuring model: {e}") from e
        if not content:
            raise LLMHandlerError("Empty response from structuring model")

        self.debug_logger.log_llm_response(content)

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            raise LLMHandlerError(f"Invalid JSON response from structuring model: {e}") from e
        if not isinstance(data, dict):
            raise LLMHandlerError("Structuring model returned JSON that is not an object")
        return data


# Global LLM handler instance
_llm_handler: Optional[LLMHandler] = None


def get_llm_handler(project_root: str = ".") -> LLMHandler:
    """Get or create global LLM handler instance."""
    global _llm_handler
    if _llm_handler is None or _llm_handler.project_root != project_root:
        _llm_handler = LLMHandler(project_root)
    return _llm_handler
