"""Generation backend contract and the DSPy-backed implementation.

The orchestrator treats the backend as a pure request/response boundary:
``generate`` returns parsed JSON or raises. Retrying transient failures is the
backend's job; the orchestrator never retries.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Callable, Dict, List, Protocol, Sequence, runtime_checkable

import dspy

from itemgen.core.config import RetryConfig
from itemgen.core.dspy_runtime import DSPyConfigurationError
from itemgen.core.errors import BackendCallError
from itemgen.core.validation import SchemaValidator, validation

LOGGER = logging.getLogger(__name__)

_TRANSIENT_STATUS = frozenset({408, 429, 500, 502, 503, 504})
_TRANSIENT_MESSAGE = re.compile(
    r"\b(408|429|500|502|503|504)\b"
    r"|timeout|timed out|deadline exceeded"
    r"|ETIMEDOUT|ENETUNREACH|ECONNRESET|EAI_AGAIN|ECONNABORTED|ENETDOWN|EHOSTUNREACH|EPIPE",
    re.IGNORECASE,
)


@runtime_checkable
class GenerationBackend(Protocol):
    def generate(
        self,
        schema_name: str,
        schema: Dict[str, Any],
        system_instruction: str,
        user_content: str,
        image_urls: Sequence[str] = (),
    ) -> Any:
        """Return JSON data shaped by ``schema`` or raise."""
        ...


@runtime_checkable
class WidgetRenderer(Protocol):
    """Downstream capability: turn widget parameters into markup."""

    def render(self, widget_type: str, params: Dict[str, Any]) -> str: ...


@runtime_checkable
class ItemCompiler(Protocol):
    """Downstream capability: compile an assembled item into the final document."""

    def compile(self, item: Any) -> str: ...


def is_transient_error(exc: BaseException) -> bool:
    """HTTP 408/429/5xx, timeouts and connection resets are worth retrying."""

    for attr in ("status_code", "status"):
        status = getattr(exc, attr, None)
        if isinstance(status, int) and status in _TRANSIENT_STATUS:
            return True
    if isinstance(exc, (TimeoutError, ConnectionError)):
        return True
    return bool(_TRANSIENT_MESSAGE.search(str(exc)))


def build_messages(system_instruction: str, user_content: str, image_urls: Sequence[str]) -> List[Dict[str, Any]]:
    if image_urls:
        parts: List[Dict[str, Any]] = [{"type": "text", "text": user_content}]
        parts.extend({"type": "image_url", "image_url": {"url": url, "detail": "high"}} for url in image_urls)
        user_message: Dict[str, Any] = {"role": "user", "content": parts}
    else:
        user_message = {"role": "user", "content": user_content}
    return [{"role": "system", "content": system_instruction}, user_message]


class DSPyGenerationBackend:
    """Calls a DSPy LM with a strict JSON-schema response format."""

    def __init__(
        self,
        lm: Any | None = None,
        *,
        retry: RetryConfig | None = None,
        validator: SchemaValidator = validation,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.lm = lm if lm is not None else dspy.settings.lm
        if self.lm is None:
            raise DSPyConfigurationError("No DSPy LM configured; call configure_generator_lm first.")
        self.retry = retry or RetryConfig()
        self.validator = validator
        self._sleep = sleep

    def generate(
        self,
        schema_name: str,
        schema: Dict[str, Any],
        system_instruction: str,
        user_content: str,
        image_urls: Sequence[str] = (),
    ) -> Any:
        messages = build_messages(system_instruction, user_content, image_urls)
        response_format = {
            "type": "json_schema",
            "json_schema": {"name": schema_name, "schema": schema, "strict": True},
        }
        call = self.validator.retry_on_failure(
            max_retries=self.retry.max_retries,
            delay=self.retry.base_delay_seconds,
            max_delay=self.retry.max_delay_seconds,
            retry_if=is_transient_error,
            sleep=self._sleep,
        )(self._call_lm)

        LOGGER.debug(
            "calling generation backend",
            extra={"schema_name": schema_name, "image_count": len(image_urls)},
        )
        try:
            raw = call(messages, response_format)
        except Exception as exc:
            raise BackendCallError(f"{schema_name}: backend call failed: {exc}") from exc
        return self.validator.parse_json(self._normalize_lm_output(raw))

    def _call_lm(self, messages: List[Dict[str, Any]], response_format: Dict[str, Any]) -> Any:
        return self.lm(messages=messages, response_format=response_format)

    @staticmethod
    def _normalize_lm_output(raw: Any) -> str | None:
        if isinstance(raw, list):
            if not raw:
                return None
            raw = raw[0]
        if isinstance(raw, dict):
            raw = raw.get("text")
        if raw is None:
            return None
        return str(raw)


__all__ = [
    "DSPyGenerationBackend",
    "GenerationBackend",
    "ItemCompiler",
    "WidgetRenderer",
    "build_messages",
    "is_transient_error",
]
