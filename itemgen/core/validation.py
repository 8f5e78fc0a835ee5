"""Validation framework used after every backend call and for CLI inputs."""

from __future__ import annotations

import functools
import json
import logging
import random
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, List, Type, TypeVar

from pydantic import BaseModel, TypeAdapter, ValidationError

from itemgen.core.errors import EmptyBackendResponseError, JSONParseError, SchemaValidationError

T = TypeVar("T")
F = TypeVar("F", bound=Callable[..., Any])


class ValidationFailure(ValueError):
    """Raised by strict validators for invalid user-supplied inputs."""


@dataclass
class ValidationResult:
    """Result of a validation check."""

    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    data: Any = None

    @property
    def has_warnings(self) -> bool:
        return len(self.warnings) > 0

    def raise_if_invalid(self) -> None:
        """Raise ValidationFailure if validation failed."""
        if not self.valid:
            raise ValidationFailure(f"Validation failed: {'; '.join(self.errors)}")


def _schema_name(schema: Any) -> str:
    if isinstance(schema, TypeAdapter):
        return str(schema.core_schema.get("type", "adapter"))
    return getattr(schema, "__name__", repr(schema))


class SchemaValidator:
    """Validator capability: parse backend text and check it against a schema."""

    def __init__(self, *, strict: bool = True, log_level: str = "INFO"):
        """Initialize the validator.

        Args:
            strict: If True, file checks raise on failure
            log_level: Logging level for validation messages
        """
        self.strict = strict
        self.logger = logging.getLogger(__name__)
        self.logger.setLevel(getattr(logging, log_level.upper()))

    # ============== File Operations ==============

    def validate_file_exists(self, path: Path | str) -> ValidationResult:
        """Validate that a file exists and is readable."""
        errors = []
        warnings = []
        path_obj = Path(path)

        if not path_obj.exists():
            errors.append(f"File does not exist: {path}")
        elif not path_obj.is_file():
            errors.append(f"Path is not a file: {path}")
        else:
            if not path_obj.stat().st_size:
                warnings.append(f"File is empty: {path}")
            try:
                with path_obj.open("r", encoding="utf-8"):
                    pass
            except PermissionError:
                errors.append(f"No read permission for file: {path}")
            except OSError as e:
                errors.append(f"Cannot read file {path}: {e}")

        result = ValidationResult(
            valid=len(errors) == 0,
            errors=errors,
            warnings=warnings,
            data=path_obj if not errors else None,
        )

        if not result.valid:
            self.logger.error(f"File validation failed: {result.errors}")
        elif result.has_warnings:
            self.logger.warning(f"File validation warnings: {result.warnings}")

        if self.strict and not result.valid:
            result.raise_if_invalid()

        return result

    # ============== Backend payloads ==============

    def parse_json(self, text: str | None, *, stage: str | None = None) -> Any:
        """Parse backend content, distinguishing empty responses from malformed JSON."""
        if text is None or not text.strip():
            self.logger.error(f"Empty backend response for stage {stage}")
            raise EmptyBackendResponseError("empty backend response: no content", stage=stage)
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            self.logger.error(f"JSON parse failed for stage {stage}: {e}")
            raise JSONParseError(f"backend returned invalid JSON: {e}", stage=stage) from e

    def validate_schema(
        self,
        raw: Any,
        schema: Type[BaseModel] | TypeAdapter,
        *,
        stage: str | None = None,
    ) -> ValidationResult:
        """Validate data against a pydantic model or TypeAdapter."""
        errors = []
        validated_data = None
        adapter = schema if isinstance(schema, TypeAdapter) else TypeAdapter(schema)

        try:
            validated_data = adapter.validate_python(raw)
            self.logger.debug(f"Successfully validated against {_schema_name(schema)}")
        except ValidationError as e:
            for error in e.errors():
                location = ".".join(str(loc) for loc in error["loc"])
                errors.append(f"{location}: {error['msg']}")

        result = ValidationResult(valid=len(errors) == 0, errors=errors, data=validated_data)
        if not result.valid:
            self.logger.error(f"Schema validation failed for stage {stage}: {result.errors}")
        return result

    def validate(self, schema: Type[BaseModel] | TypeAdapter, raw: Any, *, stage: str | None = None) -> Any:
        """Return typed data or raise SchemaValidationError."""
        result = self.validate_schema(raw, schema, stage=stage)
        if not result.valid:
            raise SchemaValidationError(
                f"{_schema_name(schema)} validation failed: {'; '.join(result.errors[:5])}",
                errors=result.errors,
                stage=stage,
            )
        return result.data

    # ============== Decorators ==============

    def retry_on_failure(
        self,
        max_retries: int = 3,
        delay: float = 1.0,
        backoff: float = 2.0,
        *,
        max_delay: float = 60.0,
        retry_if: Callable[[Exception], bool] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> Callable[[F], F]:
        """Decorator to retry a function with capped exponential backoff and jitter.

        Only exceptions accepted by ``retry_if`` are retried; anything else is
        re-raised immediately.

        Example:
            @validation.retry_on_failure(max_retries=3, retry_if=is_transient)
            def call_backend() -> str:
                ...
        """

        def decorator(func: F) -> F:
            @functools.wraps(func)
            def wrapper(*args, **kwargs):
                current_delay = delay
                for attempt in range(max_retries + 1):
                    try:
                        result = func(*args, **kwargs)
                    except Exception as e:
                        retriable = retry_if(e) if retry_if is not None else True
                        if not retriable or attempt >= max_retries:
                            if retriable:
                                self.logger.error(f"All {max_retries + 1} attempts failed for {func.__name__}")
                            raise
                        wait = min(max_delay, current_delay) * (0.8 + random.random() * 0.4)
                        self.logger.warning(
                            f"Attempt {attempt + 1}/{max_retries + 1} failed for {func.__name__}: {e}. Retrying in {wait:.2f}s..."
                        )
                        sleep(wait)
                        current_delay *= backoff
                    else:
                        if attempt:
                            self.logger.info(f"{func.__name__} recovered after {attempt + 1} attempts")
                        return result
                raise AssertionError("unreachable")

            return wrapper

        return decorator


# ============== Global Instance ==============

validation = SchemaValidator(strict=False)
strict_validation = SchemaValidator(strict=True)


__all__ = [
    "SchemaValidator",
    "ValidationFailure",
    "ValidationResult",
    "strict_validation",
    "validation",
]
