"""Helpers for configuring the DSPy language model behind the generation backend."""

from __future__ import annotations

import os
from typing import Any, Dict

import dspy

from itemgen.core.config import ModelConfig, RoleModelConfig

ROLE_NAME = "generator"


class DSPyConfigurationError(RuntimeError):
    """Raised when DSPy cannot be configured for the requested run."""


def _build_openai_lm(
    model_name: str,
    *,
    api_key: str,
    temperature: float,
    max_tokens: int,
    api_base: str | None = None,
    extra_kwargs: Dict[str, Any] | None = None,
) -> object:
    lm_cls = getattr(dspy, "OpenAI", None)
    kwargs = {
        "model": model_name,
        "temperature": temperature,
        "max_tokens": max_tokens,
    }
    if api_base:
        kwargs["api_base"] = api_base
    if extra_kwargs:
        kwargs.update(extra_kwargs)
    if lm_cls is not None:
        kwargs["api_key"] = api_key
    else:  # generic LM wrapper reads auth from env vars
        lm_cls = dspy.LM
    return lm_cls(**kwargs)


def _resolve_api_key(role_cfg: RoleModelConfig) -> str | None:
    preferred_envs = []
    if role_cfg.api_key_env:
        preferred_envs.append(role_cfg.api_key_env)
    preferred_envs.append(f"OPENAI_API_KEY_{ROLE_NAME.upper()}")
    preferred_envs.append("OPENAI_API_KEY")
    for env_var in preferred_envs:
        if env_var and (value := os.getenv(env_var)):
            return value
    return None


def _resolve_api_base(role_cfg: RoleModelConfig) -> str | None:
    if role_cfg.api_base:
        return role_cfg.api_base
    env_candidates = []
    if role_cfg.api_base_env:
        env_candidates.append(role_cfg.api_base_env)
    env_candidates.append(f"OPENAI_API_BASE_{ROLE_NAME.upper()}")
    env_candidates.append("OPENAI_API_BASE")
    for env_var in env_candidates:
        if env_var and (value := os.getenv(env_var)):
            return value
    return None


def configure_generator_lm(model_cfg: ModelConfig, *, api_key: str | None = None) -> object:
    """Instantiate the generator LM and make it the DSPy default."""

    role_cfg = model_cfg.generator
    if role_cfg.provider != "openai":
        raise DSPyConfigurationError(f"Unsupported provider '{role_cfg.provider}' for the generator model")

    resolved_key = api_key or _resolve_api_key(role_cfg)
    if not resolved_key:
        expected_env = role_cfg.api_key_env or f"OPENAI_API_KEY_{ROLE_NAME.upper()}"
        raise DSPyConfigurationError(f"Missing API key for the generator model; set {expected_env} or OPENAI_API_KEY.")

    lm = _build_openai_lm(
        role_cfg.model,
        api_key=resolved_key,
        temperature=model_cfg.temperature,
        max_tokens=model_cfg.max_tokens,
        api_base=_resolve_api_base(role_cfg),
        extra_kwargs=role_cfg.extra_kwargs,
    )
    dspy.settings.configure(lm=lm)
    return lm


__all__ = [
    "DSPyConfigurationError",
    "configure_generator_lm",
]
