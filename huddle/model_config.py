from __future__ import annotations

import os

DEFAULT_MODELS: dict[str, str] = {
    "openai": "gpt-4-turbo-preview",
    "anthropic": "claude-3-opus-20240229",
    "ollama": "llama2",
}

DEFAULT_PROVIDER = "openai"


def get_env_key(provider: str) -> str:
    return f"{provider.upper().replace('-', '_')}_MODEL"


def get_model_from_env(provider: str) -> str | None:
    return os.getenv(get_env_key(provider))


def resolve_model(provider: str, model: str | None = None) -> str:
    """Pick the model for a provider: explicit value, then env, then defaults."""
    if model:
        return model

    env_value = get_model_from_env(provider)
    if env_value:
        return env_value

    return DEFAULT_MODELS.get(provider, DEFAULT_MODELS[DEFAULT_PROVIDER])


def resolve_model_with_source(provider: str, model: str | None = None) -> tuple[str, str]:
    if model:
        return model, "agent"
    if get_model_from_env(provider):
        return resolve_model(provider), "env"
    return resolve_model(provider), "default"
