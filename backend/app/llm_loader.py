"""Chat model loader for the recommendation text generator.

The provider is picked from ``LLM_PROVIDER``; each provider package is an
optional extra and imported only when selected.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple

from langchain_core.language_models.chat_models import BaseChatModel

from core.config import _env

DEFAULT_PROVIDER = "groq"
DEFAULT_NVIDIA_BASE = "https://integrate.api.nvidia.com/v1"


class LLMConfigError(RuntimeError):
    """Raised when the requested LLM provider cannot be initialised."""


@dataclass(frozen=True)
class _Provider:
    name: str
    module: str
    cls: str
    package: str
    default_model: str
    key_vars: Tuple[str, ...]
    key_kwarg: str = "api_key"
    base_url_vars: Tuple[str, ...] = ()
    default_base_url: Optional[str] = None
    aliases: Tuple[str, ...] = field(default_factory=tuple)


_PROVIDERS = (
    _Provider(
        name="groq",
        module="langchain_groq",
        cls="ChatGroq",
        package="langchain-groq",
        default_model="llama-3.1-8b-instant",
        key_vars=("GROQ_API_KEY",),
        key_kwarg="groq_api_key",
    ),
    _Provider(
        name="nvidia",
        module="langchain_nvidia_ai_endpoints",
        cls="ChatNVIDIA",
        package="langchain-nvidia-ai-endpoints",
        default_model="meta/llama-3.1-8b-instruct",
        key_vars=("NVIDIA_API_KEY", "NVCF_API_KEY"),
        base_url_vars=("LLM_BASE_URL",),
        default_base_url=DEFAULT_NVIDIA_BASE,
        aliases=("nv", "nvcf"),
    ),
    _Provider(
        name="openai",
        module="langchain_openai",
        cls="ChatOpenAI",
        package="langchain-openai",
        default_model="gpt-4o-mini",
        key_vars=("OPENAI_API_KEY",),
        base_url_vars=("LLM_BASE_URL", "OPENAI_BASE_URL"),
        aliases=("oa",),
    ),
)


def _lookup(provider: str) -> _Provider:
    for spec in _PROVIDERS:
        if provider == spec.name or provider in spec.aliases:
            return spec
    names = ", ".join(f"'{p.name}'" for p in _PROVIDERS)
    raise LLMConfigError(f"Unsupported LLM_PROVIDER '{provider}'. Expected one of {names}.")


def get_provider_name() -> str:
    return (_env("LLM_PROVIDER", DEFAULT_PROVIDER) or DEFAULT_PROVIDER).lower()


def create_chat_model(temperature: float = 0.2) -> BaseChatModel:
    """Return a LangChain chat model for the configured provider."""
    spec = _lookup(get_provider_name())

    try:
        module = importlib.import_module(spec.module)
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise LLMConfigError(
            f"{spec.name} provider selected but {spec.package} is not installed. "
            f"Run `pip install {spec.package}` or switch LLM_PROVIDER."
        ) from exc

    api_key = _env("LLM_API_KEY")
    for var in spec.key_vars:
        api_key = api_key or _env(var)
    if not api_key:
        raise LLMConfigError(
            f"{spec.name} provider selected but no API key found. "
            f"Set LLM_API_KEY or {spec.key_vars[0]}."
        )

    kwargs: Dict[str, Any] = {
        "model": _env("LLM_MODEL", spec.default_model) or spec.default_model,
        "temperature": temperature,
        spec.key_kwarg: api_key,
    }
    base_url = None
    for var in spec.base_url_vars:
        base_url = base_url or _env(var)
    base_url = base_url or spec.default_base_url
    if base_url:
        kwargs["base_url"] = base_url.rstrip("/")

    return getattr(module, spec.cls)(**kwargs)


def get_chat_model(temperature: float = 0.2) -> BaseChatModel:
    """Public entry point used by the rest of the app."""
    return create_chat_model(temperature=temperature)
