"""
SERP provider registry.
"""

from __future__ import annotations

import importlib
from collections.abc import Iterable, Mapping

from app.config import get_provider_class_paths
from app.scraping.base import SerpProvider
from app.scraping.errors import UnknownProviderError
from app.scraping.providers import BUILTIN_PROVIDERS

NO_PROVIDER = "none"


class ProviderRegistry:
    """
    Provider registry supporting built-ins and dynamic import paths.

    Providers are keyed by their id; lookups are case-sensitive apart from
    surrounding whitespace because stored settings use ids such as
    `spaceSerp` verbatim.
    """

    def __init__(self, registrations: Mapping[str, type[SerpProvider]] | None = None) -> None:
        builtins: dict[str, SerpProvider] = {
            provider_class.id: provider_class() for provider_class in BUILTIN_PROVIDERS
        }
        for provider_id, provider_class in (registrations or {}).items():
            builtins[provider_id.strip()] = provider_class()
        self._providers = builtins

    def register(self, *, provider_class: type[SerpProvider], provider_id: str | None = None) -> None:
        self._providers[(provider_id or provider_class.id).strip()] = provider_class()

    def register_path(self, path: str) -> None:
        provider_class = self._load_dynamic_class(path)
        self.register(provider_class=provider_class)

    def ids(self) -> list[str]:
        return sorted(self._providers.keys())

    def providers(self) -> Iterable[SerpProvider]:
        return tuple(self._providers.values())

    def __contains__(self, provider_id: object) -> bool:
        return isinstance(provider_id, str) and provider_id.strip() in self._providers

    def get(self, provider_id: str | None) -> SerpProvider:
        key = (provider_id or "").strip()
        resolved = self._providers.get(key)
        if resolved is None:
            allowed = ", ".join(self.ids())
            raise UnknownProviderError(
                f"Unknown scraper_type='{key or NO_PROVIDER}'. Allowed types: {allowed}."
            )
        return resolved

    @staticmethod
    def _load_dynamic_class(path: str) -> type[SerpProvider]:
        if ":" not in path:
            raise ValueError(f"Invalid provider class '{path}'. Use 'module.path:ClassName'.")

        module_path, class_name = path.split(":", 1)
        module = importlib.import_module(module_path)
        loaded = getattr(module, class_name, None)
        if loaded is None:
            raise ValueError(f"Unable to resolve provider class '{path}'.")
        if not isinstance(loaded, type) or not issubclass(loaded, SerpProvider):
            raise ValueError(f"Class '{path}' must inherit from SerpProvider.")
        return loaded


_default_registry: ProviderRegistry | None = None


def get_provider_registry() -> ProviderRegistry:
    global _default_registry
    if _default_registry is None:
        registry = ProviderRegistry()
        for path in get_provider_class_paths():
            registry.register_path(path)
        _default_registry = registry
    return _default_registry
