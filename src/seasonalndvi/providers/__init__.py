"""Provider registry for raster data source access.

Provides ``get_provider()`` to instantiate configured provider
instances by name.
"""

from __future__ import annotations

from seasonalndvi.config import Config
from seasonalndvi.exceptions import ConfigurationError
from seasonalndvi.providers.base import DataProvider

_PROVIDER_REGISTRY: dict[str, type[DataProvider]] = {}
_REGISTRY_INITIALIZED = False


def _init_registry() -> None:
    """Populate the provider registry on first use (lazy import)."""
    global _REGISTRY_INITIALIZED  # noqa: PLW0603
    if _REGISTRY_INITIALIZED:
        return

    from seasonalndvi.providers.planetary import PlanetaryComputerProvider

    _PROVIDER_REGISTRY.update(
        {
            "planetary-computer": PlanetaryComputerProvider,
        }
    )
    _REGISTRY_INITIALIZED = True


def register_provider(name: str, provider_cls: type[DataProvider]) -> None:
    """Register *provider_cls* under *name* (case-insensitive)."""
    _init_registry()
    _PROVIDER_REGISTRY[name.lower()] = provider_cls


def get_registered_names() -> list[str]:
    """Return sorted list of registered provider names."""
    _init_registry()
    return sorted(_PROVIDER_REGISTRY)


def get_provider(name: str, config: Config) -> DataProvider:
    """Return a configured provider instance by name.

    Provider names are case-insensitive.

    Args:
        name: Provider identifier (e.g. ``"planetary-computer"``).
        config: Frozen configuration snapshot.

    Returns:
        A configured ``DataProvider`` instance.

    Raises:
        ConfigurationError: If *name* does not match a registered provider.

    Example:
        >>> provider = get_provider("planetary-computer", Config())
        >>> provider.name
        'planetary-computer'
    """
    _init_registry()
    key = name.lower()
    if key not in _PROVIDER_REGISTRY:
        valid = ", ".join(sorted(_PROVIDER_REGISTRY))
        raise ConfigurationError(
            what=f"Unknown provider: {name!r}",
            cause=f"Valid providers are: {valid}",
            fix=f"Use one of: {valid}",
        )
    return _PROVIDER_REGISTRY[key](config=config)
