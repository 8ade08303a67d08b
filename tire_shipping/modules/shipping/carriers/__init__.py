"""
Carrier Registry and Factory

- Carrier classes register themselves under a provider name
- CarrierFactory is built once at startup with the application settings
  and hands each adapter its own configuration
- Provider names are case-insensitive ("dhl" == "DHL")
"""
from typing import Dict, List, Optional, Type
import logging

from tire_shipping.core.exceptions import CarrierNotFoundError
from tire_shipping.modules.shipping.carriers.base import BaseCarrier

logger = logging.getLogger(__name__)

# Registry of carrier implementations
_CARRIER_REGISTRY: Dict[str, Type[BaseCarrier]] = {}


def register_carrier(provider_name: str):
    """
    Decorator to register a carrier implementation.

    Usage:
        @register_carrier("DHL")
        class DHLCarrier(BaseCarrier):
            ...
    """
    def decorator(cls: Type[BaseCarrier]):
        _CARRIER_REGISTRY[provider_name.upper()] = cls
        logger.debug(f"Registered carrier: {provider_name} -> {cls.__name__}")
        return cls
    return decorator


def get_registered_carriers() -> List[str]:
    """Get list of all registered provider names."""
    return list(_CARRIER_REGISTRY.keys())


class CarrierFactory:
    """
    Creates and caches carrier instances for one application.

    Registered classes are instantiated lazily via their `from_settings`
    constructor. Pre-built instances (tests, custom wiring) can be passed
    in and take precedence over the registry.
    """

    def __init__(self, config=None, carriers: Optional[Dict[str, BaseCarrier]] = None):
        self._config = config
        self._instances: Dict[str, BaseCarrier] = {}
        for name, carrier in (carriers or {}).items():
            self._instances[name.upper()] = carrier

    def has_carrier(self, provider_name: Optional[str]) -> bool:
        if not provider_name:
            return False
        key = provider_name.upper()
        return key in self._instances or key in _CARRIER_REGISTRY

    def get_carrier(self, provider_name: str) -> BaseCarrier:
        """
        Get a carrier instance by provider name.

        Raises:
            CarrierNotFoundError: no carrier registered under that name
        """
        key = (provider_name or "").strip().upper()

        if key in self._instances:
            return self._instances[key]

        carrier_cls = _CARRIER_REGISTRY.get(key)
        if not carrier_cls:
            logger.warning(f"No implementation registered for carrier: {provider_name}")
            raise CarrierNotFoundError(provider_name)

        if self._config is None:
            from tire_shipping.core.config import settings
            self._config = settings

        carrier = carrier_cls.from_settings(self._config)
        self._instances[key] = carrier
        return carrier

    def available_providers(self) -> List[str]:
        """Provider names this factory can serve."""
        names = set(_CARRIER_REGISTRY.keys()) | set(self._instances.keys())
        return sorted(names)

    async def close(self) -> None:
        """Close HTTP resources of every instantiated carrier."""
        for carrier in self._instances.values():
            await carrier.close()


# Import carriers to trigger registration
# These imports must be at the bottom to avoid circular imports
from tire_shipping.modules.shipping.carriers.dhl import DHLCarrier  # noqa: E402, F401
from tire_shipping.modules.shipping.carriers.fedex import FedExCarrier  # noqa: E402, F401
from tire_shipping.modules.shipping.carriers.gls import GLSCarrier  # noqa: E402, F401
