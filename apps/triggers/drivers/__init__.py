"""
Event drivers for turning repository webhooks into pipeline triggers.
"""

from apps.triggers.drivers.base import BaseEventDriver, ParsedEvent, UnsupportedEventError
from apps.triggers.drivers.generic import GenericEventDriver
from apps.triggers.drivers.github import GitHubDriver

__all__ = [
    "BaseEventDriver",
    "ParsedEvent",
    "UnsupportedEventError",
    "GitHubDriver",
    "GenericEventDriver",
    "DRIVER_REGISTRY",
    "get_driver",
    "detect_driver",
]

# Registry of available drivers (order matters for detection)
DRIVER_REGISTRY: dict[str, type[BaseEventDriver]] = {
    "github": GitHubDriver,
    "generic": GenericEventDriver,
}


def get_driver(name: str) -> BaseEventDriver:
    """
    Get a driver instance by name.

    Raises:
        ValueError: If driver name is not found.
    """
    if name not in DRIVER_REGISTRY:
        raise ValueError(
            f"Unknown driver: {name}. Available: {', '.join(DRIVER_REGISTRY.keys())}"
        )
    return DRIVER_REGISTRY[name]()


def detect_driver(payload: dict, headers: dict | None = None) -> BaseEventDriver | None:
    """
    Auto-detect the appropriate driver for a payload.

    The generic driver is tried last as it accepts most payloads.
    """
    for name, driver_class in DRIVER_REGISTRY.items():
        if name == "generic":
            continue
        driver = driver_class()
        if driver.validate(payload, headers):
            return driver

    generic = GenericEventDriver()
    if generic.validate(payload, headers):
        return generic

    return None
