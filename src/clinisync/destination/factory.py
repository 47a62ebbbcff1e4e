"""Resolve the configured destination adapter from a "module:attribute" path."""
import importlib
from typing import Callable

from clinisync.destination.base import DestinationAdapter
from clinisync.errors import ConfigurationError

DestinationFactory = Callable[[], DestinationAdapter]


def load_destination_factory(path: str) -> DestinationFactory:
    """
    Import a destination adapter class or zero-argument factory.

    Args:
        path: "package.module:Attribute", e.g.
            "clinisync.destination.memory:InMemoryDestination".

    Raises:
        ConfigurationError: if the path is malformed or cannot be imported.
    """
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise ConfigurationError(
            f"Destination factory must look like 'module:attribute', got {path!r}"
        )
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise ConfigurationError(f"Cannot import destination module {module_name!r}") from exc
    try:
        factory = getattr(module, attr)
    except AttributeError as exc:
        raise ConfigurationError(f"{module_name!r} has no attribute {attr!r}") from exc
    if not callable(factory):
        raise ConfigurationError(f"Destination factory {path!r} is not callable")
    return factory
