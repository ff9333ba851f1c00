"""Registration decorator for source adapters."""

from typing import Callable, Dict, List, Type, TypeVar

from deskbridge.core.exceptions import UnknownConnectorError

SourceT = TypeVar("SourceT", bound=type)

_SOURCE_REGISTRY: Dict[str, type] = {}


def source(name: str, short_name: str, id_prefix: str) -> Callable[[SourceT], SourceT]:
    """Register a source adapter class.

    Args:
        name: Human readable name used in logs and error messages (e.g. "Help Scout")
        short_name: Connector identifier (e.g. "helpscout"); also the canonical ``source``
        id_prefix: Prefix of canonical ticket ids (e.g. "hs" gives "hs-123")

    Returns:
        Class decorator
    """

    def decorator(cls: SourceT) -> SourceT:
        cls._name = name
        cls._short_name = short_name
        cls._id_prefix = id_prefix
        _SOURCE_REGISTRY[short_name] = cls
        return cls

    return decorator


def get_source_class(short_name: str) -> Type:
    """Look up a registered source class by short name.

    Raises:
        UnknownConnectorError: If no source is registered under ``short_name``
    """
    try:
        return _SOURCE_REGISTRY[short_name]
    except KeyError:
        raise UnknownConnectorError(short_name) from None


def list_sources() -> List[str]:
    """Short names of all registered sources, sorted."""
    return sorted(_SOURCE_REGISTRY)
