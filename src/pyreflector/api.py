"""User-facing API entrypoints for pyreflector."""

from typing import TypeVar

from pyreflector.builder import ReflectorFactory
from pyreflector.builder import create_reflector
from pyreflector.builder import get_shared_factory
from pyreflector.builder import reset_shared_factory

_I = TypeVar("_I")


def reflector(interface_type: type[_I], target: object | None = None) -> _I:
    """Create an object implementing ``interface_type`` over hidden members of ``target``.

    :param interface_type: Reflector interface declaring accessors and forwarders.
    :param target: Target instance. Omit it for interfaces that only use
        ``@static`` members; the target type then comes from ``@for_type``.
    :returns: Proxy implementing ``interface_type``.
    """
    return create_reflector(interface_type, target)


def get_default_factory() -> ReflectorFactory:
    """Return the factory used by :func:`reflector`.

    :returns: Process-wide factory.
    """
    return get_shared_factory()


def reset_reflector_cache() -> None:
    """Drop generated proxy classes and resolved handles of the default factory."""
    reset_shared_factory()
