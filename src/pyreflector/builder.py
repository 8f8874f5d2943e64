"""Proxy class builder routines."""

from pyreflector.runtime import ReflectorFactory
from pyreflector.runtime import create_reflector
from pyreflector.runtime import get_shared_factory
from pyreflector.runtime import reset_shared_factory

__all__: list[str] = [
    "ReflectorFactory",
    "create_reflector",
    "get_shared_factory",
    "reset_shared_factory",
]
