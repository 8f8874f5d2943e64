"""Public package API for pyreflector."""

from loguru import logger

from pyreflector.api import get_default_factory
from pyreflector.api import reflector
from pyreflector.api import reset_reflector_cache
from pyreflector.errors import AmbiguousMemberError
from pyreflector.errors import InterfaceDefinitionError
from pyreflector.errors import InvocationTargetError
from pyreflector.errors import MalformedAccessorError
from pyreflector.errors import NoSuchFieldError
from pyreflector.errors import NoSuchMemberError
from pyreflector.errors import NoSuchMethodError
from pyreflector.errors import ReflectorError
from pyreflector.errors import TypeMismatchError
from pyreflector.errors import UnboundTargetError
from pyreflector.errors import UnsupportedInteractionError
from pyreflector.handles import HandleCache
from pyreflector.markers import WithType
from pyreflector.markers import accessor
from pyreflector.markers import default
from pyreflector.markers import for_type
from pyreflector.markers import static
from pyreflector.runtime import ReflectorFactory

logger.disable("pyreflector")

__all__: list[str] = [
    "get_default_factory",
    "reflector",
    "reset_reflector_cache",
    "AmbiguousMemberError",
    "HandleCache",
    "InterfaceDefinitionError",
    "InvocationTargetError",
    "MalformedAccessorError",
    "NoSuchFieldError",
    "NoSuchMemberError",
    "NoSuchMethodError",
    "ReflectorError",
    "ReflectorFactory",
    "TypeMismatchError",
    "UnboundTargetError",
    "UnsupportedInteractionError",
    "WithType",
    "accessor",
    "default",
    "for_type",
    "static",
]
