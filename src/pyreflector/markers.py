"""Decorators and metadata used to declare reflector interfaces."""

from collections.abc import Callable
from dataclasses import dataclass
from typing import TypeVar

ACCESSOR_ATTR: str = "__reflector_accessor__"
STATIC_ATTR: str = "__reflector_static__"
DEFAULT_ATTR: str = "__reflector_default__"
FOR_TYPE_ATTR: str = "__reflector_for_type__"

_F = TypeVar("_F", bound=Callable[..., object])
_T = TypeVar("_T", bound=type)


@dataclass(frozen=True)
class WithType:
    """Override the parameter type used to look up a target method.

    Place it inside ``typing.Annotated`` when the interface has to expose a
    visible type but the target method is declared with one the caller
    cannot import::

        def dispatch(self, token: Annotated[object, WithType("app.core:_Token")]) -> None: ...

    :param type_name: Target type in ``module.path:QualName`` format.
    """

    type_name: str


def accessor(field_name: str) -> Callable[[_F], _F]:
    """Mark an interface method as a getter or setter for ``field_name``.

    :param field_name: Name of the field on the target type.
    :returns: Decorator that records the field name.
    :raises TypeError: If ``field_name`` is not a non-empty string.
    """
    if isinstance(field_name, str) is False or len(field_name) == 0:
        raise TypeError("accessor field name must be a non-empty string")

    def decorate(function: _F) -> _F:
        setattr(function, ACCESSOR_ATTR, field_name)
        return function

    return decorate


def static(function: _F) -> _F:
    """Mark an interface method as operating on the target class.

    :param function: Interface method.
    :returns: The same function, marked static.
    """
    setattr(function, STATIC_ATTR, True)
    return function


def default(function: _F) -> _F:
    """Keep an interface method's own body instead of forwarding it.

    :param function: Interface method.
    :returns: The same function, marked as a default method.
    """
    setattr(function, DEFAULT_ATTR, True)
    return function


def for_type(target: type | str) -> Callable[[_T], _T]:
    """Declare the target type a reflector interface is bound to.

    :param target: Target class, or its name in ``module.path:QualName`` format.
    :returns: Class decorator that records the target.
    :raises TypeError: If ``target`` is neither a type nor a string.
    """
    if isinstance(target, (type, str)) is False:
        raise TypeError("for_type target must be a type or a module.path:QualName string")

    def decorate(interface_type: _T) -> _T:
        setattr(interface_type, FOR_TYPE_ATTR, target)
        return interface_type

    return decorate


def accessor_field(function: object) -> str | None:
    """Return the accessor field name recorded on ``function``.

    :param function: Candidate interface method.
    :returns: Field name or ``None`` when the method is not an accessor.
    """
    value: object = getattr(function, ACCESSOR_ATTR, None)
    if isinstance(value, str) is True:
        return value
    return None


def is_static(function: object) -> bool:
    """Report whether ``function`` carries the static marker.

    :param function: Candidate interface method.
    :returns: ``True`` when marked static.
    """
    return getattr(function, STATIC_ATTR, False) is True


def is_default(function: object) -> bool:
    """Report whether ``function`` carries the default-method marker.

    :param function: Candidate interface method.
    :returns: ``True`` when marked as a default method.
    """
    return getattr(function, DEFAULT_ATTR, False) is True
