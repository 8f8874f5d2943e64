"""Forwarder construction and proxy class generation for reflector interfaces."""

import functools
import inspect
import threading
import types
import typing
from collections.abc import Callable
from typing import Any
from typing import ClassVar
from typing import Literal
from typing import TypeVar

from loguru import logger

from pyreflector.errors import InterfaceDefinitionError
from pyreflector.errors import InvocationTargetError
from pyreflector.errors import TypeMismatchError
from pyreflector.errors import UnboundTargetError
from pyreflector.errors import UnsupportedInteractionError
from pyreflector.handles import FieldHandle
from pyreflector.handles import HandleCache
from pyreflector.handles import MethodHandle
from pyreflector.handles import ProxyKey
from pyreflector.markers import FOR_TYPE_ATTR
from pyreflector.signature import PRIMITIVE_TYPES
from pyreflector.signature import UNSPECIFIED
from pyreflector.signature import ForwardingPlan
from pyreflector.signature import MethodKind
from pyreflector.signature import classify_method
from pyreflector.signature import describe_type
from pyreflector.signature import is_assignable_class
from pyreflector.signature import is_void
from pyreflector.signature import iter_interface_methods
from pyreflector.signature import resolve_type_name
from pyreflector.signature import strip_annotated

_SHARED_FACTORY_LOCK: threading.Lock = threading.Lock()
_SHARED_FACTORY: "ReflectorFactory | None" = None
_I = TypeVar("_I")
Forwarder = Callable[..., Any]
_UNION_ORIGINS: tuple[object, ...] = (typing.Union, types.UnionType)


def _value_fits(value: object, expected: object) -> bool:
    """Check ``value`` against a declared interface type.

    Unknown or non-runtime types pass through. ``None`` fits any non-primitive
    class, as a null reference would.

    :param value: Runtime value.
    :param expected: Declared annotation.
    :returns: ``True`` when ``value`` may be used where ``expected`` is declared.
    """
    if expected is UNSPECIFIED or expected is Any or expected is object:
        return True
    if isinstance(expected, (str, TypeVar)) is True:
        return True
    if is_void(expected) is True:
        return value is None

    origin: object = typing.get_origin(expected)
    if origin is typing.Annotated:
        base, _ = strip_annotated(expected)
        return _value_fits(value, base)
    if origin in _UNION_ORIGINS:
        return any(_value_fits(value, member) for member in typing.get_args(expected))
    if origin is Literal:
        return value in typing.get_args(expected)
    if origin is not None:
        if isinstance(origin, type) is False:
            return True
        expected = origin

    if isinstance(expected, type) is False:
        return True
    if value is None:
        return expected not in PRIMITIVE_TYPES
    try:
        if isinstance(value, expected) is True:
            return True
    except TypeError:
        return True
    if expected in PRIMITIVE_TYPES:
        return is_assignable_class(type(value), expected)
    return False


def _check_value(plan: ForwardingPlan, value: object, expected: object, role: str) -> None:
    """Raise ``TypeMismatchError`` when ``value`` does not fit ``expected``.

    :param plan: Forwarding plan of the method being served.
    :param value: Runtime value.
    :param expected: Declared annotation.
    :param role: What the value is, for the error message.
    :raises TypeMismatchError: If the value does not fit.
    """
    fits: bool = _value_fits(value, expected)
    if fits is False:
        raise TypeMismatchError(
            expected,
            value,
            f"{plan.qualified_name} {role} must be {describe_type(expected)}, "
            + f"got {describe_type(type(value))}",
        )


def _cast_for_return(plan: ForwardingPlan, value: object) -> object:
    """Cast a target result to the interface's declared return type.

    :param plan: Forwarding plan.
    :param value: Raw result.
    :returns: ``value`` unchanged, or ``None`` for void methods.
    :raises TypeMismatchError: If the result does not fit the declared type.
    """
    if is_void(plan.return_type) is True:
        return None
    _check_value(plan, value, plan.return_type, "result")
    return value


def _bound_target(proxy: "ReflectorProxyBase", plan: ForwardingPlan) -> object:
    """Return the target an accessor or forwarder operates on.

    :param proxy: Proxy instance.
    :param plan: Forwarding plan.
    :returns: Target instance, or ``None`` for static members.
    :raises UnboundTargetError: If an instance member is used without a target.
    """
    if plan.descriptor.is_static is True:
        return None
    target: object = object.__getattribute__(proxy, "_reflector_target")
    if target is None:
        raise UnboundTargetError(
            f"{plan.qualified_name} reads instance member {plan.descriptor.describe()}; "
            + "create the proxy with a target instance"
        )
    return target


def _bind_call(
    plan: ForwardingPlan,
    proxy: object,
    args: tuple[object, ...],
    kwargs: dict[str, object],
) -> inspect.BoundArguments:
    """Bind a proxy call against the interface signature.

    :param plan: Forwarding plan.
    :param proxy: Proxy instance (bound to ``self``).
    :param args: Positional call arguments.
    :param kwargs: Keyword call arguments.
    :returns: Bound arguments with interface defaults applied.
    """
    bound: inspect.BoundArguments = plan.signature.bind(proxy, *args, **kwargs)
    bound.apply_defaults()
    return bound


def _check_arguments(plan: ForwardingPlan, bound: inspect.BoundArguments) -> None:
    """Validate bound arguments against declared interface parameter types.

    :param plan: Forwarding plan.
    :param bound: Bound call arguments.
    :raises TypeMismatchError: If an argument does not fit its declared type.
    """
    for parameter_name, declared in plan.declared_param_types:
        has_value: bool = parameter_name in bound.arguments
        if has_value is False:
            continue
        _check_value(plan, bound.arguments[parameter_name], declared, f"argument {parameter_name!r}")


def _build_getter(plan: ForwardingPlan, proxy_key: ProxyKey, cache: HandleCache) -> Forwarder:
    """Build a field-reading forwarder.

    :param plan: ``ACCESSOR_GET`` plan.
    :param proxy_key: ``(interface_type, target_type)`` pair.
    :param cache: Shared handle cache.
    :returns: Forwarder function.
    """

    def forward(self: "ReflectorProxyBase") -> object:
        target: object = _bound_target(self, plan)
        handle: FieldHandle = cache.field(proxy_key, plan.descriptor, target)
        value: object = handle.get(target)
        return _cast_for_return(plan, value)

    return forward


def _build_setter(plan: ForwardingPlan, proxy_key: ProxyKey, cache: HandleCache, check_arguments: bool) -> Forwarder:
    """Build a field-writing forwarder.

    :param plan: ``ACCESSOR_SET`` plan.
    :param proxy_key: ``(interface_type, target_type)`` pair.
    :param cache: Shared handle cache.
    :param check_arguments: Whether to validate the written value.
    :returns: Forwarder function.
    """
    parameter_name: str = plan.declared_param_types[0][0]

    def forward(self: "ReflectorProxyBase", *args: object, **kwargs: object) -> None:
        bound: inspect.BoundArguments = _bind_call(plan, self, args, kwargs)
        if check_arguments is True:
            _check_arguments(plan, bound)
        target: object = _bound_target(self, plan)
        handle: FieldHandle = cache.field(proxy_key, plan.descriptor, target)
        handle.set(target, bound.arguments[parameter_name])

    return forward


def _build_call(plan: ForwardingPlan, proxy_key: ProxyKey, cache: HandleCache, check_arguments: bool) -> Forwarder:
    """Build a method-invoking forwarder.

    :param plan: ``INSTANCE_CALL`` or ``STATIC_CALL`` plan.
    :param proxy_key: ``(interface_type, target_type)`` pair.
    :param cache: Shared handle cache.
    :param check_arguments: Whether to validate call arguments.
    :returns: Forwarder function.
    """

    def forward(self: "ReflectorProxyBase", *args: object, **kwargs: object) -> object:
        bound: inspect.BoundArguments = _bind_call(plan, self, args, kwargs)
        if check_arguments is True:
            _check_arguments(plan, bound)
        target: object = _bound_target(self, plan)
        handle: MethodHandle = cache.method(proxy_key, plan.descriptor)
        try:
            result: object = handle.invoke(target, bound.args[1:], bound.kwargs)
        except InvocationTargetError as exc:
            target_exception: BaseException = exc.target_exception
        else:
            return _cast_for_return(plan, result)
        # Raised outside the handler so the wrapper is not attached as context.
        raise target_exception

    return forward


def build_forwarder(
    plan: ForwardingPlan,
    proxy_key: ProxyKey,
    cache: HandleCache,
    check_arguments: bool = True,
) -> Forwarder:
    """Build the function that serves one interface method.

    :param plan: Forwarding plan from the signature classifier.
    :param proxy_key: ``(interface_type, target_type)`` pair.
    :param cache: Shared handle cache.
    :param check_arguments: Whether to validate arguments against declared types.
    :returns: Forwarder carrying the interface method's metadata.
    """
    forwarder: Forwarder
    if plan.kind == MethodKind.ACCESSOR_GET:
        forwarder = _build_getter(plan, proxy_key, cache)
    elif plan.kind == MethodKind.ACCESSOR_SET:
        forwarder = _build_setter(plan, proxy_key, cache, check_arguments)
    else:
        forwarder = _build_call(plan, proxy_key, cache, check_arguments)
    functools.update_wrapper(forwarder, plan.function, updated=())
    return forwarder


class ReflectorProxyBase:
    """Base class mixed into every generated reflector proxy class."""

    _reflector_interface: ClassVar[type]
    _reflector_target_type: ClassVar[type]
    _reflector_target: object

    def __init__(self, *args: object, **kwargs: object) -> None:
        """Prevent direct initialization.

        :param args: Ignored.
        :param kwargs: Ignored.
        :raises UnsupportedInteractionError: Always.
        """
        _ = (args, kwargs)
        raise UnsupportedInteractionError("Reflector proxies are created by reflector() only")

    @classmethod
    def _bind_target(cls, target: object) -> "ReflectorProxyBase":
        """Allocate an instance bound to ``target``.

        :param target: Target instance, or ``None`` for class-level proxies.
        :returns: Bound proxy instance.
        """
        instance: ReflectorProxyBase = object.__new__(cls)
        object.__setattr__(instance, "_reflector_target", target)
        return instance

    def __repr__(self) -> str:
        """Return a representation naming the interface and target.

        :returns: Representation string.
        """
        interface_name: str = type(self)._reflector_interface.__qualname__
        target: object = object.__getattribute__(self, "_reflector_target")
        if target is None:
            return f"<{interface_name} reflector for {describe_type(type(self)._reflector_target_type)}>"
        return f"<{interface_name} reflector for {object.__repr__(target)}>"

    def __reduce__(self) -> object:
        """Block pickling of proxies.

        :raises UnsupportedInteractionError: Always.
        """
        raise UnsupportedInteractionError("Reflector proxies cannot be pickled")

    def __reduce_ex__(self, protocol: int) -> object:
        """Block pickling of proxies.

        :param protocol: Pickle protocol version.
        :raises UnsupportedInteractionError: Always.
        """
        raise UnsupportedInteractionError("Reflector proxies cannot be pickled")


def declared_target_type(interface_type: type) -> type | None:
    """Return the target type declared with ``for_type`` on an interface.

    :param interface_type: Reflector interface.
    :returns: Declared target type, or ``None`` when absent.
    :raises InterfaceDefinitionError: If a named target type cannot be resolved.
    """
    declared: object = getattr(interface_type, FOR_TYPE_ATTR, None)
    if declared is None:
        return None
    if isinstance(declared, str) is True:
        return resolve_type_name(declared)  # type: ignore[arg-type]
    if isinstance(declared, type) is True:
        return declared
    raise InterfaceDefinitionError(f"{interface_type.__qualname__} has an invalid for_type target {declared!r}")


def _build_proxy_class(
    interface_type: type,
    target_type: type,
    cache: HandleCache,
    check_arguments: bool,
) -> type:
    """Generate the proxy class for one ``(interface_type, target_type)`` pair.

    :param interface_type: Reflector interface.
    :param target_type: Type whose declared members are accessed.
    :param cache: Shared handle cache.
    :param check_arguments: Whether forwarders validate arguments.
    :returns: Dynamic proxy class.
    :raises InterfaceDefinitionError: If the interface cannot be implemented.
    """
    proxy_key: ProxyKey = (interface_type, target_type)
    class_name: str = f"{interface_type.__name__}Reflector"
    namespace: dict[str, object] = {
        "__module__": "pyreflector.runtime",
        "__qualname__": class_name,
        "__doc__": f"Reflector for {interface_type.__qualname__} over {describe_type(target_type)}.",
        "__init__": ReflectorProxyBase.__init__,
        "_reflector_interface": interface_type,
        "_reflector_target_type": target_type,
    }

    for method_name, function in iter_interface_methods(interface_type):
        plan: ForwardingPlan = classify_method(interface_type, method_name, function, target_type)
        namespace[method_name] = build_forwarder(plan, proxy_key, cache, check_arguments)

    metaclass: type = type(interface_type)
    try:
        proxy_class: type = metaclass(class_name, (interface_type, ReflectorProxyBase), namespace)
    except TypeError as exc:
        raise InterfaceDefinitionError(
            f"Cannot implement {interface_type.__qualname__}: {exc}"
        ) from exc

    logger.debug(
        "Generated {} for {} over {}",
        class_name,
        interface_type.__qualname__,
        describe_type(target_type),
    )
    return proxy_class


def _validate_check_arguments(check_arguments: object) -> bool:
    """Validate the ``check_arguments`` option.

    :param check_arguments: Requested value.
    :returns: Validated flag.
    :raises TypeError: If the value is not a bool.
    """
    if isinstance(check_arguments, bool) is False:
        raise TypeError("check_arguments must be a bool")
    return check_arguments  # type: ignore[return-value]


class ReflectorFactory:
    """Create reflector proxies and own their generated classes and handles."""

    _check_arguments: bool
    _handle_cache: HandleCache
    _proxy_classes: dict[ProxyKey, type]

    def __init__(self, check_arguments: bool = True, handle_cache: HandleCache | None = None) -> None:
        """Initialize a factory.

        :param check_arguments: Validate arguments against declared interface types.
        :param handle_cache: Optional handle cache to share with other factories.
        :raises TypeError: If an option has the wrong type.
        """
        self._check_arguments = _validate_check_arguments(check_arguments)
        if handle_cache is None:
            handle_cache = HandleCache()
        if isinstance(handle_cache, HandleCache) is False:
            raise TypeError("handle_cache must be a HandleCache")
        self._handle_cache = handle_cache
        self._proxy_classes = {}

    @property
    def check_arguments(self) -> bool:
        """Return whether forwarders validate arguments.

        :returns: Argument checking flag.
        """
        return self._check_arguments

    @property
    def handle_cache(self) -> HandleCache:
        """Return the handle cache shared by this factory's proxies.

        :returns: Handle cache.
        """
        return self._handle_cache

    def target_type_for(self, interface_type: type, target: object | None) -> type:
        """Decide which type's declared members a proxy accesses.

        :param interface_type: Reflector interface.
        :param target: Target instance, or ``None`` for class-level proxies.
        :returns: Target type.
        :raises InterfaceDefinitionError: If no target type can be determined.
        :raises TypeMismatchError: If ``target`` is not an instance of the declared type.
        """
        declared: type | None = declared_target_type(interface_type)
        if target is None:
            if declared is None:
                raise InterfaceDefinitionError(
                    f"{interface_type.__qualname__} needs @for_type to build a reflector without a target"
                )
            return declared

        if declared is None:
            return type(target)
        if isinstance(target, declared) is False:
            raise TypeMismatchError(
                declared,
                target,
                f"{interface_type.__qualname__} is for {describe_type(declared)}, "
                + f"got {describe_type(type(target))}",
            )
        return declared

    def proxy_class(self, interface_type: type, target_type: type) -> type:
        """Return the generated class for ``(interface_type, target_type)``.

        :param interface_type: Reflector interface.
        :param target_type: Type whose declared members are accessed.
        :returns: Cached or newly generated proxy class.
        """
        proxy_key: ProxyKey = (interface_type, target_type)
        existing: type | None = self._proxy_classes.get(proxy_key)
        if existing is not None:
            return existing

        built: type = _build_proxy_class(interface_type, target_type, self._handle_cache, self._check_arguments)
        return self._proxy_classes.setdefault(proxy_key, built)

    def create(self, interface_type: type[_I], target: object | None = None) -> _I:
        """Create a proxy implementing ``interface_type`` over ``target``.

        :param interface_type: Reflector interface.
        :param target: Target instance, or ``None`` for class-level proxies.
        :returns: Object implementing ``interface_type``.
        :raises InterfaceDefinitionError: If the interface is not a class or is malformed.
        """
        if isinstance(interface_type, type) is False:
            raise InterfaceDefinitionError(f"Reflector interface must be a class, got {interface_type!r}")
        target_type: type = self.target_type_for(interface_type, target)
        proxy_class: type = self.proxy_class(interface_type, target_type)
        return proxy_class._bind_target(target)  # type: ignore[attr-defined,no-any-return]

    def clear(self) -> None:
        """Drop generated classes and resolved handles."""
        self._proxy_classes.clear()
        self._handle_cache.clear()


def get_shared_factory() -> ReflectorFactory:
    """Return the process-wide factory, creating it on first use.

    :returns: Shared factory.
    """
    global _SHARED_FACTORY
    factory: ReflectorFactory | None = _SHARED_FACTORY
    if factory is not None:
        return factory
    with _SHARED_FACTORY_LOCK:
        if _SHARED_FACTORY is None:
            _SHARED_FACTORY = ReflectorFactory()
        return _SHARED_FACTORY


def reset_shared_factory() -> None:
    """Clear the process-wide factory's generated classes and handles."""
    with _SHARED_FACTORY_LOCK:
        factory: ReflectorFactory | None = _SHARED_FACTORY
    if factory is not None:
        factory.clear()


def create_reflector(interface_type: type[_I], target: object | None = None) -> _I:
    """Create a proxy through the process-wide factory.

    :param interface_type: Reflector interface.
    :param target: Target instance, or ``None`` for class-level proxies.
    :returns: Object implementing ``interface_type``.
    """
    return get_shared_factory().create(interface_type, target)
