"""Classification of reflector interface methods into forwarding plans."""

import abc
import enum
import importlib
import inspect
import typing
from dataclasses import dataclass
from types import FunctionType
from typing import Annotated
from typing import Any

from loguru import logger

from pyreflector.errors import InterfaceDefinitionError
from pyreflector.errors import MalformedAccessorError
from pyreflector.markers import WithType
from pyreflector.markers import accessor_field
from pyreflector.markers import is_default
from pyreflector.markers import is_static

UNSPECIFIED: Any = inspect.Parameter.empty
PRIMITIVE_TYPES: tuple[type, ...] = (bool, int, float, complex)
_NUMERIC_WIDENING: dict[type, tuple[type, ...]] = {
    float: (int,),
    complex: (int, float),
}
_INTERFACE_ROOTS: frozenset[object] = frozenset({object, typing.Protocol, typing.Generic, abc.ABC})
_INTERFACE_ROOT_MODULES: frozenset[str] = frozenset({"builtins", "typing", "typing_extensions", "abc"})
_VARIADIC_KINDS: frozenset[inspect._ParameterKind] = frozenset(
    {inspect.Parameter.VAR_POSITIONAL, inspect.Parameter.VAR_KEYWORD}
)
_POSITIONAL_KINDS: frozenset[inspect._ParameterKind] = frozenset(
    {inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD}
)


class MethodKind(enum.Enum):
    """How a proxy method reaches its target member."""

    ACCESSOR_GET = "accessor_get"
    ACCESSOR_SET = "accessor_set"
    STATIC_CALL = "static_call"
    INSTANCE_CALL = "instance_call"


class MemberKind(enum.Enum):
    """Kind of target member a descriptor points at."""

    FIELD = "field"
    METHOD = "method"


def describe_type(type_object: object) -> str:
    """Build a stable dotted name for a type-like object.

    :param type_object: Type or typing construct.
    :returns: Dotted ``module.qualname`` string for classes, ``repr`` otherwise.
    """
    if isinstance(type_object, type) is False:
        return repr(type_object)
    module_name: str = type_object.__module__
    qualname: str = type_object.__qualname__
    if module_name == "builtins":
        return qualname
    return f"{module_name}.{qualname}"


def mangle_member_name(owner: type, member_name: str) -> str:
    """Apply private-name mangling for members declared on ``owner``.

    :param owner: Declaring class.
    :param member_name: Name as written in the declaring class body.
    :returns: Name under which the member is actually stored.
    """
    if member_name.startswith("__") is False or member_name.endswith("__") is True:
        return member_name
    class_name: str = owner.__name__.lstrip("_")
    if len(class_name) == 0:
        return member_name
    return f"_{class_name}{member_name}"


def is_void(annotation: object) -> bool:
    """Report whether ``annotation`` declares a void (``None``) result.

    :param annotation: Resolved annotation.
    :returns: ``True`` for ``None`` and ``NoneType``.
    """
    return annotation is None or annotation is type(None)


def is_assignable_class(source: type, target: type) -> bool:
    """Check class assignability including the implicit numeric tower.

    :param source: Class of the value being passed.
    :param target: Declared class.
    :returns: ``True`` when a ``source`` value may be used as ``target``.
    """
    if issubclass(source, target) is True:
        return True
    widened_from: tuple[type, ...] = _NUMERIC_WIDENING.get(target, ())
    return issubclass(source, widened_from)


def strip_annotated(annotation: object) -> tuple[object, WithType | None]:
    """Split ``Annotated`` metadata from an annotation.

    :param annotation: Resolved annotation.
    :returns: Tuple of ``(base_annotation, type_override)``.
    """
    if typing.get_origin(annotation) is not Annotated:
        return annotation, None

    base: object = typing.get_args(annotation)[0]
    override: WithType | None = None
    for metadata in annotation.__metadata__:  # type: ignore[attr-defined]
        if isinstance(metadata, WithType) is True:
            override = metadata
    return base, override


def resolve_annotations(function: object) -> dict[str, object]:
    """Resolve annotations of ``function``, keeping ``Annotated`` metadata.

    Annotations that cannot be evaluated stay as strings and are treated as
    unknown types by callers.

    :param function: Function or other annotated object.
    :returns: Mapping of parameter name (and ``"return"``) to annotation.
    """
    try:
        return typing.get_type_hints(function, include_extras=True)
    except (NameError, TypeError, AttributeError, SyntaxError):
        pass
    try:
        return dict(inspect.get_annotations(function))  # type: ignore[arg-type]
    except TypeError:
        return {}


def _parse_type_name(type_name: str) -> list[tuple[str, str]]:
    """Split a type name into candidate ``(module_name, qualname)`` pairs.

    :param type_name: ``module.path:QualName`` or dotted ``module.path.QualName``.
    :returns: Candidate pairs, most specific module first.
    :raises InterfaceDefinitionError: If the name is malformed.
    """
    stripped: str = type_name.strip()
    if ":" in stripped:
        parts: list[str] = stripped.split(":")
        if len(parts) != 2 or len(parts[0].strip()) == 0 or len(parts[1].strip()) == 0:
            raise InterfaceDefinitionError(f"Type name {type_name!r} must use module.path:QualName format")
        return [(parts[0].strip(), parts[1].strip())]

    segments: list[str] = stripped.split(".")
    if len(segments) < 2 or any(len(segment) == 0 for segment in segments) is True:
        raise InterfaceDefinitionError(f"Type name {type_name!r} must be fully qualified")
    candidates: list[tuple[str, str]] = []
    for split_index in range(len(segments) - 1, 0, -1):
        module_name: str = ".".join(segments[:split_index])
        qualname: str = ".".join(segments[split_index:])
        candidates.append((module_name, qualname))
    return candidates


def resolve_type_name(type_name: str) -> type:
    """Import and return the class named by ``type_name``.

    :param type_name: ``module.path:QualName`` or dotted ``module.path.QualName``.
    :returns: Resolved class.
    :raises InterfaceDefinitionError: If no class can be found under that name.
    """
    for module_name, qualname in _parse_type_name(type_name):
        try:
            resolved: object = importlib.import_module(module_name)
        except ImportError:
            continue
        try:
            for attribute_name in qualname.split("."):
                resolved = getattr(resolved, attribute_name)
        except AttributeError:
            continue
        if isinstance(resolved, type) is True:
            return resolved
    raise InterfaceDefinitionError(f"Cannot resolve type {type_name!r}")


@dataclass(frozen=True)
class MemberDescriptor:
    """Identity of one target member as seen by a reflector interface."""

    owner: type
    name: str
    kind: MemberKind
    param_types: tuple[object, ...] = ()
    keyword_names: tuple[str, ...] = ()
    accepts_variadic: bool = False
    is_static: bool = False

    @property
    def storage_name(self) -> str:
        """Return the mangled name the member is stored under.

        :returns: Storage name on ``owner``.
        """
        return mangle_member_name(self.owner, self.name)

    @property
    def positional_count(self) -> int:
        """Return the number of positional parameters forwarded to the target.

        :returns: Positional parameter count.
        """
        return len(self.param_types) - len(self.keyword_names)

    def describe(self) -> str:
        """Return a readable ``Owner.member`` label.

        :returns: Description string.
        """
        return f"{describe_type(self.owner)}.{self.storage_name}"


@dataclass(frozen=True)
class ForwardingPlan:
    """Everything needed to build the forwarder for one interface method."""

    interface_type: type
    method_name: str
    function: FunctionType
    kind: MethodKind
    descriptor: MemberDescriptor
    signature: inspect.Signature
    declared_param_types: tuple[tuple[str, object], ...]
    return_type: object

    @property
    def qualified_name(self) -> str:
        """Return ``Interface.method`` for messages.

        :returns: Qualified method name.
        """
        return f"{self.interface_type.__qualname__}.{self.method_name}"


def _is_dunder(name: str) -> bool:
    """Report whether ``name`` is a dunder name.

    :param name: Attribute name.
    :returns: ``True`` for ``__name__`` style names.
    """
    return len(name) > 4 and name.startswith("__") is True and name.endswith("__") is True


def _is_interface_root(klass: type) -> bool:
    """Report whether ``klass`` is a root that never contributes methods.

    :param klass: Class from the interface MRO.
    :returns: ``True`` for ``object``, ``Protocol``, ``Generic`` and friends.
    """
    if klass in _INTERFACE_ROOTS:
        return True
    return klass.__module__ in _INTERFACE_ROOT_MODULES


def unmangle_interface_name(interface_type: type, method_name: str) -> str:
    """Undo private-name mangling applied by an interface class body.

    ``def __dispose(self)`` written in ``WindowReflector`` is stored as
    ``_WindowReflector__dispose``; the target member is still ``__dispose``.

    :param interface_type: Reflector interface.
    :param method_name: Name as stored on the interface.
    :returns: Name as written in the interface body.
    """
    for klass in interface_type.__mro__:
        class_name: str = klass.__name__.lstrip("_")
        if len(class_name) == 0:
            continue
        prefix: str = f"_{class_name}__"
        if method_name.startswith(prefix) is False:
            continue
        remainder: str = method_name[len(prefix) :]
        if len(remainder) > 0 and remainder.endswith("__") is False:
            return f"__{remainder}"
    return method_name


def iter_interface_methods(interface_type: type) -> list[tuple[str, FunctionType]]:
    """Collect the interface methods that need generated forwarders.

    Default methods, dunders and non-function attributes (``property``,
    ``staticmethod``, ``classmethod``, constants) keep their own behavior.

    :param interface_type: Reflector interface.
    :returns: Ordered ``(method_name, function)`` pairs.
    """
    collected: dict[str, FunctionType] = {}
    for klass in reversed(interface_type.__mro__):
        if _is_interface_root(klass) is True:
            continue
        for name, value in vars(klass).items():
            if _is_dunder(name) is True:
                continue
            if isinstance(value, FunctionType) is False or is_default(value) is True:
                collected.pop(name, None)
                continue
            collected[name] = value
    return list(collected.items())


def _effective_param_type(qualified_name: str, declared: object, override: WithType | None) -> object:
    """Apply a ``WithType`` override to one parameter type.

    :param qualified_name: ``Interface.method`` for log messages.
    :param declared: Type declared on the interface.
    :param override: Optional override metadata.
    :returns: Type used for target lookup.
    """
    if override is None:
        return declared
    try:
        return resolve_type_name(override.type_name)
    except InterfaceDefinitionError:
        logger.debug(
            "Cannot resolve {} for {}; falling back to declared type {}",
            override.type_name,
            qualified_name,
            describe_type(declared),
        )
        return declared


def _classify_accessor(
    qualified_name: str,
    method_name: str,
    parameters: list[inspect.Parameter],
    return_type: object,
) -> MethodKind:
    """Validate an accessor method's shape and decide getter or setter.

    :param qualified_name: ``Interface.method`` for messages.
    :param method_name: Interface method name.
    :param parameters: Parameters after ``self``.
    :param return_type: Resolved return annotation.
    :returns: ``ACCESSOR_GET`` or ``ACCESSOR_SET``.
    :raises MalformedAccessorError: If the shape does not fit either convention.
    """
    bare_name: str = method_name.lstrip("_")
    if bare_name.startswith("get") is True:
        if is_void(return_type) is True:
            raise MalformedAccessorError(f"{qualified_name} should have a non-void return type")
        if len(parameters) != 0:
            raise MalformedAccessorError(f"{qualified_name} should take no parameters")
        return MethodKind.ACCESSOR_GET

    if bare_name.startswith("set") is True:
        if return_type is not UNSPECIFIED and is_void(return_type) is False:
            raise MalformedAccessorError(f"{qualified_name} should have a void return type")
        if len(parameters) != 1 or parameters[0].kind in _VARIADIC_KINDS:
            raise MalformedAccessorError(f"{qualified_name} should take a single parameter")
        return MethodKind.ACCESSOR_SET

    raise MalformedAccessorError(f"{qualified_name} doesn't appear to be a setter or a getter")


def classify_method(
    interface_type: type,
    method_name: str,
    function: FunctionType,
    target_type: type,
) -> ForwardingPlan:
    """Classify one interface method and describe its target member.

    :param interface_type: Reflector interface.
    :param method_name: Method name on the interface.
    :param function: Interface function object.
    :param target_type: Type whose declared members are looked up.
    :returns: Forwarding plan for the method.
    :raises InterfaceDefinitionError: If the method cannot be forwarded.
    :raises MalformedAccessorError: If an accessor has the wrong shape.
    """
    qualified_name: str = f"{interface_type.__qualname__}.{method_name}"
    signature: inspect.Signature = inspect.signature(function)
    parameters: list[inspect.Parameter] = list(signature.parameters.values())
    if len(parameters) == 0 or parameters[0].kind not in _POSITIONAL_KINDS:
        raise InterfaceDefinitionError(f"{qualified_name} must take self as its first parameter")

    call_parameters: list[inspect.Parameter] = parameters[1:]
    hints: dict[str, object] = resolve_annotations(function)
    declared_param_types: list[tuple[str, object]] = []
    positional_types: list[object] = []
    keyword_types: list[object] = []
    keyword_names: list[str] = []
    accepts_variadic: bool = False
    for parameter in call_parameters:
        if parameter.kind in _VARIADIC_KINDS:
            accepts_variadic = True
            continue
        declared, override = strip_annotated(hints.get(parameter.name, UNSPECIFIED))
        declared_param_types.append((parameter.name, declared))
        effective: object = _effective_param_type(qualified_name, declared, override)
        if parameter.kind == inspect.Parameter.KEYWORD_ONLY:
            keyword_types.append(effective)
            keyword_names.append(parameter.name)
        else:
            positional_types.append(effective)

    return_type, _ = strip_annotated(hints.get("return", UNSPECIFIED))
    field_name: str | None = accessor_field(function)
    static_flag: bool = is_static(function)

    kind: MethodKind
    descriptor: MemberDescriptor
    if field_name is not None:
        kind = _classify_accessor(qualified_name, method_name, call_parameters, return_type)
        descriptor = MemberDescriptor(
            owner=target_type,
            name=field_name,
            kind=MemberKind.FIELD,
            is_static=static_flag,
        )
    else:
        kind = MethodKind.INSTANCE_CALL
        if static_flag is True:
            kind = MethodKind.STATIC_CALL
        descriptor = MemberDescriptor(
            owner=target_type,
            name=unmangle_interface_name(interface_type, method_name),
            kind=MemberKind.METHOD,
            param_types=tuple(positional_types + keyword_types),
            keyword_names=tuple(keyword_names),
            accepts_variadic=accepts_variadic,
            is_static=static_flag,
        )

    return ForwardingPlan(
        interface_type=interface_type,
        method_name=method_name,
        function=function,
        kind=kind,
        descriptor=descriptor,
        signature=signature,
        declared_param_types=tuple(declared_param_types),
        return_type=return_type,
    )
