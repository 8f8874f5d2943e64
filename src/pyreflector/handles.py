"""Declared-member lookup and the shared handle cache."""

import functools
import inspect
from collections.abc import Callable
from typing import Any

from loguru import logger

from pyreflector.errors import AmbiguousMemberError
from pyreflector.errors import InvocationTargetError
from pyreflector.errors import NoSuchFieldError
from pyreflector.errors import NoSuchMethodError
from pyreflector.signature import UNSPECIFIED
from pyreflector.signature import MemberDescriptor
from pyreflector.signature import describe_type
from pyreflector.signature import is_assignable_class
from pyreflector.signature import resolve_annotations
from pyreflector.signature import strip_annotated

ProxyKey = tuple[type, type]


class FieldHandle:
    """Resolved, access-unlocked reference to one target field."""

    descriptor: MemberDescriptor
    storage_name: str
    is_declared: bool

    def __init__(self, descriptor: MemberDescriptor, storage_name: str, is_declared: bool) -> None:
        """Initialize a field handle.

        :param descriptor: Member descriptor the handle was resolved for.
        :param storage_name: Mangled attribute name.
        :param is_declared: ``False`` when only the live instance proved the field exists.
        """
        self.descriptor = descriptor
        self.storage_name = storage_name
        self.is_declared = is_declared

    def _missing(self) -> NoSuchFieldError:
        """Build the error raised when the field vanished from a target.

        :returns: Missing-field error.
        """
        return NoSuchFieldError(
            self.descriptor.owner,
            self.descriptor.name,
            f"{self.descriptor.describe()} is not present on this target",
        )

    def get(self, target: object) -> object:
        """Read the field.

        :param target: Target instance, ignored for static fields.
        :returns: Current field value.
        :raises NoSuchFieldError: If the field is not present on ``target``.
        """
        if self.descriptor.is_static is True:
            try:
                return vars(self.descriptor.owner)[self.storage_name]
            except KeyError as exc:
                raise self._missing() from exc

        try:
            return object.__getattribute__(target, self.storage_name)
        except AttributeError as exc:
            if self.is_declared is True:
                raise
            raise self._missing() from exc

    def set(self, target: object, value: object) -> None:
        """Write the field, bypassing custom ``__setattr__`` and frozen guards.

        :param target: Target instance, ignored for static fields.
        :param value: New value.
        :raises NoSuchFieldError: If the field is not present on ``target``.
        """
        if self.descriptor.is_static is True:
            type.__setattr__(self.descriptor.owner, self.storage_name, value)
            return
        if self.is_declared is False and self.storage_name not in _instance_dict(target):
            raise self._missing()
        object.__setattr__(target, self.storage_name, value)

    def __repr__(self) -> str:
        """Return a debug representation.

        :returns: Representation string.
        """
        return f"<FieldHandle {self.descriptor.describe()}>"


class MethodHandle:
    """Resolved reference to one target method."""

    descriptor: MemberDescriptor
    storage_name: str
    member: object

    def __init__(self, descriptor: MemberDescriptor, storage_name: str, member: object) -> None:
        """Initialize a method handle.

        :param descriptor: Member descriptor the handle was resolved for.
        :param storage_name: Mangled attribute name.
        :param member: Raw member taken from the owner's ``__dict__``.
        """
        self.descriptor = descriptor
        self.storage_name = storage_name
        self.member = member

    def bind(self, target: object) -> Callable[..., Any]:
        """Bind the raw member through the descriptor protocol.

        :param target: Target instance, or ``None`` for class-level access.
        :returns: Callable ready to receive the forwarded arguments.
        """
        binder: object = getattr(type(self.member), "__get__", None)
        if binder is None:
            return self.member  # type: ignore[return-value]
        return self.member.__get__(target, self.descriptor.owner)  # type: ignore[attr-defined,no-any-return]

    def invoke(self, target: object, args: tuple[object, ...], kwargs: dict[str, object]) -> object:
        """Call the method and wrap anything its body raises.

        :param target: Target instance, or ``None`` for class-level access.
        :param args: Positional arguments.
        :param kwargs: Keyword arguments.
        :returns: Method result.
        :raises InvocationTargetError: If the method body raises.
        """
        bound_member: Callable[..., Any] = self.bind(target)
        try:
            return bound_member(*args, **kwargs)
        except Exception as exc:
            raise InvocationTargetError(self.descriptor.describe(), exc) from exc

    def __repr__(self) -> str:
        """Return a debug representation.

        :returns: Representation string.
        """
        return f"<MethodHandle {self.descriptor.describe()}>"


def _own_annotations(owner: type) -> dict[str, object]:
    """Return annotations declared in ``owner``'s own class body.

    :param owner: Target type.
    :returns: Annotation mapping, empty when unavailable.
    """
    try:
        return dict(inspect.get_annotations(owner))
    except TypeError:
        return {}


def _instance_dict(target: object) -> dict[str, object]:
    """Return the instance ``__dict__`` without triggering custom lookups.

    :param target: Target instance.
    :returns: Instance dictionary, or an empty mapping for slot-only objects.
    """
    try:
        instance_dict: object = object.__getattribute__(target, "__dict__")
    except AttributeError:
        return {}
    if isinstance(instance_dict, dict) is False:
        return {}
    return instance_dict  # type: ignore[return-value]


def resolve_field(descriptor: MemberDescriptor, target: object) -> FieldHandle:
    """Find a field declared on ``descriptor.owner``.

    Static fields must live in the owner's ``__dict__``. Instance fields may
    also be declared by the owner's own annotations or slots, or simply be
    present in the live target's ``__dict__``.

    :param descriptor: Field descriptor.
    :param target: Live target instance, or ``None`` for static fields.
    :returns: Resolved field handle.
    :raises NoSuchFieldError: If no such field exists.
    """
    owner: type = descriptor.owner
    storage_name: str = descriptor.storage_name
    declared_members: dict[str, object] = dict(vars(owner))

    if descriptor.is_static is True:
        if storage_name not in declared_members:
            raise NoSuchFieldError(
                owner,
                descriptor.name,
                f"{describe_type(owner)} declares no static field {storage_name!r}",
            )
        return FieldHandle(descriptor, storage_name, True)

    if storage_name in declared_members or storage_name in _own_annotations(owner):
        return FieldHandle(descriptor, storage_name, True)
    if storage_name in _instance_dict(target):
        return FieldHandle(descriptor, storage_name, False)
    raise NoSuchFieldError(
        owner,
        descriptor.name,
        f"{describe_type(owner)} declares no field {storage_name!r}",
    )


def _underlying_function(member: object) -> object:
    """Unwrap ``staticmethod``/``classmethod`` to the plain function.

    :param member: Raw class member.
    :returns: Function whose signature describes the call.
    """
    if isinstance(member, (staticmethod, classmethod)) is True:
        return member.__func__  # type: ignore[union-attr]
    return member


def _binds_leading_argument(member: object, is_static: bool) -> bool:
    """Report whether binding ``member`` consumes its first parameter.

    :param member: Raw class member.
    :param is_static: Whether the call is made without a target instance.
    :returns: ``True`` when the first parameter receives ``self`` or ``cls``.
    """
    if isinstance(member, classmethod) is True:
        return True
    if isinstance(member, staticmethod) is True:
        return False
    if is_static is True:
        return False
    return getattr(type(member), "__get__", None) is not None


def _is_method_like(member: object) -> bool:
    """Report whether a class member can be invoked as a method.

    :param member: Raw class member.
    :returns: ``True`` for functions, static/class methods and callables.
    """
    if isinstance(member, (staticmethod, classmethod)) is True:
        return True
    return callable(member)


def _parameter_matches(effective: object, target_annotation: object) -> bool:
    """Check one effective interface type against a target annotation.

    :param effective: Effective interface parameter type.
    :param target_annotation: Annotation on the target parameter.
    :returns: ``False`` only when both are plain classes and incompatible.
    """
    target_class, _ = strip_annotated(target_annotation)
    if effective is UNSPECIFIED:
        return True
    if isinstance(effective, type) is False or isinstance(target_class, type) is False:
        return True
    return is_assignable_class(effective, target_class)


def _check_call_shape(descriptor: MemberDescriptor, member: object) -> None:
    """Verify the target member accepts the interface call shape and types.

    :param descriptor: Method descriptor.
    :param member: Raw (or overload-selected) class member.
    :raises NoSuchMethodError: If arity or parameter types do not match.
    """
    if descriptor.accepts_variadic is True:
        return

    function: object = _underlying_function(member)
    try:
        signature: inspect.Signature = inspect.signature(function)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return

    parameters: list[inspect.Parameter] = list(signature.parameters.values())
    drop_first: bool = _binds_leading_argument(member, descriptor.is_static)
    if drop_first is True and len(parameters) > 0:
        parameters = parameters[1:]
    call_signature: inspect.Signature = signature.replace(parameters=parameters)

    placeholders: list[None] = [None] * descriptor.positional_count
    keyword_placeholders: dict[str, None] = {name: None for name in descriptor.keyword_names}
    try:
        call_signature.bind(*placeholders, **keyword_placeholders)
    except TypeError as exc:
        raise NoSuchMethodError(
            descriptor.owner,
            descriptor.name,
            f"{descriptor.describe()} does not accept {descriptor.positional_count} positional "
            + f"argument(s) and keywords {list(descriptor.keyword_names)}: {exc}",
        ) from exc

    positional_names: list[str] = []
    for parameter in parameters:
        if parameter.kind == inspect.Parameter.VAR_POSITIONAL:
            break
        if parameter.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            positional_names.append(parameter.name)

    target_hints: dict[str, object] = resolve_annotations(function)
    positional_limit: int = min(len(positional_names), descriptor.positional_count)
    compared_names: list[str] = positional_names[:positional_limit] + list(descriptor.keyword_names)
    compared_types: list[object] = list(descriptor.param_types[:positional_limit])
    compared_types += list(descriptor.param_types[descriptor.positional_count :])
    for parameter_name, effective in zip(compared_names, compared_types):
        has_hint: bool = parameter_name in target_hints
        if has_hint is False:
            continue
        matches: bool = _parameter_matches(effective, target_hints[parameter_name])
        if matches is False:
            raise NoSuchMethodError(
                descriptor.owner,
                descriptor.name,
                f"{descriptor.describe()} takes {parameter_name}: "
                + f"{describe_type(target_hints[parameter_name])}, not {describe_type(effective)}",
            )


def _select_overload(descriptor: MemberDescriptor, member: functools.singledispatchmethod) -> object:
    """Pick the ``singledispatchmethod`` implementation for the first parameter.

    :param descriptor: Method descriptor.
    :param member: Dispatching method declared on the owner.
    :returns: Selected implementation.
    :raises AmbiguousMemberError: If the first parameter type cannot pick one.
    """
    registry: object = member.dispatcher.registry
    implementation_count: int = len(registry)  # type: ignore[arg-type]
    first_type: object = None
    if len(descriptor.param_types) > 0:
        first_type = descriptor.param_types[0]

    if first_type is UNSPECIFIED or isinstance(first_type, type) is False:
        if implementation_count > 1:
            raise AmbiguousMemberError(
                descriptor.owner,
                descriptor.name,
                f"{descriptor.describe()} has {implementation_count} overloads; "
                + "annotate the first parameter (or add WithType) to pick one",
            )
        return member.dispatcher.dispatch(object)
    return member.dispatcher.dispatch(first_type)


def resolve_method(descriptor: MemberDescriptor) -> MethodHandle:
    """Find a method declared on ``descriptor.owner``.

    :param descriptor: Method descriptor.
    :returns: Resolved method handle.
    :raises NoSuchMethodError: If no member with that name and call shape exists.
    :raises AmbiguousMemberError: If an overload cannot be selected.
    """
    owner: type = descriptor.owner
    storage_name: str = descriptor.storage_name
    declared_members: dict[str, object] = dict(vars(owner))
    if storage_name not in declared_members:
        raise NoSuchMethodError(
            owner,
            descriptor.name,
            f"{describe_type(owner)} declares no method {storage_name!r}",
        )

    member: object = declared_members[storage_name]
    if isinstance(member, functools.singledispatchmethod) is True:
        member = _select_overload(descriptor, member)  # type: ignore[arg-type]
    elif _is_method_like(member) is False:
        raise NoSuchMethodError(
            owner,
            descriptor.name,
            f"{describe_type(owner)}.{storage_name} is not a method",
        )

    _check_call_shape(descriptor, member)
    return MethodHandle(descriptor, storage_name, member)


class HandleCache:
    """Lazily resolved handles shared by every proxy of one factory.

    Slots are keyed by ``(proxy_key, descriptor)``. Writes go through
    ``dict.setdefault`` so racing resolvers all end up with the first stored
    handle. Failed lookups are never stored.
    """

    _field_slots: dict[tuple[ProxyKey, MemberDescriptor], FieldHandle]
    _method_slots: dict[tuple[ProxyKey, MemberDescriptor], MethodHandle]

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._field_slots = {}
        self._method_slots = {}

    def peek(self, proxy_key: ProxyKey, descriptor: MemberDescriptor) -> FieldHandle | MethodHandle | None:
        """Return a resolved handle without resolving.

        :param proxy_key: ``(interface_type, target_type)`` pair.
        :param descriptor: Member descriptor.
        :returns: Cached handle or ``None`` while unresolved.
        """
        slot_key: tuple[ProxyKey, MemberDescriptor] = (proxy_key, descriptor)
        field_handle: FieldHandle | None = self._field_slots.get(slot_key)
        if field_handle is not None:
            return field_handle
        return self._method_slots.get(slot_key)

    def field(self, proxy_key: ProxyKey, descriptor: MemberDescriptor, target: object) -> FieldHandle:
        """Return the field handle for ``descriptor``, resolving it on first use.

        :param proxy_key: ``(interface_type, target_type)`` pair.
        :param descriptor: Field descriptor.
        :param target: Live target instance, or ``None`` for static fields.
        :returns: Resolved field handle.
        """
        slot_key: tuple[ProxyKey, MemberDescriptor] = (proxy_key, descriptor)
        cached: FieldHandle | None = self._field_slots.get(slot_key)
        if cached is not None:
            return cached

        resolved: FieldHandle = resolve_field(descriptor, target)
        logger.debug("Resolved field {} for {}", descriptor.describe(), proxy_key[0].__qualname__)
        return self._field_slots.setdefault(slot_key, resolved)

    def method(self, proxy_key: ProxyKey, descriptor: MemberDescriptor) -> MethodHandle:
        """Return the method handle for ``descriptor``, resolving it on first use.

        :param proxy_key: ``(interface_type, target_type)`` pair.
        :param descriptor: Method descriptor.
        :returns: Resolved method handle.
        """
        slot_key: tuple[ProxyKey, MemberDescriptor] = (proxy_key, descriptor)
        cached: MethodHandle | None = self._method_slots.get(slot_key)
        if cached is not None:
            return cached

        resolved: MethodHandle = resolve_method(descriptor)
        logger.debug("Resolved method {} for {}", descriptor.describe(), proxy_key[0].__qualname__)
        return self._method_slots.setdefault(slot_key, resolved)

    def clear(self) -> None:
        """Drop every resolved handle."""
        self._field_slots.clear()
        self._method_slots.clear()

    def __len__(self) -> int:
        """Return the number of resolved handles.

        :returns: Resolved slot count.
        """
        return len(self._field_slots) + len(self._method_slots)
