"""Tests for declared-member lookup and the shared handle cache."""

import threading

import pytest

from pyreflector import AmbiguousMemberError
from pyreflector import HandleCache
from pyreflector import InvocationTargetError
from pyreflector import NoSuchFieldError
from pyreflector import NoSuchMemberError
from pyreflector import NoSuchMethodError
from pyreflector.handles import FieldHandle
from pyreflector.handles import MethodHandle
from pyreflector.handles import resolve_field
from pyreflector.handles import resolve_method
from pyreflector.signature import UNSPECIFIED
from pyreflector.signature import MemberDescriptor
from pyreflector.signature import MemberKind
from tests.fixtures.hidden_targets import DerivedWindowManager
from tests.fixtures.hidden_targets import FrozenConfig
from tests.fixtures.hidden_targets import GuardedTarget
from tests.fixtures.hidden_targets import HiddenFailure
from tests.fixtures.hidden_targets import SlottedPoint
from tests.fixtures.hidden_targets import WindowManagerImpl
from tests.fixtures.hidden_targets import _Token


class _Marker:
    """Stand-in interface type used in cache keys."""


def _field(owner: type, name: str, is_static: bool = False) -> MemberDescriptor:
    """Build a field descriptor.

    :param owner: Target type.
    :param name: Field name as written in the owner body.
    :param is_static: Whether the field lives on the class.
    :returns: Descriptor.
    """
    return MemberDescriptor(owner=owner, name=name, kind=MemberKind.FIELD, is_static=is_static)


def _method(
    owner: type,
    name: str,
    param_types: tuple[object, ...] = (),
    keyword_names: tuple[str, ...] = (),
    is_static: bool = False,
) -> MemberDescriptor:
    """Build a method descriptor.

    :param owner: Target type.
    :param name: Method name as written in the owner body.
    :param param_types: Effective parameter types.
    :param keyword_names: Keyword-only parameter names.
    :param is_static: Whether the call is made without an instance.
    :returns: Descriptor.
    """
    return MemberDescriptor(
        owner=owner,
        name=name,
        kind=MemberKind.METHOD,
        param_types=param_types,
        keyword_names=keyword_names,
        is_static=is_static,
    )


def test_private_instance_field_is_found_under_mangled_name() -> None:
    """``__context`` written in the owner body is read as ``_Owner__context``."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    handle: FieldHandle = resolve_field(_field(WindowManagerImpl, "__context"), target)
    assert handle.storage_name == "_WindowManagerImpl__context"
    assert handle.is_declared is False
    assert handle.get(target) == "ctx"
    handle.set(target, "other")
    assert handle.get(target) == "other"


def test_annotated_class_field_counts_as_declared() -> None:
    """Fields annotated in the owner body are declared even before assignment."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    handle: FieldHandle = resolve_field(_field(WindowManagerImpl, "_views"), target)
    assert handle.is_declared is True
    assert handle.get(target) == []


def test_static_field_reads_class_dictionary() -> None:
    """Static fields bypass the instance entirely."""
    WindowManagerImpl._s_default_display = "primary"
    handle: FieldHandle = resolve_field(_field(WindowManagerImpl, "_s_default_display", True), None)
    try:
        assert handle.get(None) == "primary"
        handle.set(None, "secondary")
        assert WindowManagerImpl._s_default_display == "secondary"
    finally:
        WindowManagerImpl._s_default_display = None


def test_static_field_inherited_from_base_is_not_declared() -> None:
    """Lookup uses the owner's own declarations, not its bases."""
    with pytest.raises(NoSuchFieldError) as exc_info:
        resolve_field(_field(DerivedWindowManager, "_s_window_count", True), None)
    assert exc_info.value.owner is DerivedWindowManager
    assert exc_info.value.member_name == "_s_window_count"
    assert isinstance(exc_info.value, AttributeError)


def test_missing_instance_field_raises_no_such_field() -> None:
    """A field that is neither declared nor present fails with ``NoSuchFieldError``."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    with pytest.raises(NoSuchFieldError, match="_missing"):
        resolve_field(_field(WindowManagerImpl, "_missing"), target)


def test_slotted_and_frozen_targets_are_writable() -> None:
    """Slots and frozen dataclass fields are read and written directly."""
    point: SlottedPoint = SlottedPoint(1, 2)
    x_handle: FieldHandle = resolve_field(_field(SlottedPoint, "_x"), point)
    x_handle.set(point, 10)
    assert x_handle.get(point) == 10

    config: FrozenConfig = FrozenConfig("base")
    name_handle: FieldHandle = resolve_field(_field(FrozenConfig, "name"), config)
    name_handle.set(config, "changed")
    assert config.name == "changed"


def test_guarded_target_does_not_use_custom_attribute_hooks() -> None:
    """Custom ``__getattr__`` and ``__setattr__`` are not consulted."""
    guarded: GuardedTarget = GuardedTarget()
    handle: FieldHandle = resolve_field(_field(GuardedTarget, "_secret"), guarded)
    handle.set(guarded, "rewritten")
    assert handle.get(guarded) == "rewritten"
    with pytest.raises(NoSuchFieldError):
        resolve_field(_field(GuardedTarget, "_other"), guarded)


def test_undeclared_field_missing_on_another_instance_raises_no_such_field() -> None:
    """Handles resolved from instance evidence report absence on other instances."""
    first: WindowManagerImpl = WindowManagerImpl("first")
    second: WindowManagerImpl = WindowManagerImpl("second")
    object.__setattr__(first, "_extra", 1)
    handle: FieldHandle = resolve_field(_field(WindowManagerImpl, "_extra"), first)
    assert handle.get(first) == 1
    with pytest.raises(NoSuchFieldError):
        handle.get(second)


def test_undeclared_field_set_on_instance_without_it_raises_no_such_field() -> None:
    """A cached undeclared handle never creates the field on other instances."""
    first: WindowManagerImpl = WindowManagerImpl("first")
    second: WindowManagerImpl = WindowManagerImpl("second")
    object.__setattr__(first, "_extra", 1)
    handle: FieldHandle = resolve_field(_field(WindowManagerImpl, "_extra"), first)
    handle.set(first, 2)
    assert handle.get(first) == 2
    with pytest.raises(NoSuchFieldError):
        handle.set(second, 5)
    assert "_extra" not in vars(second)


def test_instance_method_resolves_and_invokes() -> None:
    """Declared methods bind to the target and forward arguments."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_add_view", (object, int, bool)))
    assert handle.invoke(target, ("view", 0, False), {}) == 1
    assert target._views == ["view"]


def test_private_method_is_found_under_mangled_name() -> None:
    """``__dispose`` is looked up as ``_WindowManagerImpl__dispose``."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "__dispose"))
    assert handle.storage_name == "_WindowManagerImpl__dispose"
    assert handle.invoke(target, (), {}) == "disposed"


def test_static_and_class_methods_bind_to_the_owner() -> None:
    """``staticmethod`` and ``classmethod`` members are called without an instance."""
    create_handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_create_default", (str,), is_static=True))
    describe_handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_describe", (str,), is_static=True))
    created: object = create_handle.invoke(None, ("named",), {})
    assert isinstance(created, WindowManagerImpl)
    assert describe_handle.invoke(None, ("x",), {}) == "WindowManagerImpl:x"


def test_method_inherited_from_base_is_not_declared() -> None:
    """Only the owner's own ``__dict__`` is searched."""
    with pytest.raises(NoSuchMethodError, match="declares no method"):
        resolve_method(_method(DerivedWindowManager, "_view_count"))
    handle: MethodHandle = resolve_method(_method(DerivedWindowManager, "_only_here"))
    assert handle.invoke(DerivedWindowManager("ctx"), (), {}) == "derived"


def test_non_callable_member_is_not_a_method() -> None:
    """Class attributes that cannot be called are rejected."""
    with pytest.raises(NoSuchMethodError, match="is not a method"):
        resolve_method(_method(WindowManagerImpl, "_s_window_count"))


def test_arity_mismatch_raises_no_such_method() -> None:
    """A method with the right name but a different shape is not a match."""
    with pytest.raises(NoSuchMethodError, match="does not accept"):
        resolve_method(_method(WindowManagerImpl, "_add_view", (object, int)))
    with pytest.raises(NoSuchMethodError, match="does not accept"):
        resolve_method(_method(WindowManagerImpl, "_configure", (int, int), ("depth",)))


def test_keyword_only_parameters_match_by_name() -> None:
    """Keyword-only parameters are matched against the target by name."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_configure", (int, int), ("height",)))
    assert handle.invoke(target, (320,), {"height": 480}) == (320, 480, 1.0)


def test_parameter_type_mismatch_raises_no_such_method() -> None:
    """Declared parameter types must be usable as the target's parameter types."""
    with pytest.raises(NoSuchMethodError, match="takes index"):
        resolve_method(_method(WindowManagerImpl, "_add_view", (object, str, bool)))
    with pytest.raises(NoSuchMethodError, match="takes token"):
        resolve_method(_method(WindowManagerImpl, "_dispatch", (object,)))


def test_hidden_parameter_type_matches_exactly() -> None:
    """The hidden target type itself satisfies the target signature."""
    handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_dispatch", (_Token,)))
    assert handle.invoke(WindowManagerImpl("ctx"), (_Token("payload"),), {}) == "payload"


def test_unknown_parameter_types_skip_type_matching() -> None:
    """Unannotated interface parameters only need a compatible arity."""
    unknown_types: tuple[object, ...] = (UNSPECIFIED, UNSPECIFIED, UNSPECIFIED)
    handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_add_view", unknown_types))
    assert handle.invoke(WindowManagerImpl("ctx"), ("v", 0, False), {}) == 1


def test_overload_is_selected_by_first_parameter_type() -> None:
    """``singledispatchmethod`` implementations are picked by declared type."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    int_handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_measure", (int,)))
    str_handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_measure", (str,)))
    object_handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_measure", (object,)))
    assert int_handle.invoke(target, (5,), {}) == "int"
    assert str_handle.invoke(target, ("x",), {}) == "str"
    assert object_handle.invoke(target, (5.0,), {}) == "object"


def test_overload_without_a_type_is_ambiguous() -> None:
    """Several implementations and no declared type cannot be resolved."""
    with pytest.raises(AmbiguousMemberError) as exc_info:
        resolve_method(_method(WindowManagerImpl, "_measure", (UNSPECIFIED,)))
    assert isinstance(exc_info.value, NoSuchMemberError)


def test_invoke_wraps_target_exception() -> None:
    """Exceptions raised by a method body are wrapped with the original attached."""
    target: WindowManagerImpl = WindowManagerImpl("ctx")
    handle: MethodHandle = resolve_method(_method(WindowManagerImpl, "_fail", (str,)))
    with pytest.raises(InvocationTargetError) as exc_info:
        handle.invoke(target, ("boom",), {})
    target_exception: BaseException = exc_info.value.target_exception
    assert isinstance(target_exception, HiddenFailure)
    assert str(target_exception) == "boom"


def test_cache_returns_the_same_handle_for_the_same_slot() -> None:
    """Handles are resolved once per ``(proxy_key, descriptor)`` slot."""
    cache: HandleCache = HandleCache()
    proxy_key: tuple[type, type] = (_Marker, WindowManagerImpl)
    descriptor: MemberDescriptor = _method(WindowManagerImpl, "_view_count")
    assert cache.peek(proxy_key, descriptor) is None
    first: MethodHandle = cache.method(proxy_key, descriptor)
    second: MethodHandle = cache.method(proxy_key, descriptor)
    assert first is second
    assert cache.peek(proxy_key, descriptor) is first
    assert len(cache) == 1
    cache.clear()
    assert len(cache) == 0


def test_cache_does_not_store_failed_lookups() -> None:
    """A missing member is looked up again on the next use."""

    class Growing:
        """Target that gains members after the first lookup."""

    cache: HandleCache = HandleCache()
    proxy_key: tuple[type, type] = (_Marker, Growing)
    method_descriptor: MemberDescriptor = _method(Growing, "_late")
    field_descriptor: MemberDescriptor = _field(Growing, "_s_late", True)
    with pytest.raises(NoSuchMethodError):
        cache.method(proxy_key, method_descriptor)
    with pytest.raises(NoSuchFieldError):
        cache.field(proxy_key, field_descriptor, None)
    assert len(cache) == 0

    def _late(self: Growing) -> str:
        return "late"

    Growing._late = _late  # type: ignore[attr-defined]
    Growing._s_late = 7  # type: ignore[attr-defined]
    assert cache.method(proxy_key, method_descriptor).invoke(Growing(), (), {}) == "late"
    assert cache.field(proxy_key, field_descriptor, None).get(None) == 7
    assert len(cache) == 2


def test_concurrent_resolution_publishes_one_handle() -> None:
    """Racing resolvers all observe the first stored handle."""
    cache: HandleCache = HandleCache()
    proxy_key: tuple[type, type] = (_Marker, WindowManagerImpl)
    descriptor: MemberDescriptor = _method(WindowManagerImpl, "_add_view", (object, int, bool))
    thread_count: int = 16
    barrier: threading.Barrier = threading.Barrier(thread_count)
    results: list[MethodHandle] = []
    results_lock: threading.Lock = threading.Lock()

    def _resolve() -> None:
        barrier.wait()
        handle: MethodHandle = cache.method(proxy_key, descriptor)
        with results_lock:
            results.append(handle)

    threads: list[threading.Thread] = [threading.Thread(target=_resolve) for _ in range(thread_count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(results) == thread_count
    assert all(handle is results[0] for handle in results) is True
    assert len(cache) == 1


def test_resolution_is_logged_when_enabled() -> None:
    """Resolved handles are reported at debug level once logging is enabled."""
    from loguru import logger

    messages: list[str] = []
    sink_id: int = logger.add(messages.append, level="DEBUG", format="{message}")
    logger.enable("pyreflector")
    try:
        cache: HandleCache = HandleCache()
        cache.method((_Marker, WindowManagerImpl), _method(WindowManagerImpl, "_view_count"))
    finally:
        logger.disable("pyreflector")
        logger.remove(sink_id)
    assert any("Resolved method tests.fixtures.hidden_targets.WindowManagerImpl._view_count" in m for m in messages)
