"""Custom error types for pyreflector."""


class ReflectorError(Exception):
    """Base class for all pyreflector errors."""


class InterfaceDefinitionError(ReflectorError):
    """Raised when a reflector interface cannot be turned into a proxy class."""


class MalformedAccessorError(InterfaceDefinitionError):
    """Raised when an accessor method has the wrong name, arity, or return shape."""


class NoSuchMemberError(ReflectorError, AttributeError):
    """Raised when the target type does not declare the requested member."""

    owner: type
    member_name: str

    def __init__(self, owner: type, member_name: str, detail: str) -> None:
        """Initialize a missing-member error.

        :param owner: Target type that was searched.
        :param member_name: Member name requested by the interface.
        :param detail: Human-readable explanation.
        """
        self.owner = owner
        self.member_name = member_name
        super().__init__(detail)


class NoSuchFieldError(NoSuchMemberError):
    """Raised when the target type does not declare the requested field."""


class NoSuchMethodError(NoSuchMemberError):
    """Raised when the target type does not declare a matching method."""


class AmbiguousMemberError(NoSuchMemberError):
    """Raised when several overloads match and none can be selected."""


class TypeMismatchError(ReflectorError, TypeError):
    """Raised when a value does not fit the type declared on the interface."""

    expected: object
    actual: object

    def __init__(self, expected: object, actual: object, detail: str) -> None:
        """Initialize a type mismatch error.

        :param expected: Declared interface type.
        :param actual: Offending runtime value.
        :param detail: Human-readable explanation.
        """
        self.expected = expected
        self.actual = actual
        super().__init__(detail)


class UnboundTargetError(ReflectorError):
    """Raised when an instance member is used on a proxy without a target."""


class InvocationTargetError(ReflectorError):
    """Wrap an exception raised by the body of a target method."""

    def __init__(self, member: str, target_exception: BaseException) -> None:
        """Initialize an invocation wrapper.

        :param member: Description of the invoked member.
        :param target_exception: Exception raised by the target implementation.
        """
        self.__cause__ = target_exception
        super().__init__(f"{member} raised {type(target_exception).__name__}: {target_exception}")

    @property
    def target_exception(self) -> BaseException:
        """Return the exception raised by the target implementation.

        :returns: Wrapped exception.
        """
        cause: BaseException | None = self.__cause__
        if cause is None:
            raise ReflectorError("Invocation wrapper lost its cause")
        return cause


class UnsupportedInteractionError(ReflectorError):
    """Raised when a proxy is used in a way the factory does not support."""
