"""Delegating session proxy runtime."""

import logging
import threading
from collections.abc import Callable
from collections.abc import Iterable
from typing import ClassVar
from typing import Protocol

from sessionproxy.capabilities import MemberKind
from sessionproxy.capabilities import capability_members
from sessionproxy.capabilities import capability_name
from sessionproxy.capabilities import is_protocol_capability
from sessionproxy.capabilities import normalize_excluded_prefixes
from sessionproxy.capabilities import resolve_capabilities
from sessionproxy.errors import UnsupportedInteractionError

logger = logging.getLogger(__name__)

IMPERSONATE_OPERATION: str = "impersonate"
CREDENTIALS_PARAMETER: str = "credentials"
_PROXY_CLASS_LOCK: threading.Lock = threading.Lock()
_PROXY_CLASSES_BY_KEY: dict[tuple[type, tuple[str, ...]], type["SessionProxy"]] = {}


class NamespaceRepository(Protocol):
    """Repository collaborator that owns namespace prefix configuration."""

    def define_namespace_prefixes(self, session: object) -> None:
        """Define the configured namespace prefixes on ``session``.

        :param session: Session whose prefix mappings are (re)defined.
        """
        ...


def _is_credentials_only_call(args: tuple[object, ...], kwargs: dict[str, object]) -> bool:
    """Report whether a call passes exactly the credentials argument.

    :param args: Positional arguments.
    :param kwargs: Keyword arguments.
    :returns: ``True`` for one positional argument or one ``credentials`` keyword.
    """
    if len(args) == 1 and len(kwargs) == 0:
        return True
    if len(args) == 0 and len(kwargs) == 1:
        return CREDENTIALS_PARAMETER in kwargs
    return False


class SessionProxy:
    """Base class for generated session proxies.

    Generated subclasses carry one forwarding member per capability member.
    Every forwarding method goes through :meth:`_dispatch`.
    """

    __slots__ = ("_delegate", "_repository", "__weakref__")

    _concrete_type: ClassVar[type]
    _capabilities: ClassVar[frozenset[type]]
    _excluded_prefixes: ClassVar[tuple[str, ...]]

    _delegate: object
    _repository: NamespaceRepository

    def __init__(self) -> None:
        """Prevent direct initialization.

        :raises UnsupportedInteractionError: Always.
        """
        raise UnsupportedInteractionError("Session proxies are created by wrap() only")

    @classmethod
    def _bind(cls, delegate: object, repository: NamespaceRepository) -> "SessionProxy":
        """Allocate a proxy bound to ``delegate`` without running ``__init__``.

        :param delegate: Real session.
        :param repository: Repository collaborator.
        :returns: Bound proxy instance.
        """
        instance: SessionProxy = object.__new__(cls)
        instance._delegate = delegate
        instance._repository = repository
        return instance

    def _dispatch(self, operation: str, args: tuple[object, ...], kwargs: dict[str, object]) -> object:
        """Route one operation to the delegate.

        ``impersonate`` calls carrying only the credentials are intercepted;
        everything else is forwarded verbatim and raises whatever the delegate
        raises.

        :param operation: Operation name.
        :param args: Positional arguments.
        :param kwargs: Keyword arguments.
        :returns: Delegate result, or a new proxy for impersonation.
        """
        if operation == IMPERSONATE_OPERATION and _is_credentials_only_call(args, kwargs) is True:
            return self._impersonate(args, kwargs)

        target: Callable[..., object] = getattr(self._delegate, operation)
        return target(*args, **kwargs)

    def _impersonate(self, args: tuple[object, ...], kwargs: dict[str, object]) -> "SessionProxy":
        """Impersonate on the delegate, remap namespaces and wrap the result.

        :param args: Positional credentials argument, if given positionally.
        :param kwargs: Keyword credentials argument, if given by name.
        :returns: Proxy around the impersonated session.
        """
        impersonate: Callable[..., object] = getattr(self._delegate, IMPERSONATE_OPERATION)
        new_session: object = impersonate(*args, **kwargs)
        self._repository.define_namespace_prefixes(new_session)
        logger.debug(
            "Defined namespace prefixes on impersonated %s session",
            capability_name(type(new_session)),
        )
        return create_session_proxy(new_session, self._repository, type(self)._excluded_prefixes)

    def __repr__(self) -> str:
        """Return the delegate ``repr`` string.

        :returns: Representation string.
        """
        return repr(self._delegate)

    def __reduce__(self) -> object:
        """Block pickling of live session proxies.

        :raises UnsupportedInteractionError: Always.
        """
        raise UnsupportedInteractionError("Session proxies cannot be pickled")

    def __reduce_ex__(self, protocol: int) -> object:
        """Block pickling of live session proxies.

        :param protocol: Pickle protocol version.
        :raises UnsupportedInteractionError: Always.
        """
        raise UnsupportedInteractionError("Session proxies cannot be pickled")


def _make_forwarding_method(operation: str, owner_name: str) -> Callable[..., object]:
    """Build a method that routes ``operation`` through the proxy dispatcher.

    :param operation: Operation name.
    :param owner_name: Generated proxy class name.
    :returns: Plain function suitable for a class namespace.
    """

    def forward(self: SessionProxy, *args: object, **kwargs: object) -> object:
        return self._dispatch(operation, args, kwargs)

    forward.__name__ = operation
    forward.__qualname__ = f"{owner_name}.{operation}"
    return forward


def _make_forwarding_property(attr_name: str) -> property:
    """Build a property that reads, writes and deletes ``attr_name`` on the delegate.

    :param attr_name: Attribute name.
    :returns: Forwarding property.
    """

    def fget(self: SessionProxy) -> object:
        return getattr(self._delegate, attr_name)

    def fset(self: SessionProxy, value: object) -> None:
        setattr(self._delegate, attr_name, value)

    def fdel(self: SessionProxy) -> None:
        delattr(self._delegate, attr_name)

    return property(fget, fset, fdel, f"Forwarded session attribute ``{attr_name}``.")


def _build_proxy_class(
    concrete_type: type,
    capabilities: frozenset[type],
    excluded_prefixes: tuple[str, ...],
) -> type[SessionProxy]:
    """Build the dynamic proxy class for one concrete session type.

    :param concrete_type: Concrete session type.
    :param capabilities: Resolved capability set.
    :param excluded_prefixes: Normalized exclusion prefixes.
    :returns: Dynamic proxy class.
    """
    class_name: str = f"{concrete_type.__name__}Proxy"
    members: dict[str, MemberKind] = capability_members(capabilities)

    namespace: dict[str, object] = {
        "__module__": __name__,
        "__qualname__": class_name,
        "__doc__": f"Session proxy for {capability_name(concrete_type)}.",
        "__slots__": (),
        "_concrete_type": concrete_type,
        "_capabilities": capabilities,
        "_excluded_prefixes": excluded_prefixes,
    }
    for name, kind in members.items():
        if kind == "method":
            namespace[name] = _make_forwarding_method(name, class_name)
        else:
            namespace[name] = _make_forwarding_property(name)

    # a class defining __eq__ alone would become unhashable
    if "__eq__" in members and "__hash__" not in members:
        namespace["__hash__"] = object.__hash__

    proxy_class: type[SessionProxy] = type(class_name, (SessionProxy,), namespace)
    for declared in capabilities:
        # protocols are matched structurally
        if is_protocol_capability(declared) is False:
            declared.register(proxy_class)

    logger.debug(
        "Built %s with %d capabilities and %d forwarded members",
        class_name,
        len(capabilities),
        len(members),
    )
    return proxy_class


def _get_or_create_proxy_class(concrete_type: type, excluded_prefixes: tuple[str, ...]) -> type[SessionProxy]:
    """Get the cached proxy class for ``concrete_type`` or build it once.

    :param concrete_type: Concrete session type.
    :param excluded_prefixes: Normalized exclusion prefixes.
    :returns: Proxy class.
    """
    cache_key: tuple[type, tuple[str, ...]] = (concrete_type, excluded_prefixes)
    cached: type[SessionProxy] | None = _PROXY_CLASSES_BY_KEY.get(cache_key)
    if cached is not None:
        return cached

    with _PROXY_CLASS_LOCK:
        cached = _PROXY_CLASSES_BY_KEY.get(cache_key)
        if cached is not None:
            return cached
        capabilities: frozenset[type] = resolve_capabilities(concrete_type, excluded_prefixes)
        proxy_class: type[SessionProxy] = _build_proxy_class(concrete_type, capabilities, excluded_prefixes)
        _PROXY_CLASSES_BY_KEY[cache_key] = proxy_class
        return proxy_class


def create_session_proxy(
    session: object,
    repository: NamespaceRepository,
    excluded_prefixes: Iterable[str] | None = None,
) -> SessionProxy:
    """Wrap ``session`` in a proxy exposing its discovered capabilities.

    Capabilities are always resolved from the type of ``session`` itself.

    :param session: Real session.
    :param repository: Repository collaborator used after impersonation.
    :param excluded_prefixes: Optional capability exclusion prefixes.
    :returns: New proxy instance.
    :raises TypeError: If ``session`` is ``None``.
    """
    if session is None:
        raise TypeError("session cannot be None")
    normalized_prefixes: tuple[str, ...] = normalize_excluded_prefixes(excluded_prefixes)
    proxy_class: type[SessionProxy] = _get_or_create_proxy_class(type(session), normalized_prefixes)
    return proxy_class._bind(session, repository)


def is_session_proxy(value: object) -> bool:
    """Report whether ``value`` is a session proxy.

    :param value: Candidate value.
    :returns: ``True`` for proxies built by this module.
    """
    return isinstance(value, SessionProxy)


def get_delegate(proxy: SessionProxy) -> object:
    """Return the real session behind ``proxy``.

    :param proxy: Session proxy.
    :returns: Wrapped session.
    :raises TypeError: If ``proxy`` is not a session proxy.
    """
    if is_session_proxy(proxy) is False:
        raise TypeError("value is not a session proxy")
    return proxy._delegate
