"""Capability discovery for concrete session types."""

import abc
import inspect
import logging
import threading
import types
import typing
from collections.abc import Iterable
from typing import Literal

from sessionproxy.errors import CapabilityDeclarationError

logger = logging.getLogger(__name__)

MemberKind = Literal["method", "attribute"]

DEFAULT_EXCLUDED_PREFIXES: tuple[str, ...] = ("jackrabbit.api.jsr283",)
_CAPABILITY_MARKER: str = "__session_capability__"
_CAPABILITY_LOCK: threading.Lock = threading.Lock()
_CAPABILITIES_BY_KEY: dict[tuple[type, tuple[str, ...]], frozenset[type]] = {}
_NON_CAPABILITY_ROOTS: frozenset[object] = frozenset(
    {object, abc.ABC, typing.Protocol, typing.Generic}
)
_RESERVED_MEMBER_NAMES: frozenset[str] = frozenset(
    {
        "__init__",
        "__new__",
        "__del__",
        "__init_subclass__",
        "__annotate__",
        "__annotate_func__",
        "__subclasshook__",
        "__class_getitem__",
        "__instancecheck__",
        "__subclasscheck__",
        "__mro_entries__",
        "__set_name__",
        "__get__",
        "__set__",
        "__delete__",
        "__getattribute__",
        "__getattr__",
        "__setattr__",
        "__delattr__",
        "__reduce__",
        "__reduce_ex__",
        "__getstate__",
        "__setstate__",
        "__copy__",
        "__deepcopy__",
    }
)
_FORWARDABLE_CALLABLE_TYPES: tuple[type, ...] = (types.FunctionType, classmethod, staticmethod)


def capability(cls: type) -> type:
    """Mark an abstract base class as a session capability.

    ``typing.Protocol`` classes and ABCs whose own operations are all abstract
    are recognized without the marker. Use it for marker interfaces that
    declare no abstract members, or interfaces with default implementations.

    :param cls: Class to mark.
    :returns: The same class.
    :raises CapabilityDeclarationError: If ``cls`` is not an ``ABCMeta`` class.
    """
    if isinstance(cls, type) is False:
        raise CapabilityDeclarationError(repr(cls), "only classes can be capabilities")
    if isinstance(cls, abc.ABCMeta) is False:
        raise CapabilityDeclarationError(capability_name(cls), "metaclass must be abc.ABCMeta")
    setattr(cls, _CAPABILITY_MARKER, True)
    return cls


def capability_name(cls: type) -> str:
    """Build the identifying dotted name of a capability.

    :param cls: Capability class.
    :returns: Dotted ``module.qualname`` string.
    """
    module_name: str = cls.__module__
    qualname: str = cls.__qualname__
    return f"{module_name}.{qualname}"


def is_capability(candidate: object) -> bool:
    """Report whether ``candidate`` describes a session capability.

    :param candidate: Candidate class object.
    :returns: ``True`` for protocols, purely abstract ABCs and marked ABCs.
    """
    if isinstance(candidate, type) is False:
        return False
    if candidate in _NON_CAPABILITY_ROOTS:
        return False
    is_protocol: bool = candidate.__dict__.get("_is_protocol", False) is True
    if is_protocol is True:
        return True
    if isinstance(candidate, abc.ABCMeta) is False:
        return False
    is_marked: bool = candidate.__dict__.get(_CAPABILITY_MARKER, False) is True
    if is_marked is True:
        return True
    if inspect.isabstract(candidate) is False:
        return False
    return _declares_only_abstract_members(candidate)


def _declares_only_abstract_members(cls: type) -> bool:
    """Check that every operation ``cls`` declares itself is abstract.

    Partially implemented abstract base classes are implementation
    superclasses, not interfaces.

    :param cls: ``ABCMeta`` class with remaining abstract members.
    :returns: ``True`` when no own public operation has an implementation.
    """
    abstract_names: frozenset[str] = frozenset(getattr(cls, "__abstractmethods__", frozenset()))
    for name, value in vars(cls).items():
        if name in _RESERVED_MEMBER_NAMES:
            continue
        is_dunder: bool = name.startswith("__") and name.endswith("__")
        if is_dunder is False and name.startswith("_") is True:
            continue
        is_operation: bool = isinstance(value, _FORWARDABLE_CALLABLE_TYPES + (property,))
        if is_operation is True and name not in abstract_names:
            return False
    return True


def is_protocol_capability(cls: type) -> bool:
    """Report whether a capability is a ``typing.Protocol`` class."""
    return cls.__dict__.get("_is_protocol", False) is True


def normalize_excluded_prefixes(excluded_prefixes: Iterable[str] | None) -> tuple[str, ...]:
    """Validate and normalize capability exclusion prefixes.

    :param excluded_prefixes: Optional iterable of dotted-name prefixes.
    :returns: Sorted, de-duplicated prefix tuple usable as a cache key.
    :raises TypeError: If a bare string or a non-string entry is given.
    :raises ValueError: If an entry is empty.
    """
    if excluded_prefixes is None:
        return DEFAULT_EXCLUDED_PREFIXES
    if isinstance(excluded_prefixes, str) is True:
        raise TypeError("excluded_prefixes must be an iterable of strings, not a string")

    normalized: set[str] = set()
    for prefix in excluded_prefixes:
        if isinstance(prefix, str) is False:
            raise TypeError("excluded_prefixes entries must be strings")
        if len(prefix) == 0:
            raise ValueError("excluded_prefixes entries cannot be empty")
        normalized.add(prefix)
    return tuple(sorted(normalized))


def is_excluded_capability(cls: type, excluded_prefixes: tuple[str, ...]) -> bool:
    """Check whether a capability belongs to an excluded legacy family.

    :param cls: Capability class.
    :param excluded_prefixes: Normalized exclusion prefixes.
    :returns: ``True`` when the identifying name starts with any prefix.
    """
    name: str = capability_name(cls)
    for prefix in excluded_prefixes:
        if name.startswith(prefix) is True:
            return True
    return False


def _collect_capabilities(concrete_type: type, excluded_prefixes: tuple[str, ...]) -> frozenset[type]:
    """Walk the base-class graph of ``concrete_type`` and gather capabilities.

    Excluded capabilities are dropped but the capabilities they extend are
    still walked.

    :param concrete_type: Concrete session type.
    :param excluded_prefixes: Normalized exclusion prefixes.
    :returns: Immutable capability set.
    """
    collected: set[type] = set()
    visited: set[type] = set()
    pending: list[type] = [concrete_type]
    while len(pending) > 0:
        current: type = pending.pop()
        if current in visited:
            continue
        visited.add(current)

        for base in current.__bases__:
            if is_capability(base) is True and is_excluded_capability(base, excluded_prefixes) is False:
                collected.add(base)
            pending.append(base)
    return frozenset(collected)


def resolve_capabilities(
    concrete_type: type,
    excluded_prefixes: Iterable[str] | None = None,
) -> frozenset[type]:
    """Return the cached capability set of a concrete session type.

    The set is computed at most once per ``(type, prefixes)`` pair and kept for
    the lifetime of the process.

    :param concrete_type: Concrete session type.
    :param excluded_prefixes: Optional exclusion prefixes; defaults to
        ``DEFAULT_EXCLUDED_PREFIXES``.
    :returns: Immutable capability set.
    :raises TypeError: If ``concrete_type`` is not a class.
    """
    if isinstance(concrete_type, type) is False:
        raise TypeError("concrete_type must be a class")
    normalized_prefixes: tuple[str, ...] = normalize_excluded_prefixes(excluded_prefixes)
    cache_key: tuple[type, tuple[str, ...]] = (concrete_type, normalized_prefixes)

    cached: frozenset[type] | None = _CAPABILITIES_BY_KEY.get(cache_key)
    if cached is not None:
        return cached

    with _CAPABILITY_LOCK:
        cached = _CAPABILITIES_BY_KEY.get(cache_key)
        if cached is not None:
            return cached
        resolved: frozenset[type] = _collect_capabilities(concrete_type, normalized_prefixes)
        _CAPABILITIES_BY_KEY[cache_key] = resolved

    logger.debug(
        "Resolved %d session capabilities for %s",
        len(resolved),
        capability_name(concrete_type),
    )
    return resolved


def _classify_member(name: str, value: object) -> MemberKind | None:
    """Decide how one declared capability member is forwarded.

    :param name: Member name.
    :param value: Declared member value.
    :returns: Member kind, or ``None`` when the member is not forwarded.
    """
    if name in _RESERVED_MEMBER_NAMES:
        return None
    is_callable_member: bool = isinstance(value, _FORWARDABLE_CALLABLE_TYPES)
    is_dunder: bool = name.startswith("__") and name.endswith("__")
    if is_dunder is True:
        if is_callable_member is True:
            return "method"
        return None
    if name.startswith("_") is True:
        return None
    if is_callable_member is True:
        return "method"
    return "attribute"


def capability_members(capabilities: Iterable[type]) -> dict[str, MemberKind]:
    """Build the forwarding table for a capability set.

    Members declared on a capability or on any capability it extends are
    included. When several capabilities declare one name, the first in
    dotted-name order wins.

    :param capabilities: Capability classes.
    :returns: Mapping of member name to member kind.
    """
    members: dict[str, MemberKind] = {}
    ordered: list[type] = sorted(capabilities, key=capability_name)
    for declared in ordered:
        for klass in declared.__mro__:
            if is_capability(klass) is False:
                continue
            for name, value in vars(klass).items():
                if name in members:
                    continue
                kind: MemberKind | None = _classify_member(name, value)
                if kind is not None:
                    members[name] = kind

            # protocol attributes declared by annotation only
            for name in inspect.get_annotations(klass):
                if name in members or name.startswith("_") is True:
                    continue
                members[name] = "attribute"
    return members
