"""Tests for the delegating session proxy."""

import logging
import pickle
from abc import ABC
from abc import abstractmethod

import pytest

from sessionproxy import SessionProxy
from sessionproxy import UnsupportedInteractionError
from sessionproxy import get_delegate
from sessionproxy import is_session_proxy
from sessionproxy import wrap
from tests.fixtures.session_types import AdminSession
from tests.fixtures.session_types import Administrable
from tests.fixtures.session_types import Closeable
from tests.fixtures.session_types import InMemorySession
from tests.fixtures.session_types import JackrabbitSession
from tests.fixtures.session_types import LoginError
from tests.fixtures.session_types import NamespaceRemappingError
from tests.fixtures.session_types import Observable
from tests.fixtures.session_types import PathNotFoundError
from tests.fixtures.session_types import PlainObject
from tests.fixtures.session_types import RecordingRepository
from tests.fixtures.session_types import Session
from tests.fixtures.session_types import SimpleCredentials


@pytest.fixture()
def repository() -> RecordingRepository:
    """Return a repository that records namespace prefix definitions.

    :returns: Recording repository.
    """
    return RecordingRepository()


@pytest.fixture()
def session() -> InMemorySession:
    """Return a fresh in-memory session.

    :returns: Session logged in as ``alice``.
    """
    return InMemorySession("alice")


def test_proxy_forwards_operations_verbatim(session: InMemorySession, repository: RecordingRepository) -> None:
    """Forward arguments unchanged and return delegate results unchanged."""
    proxy = wrap(session, repository)

    item: object = proxy.get_item("/content")
    assert item is session.items["/content"]

    proxy.move("/content", "/archive", overwrite=True)
    assert session.moves == [("/content", "/archive", True)]

    assert proxy.has_permission("/archive", "read") is True
    assert proxy.retention_policy("/archive") == "retain:/archive"
    assert proxy.observation_events() == ["login:alice"]
    assert repository.defined == []


def test_proxy_preserves_delegate_exception(session: InMemorySession, repository: RecordingRepository) -> None:
    """Raise the delegate's own exception object, not a wrapper."""
    proxy = wrap(session, repository)

    with pytest.raises(PathNotFoundError) as excinfo:
        proxy.get_item("/missing")
    assert excinfo.value is session.last_error
    assert excinfo.value.args == ("/missing",)


def test_proxy_forwards_attributes_and_dunders(session: InMemorySession, repository: RecordingRepository) -> None:
    """Expose capability properties, protocol attributes and dunder methods."""
    proxy = wrap(session, repository)

    assert proxy.user_id == "alice"
    assert proxy.closed is False
    assert "/content" in proxy
    assert "/missing" not in proxy

    proxy.closed = True
    assert session.closed is True

    proxy.logout()
    assert session.closed is True
    assert repr(proxy) == repr(session)


def test_proxy_satisfies_discovered_capabilities(session: InMemorySession, repository: RecordingRepository) -> None:
    """Advertise every discovered capability but not the concrete type."""
    proxy = wrap(session, repository)

    assert isinstance(proxy, Session) is True
    assert isinstance(proxy, JackrabbitSession) is True
    assert isinstance(proxy, Observable) is True
    assert isinstance(proxy, Closeable) is True
    assert isinstance(proxy, InMemorySession) is False
    assert is_session_proxy(proxy) is True
    assert get_delegate(proxy) is session


def test_proxy_hides_operations_outside_capabilities(session: InMemorySession, repository: RecordingRepository) -> None:
    """Only capability members are reachable through the proxy."""
    proxy = wrap(session, repository)

    with pytest.raises(AttributeError):
        proxy.debug_dump()
    with pytest.raises(AttributeError):
        proxy.get_retention_manager()
    with pytest.raises(AttributeError):
        proxy.shutdown()


def test_impersonation_remaps_namespaces_and_wraps(session: InMemorySession, repository: RecordingRepository) -> None:
    """Single-argument impersonation is intercepted."""
    proxy = wrap(session, repository)
    credentials = SimpleCredentials("bob")

    impersonated = proxy.impersonate(credentials)

    assert session.impersonations == [(credentials, None)]
    assert is_session_proxy(impersonated) is True
    raw_session: object = get_delegate(impersonated)
    assert repository.defined == [raw_session]
    assert impersonated.user_id == "bob"
    assert impersonated is not proxy


def test_impersonation_with_keyword_credentials_is_intercepted(
    session: InMemorySession,
    repository: RecordingRepository,
) -> None:
    """A single keyword credentials argument counts as one argument."""
    proxy = wrap(session, repository)

    impersonated = proxy.impersonate(credentials=SimpleCredentials("carol"))

    assert is_session_proxy(impersonated) is True
    assert repository.defined == [get_delegate(impersonated)]


@pytest.mark.parametrize(
    ("args", "kwargs"),
    [
        ((), {}),
        ((), {"workspace": "staging"}),
        ((SimpleCredentials("bob"), "staging"), {}),
        ((SimpleCredentials("bob"),), {"workspace": "staging"}),
    ],
)
def test_impersonation_with_other_arities_is_forwarded(
    session: InMemorySession,
    repository: RecordingRepository,
    args: tuple[object, ...],
    kwargs: dict[str, object],
) -> None:
    """Calls without exactly the credentials argument bypass namespace remapping."""
    proxy = wrap(session, repository)

    result: object = proxy.impersonate(*args, **kwargs)

    assert is_session_proxy(result) is False
    assert isinstance(result, InMemorySession) is True
    assert repository.defined == []
    assert len(session.impersonations) == 1


def test_chained_impersonation_remaps_each_time(session: InMemorySession, repository: RecordingRepository) -> None:
    """Impersonating through an impersonated proxy remaps again."""
    proxy = wrap(session, repository)

    second = proxy.impersonate(SimpleCredentials("bob"))
    third = second.impersonate(SimpleCredentials("carol"))

    assert len(repository.defined) == 2
    assert repository.defined == [get_delegate(second), get_delegate(third)]
    assert is_session_proxy(third) is True
    assert third.user_id == "carol"


def test_failed_impersonation_never_remaps(session: InMemorySession, repository: RecordingRepository) -> None:
    """Credential rejection propagates and skips the repository."""
    proxy = wrap(session, repository)

    with pytest.raises(LoginError) as excinfo:
        proxy.impersonate(SimpleCredentials("mallory", accepted=False))
    assert excinfo.value is session.last_error
    assert repository.defined == []


def test_remapping_failure_surfaces_to_caller(session: InMemorySession) -> None:
    """A namespace remapping failure fails the impersonation call."""
    failure: NamespaceRemappingError = NamespaceRemappingError("prefix conflict")
    failing_repository: RecordingRepository = RecordingRepository(failure=failure)
    proxy = wrap(session, failing_repository)

    with pytest.raises(NamespaceRemappingError) as excinfo:
        proxy.impersonate(SimpleCredentials("bob"))
    assert excinfo.value is failure
    assert len(session.impersonations) == 1
    assert len(failing_repository.defined) == 1


def test_impersonation_resolves_capabilities_of_new_session_type(
    session: InMemorySession,
    repository: RecordingRepository,
) -> None:
    """A different impersonated session type gets its own proxy class."""
    proxy = wrap(session, repository)

    admin = proxy.impersonate(SimpleCredentials("admin"))

    assert isinstance(get_delegate(admin), AdminSession) is True
    assert type(admin) is not type(proxy)
    assert isinstance(admin, Administrable) is True
    assert admin.shutdown() == "shutdown"

    back = admin.impersonate(SimpleCredentials("dave"))
    assert type(back) is type(proxy)
    assert len(repository.defined) == 2


def test_proxy_classes_are_shared_but_instances_are_not(repository: RecordingRepository) -> None:
    """One proxy class per session type, one proxy per wrap call."""
    first_session: InMemorySession = InMemorySession("alice")
    second_session: InMemorySession = InMemorySession("bob")

    first = wrap(first_session, repository)
    again = wrap(first_session, repository)
    second = wrap(second_session, repository)

    assert type(first) is type(second)
    assert first is not again
    assert type(first).__name__ == "InMemorySessionProxy"
    assert issubclass(type(first), SessionProxy) is True


def test_proxy_for_type_without_capabilities_has_no_members(repository: RecordingRepository) -> None:
    """An empty capability set yields a degenerate proxy."""
    proxy = wrap(PlainObject(), repository)

    assert is_session_proxy(proxy) is True
    with pytest.raises(AttributeError):
        proxy.impersonate(SimpleCredentials("bob"))


def test_wrap_rejects_none(repository: RecordingRepository) -> None:
    """A session is required."""
    with pytest.raises(TypeError):
        wrap(None, repository)


def test_proxy_cannot_be_constructed_or_pickled(session: InMemorySession, repository: RecordingRepository) -> None:
    """Proxies come from wrap() only and never cross a pickle boundary."""
    with pytest.raises(UnsupportedInteractionError):
        SessionProxy()

    proxy = wrap(session, repository)
    with pytest.raises(UnsupportedInteractionError):
        pickle.dumps(proxy)


def test_impersonation_logs_namespace_definition(
    session: InMemorySession,
    repository: RecordingRepository,
    caplog: pytest.LogCaptureFixture,
) -> None:
    """Namespace remapping after impersonation is logged at debug level."""
    proxy = wrap(session, repository)

    with caplog.at_level(logging.DEBUG, logger="sessionproxy"):
        proxy.impersonate(SimpleCredentials("bob"))

    messages: list[str] = [record.getMessage() for record in caplog.records]
    matched: bool = any("Defined namespace prefixes" in message for message in messages)
    assert matched is True


def test_get_delegate_rejects_non_proxies(session: InMemorySession) -> None:
    """Only session proxies have a delegate."""
    with pytest.raises(TypeError):
        get_delegate(session)


def test_forwarding_property_deletes_on_delegate(session: InMemorySession, repository: RecordingRepository) -> None:
    """Deleting a forwarded attribute deletes it on the delegate."""
    proxy = wrap(session, repository)

    del proxy.closed

    assert "closed" not in vars(session)


def test_classmethod_and_staticmethod_members_are_forwarded(repository: RecordingRepository) -> None:
    """Class-level operations are reached through the delegate."""

    class Describable(ABC):
        """Capability with class-level operations."""

        @classmethod
        @abstractmethod
        def descriptor_keys(cls) -> list[str]:
            """Return repository descriptor keys."""

        @staticmethod
        @abstractmethod
        def normalize_path(path: str) -> str:
            """Normalize an item path."""

    class DescribedSession(Describable):
        """Concrete session implementing class-level operations."""

        @classmethod
        def descriptor_keys(cls) -> list[str]:
            """Return the class name as the only key."""
            return [cls.__name__]

        @staticmethod
        def normalize_path(path: str) -> str:
            """Strip trailing slashes."""
            return path.rstrip("/") or "/"

    proxy = wrap(DescribedSession(), repository)

    assert proxy.descriptor_keys() == ["DescribedSession"]
    assert proxy.normalize_path("/content/") == "/content"
    assert proxy.normalize_path("/") == "/"


def test_equality_capability_keeps_proxy_hashable(repository: RecordingRepository) -> None:
    """Forwarding ``__eq__`` does not make proxies unhashable."""

    class Comparable(ABC):
        """Capability declaring equality."""

        @abstractmethod
        def __eq__(self, other: object) -> bool:
            """Compare sessions."""

    class KeyedSession(Comparable):
        """Session compared by key."""

        key: str

        def __init__(self, key: str) -> None:
            """Initialize the session.

            :param key: Comparison key.
            """
            self.key = key

        def __eq__(self, other: object) -> bool:
            """Compare by key."""
            return isinstance(other, KeyedSession) and other.key == self.key

        def __hash__(self) -> int:
            """Hash by key."""
            return hash(self.key)

    proxy = wrap(KeyedSession("main"), repository)

    assert (proxy == KeyedSession("main")) is True
    assert (proxy == KeyedSession("other")) is False
    assert type(proxy).__hash__ is object.__hash__
    assert proxy in {proxy}
