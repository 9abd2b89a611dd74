"""User-facing API entrypoints for sessionproxy."""

from collections.abc import Iterable

from sessionproxy.builder import NamespaceRepository
from sessionproxy.builder import create_session_proxy
from sessionproxy.builder import normalize_excluded_prefixes
from sessionproxy.runtime import SessionProxy


def wrap(
    session: object,
    repository: NamespaceRepository,
    excluded_prefixes: Iterable[str] | None = None,
) -> SessionProxy:
    """Wrap a repository session so impersonation keeps namespace mappings.

    The returned proxy exposes every capability of the session's concrete
    type. Calling ``impersonate(credentials)`` on it defines the repository's
    namespace prefixes on the new session and returns that session wrapped
    the same way.

    :param session: Real session obtained from the repository.
    :param repository: Collaborator providing ``define_namespace_prefixes``.
    :param excluded_prefixes: Optional dotted-name prefixes of legacy
        capability families to leave out; defaults to
        ``DEFAULT_EXCLUDED_PREFIXES``.
    :returns: Session proxy.
    """
    return create_session_proxy(session, repository, excluded_prefixes=excluded_prefixes)


class SessionProxyHandler:
    """Create session proxies on behalf of one repository."""

    _repository: NamespaceRepository
    _excluded_prefixes: tuple[str, ...]

    def __init__(
        self,
        repository: NamespaceRepository,
        excluded_prefixes: Iterable[str] | None = None,
    ) -> None:
        """Initialize a handler bound to ``repository``.

        :param repository: Collaborator providing ``define_namespace_prefixes``.
        :param excluded_prefixes: Optional legacy capability prefixes.
        :raises TypeError: If ``excluded_prefixes`` is malformed.
        :raises ValueError: If an exclusion prefix is empty.
        """
        self._repository = repository
        self._excluded_prefixes = normalize_excluded_prefixes(excluded_prefixes)

    @property
    def repository(self) -> NamespaceRepository:
        """Return the bound repository collaborator.

        :returns: Repository collaborator.
        """
        return self._repository

    @property
    def excluded_prefixes(self) -> tuple[str, ...]:
        """Return the normalized exclusion prefixes.

        :returns: Exclusion prefixes.
        """
        return self._excluded_prefixes

    def create_proxy(self, session: object) -> SessionProxy:
        """Create a proxy for ``session``.

        :param session: Real session obtained from the repository.
        :returns: Session proxy.
        """
        return create_session_proxy(session, self._repository, excluded_prefixes=self._excluded_prefixes)
