"""Public package API for sessionproxy."""

from sessionproxy.api import SessionProxyHandler
from sessionproxy.api import wrap
from sessionproxy.capabilities import DEFAULT_EXCLUDED_PREFIXES
from sessionproxy.capabilities import capability
from sessionproxy.capabilities import resolve_capabilities
from sessionproxy.errors import CapabilityDeclarationError
from sessionproxy.errors import SessionProxyError
from sessionproxy.errors import UnsupportedInteractionError
from sessionproxy.runtime import CREDENTIALS_PARAMETER
from sessionproxy.runtime import IMPERSONATE_OPERATION
from sessionproxy.runtime import NamespaceRepository
from sessionproxy.runtime import SessionProxy
from sessionproxy.runtime import get_delegate
from sessionproxy.runtime import is_session_proxy

__all__: list[str] = [
    "CREDENTIALS_PARAMETER",
    "DEFAULT_EXCLUDED_PREFIXES",
    "IMPERSONATE_OPERATION",
    "NamespaceRepository",
    "SessionProxy",
    "SessionProxyHandler",
    "capability",
    "get_delegate",
    "is_session_proxy",
    "resolve_capabilities",
    "wrap",
    "CapabilityDeclarationError",
    "SessionProxyError",
    "UnsupportedInteractionError",
]
