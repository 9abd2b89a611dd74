"""Proxy builder routines."""

from sessionproxy.capabilities import normalize_excluded_prefixes
from sessionproxy.runtime import NamespaceRepository
from sessionproxy.runtime import create_session_proxy

__all__: list[str] = [
    "NamespaceRepository",
    "create_session_proxy",
    "normalize_excluded_prefixes",
]
