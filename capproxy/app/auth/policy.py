"""
Authorization Policy
====================

Decides whether verified capability claims grant a given request.

Checks run in order and the first failure wins:
    1. verb:   the request method equals ``claims.verb`` exactly
    2. server: the target URL starts with one of ``claims.servers``
    3. path:   the rest of the URL matches ``claims.path``

A target whose path contains a ``.`` or ``..`` segment, literal or
percent-encoded, is denied as a path mismatch. The HTTP client would
resolve such segments before sending, which could move the request out
of the granted server prefix after the check has passed.

The policy never raises and never performs I/O; it returns an
``AuthorizationDecision`` that the route turns into a response.

Server entries are compared as plain string prefixes, not as parsed
origins. ``https://good.com`` therefore also admits
``https://good.com.evil.com/...``; issuers should end entries with a path
segment (``https://good.com/api``) or list the most specific entries first.
"""

import enum
import logging
from dataclasses import dataclass
from typing import Optional, Sequence
from urllib.parse import unquote

from ..models import CapabilityClaims
from .paths import matches

logger = logging.getLogger(__name__)


class DecisionKind(str, enum.Enum):
    ALLOWED = "allowed"
    DENIED_METHOD = "denied_method"
    DENIED_SERVER = "denied_server"
    DENIED_PATH = "denied_path"


DENIAL_MESSAGES = {
    DecisionKind.DENIED_METHOD: "HTTP method not allowed",
    DecisionKind.DENIED_SERVER: "Server not allowed",
    DecisionKind.DENIED_PATH: "Path not allowed",
}


@dataclass(frozen=True)
class AuthorizationDecision:
    kind: DecisionKind
    matched_server: Optional[str] = None

    @property
    def allowed(self) -> bool:
        return self.kind is DecisionKind.ALLOWED

    @property
    def message(self) -> Optional[str]:
        """Client-facing denial message, None when allowed."""
        return DENIAL_MESSAGES.get(self.kind)


def match_server(target_url: str, servers: Sequence[str]) -> Optional[str]:
    """
    Find the first server entry the target URL starts with.

    A single trailing ``/`` on an entry is ignored so that
    ``https://api.example.com/`` and ``https://api.example.com`` behave
    the same.

    Returns:
        The matching entry with its trailing slash removed, or None
    """
    for server in servers:
        prefix = server[:-1] if server.endswith("/") else server
        if target_url.startswith(prefix):
            return prefix
    return None


def path_remainder(target_url: str, server_prefix: str) -> str:
    """Strip the server prefix and any query string from the target URL."""
    remainder = target_url[len(server_prefix):]
    return remainder.split("?", 1)[0]


def has_dot_segment(target_url: str) -> bool:
    """True if any path segment of the URL is ``.`` or ``..`` once decoded."""
    path = target_url.split("?", 1)[0]
    return any(unquote(segment) in (".", "..") for segment in path.split("/"))


def authorize(claims: CapabilityClaims, method: str, target_url: str) -> AuthorizationDecision:
    """
    Evaluate the claims against a request.

    Args:
        claims: Verified capability claims
        method: HTTP method of the inbound request
        target_url: Full reconstructed target URL, query string included

    Returns:
        The decision, carrying the matched server prefix when allowed
    """
    if claims.verb != method:
        logger.warning(
            "Request denied: method not granted",
            extra={"method": method, "granted_verb": claims.verb}
        )
        return AuthorizationDecision(DecisionKind.DENIED_METHOD)

    server = match_server(target_url, claims.servers)
    if server is None:
        logger.warning("Request denied: no server prefix matches", extra={"target_url": target_url})
        return AuthorizationDecision(DecisionKind.DENIED_SERVER)

    if has_dot_segment(target_url):
        logger.warning("Request denied: dot segment in path", extra={"target_url": target_url})
        return AuthorizationDecision(DecisionKind.DENIED_PATH)

    remainder = path_remainder(target_url, server)
    if not matches(remainder, claims.path):
        logger.warning(
            "Request denied: path does not match pattern",
            extra={"path": remainder, "pattern": claims.path}
        )
        return AuthorizationDecision(DecisionKind.DENIED_PATH)

    return AuthorizationDecision(DecisionKind.ALLOWED, matched_server=server)
