"""
Proxy Errors
============

Every failure the proxy reports to a client is a ``ProxyError``. Each
subclass carries the HTTP status code and the message that ends up in the
``{"error": ...}`` response body, so the exception handler in ``main`` can
render all of them the same way.

Status families:
    - 401: the token is absent or cannot be trusted
    - 403: the token is valid but does not grant this request
    - 502: the upstream could not be reached
"""

from fastapi import status


class ProxyError(Exception):
    """Base class for errors rendered as ``{"error": message}``."""

    status_code: int = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


# =============================================================================
# Authentication (401)
# =============================================================================

class AuthError(ProxyError):
    status_code = status.HTTP_401_UNAUTHORIZED


class MissingTokenHeader(AuthError):
    def __init__(self, header_name: str):
        super().__init__(f"{header_name} header is missing")
        self.header_name = header_name


class TokenInvalid(AuthError):
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class TokenExpired(AuthError):
    def __init__(self):
        super().__init__("Token has expired")


class MissingClaim(AuthError):
    def __init__(self, claim: str):
        super().__init__(f"Token has missing required claim {claim}")
        self.claim = claim


# =============================================================================
# Authorization (403)
# =============================================================================

class AccessDenied(ProxyError):
    """Raised by the route when the policy returns a denial."""

    status_code = status.HTTP_403_FORBIDDEN


# =============================================================================
# Upstream (502)
# =============================================================================

class UpstreamError(ProxyError):
    """Network or transport failure while talking to the target origin."""

    status_code = status.HTTP_502_BAD_GATEWAY
