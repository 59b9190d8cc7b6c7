"""
Proxy Routes - Capability-Gated Request Forwarding
==================================================

Every path on the proxy is a target URL. A client calling

    GET /https:/api.example.com/v1/posts/1?full=true

asks the proxy to perform ``GET https://api.example.com/v1/posts/1?full=true``.
Clients write the scheme separator with a single slash so intermediaries do
not collapse the double slash; the proxy restores it.

Security Model:
---------------
1. The capability token header must be present (401 otherwise)
2. The token must verify against the pinned key (401 otherwise)
3. The policy must grant verb, server and path (403 otherwise)
4. Only then is the upstream contacted; the token header is never forwarded
5. Set-Cookie and Transfer-Encoding never come back to the client

Endpoints:
----------
- OPTIONS /{target}: CORS preflight, always 200, no token needed
- GET/POST/PUT/PATCH/DELETE /{target}: proxied to the target URL
"""

import logging
import re

from fastapi import APIRouter, Depends, Request, Response

from ..auth.policy import authorize
from ..auth.tokens import TokenValidator
from ..config import Settings
from ..errors import AccessDenied, MissingTokenHeader
from ..models import CapabilityClaims
from .forwarder import BODILESS_METHODS, RequestForwarder
from .headers import forward_to_client

logger = logging.getLogger(__name__)

# Create router
proxy_router = APIRouter()

PROXIED_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]

_SCHEME_SEPARATOR = re.compile(r"^([A-Za-z][A-Za-z0-9+.\-]*):/+")


# ============================================================================
# Dependencies
# ============================================================================

def get_proxy_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_token_validator(request: Request) -> TokenValidator:
    return request.app.state.token_validator


def get_forwarder(request: Request) -> RequestForwarder:
    return request.app.state.forwarder


async def get_capability_claims(
    request: Request,
    settings: Settings = Depends(get_proxy_settings),
    validator: TokenValidator = Depends(get_token_validator),
) -> CapabilityClaims:
    """
    Dependency to read and verify the capability token.

    Raises:
        MissingTokenHeader: If the token header is absent
        AuthError: If the token is invalid, expired or incomplete
    """
    token = request.headers.get(settings.TOKEN_HEADER_NAME)
    if token is None:
        logger.warning(f"Request without {settings.TOKEN_HEADER_NAME} header")
        raise MissingTokenHeader(settings.TOKEN_HEADER_NAME)

    return validator.validate(token)


# ============================================================================
# Target URL
# ============================================================================

def reconstruct_target_url(target: str, query: str = "") -> str:
    """
    Turn the proxy path into the absolute target URL.

    Args:
        target: Path after the proxy's leading slash, e.g. ``https:/host/path``
        query: Raw query string of the inbound request

    Returns:
        Target URL such as ``https://host/path?query``
    """
    url = _SCHEME_SEPARATOR.sub(r"\1://", target, count=1)
    if query:
        url = f"{url}?{query}"
    return url


# ============================================================================
# Proxy Endpoints
# ============================================================================

@proxy_router.options("/{target:path}")
async def preflight(target: str) -> Response:
    """CORS preflight; the CORS middleware adds the headers."""
    return Response(status_code=200)


@proxy_router.api_route("/{target:path}", methods=PROXIED_METHODS)
async def proxy_request(
    target: str,
    request: Request,
    claims: CapabilityClaims = Depends(get_capability_claims),
    forwarder: RequestForwarder = Depends(get_forwarder),
) -> Response:
    """
    Authorize the request against its token and relay it upstream.

    Flow:
    1. Verify token (done by dependency)
    2. Rebuild the target URL from the path and query string
    3. Check verb, server prefix and path pattern
    4. Forward with filtered headers and the full body
    5. Return upstream status, filtered headers and body unchanged

    Raises:
        AccessDenied: If the token does not grant this request
        UpstreamError: If the target cannot be reached
    """
    method = request.method
    target_url = reconstruct_target_url(target, request.url.query)

    decision = authorize(claims, method, target_url)
    if not decision.allowed:
        raise AccessDenied(decision.message)

    body = b""
    if method not in BODILESS_METHODS:
        body = await request.body()

    upstream = await forwarder.forward(
        method,
        target_url,
        request.headers.items(),
        body=body,
        content_type=request.headers.get("content-type"),
    )

    # Starlette computes Content-Length from the relayed body
    response = Response(content=upstream.body, status_code=upstream.status_code)
    for name, value in forward_to_client(upstream.headers):
        if name.lower() == "content-length":
            continue
        response.headers.append(name, value)

    return response
