"""
Header filtering for both directions of the proxy.

Headers are handled as ``(name, value)`` pairs so repeated headers survive.
Name comparison is case-insensitive throughout.
"""

from typing import FrozenSet, Iterable, List, Tuple

HeaderList = List[Tuple[str, str]]

# The body is fully materialized before it is sent, so the HTTP client
# computes the framing headers itself.
_REQUEST_FRAMING_HEADERS: FrozenSet[str] = frozenset({
    "content-length",
    "transfer-encoding",
})

# set-cookie would hand the target origin's session to the proxy's caller;
# transfer-encoding is hop-by-hop and the body is already de-chunked.
STRIP_RESPONSE_HEADERS: FrozenSet[str] = frozenset({
    "set-cookie",
    "transfer-encoding",
})


def forward_to_upstream(
    headers: Iterable[Tuple[str, str]],
    token_header: str,
    target_host: str,
) -> HeaderList:
    """
    Build the headers sent to the target origin.

    Drops the capability token header and any client ``Host``, then sets
    ``Host`` to the target's own host so virtual hosting works upstream.

    Args:
        headers: Inbound request headers
        token_header: Name of the header carrying the capability token
        target_host: Host (with port when non-default) of the target URL

    Returns:
        Header pairs for the upstream request
    """
    token_header = token_header.lower()
    forwarded: HeaderList = []

    for name, value in headers:
        lower_name = name.lower()
        if lower_name == token_header:
            continue
        if lower_name == "host":
            continue
        if lower_name in _REQUEST_FRAMING_HEADERS:
            continue
        forwarded.append((name, value))

    forwarded.append(("Host", target_host))
    return forwarded


def forward_to_client(headers: Iterable[Tuple[str, str]]) -> HeaderList:
    """Copy upstream response headers minus the deny-list."""
    return [
        (name, value) for name, value in headers
        if name.lower() not in STRIP_RESPONSE_HEADERS
    ]
