"""
Upstream Request Forwarding
===========================

Sends one authorized request to its target origin and reads the whole
response back.

Behavior:
---------
- Headers pass through ``forward_to_upstream`` (token dropped, Host rewritten)
- A body is attached only for methods other than GET/HEAD/OPTIONS and only
  when the client declared a content type
- http/https is taken from the target URL scheme
- No retries: any transport failure surfaces once as ``UpstreamError``
- Redirects are relayed to the client, never followed
- Optionally decodes bodies whose ``Content-Encoding`` includes gzip before
  relaying, when every listed coding is one httpx can undo (gzip, deflate,
  identity); any other coding such as x-gzip or br is relayed raw with its
  header

A fresh ``httpx.AsyncClient`` is opened per request; there is no pooling
across requests.
"""

import logging
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional, Tuple

import httpx

from ..errors import UpstreamError
from .headers import HeaderList, forward_to_upstream

logger = logging.getLogger(__name__)


BODILESS_METHODS: FrozenSet[str] = frozenset({"GET", "HEAD", "OPTIONS"})

DECODABLE_ENCODINGS: FrozenSet[str] = frozenset({"gzip", "deflate", "identity"})


@dataclass
class UpstreamResponse:
    """Fully read upstream response; headers are unfiltered."""
    status_code: int
    headers: HeaderList = field(default_factory=list)
    body: bytes = b""


class RequestForwarder:
    """
    Executes upstream requests for the proxy routes.

    Args:
        token_header: Name of the capability token header, never forwarded
        timeout: Per-request timeout in seconds
        decompress: Decode gzip response bodies before relaying
        transport: Optional httpx transport (tests pass ``httpx.MockTransport``)
    """

    def __init__(
        self,
        token_header: str,
        timeout: float = 30.0,
        decompress: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.token_header = token_header
        self.timeout = httpx.Timeout(timeout)
        self.decompress = decompress
        self._transport = transport

    async def forward(
        self,
        method: str,
        target_url: str,
        headers: Iterable[Tuple[str, str]],
        body: bytes = b"",
        content_type: Optional[str] = None,
    ) -> UpstreamResponse:
        """
        Forward a request and return the upstream's reply.

        Args:
            method: HTTP method, already authorized
            target_url: Absolute target URL including any query string
            headers: Inbound request headers
            body: Inbound request body, read in full
            content_type: Inbound Content-Type, if any

        Returns:
            UpstreamResponse with status, raw headers and body bytes

        Raises:
            UpstreamError: On invalid URLs and any network/transport failure
        """
        method = method.upper()

        try:
            url = httpx.URL(target_url)
            upstream_headers = forward_to_upstream(
                headers,
                token_header=self.token_header,
                target_host=url.netloc.decode("ascii"),
            )

            content = None
            if method not in BODILESS_METHODS and content_type:
                content = body

            logger.info(
                f"Forwarding {method} request upstream",
                extra={"target_url": target_url, "body_bytes": len(content or b"")}
            )
            logger.debug(
                "Forwarding headers to target request",
                extra={"header_names": [name for name, _ in upstream_headers]}
            )

            async with httpx.AsyncClient(
                timeout=self.timeout,
                transport=self._transport,
                follow_redirects=False,
            ) as client:
                request = client.build_request(method, url, headers=upstream_headers, content=content)
                response = await client.send(request, stream=True)
                try:
                    return await self._read_response(response)
                finally:
                    await response.aclose()

        except (httpx.HTTPError, httpx.InvalidURL) as e:
            message = str(e) or type(e).__name__
            logger.error(
                f"Upstream request failed: {message}",
                extra={"target_url": target_url, "exception_type": type(e).__name__}
            )
            raise UpstreamError(message) from e

    async def _read_response(self, response: httpx.Response) -> UpstreamResponse:
        headers = response.headers.multi_items()
        encodings = [
            coding.strip().lower()
            for value in response.headers.get_list("content-encoding")
            for coding in value.split(",")
            if coding.strip()
        ]

        if self.decompress and "gzip" in encodings and DECODABLE_ENCODINGS.issuperset(encodings):
            body = await response.aread()
            headers = [(name, value) for name, value in headers if name.lower() != "content-encoding"]
        else:
            body = b"".join([chunk async for chunk in response.aiter_raw()])

        logger.info(
            f"Upstream responded {response.status_code}",
            extra={"status_code": response.status_code, "body_bytes": len(body)}
        )
        return UpstreamResponse(status_code=response.status_code, headers=headers, body=body)
