"""
Capability Token Verification
=============================

Verifies capability JWTs against the pinned RSA public key.

The signing algorithm is hard-pinned to RS512. Tokens declaring any other
algorithm (including ``none`` or an HMAC variant keyed with the public key)
are rejected by PyJWT before any claim is looked at.

Required claims, checked in this order:
    exp, verb, path, servers

An expired token is reported as expired even when other claims are absent.
"""

import logging
from typing import Tuple

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.rsa import RSAPublicKey
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError, MissingRequiredClaimError
from pydantic import ValidationError

from ..errors import MissingClaim, TokenExpired, TokenInvalid
from ..models import CapabilityClaims

logger = logging.getLogger(__name__)


TOKEN_ALGORITHM = "RS512"

REQUIRED_CLAIMS: Tuple[str, ...] = ("exp", "verb", "path", "servers")


def load_public_key(pem: str) -> RSAPublicKey:
    """
    Parse the PEM-encoded verification key.

    Args:
        pem: PEM text; literal ``\\n`` sequences are turned into newlines

    Returns:
        RSA public key object

    Raises:
        ValueError: If the PEM cannot be parsed or is not an RSA key
    """
    key = serialization.load_pem_public_key(pem.replace("\\n", "\n").encode("utf-8"))
    if not isinstance(key, RSAPublicKey):
        raise ValueError(f"Expected an RSA public key, got {type(key).__name__}")
    return key


class TokenValidator:
    """
    Verifies capability tokens with a single pinned public key.

    Instances hold no mutable state and are shared by every request
    handler of the process.
    """

    def __init__(self, public_key: RSAPublicKey):
        self._public_key = public_key

    @classmethod
    def from_pem(cls, pem: str) -> "TokenValidator":
        return cls(load_public_key(pem))

    def validate(self, token: str) -> CapabilityClaims:
        """
        Verify the token signature and required claims.

        Args:
            token: Encoded JWT taken from the token header

        Returns:
            Decoded capability claims

        Raises:
            TokenExpired: If ``exp`` is in the past
            MissingClaim: Naming the first absent required claim
            TokenInvalid: For bad signatures, wrong algorithm, malformed
                          tokens or claims of the wrong type
        """
        # Only exp is required here so that expiry is reported ahead of any
        # other missing claim.
        try:
            payload = jwt.decode(
                token,
                self._public_key,
                algorithms=[TOKEN_ALGORITHM],
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "require": [REQUIRED_CLAIMS[0]],
                },
            )
        except ExpiredSignatureError as e:
            logger.warning("Capability token expired")
            raise TokenExpired() from e
        except MissingRequiredClaimError as e:
            logger.warning(f"Capability token missing claim: {e.claim}")
            raise MissingClaim(e.claim) from e
        except InvalidTokenError as e:
            logger.warning(f"Invalid capability token: {e}")
            raise TokenInvalid() from e

        for claim in REQUIRED_CLAIMS[1:]:
            if payload.get(claim) is None:
                logger.warning(f"Capability token missing claim: {claim}")
                raise MissingClaim(claim)

        try:
            claims = CapabilityClaims.model_validate(payload)
        except ValidationError as e:
            logger.warning(f"Capability token has malformed claims: {e.error_count()} error(s)")
            raise TokenInvalid() from e

        logger.debug(
            "Capability token verified",
            extra={"verb": claims.verb, "path": claims.path, "servers": len(claims.servers)}
        )
        return claims
