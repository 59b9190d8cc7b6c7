"""
Authorization Package

This package decides whether a request may be proxied.

Modules:
- tokens: RS512 capability token verification against the pinned public key
- paths: path pattern parsing and matching
- policy: verb / server prefix / path checks producing a decision
- keys: RSA key pair generation and token issuing for trusted issuers

The decision flow:
1. TokenValidator verifies signature, expiry and required claims
2. authorize() checks the method against the granted verb
3. authorize() finds the first server prefix the target URL starts with
4. authorize() matches the remaining path against the granted pattern
"""

from .policy import AuthorizationDecision, DecisionKind, authorize
from .tokens import TokenValidator, load_public_key

__all__ = [
    "AuthorizationDecision",
    "DecisionKind",
    "TokenValidator",
    "authorize",
    "load_public_key",
]
