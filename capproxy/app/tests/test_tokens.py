"""
Unit Tests for Capability Token Verification
============================================

Tests for capproxy/app/auth/tokens.py

Test Coverage:
--------------
1. Valid tokens decode into CapabilityClaims
2. Expired tokens raise TokenExpired
3. Missing claims raise MissingClaim naming the first absent one
4. Bad signatures, other algorithms and garbage raise TokenInvalid
5. Public key loading
"""

import base64
import json
import time

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from capproxy.app.auth.tokens import TokenValidator, load_public_key
from capproxy.app.errors import MissingClaim, TokenExpired, TokenInvalid


@pytest.fixture
def validator(public_pem):
    return TokenValidator.from_pem(public_pem)


def encode(payload, private_pem, algorithm="RS512"):
    return jwt.encode(payload, private_pem, algorithm=algorithm)


# ============================================================================
# Valid Tokens
# ============================================================================

def test_valid_token_returns_claims(validator, make_token):
    token = make_token(verb="POST", path="/posts/{id}", servers=["https://a.example", "https://b.example"])

    claims = validator.validate(token)

    assert claims.verb == "POST"
    assert claims.path == "/posts/{id}"
    assert claims.servers == ["https://a.example", "https://b.example"]
    assert claims.exp > time.time()


def test_extra_claims_are_ignored(validator, make_token):
    claims = validator.validate(make_token(sub="issuer-42"))
    assert claims.verb == "GET"


# ============================================================================
# Expiry and Required Claims
# ============================================================================

def test_expired_token_raises_token_expired(validator, make_token):
    with pytest.raises(TokenExpired) as exc_info:
        validator.validate(make_token(expires_in=-500))

    assert exc_info.value.message == "Token has expired"
    assert exc_info.value.status_code == 401


def test_empty_payload_reports_exp_first(validator, private_pem):
    with pytest.raises(MissingClaim) as exc_info:
        validator.validate(encode({}, private_pem))

    assert exc_info.value.claim == "exp"
    assert exc_info.value.message == "Token has missing required claim exp"


@pytest.mark.parametrize("missing", ["verb", "path", "servers"])
def test_missing_single_claim_is_named(validator, private_pem, missing):
    payload = {
        "exp": int(time.time()) + 60,
        "verb": "GET",
        "path": "/posts",
        "servers": ["https://api.example.com"],
    }
    del payload[missing]

    with pytest.raises(MissingClaim) as exc_info:
        validator.validate(encode(payload, private_pem))

    assert exc_info.value.claim == missing


def test_first_missing_claim_follows_required_order(validator, private_pem):
    payload = {"exp": int(time.time()) + 60, "servers": ["https://api.example.com"]}

    with pytest.raises(MissingClaim) as exc_info:
        validator.validate(encode(payload, private_pem))

    assert exc_info.value.claim == "verb"


def test_expiry_reported_before_missing_claims(validator, private_pem):
    payload = {"exp": int(time.time()) - 500, "servers": ["https://api.example.com"], "path": "/posts"}

    with pytest.raises(TokenExpired):
        validator.validate(encode(payload, private_pem))


# ============================================================================
# Invalid Tokens
# ============================================================================

def test_garbage_token_is_invalid(validator):
    with pytest.raises(TokenInvalid) as exc_info:
        validator.validate("invalid.token.here")

    assert exc_info.value.message == "Invalid token"


def test_token_signed_by_other_key_is_invalid(validator, other_private_pem):
    token = encode(
        {"exp": int(time.time()) + 60, "verb": "GET", "path": "/", "servers": ["https://x"]},
        other_private_pem,
    )

    with pytest.raises(TokenInvalid):
        validator.validate(token)


def test_other_rsa_algorithm_is_rejected(validator, private_pem):
    """Only RS512 is accepted, even with the right key"""
    token = encode(
        {"exp": int(time.time()) + 60, "verb": "GET", "path": "/", "servers": ["https://x"]},
        private_pem,
        algorithm="RS256",
    )

    with pytest.raises(TokenInvalid):
        validator.validate(token)


def test_unsigned_token_is_rejected(validator):
    def b64(data):
        return base64.urlsafe_b64encode(json.dumps(data).encode()).rstrip(b"=").decode()

    payload = {"exp": int(time.time()) + 60, "verb": "GET", "path": "/", "servers": ["https://x"]}
    token = f"{b64({'alg': 'none', 'typ': 'JWT'})}.{b64(payload)}."

    with pytest.raises(TokenInvalid):
        validator.validate(token)


@pytest.mark.parametrize("servers", [[], "https://api.example.com", [1, 2]])
def test_malformed_servers_claim_is_invalid(validator, private_pem, servers):
    token = encode(
        {"exp": int(time.time()) + 60, "verb": "GET", "path": "/", "servers": servers},
        private_pem,
    )

    with pytest.raises(TokenInvalid):
        validator.validate(token)


# ============================================================================
# Key Loading
# ============================================================================

def test_load_public_key_accepts_escaped_newlines(public_pem):
    escaped = public_pem.replace("\n", "\\n")
    key = load_public_key(escaped)
    assert key.key_size == 2048


def test_load_public_key_rejects_non_rsa_keys():
    ec_key = ec.generate_private_key(ec.SECP256R1()).public_key()
    pem = ec_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()

    with pytest.raises(ValueError, match="RSA"):
        load_public_key(pem)
