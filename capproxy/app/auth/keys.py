"""
Key management and token issuing.

The proxy only ever needs the public key. The private key belongs to the
trusted issuer that mints capability tokens; these helpers exist for that
issuer, for key rotation, and for tests.

Rotate keys and rewrite .env:
    python -m capproxy.app.auth.keys --env-file .env
"""

import argparse
import time
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .tokens import TOKEN_ALGORITHM

PRIVATE_KEY_VAR = "JWT_SIGNING_PRIVATE_KEY"
PUBLIC_KEY_VAR = "JWT_SIGNING_PUBLIC_KEY"


def generate_key_pair(key_size: int = 2048) -> Tuple[str, str]:
    """
    Generate an RSA key pair.

    Returns:
        (private_pem, public_pem) as text; private key in PKCS8, public key
        in SubjectPublicKeyInfo format
    """
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    )
    public_pem = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo
    )
    return private_pem.decode(), public_pem.decode()


def issue_token(
    private_pem: str,
    verb: str,
    servers: Sequence[str],
    path: str,
    expires_in: int = 3600,
    **extra_claims: Any,
) -> str:
    """
    Sign a capability token.

    Args:
        private_pem: Issuer's RSA private key
        verb: HTTP method the token grants
        servers: Allowed target URL prefixes, most specific first
        path: Path pattern, e.g. ``/posts/{id}``
        expires_in: Lifetime in seconds from now (negative yields an
                    already expired token)
        **extra_claims: Additional claims copied into the payload

    Returns:
        Encoded JWT signed with RS512
    """
    payload = {
        "exp": int(time.time()) + expires_in,
        "verb": verb,
        "servers": list(servers),
        "path": path,
    }
    payload.update(extra_claims)
    return jwt.encode(payload, private_pem, algorithm=TOKEN_ALGORITHM)


def _escape(pem: str) -> str:
    return pem.strip().replace("\n", "\\n")


def _without_vars(lines: Iterable[str], names: Sequence[str]) -> List[str]:
    kept: List[str] = []
    skipping = False
    for line in lines:
        if skipping:
            # Inside a multi-line quoted value written by an older rotation
            skipping = not line.rstrip().endswith('"')
            continue
        if any(line.startswith(f"{name}=") for name in names):
            value = line.split("=", 1)[1].strip()
            skipping = value.startswith('"') and (len(value) == 1 or not value.endswith('"'))
            continue
        kept.append(line)
    return kept


def write_env_keys(env_file: Path, private_pem: str, public_pem: str) -> None:
    """Replace the key variables in an env file, creating it if needed."""
    lines = env_file.read_text().splitlines() if env_file.exists() else []
    lines = _without_vars(lines, [PRIVATE_KEY_VAR, PUBLIC_KEY_VAR])
    lines.append(f'{PRIVATE_KEY_VAR}="{_escape(private_pem)}"')
    lines.append(f'{PUBLIC_KEY_VAR}="{_escape(public_pem)}"')
    env_file.write_text("\n".join(lines) + "\n")


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(description="Rotate the capability token signing keys")
    parser.add_argument("--key-size", type=int, default=2048)
    parser.add_argument("--env-file", type=Path, default=Path(".env"))
    parser.add_argument("--no-write", action="store_true", help="Only print the new keys")
    args = parser.parse_args(argv)

    private_pem, public_pem = generate_key_pair(args.key_size)

    print("Private Key:")
    print(private_pem)
    print("Public Key:")
    print(public_pem)

    if not args.no_write:
        write_env_keys(args.env_file, private_pem, public_pem)
        print(f"Updated {args.env_file}")


if __name__ == "__main__":
    main()
