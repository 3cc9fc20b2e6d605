"""JWT access token creation and validation (ES256).

The coursework service only validates tokens.  They are issued by the
platform's identity provider, whose public key is read from
JWT_PUBLIC_KEY_FILE (required in prod).  Without it, dev and test use an
ephemeral key pair generated on import, and create_access_token() mints
tokens that key accepts.
"""

from __future__ import annotations

import uuid
from datetime import UTC, datetime, timedelta
from pathlib import Path

import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from coursework.core.config import SETTINGS

ALGORITHM = "ES256"
ISSUER = "coursework-platform"
AUDIENCE = "coursework-service"
ACCESS_TOKEN_TTL_MIN = 15


def load_public_key(path: str | Path) -> ec.EllipticCurvePublicKey:
    """Read a PEM public key; only P-256 EC keys can verify ES256."""
    key = serialization.load_pem_public_key(Path(path).read_bytes())
    if not isinstance(key, ec.EllipticCurvePublicKey) or not isinstance(
        key.curve, ec.SECP256R1
    ):
        raise ValueError(f"{path} is not a P-256 EC public key")
    return key


_private_key = ec.generate_private_key(ec.SECP256R1())
_public_key = (
    load_public_key(SETTINGS.jwt_public_key_file)
    if SETTINGS.jwt_public_key_file
    else _private_key.public_key()
)


def create_access_token(
    *,
    sub: str,
    roles: list[str] | None = None,
    ttl_minutes: int = ACCESS_TOKEN_TTL_MIN,
) -> str:
    """Build and sign a JWT access token (sub, iss, aud, exp, iat, jti, roles)."""
    now = datetime.now(UTC)
    payload = {
        "sub": sub,
        "iss": ISSUER,
        "aud": AUDIENCE,
        "exp": now + timedelta(minutes=ttl_minutes),
        "iat": now,
        "jti": str(uuid.uuid4()),
        "roles": roles or ["user"],
    }
    return jwt.encode(payload, _private_key, algorithm=ALGORITHM)


def decode_access_token(token: str) -> dict:
    """Verify signature and claims, return the payload.

    Pins the algorithm to ES256 so alg:none and alg-switching tokens are
    rejected.  Raises jwt.ExpiredSignatureError, jwt.InvalidTokenError.
    """
    return jwt.decode(
        token,
        _public_key,
        algorithms=[ALGORITHM],
        issuer=ISSUER,
        audience=AUDIENCE,
        options={"require": ["sub", "exp", "iat", "jti"]},
    )
