from __future__ import annotations

from datetime import UTC, datetime, timedelta

import jwt
import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec

from coursework.services import token_service


def test_round_trip_carries_subject_and_roles() -> None:
    token = token_service.create_access_token(sub="user-1", roles=["admin"])
    claims = token_service.decode_access_token(token)
    assert claims["sub"] == "user-1"
    assert claims["roles"] == ["admin"]
    assert claims["iss"] == token_service.ISSUER


def test_expired_token_is_rejected() -> None:
    token = token_service.create_access_token(sub="user-1", ttl_minutes=-1)
    with pytest.raises(jwt.ExpiredSignatureError):
        token_service.decode_access_token(token)


def test_unsigned_token_is_rejected() -> None:
    forged = jwt.encode({"sub": "user-1"}, key=None, algorithm="none")
    with pytest.raises(jwt.InvalidTokenError):
        token_service.decode_access_token(forged)


def _write_public_key(path, key) -> None:
    path.write_bytes(
        key.public_key().public_bytes(
            serialization.Encoding.PEM,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )
    )


def test_tokens_signed_by_identity_provider_validate_with_its_key(
    tmp_path, monkeypatch: pytest.MonkeyPatch
) -> None:
    idp_key = ec.generate_private_key(ec.SECP256R1())
    pem = tmp_path / "idp.pem"
    _write_public_key(pem, idp_key)
    monkeypatch.setattr(token_service, "_public_key", token_service.load_public_key(pem))

    now = datetime.now(UTC)
    token = jwt.encode(
        {
            "sub": "user-7",
            "iss": token_service.ISSUER,
            "aud": token_service.AUDIENCE,
            "exp": now + timedelta(minutes=5),
            "iat": now,
            "jti": "j-1",
        },
        idp_key,
        algorithm="ES256",
    )
    assert token_service.decode_access_token(token)["sub"] == "user-7"

    # Locally minted tokens no longer validate once the real key is loaded.
    with pytest.raises(jwt.InvalidTokenError):
        token_service.decode_access_token(token_service.create_access_token(sub="user-7"))


def test_load_public_key_rejects_other_curves(tmp_path) -> None:
    pem = tmp_path / "p384.pem"
    _write_public_key(pem, ec.generate_private_key(ec.SECP384R1()))
    with pytest.raises(ValueError, match="not a P-256 EC public key"):
        token_service.load_public_key(pem)
