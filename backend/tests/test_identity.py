"""Tests for ID token verification."""

from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa

from quickdesk.config.settings import settings
from quickdesk.domain.errors import AuthenticationError
from quickdesk.utils.identity import IdentityVerifier

PROJECT_ID = "quickdesk-prod"


@pytest.fixture(scope="module")
def provider_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="module")
def stranger_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


class StaticKeySet:
    """Stands in for the provider JWKS endpoint"""

    def __init__(self, public_key):
        self.public_key = public_key
        self.lookups = 0

    def get_signing_key_from_jwt(self, token):
        self.lookups += 1
        return SimpleNamespace(key=self.public_key)


def _claims(**overrides):
    now = datetime.now(timezone.utc)
    claims = {
        "sub": "uid-42",
        "email": "eve@quickdesk.io",
        "name": "Eve",
        "aud": PROJECT_ID,
        "iss": f"{settings.identity_issuer_prefix}{PROJECT_ID}",
        "iat": now,
        "exp": now + timedelta(hours=1),
    }
    claims.update(overrides)
    return claims


@pytest.fixture
def verifier(monkeypatch, provider_key):
    """A verifier for a non-development deployment with a pinned key set"""
    monkeypatch.setattr(settings, "environment", "staging")
    monkeypatch.setattr(settings, "identity_project_id", PROJECT_ID)

    verifier = IdentityVerifier()
    verifier._jwks_client = StaticKeySet(provider_key.public_key())
    verifier._jwks_cache_time = datetime.now(timezone.utc)
    return verifier


@pytest.mark.parametrize("environment,expected", [
    ("development", True),
    ("Local", True),
    ("dev", True),
    ("staging", False),
    ("prod", False),
    ("test", False),
    ("production", False),
])
def test_development_environments(monkeypatch, environment, expected):
    monkeypatch.setattr(settings, "environment", environment)
    assert settings.is_development is expected


# =============================================================================
# Verified Deployments
# =============================================================================

def test_provider_signed_token_is_accepted(verifier, provider_key):
    token = jwt.encode(_claims(), provider_key, algorithm="RS256")

    identity = verifier.verify(f"Bearer {token}")

    assert identity.subject_id == "uid-42"
    assert identity.email == "eve@quickdesk.io"
    assert identity.display_name == "Eve"


def test_self_signed_hs256_token_is_rejected(verifier):
    forged = jwt.encode(
        _claims(sub="attacker", email="admin@quickdesk.io"),
        "not-the-provider-key-but-long-enough-for-hmac",
        algorithm="HS256",
    )

    with pytest.raises(AuthenticationError):
        verifier.verify(forged)
    assert verifier._jwks_client.lookups == 0


def test_token_signed_by_another_key_is_rejected(verifier, stranger_key):
    forged = jwt.encode(_claims(sub="attacker"), stranger_key, algorithm="RS256")

    with pytest.raises(AuthenticationError):
        verifier.verify(forged)


def test_unsigned_token_is_rejected(verifier):
    forged = jwt.encode(_claims(), None, algorithm="none")

    with pytest.raises(AuthenticationError):
        verifier.verify(forged)


def test_wrong_audience_is_rejected(verifier, provider_key):
    token = jwt.encode(_claims(aud="someone-elses-project"), provider_key, algorithm="RS256")

    with pytest.raises(AuthenticationError) as exc:
        verifier.verify(token)
    assert exc.value.message == "Invalid token audience"


# =============================================================================
# Development
# =============================================================================

def test_development_skips_signature_but_not_expiry(monkeypatch):
    monkeypatch.setattr(settings, "environment", "development")
    verifier = IdentityVerifier()
    local = jwt.encode(_claims(), "local-signing-secret-for-development-only", algorithm="HS256")
    expired = jwt.encode(
        _claims(exp=datetime.now(timezone.utc) - timedelta(minutes=5)),
        "local-signing-secret-for-development-only",
        algorithm="HS256",
    )

    assert verifier.verify(local).subject_id == "uid-42"
    with pytest.raises(AuthenticationError) as exc:
        verifier.verify(expired)
    assert exc.value.message == "Token has expired"


@pytest.mark.parametrize("header", ["bearer {}", "BEARER {}", "Bearer  {}", "{}"])
def test_bearer_scheme_is_case_insensitive(monkeypatch, header):
    monkeypatch.setattr(settings, "environment", "development")
    token = jwt.encode(_claims(), "local-signing-secret-for-development-only", algorithm="HS256")

    assert IdentityVerifier().verify(header.format(token)).email == "eve@quickdesk.io"


@pytest.mark.parametrize("header", ["", "Bearer", "Bearer   "])
def test_missing_token(header):
    with pytest.raises(AuthenticationError) as exc:
        IdentityVerifier().verify(header)
    assert exc.value.message == "Token is missing"
