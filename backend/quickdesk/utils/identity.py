"""ID Token Verification for the external identity provider (Firebase)"""
import jwt
from jwt import PyJWKClient
from typing import Any, Dict, Optional
from datetime import datetime, timedelta, timezone
from pydantic import BaseModel, Field

from ..config.settings import settings
from ..domain.errors import AuthenticationError
from .logger import get_logger

logger = get_logger(__name__)


class VerifiedIdentity(BaseModel):
    """Claims extracted from a verified ID token"""

    subject_id: str = Field(..., description="Provider subject identifier (uid)")
    email: str = Field(..., description="Verified email")
    display_name: Optional[str] = None
    avatar_url: Optional[str] = None


class IdentityVerifier:
    """Firebase ID token verifier"""

    def __init__(self):
        self._jwks_client: Optional[PyJWKClient] = None
        self._jwks_cache_time: Optional[datetime] = None
        self._cache_duration = timedelta(hours=6)

    @property
    def issuer(self) -> str:
        """Get expected token issuer"""
        return f"{settings.identity_issuer_prefix}{settings.identity_project_id}"

    @property
    def jwks_client(self) -> PyJWKClient:
        """Get or create JWKS client with caching"""
        now = datetime.now(timezone.utc)

        if (self._jwks_client is None or
                self._jwks_cache_time is None or
                now - self._jwks_cache_time > self._cache_duration):
            self._jwks_client = PyJWKClient(settings.identity_jwks_uri)
            self._jwks_cache_time = now
            logger.info(f"Refreshed JWKS client cache from {settings.identity_jwks_uri}")

        return self._jwks_client

    def decode(self, token: str) -> Dict[str, Any]:
        """
        Validate an ID token and return its claims

        In development environments the signature is not verified so locally
        minted tokens work; expiry is still enforced. Everywhere else only
        RS256 tokens signed by the provider are accepted.

        Raises:
            AuthenticationError: If token is missing, invalid or expired
        """
        if not token:
            raise AuthenticationError("Token is missing")

        scheme, _, credentials = token.strip().partition(" ")
        if scheme.lower() == "bearer":
            token = credentials.strip()
            if not token:
                raise AuthenticationError("Token is missing")

        try:
            if settings.is_development:
                return jwt.decode(
                    token,
                    options={
                        "verify_signature": False,
                        "verify_exp": True,
                        "verify_aud": False,
                        "verify_iss": False,
                    }
                )

            # The provider signs with RS256 only
            algorithm = jwt.get_unverified_header(token).get("alg")
            if algorithm != "RS256":
                raise jwt.InvalidAlgorithmError(f"Unexpected token algorithm {algorithm!r}")

            signing_key = self.jwks_client.get_signing_key_from_jwt(token)
            return jwt.decode(
                token,
                signing_key.key,
                algorithms=["RS256"],
                audience=settings.identity_project_id,
                issuer=self.issuer,
                options={"require": ["exp", "iat", "sub"]}
            )

        except jwt.ExpiredSignatureError:
            logger.warning("Token expired")
            raise AuthenticationError("Token has expired")
        except jwt.InvalidAudienceError as e:
            logger.warning(f"Invalid token audience: {e}")
            raise AuthenticationError("Invalid token audience")
        except jwt.InvalidIssuerError:
            logger.warning("Invalid token issuer")
            raise AuthenticationError("Invalid token issuer")
        except jwt.PyJWTError as e:
            logger.warning(f"JWT validation error: {e}")
            raise AuthenticationError("Invalid token")

    def verify(self, token: str) -> VerifiedIdentity:
        """Verify a bearer token and extract the identity claims"""
        claims = self.decode(token)

        subject_id = claims.get("user_id") or claims.get("sub") or ""
        email = claims.get("email") or ""

        if not subject_id or not email:
            logger.warning(f"Token lacks subject or email. Available claims: {list(claims.keys())}")
            raise AuthenticationError("Token does not carry a subject and email")

        return VerifiedIdentity(
            subject_id=subject_id,
            email=email,
            display_name=claims.get("name"),
            avatar_url=claims.get("picture"),
        )


# Global verifier instance
_identity_verifier: Optional[IdentityVerifier] = None


def get_identity_verifier() -> IdentityVerifier:
    """Get global identity verifier instance"""
    global _identity_verifier
    if _identity_verifier is None:
        _identity_verifier = IdentityVerifier()
    return _identity_verifier
