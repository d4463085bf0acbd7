"""Utility modules"""
from .logger import get_logger, setup_logging
from .identity import IdentityVerifier, VerifiedIdentity, get_identity_verifier
from .idgen import generate_id, generate_correlation_id
from .time import utc_now, format_iso, parse_iso

__all__ = [
    "get_logger",
    "setup_logging",
    "IdentityVerifier",
    "VerifiedIdentity",
    "get_identity_verifier",
    "generate_id",
    "generate_correlation_id",
    "utc_now",
    "format_iso",
    "parse_iso",
]
