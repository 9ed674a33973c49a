"""
Authentication helpers for the content proxy.
"""

from .credential_cache import Credential, CredentialCache
from .identity_client import IdentityClient

__all__ = [
    "Credential",
    "CredentialCache",
    "IdentityClient",
]
